"""
Model architectures for bounce time as a function of visitor age.

Three strategies for different assumptions about county similarity:

1. **Pooled**: All counties share one intercept and one age slope
   - Assumption: a London visitor and a Cumbria visitor of the same age
     bounce the same way
   - Pro: Maximum data efficiency
   - Con: Ignores county baselines; can flip the sign of the age effect

2. **Unpooled**: Each county has its own independent regression
   - Assumption: Counties have nothing in common
   - Pro: Maximum flexibility
   - Con: Sparse counties (Cheshire, Cumbria) get very noisy estimates,
     or no slope at all

3. **Hierarchical**: Counties are similar but not identical (partial pooling)
   - Fit by maximum likelihood (mixed-effects model) or by MCMC
   - Sparse counties borrow strength from the rest
   - Con: The slope's between-county variance is often not identified,
     giving a singular fit
"""

from bouncepool.models.pooled import PooledFit, fit_pooled_ols, build_pooled_model
from bouncepool.models.unpooled import (
    fit_unpooled_ols,
    group_summaries,
    build_unpooled_model,
)
from bouncepool.models.hierarchical import (
    MixedModelFit,
    fit_mixed_model,
    build_hierarchical_model,
    build_global_model,
    global_model_from_trace,
    sample_model,
    sample_prior_predictive,
    sample_posterior_predictive,
)

__all__ = [
    "PooledFit",
    "fit_pooled_ols",
    "build_pooled_model",
    "fit_unpooled_ols",
    "group_summaries",
    "build_unpooled_model",
    "MixedModelFit",
    "fit_mixed_model",
    "build_hierarchical_model",
    "build_global_model",
    "global_model_from_trace",
    "sample_model",
    "sample_prior_predictive",
    "sample_posterior_predictive",
]
