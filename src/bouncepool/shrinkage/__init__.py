"""
Partial-pooling (empirical-Bayes) shrinkage for varying-intercept,
varying-slope linear models.

Each county's own regression coefficient is blended with the population
coefficient, weighted by relative precision:

    w_j = (n_j / sigma2) / (n_j / sigma2 + 1 / tau2)
    shrunk_j = w_j * own_j + (1 - w_j) * population

- Sparse counties (small n_j) are pulled hard toward the population.
- Data-rich counties keep most of their own estimate.
- tau2 = 0 (a singular fit) pools every county completely.

Intercept and slope are shrunk independently, each with its own tau2.
"""

from bouncepool.shrinkage.estimator import (
    GroupSummary,
    GlobalModel,
    ShrunkEstimate,
    group_weight,
    shrink,
    shrinkage_weights,
    shrink_group,
    estimate_partial_pooling,
    shrinkage_table,
)

__all__ = [
    "GroupSummary",
    "GlobalModel",
    "ShrunkEstimate",
    "group_weight",
    "shrink",
    "shrinkage_weights",
    "shrink_group",
    "estimate_partial_pooling",
    "shrinkage_table",
]
