"""
Predictor scaling for the bounce-time models.

Age is z-scored before any fit so that:

1. **Intercepts are interpretable**: the intercept is the expected bounce
   time of a visitor of average age, not of a newborn.

2. **Priors are comparable**: intercept and slope live on similar scales,
   which keeps the hierarchical sampler well conditioned.

Coefficients can be mapped back to raw years with
``unstandardize_coefficients``.
"""

from bouncepool.transforms.scaling import (
    Standardizer,
    standardize,
    standardize_predictor,
    unstandardize_coefficients,
)

__all__ = [
    "Standardizer",
    "standardize",
    "standardize_predictor",
    "unstandardize_coefficients",
]
