"""
Evaluation and diagnostics utilities for the bounce-time models.

This module provides tools for:
- MCMC diagnostics (convergence, divergences, ESS)
- Posterior predictive checks
- Side-by-side comparison of pooling strategies
- Shrinkage analysis and Simpson's paradox detection
- Model comparison (LOO-CV, WAIC)
"""

from bouncepool.evaluation.diagnostics import (
    DiagnosticsReport,
    run_mcmc_diagnostics,
    posterior_predictive_check,
    posterior_predictive_check_by_county,
    compare_models_loo,
    compute_waic,
    format_diagnostics_report,
    energy_diagnostic,
    check_divergences_by_parameter,
)
from bouncepool.evaluation.pooling import (
    SimpsonsParadoxResult,
    posterior_group_estimates,
    compute_shrinkage,
    compare_pooling_strategies,
    detect_simpsons_paradox,
    compare_to_ground_truth,
    format_pooling_report,
)

__all__ = [
    # Diagnostics
    "DiagnosticsReport",
    "run_mcmc_diagnostics",
    "posterior_predictive_check",
    "posterior_predictive_check_by_county",
    "compare_models_loo",
    "compute_waic",
    "format_diagnostics_report",
    "energy_diagnostic",
    "check_divergences_by_parameter",
    # Pooling
    "SimpsonsParadoxResult",
    "posterior_group_estimates",
    "compute_shrinkage",
    "compare_pooling_strategies",
    "detect_simpsons_paradox",
    "compare_to_ground_truth",
    "format_pooling_report",
]
