import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Optional

import arviz as az
import numpy as np
import pandas as pd
import pymc as pm
import statsmodels.api as sm

from bouncepool.config import DEFAULT_COLUMNS, ColumnConfig, SamplerConfig
from bouncepool.models.design import prepare_design
from bouncepool.models.pooled import PooledFit
from bouncepool.shrinkage.estimator import GlobalModel
from bouncepool.transforms.scaling import Standardizer

logger = logging.getLogger(__name__)

# group-level sd / residual sd below this is treated as zero
SINGULAR_TOL = 1e-2
CORRELATION_TOL = 1e-3


@dataclass(frozen=True)
class MixedModelFit:
    """
    Linear mixed-effects fit: ``bounce_time ~ age_std + (age_std | county)``.

    A group-level standard deviation below ``SINGULAR_TOL`` times the
    residual standard deviation is on the boundary: the optimizer stops
    near, not at, zero. Such variances are reported as exactly zero (their
    BLUP deviations too) and flag the fit as singular, as does a
    random-effect correlation within ``CORRELATION_TOL`` of +/-1.

    Attributes
    ----------
    intercept, slope : float
        Fixed effects on the standardized-age scale.
    residual_variance : float
        sigma^2.
    intercept_variance, slope_variance : float
        tau^2 for the county intercepts and slopes. ``slope_variance`` is 0
        for a random-intercept-only fit.
    re_correlation : float
        Correlation between county intercept and slope deviations
        (NaN when undefined).
    group_coefficients : pd.DataFrame
        Per-county BLUP intercept and slope (fixed + random effect).
    converged : bool
        Optimizer convergence as reported by statsmodels.
    singular : bool
        The random-effects structure is not supported by the data.
    fit_warnings : list[str]
        Warnings raised by statsmodels during fitting.
    """

    intercept: float
    slope: float
    residual_variance: float
    intercept_variance: float
    slope_variance: float
    re_correlation: float
    group_coefficients: pd.DataFrame
    converged: bool
    singular: bool
    reml: bool
    random_slope: bool
    log_likelihood: float
    scaler: Standardizer
    fit_warnings: list[str] = field(default_factory=list)
    result: Any = None


def _clamp_variance(value: float, residual_variance: float) -> float:
    return 0.0 if value < SINGULAR_TOL**2 * residual_variance else float(value)


def fit_mixed_model(
    df: pd.DataFrame,
    columns: ColumnConfig = DEFAULT_COLUMNS,
    random_slope: bool = True,
    reml: bool = False,
    scaler: Optional[Standardizer] = None,
) -> MixedModelFit:
    """
    Fit the varying-intercept (and optionally varying-slope) model by
    maximum likelihood with statsmodels ``MixedLM``.

    Parameters
    ----------
    df : pd.DataFrame
        Observation table.
    columns : ColumnConfig
        Column names.
    random_slope : bool
        Let the age slope vary by county. With few observations per county
        the slope variance is often not identified and the fit is singular.
    reml : bool
        Use restricted maximum likelihood instead of maximum likelihood.
    scaler : Standardizer, optional
        Predictor scaling. Fitted on ``df`` if None.

    Returns
    -------
    MixedModelFit
        Fixed effects, variance components and per-county BLUPs.
    """
    design = prepare_design(df, columns, scaler)

    exog = sm.add_constant(design.x, has_constant="add")
    exog_re = exog if random_slope else np.ones((design.n_obs, 1))
    groups = np.asarray(design.groups, dtype=object)[design.group_idx]

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        result = sm.MixedLM(design.y, exog, groups=groups, exog_re=exog_re).fit(
            reml=reml
        )

    fit_warnings = [str(w.message) for w in caught]
    for message in fit_warnings:
        logger.warning("MixedLM: %s", message)

    sigma2 = float(result.scale)
    cov_re = np.atleast_2d(np.asarray(result.cov_re, dtype=np.float64))

    tau2_int = _clamp_variance(cov_re[0, 0], sigma2)
    tau2_slope = _clamp_variance(cov_re[1, 1], sigma2) if random_slope else 0.0

    corr = np.nan
    if random_slope and tau2_int > 0 and tau2_slope > 0:
        corr = float(cov_re[0, 1] / np.sqrt(cov_re[0, 0] * cov_re[1, 1]))

    singular = (
        tau2_int == 0
        or (random_slope and tau2_slope == 0)
        or (not np.isnan(corr) and abs(corr) > 1 - CORRELATION_TOL)
    )
    if singular:
        logger.warning(
            "Singular fit: intercept variance=%.3g, slope variance=%.3g, "
            "correlation=%s",
            tau2_int,
            tau2_slope,
            corr,
        )

    fe_intercept, fe_slope = (float(v) for v in np.asarray(result.fe_params))

    blups = []
    for county in design.groups:
        re = np.asarray(result.random_effects[county], dtype=np.float64)
        blups.append(
            {
                "county": county,
                "intercept": fe_intercept + (re[0] if tau2_int > 0 else 0.0),
                "slope": fe_slope + (re[1] if tau2_slope > 0 else 0.0),
            }
        )

    return MixedModelFit(
        intercept=fe_intercept,
        slope=fe_slope,
        residual_variance=sigma2,
        intercept_variance=tau2_int,
        slope_variance=tau2_slope,
        re_correlation=corr,
        group_coefficients=pd.DataFrame.from_records(blups, index="county"),
        converged=bool(getattr(result, "converged", True)),
        singular=bool(singular),
        reml=reml,
        random_slope=random_slope,
        log_likelihood=float(result.llf),
        scaler=design.scaler,
        fit_warnings=fit_warnings,
        result=result,
    )


def build_hierarchical_model(
    df: pd.DataFrame,
    columns: ColumnConfig = DEFAULT_COLUMNS,
    centered: bool = False,
    name: str = "",
) -> pm.Model:
    """
    Bayesian varying-intercept, varying-slope regression.

    County intercepts and slopes are drawn from population distributions
    whose means and spreads are estimated from the data. The
    non-centered parameterization (default) avoids the funnel that
    appears when a group-level spread is close to zero.

    Besides the parameters, the model records per-county shrinkage
    weights ``intercept_weight`` and ``slope_weight`` computed from each
    posterior draw of sigma and the group-level spreads.
    """
    design = prepare_design(df, columns)
    y_mean, y_std = float(design.y.mean()), float(design.y.std()) or 1.0

    coords = {
        "county": design.groups,
        "obs_id": np.arange(design.n_obs),
    }

    with pm.Model(name=name, coords=coords) as model:
        x_data = pm.Data("x", design.x, dims="obs_id")
        county_idx = pm.Data("county_idx", design.group_idx, dims="obs_id")
        n_obs = pm.Data("n_obs_per_county", design.counts, dims="county")

        intercept_mu = pm.Normal("intercept_mu", mu=y_mean, sigma=2 * y_std)
        intercept_sigma = pm.HalfNormal("intercept_sigma", sigma=y_std)

        slope_mu = pm.Normal("slope_mu", mu=0, sigma=y_std)
        slope_sigma = pm.HalfNormal("slope_sigma", sigma=0.5 * y_std)

        if centered:
            intercept = pm.Normal(
                "intercept", mu=intercept_mu, sigma=intercept_sigma, dims="county"
            )
            slope = pm.Normal("slope", mu=slope_mu, sigma=slope_sigma, dims="county")
        else:
            intercept_offset = pm.Normal(
                "intercept_offset", mu=0, sigma=1, dims="county"
            )
            intercept = pm.Deterministic(
                "intercept",
                intercept_mu + intercept_sigma * intercept_offset,
                dims="county",
            )

            slope_offset = pm.Normal("slope_offset", mu=0, sigma=1, dims="county")
            slope = pm.Deterministic(
                "slope",
                slope_mu + slope_sigma * slope_offset,
                dims="county",
            )

        sigma = pm.HalfNormal("sigma", sigma=y_std)

        mu = intercept[county_idx] + slope[county_idx] * x_data

        pm.Normal(
            "bounce_time_obs",
            mu=mu,
            sigma=sigma,
            observed=design.y,
            dims="obs_id",
        )

        # n tau^2 / (n tau^2 + sigma^2) == (n / sigma^2) / (n / sigma^2 + 1 / tau^2)
        pm.Deterministic(
            "intercept_weight",
            n_obs * intercept_sigma**2 / (n_obs * intercept_sigma**2 + sigma**2),
            dims="county",
        )
        pm.Deterministic(
            "slope_weight",
            n_obs * slope_sigma**2 / (n_obs * slope_sigma**2 + sigma**2),
            dims="county",
        )

    return model


def sample_model(
    model: pm.Model,
    config: Optional[SamplerConfig] = None,
    **kwargs,
) -> az.InferenceData:
    """Run NUTS and keep pointwise log-likelihood for LOO/WAIC."""
    config = config or SamplerConfig()
    kwargs.setdefault("idata_kwargs", {"log_likelihood": True})
    with model:
        trace = pm.sample(
            draws=config.draws,
            tune=config.tune,
            chains=config.chains,
            target_accept=config.target_accept,
            random_seed=config.random_seed,
            return_inferencedata=True,
            **kwargs,
        )
    return trace


def sample_prior_predictive(
    model: pm.Model,
    draws: int = 500,
    random_seed: int = 42,
) -> az.InferenceData:
    """Simulate bounce times from the priors alone (prior predictive check)."""
    with model:
        prior = pm.sample_prior_predictive(draws=draws, random_seed=random_seed)
    return prior


def sample_posterior_predictive(
    model: pm.Model,
    trace: az.InferenceData,
    random_seed: int = 42,
) -> az.InferenceData:
    with model:
        ppc = pm.sample_posterior_predictive(
            trace,
            random_seed=random_seed,
        )
    trace.extend(ppc)
    return trace


def build_global_model(pooled: PooledFit, mixed: MixedModelFit) -> GlobalModel:
    """
    Assemble the shrinkage inputs from maximum-likelihood fits.

    Population coefficients come from the complete-pooling regression;
    variance components from the mixed-effects fit.
    """
    return GlobalModel(
        intercept=pooled.intercept,
        slope=pooled.slope,
        residual_variance=mixed.residual_variance,
        intercept_variance=mixed.intercept_variance,
        slope_variance=mixed.slope_variance,
    )


def global_model_from_trace(
    trace: az.InferenceData,
    pooled: Optional[PooledFit] = None,
) -> GlobalModel:
    """
    Assemble the shrinkage inputs from a hierarchical posterior.

    Variances are posterior means of sigma^2 and the squared group-level
    spreads. Population coefficients come from ``pooled`` when given,
    otherwise from the posterior means of ``intercept_mu``/``slope_mu``.
    """
    posterior = trace.posterior
    required = ["sigma", "intercept_sigma", "intercept_mu", "slope_mu"]
    missing = [v for v in required if v not in posterior]
    if missing:
        raise ValueError(f"Trace is not from a hierarchical model; missing {missing}")

    def _mean(var: str) -> float:
        return float(posterior[var].mean(dim=["chain", "draw"]).values)

    def _mean_sq(var: str) -> float:
        return float((posterior[var] ** 2).mean(dim=["chain", "draw"]).values)

    slope_variance = _mean_sq("slope_sigma") if "slope_sigma" in posterior else 0.0

    if pooled is not None:
        intercept, slope = pooled.intercept, pooled.slope
    else:
        intercept, slope = _mean("intercept_mu"), _mean("slope_mu")

    return GlobalModel(
        intercept=intercept,
        slope=slope,
        residual_variance=_mean_sq("sigma"),
        intercept_variance=_mean_sq("intercept_sigma"),
        slope_variance=slope_variance,
    )
