"""
Complete pooling: one regression for every county.

Philosophy: "All counties are identical"

This model assumes that one extra year of age changes bounce time by
the same amount in London as in Cumbria, and that both counties share
the same baseline. It is almost certainly wrong, but it is the
population estimate every partial-pooling estimate is pulled toward.

When NOT to use:
- When county baselines differ (they do)
- When county mean age is correlated with the baseline: the pooled
  slope then mixes between- and within-county effects (Simpson's paradox)
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
import pandas as pd
import pymc as pm
import statsmodels.api as sm

from bouncepool.config import DEFAULT_COLUMNS, ColumnConfig
from bouncepool.models.design import prepare_design
from bouncepool.transforms.scaling import Standardizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PooledFit:
    """
    Ordinary least squares fit ignoring county.

    Coefficients are on the standardized-age scale.
    """

    intercept: float
    slope: float
    intercept_se: float
    slope_se: float
    residual_variance: float
    r_squared: float
    n_obs: int
    scaler: Standardizer
    result: Any = None


def fit_pooled_ols(
    df: pd.DataFrame,
    columns: ColumnConfig = DEFAULT_COLUMNS,
    scaler: Optional[Standardizer] = None,
) -> PooledFit:
    """
    Fit ``bounce_time ~ age_std`` by ordinary least squares.

    Parameters
    ----------
    df : pd.DataFrame
        Observation table.
    columns : ColumnConfig
        Column names.
    scaler : Standardizer, optional
        Predictor scaling. Fitted on ``df`` if None.

    Returns
    -------
    PooledFit
        Population intercept and slope, and the residual variance.
    """
    design = prepare_design(df, columns, scaler)

    X = sm.add_constant(design.x, has_constant="add")
    result = sm.OLS(design.y, X).fit()

    intercept, slope = (float(v) for v in result.params)
    intercept_se, slope_se = (float(v) for v in result.bse)

    logger.debug(
        "Pooled OLS on %d rows: intercept=%.3f slope=%.3f",
        design.n_obs,
        intercept,
        slope,
    )

    return PooledFit(
        intercept=intercept,
        slope=slope,
        intercept_se=intercept_se,
        slope_se=slope_se,
        residual_variance=float(result.scale),
        r_squared=float(result.rsquared),
        n_obs=design.n_obs,
        scaler=design.scaler,
        result=result,
    )


def build_pooled_model(
    df: pd.DataFrame,
    columns: ColumnConfig = DEFAULT_COLUMNS,
    name: str = "",
) -> pm.Model:
    """
    Bayesian complete-pooling regression.

    Priors are weakly informative and centred on the data scale: the
    intercept around the mean bounce time, the slope around zero, both
    with a spread of a few response standard deviations.

    Parameters
    ----------
    df : pd.DataFrame
        Observation table.
    columns : ColumnConfig
        Column names.
    name : str
        Model name for PyMC. A non-empty name prefixes every variable.

    Returns
    -------
    pm.Model
        PyMC model ready for sampling.

    Examples
    --------
    >>> model = build_pooled_model(df)
    >>> with model:
    ...     trace = pm.sample(1000, chains=4)
    """
    design = prepare_design(df, columns)
    y_mean, y_std = float(design.y.mean()), float(design.y.std()) or 1.0

    coords = {"obs_id": np.arange(design.n_obs)}

    with pm.Model(name=name, coords=coords) as model:
        x_data = pm.Data("x", design.x, dims="obs_id")

        intercept = pm.Normal("intercept", mu=y_mean, sigma=2 * y_std)
        slope = pm.Normal("slope", mu=0, sigma=y_std)
        sigma = pm.HalfNormal("sigma", sigma=y_std)

        pm.Normal(
            "bounce_time_obs",
            mu=intercept + slope * x_data,
            sigma=sigma,
            observed=design.y,
            dims="obs_id",
        )

    return model
