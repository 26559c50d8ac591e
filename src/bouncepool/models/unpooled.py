import logging
import math
import warnings
from typing import Optional

import numpy as np
import pandas as pd
import pymc as pm
import statsmodels.api as sm

from bouncepool.config import DEFAULT_COLUMNS, ColumnConfig
from bouncepool.models.design import prepare_design
from bouncepool.shrinkage.estimator import GroupSummary
from bouncepool.transforms.scaling import Standardizer

logger = logging.getLogger(__name__)

UNPOOLED_COLUMNS = [
    "n_obs",
    "mean_response",
    "intercept",
    "slope",
    "intercept_se",
    "slope_se",
]


def fit_unpooled_ols(
    df: pd.DataFrame,
    columns: ColumnConfig = DEFAULT_COLUMNS,
    scaler: Optional[Standardizer] = None,
) -> pd.DataFrame:
    """
    Independent least-squares fit per county.

    Every county is fitted on the same (population) age standardization,
    so intercepts are comparable across counties and with the pooled fit.
    A county with fewer than two distinct ages cannot identify a slope:
    it gets an intercept-only fit (its mean bounce time) and a NaN slope.

    Returns
    -------
    pd.DataFrame
        Indexed by county, columns ``n_obs``, ``mean_response``,
        ``intercept``, ``slope``, ``intercept_se``, ``slope_se``.
    """
    design = prepare_design(df, columns, scaler)

    records = []
    for g_idx, county in enumerate(design.groups):
        mask = design.group_idx == g_idx
        x, y = design.x[mask], design.y[mask]
        n = int(mask.sum())

        row = {
            "county": county,
            "n_obs": n,
            "mean_response": float(y.mean()),
            "intercept": float(y.mean()),
            "slope": math.nan,
            "intercept_se": float(y.std(ddof=1) / math.sqrt(n)) if n > 1 else math.nan,
            "slope_se": math.nan,
        }

        if len(np.unique(x)) >= 2:
            # two points fit exactly; statsmodels warns on zero residual df
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", RuntimeWarning)
                result = sm.OLS(y, sm.add_constant(x, has_constant="add")).fit()
                bse = np.asarray(result.bse, dtype=np.float64)
            row["intercept"], row["slope"] = (float(v) for v in result.params)
            if n > 2:
                row["intercept_se"], row["slope_se"] = float(bse[0]), float(bse[1])
            else:
                row["intercept_se"], row["slope_se"] = math.nan, math.nan
        else:
            logger.info(
                "County %r has %d observation(s) and one distinct age; "
                "slope is not identified",
                county,
                n,
            )

        records.append(row)

    return pd.DataFrame.from_records(records, index="county")[UNPOOLED_COLUMNS]


def group_summaries(unpooled: pd.DataFrame) -> list[GroupSummary]:
    """Convert the :func:`fit_unpooled_ols` table into ``GroupSummary`` values."""
    return [
        GroupSummary(
            group_id=str(county),
            sample_count=int(row["n_obs"]),
            mean_response=float(row["mean_response"]),
            intercept=float(row["intercept"]),
            slope=float(row["slope"]),
        )
        for county, row in unpooled.iterrows()
    ]


def build_unpooled_model(
    df: pd.DataFrame,
    columns: ColumnConfig = DEFAULT_COLUMNS,
    name: str = "",
) -> pm.Model:
    design = prepare_design(df, columns)
    y_mean, y_std = float(design.y.mean()), float(design.y.std()) or 1.0

    coords = {
        "county": design.groups,
        "obs_id": np.arange(design.n_obs),
    }

    with pm.Model(name=name, coords=coords) as model:
        x_data = pm.Data("x", design.x, dims="obs_id")
        county_idx = pm.Data("county_idx", design.group_idx, dims="obs_id")

        intercept = pm.Normal("intercept", mu=y_mean, sigma=2 * y_std, dims="county")
        slope = pm.Normal("slope", mu=0, sigma=y_std, dims="county")
        sigma = pm.HalfNormal("sigma", sigma=y_std)

        mu = intercept[county_idx] + slope[county_idx] * x_data

        pm.Normal(
            "bounce_time_obs",
            mu=mu,
            sigma=sigma,
            observed=design.y,
            dims="obs_id",
        )

        pm.Data("n_obs_per_county", design.counts, dims="county")

    return model
