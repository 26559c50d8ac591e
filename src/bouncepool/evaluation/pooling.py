import math
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

import arviz as az
import numpy as np
import pandas as pd

from bouncepool.data.synthetic import TrueParameters
from bouncepool.models.hierarchical import MixedModelFit
from bouncepool.models.pooled import PooledFit
from bouncepool.shrinkage.estimator import ShrunkEstimate
from bouncepool.transforms.scaling import Standardizer

COEFFICIENTS = ("intercept", "slope")


@dataclass(frozen=True)
class SimpsonsParadoxResult:
    pooled_slope: float
    within_slope: float
    n_counties: int

    @property
    def reversed(self) -> bool:
        """Pooled and within-county age effects point in opposite directions."""
        return bool(np.sign(self.pooled_slope) * np.sign(self.within_slope) < 0)


def posterior_group_estimates(
    trace: az.InferenceData,
    counties: Optional[Sequence[str]] = None,
    hdi_prob: float = 0.94,
) -> pd.DataFrame:
    """
    Posterior mean, std and HDI of every county's intercept and slope.

    A complete-pooling trace has no county dimension; its single
    intercept and slope are repeated for each of ``counties``.

    Returns
    -------
    pd.DataFrame
        Indexed by county with columns ``<coef>_mean``, ``<coef>_std``,
        ``<coef>_hdi_low``, ``<coef>_hdi_high`` for intercept and slope.
    """
    posterior = trace.posterior
    missing = [c for c in COEFFICIENTS if c not in posterior]
    if missing:
        raise ValueError(f"Trace must contain {list(COEFFICIENTS)}; missing {missing}")

    columns: dict[str, np.ndarray] = {}
    index = None

    for coef in COEFFICIENTS:
        samples = posterior[coef]
        hdi = az.hdi(samples, hdi_prob=hdi_prob)[coef]

        stats = {
            "mean": samples.mean(dim=["chain", "draw"]).values,
            "std": samples.std(dim=["chain", "draw"]).values,
            "hdi_low": hdi.sel(hdi="lower").values,
            "hdi_high": hdi.sel(hdi="higher").values,
        }

        if "county" in samples.dims:
            index = [str(c) for c in samples.coords["county"].values]
        else:
            if counties is None:
                raise ValueError("Pooled trace needs `counties` to build a table")
            index = list(counties)
            stats = {k: np.full(len(index), float(v)) for k, v in stats.items()}

        for stat, values in stats.items():
            columns[f"{coef}_{stat}"] = values

    return pd.DataFrame(columns, index=pd.Index(index, name="county"))


def compute_shrinkage(
    trace: az.InferenceData,
    unpooled_trace: Optional[az.InferenceData] = None,
) -> pd.DataFrame:
    """
    How much each county's posterior borrowed from the population.

    With an unpooled trace: the reduction in posterior variance relative
    to the county-only fit. Without one: posterior variance compared to
    between-county plus within-county variance. 0 means no borrowing,
    1 means the county is fully pooled.
    """
    posterior = trace.posterior

    for coef in COEFFICIENTS:
        if coef not in posterior:
            raise ValueError(f"Trace must contain '{coef}' for shrinkage calculation")
        if "county" not in posterior[coef].dims:
            raise ValueError("Trace must be from a model with a county dimension")

    counties = [str(c) for c in posterior["intercept"].coords["county"].values]
    result = {}

    for coef in COEFFICIENTS:
        samples = posterior[coef]
        posterior_var = samples.var(dim=["chain", "draw"])

        if unpooled_trace is not None and coef in unpooled_trace.posterior:
            unpooled_var = unpooled_trace.posterior[coef].var(dim=["chain", "draw"])
            shrinkage = 1 - posterior_var.values / (unpooled_var.values + 1e-8)
        else:
            between_var = samples.mean(dim=["chain", "draw"]).var(dim="county")
            total_var = between_var + posterior_var.mean(dim="county")
            shrinkage = 1 - posterior_var.values / (float(total_var) + 1e-8)

        result[coef] = np.clip(shrinkage, 0, 1)

    return pd.DataFrame(result, index=pd.Index(counties, name="county"))


def compare_pooling_strategies(
    pooled: PooledFit,
    unpooled: pd.DataFrame,
    partial: Mapping[str, ShrunkEstimate],
    mixed: Optional[MixedModelFit] = None,
    bayes: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """
    Side-by-side county coefficients under every pooling strategy.

    Parameters
    ----------
    pooled : PooledFit
        Complete-pooling fit.
    unpooled : pd.DataFrame
        Output of ``fit_unpooled_ols``.
    partial : mapping of county to ShrunkEstimate
        Closed-form shrinkage estimates.
    mixed : MixedModelFit, optional
        Adds the mixed-model BLUPs.
    bayes : pd.DataFrame, optional
        Output of :func:`posterior_group_estimates` for a hierarchical trace.

    Returns
    -------
    pd.DataFrame
        Indexed by county; ``n_obs``, then for each coefficient the
        ``pooled_``, ``unpooled_``, ``shrunk_`` (and ``mixed_``/``bayes_``)
        values, then the shrinkage weights.
    """
    counties = [str(c) for c in unpooled.index]
    table = pd.DataFrame(index=pd.Index(counties, name="county"))
    table["n_obs"] = unpooled["n_obs"].astype(int).to_numpy()

    for coef in COEFFICIENTS:
        table[f"pooled_{coef}"] = getattr(pooled, coef)
        table[f"unpooled_{coef}"] = unpooled[coef].to_numpy(dtype=np.float64)
        table[f"shrunk_{coef}"] = [
            getattr(partial[c], coef) if c in partial else math.nan for c in counties
        ]
        if mixed is not None:
            table[f"mixed_{coef}"] = mixed.group_coefficients[coef].reindex(counties)
        if bayes is not None:
            table[f"bayes_{coef}"] = bayes[f"{coef}_mean"].reindex(counties)

    for coef in COEFFICIENTS:
        table[f"{coef}_weight"] = [
            getattr(partial[c], f"{coef}_weight") if c in partial else math.nan
            for c in counties
        ]

    return table


def detect_simpsons_paradox(
    pooled: PooledFit,
    unpooled: pd.DataFrame,
) -> SimpsonsParadoxResult:
    """
    Compare the pooled age slope with the typical within-county slope.

    The within-county slope is the observation-weighted mean of the
    county slopes that are identified.
    """
    usable = unpooled.dropna(subset=["slope"])
    if usable.empty:
        within = math.nan
    else:
        within = float(np.average(usable["slope"], weights=usable["n_obs"]))

    return SimpsonsParadoxResult(
        pooled_slope=pooled.slope,
        within_slope=within,
        n_counties=len(usable),
    )


def compare_to_ground_truth(
    estimates: pd.DataFrame,
    true_params: TrueParameters,
    scaler: Standardizer,
    intercept_col: str = "intercept",
    slope_col: str = "slope",
) -> pd.DataFrame:
    """
    Error of county estimates against the synthetic ground truth.

    ``estimates`` are on the standardized-age scale and are mapped back to
    raw years, with the intercept evaluated at the truth's ``age_center``.
    """
    truth = pd.DataFrame(
        {"true_intercept": true_params.intercepts, "true_slope": true_params.slopes},
        index=pd.Index(true_params.county_names, name="county"),
    )
    est = estimates.reindex(truth.index)

    raw_slope = est[slope_col].to_numpy(dtype=np.float64) / scaler.std
    raw_intercept = est[intercept_col].to_numpy(dtype=np.float64) + raw_slope * (
        true_params.age_center - scaler.mean
    )

    out = truth.copy()
    out["est_intercept"] = raw_intercept
    out["est_slope"] = raw_slope
    out["intercept_error"] = out["est_intercept"] - out["true_intercept"]
    out["slope_error"] = out["est_slope"] - out["true_slope"]
    return out


def format_pooling_report(
    table: pd.DataFrame,
    simpson: Optional[SimpsonsParadoxResult] = None,
    decimals: int = 2,
) -> str:
    strategies = [
        s for s in ("pooled", "unpooled", "shrunk", "mixed", "bayes")
        if f"{s}_intercept" in table
    ]

    lines = [
        "=" * 70,
        "POOLING COMPARISON: BOUNCE TIME ~ AGE BY COUNTY",
        "=" * 70,
        "",
    ]

    for coef in COEFFICIENTS:
        cols = ["n_obs"] + [f"{s}_{coef}" for s in strategies] + [f"{coef}_weight"]
        lines.extend(
            [
                f"{coef.upper()} (standardized age)",
                "-" * 50,
                table[cols].round(decimals).to_string(),
                "",
            ]
        )

    if simpson is not None:
        lines.extend(
            [
                "SIMPSON'S PARADOX CHECK",
                "-" * 50,
                f"Pooled age slope:        {simpson.pooled_slope:+.3f}",
                f"Within-county age slope: {simpson.within_slope:+.3f}"
                f"  ({simpson.n_counties} counties)",
                "→ Direction REVERSES when county is ignored"
                if simpson.reversed
                else "→ Pooled and within-county effects agree in sign",
                "",
            ]
        )

    lines.append("=" * 70)
    return "\n".join(lines)
