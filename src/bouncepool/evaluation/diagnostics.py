import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional

import arviz as az
import numpy as np
import pandas as pd
import xarray as xr
from numpy.typing import NDArray

from bouncepool.config import DEFAULT_COLUMNS, ColumnConfig

logger = logging.getLogger(__name__)

OBSERVED_VAR = "bounce_time_obs"


@dataclass
class DiagnosticsReport:
    rhat_summary: pd.DataFrame
    ess_summary: pd.DataFrame
    divergences: int
    max_treedepth_warnings: int
    problematic_params: list[str]
    overall_status: Literal["good", "warning", "bad"]


def run_mcmc_diagnostics(
    trace: az.InferenceData,
    rhat_threshold: float = 1.01,
    ess_threshold: int = 400,
    var_names: Optional[list[str]] = None,
) -> DiagnosticsReport:
    """
    Convergence checks for a fitted trace.

    Status is "bad" on any divergence or R-hat above threshold, "warning"
    on low ESS or frequent max-treedepth hits, "good" otherwise.
    Deterministic shrinkage weights are excluded by default since they
    inherit their behavior from sigma and the group-level spreads.
    """
    if var_names is None:
        var_names = [
            v
            for v in trace.posterior.data_vars
            if not str(v).endswith("_weight")
        ]

    rhat = az.rhat(trace, var_names=var_names)
    rhat_df = _xarray_to_flat_df(rhat, "rhat")

    ess_bulk = az.ess(trace, var_names=var_names, method="bulk")
    ess_tail = az.ess(trace, var_names=var_names, method="tail")
    ess_df = _xarray_to_flat_df(ess_bulk, "ess_bulk").merge(
        _xarray_to_flat_df(ess_tail, "ess_tail"), on="parameter"
    )

    divergences = _sum_sample_stat(trace, "diverging")
    max_treedepth_warnings = _sum_sample_stat(trace, "reached_max_treedepth")

    problematic = []

    high_rhat = rhat_df.loc[rhat_df["rhat"] > rhat_threshold]
    for _, row in high_rhat.iterrows():
        problematic.append(f"{row['parameter']} (R-hat={row['rhat']:.3f})")

    low_ess = ess_df.loc[
        (ess_df["ess_bulk"] < ess_threshold) | (ess_df["ess_tail"] < ess_threshold)
    ]
    flagged = set(high_rhat["parameter"])
    for _, row in low_ess.iterrows():
        if row["parameter"] not in flagged:
            problematic.append(
                f"{row['parameter']} "
                f"(ESS_bulk={row['ess_bulk']:.0f}, ESS_tail={row['ess_tail']:.0f})"
            )

    if divergences > 0 or len(high_rhat) > 0:
        status = "bad"
    elif max_treedepth_warnings > 10 or len(low_ess) > 0:
        status = "warning"
    else:
        status = "good"

    if status != "good":
        logger.warning(
            "MCMC diagnostics %s: %d divergences, %d flagged parameters",
            status,
            divergences,
            len(problematic),
        )

    return DiagnosticsReport(
        rhat_summary=rhat_df,
        ess_summary=ess_df,
        divergences=divergences,
        max_treedepth_warnings=max_treedepth_warnings,
        problematic_params=problematic,
        overall_status=status,
    )


def _sum_sample_stat(trace: az.InferenceData, name: str) -> int:
    if "sample_stats" not in trace.groups():
        return 0
    stat = trace.sample_stats.get(name, None)
    if stat is None:
        return 0
    return int(stat.sum().values)


def _xarray_to_flat_df(ds: xr.Dataset, value_name: str) -> pd.DataFrame:
    records = []

    for var in ds.data_vars:
        data = ds[var]

        if data.dims:
            for idx in np.ndindex(*data.shape):
                labels = [
                    str(data.coords[dim].values[i]) for dim, i in zip(data.dims, idx)
                ]
                records.append(
                    {
                        "parameter": f"{var}[{'_'.join(labels)}]",
                        value_name: float(data.values[idx]),
                    }
                )
        else:
            records.append({"parameter": str(var), value_name: float(data.values)})

    return pd.DataFrame(records, columns=["parameter", value_name])


def check_divergences_by_parameter(
    trace: az.InferenceData,
    var_names: Optional[list[str]] = None,
) -> pd.DataFrame:
    """
    Compare each parameter's mean in divergent vs. non-divergent draws.

    Large differences point at the parameter driving the divergences,
    typically a group-level spread near zero in a centered model.
    """
    empty = pd.DataFrame(columns=["parameter", "mean_divergent", "mean_ok", "abs_diff"])

    if "sample_stats" not in trace.groups():
        return empty

    diverging = trace.sample_stats.get("diverging", None)
    if diverging is None or int(diverging.sum()) == 0:
        return empty

    posterior = trace.posterior
    diverging_flat = diverging.values.flatten().astype(bool)

    if var_names is None:
        var_names = list(posterior.data_vars)

    records = []
    for var in var_names:
        if var not in posterior:
            continue

        data = posterior[var]
        data_flat = data.values.reshape((-1,) + data.shape[2:])

        mean_div = float(data_flat[diverging_flat].mean())
        mean_ok = float(data_flat[~diverging_flat].mean())

        records.append(
            {
                "parameter": var if data_flat.ndim == 1 else f"{var} (all)",
                "mean_divergent": mean_div,
                "mean_ok": mean_ok,
                "abs_diff": abs(mean_div - mean_ok),
            }
        )

    return pd.DataFrame(records).sort_values("abs_diff", ascending=False)


def _ppc_summary(
    trace: az.InferenceData,
    var_name: str,
) -> tuple[NDArray[np.floating], NDArray[np.floating], NDArray[np.floating]]:
    if "posterior_predictive" not in trace.groups():
        raise ValueError("Trace must contain posterior_predictive group.")

    ppc = trace.posterior_predictive[var_name]
    ppc_mean = ppc.mean(dim=["chain", "draw"]).values

    ppc_hdi = az.hdi(ppc, hdi_prob=0.94)[var_name]
    return (
        ppc_mean,
        ppc_hdi.sel(hdi="lower").values,
        ppc_hdi.sel(hdi="higher").values,
    )


def posterior_predictive_check(
    trace: az.InferenceData,
    y_obs: NDArray[np.floating],
    var_name: str = OBSERVED_VAR,
) -> dict[str, float]:
    """
    Point and interval accuracy of the posterior predictive distribution.

    Returns RMSE, MAE, normalized RMSE, 94% HDI coverage and its distance
    from nominal, mean interval width and mean bias.
    """
    ppc_mean, hdi_low, hdi_high = _ppc_summary(trace, var_name)
    y_obs = np.asarray(y_obs, dtype=np.float64)

    rmse = np.sqrt(np.mean((y_obs - ppc_mean) ** 2))
    coverage = np.mean((y_obs >= hdi_low) & (y_obs <= hdi_high))
    y_bar = np.mean(y_obs)

    return {
        "rmse": float(rmse),
        "mae": float(np.mean(np.abs(y_obs - ppc_mean))),
        "nrmse": float(rmse / y_bar) if y_bar > 0 else float("nan"),
        "coverage_94": float(coverage),
        "calibration_error": float(abs(coverage - 0.94)),
        "interval_sharpness": float(np.mean(hdi_high - hdi_low)),
        "mean_bias": float(np.mean(ppc_mean - y_obs)),
    }


def posterior_predictive_check_by_county(
    trace: az.InferenceData,
    df: pd.DataFrame,
    columns: ColumnConfig = DEFAULT_COLUMNS,
    var_name: str = OBSERVED_VAR,
) -> pd.DataFrame:
    """Per-county version of :func:`posterior_predictive_check`."""
    ppc_mean, hdi_low, hdi_high = _ppc_summary(trace, var_name)

    y_obs = df[columns.response_col].to_numpy(dtype=np.float64)
    counties = df[columns.group_col].astype(str).to_numpy()

    records = []
    for county in pd.unique(counties):
        mask = counties == county
        resid = y_obs[mask] - ppc_mean[mask]
        coverage = np.mean(
            (y_obs[mask] >= hdi_low[mask]) & (y_obs[mask] <= hdi_high[mask])
        )

        records.append(
            {
                "county": county,
                "n_obs": int(mask.sum()),
                "rmse": float(np.sqrt(np.mean(resid**2))),
                "mae": float(np.mean(np.abs(resid))),
                "coverage_94": float(coverage),
                "calibration_error": float(abs(coverage - 0.94)),
                "mean_bias": float(-np.mean(resid)),
            }
        )

    return pd.DataFrame(records).sort_values("county").reset_index(drop=True)


def compare_models_loo(
    traces: dict[str, az.InferenceData],
    scale: str = "log",
) -> pd.DataFrame:
    return az.compare(traces, ic="loo", scale=scale)


def compute_waic(trace: az.InferenceData) -> dict[str, float]:
    waic_result = az.waic(trace)
    return {
        "waic": float(waic_result.elpd_waic),
        "waic_se": float(waic_result.se),
        "p_waic": float(waic_result.p_waic),
    }


def energy_diagnostic(
    trace: az.InferenceData,
    threshold: float = 0.3,
) -> dict[str, Any]:
    """
    Energy Bayesian fraction of missing information (E-BFMI) per chain.

    Low values mean the sampler explores the marginal energy distribution
    poorly, which in hierarchical models usually points at a funnel in a
    group-level spread. The centered parameterization is the usual cause.

    Returns
    -------
    dict
        ``energy_fmi`` (lowest chain value, None without energy stats),
        ``per_chain`` values and ``energy_warning`` ("ok", "low" or
        "very low"; below ``threshold`` is low, below 2/3 of it very low).
    """
    energy = (
        trace.sample_stats.get("energy", None)
        if "sample_stats" in trace.groups()
        else None
    )
    if energy is None:
        return {
            "energy_fmi": None,
            "per_chain": [],
            "energy_warning": "no energy stats",
        }

    per_chain = [float(v) for v in np.atleast_1d(az.bfmi(trace))]
    worst = min(per_chain)

    if worst < 2 * threshold / 3:
        status = "very low"
    elif worst < threshold:
        status = "low"
    else:
        status = "ok"

    if status != "ok":
        logger.warning("E-BFMI %s (min over chains %.2f)", status, worst)

    return {"energy_fmi": worst, "per_chain": per_chain, "energy_warning": status}


def format_diagnostics_report(report: DiagnosticsReport, max_listed: int = 10) -> str:
    verdict = {
        "good": "✅ GOOD: county estimates can be used",
        "warning": "⚠️  WARNING: check the flagged parameters before reporting",
        "bad": "❌ BAD: do not report these county estimates",
    }

    worst_rhat = report.rhat_summary.nlargest(1, "rhat")
    worst_ess = report.ess_summary.nsmallest(1, "ess_bulk")

    lines = [
        "=" * 60,
        "MCMC DIAGNOSTICS REPORT",
        "=" * 60,
        verdict[report.overall_status],
        "",
        f"{'Divergent transitions':<26}{report.divergences:>10}",
        f"{'Max-treedepth hits':<26}{report.max_treedepth_warnings:>10}",
    ]

    if not worst_rhat.empty:
        row = worst_rhat.iloc[0]
        lines.append(f"{'Highest R-hat':<26}{row['rhat']:>10.4f}  {row['parameter']}")
    if not worst_ess.empty:
        row = worst_ess.iloc[0]
        lines.append(
            f"{'Lowest bulk ESS':<26}{row['ess_bulk']:>10.0f}  {row['parameter']}"
        )
        lines.append(
            f"{'Lowest tail ESS':<26}{report.ess_summary['ess_tail'].min():>10.0f}"
        )

    if report.problematic_params:
        lines.extend(["", f"Flagged parameters ({len(report.problematic_params)}):"])
        lines.extend(f"  - {p}" for p in report.problematic_params[:max_listed])
        hidden = len(report.problematic_params) - max_listed
        if hidden > 0:
            lines.append(f"  ... and {hidden} more")

    lines.append("=" * 60)
    return "\n".join(lines)
