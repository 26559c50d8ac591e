import logging
import math
from dataclasses import asdict, dataclass
from numbers import Integral
from typing import Iterable, Mapping, Optional, Union

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from bouncepool.errors import InvalidInputError, UndefinedGroupError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupSummary:
    """
    Sample statistics of one county from an independent (no-pooling) fit.

    Attributes
    ----------
    group_id : str
        County name.
    sample_count : int
        Number of observations in the county.
    mean_response : float
        Mean bounce time in the county.
    intercept : float
        Intercept of the county-only regression on standardized age.
    slope : float
        Slope of the county-only regression. NaN when the county's own
        data cannot identify it (a single observation, or one distinct age).
    """

    group_id: str
    sample_count: int
    mean_response: float
    intercept: float
    slope: float = math.nan


@dataclass(frozen=True)
class GlobalModel:
    """
    Population-level quantities shared by every county.

    ``intercept`` and ``slope`` come from the complete-pooling regression;
    the three variances from a mixed-effects fit or posterior summaries.
    """

    intercept: float
    slope: float
    residual_variance: float
    intercept_variance: float
    slope_variance: float

    @property
    def singular(self) -> bool:
        """True if any group-level variance collapsed to zero."""
        return self.intercept_variance == 0 or self.slope_variance == 0


@dataclass(frozen=True)
class ShrunkEstimate:
    group_id: str
    sample_count: int
    intercept: float
    slope: float
    intercept_weight: float
    slope_weight: float


def _check_variances(residual_variance: float, group_variance: float) -> None:
    if not math.isfinite(residual_variance) or residual_variance <= 0:
        raise InvalidInputError(
            f"residual_variance must be finite and > 0, got {residual_variance}"
        )
    if math.isnan(group_variance) or group_variance < 0:
        raise InvalidInputError(f"group_variance must be >= 0, got {group_variance}")


def _check_count(n) -> None:
    if isinstance(n, bool) or not isinstance(n, Integral) or n <= 0:
        raise InvalidInputError(f"sample_count must be a positive integer, got {n!r}")


def group_weight(n: int, residual_variance: float, group_variance: float) -> float:
    """
    Weight given to a group's own estimate under partial pooling.

        w = (n / sigma2) / (n / sigma2 + 1 / tau2)

    A zero group-level variance means the data cannot tell groups apart
    (a singular fit): 1 / tau2 is treated as +inf and the weight is 0.
    An infinite group-level variance gives weight 1 (no pooling).

    Parameters
    ----------
    n : int
        Observations in the group (> 0).
    residual_variance : float
        Within-group noise variance sigma2 (> 0).
    group_variance : float
        Between-group variance tau2 (>= 0, may be ``math.inf``).

    Returns
    -------
    float
        Weight in [0, 1].

    Raises
    ------
    InvalidInputError
        If sigma2 <= 0, tau2 < 0 or n <= 0.

    Examples
    --------
    >>> round(group_weight(10, 100.0, 25.0), 4)
    0.7143
    >>> group_weight(10, 100.0, 0.0)
    0.0
    """
    _check_variances(residual_variance, group_variance)
    _check_count(n)

    if group_variance == 0:
        return 0.0

    data_precision = n / residual_variance
    prior_precision = 1.0 / group_variance
    return data_precision / (data_precision + prior_precision)


def shrink(
    group_estimate: float,
    population_estimate: float,
    n: int,
    residual_variance: float,
    group_variance: float,
) -> float:
    """
    Precision-weighted average of a group estimate and the population estimate.

    A NaN group estimate (e.g. a slope the county cannot identify on its
    own) has nothing to contribute and returns the population estimate.
    """
    w = group_weight(n, residual_variance, group_variance)
    if math.isnan(group_estimate) or group_estimate == population_estimate:
        return float(population_estimate)
    if w == 0:
        return float(population_estimate)
    if w == 1:
        return float(group_estimate)
    return w * group_estimate + (1.0 - w) * population_estimate


def shrinkage_weights(
    counts: Union[NDArray[np.integer], Iterable[int]],
    residual_variance: float,
    group_variance: float,
) -> NDArray[np.floating]:
    """Vectorized :func:`group_weight` over an array of sample counts."""
    _check_variances(residual_variance, group_variance)
    n = np.asarray(list(counts) if not isinstance(counts, np.ndarray) else counts)

    if n.size and (
        not np.issubdtype(n.dtype, np.integer) or bool(np.any(n <= 0))
    ):
        raise InvalidInputError(
            f"sample counts must be positive integers, got {n.tolist()}"
        )

    if group_variance == 0:
        return np.zeros(n.shape, dtype=np.float64)

    data_precision = n.astype(np.float64) / residual_variance
    return data_precision / (data_precision + 1.0 / group_variance)


def _index_groups(
    groups: Union[Mapping[str, GroupSummary], Iterable[GroupSummary]],
) -> dict[str, GroupSummary]:
    if isinstance(groups, Mapping):
        return dict(groups)
    return {g.group_id: g for g in groups}


def shrink_group(
    group_id: str,
    groups: Union[Mapping[str, GroupSummary], Iterable[GroupSummary]],
    model: GlobalModel,
) -> ShrunkEstimate:
    """
    Partial-pooling estimate of one county's intercept and slope.

    Intercept and slope are shrunk independently, each with its own
    group-level variance.

    Raises
    ------
    UndefinedGroupError
        If ``group_id`` has no observations (absent from ``groups``).
    InvalidInputError
        If the group's count or the model's variances are invalid.
    """
    index = _index_groups(groups)
    if group_id not in index:
        raise UndefinedGroupError(group_id)
    group = index[group_id]

    w_int = group_weight(
        group.sample_count, model.residual_variance, model.intercept_variance
    )
    w_slope = group_weight(
        group.sample_count, model.residual_variance, model.slope_variance
    )
    if math.isnan(group.slope):
        w_slope = 0.0

    return ShrunkEstimate(
        group_id=group.group_id,
        sample_count=group.sample_count,
        intercept=shrink(
            group.intercept,
            model.intercept,
            group.sample_count,
            model.residual_variance,
            model.intercept_variance,
        ),
        slope=shrink(
            group.slope,
            model.slope,
            group.sample_count,
            model.residual_variance,
            model.slope_variance,
        ),
        intercept_weight=w_int,
        slope_weight=w_slope,
    )


def estimate_partial_pooling(
    groups: Union[Mapping[str, GroupSummary], Iterable[GroupSummary]],
    model: GlobalModel,
    group_ids: Optional[Iterable[str]] = None,
) -> dict[str, ShrunkEstimate]:
    """
    Partial-pooling estimates for every county, or only the requested ones.

    Parameters
    ----------
    groups : mapping or iterable of GroupSummary
        Per-county no-pooling summaries.
    model : GlobalModel
        Population estimates and variance components.
    group_ids : iterable of str, optional
        Counties to estimate. Defaults to all of ``groups``.

    Returns
    -------
    dict[str, ShrunkEstimate]
        Keyed by county, in request order.

    Examples
    --------
    >>> groups = [GroupSummary("kent", 10, 50.0, 50.0, 2.0)]
    >>> model = GlobalModel(30.0, 1.0, 100.0, 25.0, 0.0)
    >>> est = estimate_partial_pooling(groups, model)["kent"]
    >>> round(est.intercept, 2), est.slope
    (44.29, 1.0)
    """
    index = _index_groups(groups)
    requested = list(index) if group_ids is None else list(group_ids)

    if model.singular:
        logger.info(
            "Group-level variance is zero (intercept=%s, slope=%s); "
            "affected coefficients collapse to the population value",
            model.intercept_variance,
            model.slope_variance,
        )

    return {gid: shrink_group(gid, index, model) for gid in requested}


def shrinkage_table(
    groups: Union[Mapping[str, GroupSummary], Iterable[GroupSummary]],
    model: GlobalModel,
    group_ids: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """:func:`estimate_partial_pooling` as a DataFrame indexed by group_id."""
    estimates = estimate_partial_pooling(groups, model, group_ids)
    columns = [
        "sample_count",
        "intercept",
        "slope",
        "intercept_weight",
        "slope_weight",
    ]
    records = [asdict(e) for e in estimates.values()]
    if not records:
        return pd.DataFrame(columns=columns, index=pd.Index([], name="group_id"))
    return pd.DataFrame.from_records(records, index="group_id")[columns]
