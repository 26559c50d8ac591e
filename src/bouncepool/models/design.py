from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from bouncepool.config import DEFAULT_COLUMNS, ColumnConfig
from bouncepool.errors import InvalidInputError
from bouncepool.transforms.scaling import Standardizer


@dataclass(frozen=True)
class Design:
    """Arrays shared by every model: standardized age, bounce time, county index."""

    x: NDArray[np.floating]
    y: NDArray[np.floating]
    group_idx: NDArray[np.integer]
    groups: list[str]
    counts: NDArray[np.integer]
    scaler: Standardizer

    @property
    def n_obs(self) -> int:
        return len(self.y)


def prepare_design(
    df: pd.DataFrame,
    columns: ColumnConfig = DEFAULT_COLUMNS,
    scaler: Optional[Standardizer] = None,
) -> Design:
    """
    Extract model arrays from an observation table.

    Counties are indexed in order of first appearance. The predictor is
    z-scored with ``scaler`` (fitted on ``df`` if None).
    """
    if len(df) == 0:
        raise InvalidInputError("observation table is empty")

    raw_x = df[columns.predictor_col].to_numpy(dtype=np.float64)
    if scaler is None:
        scaler = Standardizer.fit(raw_x)

    groups = [str(g) for g in pd.unique(df[columns.group_col])]
    group_to_idx = {g: i for i, g in enumerate(groups)}
    group_idx = df[columns.group_col].astype(str).map(group_to_idx).to_numpy()

    return Design(
        x=scaler.transform(raw_x),
        y=df[columns.response_col].to_numpy(dtype=np.float64),
        group_idx=group_idx.astype(np.int64),
        groups=groups,
        counts=np.bincount(group_idx, minlength=len(groups)).astype(np.int64),
        scaler=scaler,
    )
