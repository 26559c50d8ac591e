from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from bouncepool.config import DEFAULT_COLUMNS, ColumnConfig
from bouncepool.errors import InvalidInputError


@dataclass(frozen=True)
class Standardizer:
    """Mean and (population) standard deviation used to z-score a predictor."""

    mean: float
    std: float

    @classmethod
    def fit(cls, x: NDArray[np.floating]) -> "Standardizer":
        x = np.asarray(x, dtype=np.float64)
        if x.size == 0:
            raise InvalidInputError("cannot standardize an empty predictor")
        if not np.all(np.isfinite(x)):
            raise InvalidInputError("predictor contains non-finite values")
        std = float(x.std())
        if std == 0:
            raise InvalidInputError(
                f"predictor is constant ({float(x[0])}); cannot standardize"
            )
        return cls(mean=float(x.mean()), std=std)

    def transform(self, x: NDArray[np.floating]) -> NDArray[np.floating]:
        return (np.asarray(x, dtype=np.float64) - self.mean) / self.std

    def inverse_transform(self, z: NDArray[np.floating]) -> NDArray[np.floating]:
        return np.asarray(z, dtype=np.float64) * self.std + self.mean


def standardize(x: NDArray[np.floating]) -> NDArray[np.floating]:
    """Z-score ``x`` to zero mean and unit variance."""
    return Standardizer.fit(x).transform(x)


def standardize_predictor(
    df: pd.DataFrame,
    columns: ColumnConfig = DEFAULT_COLUMNS,
    scaler: Optional[Standardizer] = None,
) -> tuple[pd.DataFrame, Standardizer]:
    """
    Add the standardized predictor column (``age_std`` by default).

    Parameters
    ----------
    df : pd.DataFrame
        Observation table.
    columns : ColumnConfig
        Column names.
    scaler : Standardizer, optional
        Reuse an existing scaling (e.g. from the training snapshot).
        Fitted on ``df`` if None.

    Returns
    -------
    tuple[pd.DataFrame, Standardizer]
        Copy of ``df`` with the new column, and the scaling used.
    """
    x = df[columns.predictor_col].to_numpy(dtype=np.float64)
    if scaler is None:
        scaler = Standardizer.fit(x)

    out = df.copy()
    out[columns.standardized_col] = scaler.transform(x)
    return out, scaler


def unstandardize_coefficients(
    intercept: float,
    slope: float,
    scaler: Standardizer,
) -> tuple[float, float]:
    """
    Map (intercept, slope) fitted on the z-scored predictor back to raw units.

    y = a + b * (x - m) / s  =>  y = (a - b * m / s) + (b / s) * x
    """
    raw_slope = slope / scaler.std
    return intercept - raw_slope * scaler.mean, raw_slope
