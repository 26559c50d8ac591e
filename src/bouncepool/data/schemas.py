"""Pydantic and Pandera schemas for bounce-rate data validation."""

from typing import Optional

import pandas as pd
import pandera as pa
from pandera.typing import Series
from pydantic import BaseModel, Field, field_validator


class BounceRow(BaseModel):
    """
    Single website visit.

    Validates individual records before ingestion.

    Example
    -------
    >>> row = BounceRow(county="kent", age=34.0, bounce_time=201.5)
    """

    county: str = Field(min_length=1, description="County the visit came from")

    age: float = Field(gt=0, le=120, description="Visitor age in years")

    # Target variable
    bounce_time: float = Field(gt=0, description="Seconds before leaving the site")

    location: Optional[str] = Field(
        default=None, description="Sub-county location label, if recorded"
    )

    @field_validator("county")
    @classmethod
    def normalize_county(cls, v: str) -> str:
        """Counties are matched case-insensitively."""
        return v.strip().lower()


class BounceDataFrame(pa.DataFrameModel):
    """
    Pandera schema for a full bounce-rate DataFrame.

    Use this for batch validation of complete datasets before modeling.

    Example
    -------
    >>> df = pd.read_csv("bounce_rates.csv")
    >>> BounceDataFrame.validate(df)  # Raises if invalid
    """

    county: Series[str] = pa.Field(
        str_length={"min_value": 1},
        description="County (grouping variable)",
    )

    age: Series[float] = pa.Field(
        gt=0,
        le=120,
        description="Visitor age (years)",
    )

    bounce_time: Series[float] = pa.Field(
        gt=0,
        description="Bounce time (seconds)",
    )

    location: Optional[Series[str]] = pa.Field(
        nullable=True,
        description="Sub-county location",
    )

    class Config:
        """Pandera configuration."""

        name = "BounceRateData"
        strict = False
        coerce = True
        ordered = False


def validate_dataframe(df: pd.DataFrame) -> pd.DataFrame:
    """
    Validate a DataFrame against the bounce-rate schema.

    Parameters
    ----------
    df : pd.DataFrame
        Observations to validate.

    Returns
    -------
    pd.DataFrame
        Validated (and potentially coerced) DataFrame.

    Raises
    ------
    pandera.errors.SchemaError
        If validation fails.
    """
    return BounceDataFrame.validate(df)


def load_bounce_data(path) -> pd.DataFrame:
    """Read a bounce-rate CSV, normalize county labels and validate it."""
    df = pd.read_csv(path)
    if "county" in df.columns:
        df["county"] = df["county"].astype(str).str.strip().str.lower()
    return validate_dataframe(df)
