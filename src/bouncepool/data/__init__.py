"""Data schemas and synthetic data generation."""

from bouncepool.data.schemas import (
    BounceRow,
    BounceDataFrame,
    validate_dataframe,
    load_bounce_data,
)
from bouncepool.data.synthetic import (
    TrueParameters,
    SyntheticDataConfig,
    generate_true_parameters,
    generate_bounce_data,
    save_synthetic_data,
    load_ground_truth,
    summarize_dataset,
)

__all__ = [
    "BounceRow",
    "BounceDataFrame",
    "validate_dataframe",
    "load_bounce_data",
    "TrueParameters",
    "SyntheticDataConfig",
    "generate_true_parameters",
    "generate_bounce_data",
    "save_synthetic_data",
    "load_ground_truth",
    "summarize_dataset",
]
