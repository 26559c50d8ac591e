"""Shared configuration for fitting and sampling."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ColumnConfig:
    """
    Column names of the observation table.

    The defaults match the bounce-rate dataset: one row per visit with the
    visitor's county, age and bounce time in seconds.
    """

    group_col: str = "county"
    predictor_col: str = "age"
    response_col: str = "bounce_time"

    @property
    def standardized_col(self) -> str:
        return f"{self.predictor_col}_std"


@dataclass(frozen=True)
class SamplerConfig:
    """NUTS settings passed through to ``pm.sample``."""

    draws: int = 1000
    tune: int = 1000
    chains: int = 4
    target_accept: float = 0.9
    random_seed: int = 42

    def __post_init__(self):
        if self.draws < 1:
            raise ValueError(f"draws must be >= 1, got {self.draws}")
        if self.tune < 0:
            raise ValueError(f"tune must be >= 0, got {self.tune}")
        if self.chains < 1:
            raise ValueError(f"chains must be >= 1, got {self.chains}")
        if not 0 < self.target_accept < 1:
            raise ValueError(
                f"target_accept must be in (0, 1), got {self.target_accept}"
            )


DEFAULT_COLUMNS = ColumnConfig()
