"""
Synthetic bounce-rate data with known ground truth.

Generates visits from a varying-intercept, varying-slope model so that
pooled, unpooled and hierarchical fits can be checked against the values
that produced the data.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd
from numpy.typing import NDArray

logger = logging.getLogger(__name__)


@dataclass
class TrueParameters:
    """
    Ground truth parameters for synthetic data generation.

    Coefficients are on the raw age scale: bounce time in seconds for a
    visitor of ``age_center`` years, and seconds per year of age.

    Attributes
    ----------
    county_names : list[str]
        County labels, aligned with the per-county arrays.
    intercept_mu : float
        Population intercept (what the hierarchical model should recover).
    intercept_sigma : float
        Between-county spread of intercepts not explained by age.
    slope_mu : float
        Population within-county age slope.
    slope_sigma : float
        Between-county spread of slopes.
    between_age_effect : float
        How county intercepts move with the county's mean visitor age.
        Drives the gap between the pooled and within-county slopes.
    intercepts : NDArray
        County-specific intercepts at ``age_center``.
    slopes : NDArray
        County-specific age slopes.
    county_age_means : NDArray
        Mean visitor age per county.
    noise_sigma : float
        Observation noise standard deviation (seconds).
    age_center : float
        Reference age at which intercepts are defined.
    """

    county_names: list[str]

    intercept_mu: float
    intercept_sigma: float
    slope_mu: float
    slope_sigma: float
    between_age_effect: float

    intercepts: Optional[NDArray[np.floating]] = None
    slopes: Optional[NDArray[np.floating]] = None
    county_age_means: Optional[NDArray[np.floating]] = None

    noise_sigma: float = 10.0
    age_center: float = 40.0


@dataclass
class SyntheticDataConfig:
    """
    Configuration for synthetic bounce-rate data.

    The defaults create eight counties with very uneven traffic: London
    and Kent have well over a hundred visits while Cumbria has three.
    Younger counties bounce later, so ignoring the county structure
    reverses the sign of the age effect.
    """

    counties: list[str] = field(
        default_factory=lambda: [
            "london",
            "kent",
            "essex",
            "hampshire",
            "devon",
            "dorset",
            "cheshire",
            "cumbria",
        ]
    )

    # THE KEY ASYMMETRY
    obs_per_county: dict[str, int] = field(
        default_factory=lambda: {
            "london": 150,
            "kent": 120,
            "essex": 100,
            "hampshire": 80,
            "devon": 40,
            "dorset": 20,
            "cheshire": 8,
            "cumbria": 3,  # SPARSE
        }
    )

    county_age_means: dict[str, float] = field(
        default_factory=lambda: {
            "london": 28.0,
            "kent": 34.0,
            "essex": 37.0,
            "hampshire": 42.0,
            "devon": 48.0,
            "dorset": 52.0,
            "cheshire": 45.0,
            "cumbria": 55.0,
        }
    )

    age_sd: float = 6.0
    min_age: float = 18.0
    max_age: float = 80.0

    intercept_mu: float = 200.0
    intercept_sigma: float = 8.0
    slope_mu: float = 0.8
    slope_sigma: float = 0.15
    between_age_effect: float = -3.0
    noise_sigma: float = 10.0
    age_center: float = 40.0

    random_seed: int = 42


def generate_true_parameters(
    config: SyntheticDataConfig,
    random_seed: Optional[int] = None,
) -> TrueParameters:
    """
    Draw county intercepts and slopes from the population distribution.

    Parameters
    ----------
    config : SyntheticDataConfig
        Data generation configuration.
    random_seed : int, optional
        Random seed for reproducibility.

    Returns
    -------
    TrueParameters
        Complete set of true parameters for data generation.
    """
    rng = np.random.default_rng(
        config.random_seed if random_seed is None else random_seed
    )

    age_means = np.array([config.county_age_means[c] for c in config.counties])

    intercepts = (
        config.intercept_mu
        + config.between_age_effect * (age_means - config.age_center)
        + rng.normal(0, config.intercept_sigma, size=len(config.counties))
    )
    slopes = rng.normal(config.slope_mu, config.slope_sigma, size=len(config.counties))

    return TrueParameters(
        county_names=list(config.counties),
        intercept_mu=config.intercept_mu,
        intercept_sigma=config.intercept_sigma,
        slope_mu=config.slope_mu,
        slope_sigma=config.slope_sigma,
        between_age_effect=config.between_age_effect,
        intercepts=intercepts,
        slopes=slopes,
        county_age_means=age_means,
        noise_sigma=config.noise_sigma,
        age_center=config.age_center,
    )


def generate_bounce_data(
    config: Optional[SyntheticDataConfig] = None,
    true_params: Optional[TrueParameters] = None,
    random_seed: int = 42,
) -> tuple[pd.DataFrame, TrueParameters]:
    """
    Generate a complete synthetic bounce-rate dataset.

    This is the main entry point for creating validation data with
    known ground truth parameters.

    Parameters
    ----------
    config : SyntheticDataConfig, optional
        Configuration. Uses the eight-county defaults if None.
    true_params : TrueParameters, optional
        Pre-specified parameters. Generates new ones if None.
    random_seed : int
        Random seed for reproducibility.

    Returns
    -------
    tuple[pd.DataFrame, TrueParameters]
        (data, true_parameters) with columns ``county``, ``age``,
        ``bounce_time``.

    Examples
    --------
    >>> df, truth = generate_bounce_data(random_seed=42)
    >>> df.shape
    (521, 3)
    """
    if config is None:
        config = SyntheticDataConfig(random_seed=random_seed)

    if true_params is None:
        true_params = generate_true_parameters(config, random_seed)

    rng = np.random.default_rng(random_seed + 1)

    frames = []
    for c_idx, county in enumerate(true_params.county_names):
        n_obs = config.obs_per_county[county]
        ages = rng.normal(true_params.county_age_means[c_idx], config.age_sd, n_obs)
        ages = np.clip(np.round(ages), config.min_age, config.max_age)

        mu = true_params.intercepts[c_idx] + true_params.slopes[c_idx] * (
            ages - true_params.age_center
        )
        bounce = mu + rng.normal(0, true_params.noise_sigma, size=n_obs)

        frames.append(
            pd.DataFrame(
                {
                    "county": county,
                    "age": ages.astype(np.float64),
                    "bounce_time": np.maximum(bounce, 1.0).round(2),
                }
            )
        )

    df = pd.concat(frames, ignore_index=True)
    logger.debug("Generated %d visits across %d counties", len(df), len(frames))

    return df, true_params


def save_synthetic_data(
    df: pd.DataFrame,
    true_params: TrueParameters,
    output_dir: str = "data/",
    filename: str = "bounce_rates.csv",
) -> None:
    """
    Save synthetic data and ground truth to files.

    Parameters
    ----------
    df : pd.DataFrame
        Visits.
    true_params : TrueParameters
        Ground truth parameters.
    output_dir : str
        Output directory path.
    filename : str
        CSV filename for the visits.
    """
    output_path = Path(output_dir)
    output_path.mkdir(exist_ok=True, parents=True)

    df.to_csv(output_path / filename, index=False)
    logger.info("Saved bounce data to %s", output_path / filename)

    truth = {
        "county_names": true_params.county_names,
        "intercept_mu": true_params.intercept_mu,
        "intercept_sigma": true_params.intercept_sigma,
        "slope_mu": true_params.slope_mu,
        "slope_sigma": true_params.slope_sigma,
        "between_age_effect": true_params.between_age_effect,
        "intercepts": true_params.intercepts.tolist(),
        "slopes": true_params.slopes.tolist(),
        "county_age_means": true_params.county_age_means.tolist(),
        "noise_sigma": true_params.noise_sigma,
        "age_center": true_params.age_center,
    }

    with open(output_path / "ground_truth.json", "w") as f:
        json.dump(truth, f, indent=2)
    logger.info("Saved ground truth to %s", output_path / "ground_truth.json")


def load_ground_truth(path: str = "data/ground_truth.json") -> TrueParameters:
    """
    Load ground truth parameters from JSON file.

    Parameters
    ----------
    path : str
        Path to ground_truth.json file.

    Returns
    -------
    TrueParameters
        Loaded ground truth parameters.
    """
    with open(path) as f:
        data = json.load(f)

    return TrueParameters(
        county_names=data["county_names"],
        intercept_mu=data["intercept_mu"],
        intercept_sigma=data["intercept_sigma"],
        slope_mu=data["slope_mu"],
        slope_sigma=data["slope_sigma"],
        between_age_effect=data.get("between_age_effect", 0.0),
        intercepts=np.array(data["intercepts"]),
        slopes=np.array(data["slopes"]),
        county_age_means=np.array(data["county_age_means"]),
        noise_sigma=data["noise_sigma"],
        age_center=data.get("age_center", 40.0),
    )


def summarize_dataset(df: pd.DataFrame) -> pd.DataFrame:
    """
    Per-county visit counts and means.

    Parameters
    ----------
    df : pd.DataFrame
        Bounce-rate data.

    Returns
    -------
    pd.DataFrame
        One row per county, sorted by visit count (largest first).
    """
    return (
        df.groupby("county")
        .agg(
            visits=("bounce_time", "size"),
            mean_age=("age", "mean"),
            mean_bounce_time=("bounce_time", "mean"),
        )
        .sort_values("visits", ascending=False)
        .round(2)
    )
