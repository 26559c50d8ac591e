"""
Pytest configuration and shared fixtures for bouncepool tests.

Provides reusable fixtures for:
- Random number generators
- Small hand-built bounce-rate DataFrames
- Synthetic data with ground truth
- Shrinkage inputs
- Fitted model traces (session-scoped for speed)
"""

import numpy as np
import pandas as pd
import pytest


# =============================================================================
# BASIC FIXTURES
# =============================================================================


@pytest.fixture
def random_seed() -> int:
    """Consistent random seed for reproducible tests."""
    return 42


@pytest.fixture
def rng(random_seed: int) -> np.random.Generator:
    """NumPy random generator."""
    return np.random.default_rng(random_seed)


# =============================================================================
# DATAFRAME FIXTURES
# =============================================================================


@pytest.fixture
def small_bounce_df(rng: np.random.Generator) -> pd.DataFrame:
    """
    Three counties with very different amounts of data.

    - london: 60 visits (rich)
    - kent: 20 visits
    - cumbria: 1 visit (slope not identified)
    """
    frames = []
    for county, n, base, slope in [
        ("london", 60, 210.0, 0.9),
        ("kent", 20, 195.0, 0.7),
        ("cumbria", 1, 180.0, 0.8),
    ]:
        age = rng.integers(18, 70, size=n).astype(float)
        bounce = base + slope * (age - 40) + rng.normal(0, 8, size=n)
        frames.append(pd.DataFrame({"county": county, "age": age, "bounce_time": bounce}))
    return pd.concat(frames, ignore_index=True)


@pytest.fixture
def synthetic_data_with_truth(random_seed: int):
    """
    Generate synthetic data with known ground truth.

    Returns (DataFrame, TrueParameters) tuple.
    """
    from bouncepool.data.synthetic import SyntheticDataConfig, generate_bounce_data

    return generate_bounce_data(SyntheticDataConfig(), random_seed=random_seed)


@pytest.fixture
def synthetic_df(synthetic_data_with_truth) -> pd.DataFrame:
    return synthetic_data_with_truth[0]


# =============================================================================
# SHRINKAGE FIXTURES
# =============================================================================


@pytest.fixture
def example_groups():
    """County summaries with deliberately uneven sample sizes."""
    from bouncepool.shrinkage import GroupSummary

    return [
        GroupSummary("london", 150, 210.0, 210.0, 3.0),
        GroupSummary("kent", 10, 50.0, 50.0, 1.0),
        GroupSummary("cumbria", 1, 120.0, 120.0),  # slope not identified
    ]


@pytest.fixture
def example_global_model():
    from bouncepool.shrinkage import GlobalModel

    return GlobalModel(
        intercept=30.0,
        slope=2.0,
        residual_variance=100.0,
        intercept_variance=25.0,
        slope_variance=4.0,
    )


# =============================================================================
# MODEL FIXTURES (Session-scoped for speed)
# =============================================================================


def _tiny_synthetic_data():
    from bouncepool.data.synthetic import SyntheticDataConfig, generate_bounce_data

    config = SyntheticDataConfig(
        counties=["london", "kent", "devon", "cumbria"],
        obs_per_county={"london": 40, "kent": 25, "devon": 12, "cumbria": 4},
        random_seed=42,
    )
    return generate_bounce_data(config, random_seed=42)


@pytest.fixture(scope="session")
def tiny_data_with_truth():
    """Four-county dataset and its ground truth, shared by the sampled fits."""
    return _tiny_synthetic_data()


@pytest.fixture(scope="session")
def tiny_df(tiny_data_with_truth) -> pd.DataFrame:
    return tiny_data_with_truth[0]


def _sample(model):
    import pymc as pm

    with model:
        return pm.sample(
            draws=100,
            tune=100,
            chains=2,
            target_accept=0.9,
            random_seed=42,
            return_inferencedata=True,
            progressbar=False,
            idata_kwargs={"log_likelihood": True},
        )


@pytest.fixture(scope="session")
def fitted_pooled_trace(tiny_df):
    """
    Pre-fitted pooled model trace.

    Session-scoped to avoid refitting for every test.
    Uses minimal sampling for speed.
    """
    pytest.importorskip("pymc")
    from bouncepool.models import build_pooled_model

    return _sample(build_pooled_model(tiny_df))


@pytest.fixture(scope="session")
def fitted_unpooled_trace(tiny_df):
    """Pre-fitted unpooled model trace."""
    pytest.importorskip("pymc")
    from bouncepool.models import build_unpooled_model

    return _sample(build_unpooled_model(tiny_df))


@pytest.fixture(scope="session")
def fitted_hierarchical_trace(tiny_df):
    """Pre-fitted hierarchical model trace with posterior predictive samples."""
    pytest.importorskip("pymc")
    from bouncepool.models import build_hierarchical_model, sample_posterior_predictive

    model = build_hierarchical_model(tiny_df)
    trace = _sample(model)
    return sample_posterior_predictive(model, trace, random_seed=42)


@pytest.fixture(scope="session")
def all_traces(fitted_pooled_trace, fitted_unpooled_trace, fitted_hierarchical_trace):
    """Dictionary of all fitted traces."""
    return {
        "pooled": fitted_pooled_trace,
        "unpooled": fitted_unpooled_trace,
        "hierarchical": fitted_hierarchical_trace,
    }


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests requiring PyMC sampling"
    )
    config.addinivalue_line("markers", "pymc: marks tests requiring PyMC")


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on their requirements."""
    for item in items:
        if "pymc" in item.nodeid or "trace" in item.nodeid.lower():
            item.add_marker(pytest.mark.pymc)

        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)


# =============================================================================
# HYPOTHESIS PROFILES
# =============================================================================

from hypothesis import settings, Verbosity

settings.register_profile("ci", max_examples=50, deadline=None)
settings.register_profile("dev", max_examples=10, deadline=None)
settings.register_profile(
    "debug", max_examples=5, verbosity=Verbosity.verbose, deadline=None
)
