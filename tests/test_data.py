"""
Tests for data schemas and synthetic data generation.
"""

import numpy as np
import pandas as pd
import pandera as pa
import pytest
from pydantic import ValidationError

from bouncepool.data import (
    BounceRow,
    SyntheticDataConfig,
    generate_bounce_data,
    generate_true_parameters,
    load_bounce_data,
    load_ground_truth,
    save_synthetic_data,
    summarize_dataset,
    validate_dataframe,
)


# =============================================================================
# SCHEMA TESTS
# =============================================================================


class TestBounceRow:
    def test_valid_row(self):
        row = BounceRow(county="kent", age=34.0, bounce_time=201.5)
        assert row.location is None

    def test_county_normalized(self):
        assert BounceRow(county="  London ", age=30, bounce_time=10).county == "london"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"county": "", "age": 30, "bounce_time": 10},
            {"county": "kent", "age": 0, "bounce_time": 10},
            {"county": "kent", "age": 130, "bounce_time": 10},
            {"county": "kent", "age": 30, "bounce_time": -1},
        ],
    )
    def test_invalid_rows_rejected(self, kwargs):
        with pytest.raises(ValidationError):
            BounceRow(**kwargs)


class TestBounceDataFrame:
    def test_valid_frame(self, small_bounce_df):
        out = validate_dataframe(small_bounce_df)
        assert len(out) == len(small_bounce_df)

    def test_coerces_integer_age(self):
        df = pd.DataFrame({"county": ["kent"], "age": [30], "bounce_time": [100]})
        out = validate_dataframe(df)
        assert out["age"].dtype == np.float64

    def test_extra_columns_allowed(self, small_bounce_df):
        df = small_bounce_df.assign(location="town")
        assert "location" in validate_dataframe(df).columns

    def test_negative_bounce_time_rejected(self):
        df = pd.DataFrame({"county": ["kent"], "age": [30.0], "bounce_time": [-5.0]})
        with pytest.raises(pa.errors.SchemaError):
            validate_dataframe(df)

    def test_missing_column_rejected(self):
        df = pd.DataFrame({"county": ["kent"], "age": [30.0]})
        with pytest.raises(pa.errors.SchemaError):
            validate_dataframe(df)

    def test_load_normalizes_county(self, tmp_path):
        path = tmp_path / "visits.csv"
        pd.DataFrame(
            {"county": [" Kent", "LONDON"], "age": [30, 41], "bounce_time": [180.0, 210.0]}
        ).to_csv(path, index=False)

        df = load_bounce_data(path)
        assert list(df["county"]) == ["kent", "london"]


# =============================================================================
# SYNTHETIC DATA TESTS
# =============================================================================


class TestSyntheticData:
    def test_shape_and_columns(self, synthetic_df):
        assert synthetic_df.shape == (521, 3)
        assert list(synthetic_df.columns) == ["county", "age", "bounce_time"]

    def test_uneven_county_sizes(self, synthetic_df):
        counts = synthetic_df["county"].value_counts()
        assert counts["london"] == 150
        assert counts["cumbria"] == 3
        assert counts.max() / counts.min() == 50

    def test_passes_schema(self, synthetic_df):
        validate_dataframe(synthetic_df)

    def test_ages_bounded_and_whole(self, synthetic_df):
        config = SyntheticDataConfig()
        assert synthetic_df["age"].between(config.min_age, config.max_age).all()
        np.testing.assert_array_equal(synthetic_df["age"], synthetic_df["age"].round())

    def test_reproducible(self):
        df1, _ = generate_bounce_data(random_seed=7)
        df2, _ = generate_bounce_data(random_seed=7)
        pd.testing.assert_frame_equal(df1, df2)

    def test_different_seeds_differ(self):
        df1, _ = generate_bounce_data(random_seed=1)
        df2, _ = generate_bounce_data(random_seed=2)
        assert not df1["bounce_time"].equals(df2["bounce_time"])

    def test_true_parameters_aligned(self, synthetic_data_with_truth):
        _, truth = synthetic_data_with_truth
        assert len(truth.intercepts) == len(truth.county_names) == 8
        assert len(truth.slopes) == 8
        assert truth.county_age_means[truth.county_names.index("london")] == 28.0

    def test_older_counties_have_lower_baseline(self):
        """The between-county age effect dominates the random intercept spread."""
        config = SyntheticDataConfig(intercept_sigma=0.0)
        truth = generate_true_parameters(config, random_seed=0)
        order = np.argsort(truth.county_age_means)
        assert np.all(np.diff(truth.intercepts[order]) <= 0)

    def test_custom_counties(self):
        config = SyntheticDataConfig(
            counties=["kent", "devon"],
            obs_per_county={"kent": 5, "devon": 2},
        )
        df, truth = generate_bounce_data(config, random_seed=3)
        assert len(df) == 7
        assert truth.county_names == ["kent", "devon"]

    def test_save_and_load_ground_truth(self, synthetic_data_with_truth, tmp_path):
        df, truth = synthetic_data_with_truth
        save_synthetic_data(df, truth, output_dir=str(tmp_path))

        assert (tmp_path / "bounce_rates.csv").exists()
        loaded = load_ground_truth(str(tmp_path / "ground_truth.json"))

        assert loaded.county_names == truth.county_names
        np.testing.assert_allclose(loaded.intercepts, truth.intercepts)
        np.testing.assert_allclose(loaded.slopes, truth.slopes)
        assert loaded.age_center == truth.age_center

        reread = load_bounce_data(tmp_path / "bounce_rates.csv")
        assert len(reread) == len(df)

    def test_summary(self, synthetic_df):
        summary = summarize_dataset(synthetic_df)
        assert list(summary.columns) == ["visits", "mean_age", "mean_bounce_time"]
        assert summary.index[0] == "london"
        assert summary["visits"].is_monotonic_decreasing
