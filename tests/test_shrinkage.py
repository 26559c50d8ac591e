"""
Tests for the partial-pooling shrinkage estimator.

Tests cover:
- Group weights and their limits (no pooling, complete pooling)
- Worked numeric scenarios
- Error conditions
- Property-based testing with Hypothesis
"""

import math

import numpy as np
import pytest
from hypothesis import given, strategies as st, settings

from bouncepool.errors import InvalidInputError, UndefinedGroupError
from bouncepool.shrinkage import (
    GlobalModel,
    GroupSummary,
    estimate_partial_pooling,
    group_weight,
    shrink,
    shrink_group,
    shrinkage_table,
    shrinkage_weights,
)


counts = st.integers(min_value=1, max_value=10_000)
residual_variances = st.floats(min_value=1e-3, max_value=1e4, allow_nan=False)
group_variances = st.floats(min_value=0.0, max_value=1e4, allow_nan=False)
estimates = st.floats(min_value=-1e4, max_value=1e4, allow_nan=False)


# =============================================================================
# GROUP WEIGHT TESTS
# =============================================================================


class TestGroupWeight:
    """Tests for the precision weight on a group's own estimate."""

    def test_worked_example(self):
        """n=10, sigma2=100, tau2=25 gives 0.1 / 0.14."""
        assert group_weight(10, 100.0, 25.0) == pytest.approx(0.1 / 0.14)
        assert group_weight(10, 100.0, 25.0) == pytest.approx(0.7143, abs=1e-4)

    def test_zero_group_variance_gives_zero_weight(self):
        """Singular fit: tau2 = 0 forces complete pooling without dividing by zero."""
        assert group_weight(10, 100.0, 0.0) == 0.0
        assert group_weight(1_000_000, 1e-3, 0.0) == 0.0

    def test_infinite_group_variance_gives_full_weight(self):
        """tau2 = inf means no pooling."""
        assert group_weight(10, 100.0, math.inf) == 1.0

    def test_large_sample_approaches_one(self):
        w = group_weight(100_000, 100.0, 25.0)
        assert w == pytest.approx(0.99996, abs=1e-5)

    @pytest.mark.parametrize("sigma2", [0.0, -1.0, math.inf, math.nan])
    def test_invalid_residual_variance_raises(self, sigma2):
        with pytest.raises(InvalidInputError):
            group_weight(10, sigma2, 25.0)

    @pytest.mark.parametrize("tau2", [-1.0, -1e-12, math.nan])
    def test_invalid_group_variance_raises(self, tau2):
        with pytest.raises(InvalidInputError):
            group_weight(10, 100.0, tau2)

    @pytest.mark.parametrize("n", [0, -3, 2.5, True])
    def test_invalid_count_raises(self, n):
        with pytest.raises(InvalidInputError):
            group_weight(n, 100.0, 25.0)

    def test_invalid_input_is_value_error(self):
        """Callers catching ValueError still see bad input."""
        with pytest.raises(ValueError):
            group_weight(0, 100.0, 25.0)

    def test_numpy_integer_count_accepted(self):
        assert group_weight(np.int64(10), 100.0, 25.0) == pytest.approx(0.1 / 0.14)

    @given(counts, counts, residual_variances, group_variances)
    @settings(max_examples=100, deadline=None)
    def test_property_monotonic_in_count(self, n1, n2, sigma2, tau2):
        """Property: more observations never means less weight."""
        lo, hi = sorted((n1, n2))
        assert group_weight(lo, sigma2, tau2) <= group_weight(hi, sigma2, tau2) + 1e-12

    @given(counts, residual_variances, group_variances, group_variances)
    @settings(max_examples=100, deadline=None)
    def test_property_monotonic_in_group_variance(self, n, sigma2, t1, t2):
        """Property: more between-group variance never means less weight."""
        lo, hi = sorted((t1, t2))
        assert group_weight(n, sigma2, lo) <= group_weight(n, sigma2, hi) + 1e-12

    @given(counts, residual_variances, group_variances)
    @settings(max_examples=100, deadline=None)
    def test_property_weight_in_unit_interval(self, n, sigma2, tau2):
        assert 0.0 <= group_weight(n, sigma2, tau2) <= 1.0


class TestShrinkageWeights:
    """Tests for the vectorized weight computation."""

    def test_matches_scalar(self):
        n = np.array([1, 5, 10, 100])
        w = shrinkage_weights(n, 100.0, 25.0)
        expected = [group_weight(int(k), 100.0, 25.0) for k in n]
        np.testing.assert_allclose(w, expected)

    def test_accepts_list(self):
        np.testing.assert_allclose(
            shrinkage_weights([10], 100.0, 25.0), [group_weight(10, 100.0, 25.0)]
        )

    def test_zero_group_variance(self):
        np.testing.assert_array_equal(shrinkage_weights([1, 50], 100.0, 0.0), [0, 0])

    def test_empty(self):
        assert shrinkage_weights(np.array([], dtype=int), 1.0, 1.0).shape == (0,)

    def test_non_positive_count_raises(self):
        with pytest.raises(InvalidInputError):
            shrinkage_weights([3, 0], 100.0, 25.0)

    def test_float_counts_raise(self):
        with pytest.raises(InvalidInputError):
            shrinkage_weights(np.array([1.5, 2.0]), 100.0, 25.0)


# =============================================================================
# SHRINK TESTS
# =============================================================================


class TestShrink:
    """Tests for the precision-weighted average."""

    def test_worked_example(self):
        """0.7143 * 50 + 0.2857 * 30 = 44.29."""
        assert shrink(50.0, 30.0, 10, 100.0, 25.0) == pytest.approx(44.2857, abs=1e-4)

    def test_singular_returns_population_exactly(self):
        assert shrink(50.0, 30.0, 10, 100.0, 0.0) == 30.0

    def test_large_sample_returns_group(self):
        assert shrink(50.0, 30.0, 100_000, 100.0, 25.0) == pytest.approx(50.0, abs=1e-2)

    def test_infinite_group_variance_returns_group_exactly(self):
        assert shrink(50.0, 30.0, 3, 100.0, math.inf) == 50.0

    def test_nan_group_estimate_returns_population(self):
        assert shrink(math.nan, 30.0, 3, 100.0, 25.0) == 30.0

    def test_invalid_inputs_raise(self):
        with pytest.raises(InvalidInputError):
            shrink(50.0, 30.0, 10, 0.0, 25.0)
        with pytest.raises(InvalidInputError):
            shrink(50.0, 30.0, 10, 100.0, -1.0)
        with pytest.raises(InvalidInputError):
            shrink(50.0, 30.0, 0, 100.0, 25.0)

    @given(estimates, estimates, counts, residual_variances, group_variances)
    @settings(max_examples=200, deadline=None)
    def test_property_convexity(self, group_est, pop_est, n, sigma2, tau2):
        """Property: the result lies between the two estimates."""
        result = shrink(group_est, pop_est, n, sigma2, tau2)
        lo, hi = min(group_est, pop_est), max(group_est, pop_est)
        tol = 1e-9 * max(1.0, abs(lo), abs(hi))
        assert lo - tol <= result <= hi + tol

    @given(estimates, counts, residual_variances, group_variances)
    @settings(max_examples=100, deadline=None)
    def test_property_no_distortion_when_equal(self, value, n, sigma2, tau2):
        """Property: agreeing estimates are returned unchanged."""
        assert shrink(value, value, n, sigma2, tau2) == value

    @given(estimates, estimates, counts, residual_variances)
    @settings(max_examples=100, deadline=None)
    def test_property_collapses_when_tau_zero(self, group_est, pop_est, n, sigma2):
        assert shrink(group_est, pop_est, n, sigma2, 0.0) == pop_est

    def test_converges_to_population_as_tau_shrinks(self):
        results = [shrink(50.0, 30.0, 10, 100.0, tau2) for tau2 in (1.0, 1e-2, 1e-6)]
        gaps = [abs(r - 30.0) for r in results]
        assert gaps[0] > gaps[1] > gaps[2]
        assert gaps[2] < 1e-3

    def test_converges_to_group_as_n_grows(self):
        gaps = [abs(shrink(50.0, 30.0, n, 100.0, 25.0) - 50.0) for n in (10, 1000, 10**7)]
        assert gaps[0] > gaps[1] > gaps[2]
        assert gaps[2] < 1e-3


# =============================================================================
# GROUP ESTIMATE TESTS
# =============================================================================


class TestEstimatePartialPooling:
    """Tests for per-county estimates over a set of summaries."""

    def test_all_groups_estimated(self, example_groups, example_global_model):
        result = estimate_partial_pooling(example_groups, example_global_model)
        assert list(result) == ["london", "kent", "cumbria"]

    def test_kent_matches_worked_example(self, example_groups, example_global_model):
        kent = estimate_partial_pooling(example_groups, example_global_model)["kent"]
        assert kent.intercept == pytest.approx(44.2857, abs=1e-4)
        assert kent.intercept_weight == pytest.approx(0.7143, abs=1e-4)

    def test_intercept_and_slope_use_own_variance(self, example_groups):
        model = GlobalModel(30.0, 2.0, 100.0, 25.0, 0.0)
        kent = shrink_group("kent", example_groups, model)
        assert kent.intercept_weight > 0
        assert kent.slope_weight == 0.0
        assert kent.slope == 2.0

    def test_unidentified_slope_falls_back_to_population(
        self, example_groups, example_global_model
    ):
        cumbria = shrink_group("cumbria", example_groups, example_global_model)
        assert cumbria.slope == example_global_model.slope
        assert cumbria.slope_weight == 0.0
        assert cumbria.intercept_weight > 0

    def test_sparse_group_shrinks_more(self, example_groups, example_global_model):
        result = estimate_partial_pooling(example_groups, example_global_model)
        assert result["cumbria"].intercept_weight < result["london"].intercept_weight

    def test_requested_subset(self, example_groups, example_global_model):
        result = estimate_partial_pooling(
            example_groups, example_global_model, group_ids=["kent"]
        )
        assert list(result) == ["kent"]

    def test_mapping_input(self, example_groups, example_global_model):
        by_id = {g.group_id: g for g in example_groups}
        result = estimate_partial_pooling(by_id, example_global_model)
        assert set(result) == set(by_id)

    def test_missing_group_raises_undefined(self, example_groups, example_global_model):
        with pytest.raises(UndefinedGroupError) as excinfo:
            shrink_group("rutland", example_groups, example_global_model)
        assert excinfo.value.group_id == "rutland"
        assert "rutland" in str(excinfo.value)

    def test_failing_group_does_not_affect_others(
        self, example_groups, example_global_model
    ):
        bad = example_groups + [GroupSummary("empty", 0, 0.0, 0.0)]
        with pytest.raises(InvalidInputError):
            estimate_partial_pooling(bad, example_global_model)

        ok = estimate_partial_pooling(
            bad, example_global_model, group_ids=["london", "kent"]
        )
        assert set(ok) == {"london", "kent"}

    def test_singular_model_pools_everything(self, example_groups):
        model = GlobalModel(30.0, 2.0, 100.0, 0.0, 0.0)
        assert model.singular
        for est in estimate_partial_pooling(example_groups, model).values():
            assert est.intercept == 30.0
            assert est.slope == 2.0

    def test_invalid_model_variance_raises(self, example_groups):
        with pytest.raises(InvalidInputError):
            estimate_partial_pooling(example_groups, GlobalModel(0, 0, 0.0, 1.0, 1.0))


class TestShrinkageTable:
    def test_columns_and_index(self, example_groups, example_global_model):
        table = shrinkage_table(example_groups, example_global_model)
        assert table.index.name == "group_id"
        assert list(table.columns) == [
            "sample_count",
            "intercept",
            "slope",
            "intercept_weight",
            "slope_weight",
        ]
        assert table.loc["kent", "intercept"] == pytest.approx(44.2857, abs=1e-4)

    def test_empty(self, example_global_model):
        table = shrinkage_table([], example_global_model)
        assert table.empty
