"""
Tests for transform functions

Validates element transform policy, reducers and aggregate functions,
including short/uneven source vectors and empty inputs.
"""

import math

import pytest

from oscbridge.transforms import (
    AGGREGATE_FUNCTIONS,
    aggregate_average,
    aggregate_max,
    aggregate_min,
    aggregate_non_zero_average,
    aggregate_sum,
    element_transform,
    get_aggregate_function,
    get_reduce_transform,
    identity_element_transform,
    last_value_reduce,
    time_average_reduce,
)


class TestElementTransform:
    """Test band-power channel normalisation."""

    def test_wave_channel_mean_of_non_zero(self):
        assert element_transform([0, 0.5, 0, 1.5], "/muse/elements/alpha_absolute") == [1.0]

    def test_wave_channel_all_zero(self):
        assert element_transform([0, 0, 0, 0], "/muse/elements/beta_absolute") == [0]

    def test_wave_channel_empty_vector(self):
        assert element_transform([], "/muse/elements/gamma_absolute") == [0]

    @pytest.mark.parametrize("address", [
        "/muse/elements/alpha_absolute",
        "/muse/elements/BETA_relative",
        "/muse/elements/Gamma_session_score",
        "/muse/elements/delta_absolute2",
        "/muse/elements/theta_absolute",
    ])
    def test_wave_channel_detection_case_insensitive(self, address):
        assert element_transform([2, 0, 4], address) == [3.0]

    def test_other_channels_unchanged(self):
        vector = [800.1, 0, 790.4]
        result = element_transform(vector, "/muse/eeg")

        assert result == vector
        assert result is not vector

    def test_identity(self):
        assert identity_element_transform([1, 0, 2], "/muse/elements/alpha_absolute") == [1, 0, 2]


class TestReduceTransforms:
    """Test time-window reducers."""

    def test_last_value(self):
        assert last_value_reduce([[1, 2], [3, 4]]) == [3, 4]

    def test_last_value_empty(self):
        assert last_value_reduce([]) == []

    def test_time_average(self):
        assert time_average_reduce([[1, 2, 3], [3, 4, 5]]) == [2.0, 3.0, 4.0]

    def test_time_average_first_vector_fixes_width(self):
        """Extra components are ignored; missing ones don't count."""
        assert time_average_reduce([[1, 2], [3, 4, 100]]) == [2.0, 3.0]
        assert time_average_reduce([[1, 2, 3], [3, 4]]) == [2.0, 3.0, 3.0]

    def test_time_average_empty(self):
        assert time_average_reduce([]) == []

    def test_lookup(self):
        assert get_reduce_transform("average") is time_average_reduce
        assert get_reduce_transform("last") is last_value_reduce

    def test_lookup_unknown(self):
        with pytest.raises(ValueError, match="Unknown reducer"):
            get_reduce_transform("median")


class TestAggregateFunctions:
    """Test cross-address aggregate functions."""

    def test_average(self):
        assert aggregate_average({"/s1": [10, 20, 30], "/s2": [20, 40, 60]}) == [15, 30, 45]

    def test_sum(self):
        assert aggregate_sum({"/s1": [10, 20, 30], "/s2": [20, 40, 60]}) == [30, 60, 90]

    def test_max(self):
        assert aggregate_max({"/s1": [10, 50, 30], "/s2": [20, 40, 60]}) == [20, 50, 60]

    def test_min(self):
        assert aggregate_min({"/s1": [10, 50, 30], "/s2": [20, 40, 60]}) == [10, 40, 30]

    def test_non_zero_average(self):
        assert aggregate_non_zero_average({"/s1": [10, 0, 30], "/s2": [0, 40, 60]}) == [10, 40, 45]

    def test_non_zero_average_all_zero_column(self):
        assert aggregate_non_zero_average({"/s1": [0, 1], "/s2": [0, 3]}) == [0, 2]

    def test_first_entry_fixes_width(self):
        result = aggregate_average({"/s1": [10, 20], "/s2": [30, 40, 50]})
        assert result == [20, 30]

    def test_shorter_source_skips_missing_columns(self):
        result = aggregate_average({"/s1": [10, 20, 30], "/s2": [30]})
        assert result == [20, 20, 30]

    @pytest.mark.parametrize("name", sorted(AGGREGATE_FUNCTIONS))
    def test_uncovered_column_never_infinite(self, name):
        """A column no source reaches yields 0, not a sentinel."""
        result = AGGREGATE_FUNCTIONS[name]({"/s1": [1, 2, 3], "/s2": [4]})

        assert len(result) == 3
        assert all(math.isfinite(value) for value in result)

    @pytest.mark.parametrize("name", sorted(AGGREGATE_FUNCTIONS))
    def test_nan_ignored(self, name):
        result = AGGREGATE_FUNCTIONS[name]({"/s1": [float("nan"), 4], "/s2": [float("nan"), 4]})
        assert result == [0, 4 if name != "sum" else 8]

    @pytest.mark.parametrize("name", sorted(AGGREGATE_FUNCTIONS))
    def test_empty_input(self, name):
        assert AGGREGATE_FUNCTIONS[name]({}) == []

    def test_results_are_plain_floats(self):
        result = aggregate_average({"/s1": [1, 2]})
        assert all(type(value) is float for value in result)

    def test_wire_names(self):
        assert set(AGGREGATE_FUNCTIONS) == {"average", "nonZeroAverage", "sum", "max", "min"}
        assert get_aggregate_function("nonZeroAverage") is aggregate_non_zero_average

    def test_lookup_unknown(self):
        with pytest.raises(ValueError, match="Unknown aggregate function"):
            get_aggregate_function("median")
