"""
Pure transform functions applied to buffered samples.

Three families, each a plain function so they can be swapped per deployment:

Element transforms  (vector, address) -> vector
    Normalise one raw sample before reduction. The default policy collapses
    band-power channels (alpha, beta, gamma, delta, theta) to the mean of
    their non-zero components: Muse-style headsets report those bands with
    zero placeholders for electrodes that have no contact, and averaging the
    zeros in would drag every reading toward 0.

Reduce transforms  [vector, ...] -> vector
    Collapse the time-ordered vectors buffered for one address since the
    last poll.

Aggregate functions  {source_address: vector} -> vector
    Combine the current values of several addresses (cross-address, not
    cross-time) into one virtual address value. The first mapping entry fixes
    the output length; each source contributes only to the columns it has,
    NaN components are ignored, and a column nobody contributes to is 0.

All functions are total: empty input yields [] rather than an exception.
"""

from typing import Callable, Dict, List, Mapping, Sequence

import numpy as np

from oscbridge.osc import is_wave_channel

Vector = List[float]
ElementTransform = Callable[[Sequence[float], str], Vector]
ReduceTransform = Callable[[Sequence[Sequence[float]]], Vector]
AggregateFunction = Callable[[Mapping[str, Sequence[float]]], Vector]


# ============================================================================
# ELEMENT TRANSFORMS
# ============================================================================

def identity_element_transform(vector: Sequence[float], address: str) -> Vector:
    return list(vector)


def element_transform(vector: Sequence[float], address: str) -> Vector:
    """Collapse band-power channels to the mean of their non-zero components.

    Args:
        vector: Raw sample arguments
        address: OSC address the sample arrived on

    Returns:
        [mean of non-zero components] for wave channels ([0] when none are
        non-zero or the vector is empty); an unchanged copy otherwise.

    Examples:
        >>> element_transform([0, 0.5, 0, 1.5], "/muse/elements/alpha_absolute")
        [1.0]
        >>> element_transform([0, 0], "/muse/elements/beta_absolute")
        [0]
        >>> element_transform([800.1, 790.4], "/muse/eeg")
        [800.1, 790.4]
    """
    if not is_wave_channel(address):
        return list(vector)

    non_zero = [value for value in vector if value != 0]
    if not non_zero:
        return [0]
    return [sum(non_zero) / len(non_zero)]


# ============================================================================
# REDUCE TRANSFORMS
# ============================================================================

def last_value_reduce(vectors: Sequence[Sequence[float]]) -> Vector:
    """Most recent vector, ignoring the rest of the window."""
    if not vectors:
        return []
    return list(vectors[-1])


def time_average_reduce(vectors: Sequence[Sequence[float]]) -> Vector:
    """Column-wise mean over the buffered window.

    The first vector fixes the number of columns. A shorter vector is absent
    from the count of the columns it lacks rather than counted as zero;
    extra trailing components of longer vectors are ignored.

    Examples:
        >>> time_average_reduce([[1, 2, 3], [3, 4]])
        [2.0, 3.0, 3.0]
    """
    if not vectors:
        return []

    width = len(vectors[0])
    sums = [0.0] * width
    counts = [0] * width
    for vector in vectors:
        for i in range(min(width, len(vector))):
            sums[i] += vector[i]
            counts[i] += 1

    return [sums[i] / counts[i] if counts[i] else 0 for i in range(width)]


REDUCE_TRANSFORMS: Dict[str, ReduceTransform] = {
    "average": time_average_reduce,
    "last": last_value_reduce,
}


# ============================================================================
# AGGREGATE FUNCTIONS
# ============================================================================

def _source_matrix(source_values: Mapping[str, Sequence[float]]) -> np.ndarray:
    """Stack sources into a (sources x width) float matrix padded with NaN.

    Width comes from the first entry; longer sources are truncated.
    Returns an empty matrix when there is nothing to aggregate.
    """
    if not source_values:
        return np.empty((0, 0))

    first = next(iter(source_values.values()))
    width = len(first) if first is not None else 0
    if width == 0:
        return np.empty((0, 0))

    matrix = np.full((len(source_values), width), np.nan)
    for row, values in enumerate(source_values.values()):
        if values is None:
            continue
        span = min(width, len(values))
        matrix[row, :span] = np.asarray(values[:span], dtype=float)
    return matrix


def _column_reduce(matrix: np.ndarray, reducer) -> Vector:
    """Apply reducer to each column's contributors; 0 where there are none."""
    if matrix.size == 0:
        return []

    contributing = ~np.isnan(matrix)
    result = []
    for column in range(matrix.shape[1]):
        values = matrix[contributing[:, column], column]
        result.append(float(reducer(values)) if values.size else 0)
    return result


def aggregate_average(source_values: Mapping[str, Sequence[float]]) -> Vector:
    """Column-wise mean across sources, ignoring NaN.

    Examples:
        >>> aggregate_average({"/a": [10, 20, 30], "/b": [20, 40, 60]})
        [15.0, 30.0, 45.0]
    """
    return _column_reduce(_source_matrix(source_values), np.mean)


def aggregate_non_zero_average(source_values: Mapping[str, Sequence[float]]) -> Vector:
    """Column-wise mean of the non-zero, non-NaN components.

    Examples:
        >>> aggregate_non_zero_average({"/a": [10, 0, 30], "/b": [0, 40, 60]})
        [10.0, 40.0, 45.0]
    """
    matrix = _source_matrix(source_values)
    if matrix.size:
        matrix[matrix == 0] = np.nan
    return _column_reduce(matrix, np.mean)


def aggregate_sum(source_values: Mapping[str, Sequence[float]]) -> Vector:
    return _column_reduce(_source_matrix(source_values), np.sum)


def aggregate_max(source_values: Mapping[str, Sequence[float]]) -> Vector:
    return _column_reduce(_source_matrix(source_values), np.max)


def aggregate_min(source_values: Mapping[str, Sequence[float]]) -> Vector:
    return _column_reduce(_source_matrix(source_values), np.min)


# Wire names used in YAML config and API payloads
AGGREGATE_FUNCTIONS: Dict[str, AggregateFunction] = {
    "average": aggregate_average,
    "nonZeroAverage": aggregate_non_zero_average,
    "sum": aggregate_sum,
    "max": aggregate_max,
    "min": aggregate_min,
}


def get_aggregate_function(name: str) -> AggregateFunction:
    """Look up an aggregate function by wire name.

    Raises:
        ValueError: If the name is not registered
    """
    try:
        return AGGREGATE_FUNCTIONS[name]
    except KeyError:
        choices = ", ".join(sorted(AGGREGATE_FUNCTIONS))
        raise ValueError(f"Unknown aggregate function '{name}' (choose from: {choices})") from None


def get_reduce_transform(name: str) -> ReduceTransform:
    """Look up a reduce transform by name ('average' or 'last').

    Raises:
        ValueError: If the name is not registered
    """
    try:
        return REDUCE_TRANSFORMS[name]
    except KeyError:
        choices = ", ".join(sorted(REDUCE_TRANSFORMS))
        raise ValueError(f"Unknown reducer '{name}' (choose from: {choices})") from None
