"""Rating and feature standardization utilities."""

from typing import Optional

import numpy as np

# Variance below this is treated as a constant feature
DEFAULT_VARIANCE_FLOOR = 1e-10


def zscore(
    values,
    variance_floor: float = DEFAULT_VARIANCE_FLOOR,
    mean: Optional[float] = None,
    std: Optional[float] = None,
) -> tuple[np.ndarray, float, float]:
    """Standardize values to zero mean / unit variance.

    Uses the population standard deviation. The variance is floored so a
    constant feature maps to all zeros instead of dividing by zero.

    Args:
        values: 1-D array-like of raw values
        variance_floor: Minimum variance used as the divisor
        mean: Precomputed mean (e.g. from a training set)
        std: Precomputed std (e.g. from a training set)

    Returns:
        Tuple of (standardized values, mean, std actually used)
    """
    arr = np.asarray(values, dtype=np.float64)
    if mean is None:
        mean = float(arr.mean()) if arr.size else 0.0
    if std is None:
        var = float(arr.var()) if arr.size else 0.0
        std = float(np.sqrt(max(var, variance_floor)))
    return (arr - mean) / std, mean, std


def weighted_std(values, weights) -> float:
    """Weighted population standard deviation."""
    values = np.asarray(values, dtype=np.float64)
    weights = np.asarray(weights, dtype=np.float64)
    mean = np.average(values, weights=weights)
    return float(np.sqrt(np.average((values - mean) ** 2, weights=weights)))
