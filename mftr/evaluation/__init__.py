"""Prediction scoring and baseline comparison."""

from .baselines import BaselineComparison, BaselineResult, compare_baselines
from .metrics import MetricsRecord, compute_metrics, pearson_corr, spearman_corr

__all__ = [
    "BaselineComparison",
    "BaselineResult",
    "compare_baselines",
    "MetricsRecord",
    "compute_metrics",
    "pearson_corr",
    "spearman_corr",
]
