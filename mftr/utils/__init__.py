"""Numerical utilities shared across models and evaluation."""

from .linalg import solve_dense, weighted_normal_equations, weighted_ols
from .normalization import weighted_std, zscore

__all__ = [
    "solve_dense",
    "weighted_normal_equations",
    "weighted_ols",
    "weighted_std",
    "zscore",
]
