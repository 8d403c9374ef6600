"""Shared dense linear solve for the ridge solver and the OLS baselines.

Both build weighted normal equations and solve them through the same LU
factorization with partial (row) pivoting, so identical inputs always give
bit-identical solutions.
"""

import logging
import warnings

import numpy as np
from scipy import linalg, sparse

from mftr.errors import SingularSystemError

logger = logging.getLogger(__name__)

# Pivot magnitude (relative to the largest matrix entry) treated as singular
PIVOT_RTOL = 1e-12


def solve_dense(matrix: np.ndarray, rhs: np.ndarray, pivot_rtol: float = PIVOT_RTOL) -> np.ndarray:
    """Solve matrix @ x = rhs with LU decomposition and partial pivoting.

    Args:
        matrix: Square (n, n) coefficient matrix
        rhs: Right-hand side of length n
        pivot_rtol: Relative pivot tolerance below which the system is singular

    Returns:
        Solution vector x

    Raises:
        SingularSystemError: If the matrix is singular, non-finite, or
            numerically rank-deficient
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    rhs = np.asarray(rhs, dtype=np.float64)

    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {matrix.shape}")
    if rhs.shape[0] != matrix.shape[0]:
        raise ValueError(f"rhs length {rhs.shape[0]} does not match matrix size {matrix.shape[0]}")
    if not (np.all(np.isfinite(matrix)) and np.all(np.isfinite(rhs))):
        raise SingularSystemError("Normal equations contain non-finite values")

    with warnings.catch_warnings():
        warnings.simplefilter("error", linalg.LinAlgWarning)
        try:
            lu, piv = linalg.lu_factor(matrix, check_finite=False)
        except (linalg.LinAlgWarning, linalg.LinAlgError) as e:
            raise SingularSystemError(f"LU factorization failed: {e}") from e

    scale = max(float(np.max(np.abs(matrix))), 1.0)
    min_pivot = float(np.min(np.abs(np.diag(lu))))
    if min_pivot <= pivot_rtol * scale:
        raise SingularSystemError(
            f"System is singular: smallest pivot {min_pivot:.3e} "
            f"(scale {scale:.3e}, n={matrix.shape[0]})"
        )

    x = linalg.lu_solve((lu, piv), rhs, check_finite=False)
    if not np.all(np.isfinite(x)):
        raise SingularSystemError("Solution contains non-finite values")
    return x


def weighted_normal_equations(X, y: np.ndarray, w: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Build X^T W X and X^T W y for a dense or sparse design matrix."""
    y = np.asarray(y, dtype=np.float64)
    w = np.asarray(w, dtype=np.float64)

    if sparse.issparse(X):
        W = sparse.diags(w)
        xtwx = (X.T @ W @ X).toarray()
        xtwy = X.T @ (w * y)
    else:
        X = np.asarray(X, dtype=np.float64)
        xtwx = X.T @ (X * w[:, None])
        xtwy = X.T @ (w * y)

    return xtwx, np.asarray(xtwy, dtype=np.float64).ravel()


def weighted_ols(X: np.ndarray, y: np.ndarray, w=None) -> np.ndarray:
    """Weighted ordinary least squares coefficients (no implicit intercept).

    Raises:
        SingularSystemError: If the design is rank-deficient
    """
    X = np.asarray(X, dtype=np.float64)
    if w is None:
        w = np.ones(X.shape[0])
    xtwx, xtwy = weighted_normal_equations(X, y, w)
    return solve_dense(xtwx, xtwy)
