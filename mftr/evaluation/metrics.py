"""Prediction scoring: RMSE, MAE, Pearson, Spearman and sign agreement."""

from dataclasses import asdict, dataclass
from typing import Optional

import numpy as np
from scipy.stats import rankdata
from sklearn.metrics import mean_absolute_error, mean_squared_error

# Standard deviation at or below this is treated as a constant vector
CORR_STD_TOL = 1e-10


@dataclass
class MetricsRecord:
    """Scores of one prediction vector against its targets."""

    rmse: float
    mae: float
    pearson: float
    spearman: float
    sign_agreement: float
    n: int

    def to_dict(self) -> dict:
        return asdict(self)

    def __repr__(self) -> str:
        return (
            f"RMSE={self.rmse:.3f} MAE={self.mae:.3f} r={self.pearson:.3f} "
            f"rho={self.spearman:.3f} sign={self.sign_agreement:.1%} (n={self.n})"
        )


def pearson_corr(x, y, weights=None) -> float:
    """Weighted Pearson correlation. Returns 0.0 when either side is constant."""
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.size < 2:
        return 0.0
    w = np.ones_like(x) if weights is None else np.asarray(weights, dtype=np.float64)

    x_dev = x - np.average(x, weights=w)
    y_dev = y - np.average(y, weights=w)
    std_x = np.sqrt(np.average(x_dev**2, weights=w))
    std_y = np.sqrt(np.average(y_dev**2, weights=w))
    if std_x <= CORR_STD_TOL or std_y <= CORR_STD_TOL:
        return 0.0
    return float(np.average(x_dev * y_dev, weights=w) / (std_x * std_y))


def spearman_corr(x, y, weights=None) -> float:
    """Spearman rank correlation (average ranks for ties), optionally weighted."""
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.size < 2:
        return 0.0
    return pearson_corr(rankdata(x), rankdata(y), weights)


def sign_agreement(predictions, targets) -> float:
    """Fraction of non-zero-target rows where sign(prediction) == sign(target)."""
    predictions = np.asarray(predictions, dtype=np.float64)
    targets = np.asarray(targets, dtype=np.float64)
    mask = targets != 0
    if not mask.any():
        return 0.0
    return float(np.mean(np.sign(predictions[mask]) == np.sign(targets[mask])))


def compute_metrics(predictions, targets, weights: Optional[np.ndarray] = None) -> MetricsRecord:
    """Score a prediction vector against a target vector.

    Args:
        predictions: Predicted values
        targets: Observed values
        weights: Optional row weights (used for RMSE, MAE and correlations)

    Returns:
        MetricsRecord (all metrics NaN when there are no rows)
    """
    predictions = np.asarray(predictions, dtype=np.float64)
    targets = np.asarray(targets, dtype=np.float64)
    if predictions.shape != targets.shape:
        raise ValueError(
            f"predictions and targets differ in shape: {predictions.shape} vs {targets.shape}"
        )

    n = int(targets.size)
    if n == 0:
        nan = float("nan")
        return MetricsRecord(rmse=nan, mae=nan, pearson=nan, spearman=nan, sign_agreement=nan, n=0)

    return MetricsRecord(
        rmse=float(np.sqrt(mean_squared_error(targets, predictions, sample_weight=weights))),
        mae=float(mean_absolute_error(targets, predictions, sample_weight=weights)),
        pearson=pearson_corr(predictions, targets, weights),
        spearman=spearman_corr(predictions, targets, weights),
        sign_agreement=sign_agreement(predictions, targets),
        n=n,
    )
