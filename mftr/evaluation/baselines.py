"""Baseline suite the blended ridge model must beat.

Models:
1. zero               - predicts 0 for every game
2. hfa_only           - weighted OLS of target on {intercept, hfa_feature}
3. ols_ratingdiff_hfa - weighted OLS of target on {intercept, rating_diff, hfa_feature}
4. ridge_blend        - the primary model being validated

Features with ~zero weighted variance are dropped before fitting so the
design never goes singular. hfa_only is skipped when its only feature is
dropped (e.g. no neutral-site games), and the health check then falls back
to the zero model as its reference.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import pandas as pd

from config.settings import get_settings
from mftr.errors import SingularSystemError
from mftr.evaluation.metrics import MetricsRecord, compute_metrics
from mftr.utils.linalg import weighted_ols
from mftr.utils.normalization import weighted_std

logger = logging.getLogger(__name__)

ZERO_MODEL = "zero"
HFA_ONLY_MODEL = "hfa_only"
FULL_OLS_MODEL = "ols_ratingdiff_hfa"
PRIMARY_MODEL = "ridge_blend"


@dataclass
class BaselineResult:
    """Scores (or skip reason) for one model in the comparison."""

    model: str
    metrics: Optional[MetricsRecord]
    skipped: bool = False
    skip_reason: Optional[str] = None
    dropped_features: list[str] = field(default_factory=list)
    coefficients: dict[str, float] = field(default_factory=dict)


@dataclass
class BaselineComparison:
    """All baseline results for one data split."""

    split: str
    results: dict[str, BaselineResult]

    @property
    def primary(self) -> BaselineResult:
        return self.results[PRIMARY_MODEL]

    @property
    def reference(self) -> BaselineResult:
        """HFA-only baseline, or the zero model when HFA-only was skipped."""
        hfa = self.results.get(HFA_ONLY_MODEL)
        if hfa is not None and not hfa.skipped:
            return hfa
        return self.results[ZERO_MODEL]

    @property
    def primary_beats_hfa(self) -> bool:
        """Primary model must have lower RMSE and higher Pearson than the reference."""
        primary = self.primary.metrics
        ref = self.reference.metrics
        return primary.rmse < ref.rmse and primary.pearson > ref.pearson

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for name, res in self.results.items():
            m = res.metrics
            rows.append(
                {
                    "model_name": name,
                    "rmse": m.rmse if m else np.nan,
                    "mae": m.mae if m else np.nan,
                    "pearson": m.pearson if m else np.nan,
                    "spearman": m.spearman if m else np.nan,
                    "sign_agreement": m.sign_agreement if m else np.nan,
                    "skipped": res.skipped,
                    "dropped_features": ";".join(res.dropped_features),
                }
            )
        return pd.DataFrame(rows)


def fit_ols_baseline(
    model: str,
    features: dict[str, np.ndarray],
    targets: np.ndarray,
    weights: np.ndarray,
    tol: float,
) -> BaselineResult:
    """Weighted OLS on an intercept plus every feature with non-trivial variance."""
    kept = {name: col for name, col in features.items() if weighted_std(col, weights) > tol}
    dropped = [name for name in features if name not in kept]
    if dropped:
        logger.info(f"{model}: dropping zero-variance features {dropped}")
    if not kept:
        return BaselineResult(
            model=model,
            metrics=None,
            skipped=True,
            skip_reason="all features have ~zero variance",
            dropped_features=dropped,
        )

    names = ["intercept"] + list(kept)
    X = np.column_stack([np.ones(len(targets))] + list(kept.values()))
    try:
        beta = weighted_ols(X, targets, weights)
    except SingularSystemError as e:
        logger.warning(f"{model}: OLS failed ({e}); skipping")
        return BaselineResult(
            model=model, metrics=None, skipped=True, skip_reason=str(e), dropped_features=dropped
        )

    preds = X @ beta
    return BaselineResult(
        model=model,
        metrics=compute_metrics(preds, targets, weights),
        dropped_features=dropped,
        coefficients={name: float(b) for name, b in zip(names, beta)},
    )


def compare_baselines(
    primary_predictions,
    targets,
    rating_diff,
    hfa_feature,
    weights=None,
    split: str = "all",
    tol: Optional[float] = None,
) -> BaselineComparison:
    """Score the primary model alongside the baseline suite.

    Args:
        primary_predictions: Predictions of the model under validation
        targets: Observed home-minus-away spreads
        rating_diff: Blended rating difference per game (full OLS feature)
        hfa_feature: 1.0 for home games, 0.0 at neutral sites
        weights: Row weights (default all 1)
        split: Label for the data split being evaluated
        tol: Weighted std at or below which a feature is dropped

    Returns:
        BaselineComparison
    """
    targets = np.asarray(targets, dtype=np.float64)
    primary_predictions = np.asarray(primary_predictions, dtype=np.float64)
    rating_diff = np.asarray(rating_diff, dtype=np.float64)
    hfa_feature = np.asarray(hfa_feature, dtype=np.float64)
    weights = np.ones_like(targets) if weights is None else np.asarray(weights, dtype=np.float64)
    if tol is None:
        tol = get_settings().zero_variance_tol
    if targets.size == 0:
        raise ValueError(f"No rows to evaluate for split {split!r}")

    results = {
        ZERO_MODEL: BaselineResult(
            model=ZERO_MODEL, metrics=compute_metrics(np.zeros_like(targets), targets, weights)
        ),
        HFA_ONLY_MODEL: fit_ols_baseline(
            HFA_ONLY_MODEL, {"hfa": hfa_feature}, targets, weights, tol
        ),
        FULL_OLS_MODEL: fit_ols_baseline(
            FULL_OLS_MODEL, {"rating_diff": rating_diff, "hfa": hfa_feature}, targets, weights, tol
        ),
        PRIMARY_MODEL: BaselineResult(
            model=PRIMARY_MODEL, metrics=compute_metrics(primary_predictions, targets, weights)
        ),
    }

    if results[HFA_ONLY_MODEL].skipped:
        logger.warning(
            f"[{split}] HFA-only baseline skipped ({results[HFA_ONLY_MODEL].skip_reason}); "
            f"health check compares against the zero model"
        )

    comparison = BaselineComparison(split=split, results=results)
    for name, res in results.items():
        if res.metrics is not None:
            logger.info(f"[{split}] {name:<20} {res.metrics!r}")
    return comparison
