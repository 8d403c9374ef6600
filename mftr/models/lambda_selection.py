"""Lambda Selector: leave-one-week-out cross-validation of the ridge strength.

Only weeks inside the validation window (recent, high-confidence weeks) are
held out. For each candidate lambda the ridge system is refit on every other
week and scored by Pearson r between predicted and actual spread on the
held-out week. Fold scores are averaged per lambda; the best mean wins.

Folds are independent, so they may run in a process pool. Scores are always
aggregated in held-out-week order, so results do not depend on which worker
finishes first.
"""

import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np
from sklearn.model_selection import LeaveOneGroupOut

from config.settings import get_settings
from mftr.data.schema import GameObservation, TeamPrior
from mftr.errors import InsufficientDataError, SingularSystemError
from mftr.evaluation.metrics import pearson_corr
from mftr.models.equations import trim_outliers
from mftr.models.priors import PriorVectorBuilder
from mftr.models.ridge import fit_ridge

logger = logging.getLogger(__name__)


@dataclass
class FoldScore:
    """Out-of-fold score for one (lambda, held-out week) pair."""

    lam: float
    held_out_week: int
    pearson: Optional[float]
    n_train: int
    n_test: int
    skip_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.pearson is None


@dataclass
class LambdaSelectionResult:
    """Outcome of lambda cross-validation."""

    best_lambda: float
    mean_scores: dict[float, float] = field(default_factory=dict)
    fold_scores: list[FoldScore] = field(default_factory=list)
    used_fallback: bool = False
    fallback_reason: Optional[str] = None

    @property
    def skipped_folds(self) -> list[FoldScore]:
        return [f for f in self.fold_scores if f.skipped]

    def to_dict(self) -> dict:
        return {
            "best_lambda": self.best_lambda,
            "mean_scores": {str(k): v for k, v in self.mean_scores.items()},
            "used_fallback": self.used_fallback,
            "fallback_reason": self.fallback_reason,
            "folds": [
                {
                    "lambda": f.lam,
                    "held_out_week": f.held_out_week,
                    "pearson": f.pearson,
                    "n_train": f.n_train,
                    "n_test": f.n_test,
                    "skip_reason": f.skip_reason,
                }
                for f in self.fold_scores
            ],
        }


def _evaluate_fold(
    lam: float,
    held_out_week: int,
    train_games: list[GameObservation],
    test_games: list[GameObservation],
    priors: list[TeamPrior],
    team_universe: list[str],
    outlier_cap: float,
    min_games: int,
    prior_builder: PriorVectorBuilder,
    zero_variance_tol: float,
) -> FoldScore:
    """Fit on train_games and score Pearson r on test_games.

    Top-level function so it can be pickled into a worker process.
    """
    n_train, n_test = len(train_games), len(test_games)
    try:
        solution = fit_ridge(
            train_games,
            priors,
            lam,
            team_universe=team_universe,
            outlier_cap=outlier_cap,
            min_games=min_games,
            prior_builder=prior_builder,
        )
    except (InsufficientDataError, SingularSystemError) as e:
        return FoldScore(lam, held_out_week, None, n_train, n_test, skip_reason=str(e))

    targets = np.array([g.target_spread for g in test_games])
    preds = solution.predict_games(test_games)

    if n_test < 2:
        return FoldScore(lam, held_out_week, None, n_train, n_test, skip_reason="fewer than 2 test games")
    if np.std(preds) <= zero_variance_tol:
        return FoldScore(lam, held_out_week, None, n_train, n_test, skip_reason="zero-variance predictions")
    if np.std(targets) <= zero_variance_tol:
        return FoldScore(lam, held_out_week, None, n_train, n_test, skip_reason="zero-variance targets")

    return FoldScore(lam, held_out_week, pearson_corr(preds, targets), n_train, n_test)


class LambdaSelector:
    """Choose the ridge lambda by leave-one-week-out cross-validation."""

    def __init__(
        self,
        lambda_grid: Optional[Iterable[float]] = None,
        default_lambda: Optional[float] = None,
        outlier_cap: Optional[float] = None,
        min_games: Optional[int] = None,
        n_workers: Optional[int] = None,
        prior_builder: Optional[PriorVectorBuilder] = None,
        zero_variance_tol: Optional[float] = None,
    ):
        """Initialize the selector.

        Args:
            lambda_grid: Candidate lambdas (all must be > 0)
            default_lambda: Returned when CV cannot produce a usable score
            outlier_cap: Passed to the equation builder (and applied to test weeks)
            min_games: Minimum training rows per fold
            n_workers: Worker processes for fold evaluation (1 = sequential)
            prior_builder: Prior vector builder shared by every fold
            zero_variance_tol: Std below which a fold's predictions are degenerate
        """
        settings = get_settings()
        self.lambda_grid = sorted(
            float(x) for x in (lambda_grid if lambda_grid is not None else settings.lambda_grid)
        )
        if not self.lambda_grid:
            raise ValueError("lambda_grid must not be empty")
        if any(lam <= 0 for lam in self.lambda_grid):
            raise ValueError(f"lambda_grid must be positive, got {self.lambda_grid}")

        self.default_lambda = (
            default_lambda if default_lambda is not None else settings.ridge_lambda_default
        )
        self.outlier_cap = outlier_cap if outlier_cap is not None else settings.outlier_cap
        self.min_games = min_games if min_games is not None else settings.min_games
        self.n_workers = n_workers if n_workers is not None else settings.cv_workers
        self.prior_builder = prior_builder or PriorVectorBuilder()
        self.zero_variance_tol = (
            zero_variance_tol if zero_variance_tol is not None else settings.zero_variance_tol
        )

    def _fallback(self, reason: str, fold_scores=None) -> LambdaSelectionResult:
        logger.warning(f"{reason}; using default lambda={self.default_lambda:g}")
        return LambdaSelectionResult(
            best_lambda=self.default_lambda,
            fold_scores=fold_scores or [],
            used_fallback=True,
            fallback_reason=reason,
        )

    def select(
        self,
        games: Iterable[GameObservation],
        priors: Iterable[TeamPrior],
        validation_weeks: Iterable[int],
        team_universe: Optional[Iterable[str]] = None,
    ) -> LambdaSelectionResult:
        """Run leave-one-week-out CV over the lambda grid.

        Args:
            games: All game observations for the run
            priors: Team priors
            validation_weeks: Weeks eligible to be held out
            team_universe: Team ids to rate. Defaults to every team in `games`,
                so teams seen only in a held-out week still get prior ratings.

        Returns:
            LambdaSelectionResult
        """
        games = list(games)
        priors = list(priors)
        validation_weeks = set(validation_weeks)
        if team_universe is None:
            team_universe = {g.home_team_id for g in games} | {g.away_team_id for g in games}
        team_universe = sorted(team_universe)

        logger.info(
            f"Cross-validating lambda (leave-one-week-out) over {self.lambda_grid}, "
            f"validation weeks {sorted(validation_weeks)}"
        )

        if not games:
            return self._fallback("No games for cross-validation")

        weeks = np.array([g.week for g in games])
        folds = []
        for train_idx, test_idx in LeaveOneGroupOut().split(np.zeros(len(games)), groups=weeks):
            held_out = int(weeks[test_idx[0]])
            if held_out not in validation_weeks:
                continue
            train = [games[i] for i in train_idx]
            test, _ = trim_outliers([games[i] for i in test_idx], self.outlier_cap)
            folds.append((held_out, train, test))

        if len(folds) < 2:
            return self._fallback(f"Insufficient weeks for CV ({len(folds)} eligible folds)")

        tasks = [
            dict(
                lam=lam,
                held_out_week=week,
                train_games=train,
                test_games=test,
                priors=priors,
                team_universe=team_universe,
                outlier_cap=self.outlier_cap,
                min_games=self.min_games,
                prior_builder=self.prior_builder,
                zero_variance_tol=self.zero_variance_tol,
            )
            for lam in self.lambda_grid
            for week, train, test in folds
        ]

        if self.n_workers > 1:
            logger.info(f"Evaluating {len(tasks)} folds in parallel ({self.n_workers} workers)")
            with ProcessPoolExecutor(max_workers=self.n_workers) as executor:
                futures = [executor.submit(_evaluate_fold, **task) for task in tasks]
                fold_scores = [f.result() for f in futures]
        else:
            fold_scores = [_evaluate_fold(**task) for task in tasks]

        fold_scores.sort(key=lambda f: (f.lam, f.held_out_week))

        mean_scores = {}
        for lam in self.lambda_grid:
            lam_folds = [f for f in fold_scores if f.lam == lam]
            for f in lam_folds:
                if f.skipped:
                    logger.warning(
                        f"Skipping fold lambda={lam:g}, week={f.held_out_week}: {f.skip_reason}"
                    )
            scores = [f.pearson for f in lam_folds if not f.skipped]
            if scores:
                mean_scores[lam] = float(np.mean(scores))
                logger.info(
                    f"Lambda={lam:g}: avg Pearson={mean_scores[lam]:.4f} over {len(scores)} folds"
                )

        if not mean_scores:
            return self._fallback("No valid CV results", fold_scores)

        # Ties go to the larger lambda (stronger pull toward the prior)
        best_lambda = max(mean_scores, key=lambda lam: (mean_scores[lam], lam))
        logger.info(
            f"Best lambda: {best_lambda:g} (avg Pearson: {mean_scores[best_lambda]:.4f})"
        )

        return LambdaSelectionResult(
            best_lambda=best_lambda,
            mean_scores=mean_scores,
            fold_scores=fold_scores,
        )
