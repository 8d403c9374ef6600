"""Rating Blend Optimizer.

Searches for the weight w in

    blend(team) = w * z_A(team) + (1 - w) * z_B(team)

where z_A / z_B are the two rating sources standardized with their own
mean/std. In the pipeline, source A is the independently produced external
rating and source B is the market-fitted ridge rating, so w = 0 means the
external rating is discarded entirely.

Each w is scored on a primary set (recent weeks) and a secondary set
(earlier weeks) by treating blend(home) - blend(away) as the predictor:

    J(w) = 0.5 * (pearson_primary + spearman_primary)
         + 0.5 * (pearson_secondary + spearman_secondary)

Guardrails:
- Safety filter (hard): any w with negative secondary Pearson is discarded.
  If nothing survives, NoValidBlendError.
- Floor: if the best w is 0 and secondary Pearson < 0.25, use the floor
  weight (0.10) when it passes the safety filter, else keep w = 0 and
  mark the result suspect.
- Sanity (soft): weighted slope of target on the final blended difference
  over all evaluation rows must be positive; failure is a flag.
"""

import logging
import warnings
from dataclasses import asdict, dataclass, field
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from config.settings import get_settings
from mftr.data.schema import GameObservation
from mftr.errors import InsufficientDataError, NoValidBlendError, SanityCheckFailure
from mftr.evaluation.metrics import compute_metrics
from mftr.utils.normalization import zscore

logger = logging.getLogger(__name__)

# Objective values closer than this are treated as a tie
OBJECTIVE_TIE_TOL = 1e-12


@dataclass
class BlendNormalization:
    """Standardization constants for the two rating sources."""

    mean_a: float
    std_a: float
    mean_b: float
    std_b: float

    def to_dict(self) -> dict:
        return {"meanA": self.mean_a, "stdA": self.std_a, "meanB": self.mean_b, "stdB": self.std_b}

    @classmethod
    def from_dict(cls, data: dict) -> "BlendNormalization":
        return cls(
            mean_a=data["meanA"], std_a=data["stdA"], mean_b=data["meanB"], std_b=data["stdB"]
        )


@dataclass
class SetMetrics:
    """Blend-predictor scores on one evaluation set."""

    pearson: float
    spearman: float
    rmse: float
    n: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BlendCandidate:
    """One grid point of the blend search."""

    weight: float
    primary: SetMetrics
    secondary: SetMetrics
    objective: float

    @property
    def valid(self) -> bool:
        return self.secondary.pearson >= 0


@dataclass
class BlendConfig:
    """Chosen blend weight plus everything needed to reproduce the blend."""

    optimal_weight: float
    normalization: BlendNormalization
    per_set_metrics: dict[str, SetMetrics]
    objective: float
    floor_applied: bool = False
    suspect: bool = False
    sanity_slope: Optional[float] = None
    sanity_passed: bool = True

    def blend_rating(
        self,
        team: str,
        ratings_a: dict[str, float],
        ratings_b: dict[str, float],
    ) -> float:
        """Blended standardized rating for one team (missing source value = average)."""
        norm = self.normalization
        z_a = (ratings_a[team] - norm.mean_a) / norm.std_a if team in ratings_a else 0.0
        z_b = (ratings_b[team] - norm.mean_b) / norm.std_b if team in ratings_b else 0.0
        w = self.optimal_weight
        return w * z_a + (1 - w) * z_b

    def rating_diff(
        self,
        home_team: str,
        away_team: str,
        ratings_a: dict[str, float],
        ratings_b: dict[str, float],
    ) -> float:
        """Blended home-minus-away rating difference in standardized units."""
        return self.blend_rating(home_team, ratings_a, ratings_b) - self.blend_rating(
            away_team, ratings_a, ratings_b
        )

    def predict_spread(
        self,
        home_team: str,
        away_team: str,
        ratings_a: dict[str, float],
        ratings_b: dict[str, float],
        hfa: float,
        hfa_feature: float = 1.0,
    ) -> float:
        """Blended spread in points: the standardized difference rescaled by source B's std, plus HFA."""
        diff = self.rating_diff(home_team, away_team, ratings_a, ratings_b)
        return diff * self.normalization.std_b + hfa_feature * hfa

    def to_dict(self) -> dict:
        return {
            "optimalWeight": self.optimal_weight,
            "normalization": self.normalization.to_dict(),
            "perSetMetrics": {k: v.to_dict() for k, v in self.per_set_metrics.items()},
            "objective": self.objective,
            "flags": {
                "floorApplied": self.floor_applied,
                "suspect": self.suspect,
                "sanitySlope": self.sanity_slope,
                "sanityPassed": self.sanity_passed,
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BlendConfig":
        flags = data.get("flags", {})
        return cls(
            optimal_weight=data["optimalWeight"],
            normalization=BlendNormalization.from_dict(data["normalization"]),
            per_set_metrics={k: SetMetrics(**v) for k, v in data["perSetMetrics"].items()},
            objective=data.get("objective", float("nan")),
            floor_applied=flags.get("floorApplied", False),
            suspect=flags.get("suspect", False),
            sanity_slope=flags.get("sanitySlope"),
            sanity_passed=flags.get("sanityPassed", True),
        )


@dataclass
class BlendResult:
    """Chosen config plus the full search table."""

    config: BlendConfig
    candidates: list[BlendCandidate] = field(default_factory=list)

    @property
    def optimal_weight(self) -> float:
        return self.config.optimal_weight

    def candidates_df(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "w": c.weight,
                    "pearson_primary": c.primary.pearson,
                    "spearman_primary": c.primary.spearman,
                    "rmse_primary": c.primary.rmse,
                    "pearson_secondary": c.secondary.pearson,
                    "spearman_secondary": c.secondary.spearman,
                    "rmse_secondary": c.secondary.rmse,
                    "objective": c.objective,
                    "valid": c.valid,
                }
                for c in self.candidates
            ]
        )


class _EvalSet:
    """Per-game standardized rating differences for one evaluation set."""

    def __init__(self, games, z_a: dict, z_b: dict):
        self.games = list(games)
        self.diff_a = np.array([z_a.get(g.home_team_id, 0.0) - z_a.get(g.away_team_id, 0.0) for g in self.games])
        self.diff_b = np.array([z_b.get(g.home_team_id, 0.0) - z_b.get(g.away_team_id, 0.0) for g in self.games])
        self.targets = np.array([g.target_spread for g in self.games])
        self.weights = np.array([g.row_weight for g in self.games])

    def diffs(self, w: float) -> np.ndarray:
        return w * self.diff_a + (1 - w) * self.diff_b

    def score(self, w: float) -> SetMetrics:
        m = compute_metrics(self.diffs(w), self.targets)
        return SetMetrics(pearson=m.pearson, spearman=m.spearman, rmse=m.rmse, n=m.n)


def weighted_slope(x: np.ndarray, y: np.ndarray, w: np.ndarray, tol: float = 1e-10) -> float:
    """Slope of a weighted univariate regression of y on x (0 if x is constant)."""
    mean_x = np.average(x, weights=w)
    mean_y = np.average(y, weights=w)
    var_x = np.average((x - mean_x) ** 2, weights=w)
    if var_x <= tol:
        return 0.0
    cov = np.average((x - mean_x) * (y - mean_y), weights=w)
    return float(cov / var_x)


def _standardize_source(ratings: dict[str, float], variance_floor: float):
    teams = sorted(ratings)
    z, mean, std = zscore([ratings[t] for t in teams], variance_floor)
    return dict(zip(teams, z)), mean, std


class RatingBlendOptimizer:
    """Grid-search the blend weight between two rating sources."""

    def __init__(
        self,
        weight_step: Optional[float] = None,
        floor_weight: Optional[float] = None,
        guardrail_pearson: Optional[float] = None,
        primary_label: Optional[str] = None,
        secondary_label: Optional[str] = None,
        variance_floor: Optional[float] = None,
    ):
        settings = get_settings()
        self.weight_step = weight_step if weight_step is not None else settings.blend_weight_step
        if not 0 < self.weight_step <= 1:
            raise ValueError(f"weight_step must be in (0, 1], got {self.weight_step}")
        self.floor_weight = floor_weight if floor_weight is not None else settings.blend_floor_weight
        self.guardrail_pearson = (
            guardrail_pearson if guardrail_pearson is not None else settings.blend_guardrail_pearson
        )
        self.primary_label = primary_label or settings.primary_set_label
        self.secondary_label = secondary_label or settings.secondary_set_label
        self.variance_floor = (
            variance_floor if variance_floor is not None else settings.prior_variance_floor
        )

    def weight_grid(self) -> np.ndarray:
        """Weights 0, step, 2*step, ..., always ending at exactly 1.0."""
        grid = np.round(np.arange(0.0, 1.0 + self.weight_step / 2, self.weight_step), 10)
        grid = grid[grid <= 1.0]
        if grid[-1] < 1.0:
            grid = np.append(grid, 1.0)
        return grid

    def _candidate(self, w: float, primary: _EvalSet, secondary: _EvalSet) -> BlendCandidate:
        p = primary.score(w)
        s = secondary.score(w)
        objective = 0.5 * (p.pearson + p.spearman) + 0.5 * (s.pearson + s.spearman)
        return BlendCandidate(weight=float(w), primary=p, secondary=s, objective=objective)

    def optimize(
        self,
        ratings_a: dict[str, float],
        ratings_b: dict[str, float],
        games: Iterable[GameObservation],
    ) -> BlendResult:
        """Find the blend weight maximizing J(w) subject to the guardrails.

        Args:
            ratings_a: Source A ratings by team id (w = 1 is pure A)
            ratings_b: Source B ratings by team id (w = 0 is pure B)
            games: Evaluation games; set_label picks primary vs secondary

        Returns:
            BlendResult

        Raises:
            InsufficientDataError: If either evaluation set is empty
            NoValidBlendError: If every weight fails the secondary-set sign filter
        """
        if not ratings_a or not ratings_b:
            raise InsufficientDataError("Both rating sources must be non-empty")

        games = list(games)
        z_a, mean_a, std_a = _standardize_source(ratings_a, self.variance_floor)
        z_b, mean_b, std_b = _standardize_source(ratings_b, self.variance_floor)
        normalization = BlendNormalization(mean_a=mean_a, std_a=std_a, mean_b=mean_b, std_b=std_b)

        logger.info(
            f"Normalized source A: mean={mean_a:.4f}, std={std_a:.4f}; "
            f"source B: mean={mean_b:.4f}, std={std_b:.4f}"
        )

        primary = _EvalSet([g for g in games if g.set_label == self.primary_label], z_a, z_b)
        secondary = _EvalSet([g for g in games if g.set_label == self.secondary_label], z_a, z_b)
        if not primary.games or not secondary.games:
            raise InsufficientDataError(
                f"Blend search needs both evaluation sets: "
                f"primary={len(primary.games)}, secondary={len(secondary.games)} rows"
            )

        candidates = [self._candidate(w, primary, secondary) for w in self.weight_grid()]
        for c in candidates:
            logger.debug(
                f"w={c.weight:.2f}: primary(P={c.primary.pearson:.3f},S={c.primary.spearman:.3f}) "
                f"secondary(P={c.secondary.pearson:.3f},S={c.secondary.spearman:.3f}) J={c.objective:.4f}"
            )

        valid = [c for c in candidates if c.valid]
        if not valid:
            raise NoValidBlendError(
                "No valid blend: every weight has negative secondary-set Pearson"
            )

        # Ties on J go to the smallest weight (first in grid order)
        best_objective = max(c.objective for c in valid)
        best = next(c for c in valid if c.objective >= best_objective - OBJECTIVE_TIE_TOL)

        floor_applied = False
        suspect = False
        if best.weight == 0.0 and best.secondary.pearson < self.guardrail_pearson:
            logger.warning(
                f"Best weight is w=0.00 but secondary Pearson ({best.secondary.pearson:.4f}) "
                f"< {self.guardrail_pearson}; trying floor w={self.floor_weight:.2f}"
            )
            floor = next(
                (c for c in candidates if abs(c.weight - self.floor_weight) < 1e-9),
                None,
            ) or self._candidate(self.floor_weight, primary, secondary)
            if floor.valid:
                best = floor
                floor_applied = True
                logger.info(f"Using floor w={floor.weight:.2f}: secondary Pearson={floor.secondary.pearson:.4f}")
            else:
                suspect = True
                logger.warning(f"Floor w={self.floor_weight:.2f} fails the safety filter; keeping w=0.00 (suspect)")

        sanity_slope = self._sanity_slope(best.weight, primary, secondary)
        sanity_passed = sanity_slope > 0
        if not sanity_passed:
            msg = f"Blend sanity check failed: slope of target on rating diff = {sanity_slope:.4f}"
            logger.warning(msg)
            warnings.warn(msg, SanityCheckFailure, stacklevel=2)

        config = BlendConfig(
            optimal_weight=best.weight,
            normalization=normalization,
            per_set_metrics={"primary": best.primary, "secondary": best.secondary},
            objective=best.objective,
            floor_applied=floor_applied,
            suspect=suspect,
            sanity_slope=sanity_slope,
            sanity_passed=sanity_passed,
        )

        logger.info(
            f"Best blend weight: w={best.weight:.2f} (J={best.objective:.4f}, "
            f"primary r={best.primary.pearson:.4f}, secondary r={best.secondary.pearson:.4f})"
        )

        return BlendResult(config=config, candidates=candidates)

    @staticmethod
    def _sanity_slope(w: float, primary: _EvalSet, secondary: _EvalSet) -> float:
        x = np.concatenate([primary.diffs(w), secondary.diffs(w)])
        y = np.concatenate([primary.targets, secondary.targets])
        weights = np.concatenate([primary.weights, secondary.weights])
        return weighted_slope(x, y, weights)
