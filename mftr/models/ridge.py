"""Ridge solver for market-fitted team ratings (MFTR) with a prior.

Solves

    (A^T W A + lambda * D) x = A^T W b + lambda * D * s_prior

where x = [team ratings..., hfa], W holds the row weights, D is diagonal
with 1 on team columns and 0 on the HFA column, and s_prior is the prior
vector (0 in the HFA slot). HFA is never shrunk. lambda > 0 keeps the team
block positive-definite even when the schedule graph is disconnected.

Ratings are centered to mean 0 after solving; this changes no pairwise
difference and leaves the HFA estimate untouched.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from config.settings import get_settings
from mftr.data.schema import GameObservation, TeamPrior
from mftr.evaluation.metrics import MetricsRecord, compute_metrics
from mftr.models.equations import EquationSystem, build_equations
from mftr.models.priors import PriorVector, PriorVectorBuilder
from mftr.utils.linalg import solve_dense, weighted_normal_equations

logger = logging.getLogger(__name__)


@dataclass
class RidgeSolution:
    """Solved team ratings plus the HFA constant."""

    ratings: dict[str, float]
    hfa: float
    lam: float
    prior: dict[str, float] = field(default_factory=dict)
    n_games: int = 0
    n_trimmed: int = 0

    @property
    def teams(self) -> list[str]:
        return list(self.ratings)

    def get_rating(self, team: str) -> Optional[float]:
        return self.ratings.get(team)

    def predict_margin(self, home_team: str, away_team: str, neutral_site: bool = False) -> float:
        """Predict the home-minus-away spread (positive = home favored).

        Unknown teams are rated 0 (league average).
        """
        home = self.ratings.get(home_team)
        away = self.ratings.get(away_team)
        if home is None:
            logger.warning(f"No rating for {home_team}, using 0")
            home = 0.0
        if away is None:
            logger.warning(f"No rating for {away_team}, using 0")
            away = 0.0

        margin = home - away
        if not neutral_site:
            margin += self.hfa
        return margin

    def predict_games(self, games: Iterable[GameObservation]) -> np.ndarray:
        """Vectorized predict_margin over game observations."""
        games = list(games)
        n_unknown = 0
        preds = np.empty(len(games))
        for i, g in enumerate(games):
            home = self.ratings.get(g.home_team_id)
            away = self.ratings.get(g.away_team_id)
            if home is None or away is None:
                n_unknown += 1
            preds[i] = (home or 0.0) - (away or 0.0) + g.hfa_feature * self.hfa
        if n_unknown:
            logger.debug(f"{n_unknown} games reference unrated teams (rated 0)")
        return preds

    def evaluate_sets(
        self,
        games: Iterable[GameObservation],
        primary_label: Optional[str] = None,
        secondary_label: Optional[str] = None,
    ) -> dict[str, MetricsRecord]:
        """Score predictions on the primary set, the secondary set and all rows."""
        settings = get_settings()
        primary_label = primary_label or settings.primary_set_label
        secondary_label = secondary_label or settings.secondary_set_label

        games = list(games)
        results = {}
        for name, subset in (
            ("primary", [g for g in games if g.set_label == primary_label]),
            ("secondary", [g for g in games if g.set_label == secondary_label]),
            ("all", games),
        ):
            targets = np.array([g.target_spread for g in subset])
            results[name] = compute_metrics(self.predict_games(subset), targets)
        return results

    def get_ratings_df(self) -> pd.DataFrame:
        """All team ratings sorted best first, with rank and prior columns."""
        if not self.ratings:
            return pd.DataFrame(columns=["rank", "team_id", "rating", "prior"])

        df = pd.DataFrame(
            {
                "team_id": list(self.ratings),
                "rating": list(self.ratings.values()),
                "prior": [self.prior.get(t, 0.0) for t in self.ratings],
            }
        )
        df = df.sort_values(["rating", "team_id"], ascending=[False, True]).reset_index(drop=True)
        df.insert(0, "rank", np.arange(1, len(df) + 1))
        return df


class RidgeRatingSolver:
    """Solve the ridge-regularized weighted least-squares rating system."""

    def __init__(self, lam: Optional[float] = None):
        """Initialize the solver.

        Args:
            lam: Ridge strength. If None, uses settings default.
        """
        if lam is None:
            lam = get_settings().ridge_lambda_default
        if lam < 0:
            raise ValueError(f"Ridge lambda must be non-negative, got {lam}")
        self.lam = lam

    def solve(self, system: EquationSystem, prior: Optional[PriorVector] = None) -> RidgeSolution:
        """Solve for ratings and HFA.

        Args:
            system: Equation system from build_equations()
            prior: Prior vector; aligned to system.teams (zeros if None)

        Returns:
            RidgeSolution with centered ratings

        Raises:
            SingularSystemError: If the regularized system cannot be solved
        """
        n_teams = system.n_teams
        s_prior = np.zeros(n_teams + 1)
        if prior is not None:
            s_prior[:n_teams] = prior.aligned(system.teams)

        xtwx, xtwy = weighted_normal_equations(system.A, system.b, system.weights)

        # Penalize team columns only; the HFA column stays unregularized
        d = np.ones(n_teams + 1)
        d[system.hfa_col] = 0.0
        xtwx[np.diag_indices_from(xtwx)] += self.lam * d
        xtwy += self.lam * d * s_prior

        x = solve_dense(xtwx, xtwy)

        team_ratings = x[:n_teams]
        team_ratings = team_ratings - team_ratings.mean()
        hfa = float(x[system.hfa_col])

        logger.info(
            f"Solved MFTR system with ridge prior: lambda={self.lam:g}, "
            f"{system.n_games} games, {n_teams} teams, HFA={hfa:.3f}"
        )

        return RidgeSolution(
            ratings={team: float(r) for team, r in zip(system.teams, team_ratings)},
            hfa=hfa,
            lam=self.lam,
            prior={team: float(v) for team, v in zip(system.teams, s_prior[:n_teams])},
            n_games=system.n_games,
            n_trimmed=system.n_trimmed,
        )


def fit_ridge(
    games: Iterable[GameObservation],
    priors: Iterable[TeamPrior],
    lam: float,
    team_universe: Optional[Iterable[str]] = None,
    outlier_cap: Optional[float] = None,
    min_games: Optional[int] = None,
    prior_builder: Optional[PriorVectorBuilder] = None,
) -> RidgeSolution:
    """Build equations and priors, then solve, in one call."""
    system = build_equations(games, team_universe, outlier_cap=outlier_cap, min_games=min_games)
    builder = prior_builder or PriorVectorBuilder()
    prior = builder.build(system.teams, priors)
    return RidgeRatingSolver(lam).solve(system, prior)
