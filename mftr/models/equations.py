"""Equation Builder: game observations to a weighted sparse linear system."""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np
from scipy import sparse

from config.settings import get_settings
from mftr.data.schema import GameObservation
from mftr.data.validators import check_game
from mftr.errors import InsufficientDataError

logger = logging.getLogger(__name__)


@dataclass
class EquationSystem:
    """Weighted linear system for market-fitted team ratings.

    Columns are [team_0, ..., team_{n-1}, hfa]. Each row is one game:
        target = rating_home - rating_away + hfa_feature * hfa
    """

    A: sparse.csr_matrix
    b: np.ndarray
    weights: np.ndarray
    teams: list[str]
    games: list[GameObservation]
    n_trimmed: int = 0
    outlier_cap: Optional[float] = None
    team_to_idx: dict[str, int] = field(init=False)

    def __post_init__(self):
        self.team_to_idx = {team: i for i, team in enumerate(self.teams)}

    @property
    def n_teams(self) -> int:
        return len(self.teams)

    @property
    def n_games(self) -> int:
        return len(self.games)

    @property
    def hfa_col(self) -> int:
        return self.n_teams


def trim_outliers(
    games: Iterable[GameObservation],
    outlier_cap: float,
) -> tuple[list[GameObservation], list[GameObservation]]:
    """Split games into (kept, trimmed) by |target_spread| <= outlier_cap.

    Non-finite targets are trimmed as well.
    """
    kept, trimmed = [], []
    for game in games:
        if np.isfinite(game.target_spread) and abs(game.target_spread) <= outlier_cap:
            kept.append(game)
        else:
            trimmed.append(game)
    return kept, trimmed


def build_equations(
    games: Iterable[GameObservation],
    team_universe: Optional[Iterable[str]] = None,
    outlier_cap: Optional[float] = None,
    min_games: Optional[int] = None,
) -> EquationSystem:
    """Build the sparse design matrix, target and weights from games.

    Args:
        games: Game observations (target_spread must be non-null)
        team_universe: Known team ids. Every game must reference teams in it.
            If None, the universe is the set of teams in the kept games.
        outlier_cap: Games with |target_spread| above this are excluded
        min_games: Minimum number of rows required after trimming

    Returns:
        EquationSystem with teams sorted by id

    Raises:
        InsufficientDataError: If fewer than min_games rows remain
        ValueError: If a game violates the input schema
    """
    settings = get_settings()
    if outlier_cap is None:
        outlier_cap = settings.outlier_cap
    if min_games is None:
        min_games = settings.min_games

    universe = set(team_universe) if team_universe is not None else None
    games = list(games)
    for game in games:
        check_game(game, universe)

    kept, trimmed = trim_outliers(games, outlier_cap)
    if trimmed:
        logger.info(
            f"Trimmed outliers: {len(trimmed)} games with |market| > {outlier_cap:g}"
        )

    if len(kept) < min_games:
        raise InsufficientDataError(
            f"Insufficient games for ratings: {len(kept)} (need >= {min_games})"
        )

    if universe is None:
        universe = {g.home_team_id for g in kept} | {g.away_team_id for g in kept}
    teams = sorted(universe)
    team_to_idx = {team: i for i, team in enumerate(teams)}
    n_teams = len(teams)
    n_games = len(kept)

    # Each row: +1 home, -1 away, hfa_feature in the HFA column (0 at neutral sites)
    rows = np.repeat(np.arange(n_games, dtype=np.int32), 3)
    cols = np.empty(3 * n_games, dtype=np.int32)
    data = np.empty(3 * n_games, dtype=np.float64)
    b = np.empty(n_games, dtype=np.float64)
    weights = np.empty(n_games, dtype=np.float64)

    for i, game in enumerate(kept):
        cols[3 * i] = team_to_idx[game.home_team_id]
        cols[3 * i + 1] = team_to_idx[game.away_team_id]
        cols[3 * i + 2] = n_teams
        data[3 * i] = 1.0
        data[3 * i + 1] = -1.0
        data[3 * i + 2] = game.hfa_feature
        b[i] = game.target_spread
        weights[i] = game.row_weight

    A = sparse.csr_matrix((data, (rows, cols)), shape=(n_games, n_teams + 1), dtype=np.float64)
    A.eliminate_zeros()

    logger.debug(
        f"Built linear system: {n_games} equations, {n_teams + 1} unknowns, {A.nnz} non-zeros"
    )

    return EquationSystem(
        A=A,
        b=b,
        weights=weights,
        teams=teams,
        games=kept,
        n_trimmed=len(trimmed),
        outlier_cap=outlier_cap,
    )
