"""Data validation utilities."""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Optional

from mftr.data.schema import SET_LABELS, GameObservation

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of a data validation check."""

    is_valid: bool
    message: str
    details: Optional[dict] = None


def check_game(game: GameObservation, team_universe: Optional[set[str]] = None) -> None:
    """Raise ValueError if a single observation violates the input schema."""
    if game.home_team_id == game.away_team_id:
        raise ValueError(f"Game {game.game_id}: home and away team are both {game.home_team_id}")
    if not game.row_weight > 0:
        raise ValueError(f"Game {game.game_id}: row_weight must be > 0, got {game.row_weight}")
    if game.set_label not in SET_LABELS:
        raise ValueError(
            f"Game {game.game_id}: set_label must be one of {SET_LABELS}, got {game.set_label!r}"
        )
    if team_universe is not None:
        for team in (game.home_team_id, game.away_team_id):
            if team not in team_universe:
                raise ValueError(f"Game {game.game_id}: team {team} is not in the team universe")


def validate_games(
    games: Iterable[GameObservation],
    team_universe: Optional[set[str]] = None,
    min_games: int = 1,
) -> ValidationResult:
    """Validate a set of game observations.

    Hard schema violations raise ValueError. Soft problems (too few rows,
    duplicate game ids) come back as an invalid ValidationResult.

    Args:
        games: Game observations
        team_universe: Optional set of known team ids
        min_games: Minimum number of rows for the set to be usable

    Returns:
        ValidationResult with status and details
    """
    games = list(games)
    for game in games:
        check_game(game, team_universe)

    id_counts = Counter(g.game_id for g in games)
    duplicates = sorted(gid for gid, n in id_counts.items() if n > 1)
    teams = {g.home_team_id for g in games} | {g.away_team_id for g in games}

    details = {
        "n_games": len(games),
        "n_teams": len(teams),
        "weeks": sorted({g.week for g in games}),
        "set_counts": dict(Counter(g.set_label for g in games)),
        "n_neutral": sum(1 for g in games if g.neutral_site),
        "duplicate_game_ids": duplicates,
    }

    if duplicates:
        return ValidationResult(
            is_valid=False,
            message=f"{len(duplicates)} duplicate game ids",
            details=details,
        )

    if len(games) < min_games:
        return ValidationResult(
            is_valid=False,
            message=f"Only {len(games)} games (need >= {min_games})",
            details=details,
        )

    return ValidationResult(
        is_valid=True,
        message=f"{len(games)} games, {len(teams)} teams",
        details=details,
    )
