"""Shared synthetic fixtures: a full round-robin season with known ratings."""

from dataclasses import dataclass

import numpy as np
import pytest

from mftr.data.schema import ExternalRating, GameObservation, TeamPrior


@dataclass
class SyntheticSeason:
    games: list[GameObservation]
    priors: list[TeamPrior]
    external: list[ExternalRating]
    true_ratings: dict[str, float]


def round_robin(teams: list[str]) -> list[list[tuple[str, str]]]:
    """Circle-method schedule: every pair meets once, home side alternates."""
    teams = list(teams)
    n = len(teams)
    rounds = []
    for r in range(n - 1):
        pairs = []
        for i in range(n // 2):
            a, b = teams[i], teams[n - 1 - i]
            pairs.append((a, b) if (r + i) % 2 == 0 else (b, a))
        rounds.append(pairs)
        teams = [teams[0], teams[-1]] + teams[1:-1]
    return rounds


def build_season(
    n_teams: int = 12,
    spread: float = 8.0,
    scale: float = 1.0,
    hfa: float = 2.5,
    noise: float = 1.0,
    seed: int = 7,
    primary_start_week: int = 8,
) -> SyntheticSeason:
    """target = scale * (r_home - r_away) + hfa * hfa_feature + N(0, noise)."""
    rng = np.random.default_rng(seed)
    teams = [f"T{i:02d}" for i in range(n_teams)]
    true = dict(zip(teams, np.linspace(-spread, spread, n_teams)))

    games = []
    for r, pairs in enumerate(round_robin(teams)):
        week = r + 1
        for i, (home, away) in enumerate(pairs):
            neutral = (r + i) % 7 == 3
            target = scale * (true[home] - true[away]) + (0.0 if neutral else hfa)
            target += rng.normal(0.0, noise)
            is_primary = week >= primary_start_week
            games.append(
                GameObservation(
                    game_id=f"g{week:02d}_{i}",
                    home_team_id=home,
                    away_team_id=away,
                    week=week,
                    target_spread=float(target),
                    set_label="A" if is_primary else "B",
                    row_weight=1.0 if is_primary else 0.6,
                    neutral_site=neutral,
                )
            )

    priors = [
        TeamPrior(
            team_id=t,
            talent_score=float(true[t] + rng.normal(0.0, 1.0)),
            returning_prod_off=float(rng.uniform(0.3, 0.9)),
            returning_prod_def=float(rng.uniform(0.3, 0.9)),
        )
        for t in teams
    ]
    external = [ExternalRating(team_id=t, rating=float(true[t] + rng.normal(0.0, 1.0))) for t in teams]

    return SyntheticSeason(games=games, priors=priors, external=external, true_ratings=true)


@pytest.fixture
def season() -> SyntheticSeason:
    return build_season()


@pytest.fixture
def make_season():
    return build_season
