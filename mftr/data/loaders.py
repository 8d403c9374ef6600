"""Adapters from tabular files to typed input records.

Expected columns (SCHEMA_VERSION = "mftr_v1"):

games:    game_id, home_team_id, away_team_id, week, target_spread,
          [set_label], [row_weight], [neutral_site]
priors:   team_id, [talent_score], [returning_prod_off], [returning_prod_def]
external: team_id, rating
"""

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from mftr.data.schema import (
    PRIOR_FEATURES,
    ExternalRating,
    GameObservation,
    TeamPrior,
)

logger = logging.getLogger(__name__)

GAME_REQUIRED_COLUMNS = ("game_id", "home_team_id", "away_team_id", "week", "target_spread")


def _require_columns(df: pd.DataFrame, columns, what: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"{what} frame is missing required columns: {missing}")


def _optional_float(value):
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    return float(value)


def games_from_frame(df: pd.DataFrame) -> list[GameObservation]:
    """Convert a games DataFrame into GameObservation records.

    Rows with a null target spread are dropped. Missing row_weight becomes 1.0,
    missing set_label becomes "A", missing neutral_site becomes False.

    Args:
        df: DataFrame in the games layout

    Returns:
        List of GameObservation sorted by (week, game_id)
    """
    _require_columns(df, GAME_REQUIRED_COLUMNS, "Games")

    df = df.copy()
    n_before = len(df)
    df = df[df["target_spread"].notna()]
    if len(df) < n_before:
        logger.info(f"Dropped {n_before - len(df)} games with null target spread")

    if "set_label" not in df.columns:
        df["set_label"] = "A"
    if "row_weight" not in df.columns:
        df["row_weight"] = 1.0
    if "neutral_site" not in df.columns:
        df["neutral_site"] = False

    df["set_label"] = df["set_label"].fillna("A").astype(str)
    df["row_weight"] = df["row_weight"].fillna(1.0).astype(float)
    df["neutral_site"] = df["neutral_site"].fillna(False).astype(bool)
    df = df.sort_values(["week", "game_id"], kind="mergesort")

    return [
        GameObservation(
            game_id=str(row.game_id),
            home_team_id=str(row.home_team_id),
            away_team_id=str(row.away_team_id),
            week=int(row.week),
            target_spread=float(row.target_spread),
            set_label=row.set_label,
            row_weight=float(row.row_weight),
            neutral_site=bool(row.neutral_site),
        )
        for row in df.itertuples(index=False)
    ]


def priors_from_frame(df: pd.DataFrame) -> list[TeamPrior]:
    """Convert a priors DataFrame into TeamPrior records (absent features stay None)."""
    _require_columns(df, ("team_id",), "Priors")

    records = []
    for row in df.to_dict("records"):
        records.append(
            TeamPrior(
                team_id=str(row["team_id"]),
                **{feat: _optional_float(row.get(feat)) for feat in PRIOR_FEATURES},
            )
        )
    return records


def external_ratings_from_frame(df: pd.DataFrame) -> list[ExternalRating]:
    """Convert an external ratings DataFrame into ExternalRating records."""
    _require_columns(df, ("team_id", "rating"), "External ratings")

    df = df[df["rating"].notna()]
    return [
        ExternalRating(team_id=str(row.team_id), rating=float(row.rating))
        for row in df.itertuples(index=False)
    ]


def load_games_csv(path: str | Path) -> list[GameObservation]:
    df = pd.read_csv(path, dtype={"game_id": str, "home_team_id": str, "away_team_id": str})
    games = games_from_frame(df)
    logger.info(f"Loaded {len(games)} games from {path}")
    return games


def load_priors_csv(path: str | Path) -> list[TeamPrior]:
    df = pd.read_csv(path, dtype={"team_id": str})
    priors = priors_from_frame(df)
    logger.info(f"Loaded priors for {len(priors)} teams from {path}")
    return priors


def load_external_ratings_csv(path: str | Path) -> list[ExternalRating]:
    df = pd.read_csv(path, dtype={"team_id": str})
    ratings = external_ratings_from_frame(df)
    logger.info(f"Loaded {len(ratings)} external ratings from {path}")
    return ratings
