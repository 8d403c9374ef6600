"""Typed input records consumed by the rating core.

The core never inspects raw feed payloads. Adapters in loaders.py turn one
fixed tabular layout (SCHEMA_VERSION) into these records.
"""

from dataclasses import dataclass
from typing import Optional

SCHEMA_VERSION = "mftr_v1"

SET_LABELS = ("A", "B")


@dataclass(frozen=True)
class GameObservation:
    """One game with its market spread.

    Spread Convention:
        target_spread is the expected home-minus-away margin: positive = home favored.
        The HFA feature is 1.0 for a true home game and 0.0 at a neutral site.
    """

    game_id: str
    home_team_id: str
    away_team_id: str
    week: int
    target_spread: float
    set_label: str = "A"
    row_weight: float = 1.0
    neutral_site: bool = False

    @property
    def hfa_feature(self) -> float:
        return 0.0 if self.neutral_site else 1.0


@dataclass(frozen=True)
class TeamPrior:
    """External preseason signals for one team. Missing fields are treated as average."""

    team_id: str
    talent_score: Optional[float] = None
    returning_prod_off: Optional[float] = None
    returning_prod_def: Optional[float] = None


@dataclass(frozen=True)
class ExternalRating:
    """A rating for one team produced by an independent model."""

    team_id: str
    rating: float


PRIOR_FEATURES = ("talent_score", "returning_prod_off", "returning_prod_def")
