"""Prior Vector Builder.

Turns external per-team signals (talent, returning production) into the
reference vector the ridge penalty pulls ratings toward. Each feature is
z-scored across the team universe, missing values count as league average
(0 after standardization), and the standardized features are averaged.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np

from config.settings import get_settings
from mftr.data.schema import PRIOR_FEATURES, TeamPrior
from mftr.errors import MissingPriorWarning
from mftr.utils.normalization import zscore

logger = logging.getLogger(__name__)


@dataclass
class PriorVector:
    """Blended standardized prior aligned to a team list."""

    teams: list[str]
    values: np.ndarray
    missing_teams: list[str] = field(default_factory=list)
    feature_stats: dict[str, tuple[float, float]] = field(default_factory=dict)

    def as_dict(self) -> dict[str, float]:
        return {team: float(v) for team, v in zip(self.teams, self.values)}

    def aligned(self, teams: list[str]) -> np.ndarray:
        """Prior values for an arbitrary team order (0 for unknown teams)."""
        lookup = self.as_dict()
        return np.array([lookup.get(t, 0.0) for t in teams], dtype=np.float64)

    @classmethod
    def zeros(cls, teams: list[str]) -> "PriorVector":
        return cls(teams=list(teams), values=np.zeros(len(teams)))


class PriorVectorBuilder:
    """Build standardized prior vectors from TeamPrior records."""

    def __init__(
        self,
        feature_weights: Optional[dict[str, float]] = None,
        variance_floor: Optional[float] = None,
    ):
        """Initialize the builder.

        Args:
            feature_weights: Weight per prior feature. Defaults to equal weights.
            variance_floor: Minimum variance used when standardizing a feature
        """
        if feature_weights is None:
            feature_weights = {feat: 1.0 for feat in PRIOR_FEATURES}
        unknown = set(feature_weights) - set(PRIOR_FEATURES)
        if unknown:
            raise ValueError(f"Unknown prior features: {sorted(unknown)}")
        total = sum(feature_weights.values())
        if total <= 0:
            raise ValueError("Prior feature weights must sum to a positive value")

        self.feature_weights = {k: v / total for k, v in feature_weights.items()}
        self.variance_floor = (
            variance_floor if variance_floor is not None else get_settings().prior_variance_floor
        )

    def build(self, teams: list[str], priors: Iterable[TeamPrior]) -> PriorVector:
        """Build the prior vector for the given team universe.

        Args:
            teams: Team ids in column order
            priors: Prior records (teams outside `teams` are ignored)

        Returns:
            PriorVector aligned with `teams`
        """
        by_team = {p.team_id: p for p in priors}
        n = len(teams)
        blended = np.zeros(n)
        feature_stats = {}

        for feat, weight in self.feature_weights.items():
            raw = np.array(
                [
                    getattr(by_team[t], feat) if t in by_team and getattr(by_team[t], feat) is not None else np.nan
                    for t in teams
                ],
                dtype=np.float64,
            )
            present = ~np.isnan(raw)
            z = np.zeros(n)
            if present.any():
                z_present, mean, std = zscore(raw[present], self.variance_floor)
                z[present] = z_present
                feature_stats[feat] = (mean, std)
            blended += weight * z

        # No record, or a record with every feature empty
        missing = [
            t
            for t in teams
            if t not in by_team or all(getattr(by_team[t], feat) is None for feat in PRIOR_FEATURES)
        ]
        if missing:
            msg = f"{len(missing)} of {n} teams have no prior data; defaulting to 0"
            logger.warning(f"{msg}: {missing[:10]}{'...' if len(missing) > 10 else ''}")
            warnings.warn(msg, MissingPriorWarning, stacklevel=2)

        logger.debug(
            f"Prior vector: {n} teams, mean={blended.mean():.4f}, std={blended.std():.4f}"
        )

        return PriorVector(
            teams=list(teams),
            values=blended,
            missing_teams=missing,
            feature_stats=feature_stats,
        )
