"""Data records, adapters and validation."""

from .schema import (
    SCHEMA_VERSION,
    ExternalRating,
    GameObservation,
    TeamPrior,
)
from .validators import ValidationResult, validate_games

__all__ = [
    "SCHEMA_VERSION",
    "ExternalRating",
    "GameObservation",
    "TeamPrior",
    "ValidationResult",
    "validate_games",
]
