"""Application settings and configuration."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _float_list_env(name: str, default: str) -> tuple[float, ...]:
    raw = os.getenv(name, default)
    return tuple(float(v) for v in raw.split(",") if v.strip())


@dataclass
class Settings:
    """Application configuration settings."""

    # Data Configuration
    current_season: int = field(
        default_factory=lambda: int(os.getenv("MFTR_SEASON", "2025"))
    )
    default_weeks: tuple = (1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11)

    # Set labels: A = recent high-confidence weeks, B = earlier weeks
    primary_set_label: str = "A"
    secondary_set_label: str = "B"

    # Leave-one-week-out CV only holds out weeks at or after this week
    validation_start_week: int = 8

    # Equation Builder
    # |market| > 35 is a blowout line the ratings should not chase
    outlier_cap: float = field(
        default_factory=lambda: float(os.getenv("MFTR_OUTLIER_CAP", "35"))
    )
    min_games: int = field(
        default_factory=lambda: int(os.getenv("MFTR_MIN_GAMES", "50"))
    )

    # Ridge Prior
    ridge_lambda_default: float = field(
        default_factory=lambda: float(os.getenv("MFTR_RIDGE_LAMBDA", "0.1"))
    )
    lambda_grid: tuple = field(
        default_factory=lambda: _float_list_env(
            "MFTR_LAMBDA_GRID", "0.01,0.05,0.1,0.2,0.5,1.0"
        )
    )
    prior_variance_floor: float = 1e-10

    # Rating Blend
    blend_weight_step: float = 0.05
    blend_floor_weight: float = 0.10
    blend_guardrail_pearson: float = 0.25

    # Evaluator
    zero_variance_tol: float = 1e-6

    # Parallelism (CV folds)
    cv_workers: int = field(
        default_factory=lambda: int(os.getenv("MFTR_CV_WORKERS", "1"))
    )

    # Paths
    @property
    def project_root(self) -> Path:
        return Path(__file__).parent.parent

    @property
    def data_dir(self) -> Path:
        return self.project_root / "data"

    @property
    def outputs_dir(self) -> Path:
        return self.data_dir / "outputs"

    def validation_weeks(self, weeks) -> list[int]:
        """Weeks eligible to be held out during lambda cross-validation."""
        return sorted(w for w in weeks if w >= self.validation_start_week)

    def validate(self) -> list[str]:
        """Validate settings. Returns list of errors."""
        errors = []
        if self.outlier_cap <= 0:
            errors.append("MFTR_OUTLIER_CAP must be positive.")
        if self.min_games < 1:
            errors.append("MFTR_MIN_GAMES must be at least 1.")
        if not self.lambda_grid or any(lam <= 0 for lam in self.lambda_grid):
            errors.append("MFTR_LAMBDA_GRID must contain only positive values.")
        if not 0 < self.blend_weight_step <= 1:
            errors.append("blend_weight_step must be in (0, 1].")
        return errors


# Singleton instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
