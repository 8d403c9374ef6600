"""Rating pipeline: a strict, fail-fast sequence of stages.

    load inputs -> build equations + priors -> select lambda -> ridge solve
    -> optimize blend -> evaluate vs baselines -> emit artifacts

Every stage raises on insufficient or degenerate data instead of passing a
bad intermediate result forward. Data access is injected: run() takes
already-loaded records and never touches storage itself.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

import numpy as np

from config.settings import Settings, get_settings
from mftr.data.schema import ExternalRating, GameObservation, TeamPrior
from mftr.data.validators import validate_games
from mftr.errors import BaselineValidationError, InsufficientDataError
from mftr.evaluation.baselines import BaselineComparison, compare_baselines
from mftr.evaluation.metrics import MetricsRecord
from mftr.models.blend import BlendResult, RatingBlendOptimizer
from mftr.models.equations import build_equations
from mftr.models.lambda_selection import LambdaSelectionResult, LambdaSelector
from mftr.models.priors import PriorVectorBuilder
from mftr.models.ridge import RidgeRatingSolver, RidgeSolution
from mftr.reports.artifacts import compute_records_hash, write_artifacts

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    LOAD_INPUTS = "load_inputs"
    BUILD_SYSTEM = "build_equations_and_priors"
    SELECT_LAMBDA = "select_lambda"
    RIDGE_SOLVE = "ridge_solve"
    OPTIMIZE_BLEND = "optimize_blend"
    EVALUATE = "evaluate_vs_baselines"
    EMIT_ARTIFACTS = "emit_artifacts"


@dataclass
class PipelineConfig:
    """Invocation parameters for one pipeline run."""

    season: int
    weeks: list[int]
    lambda_grid: list[float]
    blend_weight_step: float = 0.05
    outlier_cap: float = 35.0
    min_games: int = 50
    validation_weeks: Optional[list[int]] = None
    skip_cv: bool = False
    fixed_lambda: Optional[float] = None
    prior_weights: Optional[dict[str, float]] = None
    team_universe: Optional[list[str]] = None
    cv_workers: int = 1
    strict_baselines: bool = True

    @classmethod
    def from_settings(
        cls,
        season: Optional[int] = None,
        weeks: Optional[Iterable[int]] = None,
        settings: Optional[Settings] = None,
        **overrides,
    ) -> "PipelineConfig":
        settings = settings or get_settings()
        weeks = sorted(weeks) if weeks is not None else list(settings.default_weeks)
        params = dict(
            season=season if season is not None else settings.current_season,
            weeks=weeks,
            lambda_grid=list(settings.lambda_grid),
            blend_weight_step=settings.blend_weight_step,
            outlier_cap=settings.outlier_cap,
            min_games=settings.min_games,
            validation_weeks=settings.validation_weeks(weeks),
            cv_workers=settings.cv_workers,
        )
        params.update(overrides)
        return cls(**params)


@dataclass
class PipelineResult:
    """Everything one run produced."""

    config: PipelineConfig
    ratings: RidgeSolution
    lambda_selection: LambdaSelectionResult
    blend: BlendResult
    set_metrics: dict[str, MetricsRecord]
    baselines: dict[str, BaselineComparison]
    external_ratings: dict[str, float]
    healthy: bool
    n_input_games: int = 0
    input_hashes: dict[str, str] = field(default_factory=dict)
    stage_log: list[str] = field(default_factory=list)
    artifact_dir: Optional[Path] = None


class RatingPipeline:
    """Run the rating estimation and calibration stages in order."""

    def __init__(self, config: PipelineConfig, settings: Optional[Settings] = None):
        self.config = config
        self.settings = settings or get_settings()
        self.stage_log: list[str] = []

    def _enter(self, stage: PipelineStage) -> None:
        self.stage_log.append(stage.value)
        logger.info(f"[{self.config.season}] stage: {stage.value}")

    def run(
        self,
        games: Iterable[GameObservation],
        priors: Iterable[TeamPrior],
        external_ratings: Iterable[ExternalRating],
        output_dir: Optional[str | Path] = None,
    ) -> PipelineResult:
        """Execute the pipeline.

        Args:
            games: Game observations (filtered to config.weeks here)
            priors: Team priors
            external_ratings: Independently produced ratings (blend source A)
            output_dir: If given, artifacts are written under this directory

        Returns:
            PipelineResult

        Raises:
            InsufficientDataError, SingularSystemError, NoValidBlendError,
            BaselineValidationError: Fatal failures; nothing is written
        """
        cfg = self.config
        self.stage_log = []

        # --- load inputs
        self._enter(PipelineStage.LOAD_INPUTS)
        week_set = set(cfg.weeks)
        games = [g for g in games if g.week in week_set]
        priors = list(priors)
        external_ratings = list(external_ratings)
        external = {r.team_id: r.rating for r in external_ratings}
        input_hashes = {
            "games": compute_records_hash(games),
            "priors": compute_records_hash(priors),
            "external": compute_records_hash(external_ratings),
        }

        universe_set = set(cfg.team_universe) if cfg.team_universe is not None else None
        validation = validate_games(games, team_universe=universe_set, min_games=cfg.min_games)
        logger.info(f"Input validation: {validation.message}")
        if validation.details["duplicate_game_ids"]:
            raise ValueError(f"Duplicate game ids: {validation.details['duplicate_game_ids'][:10]}")
        if not external:
            raise InsufficientDataError("No external ratings supplied for blending")

        team_universe = cfg.team_universe
        if team_universe is None:
            team_universe = sorted({g.home_team_id for g in games} | {g.away_team_id for g in games})

        # --- build equations + priors
        self._enter(PipelineStage.BUILD_SYSTEM)
        system = build_equations(
            games, team_universe, outlier_cap=cfg.outlier_cap, min_games=cfg.min_games
        )
        prior_builder = PriorVectorBuilder(feature_weights=cfg.prior_weights)
        prior = prior_builder.build(system.teams, priors)

        # --- select lambda
        self._enter(PipelineStage.SELECT_LAMBDA)
        if cfg.skip_cv or cfg.fixed_lambda is not None:
            lam = cfg.fixed_lambda if cfg.fixed_lambda is not None else self.settings.ridge_lambda_default
            lambda_selection = LambdaSelectionResult(
                best_lambda=lam, used_fallback=False, fallback_reason="cross-validation skipped"
            )
            logger.info(f"Skipping CV, lambda={lam:g}")
        else:
            validation_weeks = cfg.validation_weeks
            if validation_weeks is None:
                validation_weeks = self.settings.validation_weeks(cfg.weeks)
            selector = LambdaSelector(
                lambda_grid=cfg.lambda_grid,
                default_lambda=self.settings.ridge_lambda_default,
                outlier_cap=cfg.outlier_cap,
                min_games=cfg.min_games,
                n_workers=cfg.cv_workers,
                prior_builder=prior_builder,
            )
            lambda_selection = selector.select(games, priors, validation_weeks, team_universe=system.teams)

        # --- ridge solve
        self._enter(PipelineStage.RIDGE_SOLVE)
        solution = RidgeRatingSolver(lambda_selection.best_lambda).solve(system, prior)
        set_metrics = solution.evaluate_sets(system.games)
        for name, m in set_metrics.items():
            logger.info(f"MFTR {name}: {m!r}")

        # --- optimize blend (A = external, B = ridge), both over the rated teams
        self._enter(PipelineStage.OPTIMIZE_BLEND)
        team_set = set(system.teams)
        dropped = sorted(t for t in external if t not in team_set)
        if dropped:
            logger.info(f"Ignoring {len(dropped)} external ratings outside the team universe")
        external = {t: r for t, r in external.items() if t in team_set}
        optimizer = RatingBlendOptimizer(weight_step=cfg.blend_weight_step)
        blend = optimizer.optimize(external, solution.ratings, system.games)

        # --- evaluate vs baselines
        self._enter(PipelineStage.EVALUATE)
        baselines = {
            "primary": self._compare(
                [g for g in system.games if g.set_label == optimizer.primary_label],
                "primary", blend, external, solution,
            ),
            "all": self._compare(system.games, "all", blend, external, solution),
        }
        healthy = baselines["primary"].primary_beats_hfa
        if not healthy:
            msg = (
                f"Blended ridge model does not beat the {baselines['primary'].reference.model} "
                f"baseline on the primary set"
            )
            if cfg.strict_baselines:
                raise BaselineValidationError(msg, comparison=baselines["primary"])
            logger.warning(f"{msg}; result marked unhealthy")

        result = PipelineResult(
            config=cfg,
            ratings=solution,
            lambda_selection=lambda_selection,
            blend=blend,
            set_metrics=set_metrics,
            baselines=baselines,
            external_ratings=external,
            healthy=healthy,
            n_input_games=len(games),
            input_hashes=input_hashes,
            stage_log=self.stage_log,
        )

        # --- emit artifacts
        if output_dir is not None:
            if healthy:
                self._enter(PipelineStage.EMIT_ARTIFACTS)
                result.artifact_dir = write_artifacts(result, output_dir)
            else:
                logger.warning("Result failed baseline validation; no artifacts written")

        return result

    @staticmethod
    def _compare(
        games: list[GameObservation],
        split: str,
        blend: BlendResult,
        external: dict[str, float],
        solution: RidgeSolution,
    ) -> BaselineComparison:
        cfg = blend.config
        ratings_b = solution.ratings
        rating_diff = np.array(
            [cfg.rating_diff(g.home_team_id, g.away_team_id, external, ratings_b) for g in games]
        )
        primary_preds = np.array(
            [
                cfg.predict_spread(g.home_team_id, g.away_team_id, external, ratings_b, solution.hfa, g.hfa_feature)
                for g in games
            ]
        )
        return compare_baselines(
            primary_predictions=primary_preds,
            targets=np.array([g.target_spread for g in games]),
            rating_diff=rating_diff,
            hfa_feature=np.array([g.hfa_feature for g in games]),
            weights=np.array([g.row_weight for g in games]),
            split=split,
        )


def run_pipeline(
    games: Iterable[GameObservation],
    priors: Iterable[TeamPrior],
    external_ratings: Iterable[ExternalRating],
    config: Optional[PipelineConfig] = None,
    output_dir: Optional[str | Path] = None,
) -> PipelineResult:
    """Convenience wrapper: RatingPipeline(config).run(...)."""
    return RatingPipeline(config or PipelineConfig.from_settings()).run(
        games, priors, external_ratings, output_dir=output_dir
    )
