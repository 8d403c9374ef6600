#!/usr/bin/env python3
"""Build market-fitted team ratings (MFTR) with a ridge prior, blend them with
an external rating, and validate against baselines.

Usage:
    python3 scripts/build_ratings.py --games games.csv --priors priors.csv \\
        --external external.csv --season 2025
    python3 scripts/build_ratings.py ... --weeks 1-11 --validation-weeks 8-11
    python3 scripts/build_ratings.py ... --skip-cv --lambda 0.2
    python3 scripts/build_ratings.py ... --workers 4       # parallel CV folds

Exits non-zero (and writes nothing) on any fatal pipeline error.
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import get_settings
from mftr.data.loaders import load_external_ratings_csv, load_games_csv, load_priors_csv
from mftr.errors import BaselineValidationError, MFTRError
from mftr.pipeline import PipelineConfig, RatingPipeline

logger = logging.getLogger(__name__)


def parse_weeks(value: str) -> list[int]:
    """Parse '1-11' or '1,2,3' (or a mix like '1-4,9')."""
    weeks = set()
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start, end = part.split("-", 1)
            weeks.update(range(int(start), int(end) + 1))
        else:
            weeks.add(int(part))
    if not weeks:
        raise argparse.ArgumentTypeError(f"No weeks in {value!r}")
    return sorted(weeks)


def parse_floats(value: str) -> list[float]:
    return [float(v) for v in value.split(",") if v.strip()]


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Build MFTR ratings with ridge prior and blend")
    parser.add_argument("--games", required=True, help="Games CSV (mftr_v1 layout)")
    parser.add_argument("--priors", required=True, help="Team priors CSV")
    parser.add_argument("--external", required=True, help="External ratings CSV (team_id, rating)")
    parser.add_argument("--season", type=int, default=settings.current_season, help="Season year")
    parser.add_argument(
        "--weeks",
        type=parse_weeks,
        default=list(settings.default_weeks),
        help="Weeks to include, e.g. 1-11 (default: %(default)s)",
    )
    parser.add_argument(
        "--validation-weeks",
        type=parse_weeks,
        default=None,
        help=f"Weeks held out in CV (default: weeks >= {settings.validation_start_week})",
    )
    parser.add_argument(
        "--lambda-grid",
        type=parse_floats,
        default=list(settings.lambda_grid),
        help="Comma-separated lambda candidates",
    )
    parser.add_argument("--lambda", dest="fixed_lambda", type=float, default=None, help="Fixed lambda (skips CV)")
    parser.add_argument("--skip-cv", action="store_true", help="Use the default lambda without CV")
    parser.add_argument("--blend-step", type=float, default=settings.blend_weight_step, help="Blend weight grid step")
    parser.add_argument("--outlier-cap", type=float, default=settings.outlier_cap, help="Max |spread| kept")
    parser.add_argument("--min-games", type=int, default=settings.min_games, help="Minimum games after trimming")
    parser.add_argument("--workers", type=int, default=settings.cv_workers, help="CV worker processes")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=settings.outputs_dir,
        help="Parent directory for run artifacts (default: %(default)s)",
    )
    parser.add_argument(
        "--no-strict",
        action="store_true",
        help="Do not fail when the model loses to the HFA-only baseline (nothing is written)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def check_args(args: argparse.Namespace) -> list[str]:
    """Validate numeric CLI arguments. Returns list of errors."""
    errors = []
    if not 0 < args.blend_step <= 1:
        errors.append(f"--blend-step must be in (0, 1], got {args.blend_step}")
    if args.outlier_cap <= 0:
        errors.append(f"--outlier-cap must be positive, got {args.outlier_cap}")
    if args.min_games < 1:
        errors.append(f"--min-games must be at least 1, got {args.min_games}")
    if not args.lambda_grid or any(lam <= 0 for lam in args.lambda_grid):
        errors.append(f"--lambda-grid must contain only positive values, got {args.lambda_grid}")
    if args.fixed_lambda is not None and args.fixed_lambda < 0:
        errors.append(f"--lambda must be non-negative, got {args.fixed_lambda}")
    if args.workers < 1:
        errors.append(f"--workers must be at least 1, got {args.workers}")
    return errors


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    errors = get_settings().validate() + check_args(args)
    if errors:
        for err in errors:
            logger.error(err)
        return 2

    config = PipelineConfig.from_settings(
        season=args.season,
        weeks=args.weeks,
        lambda_grid=args.lambda_grid,
        blend_weight_step=args.blend_step,
        outlier_cap=args.outlier_cap,
        min_games=args.min_games,
        skip_cv=args.skip_cv,
        fixed_lambda=args.fixed_lambda,
        cv_workers=args.workers,
        strict_baselines=not args.no_strict,
    )
    if args.validation_weeks is not None:
        config.validation_weeks = args.validation_weeks

    games = load_games_csv(args.games)
    priors = load_priors_csv(args.priors)
    external = load_external_ratings_csv(args.external)

    try:
        result = RatingPipeline(config).run(games, priors, external, output_dir=args.output_dir)
    except BaselineValidationError as e:
        logger.error(f"Validation failure: {e}")
        if e.comparison is not None:
            print(e.comparison.to_frame().to_string(index=False), file=sys.stderr)
        return 1
    except MFTRError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    if not result.healthy:
        logger.error("Result failed baseline validation; no artifacts written")
        return 1

    solution = result.ratings
    blend = result.blend.config
    print(f"\n## {args.season} MFTR ratings (lambda={solution.lam:g}, HFA={solution.hfa:+.2f})\n")
    print(solution.get_ratings_df().head(25).to_string(index=False))
    print(
        f"\nBlend weight w={blend.optimal_weight:.2f} (J={blend.objective:.4f})"
        f"{' [floor applied]' if blend.floor_applied else ''}"
        f"{' [SUSPECT]' if blend.suspect else ''}"
        f"{'' if blend.sanity_passed else ' [sanity slope <= 0]'}"
    )
    print("\nBaselines (primary set):")
    print(result.baselines["primary"].to_frame().to_string(index=False))
    print(f"\nArtifacts: {result.artifact_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
