"""Output artifact persistence for a rating pipeline run.

Each run writes into its own directory (<season>_<timestamp>), so concurrent
runs never overwrite each other. Unhealthy results are never persisted.

Files:
- mftr_ratings_ridge.csv          team ratings (rank, team_id, rating, prior)
- mftr_metrics_ridge.json         lambda, HFA constant, per-set metrics, CV detail
- rating_blend_search.csv         every blend weight examined
- rating_blend_config.json        optimal weight + normalization for reuse
- core_baseline_comparison_<split>.csv
- run_metadata.json               schema version, input and ratings hashes, timestamps
"""

import hashlib
import json
import logging
from dataclasses import astuple
from datetime import datetime
from pathlib import Path
from typing import Iterable

from mftr.data.schema import SCHEMA_VERSION
from mftr.models.blend import BlendConfig

logger = logging.getLogger(__name__)

RATINGS_FILE = "mftr_ratings_ridge.csv"
METRICS_FILE = "mftr_metrics_ridge.json"
BLEND_SEARCH_FILE = "rating_blend_search.csv"
BLEND_CONFIG_FILE = "rating_blend_config.json"
METADATA_FILE = "run_metadata.json"


def compute_ratings_hash(ratings: dict[str, float]) -> str:
    """MD5 of the solved ratings, for integrity checks of persisted tables."""
    hasher = hashlib.md5()
    for team in sorted(ratings):
        hasher.update(f"{team}:{ratings[team]!r};".encode())
    return hasher.hexdigest()


def compute_records_hash(records: Iterable) -> str:
    """MD5 of a collection of input records, independent of their order."""
    hasher = hashlib.md5()
    for line in sorted(repr(astuple(r)) for r in records):
        hasher.update(f"{line};".encode())
    return hasher.hexdigest()


def _write_json(path: Path, payload: dict) -> None:
    with open(path, "w") as f:
        json.dump(payload, f, indent=2)


def write_artifacts(result, output_dir: str | Path) -> Path:
    """Persist a PipelineResult.

    Args:
        result: PipelineResult from RatingPipeline.run()
        output_dir: Parent directory; a unique run directory is created inside

    Returns:
        Path of the run directory

    Raises:
        ValueError: If the result failed baseline validation
    """
    if not result.healthy:
        raise ValueError("Refusing to persist ratings that failed baseline validation")

    created_at = datetime.now()
    run_id = f"{result.config.season}_{created_at.strftime('%Y%m%dT%H%M%S_%f')}"
    run_dir = Path(output_dir) / run_id
    run_dir.mkdir(parents=True, exist_ok=False)

    solution = result.ratings
    solution.get_ratings_df().to_csv(run_dir / RATINGS_FILE, index=False, float_format="%.4f")

    _write_json(
        run_dir / METRICS_FILE,
        {
            "lambda": solution.lam,
            "hfaConstant": solution.hfa,
            "nTeams": len(solution.ratings),
            "nGames": solution.n_games,
            "nTrimmed": solution.n_trimmed,
            "setMetrics": {k: v.to_dict() for k, v in result.set_metrics.items()},
            "lambdaSelection": result.lambda_selection.to_dict(),
        },
    )

    result.blend.candidates_df().to_csv(run_dir / BLEND_SEARCH_FILE, index=False, float_format="%.4f")
    _write_json(run_dir / BLEND_CONFIG_FILE, result.blend.config.to_dict())

    for split, comparison in result.baselines.items():
        comparison.to_frame().to_csv(
            run_dir / f"core_baseline_comparison_{split}.csv", index=False, float_format="%.4f"
        )

    _write_json(
        run_dir / METADATA_FILE,
        {
            "run_id": run_id,
            "created_at": created_at.isoformat(),
            "schema_version": SCHEMA_VERSION,
            "season": result.config.season,
            "weeks": list(result.config.weeks),
            "n_input_games": result.n_input_games,
            "input_hashes": dict(result.input_hashes),
            "ratings_hash": compute_ratings_hash(solution.ratings),
            "stages": list(result.stage_log),
        },
    )

    logger.info(f"Saved artifacts to {run_dir}")
    return run_dir


def load_blend_config(path: str | Path) -> BlendConfig:
    """Load a persisted BlendConfig for downstream prediction."""
    with open(path) as f:
        return BlendConfig.from_dict(json.load(f))
