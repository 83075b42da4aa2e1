"""
Medical Device Navigator – Pipeline Orchestrator

Assembles all chunkers into a ``NavigatorPipeline`` and exposes the
top-level ``run_pipeline()`` entry point.

The pipeline performs two phases:
  1. Validate all expected source files in ``data/staging/``
  2. Chunk each source into the JSON layout served by the API

Usage::

    python -m pipeline.pipeline          # direct execution
    from pipeline.pipeline import run_pipeline
    run_pipeline()                       # programmatic

"""

import logging
import os
import shutil
from typing import Callable, Dict

from pipeline.base import BaseChunker, BasePipeline
from pipeline.chunkers import (
    EmdnChunker,
    Icd11LinearizationChunker,
    WhoClassificationChunker,
)
from pipeline.helpers import DATA_DIR, STAGING_DIR, ensure_staging_dirs
from pipeline.validators import validate_all_sources

logger = logging.getLogger(__name__)


# ── Canonical keys for --only / --skip filtering ─────────────────────────────
# Keys are lowercase labels users pass on the CLI.
# Values build the chunker for a given staging directory.

CHUNKER_KEYS: Dict[str, Callable[[str], BaseChunker]] = {
    "emdn":  lambda staging: EmdnChunker(staging),
    "icf":   lambda staging: WhoClassificationChunker("icf", staging),
    "ichi":  lambda staging: WhoClassificationChunker("ichi", staging),
    "icd11": lambda staging: Icd11LinearizationChunker("mms", staging),
}


class NavigatorPipeline(BasePipeline):
    """Concrete pipeline wiring the selected chunkers in execution order."""

    def __init__(self, keys, staging_dir: str = STAGING_DIR, output_dir: str = DATA_DIR):
        super().__init__(
            chunkers=[CHUNKER_KEYS[k](staging_dir) for k in keys],
            output_dir=output_dir,
        )
        self.keys = list(keys)


def select_keys(only: list[str] | None = None, skip: list[str] | None = None) -> list[str]:
    """Resolve --only / --skip into an ordered list of chunker keys."""
    if only and skip:
        raise ValueError("--only and --skip are mutually exclusive")
    for k in (only or []) + (skip or []):
        if k.lower() not in CHUNKER_KEYS:
            raise ValueError(f"Unknown key '{k}'. Valid keys: {', '.join(sorted(CHUNKER_KEYS))}")
    if only:
        wanted = {k.lower() for k in only}
        return [k for k in CHUNKER_KEYS if k in wanted]
    skipped = {k.lower() for k in (skip or [])}
    return [k for k in CHUNKER_KEYS if k not in skipped]


def clean_output(keys: list[str], output_dir: str = DATA_DIR, staging_dir: str = STAGING_DIR) -> int:
    """Delete previously generated chunk directories.  Returns dirs removed."""
    removed = 0
    for key in keys:
        target = os.path.join(output_dir, CHUNKER_KEYS[key](staging_dir).output_subdir)
        if os.path.isdir(target):
            shutil.rmtree(target)
            logger.info(f"Removed {target}")
            removed += 1
    return removed


def run_pipeline(
    strict: bool = False,
    only: list[str] | None = None,
    skip: list[str] | None = None,
    validate_only: bool = False,
    clean: bool = False,
    staging_dir: str = STAGING_DIR,
    output_dir: str = DATA_DIR,
) -> Dict[str, int | None]:
    """Public entry point — validate, then chunk.

    Parameters
    ----------
    strict : bool
        If ``True``, the pipeline aborts when any validation check fails.
        Default ``False`` — warnings are logged but processing continues
        for whichever sources *are* available.
    only : list[str] | None
        If provided, run **only** these chunkers (by key name).
    skip : list[str] | None
        If provided, skip these chunkers (by key name).
    validate_only : bool
        Run validation and exit without chunking.
    clean : bool
        Delete the selected chunk directories before running.
    staging_dir, output_dir : str
        Where sources are read from and chunk directories are written to.

    Returns
    -------
    dict
        Entries written per system (``None`` for a failed chunker).
    """
    keys = select_keys(only, skip)
    ensure_staging_dirs(staging_dir)

    # Phase 1: pre-flight validation
    results = validate_all_sources(strict=strict, staging_dir=staging_dir, keys=keys)
    failed = [r for r in results if not r.ok]
    if failed and not strict:
        logger.info(
            f"  ⚠ {len(failed)} validation warning(s) — "
            "pipeline will skip missing sources."
        )

    if validate_only:
        logger.info("Validation-only mode — exiting without chunking data.")
        return {}

    if clean:
        clean_output(keys, output_dir, staging_dir)

    # Phase 2: chunk
    return NavigatorPipeline(keys, staging_dir, output_dir).run()


if __name__ == "__main__":
    import argparse

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    parser = argparse.ArgumentParser(
        description="Medical Device Navigator Data Chunking Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Available keys for --only / --skip:
  emdn, icf, ichi, icd11

Examples:
  python -m pipeline.pipeline                        # full pipeline
  python -m pipeline.pipeline --only emdn            # only EMDN
  python -m pipeline.pipeline --skip icd11           # everything except ICD-11
  python -m pipeline.pipeline --validate             # validate sources only
  python -m pipeline.pipeline --only icf --strict    # ICF only, abort on errors
  python -m pipeline.pipeline --clean                # delete chunks + full rebuild
""",
    )
    parser.add_argument(
        "--only", nargs="+", metavar="KEY",
        help="Run only these chunkers (space-separated keys)",
    )
    parser.add_argument(
        "--skip", nargs="+", metavar="KEY",
        help="Skip these chunkers (space-separated keys)",
    )
    parser.add_argument(
        "--strict", action="store_true",
        help="Abort pipeline if any validation check fails",
    )
    parser.add_argument(
        "--validate", action="store_true",
        help="Run validation only — do not chunk data",
    )
    parser.add_argument(
        "--clean", action="store_true",
        help="Delete existing chunk directories before running",
    )
    parser.add_argument(
        "--staging", default=STAGING_DIR, metavar="DIR",
        help=f"Staged source directory (default: {STAGING_DIR})",
    )
    parser.add_argument(
        "--output", default=DATA_DIR, metavar="DIR",
        help=f"Output root for chunk directories (default: {DATA_DIR})",
    )
    parser.add_argument(
        "--list", action="store_true", dest="list_keys",
        help="List available chunker keys and exit",
    )

    args = parser.parse_args()

    if args.list_keys:
        print("\nAvailable pipeline keys:")
        for k in CHUNKER_KEYS:
            print(f"    {k}")
        raise SystemExit(0)

    try:
        select_keys(args.only, args.skip)
    except ValueError as e:
        parser.error(str(e))

    run_pipeline(
        strict=args.strict,
        only=args.only,
        skip=args.skip,
        validate_only=args.validate,
        clean=args.clean,
        staging_dir=args.staging,
        output_dir=args.output,
    )
