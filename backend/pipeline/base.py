"""
Base classes for the data processing pipeline.

Provides ``BaseChunker`` and ``BasePipeline`` that establish the contract
every concrete chunker must follow.
"""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Dict, List

from pipeline.helpers import STAGING_DIR

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
#  BaseChunker
# ──────────────────────────────────────────────────────────────────────────────

class BaseChunker(ABC):
    """Abstract base class for converting one staged source into JSON chunks.

    Subclasses must set ``system_name`` and ``output_subdir`` and implement
    ``_chunk_from_source``.
    """

    system_name: str = ""
    """Human-readable system label (e.g. ``'EMDN'``)."""

    output_subdir: str = ""
    """Directory under the output root the chunks are written to."""

    def __init__(self, staging_dir: str = STAGING_DIR):
        self.staging_dir = staging_dir

    def run(self, output_dir: str) -> int:
        """Public entry point – chunks the source and writes the manifest."""
        logger.info(f"Chunking {self.system_name}...")
        start = time.perf_counter()

        target = os.path.join(output_dir, self.output_subdir)
        os.makedirs(target, exist_ok=True)
        count = self._chunk_from_source(target)
        if count == 0:
            logger.warning(f"  {self.system_name}: no entries read from source files")

        elapsed = time.perf_counter() - start
        logger.info(f"Wrote {count:,} {self.system_name} entries to {target} ({elapsed:.1f}s).")
        return count

    @abstractmethod
    def _chunk_from_source(self, target_dir: str) -> int:
        """Read the staged source and write chunks.  Return entries written."""
        ...


# ──────────────────────────────────────────────────────────────────────────────
#  BasePipeline
# ──────────────────────────────────────────────────────────────────────────────

class BasePipeline:
    """Runs a sequence of chunkers, isolating failures per chunker.

    Parameters
    ----------
    chunkers : list[BaseChunker]
        Ordered list of chunkers to execute.
    output_dir : str
        Root directory the chunk directories are written under.
    """

    def __init__(self, chunkers: List[BaseChunker], output_dir: str):
        self.chunkers = chunkers
        self.output_dir = output_dir

    def run(self) -> Dict[str, int | None]:
        """Execute every chunker and summarise.  ``None`` marks a failure."""
        logger.info("=" * 70)
        logger.info("  Medical Device Navigator - Data Chunking Pipeline")
        logger.info("=" * 70)

        results = self._run_phase("Chunking Source Files", self.chunkers)
        self._print_summary(results)
        return results

    # ── Internal helpers ──────────────────────────────────────────────────

    def _run_phase(self, title: str, steps: List[BaseChunker]) -> Dict[str, int | None]:
        logger.info(f"\n-- {title} " + "-" * (52 - len(title)))
        results: Dict[str, int | None] = {}
        for step in steps:
            try:
                results[step.system_name] = step.run(self.output_dir)
            except Exception as e:
                logger.error(f"  Error in {step.system_name}: {e}")
                results[step.system_name] = None
        return results

    @staticmethod
    def _print_summary(results: Dict[str, int | None]) -> None:
        logger.info("\n" + "=" * 70)
        logger.info("  Pipeline Summary")
        logger.info("=" * 70)
        for name, count in results.items():
            shown = "FAILED" if count is None else f"{count:,}"
            logger.info(f"  {name + ':':<22}{shown:>10}")
        logger.info("=" * 70)
        failed = [n for n, c in results.items() if c is None]
        if failed:
            logger.warning(f"  Pipeline finished with failures: {', '.join(failed)}")
        else:
            logger.info("  Pipeline completed successfully!")
