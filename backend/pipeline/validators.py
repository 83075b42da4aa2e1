"""
Data File Validators

Pre-flight checks that verify every expected data source is present and
has the expected layout **before** the pipeline starts chunking.

Usage::

    from pipeline.validators import validate_all_sources
    results = validate_all_sources()
    if not all(r.ok for r in results):
        ...  # abort

"""

from __future__ import annotations

import csv
import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List

from pipeline.helpers import STAGING_DIR, find_source, is_csv, is_emdn_export

logger = logging.getLogger(__name__)


# ── Result dataclass ──────────────────────────────────────────────────────────

@dataclass
class ValidationResult:
    """Outcome of a single validator."""
    system: str
    ok: bool
    messages: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        status = "PASS" if self.ok else "FAIL"
        msg = "; ".join(self.messages) if self.messages else "OK"
        return f"[{status}] {self.system}: {msg}"


# ── Abstract base ─────────────────────────────────────────────────────────────

class BaseValidator(ABC):
    """Abstract validator – one per staged data source."""
    system_name: str = ""
    key: str = ""

    @abstractmethod
    def validate(self, staging_dir: str = STAGING_DIR) -> ValidationResult:
        ...


# ══════════════════════════════════════════════════════════════════════════════
#  Source validators
# ══════════════════════════════════════════════════════════════════════════════


class EmdnValidator(BaseValidator):
    system_name = "EMDN"
    key = "emdn"

    def validate(self, staging_dir: str = STAGING_DIR) -> ValidationResult:
        path = find_source("emdn", is_emdn_export, staging_dir)
        if not path:
            return ValidationResult(self.system_name, False,
                                    ["No EMDN export (EMDN*.txt) found in staging/emdn/"])
        msgs: List[str] = []
        try:
            with open(path, "r", encoding="utf-8-sig") as f:
                sample = [f.readline() for _ in range(5)][2:]
            data_lines = [ln for ln in sample if ln.strip()]
            if not data_lines:
                msgs.append(f"{os.path.basename(path)} has no data rows after the two header lines")
            elif not any(len(ln.split("\t")) >= 6 for ln in data_lines):
                msgs.append(f"{os.path.basename(path)} is not tab-separated with 6 columns")
        except (OSError, UnicodeDecodeError) as e:
            msgs.append(f"Cannot read {os.path.basename(path)}: {e}")
        return ValidationResult(self.system_name, not msgs, msgs)


class LinearizationValidator(BaseValidator):
    """WHO linearization CSV with at least *min_columns* header columns."""

    def __init__(self, key: str, subdir: str, system_name: str, min_columns: int = 14, name_hint: str = ""):
        self.key = key
        self.subdir = subdir
        self.system_name = system_name
        self.min_columns = min_columns
        self.name_hint = name_hint

    def _accepts(self, fname: str) -> bool:
        return is_csv(fname) and self.name_hint in fname.lower()

    def validate(self, staging_dir: str = STAGING_DIR) -> ValidationResult:
        path = find_source(self.subdir, self._accepts, staging_dir)
        if not path:
            return ValidationResult(self.system_name, False,
                                    [f"No linearization CSV found in staging/{self.subdir}/"])
        msgs: List[str] = []
        try:
            with open(path, "r", encoding="utf-8-sig", newline="") as f:
                header = next(csv.reader(f), [])
            if len(header) < self.min_columns:
                msgs.append(
                    f"{os.path.basename(path)} has {len(header)} columns, expected at least {self.min_columns}"
                )
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            msgs.append(f"Cannot read {os.path.basename(path)}: {e}")
        return ValidationResult(self.system_name, not msgs, msgs)


# ══════════════════════════════════════════════════════════════════════════════
#  Registry + runner
# ══════════════════════════════════════════════════════════════════════════════

ALL_VALIDATORS: List[BaseValidator] = [
    EmdnValidator(),
    LinearizationValidator("icf", "icf", "ICF"),
    LinearizationValidator("ichi", "ichi", "ICHI"),
    LinearizationValidator("icd11", "icd11", "ICD-11 MMS", min_columns=20, name_hint="mms"),
]


def validate_all_sources(
    strict: bool = False,
    staging_dir: str = STAGING_DIR,
    keys: List[str] | None = None,
) -> List[ValidationResult]:
    """Run the registered validators and log results.

    Parameters
    ----------
    strict : bool
        If ``True``, a single failure causes a ``SystemExit``.
    staging_dir : str
        Root of the staged source files.
    keys : list[str], optional
        Restrict validation to these source keys.

    Returns
    -------
    list[ValidationResult]
        One result per validator run.
    """
    logger.info("\n" + "=" * 70)
    logger.info("  Pre-Flight Validation")
    logger.info("=" * 70)

    results: List[ValidationResult] = []
    for v in ALL_VALIDATORS:
        if keys is not None and v.key not in keys:
            continue
        r = v.validate(staging_dir)
        results.append(r)
        if r.ok:
            logger.info(f"  ✓ {r.system}")
        else:
            for msg in r.messages:
                logger.warning(f"  ✗ {r.system}: {msg}")

    passed = sum(1 for r in results if r.ok)
    failed = len(results) - passed
    logger.info("-" * 70)
    logger.info(f"  Validation: {passed} passed, {failed} failed out of {len(results)} checks")
    logger.info("=" * 70)

    if strict and failed:
        raise SystemExit(
            f"Validation failed for {failed} source(s). "
            "Fix the issues above and re-run."
        )

    return results
