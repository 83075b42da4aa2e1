"""
Shared helpers for the data processing pipeline.

Provides staging-file discovery, JSON writing and the text clean-up rules
used across all chunkers.
"""

import json
import os
import re
import logging
from typing import Callable, Iterator, List, Optional

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATA_DIR = os.environ.get("DATA_DIR") or os.path.join(BASE_DIR, "data")
STAGING_DIR = os.path.join(DATA_DIR, "staging")

CHUNK_SIZE = 1000

# Staging sub-directory names, one per source system
STAGING_SUBDIRS = ["emdn", "icf", "ichi", "icd11"]

_URL_PATTERN = re.compile(r'https?://[^"]+')


# ──────────────────────────────────────────────────────────────────────────────
#  Staging-file discovery
# ──────────────────────────────────────────────────────────────────────────────

def ensure_staging_dirs(staging_dir: str = STAGING_DIR) -> None:
    for sub in STAGING_SUBDIRS:
        os.makedirs(os.path.join(staging_dir, sub), exist_ok=True)


def find_source(subdir: str, rule: Callable[[str], bool], staging_dir: str = STAGING_DIR) -> Optional[str]:
    """First file in staging/<subdir>/ (sorted by name) accepted by *rule*."""
    folder = os.path.join(staging_dir, subdir)
    if not os.path.isdir(folder):
        return None
    for fname in sorted(os.listdir(folder)):
        if rule(fname) and os.path.isfile(os.path.join(folder, fname)):
            return os.path.join(folder, fname)
    return None


def is_emdn_export(f: str) -> bool:
    """EMDN tab-separated export, e.g. ``EMDN.txt`` or ``EMDN_V2_EN.txt``."""
    return f.upper().startswith("EMDN") and f.lower().endswith((".txt", ".tsv"))


def is_csv(f: str) -> bool:
    return f.lower().endswith(".csv")


# ──────────────────────────────────────────────────────────────────────────────
#  Output helpers
# ──────────────────────────────────────────────────────────────────────────────

def write_json(base_dir: str, rel_path: str, data: dict | list) -> None:
    """Write data as JSON to base_dir/rel_path, creating directories as needed."""
    full = os.path.join(base_dir, rel_path)
    os.makedirs(os.path.dirname(full), exist_ok=True)
    with open(full, "w", encoding="utf-8") as f:
        json.dump(data, f, separators=(",", ":"), ensure_ascii=False)


def split_chunks(items: List[dict], size: int = CHUNK_SIZE) -> Iterator[List[dict]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


# ──────────────────────────────────────────────────────────────────────────────
#  Text clean-up
# ──────────────────────────────────────────────────────────────────────────────

def clean_title(title: str, strip_hierarchy_dash: bool = False) -> str:
    """Strip wrapping quotes, unescape doubled quotes, optionally drop a leading '- '."""
    if not title:
        return ""
    cleaned = title
    if cleaned.startswith('"'):
        cleaned = cleaned[1:]
    if cleaned.endswith('"'):
        cleaned = cleaned[:-1]
    cleaned = cleaned.replace('""', '"')
    if strip_hierarchy_dash and cleaned.startswith("- "):
        cleaned = cleaned[2:]
    return cleaned.strip()


def clean_url(link: str) -> str:
    """Pull the URL out of a spreadsheet HYPERLINK formula."""
    if not link:
        return ""
    if link in ("browser", "iCat"):
        return link
    match = _URL_PATTERN.search(link)
    return match.group(0) if match else link


def to_int(value: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        return 0


def is_true(value: str) -> bool:
    return str(value).strip() == "True"
