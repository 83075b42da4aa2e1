"""
WHO Classification Chunker (ICF / ICHI)

Reads a WHO linearization spreadsheet export saved as CSV and writes
1000-entry chunk files plus ``{kind}-manifest.json`` with per-class-kind
statistics.  Rows with fewer than 10 columns and rows without a code are
skipped.
"""

import csv
import logging
from datetime import datetime, timezone
from typing import Iterator, List

from pipeline.base import BaseChunker
from pipeline.helpers import (
    CHUNK_SIZE, STAGING_DIR, clean_title, clean_url, find_source, is_csv, is_true,
    split_chunks, to_int, write_json,
)

logger = logging.getLogger(__name__)

# Column positions shared by all WHO linearization exports
FOUNDATION_URI = 0
LINEARIZATION_URI = 1
CODE = 2
BLOCK_ID = 3
TITLE = 4
CLASS_KIND = 5
DEPTH_IN_KIND = 6
IS_RESIDUAL = 7
PRIMARY_LOCATION = 8
CHAPTER_NO = 9
BROWSER_LINK = 10
ICAT_LINK = 11
IS_LEAF = 12
NO_OF_NON_RESIDUAL_CHILDREN = 13

MIN_COLUMNS = 10
PADDED_WIDTH = 20

KIND_STATS = {"chapter": "chapters", "block": "blocks", "category": "categories"}


def read_linearization_rows(filepath: str) -> Iterator[tuple[int, List[str]]]:
    """Yield ``(line_no, columns)`` for data rows, padded to a fixed width."""
    with open(filepath, "r", encoding="utf-8-sig", newline="") as f:
        reader = csv.reader(f)
        next(reader, None)  # header
        for row in reader:
            if not row or len(row) < MIN_COLUMNS:
                continue
            cols = [c.strip() for c in row]
            cols.extend([""] * (PADDED_WIDTH - len(cols)))
            yield reader.line_num, cols


class WhoClassificationChunker(BaseChunker):

    def __init__(self, kind: str, staging_dir: str = STAGING_DIR):
        kind = kind.lower()
        if kind not in ("icf", "ichi"):
            raise ValueError(f"Unsupported WHO classification '{kind}'")
        super().__init__(staging_dir)
        self.kind = kind
        self.system_name = kind.upper()
        self.output_subdir = f"{kind}-chunks"

    def _chunk_from_source(self, target_dir: str) -> int:
        source = find_source(self.kind, is_csv, self.staging_dir)
        if source is None:
            return 0

        entries: List[dict] = []
        stats = {"totalEntries": 0, "totalCategories": 0, "chapters": 0, "blocks": 0, "categories": 0}
        for _line_no, cols in read_linearization_rows(source):
            entry = self._create_entry(cols, len(entries))
            if entry is None or not entry["code"]:
                continue
            entries.append(entry)
            stats["totalEntries"] += 1
            stats["totalCategories"] += 1
            if entry["classKind"] in KIND_STATS:
                stats[KIND_STATS[entry["classKind"]]] += 1

        self._write(target_dir, entries, stats)
        return len(entries)

    def _create_entry(self, cols: List[str], index: int) -> dict | None:
        title = clean_title(cols[TITLE], strip_hierarchy_dash=True)
        if not title or title == "Title":
            return None
        return {
            "id": cols[FOUNDATION_URI] or f"{self.kind}-{index}",
            "code": cols[CODE],
            "title": title,
            "classKind": cols[CLASS_KIND],
            "depth": to_int(cols[DEPTH_IN_KIND]),
            "isLeaf": is_true(cols[IS_LEAF]),
            "blockId": cols[BLOCK_ID],
            "browserLink": clean_url(cols[BROWSER_LINK]),
            "childrenCount": to_int(cols[NO_OF_NON_RESIDUAL_CHILDREN]),
        }

    def _write(self, target_dir: str, entries: List[dict], stats: dict) -> None:
        chunk_meta = []
        for index, chunk in enumerate(split_chunks(entries, CHUNK_SIZE)):
            filename = f"{self.kind}-chunk-{index}.json"
            write_json(target_dir, filename, chunk)
            chunk_meta.append({
                "file": filename,
                "entries": len(chunk),
                "firstEntry": chunk[0]["title"],
                "lastEntry": chunk[-1]["title"],
            })

        write_json(target_dir, f"{self.kind}-manifest.json", {
            "type": self.kind.upper(),
            "version": "1.0.0",
            "generated": datetime.now(timezone.utc).isoformat(),
            "totalEntries": stats["totalEntries"],
            "totalCategories": stats["totalCategories"],
            "totalChunks": len(chunk_meta),
            "chunkSize": CHUNK_SIZE,
            "stats": stats,
            "chunks": chunk_meta,
        })
        logger.info(
            f"  {self.system_name}: {stats['chapters']} chapters, {stats['blocks']} blocks, "
            f"{stats['categories']} categories in {len(chunk_meta)} chunks"
        )
