"""
ICD-11 Linearization Chunker

Reads an ICD-11 linearization CSV (MMS by default) and writes chunk objects
``{chunkIndex, startIndex, endIndex, entryCount, entries}`` plus
``icd11-{linearization}-manifest.json`` with depth distribution and chapter
numbers.  Chapters and blocks without a code are kept.  MMS rows also carry
the primary-tabulation flag and the five grouping columns.
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import List

from pipeline.base import BaseChunker
from pipeline.chunkers.who_chunker import (
    BLOCK_ID, BROWSER_LINK, CHAPTER_NO, CLASS_KIND, CODE, DEPTH_IN_KIND,
    FOUNDATION_URI, ICAT_LINK, IS_LEAF, IS_RESIDUAL, KIND_STATS,
    NO_OF_NON_RESIDUAL_CHILDREN, TITLE, read_linearization_rows,
)
from pipeline.helpers import (
    CHUNK_SIZE, STAGING_DIR, clean_title, clean_url, find_source, is_csv, is_true,
    split_chunks, to_int, write_json,
)

logger = logging.getLogger(__name__)

# MMS-only columns
PRIMARY_TABULATION = 14
GROUPINGS = (15, 16, 17, 18, 19)


class Icd11LinearizationChunker(BaseChunker):
    system_name = "ICD-11"

    def __init__(self, linearization: str = "mms", staging_dir: str = STAGING_DIR):
        super().__init__(staging_dir)
        self.linearization = linearization.lower()
        self.system_name = f"ICD-11 {self.linearization.upper()}"
        self.output_subdir = f"icd11-{self.linearization}-chunks"

    def _accepts(self, fname: str) -> bool:
        return is_csv(fname) and self.linearization in fname.lower()

    def _chunk_from_source(self, target_dir: str) -> int:
        source = find_source("icd11", self._accepts, self.staging_dir)
        if source is None:
            return 0

        entries = []
        for line_no, cols in read_linearization_rows(source):
            entry = self._create_entry(cols, line_no)
            if entry is not None:
                entries.append(entry)

        self._write(target_dir, entries)
        return len(entries)

    def _create_entry(self, cols: List[str], line_no: int) -> dict | None:
        title = clean_title(cols[TITLE])
        if not title or title == "Title" or "Version:" in title:
            return None

        entry = {
            "id": cols[FOUNDATION_URI] or f"icd11-{self.linearization}-{line_no}",
            "code": cols[CODE],
            "title": title,
            "classKind": cols[CLASS_KIND],
            "depth": to_int(cols[DEPTH_IN_KIND]),
            "isLeaf": is_true(cols[IS_LEAF]),
            "isResidual": is_true(cols[IS_RESIDUAL]),
            "blockId": cols[BLOCK_ID],
            "chapterNo": cols[CHAPTER_NO],
            "browserLink": clean_url(cols[BROWSER_LINK]),
            "iCatLink": clean_url(cols[ICAT_LINK]),
            "childrenCount": to_int(cols[NO_OF_NON_RESIDUAL_CHILDREN]),
            "linearization": self.linearization,
        }
        if self.linearization == "mms":
            entry["primaryTabulation"] = is_true(cols[PRIMARY_TABULATION])
            entry["groupings"] = {f"grouping{i + 1}": cols[col] for i, col in enumerate(GROUPINGS)}
        return entry

    def _write(self, target_dir: str, entries: List[dict]) -> None:
        prefix = f"icd11-{self.linearization}"
        chunk_meta = []
        start = 0
        for index, chunk in enumerate(split_chunks(entries, CHUNK_SIZE)):
            filename = f"{prefix}-chunk-{index}.json"
            write_json(target_dir, filename, {
                "chunkIndex": index,
                "startIndex": start,
                "endIndex": start + len(chunk) - 1,
                "entryCount": len(chunk),
                "entries": chunk,
            })
            chunk_meta.append({
                "index": index,
                "file": filename,
                "entryCount": len(chunk),
                "startIndex": start,
                "endIndex": start + len(chunk) - 1,
            })
            start += len(chunk)

        kinds = Counter(e["classKind"] for e in entries)
        depths = Counter(e["depth"] for e in entries)
        stats = {
            "totalEntries": len(entries),
            **{label: kinds.get(kind, 0) for kind, label in KIND_STATS.items()},
            "depthDistribution": {str(d): depths[d] for d in sorted(depths)},
            "chapterNumbers": sorted({e["chapterNo"] for e in entries if e["chapterNo"]}),
        }
        write_json(target_dir, f"{prefix}-manifest.json", {
            "linearization": self.linearization,
            "totalEntries": len(entries),
            "totalChunks": len(chunk_meta),
            "maxEntriesPerChunk": CHUNK_SIZE,
            "stats": stats,
            "chunks": chunk_meta,
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "version": "1.0.0",
        })
        logger.info(
            f"  {self.system_name}: {stats['chapters']} chapters, {stats['blocks']} blocks, "
            f"{stats['categories']} categories, depth levels {list(stats['depthDistribution'])}"
        )
