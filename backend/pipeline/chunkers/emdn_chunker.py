"""
EMDN Chunker

Reads the EMDN tab-separated export (title line + column header line, then
category / category description / code / term / level / terminal) and
writes one JSON file per category plus ``manifest.json`` and
``emdn-complete.json``.
"""

import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, List

from pipeline.base import BaseChunker
from pipeline.helpers import find_source, is_emdn_export, write_json

logger = logging.getLogger(__name__)

HEADER_LINES = 2
MAX_LOGGED_ERRORS = 5


class EmdnChunker(BaseChunker):
    system_name = "EMDN"
    output_subdir = "emdn-chunks"

    def _chunk_from_source(self, target_dir: str) -> int:
        source = find_source("emdn", is_emdn_export, self.staging_dir)
        if source is None:
            return 0

        by_category = self._parse_export(source)
        return self._write_chunks(target_dir, by_category)

    def _parse_export(self, filepath: str) -> Dict[str, List[dict]]:
        by_category: Dict[str, List[dict]] = OrderedDict()
        errors: List[str] = []
        processed = 0

        with open(filepath, "r", encoding="utf-8-sig", newline="") as f:
            lines = f.read().splitlines()

        for line_no, line in enumerate(lines[HEADER_LINES:], start=HEADER_LINES + 1):
            if not line.strip():
                continue
            parts = line.split("\t")
            if len(parts) < 6:
                errors.append(f"Line {line_no}: Invalid format ({len(parts)} columns)")
                continue

            category = parts[0].strip()
            try:
                level = int(parts[4].strip())
            except ValueError:
                level = None
            if not category or level is None:
                errors.append(f"Line {line_no}: Missing category or invalid level")
                continue

            by_category.setdefault(category, []).append({
                "category": category,
                "categoryDescription": parts[1].strip(),
                "code": parts[2].strip(),
                "term": parts[3].strip(),
                "level": level,
                "isTerminal": parts[5].strip().upper() == "YES",
            })
            processed += 1

        logger.info(f"  Parsed {processed:,} EMDN entries, skipped {len(errors):,} lines")
        for err in errors[:MAX_LOGGED_ERRORS]:
            logger.warning(f"  {err}")
        if len(errors) > MAX_LOGGED_ERRORS:
            logger.warning(f"  ... and {len(errors) - MAX_LOGGED_ERRORS} more")
        return by_category

    @staticmethod
    def _write_chunks(target_dir: str, by_category: Dict[str, List[dict]]) -> int:
        total = sum(len(v) for v in by_category.values())
        manifest = {
            "generated": datetime.now(timezone.utc).isoformat(),
            "totalEntries": total,
            "totalCategories": len(by_category),
            "categories": [],
        }

        all_entries: List[dict] = []
        for category in sorted(by_category):
            entries = by_category[category]
            filename = f"emdn-{category}.json"
            terminal = sum(1 for e in entries if e["isTerminal"])
            write_json(target_dir, filename, {
                "category": category,
                "categoryDescription": entries[0]["categoryDescription"],
                "entryCount": len(entries),
                "terminalCount": terminal,
                "entries": entries,
            })
            manifest["categories"].append({
                "category": category,
                "filename": filename,
                "entryCount": len(entries),
                "terminalCount": terminal,
                "categoryDescription": entries[0]["categoryDescription"],
            })
            all_entries.extend(entries)

        write_json(target_dir, "manifest.json", manifest)
        write_json(target_dir, "emdn-complete.json", {"metadata": manifest, "entries": all_entries})
        return total
