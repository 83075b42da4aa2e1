"""
Lookup Service – read-only access to the chunked nomenclature datasets.

Each dataset is a directory under ``DATA_DIR`` holding a manifest plus a set
of JSON chunk files produced by the data pipeline.  Manifests and chunks are
loaded lazily and cached for the lifetime of the process.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Iterator

from api.errors import DatasetUnavailableError, InvalidInputError

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


def _text(entry: dict, key: str) -> str:
    value = entry.get(key)
    return "" if value is None else str(value).lower()


# ─── Base dataset ────────────────────────────────────────────────────────────

class ChunkedDataset:
    """A manifest plus JSON chunk files in one directory.

    Subclasses set ``system``/``label``/``subdir``/``manifest_name`` and
    implement ``chunk_files``.
    """

    system: str = ""
    label: str = ""
    subdir: str = ""
    manifest_name: str = ""
    search_fields: tuple = ("code", "title")

    def __init__(self, data_dir: str):
        self.directory = os.path.join(data_dir, self.subdir)
        self._manifest: dict | None = None
        self._chunks: dict[str, list[dict]] = {}

    # ── Loading ───────────────────────────────────────────────────────────

    @property
    def available(self) -> bool:
        return os.path.isfile(os.path.join(self.directory, self.manifest_name))

    def _read_json(self, filename: str):
        path = os.path.join(self.directory, filename)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            raise DatasetUnavailableError(
                f"{self.label} data is not available ({filename} missing). "
                "Run the data pipeline to generate it."
            )
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read {path}: {e}")
            raise DatasetUnavailableError(f"{self.label} data file {filename} is unreadable")

    def manifest(self) -> dict:
        if self._manifest is None:
            manifest = self._read_json(self.manifest_name)
            if not isinstance(manifest, dict):
                raise self._malformed_manifest(TypeError(f"expected an object, got {type(manifest).__name__}"))
            self._manifest = manifest
            logger.info(f"Loaded {self.label} manifest from {self.directory}")
        return self._manifest

    def chunk_files(self) -> list[str]:
        raise NotImplementedError

    def _listed_files(self, items, filename_of) -> list[str]:
        """Chunk file names from manifest records; bad records mean a bad manifest."""
        try:
            return [filename_of(item) for item in items]
        except (KeyError, TypeError) as e:
            raise self._malformed_manifest(e)

    def _malformed_manifest(self, error: Exception) -> DatasetUnavailableError:
        logger.error(f"Malformed {self.label} manifest in {self.directory}: {error!r}")
        return DatasetUnavailableError(f"{self.label} manifest {self.manifest_name} is malformed")

    def _entries_from_chunk(self, data) -> list[dict]:
        return data

    def load_chunk(self, filename: str) -> list[dict]:
        if filename not in self._chunks:
            self._chunks[filename] = self._entries_from_chunk(self._read_json(filename))
        return self._chunks[filename]

    def iter_entries(self) -> Iterator[dict]:
        for filename in self.chunk_files():
            yield from self.load_chunk(filename)

    # ── Queries ───────────────────────────────────────────────────────────

    def _matches(self, entry: dict, needle: str, terms: list[str]) -> bool:
        """Every whitespace-separated term must occur in the search text."""
        haystack = " ".join(_text(entry, f) for f in self.search_fields)
        return all(term in haystack for term in terms)

    def search(self, query: str | None, limit: int | None = DEFAULT_LIMIT) -> list[dict]:
        needle = (query or "").strip().lower()
        terms = needle.split()
        results: list[dict] = []
        for entry in self.iter_entries():
            if limit is not None and len(results) >= limit:
                break
            if self._matches(entry, needle, terms):
                results.append(entry)
        return results

    def get_by_code(self, code: str) -> dict | None:
        wanted = (code or "").strip().upper()
        if not wanted:
            return None
        for entry in self.iter_entries():
            if str(entry.get("code", "")).upper() == wanted:
                return entry
        return None

    def by_class_kind(self, class_kind: str) -> list[dict]:
        return [e for e in self.iter_entries() if e.get("classKind") == class_kind]

    def stats(self) -> dict:
        if not self.available:
            return {"system": self.system, "label": self.label, "available": False}
        manifest = self.manifest()
        return {
            "system": self.system,
            "label": self.label,
            "available": True,
            "totalEntries": manifest.get("totalEntries"),
            "totalChunks": len(self.chunk_files()),
            "generated": manifest.get("generated"),
        }


class SubstringDataset(ChunkedDataset):
    """Datasets matched on the whole query as a single substring."""

    def _matches(self, entry: dict, needle: str, terms: list[str]) -> bool:
        if not needle:
            return True
        return any(needle in _text(entry, f) for f in self.search_fields)


# ─── EMDN ────────────────────────────────────────────────────────────────────

def emdn_parent_code(code: str, level: int) -> str | None:
    """Parent of an EMDN code: A01 -> A, A0101 -> A01, A010101 -> A0101 ..."""
    if level > 1 and len(code) in (3, 5, 7, 9, 11):
        return code[:-2]
    return None


class EmdnDataset(SubstringDataset):
    system = "emdn"
    label = "EMDN"
    subdir = "emdn-chunks"
    manifest_name = "manifest.json"
    search_fields = ("code", "term", "categoryDescription")

    def categories(self) -> list[dict]:
        return self.manifest().get("categories", [])

    def chunk_files(self) -> list[str]:
        return self._listed_files(self.categories(), lambda c: c["filename"])

    def _entries_from_chunk(self, data) -> list[dict]:
        entries = data.get("entries", []) if isinstance(data, dict) else data
        for entry in entries:
            entry["parentCode"] = emdn_parent_code(entry.get("code", ""), int(entry.get("level") or 0))
        return entries

    def search(self, query: str | None, limit: int | None = None) -> list[dict]:
        return super().search(query, limit)

    def chunk_for_category(self, category: str) -> str | None:
        for c in self.categories():
            if c.get("category", "").upper() == category.upper():
                return c.get("filename")
        return None

    def get_by_code(self, code: str) -> dict | None:
        """Reads only the chunk of the code's category letter."""
        wanted = (code or "").strip().upper()
        if not wanted:
            return None
        filename = self.chunk_for_category(wanted[0])
        if filename is None:
            return None
        for entry in self.load_chunk(filename):
            if entry.get("code", "").upper() == wanted:
                return entry
        return None

    def entries_for_category(self, category: str) -> list[dict]:
        filename = self.chunk_for_category(category)
        return self.load_chunk(filename) if filename else []

    def children_of(self, code: str) -> list[dict]:
        wanted = (code or "").strip().upper()
        if not wanted:
            return []
        return [e for e in self.entries_for_category(wanted[0]) if e.get("parentCode") == wanted]

    def entries_by_level(self, level: int) -> list[dict]:
        return [e for e in self.iter_entries() if e.get("level") == level]

    def terminal_entries(self) -> list[dict]:
        return [e for e in self.iter_entries() if e.get("isTerminal")]


# ─── ICD-10 ──────────────────────────────────────────────────────────────────

class Icd10Dataset(SubstringDataset):
    system = "icd10"
    label = "ICD-10"
    subdir = "icd-chunks"
    manifest_name = "icd10-manifest.json"
    search_fields = ("code", "title", "definition")

    def chunk_files(self) -> list[str]:
        return self._listed_files(
            self.manifest().get("chunks", []),
            lambda c: c.get("file") or f"icd10-chunk-{c['id']}.json",
        )

    def by_chapter(self, chapter: str) -> list[dict]:
        return [e for e in self.iter_entries() if e.get("chapter") == chapter or e.get("code") == chapter]


# ─── ICD-11 MMS ──────────────────────────────────────────────────────────────

class Icd11MmsDataset(ChunkedDataset):
    system = "icd11"
    label = "ICD-11 MMS"
    subdir = "icd11-mms-chunks"
    manifest_name = "icd11-mms-manifest.json"

    def chunk_files(self) -> list[str]:
        try:
            total = int(self.manifest().get("totalChunks", 0))
        except (TypeError, ValueError) as e:
            raise self._malformed_manifest(e)
        return [f"icd11-mms-chunk-{i}.json" for i in range(total)]

    def _entries_from_chunk(self, data) -> list[dict]:
        return data.get("entries", []) if isinstance(data, dict) else data


# ─── ICF / ICHI ──────────────────────────────────────────────────────────────

class WhoDataset(ChunkedDataset):
    """ICF and ICHI share one chunk layout, keyed by ``kind``."""

    search_fields = ("title", "code")

    def __init__(self, data_dir: str, kind: str):
        self.system = kind
        self.label = kind.upper()
        self.subdir = f"{kind}-chunks"
        self.manifest_name = f"{kind}-manifest.json"
        super().__init__(data_dir)

    def chunk_files(self) -> list[str]:
        return self._listed_files(self.manifest().get("chunks", []), lambda c: c["file"])


# ─── Facade ──────────────────────────────────────────────────────────────────

class LookupService:
    """All lookup datasets behind one object, addressed by system key."""

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self.emdn = EmdnDataset(data_dir)
        self.icd10 = Icd10Dataset(data_dir)
        self.icd11 = Icd11MmsDataset(data_dir)
        self.icf = WhoDataset(data_dir, "icf")
        self.ichi = WhoDataset(data_dir, "ichi")
        self.datasets: dict[str, ChunkedDataset] = {
            d.system: d for d in (self.emdn, self.icd10, self.icd11, self.icf, self.ichi)
        }

    def dataset(self, system: str) -> ChunkedDataset:
        try:
            return self.datasets[(system or "").lower()]
        except KeyError:
            raise InvalidInputError(
                f"Unknown system '{system}'. Expected one of: {', '.join(self.datasets)}",
                status_code=404,
            )

    def search(self, system: str, query: str | None, limit: int | None = DEFAULT_LIMIT) -> list[dict]:
        return self.dataset(system).search(query, limit)

    def get(self, system: str, code: str) -> dict | None:
        return self.dataset(system).get_by_code(code)

    def search_all(self, query: str, limit: int = DEFAULT_LIMIT) -> list[dict]:
        """Search every available dataset, tagging each hit with its system."""
        results: list[dict] = []
        for system, ds in self.datasets.items():
            if not ds.available:
                logger.warning(f"Skipping {ds.label} in global search: dataset not generated")
                continue
            for entry in ds.search(query, limit):
                results.append({**entry, "system": system})
        return results

    def stats(self) -> dict:
        return {system: ds.stats() for system, ds in self.datasets.items()}

    @staticmethod
    def get_resources() -> dict:
        return {
            "nomenclatures": [
                {
                    "title": "European Medical Device Nomenclature (EMDN)",
                    "url": "https://webgate.ec.europa.eu/dyna2/emdn/",
                    "category": "EMDN",
                    "description": "Official EMDN browser maintained by the European Commission.",
                },
                {
                    "title": "Global Medical Device Nomenclature (GMDN)",
                    "url": "https://www.gmdnagency.org/",
                    "category": "GMDN",
                    "description": "GMDN Agency term search and licensing information.",
                },
                {
                    "title": "EUDAMED",
                    "url": "https://ec.europa.eu/tools/eudamed/",
                    "category": "EMDN",
                    "description": "European database on medical devices.",
                },
            ],
            "classifications": [
                {
                    "title": "ICD-10 Browser (WHO, 2019)",
                    "url": "https://icd.who.int/browse10/2019/en",
                    "category": "ICD-10",
                    "description": "WHO browser for the International Classification of Diseases, 10th revision.",
                },
                {
                    "title": "ICD-11 Browser",
                    "url": "https://icd.who.int/browse/latest-release/mms/en",
                    "category": "ICD-11",
                    "description": "WHO browser for the ICD-11 Mortality and Morbidity Statistics linearization.",
                },
                {
                    "title": "ICF Browser",
                    "url": "https://icd.who.int/browse/latest-release/icf/en",
                    "category": "ICF",
                    "description": "International Classification of Functioning, Disability and Health.",
                },
                {
                    "title": "ICHI Browser",
                    "url": "https://icd.who.int/browse/latest-release/ichi/en",
                    "category": "ICHI",
                    "description": "International Classification of Health Interventions.",
                },
            ],
        }
