"""Pytest configuration and fixtures."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from api.app import create_app
from api.config import Settings
from api.models import init_db

FIXED_NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


EMDN_ENTRIES = {
    "A": [
        {"category": "A", "categoryDescription": "DEVICES FOR ADMINISTRATION, WITHDRAWAL AND COLLECTION",
         "code": "A", "term": "DEVICES FOR ADMINISTRATION, WITHDRAWAL AND COLLECTION", "level": 1, "isTerminal": False},
        {"category": "A", "categoryDescription": "DEVICES FOR ADMINISTRATION, WITHDRAWAL AND COLLECTION",
         "code": "A01", "term": "NEEDLES", "level": 2, "isTerminal": False},
        {"category": "A", "categoryDescription": "DEVICES FOR ADMINISTRATION, WITHDRAWAL AND COLLECTION",
         "code": "A0101", "term": "HYPODERMIC NEEDLES", "level": 3, "isTerminal": True},
    ],
    "Z": [
        {"category": "Z", "categoryDescription": "MEDICAL EQUIPMENT AND RELATED ACCESSORIES",
         "code": "Z", "term": "MEDICAL EQUIPMENT AND RELATED ACCESSORIES", "level": 1, "isTerminal": False},
        {"category": "Z", "categoryDescription": "MEDICAL EQUIPMENT AND RELATED ACCESSORIES",
         "code": "Z12", "term": "INSTRUMENTS FOR DIAGNOSTIC IMAGING", "level": 2, "isTerminal": False},
        {"category": "Z", "categoryDescription": "MEDICAL EQUIPMENT AND RELATED ACCESSORIES",
         "code": "Z1201", "term": "ULTRASOUND SCANNERS", "level": 3, "isTerminal": True},
    ],
}

ICD10_ENTRIES = [
    {"id": "1", "code": "A00", "title": "Cholera", "definition": "Acute diarrhoeal infection",
     "chapter": "I", "chapterTitle": "Certain infectious and parasitic diseases", "blockId": "A00-A09",
     "version": "2019", "releaseId": "2019"},
    {"id": "2", "code": "I21", "title": "Acute myocardial infarction", "definition": "",
     "chapter": "IX", "chapterTitle": "Diseases of the circulatory system", "blockId": "I20-I25",
     "version": "2019", "releaseId": "2019"},
    {"id": "3", "code": "I21.0", "title": "Acute transmural myocardial infarction of anterior wall",
     "definition": "", "chapter": "IX", "chapterTitle": "Diseases of the circulatory system",
     "blockId": "I20-I25", "version": "2019", "releaseId": "2019"},
]

ICD11_CHUNKS = [
    [
        {"id": "u1", "code": "", "title": "Certain infectious or parasitic diseases", "classKind": "chapter",
         "depth": 1, "isLeaf": False, "chapterNo": "01"},
        {"id": "u2", "code": "1A00", "title": "Cholera", "classKind": "category", "depth": 3,
         "isLeaf": True, "chapterNo": "01"},
    ],
    [
        {"id": "u3", "code": "BA41", "title": "Acute myocardial infarction", "classKind": "category",
         "depth": 3, "isLeaf": False, "chapterNo": "11"},
        {"id": "u4", "code": "BA41.0", "title": "Acute ST elevation myocardial infarction",
         "classKind": "category", "depth": 4, "isLeaf": True, "chapterNo": "11"},
    ],
]

ICF_ENTRIES = [
    {"id": "f1", "code": "b1", "title": "Mental functions", "classKind": "chapter", "depth": 1, "isLeaf": False,
     "blockId": "", "browserLink": "", "childrenCount": 2},
    {"id": "f2", "code": "b110", "title": "Consciousness functions", "classKind": "category", "depth": 2,
     "isLeaf": False, "blockId": "", "browserLink": "", "childrenCount": 3},
    {"id": "f3", "code": "d450", "title": "Walking", "classKind": "category", "depth": 2, "isLeaf": True,
     "blockId": "", "browserLink": "", "childrenCount": 0},
]

EMDN_MAPPINGS = {
    "mappings": [
        {"deviceCode": "Z1201", "icdMatches": [
            {"code": "I21.0", "title": "Acute transmural MI of anterior wall", "confidence": 92, "source": "manual"},
            {"code": "I25", "title": "Chronic ischaemic heart disease", "confidence": 85, "source": "semantic"},
            {"code": "J18", "title": "Pneumonia, organism unspecified", "confidence": 81, "source": "semantic"},
            {"code": "K80", "title": "Cholelithiasis", "confidence": 80, "source": "semantic"},
            {"code": "R07.4", "title": "Chest pain, unspecified", "confidence": 70, "source": "semantic"},
            {"code": "Q99", "title": "Other chromosome abnormalities", "confidence": 50, "source": "semantic"},
        ]},
        {"deviceCode": "A0101", "icdMatches": [
            {"code": "E11", "title": "Type 2 diabetes mellitus", "confidence": 88, "source": "manual"},
        ]},
    ]
}

GMDN_MAPPINGS = {
    "mappings": [
        {"deviceCode": "40761", "icdMatches": [
            {"code": "I21.4", "title": "Acute subendocardial myocardial infarction", "confidence": 65, "source": "semantic"},
        ]},
    ]
}


def populate_data_dir(root: Path) -> Path:
    emdn = root / "emdn-chunks"
    categories = []
    for cat, entries in EMDN_ENTRIES.items():
        filename = f"emdn-{cat}.json"
        terminal = sum(1 for e in entries if e["isTerminal"])
        write_json(emdn / filename, {
            "category": cat, "categoryDescription": entries[0]["categoryDescription"],
            "entryCount": len(entries), "terminalCount": terminal, "entries": entries,
        })
        categories.append({
            "category": cat, "filename": filename, "entryCount": len(entries),
            "terminalCount": terminal, "categoryDescription": entries[0]["categoryDescription"],
        })
    write_json(emdn / "manifest.json", {
        "generated": "2025-01-01T00:00:00Z", "totalEntries": 6, "totalCategories": 2, "categories": categories,
    })

    write_json(root / "icd-chunks" / "icd10-manifest.json", {
        "totalEntries": len(ICD10_ENTRIES), "totalChunks": 1, "chunkSize": 1000,
        "chunks": [{"id": 0, "file": "icd10-chunk-0.json"}],
    })
    write_json(root / "icd-chunks" / "icd10-chunk-0.json", ICD10_ENTRIES)

    write_json(root / "icd11-mms-chunks" / "icd11-mms-manifest.json", {
        "linearization": "mms", "totalEntries": 4, "totalChunks": len(ICD11_CHUNKS),
    })
    start = 0
    for i, entries in enumerate(ICD11_CHUNKS):
        write_json(root / "icd11-mms-chunks" / f"icd11-mms-chunk-{i}.json", {
            "chunkIndex": i, "startIndex": start, "endIndex": start + len(entries) - 1,
            "entryCount": len(entries), "entries": entries,
        })
        start += len(entries)

    write_json(root / "icf-chunks" / "icf-manifest.json", {
        "type": "ICF", "totalEntries": len(ICF_ENTRIES), "totalChunks": 1,
        "chunks": [{"file": "icf-chunk-0.json", "entries": len(ICF_ENTRIES)}],
    })
    write_json(root / "icf-chunks" / "icf-chunk-0.json", ICF_ENTRIES)

    write_json(root / "icd10-mappings" / "emdn-high-confidence.json", EMDN_MAPPINGS)
    write_json(root / "icd10-mappings" / "gmdn-icd10-mappings.json", GMDN_MAPPINGS)
    write_json(root / "icd10-mappings" / "emdn-lookup-index.json", {"Z1201": ["I21.0", "I25"]})
    return root


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Data directory with small EMDN, ICD-10, ICD-11 and ICF datasets (no ICHI)."""
    return populate_data_dir(tmp_path / "data")


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'navigator-test.db'}"


@pytest.fixture
def db(database_url: str):
    """Fresh SQLite database bound to the module-level session factory."""
    return init_db(database_url)


@pytest.fixture
def settings(data_dir: Path, database_url: str) -> Settings:
    return Settings(
        env="testing",
        access_code_secret="test-salt",
        session_secret="test-session-secret",
        database_url=database_url,
        data_dir=str(data_dir),
    )


@pytest.fixture
def app(settings: Settings, clock: FakeClock):
    app = create_app(settings, clock=clock)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
