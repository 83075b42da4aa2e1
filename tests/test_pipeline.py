"""Tests for the data chunking pipeline."""

import csv
import json
from pathlib import Path

import pytest

from api.services.lookup_service import LookupService
from pipeline.chunkers import EmdnChunker, Icd11LinearizationChunker, WhoClassificationChunker
from pipeline.helpers import clean_title, clean_url
from pipeline.pipeline import clean_output, run_pipeline, select_keys
from pipeline.validators import EmdnValidator, LinearizationValidator, validate_all_sources

A_DESC = "DEVICES FOR ADMINISTRATION, WITHDRAWAL AND COLLECTION"
Z_DESC = "MEDICAL EQUIPMENT AND RELATED ACCESSORIES"

EMDN_EXPORT = "\n".join([
    "EMDN - European Medical Device Nomenclature",
    "CATEGORY\tCATEGORY DESCRIPTION\tCODE\tTERM\tLEVEL\tIS TERMINAL",
    f"A\t{A_DESC}\tA\t{A_DESC}\t1\tNO",
    f"A\t{A_DESC}\tA01\tNEEDLES\t2\tNO",
    f"A\t{A_DESC}\tA0101\tHYPODERMIC NEEDLES\t3\tYES",
    f"Z\t{Z_DESC}\tZ\t{Z_DESC}\t1\tNO",
    "",
    "truncated line",
    f"Z\t{Z_DESC}\tZ12\tIMAGING\tlevel\tNO",
])

WHO_HEADER = [
    "Foundation URI", "Linearization URI", "Code", "BlockId", "Title", "ClassKind", "DepthInKind",
    "IsResidual", "PrimaryLocation", "ChapterNo", "BrowserLink", "iCatLink", "IsLeaf",
    "noOfNonResidualChildren",
]
MMS_HEADER = WHO_HEADER + ["Primary tabulation", "Grouping1", "Grouping2", "Grouping3", "Grouping4", "Grouping5"]

ICF_ROWS = [
    ["http://id.who.int/icd/entity/1", "", "b1", "", "Mental functions", "chapter", "1", "False", "True", "01",
     '=HYPERLINK("https://icd.who.int/dev11/l-icf/en#/b1","browser")', "", "False", "2"],
    ["http://id.who.int/icd/entity/2", "", "", "b110-b139", "- Global mental functions", "block", "1", "False",
     "True", "01", "", "", "False", "1"],
    ["http://id.who.int/icd/entity/3", "", "b110", "", "- - Consciousness functions", "category", "2", "False",
     "True", "01", "", "", "True", "0"],
]

MMS_ROWS = [
    ["http://id.who.int/icd/entity/1435254666", "", "", "", "Certain infectious or parasitic diseases",
     "chapter", "1", "False", "True", "01", "", "", "False", "25", "False", "", "", "", "", ""],
    ["", "", "", "", "Version: 2024 Jan", "", "", "", "", "", "", "", "", "", "", "", "", "", "", ""],
    ["http://id.who.int/icd/entity/257068234", "", "1A00", "", "Cholera", "category", "3", "False", "True",
     "01", "", "", "True", "0", "True", "Infectious", "", "", "", ""],
]


def write_csv(path: Path, rows) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        csv.writer(f).writerows(rows)


def read(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def staging(tmp_path) -> Path:
    root = tmp_path / "staging"
    (root / "emdn").mkdir(parents=True)
    (root / "emdn" / "EMDN_V2_EN.txt").write_text(EMDN_EXPORT, encoding="utf-8")
    write_csv(root / "icf" / "LinearizationMiniOutput-ICF-en.csv", [WHO_HEADER] + ICF_ROWS)
    write_csv(root / "icd11" / "LinearizationMiniOutput-MMS-en.csv", [MMS_HEADER] + MMS_ROWS)
    return root


@pytest.fixture
def output(tmp_path) -> Path:
    return tmp_path / "out"


class TestHelpers:

    @pytest.mark.parametrize("raw,expected", [
        ('"Cholera"', "Cholera"),
        ('Say ""hello""', 'Say "hello"'),
        ("", ""),
    ])
    def test_clean_title(self, raw, expected) -> None:
        assert clean_title(raw) == expected

    def test_clean_title_hierarchy_dash(self) -> None:
        assert clean_title("- Walking", strip_hierarchy_dash=True) == "Walking"
        assert clean_title("- Walking") == "- Walking"

    def test_clean_url(self) -> None:
        assert clean_url('=HYPERLINK("https://icd.who.int/x","browser")') == "https://icd.who.int/x"
        assert clean_url("browser") == "browser"


class TestEmdnChunker:

    def test_writes_category_files_and_manifest(self, staging, output) -> None:
        assert EmdnChunker(str(staging)).run(str(output)) == 4

        chunks = output / "emdn-chunks"
        manifest = read(chunks / "manifest.json")
        assert manifest["totalEntries"] == 4
        assert [c["category"] for c in manifest["categories"]] == ["A", "Z"]

        category_a = read(chunks / "emdn-A.json")
        assert category_a["entryCount"] == 3
        assert category_a["terminalCount"] == 1
        assert category_a["entries"][2] == {
            "category": "A", "categoryDescription": A_DESC, "code": "A0101",
            "term": "HYPODERMIC NEEDLES", "level": 3, "isTerminal": True,
        }
        assert len(read(chunks / "emdn-complete.json")["entries"]) == 4

    def test_output_is_served_by_lookup(self, staging, output) -> None:
        EmdnChunker(str(staging)).run(str(output))
        entry = LookupService(str(output)).emdn.get_by_code("A0101")
        assert entry["parentCode"] == "A01"

    def test_no_source(self, tmp_path, output) -> None:
        assert EmdnChunker(str(tmp_path / "empty")).run(str(output)) == 0


class TestWhoChunkers:

    def test_icf(self, staging, output) -> None:
        assert WhoClassificationChunker("ICF", str(staging)).run(str(output)) == 2

        chunk = read(output / "icf-chunks" / "icf-chunk-0.json")
        assert [e["code"] for e in chunk] == ["b1", "b110"]
        assert chunk[0]["browserLink"] == "https://icd.who.int/dev11/l-icf/en#/b1"
        assert chunk[1]["title"] == "- Consciousness functions"
        assert chunk[1]["isLeaf"] is True

        manifest = read(output / "icf-chunks" / "icf-manifest.json")
        assert manifest["totalChunks"] == 1
        assert manifest["stats"]["chapters"] == 1
        assert manifest["stats"]["blocks"] == 0
        assert manifest["chunks"][0]["lastEntry"] == "- Consciousness functions"

    def test_unsupported_kind(self) -> None:
        with pytest.raises(ValueError):
            WhoClassificationChunker("icd10")

    def test_icd11_mms(self, staging, output) -> None:
        assert Icd11LinearizationChunker("mms", str(staging)).run(str(output)) == 2

        chunk = read(output / "icd11-mms-chunks" / "icd11-mms-chunk-0.json")
        assert (chunk["startIndex"], chunk["endIndex"], chunk["entryCount"]) == (0, 1, 2)
        cholera = chunk["entries"][1]
        assert cholera["code"] == "1A00"
        assert cholera["primaryTabulation"] is True
        assert cholera["groupings"]["grouping1"] == "Infectious"

        stats = read(output / "icd11-mms-chunks" / "icd11-mms-manifest.json")["stats"]
        assert stats["chapters"] == 1
        assert stats["categories"] == 1
        assert stats["depthDistribution"] == {"1": 1, "3": 1}
        assert stats["chapterNumbers"] == ["01"]

    def test_icd11_output_is_searchable(self, staging, output) -> None:
        Icd11LinearizationChunker("mms", str(staging)).run(str(output))
        assert [e["code"] for e in LookupService(str(output)).icd11.search("cholera")] == ["1A00"]


class TestValidators:

    def test_emdn_passes(self, staging) -> None:
        assert EmdnValidator().validate(str(staging)).ok is True

    def test_emdn_not_tab_separated(self, tmp_path) -> None:
        folder = tmp_path / "emdn"
        folder.mkdir()
        (folder / "EMDN.txt").write_text("title\nheader\nA,B,C,D,1,NO\n", encoding="utf-8")
        result = EmdnValidator().validate(str(tmp_path))
        assert result.ok is False
        assert "tab-separated" in result.messages[0]

    def test_mms_needs_twenty_columns(self, tmp_path) -> None:
        write_csv(tmp_path / "icd11" / "mms.csv", [WHO_HEADER])
        validator = LinearizationValidator("icd11", "icd11", "ICD-11 MMS", min_columns=20, name_hint="mms")
        result = validator.validate(str(tmp_path))
        assert result.ok is False
        assert "14 columns" in result.messages[0]

    def test_strict_aborts(self, tmp_path) -> None:
        with pytest.raises(SystemExit):
            validate_all_sources(strict=True, staging_dir=str(tmp_path))

    def test_key_filter(self, staging) -> None:
        results = validate_all_sources(staging_dir=str(staging), keys=["emdn", "icf"])
        assert [(r.system, r.ok) for r in results] == [("EMDN", True), ("ICF", True)]


class TestPipeline:

    def test_select_keys(self) -> None:
        assert select_keys() == ["emdn", "icf", "ichi", "icd11"]
        assert select_keys(only=["ICF", "emdn"]) == ["emdn", "icf"]
        assert select_keys(skip=["icd11"]) == ["emdn", "icf", "ichi"]

    @pytest.mark.parametrize("only,skip", [(["emdn"], ["icf"]), (["snomed"], None)])
    def test_select_keys_errors(self, only, skip) -> None:
        with pytest.raises(ValueError):
            select_keys(only, skip)

    def test_run_pipeline(self, staging, output) -> None:
        results = run_pipeline(staging_dir=str(staging), output_dir=str(output))
        assert results == {"EMDN": 4, "ICF": 2, "ICHI": 0, "ICD-11 MMS": 2}

    def test_validate_only(self, staging, output) -> None:
        assert run_pipeline(validate_only=True, staging_dir=str(staging), output_dir=str(output)) == {}
        assert not output.exists()

    def test_failed_chunker_is_isolated(self, staging, output, monkeypatch) -> None:
        def boom(self, target_dir):
            raise OSError("disk full")

        monkeypatch.setattr(EmdnChunker, "_chunk_from_source", boom)
        results = run_pipeline(only=["emdn", "icf"], staging_dir=str(staging), output_dir=str(output))
        assert results == {"EMDN": None, "ICF": 2}

    def test_clean_output(self, staging, output) -> None:
        stale = output / "emdn-chunks" / "emdn-Q.json"
        stale.parent.mkdir(parents=True)
        stale.write_text("{}", encoding="utf-8")

        assert clean_output(["emdn", "ichi"], str(output), str(staging)) == 1
        assert not stale.parent.exists()

    def test_clean_then_rebuild(self, staging, output) -> None:
        stale = output / "emdn-chunks" / "emdn-Q.json"
        stale.parent.mkdir(parents=True)
        stale.write_text("{}", encoding="utf-8")

        run_pipeline(only=["emdn"], clean=True, staging_dir=str(staging), output_dir=str(output))
        assert not stale.exists()
        assert (output / "emdn-chunks" / "emdn-A.json").exists()
