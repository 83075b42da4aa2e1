"""
Indication Service – ICD-10 clinical indications for EMDN/GMDN device codes.

Mapping files live in ``DATA_DIR/icd10-mappings/``:

- ``{type}-high-confidence.json`` (preferred) or ``{type}-icd10-mappings.json``
  with ``{"mappings": [{"deviceCode": ..., "icdMatches": [...]}]}``
- ``{type}-lookup-index.json`` (its presence marks mappings as published)
"""

import json
import logging
import os

from api.errors import InvalidInputError
from api.services.icd10_chapters import get_chapter_for_code

logger = logging.getLogger(__name__)

DEVICE_TYPES = ("emdn", "gmdn")
HIGH_CONFIDENCE = 80
MEDIUM_CONFIDENCE = 60


class IndicationService:

    def __init__(self, data_dir: str):
        self.mapping_dir = os.path.join(data_dir, "icd10-mappings")
        self._mappings: dict[str, dict[str, list[dict]]] = {}

    @staticmethod
    def _check_type(device_type: str) -> str:
        device_type = (device_type or "").lower()
        if device_type not in DEVICE_TYPES:
            raise InvalidInputError(f"Unknown device type '{device_type}'. Expected 'emdn' or 'gmdn'.")
        return device_type

    def load_mappings(self, device_type: str) -> dict[str, list[dict]]:
        """deviceCode -> icdMatches for one device nomenclature."""
        device_type = self._check_type(device_type)
        if device_type in self._mappings:
            return self._mappings[device_type]

        mappings: dict[str, list[dict]] = {}
        for filename in (f"{device_type}-high-confidence.json", f"{device_type}-icd10-mappings.json"):
            path = os.path.join(self.mapping_dir, filename)
            if not os.path.isfile(path):
                continue
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            for m in data.get("mappings") or []:
                mappings[str(m.get("deviceCode"))] = m.get("icdMatches") or []
            logger.info(f"Loaded {len(mappings):,} {device_type.upper()} ICD-10 mappings from {filename}")
            break
        else:
            logger.warning(f"No {device_type.upper()} ICD-10 mappings found in {self.mapping_dir}")

        self._mappings[device_type] = mappings
        return mappings

    def get_indications(self, device_type: str, device_code: str) -> list[dict]:
        return self.load_mappings(device_type).get(device_code, [])

    def search_devices_by_icd(self, icd_code: str) -> dict:
        """Device codes whose indications equal or fall under *icd_code*."""
        icd_code = (icd_code or "").strip().upper()
        if not icd_code:
            raise InvalidInputError("ICD-10 code is required")
        result = {}
        for device_type in DEVICE_TYPES:
            result[device_type] = [
                device_code
                for device_code, matches in self.load_mappings(device_type).items()
                if any(str(m.get("code", "")).upper().startswith(icd_code) for m in matches)
            ]
        return result

    def clinical_summary(self, device_code: str, device_type: str) -> dict | None:
        indications = self.get_indications(device_type, device_code)
        if not indications:
            return None

        high = [i for i in indications if (i.get("confidence") or 0) >= HIGH_CONFIDENCE]
        medium = [i for i in indications if MEDIUM_CONFIDENCE <= (i.get("confidence") or 0) < HIGH_CONFIDENCE]
        manual = [i for i in indications if i.get("source") == "manual"]
        return {
            "totalIndications": len(indications),
            "highConfidence": len(high),
            "mediumConfidence": len(medium),
            "manualMappings": len(manual),
            "primaryIndications": high[:3],
        }

    @staticmethod
    def group_by_chapter(indications: list[dict]) -> dict:
        """Group indications under their WHO ICD-10 chapter (I–XXII)."""
        grouped: dict[str, dict] = {}
        for indication in indications:
            chapter = get_chapter_for_code(indication.get("code", ""))
            if chapter is None:
                continue
            bucket = grouped.setdefault(chapter["id"], {
                "chapter": chapter["name"],
                "range": chapter["range"],
                "indications": [],
            })
            bucket["indications"].append(indication)
        return grouped

    def mappings_available(self) -> bool:
        return any(
            os.path.isfile(os.path.join(self.mapping_dir, f"{t}-lookup-index.json"))
            for t in DEVICE_TYPES
        )
