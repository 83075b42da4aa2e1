"""
ICD-10 Chapter Reference Data
WHO ICD-10 (2019) chapters I–XXII.
Each chapter maps a code range to its clinical domain.
"""

ICD10_CHAPTERS = [
    {"id": "I",     "name": "Certain infectious and parasitic diseases",
     "range": "A00-B99",  "start": "A00", "end": "B99"},
    {"id": "II",    "name": "Neoplasms",
     "range": "C00-D48",  "start": "C00", "end": "D48"},
    {"id": "III",   "name": "Diseases of the blood and blood-forming organs and certain disorders involving the immune mechanism",
     "range": "D50-D89",  "start": "D50", "end": "D89"},
    {"id": "IV",    "name": "Endocrine, nutritional and metabolic diseases",
     "range": "E00-E90",  "start": "E00", "end": "E90"},
    {"id": "V",     "name": "Mental and behavioural disorders",
     "range": "F00-F99",  "start": "F00", "end": "F99"},
    {"id": "VI",    "name": "Diseases of the nervous system",
     "range": "G00-G99",  "start": "G00", "end": "G99"},
    {"id": "VII",   "name": "Diseases of the eye and adnexa",
     "range": "H00-H59",  "start": "H00", "end": "H59"},
    {"id": "VIII",  "name": "Diseases of the ear and mastoid process",
     "range": "H60-H95",  "start": "H60", "end": "H95"},
    {"id": "IX",    "name": "Diseases of the circulatory system",
     "range": "I00-I99",  "start": "I00", "end": "I99"},
    {"id": "X",     "name": "Diseases of the respiratory system",
     "range": "J00-J99",  "start": "J00", "end": "J99"},
    {"id": "XI",    "name": "Diseases of the digestive system",
     "range": "K00-K93",  "start": "K00", "end": "K93"},
    {"id": "XII",   "name": "Diseases of the skin and subcutaneous tissue",
     "range": "L00-L99",  "start": "L00", "end": "L99"},
    {"id": "XIII",  "name": "Diseases of the musculoskeletal system and connective tissue",
     "range": "M00-M99",  "start": "M00", "end": "M99"},
    {"id": "XIV",   "name": "Diseases of the genitourinary system",
     "range": "N00-N99",  "start": "N00", "end": "N99"},
    {"id": "XV",    "name": "Pregnancy, childbirth and the puerperium",
     "range": "O00-O99",  "start": "O00", "end": "O99"},
    {"id": "XVI",   "name": "Certain conditions originating in the perinatal period",
     "range": "P00-P96",  "start": "P00", "end": "P96"},
    {"id": "XVII",  "name": "Congenital malformations, deformations and chromosomal abnormalities",
     "range": "Q00-Q99",  "start": "Q00", "end": "Q99"},
    {"id": "XVIII", "name": "Symptoms, signs and abnormal clinical and laboratory findings, not elsewhere classified",
     "range": "R00-R99",  "start": "R00", "end": "R99"},
    {"id": "XIX",   "name": "Injury, poisoning and certain other consequences of external causes",
     "range": "S00-T98",  "start": "S00", "end": "T98"},
    {"id": "XX",    "name": "External causes of morbidity and mortality",
     "range": "V01-Y98",  "start": "V01", "end": "Y98"},
    {"id": "XXI",   "name": "Factors influencing health status and contact with health services",
     "range": "Z00-Z99",  "start": "Z00", "end": "Z99"},
    {"id": "XXII",  "name": "Codes for special purposes",
     "range": "U00-U85",  "start": "U00", "end": "U85"},
]


def code_in_range(code_3: str, start: str, end: str) -> bool:
    """Check if a 3-char ICD-10 code falls within a chapter range (lexicographic)."""
    return start <= code_3 <= end


def get_chapter_for_code(code: str) -> dict | None:
    """Return the chapter dict for a given ICD-10 code."""
    c3 = (code or "")[:3].upper()
    if len(c3) < 3:
        return None
    for ch in ICD10_CHAPTERS:
        if code_in_range(c3, ch["start"], ch["end"]):
            return ch
    return None
