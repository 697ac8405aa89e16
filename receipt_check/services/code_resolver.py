"""Clinic procedure codes to official 9-digit receipt codes.

Billing rows store the clinic's own codes (``I005-1``, ``M-CRN-zen``...).
Every rule table is keyed by the official receipt code, so codes are resolved
before any rule lookup:

1. the static clinic map below,
2. the ``fee_master_receipt`` table keyed by kubun / sub-code,
3. pass-through for codes that already are 9 digits.

Anything else is unresolved and skipped by code-dependent checks.
"""
import logging
import re
from typing import Dict, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

OFFICIAL_CODE_PATTERN = re.compile(r"[0-9]{9}")

CODE_MAP: Dict[str, str] = {
    "A000": "301000110",
    "A000-2": "301000210",
    "A002": "301001610",
    "A002-2": "301001710",
    "A001-a": "302000610",
    "A001-b": "302000610",
    "B000-4": "302000110",
    "B000-4-doc": "302008470",
    "B001-2": "302000610",
    "B002": "302000710",
    "B-SHIDO": "302000110",
    "B-SHIDO-init": "302000110",
    "E100-1": "305000210",
    "E100-pan": "305000410",
    "E100-pano": "305000410",
    "E100-ct": "305004910",
    "E100-1-diag": "305000210",
    "E100-1-diag-pano": "305000210",
    "E-diag": "305000410",
    "F-shoho": "306000710",
    "F-chozai": "306000110",
    "F100": "306000110",
    "F200": "306000710",
    "I000-1": "309000110",
    "I000-2": "309000210",
    "I000-3": "309000310",
    "I001-1": "309000110",
    "I001-2": "309000210",
    "I005-1": "309002110",
    "I005-2": "309002210",
    "I005-3": "309002310",
    "I006-1": "309002410",
    "I006-2": "309002510",
    "I006-3": "309002610",
    "I007-1": "309002710",
    "I007-2": "309002810",
    "I007-3": "309002910",
    "I007--1": "309002710",
    "I008-1": "309003610",
    "I008-2": "309003710",
    "I008-3": "309003810",
    "I008--1": "309003610",
    "I010": "309015110",
    "I010-": "309015110",
    "I010-1": "309004610",
    "I011-1": "309004810",
    "I011-2-1": "309005010",
    "I011-2-2": "309005110",
    "I011-2-3": "309005210",
    "P-SC": "309004810",
    "P-SRP": "309005210",
    "P-SRP-zen": "309005010",
    "P-SRP-sho": "309005110",
    "I014": "309006010",
    "I017": "309018810",
    "I020": "309008310",
    "I029": "309014710",
    "I030": "309011410",
    "I032": "309011010",
    "PCEM": "309011410",
    "D002-2": "309001610",
    "D002-3": "309001710",
    "D002-mix": "309001710",
    "J000-1": "310000110",
    "J000-2": "310000210",
    "J000-3": "310000310",
    "J000-4": "310000410",
    "J000-5": "310000510",
    "J001": "310001110",
    "J001-1": "310000710",
    "J001-2": "310000810",
    "J002": "310003010",
    "J003": "310003110",
    "J006": "310003010",
    "J063": "310011610",
    "K001-1": "311000210",
    "K001-2": "311000110",
    "K002": "311000110",
    "M-HOHEKI": "313027310",
    "M000-2": "313000210",
    "M001-1": "313000610",
    "M001-2": "313000910",
    "M001-sho": "313001210",
    "M001-fuku": "313001310",
    "M002-1": "313002310",
    "M002-2": "313002410",
    "M-POST": "313002310",
    "M-POST-cast": "313002410",
    "M-TEK": "313004510",
    "M003-1": "313003210",
    "M003-2": "313003310",
    "M003-3": "313003810",
    "M-IMP": "313003610",
    "M-IMP-sei": "313003710",
    "M-IN-sho": "313003410",
    "M-IN-fuku": "313003510",
    "M005": "313024110",
    "M-SET": "313024110",
    "DEN-SET": "313005310",
    "M-BITE": "313007810",
    "M009-CR": "313024310",
    "M009-CR-fuku": "313024410",
    "M-KEISEI-cr": "313001210",
    "M-KEISEI--cr": "313001210",
    "M010-1": "313010410",
    "M010-2": "313010510",
    "M010-3-": "313010810",
    "M-CRN-zen": "313040910",
    "M-CRN-zen-dai": "313041010",
    "M-CRN-ko": "313028210",
    "M-CRN-nyu": "313015210",
    "M-CRN-cad2": "313025510",
    "M-CRN-cad2-dai": "313041110",
    "BR-PON": "313015410",
    "DEN-1-4": "313016610",
    "DEN-5-8": "313016710",
    "DEN-9-11": "313016810",
    "DEN-12-14": "313016910",
    "DEN-FULL-UP": "313017010",
    "DEN-FULL-LO": "313017010",
    "DEN-REP": "313021610",
    "DEN-RELINE": "313021810",
    "DEN-ADJ": "309008310",
    "M-ADJ": "313022610",
    "M-DEBOND": "313024110",
    "M-DEBOND2": "313024110",
}


def split_kubun(code: str) -> Tuple[str, str]:
    """Split ``I011-2-1`` into kubun ``I011`` and sub-code ``2-1``."""
    kubun, _, sub = code.partition("-")
    return kubun, sub


def lookup_key(kubun_code: str, sub_code: Optional[str]) -> str:
    return f"{kubun_code}__{sub_code or ''}"


def build_db_lookup(rows: Iterable) -> Dict[str, str]:
    """Index ``fee_master_receipt`` rows by ``kubun__sub``."""
    lookup: Dict[str, str] = {}
    for row in rows:
        lookup[lookup_key(row.kubun_code, row.sub_code)] = row.receipt_code
    return lookup


def is_official_code(code: str) -> bool:
    return bool(OFFICIAL_CODE_PATTERN.fullmatch(code or ""))


def resolve_receipt_code(code: str, db_lookup: Optional[Dict[str, str]] = None) -> Optional[str]:
    if not code:
        return None

    mapped = CODE_MAP.get(code)
    if mapped:
        return mapped

    if db_lookup:
        kubun, sub = split_kubun(code)
        found = db_lookup.get(lookup_key(kubun, sub))
        if found:
            return found

    if is_official_code(code):
        return code

    logger.debug("Unresolved procedure code: %s", code)
    return None
