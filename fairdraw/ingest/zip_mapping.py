"""Postal-code to district lookup and address fallback matching."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# Column positions in the pipe-delimited postal code dump.
ZIP_IDX = 0
PROVINCE_IDX = 1
CITY_IDX = 3
DISTRICT_IDX = 19
MIN_COLUMNS = 20

_ZIP_STRIP = re.compile(r"[\"'\s]")
_ZIP_FORMAT = re.compile(r"^\d{5}$")


@dataclass(frozen=True)
class ZipDistrictRecord:
    zip_code: str
    district: str
    city: str
    province: str


def normalize_zip(raw: Optional[str]) -> Optional[str]:
    """Return a 5-digit postal code or ``None`` when ``raw`` is not one."""
    cleaned = _ZIP_STRIP.sub("", raw or "")
    return cleaned if _ZIP_FORMAT.match(cleaned) else None


def parse_zip_mapping_text(text: str) -> dict[str, ZipDistrictRecord]:
    """Parse a pipe-delimited postal code dump into a lookup table.

    Rows with fewer than 20 columns, a postal code that is not five digits,
    or an empty district name are skipped. Later rows win for repeated codes.
    """
    out: dict[str, ZipDistrictRecord] = {}
    skipped = 0
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        cols = line.split("|")
        if len(cols) < MIN_COLUMNS:
            skipped += 1
            continue
        zip_code = normalize_zip(cols[ZIP_IDX])
        district = cols[DISTRICT_IDX].strip()
        if not zip_code or not district:
            skipped += 1
            continue
        out[zip_code] = ZipDistrictRecord(
            zip_code=zip_code,
            district=district,
            city=cols[CITY_IDX].strip(),
            province=cols[PROVINCE_IDX].strip(),
        )
    if skipped:
        logger.debug(f"Skipped {skipped} malformed postal code rows")
    return out


def normalize_address(address: Optional[str]) -> str:
    """Collapse whitespace, drop parentheses and lower-case ``address``."""
    collapsed = re.sub(r"\s+", " ", (address or "").strip())
    return collapsed.replace("(", "").replace(")", "").lower()


def build_district_token_variants(district: str) -> list[str]:
    """Return spellings of ``district`` that may appear in a free-text address.

    ``"아라1동"`` yields itself plus ``"아라 1동"``; spaced input also yields
    the compact form.
    """
    base = district.strip().lower()
    variants = [
        base,
        re.sub(r"\s+", "", base),
        re.sub(r"(\D)(\d)(동)", r"\1 \2\3", base),
        re.sub(r"(\D)\s+(\d)(동)", r"\1\2\3", base),
    ]
    return list(dict.fromkeys(variants))


def address_matches_district(address: Optional[str], district: str) -> bool:
    normalized = normalize_address(address)
    if not normalized:
        return False
    return any(token in normalized for token in build_district_token_variants(district))


__all__ = [
    "ZipDistrictRecord",
    "address_matches_district",
    "build_district_token_variants",
    "normalize_address",
    "normalize_zip",
    "parse_zip_mapping_text",
]
