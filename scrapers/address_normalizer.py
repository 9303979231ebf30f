"""
Address parsing and normalization utilities.

Portals hand back addresses in a handful of shapes:
- "957 S TANTAU Ave, Cupertino CA 95014-4601"
- "3079 EL CAMINO REAL, 101, SANTA CLARA CA 95051"
- "16400 LARK AVE" (no city/state/zip at all)

parse_address() splits those into street/city/state/zip. It never raises;
anything it can't recover falls back to the caller's defaults.
"""

import re
from dataclasses import dataclass, asdict
from typing import Optional


# Street type standardization map
STREET_TYPES = {
    'STREET': 'ST',
    'AVENUE': 'AVE',
    'BOULEVARD': 'BLVD',
    'ROAD': 'RD',
    'DRIVE': 'DR',
    'LANE': 'LN',
    'COURT': 'CT',
    'PLACE': 'PL',
    'TERRACE': 'TER',
    'CIRCLE': 'CIR',
    'HIGHWAY': 'HWY',
    'PARKWAY': 'PKWY',
    'WAY': 'WAY',
    'TRAIL': 'TRL',
    'EXPRESSWAY': 'EXPY',
}

# Direction standardization
DIRECTIONS = {
    'NORTH': 'N',
    'SOUTH': 'S',
    'EAST': 'E',
    'WEST': 'W',
    'NORTHEAST': 'NE',
    'NORTHWEST': 'NW',
    'SOUTHEAST': 'SE',
    'SOUTHWEST': 'SW',
}

# "Cupertino CA 95014" / "SANTA CLARA CA 95051-1234"
CITY_STATE_ZIP = re.compile(r'^([A-Za-z ]+?)\s+([A-Za-z]{2})\s+(\d{5})(?:-\d{4})?$')
# "CA 95014" on its own (city lives in the previous segment)
STATE_ZIP = re.compile(r'^([A-Za-z]{2})\s+(\d{5})(?:-\d{4})?$')
# Trailing "... CA 95014" with no comma before it
TRAILING_STATE_ZIP = re.compile(r'^(.*?\S)\s+([A-Za-z]{2})\s+(\d{5})(?:-\d{4})?$')
UNIT_SEGMENT = re.compile(r'^\d+$')


@dataclass
class ParsedAddress:
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def parse_address(
    raw: Optional[str],
    default_city: str = "",
    default_state: str = "",
) -> ParsedAddress:
    """
    Split a raw portal address into its parts.

    Args:
        raw: Address text as scraped
        default_city: City to use when the text doesn't carry one
        default_state: State to use when the text doesn't carry one

    Returns:
        ParsedAddress; never raises
    """
    result = ParsedAddress(city=default_city or "", state=default_state or "")
    if not raw or not isinstance(raw, str):
        return result

    text = ' '.join(raw.split())
    parts = [p.strip() for p in text.split(',') if p.strip()]
    if not parts:
        return result

    if len(parts) >= 2:
        street_parts = parts[:-1]
        last = parts[-1]

        match = CITY_STATE_ZIP.match(last)
        if match:
            result.city = match.group(1).strip()
            result.state = match.group(2).upper()
            result.zip_code = match.group(3)
        else:
            match = STATE_ZIP.match(last)
            if match and len(parts) >= 3 and not UNIT_SEGMENT.match(parts[-2]):
                # "STREET, CITY, CA 95014"
                result.city = parts[-2]
                result.state = match.group(1).upper()
                result.zip_code = match.group(2)
                street_parts = parts[:-2]
            else:
                # No recognizable city/state/zip tail; everything is street
                street_parts = parts

        # Numeric middle segments are unit numbers and stay with the street
        result.street = ', '.join(street_parts)
        return result

    match = TRAILING_STATE_ZIP.match(text)
    if match:
        result.street = match.group(1)
        result.state = match.group(2).upper()
        result.zip_code = match.group(3)
    else:
        result.street = text

    return result


def normalize_address(address: Optional[str]) -> str:
    """
    Normalize an address string for consistent comparison.

    Transforms:
    - Uppercase
    - Remove periods and commas
    - Standardize street types (STREET -> ST)
    - Standardize directions (NORTH -> N)
    - Collapse whitespace
    - Handle unit designations (# -> UNIT)
    """
    if not address or not isinstance(address, str):
        return ""

    addr = address.upper().strip()
    if not addr:
        return ""

    addr = re.sub(r'#\s*(\d+)', r'UNIT \1', addr)
    addr = re.sub(r'[.,]', '', addr)
    addr = re.sub(r'(\d+)-([A-Z])\b', r'\1\2', addr)
    addr = ' '.join(addr.split())

    for full, abbr in STREET_TYPES.items():
        addr = re.sub(rf'\b{full}\b', abbr, addr)

    for full, abbr in DIRECTIONS.items():
        addr = re.sub(rf'\b{full}\b', abbr, addr)

    return addr


def levenshtein_distance(s1: str, s2: str) -> int:
    """Calculate Levenshtein distance between two strings."""
    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)

    if len(s2) == 0:
        return len(s1)

    previous_row = range(len(s2) + 1)
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def similarity(s1: str, s2: str) -> float:
    """Levenshtein ratio: 1.0 for identical strings, 0.0 for nothing in common."""
    longer = max(len(s1), len(s2))
    if longer == 0:
        return 1.0
    return (longer - levenshtein_distance(s1, s2)) / longer
