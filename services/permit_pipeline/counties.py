"""City -> county lookup for contractor matching (Santa Clara County and neighbors)."""

from typing import Optional

from scrapers.config import city_slug

CITY_TO_COUNTY = {
    'los_gatos': 'SANTA_CLARA',
    'saratoga': 'SANTA_CLARA',
    'santa_clara': 'SANTA_CLARA',
    'cupertino': 'SANTA_CLARA',
    'palo_alto': 'SANTA_CLARA',
    'los_altos_hills': 'SANTA_CLARA',
    'sunnyvale': 'SANTA_CLARA',
    'san_jose': 'SANTA_CLARA',
    'campbell': 'SANTA_CLARA',
    'mountain_view': 'SANTA_CLARA',
    'milpitas': 'SANTA_CLARA',
    'morgan_hill': 'SANTA_CLARA',
    'los_altos': 'SANTA_CLARA',
    'gilroy': 'SANTA_CLARA',
}

# Contractors routinely work across these county lines
BAY_AREA_COUNTIES = [
    'SANTA_CLARA',
    'SAN_MATEO',
    'ALAMEDA',
    'SANTA_CRUZ',
    'SAN_BENITO',
    'MONTEREY',
    'CONTRA_COSTA',
]


def get_county_for_city(city: Optional[str]) -> Optional[str]:
    if not city:
        return None
    return CITY_TO_COUNTY.get(city_slug(city))


def is_bay_area_county(county: Optional[str]) -> bool:
    return county in BAY_AREA_COUNTIES
