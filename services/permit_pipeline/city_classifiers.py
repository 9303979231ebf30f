"""
City-specific classification overrides.

Some portals expose a structured field that maps onto PropertyType almost
exactly (San Jose's SUBTYPEDESCRIPTION, Gilroy and Sunnyvale permit type
names). When one of these classifiers recognizes the value, its answer
(confidence 0.95) replaces the generic cascade.
"""

from typing import Optional

from scrapers.config import city_slug
from scrapers.models import PermitRecord

from .models import PropertyType, StageResult

CITY_CONFIDENCE = 0.95


class CityClassifier:
    """Base override: handles nothing, classifies nothing."""

    slugs: tuple[str, ...] = ()

    def can_handle(self, city: Optional[str]) -> bool:
        return bool(city) and city_slug(city) in self.slugs

    def classify_property_type(self, record: PermitRecord):
        return None

    def classify_permit_type(self, record: PermitRecord):
        return None

    def _result(self, property_type: PropertyType, reason: str) -> StageResult:
        return StageResult(property_type, CITY_CONFIDENCE, [reason])


def _matches(value: str, candidate: str, contains: bool) -> bool:
    if contains:
        return value == candidate or candidate in value or value in candidate
    return value == candidate or value.startswith(candidate) or candidate.startswith(value)


class SanJoseClassifier(CityClassifier):
    """San Jose's open-data SUBTYPEDESCRIPTION arrives as the raw permit type."""

    slugs = ('san_jose',)

    RESIDENTIAL = [
        'Single-Family', '1 & 2 Family Residential', 'Apartment', 'Condo', 'Townhouse',
        '2nd Unit Added', 'Duplex', 'Single Dwelling Unit', 'Apt/Condo/Townhouse',
        'Manufactured Home',
    ]
    COMMERCIAL = [
        'Retail', 'Restaurant', 'Bank', 'Service Station', 'Hotel/Motel',
        'Medical/Dental Clinic', 'Health Club', 'School/Daycare', 'Church', 'Assembly',
        'SRO/Fraternity/Shelter', 'Commercial/Industrial', 'Office', 'Manufacturing',
        'Warehouse/Storage', 'R & D Lab', 'Data Center', 'Recreation Building',
    ]
    UNKNOWN = ['Survey', 'Temporary Use', 'Antenna/Cell Site', 'Closed Public Parking Garage', 'Undefined']

    def classify_property_type(self, record: PermitRecord):
        subtype = (record.permit_type or '').strip()
        if not subtype:
            return None

        for names, property_type in (
            (self.RESIDENTIAL, PropertyType.RESIDENTIAL),
            (self.COMMERCIAL, PropertyType.COMMERCIAL),
            (self.UNKNOWN, PropertyType.UNKNOWN),
        ):
            if any(_matches(subtype, name, contains=True) for name in names):
                return self._result(property_type, f'San Jose subtype "{subtype}": {property_type.value}')
        return None


class GilroyClassifier(CityClassifier):
    """Gilroy permit type (stored as title) -> portal category -> PropertyType."""

    slugs = ('gilroy', 'gilroy_ca')

    # Residential is checked first so "R - Re-roof" never lands on "NR - Re-roof"
    BUILDING_RESIDENTIAL = [
        'Fire Sprinkler - Multi-Family', 'Fire Sprinkler - Single Family Home',
        'Pre-Approved Accessory Dwelling Unit (ADU)', 'R - Accessory Dwelling Unit',
        'R - Accessory Structure', 'R - Addition', 'R - Alteration',
        'R - Alternate Materials and Methods', 'R - Demolition',
        'R - Electrical Vehicle Charging Station',
        'R - Foundation Only (with or without Underground Utilities)', 'R - Grading',
        'R - Manufactured/Modular Home',
        'R - Master Plan (Tract SFR, Solar, Fire Sprinklers, Retaining Walls)',
        'R - Multi-Family', 'R - New Residential - Tract', 'R - New Single-Family Home - Custom',
        'R - On-site Improvements', 'R - Re-roof', 'R - Solar Photovoltaic System',
        'R - Swimming Pool/Spa', 'R - Water Heater', 'SolarAPP+',
    ]
    BUILDING_NON_RESIDENTIAL = [
        'Fire Alarm NFPA 72', 'Fire Sprinkler - Commercial', 'NR - Accessory Structure',
        'NR - Addition', 'NR - Alteration', 'NR - Alternate Materials and Methods',
        'NR - Cellular/Antenna', 'NR - Demolition', 'NR - Electrical Vehicle Charging Station',
        'NR - Foundation Only (with or without Underground Utilities)', 'NR - Grading',
        'NR - New Construction', 'NR - On-site Improvements', 'NR - Re-roof',
        'NR - Solar Photovoltaic System', 'NR - Swimming Pool/Spa', 'NR - Water Heater',
        'Sign / Art Sculpture',
    ]
    OTHER_CATEGORIES = {
        'Encroachment': ['Encroachment Permit'],
        'Fire Prevention': [
            'Exhaust Hoods', 'Fire Hydrant Flow Test', 'Fire Suppression Systems',
            'Fire Underground NFPA 24', 'Fireworks Distributor Permit',
            'Hazardous Materials Storage Facility Review', 'Outside Cooking Events/Food Trucks',
            'Pyrotechnics: Fireworks Display Permit', 'Safe and Sane Fireworks Booth Sales',
            'Temporary Above Ground Storage Tanks Containing Fuel', 'Temporary Hazmat Storage',
            'Tents and Temporary Special Event Structures',
        ],
        'Hazardous Materials': [
            'Demolition of Above Ground Storage Tanks', 'Hazmat Closure',
            'Install of a Hazardous Materials System', 'Install of Above Ground Storage Tanks',
            'Miscellaneous: Hazardous Materials Repair/Modification', 'UST Installs',
            'UST Removal/Closure', 'UST Repair/Modification', 'UST Temporary Closure',
        ],
        'Pretreatment (Wastewater)': [
            'Car Wash for Nonprofits', 'Grease Trap/ Sand Oil Interceptor Install',
            'Install of a Wastewater Pretreatment Systems Misc',
            'Swimming Pool/Spa Wastewater Discharge',
        ],
        'Special Events': ['Special Events'],
        'Special Inspection Agency Request': ['Special Inspection Agency Request'],
        'Transportation': ['Annual Transportation Permit', 'Single Trip Transportation Permit'],
    }

    def category_for(self, permit_type: str) -> Optional[str]:
        value = permit_type.strip()
        if any(_matches(value, name, contains=False) for name in self.BUILDING_RESIDENTIAL):
            return 'Building Residential'
        if any(_matches(value, name, contains=False) for name in self.BUILDING_NON_RESIDENTIAL):
            return 'Building Non Residential'
        for category, names in self.OTHER_CATEGORIES.items():
            if any(_matches(value, name, contains=True) for name in names):
                return category
        return None

    def classify_property_type(self, record: PermitRecord):
        if not record.title:
            return None
        category = self.category_for(record.title)
        if not category:
            return None

        property_type = {
            'Building Residential': PropertyType.RESIDENTIAL,
            'Building Non Residential': PropertyType.COMMERCIAL,
        }.get(category, PropertyType.UNKNOWN)
        return self._result(
            property_type,
            f'Gilroy permit type "{record.title}" in category "{category}": {property_type.value}',
        )


class SunnyvaleClassifier(CityClassifier):
    slugs = ('sunnyvale', 'sunnyvale_ca')

    RESIDENTIAL = ['Minor Building Permit']

    def classify_property_type(self, record: PermitRecord):
        title = (record.title or '').strip()
        if title and any(_matches(title, name, contains=True) for name in self.RESIDENTIAL):
            return self._result(
                PropertyType.RESIDENTIAL,
                f'Sunnyvale permit type "{title}": {PropertyType.RESIDENTIAL.value}',
            )
        return None


CITY_CLASSIFIERS = [
    SanJoseClassifier(),
    GilroyClassifier(),
    SunnyvaleClassifier(),
]


def get_city_classifier(city: Optional[str]) -> Optional[CityClassifier]:
    for classifier in CITY_CLASSIFIERS:
        if classifier.can_handle(city):
            return classifier
    return None
