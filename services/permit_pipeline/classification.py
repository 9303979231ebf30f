"""
Permit classification into PropertyType and PermitType.

Both classifiers are ordered cascades of (stage, confidence) rules; the first
stage that produces a value wins and later stages are not consulted. A city
override (see city_classifiers) is asked first and short-circuits the generic
property-type cascade when it returns a result.
"""

from enum import Enum
from typing import Callable, Optional

from scrapers.models import PermitRecord

from .city_classifiers import get_city_classifier
from .models import ClassificationResult, PermitType, PropertyType, StageResult
from .utils import logger

# (any of these substrings, result) in priority order

EXPLICIT_PROPERTY_RULES = [
    (('residential', 'single family'), PropertyType.RESIDENTIAL),
    (('commercial', 'tenant'), PropertyType.COMMERCIAL),
    (('office',), PropertyType.OFFICE),
    (('industrial',), PropertyType.INDUSTRIAL),
]

KEYWORD_PROPERTY_RULES = [
    (('residential', 'single family', 'home'), PropertyType.RESIDENTIAL),
    (('commercial', 'tenant', 'office'), PropertyType.COMMERCIAL),
]

ADDRESS_PROPERTY_RULES = [
    # Most streets are residential
    (('ave', 'st', 'rd'), PropertyType.RESIDENTIAL),
]

EXPLICIT_PERMIT_RULES = [
    (('building', 'construction'), PermitType.BUILDING),
    (('electrical', 'electric'), PermitType.ELECTRICAL),
    (('plumbing', 'plumb'), PermitType.PLUMBING),
    (('hvac', 'mechanical', 'heating'), PermitType.HVAC),
    (('roof',), PermitType.ROOFING),
    (('demo',), PermitType.DEMOLITION),
    (('addition', 'expansion'), PermitType.ADDITION),
    (('adu', 'accessory', 'granny'), PermitType.ADU),
]

PERMIT_NUMBER_PREFIXES = [
    ('E', PermitType.ELECTRICAL),
    ('P', PermitType.PLUMBING),
    ('B', PermitType.BUILDING),
    ('R', PermitType.ROOFING),
    ('H', PermitType.HVAC),
]

KEYWORD_PERMIT_RULES = [
    (('adu', 'accessory'), PermitType.ADU),
    (('bathroom',), PermitType.BATHROOM),
    (('kitchen',), PermitType.KITCHEN),
    (('roof',), PermitType.ROOFING),
    (('solar',), PermitType.SOLAR),
    (('pool', 'hot tub'), PermitType.POOL_AND_HOT_TUB),
    (('remodel', 'renovation'), PermitType.REMODEL),
    (('addition', 'expansion'), PermitType.ADDITION),
    (('electrical', 'electric'), PermitType.ELECTRICAL),
    (('plumbing', 'plumb'), PermitType.PLUMBING),
    (('hvac', 'heating', 'cooling'), PermitType.HVAC),
]

# (value strictly above, result), highest band first
PROPERTY_VALUE_BANDS = [
    (500000, PropertyType.COMMERCIAL),
    (100000, PropertyType.RESIDENTIAL),
]

PERMIT_VALUE_BANDS = [
    (500000, PermitType.NEW_CONSTRUCTION),
    (200000, PermitType.ADDITION),
    (100000, PermitType.REMODEL),
    (50000, PermitType.BUILDING),
]


def match_rules(text: Optional[str], rules) -> Optional[Enum]:
    """First rule whose substrings appear in the lowercased text."""
    if not text:
        return None
    lowered = text.lower().strip()
    for needles, result in rules:
        if any(needle in lowered for needle in needles):
            return result
    return None


def match_value_band(value: Optional[float], bands) -> Optional[Enum]:
    if not value:
        return None
    for threshold, result in bands:
        if value > threshold:
            return result
    return None


def match_permit_number(permit_number: Optional[str]) -> Optional[PermitType]:
    number = (permit_number or '').upper()
    for prefix, result in PERMIT_NUMBER_PREFIXES:
        if number.startswith(prefix):
            return result
    return None


def _text(record: PermitRecord) -> str:
    return f"{record.title or ''} {record.description or ''}"


# Stage = (label, confidence, record -> Optional[Enum])
Stage = tuple[str, float, Callable[[PermitRecord], Optional[Enum]]]

PROPERTY_STAGES: list[Stage] = [
    ('Explicit type', 0.9, lambda r: match_rules(r.permit_type, EXPLICIT_PROPERTY_RULES)),
    ('Keywords', 0.8, lambda r: match_rules(_text(r), KEYWORD_PROPERTY_RULES)),
    ('Address inference', 0.6, lambda r: match_rules(r.address, ADDRESS_PROPERTY_RULES)),
    ('Value inference', 0.5, lambda r: match_value_band(r.value, PROPERTY_VALUE_BANDS)),
]

PERMIT_STAGES: list[Stage] = [
    ('Explicit permit type', 0.9, lambda r: match_rules(r.permit_type, EXPLICIT_PERMIT_RULES)),
    ('Permit number pattern', 0.8, lambda r: match_permit_number(r.permit_number)),
    ('Keywords', 0.7, lambda r: match_rules(_text(r), KEYWORD_PERMIT_RULES)),
    ('Value inference', 0.5, lambda r: match_value_band(r.value, PERMIT_VALUE_BANDS)),
]


def run_cascade(record: PermitRecord, stages: list[Stage], kind: str) -> StageResult:
    for label, confidence, stage in stages:
        value = stage(record)
        if value is not None:
            return StageResult(value, confidence, [f"{kind} {label}: {value.value}"])
    return StageResult(None, 0.0, [f"{kind}: no clear classification found"])


def classify_property_type(record: PermitRecord) -> StageResult:
    override = get_city_classifier(record.city)
    if override:
        result = override.classify_property_type(record)
        if result is not None:
            return result
    return run_cascade(record, PROPERTY_STAGES, 'Property type')


def classify_permit_type(record: PermitRecord) -> StageResult:
    override = get_city_classifier(record.city)
    if override:
        result = override.classify_permit_type(record)
        if result is not None:
            return result
    return run_cascade(record, PERMIT_STAGES, 'Permit type')


class PermitClassifier:
    """
    Classify records and, when a matcher is supplied, resolve their contractor.

    Usage:
        classifier = PermitClassifier(matcher=ContractorMatcher(repository))
        result = classifier.classify(record)
    """

    def __init__(self, matcher=None):
        self.matcher = matcher

    def classify(self, record: PermitRecord) -> ClassificationResult:
        property_result = classify_property_type(record)
        permit_result = classify_permit_type(record)

        return ClassificationResult(
            property_type=property_result.value,
            permit_type=permit_result.value,
            confidence=min(property_result.confidence, permit_result.confidence),
            reasoning=property_result.reasoning + permit_result.reasoning,
            contractor_id=self.match_contractor(record),
        )

    def match_contractor(self, record: PermitRecord) -> Optional[str]:
        if not self.matcher or not record.licensed_professional_text:
            return None

        match = self.matcher.match(
            record.licensed_professional_text,
            city_hint=record.city,
            permit_number=record.permit_number,
        )
        if match:
            logger.info(
                f"{record.permit_number}: matched contractor {match.contractor_id} "
                f"({match.method}, {match.confidence:.2f})"
            )
            return match.contractor_id

        logger.debug(f"{record.permit_number}: no contractor match for {record.licensed_professional_text!r}")
        return None
