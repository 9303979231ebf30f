"""
Contractor matching.

Turns a scraped "licensed professional" text blob into a Contractor id.
Strategies, in order (first hit wins):

    1. license number, exact                          0.95
    2. name prefix, unique in city / Bay Area         0.85 / 0.75 (0.70 without a city)
    3. phone, unique in city / county / Bay Area      0.80 / 0.75 / 0.70
    4. name prefix + phone, unique in city / Bay Area 0.90 / 0.85 (0.80 without a city)

No match is a normal outcome and returns None.
"""

import json
import re
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional

import psycopg2

from scrapers.address_normalizer import similarity

from .counties import BAY_AREA_COUNTIES, get_county_for_city
from .models import ContractorInfo, ContractorMatch
from .utils import logger

FUZZY_THRESHOLD = 0.8

DEBUG_LOG = Path(tempfile.gettempdir()) / 'contractor_matching_debug.jsonl'

LICENSE_PATTERNS = [
    re.compile(r'(?:license|lic|#)\s*:?\s*#?\s*(\d{6,8})', re.I),
    re.compile(r'#\s*(\d{6,8})'),
    re.compile(r'\b(\d{6,8})\b(?![\d\s-]{4,})'),
]
LICENSE_STRIP = re.compile(r'(?:license|lic|#)\s*:?\s*#?\s*\d{6,8}', re.I)
PHONE_PATTERN = re.compile(r'\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}')
EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
LABEL_PREFIX = re.compile(r'^(contractor|licensed|professional):\s*', re.I)

COMPANY_SUFFIXES = [
    re.compile(pattern, re.I) for pattern in (
        r'\s+INC$', r'\s+LLC$', r'\s+L\s?L\s?C$', r'\s+CORP$', r'\s+CORPORATION$',
        r'\s+LTD$', r'\s+LIMITED$', r'\s+CO$', r'\s+COMPANY$',
        r'\s+AND\s+ASSOCIATES$', r'\s+&?\s*ASSOCIATES$', r'\s+GROUP$',
    )
]


def normalize_phone(phone: Optional[str]) -> str:
    """Digits only; a leading US country code is dropped."""
    digits = re.sub(r'\D', '', phone or '')
    if len(digits) == 11 and digits.startswith('1'):
        return digits[1:]
    return digits


def normalize_company_name(name: Optional[str]) -> str:
    """
    Uppercase, punctuation-light company name without its legal suffix.

    "TESLA ENERGY OPERATIONS, INC." and "Tesla Energy Operations Inc"
    normalize to the same string.
    """
    if not name:
        return ''
    normalized = name.upper().strip().replace(',', ' ').replace('.', '')
    for suffix in COMPANY_SUFFIXES:
        normalized = suffix.sub('', normalized)
    return ' '.join(normalized.split())


def parse_contractor_text(text: Optional[str]) -> ContractorInfo:
    """Pull license number, phone, email and name out of a free-text blob. Never raises."""
    info = ContractorInfo()
    if not text or not text.strip():
        return info

    value = text.strip()

    for pattern in LICENSE_PATTERNS:
        match = pattern.search(value)
        if match:
            info.license_number = match.group(1)
            break

    match = PHONE_PATTERN.search(value)
    if match:
        info.phone = normalize_phone(match.group(0))

    match = EMAIL_PATTERN.search(value)
    if match:
        info.email = match.group(0).lower()

    name = value
    if info.license_number:
        name = LICENSE_STRIP.sub('', name)
    if info.phone:
        name = PHONE_PATTERN.sub('', name)
    if info.email:
        name = EMAIL_PATTERN.sub('', name)
    name = LABEL_PREFIX.sub('', ' '.join(name.split())).strip()

    if len(name) > 2:
        info.name = name
    return info


def select_unique_by_name(candidates: list[dict], name: str) -> Optional[dict]:
    """
    The single candidate whose normalized name starts with `name`.

    Falls back to fuzzy similarity when no candidate has the prefix. Two or
    more survivors means the name is ambiguous and nothing is returned.
    """
    wanted = normalize_company_name(name)
    if not wanted:
        return None

    normalized = [(c, normalize_company_name(c.get('name'))) for c in candidates if c.get('name')]
    matches = [c for c, n in normalized if n.startswith(wanted)]
    if not matches:
        matches = [c for c, n in normalized if similarity(n, wanted) >= FUZZY_THRESHOLD]

    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        logger.debug(f"{len(matches)} contractors match {wanted!r}, skipping")
    return None


class ContractorMatcher:
    """
    Usage:
        matcher = ContractorMatcher(repository)
        match = matcher.match("ACME ROOFING INC Lic #1234567", city_hint="Cupertino")
    """

    def __init__(self, repository, debug_log: Optional[Path] = DEBUG_LOG):
        self.repository = repository
        self.debug_log = debug_log

    def match(
        self,
        text: Optional[str],
        city_hint: Optional[str] = None,
        permit_number: Optional[str] = None,
    ) -> Optional[ContractorMatch]:
        info = parse_contractor_text(text)
        try:
            result = self.match_info(info, city_hint) if text else None
        except psycopg2.Error as e:
            logger.warning(f"Contractor matching failed for {permit_number or text!r}: {e}")
            self.repository.rollback()
            result = None

        if permit_number:
            self.log_attempt(permit_number, text, info, result)
        return result

    def match_info(self, info: ContractorInfo, city_hint: Optional[str] = None) -> Optional[ContractorMatch]:
        city = city_hint.upper() if city_hint else None
        county = get_county_for_city(city_hint)

        if info.license_number:
            contractor = self.repository.find_contractor_by_license(info.license_number)
            if contractor:
                return ContractorMatch(contractor['id'], 0.95, 'license_number')

        if info.name:
            match = self._match_name(info.name, city)
            if match:
                return match

        if info.phone:
            match = self._match_phone(info.phone, city, county)
            if match:
                return match

        if info.name and info.phone:
            match = self._match_name_phone(info.name, info.phone, city)
            if match:
                return match

        return None

    def _name_candidates(self, name: str, **scope) -> list[dict]:
        # Prefilter on the leading characters; exact prefix and fuzzy filtering happen here
        return self.repository.find_contractors_by_name_prefix(normalize_company_name(name)[:3], **scope)

    def _match_name(self, name: str, city: Optional[str]) -> Optional[ContractorMatch]:
        if city:
            found = select_unique_by_name(self._name_candidates(name, cities=[city]), name)
            if found:
                return ContractorMatch(found['id'], 0.85, 'name')

        found = select_unique_by_name(self._name_candidates(name, counties=BAY_AREA_COUNTIES), name)
        if found:
            return ContractorMatch(found['id'], 0.75 if city else 0.70, 'name')
        return None

    def _match_phone(self, phone: str, city: Optional[str], county: Optional[str]) -> Optional[ContractorMatch]:
        scopes = []
        if city:
            scopes.append(({'cities': [city]}, 0.80))
        if county:
            scopes.append(({'counties': [county]}, 0.75))
        scopes.append(({'counties': BAY_AREA_COUNTIES}, 0.70))

        for scope, confidence in scopes:
            found = self.repository.find_contractors_by_phone(phone, **scope)
            if len(found) == 1:
                return ContractorMatch(found[0]['id'], confidence, 'phone')
            if found:
                # Shared office line; let name + phone pick one
                logger.debug(f"{len(found)} contractors share phone {phone}")
                return None
        return None

    def _match_name_phone(self, name: str, phone: str, city: Optional[str]) -> Optional[ContractorMatch]:
        if city:
            found = select_unique_by_name(self.repository.find_contractors_by_phone(phone, cities=[city]), name)
            if found:
                return ContractorMatch(found['id'], 0.90, 'name_phone')

        found = select_unique_by_name(
            self.repository.find_contractors_by_phone(phone, counties=BAY_AREA_COUNTIES), name
        )
        if found:
            return ContractorMatch(found['id'], 0.85 if city else 0.80, 'name_phone')
        return None

    def log_attempt(self, permit_number: str, text: Optional[str], info: ContractorInfo, result):
        if not self.debug_log:
            return
        entry = {
            'permit_number': permit_number,
            'licensed_professional_text': text,
            'parsed': info.to_dict(),
            'match': result.to_dict() if result else None,
            'timestamp': datetime.now().isoformat(),
        }
        try:
            with open(self.debug_log, 'a') as f:
                f.write(json.dumps(entry) + '\n')
        except OSError as e:
            logger.debug(f"Could not write contractor debug log: {e}")
