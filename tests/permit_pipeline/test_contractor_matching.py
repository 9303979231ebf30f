"""Tests for contractor text parsing and registry matching."""
import json

import psycopg2
import pytest

from services.permit_pipeline.contractor_matching import (
    ContractorMatcher,
    normalize_company_name,
    normalize_phone,
    parse_contractor_text,
    select_unique_by_name,
)
from services.permit_pipeline.counties import BAY_AREA_COUNTIES, get_county_for_city, is_bay_area_county


def contractor(contractor_id, name, phone=None):
    return {'id': contractor_id, 'name': name, 'phone': phone}


@pytest.fixture
def matcher(mock_repository):
    return ContractorMatcher(mock_repository, debug_log=None)


class TestNormalization:
    def test_phone(self):
        assert normalize_phone('(408) 555-1234') == '4085551234'
        assert normalize_phone('1-408-555-1234') == '4085551234'
        assert normalize_phone(None) == ''

    @pytest.mark.parametrize("raw,expected", [
        ('Tesla Energy Operations, Inc.', 'TESLA ENERGY OPERATIONS'),
        ('Tesla Energy Operations Inc', 'TESLA ENERGY OPERATIONS'),
        ('ACME Construction Company', 'ACME CONSTRUCTION'),
        ('Smith & Associates', 'SMITH'),
        ('  bay   solar llc ', 'BAY SOLAR'),
        (None, ''),
    ])
    def test_company_name(self, raw, expected):
        assert normalize_company_name(raw) == expected


class TestParseContractorText:
    """Never raises; pulls out what it can."""

    def test_full_blob(self):
        info = parse_contractor_text('ACME ROOFING INC Lic #1234567 (408) 555-1234 info@ACME.com')

        assert info.license_number == '1234567'
        assert info.phone == '4085551234'
        assert info.email == 'info@acme.com'
        assert info.name == 'ACME ROOFING INC'

    def test_label_prefix_stripped(self):
        info = parse_contractor_text('Contractor: Bay Solar')
        assert info.name == 'Bay Solar'
        assert info.license_number is None

    def test_phone_is_not_a_license(self):
        info = parse_contractor_text('Call 408-555-1234')
        assert info.license_number is None
        assert info.phone == '4085551234'

    @pytest.mark.parametrize("text", [None, '', '   ', 'AB'])
    def test_nothing_useful(self, text):
        info = parse_contractor_text(text)
        assert info.name is None
        assert info.license_number is None


class TestSelectUniqueByName:
    CANDIDATES = [contractor('1', 'ACME ROOFING INC'), contractor('2', 'ACME PLUMBING')]

    def test_unique_prefix(self):
        assert select_unique_by_name(self.CANDIDATES, 'Acme Roofing')['id'] == '1'

    def test_ambiguous_prefix(self):
        assert select_unique_by_name(self.CANDIDATES, 'ACME') is None

    def test_fuzzy_fallback(self):
        assert select_unique_by_name(self.CANDIDATES, 'ACME ROOFNG')['id'] == '1'

    def test_no_match(self):
        assert select_unique_by_name(self.CANDIDATES, 'ZEPHYR ELECTRIC') is None
        assert select_unique_by_name(self.CANDIDATES, '') is None


class TestMatcherStrategies:
    """First strategy with a hit wins."""

    def test_license(self, matcher, mock_repository):
        mock_repository.find_contractor_by_license.return_value = {'id': 'c-1', 'license_no': '1234567', 'name': 'ACME'}

        match = matcher.match('ACME Lic #1234567', city_hint='Cupertino')

        assert (match.contractor_id, match.confidence, match.method) == ('c-1', 0.95, 'license_number')

    def test_name_in_city(self, matcher, mock_repository):
        mock_repository.find_contractors_by_name_prefix.side_effect = (
            lambda prefix, cities=None, counties=None: [contractor('c-2', 'BAY SOLAR INC')] if cities else []
        )

        match = matcher.match('Bay Solar', city_hint='Cupertino')

        assert (match.contractor_id, match.confidence, match.method) == ('c-2', 0.85, 'name')
        mock_repository.find_contractors_by_name_prefix.assert_any_call('BAY', cities=['CUPERTINO'])

    @pytest.mark.parametrize("city_hint,confidence", [('Cupertino', 0.75), (None, 0.70)])
    def test_name_in_bay_area(self, matcher, mock_repository, city_hint, confidence):
        mock_repository.find_contractors_by_name_prefix.side_effect = (
            lambda prefix, cities=None, counties=None: [contractor('c-3', 'BAY SOLAR INC')] if counties else []
        )

        match = matcher.match('Bay Solar', city_hint=city_hint)

        assert match.confidence == confidence
        mock_repository.find_contractors_by_name_prefix.assert_any_call('BAY', counties=BAY_AREA_COUNTIES)

    def test_phone_in_county(self, matcher, mock_repository):
        mock_repository.find_contractors_by_phone.side_effect = (
            lambda phone, cities=None, counties=None:
                [contractor('c-4', 'SOMEONE', phone)] if counties == ['SANTA_CLARA'] else []
        )

        match = matcher.match('(408) 555-1234', city_hint='Cupertino')

        assert (match.contractor_id, match.confidence, match.method) == ('c-4', 0.75, 'phone')

    def test_shared_phone_resolved_by_name(self, matcher, mock_repository):
        shared = [contractor('c-5', 'ACME ROOFING'), contractor('c-6', 'ZEPHYR ELECTRIC')]
        mock_repository.find_contractors_by_phone.return_value = shared

        match = matcher.match('Zephyr Electric 408-555-1234', city_hint='Cupertino')

        assert (match.contractor_id, match.confidence, match.method) == ('c-6', 0.90, 'name_phone')

    def test_no_match(self, matcher):
        assert matcher.match('Nobody Known', city_hint='Cupertino') is None

    def test_empty_text(self, matcher, mock_repository):
        assert matcher.match('', city_hint='Cupertino') is None
        mock_repository.find_contractor_by_license.assert_not_called()

    def test_database_error_is_not_a_match(self, matcher, mock_repository):
        mock_repository.find_contractor_by_license.side_effect = psycopg2.OperationalError("connection lost")

        assert matcher.match('ACME Lic #1234567', city_hint='Cupertino') is None
        mock_repository.rollback.assert_called_once()


class TestDebugLog:
    def test_attempts_are_appended(self, mock_repository, tmp_path):
        log = tmp_path / 'matching.jsonl'
        matcher = ContractorMatcher(mock_repository, debug_log=log)

        matcher.match('ACME Lic #1234567', city_hint='Cupertino', permit_number='BLD-1')
        matcher.match('Bay Solar', city_hint='Cupertino', permit_number='BLD-2')

        lines = [json.loads(line) for line in log.read_text().splitlines()]
        assert [line['permit_number'] for line in lines] == ['BLD-1', 'BLD-2']
        assert lines[0]['parsed']['license_number'] == '1234567'
        assert lines[0]['match'] is None

    def test_no_permit_number_no_log(self, mock_repository, tmp_path):
        log = tmp_path / 'matching.jsonl'
        ContractorMatcher(mock_repository, debug_log=log).match('Bay Solar')
        assert not log.exists()


class TestCounties:
    def test_city_lookup(self):
        assert get_county_for_city('Cupertino') == 'SANTA_CLARA'
        assert get_county_for_city('LOS ALTOS HILLS') == 'SANTA_CLARA'
        assert get_county_for_city('Fresno') is None
        assert get_county_for_city(None) is None

    def test_bay_area(self):
        assert is_bay_area_county('ALAMEDA')
        assert not is_bay_area_county('FRESNO')
