"""Tests for the property-type / permit-type classification cascades."""
from unittest.mock import MagicMock

import pytest

from scrapers.models import PermitRecord
from services.permit_pipeline.classification import (
    PermitClassifier,
    classify_permit_type,
    classify_property_type,
)
from services.permit_pipeline.models import ContractorMatch, PermitType, PropertyType


def make_record(**fields):
    fields.setdefault('permit_number', 'X-1')
    fields.setdefault('city', 'Los Gatos')
    return PermitRecord(state='CA', **fields)


class TestPropertyType:
    """First stage with an answer wins."""

    def test_explicit_type(self):
        result = classify_property_type(make_record(permit_type='Residential Alteration'))
        assert result.value == PropertyType.RESIDENTIAL
        assert result.confidence == 0.9
        assert result.reasoning == ['Property type Explicit type: RESIDENTIAL']

    def test_explicit_tenant_improvement(self):
        result = classify_property_type(make_record(permit_type='Tenant Improvement'))
        assert result.value == PropertyType.COMMERCIAL

    def test_keywords(self):
        result = classify_property_type(make_record(title='New single family home'))
        assert result.value == PropertyType.RESIDENTIAL
        assert result.confidence == 0.8

    def test_address_inference(self):
        result = classify_property_type(make_record(address='100 MAIN ST'))
        assert result.value == PropertyType.RESIDENTIAL
        assert result.confidence == 0.6

    @pytest.mark.parametrize("value,expected", [
        (600000, PropertyType.COMMERCIAL),
        (150000, PropertyType.RESIDENTIAL),
        (100000, None),
    ])
    def test_value_bands(self, value, expected):
        result = classify_property_type(make_record(value=value))
        assert result.value == expected

    def test_nothing_to_go_on(self):
        result = classify_property_type(make_record())
        assert result.value is None
        assert result.confidence == 0.0
        assert result.reasoning == ['Property type: no clear classification found']


class TestPermitType:
    def test_explicit_type(self):
        result = classify_permit_type(make_record(permit_type='Electrical Service Upgrade'))
        assert result.value == PermitType.ELECTRICAL
        assert result.confidence == 0.9

    def test_permit_number_prefix(self):
        result = classify_permit_type(make_record(permit_number='E25-0001'))
        assert result.value == PermitType.ELECTRICAL
        assert result.confidence == 0.8

    def test_number_checked_before_keywords(self):
        result = classify_permit_type(make_record(permit_number='P25-0001', title='Kitchen remodel'))
        assert result.value == PermitType.PLUMBING

    @pytest.mark.parametrize("title,expected", [
        ('Kitchen remodel', PermitType.KITCHEN),
        ('Install solar panels', PermitType.SOLAR),
        ('New pool and spa', PermitType.POOL_AND_HOT_TUB),
        ('Master bathroom', PermitType.BATHROOM),
    ])
    def test_keywords(self, title, expected):
        result = classify_permit_type(make_record(title=title))
        assert result.value == expected
        assert result.confidence == 0.7

    @pytest.mark.parametrize("value,expected", [
        (600000, PermitType.NEW_CONSTRUCTION),
        (250000, PermitType.ADDITION),
        (150000, PermitType.REMODEL),
        (60000, PermitType.BUILDING),
        (50000, None),
    ])
    def test_value_bands(self, value, expected):
        assert classify_permit_type(make_record(value=value)).value == expected


class TestCityOverrides:
    """A city classifier that recognizes the value replaces the cascade."""

    def test_san_jose_subtype(self):
        result = classify_property_type(make_record(city='San Jose', permit_type='Single-Family'))
        assert result.value == PropertyType.RESIDENTIAL
        assert result.confidence == 0.95
        assert 'San Jose' in result.reasoning[0]

    def test_gilroy_category(self):
        result = classify_property_type(make_record(city='Gilroy', title='NR - Re-roof'))
        assert result.value == PropertyType.COMMERCIAL
        assert result.confidence == 0.95

    def test_unrecognized_value_falls_through(self):
        result = classify_property_type(make_record(city='San Jose', permit_type='Kitchen'))
        assert result.confidence < 0.95


class TestPermitClassifier:
    def test_overall_confidence_is_minimum(self, sample_record):
        result = PermitClassifier().classify(sample_record)

        assert result.property_type == PropertyType.RESIDENTIAL
        assert result.permit_type == PermitType.BUILDING
        assert result.confidence == 0.8
        assert len(result.reasoning) == 2
        assert result.contractor_id is None

    def test_explicit_type_beats_contradicting_text(self):
        record = make_record(
            permit_type='Commercial Electrical',
            title='Residential kitchen remodel home',
            description='Kitchen remodel for a single family home',
        )

        result = PermitClassifier().classify(record)

        assert result.property_type == PropertyType.COMMERCIAL
        assert result.permit_type == PermitType.ELECTRICAL
        assert result.confidence == 0.9

    def test_contractor_from_matcher(self, sample_record):
        matcher = MagicMock()
        matcher.match.return_value = ContractorMatch('c-1', 0.95, 'license_number')

        result = PermitClassifier(matcher).classify(sample_record)

        assert result.contractor_id == 'c-1'
        matcher.match.assert_called_once_with(
            sample_record.licensed_professional_text,
            city_hint='Cupertino',
            permit_number='BLD-2025-0142',
        )

    def test_no_professional_text_skips_matcher(self, sample_record):
        matcher = MagicMock()
        sample_record.licensed_professional_text = None

        result = PermitClassifier(matcher).classify(sample_record)

        assert result.contractor_id is None
        matcher.match.assert_not_called()

    def test_to_dict(self, sample_record):
        data = PermitClassifier().classify(sample_record).to_dict()
        assert data['property_type'] == 'RESIDENTIAL'
        assert data['permit_type'] == 'BUILDING'
