"""Shared fixtures."""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from scrapers.models import PermitRecord


@pytest.fixture
def sample_record():
    """A Cupertino permit as the Accela strategy would hand it back."""
    return PermitRecord(
        permit_number='BLD-2025-0142',
        city='Cupertino',
        state='CA',
        title='Residential Alteration',
        description='Kitchen remodel, replace cabinets and counters',
        address='10300 TORRE AVE',
        zip_code='95014',
        permit_type='Residential Alteration',
        status='Issued',
        value=45000.0,
        applied_date=datetime(2025, 1, 3, tzinfo=timezone.utc),
        applied_date_string='01/03/2025',
        source_url='https://aca-prod.accela.com/CUPERTINO/Cap/CapDetail.aspx',
        licensed_professional_text='ACME BUILDERS INC Lic #1234567',
    )


@pytest.fixture
def mock_repository():
    """Repository double: no permits stored, no contractors known."""
    repository = MagicMock()
    repository.upsert.return_value = 'permit-id-1'
    repository.find_largest_suffix.return_value = None
    repository.find_contractor_by_license.return_value = None
    repository.find_contractors_by_name_prefix.return_value = []
    repository.find_contractors_by_phone.return_value = []
    repository.find_permit_id.return_value = None
    return repository


@pytest.fixture
def mock_driver():
    """PortalDriver double; every browser call is awaitable."""
    driver = AsyncMock()
    driver.url = 'https://example.test/search'
    return driver
