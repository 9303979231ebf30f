"""Tests for Accela contractor enrichment."""
from unittest.mock import AsyncMock, MagicMock, patch

import psycopg2
import pytest

from scrapers.accela import TableDetailStrategy
from scrapers.utils import ConfigurationError, NavigationError
from services.permit_pipeline.enrichment import ContractorEnricher, EnrichmentStats


@pytest.fixture
def enricher(mock_repository, session):
    enricher = ContractorEnricher(mock_repository)
    enricher._create_session = MagicMock(return_value=session)
    return enricher


@pytest.fixture
def session(mock_driver):
    session = MagicMock()
    session.start = AsyncMock(return_value=mock_driver)
    session.close = AsyncMock()
    return session


ACTIVE = [
    {'license_no': '1234567', 'name': 'ACME BUILDERS', 'permit_count': 9},
    {'license_no': '7654321', 'name': 'BAY SOLAR', 'permit_count': 4},
]


class TestStrategyFor:
    def test_accela_city(self, enricher):
        assert isinstance(enricher.strategy_for('Cupertino'), TableDetailStrategy)

    @pytest.mark.parametrize("city", ['Los Gatos', 'Saratoga', 'Atlantis'])
    def test_unsupported_cities(self, enricher, city):
        with pytest.raises(ConfigurationError):
            enricher.strategy_for(city)


class TestEnrichCity:
    @pytest.mark.asyncio
    async def test_links_known_permits(self, enricher, mock_repository, session):
        mock_repository.find_active_contractors.return_value = ACTIVE
        mock_repository.find_contractor_by_license.side_effect = lambda license_no: {
            'id': f'c-{license_no}', 'license_no': license_no, 'name': 'X',
        }
        mock_repository.find_permit_id.side_effect = lambda number, city: 'p-1' if number == 'BLD-1' else None
        search = AsyncMock(side_effect=[['BLD-1', 'BLD-2'], []])

        with patch.object(TableDetailStrategy, 'search_by_contractor_license', search):
            stats = await enricher.enrich_city('Cupertino', months=6)

        assert stats == EnrichmentStats(processed=2, permits_found=2, permits_matched=1, contractors_linked=1, errors=0)
        mock_repository.link_contractor.assert_called_once_with('p-1', 'c-1234567', 'CONTRACTOR')
        mock_repository.find_permit_id.assert_any_call('BLD-1', 'Cupertino')
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_search_failure_counts_error_and_continues(self, enricher, mock_repository):
        mock_repository.find_active_contractors.return_value = ACTIVE
        search = AsyncMock(side_effect=[NavigationError("License number field not found"), []])

        with patch.object(TableDetailStrategy, 'search_by_contractor_license', search):
            stats = await enricher.enrich_city('Palo Alto')

        assert stats.processed == 2
        assert stats.errors == 1
        assert search.await_count == 2

    @pytest.mark.asyncio
    async def test_link_error_rolls_back(self, enricher, mock_repository):
        mock_repository.find_active_contractors.return_value = ACTIVE[:1]
        mock_repository.find_contractor_by_license.return_value = {'id': 'c-1', 'license_no': '1234567', 'name': 'X'}
        mock_repository.find_permit_id.return_value = 'p-1'
        mock_repository.link_contractor.side_effect = psycopg2.OperationalError("gone")

        with patch.object(TableDetailStrategy, 'search_by_contractor_license', AsyncMock(return_value=['BLD-1'])):
            stats = await enricher.enrich_city('Cupertino')

        assert stats.errors == 1
        assert stats.contractors_linked == 0
        mock_repository.rollback.assert_called_once()

    @pytest.mark.asyncio
    async def test_limit(self, enricher, mock_repository):
        mock_repository.find_active_contractors.return_value = ACTIVE

        with patch.object(TableDetailStrategy, 'search_by_contractor_license', AsyncMock(return_value=[])) as search:
            stats = await enricher.enrich_city('Cupertino', limit=1)

        assert stats.processed == 1
        assert search.await_count == 1

    @pytest.mark.asyncio
    async def test_session_closed_on_unexpected_error(self, enricher, mock_repository, session):
        mock_repository.find_active_contractors.return_value = ACTIVE

        with patch.object(TableDetailStrategy, 'search_by_contractor_license', AsyncMock(side_effect=RuntimeError("boom"))):
            with pytest.raises(RuntimeError):
                await enricher.enrich_city('Cupertino')

        session.close.assert_awaited_once()
