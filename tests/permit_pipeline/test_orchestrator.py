"""Tests for the city-by-city orchestrator."""
import json
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import psycopg2
import pytest

from scrapers.config import get_city_config
from scrapers.etrakit import BatchPrefixStrategy
from scrapers.models import ExtractionResult
from scrapers.pdf_report import PdfReportStrategy
from scrapers.utils import ConfigurationError
from services.permit_pipeline.models import ClassificationResult, PermitType, PropertyType
from services.permit_pipeline.review_queue import ReviewQueue
from services.permit_pipeline.runner import Orchestrator


@pytest.fixture
def orchestrator(mock_repository, tmp_path):
    return Orchestrator(
        mock_repository,
        review_queue=ReviewQueue(tmp_path / "review_queue"),
        raw_dir=tmp_path / "raw",
    )


@pytest.fixture
def session(mock_driver):
    session = MagicMock()
    session.start = AsyncMock(return_value=mock_driver)
    session.close = AsyncMock()
    return session


def browser_strategy(result):
    strategy = MagicMock()
    strategy.requires_browser = True
    strategy.extract = AsyncMock(return_value=result)
    return strategy


class TestScrapeCity:
    """extract -> classify -> persist for one city."""

    @pytest.mark.asyncio
    async def test_disabled_city_is_a_no_op(self, orchestrator, mock_repository):
        with patch.object(orchestrator, '_create_strategy') as create_strategy:
            summary = await orchestrator.scrape_city('Sunnyvale')

        assert summary is None
        create_strategy.assert_not_called()
        mock_repository.upsert.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_city_raises(self, orchestrator):
        with pytest.raises(ConfigurationError):
            await orchestrator.scrape_city('Atlantis')

    @pytest.mark.asyncio
    async def test_success_saves_and_closes_session(self, orchestrator, session, mock_repository, sample_record):
        strategy = browser_strategy(ExtractionResult(records=[sample_record]))

        with patch.object(orchestrator, '_create_strategy', return_value=strategy), \
             patch.object(orchestrator, '_create_session', return_value=session):
            summary = await orchestrator.scrape_city('Los Gatos', date(2025, 1, 1), date(2025, 1, 31), 5)

        assert summary == {
            'city': 'Los Gatos', 'success': True, 'scraped': 1, 'saved': 1, 'skipped': 0, 'error': None,
        }
        strategy.extract.assert_awaited_once_with(session.start.return_value, date(2025, 1, 1), date(2025, 1, 31), 5)
        session.close.assert_awaited_once()
        mock_repository.upsert.assert_called_once()

    @pytest.mark.asyncio
    async def test_session_closed_when_extraction_raises(self, orchestrator, session):
        strategy = MagicMock()
        strategy.requires_browser = True
        strategy.extract = AsyncMock(side_effect=RuntimeError("browser crashed"))

        with patch.object(orchestrator, '_create_strategy', return_value=strategy), \
             patch.object(orchestrator, '_create_session', return_value=session):
            with pytest.raises(RuntimeError):
                await orchestrator.scrape_city('Los Gatos')

        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_run_is_queued_for_review(self, orchestrator, session, mock_repository):
        strategy = browser_strategy(ExtractionResult.failed("Search button not found"))

        with patch.object(orchestrator, '_create_strategy', return_value=strategy), \
             patch.object(orchestrator, '_create_session', return_value=session):
            summary = await orchestrator.scrape_city('Los Gatos')

        assert summary['success'] is False
        assert summary['error'] == "Search button not found"
        mock_repository.upsert.assert_not_called()

        pending = orchestrator.review_queue.get_pending()
        assert len(pending) == 1
        assert pending[0][1].city == 'Los Gatos'
        assert pending[0][1].error == "Search button not found"

    @pytest.mark.asyncio
    async def test_empty_run_is_queued_for_review(self, orchestrator, session):
        strategy = browser_strategy(ExtractionResult(records=[]))

        with patch.object(orchestrator, '_create_strategy', return_value=strategy), \
             patch.object(orchestrator, '_create_session', return_value=session):
            summary = await orchestrator.scrape_city('Los Gatos')

        assert summary['success'] is False
        assert orchestrator.review_queue.get_pending()[0][1].error == "No permits found"

    @pytest.mark.asyncio
    async def test_raw_json_written(self, orchestrator, session, sample_record, tmp_path):
        strategy = browser_strategy(ExtractionResult(records=[sample_record]))

        with patch.object(orchestrator, '_create_strategy', return_value=strategy), \
             patch.object(orchestrator, '_create_session', return_value=session):
            await orchestrator.scrape_city('Los Gatos')

        data = json.loads((tmp_path / "raw" / "los_gatos_raw.json").read_text())
        assert data['source'] == 'los_gatos'
        assert data['portal_type'] == 'table_detail'
        assert data['actual_count'] == 1
        assert data['errors'] == []
        assert data['permits'][0]['permit_number'] == 'BLD-2025-0142'
        assert data['permits'][0]['applied_date'].startswith('2025-01-03')

    @pytest.mark.asyncio
    async def test_report_cities_skip_the_browser(self, orchestrator, sample_record):
        strategy = PdfReportStrategy(get_city_config('Mountain View'))

        with patch.object(orchestrator, '_create_strategy', return_value=strategy), \
             patch.object(orchestrator, '_create_session') as create_session, \
             patch.object(strategy, 'extract', AsyncMock(return_value=ExtractionResult(records=[sample_record]))) as extract:
            await orchestrator.scrape_city('Mountain View', date(2025, 9, 1))

        create_session.assert_not_called()
        assert extract.await_args.args[0] is None

    @pytest.mark.asyncio
    async def test_id_based_city_plans_batches_before_extracting(self, orchestrator, session, mock_repository):
        strategy = BatchPrefixStrategy(get_city_config('Saratoga'))
        mock_repository.find_largest_suffix.return_value = 29
        seen = {}

        async def fake_extract(driver, start_date, end_date, limit):
            seen.update(strategy.starting_batches)
            return ExtractionResult(records=[])

        with patch.object(orchestrator, '_create_strategy', return_value=strategy), \
             patch.object(orchestrator, '_create_session', return_value=session), \
             patch.object(strategy, 'extract', AsyncMock(side_effect=fake_extract)):
            await orchestrator.scrape_city('Saratoga', date(2025, 1, 1))

        assert seen == {'25': 3}
        mock_repository.find_largest_suffix.assert_called_once_with('25', 'Saratoga')


class TestSavePermits:
    """One bad permit never sinks the batch."""

    def test_status_and_dates_normalized(self, orchestrator, mock_repository, sample_record):
        saved, skipped = orchestrator.save_permits([sample_record])

        assert (saved, skipped) == (1, 0)
        kwargs = mock_repository.upsert.call_args.kwargs
        assert kwargs['status'] == 'ISSUED'
        assert kwargs['applied_date'] == sample_record.applied_date
        assert kwargs['expiration_date'] is None

    def test_persistence_error_counts_as_skipped(self, orchestrator, mock_repository, sample_record):
        mock_repository.upsert.side_effect = [psycopg2.IntegrityError("duplicate"), 'permit-id-2']

        assert orchestrator.save_permits([sample_record, sample_record]) == (1, 1)

    def test_scraped_contractors_linked_by_license(self, orchestrator, mock_repository, sample_record):
        sample_record.contractors = [{'license_no': '1234567', 'name': 'ACME', 'role': 'CONTRACTOR'}]
        mock_repository.find_contractor_by_license.return_value = {'id': 'c-1', 'license_no': '1234567', 'name': 'ACME'}

        orchestrator.save_permits([sample_record])

        mock_repository.link_contractor.assert_called_once_with('permit-id-1', 'c-1', 'CONTRACTOR')

    def test_classifier_match_linked(self, orchestrator, mock_repository, sample_record):
        classifier = MagicMock()
        classifier.classify.return_value = ClassificationResult(
            PropertyType.RESIDENTIAL, PermitType.KITCHEN, 0.7, contractor_id='c-9',
        )
        orchestrator.classifier = classifier

        orchestrator.save_permits([sample_record])

        mock_repository.link_contractor.assert_called_once_with('permit-id-1', 'c-9')

    def test_link_failure_still_saved(self, orchestrator, mock_repository, sample_record):
        sample_record.contractors = [{'license_no': '1234567'}]
        mock_repository.find_contractor_by_license.side_effect = psycopg2.OperationalError("gone")

        assert orchestrator.save_permits([sample_record]) == (1, 0)


class TestScrapeAllCities:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_rest(self, orchestrator):
        cities = [get_city_config('Los Gatos'), get_city_config('Saratoga')]
        ok = {'city': 'Saratoga', 'success': True, 'scraped': 2, 'saved': 2, 'skipped': 0, 'error': None}

        with patch('services.permit_pipeline.runner.get_enabled_cities', return_value=cities), \
             patch.object(orchestrator, 'scrape_city', AsyncMock(side_effect=[RuntimeError("boom"), ok])) as scrape:
            summaries = await orchestrator.scrape_all_cities(date(2025, 1, 1))

        assert scrape.await_count == 2
        assert summaries[0]['success'] is False
        assert summaries[0]['error'] == 'boom'
        assert summaries[1] == ok

    @pytest.mark.asyncio
    async def test_no_cities(self, orchestrator):
        with patch('services.permit_pipeline.runner.get_enabled_cities', return_value=[]):
            assert await orchestrator.scrape_all_cities() == []
