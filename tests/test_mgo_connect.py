"""Tests for the MGO Connect single-page-app strategy."""
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from scrapers.config import get_city_config
from scrapers.mgo_connect import (
    DEFAULT_COLUMNS,
    SpaFormStrategy,
    map_headers,
    map_row,
    parse_grid,
)
from scrapers.utils import AuthenticationError, NavigationError


def grid_html(rows, headers=('', 'Project Number', 'Project Name', 'Work Type', 'Status',
                             'Address', 'Created Date', 'Description')):
    head = ''.join(f'<th>{h}</th>' for h in headers)
    body = ''
    for cells in rows:
        tds = ''.join(f'<td>{c}</td>' for c in cells)
        body += f'<tr>{tds}</tr>'
    return f'<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>'


def project(number, name='Reroof'):
    return [
        '<input type="checkbox">',
        f'<a href="/cp/project/{number}">{number}</a>',
        name,
        'Building',
        'Issued',
        '123 Main St, Campbell, CA 95008',
        '01/03/2025 09:12 AM',
        'Tear off and reroof',
    ]


@pytest.fixture
def strategy():
    return SpaFormStrategy(get_city_config("Campbell"))


class TestColumnMapping:
    """Header text decides column positions."""

    def test_map_headers(self):
        columns = map_headers(['', 'Project Number', 'Project Name', 'Work Type', 'Status', 'Address'])
        assert columns == {
            'project_number': 1,
            'project_name': 2,
            'work_type': 3,
            'status': 4,
            'address': 5,
        }

    def test_unreadable_headers_fall_back(self):
        assert map_headers(['', '', '']) == DEFAULT_COLUMNS

    def test_map_row_defaults(self):
        cells = [''] * 12
        cells[2] = 'BLD25-0010'
        cells[5] = 'Issued'
        row = map_row(cells, DEFAULT_COLUMNS)

        assert row['project_number'] == 'BLD25-0010'
        assert row['status'] == 'Issued'
        assert row['address'] is None
        assert row['link'] is None

    def test_row_without_project_number(self):
        assert map_row(['', '', '   '], DEFAULT_COLUMNS) is None

    def test_short_row(self):
        row = map_row(['x', 'y', 'BLD25-0010'], DEFAULT_COLUMNS)
        assert row['project_number'] == 'BLD25-0010'
        assert row['parcel'] is None


class TestParseGrid:
    def test_rows_with_links(self):
        rows = parse_grid(grid_html([project('BLD25-0010'), project('BLD25-0011')]))

        assert [row['project_number'] for row in rows] == ['BLD25-0010', 'BLD25-0011']
        assert rows[0]['link'] == '/cp/project/BLD25-0010'
        assert rows[0]['created'] == '01/03/2025 09:12 AM'
        assert rows[0]['description'] == 'Tear off and reroof'

    def test_no_table(self):
        assert parse_grid('<div>Loading...</div>') == []


class TestRecordFromRow:
    def test_fields(self, strategy):
        row = parse_grid(grid_html([project('BLD25-0010')]))[0]
        record = strategy.record_from_row(row)

        assert record.permit_number == 'BLD25-0010'
        assert record.city == 'Campbell'
        assert record.title == 'Reroof'
        assert record.description == 'Tear off and reroof'
        assert record.address == '123 Main St'
        assert record.zip_code == '95008'
        assert record.permit_type == 'Building'
        assert record.status == 'ISSUED'
        assert record.applied_date_string == '01/03/2025'
        assert record.applied_date.date() == date(2025, 1, 3)
        assert record.source_url == '/cp/project/BLD25-0010'

    def test_description_falls_back_to_name(self, strategy):
        row = map_row(['', '', 'BLD25-0012', 'Solar PV'], DEFAULT_COLUMNS)
        record = strategy.record_from_row(row)

        assert record.description == 'Solar PV'
        assert record.status == 'UNKNOWN'
        assert record.source_url == get_city_config("Campbell").url


class TestLogin:
    """Credentials only ever come from the environment."""

    @pytest.mark.asyncio
    async def test_missing_credentials(self, strategy, mock_driver, monkeypatch):
        monkeypatch.delenv('MGO_EMAIL', raising=False)
        monkeypatch.delenv('MGO_PASSWORD', raising=False)

        with pytest.raises(AuthenticationError):
            await strategy.login(mock_driver)
        mock_driver.navigate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_form(self, strategy, mock_driver, monkeypatch):
        monkeypatch.setenv('MGO_EMAIL', 'user@example.com')
        monkeypatch.setenv('MGO_PASSWORD', 'secret')
        mock_driver.exists.return_value = False

        with pytest.raises(AuthenticationError):
            await strategy.login(mock_driver)

    @pytest.mark.asyncio
    async def test_successful_login(self, strategy, mock_driver, monkeypatch):
        monkeypatch.setenv('MGO_EMAIL', 'user@example.com')
        monkeypatch.setenv('MGO_PASSWORD', 'secret')
        mock_driver.exists.return_value = True
        mock_driver.click.return_value = 'button'
        mock_driver.url = 'https://www.mgoconnect.org/cp/home'

        await strategy.login(mock_driver)

        filled = [call.args[1] for call in mock_driver.fill.await_args_list]
        assert filled == ['user@example.com', 'secret']


class TestJurisdiction:
    @pytest.mark.asyncio
    async def test_jurisdiction_not_offered(self, strategy, mock_driver):
        mock_driver.count.return_value = 0

        with pytest.raises(NavigationError):
            await strategy.select_jurisdiction(mock_driver)


class TestExtract:
    @pytest.mark.asyncio
    async def test_login_failure_returns_failed_result(self, strategy, mock_driver, monkeypatch):
        monkeypatch.delenv('MGO_EMAIL', raising=False)

        result = await strategy.extract(mock_driver, date(2025, 1, 1))

        assert result.success is False
        assert 'MGO_EMAIL' in result.error

    @pytest.mark.asyncio
    async def test_pages_are_deduplicated(self, strategy, mock_driver):
        page1 = grid_html([project('BLD25-0010'), project('BLD25-0011')])
        page2 = grid_html([project('BLD25-0011'), project('BLD25-0012')])
        mock_driver.evaluate.side_effect = [page1, True, page2, False]

        records = await strategy.collect_pages(mock_driver, None)

        assert [r.permit_number for r in records] == ['BLD25-0010', 'BLD25-0011', 'BLD25-0012']

    @pytest.mark.asyncio
    async def test_limit(self, strategy, mock_driver):
        mock_driver.evaluate.side_effect = [grid_html([project('BLD25-0010'), project('BLD25-0011')])]

        records = await strategy.collect_pages(mock_driver, 1)

        assert len(records) == 1

    @pytest.mark.asyncio
    async def test_flow(self, strategy, mock_driver, sample_record):
        with patch.object(strategy, 'login', AsyncMock()), \
             patch.object(strategy, 'select_jurisdiction', AsyncMock()), \
             patch.object(strategy, 'open_permit_search', AsyncMock()), \
             patch.object(strategy, 'apply_filters', AsyncMock()) as apply_filters, \
             patch.object(strategy, 'run_search', AsyncMock()), \
             patch.object(strategy, 'collect_pages', AsyncMock(return_value=[sample_record])):
            result = await strategy.extract(mock_driver, date(2025, 1, 1), date(2025, 1, 31))

        assert result.records == [sample_record]
        apply_filters.assert_awaited_once_with(mock_driver, date(2025, 1, 1), date(2025, 1, 31))
