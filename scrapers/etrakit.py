"""
eTRAKiT batch/prefix strategy (ID_BASED portals).

eTRAKiT can't filter by date, only by permit number with a BEGINS WITH
operator. Permits are numbered PREFIX<year>-<sequence>, so a "batch" is a
search for PREFIX<year>-<batch> zero-padded to suffix_digits:

    Saratoga:  25-002   -> 25-0020 .. 25-0029
    Milpitas:  B-EL25-07 -> B-EL25-0700 .. B-EL25-0799

Batches run upward from the planner's starting batch until one comes back
with fewer than max_results_per_batch rows.

Two ways to read a batch:
  - detail mode: click each row, read Permit Info / Contacts / Site Info tabs,
    go back to the results list
  - table-only mode: read configured columns straight off the results grid
    (Saratoga, Los Altos Hills)
"""

import os
import re
from datetime import date
from typing import Optional

from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .base import ExtractionStrategy, limit_reached
from .dates import parse_date
from .driver import PortalDriver
from .models import ExtractionResult, PermitRecord
from .status import Dialect, Status, normalize_status
from .utils import AuthenticationError, NavigationError, ScraperError

MAX_BATCHES_PER_PREFIX = 20

SEARCH_BY_SELECTOR = '#cplMain_ddSearchBy'
SEARCH_OPERATOR_SELECTOR = '#cplMain_ddSearchOper'
SEARCH_VALUE_SELECTOR = '#cplMain_txtSearchString'
SEARCH_BUTTONS = '#cplMain_btnSearch, #ctl00_cplMain_btnSearch'
RESULT_ROWS = 'tr.rgRow, tr.rgAltRow'
FIRST_CELLS = 'tr.rgRow td:first-child, tr.rgAltRow td:first-child'

LOGIN_TYPE_SELECTOR = 'select[id*="ddlSelLogin"]'
LOGIN_USER_SELECTORS = [
    '#ctl00_ucLogin_RadTextBox2',
    'input[id*="RadTextBox2"]',
    '#cplMain_txtPublicUserName',
    'input[id*="txtUsername"]',
]
LOGIN_PASSWORD_SELECTORS = [
    '#ctl00_ucLogin_txtPassword',
    '#cplMain_txtPublicPassword',
    'input[id*="txtPassword"]',
]
LOGIN_BUTTONS = [
    '#ctl00_ucLogin_btnLogin',
    '#cplMain_btnPublicLogin',
    'input[id*="btnLogin"]',
]

CONTRACTOR_HEADERS = ('CONTRACTOR', 'LICENSE', 'PROFESSIONAL', 'APPLICANT')
ZIP_PATTERN = re.compile(r'\b(\d{5})\b')
MONEY_PATTERN = re.compile(r'[^\d.]')

SELECTED_OPTION_JS = '''(selector) => {
    const select = document.querySelector(selector);
    if (!select) return null;
    const selected = select.options[select.selectedIndex];
    return selected ? selected.text.trim() : null;
}'''

# Matches option text/value exactly, then case-insensitively, then by substring
SET_DROPDOWN_JS = '''([selector, value]) => {
    const select = document.querySelector(selector);
    if (!select) return false;
    const wanted = value.trim().toUpperCase();
    const option = Array.from(select.options).find((opt) => {
        const text = (opt.text || '').trim().toUpperCase();
        const val = (opt.value || '').trim().toUpperCase();
        return text === wanted || val === wanted || text.includes(wanted);
    });
    if (!option) return false;
    select.value = option.value;
    select.dispatchEvent(new Event('change', { bubbles: true }));
    return true;
}'''

SET_INPUT_JS = '''([selector, value]) => {
    const input = document.querySelector(selector);
    if (!input) return false;
    input.value = value;
    input.dispatchEvent(new Event('input', { bubbles: true }));
    input.dispatchEvent(new Event('change', { bubbles: true }));
    return true;
}'''

RESULTS_READY_JS = '''() => {
    const lbl = document.querySelector('#cplMain_lblMoreResults, #ctl00_cplMain_lblMoreResults');
    const row = document.querySelector('table tbody tr');
    return (lbl && lbl.textContent && lbl.textContent.includes('record')) || !!row;
}'''

RESULT_COUNT_JS = '''() => {
    const rows = document.querySelectorAll('tr.rgRow, tr.rgAltRow');
    if (rows.length > 0) return rows.length;
    const lbl = document.querySelector('#cplMain_lblMoreResults, #ctl00_cplMain_lblMoreResults');
    if (lbl && lbl.textContent) {
        const match = lbl.textContent.match(/of\\s+(\\d+)/i);
        if (match) return parseInt(match[1], 10);
    }
    return 0;
}'''

FIRST_CELL_INDEX_JS = '''([selector, permitNumber]) => {
    const cells = Array.from(document.querySelectorAll(selector));
    return cells.findIndex((cell) => (cell.textContent || '').trim() === permitNumber);
}'''

NEXT_PAGE_JS = '''(selector) => {
    const button = document.querySelector(selector);
    if (!button || button.disabled || button.classList.contains('aspNetDisabled')) return false;
    button.click();
    return true;
}'''

TAB_CLICK_JS = '''(name) => {
    const tabs = Array.from(document.querySelectorAll('.rtsLI a.rtsLink'));
    const tab = tabs.find((t) => (t.textContent || '').trim().toUpperCase().includes(name.toUpperCase()));
    if (!tab) return false;
    tab.click();
    return true;
}'''

CONTACTS_JS = '''() => {
    let contractor = null;
    let applicant = null;
    for (const row of document.querySelectorAll('table tr')) {
        const cells = row.querySelectorAll('td');
        if (cells.length < 2) continue;
        const label = (cells[0].textContent || '').trim().toUpperCase();
        const value = (cells[1].textContent || '').trim();
        if (!label || !value) continue;
        if (!contractor && (label.includes('CONTRACTOR') || label.includes('LICENSE') || label.includes('PROFESSIONAL'))) {
            contractor = value;
        }
        if (!applicant && label.includes('APPLICANT')) applicant = value;
    }
    return contractor || applicant;
}'''

SITE_ADDRESS_JS = '''(selector) => {
    const el = document.querySelector(selector);
    if (!el) return null;
    const clone = el.cloneNode(true);
    clone.querySelectorAll('img').forEach((img) => img.remove());
    return (clone.textContent || '').trim() || null;
}'''

PAGE_HTML_JS = '() => document.documentElement.outerHTML'

BACK_LINK_JS = '''() => {
    const direct = document.querySelector('#cplMain_hlSearchResults');
    if (direct) { direct.click(); return true; }
    for (const link of document.querySelectorAll('a[href*="SearchResults"]')) {
        const text = (link.textContent || '').trim();
        if (text.includes('Search Results') || text.includes('Return')) {
            link.click();
            return true;
        }
    }
    return false;
}'''


def year_suffix(year: int, digits: int) -> str:
    """2025 -> '25' (2 digits) or '2025' (4 digits)."""
    return str(year)[-digits:]


def batch_search_value(prefix: str, batch: int, suffix_digits: int) -> str:
    """'B-EL25', 7, 2 -> 'B-EL25-07'"""
    return f"{prefix}-{batch:0{suffix_digits}d}"


def _cell_text(cell) -> str:
    text = cell.get_text(' ', strip=True)
    # Empty grid cells render as &nbsp;
    return '' if text in ('\xa0', '&nbsp;') else text.replace('\xa0', ' ').strip()


def parse_money(text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    cleaned = MONEY_PATTERN.sub('', text)
    if not cleaned or cleaned == '.':
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_result_rows(html: str) -> list[dict]:
    """
    Permit numbers (first column) and any contractor column from a results grid.

    The contractor column is found by header text.
    """
    soup = BeautifulSoup(html, 'html.parser')
    rows = []

    for row in soup.select(RESULT_ROWS):
        cells = row.find_all('td')
        if not cells:
            continue
        permit_number = _cell_text(cells[0])
        if not permit_number:
            continue

        contractor = None
        table = row.find_parent('table')
        header = table.select_one('thead tr, tr.rgHeaderRow, tr.rgHeader') if table else None
        if header:
            for index, head in enumerate(header.find_all(['th', 'td'])):
                if index >= len(cells):
                    break
                label = head.get_text(strip=True).upper()
                if any(word in label for word in CONTRACTOR_HEADERS):
                    text = _cell_text(cells[index])
                    if text:
                        contractor = text
                        break

        rows.append({'permit_number': permit_number, 'contractor': contractor})

    return rows


def parse_table_rows(html: str, columns: dict) -> list[dict]:
    """Read configured column indices from every result row (table-only mode)."""
    soup = BeautifulSoup(html, 'html.parser')
    rows = []

    for row in soup.select(RESULT_ROWS):
        cells = row.find_all('td')
        values = {}
        for field_name, index in columns.items():
            values[field_name] = _cell_text(cells[index]) if index < len(cells) else ''
        if values.get('permit_number'):
            rows.append(values)

    return rows


class BatchPrefixStrategy(ExtractionStrategy):
    """Search PREFIX<year>-<batch> with BEGINS WITH, batch by batch."""

    def __init__(self, config):
        super().__init__(config)
        self.options = config.options
        # prefix -> first batch to search, filled in by the orchestrator
        self.starting_batches: dict[str, int] = {}
        self._search_url = config.url
        # Last BEGINS WITH value, replayed when there is no back link
        self._current_search: Optional[str] = None

    @property
    def suffix_digits(self) -> int:
        return self.options['suffix_digits']

    @property
    def sequence_digits(self) -> int:
        return self.options.get('sequence_digits', self.suffix_digits + 1)

    def prefixes_for(self, start_date: Optional[date] = None) -> list[str]:
        year = (start_date or date.today()).year
        suffix = year_suffix(year, self.options['year_suffix_digits'])
        return [f"{base}{suffix}" for base in self.options['base_prefixes']]

    async def extract(self, driver, start_date=None, end_date=None, limit=None) -> ExtractionResult:
        records: list[PermitRecord] = []
        prefixes = self.prefixes_for(start_date)
        self.log.info(f"Searching {len(prefixes)} prefixes for {self.config.name}")

        try:
            await self.open_search_page(driver)
            await self.login(driver)

            for prefix in prefixes:
                remaining = limit - len(records) if limit else None
                records.extend(await self.scrape_prefix(driver, prefix, remaining))
                if limit_reached(records, limit):
                    break

        except (ScraperError, PlaywrightTimeout) as e:
            self.log.error(f"{self.config.name} scrape aborted: {e}")
            await self.save_error_screenshot(driver)
            return ExtractionResult.failed(str(e))

        if limit:
            records = records[:limit]
        self.log.info(f"Extracted {len(records)} permits from {self.config.name}")
        return ExtractionResult(records=records)

    async def scrape_prefix(self, driver: PortalDriver, prefix: str, limit: Optional[int]) -> list[PermitRecord]:
        """Walk batches upward until one is not full (or the cap/limit is hit)."""
        records = []
        first = self.starting_batches.get(prefix, 0)
        if first:
            self.log.info(f"[{prefix}] Resuming at batch {first}")

        for batch in range(first, first + MAX_BATCHES_PER_PREFIX):
            value = batch_search_value(prefix, batch, self.suffix_digits)
            count = await self.search_batch(driver, value)
            self.log.info(f"[{value}] {count} results")
            if count == 0:
                break

            remaining = limit - len(records) if limit else None
            batch_records = await self.extract_batch(driver, remaining)
            for record in batch_records:
                record.source_batch = batch
            records.extend(batch_records)

            if limit_reached(records, limit):
                return records[:limit]
            if count < self.options['max_results_per_batch']:
                break
        else:
            self.log.warning(f"[{prefix}] Stopped at batch cap ({MAX_BATCHES_PER_PREFIX})")

        return records

    # ---------------- search page ----------------

    async def open_search_page(self, driver: PortalDriver):
        try:
            await driver.navigate(self._search_url)
        except PlaywrightTimeout as e:
            raise NavigationError(f"Could not load {self._search_url}: {e}") from e
        await driver.settle(2)

    async def login(self, driver: PortalDriver):
        """Optional public login; without credentials the portal is searched anonymously."""
        env_prefix = self.options.get('login_env')
        if not env_prefix:
            return

        username = os.getenv(f"{env_prefix}_USERNAME")
        password = os.getenv(f"{env_prefix}_PASSWORD")
        if not username or not password:
            self.log.warning(f"{env_prefix}_USERNAME/PASSWORD not set, continuing without login")
            return

        if await driver.exists(LOGIN_TYPE_SELECTOR):
            await driver.select_option(LOGIN_TYPE_SELECTOR, 'Public')
            await driver.settle(2)

        user_field = await self._first_present(driver, LOGIN_USER_SELECTORS)
        password_field = await self._first_present(driver, LOGIN_PASSWORD_SELECTORS)
        if not user_field or not password_field:
            raise AuthenticationError("Login fields not found")

        await driver.fill(user_field, username)
        await driver.fill(password_field, password)
        if not await driver.click(LOGIN_BUTTONS):
            raise AuthenticationError("Login button not found")
        await driver.settle(4)

        body = (await driver.read_text('body') or '').lower()
        if 'invalid' in body and 'password' in body:
            raise AuthenticationError(f"Login rejected for {self.config.name}")
        self.log.info("Logged in")

        if 'search/permit' not in driver.url.lower():
            await self.open_search_page(driver)

    async def _first_present(self, driver: PortalDriver, selectors: list[str]) -> Optional[str]:
        for selector in selectors:
            if await driver.exists(selector):
                return selector
        return None

    async def set_search_filters(self, driver: PortalDriver, value: str):
        await driver.settle(2)

        search_by = self.options['search_by_value']
        current = await driver.evaluate(SELECTED_OPTION_JS, SEARCH_BY_SELECTOR)
        if current != search_by:
            if not await driver.evaluate(SET_DROPDOWN_JS, [SEARCH_BY_SELECTOR, search_by]):
                raise NavigationError(f'Could not set Search By to "{search_by}"')
            # Changing Search By triggers a postback
            await driver.settle(4)
            try:
                await driver.wait_for_selector(SEARCH_BUTTONS, timeout=10000)
            except PlaywrightTimeout:
                self.log.warning("Search button not visible after postback")

        operator = self.options['search_operator_value']
        if not await driver.evaluate(SET_DROPDOWN_JS, [SEARCH_OPERATOR_SELECTOR, operator]):
            raise NavigationError(f'Could not set Search Operator to "{operator}"')

        if not await driver.evaluate(SET_INPUT_JS, [SEARCH_VALUE_SELECTOR, value]):
            raise NavigationError(f'Could not set search value "{value}"')

    async def execute_search(self, driver: PortalDriver):
        if not await driver.click(self.options['search_button_selectors']):
            raise NavigationError("Search button not found")

        try:
            await driver.wait_for_function(RESULTS_READY_JS, timeout=30000)
        except PlaywrightTimeout:
            self.log.warning("Timed out waiting for search postback")
        await driver.settle(2)

    async def search_batch(self, driver: PortalDriver, value: str) -> int:
        """Run one BEGINS WITH search; returns the number of result rows."""
        await self.set_search_filters(driver, value)
        await self.execute_search(driver)
        self._current_search = value
        return await driver.evaluate(RESULT_COUNT_JS) or 0

    # ---------------- results pages ----------------

    async def extract_batch(self, driver: PortalDriver, limit: Optional[int]) -> list[PermitRecord]:
        records = []
        max_pages = self.options['max_pages']

        for page_num in range(1, max_pages + 1):
            html = await driver.evaluate(PAGE_HTML_JS)

            if self.options['table_only']:
                rows = parse_table_rows(html, self.options['table_columns'])
                records.extend(self.record_from_columns(row) for row in rows)
            else:
                rows = parse_result_rows(html)
                for row in rows:
                    if limit_reached(records, limit):
                        return records
                    try:
                        record = await self.extract_detail(driver, row['permit_number'], row['contractor'])
                        if record:
                            records.append(record)
                    except (ScraperError, PlaywrightTimeout) as e:
                        self.log.warning(f"Skipping {row['permit_number']}: {e}")
                    await self.back_to_results(driver)

            if not rows or limit_reached(records, limit):
                break
            if not await self.next_page(driver):
                break
            self.log.debug(f"Page {page_num + 1}")

        return records[:limit] if limit else records

    async def next_page(self, driver: PortalDriver) -> bool:
        if not await driver.evaluate(NEXT_PAGE_JS, self.options['next_page_selector']):
            return False
        await driver.settle(self.options['wait_after_page_click'])
        try:
            await driver.wait_for_selector(RESULT_ROWS, timeout=10000)
        except PlaywrightTimeout:
            self.log.warning("Timed out waiting for next results page")
        return True

    async def back_to_results(self, driver: PortalDriver):
        if await driver.evaluate(BACK_LINK_JS):
            await driver.settle(2)
            try:
                await driver.wait_for_selector(RESULT_ROWS, timeout=10000)
            except PlaywrightTimeout:
                self.log.warning("Timed out waiting for results after going back")
            return

        # No back link: reload the search page and repeat the current search
        await self.open_search_page(driver)
        if self._current_search:
            await self.set_search_filters(driver, self._current_search)
            await self.execute_search(driver)

    # ---------------- table-only rows ----------------

    def record_from_columns(self, row: dict) -> PermitRecord:
        applied_text = row.get('applied_date') or row.get('issued_date') or None

        if self.options.get('status_from_issued_column'):
            status = Status.ISSUED if row.get('issued_date') else Status.IN_REVIEW
        else:
            status = normalize_status(row.get('status'), Dialect.ETRAKIT)

        return self.new_record(
            row['permit_number'],
            description=row.get('description') or None,
            address=row.get('address') or None,
            status=status.value,
            value=parse_money(row.get('value')),
            applied_date=parse_date(applied_text),
            applied_date_string=applied_text,
            licensed_professional_text=row.get('contractor') or None,
        )

    # ---------------- detail pages ----------------

    async def open_detail(self, driver: PortalDriver, permit_number: str) -> bool:
        index = await driver.evaluate(FIRST_CELL_INDEX_JS, [FIRST_CELLS, permit_number])
        if index is None or index < 0:
            return False
        await driver.click_locator(FIRST_CELLS, index)
        await driver.settle(3)

        pi = self.options['permit_info_prefix']
        try:
            await driver.wait_for_selector(
                f'#cplMain_{pi}_lblPermitType, #cplMain_{pi}_lblPermitStatus, .rtsUL', timeout=15000
            )
        except PlaywrightTimeout:
            self.log.warning(f"Detail page slow to load for {permit_number}")
        return True

    async def click_tab(self, driver: PortalDriver, name: str) -> bool:
        if not await driver.evaluate(TAB_CLICK_JS, name):
            return False
        await driver.settle(1.5)
        return True

    async def read_permit_info(self, driver: PortalDriver) -> dict:
        pi = self.options['permit_info_prefix']

        async def span(field_name):
            return await driver.read_text(f'#cplMain_{pi}_{field_name}')

        info = {
            'description': await span(self.options['description_field']),
            'status': await span('lblPermitStatus'),
            'applied': await span('lblPermitAppliedDate'),
            'approved': await span('lblPermitApprovedDate'),
            'issued': await span('lblPermitIssuedDate'),
            'expiration': await span('lblPermitExpirationDate'),
        }
        if self.options['extract_title']:
            info['title'] = await span('lblPermitDesc')
        if self.options.get('title_field'):
            info['title'] = await span(self.options['title_field'])
        if self.options.get('subtype_field'):
            subtype = await span(self.options['subtype_field'])
            if subtype:
                info['description'] = f"{info['description']} - {subtype}" if info['description'] else subtype
        return info

    async def read_site_info(self, driver: PortalDriver) -> dict:
        si = self.options['site_info_prefix']
        address = await driver.evaluate(SITE_ADDRESS_JS, f'#cplMain_{si}_hlSiteAddress')
        city_state_zip = await driver.read_text(f'#cplMain_{si}_lblSiteCityStateZip') or ''
        match = ZIP_PATTERN.search(city_state_zip)
        return {'address': address, 'zip_code': match.group(1) if match else None}

    async def extract_detail(
        self, driver: PortalDriver, permit_number: str, contractor: Optional[str] = None
    ) -> Optional[PermitRecord]:
        if not await self.open_detail(driver, permit_number):
            self.log.warning(f"Could not find row for {permit_number}")
            return None

        info = await self.read_permit_info(driver)

        if self.options['has_contacts_tab'] and not contractor:
            if await self.click_tab(driver, 'Contacts'):
                contractor = await driver.evaluate(CONTACTS_JS)

        site = {}
        if await self.click_tab(driver, 'Site Info'):
            site = await self.read_site_info(driver)

        applied_text = info.get('applied') or info.get('approved') or info.get('issued')
        return self.new_record(
            permit_number,
            title=info.get('title'),
            description=info.get('description'),
            address=site.get('address'),
            zip_code=site.get('zip_code'),
            status=normalize_status(info.get('status'), Dialect.ETRAKIT).value,
            applied_date=parse_date(applied_text),
            applied_date_string=applied_text,
            expiration_date=parse_date(info.get('expiration')),
            licensed_professional_text=contractor,
        )
