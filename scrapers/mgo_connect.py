"""
MGO Connect strategy (Campbell).

MGO Connect is an Angular/PrimeNG single-page app behind a login. The flow is:
login -> state dropdown -> jurisdiction dropdown (type-ahead) -> Continue ->
"Search Permits" -> status select-all + Created After/Before -> Search, then
walk the paginator reading the results grid.

Credentials come from MGO_EMAIL / MGO_PASSWORD.
"""

import os
from datetime import date
from typing import Optional

from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .address_normalizer import parse_address
from .base import ExtractionStrategy, limit_reached
from .dates import format_portal_date, parse_date
from .driver import PortalDriver
from .models import ExtractionResult, PermitRecord
from .status import Dialect, normalize_status
from .utils import AuthenticationError, NavigationError, ScraperError

MAX_PAGES = 200

EMAIL_INPUTS = ['input[formcontrolname="Email"]', 'input[type="email"]']
PASSWORD_INPUTS = ['input[formcontrolname="Password"]', 'input[type="password"]']
LOGIN_BUTTONS = ['p-button[label="Login"] button', 'button:has-text("Login")']

DROPDOWN = '.p-dropdown'
DROPDOWN_ITEM = '.p-dropdown-item:has-text("{}")'
CONTINUE_BUTTON = 'button:has-text("Continue")'

SEARCH_PANEL = '.grid-item-right-content ngx-search-project-result'
STATUS_MULTISELECT = f'{SEARCH_PANEL} p-multiselect[placeholder="Status"]'
STATUS_SELECT_ALL = '.p-multiselect-panel .p-multiselect-header .p-checkbox-box'
CREATED_AFTER_INPUT = f'{SEARCH_PANEL} input[placeholder="Created After"]'
CREATED_BEFORE_INPUT = f'{SEARCH_PANEL} input[placeholder="Created Before"]'
COLUMN_MULTISELECT = f'{SEARCH_PANEL} app-form-multi-select p-multiselect'
COLUMN_ITEM = '.p-multiselect-panel .p-multiselect-item:has-text("{}")'
SEARCH_BUTTON = f'{SEARCH_PANEL} p-button[label="Search"] button'

GRID_ROWS = 'table tbody tr'
NEXT_PAGE_BUTTON = 'button.p-paginator-next'

# Column positions when the grid has no readable header row
DEFAULT_COLUMNS = {
    'project_number': 2,
    'project_name': 3,
    'work_type': 4,
    'status': 5,
    'address': 6,
    'unit': 7,
    'description': 8,
    'designation': 9,
    'created': 10,
    'parcel': 11,
}

# Header text -> field, checked in order ("Project Number" before "Project Name")
HEADER_FIELDS = [
    ('project number', 'project_number'),
    ('project name', 'project_name'),
    ('work type', 'work_type'),
    ('status', 'status'),
    ('address', 'address'),
    ('unit', 'unit'),
    ('designation', 'designation'),
    ('created', 'created'),
    ('parcel', 'parcel'),
    ('description', 'description'),
]

SECOND_DROPDOWN_ENABLED_JS = """
() => {
    const dropdowns = document.querySelectorAll('.p-dropdown');
    return dropdowns.length > 1 && !dropdowns[1].classList.contains('p-disabled');
}
"""

OPEN_SEARCH_PERMITS_JS = """
() => {
    const links = Array.from(document.querySelectorAll('a.p-menuitem-link, a'));
    const link = links.find(a => (a.textContent || '').trim().includes('Search Permits'));
    if (link) { link.click(); return true; }
    return false;
}
"""

NEXT_PAGE_ENABLED_JS = """
(selector) => {
    const button = document.querySelector(selector);
    return !!button && !button.disabled && !button.classList.contains('p-disabled');
}
"""

PAGE_HTML_JS = "() => document.documentElement.outerHTML"


def map_headers(header_texts: list[str]) -> dict[str, int]:
    """
    Column index per field from the grid's header texts.

    Falls back to DEFAULT_COLUMNS when the project number column can't be found.
    """
    columns = {}
    for index, text in enumerate(header_texts):
        lowered = ' '.join((text or '').split()).lower()
        for label, field_name in HEADER_FIELDS:
            if label in lowered and field_name not in columns:
                columns[field_name] = index
                break

    if 'project_number' not in columns:
        return dict(DEFAULT_COLUMNS)
    return columns


def map_row(cells: list[str], columns: dict[str, int], link: Optional[str] = None) -> Optional[dict]:
    """One grid row as a dict of raw strings; None for rows without a project number."""
    def cell(name):
        index = columns.get(name)
        if index is None or index >= len(cells):
            return None
        return ' '.join(cells[index].split()) or None

    project_number = cell('project_number')
    if not project_number:
        return None

    row = {name: cell(name) for name in DEFAULT_COLUMNS}
    row['project_number'] = project_number
    row['link'] = link
    return row


def parse_grid(html: str) -> list[dict]:
    soup = BeautifulSoup(html, 'html.parser')
    table = soup.select_one('table')
    if not table:
        return []

    headers = [th.get_text(' ', strip=True) for th in table.select('thead th')]
    columns = map_headers(headers) if headers else dict(DEFAULT_COLUMNS)

    rows = []
    for tr in table.select('tbody tr'):
        cells = [td.get_text(' ', strip=True) for td in tr.find_all('td')]
        anchor = tr.find('a', href=True)
        row = map_row(cells, columns, anchor['href'] if anchor else None)
        if row:
            rows.append(row)
    return rows


class SpaFormStrategy(ExtractionStrategy):
    """Login, pick jurisdiction, search by created date, page through the grid."""

    async def extract(self, driver, start_date=None, end_date=None, limit=None) -> ExtractionResult:
        start_date = start_date or date.today()

        try:
            await self.login(driver)
            await self.select_jurisdiction(driver)
            await self.open_permit_search(driver)
            await self.apply_filters(driver, start_date, end_date)
            await self.run_search(driver)
            records = await self.collect_pages(driver, limit)
        except (ScraperError, PlaywrightTimeout) as e:
            self.log.error(f"{self.config.name} scrape aborted: {e}")
            await self.save_error_screenshot(driver)
            return ExtractionResult.failed(str(e))

        self.log.info(f"Extracted {len(records)} permits")
        return ExtractionResult(records=records)

    async def login(self, driver: PortalDriver):
        email = os.getenv('MGO_EMAIL')
        password = os.getenv('MGO_PASSWORD')
        if not email or not password:
            raise AuthenticationError("MGO_EMAIL and MGO_PASSWORD must be set")

        self.log.info("Logging in to MGO Connect")
        await driver.navigate(self.config.url)
        await driver.settle(3)

        email_input = await self._first_present(driver, EMAIL_INPUTS)
        password_input = await self._first_present(driver, PASSWORD_INPUTS)
        if not email_input or not password_input:
            raise AuthenticationError("Login form not found")

        await driver.fill(email_input, email)
        await driver.fill(password_input, password)
        if not await driver.click(LOGIN_BUTTONS):
            raise AuthenticationError("Login button not found")
        await driver.settle(5)

        if 'login' in driver.url.lower() and await self._first_present(driver, PASSWORD_INPUTS):
            raise AuthenticationError("Still on login page after submitting credentials")

    @staticmethod
    async def _first_present(driver: PortalDriver, candidates: list[str]) -> Optional[str]:
        for selector in candidates:
            if await driver.exists(selector):
                return selector
        return None

    async def select_jurisdiction(self, driver: PortalDriver):
        state_name = self.config.options.get('state_name', 'California')
        jurisdiction = self.config.options.get('jurisdiction', self.config.name)

        await driver.wait_for_selector(DROPDOWN, timeout=15000)
        await driver.click_locator(DROPDOWN, index=0)
        await driver.settle(1)
        await driver.click_locator(DROPDOWN_ITEM.format(state_name))

        await driver.wait_for_function(SECOND_DROPDOWN_ENABLED_JS, timeout=10000)
        await driver.click_locator(DROPDOWN, index=1)
        await driver.settle(1)
        await driver.type_text(jurisdiction[:4], delay=100)
        await driver.settle(1)

        item = DROPDOWN_ITEM.format(jurisdiction)
        if await driver.count(item) == 0:
            raise NavigationError(f"Jurisdiction {jurisdiction} not offered for {state_name}")
        await driver.click_locator(item)

        if not await driver.click(CONTINUE_BUTTON):
            raise NavigationError("Continue button not found after selecting jurisdiction")
        await driver.settle(3)
        self.log.info(f"Selected {jurisdiction}, {state_name}")

    async def open_permit_search(self, driver: PortalDriver):
        if not await driver.evaluate(OPEN_SEARCH_PERMITS_JS):
            raise NavigationError("'Search Permits' link not found")
        await driver.wait_for_selector(STATUS_MULTISELECT, timeout=20000)
        await driver.settle(1)

    async def apply_filters(self, driver: PortalDriver, start_date: date, end_date: Optional[date]):
        # All statuses
        await driver.click_locator(STATUS_MULTISELECT)
        await driver.settle(0.5)
        if not await driver.click(STATUS_SELECT_ALL):
            raise NavigationError("Status select-all checkbox not found")
        await driver.click('body')
        await driver.settle(0.5)

        if not await driver.exists(CREATED_AFTER_INPUT):
            raise NavigationError("'Created After' input not found")
        await driver.fill(CREATED_AFTER_INPUT, format_portal_date(start_date))
        await driver.settle(0.5)

        if end_date:
            if not await driver.exists(CREATED_BEFORE_INPUT):
                raise NavigationError("'Created Before' input not found")
            await driver.fill(CREATED_BEFORE_INPUT, format_portal_date(end_date))
            await driver.settle(0.5)

        await self.show_description_column(driver)

    async def show_description_column(self, driver: PortalDriver):
        """The description column is hidden by default; missing it only costs detail."""
        if not await driver.exists(COLUMN_MULTISELECT):
            self.log.warning("Column picker not found, description column stays hidden")
            return

        await driver.click_locator(COLUMN_MULTISELECT)
        await driver.settle(0.5)
        item = COLUMN_ITEM.format('Description')
        if await driver.count(item):
            await driver.click_locator(item)
        else:
            self.log.warning("Description column option not found")
        await driver.click('body')
        await driver.settle(0.5)

    async def run_search(self, driver: PortalDriver):
        if not await driver.click(SEARCH_BUTTON):
            raise NavigationError("Search button not found")

        for _ in range(10):
            await driver.settle(1)
            if await driver.count(GRID_ROWS):
                return
        self.log.warning("No result rows appeared after search")

    async def collect_pages(self, driver: PortalDriver, limit: Optional[int]) -> list[PermitRecord]:
        records = []
        seen = set()

        for page_num in range(1, MAX_PAGES + 1):
            html = await driver.evaluate(PAGE_HTML_JS)
            rows = parse_grid(html)
            self.log.info(f"Page {page_num}: {len(rows)} rows")

            for row in rows:
                if row['project_number'] in seen:
                    continue
                seen.add(row['project_number'])
                records.append(self.record_from_row(row))
                if limit_reached(records, limit):
                    return records

            if not rows or not await driver.evaluate(NEXT_PAGE_ENABLED_JS, NEXT_PAGE_BUTTON):
                break
            await driver.click(NEXT_PAGE_BUTTON)
            await driver.settle(2)

        return records

    def record_from_row(self, row: dict) -> PermitRecord:
        parsed = parse_address(row.get('address'), default_city=self.config.name, default_state=self.config.state)
        created = (row.get('created') or '').split()
        applied_string = created[0] if created else None
        name = row.get('project_name')
        work_type = row.get('work_type')

        return self.new_record(
            row['project_number'],
            title=name or work_type,
            description=row.get('description') or name or work_type,
            address=parsed.street or row.get('address'),
            zip_code=parsed.zip_code or None,
            permit_type=work_type or row.get('designation'),
            status=normalize_status(row.get('status'), Dialect.PLAIN).value,
            applied_date=parse_date(applied_string),
            applied_date_string=applied_string,
            source_url=row.get('link') or self.config.url,
        )
