"""
Accela Citizen Access table/detail strategy.

Flow per city:
  1. Load CapHome search page (follow the Default.aspx welcome redirect)
  2. Fill start/end dates, click Search
  3. Either the portal jumped straight to one CapDetail page, or we got a
     paged results table
  4. Walk result pages (max 100), parse ACA_TabRow rows from page HTML
  5. Open each row's detail page in a side tab for job value and the
     licensed professional block

Covers: Los Gatos, Santa Clara, Cupertino, Palo Alto
"""

import re
from datetime import date, timedelta
from typing import Optional

from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .address_normalizer import parse_address
from .base import ExtractionStrategy, limit_reached
from .dates import format_portal_date, parse_date
from .driver import PortalDriver
from .models import ExtractionResult, PermitRecord
from .status import Dialect, normalize_status
from .utils import NavigationError, ScraperError

MAX_PAGES = 100
DEFAULT_RANGE_DAYS = 30

RESULT_ROW_SELECTOR = 'tr.ACA_TabRow_Odd, tr.ACA_TabRow_Even'
RESULT_TABLE_SELECTOR = 'table[id*="gdvPermitList"], table[id*="gdvAppList"], tr.ACA_TabRow_Odd'

SEARCH_BUTTON_SELECTORS = [
    '#ctl00_PlaceHolderMain_btnNewSearch',
    'a[id*="btnNewSearch"]',
    'a[title="Search"]',
    'input[type="submit"][value*="Search"]',
    'input[type="button"][value*="Search"]',
    'button[type="submit"]',
]

# Only present on CapDetail pages
DETAIL_LANDMARKS = ['#lnkMoreDetail', 'span[id*="permitDetail_label"]']

# Tried in order when the search lands on a single detail page
DETAIL_PERMIT_NUMBER_SELECTORS = [
    '#ctl00_PlaceHolderMain_lblPermitNumber',
    'span[id*="lblPermitNumber"]',
    'span[id*="lblAltId"]',
    'span[id*="permitDetail_label_permitnumber"]',
]
DETAIL_PERMIT_NUMBER_TEXT = re.compile(r'(?:Record|Permit)\s*(?:Number|#|No\.?)?\s*:?\s*([A-Z0-9]{2,}-[A-Z0-9-]+)', re.I)

LICENSE_SEARCH_INPUT = 'input[id*="txtGSLicenseNumber"]'

JOB_VALUE_PATTERNS = [
    re.compile(r'Job Value.*?\$\s*([\d,]+\.?\d*)', re.I | re.S),
    re.compile(r'Job Value\(?\$?\)?:?\s*\$?\s*([\d,]+\.?\d*)', re.I),
    re.compile(r'Estimated value of work.*?:\s*([\d,]+\.?\d*)', re.I | re.S),
    re.compile(r'Valuation.*?:\s*([\d,]+\.?\d*)', re.I | re.S),
]
LICENSED_PROFESSIONAL_LINE = re.compile(r'Licensed Professional:.*?\n([^\n]+)', re.I | re.S)

FOLLOW_SEARCH_LINK_JS = '''() => {
    for (const link of document.querySelectorAll('a')) {
        const href = (link.href || '').toLowerCase();
        if (href.includes('caphome') || href.includes('module=building')) {
            link.click();
            return true;
        }
    }
    return false;
}'''

# Accela labels its date inputs ("Start Date:", "End Date:"); ids differ per agency
FILL_DATES_JS = '''([startDate, endDate]) => {
    const setValue = (input, value) => {
        input.value = value;
        input.dispatchEvent(new Event('input', { bubbles: true }));
        input.dispatchEvent(new Event('change', { bubbles: true }));
    };
    let start = null;
    let end = null;
    for (const label of document.querySelectorAll('label')) {
        const text = (label.textContent || '').trim().toLowerCase();
        const input = label.htmlFor ? document.getElementById(label.htmlFor) : null;
        if (!input) continue;
        if (!start && text === 'start date:') start = input;
        if (!end && text.includes('end date')) end = input;
    }
    for (const input of document.querySelectorAll('input[type="text"]')) {
        const id = (input.id || '').toLowerCase();
        if (!start && (id.includes('startdate') || id.includes('fromdate'))) start = input;
        if (!end && (id.includes('enddate') || id.includes('todate'))) end = input;
    }
    if (start) setValue(start, startDate);
    if (end) setValue(end, endDate);
    return { start: !!start, end: !!end };
}'''

FIRST_PERMIT_ID_JS = '''() => {
    const row = document.querySelector('tr.ACA_TabRow_Odd, tr.ACA_TabRow_Even');
    if (!row) return null;
    const span = row.querySelector('span[id*="lblPermitNumber"], span[id*="lblAltId"]');
    return span ? span.innerText.trim() : null;
}'''

CLICK_NEXT_PAGE_JS = '''() => {
    const links = document.querySelectorAll(
        'a.aca_pagination_PrevNext, td.aca_pagination_PrevNext a, a[href*="Page$Next"]'
    );
    for (const link of links) {
        const text = (link.innerText || link.textContent || '');
        if (text.includes('Next') && !text.includes('Prev')) {
            link.click();
            return true;
        }
    }
    return false;
}'''

EXPAND_SECTIONS_JS = '''() => {
    const sections = [
        ['#lnkMoreDetail', '#TRMoreDetail'],
        ['#lnkAddtional', '#trADIList'],
        ['#lnkASI', '#trASIList'],
    ];
    let expanded = 0;
    for (const [linkSel, rowSel] of sections) {
        const link = document.querySelector(linkSel);
        const row = document.querySelector(rowSel);
        if (link && row && row.style.display === 'none') {
            link.click();
            expanded++;
        }
    }
    return expanded;
}'''

DETAIL_TEXT_JS = '''() => {
    const table = document.querySelector('#tbl_licensedps');
    return {
        body: document.body ? document.body.innerText : '',
        licensed: table ? table.innerText.replace(/\\s+/g, ' ').trim() : null,
    };
}'''

PAGE_HTML_JS = '() => document.documentElement.outerHTML'


def default_date_range(start_date: Optional[date], end_date: Optional[date]) -> tuple[date, date]:
    """
    Resolve the search window.

    No dates: last 30 days. Only one date: search that single day.
    """
    if start_date is None and end_date is None:
        end = date.today()
        return end - timedelta(days=DEFAULT_RANGE_DAYS), end
    if start_date is None:
        return end_date, end_date
    if end_date is None:
        return start_date, start_date
    return start_date, end_date


def _span_text(row, fragment: str) -> str:
    span = row.select_one(f'span[id*="{fragment}"]')
    return span.get_text(strip=True) if span else ''


def parse_result_rows(html: str) -> list[dict]:
    """
    Pull the basic permit fields out of an Accela results page.

    Rows without a permit number (headers, pager rows) are skipped.
    """
    soup = BeautifulSoup(html, 'html.parser')
    rows = []

    for row in soup.select(RESULT_ROW_SELECTOR):
        permit_number = _span_text(row, 'lblPermitNumber') or _span_text(row, 'lblAltId')
        if not permit_number:
            continue

        detail_url = None
        for link in row.find_all('a', href=True):
            if permit_number in link.get_text() or permit_number in link['href'] or 'CapDetail' in link['href']:
                detail_url = link['href']
                break

        rows.append({
            'permit_number': permit_number,
            'description': _span_text(row, 'lblDescription') or _span_text(row, 'lblShortNote'),
            'permit_type': _span_text(row, 'lblType'),
            'address': _span_text(row, 'lblAddress'),
            'status': _span_text(row, 'lblStatus'),
            'date': _span_text(row, 'lblUpdatedTime'),
            'detail_url': detail_url,
        })

    return rows


def parse_job_value(text: str) -> Optional[float]:
    """First job value/valuation amount on a detail page, or None."""
    if not text:
        return None
    for pattern in JOB_VALUE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        try:
            return float(match.group(1).replace(',', ''))
        except ValueError:
            continue
    return None


def parse_licensed_professional(body_text: str, table_text: Optional[str] = None) -> Optional[str]:
    """Prefer the #tbl_licensedps block; fall back to the line after the label."""
    if table_text:
        return table_text
    if not body_text:
        return None
    match = LICENSED_PROFESSIONAL_LINE.search(body_text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


class TableDetailStrategy(ExtractionStrategy):
    """Date-range search with results table and per-row detail pages."""

    detail_delay = 0.5

    async def extract(self, driver, start_date=None, end_date=None, limit=None) -> ExtractionResult:
        start, end = default_date_range(start_date, end_date)
        self.log.info(f"Searching {self.config.name} from {start} to {end}")

        try:
            await self.open_search_page(driver)
            await self.run_search(driver, start, end)

            if await self.is_single_detail(driver):
                self.log.info("Search landed on a single detail page")
                record = await self.extract_current_detail(driver)
                records = [record] if record else []
            else:
                records = await self.collect_pages(driver, limit)

        except (ScraperError, PlaywrightTimeout) as e:
            self.log.error(f"{self.config.name} scrape aborted: {e}")
            await self.save_error_screenshot(driver)
            return ExtractionResult.failed(str(e))

        if limit:
            records = records[:limit]
        self.log.info(f"Extracted {len(records)} permits from {self.config.name}")
        return ExtractionResult(records=records)

    async def open_search_page(self, driver: PortalDriver):
        try:
            await driver.navigate(self.config.url)
        except PlaywrightTimeout as e:
            raise NavigationError(f"Could not load {self.config.url}: {e}") from e
        await driver.settle(3)

        if '/Default.aspx' in driver.url:
            self.log.info("Redirected to welcome page, following link to search")
            if await driver.evaluate(FOLLOW_SEARCH_LINK_JS):
                await driver.settle(4)

    async def run_search(self, driver: PortalDriver, start: date, end: date):
        filled = await driver.evaluate(FILL_DATES_JS, [format_portal_date(start), format_portal_date(end)])
        if not filled or not filled.get('start'):
            raise NavigationError("Could not find start date field")
        if not filled.get('end'):
            self.log.warning("End date field not found, searching with start date only")

        await self.click_search(driver)

    async def click_search(self, driver: PortalDriver):
        clicked = await driver.click(SEARCH_BUTTON_SELECTORS)
        if not clicked:
            raise NavigationError("Search button not found")
        self.log.debug(f"Clicked search via {clicked}")

        await driver.settle(5)
        try:
            await driver.wait_for_selector(RESULT_TABLE_SELECTOR, timeout=30000, state='attached')
        except PlaywrightTimeout:
            # Zero results and single-detail redirects both land here
            self.log.warning("Results table not found after search")

    async def is_single_detail(self, driver: PortalDriver) -> bool:
        if 'CapDetail' not in driver.url:
            return False
        has_landmark = False
        for selector in DETAIL_LANDMARKS:
            if await driver.exists(selector):
                has_landmark = True
                break
        if not has_landmark:
            return False
        return await driver.count(RESULT_ROW_SELECTOR) == 0

    async def collect_pages(self, driver: PortalDriver, limit: Optional[int]) -> list[PermitRecord]:
        records = []
        seen = set()

        for page_num in range(1, MAX_PAGES + 1):
            html = await driver.evaluate(PAGE_HTML_JS)
            rows = [row for row in parse_result_rows(html) if row['permit_number'] not in seen]
            self.log.info(f"Page {page_num}: {len(rows)} rows")

            for row in rows:
                seen.add(row['permit_number'])
                record = await self.build_record(driver, row)
                if record:
                    records.append(record)
                if limit_reached(records, limit):
                    return records
                await driver.settle(self.detail_delay)

            if not rows or not await self.next_page(driver):
                break
        else:
            self.log.warning(f"Stopped at page cap ({MAX_PAGES})")

        return records

    async def next_page(self, driver: PortalDriver) -> bool:
        first_before = await driver.evaluate(FIRST_PERMIT_ID_JS)
        if not await driver.evaluate(CLICK_NEXT_PAGE_JS):
            self.log.info("No more pages")
            return False

        for _ in range(10):
            await driver.settle(1)
            if await driver.evaluate(FIRST_PERMIT_ID_JS) != first_before:
                return True

        self.log.warning("Page content did not change after clicking Next")
        return False

    def record_from_row(self, row: dict) -> PermitRecord:
        parsed = parse_address(row.get('address') or '', default_city=self.config.name, default_state=self.config.state)
        date_text = row.get('date') or None
        return self.new_record(
            row['permit_number'],
            title=row.get('permit_type') or None,
            description=row.get('description') or None,
            address=parsed.street or None,
            zip_code=parsed.zip_code or None,
            permit_type=row.get('permit_type') or None,
            status=normalize_status(row.get('status'), Dialect.ACCELA).value,
            applied_date=parse_date(date_text),
            applied_date_string=date_text,
        )

    async def build_record(self, driver: PortalDriver, row: dict) -> Optional[PermitRecord]:
        """Row fields plus detail-page enrichment; a failed detail page only costs the extras."""
        try:
            record = self.record_from_row(row)
        except Exception as e:
            self.log.warning(f"Skipping row {row.get('permit_number')}: {e}")
            return None

        if not row.get('detail_url'):
            self.log.debug(f"No detail link for {record.permit_number}")
            return record

        try:
            details = await self.fetch_details(driver, row['detail_url'])
        except (ScraperError, PlaywrightTimeout) as e:
            self.log.warning(f"Detail page failed for {record.permit_number}: {e}")
            return record

        if details.get('value') is not None:
            record.value = details['value']
        record.licensed_professional_text = details.get('licensed_professional')
        return record

    async def fetch_details(self, driver: PortalDriver, url: str) -> dict:
        tab = await driver.new_tab()
        try:
            await tab.navigate(url, timeout=30000)
            await tab.settle(2)
            return await self.read_detail_page(tab)
        finally:
            await tab.close_tab()

    async def read_detail_page(self, driver: PortalDriver) -> dict:
        if await driver.evaluate(EXPAND_SECTIONS_JS):
            await driver.settle(1)
        texts = await driver.evaluate(DETAIL_TEXT_JS) or {}
        body = texts.get('body') or ''
        return {
            'value': parse_job_value(body),
            'licensed_professional': parse_licensed_professional(body, texts.get('licensed')),
            'body': body,
        }

    async def read_detail_permit_number(self, driver: PortalDriver, body: str = '') -> Optional[str]:
        for selector in DETAIL_PERMIT_NUMBER_SELECTORS:
            text = await driver.read_text(selector)
            if text:
                return text
        match = DETAIL_PERMIT_NUMBER_TEXT.search(body or '')
        return match.group(1) if match else None

    async def extract_current_detail(self, driver: PortalDriver) -> Optional[PermitRecord]:
        details = await self.read_detail_page(driver)
        permit_number = await self.read_detail_permit_number(driver, details['body'])
        if not permit_number:
            self.log.warning("Detail page has no recognizable permit number")
            return None

        record = self.new_record(permit_number, source_url=driver.url)
        record.value = details['value']
        record.licensed_professional_text = details['licensed_professional']
        return record

    async def search_by_contractor_license(
        self,
        driver: PortalDriver,
        license_no: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[str]:
        """
        Permit numbers the portal lists for one contractor license.

        Accela only shows the contractor on permits when searching by license,
        so this is how Cupertino and Palo Alto permits get linked.

        Raises:
            NavigationError: search page or license field unavailable
        """
        await self.open_search_page(driver)

        if not await driver.exists(LICENSE_SEARCH_INPUT):
            raise NavigationError("License number field not found")
        await driver.fill(LICENSE_SEARCH_INPUT, license_no)

        if start_date or end_date:
            start, end = default_date_range(start_date, end_date)
            await driver.evaluate(FILL_DATES_JS, [format_portal_date(start), format_portal_date(end)])

        await self.click_search(driver)

        if await self.is_single_detail(driver):
            details = await self.read_detail_page(driver)
            permit_number = await self.read_detail_permit_number(driver, details['body'])
            return [permit_number] if permit_number else []

        permit_numbers = []
        for _ in range(MAX_PAGES):
            html = await driver.evaluate(PAGE_HTML_JS)
            new = [row['permit_number'] for row in parse_result_rows(html) if row['permit_number'] not in permit_numbers]
            permit_numbers.extend(new)
            if not new or not await self.next_page(driver):
                break

        self.log.info(f"License {license_no}: {len(permit_numbers)} permits")
        return permit_numbers
