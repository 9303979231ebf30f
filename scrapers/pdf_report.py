"""
Monthly PDF report strategy (Mountain View).

Mountain View publishes one "Building Permits Issued" PDF per month on a
static folder page. There is no table structure to rely on once the text is
extracted, so each permit number found in the text gets a window of
surrounding text and the sub-fields are regex-scanned out of that window.
Best effort by nature.
"""

import io
import re
from datetime import date
from typing import Iterable, Optional
from urllib.parse import urljoin

import httpx
import pdfplumber

from .address_normalizer import normalize_address
from .base import ExtractionStrategy
from .dates import parse_date
from .models import ExtractionResult, PermitRecord
from .status import Dialect, Status, normalize_status
from .utils import ContentNotFoundError, InvalidDocumentError, ScraperError, download_bytes, fetch_static_page

PDF_MAGIC = b'%PDF'

MONTH_NAMES = [
    'january', 'february', 'march', 'april', 'may', 'june',
    'july', 'august', 'september', 'october', 'november', 'december',
]
MONTH_ABBR = ['jan', 'feb', 'mar', 'apr', 'may', 'jun', 'jul', 'aug', 'sep', 'oct', 'nov', 'dec']

PERMIT_NUMBER_PATTERN = re.compile(r'\b(BLD-)?\d{4}-?\d{4,6}\b', re.I)
DATE_PATTERN = re.compile(r'\b\d{1,2}/\d{1,2}/\d{4}\b')
VALUATION_PATTERN = re.compile(r'(?:Valuation|Value|Job Value)[:\s]*\$?([\d,]+(?:\.\d{2})?)', re.I)
DOLLAR_PATTERN = re.compile(r'\$\s*([\d,]+(?:\.\d{2})?)')
CONTRACTOR_PATTERN = re.compile(r'Contractor[:\s]+([A-Za-z0-9&][^\n$]{2,80}?)(?:\s{2,}|\n|$)', re.I)
STATUS_PATTERN = re.compile(r'Status[:\s]+([A-Za-z][A-Za-z ]{2,30})', re.I)
ADDRESS_PATTERN = re.compile(
    r'\d+\s+[\w\s]+(?:Street|St|Avenue|Ave|Road|Rd|Drive|Dr|Lane|Ln|Boulevard|Blvd|Court|Ct|Way|Circle|Cir)\b',
    re.I,
)
TYPE_CODE_PATTERN = re.compile(r'\b([A-Z]{2})\b')

PERMIT_TYPE_KEYWORDS = [
    'Residential', 'Commercial', 'Electrical', 'Plumbing', 'Mechanical',
    'Building', 'Demolition', 'Addition', 'Remodel', 'Solar', 'Pool',
]

# Only codes seen in the reports so far
PERMIT_TYPE_CODES = {
    'RF': 'ROOFING',
}


def is_pdf_link(href: str) -> bool:
    if not href:
        return False
    return 'showpublisheddocument' in href.lower() or href.lower().endswith('.pdf')


def month_pattern(year: int, month: int) -> re.Pattern:
    """
    Matches link text naming (month, year).

    Accepts MM/YYYY, MM/YY, M/YYYY, M/YY, "September 2025", "Sep 2025", "Sep. 2025".
    """
    name = MONTH_NAMES[month - 1]
    abbr = MONTH_ABBR[month - 1]
    short_year = str(year)[-2:]
    numeric = rf'(?<!\d)0?{month}/(?:{year}|{short_year})(?!\d)'
    words = rf'\b(?:{name}|{abbr}\.?)\s+{year}\b'
    return re.compile(f'{numeric}|{words}', re.I)


def find_month_link(links: Iterable[tuple[str, str]], year: int, month: int) -> Optional[str]:
    """
    First PDF link whose text names the month.

    Args:
        links: (href, text) pairs in page order
    """
    pattern = month_pattern(year, month)
    for href, text in links:
        if not is_pdf_link(href):
            continue
        if pattern.search(' '.join((text or '').split())):
            return href
    return None


def check_pdf(content: bytes):
    if not content or content[:4] != PDF_MAGIC:
        raise InvalidDocumentError("Downloaded file is not a valid PDF")


def extract_pdf_text(content: bytes) -> str:
    check_pdf(content)
    with pdfplumber.open(io.BytesIO(content)) as pdf:
        return '\n'.join((page.extract_text() or '') for page in pdf.pages)


def _money(text: str) -> Optional[float]:
    try:
        return float(text.replace(',', ''))
    except ValueError:
        return None


def parse_valuation(context: str) -> Optional[float]:
    match = VALUATION_PATTERN.search(context)
    if match:
        value = _money(match.group(1))
        if value is not None:
            return value
    match = DOLLAR_PATTERN.search(context)
    return _money(match.group(1)) if match else None


def parse_permit_type(context: str) -> Optional[str]:
    lowered = context.lower()
    for keyword in PERMIT_TYPE_KEYWORDS:
        if keyword.lower() in lowered:
            return keyword
    for code in TYPE_CODE_PATTERN.findall(context):
        if code in PERMIT_TYPE_CODES:
            return PERMIT_TYPE_CODES[code]
    return None


def parse_report_text(text: str, context_before: int = 100, context_after: int = 200) -> list[dict]:
    """
    Permit entries found in report text, in order of first appearance.

    A permit number mentioned twice is reported once.
    """
    entries = []
    seen = set()

    for match in PERMIT_NUMBER_PATTERN.finditer(text):
        permit_number = re.sub(r'^BLD-', '', match.group(0), flags=re.I)
        if permit_number in seen:
            continue
        seen.add(permit_number)

        start = max(0, match.start() - context_before)
        end = min(len(text), match.start() + context_after)
        context = text[start:end]

        date_match = DATE_PATTERN.search(context)
        address_match = ADDRESS_PATTERN.search(context)
        contractor_match = CONTRACTOR_PATTERN.search(context)
        status_match = STATUS_PATTERN.search(context)

        entries.append({
            'permit_number': permit_number,
            'description': context[:200].strip(),
            'applied_date_string': date_match.group(0) if date_match else None,
            'value': parse_valuation(context),
            'contractor': contractor_match.group(1).strip() if contractor_match else None,
            'address': normalize_address(address_match.group(0)) if address_match else None,
            'permit_type': parse_permit_type(context),
            'status': status_match.group(1).strip() if status_match else None,
        })

    return entries


class PdfReportStrategy(ExtractionStrategy):
    """Find the month's PDF on the index page, download, regex-scan the text."""

    requires_browser = False

    async def extract(self, driver=None, start_date=None, end_date=None, limit=None) -> ExtractionResult:
        target = start_date or date.today()
        self.log.info(f"Looking for {target.month:02d}/{target.year} report")

        try:
            pdf_url = await self.find_report_url(target.year, target.month)
            content = await download_bytes(pdf_url)
            text = extract_pdf_text(content)
        except (ScraperError, httpx.HTTPError) as e:
            self.log.error(f"{self.config.name} scrape aborted: {e}")
            return ExtractionResult.failed(str(e))

        entries = parse_report_text(
            text,
            context_before=self.config.options.get('context_before', 100),
            context_after=self.config.options.get('context_after', 200),
        )
        records = [self.record_from_entry(entry, pdf_url) for entry in entries]
        if limit:
            records = records[:limit]

        self.log.info(f"Extracted {len(records)} permits from {pdf_url}")
        return ExtractionResult(records=records)

    async def find_report_url(self, year: int, month: int) -> str:
        soup = await fetch_static_page(self.config.url)
        anchors = soup.select('a.content_link') or soup.find_all('a')
        links = [(urljoin(self.config.url, a.get('href', '')), a.get_text(' ', strip=True)) for a in anchors]

        url = find_month_link(links, year, month)
        if not url:
            pdf_count = sum(1 for href, _ in links if is_pdf_link(href))
            raise ContentNotFoundError(f"No report for {month}/{year} among {pdf_count} PDF links")
        return url

    def record_from_entry(self, entry: dict, pdf_url: str) -> PermitRecord:
        raw_status = entry.get('status')
        status = normalize_status(raw_status, Dialect.PLAIN) if raw_status else Status.UNKNOWN
        return self.new_record(
            entry['permit_number'],
            description=entry['description'] or None,
            address=entry['address'],
            permit_type=entry['permit_type'],
            status=status.value,
            value=entry['value'],
            applied_date=parse_date(entry['applied_date_string']),
            applied_date_string=entry['applied_date_string'],
            source_url=pdf_url,
            licensed_professional_text=entry['contractor'],
        )
