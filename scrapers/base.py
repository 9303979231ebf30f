"""
Extraction strategy interface.

One strategy per portal family, parameterized by the city's CityConfig:

    TableDetailStrategy   Accela search -> results table -> detail pages
    BatchPrefixStrategy   eTRAKiT "begins with" permit-number batches
    PdfReportStrategy     monthly PDF report on a static index page
    SpaFormStrategy       MGO Connect (login, dropdowns, paged grid)
"""

import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from .config import CityConfig, StrategyKind
from .driver import PortalDriver
from .models import ExtractionResult, PermitRecord
from .utils import SCREENSHOT_DIR, ConfigurationError

logger = logging.getLogger(__name__)


class ExtractionStrategy(ABC):
    # PDF reports are plain HTTP; everything else drives a browser
    requires_browser = True

    def __init__(self, config: CityConfig):
        self.config = config
        self.log = logging.getLogger(f"{__name__}.{config.slug}")

    @abstractmethod
    async def extract(
        self,
        driver: Optional[PortalDriver],
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> ExtractionResult:
        """
        Scrape one city.

        Never raises for portal failures: an unrecoverable error comes back as
        ExtractionResult(success=False, error=...) with no records.
        """

    def new_record(self, permit_number: str, **fields) -> PermitRecord:
        fields.setdefault('source_url', self.config.url)
        return PermitRecord(
            permit_number=permit_number,
            city=self.config.name,
            state=self.config.state,
            **fields,
        )

    async def save_error_screenshot(self, driver: Optional[PortalDriver]):
        """Best effort; a failing screenshot must not hide the real error."""
        if driver is None:
            return
        path = SCREENSHOT_DIR / f"{self.config.slug}_error.png"
        try:
            await driver.screenshot(path)
            self.log.info(f"Saved error screenshot to {path}")
        except Exception as e:
            self.log.warning(f"Could not save error screenshot: {e}")


def limit_reached(records: list, limit: Optional[int]) -> bool:
    return bool(limit) and len(records) >= limit


def create_strategy(config: CityConfig) -> ExtractionStrategy:
    """
    Build the strategy for a city.

    Raises:
        ConfigurationError: unknown strategy kind
    """
    # Imported here so each strategy module can import this one
    from .accela import TableDetailStrategy
    from .etrakit import BatchPrefixStrategy
    from .mgo_connect import SpaFormStrategy
    from .pdf_report import PdfReportStrategy

    strategies = {
        StrategyKind.TABLE_DETAIL: TableDetailStrategy,
        StrategyKind.BATCH_PREFIX: BatchPrefixStrategy,
        StrategyKind.PDF_REPORT: PdfReportStrategy,
        StrategyKind.SPA_FORM: SpaFormStrategy,
    }
    strategy_cls = strategies.get(config.strategy)
    if strategy_cls is None:
        raise ConfigurationError(f"No extraction strategy for {config.name}: {config.strategy}")
    return strategy_cls(config)
