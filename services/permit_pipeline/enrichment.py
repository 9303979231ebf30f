"""
Contractor enrichment for Accela cities.

Cupertino and Palo Alto never show the contractor on a permit's detail page;
the link only appears when searching the portal by contractor license. So for
every contractor active in the last N months, search the city's portal by
license and link each returned permit that we already have.
"""

from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from typing import Optional

import psycopg2
from playwright.async_api import TimeoutError as PlaywrightTimeout

from scrapers.accela import TableDetailStrategy
from scrapers.base import create_strategy
from scrapers.config import get_city_config
from scrapers.driver import BrowserSession
from scrapers.utils import ConfigurationError, ScraperError

from .utils import logger


@dataclass
class EnrichmentStats:
    processed: int = 0
    permits_found: int = 0
    permits_matched: int = 0
    contractors_linked: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class ContractorEnricher:
    def __init__(self, repository, headless: Optional[bool] = None):
        self.repository = repository
        self.headless = headless

    def _create_session(self) -> BrowserSession:
        """Factory method for creating the browser session (allows mocking in tests)."""
        return BrowserSession(headless=self.headless)

    def strategy_for(self, city: str) -> TableDetailStrategy:
        """
        Raises:
            ConfigurationError: unknown, disabled or unsupported city
        """
        config = get_city_config(city)
        if not config.enrich_contractors:
            raise ConfigurationError(f"{config.name} does not support contractor enrichment")
        if not config.enabled:
            raise ConfigurationError(f"{config.name} is disabled in configuration")

        strategy = create_strategy(config)
        if not isinstance(strategy, TableDetailStrategy):
            raise ConfigurationError(f"{config.name} is not an Accela portal")
        return strategy

    async def enrich_city(
        self,
        city: str,
        months: int = 12,
        permit_start: Optional[date] = None,
        permit_end: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> EnrichmentStats:
        strategy = self.strategy_for(city)
        city_name = strategy.config.name

        end = datetime.now()
        start = end - timedelta(days=30 * months)
        contractors = self.repository.find_active_contractors(start, end)
        if limit:
            contractors = contractors[:limit]
        logger.info(f"Enriching {city_name}: {len(contractors)} active contractors since {start.date()}")

        stats = EnrichmentStats()
        session = self._create_session()
        try:
            driver = await session.start()
            for contractor in contractors:
                stats.processed += 1
                await self.enrich_contractor(strategy, driver, contractor, city_name, stats, permit_start, permit_end)
        finally:
            await session.close()

        logger.info(
            f"{city_name} enrichment done: {stats.processed} contractors, {stats.permits_found} permits found, "
            f"{stats.permits_matched} matched, {stats.contractors_linked} linked, {stats.errors} errors"
        )
        return stats

    async def enrich_contractor(self, strategy, driver, contractor: dict, city_name: str,
                                stats: EnrichmentStats, permit_start=None, permit_end=None):
        license_no = contractor['license_no']
        logger.info(f"[{stats.processed}] {license_no} ({contractor.get('name') or 'Unknown'})")

        try:
            permit_numbers = await strategy.search_by_contractor_license(
                driver, license_no, permit_start, permit_end
            )
        except (ScraperError, PlaywrightTimeout) as e:
            logger.error(f"License search failed for {license_no}: {e}")
            stats.errors += 1
            return

        stats.permits_found += len(permit_numbers)
        record = self.repository.find_contractor_by_license(license_no)
        if not record:
            logger.warning(f"No contractor record for license {license_no}")
            return

        for permit_number in permit_numbers:
            try:
                permit_id = self.repository.find_permit_id(permit_number, city_name)
                if not permit_id:
                    logger.debug(f"Permit {permit_number} not in database, skipping")
                    continue
                stats.permits_matched += 1
                self.repository.link_contractor(permit_id, record['id'], 'CONTRACTOR')
                stats.contractors_linked += 1
            except psycopg2.Error as e:
                logger.error(f"Error linking {license_no} to {permit_number}: {e}")
                self.repository.rollback()
                stats.errors += 1
