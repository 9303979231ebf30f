"""
Orchestrator: one city at a time, extract -> classify -> persist.

Cities are never scraped concurrently. Each city gets its own browser
session (when its strategy needs one), closed in a finally block whatever
happens during extraction.
"""

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional, Union

import psycopg2

from scrapers.base import create_strategy
from scrapers.config import CityConfig, ScraperType, get_city_config, get_enabled_cities
from scrapers.dates import in_persistable_range
from scrapers.driver import BrowserSession
from scrapers.models import ExtractionResult, PermitRecord
from scrapers.status import normalize_status

from .classification import PermitClassifier
from .models import ClassificationResult, FailedRun
from .planner import BatchPlanner
from .review_queue import ReviewQueue
from .utils import logger


class Orchestrator:
    def __init__(
        self,
        repository,
        classifier: Optional[PermitClassifier] = None,
        review_queue: Optional[ReviewQueue] = None,
        raw_dir: Union[Path, str] = "data/raw",
        headless: Optional[bool] = None,
    ):
        self.repository = repository
        self.classifier = classifier or PermitClassifier()
        self.review_queue = review_queue or ReviewQueue()
        self.planner = BatchPlanner(repository)
        self.raw_dir = Path(raw_dir)
        self.headless = headless

    def _create_session(self) -> BrowserSession:
        """Factory method for creating the browser session (allows mocking in tests)."""
        return BrowserSession(headless=self.headless)

    def _create_strategy(self, config: CityConfig):
        """Factory method for creating the strategy (allows mocking in tests)."""
        return create_strategy(config)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_permits(self, records: list[PermitRecord]) -> tuple[int, int]:
        """
        Classify and upsert records one by one.

        A permit that fails to save is logged and counted as skipped; the rest
        of the batch carries on. Returns (saved, skipped).
        """
        saved = 0
        skipped = 0
        linked = 0

        for record in records:
            try:
                classification = self.classifier.classify(record)
                logger.debug(
                    f"Classified {record.permit_number}: {classification.property_type}/"
                    f"{classification.permit_type} ({classification.confidence:.2f}) "
                    f"{', '.join(classification.reasoning)}"
                )

                permit_id = self.repository.upsert(
                    record,
                    classification,
                    status=normalize_status(record.status).value,
                    applied_date=in_persistable_range(record.applied_date),
                    expiration_date=in_persistable_range(record.expiration_date),
                )
                saved += 1
            except Exception as e:
                logger.error(f"Error saving permit {record.permit_number}: {e}")
                skipped += 1
                continue

            try:
                if self.link_contractors(permit_id, record, classification):
                    linked += 1
            except psycopg2.Error as e:
                logger.warning(f"Could not link contractor(s) for {record.permit_number}: {e}")

        logger.info(f"Saved {saved} permits, skipped {skipped}")
        if saved:
            logger.info(f"Contractor match rate: {linked / saved * 100:.1f}%")
        return saved, skipped

    def link_contractors(self, permit_id: str, record: PermitRecord,
                         classification: ClassificationResult) -> bool:
        """
        Link scraped contractors by license; fall back to the classifier's match.

        Returns True when at least one link was written.
        """
        linked = False
        for contractor in record.contractors:
            found = self.repository.find_contractor_by_license(contractor.get('license_no'))
            if found:
                self.repository.link_contractor(permit_id, found['id'], contractor.get('role'))
                linked = True

        if not linked and classification.contractor_id:
            self.repository.link_contractor(permit_id, classification.contractor_id)
            logger.debug(f"Linked {record.permit_number} to contractor {classification.contractor_id} (classifier)")
            linked = True

        return linked

    # ------------------------------------------------------------------
    # Scraping
    # ------------------------------------------------------------------

    def plan_batches(self, strategy, config: CityConfig, start_date: Optional[date] = None):
        """Resume each ID prefix where the stored permits leave off."""
        for prefix in strategy.prefixes_for(start_date):
            strategy.starting_batches[prefix] = self.planner.starting_batch(
                prefix,
                config.name,
                strategy.suffix_digits,
                strategy.sequence_digits,
            )

    async def scrape_city(
        self,
        city: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> Optional[dict[str, Any]]:
        """
        Scrape and persist one city.

        Raises:
            ConfigurationError: unknown city

        Returns:
            Run summary dict, or None when the city is disabled
        """
        config = get_city_config(city)
        if not config.enabled:
            logger.info(f"Skipping {config.name} - disabled in config")
            return None

        logger.info(f"Starting scrape for {config.name}{self._describe_dates(config, start_date, end_date)}")
        started_at = datetime.now()
        strategy = self._create_strategy(config)

        session = None
        try:
            driver = None
            if strategy.requires_browser:
                session = self._create_session()
                driver = await session.start()

            if config.scraper_type == ScraperType.ID_BASED:
                self.plan_batches(strategy, config, start_date)

            result = await strategy.extract(driver, start_date, end_date, limit)
        finally:
            if session:
                await session.close()

        self._save_raw_json(config, result)

        saved, skipped = 0, 0
        if result.success and result.records:
            saved, skipped = self.save_permits(result.records)
            logger.info(f"{config.name} scrape complete: {len(result.records)} permits")
        else:
            error = result.error or "No permits found"
            logger.warning(f"{config.name} scrape failed: {error}")
            self.review_queue.add(FailedRun(
                city=config.name,
                error=error,
                started_at=started_at.isoformat(),
                finished_at=datetime.now().isoformat(),
            ))

        return {
            "city": config.name,
            "success": result.success and bool(result.records),
            "scraped": len(result.records),
            "saved": saved,
            "skipped": skipped,
            "error": result.error,
        }

    async def scrape_all_cities(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Every enabled city, sequentially. One city's failure never stops the next."""
        cities = get_enabled_cities()
        if not cities:
            logger.warning("No enabled cities configured")
            return []

        logger.info(f"Starting permit scraping for {len(cities)} cities")
        summaries = []
        for config in cities:
            try:
                summary = await self.scrape_city(config.name, start_date, end_date, limit)
            except Exception as e:
                logger.error(f"Failed to scrape {config.name}: {e}")
                summary = {"city": config.name, "success": False, "scraped": 0,
                           "saved": 0, "skipped": 0, "error": str(e)}
            if summary:
                summaries.append(summary)

        logger.info("Scraping complete")
        return summaries

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _describe_dates(config: CityConfig, start_date: Optional[date], end_date: Optional[date]) -> str:
        if not start_date:
            return ""
        if config.scraper_type == ScraperType.MONTHLY:
            return f" for {start_date.strftime('%B %Y')}"
        if end_date and end_date != start_date:
            return f" from {start_date.isoformat()} to {end_date.isoformat()}"
        return f" on {start_date.isoformat()}"

    def _save_raw_json(self, config: CityConfig, result: ExtractionResult) -> Path:
        """Write {slug}_raw.json in the shared scraper output format."""
        self.raw_dir.mkdir(parents=True, exist_ok=True)
        output_file = self.raw_dir / f"{config.slug}_raw.json"

        permits = [record.to_dict() for record in result.records] if result.success else []
        output = {
            "source": config.slug,
            "portal_type": config.strategy.value,
            "scraped_at": datetime.now().isoformat(),
            "target_count": len(result.records),
            "actual_count": len(permits),
            "errors": [result.error] if result.error else [],
            "permits": permits,
        }

        with open(output_file, 'w') as f:
            json.dump(output, f, indent=2)

        logger.info(f"Saved {len(permits)} permits to {output_file}")
        return output_file
