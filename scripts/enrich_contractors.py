#!/usr/bin/env python3
"""
Link contractors to Accela permits by searching the portal per license.

Only cities flagged for enrichment (Cupertino, Palo Alto) are supported.

Usage:
    python3 scripts/enrich_contractors.py Cupertino
    python3 scripts/enrich_contractors.py "Palo Alto" --months 6 --limit 10
    python3 scripts/enrich_contractors.py Cupertino --start-date 2025-01-01 --end-date 2025-01-31
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import psycopg2

from scrapers.utils import ConfigurationError
from scripts.scrape import iso_date, positive_int
from services.permit_pipeline import PermitRepository, get_connection
from services.permit_pipeline.enrichment import ContractorEnricher

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description='Enrich permits with contractors via license search')
    parser.add_argument('city', help='Accela city to enrich (Cupertino, Palo Alto)')
    parser.add_argument('--months', type=positive_int, default=12,
                        help='Look back this many months for active contractors (default: 12)')
    parser.add_argument('--start-date', type=iso_date, help='Only permits applied on/after (YYYY-MM-DD)')
    parser.add_argument('--end-date', type=iso_date, help='Only permits applied on/before (YYYY-MM-DD)')
    parser.add_argument('--limit', type=positive_int, help='Max contractors to process')
    args = parser.parse_args()

    try:
        conn = get_connection()
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1

    repository = PermitRepository(conn)
    enricher = ContractorEnricher(repository)
    try:
        stats = asyncio.run(enricher.enrich_city(
            args.city,
            months=args.months,
            permit_start=args.start_date,
            permit_end=args.end_date,
            limit=args.limit,
        ))
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        return 1
    except psycopg2.Error as e:
        logger.error(f"Database error: {e}")
        return 1
    finally:
        repository.close()

    print(f"\n{'='*40}")
    print(f"Contractors processed: {stats.processed}")
    print(f"Permits found:         {stats.permits_found}")
    print(f"Permits matched:       {stats.permits_matched}")
    print(f"Contractors linked:    {stats.contractors_linked}")
    print(f"Errors:                {stats.errors}")
    return 0


if __name__ == '__main__':
    exit(main())
