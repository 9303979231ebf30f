#!/usr/bin/env python3
"""
Scrape permits for one city, or every enabled city, into PostgreSQL.

Usage:
    python3 scripts/scrape.py                                  # All enabled cities
    python3 scripts/scrape.py "Los Gatos" --start-date 2025-01-01 --end-date 2025-01-31
    python3 scripts/scrape.py Saratoga --limit 20
    python3 scripts/scrape.py "Mountain View" --start-date 2025-09-01   # September report

DAILY cities search the date range (default: last 30 days). MONTHLY cities
use the start date's month, ID-based cities the start date's year.
"""

import argparse
import asyncio
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

import psycopg2

from scrapers.utils import ConfigurationError
from services.permit_pipeline import (
    ContractorMatcher,
    Orchestrator,
    PermitClassifier,
    PermitRepository,
    get_connection,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)


def iso_date(value: str) -> date:
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}, expected YYYY-MM-DD")


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Scrape building permits into the database')
    parser.add_argument('city', nargs='?', help='City to scrape (default: all enabled cities)')
    parser.add_argument('--start-date', type=iso_date, help='Start date (YYYY-MM-DD)')
    parser.add_argument('--end-date', type=iso_date, help='End date (YYYY-MM-DD)')
    parser.add_argument('--limit', type=positive_int, help='Max permits per city')
    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.start_date and args.end_date and args.start_date > args.end_date:
        parser.error("--start-date must not be after --end-date")
    return args


def print_summary(summaries: list[dict]):
    print(f"\n{'='*60}")
    print(f"{'City':<20} {'Scraped':>8} {'Saved':>8} {'Skipped':>8}  Status")
    print(f"{'-'*60}")
    for summary in summaries:
        status = 'OK' if summary['success'] else f"FAILED: {summary.get('error') or 'No permits found'}"
        print(f"{summary['city']:<20} {summary['scraped']:>8} {summary['saved']:>8} {summary['skipped']:>8}  {status}")
    print(f"{'='*60}")


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    try:
        conn = get_connection()
    except (ValueError, psycopg2.Error) as e:
        print(f"ERROR: {e}")
        return 1

    repository = PermitRepository(conn)
    orchestrator = Orchestrator(
        repository,
        classifier=PermitClassifier(matcher=ContractorMatcher(repository)),
    )

    try:
        if args.city:
            summary = asyncio.run(orchestrator.scrape_city(args.city, args.start_date, args.end_date, args.limit))
            summaries = [summary] if summary else []
        else:
            summaries = asyncio.run(orchestrator.scrape_all_cities(args.start_date, args.end_date, args.limit))
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        return 1
    except psycopg2.Error as e:
        logger.error(f"Database error: {e}")
        return 1
    finally:
        repository.close()

    if summaries:
        print_summary(summaries)
    return 0


if __name__ == '__main__':
    exit(main())
