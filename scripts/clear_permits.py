#!/usr/bin/env python3
"""
Delete permits (and their contractor links) from the database.

Usage:
    python3 scripts/clear_permits.py --yes               # Everything
    python3 scripts/clear_permits.py "Los Gatos" --yes   # One city
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from scrapers.config import get_city_config
from scrapers.utils import ConfigurationError
from services.permit_pipeline import PermitRepository, get_connection

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)


def main() -> int:
    parser = argparse.ArgumentParser(description='Delete permits from the database')
    parser.add_argument('city', nargs='?', help='Only delete this city (default: all)')
    parser.add_argument('--yes', action='store_true', help='Required; confirms the delete')
    args = parser.parse_args()

    if not args.yes:
        parser.error("refusing to delete without --yes")

    city = None
    if args.city:
        try:
            city = get_city_config(args.city).name
        except ConfigurationError as e:
            print(f"ERROR: {e}")
            return 1

    try:
        conn = get_connection()
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1

    repository = PermitRepository(conn)
    try:
        deleted = repository.clear_permits(city)
    finally:
        repository.close()

    print(f"Deleted {deleted} permits" + (f" for {city}" if city else ""))
    return 0


if __name__ == '__main__':
    exit(main())
