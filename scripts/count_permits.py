#!/usr/bin/env python3
"""
Print permit totals per city.

Usage:
    python3 scripts/count_permits.py
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from services.permit_pipeline import PermitRepository, get_connection


def main() -> int:
    try:
        conn = get_connection()
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1

    repository = PermitRepository(conn)
    try:
        counts = repository.count_by_city()
    finally:
        repository.close()

    total = sum(count for _, count in counts)
    print(f"\nTotal permits in database: {total}\n")
    print("Permits by city:")
    for city, count in counts:
        print(f"  {city or 'null'}: {count}")
    return 0


if __name__ == '__main__':
    exit(main())
