"""
PostgreSQL permit repository.

Tables ("Permit", "Contractor", "PermitContractor") keep the quoted camelCase
column names of the web app's schema. Permits are unique on
("permitNumber", "city"); every write is an upsert on that key.
"""

import os
import re
import uuid
from datetime import datetime
from typing import Optional

import psycopg2

from scrapers.models import PermitRecord

from .models import ClassificationResult
from .utils import logger


def get_connection():
    """Get PostgreSQL connection from DATABASE_URL."""
    url = os.environ.get('DATABASE_URL')
    if not url:
        raise ValueError("DATABASE_URL environment variable not set")
    return psycopg2.connect(url)


def _new_id() -> str:
    return uuid.uuid4().hex


def suffix_of(permit_number: str, prefix: str) -> Optional[int]:
    """'25-0123', '25' -> 123. None when the number isn't prefix-dash-digits."""
    match = re.match(rf'^{re.escape(prefix)}-(\d+)$', (permit_number or '').strip(), re.I)
    return int(match.group(1)) if match else None


UPSERT_PERMIT_SQL = """
    INSERT INTO "Permit" (
        "id", "permitNumber", "title", "description", "address", "city", "state",
        "zipCode", "propertyType", "permitType", "status", "value", "appliedDate",
        "appliedDateString", "expirationDate", "sourceUrl", "scrapedAt", "createdAt", "updatedAt"
    ) VALUES (
        %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW()
    )
    ON CONFLICT ("permitNumber", "city") DO UPDATE SET
        "title" = COALESCE(EXCLUDED."title", "Permit"."title"),
        "description" = COALESCE(EXCLUDED."description", "Permit"."description"),
        "address" = COALESCE(EXCLUDED."address", "Permit"."address"),
        "state" = COALESCE(EXCLUDED."state", "Permit"."state"),
        "zipCode" = COALESCE(EXCLUDED."zipCode", "Permit"."zipCode"),
        "propertyType" = COALESCE(EXCLUDED."propertyType", "Permit"."propertyType"),
        "permitType" = COALESCE(EXCLUDED."permitType", "Permit"."permitType"),
        "status" = EXCLUDED."status",
        "value" = COALESCE(EXCLUDED."value", "Permit"."value"),
        "appliedDate" = COALESCE(EXCLUDED."appliedDate", "Permit"."appliedDate"),
        "appliedDateString" = COALESCE(EXCLUDED."appliedDateString", "Permit"."appliedDateString"),
        "expirationDate" = COALESCE(EXCLUDED."expirationDate", "Permit"."expirationDate"),
        "sourceUrl" = COALESCE(EXCLUDED."sourceUrl", "Permit"."sourceUrl"),
        "scrapedAt" = EXCLUDED."scrapedAt",
        "updatedAt" = NOW()
    RETURNING "id"
"""

LINK_CONTRACTOR_SQL = """
    INSERT INTO "PermitContractor" ("id", "permitId", "contractorId", "role")
    VALUES (%s, %s, %s, %s)
    ON CONFLICT ("permitId", "contractorId") DO UPDATE SET
        "role" = COALESCE(EXCLUDED."role", "PermitContractor"."role")
"""


class PermitRepository:
    """
    Explicitly constructed and passed to whoever needs it.

    Usage:
        repository = PermitRepository(get_connection())
        try:
            ...
        finally:
            repository.close()

    Driver errors (psycopg2.Error) propagate; callers decide whether a
    failure skips one permit or aborts the run.
    """

    def __init__(self, conn):
        self.conn = conn

    def close(self):
        self.conn.close()

    def rollback(self):
        self.conn.rollback()

    # ------------------------------------------------------------------
    # Permits
    # ------------------------------------------------------------------

    def upsert(
        self,
        record: PermitRecord,
        classification: ClassificationResult,
        status: str,
        applied_date: Optional[datetime] = None,
        expiration_date: Optional[datetime] = None,
    ) -> str:
        """Insert or update one permit by (permit number, city). Returns its id."""
        applied_string = str(record.applied_date_string).strip() if record.applied_date_string else None
        row = (
            _new_id(),
            record.permit_number,
            record.title,
            record.description,
            record.address,
            record.city,
            record.state,
            record.zip_code,
            classification.property_type.value if classification.property_type else None,
            classification.permit_type.value if classification.permit_type else None,
            status,
            record.value,
            applied_date,
            applied_string or None,
            expiration_date,
            record.source_url,
            datetime.now(),
        )
        try:
            with self.conn.cursor() as cur:
                cur.execute(UPSERT_PERMIT_SQL, row)
                permit_id = cur.fetchone()[0]
            self.conn.commit()
        except psycopg2.Error:
            self.conn.rollback()
            raise
        return permit_id

    def find_permit_id(self, permit_number: str, city: str) -> Optional[str]:
        with self.conn.cursor() as cur:
            cur.execute(
                'SELECT "id" FROM "Permit" WHERE "permitNumber" = %s AND "city" = %s',
                (permit_number, city),
            )
            row = cur.fetchone()
        return row[0] if row else None

    def find_largest_suffix(self, prefix: str, city: str) -> Optional[int]:
        """Largest numeric suffix stored under "{prefix}-", or None."""
        with self.conn.cursor() as cur:
            cur.execute(
                'SELECT "permitNumber" FROM "Permit" WHERE "city" = %s AND "permitNumber" ILIKE %s',
                (city, f"{prefix}-%"),
            )
            rows = cur.fetchall()

        suffixes = [s for s in (suffix_of(row[0], prefix) for row in rows) if s is not None]
        return max(suffixes) if suffixes else None

    def count_by_city(self) -> list[tuple[str, int]]:
        with self.conn.cursor() as cur:
            cur.execute('SELECT "city", COUNT(*) FROM "Permit" GROUP BY "city" ORDER BY "city"')
            return [(row[0], row[1]) for row in cur.fetchall()]

    def clear_permits(self, city: Optional[str] = None) -> int:
        """Delete permits (one city, or all) and their contractor links. Returns permits deleted."""
        with self.conn.cursor() as cur:
            if city:
                cur.execute(
                    'DELETE FROM "PermitContractor" WHERE "permitId" IN '
                    '(SELECT "id" FROM "Permit" WHERE "city" = %s)',
                    (city,),
                )
                cur.execute('DELETE FROM "Permit" WHERE "city" = %s', (city,))
            else:
                cur.execute('DELETE FROM "PermitContractor"')
                cur.execute('DELETE FROM "Permit"')
            deleted = cur.rowcount
        self.conn.commit()
        logger.info(f"Deleted {deleted} permits" + (f" for {city}" if city else ""))
        return deleted

    # ------------------------------------------------------------------
    # Contractors
    # ------------------------------------------------------------------

    def link_contractor(self, permit_id: str, contractor_id: str, role: Optional[str] = None) -> None:
        try:
            with self.conn.cursor() as cur:
                cur.execute(LINK_CONTRACTOR_SQL, (_new_id(), permit_id, contractor_id, role))
            self.conn.commit()
        except psycopg2.Error:
            self.conn.rollback()
            raise

    def find_contractor_by_license(self, license_no: str) -> Optional[dict]:
        license_no = (license_no or '').strip()
        if not license_no:
            return None
        with self.conn.cursor() as cur:
            cur.execute(
                'SELECT "id", "licenseNo", "name" FROM "Contractor" WHERE "licenseNo" = %s',
                (license_no,),
            )
            row = cur.fetchone()
        if not row:
            return None
        return {'id': row[0], 'license_no': row[1], 'name': row[2]}

    def _find_contractors(self, condition: str, params: list,
                          cities: Optional[list[str]] = None,
                          counties: Optional[list[str]] = None) -> list[dict]:
        sql = f'SELECT "id", "name", "phone" FROM "Contractor" WHERE {condition}'
        if cities:
            sql += ' AND UPPER("city") = ANY(%s)'
            params.append([c.upper() for c in cities])
        if counties:
            sql += ' AND "county" = ANY(%s)'
            params.append(list(counties))

        with self.conn.cursor() as cur:
            cur.execute(sql, params)
            return [{'id': row[0], 'name': row[1], 'phone': row[2]} for row in cur.fetchall()]

    def find_contractors_by_name_prefix(self, name_prefix: str,
                                        cities: Optional[list[str]] = None,
                                        counties: Optional[list[str]] = None) -> list[dict]:
        if not name_prefix:
            return []
        return self._find_contractors('UPPER("name") LIKE %s', [f"{name_prefix.upper()}%"], cities, counties)

    def find_contractors_by_phone(self, phone: str,
                                  cities: Optional[list[str]] = None,
                                  counties: Optional[list[str]] = None) -> list[dict]:
        if not phone:
            return []
        return self._find_contractors('"phone" = %s', [phone], cities, counties)

    def find_active_contractors(self, start: datetime, end: datetime,
                                city: Optional[str] = None) -> list[dict]:
        """
        Contractors linked to permits applied for in [start, end].

        Returns:
            [{'license_no', 'name', 'permit_count'}], busiest first
        """
        sql = """
            SELECT c."licenseNo", c."name", COUNT(pc."permitId")
            FROM "PermitContractor" pc
            JOIN "Contractor" c ON c."id" = pc."contractorId"
            JOIN "Permit" p ON p."id" = pc."permitId"
            WHERE p."appliedDate" BETWEEN %s AND %s
        """
        params = [start, end]
        if city:
            sql += ' AND p."city" = %s'
            params.append(city)
        sql += ' GROUP BY c."licenseNo", c."name" ORDER BY COUNT(pc."permitId") DESC'

        with self.conn.cursor() as cur:
            cur.execute(sql, params)
            return [
                {'license_no': row[0], 'name': row[1], 'permit_count': row[2]}
                for row in cur.fetchall()
            ]
