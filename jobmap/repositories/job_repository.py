from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from jobmap.models.job import (
    JobPostingInput,
    JobStatus,
    SearchFilters,
    SuggestionType,
    default_status,
)
from jobmap.repositories.predicates import LIKE_ESCAPE, PredicateBuilder, like_pattern
from jobmap.services.snowflake import get_snowflake_connection

logger = logging.getLogger(__name__)

POINT_SQL = "ST_SETSRID(ST_MAKEGEOMPOINT(%s, %s), 4326)"

PIN_COLUMNS = """
    id, title, company, url, latitude, longitude,
    pay_min, pay_max, posted_at, street, city, state,
    employment_type, source
"""

DETAIL_COLUMNS = """
    id, source, source_id, title, company, description, url,
    street, city, state, postal_code, country,
    latitude, longitude,
    employment_type, pay_min, pay_max, pay_currency,
    posted_at, status, created_at, updated_at
"""

UPSERT_SQL = f"""
MERGE INTO jobs t
USING (SELECT %s AS source, %s AS source_id) s
ON t.source = s.source AND t.source_id = s.source_id
WHEN MATCHED THEN UPDATE SET
    title = %s,
    company = %s,
    description = %s,
    url = %s,
    street = %s,
    city = %s,
    state = %s,
    postal_code = %s,
    country = %s,
    location = IFF(t.latitude = %s AND t.longitude = %s, t.location, {POINT_SQL}),
    latitude = %s,
    longitude = %s,
    employment_type = %s,
    pay_min = %s,
    pay_max = %s,
    pay_currency = %s,
    posted_at = %s,
    status = COALESCE(%s, t.status),
    updated_at = CURRENT_TIMESTAMP()
WHEN NOT MATCHED THEN INSERT (
    id, source, source_id, title, company, description, url,
    street, city, state, postal_code, country,
    latitude, longitude, location,
    employment_type, pay_min, pay_max, pay_currency, posted_at,
    status, created_at, updated_at
) VALUES (
    %s, s.source, s.source_id, %s, %s, %s, %s,
    %s, %s, %s, %s, %s,
    %s, %s, {POINT_SQL},
    %s, %s, %s, %s, %s,
    %s, CURRENT_TIMESTAMP(), CURRENT_TIMESTAMP()
)
"""

# Fixed visibility predicates: approved and navigable to a street
VISIBLE_CONDITIONS = ("status = 'APPROVED'", "street IS NOT NULL AND street <> ''")


def _enum_value(value):
    return value.value if value is not None and hasattr(value, "value") else value


def upsert_params(posting: JobPostingInput, new_id: str) -> Tuple[Any, ...]:
    employment_type = _enum_value(posting.employment_type)
    explicit_status = _enum_value(posting.status)
    insert_status = explicit_status or default_status(posting.source).value
    lat, lon = posting.latitude, posting.longitude
    return (
        posting.source.value, posting.source_id,
        # matched
        posting.title, posting.company, posting.description, posting.url,
        posting.street, posting.city, posting.state, posting.postal_code, posting.country,
        lat, lon, lon, lat,
        lat, lon,
        employment_type, posting.pay_min, posting.pay_max, posting.pay_currency,
        posting.posted_at,
        explicit_status,
        # not matched
        new_id, posting.title, posting.company, posting.description, posting.url,
        posting.street, posting.city, posting.state, posting.postal_code, posting.country,
        lat, lon, lon, lat,
        employment_type, posting.pay_min, posting.pay_max, posting.pay_currency,
        posting.posted_at,
        insert_status,
    )


def build_search_query(
    filters: SearchFilters, now: Optional[datetime] = None
) -> Tuple[str, List[Any]]:
    """Conjunction of the bbox, optional filters and visibility predicates."""
    now = now or datetime.now(timezone.utc)
    builder = PredicateBuilder()
    builder.add("ST_INTERSECTS(location, TO_GEOMETRY(%s, 4326))", filters.bbox.to_wkt())

    if filters.q:
        pattern = like_pattern(filters.q)
        builder.add(
            f"(LOWER(title) LIKE %s ESCAPE '{LIKE_ESCAPE}' "
            f"OR LOWER(description) LIKE %s ESCAPE '{LIKE_ESCAPE}')",
            pattern,
            pattern,
        )
    if filters.company:
        builder.add(f"LOWER(company) LIKE %s ESCAPE '{LIKE_ESCAPE}'", like_pattern(filters.company))
    if filters.min_pay:
        builder.add("(pay_max >= %s OR pay_min >= %s)", filters.min_pay, filters.min_pay)
    if filters.max_age_days:
        builder.add("posted_at >= %s", now - timedelta(days=filters.max_age_days))
    builder.add_any("employment_type", [t.value for t in filters.types])
    for condition in VISIBLE_CONDITIONS:
        builder.add(condition)

    sql = f"""
    SELECT {PIN_COLUMNS}
    FROM jobs
    {builder.where_clause()}
    ORDER BY posted_at DESC NULLS LAST, id
    LIMIT %s
    """
    return sql, builder.params() + [filters.limit]


class JobRepository:
    """Repository for canonical job postings in Snowflake"""

    def __init__(self, conn=None):
        self.conn = conn or get_snowflake_connection()

    @staticmethod
    def _rows(cur) -> List[Dict]:
        columns = [col[0].lower() for col in cur.description]
        return [dict(zip(columns, row)) for row in cur.fetchall()]

    def _fetch_all(self, sql: str, params=None) -> List[Dict]:
        cur = self.conn.cursor()
        try:
            cur.execute(sql, params)
            return self._rows(cur)
        finally:
            cur.close()

    def _fetch_one(self, sql: str, params=None) -> Optional[Dict]:
        rows = self._fetch_all(sql, params)
        return rows[0] if rows else None

    def _execute(self, sql: str, params=None) -> int:
        cur = self.conn.cursor()
        try:
            cur.execute(sql, params)
            self.conn.commit()
            return cur.rowcount or 0
        except Exception:
            self.conn.rollback()
            raise
        finally:
            cur.close()

    # -------------------------
    # Upsert engine
    # -------------------------

    def upsert(self, posting: JobPostingInput) -> Tuple[Dict, bool]:
        """
        Insert or update by (source, source_id) in a single MERGE.

        Returns (stored_row, created). On update, status is only changed when
        the posting carries one explicitly, so moderation decisions survive
        re-ingestion.
        """
        if not posting.source_id or not posting.source_id.strip():
            raise ValueError("source_id is required")

        cur = self.conn.cursor()
        try:
            cur.execute(UPSERT_SQL, upsert_params(posting, str(uuid4())))
            counts = cur.fetchone()
            self.conn.commit()
        except Exception as e:
            logger.error(f"  ❌ Upsert failed for {posting.source.value}/{posting.source_id}: {e}")
            self.conn.rollback()
            raise
        finally:
            cur.close()

        created = bool(counts and counts[0])
        stored = self.get_by_identity(posting.source.value, posting.source_id)
        return stored, created

    def get_by_identity(self, source: str, source_id: str) -> Optional[Dict]:
        sql = f"SELECT {DETAIL_COLUMNS} FROM jobs WHERE source = %s AND source_id = %s"
        return self._fetch_one(sql, (source, source_id))

    def get_by_id(self, job_id: str, approved_only: bool = True) -> Optional[Dict]:
        sql = f"SELECT {DETAIL_COLUMNS} FROM jobs WHERE id = %s"
        if approved_only:
            sql += " AND status = 'APPROVED'"
        return self._fetch_one(sql, (job_id,))

    def set_status(self, job_id: str, status: JobStatus) -> Optional[Dict]:
        updated = self._execute(
            "UPDATE jobs SET status = %s, updated_at = CURRENT_TIMESTAMP() WHERE id = %s",
            (status.value, job_id),
        )
        if not updated:
            return None
        return self.get_by_id(job_id, approved_only=False)

    def list_jobs(
        self, status: Optional[JobStatus] = None, limit: int = 100, offset: int = 0
    ) -> Tuple[List[Dict], int]:
        builder = PredicateBuilder()
        if status:
            builder.add("status = %s", status.value)
        where = builder.where_clause()

        rows = self._fetch_all(
            f"SELECT {DETAIL_COLUMNS} FROM jobs {where} ORDER BY created_at DESC, id LIMIT %s OFFSET %s",
            builder.params() + [limit, offset],
        )
        total_row = self._fetch_one(
            f"SELECT COUNT(*) AS total FROM jobs {where}", builder.params() or None
        )
        return rows, int(total_row["total"]) if total_row else 0

    # -------------------------
    # Search engine
    # -------------------------

    def search(self, filters: SearchFilters) -> List[Dict]:
        sql, params = build_search_query(filters)
        return self._fetch_all(sql, params)

    def suggestions(self, q: str, kind: SuggestionType, limit: int = 10) -> List[str]:
        column = "company" if kind == SuggestionType.company else "title"
        visible = " AND ".join(VISIBLE_CONDITIONS)
        sql = f"""
        SELECT DISTINCT {column} AS value
        FROM jobs
        WHERE LOWER({column}) LIKE %s ESCAPE '{LIKE_ESCAPE}'
          AND {visible}
        ORDER BY value
        LIMIT %s
        """
        return [row["value"] for row in self._fetch_all(sql, (like_pattern(q), limit))]

    # -------------------------
    # Maintenance
    # -------------------------

    def find_coordinate_clusters(self, precision: int = 5, min_size: int = 2) -> List[Dict]:
        """Approved postings grouped by rounded coordinate, largest first."""
        sql = """
        SELECT ROUND(latitude, %s) AS lat,
               ROUND(longitude, %s) AS lon,
               COUNT(*) AS job_count,
               LISTAGG(id, ',') WITHIN GROUP (ORDER BY id) AS ids
        FROM jobs
        WHERE status = 'APPROVED'
        GROUP BY 1, 2
        HAVING COUNT(*) >= %s
        ORDER BY job_count DESC
        """
        clusters = []
        for row in self._fetch_all(sql, (precision, precision, min_size)):
            clusters.append({
                "lat": float(row["lat"]),
                "lon": float(row["lon"]),
                "count": int(row["job_count"]),
                "ids": [i for i in (row["ids"] or "").split(",") if i],
            })
        return clusters

    def update_location(
        self,
        job_id: str,
        lat: float,
        lon: float,
        street: Optional[str],
        city: Optional[str] = None,
        state: Optional[str] = None,
        postal_code: Optional[str] = None,
    ) -> int:
        sql = f"""
        UPDATE jobs SET
            latitude = %s,
            longitude = %s,
            location = {POINT_SQL},
            street = %s,
            city = COALESCE(%s, city),
            state = COALESCE(%s, state),
            postal_code = COALESCE(%s, postal_code),
            updated_at = CURRENT_TIMESTAMP()
        WHERE id = %s
        """
        return self._execute(sql, (lat, lon, lon, lat, street, city, state, postal_code, job_id))

    def set_status_many(self, job_ids: List[str], status: JobStatus) -> int:
        if not job_ids:
            return 0
        placeholders = ", ".join(["%s"] * len(job_ids))
        sql = f"UPDATE jobs SET status = %s, updated_at = CURRENT_TIMESTAMP() WHERE id IN ({placeholders})"
        return self._execute(sql, [status.value, *job_ids])

    def list_without_street(self, limit: int = 100) -> List[Dict]:
        sql = f"""
        SELECT {DETAIL_COLUMNS} FROM jobs
        WHERE status = 'APPROVED' AND (street IS NULL OR street = '')
        ORDER BY created_at, id
        LIMIT %s
        """
        return self._fetch_all(sql, (limit,))

    def delete_posted_before(self, cutoff: datetime) -> int:
        return self._execute("DELETE FROM jobs WHERE posted_at < %s", (cutoff,))

    def delete_duplicate_identities(self) -> int:
        """Keep only the most recently updated row per (source, source_id)."""
        sql = """
        DELETE FROM jobs WHERE id IN (
            SELECT id FROM jobs
            QUALIFY ROW_NUMBER() OVER (
                PARTITION BY source, source_id
                ORDER BY updated_at DESC, created_at DESC, id
            ) > 1
        )
        """
        return self._execute(sql)

    def close(self) -> None:
        self.conn.close()


_repo: Optional[JobRepository] = None


def get_job_repository() -> JobRepository:
    global _repo
    if _repo is None:
        _repo = JobRepository()
    return _repo
