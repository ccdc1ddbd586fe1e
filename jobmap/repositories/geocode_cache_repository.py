from __future__ import annotations

import logging
from typing import Optional

from jobmap.models.geocode import GeoPoint
from jobmap.services.snowflake import get_snowflake_connection

logger = logging.getLogger(__name__)


class GeocodeCacheRepository:
    """Persistent normalized-address -> coordinate table in Snowflake"""

    def __init__(self, conn=None):
        self.conn = conn or get_snowflake_connection()

    def get(self, key: str) -> Optional[GeoPoint]:
        sql = "SELECT lat, lon FROM geocode_cache WHERE key = %s"
        cur = self.conn.cursor()
        try:
            cur.execute(sql, (key,))
            row = cur.fetchone()
            if not row:
                return None
            return GeoPoint(lat=float(row[0]), lon=float(row[1]))
        finally:
            cur.close()

    def put(self, key: str, point: GeoPoint) -> None:
        """Insert, or overwrite on drift."""
        sql = """
        MERGE INTO geocode_cache t
        USING (SELECT %s AS key, %s AS lat, %s AS lon) s
        ON t.key = s.key
        WHEN MATCHED THEN UPDATE SET
            lat = s.lat,
            lon = s.lon,
            updated_at = CURRENT_TIMESTAMP()
        WHEN NOT MATCHED THEN INSERT (key, lat, lon, created_at, updated_at)
        VALUES (s.key, s.lat, s.lon, CURRENT_TIMESTAMP(), CURRENT_TIMESTAMP())
        """
        cur = self.conn.cursor()
        try:
            cur.execute(sql, (key, point.lat, point.lon))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        finally:
            cur.close()

    def close(self) -> None:
        self.conn.close()
