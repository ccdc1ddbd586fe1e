"""
Snowflake Connection
jobmap/services/snowflake.py

Connection factory shared by the repositories.
"""

from __future__ import annotations

import logging

import snowflake.connector

from jobmap.config import settings

logger = logging.getLogger(__name__)

REQUIRED_SETTINGS = (
    "SNOWFLAKE_ACCOUNT",
    "SNOWFLAKE_USER",
    "SNOWFLAKE_PASSWORD",
    "SNOWFLAKE_WAREHOUSE",
    "SNOWFLAKE_DATABASE",
    "SNOWFLAKE_SCHEMA",
)


def get_snowflake_connection():
    """
    Returns a new Snowflake connection built from settings.
    Raises ConfigurationError when credentials are missing.
    """
    settings.require(*REQUIRED_SETTINGS)
    return snowflake.connector.connect(
        account=settings.SNOWFLAKE_ACCOUNT,
        user=settings.SNOWFLAKE_USER,
        password=settings.secret("SNOWFLAKE_PASSWORD"),
        warehouse=settings.SNOWFLAKE_WAREHOUSE,
        database=settings.SNOWFLAKE_DATABASE,
        schema=settings.SNOWFLAKE_SCHEMA,
        role=settings.SNOWFLAKE_ROLE,
    )


def check_snowflake() -> bool:
    """Round-trip a trivial query; used by the health endpoint."""
    try:
        conn = get_snowflake_connection()
    except Exception as e:
        logger.error(f"❌ Snowflake connection failed: {e}")
        return False
    try:
        cur = conn.cursor()
        try:
            cur.execute("SELECT CURRENT_VERSION()")
            return cur.fetchone() is not None
        finally:
            cur.close()
    except Exception as e:
        logger.error(f"❌ Snowflake query failed: {e}")
        return False
    finally:
        conn.close()
