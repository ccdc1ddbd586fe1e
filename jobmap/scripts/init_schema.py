#!/usr/bin/env python
"""
Create the JobMap tables in Snowflake.

Usage:
    python -m jobmap.scripts.init_schema
    python -m jobmap.scripts.init_schema --file sql/schema.sql
"""

import argparse
import sys
from pathlib import Path
from typing import List

import structlog

from jobmap.config import settings
from jobmap.logging_setup import configure_logging
from jobmap.models.result import ConfigurationError
from jobmap.services.snowflake import get_snowflake_connection

logger = structlog.get_logger()

SCHEMA_FILE = Path(__file__).resolve().parents[2] / "sql" / "schema.sql"


def split_statements(sql: str) -> List[str]:
    """Split a DDL script on ';', dropping '--' comment lines."""
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    return [s.strip() for s in "\n".join(lines).split(";") if s.strip()]


def apply_schema(path: Path = SCHEMA_FILE) -> int:
    statements = split_statements(path.read_text(encoding="utf-8"))
    conn = get_snowflake_connection()
    cur = conn.cursor()
    applied = 0
    try:
        for statement in statements:
            try:
                cur.execute(statement)
                applied += 1
            except Exception as e:
                # Search optimization / clustering need an edition that supports them
                if statement.upper().startswith("ALTER TABLE"):
                    logger.warning("Optional statement skipped", statement=statement[:80], error=str(e))
                    continue
                raise
        conn.commit()
    finally:
        cur.close()
        conn.close()
    logger.info("Schema applied", statements=applied, file=str(path))
    return applied


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Apply the JobMap DDL")
    parser.add_argument("--file", type=Path, default=SCHEMA_FILE, help="DDL script to apply")
    args = parser.parse_args()

    configure_logging(settings.LOG_LEVEL)
    try:
        apply_schema(args.file)
    except ConfigurationError as e:
        logger.error("Missing configuration", error=str(e))
        sys.exit(1)
