#!/usr/bin/env python
"""
Run one ingestion pass over the selected job sources.

Usage:
    python -m jobmap.scripts.run_ingestion
    python -m jobmap.scripts.run_ingestion --sources adzuna,usajobs --location "Phoenix, AZ"
    python -m jobmap.scripts.run_ingestion --sources linkedin --keyword nurse
"""

import argparse
import asyncio
import sys

import structlog

from jobmap.config import settings
from jobmap.logging_setup import configure_logging
from jobmap.models.result import ConfigurationError
from jobmap.pipelines.ingest_runner import run_ingestion
from jobmap.pipelines.ingest_state import IngestState
from jobmap.pipelines.sources import parse_source_names

logger = structlog.get_logger()


def print_summary(state: IngestState) -> None:
    for source, counts in state.per_source.items():
        logger.info("Source complete", source=source, **counts)
    logger.info("Ingestion complete", location=state.location, keyword=state.keyword, **state.totals)
    for err in state.summary["errors"][:10]:
        logger.warning("Ingestion error", step=err["step"], source=err["source"], error=err["error"][:200])


async def main(sources: list[str], location: str, keyword: str = None) -> IngestState:
    """Main ingestion routine."""
    state = await run_ingestion(sources, location, keyword)
    print_summary(state)
    return state


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Fetch, normalize and store job postings"
    )
    parser.add_argument(
        "--sources",
        default=",".join(settings.INGEST_SOURCES),
        help="Comma-separated sources: adzuna, usajobs, linkedin, indeed, ziprecruiter, azjobconnection, googlejobs"
    )
    parser.add_argument("--location", default=settings.INGEST_LOCATION, help="Search location")
    parser.add_argument("--keyword", default=None, help="Optional search keyword")
    args = parser.parse_args()

    configure_logging(settings.LOG_LEVEL)
    try:
        names = parse_source_names(args.sources)
        asyncio.run(main(names, args.location, args.keyword))
    except (ValueError, ConfigurationError) as e:
        logger.error("Cannot start ingestion", error=str(e))
        sys.exit(1)
