"""
Job source adapters for the JobMap ingestion pipeline.
"""

from typing import Callable, Dict, List

from jobmap.pipelines.sources.adzuna import AdzunaSource
from jobmap.pipelines.sources.azjobconnection import ArizonaJobConnectionSource
from jobmap.pipelines.sources.base import JobSourceAdapter
from jobmap.pipelines.sources.google_jobs import GoogleJobsSource
from jobmap.pipelines.sources.indeed import IndeedBrowserSource, IndeedSource, indeed_source
from jobmap.pipelines.sources.linkedin import LinkedInSource
from jobmap.pipelines.sources.usajobs import USAJobsSource
from jobmap.pipelines.sources.ziprecruiter import ZipRecruiterSource

# name -> zero-argument factory (an adapter class or a function choosing one)
SOURCE_REGISTRY: Dict[str, Callable[[], JobSourceAdapter]] = {
    "adzuna": AdzunaSource,
    "usajobs": USAJobsSource,
    "linkedin": LinkedInSource,
    "indeed": indeed_source,
    "ziprecruiter": ZipRecruiterSource,
    "azjobconnection": ArizonaJobConnectionSource,
    "googlejobs": GoogleJobsSource,
}


def get_source(name: str) -> JobSourceAdapter:
    try:
        factory = SOURCE_REGISTRY[name.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown source '{name}'. Available: {', '.join(sorted(SOURCE_REGISTRY))}"
        ) from None
    return factory()


def parse_source_names(value: str) -> List[str]:
    """'adzuna, USAJOBS' -> ['adzuna', 'usajobs']; unknown names raise ValueError."""
    names = [n.strip().lower() for n in value.split(",") if n.strip()]
    unknown = [n for n in names if n not in SOURCE_REGISTRY]
    if unknown:
        raise ValueError(f"Unknown source(s): {', '.join(unknown)}")
    return names


__all__ = [
    "SOURCE_REGISTRY",
    "get_source",
    "parse_source_names",
    "JobSourceAdapter",
    "AdzunaSource",
    "USAJobsSource",
    "LinkedInSource",
    "IndeedSource",
    "IndeedBrowserSource",
    "indeed_source",
    "ZipRecruiterSource",
    "ArizonaJobConnectionSource",
    "GoogleJobsSource",
]
