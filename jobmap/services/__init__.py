"""
Services module for the JobMap API.
"""

from jobmap.services.cache import get_cache_service, CacheService
from jobmap.services.geocode import get_geocode_resolver, GeocodeResolver
from jobmap.services.rate_limiter import RateLimiter
from jobmap.services.search_service import get_search_service, SearchService
from jobmap.services.snowflake import get_snowflake_connection, check_snowflake

__all__ = [
    # Core services
    "get_cache_service",
    "get_geocode_resolver",
    "get_search_service",
    "get_snowflake_connection",
    "check_snowflake",

    # Classes
    "CacheService",
    "GeocodeResolver",
    "RateLimiter",
    "SearchService",
]
