"""
Geocode Resolver - Mapbox Places API with a persistent cache
jobmap/services/geocode.py

forward():      address -> coordinate, memoized in the geocode_cache table
reverse():      coordinate -> street-level address (city/region matches rejected)
forward_safe(): never raises; a bare string is read as "City, State"

Calls are blocking; the httpx client timeout bounds each request.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union
from urllib.parse import quote

import httpx

from jobmap.config import settings
from jobmap.models.geocode import GeoPoint, ResolvedAddress, StructuredAddress
from jobmap.models.result import ConfigurationError, FailureKind, Result
from jobmap.services.http_retry import retrying

logger = logging.getLogger(__name__)

# Higher is more precise; anything else (place, region, ...) scores 0
PLACE_TYPE_PRECISION = {"poi": 3, "address": 2, "street": 1}
PRECISE_PLACE_TYPES = {"poi", "address"}
CITY_LEVEL_PLACE_TYPES = {"place", "region"}


def normalize_address_key(address: StructuredAddress) -> str:
    """Lower-cased, trimmed, comma-joined address components."""
    parts = [
        address.street,
        address.city,
        address.state,
        address.postal_code,
        address.country or "US",
    ]
    cleaned = [p.strip().lower() for p in parts if p and p.strip()]
    return ", ".join(cleaned)


class GeocodeResolver:
    """Mapbox-backed forward/reverse geocoder."""

    def __init__(
        self,
        token: Optional[str] = None,
        cache=None,
        client: Optional[httpx.Client] = None,
        base_url: Optional[str] = None,
        max_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
    ):
        self.token = token or settings.secret("MAPBOX_TOKEN")
        if not self.token:
            raise ConfigurationError("MAPBOX_TOKEN must be set in environment")
        self.cache = cache
        self.client = client or httpx.Client(timeout=settings.GEOCODE_TIMEOUT_SECONDS)
        self.base_url = (base_url or settings.MAPBOX_BASE_URL).rstrip("/")
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay

    # -------------------------
    # Cache helpers (advisory)
    # -------------------------

    def _cache_get(self, key: str) -> Optional[GeoPoint]:
        if self.cache is None:
            return None
        try:
            return self.cache.get(key)
        except Exception as e:
            logger.warning(f"⚠️ Geocode cache lookup failed, geocoding instead: {e}")
            return None

    def _cache_put(self, key: str, point: GeoPoint) -> None:
        if self.cache is None:
            return
        try:
            self.cache.put(key, point)
        except Exception as e:
            logger.warning(f"⚠️ Failed to cache geocode result for '{key}': {e}")

    # -------------------------
    # HTTP
    # -------------------------

    def _get_json(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{path}.json"
        params = {"access_token": self.token, **params}
        for attempt in retrying(self.max_attempts, self.retry_base_delay):
            with attempt:
                response = self.client.get(url, params=params)
                response.raise_for_status()
                return response.json()
        raise RuntimeError("unreachable")

    @staticmethod
    def _failure_kind(exc: httpx.HTTPError) -> FailureKind:
        if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in (401, 403):
            return FailureKind.CONFIGURATION
        return FailureKind.TRANSIENT

    # -------------------------
    # Forward
    # -------------------------

    def _city_bias(self, address: StructuredAddress) -> Optional[GeoPoint]:
        """
        Approximate city point used as a proximity hint. A ZIP code already
        pins the region, so no lookup is made when one is present.
        Failure only drops the hint.
        """
        if not (address.street and address.city and address.state) or address.postal_code:
            return None

        city_address = StructuredAddress(
            city=address.city, state=address.state, country=address.country or "US"
        )
        key = normalize_address_key(city_address)
        cached = self._cache_get(key)
        if cached:
            return cached

        try:
            data = self._get_json(
                quote(f"{address.city}, {address.state}", safe=""),
                {"limit": 1, "types": "place"},
            )
            features = data.get("features") or []
            if not features or not features[0].get("center"):
                return None
            lon, lat = features[0]["center"][:2]
        except (httpx.HTTPError, ValueError, TypeError) as e:
            logger.debug(f"City bias lookup skipped for {key}: {e}")
            return None

        point = GeoPoint(lat=lat, lon=lon)
        self._cache_put(key, point)
        return point

    def forward(self, address: StructuredAddress) -> Result[GeoPoint]:
        """Resolve an address to a coordinate, using the persistent cache first."""
        query_parts = address.query_parts()
        if not query_parts:
            return Result.failure(FailureKind.INVALID, "Address must have at least one component")

        key = normalize_address_key(address)
        cached = self._cache_get(key)
        if cached:
            return Result.success(cached)

        params: Dict[str, Any] = {
            "limit": 1,
            # street-less input can only match a city, ZIP or locality
            "types": "address,poi" if address.street else "place,postcode,locality",
            "country": address.country or "US",
        }
        bias = self._city_bias(address)
        if bias:
            params["proximity"] = f"{bias.lon},{bias.lat}"

        query = ", ".join(query_parts)
        try:
            data = self._get_json(quote(query, safe=""), params)
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ Forward geocode failed for '{query}': {e}")
            return Result.failure(self._failure_kind(e), str(e))

        features = data.get("features") or []
        if not features:
            return Result.failure(FailureKind.NOT_FOUND, f"No results found for '{query}'")

        try:
            lon, lat = features[0]["center"][:2]
            point = GeoPoint(lat=lat, lon=lon)
        except (KeyError, ValueError, TypeError) as e:
            return Result.failure(FailureKind.INVALID, f"Malformed geocode response: {e}")

        if (features[0].get("properties") or {}).get("accuracy") == "low":
            logger.warning(f"⚠️ Low accuracy geocoding result for: {query}")

        self._cache_put(key, point)
        return Result.success(point)

    def forward_safe(self, address: Union[StructuredAddress, str]) -> Optional[GeoPoint]:
        """forward() that never raises and returns None on any failure."""
        try:
            if isinstance(address, str):
                address = StructuredAddress.from_city_state(address)
            result = self.forward(address)
        except Exception as e:
            logger.error(f"❌ Geocoding failed for address {address!r}: {e}")
            return None
        if not result.ok:
            logger.info(f"Geocoding gave no result for {address!r}: {result.kind.value} {result.error}")
            return None
        return result.value

    # -------------------------
    # Reverse
    # -------------------------

    def reverse(
        self, lat: float, lon: float, allow_imprecise: bool = False
    ) -> Result[ResolvedAddress]:
        """
        Reverse geocode to the most precise candidate near (lat, lon).

        Candidates are ranked poi > address > street > everything else. When the
        best candidate is only a city or region, NOT_FOUND is returned unless
        allow_imprecise is set.
        """
        try:
            data = self._get_json(f"{lon},{lat}", {"types": "poi,address", "limit": 5})
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ Reverse geocode failed for {lat},{lon}: {e}")
            return Result.failure(self._failure_kind(e), str(e))

        features = data.get("features") or []
        if not features:
            return Result.failure(FailureKind.NOT_FOUND, f"No features at {lat},{lon}")

        try:
            address = self._address_from_features(features, allow_imprecise)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            return Result.failure(FailureKind.INVALID, f"Malformed reverse geocode response: {e}")

        if address is None:
            return Result.failure(FailureKind.NOT_FOUND, f"No street-level match at {lat},{lon}")
        return Result.success(address)

    @staticmethod
    def _address_from_features(features: list, allow_imprecise: bool) -> Optional[ResolvedAddress]:
        best = features[0]
        best_precision = 0
        for feature in features:
            place_type = (feature.get("place_type") or [None])[0]
            precision = PLACE_TYPE_PRECISION.get(place_type, 0)
            if precision > best_precision:
                best_precision = precision
                best = feature

        place_type = (best.get("place_type") or [None])[0]
        if not allow_imprecise and place_type in CITY_LEVEL_PLACE_TYPES:
            return None

        properties = best.get("properties") or {}
        text = (best.get("text") or "").strip()
        street: Optional[str] = None
        if place_type == "poi":
            street = (properties.get("address") or "").strip() or text or None
        elif best.get("address"):
            street = f"{best['address']} {text}".strip()
        elif properties.get("address"):
            street = f"{properties['address']} {text}".strip()
        elif text and place_type not in CITY_LEVEL_PLACE_TYPES:
            street = text

        city = state = postal_code = None
        country = "US"
        for item in best.get("context") or []:
            kind = (item.get("id") or "").split(".")[0]
            if kind == "place" and not city:
                city = item.get("text")
            elif kind == "region":
                short_code = item.get("short_code") or ""
                state = short_code.replace("US-", "").upper() if short_code else item.get("text")
            elif kind == "postcode":
                postal_code = item.get("text")
            elif kind == "country":
                country = (item.get("short_code") or "US").upper()

        if not street and not allow_imprecise:
            return None

        return ResolvedAddress(
            street=street,
            city=city,
            state=state,
            postal_code=postal_code,
            country=country,
            place_type=place_type,
        )

    def close(self) -> None:
        self.client.close()


_resolver: Optional[GeocodeResolver] = None


def get_geocode_resolver() -> GeocodeResolver:
    """Process-wide resolver backed by the Snowflake geocode cache."""
    global _resolver
    if _resolver is None:
        from jobmap.repositories.geocode_cache_repository import GeocodeCacheRepository

        cache = None
        try:
            cache = GeocodeCacheRepository()
        except ConfigurationError:
            raise
        except Exception as e:
            logger.warning(f"⚠️ Geocode cache unavailable, resolving without it: {e}")
        _resolver = GeocodeResolver(cache=cache)
    return _resolver
