from __future__ import annotations

import httpx
import pytest

from conftest import (
    CENTRAL_AVE,
    PHOENIX,
    FakeGeocodeCache,
    address_feature,
    place_feature,
    poi_feature,
)
from jobmap.config import settings
from jobmap.models.geocode import StructuredAddress
from jobmap.models.result import ConfigurationError, FailureKind
from jobmap.services.geocode import GeocodeResolver, normalize_address_key

CENTRAL_AVE_ADDRESS = StructuredAddress(
    street="123 N Central Ave", city="Phoenix", state="AZ", postal_code="85004", country="US"
)


def test_normalize_address_key_lowercases_and_skips_blanks():
    address = StructuredAddress(street=" 123 N Central Ave ", city="Phoenix", state="AZ", postal_code="")
    assert normalize_address_key(address) == "123 n central ave, phoenix, az, us"


def test_forward_same_address_twice_makes_one_network_call(resolver, mapbox):
    mapbox.on_forward("central ave", [address_feature(CENTRAL_AVE[1], CENTRAL_AVE[0])])

    first = resolver.forward(CENTRAL_AVE_ADDRESS)
    second = resolver.forward(CENTRAL_AVE_ADDRESS)

    assert first.ok and second.ok
    assert first.value == second.value
    assert (first.value.lat, first.value.lon) == CENTRAL_AVE
    assert mapbox.calls == 1


def test_forward_requests_precise_types_and_country(resolver, mapbox):
    mapbox.on_forward("central ave", [address_feature(CENTRAL_AVE[1], CENTRAL_AVE[0])])

    resolver.forward(CENTRAL_AVE_ADDRESS)

    params = mapbox.requests[0].url.params
    assert params["types"] == "address,poi"
    assert params["country"] == "US"
    assert params["access_token"] == "test-token"


def test_forward_without_zip_biases_toward_city(resolver, mapbox):
    mapbox.on_forward("washington", [address_feature(-112.0777, 33.4485, "400", "W Washington St")])
    mapbox.on_forward("phoenix", [place_feature(PHOENIX[1], PHOENIX[0])])

    result = resolver.forward(StructuredAddress(street="400 W Washington St", city="Phoenix", state="AZ"))

    assert result.ok
    assert mapbox.calls == 2
    bias_request, full_request = mapbox.requests
    assert bias_request.url.params["types"] == "place"
    assert full_request.url.params["proximity"] == f"{PHOENIX[1]},{PHOENIX[0]}"


def test_city_bias_failure_only_drops_the_hint(resolver, mapbox):
    mapbox.on_forward("washington", [address_feature(-112.0777, 33.4485, "400", "W Washington St")])
    mapbox.fail_next(400)

    result = resolver.forward(StructuredAddress(street="400 W Washington St", city="Phoenix", state="AZ"))

    assert result.ok
    assert "proximity" not in mapbox.requests[-1].url.params


def test_city_only_address_queries_place_types(resolver, mapbox):
    mapbox.on_forward("phoenix", [place_feature(PHOENIX[1], PHOENIX[0])])

    point = resolver.forward_safe("Phoenix, AZ")

    assert (point.lat, point.lon) == PHOENIX
    assert mapbox.calls == 1
    assert mapbox.requests[0].url.params["types"] == "place,postcode,locality"


def test_forward_no_features_is_not_found(resolver):
    result = resolver.forward(CENTRAL_AVE_ADDRESS)

    assert not result.ok
    assert result.kind == FailureKind.NOT_FOUND


def test_forward_empty_address_is_invalid(resolver, mapbox):
    result = resolver.forward(StructuredAddress(country=""))

    assert result.kind == FailureKind.INVALID
    assert mapbox.calls == 0


def test_forward_retries_transient_errors(resolver, mapbox):
    mapbox.on_forward("central ave", [address_feature(CENTRAL_AVE[1], CENTRAL_AVE[0])])
    mapbox.fail_next(503)

    result = resolver.forward(CENTRAL_AVE_ADDRESS)

    assert result.ok
    assert mapbox.calls == 2


def test_forward_unauthorized_is_configuration_failure(resolver, mapbox):
    mapbox.fail_next(401)

    result = resolver.forward(CENTRAL_AVE_ADDRESS)

    assert result.kind == FailureKind.CONFIGURATION
    assert mapbox.calls == 1


def test_forward_safe_returns_none_when_retries_exhaust(resolver, mapbox):
    mapbox.fail_next(500, 500, 500)

    assert resolver.forward_safe(CENTRAL_AVE_ADDRESS) is None
    assert mapbox.calls == 3


def test_cache_failure_never_fails_resolution(mapbox):
    mapbox.on_forward("central ave", [address_feature(CENTRAL_AVE[1], CENTRAL_AVE[0])])
    resolver = GeocodeResolver(
        token="test-token",
        cache=FakeGeocodeCache(fail=True),
        client=httpx.Client(transport=httpx.MockTransport(mapbox)),
        base_url="https://mapbox.test/geocoding/v5/mapbox.places",
        retry_base_delay=0,
    )

    result = resolver.forward(CENTRAL_AVE_ADDRESS)

    assert result.ok
    assert (result.value.lat, result.value.lon) == CENTRAL_AVE


def test_successful_forward_is_written_to_cache(resolver, mapbox, geocode_cache):
    mapbox.on_forward("central ave", [address_feature(CENTRAL_AVE[1], CENTRAL_AVE[0])])

    resolver.forward(CENTRAL_AVE_ADDRESS)

    assert geocode_cache.entries["123 n central ave, phoenix, az, 85004, us"].lat == CENTRAL_AVE[0]


def test_missing_token_is_configuration_error(monkeypatch):
    monkeypatch.setattr(settings, "MAPBOX_TOKEN", None)

    with pytest.raises(ConfigurationError, match="MAPBOX_TOKEN"):
        GeocodeResolver(client=httpx.Client())


def test_reverse_rejects_city_level_match(resolver, mapbox):
    mapbox.on_reverse(lambda lat, lon: [place_feature(lon, lat)])

    result = resolver.reverse(*PHOENIX)

    assert not result.ok
    assert result.kind == FailureKind.NOT_FOUND


def test_reverse_allow_imprecise_returns_city_level_match(resolver, mapbox):
    mapbox.on_reverse(lambda lat, lon: [place_feature(lon, lat)])

    result = resolver.reverse(*PHOENIX, allow_imprecise=True)

    assert result.ok
    assert result.value.place_type == "place"
    assert result.value.street is None
    assert result.value.state == "AZ"


def test_reverse_returns_street_for_address_match(resolver, mapbox):
    mapbox.on_reverse(lambda lat, lon: [place_feature(lon, lat), address_feature(lon, lat)])

    result = resolver.reverse(*CENTRAL_AVE)

    assert result.ok
    assert result.value.street == "123 N Central Ave"
    assert result.value.city == "Phoenix"
    assert result.value.state == "AZ"
    assert result.value.postal_code == "85004"
    assert result.value.country == "US"


def test_reverse_prefers_poi_over_address(resolver, mapbox):
    mapbox.on_reverse(lambda lat, lon: [
        address_feature(lon, lat),
        poi_feature(lon, lat, "Chase Field", address="401 E Jefferson St"),
    ])

    result = resolver.reverse(*CENTRAL_AVE)

    assert result.value.place_type == "poi"
    assert result.value.street == "401 E Jefferson St"


def test_reverse_requests_multiple_candidates(resolver, mapbox):
    mapbox.on_reverse(lambda lat, lon: [address_feature(lon, lat)])

    resolver.reverse(*CENTRAL_AVE)

    request = mapbox.requests[0]
    assert request.url.path.endswith(f"/{CENTRAL_AVE[1]},{CENTRAL_AVE[0]}.json")
    assert request.url.params["limit"] == "5"
