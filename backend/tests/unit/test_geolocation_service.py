"""Unit tests for IP geolocation with key rotation and offline fallback."""

from datetime import date, datetime, timezone

import httpx
import pytest

from conftest import RecordingUpstream, json_response
from pangan_proxy.models import GeoFeature
from pangan_proxy.services.geolocation import GeolocationService, OfflineGeoLocator
from pangan_proxy.services.geolocation.offline import OfflineLocation, build_offline_feature
from pangan_proxy.services.quota import InMemoryUsageStore, KeyRotator

NOW = datetime(2026, 10, 18, 4, 0, tzinfo=timezone.utc)

IPGEO_RESPONSE = {
    "ip": "8.8.8.8",
    "location": {
        "continent_code": "NA",
        "continent_name": "North America",
        "country_code2": "US",
        "country_code3": "USA",
        "country_name": "United States",
        "country_name_official": "United States of America",
        "country_capital": "Washington, D.C.",
        "state_prov": "California",
        "state_code": "US-CA",
        "district": "Santa Clara",
        "city": "Mountain View",
        "zipcode": "94043-1351",
        "latitude": "37.42240",
        "longitude": "-122.08421",
        "is_eu": False,
        "country_flag": "https://ipgeolocation.io/static/flags/us_64.png",
        "geoname_id": "6301403",
        "country_emoji": "🇺🇸",
    },
    "country_metadata": {"calling_code": "+1", "tld": ".us", "languages": ["en-US"]},
    "currency": {"code": "USD", "name": "US Dollar", "symbol": "$"},
}

JAKARTA = OfflineLocation(
    country="ID",
    region="JK",
    city="Jakarta",
    latitude=-6.2114,
    longitude=106.8446,
    accuracy_radius_km=50,
    timezone="Asia/Jakarta",
)


class StubLocator(OfflineGeoLocator):
    def __init__(self, location: OfflineLocation | None = None) -> None:
        self.location = location
        self.lookups: list[str] = []
        self.closed = False

    def lookup(self, ip):
        self.lookups.append(ip)
        return self.location

    def close(self):
        self.closed = True


def make_service(handler, keys=("A", "B", "C"), daily_limit=10, location=JAKARTA):
    store = InMemoryUsageStore()
    upstream = RecordingUpstream(handler)
    service = GeolocationService(
        rotator=KeyRotator(store, now=lambda: NOW),
        offline=StubLocator(location),
        api_keys=list(keys),
        daily_limit=daily_limit,
        base_url="https://ipgeo.test/v2",
        transport=upstream.transport,
    )
    return service, store, upstream


async def fill(store, counts):
    for api_key, count in counts.items():
        for _ in range(count):
            await store.upsert_usage(api_key, NOW.date(), NOW)


class TestGeolocationService:
    """Tests for GeolocationService.locate."""

    @pytest.mark.asyncio
    async def test_live_lookup_uses_least_used_key(self) -> None:
        service, store, upstream = make_service(lambda request: json_response(IPGEO_RESPONSE))
        await fill(store, {"A": 5, "B": 2, "C": 8})

        result = await service.locate("8.8.8.8")

        assert result.status_code == 200
        assert upstream.requests[0].url.params["apiKey"] == "B"
        assert upstream.requests[0].url.params["ip"] == "8.8.8.8"
        assert upstream.requests[0].url.path == "/v2/ipgeo"

        feature = GeoFeature.model_validate(result.body)
        assert feature.geometry.coordinates == [-122.08421, 37.4224]
        assert feature.properties.provider == "ipgeolocation.io"
        assert feature.properties.meta.api_key_used == "B"
        assert feature.properties.meta.api_version == "v2"
        assert result.body["properties"]["region"]["city"] == "Mountain View"

        record = await store.get_record("B", date(2026, 10, 18))
        assert record.usage_count == 3

    @pytest.mark.asyncio
    async def test_exhausted_pool_returns_429_without_upstream_call(self) -> None:
        service, store, upstream = make_service(lambda request: json_response(IPGEO_RESPONSE))
        await fill(store, {"A": 10, "B": 10, "C": 10})

        result = await service.locate("8.8.8.8")

        assert result.status_code == 429
        assert result.body["error"] == "Daily quota exhausted for all API keys"
        fallback = GeoFeature.model_validate(result.body["fallback"])
        assert fallback.properties.provider == "geoip-lite"
        assert upstream.calls == 0

    @pytest.mark.asyncio
    async def test_empty_key_pool_is_exhausted(self) -> None:
        service, _, upstream = make_service(
            lambda request: json_response(IPGEO_RESPONSE), keys=()
        )
        result = await service.locate("8.8.8.8")
        assert result.status_code == 429
        assert upstream.calls == 0

    @pytest.mark.asyncio
    async def test_upstream_failure_falls_back_offline(self) -> None:
        service, store, _ = make_service(
            lambda request: json_response({"message": "invalid key"}, status_code=401)
        )

        result = await service.locate("36.68.1.1")

        assert result.status_code == 200
        feature = GeoFeature.model_validate(result.body)
        assert feature.properties.provider == "geoip-lite"
        assert feature.properties.meta.api_key_used == "A"
        assert feature.properties.meta.confidence == 0.7
        assert feature.geometry.coordinates == [106.8446, -6.2114]
        assert await store.get_record("A", NOW.date()) is None

    @pytest.mark.asyncio
    async def test_timeout_falls_back_offline(self) -> None:
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        service, store, _ = make_service(handler)
        result = await service.locate("36.68.1.1")

        assert result.status_code == 200
        assert result.body["properties"]["provider"] == "geoip-lite"
        assert await store.read_usage(["A", "B", "C"], NOW.date()) == {}

    @pytest.mark.asyncio
    async def test_malformed_live_payload_falls_back_offline(self) -> None:
        service, store, _ = make_service(lambda request: json_response({"ip": "8.8.8.8"}))
        result = await service.locate("8.8.8.8")
        assert result.body["properties"]["provider"] == "geoip-lite"
        assert await store.get_record("A", NOW.date()) is None

    @pytest.mark.asyncio
    async def test_non_object_metadata_blocks_are_treated_as_empty(self) -> None:
        payload = {**IPGEO_RESPONSE, "country_metadata": "n/a", "currency": ["USD"]}
        service, store, _ = make_service(lambda request: json_response(payload))

        result = await service.locate("8.8.8.8")

        assert result.status_code == 200
        feature = GeoFeature.model_validate(result.body)
        assert feature.properties.provider == "ipgeolocation.io"
        assert feature.properties.metadata == {
            "calling_code": None,
            "tld": None,
            "languages": None,
        }
        assert feature.properties.currency["code"] is None
        assert (await store.get_record("A", NOW.date())).usage_count == 1

    @pytest.mark.asyncio
    async def test_live_answer_off_schema_falls_back_offline(self) -> None:
        payload = {**IPGEO_RESPONSE, "ip": {"v4": "8.8.8.8"}}
        service, store, _ = make_service(lambda request: json_response(payload))

        result = await service.locate("8.8.8.8")

        assert result.status_code == 200
        feature = GeoFeature.model_validate(result.body)
        assert feature.properties.provider == "geoip-lite"
        assert feature.properties.meta.api_key_used == "A"
        assert await store.get_record("A", NOW.date()) is None

    @pytest.mark.asyncio
    async def test_missing_ip_in_live_answer_uses_queried_ip(self) -> None:
        payload = {k: v for k, v in IPGEO_RESPONSE.items() if k != "ip"}
        service, _, _ = make_service(lambda request: json_response(payload))

        result = await service.locate("8.8.4.4")

        assert result.body["properties"]["provider"] == "ipgeolocation.io"
        assert result.body["properties"]["ip"] == "8.8.4.4"

    @pytest.mark.asyncio
    async def test_loopback_is_mapped_to_public_ip(self) -> None:
        service, _, upstream = make_service(lambda request: json_response(IPGEO_RESPONSE))

        await service.locate("::1")
        await service.locate("127.0.0.1")

        assert [r.url.params["ip"] for r in upstream.requests] == [
            "160.22.134.39",
            "160.22.134.39",
        ]

    @pytest.mark.asyncio
    async def test_close_releases_offline_database(self) -> None:
        service, _, _ = make_service(lambda request: json_response(IPGEO_RESPONSE))
        await service.close()
        assert service._offline.closed is True


class TestBuildOfflineFeature:
    """Tests for the offline GeoJSON shape."""

    def test_miss_is_null_island(self) -> None:
        body = build_offline_feature("10.0.0.1", None, queried_at=NOW)
        feature = GeoFeature.model_validate(body)
        assert feature.geometry.coordinates == [0, 0]
        assert feature.properties.country is None
        assert feature.properties.meta.queried_at == NOW

    def test_hit_has_confidence_and_default_timezone(self) -> None:
        location = OfflineLocation(
            country="ID", region=None, city=None, latitude=-2.5, longitude=118.0
        )
        body = build_offline_feature("36.68.1.1", location, queried_at=NOW)
        props = body["properties"]
        assert props["country"] == {"code": "ID", "name": "Indonesia"}
        assert props["timezone"] == "Asia/Jakarta"
        assert props["meta"]["confidence"] == 0.7
        GeoFeature.model_validate(body)
