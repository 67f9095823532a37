"""Unit tests for the food-price panel service."""

import pytest

from conftest import RecordingUpstream, json_response
from pangan_proxy.models import MissingParameter, UpstreamError
from pangan_proxy.services.cache import InMemoryCacheStore
from pangan_proxy.services.pangan import PanganPriceService

PROVINCES = {"data": [{"id": 11, "nama": "Aceh"}, {"id": 31, "nama": "DKI Jakarta"}]}
CITIES = {"data": {"data": [{"id": 1101, "nama": "Kab. Simeulue"}]}}
PRICES = {"data": [{"komoditas": "Beras Premium", "harga": 15500}]}


def route(request):
    path = request.url.path
    if path.endswith("/provinces"):
        return json_response(PROVINCES)
    if path.endswith("/cities"):
        return json_response(CITIES)
    if path.endswith("/front/harga-pangan-informasi"):
        return json_response(PRICES)
    return json_response({"message": "not found"}, status_code=404)


def make_service(clock, handler=route) -> tuple[PanganPriceService, RecordingUpstream]:
    upstream = RecordingUpstream(handler)
    service = PanganPriceService(
        provinces_cache=InMemoryCacheStore("pangan_provinces", clock=clock),
        cities_cache=InMemoryCacheStore("pangan_cities", clock=clock),
        prices_cache=InMemoryCacheStore("pangan_prices", clock=clock),
        base_url="https://pangan.test/api",
        transport=upstream.transport,
    )
    return service, upstream


class TestPanganPriceService:
    """Tests for provinces, cities and price tables."""

    @pytest.mark.asyncio
    async def test_provinces_are_normalized(self, clock) -> None:
        service, upstream = make_service(clock)

        provinces = await service.get_provinces()

        assert provinces == [{"id": 11, "name": "Aceh"}, {"id": 31, "name": "DKI Jakarta"}]
        assert upstream.requests[0].url.params["search"] == ""

    @pytest.mark.asyncio
    async def test_provinces_cached_per_search(self, clock) -> None:
        service, upstream = make_service(clock)

        await service.get_provinces("jawa")
        await service.get_provinces("jawa")
        await service.get_provinces("aceh")

        assert upstream.calls == 2

    @pytest.mark.asyncio
    async def test_cities_unwraps_nested_data(self, clock) -> None:
        service, upstream = make_service(clock)

        first = await service.get_cities("11")
        second = await service.get_cities("11")

        assert first == second == [{"id": 1101, "nama": "Kab. Simeulue"}]
        assert upstream.calls == 1

    @pytest.mark.asyncio
    async def test_cities_requires_province(self, clock) -> None:
        service, upstream = make_service(clock)
        with pytest.raises(MissingParameter) as exc_info:
            await service.get_cities("")
        assert exc_info.value.message == "province_id is required"
        assert upstream.calls == 0

    @pytest.mark.asyncio
    async def test_prices_cache_for_one_minute(self, clock) -> None:
        service, upstream = make_service(clock)
        params = {"level_harga_id": "3", "province_id": "31", "city_id": None}

        await service.get_prices(params)
        clock.advance(59)
        await service.get_prices({"province_id": "31", "level_harga_id": "3"})
        assert upstream.calls == 1

        clock.advance(1)
        prices = await service.get_prices(params)
        assert prices == PRICES["data"]
        assert upstream.calls == 2
        assert "city_id" not in upstream.requests[-1].url.params

    @pytest.mark.asyncio
    async def test_prices_require_level(self, clock) -> None:
        service, _ = make_service(clock)
        with pytest.raises(MissingParameter):
            await service.get_prices({"province_id": "31"})

    @pytest.mark.asyncio
    async def test_sends_panel_origin_headers(self, clock) -> None:
        service, upstream = make_service(clock)
        await service.get_provinces()
        headers = upstream.requests[0].headers
        assert headers["Origin"] == "https://panelharga.badanpangan.go.id"
        assert headers["Referer"] == "https://panelharga.badanpangan.go.id/"

    @pytest.mark.asyncio
    async def test_upstream_error_status_is_kept(self, clock) -> None:
        service, _ = make_service(
            clock, handler=lambda request: json_response({"message": "down"}, 503)
        )
        with pytest.raises(UpstreamError) as exc_info:
            await service.get_cities("11")
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_non_string_province_name_is_upstream_error(self, clock) -> None:
        service, upstream = make_service(
            clock, handler=lambda request: json_response({"data": [{"id": 11, "nama": 11}]})
        )

        with pytest.raises(UpstreamError) as exc_info:
            await service.get_provinces()
        assert exc_info.value.status_code == 502

        with pytest.raises(UpstreamError):
            await service.get_provinces()
        assert upstream.calls == 2

    @pytest.mark.asyncio
    async def test_object_where_city_list_expected_is_upstream_error(self, clock) -> None:
        service, _ = make_service(
            clock, handler=lambda request: json_response({"data": {"data": {"id": 1101}}})
        )
        with pytest.raises(UpstreamError):
            await service.get_cities("11")
