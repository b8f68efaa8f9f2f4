# tests/test_api_client.py

from __future__ import annotations

import httpx
import pytest

from sms_hub.core.cache import ExpiringCache
from sms_hub.core.errors import ApiRequestError, UnexpectedResponseError, VendorError
from sms_hub.products.api_client import ProductApi, parse_status_text
from sms_hub.products.models import (
    ActivationOperation,
    ActivationStatus,
    GetNumberV2Params,
    VendorErrorToken,
)

COUNTRIES = {"0": {"id": 0, "rus": "x", "eng": "Russia", "chn": "x", "visible": 1, "retry": 0, "rent": 0, "multiService": 1}}


class VendorStub:
    """MockTransport handler: answers per action and records query params."""

    def __init__(self, answers: dict[str, httpx.Response]) -> None:
        self.answers = answers
        self.requests: list[dict[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        params = dict(request.url.params)
        self.requests.append(params)
        return self.answers[params["action"]]

    def actions(self) -> list[str]:
        return [p["action"] for p in self.requests]


def _api(settings, stub, cache: ExpiringCache | None = None) -> ProductApi:
    client = httpx.AsyncClient(transport=httpx.MockTransport(stub))
    return ProductApi(settings, cache or ExpiringCache(), http_client=client)


@pytest.mark.asyncio
async def test_get_countries_sends_key_and_action_and_caches(settings) -> None:
    stub = VendorStub({"getCountries": httpx.Response(200, json=COUNTRIES)})
    api = _api(settings, stub)

    assert await api.get_countries() == COUNTRIES
    assert await api.get_countries() == COUNTRIES

    assert stub.actions() == ["getCountries"]
    assert stub.requests[0]["api_key"] == "test-key"


@pytest.mark.asyncio
async def test_cache_can_be_disabled_and_cleared(settings) -> None:
    stub = VendorStub({"getCountries": httpx.Response(200, json=COUNTRIES)})
    cache = ExpiringCache()
    cache.set("unrelated", 1)
    api = _api(settings, stub, cache)

    await api.get_countries()
    assert api.clear_cache() == 1
    assert cache.get("unrelated") == 1

    api.set_cache_enabled(False)
    await api.get_countries()
    await api.get_countries()
    assert stub.actions() == ["getCountries"] * 3


@pytest.mark.asyncio
async def test_services_list_cache_key_depends_on_country(settings) -> None:
    body = {"status": "success", "services": [{"code": "tg", "name": "Telegram"}]}
    stub = VendorStub({"getServicesList": httpx.Response(200, json=body)})
    api = _api(settings, stub)

    await api.get_services_list()
    await api.get_services_list(country=6)
    await api.get_services_list(country=6)

    assert len(stub.requests) == 2
    assert "country" not in stub.requests[0]
    assert stub.requests[1]["country"] == "6"
    assert stub.requests[1]["lang"] == "en"


@pytest.mark.asyncio
async def test_services_list_error_status_is_vendor_error(settings) -> None:
    stub = VendorStub({"getServicesList": httpx.Response(200, json={"status": "error", "services": []})})
    api = _api(settings, stub)

    with pytest.raises(VendorError) as info:
        await api.get_services_list()
    assert info.value.token == "error"


@pytest.mark.asyncio
async def test_top_countries_params(settings) -> None:
    stub = VendorStub({"getTopCountriesByService": httpx.Response(200, json={})})
    api = _api(settings, stub)

    await api.get_top_countries_by_service("tg", free_price=True)
    await api.get_top_countries_by_service()

    assert stub.requests[0]["service"] == "tg"
    assert stub.requests[0]["freePrice"] == "true"
    assert "service" not in stub.requests[1]


@pytest.mark.asyncio
async def test_http_error_becomes_api_request_error(settings) -> None:
    stub = VendorStub({"getCountries": httpx.Response(502, text="bad gateway")})
    api = _api(settings, stub)

    with pytest.raises(ApiRequestError, match="Failed to fetch countries"):
        await api.get_countries()


@pytest.mark.asyncio
async def test_transport_failure_becomes_api_request_error(settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    api = _api(settings, handler)
    with pytest.raises(ApiRequestError):
        await api.get_countries()


@pytest.mark.asyncio
async def test_plain_text_answer_on_list_endpoint_is_vendor_error(settings) -> None:
    stub = VendorStub({"getCountries": httpx.Response(200, text="BAD_KEY")})
    api = _api(settings, stub)

    with pytest.raises(VendorError) as info:
        await api.get_countries()
    assert info.value.token == "BAD_KEY"


@pytest.mark.asyncio
async def test_get_number_v2_success_and_query(settings) -> None:
    body = {"activationId": 1, "phoneNumber": "7900", "activationCost": 10}
    stub = VendorStub({"getNumberV2": httpx.Response(200, json=body)})
    api = _api(settings, stub)

    params = GetNumberV2Params(service="tg", country=6, forward=False, max_price=1.5, order_id="o-1")
    assert await api.get_number_v2(params) == body

    sent = stub.requests[0]
    assert sent["service"] == "tg"
    assert sent["country"] == "6"
    assert sent["forward"] == "0"
    assert sent["maxPrice"] == "1.5"
    assert sent["orderId"] == "o-1"
    assert "operator" not in sent


@pytest.mark.asyncio
async def test_get_number_v2_is_never_cached(settings) -> None:
    body = {"activationId": 1, "phoneNumber": "7900"}
    stub = VendorStub({"getNumberV2": httpx.Response(200, json=body)})
    api = _api(settings, stub)

    await api.get_number_v2(GetNumberV2Params(service="tg"))
    await api.get_number_v2(GetNumberV2Params(service="tg"))
    assert len(stub.requests) == 2


@pytest.mark.asyncio
async def test_get_number_v2_order_exists_sentinel(settings) -> None:
    stub = VendorStub({"getNumberV2": httpx.Response(200, text="ORDER_ALREADY_EXISTS")})
    api = _api(settings, stub)

    with pytest.raises(VendorError, match="already exists") as info:
        await api.get_number_v2(GetNumberV2Params(service="tg", order_id="o-1"))
    assert info.value.token == VendorErrorToken.ORDER_ALREADY_EXISTS


@pytest.mark.asyncio
async def test_get_number_v2_other_sentinel(settings) -> None:
    stub = VendorStub({"getNumberV2": httpx.Response(200, text="NO_NUMBERS")})
    api = _api(settings, stub)

    with pytest.raises(VendorError) as info:
        await api.get_number_v2(GetNumberV2Params(service="tg"))
    assert info.value.token == "NO_NUMBERS"


@pytest.mark.asyncio
async def test_activation_status_parsing(settings) -> None:
    stub = VendorStub({"getStatus": httpx.Response(200, text="STATUS_OK:48213")})
    api = _api(settings, stub)

    result = await api.get_activation_status(99)
    assert result.status is ActivationStatus.OK
    assert result.code == "48213"
    assert stub.requests[0]["id"] == "99"


def test_parse_status_text_tokens() -> None:
    assert parse_status_text("STATUS_WAIT_CODE").status is ActivationStatus.WAITING_CODE
    assert parse_status_text(" STATUS_CANCEL\n").status is ActivationStatus.CANCEL
    assert parse_status_text("STATUS_WAIT_RETRY").code is None
    with pytest.raises(UnexpectedResponseError):
        parse_status_text("WRONG_ACTIVATION_ID")


@pytest.mark.asyncio
async def test_set_status_accepted_tokens(settings) -> None:
    stub = VendorStub({"setStatus": httpx.Response(200, text="ACCESS_ACTIVATION")})
    api = _api(settings, stub)

    assert await api.finish_activation(5) is True
    assert stub.requests[0]["status"] == ActivationOperation.FINISHED
    assert stub.requests[0]["id"] == "5"


@pytest.mark.asyncio
async def test_set_status_unknown_answer_raises(settings) -> None:
    stub = VendorStub({"setStatus": httpx.Response(200, text="BAD_STATUS")})
    api = _api(settings, stub)

    with pytest.raises(UnexpectedResponseError):
        await api.cancel_activation(5)
