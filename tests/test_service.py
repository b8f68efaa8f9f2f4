# tests/test_service.py

from __future__ import annotations

import pytest

from sms_hub.core.errors import ApiRequestError, PricingError
from sms_hub.core.queue import QueueOptions, TaskQueue
from sms_hub.products.models import (
    ActivationOperation,
    ActivationStatus,
    ActivationStatusResponse,
    CreateActivationParams,
)
from sms_hub.products.pricing import PricingConfig, PricingService, PricingSourceType
from sms_hub.products.repository import ProductRepository
from sms_hub.products.service import ProductService

from .fakes import FakeActivationApi, FakeRateProvider, FakeTableClient

NUMBER = {
    "activationId": 777,
    "phoneNumber": "62812",
    "activationCost": 0.5,
    "currency": 840,
    "countryCode": "6",
    "canGetAnotherSms": "0",
    "activationTime": "2024-01-01 10:00:00",
    "activationOperator": "any",
}


def _service(vendor: FakeActivationApi, db: FakeTableClient, queue: TaskQueue) -> ProductService:
    return ProductService(vendor, ProductRepository(db), FakeRateProvider(rate=100.0, margin=10.0), queue)


@pytest.mark.asyncio
async def test_sync_countries_and_services(vendor, db, queue) -> None:
    vendor.countries = {
        "6": {"id": 6, "rus": "x", "eng": "Indonesia", "chn": "x", "visible": 1, "retry": 1, "rent": 0, "multiService": 1}
    }
    vendor.services = {"status": "success", "services": [{"code": "tg", "name": "Telegram"}]}
    products = _service(vendor, db, queue)

    assert await products.sync_countries() == 1
    assert await products.sync_services() == 1

    assert db.rows("countries")[0]["image"] == "/public/countries/Indonesia.webp"
    assert db.rows("services")[0]["code"] == "tg"


@pytest.mark.asyncio
async def test_sync_service_prices_fills_local_price(vendor, db, queue) -> None:
    vendor.top_countries = {
        "0": {"country": 6, "count": 10, "price": 0.5, "retail_price": 0.9},
        "1": {"country": 16, "count": 0, "price": 2.0, "retail_price": 3.0},
    }
    products = _service(vendor, db, queue)

    assert await products.sync_service_prices("tg") == 2
    assert vendor.called("get_top_countries_by_service") == [("tg", False)]

    rows = {r["country_id"]: r for r in db.rows("service_prices")}
    assert rows[6]["service_code"] == "tg"
    assert rows[6]["price_irt"] == pytest.approx(55.0)
    assert rows[16]["price_irt"] == pytest.approx(220.0)


@pytest.mark.asyncio
async def test_vendor_calls_are_retried_by_the_queue(vendor, db) -> None:
    queue = TaskQueue(QueueOptions(concurrency=1, max_retries=3, retry_delay=0.0))
    vendor.failures["get_countries"] = [ApiRequestError("timeout"), ApiRequestError("timeout")]
    products = _service(vendor, db, queue)

    assert await products.get_all_countries() == []
    assert len(vendor.called("get_countries")) == 3


@pytest.mark.asyncio
async def test_vendor_error_surfaces_after_all_attempts(vendor, db) -> None:
    queue = TaskQueue(QueueOptions(concurrency=1, max_retries=2, retry_delay=0.0))
    vendor.failures["get_countries"] = [ApiRequestError("down"), ApiRequestError("still down")]
    products = _service(vendor, db, queue)

    with pytest.raises(ApiRequestError, match="still down"):
        await products.get_all_countries()


@pytest.mark.asyncio
async def test_order_number_stores_priced_activation(vendor, db, queue) -> None:
    vendor.number = NUMBER
    products = _service(vendor, db, queue)

    activation = await products.order_number(
        CreateActivationParams(service_code="tg", country_id=6, order_id="order-1")
    )

    assert activation.activation_id == 777
    assert activation.price_irt == pytest.approx(55.0)
    assert activation.order_id == "order-1"

    [(params,)] = vendor.called("get_number_v2")
    assert (params.service, params.country, params.order_id) == ("tg", 6, "order-1")
    assert db.rows("activations")[0]["status"] == "STATUS_WAIT_CODE"


@pytest.mark.asyncio
async def test_order_number_fails_before_buying_without_rate(vendor, db, queue) -> None:
    vendor.number = NUMBER
    pricing = PricingService(PricingConfig(source_type=PricingSourceType.MANUAL))
    products = ProductService(vendor, ProductRepository(db), pricing, queue)

    with pytest.raises(PricingError):
        await products.order_number(CreateActivationParams(service_code="tg", country_id=6))
    assert vendor.called("get_number_v2") == []
    await pricing.aclose()


@pytest.mark.asyncio
async def test_refresh_activation_persists_code(vendor, db, queue) -> None:
    vendor.number = NUMBER
    products = _service(vendor, db, queue)
    await products.order_number(CreateActivationParams(service_code="tg", country_id=6))

    # No change: nothing written.
    unchanged = await products.refresh_activation(777)
    assert unchanged.status is ActivationStatus.WAITING_CODE

    vendor.status = ActivationStatusResponse(status=ActivationStatus.OK, code="5521")
    refreshed = await products.refresh_activation(777)
    assert refreshed.status is ActivationStatus.OK
    assert refreshed.sms == "5521"
    assert db.rows("activations")[0]["sms"] == "5521"

    assert await products.refresh_activation(1) is None


@pytest.mark.asyncio
async def test_cancel_and_finish_activation(vendor, db, queue) -> None:
    vendor.number = NUMBER
    products = _service(vendor, db, queue)
    await products.order_number(CreateActivationParams(service_code="tg", country_id=6))

    cancelled = await products.cancel_activation(777)
    assert cancelled.status is ActivationStatus.CANCEL
    assert cancelled.activation_end_time is not None

    finished = await products.finish_activation(777)
    assert finished.status is ActivationStatus.OK

    ops = [args[1] for args in vendor.called("set_activation_status")]
    assert ops == [ActivationOperation.CANCEL, ActivationOperation.FINISHED]


@pytest.mark.asyncio
async def test_get_activation_status_does_not_store(vendor, db, queue, products) -> None:
    vendor.number = NUMBER
    vendor.status = ActivationStatusResponse(status=ActivationStatus.CANCEL)

    current = await products.create_activation(CreateActivationParams(service_code="tg", country_id=6))
    updated = await products.get_activation_status(777, current)

    assert updated.status is ActivationStatus.CANCEL
    assert db.rows("activations") == []


@pytest.mark.asyncio
async def test_retried_order_reuses_generated_order_id(vendor, db) -> None:
    queue = TaskQueue(QueueOptions(concurrency=1, max_retries=3, retry_delay=0.0))
    vendor.number = NUMBER
    vendor.failures["get_number_v2"] = [ApiRequestError("read timeout")]
    products = _service(vendor, db, queue)

    activation = await products.create_activation(CreateActivationParams(service_code="tg", country_id=6))

    calls = vendor.called("get_number_v2")
    assert len(calls) == 2
    first, second = (args[0] for args in calls)
    assert first.order_id
    assert second.order_id == first.order_id
    assert first.to_query()["orderId"] == first.order_id
    assert activation.order_id == first.order_id


@pytest.mark.asyncio
async def test_caller_order_id_is_kept(vendor, db, queue) -> None:
    vendor.number = NUMBER
    products = _service(vendor, db, queue)

    await products.create_activation(CreateActivationParams(service_code="tg", country_id=6, order_id="mine"))

    assert vendor.called("get_number_v2")[0][0].order_id == "mine"
