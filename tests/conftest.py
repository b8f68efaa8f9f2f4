# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio

from sms_hub.core.cache import ExpiringCache
from sms_hub.core.queue import QueueOptions, TaskQueue
from sms_hub.core.state import AppState
from sms_hub.products.api_client import ProductApi
from sms_hub.products.pricing import PricingConfig, PricingService, PricingSourceType
from sms_hub.products.repository import ProductRepository
from sms_hub.products.service import ProductService

from .fakes import FakeActivationApi, FakeClock, FakeTableClient


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and product modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="sms-hub-test",
        environment="test",
        data_dir=tmp_path,
        # Vendor API
        sms_api_key="test-key",
        sms_api_url="https://vendor.test/stubs/handler_api.php",
        api_cache_enabled=True,
        api_cache_ttl=3600.0,
        http_timeout_seconds=5.0,
        # Pricing
        currency_api_url="https://rates.test/latest/",
        currency_api_token="token",
        pricing_source="manual",
        pricing_manual_rate=100.0,
        pricing_profit_margin=10.0,
        pricing_rate_ttl=3600.0,
        # Cache / queue
        cache_default_ttl=3600.0,
        queue_concurrency=2,
        queue_max_retries=2,
        queue_retry_delay=0.0,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def db() -> FakeTableClient:
    return FakeTableClient()


@pytest.fixture()
def vendor() -> FakeActivationApi:
    return FakeActivationApi()


@pytest.fixture()
def queue() -> TaskQueue:
    return TaskQueue(QueueOptions(concurrency=2, max_retries=2, retry_delay=0.0, name="test-queue"))


@pytest.fixture()
def pricing() -> PricingService:
    return PricingService(PricingConfig(source_type=PricingSourceType.MANUAL, manual_rate=100.0))


@pytest.fixture()
def products(vendor, db, pricing, queue) -> ProductService:
    return ProductService(vendor, ProductRepository(db), pricing, queue)


@pytest_asyncio.fixture()
async def state(settings, db, vendor, queue, pricing):
    """
    AppState wired with deterministic fakes.

    The product service talks to the stub vendor; `state.api` is a real
    ProductApi (never hit by these tests) so aclose() paths stay real.
    """
    cache = ExpiringCache(default_ttl=settings.cache_default_ttl)
    repository = ProductRepository(db)
    app = AppState(
        settings=settings,
        cache=cache,
        queue=queue,
        api=ProductApi(settings, cache),
        repository=repository,
        pricing=pricing,
        products=ProductService(vendor, repository, pricing, queue),
        db_client=db,
    )
    yield app
    await app.aclose()
