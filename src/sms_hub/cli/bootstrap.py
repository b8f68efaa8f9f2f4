# src/sms_hub/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- takes settings built once by the caller,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (cache/queue/API/DB/pricing).
"""

from __future__ import annotations

import logging

from ..config import Settings
from ..core.cache import ExpiringCache
from ..core.ports import TableClient
from ..core.queue import QueueOptions, TaskQueue
from ..core.state import AppState
from ..db.client import create_clients
from ..products.api_client import ProductApi
from ..products.pricing import PricingConfig, PricingService
from ..products.repository import ProductRepository
from ..products.service import ProductService

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)


async def create_app_state(
    settings: Settings | None = None,
    *,
    db_client: TableClient | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings and the database client injectable makes the app easy to
    test. Without a db_client the Supabase service-role client is used.
    """
    if settings is None:
        settings = Settings.from_env()

    if settings.log_to_file:
        _ensure_local_dirs(settings)

    if db_client is None:
        clients = await create_clients(settings)
        db_client = clients.admin

    cache = ExpiringCache(default_ttl=settings.cache_default_ttl)
    queue = TaskQueue(
        QueueOptions(
            concurrency=settings.queue_concurrency,
            max_retries=settings.queue_max_retries,
            retry_delay=settings.queue_retry_delay,
            name="sms-api",
        )
    )
    api = ProductApi(settings, cache)
    repository = ProductRepository(db_client)
    pricing = PricingService(
        PricingConfig.from_settings(settings),
        timeout_seconds=settings.http_timeout_seconds,
    )
    products = ProductService(api, repository, pricing, queue)

    logger.debug("App state created (environment=%s)", settings.environment)
    return AppState(
        settings=settings,
        cache=cache,
        queue=queue,
        api=api,
        repository=repository,
        pricing=pricing,
        products=products,
        db_client=db_client,
    )
