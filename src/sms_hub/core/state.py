# src/sms_hub/core/state.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .cache import ExpiringCache
from .queue import TaskQueue

if TYPE_CHECKING:
    from ..config import Settings
    from ..products.api_client import ProductApi
    from ..products.pricing import PricingService
    from ..products.repository import ProductRepository
    from ..products.service import ProductService

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """
    Everything the app shares, built once by the composition root
    (cli.bootstrap.create_app_state) and passed explicitly.
    """

    settings: Settings
    cache: ExpiringCache
    queue: TaskQueue
    api: ProductApi
    repository: ProductRepository
    pricing: PricingService
    products: ProductService
    db_client: Any = None

    async def aclose(self) -> None:
        """Stop the queue, wait for in-flight work and close HTTP clients."""
        self.queue.stop()
        await self.queue.join()
        await self.api.aclose()
        await self.pricing.aclose()
        logger.debug("App state closed")
