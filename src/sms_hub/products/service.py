# src/sms_hub/products/service.py

from __future__ import annotations

"""
Product service: vendor API -> mapper -> repository.

Every vendor call goes through the task queue, so it shares the queue's
concurrency limit and retry policy. Activation calls jump ahead of catalog
syncs via priority.
"""

import dataclasses
import logging
import uuid
from typing import Any

from ..core.ports import ActivationApi, RateProvider
from ..core.queue import TaskFunction, TaskQueue
from .mapper import (
    map_activation,
    map_countries_list,
    map_country_service_list,
    map_services_list,
    update_activation_status,
)
from .models import (
    Activation,
    ActivationOperation,
    ActivationStatus,
    Country,
    CountryService,
    CreateActivationParams,
    GetNumberV2Params,
    Service,
    ServicePrice,
)
from .repository import ProductRepository

logger = logging.getLogger(__name__)

PRIORITY_CATALOG = 0
PRIORITY_STATUS = 5
PRIORITY_ORDER = 10


class ProductService:
    def __init__(
        self,
        api: ActivationApi,
        repository: ProductRepository,
        pricing: RateProvider,
        queue: TaskQueue,
    ) -> None:
        self._api = api
        self._repo = repository
        self._pricing = pricing
        self._queue = queue

    async def _call(self, fn: TaskFunction, *args: Any, priority: int = PRIORITY_CATALOG) -> Any:
        return await self._queue.submit(fn, *args, priority=priority)

    # ---- read-through ----

    async def get_all_countries(self) -> list[Country]:
        raw = await self._call(self._api.get_countries)
        return map_countries_list(raw)

    async def get_all_services(self, country_id: int | None = None) -> list[Service]:
        raw = await self._call(self._api.get_services_list, country_id)
        return map_services_list(raw)

    async def get_country_service_list(self, service_code: str | None = None) -> list[CountryService]:
        raw = await self._call(self._api.get_top_countries_by_service, service_code)
        return map_country_service_list(raw, service_code)

    async def create_activation(self, params: CreateActivationParams) -> Activation:
        """
        Buy a number from the vendor. Nothing is stored; see order_number().

        Every order carries an orderId (generated when the caller gives none),
        so a queue retry after a lost response is refused by the vendor with
        ORDER_ALREADY_EXISTS instead of buying a second number.
        """
        if params.order_id is None:
            params = dataclasses.replace(params, order_id=uuid.uuid4().hex)
            logger.debug("Generated order id %s for %s", params.order_id, params.service_code)
        request = GetNumberV2Params(
            service=params.service_code,
            country=params.country_id,
            operator=params.operator,
            order_id=params.order_id,
        )
        raw = await self._call(self._api.get_number_v2, request, priority=PRIORITY_ORDER)
        return map_activation(raw, params)

    async def get_activation_status(self, activation_id: int, current: Activation) -> Activation:
        response = await self._call(self._api.get_activation_status, activation_id, priority=PRIORITY_STATUS)
        return update_activation_status(current, response)

    # ---- catalog sync ----

    async def sync_countries(self) -> int:
        countries = await self.get_all_countries()
        logger.info("Syncing %d countries", len(countries))
        return await self._repo.upsert_countries(countries)

    async def sync_services(self) -> int:
        services = await self.get_all_services()
        logger.info("Syncing %d services", len(services))
        return await self._repo.upsert_services(services)

    async def sync_service_prices(self, service_code: str) -> int:
        """Store current offers for one service, priced in local currency."""
        offers = await self.get_country_service_list(service_code)
        prices: list[ServicePrice] = []
        for offer in offers:
            price_irt = await self._pricing.calculate_price_with_profit(offer.price)
            prices.append(
                ServicePrice(
                    service_code=offer.service_code,
                    country_id=offer.country_id,
                    count=offer.count,
                    price=offer.price,
                    retail_price=offer.retail_price,
                    price_irt=float(round(price_irt)),
                )
            )
        logger.info("Syncing %d prices for service %s", len(prices), service_code)
        return await self._repo.upsert_service_prices(prices)

    # ---- activations ----

    async def order_number(self, params: CreateActivationParams) -> Activation:
        """Buy a number, price it and store the activation."""
        # Fail before buying when no rate can be produced (manual source without a rate).
        await self._pricing.get_current_rate()

        activation = await self.create_activation(params)
        price_irt = await self._pricing.calculate_price_with_profit(activation.activation_cost)
        activation.price_irt = float(round(price_irt))
        stored = await self._repo.create_activation(activation)
        logger.info(
            "Activation %s stored (service=%s country=%s)",
            stored.activation_id,
            stored.service_code,
            stored.country_id,
        )
        return stored

    async def refresh_activation(self, activation_id: int) -> Activation | None:
        """Poll the vendor for a stored activation and persist any change."""
        current = await self._repo.get_activation_by_activation_id(activation_id)
        if current is None:
            logger.warning("Activation %s is not stored; nothing to refresh", activation_id)
            return None

        updated = await self.get_activation_status(activation_id, current)
        if updated.status == current.status and updated.sms == current.sms:
            return current

        stored = await self._repo.update_activation_status(activation_id, updated.status, sms=updated.sms)
        return stored or updated

    async def cancel_activation(self, activation_id: int) -> Activation | None:
        return await self._set_status(activation_id, ActivationOperation.CANCEL, ActivationStatus.CANCEL)

    async def finish_activation(self, activation_id: int) -> Activation | None:
        return await self._set_status(activation_id, ActivationOperation.FINISHED, ActivationStatus.OK)

    async def request_new_code(self, activation_id: int) -> Activation | None:
        return await self._set_status(activation_id, ActivationOperation.RETRY, ActivationStatus.WAIT_RETRY)

    async def _set_status(
        self,
        activation_id: int,
        operation: ActivationOperation,
        new_status: ActivationStatus,
    ) -> Activation | None:
        await self._call(self._api.set_activation_status, activation_id, operation, priority=PRIORITY_STATUS)
        return await self._repo.update_activation_status(activation_id, new_status)
