# src/sms_hub/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the product layer.

Services depend on Protocols instead of concrete implementations.
This keeps the vendor API, the database client and the currency source
swappable and makes testing easier.
"""

from typing import Any, Protocol

from ..products.models import ActivationOperation, ActivationStatusResponse, GetNumberV2Params


class CacheStore(Protocol):
    """Key/value store with per-entry TTL (see core.cache.ExpiringCache)."""

    def get(self, key: str, default: Any = None) -> Any: ...
    def set(self, key: str, value: Any, ttl: float | None = None) -> None: ...
    def delete(self, key: str) -> bool: ...
    def keys(self) -> list[str]: ...


class TableClient(Protocol):
    """
    Anything exposing the postgrest query-builder entry point.

    The Supabase AsyncClient fits; tests use an in-memory fake.
    """

    def table(self, table_name: str) -> Any: ...


class ActivationApi(Protocol):
    """Vendor operations the product service needs."""

    async def get_countries(self) -> dict[str, Any]: ...
    async def get_services_list(self, country: int | None = None, lang: str = "en") -> Any: ...
    async def get_top_countries_by_service(
            self,
            service: str | None = None,
            free_price: bool = False,
    ) -> dict[str, Any]: ...
    async def get_number_v2(self, params: GetNumberV2Params) -> Any: ...
    async def get_activation_status(self, activation_id: int) -> ActivationStatusResponse: ...
    async def set_activation_status(self, activation_id: int, operation: ActivationOperation) -> bool: ...


class RateProvider(Protocol):
    """Exchange-rate source used to price services in local currency."""

    async def get_current_rate(self) -> float: ...
    async def calculate_price_with_profit(self, base_price: float) -> float: ...
