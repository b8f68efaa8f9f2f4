# src/sms_hub/products/repository.py

from __future__ import annotations

"""
Product persistence on Supabase (PostgREST).

Tables:
- countries       (conflict key: id)
- services        (conflict key: code)
- service_prices  (conflict key: service_code,country_id)
- activations     (looked up by the vendor's activation_id)

"Not found" is a normal result (None). Database failures are logged and
raised as DatabaseError with the operation/entity that failed.
"""

import logging
from datetime import datetime, timezone
from typing import Any, NoReturn

import httpx
from postgrest.exceptions import APIError
from postgrest.types import CountMethod, ReturnMethod

from ..core.errors import DatabaseError
from ..core.ports import TableClient
from .models import (
    OPEN_STATUSES,
    Activation,
    ActivationStats,
    ActivationStatus,
    Country,
    Service,
    ServicePrice,
)

logger = logging.getLogger(__name__)

COUNTRIES = "countries"
SERVICES = "services"
SERVICE_PRICES = "service_prices"
ACTIVATIONS = "activations"

# PostgREST: the result contains 0 rows where one was expected.
NO_ROWS_CODE = "PGRST116"

_DB_ERRORS = (APIError, httpx.HTTPError)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---- row <-> record ----


def _country_to_row(c: Country) -> dict[str, Any]:
    return {
        "id": c.id,
        "name": c.name,
        "visible": c.visible,
        "retry": c.retry,
        "rent": c.rent,
        "multi_service": c.multi_service,
        "image": c.image,
    }


def _row_to_country(row: dict[str, Any]) -> Country:
    return Country(
        id=int(row["id"]),
        name=str(row.get("name") or ""),
        visible=int(row.get("visible") or 0),
        retry=int(row.get("retry") or 0),
        rent=int(row.get("rent") or 0),
        multi_service=int(row.get("multi_service") or 0),
        image=row.get("image"),
    )


def _service_to_row(s: Service) -> dict[str, Any]:
    return {"code": s.code, "name": s.name, "image": s.image}


def _row_to_service(row: dict[str, Any]) -> Service:
    return Service(code=str(row["code"]), name=str(row.get("name") or ""), image=row.get("image"))


def _service_price_to_row(p: ServicePrice, stamp: str) -> dict[str, Any]:
    row: dict[str, Any] = {
        "service_code": p.service_code,
        "country_id": p.country_id,
        "count": p.count,
        "price": p.price,
        "retail_price": p.retail_price,
        "last_updated": stamp,
    }
    if p.price_irt is not None:
        row["price_irt"] = p.price_irt
    return row


def _row_to_service_price(row: dict[str, Any]) -> ServicePrice:
    # Embedded relations come back under the table name.
    country = row.get("countries")
    service = row.get("services")
    price_irt = row.get("price_irt")
    return ServicePrice(
        service_code=str(row["service_code"]),
        country_id=int(row["country_id"]),
        count=int(row.get("count") or 0),
        price=float(row.get("price") or 0.0),
        retail_price=float(row.get("retail_price") or 0.0),
        price_irt=float(price_irt) if price_irt is not None else None,
        last_updated=row.get("last_updated"),
        id=row.get("id"),
        country=country if isinstance(country, dict) else None,
        service=service if isinstance(service, dict) else None,
    )


def _activation_to_row(a: Activation) -> dict[str, Any]:
    return {
        "service_code": a.service_code,
        "country_id": a.country_id,
        "operator": a.operator,
        "phone_number": a.phone_number,
        "activation_id": a.activation_id,
        "activation_cost": a.activation_cost,
        "activation_time": a.activation_time,
        "can_get_another_sms": a.can_get_another_sms,
        "status": str(a.status or ActivationStatus.WAITING_CODE),
        "order_id": a.order_id,
        "price_irt": a.price_irt,
    }


def _row_to_activation(row: dict[str, Any]) -> Activation:
    price_irt = row.get("price_irt")
    return Activation(
        service_code=str(row["service_code"]),
        country_id=int(row["country_id"]),
        operator=str(row.get("operator") or ""),
        phone_number=str(row.get("phone_number") or ""),
        activation_id=int(row["activation_id"]),
        activation_cost=float(row.get("activation_cost") or 0.0),
        activation_time=str(row.get("activation_time") or ""),
        can_get_another_sms=bool(row.get("can_get_another_sms")),
        status=ActivationStatus.from_db(row.get("status")),
        activation_end_time=row.get("activation_end_time"),
        sms=row.get("sms"),
        order_id=row.get("order_id"),
        price_irt=float(price_irt) if price_irt is not None else None,
    )


def _single_row(response: Any) -> dict[str, Any] | None:
    """maybe_single() may hand back None instead of an empty response."""
    if response is None:
        return None
    data = response.data
    if isinstance(data, list):
        return data[0] if data else None
    return data or None


class ProductRepository:
    def __init__(self, client: TableClient) -> None:
        self._client = client

    def _handle_error(self, exc: Exception, operation: str, entity: str) -> NoReturn:
        message = getattr(exc, "message", None) or str(exc) or "Unknown database error"
        code = getattr(exc, "code", None) or "UNKNOWN"
        full = f"Database error during {operation} {entity}: {message} (Code: {code})"
        logger.error(full)
        raise DatabaseError(full, operation=operation, entity=entity, code=str(code)) from exc

    # ---- countries ----

    async def get_countries(
        self,
        *,
        visible: bool | None = None,
        with_services: bool = False,
    ) -> list[Country]:
        try:
            query = self._client.table(COUNTRIES).select("*")
            if visible is not None:
                query = query.eq("visible", int(visible))
            response = await query.execute()
        except _DB_ERRORS as exc:
            self._handle_error(exc, "get", "countries")

        countries = [_row_to_country(r) for r in response.data or []]
        if with_services:
            for country in countries:
                country.services = await self.get_service_prices_by_country(country.id)
        return countries

    async def get_country_by_id(self, country_id: int) -> Country | None:
        try:
            response = await (
                self._client.table(COUNTRIES).select("*").eq("id", country_id).maybe_single().execute()
            )
        except _DB_ERRORS as exc:
            self._handle_error(exc, "getById", "country")
        row = _single_row(response)
        return _row_to_country(row) if row else None

    async def upsert_countries(self, countries: list[Country]) -> int:
        if not countries:
            return 0
        rows = [_country_to_row(c) for c in countries]
        try:
            response = await (
                self._client.table(COUNTRIES)
                .upsert(rows, on_conflict="id", returning=ReturnMethod.minimal, count=CountMethod.exact)
                .execute()
            )
        except _DB_ERRORS as exc:
            self._handle_error(exc, "upsert", "countries")
        affected = response.count or len(rows)
        logger.info("Upserted %d countries", affected)
        return affected

    async def update_country_visibility(self, country_id: int, visible: bool) -> Country | None:
        try:
            response = await (
                self._client.table(COUNTRIES).update({"visible": int(visible)}).eq("id", country_id).execute()
            )
        except _DB_ERRORS as exc:
            self._handle_error(exc, "updateVisibility", "country")
        row = _single_row(response)
        return _row_to_country(row) if row else None

    # ---- services ----

    async def get_services(self) -> list[Service]:
        try:
            response = await self._client.table(SERVICES).select("*").execute()
        except _DB_ERRORS as exc:
            self._handle_error(exc, "get", "services")
        return [_row_to_service(r) for r in response.data or []]

    async def get_service_by_code(self, code: str) -> Service | None:
        try:
            response = await (
                self._client.table(SERVICES).select("*").eq("code", code).maybe_single().execute()
            )
        except _DB_ERRORS as exc:
            self._handle_error(exc, "getByCode", "service")
        row = _single_row(response)
        return _row_to_service(row) if row else None

    async def upsert_services(self, services: list[Service]) -> int:
        if not services:
            return 0
        rows = [_service_to_row(s) for s in services]
        try:
            response = await (
                self._client.table(SERVICES)
                .upsert(rows, on_conflict="code", returning=ReturnMethod.minimal, count=CountMethod.exact)
                .execute()
            )
        except _DB_ERRORS as exc:
            self._handle_error(exc, "upsert", "services")
        affected = response.count or len(rows)
        logger.info("Upserted %d services", affected)
        return affected

    # ---- service prices ----

    async def get_service_prices(
        self,
        *,
        country_id: int | None = None,
        service_code: str | None = None,
        min_count: int | None = None,
        with_country: bool = False,
        with_service: bool = False,
    ) -> list[ServicePrice]:
        columns = "*"
        if with_country:
            columns += ", countries(id, name, image)"
        if with_service:
            columns += ", services(code, name, image)"

        try:
            query = self._client.table(SERVICE_PRICES).select(columns)
            if country_id is not None:
                query = query.eq("country_id", country_id)
            if service_code:
                query = query.eq("service_code", service_code)
            if min_count is not None:
                query = query.gte("count", min_count)
            response = await query.execute()
        except _DB_ERRORS as exc:
            self._handle_error(exc, "get", "servicePrices")
        return [_row_to_service_price(r) for r in response.data or []]

    async def get_service_prices_by_country(self, country_id: int) -> list[ServicePrice]:
        return await self.get_service_prices(country_id=country_id, with_service=True)

    async def get_service_prices_by_service(self, service_code: str) -> list[ServicePrice]:
        return await self.get_service_prices(service_code=service_code, with_country=True)

    async def get_service_price(self, service_code: str, country_id: int) -> ServicePrice | None:
        try:
            response = await (
                self._client.table(SERVICE_PRICES)
                .select("*, countries(id, name, image), services(code, name, image)")
                .eq("service_code", service_code)
                .eq("country_id", country_id)
                .maybe_single()
                .execute()
            )
        except _DB_ERRORS as exc:
            self._handle_error(exc, "getServicePrice", "servicePrice")
        row = _single_row(response)
        return _row_to_service_price(row) if row else None

    async def upsert_service_prices(self, prices: list[ServicePrice]) -> int:
        if not prices:
            return 0
        stamp = _now_iso()
        rows = [_service_price_to_row(p, stamp) for p in prices]
        try:
            response = await (
                self._client.table(SERVICE_PRICES)
                .upsert(
                    rows,
                    on_conflict="service_code,country_id",
                    returning=ReturnMethod.minimal,
                    count=CountMethod.exact,
                )
                .execute()
            )
        except _DB_ERRORS as exc:
            self._handle_error(exc, "upsert", "servicePrices")
        affected = response.count or len(rows)
        logger.info("Upserted %d service prices", affected)
        return affected

    async def update_service_price_irt(self, service_code: str, country_id: int, price_irt: float) -> bool:
        return await self._update_service_price_fields(
            service_code, country_id, {"price_irt": price_irt}, "price_irt"
        )

    async def update_service_count(self, service_code: str, country_id: int, count: int) -> bool:
        return await self._update_service_price_fields(service_code, country_id, {"count": count}, "count")

    async def _update_service_price_fields(
        self,
        service_code: str,
        country_id: int,
        fields: dict[str, Any],
        what: str,
    ) -> bool:
        try:
            await (
                self._client.table(SERVICE_PRICES)
                .update({**fields, "last_updated": _now_iso()})
                .eq("service_code", service_code)
                .eq("country_id", country_id)
                .execute()
            )
        except _DB_ERRORS as exc:
            logger.error("Error updating %s for %s-%s: %s", what, service_code, country_id, exc)
            return False
        return True

    # ---- activations ----

    async def create_activation(self, activation: Activation) -> Activation:
        try:
            response = await self._client.table(ACTIVATIONS).insert(_activation_to_row(activation)).execute()
        except _DB_ERRORS as exc:
            self._handle_error(exc, "create", "activation")
        row = _single_row(response)
        if row is None:
            raise DatabaseError(
                "Database error during create activation: no row returned (Code: UNKNOWN)",
                operation="create",
                entity="activation",
            )
        return _row_to_activation(row)

    async def update_activation_status(
        self,
        activation_id: int,
        status: ActivationStatus,
        *,
        sms: str | None = None,
        operator: str | None = None,
    ) -> Activation | None:
        """
        Persist a polled status. OK/CANCEL also stamp activation_end_time.
        Returns None when no activation has this id.
        """
        update: dict[str, Any] = {"status": str(status)}
        if sms is not None:
            update["sms"] = sms
        if operator is not None:
            update["operator"] = operator
        if status in (ActivationStatus.OK, ActivationStatus.CANCEL):
            update["activation_end_time"] = _now_iso()

        try:
            response = await (
                self._client.table(ACTIVATIONS).update(update).eq("activation_id", activation_id).execute()
            )
        except APIError as exc:
            if exc.code == NO_ROWS_CODE:
                logger.warning("Activation %s not found for update", activation_id)
                return None
            self._handle_error(exc, "updateStatus", "activation")
        except httpx.HTTPError as exc:
            self._handle_error(exc, "updateStatus", "activation")

        row = _single_row(response)
        if row is None:
            logger.warning("Activation %s not found for update", activation_id)
            return None
        return _row_to_activation(row)

    async def get_activation_by_activation_id(self, activation_id: int) -> Activation | None:
        try:
            response = await (
                self._client.table(ACTIVATIONS)
                .select("*")
                .eq("activation_id", activation_id)
                .maybe_single()
                .execute()
            )
        except _DB_ERRORS as exc:
            self._handle_error(exc, "getByActivationId", "activation")
        row = _single_row(response)
        return _row_to_activation(row) if row else None

    async def get_pending_activations(
        self,
        *,
        service_code: str | None = None,
        country_id: int | None = None,
        max_results: int | None = None,
    ) -> list[Activation]:
        """Activations still waiting for a code, oldest first."""
        try:
            query = (
                self._client.table(ACTIVATIONS)
                .select("*")
                .in_("status", [str(s) for s in OPEN_STATUSES])
            )
            if service_code:
                query = query.eq("service_code", service_code)
            if country_id is not None:
                query = query.eq("country_id", country_id)
            if max_results:
                query = query.limit(max_results)
            response = await query.order("activation_time", desc=False).execute()
        except _DB_ERRORS as exc:
            self._handle_error(exc, "getPending", "activations")
        return [_row_to_activation(r) for r in response.data or []]

    async def get_activations_stats(self) -> ActivationStats:
        def head():
            return self._client.table(ACTIVATIONS).select("*", count=CountMethod.exact, head=True)

        try:
            total = (await head().execute()).count
            waiting = (await head().in_("status", [str(s) for s in OPEN_STATUSES]).execute()).count
            completed = (await head().eq("status", str(ActivationStatus.OK)).execute()).count
            cancelled = (await head().eq("status", str(ActivationStatus.CANCEL)).execute()).count
        except _DB_ERRORS as exc:
            self._handle_error(exc, "getStats", "activations")

        return ActivationStats(
            total=total or 0,
            waiting=waiting or 0,
            completed=completed or 0,
            cancelled=cancelled or 0,
        )
