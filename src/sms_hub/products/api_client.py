# src/sms_hub/products/api_client.py

from __future__ import annotations

"""
SMS activation vendor API client.

All calls are GET requests to one handler endpoint with `api_key` and
`action` query parameters. List endpoints answer with JSON and are read-through
cached; number/status endpoints answer with JSON or plain-text tokens and are
never cached.

Errors:
- transport (network, non-2xx)   -> ApiRequestError
- known vendor error token       -> VendorError
- response we cannot interpret   -> UnexpectedResponseError
Nothing is retried here; callers that want retries go through the task queue.
"""

import logging
from typing import Any

import httpx

from ..core.errors import ApiError, ApiRequestError, UnexpectedResponseError, VendorError
from ..core.ports import CacheStore
from .models import (
    ActivationOperation,
    ActivationStatus,
    ActivationStatusResponse,
    GetNumberV2Params,
    VendorErrorToken,
)
from .raw import (
    RawCountriesResponse,
    RawGetNumberV2Response,
    RawServicesResponse,
    RawTopCountriesResponse,
)

logger = logging.getLogger(__name__)

CACHE_PREFIX = "sms_activate_"
CACHE_KEY_COUNTRIES = f"{CACHE_PREFIX}countries"
CACHE_KEY_SERVICES = f"{CACHE_PREFIX}services"
CACHE_KEY_TOP_COUNTRIES = f"{CACHE_PREFIX}top_countries"

# setStatus answers that mean "accepted".
SET_STATUS_OK_TOKENS = frozenset({"ACCESS_READY", "ACCESS_RETRY_GET", "ACCESS_ACTIVATION"})

_OPERATION_NAMES = {
    ActivationOperation.CANCEL: "cancel",
    ActivationOperation.FINISHED: "finish",
    ActivationOperation.RETRY: "request another code for",
}


class ProductApi:
    def __init__(
        self,
        settings: Any,
        cache: CacheStore,
        *,
        http_client: httpx.AsyncClient | None = None,
        cache_enabled: bool | None = None,
        cache_ttl: float | None = None,
    ) -> None:
        self._api_key = str(getattr(settings, "sms_api_key", "") or "")
        self._api_url = str(getattr(settings, "sms_api_url", "") or "")
        self._cache = cache
        self._cache_enabled = (
            bool(getattr(settings, "api_cache_enabled", True)) if cache_enabled is None else cache_enabled
        )
        self._cache_ttl = (
            float(getattr(settings, "api_cache_ttl", 3600.0)) if cache_ttl is None else float(cache_ttl)
        )

        self._owns_client = http_client is None
        if http_client is None:
            timeout = float(getattr(settings, "http_timeout_seconds", 15.0))
            http_client = httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=5.0))
        self._http = http_client

        if not self._api_key:
            logger.error("SMS activation API key is not set (SMSHUB_API_KEY).")
        if not self._api_url:
            logger.error("SMS activation API URL is not set (SMSHUB_API_URL).")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ---- cache controls ----

    @property
    def cache_enabled(self) -> bool:
        return self._cache_enabled

    @property
    def cache_ttl(self) -> float:
        return self._cache_ttl

    def set_cache_enabled(self, enabled: bool) -> None:
        self._cache_enabled = bool(enabled)

    def set_cache_ttl(self, ttl: float) -> None:
        self._cache_ttl = float(ttl)

    def clear_cache(self) -> int:
        """Drop every cache entry written by this client. Returns how many were removed."""
        removed = 0
        for key in self._cache.keys():
            if key.startswith(CACHE_PREFIX) and self._cache.delete(key):
                removed += 1
        logger.debug("Cleared %d SMS API cache entries", removed)
        return removed

    def _cached(self, key: str) -> Any | None:
        if not self._cache_enabled:
            return None
        return self._cache.get(key)

    def _store(self, key: str, value: Any) -> None:
        if self._cache_enabled:
            self._cache.set(key, value, self._cache_ttl)
            logger.debug("Cached %s for %.0fs", key, self._cache_ttl)

    # ---- low-level helpers ----

    async def _request(self, action: str, what: str, **params: str) -> httpx.Response:
        query = {"api_key": self._api_key, "action": action, **params}
        try:
            response = await self._http.get(self._api_url, params=query)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ApiRequestError(f"Failed to {what}: {exc}") from exc
        return response

    @staticmethod
    def _json_object(response: httpx.Response, what: str) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            text = response.text.strip()
            raise VendorError(f"Failed to {what}: vendor returned {text!r}", token=text or None) from None
        if not isinstance(data, dict):
            raise UnexpectedResponseError(
                f"Failed to {what}: expected a JSON object, got {type(data).__name__}"
            )
        return data

    # ---- list endpoints (cached) ----

    async def get_countries(self) -> RawCountriesResponse:
        key = CACHE_KEY_COUNTRIES
        cached = self._cached(key)
        if cached is not None:
            logger.debug("Countries served from cache")
            return cached

        what = "fetch countries"
        logger.info("Requesting countries from SMS activation API")
        try:
            response = await self._request("getCountries", what)
            countries = self._json_object(response, what)
        except ApiError as exc:
            logger.error("%s", exc)
            raise

        self._store(key, countries)
        logger.info("Received %d countries", len(countries))
        return countries  # type: ignore[return-value]

    async def get_services_list(self, country: int | None = None, lang: str = "en") -> RawServicesResponse:
        if country is not None:
            key = f"{CACHE_KEY_SERVICES}_{country}_{lang}"
        else:
            key = f"{CACHE_KEY_SERVICES}_{lang}"
        cached = self._cached(key)
        if cached is not None:
            logger.debug("Services list served from cache (%s)", key)
            return cached

        what = "fetch services list"
        params: dict[str, str] = {}
        if country is not None:
            params["country"] = str(country)
        params["lang"] = lang

        logger.info("Requesting services list from SMS activation API (country=%s lang=%s)", country, lang)
        try:
            response = await self._request("getServicesList", what, **params)
            data = self._json_object(response, what)
            status = data.get("status")
            if status != "success":
                raise VendorError(f"Failed to {what}: vendor returned {data!r}", token=str(status))
            if not isinstance(data.get("services"), list):
                raise UnexpectedResponseError(f"Failed to {what}: 'services' is not a list")
        except ApiError as exc:
            logger.error("%s", exc)
            raise

        self._store(key, data)
        logger.info("Received %d services", len(data["services"]))
        return data  # type: ignore[return-value]

    async def get_top_countries_by_service(
        self,
        service: str | None = None,
        free_price: bool = False,
    ) -> RawTopCountriesResponse:
        mode = "free" if free_price else "normal"
        key = f"{CACHE_KEY_TOP_COUNTRIES}_{service or 'all'}_{mode}"
        cached = self._cached(key)
        if cached is not None:
            logger.debug("Top countries served from cache (%s)", key)
            return cached

        what = "fetch top countries"
        params: dict[str, str] = {}
        if service:
            params["service"] = service
        if free_price:
            params["freePrice"] = "true"

        logger.info("Requesting top countries from SMS activation API (service=%s)", service or "all")
        try:
            response = await self._request("getTopCountriesByService", what, **params)
            top = self._json_object(response, what)
        except ApiError as exc:
            logger.error("%s", exc)
            raise

        self._store(key, top)
        logger.info("Received %d top-country entries", len(top))
        return top  # type: ignore[return-value]

    # ---- activation endpoints (never cached) ----

    async def get_number_v2(self, params: GetNumberV2Params) -> RawGetNumberV2Response:
        what = "request activation number"
        logger.info("Requesting activation number (service=%s country=%s)", params.service, params.country)
        logger.debug("getNumberV2 params: %s", params)
        try:
            response = await self._request("getNumberV2", what, **params.to_query())
            try:
                data = response.json()
            except ValueError:
                data = response.text.strip()

            if isinstance(data, str):
                if VendorErrorToken.ORDER_ALREADY_EXISTS in data:
                    raise VendorError(
                        f"Failed to {what}: {VendorErrorToken.ORDER_ALREADY_EXISTS} - "
                        "an order with this id already exists",
                        token=VendorErrorToken.ORDER_ALREADY_EXISTS,
                    )
                raise VendorError(f"Failed to {what}: vendor returned {data!r}", token=data or None)

            if not isinstance(data, dict) or "activationId" not in data:
                raise UnexpectedResponseError(f"Failed to {what}: unexpected payload {data!r}")
        except ApiError as exc:
            logger.error("%s", exc)
            raise

        logger.info("Activation number received: %s", data.get("phoneNumber"))
        return data  # type: ignore[return-value]

    async def get_activation_status(self, activation_id: int) -> ActivationStatusResponse:
        what = f"get status of activation {activation_id}"
        logger.info("Requesting status for activation %s", activation_id)
        try:
            response = await self._request("getStatus", what, id=str(activation_id))
            result = parse_status_text(response.text, what)
        except ApiError as exc:
            logger.error("%s", exc)
            raise

        if result.status is ActivationStatus.OK:
            logger.info("Activation %s received code", activation_id)
        else:
            logger.debug("Activation %s status: %s", activation_id, result.status)
        return result

    async def set_activation_status(self, activation_id: int, operation: ActivationOperation) -> bool:
        op_name = _OPERATION_NAMES.get(operation, "change status of")
        what = f"{op_name} activation {activation_id}"
        logger.info("Requesting to %s", what)
        try:
            response = await self._request(
                "setStatus",
                what,
                id=str(activation_id),
                status=str(operation),
            )
            text = response.text.strip()
            if text not in SET_STATUS_OK_TOKENS:
                logger.warning("Unexpected setStatus answer for activation %s: %s", activation_id, text)
                raise UnexpectedResponseError(f"Failed to {what}: unexpected answer {text!r}")
        except ApiError as exc:
            logger.error("%s", exc)
            raise

        logger.info("Done: %s (%s)", what, text)
        return True

    async def cancel_activation(self, activation_id: int) -> bool:
        return await self.set_activation_status(activation_id, ActivationOperation.CANCEL)

    async def finish_activation(self, activation_id: int) -> bool:
        return await self.set_activation_status(activation_id, ActivationOperation.FINISHED)

    async def request_new_code(self, activation_id: int) -> bool:
        return await self.set_activation_status(activation_id, ActivationOperation.RETRY)


def parse_status_text(raw: str, what: str = "read activation status") -> ActivationStatusResponse:
    """
    Decode a getStatus answer.

    STATUS_OK:<code> carries the SMS code; the other known answers are bare tokens.
    """
    text = (raw or "").strip()
    head, sep, code = text.partition(":")
    if head == ActivationStatus.OK and sep:
        return ActivationStatusResponse(status=ActivationStatus.OK, code=code)
    if text in (ActivationStatus.WAITING_CODE, ActivationStatus.WAIT_RETRY, ActivationStatus.CANCEL):
        return ActivationStatusResponse(status=ActivationStatus(text))
    raise UnexpectedResponseError(f"Failed to {what}: unknown status {text!r}")
