# src/sms_hub/products/pricing.py

from __future__ import annotations

"""
Local-currency pricing.

The exchange rate comes either from a manually configured value or from the
currency API (navasan-compatible). API rates are cached for `api_cache_ttl`
seconds. A failed fetch never propagates: the last good rate is used, and
DEFAULT_RATE when there is none.
"""

import dataclasses
import logging
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import httpx

from ..config import DEFAULT_CURRENCY_API_URL
from ..core.errors import PricingError

logger = logging.getLogger(__name__)

DEFAULT_RATE = 83100.0


class PricingSourceType(StrEnum):
    API = "api"
    MANUAL = "manual"


class RateShape(StrEnum):
    """Known layouts of the currency API answer."""

    USD_SELL_VALUE = "usd_sell.value"
    USD_SELL = "usd_sell"
    VALUE = "value"


# Tried in order; the first shape that yields a number wins.
RATE_SHAPES: tuple[RateShape, ...] = (
    RateShape.USD_SELL_VALUE,
    RateShape.USD_SELL,
    RateShape.VALUE,
)


@dataclass(slots=True)
class PricingConfig:
    source_type: PricingSourceType = PricingSourceType.API
    manual_rate: float | None = None
    profit_margin: float = 10.0  # percent
    api_cache_ttl: float = 3600.0  # seconds
    api_url: str = DEFAULT_CURRENCY_API_URL
    api_token: str = ""

    @classmethod
    def from_settings(cls, settings: Any) -> PricingConfig:
        raw_source = str(getattr(settings, "pricing_source", "api") or "api").strip().lower()
        try:
            source = PricingSourceType(raw_source)
        except ValueError:
            logger.warning("Unknown pricing source %r, using %s", raw_source, PricingSourceType.API)
            source = PricingSourceType.API
        return cls(
            source_type=source,
            manual_rate=getattr(settings, "pricing_manual_rate", None),
            profit_margin=float(getattr(settings, "pricing_profit_margin", 10.0)),
            api_cache_ttl=float(getattr(settings, "pricing_rate_ttl", 3600.0)),
            api_url=str(getattr(settings, "currency_api_url", DEFAULT_CURRENCY_API_URL)),
            api_token=str(getattr(settings, "currency_api_token", "") or ""),
        )


def _lookup(data: Mapping[str, Any], shape: RateShape) -> Any:
    if shape is RateShape.USD_SELL_VALUE:
        usd_sell = data.get("usd_sell")
        return usd_sell.get("value") if isinstance(usd_sell, Mapping) else None
    # A usd_sell object without "value" matches no usd_sell shape, so the
    # top-level "value" is tried next.
    if shape is RateShape.USD_SELL:
        usd_sell = data.get("usd_sell")
        return None if isinstance(usd_sell, Mapping) else usd_sell
    return data.get("value")


def extract_rate(data: Any) -> float:
    """
    Pull the USD sell rate out of a currency API answer.

    Raises PricingError when no known shape matches or the value is not a
    positive number.
    """
    if not isinstance(data, Mapping):
        raise PricingError(f"Currency API answer is not an object: {type(data).__name__}")

    for shape in RATE_SHAPES:
        raw = _lookup(data, shape)
        if raw is None or raw == "":
            continue
        try:
            rate = float(str(raw).replace(",", ""))
        except ValueError as exc:
            raise PricingError(f"Currency rate at {shape} is not a number: {raw!r}") from exc
        if not math.isfinite(rate) or rate <= 0:
            raise PricingError(f"Currency rate at {shape} is invalid: {rate}")
        logger.debug("Currency rate read from %s", shape)
        return rate

    raise PricingError("Currency API answer has no recognizable rate field")


class PricingService:
    def __init__(
        self,
        config: PricingConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._config = config or PricingConfig()
        self._clock = clock
        self._cached_rate: float | None = None
        self._last_fetch_at: float = 0.0

        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds, connect=5.0))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ---- rate ----

    def _should_refresh(self) -> bool:
        if self._cached_rate is None:
            return True
        return self._clock() - self._last_fetch_at > self._config.api_cache_ttl

    async def _fetch_rate(self) -> float:
        cfg = self._config
        try:
            logger.info("Fetching exchange rate from currency API")
            response = await self._http.get(cfg.api_url, params={"api_key": cfg.api_token})
            response.raise_for_status()
            rate = extract_rate(response.json())
        except (httpx.HTTPError, ValueError, PricingError) as exc:
            # The only place where failures are absorbed instead of raised.
            logger.error("Exchange rate fetch failed: %s", exc)
            if self._cached_rate is not None:
                logger.warning("Using last cached exchange rate %.2f", self._cached_rate)
                return self._cached_rate
            logger.warning("Using default exchange rate %.2f", DEFAULT_RATE)
            return DEFAULT_RATE

        self._cached_rate = rate
        self._last_fetch_at = self._clock()
        logger.info("Exchange rate updated: %.2f", rate)
        return rate

    async def get_current_rate(self) -> float:
        cfg = self._config
        if cfg.source_type is PricingSourceType.MANUAL:
            if cfg.manual_rate is None or cfg.manual_rate <= 0:
                raise PricingError("Manual exchange rate is not set or is not positive")
            return float(cfg.manual_rate)

        if self._should_refresh():
            return await self._fetch_rate()
        return self._cached_rate  # type: ignore[return-value]

    async def calculate_price_with_profit(self, base_price: float) -> float:
        rate = await self.get_current_rate()
        factor = 1 + self._config.profit_margin / 100
        return base_price * rate * factor

    # ---- config ----

    def set_source(self, source_type: PricingSourceType | str, manual_rate: float | None = None) -> None:
        source = PricingSourceType(source_type)
        self._config.source_type = source
        if source is PricingSourceType.MANUAL and manual_rate is not None:
            self._config.manual_rate = float(manual_rate)
        logger.info("Pricing source set to %s", source)

    def set_profit_margin(self, margin: float) -> None:
        if margin < 0:
            raise ValueError("profit margin cannot be negative")
        self._config.profit_margin = float(margin)

    def get_config(self) -> PricingConfig:
        return dataclasses.replace(self._config)
