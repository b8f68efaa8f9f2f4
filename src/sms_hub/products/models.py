# src/sms_hub/products/models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class ActivationStatus(StrEnum):
    """Activation lifecycle as reported by the vendor's getStatus action."""

    WAITING_CODE = "STATUS_WAIT_CODE"
    WAIT_RETRY = "STATUS_WAIT_RETRY"
    OK = "STATUS_OK"
    CANCEL = "STATUS_CANCEL"

    @classmethod
    def from_db(cls, raw: str | None) -> ActivationStatus:
        if not raw:
            return cls.WAITING_CODE
        try:
            return cls(raw)
        except ValueError:
            return cls.WAITING_CODE


# Statuses that still expect an SMS.
OPEN_STATUSES: tuple[ActivationStatus, ...] = (
    ActivationStatus.WAITING_CODE,
    ActivationStatus.WAIT_RETRY,
)


class ActivationOperation(StrEnum):
    """Values for the vendor's setStatus `status` parameter."""

    RETRY = "3"  # ask for another code
    FINISHED = "6"  # code received, close the activation
    CANCEL = "8"


class VendorErrorToken(StrEnum):
    ORDER_ALREADY_EXISTS = "ORDER_ALREADY_EXISTS"


@dataclass(slots=True)
class Country:
    id: int
    name: str
    visible: int
    retry: int
    rent: int
    multi_service: int
    image: str | None = None
    services: list[ServicePrice] | None = None


@dataclass(slots=True)
class Service:
    code: str
    name: str
    image: str | None = None


@dataclass(slots=True)
class CountryService:
    """One (service, country) offer from getTopCountriesByService."""

    service_code: str
    country_id: int
    count: int
    price: float
    retail_price: float


@dataclass(slots=True)
class ServicePrice:
    """Stored price row; `price_irt` is the local-currency price with margin."""

    service_code: str
    country_id: int
    count: int
    price: float
    retail_price: float
    price_irt: float | None = None
    last_updated: str | None = None
    id: int | None = None
    country: dict[str, Any] | None = None
    service: dict[str, Any] | None = None


@dataclass(slots=True)
class Activation:
    service_code: str
    country_id: int
    operator: str
    phone_number: str
    activation_id: int
    activation_cost: float
    activation_time: str
    can_get_another_sms: bool
    status: ActivationStatus = ActivationStatus.WAITING_CODE
    activation_end_time: str | None = None
    sms: str | None = None
    order_id: str | None = None
    price_irt: float | None = None


@dataclass(slots=True)
class CreateActivationParams:
    service_code: str
    country_id: int
    operator: str | None = None
    order_id: str | None = None


@dataclass(slots=True)
class ActivationStatusResponse:
    status: ActivationStatus
    code: str | None = None


@dataclass(slots=True)
class GetNumberV2Params:
    service: str
    country: int | None = None
    operator: str | None = None
    forward: bool | None = None
    ref: str | None = None
    phone_exception: str | None = None
    max_price: float | None = None
    activation_type: str | None = None
    language: str | None = None
    user_id: str | None = None
    order_id: str | None = None

    def to_query(self) -> dict[str, str]:
        """Vendor query parameters; unset options are left out."""
        q: dict[str, str] = {"service": self.service}
        if self.country is not None:
            q["country"] = str(self.country)
        if self.operator:
            q["operator"] = self.operator
        if self.forward is not None:
            q["forward"] = "1" if self.forward else "0"
        if self.ref:
            q["ref"] = self.ref
        if self.phone_exception:
            q["phoneException"] = self.phone_exception
        if self.max_price is not None:
            q["maxPrice"] = str(self.max_price)
        if self.activation_type:
            q["activationType"] = self.activation_type
        if self.language:
            q["language"] = self.language
        if self.user_id:
            q["userId"] = self.user_id
        if self.order_id:
            q["orderId"] = self.order_id
        return q


@dataclass(slots=True)
class ActivationStats:
    total: int = 0
    waiting: int = 0
    completed: int = 0
    cancelled: int = 0

