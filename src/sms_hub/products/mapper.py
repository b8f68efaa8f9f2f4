# src/sms_hub/products/mapper.py

"""
Raw vendor payload -> normalized records.

Pure, stateless functions: field renames, enum translation and
predictable image paths derived from names/codes.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from .models import (
    Activation,
    ActivationStatus,
    ActivationStatusResponse,
    Country,
    CountryService,
    CreateActivationParams,
    Service,
)
from .raw import (
    RawCountriesResponse,
    RawCountryData,
    RawGetNumberV2Response,
    RawService,
    RawServicesResponse,
    RawTopCountriesResponse,
    RawTopCountryData,
)

COUNTRIES_IMAGE_BASE = "/public/countries/"
SERVICES_IMAGE_BASE = "/public/brand/"


def format_name_for_image(name: str) -> str:
    """'sri lanka' -> 'Sri-Lanka'."""
    words = [w for w in name.strip().split(" ") if w]
    return "-".join(w[:1].upper() + w[1:].lower() for w in words)


def country_image_path(name: str) -> str:
    return f"{COUNTRIES_IMAGE_BASE}{format_name_for_image(name)}.webp"


def service_image_path(code: str) -> str:
    return f"{SERVICES_IMAGE_BASE}{code}0.webp"


def map_country(raw: RawCountryData, country_key: str) -> Country:
    # The payload carries its own id; the dict key is only a fallback.
    raw_id = raw.get("id")
    return Country(
        id=int(raw_id if raw_id is not None else country_key),
        name=raw["eng"],
        visible=int(raw.get("visible", 0)),
        retry=int(raw.get("retry", 0)),
        rent=int(raw.get("rent", 0)),
        multi_service=int(raw.get("multiService", 0)),
        image=country_image_path(raw["eng"]),
    )


def map_countries_list(raw: RawCountriesResponse) -> list[Country]:
    return [map_country(data, key) for key, data in raw.items()]


def map_service(raw: RawService) -> Service:
    return Service(code=raw["code"], name=raw["name"], image=service_image_path(raw["code"]))


def map_services_list(raw: RawServicesResponse) -> list[Service]:
    if raw.get("status") != "success" or not raw.get("services"):
        return []
    return [map_service(s) for s in raw["services"]]


def map_country_service(raw: RawTopCountryData, service_code: str) -> CountryService:
    return CountryService(
        service_code=service_code,
        country_id=int(raw["country"]),
        count=int(raw["count"]),
        price=float(raw["price"]),
        retail_price=float(raw["retail_price"]),
    )


def map_country_service_list(
    raw: RawTopCountriesResponse,
    service_code: str | None = None,
) -> list[CountryService]:
    """
    When `service_code` is given (a per-service query) every row gets it;
    otherwise the payload key is taken as the service code.
    """
    return [map_country_service(data, service_code or key) for key, data in raw.items()]


def _flag(value: Any) -> bool:
    return str(value).strip().lower() in {"1", "true"}


def map_activation(raw: RawGetNumberV2Response, params: CreateActivationParams) -> Activation:
    return Activation(
        service_code=params.service_code,
        country_id=params.country_id,
        operator=str(raw.get("activationOperator") or ""),
        phone_number=str(raw["phoneNumber"]),
        activation_id=int(raw["activationId"]),
        activation_cost=float(raw.get("activationCost") or 0.0),
        activation_time=str(raw.get("activationTime") or ""),
        can_get_another_sms=_flag(raw.get("canGetAnotherSms")),
        status=ActivationStatus.WAITING_CODE,
        order_id=params.order_id,
    )


def update_activation_status(
    activation: Activation,
    response: ActivationStatusResponse | Mapping[str, Any],
) -> Activation:
    """Return a copy of `activation` carrying the polled status (and SMS code, if any)."""
    if isinstance(response, ActivationStatusResponse):
        status, code = response.status, response.code
    else:
        status, code = ActivationStatus(response["status"]), response.get("code")

    updated = dataclasses.replace(activation, status=status)
    if code:
        updated.sms = code
        if status is ActivationStatus.OK:
            updated.activation_end_time = datetime.now(timezone.utc).isoformat()
    return updated
