# src/sms_hub/products/raw.py

"""
Vendor payload shapes, exactly as the activation API sends them.

These are TypedDicts: the client returns plain JSON and the mapper reads it.
Field names keep the vendor's spelling (camelCase, snake_case mixed).
"""

from __future__ import annotations

from typing import NotRequired, TypedDict


class RawCountryData(TypedDict):
    id: int
    rus: str
    eng: str
    chn: str
    visible: int
    retry: int
    rent: int
    multiService: int


# Keyed by country id as a string.
RawCountriesResponse = dict[str, RawCountryData]


class RawService(TypedDict):
    code: str
    name: str


class RawServicesResponse(TypedDict):
    status: str  # "success" or an error marker
    services: list[RawService]


class RawTopCountryData(TypedDict):
    country: int
    count: int
    price: float
    retail_price: float
    freePriceMap: NotRequired[dict[str, int]]


RawTopCountriesResponse = dict[str, RawTopCountryData]


class RawGetNumberV2Response(TypedDict):
    activationId: int
    phoneNumber: str
    activationCost: float
    currency: int  # ISO 4217 numeric
    countryCode: str
    canGetAnotherSms: str  # "1" / "0"
    activationTime: str
    activationOperator: str
