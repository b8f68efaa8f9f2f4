# src/sms_hub/core/errors.py

from __future__ import annotations


class SmsHubError(Exception):
    """Base class for all errors raised by sms_hub."""


# ---- external API ----


class ApiError(SmsHubError):
    """Failure while talking to an external HTTP API."""


class ApiRequestError(ApiError):
    """Transport failure: network error or non-2xx HTTP status."""


class VendorError(ApiError):
    """The vendor answered with a recognized error token."""

    def __init__(self, message: str, token: str | None = None) -> None:
        super().__init__(message)
        self.token = token


class UnexpectedResponseError(ApiError):
    """The vendor answered with something we do not know how to read."""


# ---- database ----


class DatabaseError(SmsHubError):
    """Database call failed. "Not found" is never reported this way."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        entity: str,
        code: str = "UNKNOWN",
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.entity = entity
        self.code = code


# ---- pricing ----


class PricingError(SmsHubError):
    """Pricing cannot produce a rate (e.g. manual source without a rate)."""


# ---- task queue ----


class QueueError(SmsHubError):
    """Base class for task queue failures."""


class QueueUnavailableError(QueueError):
    """The queue does not accept new work."""


class QueueStoppedError(QueueUnavailableError):
    """The queue was stopped before the task could run."""


class QueueClearedError(QueueError):
    """The task was removed from the queue by clear()."""


class TaskCancelledError(QueueError):
    """The task's callable was cancelled while it was executing."""
