"""Exception hierarchy shared by services and routes.

Routes translate these into JSON responses; services raise them and never
build HTTP responses themselves.
"""

from __future__ import annotations


class StorefrontError(Exception):
    """Base class for all storefront errors."""

    status_code = 500


class ValidationError(StorefrontError):
    """Caller sent an unusable request."""

    status_code = 400


class NotFoundError(StorefrontError):
    """Referenced record does not exist."""

    status_code = 404


class StoreError(StorefrontError):
    """Storage backend failed to read or write."""


class PaymentProviderError(StorefrontError):
    """Payment provider call failed.

    ``is_client_error`` is set for card and invalid-request failures, which
    are the caller's fault rather than an outage.
    """

    def __init__(self, message: str, is_client_error: bool = False):
        super().__init__(message)
        self.is_client_error = is_client_error
        self.status_code = 400 if is_client_error else 500


class EmailDeliveryError(StorefrontError):
    """Email provider rejected or failed to accept a message."""

    def __init__(self, message: str, details: str = ""):
        super().__init__(message)
        self.details = details
