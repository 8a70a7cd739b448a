"""Billing exception types shared by services and routes."""
from typing import Any, Optional


class BillingError(Exception):
    """Base billing exception. Carries the HTTP status it maps to."""

    status_code = 500
    default_detail = "Billing error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(BillingError):
    """Missing or invalid user input."""

    status_code = 422
    default_detail = "Invalid request"


class AuthError(BillingError):
    status_code = 401
    default_detail = "Not authenticated"


class ForbiddenError(BillingError):
    """Admin-only action, missing subscription or exhausted quota."""

    status_code = 403
    default_detail = "Forbidden"


class NotFoundError(BillingError):
    status_code = 404
    default_detail = "Not found"


class ConflictError(BillingError):
    """The caller must take a different action (usually re-subscribe)."""

    status_code = 409
    default_detail = "Conflict"


class ConfigurationError(BillingError):
    """Missing credential or URL. Retrying will not help."""

    status_code = 500
    default_detail = "Billing is not configured"


class ProviderError(BillingError):
    """
    Non-2xx answer (or transport failure) from the payment provider.
    `provider_status` is None when the provider could not be reached.
    """

    status_code = 502
    default_detail = "Payment provider error"

    def __init__(
        self,
        detail: Optional[str] = None,
        provider_status: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(detail)
        self.provider_status = provider_status
        self.payload = payload

    @property
    def is_not_found(self) -> bool:
        return self.provider_status == 404
