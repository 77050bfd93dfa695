"""Domain error taxonomy surfaced to API clients.

Services raise these; the handler registered in ``commerce_api.main``
renders them as ``{"code": ..., "message": ...}`` with the class status.
"""

from __future__ import annotations


class CommerceError(Exception):
    """Base class for errors with a client-visible status and code."""

    status_code: int = 500
    code: str = "INTERNAL"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class BadRequestError(CommerceError):
    status_code = 400
    code = "BAD_REQUEST"


class UnauthorizedError(CommerceError):
    status_code = 401
    code = "UNAUTHORIZED"


class ForbiddenError(CommerceError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(CommerceError):
    status_code = 404
    code = "NOT_FOUND"


class PaymentProviderError(CommerceError):
    """The payment provider failed or timed out."""

    status_code = 502
    code = "PAYMENT_PROVIDER_ERROR"


class WebhookSignatureError(BadRequestError):
    """An inbound webhook failed signature verification."""

    code = "INVALID_SIGNATURE"
