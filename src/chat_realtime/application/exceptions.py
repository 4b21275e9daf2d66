from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    code = "error"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class AuthenticationFailedError(AppError):
    code = "authentication_failed"


class InvalidRequestError(AppError):
    code = "invalid_request"


class UnauthorizedError(AppError):
    code = "unauthorized"


class DeliveryFailedError(AppError):
    code = "delivery_failed"
