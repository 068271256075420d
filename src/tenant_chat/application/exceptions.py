from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class AuthError(AppError):
    """Missing, invalid or expired credential, or tenant mismatch."""


class AuthzError(AppError):
    """Authenticated caller is not allowed to touch the resource."""


class NotFoundError(AppError):
    pass


class ValidationError(AppError):
    pass


class TransportError(AppError):
    """A write to a live connection failed."""
