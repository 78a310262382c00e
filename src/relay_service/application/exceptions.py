from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class ForbiddenError(AppError):
    pass


class ValidationError(AppError):
    pass


class AuthError(AppError):
    """Credential rejected. Terminal: the peer must not retry."""

    close_code: int = 4003

    def __init__(self, detail: str = "", *, close_code: int | None = None) -> None:
        super().__init__(detail)
        if close_code is not None:
            self.close_code = close_code


class MissingCredentialError(AuthError):
    close_code = 4001

    def __init__(self, detail: str = "No token provided") -> None:
        super().__init__(detail)


class InvalidCredentialError(AuthError):
    close_code = 4003

    def __init__(self, detail: str = "Invalid token") -> None:
        super().__init__(detail)


AUTH_CLOSE_CODES = frozenset(
    {MissingCredentialError.close_code, InvalidCredentialError.close_code}
)


class TransientConnectionError(AppError):
    """Disconnect or connect failure that is retried with backoff."""


class SendError(AppError):
    """Outbound send failed. Surfaces only as a ``failed`` message status."""


class ProviderError(SendError):
    """The messaging provider rejected or failed a request."""

    def __init__(self, detail: str = "", *, status_code: int = 502, error: object = None) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.error = error


class PersistenceError(AppError):
    pass


class MalformedEventError(AppError):
    pass
