# auth_api/app/core/exceptions.py
from datetime import datetime
from typing import Any


class AccountError(Exception):
    """
    Base de todos os resultados de falha do AccountService.
    Cada subclasse corresponde a um tipo de erro exposto à camada HTTP.
    """
    kind = "internal"
    status_code = 500
    default_message = "An unexpected error occurred. Please try again."

    def __init__(self, message: str | None = None, *, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ConflictError(AccountError):
    kind = "conflict"
    status_code = 409
    default_message = "User with this email already exists"


class ValidationFailedError(AccountError):
    kind = "validation_failed"
    status_code = 400
    default_message = "Validation failed"

    def __init__(self, message: str | None = None, *, field: str | None = None, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or ([{"field": field, "message": self.message}] if field else [])


class InvalidCredentialsError(AccountError):
    kind = "invalid_credentials"
    status_code = 401
    default_message = "Invalid email or password"


class AccountLockedError(AccountError):
    """Exceção levantada quando uma tentativa de login é feita em uma conta bloqueada."""
    kind = "account_locked"
    status_code = 423
    default_message = "Account is temporarily locked due to too many failed login attempts. Please try again later."

    def __init__(self, message: str | None = None, locked_until: datetime | None = None):
        super().__init__(message)
        self.locked_until = locked_until


class VerificationRequiredError(AccountError):
    kind = "verification_required"
    status_code = 403
    default_message = "Please verify your email address before logging in"


class InvalidOrExpiredCodeError(AccountError):
    kind = "invalid_or_expired_code"
    status_code = 400
    default_message = "Invalid or expired verification code"


class InvalidOrExpiredTokenError(AccountError):
    kind = "invalid_or_expired_token"
    status_code = 400
    default_message = "Invalid or expired reset token"


class UnauthorizedError(AccountError):
    kind = "unauthorized"
    status_code = 401
    default_message = "Current password is incorrect"


class InternalError(AccountError):
    kind = "internal"
    status_code = 500


# --- Erros do TokenIssuer (não chegam ao cliente diretamente) ---
class MissingSecretKeyError(RuntimeError):
    """SECRET_KEY ausente: erro de boot, nunca de request."""


class TokenError(Exception):
    pass


class TokenExpiredError(TokenError):
    pass


class TokenInvalidError(TokenError):
    pass
# --- Fim erros TokenIssuer ---


class ConcurrentUpdateError(InternalError):
    default_message = "The account was modified concurrently. Please try again."
