# auth_api/app/core/tokens.py
from datetime import timedelta, timezone
from typing import Any, Dict

from jose import jwt, JWTError, ExpiredSignatureError
from pydantic import ValidationError

from app.core.clock import Clock, SystemClock
from app.core.exceptions import MissingSecretKeyError, TokenExpiredError, TokenInvalidError
from app.schemas.token import TokenClaims

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class TokenIssuer:
    """
    Emite e valida os JWTs de sessão (access) e de refresh.

    A chave é configuração do processo: instanciar sem SECRET_KEY é erro
    fatal de inicialização.
    """

    def __init__(
        self,
        secret_key: str,
        *,
        algorithm: str = "HS256",
        issuer: str = "user-onboarding-api",
        audience: str = "user-onboarding-client",
        access_expire_days: int = 7,
        refresh_expire_days: int = 30,
        clock: Clock | None = None,
    ):
        if not secret_key:
            raise MissingSecretKeyError("SECRET_KEY environment variable is required")
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.access_expire = timedelta(days=access_expire_days)
        self.refresh_expire = timedelta(days=refresh_expire_days)
        self.clock = clock or SystemClock()

    def issue_session(self, account_id: int, email: str, verified: bool, expires_delta: timedelta | None = None) -> str:
        return self._encode(account_id, email, verified, ACCESS_TOKEN_TYPE, expires_delta or self.access_expire)

    def issue_refresh(self, account_id: int, email: str, verified: bool, expires_delta: timedelta | None = None) -> str:
        return self._encode(account_id, email, verified, REFRESH_TOKEN_TYPE, expires_delta or self.refresh_expire)

    def _encode(self, account_id: int, email: str, verified: bool, token_type: str, lifetime: timedelta) -> str:
        # Clock devolve UTC naive; o JWT precisa do instante em UTC
        now = self.clock.now().replace(tzinfo=timezone.utc)
        to_encode: Dict[str, Any] = {
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "nbf": now,
            "exp": now + lifetime,
            "sub": str(account_id),
            "email": email,
            "email_verified": verified,
            "token_type": token_type,
        }
        return jwt.encode(to_encode, self._secret_key, algorithm=self.algorithm)

    def verify(self, token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_iss": True, "verify_aud": True},
            )
        except ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except JWTError as e:
            raise TokenInvalidError("Invalid token") from e

        if payload.get("token_type") != expected_type:
            raise TokenInvalidError(f"Expected a {expected_type} token")
        try:
            return TokenClaims.model_validate(payload)
        except ValidationError as e:
            raise TokenInvalidError("Malformed token claims") from e
