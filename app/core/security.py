# auth_api/app/core/security.py
import asyncio
import hashlib
import secrets
from datetime import datetime, timedelta

from loguru import logger
from passlib.context import CryptContext

from app.core.exceptions import InternalError

# bcrypt ignora tudo após 72 bytes
BCRYPT_MAX_BYTES = 72


class CredentialHasher:
    """
    Hash de senha (bcrypt via passlib).

    O work factor é ajustável por `rounds`. Nem a senha nem o hash são
    registrados em log.
    """

    def __init__(self, rounds: int = 12):
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, password: str) -> str:
        # Limita o tamanho da senha ANTES de passar para o bcrypt
        password_bytes = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
        try:
            return self.pwd_context.hash(password_bytes)
        except Exception as e:
            logger.error(f"Falha ao gerar hash de senha: {type(e).__name__}")
            raise InternalError("Could not process credentials.") from e

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        if not hashed_password:
            return False
        try:
            password_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
            return self.pwd_context.verify(password_bytes, hashed_password)
        except (ValueError, TypeError):
            # Hash armazenado malformado ou de esquema desconhecido
            logger.warning("Hash de senha armazenado inválido; verificação negada.")
            return False

    # bcrypt é CPU-bound: roda no executor padrão para não travar o event loop
    async def hash_async(self, password: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.hash, password)

    async def verify_async(self, plain_password: str, hashed_password: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.verify, plain_password, hashed_password)


class VerificationCodeIssuer:
    """Códigos numéricos de 6 dígitos para confirmação de email."""

    CODE_MIN = 100000
    CODE_MAX = 999999

    def __init__(self, expire_minutes: int = 60):
        self.validity = timedelta(minutes=expire_minutes)

    def issue(self, now: datetime) -> tuple[str, datetime]:
        code = str(self.CODE_MIN + secrets.randbelow(self.CODE_MAX - self.CODE_MIN + 1))
        return code, now + self.validity

    def validate(
        self,
        submitted_code: str | None,
        stored_code: str | None,
        stored_expiry: datetime | None,
        now: datetime,
    ) -> bool:
        if not submitted_code or not stored_code or stored_expiry is None:
            return False
        code_matches = secrets.compare_digest(
            submitted_code.encode("utf-8"), stored_code.encode("utf-8")
        )
        # Código errado e código expirado são a mesma falha para o chamador
        return code_matches and now < stored_expiry


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class ResetTokenIssuer:
    """
    Tokens opacos de redefinição de senha.

    Só o SHA-256 do token é persistido; o token em texto puro vai apenas
    no email.
    """

    TOKEN_BYTES = 32

    def __init__(self, expire_minutes: int = 10):
        self.validity = timedelta(minutes=expire_minutes)

    def issue(self, now: datetime) -> tuple[str, str, datetime]:
        token = secrets.token_hex(self.TOKEN_BYTES)
        return token, hash_token(token), now + self.validity

    def consume(
        self,
        submitted_token: str | None,
        stored_hash: str | None,
        stored_expiry: datetime | None,
        now: datetime,
    ) -> bool:
        if not submitted_token or not stored_hash or stored_expiry is None:
            return False
        matches = secrets.compare_digest(hash_token(submitted_token), stored_hash)
        return matches and now < stored_expiry
