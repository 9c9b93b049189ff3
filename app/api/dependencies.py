# auth_api/app/api/dependencies.py
from functools import lru_cache

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.lockout import LockoutTracker
from app.core.security import CredentialHasher, ResetTokenIssuer, VerificationCodeIssuer
from app.core.tokens import TokenIssuer
from app.crud.crud_user import user as crud_user
from app.db.session import get_db
from app.models.user import User as UserModel
from app.services.account_service import AccountService
from app.services.email_service import EmailNotifier
from app.services.image_storage import LocalImageStore

# Define oauth2_scheme HERE using the correct tokenUrl
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")


@lru_cache
def get_token_issuer() -> TokenIssuer:
    """Chamado no startup do app: sem SECRET_KEY a aplicação não sobe."""
    return TokenIssuer(
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
        issuer=settings.JWT_ISSUER,
        audience=settings.JWT_AUDIENCE,
        access_expire_days=settings.ACCESS_TOKEN_EXPIRE_DAYS,
        refresh_expire_days=settings.REFRESH_TOKEN_EXPIRE_DAYS,
    )


@lru_cache
def get_account_service() -> AccountService:
    return AccountService(
        store=crud_user,
        hasher=CredentialHasher(rounds=settings.BCRYPT_ROUNDS),
        code_issuer=VerificationCodeIssuer(expire_minutes=settings.VERIFICATION_CODE_EXPIRE_MINUTES),
        reset_issuer=ResetTokenIssuer(expire_minutes=settings.RESET_PASSWORD_TOKEN_EXPIRE_MINUTES),
        token_issuer=get_token_issuer(),
        lockout=LockoutTracker(
            max_failed_attempts=settings.LOGIN_MAX_FAILED_ATTEMPTS,
            lockout_minutes=settings.LOGIN_LOCKOUT_MINUTES,
        ),
        notifier=EmailNotifier(settings),
        image_store=LocalImageStore(settings),
    )


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    token: str = Depends(oauth2_scheme),
    service: AccountService = Depends(get_account_service),
) -> UserModel:
    """
    Usuário autenticado pelo Bearer: token válido, usuário existente,
    email verificado e conta não bloqueada.
    """
    return await service.authenticate_token(db, token=token)


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
