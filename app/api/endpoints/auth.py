# auth_api/app/api/endpoints/auth.py
from typing import Any

from fastapi import APIRouter, Depends, Path, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_account_service, get_current_user
from app.db.session import get_db
from app.models.user import User as UserModel
from app.schemas.token import LoginResponse, RefreshTokenRequest, Token
from app.schemas.user import (
    CODE_PATTERN,
    ForgotPasswordRequest,
    LoginRequest,
    Message,
    ResendVerificationRequest,
    ResetPasswordRequest,
    VerificationResult,
    VerifyEmailRequest,
    normalize_email,
)
from app.services.account_service import AccountService

router = APIRouter()


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        401: {"description": "Invalid email or password"},
        403: {"description": "Email not verified"},
        423: {"description": "Account temporarily locked"},
    },
)
async def login(
    *,
    db: AsyncSession = Depends(get_db),
    credentials: LoginRequest,
    service: AccountService = Depends(get_account_service),
) -> Any:
    """
    Login com email e senha.

    Ordem das checagens: conta inexistente ou senha errada (mesma resposta
    genérica), conta bloqueada, email não verificado.
    """
    return await service.login(db, email=credentials.email, password=credentials.password)


@router.post("/token", response_model=LoginResponse, include_in_schema=True)
async def login_for_access_token(
    db: AsyncSession = Depends(get_db),
    form_data: OAuth2PasswordRequestForm = Depends(),
    service: AccountService = Depends(get_account_service),
) -> Any:
    """Mesmo fluxo do /login, no formato OAuth2 password (usado pelo Swagger UI)."""
    return await service.login(db, email=normalize_email(form_data.username), password=form_data.password)


@router.post("/refresh", response_model=Token)
async def refresh_access_token(
    *,
    db: AsyncSession = Depends(get_db),
    refresh_request: RefreshTokenRequest,
    service: AccountService = Depends(get_account_service),
) -> Any:
    return await service.refresh(db, refresh_token=refresh_request.refresh_token)


@router.post("/logout", response_model=Message)
async def logout(
    current_user: UserModel = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
) -> Any:
    return service.logout(current_user)


@router.post("/resend-verification", response_model=Message)
async def resend_verification(
    *,
    db: AsyncSession = Depends(get_db),
    request_body: ResendVerificationRequest,
    service: AccountService = Depends(get_account_service),
) -> Any:
    return await service.resend_verification(db, email=request_body.email)


@router.get("/verify/{code}", response_model=VerificationResult)
async def verify_email(
    *,
    db: AsyncSession = Depends(get_db),
    code: str = Path(..., pattern=CODE_PATTERN),
    service: AccountService = Depends(get_account_service),
) -> Any:
    return await service.verify_email(db, code=code)


@router.post("/verify", response_model=VerificationResult)
async def verify_email_with_code(
    *,
    db: AsyncSession = Depends(get_db),
    request_body: VerifyEmailRequest,
    service: AccountService = Depends(get_account_service),
) -> Any:
    return await service.verify_email_with_code(db, email=request_body.email, code=request_body.code)


@router.post("/forgot-password", response_model=Message, status_code=status.HTTP_202_ACCEPTED)
async def forgot_password(
    *,
    db: AsyncSession = Depends(get_db),
    request_body: ForgotPasswordRequest,
    service: AccountService = Depends(get_account_service),
) -> Any:
    return await service.forgot_password(db, email=request_body.email)


@router.post("/reset-password", response_model=Message)
async def reset_password(
    *,
    db: AsyncSession = Depends(get_db),
    request_body: ResetPasswordRequest,
    service: AccountService = Depends(get_account_service),
) -> Any:
    return await service.reset_password(db, token=request_body.token, new_password=request_body.new_password)
