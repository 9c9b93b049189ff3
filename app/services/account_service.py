# auth_api/app/services/account_service.py
from datetime import datetime
from typing import Awaitable, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, SystemClock
from app.core.exceptions import (
    AccountError,
    AccountLockedError,
    ConflictError,
    InternalError,
    InvalidCredentialsError,
    InvalidOrExpiredCodeError,
    InvalidOrExpiredTokenError,
    TokenError,
    TokenExpiredError,
    UnauthorizedError,
    ValidationFailedError,
    VerificationRequiredError,
)
from app.core.lockout import FailureOutcome, LockoutTracker
from app.core.logging import log_auth_event
from app.core.security import CredentialHasher, ResetTokenIssuer, VerificationCodeIssuer, hash_token
from app.core.tokens import ACCESS_TOKEN_TYPE, REFRESH_TOKEN_TYPE, TokenIssuer
from app.crud.crud_user import CRUDUser
from app.models.user import User as UserModel
from app.schemas.token import LoginResponse, Token
from app.schemas.user import Message, UserCreate, UserPublic, VerificationResult
from app.services.email_service import Notifier
from app.services.image_storage import ImageStore, ImageUpload

RESEND_VERIFICATION_MESSAGE = "If the email exists and is not verified, a verification email has been sent."
FORGOT_PASSWORD_MESSAGE = "If the email exists, a password reset link has been sent."
RESET_PASSWORD_SUCCESS_MESSAGE = "Password reset successful. You can now login with your new password."
CHANGE_PASSWORD_SUCCESS_MESSAGE = "Password changed successfully"

UNIQUE_CODE_ATTEMPTS = 5


class AccountService:
    """
    Máquina de estados de segurança da conta.

    Orquestra registro, verificação de email, login com bloqueio, reset e
    troca de senha e refresh de sessão sobre o registro User. Toda mutação
    passa por `CRUDUser.atomic_update`; emails e imagens são efeitos
    colaterais best-effort que nunca desfazem uma transição já gravada.

    Falhas de regra de negócio saem como subclasses de AccountError.
    """

    def __init__(
        self,
        *,
        store: CRUDUser,
        hasher: CredentialHasher,
        code_issuer: VerificationCodeIssuer,
        reset_issuer: ResetTokenIssuer,
        token_issuer: TokenIssuer,
        lockout: LockoutTracker,
        notifier: Notifier,
        image_store: ImageStore,
        clock: Clock | None = None,
    ):
        self.store = store
        self.hasher = hasher
        self.code_issuer = code_issuer
        self.reset_issuer = reset_issuer
        self.token_issuer = token_issuer
        self.lockout = lockout
        self.notifier = notifier
        self.image_store = image_store
        self.clock = clock or SystemClock()

    # --- Helpers ---
    async def _notify(self, what: str, send: Awaitable[bool], *, user_id: int, email: str) -> bool:
        try:
            delivered = await send
        except Exception as e:
            logger.error(f"Falha ao enviar email de {what} para usuário ID {user_id} ({email}): {e}")
            return False
        if not delivered:
            logger.warning(f"Email de {what} não entregue para usuário ID {user_id} ({email}).")
        return delivered

    async def _issue_unique_code(
        self, db: AsyncSession, now: datetime, exclude_id: int | None = None
    ) -> tuple[str, datetime]:
        # GET /verify/{code} resolve a conta só pelo código, então evitamos
        # dois códigos ativos iguais
        for _ in range(UNIQUE_CODE_ATTEMPTS):
            code, expires_at = self.code_issuer.issue(now)
            in_use = await self.store.verification_code_in_use(db, code=code, now=now, exclude_id=exclude_id)
            if not in_use:
                return code, expires_at
        logger.error(f"Nenhum código de verificação livre após {UNIQUE_CODE_ATTEMPTS} sorteios.")
        raise InternalError("Could not issue a verification code. Please try again.")

    def _locked_error(self, user: UserModel, now: datetime) -> AccountLockedError:
        minutes = self.lockout.remaining_lock_minutes(user, now)
        return AccountLockedError(
            "Account is temporarily locked due to too many failed login attempts. "
            f"Please try again in {minutes} minute(s).",
            locked_until=user.locked_until,
        )

    def _issue_tokens(self, user: UserModel) -> tuple[str, str]:
        try:
            access_token = self.token_issuer.issue_session(user.id, user.email, user.is_verified)
            refresh_token = self.token_issuer.issue_refresh(user.id, user.email, user.is_verified)
        except Exception as e:
            logger.exception(f"Falha ao assinar tokens para usuário ID {user.id}")
            raise InternalError("Could not issue authentication token.") from e
        return access_token, refresh_token
    # --- Fim Helpers ---

    async def register(
        self, db: AsyncSession, *, user_in: UserCreate, image: Optional[ImageUpload] = None
    ) -> UserPublic:
        email = user_in.email
        log_auth_event("Registration", email=email)

        if image is not None:
            self.image_store.validate(image.content, image.content_type)

        if await self.store.get_by_email(db, email=email):
            log_auth_event("Registration failed - email exists", email=email)
            raise ConflictError()

        # Hash explícito: nada de hook implícito na persistência
        hashed_password = await self.hasher.hash_async(user_in.password)
        now = self.clock.now()
        code, code_expires = await self._issue_unique_code(db, now)

        user = await self.store.create(
            db,
            email=email,
            hashed_password=hashed_password,
            full_name=user_in.full_name,
            verification_code=code,
            verification_code_expires=code_expires,
        )
        log_auth_event("User created", user.id, email)

        await self._notify(
            "verificação",
            self.notifier.send_verification_code(user.email, user.full_name, code),
            user_id=user.id,
            email=user.email,
        )

        if image is not None:
            user = await self._attach_image_best_effort(db, user, image)

        return UserPublic.model_validate(user)

    async def _attach_image_best_effort(self, db: AsyncSession, user: UserModel, image: ImageUpload) -> UserModel:
        try:
            url = await self.image_store.store(image.content, image.filename, image.content_type)
        except Exception as e:
            # Conta já criada continua válida, só sem imagem
            logger.error(f"Falha ao gravar imagem de perfil no registro do usuário ID {user.id}: {e}")
            return user

        def set_image(u: UserModel) -> None:
            u.profile_image_url = url

        result = await self.store.atomic_update(db, id=user.id, mutation=set_image)
        return result[0] if result else user

    async def resend_verification(self, db: AsyncSession, *, email: str) -> Message:
        user = await self.store.get_by_email(db, email=email)
        if user is None:
            logger.warning(f"Reenvio de verificação para email não existente: {email}")
            return Message(msg=RESEND_VERIFICATION_MESSAGE)
        if user.is_verified:
            raise ValidationFailedError("User is already verified", field="email")

        now = self.clock.now()
        code, code_expires = await self._issue_unique_code(db, now, exclude_id=user.id)

        def reissue(u: UserModel) -> None:
            if u.is_verified:
                raise ValidationFailedError("User is already verified", field="email")
            # Sobrescreve qualquer código anterior: no máximo um ativo por conta
            u.verification_code = code
            u.verification_code_expires = code_expires

        result = await self.store.atomic_update(db, id=user.id, mutation=reissue)
        if result is None:
            return Message(msg=RESEND_VERIFICATION_MESSAGE)
        user, _ = result

        await self._notify(
            "verificação",
            self.notifier.send_verification_code(user.email, user.full_name, code),
            user_id=user.id,
            email=user.email,
        )
        log_auth_event("Verification email resent", user.id, user.email)
        return Message(msg=RESEND_VERIFICATION_MESSAGE)

    async def verify_email(self, db: AsyncSession, *, code: str) -> VerificationResult:
        log_auth_event("email verification attempt")
        user = await self.store.get_by_verification_code(db, code=code)
        if user is None:
            log_auth_event("email verification failed - invalid code")
            raise InvalidOrExpiredCodeError()
        return await self._complete_verification(db, account_id=user.id, code=code)

    async def verify_email_with_code(self, db: AsyncSession, *, email: str, code: str) -> VerificationResult:
        log_auth_event("email verification with code attempt", email=email)
        user = await self.store.get_by_email(db, email=email)
        if user is None:
            raise InvalidOrExpiredCodeError("Invalid email or verification code")
        return await self._complete_verification(
            db, account_id=user.id, code=code, failure_message="Invalid email or verification code"
        )

    async def _complete_verification(
        self, db: AsyncSession, *, account_id: int, code: str, failure_message: str | None = None
    ) -> VerificationResult:
        now = self.clock.now()

        def verify(u: UserModel) -> bool:
            if u.is_verified:
                return False
            if not self.code_issuer.validate(code, u.verification_code, u.verification_code_expires, now):
                raise InvalidOrExpiredCodeError(failure_message)
            u.is_verified = True
            u.verification_code = None
            u.verification_code_expires = None
            return True

        result = await self.store.atomic_update(db, id=account_id, mutation=verify)
        if result is None:
            raise InvalidOrExpiredCodeError(failure_message)
        user, newly_verified = result

        if not newly_verified:
            log_auth_event("email verification already verified", user.id, user.email)
            return VerificationResult(user=UserPublic.model_validate(user), already_verified=True)

        log_auth_event("email verification success", user.id, user.email)
        await self._notify(
            "boas-vindas",
            self.notifier.send_welcome(user.email, user.full_name),
            user_id=user.id,
            email=user.email,
        )
        return VerificationResult(user=UserPublic.model_validate(user), verified_at=now)

    async def login(self, db: AsyncSession, *, email: str, password: str) -> LoginResponse:
        log_auth_event("Login attempt", email=email)
        now = self.clock.now()

        # Ordem fixa: inexistente -> bloqueada -> não verificada -> senha
        user = await self.store.get_by_email(db, email=email)
        if user is None:
            log_auth_event("Login failed - user not found", email=email)
            raise InvalidCredentialsError()

        if self.lockout.is_locked(user, now):
            log_auth_event("Login failed - account locked", user.id, email)
            raise self._locked_error(user, now)

        if not user.is_verified:
            log_auth_event("Login failed - not verified", user.id, email)
            raise VerificationRequiredError()

        if not await self.hasher.verify_async(password, user.hashed_password):
            log_auth_event("Login failed - wrong password", user.id, email)

            def fail(u: UserModel) -> FailureOutcome:
                # Bloqueada por outra requisição depois da checagem: não conta
                if self.lockout.is_locked(u, now):
                    raise self._locked_error(u, now)
                return self.lockout.register_failure(u, now)

            result = await self.store.atomic_update(db, id=user.id, mutation=fail)
            if result is not None and result[1] == FailureOutcome.LOCKED:
                logger.warning(
                    f"CONTA BLOQUEADA: {email} bloqueada por {self.lockout.lockout_duration} devido a tentativas falhas."
                )
            raise InvalidCredentialsError()

        def succeed(u: UserModel) -> None:
            # Outra requisição pode ter bloqueado a conta depois da checagem acima
            if self.lockout.is_locked(u, now):
                raise self._locked_error(u, now)
            self.lockout.register_success(u, now)

        result = await self.store.atomic_update(db, id=user.id, mutation=succeed)
        if result is None:
            raise InvalidCredentialsError()
        user, _ = result

        access_token, refresh_token = self._issue_tokens(user)
        log_auth_event("Login success", user.id, email)
        return LoginResponse(
            user=UserPublic.model_validate(user),
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="bearer",
        )

    async def forgot_password(self, db: AsyncSession, *, email: str) -> Message:
        log_auth_event("PASSWORD_RESET_REQUEST", email=email)
        try:
            user = await self.store.get_by_email(db, email=email)
            if user is None:
                logger.warning(f"Tentativa de /forgot-password para email não existente: {email}")
            else:
                token, token_hash, expires_at = self.reset_issuer.issue(self.clock.now())

                def store_reset_token(u: UserModel) -> None:
                    u.reset_password_token_hash = token_hash
                    u.reset_password_token_expires = expires_at

                result = await self.store.atomic_update(db, id=user.id, mutation=store_reset_token)
                if result is not None:
                    await self._notify(
                        "reset de senha",
                        self.notifier.send_password_reset(user.email, user.full_name, token),
                        user_id=user.id,
                        email=user.email,
                    )
                    log_auth_event("PASSWORD_RESET_EMAIL_SENT", user.id, email)
        except Exception as e:
            # Mesma resposta para qualquer caso: nada de enumeração de usuários
            logger.error(f"Erro no fluxo /forgot-password para {email}: {e}")
        return Message(msg=FORGOT_PASSWORD_MESSAGE)

    async def reset_password(self, db: AsyncSession, *, token: str, new_password: str) -> Message:
        log_auth_event("PASSWORD_RESET_ATTEMPT")
        now = self.clock.now()

        user = await self.store.get_by_reset_token_hash(db, token_hash=hash_token(token))
        if user is None or not self.reset_issuer.consume(
            token, user.reset_password_token_hash, user.reset_password_token_expires, now
        ):
            log_auth_event("PASSWORD_RESET_FAILED_INVALID_TOKEN")
            raise InvalidOrExpiredTokenError()

        new_hash = await self.hasher.hash_async(new_password)

        def consume_and_replace(u: UserModel) -> None:
            # Revalida sobre o estado recarregado: um token nunca vale duas vezes
            if not self.reset_issuer.consume(token, u.reset_password_token_hash, u.reset_password_token_expires, now):
                raise InvalidOrExpiredTokenError()
            u.hashed_password = new_hash
            u.reset_password_token_hash = None
            u.reset_password_token_expires = None

        result = await self.store.atomic_update(db, id=user.id, mutation=consume_and_replace)
        if result is None:
            raise InvalidOrExpiredTokenError()
        user, _ = result
        log_auth_event("PASSWORD_RESET_SUCCESS", user.id, user.email)
        return Message(msg=RESET_PASSWORD_SUCCESS_MESSAGE)

    async def change_password(
        self, db: AsyncSession, *, account_id: int, current_password: str, new_password: str
    ) -> Message:
        user = await self.store.get(db, id=account_id)
        if user is None:
            raise UnauthorizedError("Authentication required")

        current_hash = user.hashed_password
        if not await self.hasher.verify_async(current_password, current_hash):
            log_auth_event("PASSWORD_CHANGE_FAILED_INVALID_CURRENT", user.id, user.email)
            raise UnauthorizedError()

        new_hash = await self.hasher.hash_async(new_password)

        def replace(u: UserModel) -> None:
            if u.hashed_password != current_hash:
                # Senha trocada por outra requisição depois da verificação
                raise UnauthorizedError()
            u.hashed_password = new_hash

        result = await self.store.atomic_update(db, id=account_id, mutation=replace)
        if result is None:
            raise UnauthorizedError("Authentication required")
        user, _ = result
        log_auth_event("password changed", user.id, user.email)
        return Message(msg=CHANGE_PASSWORD_SUCCESS_MESSAGE)

    async def refresh(self, db: AsyncSession, *, refresh_token: str) -> Token:
        try:
            claims = self.token_issuer.verify(refresh_token, expected_type=REFRESH_TOKEN_TYPE)
        except TokenError as e:
            logger.warning(f"Token refresh failed: {e}")
            raise InvalidOrExpiredTokenError("Invalid or expired refresh token", status_code=401) from e

        user = await self.store.get(db, id=claims.account_id)
        if user is None or not user.is_verified:
            raise InvalidOrExpiredTokenError("Invalid refresh token", status_code=401)

        access_token, new_refresh_token = self._issue_tokens(user)
        log_auth_event("refreshed", user.id, user.email)
        return Token(access_token=access_token, refresh_token=new_refresh_token, token_type="bearer")

    async def authenticate_token(self, db: AsyncSession, *, token: str) -> UserModel:
        try:
            claims = self.token_issuer.verify(token, expected_type=ACCESS_TOKEN_TYPE)
        except TokenExpiredError as e:
            raise InvalidOrExpiredTokenError("Token has expired", status_code=401) from e
        except TokenError as e:
            raise InvalidOrExpiredTokenError("Invalid token", status_code=401) from e

        user = await self.store.get(db, id=claims.account_id)
        if user is None:
            raise InvalidOrExpiredTokenError("Token is valid but user no longer exists", status_code=401)
        if not user.is_verified:
            raise VerificationRequiredError(
                "Please verify your email address to access this resource", status_code=401
            )
        now = self.clock.now()
        if self.lockout.is_locked(user, now):
            raise self._locked_error(user, now)
        return user

    def get_profile(self, user: UserModel) -> UserPublic:
        return UserPublic.model_validate(user)

    async def update_profile(
        self,
        db: AsyncSession,
        *,
        account_id: int,
        full_name: Optional[str] = None,
        image: Optional[ImageUpload] = None,
    ) -> UserPublic:
        image_url = None
        if image is not None:
            try:
                image_url = await self.image_store.store(image.content, image.filename, image.content_type)
            except AccountError:
                raise
            except Exception as e:
                logger.error(f"Falha no upload da imagem de perfil do usuário ID {account_id}: {e}")
                raise InternalError("Image upload failed") from e

        def apply(u: UserModel) -> None:
            if full_name:
                u.full_name = full_name
            if image_url:
                u.profile_image_url = image_url

        result = await self.store.atomic_update(db, id=account_id, mutation=apply)
        if result is None:
            raise UnauthorizedError("Authentication required")
        user, _ = result
        logger.info(f"Perfil atualizado para usuário ID {user.id}")
        return UserPublic.model_validate(user)

    def logout(self, user: UserModel) -> Message:
        # Tokens são stateless: o cliente descarta o par access/refresh
        log_auth_event("Logout", user.id, user.email)
        return Message(msg="Logged out successfully")
