# auth_api/app/crud/crud_user.py
from datetime import datetime
from typing import Callable, Optional, TypeVar

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import AccountError, ConcurrentUpdateError, ConflictError
from app.crud.base import CRUDBase
from app.models.user import User

T = TypeVar("T")

ATOMIC_UPDATE_MAX_ATTEMPTS = 5


class CRUDUser(CRUDBase[User]):
    async def get_by_email(self, db: AsyncSession, *, email: str) -> Optional[User]:
        stmt = select(User).filter(User.email == email)
        result = await db.execute(stmt)
        return result.scalars().first()

    async def get_by_verification_code(self, db: AsyncSession, *, code: str) -> Optional[User]:
        # A expiração é conferida pelo VerificationCodeIssuer, não aqui
        stmt = select(User).where(
            User.verification_code == code,
            User.is_verified == False,  # noqa: E712
        )
        result = await db.execute(stmt)
        return result.scalars().first()

    async def verification_code_in_use(
        self, db: AsyncSession, *, code: str, now: datetime, exclude_id: int | None = None
    ) -> bool:
        stmt = select(User.id).where(
            User.verification_code == code,
            User.verification_code_expires > now,
            User.is_verified == False,  # noqa: E712
        )
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        result = await db.execute(stmt.limit(1))
        return result.first() is not None

    async def get_by_reset_token_hash(self, db: AsyncSession, *, token_hash: str) -> Optional[User]:
        stmt = select(User).where(User.reset_password_token_hash == token_hash)
        result = await db.execute(stmt)
        return result.scalars().first()

    async def create(
        self,
        db: AsyncSession,
        *,
        email: str,
        hashed_password: str,
        full_name: str,
        verification_code: str,
        verification_code_expires: datetime,
    ) -> User:
        db_obj = User(
            email=email,
            hashed_password=hashed_password,
            full_name=full_name,
            is_verified=False,
            verification_code=verification_code,
            verification_code_expires=verification_code_expires,
            failed_login_attempts=0,
        )
        try:
            return await self.add(db, db_obj=db_obj)
        except IntegrityError as e:
            # Dois registros simultâneos com o mesmo email: o unique do banco decide
            await db.rollback()
            logger.warning(f"Integrity error ao criar usuário {email}: {e.orig}")
            raise ConflictError() from e

    async def atomic_update(
        self,
        db: AsyncSession,
        *,
        id: int,
        mutation: Callable[[User], T],
        max_attempts: int = ATOMIC_UPDATE_MAX_ATTEMPTS,
    ) -> Optional[tuple[User, T]]:
        """
        Read-modify-write serializado por conta.

        Recarrega a linha (FOR UPDATE onde o banco suporta), aplica `mutation`
        e faz commit. O `version_id` do modelo faz o commit falhar com
        StaleDataError se outra requisição alterou a conta nesse meio tempo;
        nesse caso a mutação é reaplicada sobre o estado novo.

        Se `mutation` levantar AccountError, nada é gravado e o erro propaga.
        O rollback expira TODAS as instâncias da sessão: objetos carregados
        antes (ex: `current_user` da requisição) não devem ser lidos depois
        disso sem um novo select.
        Retorna None se a conta não existe.
        """
        for attempt in range(1, max_attempts + 1):
            stmt = (
                select(User)
                .where(User.id == id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            result = await db.execute(stmt)
            user = result.scalars().first()
            if user is None:
                await db.rollback()
                return None

            try:
                outcome = mutation(user)
            except AccountError:
                await db.rollback()
                raise

            try:
                await db.commit()
            except StaleDataError:
                await db.rollback()
                logger.warning(f"Conflito de versão ao atualizar usuário ID {id} (tentativa {attempt}/{max_attempts}).")
                continue

            await db.refresh(user)
            return user, outcome

        logger.error(f"Atualização do usuário ID {id} desistiu após {max_attempts} conflitos.")
        raise ConcurrentUpdateError()


user = CRUDUser(User)
