# auth_api/app/models/user.py
from sqlalchemy import String, DateTime, func, Boolean, Integer
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional

from app.db.base import Base

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(50))
    profile_image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # --- Campos Verificação ---
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verification_code: Mapped[Optional[str]] = mapped_column(String(6), index=True)
    verification_code_expires: Mapped[Optional[datetime]] = mapped_column(DateTime)
    # --- Fim Campos Verificação ---

    reset_password_token_hash: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    reset_password_token_expires: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # --- Campos: Account Lockout ---
    failed_login_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    locked_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True) # Armazena em UTC naive
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # --- Fim Campos Lockout ---

    # Controle de concorrência otimista (ver CRUDUser.atomic_update)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version_id}
