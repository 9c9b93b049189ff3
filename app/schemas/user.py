# auth_api/app/schemas/user.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime
import re

NAME_PATTERN = re.compile(r"^[a-zA-Z\s]+$")
CODE_PATTERN = r"^\d{6}$"


# Função de validação de senha
def password_strength_validator(password: str) -> str:
    if len(password) < 6 or len(password) > 128:
        raise ValueError("Password must be between 6 and 128 characters")
    if not re.search(r"[a-z]", password):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[0-9]", password):
        raise ValueError("Password must contain at least one number")
    return password


def name_validator(name: str) -> str:
    name = name.strip()
    if len(name) < 2 or len(name) > 50:
        raise ValueError("Name must be between 2 and 50 characters")
    if not NAME_PATTERN.match(name):
        raise ValueError("Name can only contain letters and spaces")
    return name


def normalize_email(email: str) -> str:
    return email.strip().lower()


class EmailNormalizedModel(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def lower_email(cls, v):
        if isinstance(v, str):
            v = normalize_email(v)
            if len(v) > 100:
                raise ValueError("Email cannot exceed 100 characters")
        return v


class UserCreate(EmailNormalizedModel):
    full_name: str
    password: str

    @field_validator("full_name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return name_validator(v)

    @field_validator("password")
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        return password_strength_validator(v)


class UserUpdate(BaseModel):
    full_name: Optional[str] = None

    @field_validator("full_name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return name_validator(v)


class UserPublic(BaseModel):
    """Projeção pública da conta: nenhum campo sensível sai por aqui."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: Optional[str] = None
    email: str
    profile_image_url: Optional[str] = None
    is_verified: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LoginRequest(EmailNormalizedModel):
    password: str = Field(..., min_length=1)


class ResendVerificationRequest(EmailNormalizedModel):
    pass


class VerifyEmailRequest(EmailNormalizedModel):
    code: str = Field(..., pattern=CODE_PATTERN)


class VerificationResult(BaseModel):
    user: Optional[UserPublic] = None
    already_verified: bool = False
    verified_at: Optional[datetime] = None


class ForgotPasswordRequest(EmailNormalizedModel):
    pass


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        return password_strength_validator(v)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        return password_strength_validator(v)


class Message(BaseModel):
    msg: str
