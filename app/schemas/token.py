# auth_api/app/schemas/token.py
from pydantic import BaseModel, field_validator

from app.schemas.user import UserPublic


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginResponse(Token):
    user: UserPublic


class TokenClaims(BaseModel):
    sub: str
    email: str
    email_verified: bool
    token_type: str
    exp: int
    iat: int | None = None

    @field_validator("sub")
    @classmethod
    def sub_must_be_account_id(cls, v: str) -> str:
        if not v.isdigit():
            raise ValueError("sub must be a numeric account id")
        return v

    @property
    def account_id(self) -> int:
        return int(self.sub)


class RefreshTokenRequest(BaseModel):
    refresh_token: str
