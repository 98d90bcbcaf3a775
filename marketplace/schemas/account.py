from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional, List
from uuid import UUID

from marketplace.domain.enums import AccountRole

_PASSWORD_PATTERN = r"^[A-Za-z\d@$!%*?&]{8,}$"


class AccountBase(BaseModel):
    name: str = Field(..., min_length=3, max_length=200)
    email: EmailStr


class BuyerCreate(AccountBase):
    password: str = Field(..., min_length=8, pattern=_PASSWORD_PATTERN)
    mobile: str | None = Field(default=None, pattern=r"^[0-9]{10}$")
    address: str | None = Field(default=None, max_length=500)


class SellerCreate(AccountBase):
    password: str = Field(..., min_length=8, pattern=_PASSWORD_PATTERN)


class AccountRead(AccountBase):
    id: UUID
    role: AccountRole
    is_active: bool
    mobile: str | None = None
    address: str | None = None
    license_id: int | None = None

    model_config = ConfigDict(from_attributes=True)


class AccountStatusUpdate(BaseModel):
    is_active: bool


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    account: AccountRead


class TokenRefresh(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenPayload(BaseModel):
    sub: str | None = None
    role: AccountRole | None = None
    exp: Optional[int] = None
    iat: Optional[int] = None
    jti: Optional[str] = None
    type: Optional[str] = None
    scopes: Optional[List[str]] = None

    model_config = ConfigDict(extra="allow")
