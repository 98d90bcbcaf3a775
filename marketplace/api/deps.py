# marketplace/api/deps.py
import uuid

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import OAuth2PasswordBearer, SecurityScopes
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import settings
from marketplace.core.security import decode_access_token
from marketplace.db.session_async import get_async_db
from marketplace.domain.enums import AccountRole
from marketplace.models.account import Account
from marketplace.schemas.account import TokenPayload
from marketplace.services import account_service


OAUTH_SCOPES = {
    "profile": "Read the caller's own account.",
    "cart": "Manage the caller's shopping cart.",
    "orders": "Place, list and cancel the caller's orders.",
    "catalog:write": "Create and manage the caller's products.",
    "fulfillment": "Move the caller's order lines through fulfillment.",
    "admin": "Manage accounts.",
}

# Capabilities come from the stored role, never from claims in the token.
ROLE_SCOPES: dict[AccountRole, frozenset[str]] = {
    AccountRole.user: frozenset({"profile", "cart", "orders"}),
    AccountRole.seller: frozenset({"profile", "catalog:write", "fulfillment"}),
    AccountRole.admin: frozenset({"profile", "admin"}),
}


oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login",
    scopes=OAUTH_SCOPES,
)


def _decode_token(token: str) -> TokenPayload:
    return TokenPayload(**decode_access_token(token))


async def get_current_account(
    security_scopes: SecurityScopes,
    db: AsyncSession = Depends(get_async_db),
    token: str = Depends(oauth2_scheme),
) -> Account:
    authenticate_value = f'Bearer scope="{security_scopes.scope_str}"' if security_scopes.scopes else "Bearer"
    cred_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": authenticate_value},
    )

    try:
        token_data = _decode_token(token)
    except (JWTError, ValueError):
        raise cred_exc

    if token_data.sub is None:
        raise cred_exc

    try:
        account = await account_service.get_by_id(db, uuid.UUID(str(token_data.sub)))
    except ValueError:
        raise cred_exc
    if account is None or not account.is_active:
        raise cred_exc

    granted = ROLE_SCOPES.get(account.role, frozenset())
    for scope in security_scopes.scopes:
        if scope not in granted:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions",
                headers={"WWW-Authenticate": authenticate_value},
            )
    return account


def get_current_buyer(
    current: Account = Security(get_current_account, scopes=["cart", "orders"]),
) -> Account:
    return current


def get_current_seller(
    current: Account = Security(get_current_account, scopes=["catalog:write", "fulfillment"]),
) -> Account:
    return current


def get_current_admin(
    current: Account = Security(get_current_account, scopes=["admin"]),
) -> Account:
    return current
