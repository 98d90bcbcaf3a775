from __future__ import annotations

import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import settings
from marketplace.core.logging import get_logger, security_alert
from marketplace.core.metrics import record_login_attempt
from marketplace.core.security import create_access_token, create_refresh_token, decode_refresh_token
from marketplace.db.operations import commit_async, rollback_async
from marketplace.db.session_async import get_async_db
from marketplace.models.account import Account
from marketplace.schemas.account import (
    AccountRead,
    BuyerCreate,
    RefreshRequest,
    SellerCreate,
    TokenPair,
    TokenRefresh,
)
from marketplace.services import account_service, email_service
from marketplace.services.exceptions import AccountDisabledError, AuthenticationError, ServiceError

router = APIRouter(prefix="/auth", tags=["auth"])

auth_logger = get_logger("marketplace.auth")


def _client_ip(request: Request | None) -> str | None:
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    client = request.client
    return client.host if client else None


def _token_pair(account: Account) -> dict:
    return {
        "access_token": create_access_token(subject=account.id, role=account.role.value),
        "refresh_token": create_refresh_token(subject=account.id, role=account.role.value),
        "token_type": "bearer",
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        "account": AccountRead.model_validate(account),
    }


@router.post("/signup", response_model=AccountRead, status_code=status.HTTP_201_CREATED)
async def signup_buyer(payload: BuyerCreate, db: AsyncSession = Depends(get_async_db)):
    try:
        account = await account_service.create_buyer(db, payload)
        await commit_async(db)
    except ServiceError:
        await rollback_async(db)
        raise
    return account


@router.post("/seller/signup", response_model=AccountRead, status_code=status.HTTP_201_CREATED)
async def signup_seller(payload: SellerCreate, db: AsyncSession = Depends(get_async_db)):
    try:
        account = await account_service.create_seller(db, payload)
        await commit_async(db)
    except ServiceError:
        await rollback_async(db)
        raise
    return account


@router.post("/login", response_model=TokenPair)
async def login(
    request: Request,
    background_tasks: BackgroundTasks,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_async_db),
):
    try:
        account = await account_service.authenticate(db, form_data.username, form_data.password)
    except AccountDisabledError:
        record_login_attempt("disabled")
        security_alert("Login attempt on disabled account", email=form_data.username, client_ip=_client_ip(request))
        raise

    if not account:
        record_login_attempt("failure")
        security_alert(
            "Failed login attempt",
            email=form_data.username,
            client_ip=_client_ip(request),
        )
        raise AuthenticationError("Incorrect email or password")

    record_login_attempt("success")
    await account_service.mark_login(db, account)
    await commit_async(db)

    auth_logger.info(
        "Account authenticated",
        extra={"account_id": str(account.id), "role": account.role.value, "client_ip": _client_ip(request)},
    )
    # Runs in the threadpool once the response has been sent.
    background_tasks.add_task(
        email_service.send_login_alert,
        to_email=account.email,
        name=account.name,
        role=account.role,
        client_ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _token_pair(account)


@router.post("/refresh", response_model=TokenRefresh)
async def refresh_token(payload: RefreshRequest, db: AsyncSession = Depends(get_async_db)):
    try:
        data = decode_refresh_token(payload.refresh_token)
        account_id = uuid.UUID(str(data["sub"]))
    except (JWTError, KeyError, ValueError) as exc:
        security_alert("Refresh token validation failed", reason=str(exc))
        raise AuthenticationError("Invalid refresh token") from exc

    account = await account_service.get_by_id(db, account_id)
    if account is None or not account.is_active:
        raise AuthenticationError("Invalid refresh token")

    return {
        "access_token": create_access_token(subject=account.id, role=account.role.value),
        "token_type": "bearer",
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }
