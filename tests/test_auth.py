# tests/test_auth.py
import asyncio
import threading
import time

import pytest

from conftest import ADMIN_PASSWORD, BUYER_PASSWORD, SELLER_PASSWORD, auth
from marketplace.core.config import settings
from marketplace.core.security import create_access_token
from marketplace.domain.enums import AccountRole
from marketplace.services import email_service

LOGIN_URL = "/api/v1/auth/login"
SIGNUP_URL = "/api/v1/auth/signup"
SELLER_SIGNUP_URL = "/api/v1/auth/seller/signup"


async def _login(client, email: str, password: str):
    return await client.post(
        LOGIN_URL,
        data={"username": email, "password": password},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )


@pytest.fixture
def sent_alerts(monkeypatch):
    sent = []
    monkeypatch.setattr(email_service, "_enqueue_email", lambda to, subject, body: sent.append((to, subject)))
    return sent


@pytest.mark.asyncio
async def test_buyer_signup_and_login(client, sent_alerts):
    resp = await client.post(
        SIGNUP_URL,
        json={"name": "Priya Shah", "email": "Priya@Example.com", "password": "Secret123", "mobile": "9876543210"},
    )
    assert resp.status_code == 201, resp.text
    account = resp.json()
    assert account["role"] == "user"
    assert account["email"] == "priya@example.com"
    assert account["license_id"] is None

    login = await _login(client, "priya@example.com", "Secret123")
    assert login.status_code == 200, login.text
    body = login.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    assert body["account"]["id"] == account["id"]
    assert sent_alerts == [("priya@example.com", f"Your {settings.PROJECT_NAME} login activity")]


@pytest.mark.asyncio
async def test_signup_rejects_duplicate_email_across_roles(client, seller):
    resp = await client.post(
        SIGNUP_URL,
        json={"name": "Copy Cat", "email": seller.email.upper(), "password": "Secret123"},
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "CONFLICT"


@pytest.mark.asyncio
async def test_signup_validation(client):
    resp = await client.post(SIGNUP_URL, json={"name": "Al", "email": "not-an-email", "password": "short"})
    assert resp.status_code == 400
    fields = {error["field"] for error in resp.json()["errors"]}
    assert {"name", "email", "password"} <= fields


@pytest.mark.asyncio
async def test_seller_signup_assigns_license_id(client, sent_alerts):
    resp = await client.post(
        SELLER_SIGNUP_URL,
        json={"name": "Lotus Crafts", "email": "lotus@example.com", "password": "Secret123"},
    )
    assert resp.status_code == 201, resp.text
    account = resp.json()
    assert account["role"] == "seller"
    assert settings.LICENSE_ID_MIN <= account["license_id"] <= settings.LICENSE_ID_MAX

    login = await _login(client, "lotus@example.com", "Secret123")
    assert login.status_code == 200
    assert sent_alerts == [("lotus@example.com", "Seller portal access detected")]


@pytest.mark.asyncio
async def test_admin_login_sends_no_alert(client, admin, sent_alerts):
    resp = await _login(client, admin.email, ADMIN_PASSWORD)
    assert resp.status_code == 200, resp.text
    assert resp.json()["account"]["role"] == "admin"
    assert sent_alerts == []


@pytest.mark.asyncio
async def test_login_wrong_password(client, buyer):
    resp = await _login(client, buyer.email, "wrong-pass")
    assert resp.status_code == 401, resp.text
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "UNAUTHORIZED"
    assert "incorrect" in body["message"].lower()


@pytest.mark.asyncio
async def test_login_disabled_account(client, buyer, db_session):
    buyer.is_active = False
    db_session.commit()

    resp = await _login(client, buyer.email, BUYER_PASSWORD)
    assert resp.status_code == 403
    assert resp.json()["error"] == "ACCOUNT_DISABLED"


@pytest.mark.asyncio
async def test_login_survives_alert_failure(client, seller, monkeypatch):
    def broken(*_args, **_kwargs):
        raise ConnectionError("broker down")

    monkeypatch.setattr(email_service, "_enqueue_email", broken)
    resp = await _login(client, seller.email, SELLER_PASSWORD)
    assert resp.status_code == 200, resp.text


def test_send_login_alert_never_raises(monkeypatch, caplog):
    def broken(*_args, **_kwargs):
        raise RuntimeError("Email task not registered")

    monkeypatch.setattr(email_service, "_enqueue_email", broken)

    queued = email_service.send_login_alert(to_email="x@example.com", name="X", role=AccountRole.user)
    assert queued is False
    assert "Login alert could not be queued" in caplog.text


@pytest.mark.asyncio
async def test_login_alert_runs_eager_task(client, buyer, caplog):
    caplog.set_level("INFO", logger="marketplace.email")
    resp = await _login(client, buyer.email, BUYER_PASSWORD)
    assert resp.status_code == 200, resp.text
    assert "Email delivery disabled" in caplog.text


@pytest.mark.asyncio
async def test_refresh_issues_new_access_token(client, buyer, make_product):
    tokens = (await _login(client, buyer.email, BUYER_PASSWORD)).json()

    resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 200, resp.text
    access = resp.json()["access_token"]
    assert (await client.get("/api/v1/cart", headers=auth(access))).status_code == 200

    bad = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert bad.status_code == 401


@pytest.mark.asyncio
async def test_protected_requires_valid_token(client):
    assert (await client.get("/api/v1/orders")).status_code == 401
    resp = await client.get("/api/v1/orders", headers=auth("garbage"))
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_disabled_account_token_is_rejected(client, buyer, buyer_token, db_session):
    assert (await client.get("/api/v1/orders", headers=auth(buyer_token))).status_code == 200
    buyer.is_active = False
    db_session.commit()
    assert (await client.get("/api/v1/orders", headers=auth(buyer_token))).status_code == 401


@pytest.mark.asyncio
async def test_capabilities_come_from_stored_role(client, buyer):
    # A token claiming "admin" for a buyer account grants nothing extra.
    forged = create_access_token(subject=buyer.id, role="admin")
    assert (await client.get("/api/v1/admin/accounts", headers=auth(forged))).status_code == 403
    assert (await client.get("/api/v1/cart", headers=auth(forged))).status_code == 200


@pytest.mark.asyncio
async def test_slow_login_alert_does_not_block_other_requests(client, buyer, monkeypatch):
    started = threading.Event()
    started_at = {}

    def slow_enqueue(to, subject, body):
        started_at["value"] = time.perf_counter()
        started.set()
        time.sleep(0.5)
        raise OSError("SMTP server timed out")

    monkeypatch.setattr(email_service, "_enqueue_email", slow_enqueue)

    async def ping_while_alert_runs():
        while not started.is_set():
            await asyncio.sleep(0.01)
        resp = await client.get("/")
        return resp, time.perf_counter()

    login_resp, (ping, answered_at) = await asyncio.gather(
        _login(client, buyer.email, BUYER_PASSWORD),
        ping_while_alert_runs(),
    )
    assert login_resp.status_code == 200, login_resp.text
    assert ping.status_code == 200
    assert answered_at - started_at["value"] < 0.4


def test_email_task_retries_smtp_failures(monkeypatch, caplog):
    from marketplace.tasks import email as email_tasks

    attempts = []

    def unreachable(to_email, subject, body):
        attempts.append(to_email)
        raise OSError("Connection refused")

    monkeypatch.setattr(email_tasks, "deliver_email", unreachable)
    caplog.set_level("WARNING", logger="marketplace.email")

    with pytest.raises(OSError):
        email_tasks.send_email_task.apply(args=("x@example.com", "Hi", "Body"))

    assert len(attempts) > 1
    assert "Email delivery failed, will retry" in caplog.text
