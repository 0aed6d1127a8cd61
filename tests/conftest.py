"""Shared test fixtures.

Every test gets its own directory of SQLite tenant databases and its own
media root. Redis is disabled, mail is mocked and payments go through an
in-memory gateway.
"""

from __future__ import annotations

import itertools
import os
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

os.environ.setdefault("EDNOVA_REDIS_URL", "")
os.environ.setdefault("EDNOVA_TENANT_DATABASE_URL_TEMPLATE", "sqlite+aiosqlite:///:memory:?tenant={tenant}")

from ednova.auth.jwt import reset_keys  # noqa: E402
from ednova.auth.password import hash_password  # noqa: E402
from ednova.config import get_settings  # noqa: E402
from ednova.errors import ExternalServiceError  # noqa: E402
from ednova.main import create_app  # noqa: E402
from ednova.payments.gateway import (  # noqa: E402
    BasePaymentGateway,
    CheckoutRequest,
    CheckoutSession,
    get_payment_gateway,
)
from ednova.storage.service import reset_asset_storage  # noqa: E402
from ednova.tenancy.registry import TenantHandle, TenantRegistry  # noqa: E402

TENANT = "acme"
PASSWORD = "SecureP4ss"
SUPERADMIN_EMAIL = "root@ednova.io"
SUPERADMIN_PASSWORD = "SuperP4ssword"

_superadmin_hash = hash_password(SUPERADMIN_PASSWORD)


class FakePaymentGateway(BasePaymentGateway):
    """In-memory hosted checkout. Sessions start unpaid; tests call ``mark_paid``."""

    def __init__(self) -> None:
        self.sessions: dict[str, CheckoutSession] = {}
        self.requests: list[CheckoutRequest] = []
        self._ids = itertools.count(1)
        self.fail = False

    async def create_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        if self.fail:
            msg = "Payment provider is unavailable"
            raise ExternalServiceError(msg)
        session_id = f"cs_test_{next(self._ids)}"
        session = CheckoutSession(
            session_id=session_id,
            url=f"https://checkout.test/{session_id}",
            paid=False,
            metadata=dict(request.metadata),
            amount_total=request.amount_minor,
        )
        self.requests.append(request)
        self.sessions[session_id] = session
        return session

    async def retrieve_session(self, session_id: str) -> CheckoutSession:
        if self.fail or session_id not in self.sessions:
            msg = "Payment provider is unavailable"
            raise ExternalServiceError(msg)
        return self.sessions[session_id]

    def mark_paid(self, session_id: str) -> None:
        session = self.sessions[session_id]
        self.sessions[session_id] = CheckoutSession(
            session_id=session.session_id,
            url=session.url,
            paid=True,
            metadata=session.metadata,
            amount_total=session.amount_total,
        )


@pytest.fixture(autouse=True)
def test_settings(tmp_path, monkeypatch):
    """Point tenants at per-test SQLite files and reset every cached singleton."""
    monkeypatch.setenv("EDNOVA_TENANT_DATABASE_URL_TEMPLATE", f"sqlite+aiosqlite:///{tmp_path}/{{tenant}}.db")
    monkeypatch.setenv("EDNOVA_REDIS_URL", "")
    monkeypatch.setenv("EDNOVA_STORAGE_PROVIDER", "local")
    monkeypatch.setenv("EDNOVA_STORAGE_LOCAL_ROOT", str(tmp_path / "media"))
    monkeypatch.setenv("EDNOVA_STORAGE_PUBLIC_BASE_URL", "http://test/media")
    monkeypatch.setenv("EDNOVA_AUTH_COOKIE_SECURE", "false")
    monkeypatch.setenv("EDNOVA_JWT_SECRET_KEY", "test-secret-key-with-enough-length-0123456789")
    monkeypatch.setenv("EDNOVA_LOG_FORMAT", "console")
    monkeypatch.setenv("EDNOVA_RATE_LIMIT_REQUESTS", "10000")
    monkeypatch.setenv("EDNOVA_SUPERADMIN_EMAIL", SUPERADMIN_EMAIL)
    monkeypatch.setenv("EDNOVA_SUPERADMIN_PASSWORD_HASH", _superadmin_hash)
    get_settings.cache_clear()
    reset_keys()
    reset_asset_storage()
    monkeypatch.setattr("ednova.payments.gateway._gateway", None)
    yield get_settings()
    get_settings.cache_clear()
    reset_keys()
    reset_asset_storage()


@pytest.fixture(autouse=True)
def mock_email_service(monkeypatch):
    """Replace the email service singleton so nothing is sent."""
    mock_service = MagicMock()
    mock_service.send_template = AsyncMock(return_value=True)
    mock_service.send_email = AsyncMock(return_value=True)
    monkeypatch.setattr("ednova.email.service._email_service", mock_service)
    return mock_service


@pytest.fixture
def payment_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest_asyncio.fixture
async def app(test_settings, payment_gateway: FakePaymentGateway) -> AsyncGenerator[FastAPI, None]:
    application = create_app(test_settings)
    application.dependency_overrides[get_payment_gateway] = lambda: payment_gateway
    yield application
    await application.state.tenant_registry.close()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the ASGI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def api(path: str, tenant: str = TENANT) -> str:
    return f"/{tenant}/api/v1{path}"


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def register_user(
    client: AsyncClient,
    name: str = "learner",
    email: str = "learner@example.com",
    password: str = PASSWORD,
    tenant: str = TENANT,
) -> dict:
    response = await client.post(api("/user/register", tenant), json={"name": name, "email": email, "password": password})
    assert response.status_code == 201, response.text
    data = response.json()
    return {"user": data["user"], "token": data["access_token"], "headers": bearer(data["access_token"])}


async def register_admin(
    client: AsyncClient,
    name: str = "admin",
    email: str = "admin@example.com",
    password: str = PASSWORD,
    tenant: str = TENANT,
) -> dict:
    response = await client.post(
        api("/user/admin-register", tenant), json={"name": name, "email": email, "password": password}
    )
    assert response.status_code == 201, response.text
    data = response.json()
    return {"user": data["user"], "token": data["access_token"], "headers": bearer(data["access_token"])}


async def create_course(client: AsyncClient, admin_headers: dict, title: str = "Python 101", **fields) -> dict:
    data = {
        "title": title,
        "description": "Learn Python from scratch",
        "category": "Programming",
        "price": "1500",
        "expiry_months": "6",
    }
    data.update({k: str(v) for k, v in fields.items()})
    response = await client.post(api("/course"), data=data, headers=admin_headers)
    assert response.status_code == 201, response.text
    return response.json()


async def add_lecture(client: AsyncClient, admin_headers: dict, course_id: int, name: str = "Intro") -> dict:
    response = await client.post(
        api(f"/course/{course_id}/lectures"),
        data={"name": name, "description": "Lecture"},
        files={"media": (f"{name}.mp4", b"fake-video-bytes", "video/mp4")},
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


async def create_quiz(client: AsyncClient, admin_headers: dict, course_id: int, points: list[int]) -> dict:
    questions = [
        {"question_text": f"Question {i}", "options": ["a", "b", "c"], "correct_answer": "a", "points": p}
        for i, p in enumerate(points)
    ]
    response = await client.post(
        api(f"/course/{course_id}/quizzes"),
        json={"title": "Checkpoint", "description": "", "questions": questions},
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


async def purchase(client: AsyncClient, gateway: FakePaymentGateway, user_headers: dict, course_id: int) -> dict:
    checkout = await client.post(api("/payment/checkout"), json={"course_id": course_id}, headers=user_headers)
    assert checkout.status_code == 200, checkout.text
    session_id = checkout.json()["session_id"]
    gateway.mark_paid(session_id)
    verify = await client.post(
        api("/payment/verify"), json={"course_id": course_id, "session_id": session_id}, headers=user_headers
    )
    assert verify.status_code == 200, verify.text
    return verify.json()


@pytest_asyncio.fixture
async def tenant_handle(tmp_path) -> AsyncGenerator[TenantHandle, None]:
    """A connected tenant outside the HTTP stack, for service-level tests."""
    registry = TenantRegistry(f"sqlite+aiosqlite:///{tmp_path}/{{tenant}}.db", engine_options={})
    yield await registry.resolve("unit")
    await registry.close()


@pytest_asyncio.fixture
async def db_session(tenant_handle: TenantHandle) -> AsyncGenerator[AsyncSession, None]:
    async with tenant_handle.session() as session:
        yield session
