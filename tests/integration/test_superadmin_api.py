"""Integration tests for the control-tenant super admin endpoints."""

from __future__ import annotations

import pytest_asyncio
from httpx import AsyncClient

from conftest import SUPERADMIN_EMAIL, SUPERADMIN_PASSWORD, api, bearer, register_user

CONTROL = "ednova"


@pytest_asyncio.fixture
async def superadmin_headers(client: AsyncClient) -> dict:
    response = await client.post(
        api("/superadmin/login", CONTROL), json={"email": SUPERADMIN_EMAIL, "password": SUPERADMIN_PASSWORD}
    )
    assert response.status_code == 200, response.text
    return bearer(response.json()["access_token"])


async def _create_account(client: AsyncClient, headers: dict, lmsname: str = "Acme Academy", email: str = "ops@acme.io"):
    return await client.post(
        api("/superadmin/admins", CONTROL),
        json={"email": email, "password": "OperatorP4ss", "lmsname": lmsname},
        headers=headers,
    )


class TestControlTenantOnly:
    async def test_hidden_on_other_tenants(self, client: AsyncClient):
        response = await client.post(
            api("/superadmin/login", "acme"), json={"email": SUPERADMIN_EMAIL, "password": SUPERADMIN_PASSWORD}
        )
        assert response.status_code == 404


class TestLogin:
    async def test_login(self, client: AsyncClient):
        response = await client.post(
            api("/superadmin/login", CONTROL), json={"email": SUPERADMIN_EMAIL, "password": SUPERADMIN_PASSWORD}
        )
        assert response.status_code == 200
        assert response.json()["email"] == SUPERADMIN_EMAIL

    async def test_bad_credentials(self, client: AsyncClient):
        wrong_password = await client.post(
            api("/superadmin/login", CONTROL), json={"email": SUPERADMIN_EMAIL, "password": "nope"}
        )
        wrong_email = await client.post(
            api("/superadmin/login", CONTROL), json={"email": "x@ednova.io", "password": SUPERADMIN_PASSWORD}
        )
        assert wrong_password.status_code == wrong_email.status_code == 401
        assert wrong_password.json() == {"detail": "Invalid credentials."}

    async def test_superadmin_token_cannot_use_lms_routes(self, client: AsyncClient, superadmin_headers):
        response = await client.get(api("/user/me", CONTROL), headers=superadmin_headers)
        assert response.status_code == 403

    async def test_user_token_is_not_superadmin(self, client: AsyncClient):
        user = await register_user(client, tenant=CONTROL)
        response = await client.get(api("/superadmin/admins", CONTROL), headers=user["headers"])
        assert response.status_code == 403


class TestAccounts:
    async def test_create_and_list(self, client: AsyncClient, superadmin_headers):
        created = await _create_account(client, superadmin_headers)
        assert created.status_code == 201
        account = created.json()
        assert account["lms_name"] == "Acme Academy"
        assert account["status"] is True
        assert [p["note"] for p in account["payments"]] == ["initial"]

        listing = await client.get(api("/superadmin/admins", CONTROL), headers=superadmin_headers)
        assert [a["id"] for a in listing.json()["admins"]] == [account["id"]]

    async def test_duplicates(self, client: AsyncClient, superadmin_headers):
        await _create_account(client, superadmin_headers)
        same_lms = await _create_account(client, superadmin_headers, lmsname="acme academy", email="new@acme.io")
        assert same_lms.status_code == 409
        same_email = await _create_account(client, superadmin_headers, lmsname="Other")
        assert same_email.status_code == 409

    async def test_status_and_payments(self, client: AsyncClient, superadmin_headers):
        account = (await _create_account(client, superadmin_headers)).json()
        base = f"/superadmin/admins/{account['id']}"

        disabled = await client.post(api(f"{base}/status", CONTROL), json={"status": False}, headers=superadmin_headers)
        assert disabled.json()["status"] is False

        inactive = (await client.get(api("/superadmin/status/Acme_Academy", CONTROL))).json()
        assert inactive == {
            "valid": True,
            "status": False,
            "message": "Payment for this LMS is not paid. Please contact admin.",
        }

        paid = await client.post(api(f"{base}/payments", CONTROL), json={"note": "March"}, headers=superadmin_headers)
        assert paid.status_code == 200
        assert paid.json()["status"] is True
        assert [p["note"] for p in paid.json()["payments"]] == ["initial", "March"]

        active = (await client.get(api("/superadmin/status/acme_academy", CONTROL))).json()
        assert (active["valid"], active["status"]) == (True, True)

    async def test_unknown_account(self, client: AsyncClient, superadmin_headers):
        response = await client.post(
            api("/superadmin/admins/999/status", CONTROL), json={"status": True}, headers=superadmin_headers
        )
        assert response.status_code == 404
        assert response.json() == {"detail": "Admin not found."}

    async def test_unknown_tenant_status(self, client: AsyncClient):
        response = await client.get(api("/superadmin/status/nowhere", CONTROL))
        assert response.status_code == 404
        assert response.json() == {"valid": False, "status": None, "message": "Tenant (LMS) not found."}
