"""Integration tests for announcements and the admin analytics dashboard."""

from __future__ import annotations

from datetime import datetime, timezone

from httpx import AsyncClient

from conftest import add_lecture, api, create_course, purchase, register_admin, register_user


class TestAnnouncements:
    async def test_admin_posts_users_read(self, client: AsyncClient):
        admin = await register_admin(client)
        user = await register_user(client)
        for title in ("First", "Second"):
            response = await client.post(
                api("/announcement"),
                json={"title": title, "content": "Body", "category": "General Guidance"},
                headers=admin["headers"],
            )
            assert response.status_code == 201

        listing = await client.get(api("/announcement"), headers=user["headers"])
        assert listing.status_code == 200
        assert [a["title"] for a in listing.json()["announcements"]] == ["Second", "First"]

    async def test_learner_cannot_post(self, client: AsyncClient):
        user = await register_user(client)
        response = await client.post(
            api("/announcement"),
            json={"title": "x", "content": "y", "category": "Warning"},
            headers=user["headers"],
        )
        assert response.status_code == 403

    async def test_unknown_category(self, client: AsyncClient):
        admin = await register_admin(client)
        response = await client.post(
            api("/announcement"),
            json={"title": "x", "content": "y", "category": "Gossip"},
            headers=admin["headers"],
        )
        assert response.status_code == 400

    async def test_requires_login(self, client: AsyncClient):
        client.cookies.clear()
        assert (await client.get(api("/announcement"))).status_code == 401


class TestAnalytics:
    async def test_requires_admin(self, client: AsyncClient):
        user = await register_user(client)
        response = await client.get(api("/admin/sales/by-user"), headers=user["headers"])
        assert response.status_code == 403

    async def test_sales_and_completion(self, client: AsyncClient, payment_gateway):
        admin = await register_admin(client)
        headers = admin["headers"]
        python = await create_course(client, headers, title="Python", price=100)
        rust = await create_course(client, headers, title="Rust", price=300)
        await create_course(client, headers, title="Unsold", price=50)
        lecture = await add_lecture(client, headers, python["id"])

        alice = await register_user(client, name="alice", email="alice@example.com")
        bob = await register_user(client, name="bob", email="bob@example.com")
        await purchase(client, payment_gateway, alice["headers"], python["id"])
        await purchase(client, payment_gateway, alice["headers"], rust["id"])
        await purchase(client, payment_gateway, bob["headers"], python["id"])

        await client.put(
            api(f"/my-course/{python['id']}/lectures/{lecture['id']}"),
            json={"checked": True, "gain_xp": 1},
            headers=alice["headers"],
        )

        by_user = (await client.get(api("/admin/sales/by-user"), headers=headers)).json()["users"]
        assert [(u["name"], u["purchases"], u["total_spent"]) for u in by_user] == [("alice", 2, 400), ("bob", 1, 100)]

        by_course = (await client.get(api("/admin/sales/by-course"), headers=headers)).json()["courses"]
        assert [(c["title"], c["purchases"], c["revenue"]) for c in by_course] == [
            ("Python", 2, 200),
            ("Rust", 1, 300),
            ("Unsold", 0, 0),
        ]

        top = (await client.get(api("/admin/analytics/top-content"), headers=headers)).json()["courses"]
        assert [c["title"] for c in top] == ["Python", "Rust"]

        revenue = (await client.get(api("/admin/analytics/revenue"), headers=headers)).json()
        this_month = datetime.now(timezone.utc).strftime("%Y-%m")
        assert revenue["total_revenue"] == 500
        assert revenue["months"] == [{"month": this_month, "revenue": 500, "purchases": 3}]

        rates = (await client.get(api("/admin/analytics/completion-rates"), headers=headers)).json()["courses"]
        assert [(r["title"], r["enrolled"], r["completed"], r["rate"]) for r in rates] == [
            ("Python", 2, 1, 50.0),
            ("Rust", 1, 0, 0.0),
        ]

    async def test_users_and_growth(self, client: AsyncClient):
        admin = await register_admin(client)
        await register_user(client)

        users = (await client.get(api("/admin/users"), headers=admin["headers"])).json()["users"]
        assert {u["name"] for u in users} == {"admin", "learner"}

        growth = (await client.get(api("/admin/analytics/user-growth"), headers=admin["headers"])).json()["days"]
        assert sum(d["count"] for d in growth) == 2

        future = (
            await client.get(
                api("/admin/analytics/user-growth"), params={"from_date": "2999-01-01T00:00:00Z"}, headers=admin["headers"]
            )
        ).json()
        assert future == {"days": []}
