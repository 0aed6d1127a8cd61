"""Integration tests for learner progress, XP and badges over HTTP."""

from __future__ import annotations

import pytest_asyncio
from httpx import AsyncClient

from conftest import add_lecture, api, create_course, create_quiz, purchase, register_admin, register_user


@pytest_asyncio.fixture
async def enrolled(client: AsyncClient, payment_gateway):
    """An admin-built course with two lectures and a 12+8 point quiz, bought by a learner."""
    admin = await register_admin(client)
    course = await create_course(client, admin["headers"])
    lectures = [
        await add_lecture(client, admin["headers"], course["id"], "One"),
        await add_lecture(client, admin["headers"], course["id"], "Two"),
    ]
    quiz = await create_quiz(client, admin["headers"], course["id"], [12, 8])
    for threshold, title in ((10, "Starter"), (30, "Scholar")):
        response = await client.post(
            api("/badges"),
            data={"title": title, "content": f"{threshold} XP", "xp_threshold": str(threshold)},
            headers=admin["headers"],
        )
        assert response.status_code == 201, response.text
    user = await register_user(client)
    await purchase(client, payment_gateway, user["headers"], course["id"])
    return {"admin": admin, "user": user, "course": course, "lectures": lectures, "quiz": quiz}


def _answers(quiz: dict, correct: set[int]) -> dict:
    return {
        "answers": [
            {"question_id": q["id"], "submitted_answer": "a" if i in correct else "b"}
            for i, q in enumerate(quiz["questions"])
        ]
    }


class TestMyCourses:
    async def test_lists_purchased_courses(self, client: AsyncClient, enrolled):
        response = await client.get(api("/my-course"), headers=enrolled["user"]["headers"])
        assert response.status_code == 200
        assert [c["id"] for c in response.json()["courses"]] == [enrolled["course"]["id"]]

    async def test_empty_without_purchases(self, client: AsyncClient, enrolled):
        other = await register_user(client, name="other", email="other@example.com")
        response = await client.get(api("/my-course"), headers=other["headers"])
        assert response.json() == {"courses": []}

    async def test_progress_summary(self, client: AsyncClient, enrolled):
        course_id = enrolled["course"]["id"]
        lecture_id = enrolled["lectures"][0]["id"]
        await client.put(
            api(f"/my-course/{course_id}/lectures/{lecture_id}"),
            json={"checked": True, "gain_xp": 5},
            headers=enrolled["user"]["headers"],
        )
        response = await client.get(api(f"/my-course/{course_id}"), headers=enrolled["user"]["headers"])
        assert response.status_code == 200
        data = response.json()
        assert data["completed_lectures"] == 1
        assert data["total_lectures"] == 2


class TestQuizSubmission:
    async def test_only_improvements_earn_xp(self, client: AsyncClient, enrolled):
        course_id = enrolled["course"]["id"]
        quiz = enrolled["quiz"]
        url = api(f"/my-course/{course_id}/quizzes/{quiz['id']}/submit")
        headers = enrolled["user"]["headers"]

        first = (await client.post(url, json=_answers(quiz, {0}), headers=headers)).json()
        assert (first["score"], first["previous_best"], first["xp_delta"], first["total_xp"]) == (12, None, 12, 12)
        assert first["badges"] == [{"badge_id": 1, "title": "Starter", "status": "acquired"}]

        second = (await client.post(url, json=_answers(quiz, {1}), headers=headers)).json()
        assert (second["score"], second["previous_best"], second["xp_delta"], second["best_score"]) == (8, 12, 0, 12)
        assert second["badges"] == []

        third = (await client.post(url, json=_answers(quiz, {0, 1}), headers=headers)).json()
        assert (third["score"], third["xp_delta"], third["total_xp"], third["best_score"]) == (20, 8, 20, 20)

        progress = (await client.get(api(f"/my-course/{course_id}"), headers=headers)).json()
        assert [a["score"] for a in progress["quiz_attempts"]] == [12, 8, 20]

        history = (await client.get(api("/user/me/xp/history"), headers=headers)).json()
        assert history["total"] == 2

    async def test_answers_are_case_insensitive(self, client: AsyncClient, enrolled):
        quiz = enrolled["quiz"]
        body = {"answers": [{"question_id": q["id"], "submitted_answer": " A "} for q in quiz["questions"]]}
        response = await client.post(
            api(f"/my-course/{enrolled['course']['id']}/quizzes/{quiz['id']}/submit"),
            json=body,
            headers=enrolled["user"]["headers"],
        )
        assert response.json()["score"] == 20

    async def test_requires_purchase(self, client: AsyncClient, enrolled):
        other = await register_user(client, name="other", email="other@example.com")
        quiz = enrolled["quiz"]
        response = await client.post(
            api(f"/my-course/{enrolled['course']['id']}/quizzes/{quiz['id']}/submit"),
            json=_answers(quiz, {0}),
            headers=other["headers"],
        )
        assert response.status_code == 403

    async def test_empty_submission(self, client: AsyncClient, enrolled):
        response = await client.post(
            api(f"/my-course/{enrolled['course']['id']}/quizzes/{enrolled['quiz']['id']}/submit"),
            json={"answers": []},
            headers=enrolled["user"]["headers"],
        )
        assert response.status_code == 400


class TestLectureMarks:
    async def test_mark_and_unmark(self, client: AsyncClient, enrolled):
        course_id = enrolled["course"]["id"]
        lecture_id = enrolled["lectures"][0]["id"]
        url = api(f"/my-course/{course_id}/lectures/{lecture_id}")
        headers = enrolled["user"]["headers"]

        marked = (await client.put(url, json={"checked": True, "gain_xp": 10}, headers=headers)).json()
        assert (marked["previous"], marked["marked"], marked["xp_delta"], marked["total_xp"]) == (None, True, 10, 10)
        assert [b["status"] for b in marked["badges"]] == ["acquired"]

        again = (await client.put(url, json={"checked": True, "gain_xp": 10}, headers=headers)).json()
        assert (again["previous"], again["xp_delta"], again["total_xp"]) == (True, 0, 10)

        unmarked = (await client.put(url, json={"checked": False, "gain_xp": 10}, headers=headers)).json()
        assert (unmarked["previous"], unmarked["marked"], unmarked["xp_delta"], unmarked["total_xp"]) == (
            True,
            False,
            -10,
            0,
        )
        assert unmarked["badges"] == [{"badge_id": 1, "title": "Starter", "status": "removed"}]

        me = (await client.get(api("/user/me"), headers=headers)).json()
        assert me["xp"] == 0
        assert me["badges"] == []

    async def test_unmark_reverses_the_amount_earned(self, client: AsyncClient, enrolled):
        url = api(f"/my-course/{enrolled['course']['id']}/lectures/{enrolled['lectures'][0]['id']}")
        headers = enrolled["user"]["headers"]

        totals = []
        for _ in range(3):
            marked = await client.put(url, json={"checked": True, "gain_xp": 1000}, headers=headers)
            unmarked = await client.put(url, json={"checked": False, "gain_xp": 0}, headers=headers)
            totals += [marked.json()["total_xp"], unmarked.json()["total_xp"]]

        assert totals == [1000, 0, 1000, 0, 1000, 0]
        me = (await client.get(api("/user/me"), headers=headers)).json()
        assert me["xp"] == 0

    async def test_gain_xp_bounds(self, client: AsyncClient, enrolled):
        url = api(f"/my-course/{enrolled['course']['id']}/lectures/{enrolled['lectures'][0]['id']}")
        headers = enrolled["user"]["headers"]
        negative = await client.put(url, json={"checked": True, "gain_xp": -1}, headers=headers)
        assert negative.status_code == 422
        too_large = await client.put(url, json={"checked": True, "gain_xp": 1_000_000}, headers=headers)
        assert too_large.status_code == 400

    async def test_unknown_lecture(self, client: AsyncClient, enrolled):
        response = await client.put(
            api(f"/my-course/{enrolled['course']['id']}/lectures/9999"),
            json={"checked": True},
            headers=enrolled["user"]["headers"],
        )
        assert response.status_code == 404


class TestNotes:
    async def test_add_list_delete(self, client: AsyncClient, enrolled):
        url = api(f"/my-course/{enrolled['course']['id']}/lectures/{enrolled['lectures'][1]['id']}/notes")
        headers = enrolled["user"]["headers"]

        assert (await client.get(url, headers=headers)).json() == {"notes": []}
        first = await client.post(url, json={"note": "first"}, headers=headers)
        assert first.status_code == 201
        second = await client.post(url, json={"note": "second"}, headers=headers)
        assert second.json() == {"notes": ["first", "second"]}

        out_of_range = await client.delete(f"{url}/5", headers=headers)
        assert out_of_range.status_code == 400
        assert (await client.get(url, headers=headers)).json() == {"notes": ["first", "second"]}

        deleted = await client.delete(f"{url}/0", headers=headers)
        assert deleted.json() == {"notes": ["second"]}

    async def test_note_too_long(self, client: AsyncClient, enrolled):
        url = api(f"/my-course/{enrolled['course']['id']}/lectures/{enrolled['lectures'][0]['id']}/notes")
        response = await client.post(url, json={"note": "x" * 201}, headers=enrolled["user"]["headers"])
        assert response.status_code == 400
