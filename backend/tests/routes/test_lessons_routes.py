# backend/tests/routes/test_lessons_routes.py
"""
HTTP tests for /api/v1/lessons, including the 409 version-conflict body.
"""

import pytest

from lessonloop.services.recurring_slot_service import RecurringSlotService

WEDNESDAY = 3
UNKNOWN_ID = "01HZZZZZZZZZZZZZZZZZZZZZZZ"


@pytest.fixture
def lesson_id(db, clock, teacher, student):
    booking = RecurringSlotService(db, clock=clock).book_recurring_slot(
        teacher.id, student.id, WEDNESDAY, "16:00", 30
    )
    return booking.lessons[0].id


class TestVersionedUpdates:
    def test_patch_bumps_version(self, client, lesson_id):
        response = client.patch(
            f"/api/v1/lessons/{lesson_id}",
            json={"expected_version": 1, "patch": {"notes": "Bring the Czerny book"}},
        )

        assert response.status_code == 200
        assert response.json()["version"] == 2
        assert response.json()["notes"] == "Bring the Czerny book"

    def test_stale_version_returns_409_with_versions(self, client, lesson_id):
        client.patch(f"/api/v1/lessons/{lesson_id}", json={"expected_version": 1, "patch": {"notes": "a"}})

        response = client.patch(
            f"/api/v1/lessons/{lesson_id}", json={"expected_version": 1, "patch": {"notes": "b"}}
        )

        assert response.status_code == 409
        assert response.headers["content-type"].startswith("application/problem+json")
        body = response.json()
        assert body["code"] == "VERSION_CONFLICT"
        assert body["current_version"] == 2
        assert body["attempted_version"] == 1
        assert "refresh" in body["detail"]
        assert client.get(f"/api/v1/lessons/{lesson_id}").json()["notes"] == "a"

    def test_patch_rejects_immutable_fields(self, client, lesson_id):
        response = client.patch(
            f"/api/v1/lessons/{lesson_id}",
            json={"expected_version": 1, "patch": {"date": "2024-01-11T22:00:00Z"}},
        )
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_empty_patch(self, client, lesson_id):
        response = client.patch(f"/api/v1/lessons/{lesson_id}", json={"expected_version": 1, "patch": {}})

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_PATCH"

    def test_unknown_lesson(self, client):
        response = client.get(f"/api/v1/lessons/{UNKNOWN_ID}")
        assert response.status_code == 404
        assert response.json()["code"] == "LESSON_NOT_FOUND"


class TestLessonActions:
    def test_complete(self, client, lesson_id):
        response = client.post(f"/api/v1/lessons/{lesson_id}/complete", json={"expected_version": 1})

        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"
        assert response.json()["completed_at"] is not None

    def test_cancel_then_complete_is_rejected(self, client, lesson_id):
        cancelled = client.post(
            f"/api/v1/lessons/{lesson_id}/cancel", json={"expected_version": 1, "reason": "sick"}
        )
        assert cancelled.json()["cancellation_reason"] == "sick"

        response = client.post(f"/api/v1/lessons/{lesson_id}/complete", json={"expected_version": 2})
        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_STATUS_TRANSITION"

    def test_complete_requires_version(self, client, lesson_id):
        assert client.post(f"/api/v1/lessons/{lesson_id}/complete", json={}).status_code == 422


class TestSingleLessonBooking:
    def test_book(self, client, teacher, student):
        response = client.post(
            "/api/v1/lessons",
            json={
                "teacher_id": teacher.id,
                "student_id": student.id,
                "start": "2024-01-15T21:00:00Z",
                "duration_minutes": 60,
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["is_recurring"] is False
        assert body["slot_id"] is None
        assert body["date"].startswith("2024-01-15T21:00:00")

    def test_conflicts_with_weekly_lesson(self, client, lesson_id, teacher, student):
        response = client.post(
            "/api/v1/lessons",
            json={
                "teacher_id": teacher.id,
                "student_id": student.id,
                "start": "2024-01-10T22:00:00Z",
                "duration_minutes": 30,
            },
        )

        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"
