# backend/tests/routes/test_teachers_routes.py
"""
HTTP tests for teacher calendar endpoints and the monitoring surface.
"""

from lessonloop.services.recurring_slot_service import RecurringSlotService

WEDNESDAY = 3
MONDAY = 1


class TestAvailableSlots:
    def test_lists_candidates_with_rates(self, client, teacher):
        response = client.get(f"/api/v1/teachers/{teacher.id}/available-slots")

        assert response.status_code == 200
        candidates = response.json()
        monday_60 = [
            c for c in candidates if c["day_of_week"] == MONDAY and c["duration_minutes"] == 60
        ]
        assert [c["start_time"] for c in monday_60] == ["15:00", "15:30", "16:00", "16:30", "17:00"]
        assert all(c["monthly_rate"] is not None for c in candidates)

    def test_unknown_teacher(self, client):
        response = client.get("/api/v1/teachers/01HZZZZZZZZZZZZZZZZZZZZZZZ/available-slots")
        assert response.status_code == 404
        assert response.json()["code"] == "TEACHER_NOT_FOUND"


class TestTeacherLessons:
    def test_generates_missing_recurring_lessons(self, db, clock, client, teacher, student):
        RecurringSlotService(db, clock=clock).book_recurring_slot(teacher.id, student.id, WEDNESDAY, "16:00", 30)

        response = client.get(
            f"/api/v1/teachers/{teacher.id}/lessons",
            params={"start_date": "2024-01-08", "end_date": "2024-02-29"},
        )

        assert response.status_code == 200
        assert [lesson["date"][:10] for lesson in response.json()] == [
            "2024-01-10",
            "2024-01-17",
            "2024-01-24",
            "2024-01-31",
            "2024-02-07",
            "2024-02-14",
            "2024-02-21",
            "2024-02-28",
        ]

    def test_inverted_range(self, client, teacher):
        response = client.get(
            f"/api/v1/teachers/{teacher.id}/lessons",
            params={"start_date": "2024-02-01", "end_date": "2024-01-01"},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_RANGE"

    def test_dates_required(self, client, teacher):
        assert client.get(f"/api/v1/teachers/{teacher.id}/lessons").status_code == 422


class TestMonitoring:
    def test_metrics_exposition(self, client, teacher):
        client.get(f"/api/v1/teachers/{teacher.id}/available-slots")

        response = client.get("/api/v1/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "lessonloop_service_operations_total" in response.text

    def test_health(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
