# backend/tests/routes/test_billing_routes.py
"""
HTTP tests for /api/v1/billing and the /api/v1/jobs triggers.
"""

import pytest

from lessonloop.services.recurring_slot_service import RecurringSlotService

WEDNESDAY = 3


@pytest.fixture
def booking(db, clock, teacher, student):
    return RecurringSlotService(db, clock=clock).book_recurring_slot(
        teacher.id, student.id, WEDNESDAY, "16:00", 30
    )


@pytest.fixture
def billing_id(client, booking):
    response = client.post("/api/v1/jobs/generate-billing", json={"month": "2024-02"})
    assert response.json()["billing_records_created"] == 1
    return client.get("/api/v1/billing", params={"month": "2024-02"}).json()[0]["id"]


class TestBillingRoutes:
    def test_list_for_month(self, client, billing_id, student):
        records = client.get("/api/v1/billing", params={"month": "2024-02", "status": "PENDING"}).json()

        assert len(records) == 1
        assert records[0]["student_id"] == student.id
        assert records[0]["total_amount"] == 13000
        assert records[0]["expected_lessons"] == 4

    def test_list_defaults_to_current_month(self, client, billing_id):
        assert client.get("/api/v1/billing").json() == []

    def test_invalid_month_query(self, client):
        response = client.get("/api/v1/billing", params={"month": "2024-13"})
        assert response.status_code == 422

    def test_bill_then_pay(self, client, billing_id, email_service, student):
        billed = client.post(f"/api/v1/billing/{billing_id}/bill")
        assert billed.status_code == 200
        assert billed.json()["status"] == "BILLED"
        assert [to for to, _subject, _html in email_service.sent] == [student.email]

        paid = client.post(f"/api/v1/billing/{billing_id}/pay", json={"payment_method": "cash"})
        assert paid.json()["status"] == "PAID"
        assert paid.json()["payment_method"] == "cash"

    def test_pay_before_billing_is_rejected(self, client, billing_id):
        response = client.post(f"/api/v1/billing/{billing_id}/pay")

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "INVALID_STATUS_TRANSITION"
        assert body["errors"]["current_status"] == "PENDING"

    def test_cancel(self, client, billing_id):
        assert client.post(f"/api/v1/billing/{billing_id}/cancel").json()["status"] == "CANCELLED"

    def test_summary(self, client, billing_id):
        summary = client.get("/api/v1/billing/summary", params={"month": "2024-02"}).json()

        assert summary["record_count"] == 1
        assert summary["total_amount"] == 13000
        assert summary["count_by_status"] == {"PENDING": 1}


class TestJobRoutes:
    def test_generate_lessons_with_defaults(self, client, booking):
        response = client.post("/api/v1/jobs/generate-lessons")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["range_start"] == "2024-01-08"
        assert body["range_end"] == "2024-04-01"
        assert body["lessons_generated"] == 8
        assert body["errors"] == []

    def test_generate_lessons_inverted_range(self, client):
        response = client.post(
            "/api/v1/jobs/generate-lessons",
            json={"range_start": "2024-03-01", "range_end": "2024-02-01"},
        )
        assert response.status_code == 422

    def test_generate_billing_invalid_month(self, client):
        response = client.post("/api/v1/jobs/generate-billing", json={"month": "February"})
        assert response.status_code == 422

    def test_mark_overdue(self, client, clock, billing_id):
        client.post(f"/api/v1/billing/{billing_id}/bill")
        clock.advance(days=15)

        response = client.post("/api/v1/jobs/mark-overdue")

        assert response.json()["marked_overdue"] == 1
        assert client.get("/api/v1/billing", params={"month": "2024-02"}).json()[0]["status"] == "OVERDUE"

    def test_history(self, client, booking):
        client.post("/api/v1/jobs/generate-lessons")
        client.post("/api/v1/jobs/generate-billing", json={"month": "2024-02"})

        history = client.get("/api/v1/jobs/history").json()
        assert {entry["job_name"] for entry in history} == {
            "generate-future-lessons",
            "generate-monthly-billing",
        }

        filtered = client.get("/api/v1/jobs/history", params={"job_name": "generate-monthly-billing"}).json()
        assert len(filtered) == 1
        assert filtered[0]["parameters"] == {"month": "2024-02"}
