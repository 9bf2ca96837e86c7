"""
Integration tests for the schedule API endpoints.

Exercises the HTTP surface end to end over an in-memory database: schedule
creation, availability round trips, slot listing, blocks, booking conflicts
and series cancellation.
"""

import pytest
from unittest.mock import patch

from core.constants import SCHEDULING_PARAMETERS_URI
from services.resource_store import ResourceStoreError, SqlAlchemyResourceStore


WEEKDAY_HOURS = {
    "default": {
        "duration_value": 30,
        "duration_unit": "min",
        "week": {
            day: {"enabled": True, "windows": [{"start_time": "09:00", "end_time": "17:00"}]}
            for day in ("mon", "tue", "wed", "thu", "fri")
        },
    }
}


@pytest.fixture
def schedule_id(client):
    response = client.post("/api/schedules", json={"actor": "Practitioner/dr-api"})
    assert response.status_code == 201
    return response.json()["id"]


class TestHealth:
    """Test service endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"


class TestSchedules:
    """Test schedule endpoints."""

    def test_create_and_get(self, client, schedule_id):
        response = client.get(f"/api/schedules/{schedule_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["actor"] == "Practitioner/dr-api"
        assert data["service_types"] == []

    def test_missing_schedule(self, client):
        assert client.get("/api/schedules/999").status_code == 404


class TestAvailabilityEndpoints:
    """Test availability configuration endpoints."""

    def test_new_schedule_reports_no_default(self, client, schedule_id):
        data = client.get(f"/api/schedules/{schedule_id}/availability").json()

        assert data["has_default"] is False
        assert data["default"]["week"]["mon"]["enabled"] is True
        assert data["overrides"] == []

    def test_save_and_read_back(self, client, schedule_id):
        response = client.put(f"/api/schedules/{schedule_id}/availability", json=WEEKDAY_HOURS)

        assert response.status_code == 200
        data = client.get(f"/api/schedules/{schedule_id}/availability").json()
        assert data["has_default"] is True
        assert data["default"]["week"]["fri"]["windows"] == [{"start_time": "09:00", "end_time": "17:00"}]
        assert data["default"]["week"]["sat"]["enabled"] is False

    def test_saved_weekdays_compact_into_one_entry(self, client, schedule_id, db_session):
        from models import Schedule as ScheduleModel

        client.put(f"/api/schedules/{schedule_id}/availability", json=WEEKDAY_HOURS)

        row = db_session.get(ScheduleModel, schedule_id)
        db_session.refresh(row)
        block = next(ext for ext in row.extensions if ext["url"] == SCHEDULING_PARAMETERS_URI)
        entries = [sub for sub in block["extension"] if sub["url"] == "availability"]
        assert len(entries) == 1
        assert entries[0]["valueTiming"]["repeat"]["dayOfWeek"] == ["mon", "tue", "wed", "thu", "fri"]

    def test_service_override(self, client, schedule_id):
        body = dict(WEEKDAY_HOURS)
        body["overrides"] = [{
            "week": {"sat": {"enabled": True, "windows": [{"start_time": "10:00", "end_time": "12:00"}]}},
            "service_type": {"coding": [{"system": "http://example.com", "code": "consult"}]},
        }]

        data = client.put(f"/api/schedules/{schedule_id}/availability", json=body).json()

        assert len(data["overrides"]) == 1
        assert data["overrides"][0]["week"]["sat"]["windows"] == [{"start_time": "10:00", "end_time": "12:00"}]
        schedule = client.get(f"/api/schedules/{schedule_id}").json()
        assert schedule["service_types"][0] is None
        assert schedule["service_types"][1]["coding"][0]["code"] == "consult"

    def test_override_without_service_type_rejected(self, client, schedule_id):
        body = dict(WEEKDAY_HOURS)
        body["overrides"] = [{"week": {}}]

        assert client.put(f"/api/schedules/{schedule_id}/availability", json=body).status_code == 400

    def test_invalid_time_rejected(self, client, schedule_id):
        body = {"default": {"week": {"mon": {"enabled": True, "windows": [{"start_time": "9am", "end_time": "5pm"}]}}}}

        assert client.put(f"/api/schedules/{schedule_id}/availability", json=body).status_code == 400

    def test_unknown_timezone_rejected(self, client, schedule_id):
        body = {"default": {"timezone": "Mars/Olympus"}}

        assert client.put(f"/api/schedules/{schedule_id}/availability", json=body).status_code == 400

    def test_negative_booking_limit_rejected(self, client, schedule_id):
        body = {"default": {"booking_limits": [{"max_count": -1}]}}

        assert client.put(f"/api/schedules/{schedule_id}/availability", json=body).status_code == 400

    def test_zero_booking_limit_is_dropped(self, client, schedule_id):
        body = {"default": {"booking_limits": [{"max_count": 0}, {"max_count": 4, "period_unit": "wk"}]}}

        data = client.put(f"/api/schedules/{schedule_id}/availability", json=body).json()

        assert data["default"]["booking_limits"] == [{"max_count": 4, "period_length": 1, "period_unit": "wk"}]

    def test_availability_slots(self, client, schedule_id):
        client.put(f"/api/schedules/{schedule_id}/availability", json=WEEKDAY_HOURS)

        response = client.get(
            f"/api/schedules/{schedule_id}/availability/slots",
            params={"start": "2026-01-05T00:00:00Z", "end": "2026-01-12T00:00:00Z"},
        )

        assert response.status_code == 200
        slots = response.json()
        assert len(slots) == 5
        assert all(s["virtual"] and s["status"] == "free" for s in slots)

    def test_reversed_range_rejected(self, client, schedule_id):
        response = client.get(
            f"/api/schedules/{schedule_id}/availability/slots",
            params={"start": "2026-01-12T00:00:00Z", "end": "2026-01-05T00:00:00Z"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "End must be after start"


class TestBlockEndpoints:
    """Test blocked time endpoints."""

    def test_create_and_list_blocks(self, client, schedule_id):
        response = client.post(
            f"/api/schedules/{schedule_id}/blocks",
            json={"start_date": "2026-03-10", "end_date": "2026-03-10", "comment": "Conference"},
        )

        assert response.status_code == 201
        created = response.json()
        assert created["all_day"] is True
        assert created["comment"] == "Conference"

        listing = client.get(f"/api/schedules/{schedule_id}/blocks").json()
        assert [b["id"] for b in listing["upcoming"]] == [created["id"]]
        assert listing["past"] == []
        assert len(listing["unblocked_holidays"]) > 0

    def test_reversed_dates_rejected(self, client, schedule_id):
        response = client.post(
            f"/api/schedules/{schedule_id}/blocks",
            json={"start_date": "2026-03-11", "end_date": "2026-03-10"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "End date must be on or after start date"

    def test_merged_blocks_listed_and_removed(self, client, schedule_id):
        first = client.post(f"/api/schedules/{schedule_id}/blocks/range",
                            json={"start": "2026-03-10T09:00:00Z", "end": "2026-03-10T11:00:00Z"}).json()
        second = client.post(f"/api/schedules/{schedule_id}/blocks/range",
                             json={"start": "2026-03-10T10:00:00Z", "end": "2026-03-10T12:00:00Z"}).json()

        slots = client.get(f"/api/schedules/{schedule_id}/slots",
                           params={"start": "2026-03-10T00:00:00Z", "end": "2026-03-11T00:00:00Z"}).json()
        assert len(slots) == 1
        assert slots[0]["merged_ids"] == [first["id"], second["id"]]

        response = client.delete(f"/api/schedules/{schedule_id}/blocks/{first['id']}",
                                 params={"merged_ids": [second["id"]]})

        assert response.json() == {"completed": 2, "failed_ids": [], "partial": False}
        slots = client.get(f"/api/schedules/{schedule_id}/slots",
                           params={"start": "2026-03-10T00:00:00Z", "end": "2026-03-11T00:00:00Z"}).json()
        assert slots == []

    def test_block_holidays(self, client, schedule_id):
        response = client.post(f"/api/schedules/{schedule_id}/blocks/holidays",
                               json={"dates": ["2026-05-25", "2026-11-26"]})

        assert response.status_code == 201
        assert [b["comment"] for b in response.json()] == ["Memorial Day", "Thanksgiving"]

        listing = client.get(f"/api/schedules/{schedule_id}/blocks").json()
        assert "2026-11-26" not in [h["date"] for h in listing["unblocked_holidays"]]

    def test_clear_past_blocks(self, client, schedule_id):
        # The test clock is frozen at 2026-03-01 12:00 UTC
        client.post(f"/api/schedules/{schedule_id}/blocks", json={"start_date": "2026-02-10", "end_date": "2026-02-10"})
        client.post(f"/api/schedules/{schedule_id}/blocks", json={"start_date": "2026-03-10", "end_date": "2026-03-10"})

        response = client.delete(f"/api/schedules/{schedule_id}/blocks/past")

        assert response.json()["completed"] == 1
        listing = client.get(f"/api/schedules/{schedule_id}/blocks").json()
        assert listing["past"] == []
        assert len(listing["upcoming"]) == 1

    def test_block_over_appointment_conflict(self, client, schedule_id):
        client.post(f"/api/schedules/{schedule_id}/appointments",
                    json={"start": "2026-03-10T09:00:00Z", "end": "2026-03-10T10:00:00Z"})

        response = client.post(f"/api/schedules/{schedule_id}/blocks",
                               json={"start_date": "2026-03-10", "end_date": "2026-03-10"})

        assert response.status_code == 409
        assert response.json()["detail"]["reason"] == "block_over_appointment"


class TestAppointmentEndpoints:
    """Test booking endpoints."""

    def test_block_rejects_overlapping_booking(self, client, schedule_id):
        client.post(f"/api/schedules/{schedule_id}/blocks/range",
                    json={"start": "2026-03-10T14:00:00Z", "end": "2026-03-10T15:00:00Z"})

        rejected = client.post(f"/api/schedules/{schedule_id}/appointments",
                               json={"start": "2026-03-10T14:30:00Z", "end": "2026-03-10T15:30:00Z"})
        accepted = client.post(f"/api/schedules/{schedule_id}/appointments",
                               json={"start": "2026-03-10T15:00:00Z", "end": "2026-03-10T16:00:00Z"})

        assert rejected.status_code == 409
        assert rejected.json()["detail"] == {
            "reason": "blocked",
            "message": "This time is blocked. Choose another time or remove the block first.",
            "conflicting_id": 1,
        }
        assert accepted.status_code == 201

    def test_series_booking_and_cancellation(self, client, schedule_id):
        response = client.post(
            f"/api/schedules/{schedule_id}/appointments",
            json={"start": "2026-01-05T09:00:00Z", "end": "2026-01-05T10:00:00Z", "occurrences": 4,
                  "interval_weeks": 2},
        )

        assert response.status_code == 201
        created = response.json()
        assert [a["start"][:10] for a in created] == ["2026-01-05", "2026-01-19", "2026-02-02", "2026-02-16"]
        series_id = created[1]["series_id"]

        result = client.post(f"/api/schedules/{schedule_id}/series/{series_id}/cancel").json()

        assert result == {"completed": 3, "failed_ids": [], "partial": False}

    def test_cancel_single_appointment(self, client, schedule_id):
        created = client.post(f"/api/schedules/{schedule_id}/appointments",
                              json={"start": "2026-03-10T09:00:00Z", "end": "2026-03-10T10:00:00Z"}).json()

        response = client.post(f"/api/schedules/{schedule_id}/appointments/{created[0]['id']}/cancel")

        assert response.json()["status"] == "cancelled"
        listing = client.get(f"/api/schedules/{schedule_id}/appointments",
                             params={"start": "2026-03-10T00:00:00Z", "end": "2026-03-11T00:00:00Z"}).json()
        assert [a["status"] for a in listing] == ["cancelled"]

    def test_partial_series_write_lists_stored_ids(self, client, schedule_id):
        original = SqlAlchemyResourceStore.create
        written = []

        def create(store, record):
            if len(written) == 1:
                raise ResourceStoreError("Failed to create Appointment")
            written.append(record)
            return original(store, record)

        with patch.object(SqlAlchemyResourceStore, "create", autospec=True, side_effect=create):
            response = client.post(
                f"/api/schedules/{schedule_id}/appointments",
                json={"start": "2026-01-05T09:00:00Z", "end": "2026-01-05T10:00:00Z", "occurrences": 3,
                      "interval_weeks": 1},
            )

        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail["message"] == "Booked 1 of 3 occurrence(s) before a write failed"
        listing = client.get(f"/api/schedules/{schedule_id}/appointments",
                             params={"start": "2026-01-01T00:00:00Z", "end": "2026-02-01T00:00:00Z"}).json()
        assert detail["created_ids"] == [a["id"] for a in listing]

    def test_invalid_recurrence_rejected(self, client, schedule_id):
        response = client.post(f"/api/schedules/{schedule_id}/appointments",
                               json={"start": "2026-03-10T09:00:00Z", "end": "2026-03-10T10:00:00Z",
                                     "occurrences": 0})

        assert response.status_code == 400

    def test_selection(self, client, schedule_id):
        response = client.post(f"/api/schedules/{schedule_id}/selection",
                               json={"start": "2026-03-10T00:00:00Z", "end": "2026-03-11T00:00:00Z"})

        data = response.json()
        assert data["kind"] == "block"
        assert data["duration_label"] == "23h 59m"
