"""
API tests for calibration standards and training sessions.
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import status

from conftest import make_item, make_user


@pytest.fixture
def item(db_session, org):
    return make_item(db_session, org.alpha, name="Dough")


@pytest.fixture
def standard(client, org, headers, item):
    response = client.post(
        "/calibration",
        json={"tracked_item_id": str(item.id), "target_value": 500, "min_value": 490, "max_value": 510},
        headers=headers(org.local),
    )
    assert response.status_code == status.HTTP_200_OK
    return response.json()


@pytest.fixture
def session(client, org, headers, item):
    start = datetime.now(timezone.utc)
    response = client.post(
        "/training/sessions",
        json={
            "location_id": str(org.alpha.id),
            "employee_id": str(org.employee.id),
            "starts_at": start.isoformat(),
            "ends_at": (start + timedelta(hours=2)).isoformat(),
            "tracked_item_ids": [str(item.id)],
        },
        headers=headers(org.local),
    )
    assert response.status_code == status.HTTP_200_OK
    return response.json()


class TestCalibration:

    def test_create_defaults_unit_from_item(self, standard):
        assert standard["unit"] == "kg"
        assert standard["active"] is True

    def test_range_validated_on_create(self, client, org, headers, item):
        response = client.post(
            "/calibration",
            json={"tracked_item_id": str(item.id), "target_value": 600, "min_value": 490, "max_value": 510},
            headers=headers(org.local),
        )
        assert response.status_code == 422

    def test_range_validated_on_update(self, client, org, headers, standard):
        response = client.patch(f"/calibration/{standard['id']}", json={"max_value": 495}, headers=headers(org.local))
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_update(self, client, org, headers, standard):
        response = client.patch(f"/calibration/{standard['id']}", json={"active": False}, headers=headers(org.master))
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["active"] is False
        assert response.json()["updated_by"] == str(org.master.id)

    @pytest.mark.parametrize("field", ["target_value", "unit", "active"])
    def test_null_rejected(self, client, org, headers, standard, field):
        response = client.patch(f"/calibration/{standard['id']}", json={field: None}, headers=headers(org.local))
        assert response.status_code == 422

    def test_list_by_location(self, client, org, headers, standard):
        rows = client.get(f"/calibration?location_id={org.alpha.id}", headers=headers(org.employee)).json()
        assert [r["id"] for r in rows] == [standard["id"]]

    def test_employee_cannot_create(self, client, org, headers, item):
        response = client.post(
            "/calibration",
            json={"tracked_item_id": str(item.id), "target_value": 5, "min_value": 4, "max_value": 6},
            headers=headers(org.employee),
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_foreign_site_hidden(self, client, org, headers, standard):
        response = client.get(f"/calibration/{standard['id']}", headers=headers(org.employee_charlie))
        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestTrainingSessions:

    def test_created_with_items(self, session, item):
        assert session["status"] == "scheduled"
        assert [i["tracked_item_id"] for i in session["items"]] == [str(item.id)]

    def test_window_validated(self, client, org, headers):
        start = datetime.now(timezone.utc)
        response = client.post(
            "/training/sessions",
            json={
                "location_id": str(org.alpha.id),
                "employee_id": str(org.employee.id),
                "starts_at": start.isoformat(),
                "ends_at": start.isoformat(),
            },
            headers=headers(org.local),
        )
        assert response.status_code == 422

    def test_employee_sees_own_sessions(self, client, org, headers, session):
        rows = client.get("/training/sessions", headers=headers(org.employee)).json()
        assert [r["id"] for r in rows] == [session["id"]]
        assert client.get("/training/sessions", headers=headers(org.employee_charlie)).json() == []

    def test_admin_scope_listing(self, client, org, headers, session):
        assert len(client.get("/training/sessions", headers=headers(org.regional)).json()) == 1
        assert client.get("/training/sessions", headers=headers(org.regional_south)).json() == []

    def test_other_employee_cannot_view(self, client, org, headers, session):
        response = client.get(f"/training/sessions/{session['id']}", headers=headers(org.employee_charlie))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_add_item_is_idempotent(self, client, db_session, org, headers, session):
        extra = make_item(db_session, org.alpha, name="Sugar")
        first = client.post(f"/training/sessions/{session['id']}/items", json={"tracked_item_id": str(extra.id)}, headers=headers(org.local))
        second = client.post(f"/training/sessions/{session['id']}/items", json={"tracked_item_id": str(extra.id)}, headers=headers(org.local))
        assert first.json()["id"] == second.json()["id"]

        removed = client.delete(f"/training/sessions/{session['id']}/items/{first.json()['id']}", headers=headers(org.local))
        assert removed.status_code == status.HTTP_200_OK

    def test_item_from_other_site_rejected(self, client, db_session, org, headers, session):
        foreign = make_item(db_session, org.charlie, name="Salt")
        response = client.post(f"/training/sessions/{session['id']}/items", json={"tracked_item_id": str(foreign.id)}, headers=headers(org.local))
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_complete_with_feedback(self, client, org, headers, item, standard, session):
        response = client.post(
            f"/training/sessions/{session['id']}/complete",
            json={"readings": [{"tracked_item_id": str(item.id), "value": 485}]},
            headers=headers(org.employee),
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["readings"] == [{"tracked_item_id": str(item.id), "value": 485.0, "feedback": "below_range"}]

        detail = client.get(f"/training/sessions/{session['id']}", headers=headers(org.employee)).json()
        assert detail["status"] == "completed"
        assert len(detail["completions"]) == 1

        again = client.post(f"/training/sessions/{session['id']}/complete", json={"readings": []}, headers=headers(org.employee))
        assert again.status_code == status.HTTP_409_CONFLICT

    def test_reading_without_standard_is_unknown(self, client, org, headers, item, session):
        response = client.post(
            f"/training/sessions/{session['id']}/complete",
            json={"readings": [{"tracked_item_id": str(item.id), "value": 500}]},
            headers=headers(org.employee),
        )
        assert response.json()["readings"][0]["feedback"] == "unknown"

    def test_only_assigned_employee_completes(self, client, org, headers, session):
        response = client.post(f"/training/sessions/{session['id']}/complete", json={"readings": []}, headers=headers(org.local))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_cancel_and_delete(self, client, org, headers, session):
        response = client.patch(f"/training/sessions/{session['id']}", json={"status": "cancelled"}, headers=headers(org.local))
        assert response.json()["status"] == "cancelled"
        assert client.delete(f"/training/sessions/{session['id']}", headers=headers(org.local)).status_code == status.HTTP_200_OK
        assert client.get(f"/training/sessions/{session['id']}", headers=headers(org.local)).status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.parametrize("field", ["starts_at", "ends_at", "status"])
    def test_null_rejected(self, client, org, headers, session, field):
        response = client.patch(f"/training/sessions/{session['id']}", json={field: None}, headers=headers(org.local))
        assert response.status_code == 422

    def test_employee_from_other_site_rejected(self, client, org, headers):
        start = datetime.now(timezone.utc)
        response = client.post(
            "/training/sessions",
            json={
                "location_id": str(org.alpha.id),
                "employee_id": str(org.employee_charlie.id),
                "starts_at": start.isoformat(),
                "ends_at": (start + timedelta(hours=1)).isoformat(),
            },
            headers=headers(org.local),
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["detail"] == "Employee not assigned to this location"

    def test_regional_without_region_rejected(self, client, db_session, headers):
        stray = make_user(db_session, "stray.regional@example.com", "regional_admin")
        response = client.get("/training/sessions", headers=headers(stray))
        assert response.status_code == status.HTTP_400_BAD_REQUEST
