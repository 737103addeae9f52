"""
API tests for locations, tracked items, entries and variance.
"""
import pytest
from fastapi import status

from yieldhub.models.models import AuditLog, TrackedItem

from conftest import make_item, make_user


class TestLocations:

    def test_master_lists_all_sites(self, client, org, headers):
        names = [loc["name"] for loc in client.get("/locations", headers=headers(org.master)).json()]
        assert names == ["Alpha", "Bravo", "Charlie"]

    def test_regional_lists_region_sites(self, client, org, headers):
        names = [loc["name"] for loc in client.get("/locations", headers=headers(org.regional)).json()]
        assert names == ["Alpha", "Bravo"]

    def test_employee_lists_own_site(self, client, org, headers):
        names = [loc["name"] for loc in client.get("/locations", headers=headers(org.employee)).json()]
        assert names == ["Alpha"]

    def test_only_master_creates_sites(self, client, org, headers):
        payload = {"name": "Delta", "region_id": str(org.south.id)}
        assert client.post("/locations", json=payload, headers=headers(org.regional)).status_code == status.HTTP_403_FORBIDDEN
        response = client.post("/locations", json=payload, headers=headers(org.master))
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["kind"] == "site"

    def test_regional_without_region_rejected(self, client, db_session, org, headers):
        stray = make_user(db_session, "stray.regional@example.com", "regional_admin")
        response = client.get("/locations", headers=headers(stray))
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"] == "Requester missing region_id"

    def test_detail_out_of_scope(self, client, org, headers):
        response = client.get(f"/locations/{org.charlie.id}", headers=headers(org.employee))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_detail_includes_variance(self, client, db_session, org, headers):
        item = make_item(db_session, org.alpha)
        client.post(f"/items/{item.id}/entries", json={"input_used": 10, "output_count": 90}, headers=headers(org.employee))
        client.post(f"/items/{item.id}/entries", json={"input_used": 10, "output_count": 95}, headers=headers(org.employee))

        response = client.get(f"/locations/{org.alpha.id}", headers=headers(org.employee))
        assert response.status_code == status.HTTP_200_OK
        detail = response.json()["items"][0]
        assert {e["variance"]["classification"] for e in detail["entries"]} == {"red", "yellow"}
        assert detail["total_waste_cost"] == 3.0


class TestTrackedItems:

    def test_local_admin_creates_item_with_default_bands(self, client, db_session, org, headers):
        response = client.post(
            f"/locations/{org.alpha.id}/items",
            json={"name": "Flour", "unit": "kg", "value_per_unit": 1.5},
            headers=headers(org.local),
        )
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["tolerance_green"] == 0.03
        assert data["tolerance_yellow"] == 0.06
        assert data["baseline_locked"] is False
        log = db_session.query(AuditLog).filter(AuditLog.entity_type == "tracked_item").one()
        assert log.action == "CREATE"
        assert log.context["new_row"]["name"] == "Flour"

    def test_employee_cannot_create_item(self, client, org, headers):
        response = client.post(f"/locations/{org.alpha.id}/items", json={"name": "Flour", "unit": "kg"}, headers=headers(org.employee))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_local_admin_other_site(self, client, org, headers):
        response = client.post(f"/locations/{org.bravo.id}/items", json={"name": "Flour", "unit": "kg"}, headers=headers(org.local))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_update_records_diff(self, client, db_session, org, headers):
        item = make_item(db_session, org.alpha)
        response = client.patch(f"/items/{item.id}", json={"value_per_unit": 3}, headers=headers(org.local))
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["value_per_unit"] == 3
        log = db_session.query(AuditLog).filter(AuditLog.action == "UPDATE").one()
        assert log.changes_json == {"value_per_unit": {"before": 2.0, "after": 3.0}}

    def test_locked_baseline_is_immutable(self, client, db_session, org, headers):
        item = make_item(db_session, org.alpha, locked=True)
        response = client.patch(f"/items/{item.id}", json={"baseline_output": 120}, headers=headers(org.master))
        assert response.status_code == status.HTTP_409_CONFLICT
        db_session.expire_all()
        assert db_session.get(TrackedItem, item.id).baseline_output == 100

    def test_locked_item_accepts_other_edits(self, client, db_session, org, headers):
        item = make_item(db_session, org.alpha, locked=True)
        response = client.patch(f"/items/{item.id}", json={"sub_label": "Bakery", "baseline_input": 10}, headers=headers(org.local))
        assert response.status_code == status.HTTP_200_OK

    def test_band_order_validated(self, client, db_session, org, headers):
        item = make_item(db_session, org.alpha)
        response = client.patch(f"/items/{item.id}", json={"tolerance_green": 0.1}, headers=headers(org.local))
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @pytest.mark.parametrize("field", ["name", "unit", "value_per_unit", "tolerance_green", "tolerance_yellow"])
    def test_null_rejected(self, client, db_session, org, headers, field):
        item = make_item(db_session, org.alpha)
        response = client.patch(f"/items/{item.id}", json={field: None}, headers=headers(org.local))
        assert response.status_code == 422
        db_session.expire_all()
        assert db_session.get(TrackedItem, item.id).tolerance_green == 0.03

    def test_lock_baseline(self, client, db_session, org, headers):
        item = make_item(db_session, org.alpha, baseline_input=None, baseline_output=None)
        response = client.post(
            f"/items/{item.id}/lock-baseline",
            json={"baseline_input": 20, "baseline_output": 180},
            headers=headers(org.local),
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["baseline_locked"] is True
        again = client.post(f"/items/{item.id}/lock-baseline", json={}, headers=headers(org.local))
        assert again.status_code == status.HTTP_409_CONFLICT

    def test_lock_requires_baselines(self, client, db_session, org, headers):
        item = make_item(db_session, org.alpha, baseline_input=None, baseline_output=None)
        response = client.post(f"/items/{item.id}/lock-baseline", json={}, headers=headers(org.local))
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_delete_audited(self, client, db_session, org, headers):
        item = make_item(db_session, org.alpha)
        item_id = item.id
        response = client.delete(f"/items/{item_id}", headers=headers(org.local))
        assert response.status_code == status.HTTP_200_OK
        assert db_session.get(TrackedItem, item_id) is None
        log = db_session.query(AuditLog).filter(AuditLog.action == "DELETE").one()
        assert log.context["old_row"]["name"] == "Flour"


class TestEntries:

    def test_entry_classified_on_insert(self, client, db_session, org, headers):
        item = make_item(db_session, org.alpha)
        response = client.post(
            f"/items/{item.id}/entries",
            json={"input_used": 10, "output_count": 90, "period_label": "Week 12"},
            headers=headers(org.employee),
        )
        assert response.status_code == status.HTTP_200_OK
        variance = response.json()["variance"]
        assert variance["classification"] == "red"
        assert variance["expected_output"] == 100
        assert variance["waste_cost"] == 2
        assert response.json()["period_label"] == "Week 12"

    def test_entry_without_baseline_is_unknown(self, client, db_session, org, headers):
        item = make_item(db_session, org.alpha, baseline_input=None)
        response = client.post(f"/items/{item.id}/entries", json={"input_used": 5, "output_count": 5}, headers=headers(org.employee))
        variance = response.json()["variance"]
        assert variance["classification"] == "unknown"
        assert variance["insufficient_data"] is True
        assert variance["waste_cost"] is None

    def test_negative_values_rejected(self, client, db_session, org, headers):
        item = make_item(db_session, org.alpha)
        response = client.post(f"/items/{item.id}/entries", json={"input_used": -1, "output_count": 5}, headers=headers(org.employee))
        assert response.status_code == 422

    def test_entry_at_foreign_site(self, client, db_session, org, headers):
        item = make_item(db_session, org.charlie)
        response = client.post(f"/items/{item.id}/entries", json={"input_used": 1, "output_count": 1}, headers=headers(org.employee))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_list_entries(self, client, db_session, org, headers):
        item = make_item(db_session, org.alpha)
        client.post(f"/items/{item.id}/entries", json={"input_used": 0, "output_count": 0}, headers=headers(org.employee))
        rows = client.get(f"/items/{item.id}/entries", headers=headers(org.employee)).json()
        assert len(rows) == 1
        assert rows[0]["variance"]["classification"] == "green"


class TestVarianceEvaluate:

    def test_stateless_evaluation(self, client, org, headers):
        payload = {"baseline_input": 10, "baseline_output": 100, "value_per_unit": 2, "input_used": 10, "output_count": 95}
        response = client.post("/variance/evaluate", json=payload, headers=headers(org.employee))
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["classification"] == "yellow"
        assert response.json()["waste_cost"] == 1.0

    def test_band_order_validated(self, client, org, headers):
        payload = {"tolerance_green": 0.1, "tolerance_yellow": 0.05, "input_used": 10, "output_count": 95}
        response = client.post("/variance/evaluate", json=payload, headers=headers(org.employee))
        assert response.status_code == 422
