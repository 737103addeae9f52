"""
API tests for the audit log endpoint.
"""
import pytest
from fastapi import status

from conftest import make_item


class TestAuditApi:

    @pytest.mark.parametrize("role_attr", ["employee", "local", "regional"])
    def test_master_only(self, client, org, headers, role_attr):
        response = client.get("/audit", headers=headers(getattr(org, role_attr)))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_filters(self, client, db_session, org, headers):
        item = make_item(db_session, org.alpha)
        client.patch(f"/items/{item.id}", json={"value_per_unit": 5}, headers=headers(org.local))
        client.post(
            "/users",
            json={"email": "x@example.com", "password": "long-enough-1", "role": "employee", "location_id": str(org.bravo.id)},
            headers=headers(org.local),
        )

        rows = client.get("/audit", headers=headers(org.master)).json()
        assert {r["action"] for r in rows} == {"UPDATE", "CREATE"}

        updates = client.get("/audit?action=update", headers=headers(org.master)).json()
        assert [r["entity_id"] for r in updates] == [str(item.id)]

        denied = client.get("/audit?entity_type=user", headers=headers(org.master)).json()
        assert len(denied) == 1
        assert denied[0]["ok"] is False
        assert denied[0]["error"] == "Local admin must assign their own location"

        everything = client.get("/audit?action=ALL&limit=1", headers=headers(org.master)).json()
        assert len(everything) == 1

        at_alpha = client.get(f"/audit?location_id={org.alpha.id}", headers=headers(org.master)).json()
        assert [r["action"] for r in at_alpha] == ["UPDATE"]
