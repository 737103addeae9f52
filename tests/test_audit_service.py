"""
Tests for the append-only audit service.
"""
import uuid

from yieldhub.services.audit import compute_diff, create_audit_log, get_audit_logs, verify_integrity


class TestAuditService:

    def test_integrity_hash_round_trip(self, db_session, org):
        log = create_audit_log(
            db_session,
            entity_type="user",
            entity_id=org.employee.id,
            action="DEACTIVATE",
            actor_id=org.master.id,
            actor_role="master_admin",
            context={"target_role": "employee"},
        )
        assert log.integrity_hash
        assert verify_integrity(log)

    def test_tampering_breaks_integrity(self, db_session, org):
        log = create_audit_log(
            db_session,
            entity_type="user",
            entity_id=org.employee.id,
            action="CREATE",
            actor_id=org.master.id,
            actor_role="master_admin",
        )
        log.ok = False
        assert not verify_integrity(log)
        assert not verify_integrity(log, integrity_secret="another-secret")

    def test_denied_action_recorded(self, db_session, org):
        log = create_audit_log(
            db_session,
            entity_type="user",
            entity_id=None,
            action="CREATE",
            actor_id=org.local.id,
            actor_role="local_admin",
            ok=False,
            error="Local admin can only create employees",
        )
        assert log.ok is False
        assert log.entity_id is None

    def test_filters(self, db_session, org):
        item_id = uuid.uuid4()
        create_audit_log(db_session, "tracked_item", item_id, "CREATE", location_id=org.alpha.id)
        create_audit_log(db_session, "tracked_item", item_id, "UPDATE", location_id=org.alpha.id)
        create_audit_log(db_session, "user", uuid.uuid4(), "CREATE", ok=False, error="Location not in your region")

        assert len(get_audit_logs(db_session, entity_type="tracked_item")) == 2
        assert len(get_audit_logs(db_session, action="update")) == 1
        assert len(get_audit_logs(db_session, location_id=org.alpha.id)) == 2
        assert [log.action for log in get_audit_logs(db_session, q="region")] == ["CREATE"]
        assert len(get_audit_logs(db_session, limit=1)) == 1

    def test_compute_diff(self):
        diff = compute_diff({"a": 1, "b": 2}, {"a": 1, "b": 3, "c": 4})
        assert diff == {"b": {"before": 2, "after": 3}, "c": {"before": None, "after": 4}}
