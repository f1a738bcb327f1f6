"""
Location scoping tests.

Verifies:
- Super admins may access every location; staff only their assigned one
- Scoped list queries fail closed for staff without a location
- Target location extraction order and validation
- Denials are audited, and audit failures never change the outcome
"""

import pytest

from buildstock.errors import AuthenticationRequired, AuthorizationDenied, ValidationError
from buildstock.models import InventoryRecord
from buildstock.services import access_service
from buildstock.services.access_service import (
    CallerContext,
    can_access_location,
    extract_target_location_id,
    require_location_access,
    scoped_filter,
)
from buildstock.services.events import AUDIT_LOCATION_VIOLATION

from conftest import make_product, stock


# =============================================================================
# PERMIT / DENY
# =============================================================================


class TestCanAccessLocation:

    @pytest.mark.parametrize("location_id", [1, 2, 99, None])
    def test_super_admin_always_permitted(self, location_id):
        caller = CallerContext(id=1, role="SUPER_ADMIN")
        assert can_access_location(caller, location_id) is True

    @pytest.mark.parametrize("role", ["STORE_MANAGER", "SITE_ENGINEER"])
    def test_staff_permitted_only_for_assigned_location(self, role):
        caller = CallerContext(id=2, role=role, assigned_location_id=7)
        assert can_access_location(caller, 7) is True
        assert can_access_location(caller, 8) is False

    @pytest.mark.parametrize("role", ["STORE_MANAGER", "SITE_ENGINEER"])
    def test_staff_without_location_denied_everywhere(self, role):
        caller = CallerContext(id=3, role=role, assigned_location_id=None)
        assert can_access_location(caller, 1) is False
        assert can_access_location(caller, None) is False

    def test_unknown_role_denied(self):
        caller = CallerContext(id=4, role="AUDITOR", assigned_location_id=1)
        assert can_access_location(caller, 1) is False

    def test_accessible_location_ids(self):
        assert access_service.accessible_location_ids(CallerContext(id=1, role="SUPER_ADMIN")) is None
        assert access_service.accessible_location_ids(
            CallerContext(id=2, role="STORE_MANAGER", assigned_location_id=5)
        ) == {5}
        assert access_service.accessible_location_ids(CallerContext(id=3, role="SITE_ENGINEER")) == set()


# =============================================================================
# SCOPED QUERIES
# =============================================================================


class TestScopedFilter:

    @pytest.fixture
    def records(self, db_session, store_a, store_b, site_a):
        product = make_product(db_session, "PRD-TLS-001", name="Drill", category="Tools")
        return [
            stock(db_session, store_a, product, 5),
            stock(db_session, store_b, product, 6),
            stock(db_session, site_a, product, 7),
        ]

    def _visible(self, db_session, caller):
        query = scoped_filter(caller, db_session.query(InventoryRecord), InventoryRecord.location_id)
        return {record.location_id for record in query.all()}

    def test_super_admin_sees_everything(self, db_session, records, admin_caller):
        assert self._visible(db_session, admin_caller) == {r.location_id for r in records}

    def test_manager_sees_only_assigned_location(self, db_session, records, manager_a_caller, store_a):
        assert self._visible(db_session, manager_a_caller) == {store_a.id}

    def test_engineer_sees_only_assigned_site(self, db_session, records, engineer_caller, site_a):
        assert self._visible(db_session, engineer_caller) == {site_a.id}

    def test_unassigned_staff_get_empty_result(self, db_session, records, unassigned_caller):
        assert self._visible(db_session, unassigned_caller) == set()

    def test_unknown_role_gets_empty_result(self, db_session, records):
        assert self._visible(db_session, CallerContext(id=99, role="AUDITOR", assigned_location_id=None)) == set()


# =============================================================================
# TARGET EXTRACTION
# =============================================================================


class TestExtractTargetLocationId:

    def test_no_candidates(self):
        assert extract_target_location_id({}, {}, {}) is None
        assert extract_target_location_id(None, None, None) is None

    def test_path_parameter_wins(self):
        assert extract_target_location_id(
            {"location_id": 3},
            {"location_id": "4"},
            {"location_id": 5, "store_id": 6},
        ) == 3

    def test_query_location_before_body(self):
        assert extract_target_location_id({}, {"location_id": "4"}, {"location_id": 5}) == 4

    def test_body_location_before_aliases(self):
        assert extract_target_location_id({}, {"store_id": "9"}, {"location_id": 5, "site_id": 8}) == 5

    def test_body_store_before_body_site(self):
        assert extract_target_location_id({}, {}, {"store_id": 6, "site_id": 8}) == 6

    def test_body_aliases_before_query_aliases(self):
        assert extract_target_location_id({}, {"store_id": "9"}, {"site_id": 8}) == 8

    def test_query_store_then_site(self):
        assert extract_target_location_id({}, {"store_id": "9", "site_id": "10"}, {}) == 9
        assert extract_target_location_id({}, {"site_id": "10"}, {}) == 10

    @pytest.mark.parametrize("bad", ["abc", "0", "-3", 1.5, "2e3", True])
    def test_malformed_value_rejected(self, bad):
        with pytest.raises(ValidationError):
            extract_target_location_id({}, {"location_id": bad}, {})


# =============================================================================
# GATE + AUDIT
# =============================================================================


class TestRequireLocationAccess:

    def test_missing_caller_is_authentication_error(self, db_session, publisher):
        with pytest.raises(AuthenticationRequired):
            require_location_access(None, 1, resource="/api/stores/1", publisher=publisher)
        assert publisher.events == []

    def test_malformed_id_checked_before_access(self, db_session, manager_a_caller, publisher):
        with pytest.raises(ValidationError):
            require_location_access(manager_a_caller, "-1", resource="/api/stores/-1", publisher=publisher)
        assert publisher.events == []

    def test_permitted_access_returns_id_without_audit(self, db_session, manager_a_caller, store_a, publisher):
        assert require_location_access(manager_a_caller, str(store_a.id), resource="x", publisher=publisher) == store_a.id
        assert publisher.events == []

    def test_denial_is_audited_with_forensics(self, db_session, manager_a_caller, store_a, store_b, publisher):
        with pytest.raises(AuthorizationDenied):
            require_location_access(manager_a_caller, store_b.id, resource="/api/stores/x", publisher=publisher)

        assert len(publisher.audits) == 1
        event = publisher.audits[0]
        assert event.action == AUDIT_LOCATION_VIOLATION
        assert event.user_id == manager_a_caller.id
        assert event.resource == "/api/stores/x"
        assert "STORE_MANAGER" in event.details
        assert f"access location {store_b.id}" in event.details
        assert f"assigned to location {store_a.id}" in event.details

    def test_unassigned_denial_reports_none(self, db_session, unassigned_caller, store_a, publisher):
        with pytest.raises(AuthorizationDenied):
            require_location_access(unassigned_caller, store_a.id, resource="r", publisher=publisher)
        assert publisher.audits[0].details.endswith("assigned to location none")

    def test_audit_failure_does_not_change_outcome(self, db_session, manager_a_caller, store_b, failing_publisher):
        with pytest.raises(AuthorizationDenied):
            require_location_access(manager_a_caller, store_b.id, resource="r", publisher=failing_publisher)
        assert failing_publisher.attempts == 1
