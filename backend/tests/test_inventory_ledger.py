"""
Inventory ledger tests.

Verifies:
- Adjust deducts, rejects over-deduction atomically, and audits
- Transfer conserves quantity into existing or new target records
- Location checks apply to the source record's location
- Non-positive quantities are refused before anything is written
- A transfer that fails midway leaves both sides untouched
- Publisher failures never roll back a committed mutation
"""

import pytest
from sqlalchemy import false

from buildstock.errors import AuthorizationDenied, InsufficientStock, NotFound, ValidationError
from buildstock.models import InventoryRecord
from buildstock.services import inventory_service
from buildstock.services.events import AUDIT_ASSET_TRANSFER, AUDIT_INVENTORY_ADJUSTMENT, AUDIT_LOCATION_VIOLATION
from buildstock.validation import AdjustCommand, InventoryFilter, TransferCommand

from conftest import make_product, stock


def _quantity(db_session, record_id):
    db_session.expire_all()
    return db_session.get(InventoryRecord, record_id).quantity


# =============================================================================
# ADJUST
# =============================================================================


class TestAdjust:

    def test_deducts_and_audits(self, db_session, store_a, product, manager_a_caller, publisher):
        record = stock(db_session, store_a, product, 10)

        updated = inventory_service.adjust_quantity(
            db_session, manager_a_caller,
            AdjustCommand(inventory_id=record.id, quantity=4, reason="Foundation pour"),
            publisher=publisher,
        )

        assert updated.quantity == 6
        assert _quantity(db_session, record.id) == 6
        assert len(publisher.audits) == 1
        audit = publisher.audits[0]
        assert audit.action == AUDIT_INVENTORY_ADJUSTMENT
        assert audit.user_id == manager_a_caller.id
        assert audit.details == "Deducted 4 bag of Cement 50kg. Reason: Foundation pour"

    def test_default_reason_is_usage(self, db_session, store_a, product, manager_a_caller, publisher):
        record = stock(db_session, store_a, product, 3)
        inventory_service.adjust_quantity(
            db_session, manager_a_caller, AdjustCommand(inventory_id=record.id, quantity=1), publisher=publisher,
        )
        assert publisher.audits[0].details.endswith("Reason: Usage")

    def test_insufficient_stock_leaves_quantity(self, db_session, store_a, product, manager_a_caller, publisher):
        record = stock(db_session, store_a, product, 10)

        with pytest.raises(InsufficientStock) as exc_info:
            inventory_service.adjust_quantity(
                db_session, manager_a_caller, AdjustCommand(inventory_id=record.id, quantity=15), publisher=publisher,
            )

        assert exc_info.value.details == {"available": 10, "requested": 15}
        assert _quantity(db_session, record.id) == 10
        assert publisher.events == []

    def test_can_deduct_to_exactly_zero(self, db_session, store_a, product, manager_a_caller, publisher):
        record = stock(db_session, store_a, product, 5)
        inventory_service.adjust_quantity(
            db_session, manager_a_caller, AdjustCommand(inventory_id=record.id, quantity=5), publisher=publisher,
        )
        assert _quantity(db_session, record.id) == 0

    def test_sequence_never_goes_negative(self, db_session, store_a, product, manager_a_caller, publisher):
        record = stock(db_session, store_a, product, 7)
        outcomes = []
        for amount in (3, 3, 3, 1):
            try:
                inventory_service.adjust_quantity(
                    db_session, manager_a_caller, AdjustCommand(inventory_id=record.id, quantity=amount),
                    publisher=publisher,
                )
                outcomes.append("ok")
            except InsufficientStock:
                outcomes.append("short")
            assert _quantity(db_session, record.id) >= 0

        assert outcomes == ["ok", "ok", "short", "ok"]
        assert _quantity(db_session, record.id) == 0

    @pytest.mark.parametrize("quantity", [0, -5])
    def test_non_positive_quantity_rejected(self, db_session, store_a, product, manager_a_caller, publisher, quantity):
        record = stock(db_session, store_a, product, 10)

        with pytest.raises(ValidationError):
            inventory_service.adjust_quantity(
                db_session, manager_a_caller, AdjustCommand(inventory_id=record.id, quantity=quantity),
                publisher=publisher,
            )

        assert _quantity(db_session, record.id) == 10
        assert publisher.events == []

    def test_missing_record(self, db_session, manager_a_caller, publisher):
        with pytest.raises(NotFound):
            inventory_service.adjust_quantity(
                db_session, manager_a_caller, AdjustCommand(inventory_id=404, quantity=1), publisher=publisher,
            )

    def test_other_location_denied_and_audited(self, db_session, store_b, product, manager_a_caller, publisher):
        record = stock(db_session, store_b, product, 10)

        with pytest.raises(AuthorizationDenied):
            inventory_service.adjust_quantity(
                db_session, manager_a_caller, AdjustCommand(inventory_id=record.id, quantity=1), publisher=publisher,
            )

        assert _quantity(db_session, record.id) == 10
        assert [a.action for a in publisher.audits] == [AUDIT_LOCATION_VIOLATION]

    def test_super_admin_may_adjust_anywhere(self, db_session, store_b, product, admin_caller, publisher):
        record = stock(db_session, store_b, product, 10)
        inventory_service.adjust_quantity(
            db_session, admin_caller, AdjustCommand(inventory_id=record.id, quantity=2), publisher=publisher,
        )
        assert _quantity(db_session, record.id) == 8

    def test_publisher_failure_keeps_committed_adjustment(
        self, db_session, store_a, product, manager_a_caller, failing_publisher,
    ):
        record = stock(db_session, store_a, product, 10)
        inventory_service.adjust_quantity(
            db_session, manager_a_caller, AdjustCommand(inventory_id=record.id, quantity=4),
            publisher=failing_publisher,
        )
        assert failing_publisher.attempts == 1
        assert _quantity(db_session, record.id) == 6


# =============================================================================
# TRANSFER
# =============================================================================


class TestTransfer:

    def test_into_new_target_record(self, db_session, store_a, site_a, product, manager_a_caller, publisher):
        source = stock(db_session, store_a, product, 10)

        result = inventory_service.transfer_stock(
            db_session, manager_a_caller,
            TransferCommand(inventory_id=source.id, target_location_id=site_a.id, quantity=4, reason="Tower phase 1"),
            publisher=publisher,
        )

        assert result["source"].quantity == 6
        assert result["target"].quantity == 4
        assert result["target"].location_id == site_a.id
        assert result["target"].product_id == product.id
        audit = publisher.audits[0]
        assert audit.action == AUDIT_ASSET_TRANSFER
        assert f"from Loc:{store_a.id} to Loc:{site_a.id}" in audit.details
        assert "Reason: Tower phase 1" in audit.details

    def test_into_existing_target_conserves_total(self, db_session, store_a, site_a, product, manager_a_caller, publisher):
        source = stock(db_session, store_a, product, 10)
        target = stock(db_session, site_a, product, 3)

        inventory_service.transfer_stock(
            db_session, manager_a_caller,
            TransferCommand(inventory_id=source.id, target_location_id=site_a.id, quantity=7),
            publisher=publisher,
        )

        assert _quantity(db_session, source.id) == 3
        assert _quantity(db_session, target.id) == 10
        assert db_session.query(InventoryRecord).filter_by(product_id=product.id).count() == 2

    def test_default_quantity_is_one(self, db_session, store_a, site_a, manager_a_caller, publisher):
        generator = make_product(db_session, "PRD-EQP-001", name="Generator", category="Equipment")
        source = stock(db_session, store_a, generator, 2)

        inventory_service.transfer_stock(
            db_session, manager_a_caller,
            TransferCommand.from_payload({"inventory_id": source.id, "target_location_id": site_a.id}),
            publisher=publisher,
        )

        assert _quantity(db_session, source.id) == 1

    def test_insufficient_source_changes_nothing(self, db_session, store_a, site_a, product, manager_a_caller, publisher):
        source = stock(db_session, store_a, product, 2)

        with pytest.raises(InsufficientStock):
            inventory_service.transfer_stock(
                db_session, manager_a_caller,
                TransferCommand(inventory_id=source.id, target_location_id=site_a.id, quantity=3),
                publisher=publisher,
            )

        assert _quantity(db_session, source.id) == 2
        assert db_session.query(InventoryRecord).filter_by(location_id=site_a.id).count() == 0
        assert publisher.events == []

    def test_same_location_rejected(self, db_session, store_a, product, manager_a_caller, publisher):
        source = stock(db_session, store_a, product, 2)
        with pytest.raises(ValidationError):
            inventory_service.transfer_stock(
                db_session, manager_a_caller,
                TransferCommand(inventory_id=source.id, target_location_id=store_a.id),
                publisher=publisher,
            )

    def test_unknown_target_location(self, db_session, store_a, product, manager_a_caller, publisher):
        source = stock(db_session, store_a, product, 2)
        with pytest.raises(NotFound):
            inventory_service.transfer_stock(
                db_session, manager_a_caller,
                TransferCommand(inventory_id=source.id, target_location_id=9999),
                publisher=publisher,
            )
        assert _quantity(db_session, source.id) == 2

    @pytest.mark.parametrize("quantity", [0, -4])
    def test_non_positive_quantity_moves_nothing(
        self, db_session, store_a, store_b, product, manager_a_caller, publisher, quantity,
    ):
        source = stock(db_session, store_a, product, 10)
        target = stock(db_session, store_b, product, 10)

        with pytest.raises(ValidationError):
            inventory_service.transfer_stock(
                db_session, manager_a_caller,
                TransferCommand(inventory_id=source.id, target_location_id=store_b.id, quantity=quantity),
                publisher=publisher,
            )

        assert _quantity(db_session, source.id) == 10
        assert _quantity(db_session, target.id) == 10
        assert publisher.events == []

    def test_failed_increment_rolls_back_decrement(
        self, db_session, store_a, site_a, product, manager_a_caller, publisher, monkeypatch,
    ):
        source = stock(db_session, store_a, product, 10)

        def _boom(session, **kwargs):
            raise RuntimeError("target write failed")

        monkeypatch.setattr(inventory_service, "increment_or_create", _boom)

        with pytest.raises(RuntimeError):
            inventory_service.transfer_stock(
                db_session, manager_a_caller,
                TransferCommand(inventory_id=source.id, target_location_id=site_a.id, quantity=4),
                publisher=publisher,
            )

        assert _quantity(db_session, source.id) == 10
        assert db_session.query(InventoryRecord).filter_by(location_id=site_a.id).count() == 0
        assert publisher.events == []

    def test_target_gone_at_lock_time(self, db_session, store_a, site_a, product, manager_a_caller, publisher, monkeypatch):
        source = stock(db_session, store_a, product, 10)
        # Target row disappears between the existence check and the lock
        monkeypatch.setattr(inventory_service, "lock_for_update", lambda query: query.filter(false()))

        with pytest.raises(NotFound):
            inventory_service.transfer_stock(
                db_session, manager_a_caller,
                TransferCommand(inventory_id=source.id, target_location_id=site_a.id, quantity=4),
                publisher=publisher,
            )

        assert _quantity(db_session, source.id) == 10

    def test_source_access_checked(self, db_session, store_b, site_a, product, manager_a_caller, publisher):
        source = stock(db_session, store_b, product, 5)
        with pytest.raises(AuthorizationDenied):
            inventory_service.transfer_stock(
                db_session, manager_a_caller,
                TransferCommand(inventory_id=source.id, target_location_id=site_a.id),
                publisher=publisher,
            )
        assert _quantity(db_session, source.id) == 5


# =============================================================================
# APPROVAL UPSERT + LISTING
# =============================================================================


class TestApplyApprovalAndListing:

    def test_apply_approval_creates_then_increments(self, db_session, site_a, product):
        inventory_service.apply_approval(db_session, location_id=site_a.id, product_id=product.id, quantity=5)
        db_session.commit()
        inventory_service.apply_approval(db_session, location_id=site_a.id, product_id=product.id, quantity=2)
        db_session.commit()

        records = db_session.query(InventoryRecord).filter_by(location_id=site_a.id, product_id=product.id).all()
        assert len(records) == 1
        assert records[0].quantity == 7

    def test_list_inventory_is_scoped(self, db_session, store_a, store_b, product, manager_a_caller, unassigned_caller):
        stock(db_session, store_a, product, 1)
        stock(db_session, store_b, product, 2)

        records, total = inventory_service.list_inventory(db_session, manager_a_caller, InventoryFilter())
        assert total == 1
        assert records[0].location_id == store_a.id

        records, total = inventory_service.list_inventory(db_session, unassigned_caller, InventoryFilter())
        assert (records, total) == ([], 0)

    def test_list_inventory_filters(self, db_session, store_a, site_a, product, admin_caller):
        drill = make_product(db_session, "PRD-TLS-001", name="Hammer Drill", category="Tools")
        stock(db_session, store_a, product, 1)
        stock(db_session, store_a, drill, 1)
        stock(db_session, site_a, drill, 4)

        _, total = inventory_service.list_inventory(db_session, admin_caller, InventoryFilter(category="Tools"))
        assert total == 2
        records, total = inventory_service.list_inventory(db_session, admin_caller, InventoryFilter(site_id=site_a.id))
        assert total == 1 and records[0].quantity == 4
        _, total = inventory_service.list_inventory(db_session, admin_caller, InventoryFilter(search="drill"))
        assert total == 2

    def test_location_quantity_total(self, db_session, store_a, product):
        drill = make_product(db_session, "PRD-TLS-001", name="Drill", category="Tools")
        stock(db_session, store_a, product, 3)
        stock(db_session, store_a, drill, 2)
        assert inventory_service.location_quantity_total(db_session, store_a.id) == 5
