"""
Concurrency tests for the inventory ledger.

Runs real threads against a file-backed SQLite database (an in-memory
database is a single shared connection and cannot show a race).

Verifies:
- Simultaneous deductions never take more than is on hand
- Simultaneous transfers out of one record never oversell it
- Simultaneous first arrivals at one target end in a single record
- An approval race applies the request's quantity exactly once
"""

import threading

import pytest

from buildstock import create_app
from buildstock.errors import IllegalStateTransition, InsufficientStock
from buildstock.extensions import db
from buildstock.models import InventoryRecord, InventoryRequest
from buildstock.models.auth import ROLE_STORE_MANAGER, ROLE_SUPER_ADMIN
from buildstock.models.inventory import REQUEST_PENDING
from buildstock.models.locations import LOCATION_SITE
from buildstock.services import inventory_service, request_service
from buildstock.services.access_service import CallerContext
from buildstock.validation import AdjustCommand, TransferCommand

from conftest import RecordingPublisher, make_location, make_product, make_user


@pytest.fixture(scope='module')
def file_app(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("concurrency") / "buildstock.db"
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture(scope='function')
def seed(file_app):
    """Wipe the file database and seed two stores, a site, users, and a product."""
    with file_app.app_context():
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        store_a = make_location(db.session, "Central Store")
        store_b = make_location(db.session, "North Yard")
        site = make_location(db.session, "Riverside Tower", LOCATION_SITE)
        admin = make_user(db.session, "admin@buildstock.local", ROLE_SUPER_ADMIN)
        manager = make_user(db.session, "manager.a@buildstock.local", ROLE_STORE_MANAGER, store_a)
        product = make_product(db.session, "LEGACY-CEM-50")
        seeded = {
            "store_a": store_a.id,
            "store_b": store_b.id,
            "site": site.id,
            "product": product.id,
            "admin": CallerContext.from_user(admin),
            "manager": CallerContext.from_user(manager),
        }
        db.session.remove()
    return seeded


def _stock(app, location_id, product_id, quantity) -> int:
    with app.app_context():
        record = InventoryRecord(location_id=location_id, product_id=product_id, quantity=quantity)
        db.session.add(record)
        db.session.commit()
        record_id = record.id
        db.session.remove()
    return record_id


def _on_hand(app, product_id) -> dict:
    """Map location id -> list of quantities, one entry per record."""
    with app.app_context():
        rows = db.session.query(InventoryRecord).filter_by(product_id=product_id).all()
        on_hand = {}
        for row in rows:
            on_hand.setdefault(row.location_id, []).append(row.quantity)
        db.session.remove()
    return on_hand


def _run_concurrently(app, calls) -> list:
    """Start one thread per call; collect each outcome ("ok" or the raised error)."""
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(len(calls))

    def worker(call):
        with app.app_context():
            try:
                barrier.wait()
                call(db.session)
                with lock:
                    results.append("ok")
            except Exception as exc:
                with lock:
                    results.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(call,)) for call in calls]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


# =============================================================================
# ADJUST
# =============================================================================


class TestConcurrentAdjust:

    def test_deductions_never_overdraw(self, file_app, seed):
        record_id = _stock(file_app, seed["store_a"], seed["product"], 20)
        publisher = RecordingPublisher()

        def deduct(session):
            inventory_service.adjust_quantity(
                session, seed["manager"], AdjustCommand(inventory_id=record_id, quantity=3), publisher=publisher,
            )

        results = _run_concurrently(file_app, [deduct] * 10)

        assert results.count("ok") == 6
        failures = [r for r in results if r != "ok"]
        assert len(failures) == 4
        assert all(isinstance(r, InsufficientStock) for r in failures)
        assert _on_hand(file_app, seed["product"]) == {seed["store_a"]: [2]}
        assert len(publisher.audits) == 6

    def test_two_deductions_exceeding_stock(self, file_app, seed):
        record_id = _stock(file_app, seed["store_a"], seed["product"], 10)

        def deduct(session):
            inventory_service.adjust_quantity(
                session, seed["manager"], AdjustCommand(inventory_id=record_id, quantity=6),
                publisher=RecordingPublisher(),
            )

        results = _run_concurrently(file_app, [deduct, deduct])

        assert results.count("ok") == 1
        assert any(isinstance(r, InsufficientStock) for r in results)
        assert _on_hand(file_app, seed["product"]) == {seed["store_a"]: [4]}


# =============================================================================
# TRANSFER
# =============================================================================


class TestConcurrentTransfer:

    def test_transfers_never_oversell_source(self, file_app, seed):
        source_id = _stock(file_app, seed["store_a"], seed["product"], 10)

        def move(target_id):
            def call(session):
                inventory_service.transfer_stock(
                    session, seed["admin"],
                    TransferCommand(inventory_id=source_id, target_location_id=target_id, quantity=6),
                    publisher=RecordingPublisher(),
                )
            return call

        results = _run_concurrently(file_app, [move(seed["store_b"]), move(seed["site"])])

        assert results.count("ok") == 1
        assert any(isinstance(r, InsufficientStock) for r in results)
        on_hand = _on_hand(file_app, seed["product"])
        assert on_hand[seed["store_a"]] == [4]
        assert sum(q for quantities in on_hand.values() for q in quantities) == 10

    def test_first_arrivals_share_one_target_record(self, file_app, seed):
        from_a = _stock(file_app, seed["store_a"], seed["product"], 10)
        from_b = _stock(file_app, seed["store_b"], seed["product"], 10)

        def move(source_id):
            def call(session):
                inventory_service.transfer_stock(
                    session, seed["admin"],
                    TransferCommand(inventory_id=source_id, target_location_id=seed["site"], quantity=5),
                    publisher=RecordingPublisher(),
                )
            return call

        results = _run_concurrently(file_app, [move(from_a), move(from_b)])

        assert results == ["ok", "ok"]
        assert _on_hand(file_app, seed["product"]) == {
            seed["store_a"]: [5],
            seed["store_b"]: [5],
            seed["site"]: [10],
        }


# =============================================================================
# APPROVAL
# =============================================================================


class TestConcurrentApproval:

    def test_approval_race_applies_once(self, file_app, seed):
        with file_app.app_context():
            inventory_request = InventoryRequest(
                product_id=seed["product"],
                location_id=seed["site"],
                quantity=7,
                status=REQUEST_PENDING,
                requested_by_user_id=seed["admin"].id,
            )
            db.session.add(inventory_request)
            db.session.commit()
            request_id = inventory_request.id
            db.session.remove()

        def approve(session):
            request_service.approve_request(session, seed["admin"], request_id, publisher=RecordingPublisher())

        results = _run_concurrently(file_app, [approve] * 4)

        assert results.count("ok") == 1
        assert all(isinstance(r, IllegalStateTransition) for r in results if r != "ok")
        assert _on_hand(file_app, seed["product"]) == {seed["site"]: [7]}
