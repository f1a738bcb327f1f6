"""
Pytest fixtures for BuildStock backend tests.

Provides an in-memory database, role/location fixtures, caller contexts,
recording publishers, and a test client.
"""

import pytest

from buildstock import create_app
from buildstock.extensions import db
from buildstock.models import InventoryRecord, Location, Product, User
from buildstock.models.auth import ROLE_SITE_ENGINEER, ROLE_STORE_MANAGER, ROLE_SUPER_ADMIN
from buildstock.models.inventory import PRODUCT_ACTIVE
from buildstock.models.locations import LOCATION_SITE, LOCATION_STORE
from buildstock.services.access_service import CallerContext
from buildstock.services.auth_service import hash_password
from buildstock.services.events import AuditEvent, EventPublisher, NotificationEvent


PASSWORD = "Password123!"


class RecordingPublisher(EventPublisher):
    """Collects published events instead of writing rows."""

    def __init__(self):
        self.events = []

    def publish(self, event) -> None:
        self.events.append(event)

    @property
    def audits(self) -> list[AuditEvent]:
        return [e for e in self.events if isinstance(e, AuditEvent)]

    @property
    def notifications(self) -> list[NotificationEvent]:
        return [e for e in self.events if isinstance(e, NotificationEvent)]


class FailingPublisher(EventPublisher):
    """A sink that is always down."""

    def __init__(self):
        self.attempts = 0

    def publish(self, event) -> None:
        self.attempts += 1
        raise RuntimeError("sink unavailable")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def publisher():
    return RecordingPublisher()


@pytest.fixture(scope='function')
def failing_publisher():
    return FailingPublisher()


def make_location(session, name: str, location_type: str = LOCATION_STORE) -> Location:
    location = Location(name=name, type=location_type, region="North")
    session.add(location)
    session.commit()
    return location


def make_user(session, email: str, role: str, location: Location | None = None, name: str | None = None) -> User:
    user = User(
        email=email,
        name=name or email.split("@")[0].title(),
        password_hash=hash_password(PASSWORD),
        role=role,
        location_id=location.id if location else None,
        is_active=True,
    )
    session.add(user)
    session.flush()
    if location is not None:
        location.assigned_user_id = user.id
    session.commit()
    return user


def make_product(session, sku: str, name: str = "Cement 50kg", category: str = "Building Materials",
                 status: str = PRODUCT_ACTIVE) -> Product:
    product = Product(sku=sku, name=name, category=category, unit="bag", status=status)
    session.add(product)
    session.commit()
    return product


def stock(session, location: Location, product: Product, quantity: int) -> InventoryRecord:
    record = InventoryRecord(location_id=location.id, product_id=product.id, quantity=quantity)
    session.add(record)
    session.commit()
    return record


@pytest.fixture(scope='function')
def store_a(db_session):
    return make_location(db_session, "Central Store")


@pytest.fixture(scope='function')
def store_b(db_session):
    return make_location(db_session, "East Store")


@pytest.fixture(scope='function')
def site_a(db_session):
    return make_location(db_session, "Riverside Tower", LOCATION_SITE)


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user(db_session, "admin@buildstock.local", ROLE_SUPER_ADMIN, name="Ada Admin")


@pytest.fixture(scope='function')
def manager_a(db_session, store_a):
    return make_user(db_session, "manager.a@buildstock.local", ROLE_STORE_MANAGER, store_a, name="Max Manager")


@pytest.fixture(scope='function')
def manager_b(db_session, store_b):
    return make_user(db_session, "manager.b@buildstock.local", ROLE_STORE_MANAGER, store_b)


@pytest.fixture(scope='function')
def engineer(db_session, site_a):
    return make_user(db_session, "engineer@buildstock.local", ROLE_SITE_ENGINEER, site_a, name="Eli Engineer")


@pytest.fixture(scope='function')
def unassigned_manager(db_session):
    return make_user(db_session, "floating@buildstock.local", ROLE_STORE_MANAGER)


@pytest.fixture(scope='function')
def product(db_session):
    return make_product(db_session, "LEGACY-CEM-50")


@pytest.fixture(scope='function')
def admin_caller(admin_user):
    return CallerContext.from_user(admin_user)


@pytest.fixture(scope='function')
def manager_a_caller(manager_a):
    return CallerContext.from_user(manager_a)


@pytest.fixture(scope='function')
def manager_b_caller(manager_b):
    return CallerContext.from_user(manager_b)


@pytest.fixture(scope='function')
def engineer_caller(engineer):
    return CallerContext.from_user(engineer)


@pytest.fixture(scope='function')
def unassigned_caller(unassigned_manager):
    return CallerContext.from_user(unassigned_manager)


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
