import os

# Settings are cached on first use; point them at SQLite before anything imports them
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")
os.environ.setdefault("JWT_SECRET", "ordertrack-test-secret-0123456789abcdef")

from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from ordertrack.application.access import Actor
from ordertrack.application.schemas import OrderCreate
from ordertrack.application.security import hash_password
from ordertrack.application.service import OrderService
from ordertrack.domain.models import Customer, ProductType, User, Vendor
from ordertrack.domain.workflow import Role
from ordertrack.infrastructure.db import build_engine, init_models

FEB_2026 = datetime(2026, 2, 10, 9, 0, 0)


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_models(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock(FEB_2026)


@pytest.fixture
def seed(db):
    """Two users, a customer, a product type and a vendor."""
    rows = {
        "owner": User(id="U-owner001", name="Asha", phone="9000000001", role=Role.OWNER,
                      password_hash=hash_password("owner-pass-1")),
        "employee": User(id="U-emp00001", name="Ravi", phone="9000000002", role=Role.EMPLOYEE,
                         password_hash=hash_password("employee-pass-1")),
        "customer": Customer(id="C-acme0001", name="Acme Foods"),
        "product_type": ProductType(id="PT-cartons", name="Cartons", properties={}),
        "vendor": Vendor(id="V-lamin001", name="Shree Lamination", service_type="lamination"),
    }
    db.add_all(rows.values())
    db.commit()
    return rows


@pytest.fixture
def owner(seed):
    return Actor(user_id="U-owner001", role=Role.OWNER, name="Asha")


@pytest.fixture
def employee(seed):
    return Actor(user_id="U-emp00001", role=Role.EMPLOYEE, name="Ravi")


@pytest.fixture
def service(db, clock, seed):
    return OrderService(db, clock=clock)


@pytest.fixture
def make_order(service, employee, clock):
    def _make(promised_in_days: float = 7, **overrides):
        fields = {
            "customer_id": "C-acme0001",
            "product_type_id": "PT-cartons",
            "title": "Cereal boxes",
            "quantity": 5000,
            "promised_date": clock.now + timedelta(days=promised_in_days),
        }
        fields.update(overrides)
        return service.create_order(OrderCreate(**fields), employee)

    return _make
