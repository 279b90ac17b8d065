"""Pytest fixtures for the brokerage services and API tests."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from src.api.dependencies import build_services
from src.api.main import create_app
from src.database.postgres import BrokerageDB
from src.integrations.contracts.interfaces import (
    ActorContext,
    Broker,
    Client,
    CustomFieldDefinition,
    FieldType,
    Insurer,
    Product,
    ProductCategory,
    Role,
)
from src.integrations.files.local_store import LocalFileStore
from src.utils.config_loader import BrokerageConfig

NOW = datetime(2025, 6, 1, 12, 0, 0)

# Birth years 1995 (age 30 in 2025), 1960 (65) and 2005 (20).
CNP_AGE_30 = "1950101123456"
CNP_AGE_65 = "1600101123456"
CNP_AGE_20 = "5050101123456"

START = date(2025, 7, 1)
END = date(2026, 6, 30)


class FrozenClock:
    """Test clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def config():
    return BrokerageConfig()


@pytest.fixture
def db():
    """In-memory BrokerageDB seeded with two brokers, a manager, two insurers, two products and two clients."""
    store = BrokerageDB()
    store.create_broker(Broker("Ana", "Pop", "ana@example.com", Decimal("0.10"), license_number="L-001"))
    store.create_broker(Broker("Mihai", "Ionescu", "mihai@example.com", Decimal("0.15"), license_number="L-002"))
    store.create_broker(
        Broker("Elena", "Radu", "elena@example.com", Decimal("0.05"), role=Role.BROKER_MANAGER)
    )
    store.create_insurer(Insurer("Carpathia Life", "CARP", contact_email="office@carpathia.example"))
    store.create_insurer(Insurer("Danube Insurance", "DANUBE"))
    store.create_product(
        Product(
            name="Life Basic",
            code="LIFE-BASIC",
            category=ProductCategory.LIFE,
            insurer_id=1,
            insurer_name="Carpathia Life",
            base_rate=Decimal("0.02"),
        )
    )
    store.create_product(
        Product(
            name="Auto Comfort",
            code="AUTO-COMFORT",
            category=ProductCategory.AUTO,
            insurer_id=2,
            insurer_name="Danube Insurance",
            base_rate=Decimal("0.05"),
            custom_fields=[
                CustomFieldDefinition(
                    name="fuel",
                    label="Fuel Type",
                    type=FieldType.SELECT,
                    required=True,
                    options=["petrol", "diesel"],
                    factor_multiplier=Decimal("1.10"),
                    factor_condition="value === 'diesel'",
                ),
                CustomFieldDefinition(
                    name="engine_power",
                    label="Engine Power",
                    type=FieldType.NUMBER,
                    factor_multiplier=Decimal("1.20"),
                    factor_condition="value > 150",
                ),
                CustomFieldDefinition(
                    name="previous_claims",
                    label="Previous Claims",
                    type=FieldType.CHECKBOX,
                    factor_multiplier=Decimal("1.30"),
                    factor_condition="=== true",
                ),
            ],
        )
    )
    store.create_client(Client("Ion", "Popescu", CNP_AGE_30, broker_id=1, email="ion@example.com", created_at=NOW))
    store.create_client(
        Client("Maria", "Georgescu", CNP_AGE_65, broker_id=2, gdpr_consent=True, gdpr_consent_date=NOW.date(), created_at=NOW)
    )
    return store


@pytest.fixture
def admin():
    return ActorContext(user_id=1, role=Role.ADMINISTRATOR)


@pytest.fixture
def manager():
    return ActorContext(user_id=2, role=Role.BROKER_MANAGER, broker_id=3)


@pytest.fixture
def broker():
    """Broker 1, owner of client 1."""
    return ActorContext(user_id=3, role=Role.BROKER, broker_id=1)


@pytest.fixture
def other_broker():
    """Broker 2, owner of client 2."""
    return ActorContext(user_id=4, role=Role.BROKER, broker_id=2)


@pytest.fixture
def files(tmp_path):
    return LocalFileStore(tmp_path / "uploads", max_bytes=1024)


@pytest.fixture
def services(db, files, config, clock):
    return build_services(db, files, config, clock)


@pytest.fixture
def issue_offer(services, broker):
    """Create a PENDING offer for client 1 through broker 1."""

    def _issue(actor=None, **overrides):
        kwargs = dict(
            client_id=1,
            product_id=1,
            broker_id=1,
            start_date=START,
            end_date=END,
            sum_insured=Decimal("10000"),
            premium=Decimal("200.00"),
            gdpr_consent=True,
        )
        kwargs.update(overrides)
        return services.offers.create(actor or broker, **kwargs)

    return _issue


@pytest.fixture
def api_client(monkeypatch, db, files, config, clock):
    monkeypatch.delenv("API_KEYS", raising=False)
    app = create_app(db=db, files=files, config=config, clock=clock)
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


@pytest.fixture
def headers():
    """Build the session headers the API reads the actor from."""

    def _headers(actor: ActorContext) -> dict:
        out = {"X-User-Role": actor.role.value}
        if actor.user_id is not None:
            out["X-User-Id"] = str(actor.user_id)
        if actor.broker_id is not None:
            out["X-Broker-Id"] = str(actor.broker_id)
        return out

    return _headers
