"""Tests for the SQLAlchemy store, run against a SQLite file."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from src.api.dependencies import build_services
from src.database.postgres_real import BrokerageDB, _normalize_connection_string
from src.errors import InvalidStateError, OfferExpiredError
from src.integrations.contracts.interfaces import (
    ActivityType,
    ActorContext,
    Broker,
    Client,
    CommissionStatus,
    CustomFieldDefinition,
    EntityType,
    FieldType,
    Insurer,
    OfferStatus,
    PolicyStatus,
    Product,
    ProductCategory,
    RenewalStatus,
    Role,
)
from src.integrations.files.local_store import LocalFileStore
from src.utils.config_loader import BrokerageConfig

NOW = datetime(2025, 6, 1, 12, 0, 0)
BROKER = ActorContext(user_id=3, role=Role.BROKER, broker_id=1)
ADMIN = ActorContext(user_id=1, role=Role.ADMINISTRATOR)


class _Clock:
    def __init__(self):
        self.now = NOW

    def __call__(self):
        return self.now


@pytest.fixture
def sql_db(tmp_path):
    store = BrokerageDB(f"sqlite:///{tmp_path / 'brokerage.db'}", offer_number_prefix="OF", policy_number_prefix="PL")
    store.create_tables()
    store.create_broker(Broker("Ana", "Pop", "ana@example.com", Decimal("0.10")))
    store.create_product(
        Product(
            name="Auto Comfort",
            code="AUTO-COMFORT",
            category=ProductCategory.AUTO,
            base_rate=Decimal("0.05"),
            custom_fields=[
                CustomFieldDefinition(
                    "fuel", "Fuel Type", FieldType.SELECT, options=["petrol", "diesel"],
                    factor_multiplier=Decimal("1.1"), factor_condition="value === 'diesel'",
                )
            ],
        )
    )
    store.create_client(Client("Ion", "Popescu", "1950101123456", broker_id=1, created_at=NOW))
    return store


@pytest.fixture
def sql_services(sql_db, tmp_path):
    clock = _Clock()
    services = build_services(sql_db, LocalFileStore(tmp_path / "uploads"), BrokerageConfig(), clock)
    return services, clock


def _offer(services):
    return services.offers.create(
        BROKER,
        client_id=1,
        product_id=1,
        broker_id=1,
        start_date=date(2025, 7, 1),
        end_date=date(2026, 6, 30),
        sum_insured=Decimal("10000"),
        premium=Decimal("550.00"),
        gdpr_consent=True,
        custom_field_values={"fuel": "diesel"},
        premium_breakdown={"base_premium": 500.0, "final_premium": 550.0, "factors": []},
    )


def test_normalize_connection_string():
    assert _normalize_connection_string("  'postgres://u:p@h/db' ") == "postgresql://u:p@h/db"
    assert _normalize_connection_string("psql 'postgresql://u@h/db'") == "postgresql://u@h/db"


def test_product_custom_fields_round_trip(sql_db):
    product = sql_db.get_product(1)
    field = product.custom_fields[0]
    assert field.type == FieldType.SELECT
    assert field.factor_multiplier == Decimal("1.1")
    assert field.condition is not None
    assert field.condition.matches("diesel")


def test_offer_numbering_and_storage(sql_services):
    services, _ = sql_services
    offer = _offer(services)
    assert offer.offer_number == "OF-2025-00001"
    stored = services.db.get_offer(offer.id)
    assert stored.premium == Decimal("550.00")
    assert stored.custom_field_values == {"fuel": "diesel"}
    assert stored.premium_breakdown["final_premium"] == 550.0
    assert services.db.get_client(1).gdpr_consent is True


def test_conversion_is_atomic_and_single(sql_services):
    services, _ = sql_services
    offer = _offer(services)
    result = services.offers.convert_to_policy(BROKER, offer.id, "CARD_ONLINE")
    assert result.policy.policy_number == "PL-2025-00001"
    assert result.policy.status == PolicyStatus.ACTIVE
    assert result.commission.amount == Decimal("55.00")
    assert result.commission.policy_id == result.policy.id

    with pytest.raises(InvalidStateError):
        services.offers.convert_to_policy(BROKER, offer.id, "CARD_ONLINE")
    assert len(services.db.list_policies()) == 1
    assert len(services.db.list_commissions()) == 1


def test_conditional_update_refuses_wrong_state(sql_services):
    services, _ = sql_services
    offer = _offer(services)
    assert services.db.transition_offer(offer.id, [OfferStatus.ACCEPTED], {"status": OfferStatus.REJECTED}) is None
    assert services.db.get_offer(offer.id).status == OfferStatus.PENDING


def test_expired_offer_is_persisted_as_expired(sql_services):
    services, clock = sql_services
    offer = _offer(services)
    clock.now = NOW + timedelta(days=31)
    with pytest.raises(OfferExpiredError):
        services.offers.convert_to_policy(BROKER, offer.id, "CASH")
    assert services.db.get_offer(offer.id).status == OfferStatus.EXPIRED
    assert services.db.list_policies() == []


def test_payment_flow_and_commission_payout(sql_services):
    services, _ = sql_services
    policy = services.offers.convert_to_policy(BROKER, _offer(services).id, "BANK_TRANSFER").policy
    services.policies.upload_proof(BROKER, policy.id, "transfer.pdf", b"pdf")
    validated = services.policies.validate(ADMIN, policy.id)
    assert validated.status == PolicyStatus.ACTIVE
    assert validated.validated_by == ADMIN.user_id

    commission = services.db.list_commissions()[0]
    paid = services.commissions.mark_paid(ADMIN, commission.id)
    assert paid.status == CommissionStatus.PAID
    assert paid.payment_date == NOW.date()

    types = [e.activity_type for e in services.db.list_activity_logs(EntityType.POLICY, policy.id)]
    assert types == [
        ActivityType.POLICY_CREATED,
        ActivityType.PAYMENT_UPLOADED,
        ActivityType.PAYMENT_VALIDATED,
        ActivityType.COMMISSION_PAID,
    ]


def test_update_and_delete_client(sql_db):
    updated = sql_db.update_client(1, {"email": "ion@example.com"})
    assert updated.email == "ion@example.com"
    assert sql_db.update_client(99, {"email": "x@example.com"}) is None
    assert sql_db.delete_client(1) is True
    assert sql_db.delete_client(1) is False


def test_insurer_round_trip_and_product_link(sql_db):
    insurer = sql_db.create_insurer(Insurer("Danube Insurance", "DANUBE", contact_phone="0721000111"))
    product = sql_db.create_product(
        Product(
            name="Travel",
            code="TRV",
            category=ProductCategory.TRAVEL,
            insurer_id=insurer.id,
            insurer_name=insurer.name,
        )
    )
    assert sql_db.get_product(product.id).insurer_id == insurer.id
    assert [i.code for i in sql_db.list_insurers()] == ["DANUBE"]

    updated = sql_db.update_insurer(insurer.id, {"active": False, "address": "Str. Dunarii 1"})
    assert updated.active is False
    assert updated.address == "Str. Dunarii 1"
    assert sql_db.get_insurer(insurer.id).contact_phone == "0721000111"
    assert sql_db.delete_insurer(999) is False


def test_renewal_persistence_and_guarded_transition(sql_services):
    services, _ = sql_services
    policy = services.offers.convert_to_policy(BROKER, _offer(services).id, "CARD_ONLINE").policy
    renewal = services.renewals.create(BROKER, policy.id, "600")

    stored = services.db.get_renewal(renewal.id)
    assert stored.renewal_date == date(2026, 7, 1)
    assert stored.previous_premium == Decimal("550.00")
    assert stored.new_premium == Decimal("600.00")
    assert stored.status == RenewalStatus.PENDING

    completed = services.renewals.complete(BROKER, renewal.id)
    assert completed.status == RenewalStatus.COMPLETED
    assert services.db.transition_renewal(renewal.id, [RenewalStatus.PENDING], {"status": RenewalStatus.DECLINED}) is None
    assert services.db.delete_renewal(renewal.id) is True
    assert services.db.list_renewals() == []
