"""
Real SQL-backed store for production when USE_POSTGRES_STORE and DATABASE_URL are set.
Implements the same BrokerageStore interface as src.database.postgres (in-memory).

Every status change is a single ``UPDATE ... WHERE id = :id AND status IN (...)``;
a rowcount other than 1 means another caller won the race (or the row is in a
state the transition does not allow), and nothing is written.
"""

from __future__ import annotations

import re
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Type

from sqlalchemy import create_engine, select, update
from sqlalchemy.orm import Session, sessionmaker

from src.database.models import (
    ActivityLogRecord,
    Base,
    BrokerRecord,
    ClientRecord,
    CommissionRecord,
    InsurerRecord,
    OfferRecord,
    PolicyRecord,
    ProductRecord,
    RenewalRecord,
)
from src.integrations.contracts.interfaces import (
    ActivityLogEntry,
    ActivityType,
    Broker,
    Client,
    Commission,
    CommissionStatus,
    CustomFieldDefinition,
    EntityType,
    Insurer,
    Offer,
    OfferStatus,
    PaymentMethod,
    PaymentStatus,
    Policy,
    PolicyStatus,
    Product,
    ProductCategory,
    Renewal,
    RenewalStatus,
    Role,
)
from src.integrations.contracts.storage import BrokerageStore, format_number


def _normalize_connection_string(s: str) -> str:
    """Strip common mistakes: 'psql \'...\'', extra quotes, whitespace."""
    s = s.strip()
    if re.match(r"^psql\s+", s, re.IGNORECASE):
        s = re.sub(r"^psql\s+", "", s, flags=re.IGNORECASE).strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        s = s[1:-1].strip()
    if s.startswith("postgres://"):
        s = "postgresql://" + s[len("postgres://"):]
    return s


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _column_values(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _column_value(v) for k, v in values.items()}


def _entity_columns(entity: Any, *exclude: str) -> Dict[str, Any]:
    skip = {"id", *exclude}
    return {k: _column_value(v) for k, v in vars(entity).items() if k not in skip}


def _custom_field_to_json(f: CustomFieldDefinition) -> Dict[str, Any]:
    return {
        "name": f.name,
        "label": f.label,
        "type": f.type.value,
        "required": f.required,
        "options": list(f.options),
        "factor_multiplier": str(f.factor_multiplier) if f.factor_multiplier is not None else None,
        "factor_condition": f.factor_condition,
    }


# ---------------------------------------------------------------------- #
# Record -> domain converters
# ---------------------------------------------------------------------- #
def _to_broker(r: BrokerRecord) -> Broker:
    return Broker(
        id=r.id,
        first_name=r.first_name,
        last_name=r.last_name,
        email=r.email,
        license_number=r.license_number or "",
        commission_rate=Decimal(r.commission_rate),
        role=Role(r.role),
        active=r.active,
    )


def _to_insurer(r: InsurerRecord) -> Insurer:
    return Insurer(
        id=r.id,
        name=r.name,
        code=r.code,
        contact_email=r.contact_email or "",
        contact_phone=r.contact_phone or "",
        address=r.address or "",
        active=r.active,
        created_at=r.created_at,
    )


def _to_product(r: ProductRecord) -> Product:
    return Product(
        id=r.id,
        name=r.name,
        code=r.code,
        category=ProductCategory(r.category),
        insurer_id=r.insurer_id,
        insurer_name=r.insurer_name or "",
        base_premium=Decimal(r.base_premium),
        base_rate=Decimal(r.base_rate) if r.base_rate is not None else None,
        active=r.active,
        custom_fields=[CustomFieldDefinition(**f) for f in (r.custom_fields or [])],
    )


def _to_client(r: ClientRecord) -> Client:
    return Client(
        id=r.id,
        first_name=r.first_name,
        last_name=r.last_name,
        cnp=r.cnp,
        broker_id=r.broker_id,
        email=r.email or "",
        phone=r.phone or "",
        gdpr_consent=r.gdpr_consent,
        gdpr_consent_date=r.gdpr_consent_date,
        created_at=r.created_at,
    )


def _to_offer(r: OfferRecord) -> Offer:
    return Offer(
        id=r.id,
        offer_number=r.offer_number,
        client_id=r.client_id,
        client_name=r.client_name,
        product_id=r.product_id,
        product_name=r.product_name,
        insurer_name=r.insurer_name or "",
        broker_id=r.broker_id,
        broker_name=r.broker_name,
        start_date=r.start_date,
        end_date=r.end_date,
        premium=Decimal(r.premium),
        sum_insured=Decimal(r.sum_insured),
        expires_at=r.expires_at,
        status=OfferStatus(r.status),
        gdpr_consent=r.gdpr_consent,
        gdpr_consent_date=r.gdpr_consent_date,
        custom_field_values=dict(r.custom_field_values or {}),
        premium_breakdown=dict(r.premium_breakdown or {}),
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def _to_policy(r: PolicyRecord) -> Policy:
    return Policy(
        id=r.id,
        policy_number=r.policy_number,
        offer_id=r.offer_id,
        client_id=r.client_id,
        client_name=r.client_name,
        product_id=r.product_id,
        product_name=r.product_name,
        insurer_name=r.insurer_name or "",
        broker_id=r.broker_id,
        broker_name=r.broker_name,
        start_date=r.start_date,
        end_date=r.end_date,
        premium=Decimal(r.premium),
        sum_insured=Decimal(r.sum_insured),
        status=PolicyStatus(r.status),
        payment_method=PaymentMethod(r.payment_method),
        payment_status=PaymentStatus(r.payment_status),
        gdpr_consent=r.gdpr_consent,
        gdpr_consent_date=r.gdpr_consent_date,
        custom_field_values=dict(r.custom_field_values or {}),
        proof_of_payment=r.proof_of_payment,
        validated_by=r.validated_by,
        validated_at=r.validated_at,
        cancellation_reason=r.cancellation_reason,
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def _to_commission(r: CommissionRecord) -> Commission:
    return Commission(
        id=r.id,
        policy_id=r.policy_id,
        policy_number=r.policy_number,
        broker_id=r.broker_id,
        broker_name=r.broker_name,
        rate=Decimal(r.rate),
        amount=Decimal(r.amount),
        status=CommissionStatus(r.status),
        payment_date=r.payment_date,
        created_at=r.created_at,
    )


def _to_renewal(r: RenewalRecord) -> Renewal:
    return Renewal(
        id=r.id,
        original_policy_id=r.original_policy_id,
        new_policy_id=r.new_policy_id,
        policy_number=r.policy_number,
        client_id=r.client_id,
        client_name=r.client_name,
        broker_id=r.broker_id,
        renewal_date=r.renewal_date,
        previous_premium=Decimal(r.previous_premium),
        new_premium=Decimal(r.new_premium),
        status=RenewalStatus(r.status),
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def _to_activity(r: ActivityLogRecord) -> ActivityLogEntry:
    return ActivityLogEntry(
        id=r.id,
        entity_type=EntityType(r.entity_type),
        entity_id=r.entity_id,
        activity_type=ActivityType(r.activity_type),
        description=r.description,
        performed_by=r.performed_by,
        metadata=dict(r.entry_metadata or {}),
        created_at=r.created_at,
    )


class BrokerageDB(BrokerageStore):
    """
    SQL data access using SQLAlchemy. Use when DATABASE_URL is set and
    USE_POSTGRES_STORE=true. Any SQLAlchemy URL works; tests use SQLite.
    """

    def __init__(
        self,
        connection_string: str,
        offer_number_prefix: str = "OFF",
        policy_number_prefix: str = "POL",
    ) -> None:
        connection_string = _normalize_connection_string(connection_string)
        engine_kwargs: Dict[str, Any] = {"pool_pre_ping": True}
        if connection_string.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        else:
            engine_kwargs.update(pool_size=5, max_overflow=10)
        self.engine = create_engine(connection_string, **engine_kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, expire_on_commit=False)
        self.offer_number_prefix = offer_number_prefix
        self.policy_number_prefix = policy_number_prefix

    def create_tables(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        s = self.SessionLocal()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

    def _add(self, record: Any, convert: Callable[[Any], Any]) -> Any:
        with self._session() as s:
            s.add(record)
            s.flush()
            s.refresh(record)
            return convert(record)

    def _get(self, model: Type[Any], entity_id: int, convert: Callable[[Any], Any]) -> Optional[Any]:
        with self._session() as s:
            record = s.get(model, entity_id)
            return convert(record) if record is not None else None

    def _list(self, model: Type[Any], convert: Callable[[Any], Any]) -> List[Any]:
        with self._session() as s:
            return [convert(r) for r in s.execute(select(model).order_by(model.id)).scalars().all()]

    def _update(
        self,
        model: Type[Any],
        entity_id: int,
        updates: Dict[str, Any],
        convert: Callable[[Any], Any],
    ) -> Optional[Any]:
        with self._session() as s:
            record = s.get(model, entity_id)
            if record is None:
                return None
            for key, value in _column_values(updates).items():
                setattr(record, key, value)
            s.flush()
            return convert(record)

    def _delete(self, model: Type[Any], entity_id: int) -> bool:
        with self._session() as s:
            record = s.get(model, entity_id)
            if record is None:
                return False
            s.delete(record)
            return True

    def _transition(
        self,
        model: Type[Any],
        entity_id: int,
        from_statuses: Iterable[Any],
        updates: Dict[str, Any],
        convert: Callable[[Any], Any],
    ) -> Optional[Any]:
        allowed = [_column_value(st) for st in from_statuses]
        with self._session() as s:
            result = s.execute(
                update(model)
                .where(model.id == entity_id, model.status.in_(allowed))
                .values(**_column_values(updates))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
            return convert(s.get(model, entity_id))

    # ------------------------------------------------------------------ #
    # Brokers
    # ------------------------------------------------------------------ #
    def create_broker(self, broker: Broker) -> Broker:
        return self._add(BrokerRecord(**_entity_columns(broker)), _to_broker)

    def get_broker(self, broker_id: int) -> Optional[Broker]:
        return self._get(BrokerRecord, broker_id, _to_broker)

    def list_brokers(self) -> List[Broker]:
        return self._list(BrokerRecord, _to_broker)

    # ------------------------------------------------------------------ #
    # Insurers
    # ------------------------------------------------------------------ #
    def create_insurer(self, insurer: Insurer) -> Insurer:
        return self._add(InsurerRecord(**_entity_columns(insurer)), _to_insurer)

    def get_insurer(self, insurer_id: int) -> Optional[Insurer]:
        return self._get(InsurerRecord, insurer_id, _to_insurer)

    def list_insurers(self) -> List[Insurer]:
        return self._list(InsurerRecord, _to_insurer)

    def update_insurer(self, insurer_id: int, updates: Dict[str, Any]) -> Optional[Insurer]:
        return self._update(InsurerRecord, insurer_id, updates, _to_insurer)

    def delete_insurer(self, insurer_id: int) -> bool:
        return self._delete(InsurerRecord, insurer_id)

    # ------------------------------------------------------------------ #
    # Products
    # ------------------------------------------------------------------ #
    def create_product(self, product: Product) -> Product:
        columns = _entity_columns(product, "custom_fields")
        columns["custom_fields"] = [_custom_field_to_json(f) for f in product.custom_fields]
        return self._add(ProductRecord(**columns), _to_product)

    def get_product(self, product_id: int) -> Optional[Product]:
        return self._get(ProductRecord, product_id, _to_product)

    def list_products(self) -> List[Product]:
        return self._list(ProductRecord, _to_product)

    # ------------------------------------------------------------------ #
    # Clients
    # ------------------------------------------------------------------ #
    def create_client(self, client: Client) -> Client:
        return self._add(ClientRecord(**_entity_columns(client)), _to_client)

    def get_client(self, client_id: int) -> Optional[Client]:
        return self._get(ClientRecord, client_id, _to_client)

    def list_clients(self) -> List[Client]:
        return self._list(ClientRecord, _to_client)

    def update_client(self, client_id: int, updates: Dict[str, Any]) -> Optional[Client]:
        return self._update(ClientRecord, client_id, updates, _to_client)

    def delete_client(self, client_id: int) -> bool:
        return self._delete(ClientRecord, client_id)

    # ------------------------------------------------------------------ #
    # Offers
    # ------------------------------------------------------------------ #
    def create_offer(self, offer: Offer) -> Offer:
        with self._session() as s:
            record = OfferRecord(**_entity_columns(offer, "offer_number"))
            s.add(record)
            s.flush()
            record.offer_number = format_number(self.offer_number_prefix, offer.created_at.year, record.id)
            s.flush()
            return _to_offer(record)

    def get_offer(self, offer_id: int) -> Optional[Offer]:
        return self._get(OfferRecord, offer_id, _to_offer)

    def list_offers(self) -> List[Offer]:
        return self._list(OfferRecord, _to_offer)

    def transition_offer(
        self,
        offer_id: int,
        from_statuses: Iterable[OfferStatus],
        updates: Dict[str, Any],
    ) -> Optional[Offer]:
        return self._transition(OfferRecord, offer_id, from_statuses, updates, _to_offer)

    def convert_offer(
        self,
        offer_id: int,
        policy: Policy,
        commission: Commission,
        now: datetime,
    ) -> Optional[Tuple[Offer, Policy, Commission]]:
        with self._session() as s:
            result = s.execute(
                update(OfferRecord)
                .where(
                    OfferRecord.id == offer_id,
                    OfferRecord.status == OfferStatus.PENDING.value,
                    OfferRecord.expires_at >= now,
                )
                .values(status=OfferStatus.ACCEPTED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None

            policy_record = PolicyRecord(**_entity_columns(policy, "policy_number", "offer_id"), offer_id=offer_id)
            s.add(policy_record)
            s.flush()
            policy_record.policy_number = format_number(self.policy_number_prefix, now.year, policy_record.id)

            commission_record = CommissionRecord(
                **_entity_columns(commission, "policy_id", "policy_number"),
                policy_id=policy_record.id,
                policy_number=policy_record.policy_number,
            )
            s.add(commission_record)
            s.flush()

            offer_record = s.get(OfferRecord, offer_id)
            return _to_offer(offer_record), _to_policy(policy_record), _to_commission(commission_record)

    # ------------------------------------------------------------------ #
    # Policies
    # ------------------------------------------------------------------ #
    def get_policy(self, policy_id: int) -> Optional[Policy]:
        return self._get(PolicyRecord, policy_id, _to_policy)

    def list_policies(self) -> List[Policy]:
        return self._list(PolicyRecord, _to_policy)

    def transition_policy(
        self,
        policy_id: int,
        from_statuses: Iterable[PolicyStatus],
        updates: Dict[str, Any],
    ) -> Optional[Policy]:
        return self._transition(PolicyRecord, policy_id, from_statuses, updates, _to_policy)

    # ------------------------------------------------------------------ #
    # Commissions
    # ------------------------------------------------------------------ #
    def get_commission(self, commission_id: int) -> Optional[Commission]:
        return self._get(CommissionRecord, commission_id, _to_commission)

    def list_commissions(self) -> List[Commission]:
        return self._list(CommissionRecord, _to_commission)

    def transition_commission(
        self,
        commission_id: int,
        from_statuses: Iterable[CommissionStatus],
        updates: Dict[str, Any],
    ) -> Optional[Commission]:
        return self._transition(CommissionRecord, commission_id, from_statuses, updates, _to_commission)

    # ------------------------------------------------------------------ #
    # Renewals
    # ------------------------------------------------------------------ #
    def create_renewal(self, renewal: Renewal) -> Renewal:
        return self._add(RenewalRecord(**_entity_columns(renewal)), _to_renewal)

    def get_renewal(self, renewal_id: int) -> Optional[Renewal]:
        return self._get(RenewalRecord, renewal_id, _to_renewal)

    def list_renewals(self) -> List[Renewal]:
        return self._list(RenewalRecord, _to_renewal)

    def transition_renewal(
        self,
        renewal_id: int,
        from_statuses: Iterable[RenewalStatus],
        updates: Dict[str, Any],
    ) -> Optional[Renewal]:
        return self._transition(RenewalRecord, renewal_id, from_statuses, updates, _to_renewal)

    def delete_renewal(self, renewal_id: int) -> bool:
        return self._delete(RenewalRecord, renewal_id)

    # ------------------------------------------------------------------ #
    # Activity log
    # ------------------------------------------------------------------ #
    def add_activity_log(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        columns = _entity_columns(entry, "metadata")
        return self._add(ActivityLogRecord(**columns, entry_metadata=dict(entry.metadata)), _to_activity)

    def list_activity_logs(
        self,
        entity_type: Optional[EntityType] = None,
        entity_id: Optional[int] = None,
    ) -> List[ActivityLogEntry]:
        with self._session() as s:
            stmt = select(ActivityLogRecord).order_by(ActivityLogRecord.created_at, ActivityLogRecord.id)
            if entity_type is not None:
                stmt = stmt.where(ActivityLogRecord.entity_type == _column_value(entity_type))
            if entity_id is not None:
                stmt = stmt.where(ActivityLogRecord.entity_id == entity_id)
            return [_to_activity(r) for r in s.execute(stmt).scalars().all()]
