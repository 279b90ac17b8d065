"""
SQLAlchemy models for brokers, insurers, products, clients, offers, policies,
commissions, renewals and the activity log.
Used by postgres_real when USE_POSTGRES_STORE and DATABASE_URL are set.
Enum-valued columns hold the enum's string value.
"""
from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.integrations.contracts.interfaces import utcnow

MONEY = Numeric(14, 2)


class Base(DeclarativeBase):
    pass


class BrokerRecord(Base):
    __tablename__ = "brokers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    license_number: Mapped[str] = mapped_column(String(64), default="")
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="BROKER")
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class InsurerRecord(Base):
    __tablename__ = "insurers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    contact_email: Mapped[str] = mapped_column(String(256), default="")
    contact_phone: Mapped[str] = mapped_column(String(32), default="")
    address: Mapped[str] = mapped_column(Text, default="")
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class ProductRecord(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    insurer_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("insurers.id"), nullable=True, index=True)
    insurer_name: Mapped[str] = mapped_column(String(256), default="")
    base_premium: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    base_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 6), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Ordered list of custom field definitions
    custom_fields: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)


class ClientRecord(Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False)
    cnp: Mapped[str] = mapped_column(String(13), nullable=False, index=True)
    broker_id: Mapped[int] = mapped_column(Integer, ForeignKey("brokers.id"), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(256), default="")
    phone: Mapped[str] = mapped_column(String(32), default="")
    gdpr_consent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    gdpr_consent_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class OfferRecord(Base):
    __tablename__ = "offers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    offer_number: Mapped[Optional[str]] = mapped_column(String(32), unique=True, nullable=True)
    client_id: Mapped[int] = mapped_column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    client_name: Mapped[str] = mapped_column(String(256), nullable=False)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id"), nullable=False)
    product_name: Mapped[str] = mapped_column(String(256), nullable=False)
    insurer_name: Mapped[str] = mapped_column(String(256), default="")
    broker_id: Mapped[int] = mapped_column(Integer, ForeignKey("brokers.id"), nullable=False, index=True)
    broker_name: Mapped[str] = mapped_column(String(256), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    premium: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    sum_insured: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING", index=True)
    gdpr_consent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    gdpr_consent_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    custom_field_values: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    premium_breakdown: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class PolicyRecord(Base):
    __tablename__ = "policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    policy_number: Mapped[Optional[str]] = mapped_column(String(32), unique=True, nullable=True)
    offer_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("offers.id"), nullable=True, unique=True)
    client_id: Mapped[int] = mapped_column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    client_name: Mapped[str] = mapped_column(String(256), nullable=False)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id"), nullable=False)
    product_name: Mapped[str] = mapped_column(String(256), nullable=False)
    insurer_name: Mapped[str] = mapped_column(String(256), default="")
    broker_id: Mapped[int] = mapped_column(Integer, ForeignKey("brokers.id"), nullable=False, index=True)
    broker_name: Mapped[str] = mapped_column(String(256), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    premium: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    sum_insured: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(32), nullable=False)
    gdpr_consent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    gdpr_consent_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    custom_field_values: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    proof_of_payment: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    validated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    validated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class CommissionRecord(Base):
    __tablename__ = "commissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    policy_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("policies.id"), nullable=True, index=True)
    policy_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    broker_id: Mapped[int] = mapped_column(Integer, ForeignKey("brokers.id"), nullable=False, index=True)
    broker_name: Mapped[str] = mapped_column(String(256), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class RenewalRecord(Base):
    __tablename__ = "renewals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    original_policy_id: Mapped[int] = mapped_column(Integer, ForeignKey("policies.id"), nullable=False, index=True)
    new_policy_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("policies.id"), nullable=True)
    policy_number: Mapped[str] = mapped_column(String(32), nullable=False)
    client_id: Mapped[int] = mapped_column(Integer, ForeignKey("clients.id"), nullable=False)
    client_name: Mapped[str] = mapped_column(String(256), nullable=False)
    broker_id: Mapped[int] = mapped_column(Integer, ForeignKey("brokers.id"), nullable=False, index=True)
    renewal_date: Mapped[date] = mapped_column(Date, nullable=False)
    previous_premium: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    new_premium: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class ActivityLogRecord(Base):
    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(String(16), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    activity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    performed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    entry_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
