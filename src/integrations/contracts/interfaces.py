"""
Contracts (data models).

Shared domain records used by the rating engine, the lifecycle services and
both storage implementations. Stores return copies of these records; services
never mutate a record in place, they ask the store for a transition.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from src.integrations.contracts.conditions import FactorCondition, try_parse_condition
from src.utils.money import to_decimal


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation every store persists."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Role(str, Enum):
    ADMINISTRATOR = "ADMINISTRATOR"
    BROKER_MANAGER = "BROKER_MANAGER"
    BROKER = "BROKER"


class ProductCategory(str, Enum):
    LIFE = "LIFE"
    HEALTH = "HEALTH"
    AUTO = "AUTO"
    HOME = "HOME"
    TRAVEL = "TRAVEL"
    BUSINESS = "BUSINESS"


class FieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    SELECT = "select"
    DATE = "date"
    CHECKBOX = "checkbox"


class OfferStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    EXPIRED = "EXPIRED"
    REJECTED = "REJECTED"


class PolicyStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    AWAITING_VALIDATION = "AWAITING_VALIDATION"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    SUSPENDED = "SUSPENDED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    POS = "POS"
    CARD_ONLINE = "CARD_ONLINE"
    BANK_TRANSFER = "BANK_TRANSFER"
    BROKER_PAYMENT = "BROKER_PAYMENT"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    VALIDATED = "VALIDATED"
    REJECTED = "REJECTED"


class CommissionStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class RenewalStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    DECLINED = "DECLINED"


class EntityType(str, Enum):
    CLIENT = "CLIENT"
    POLICY = "POLICY"
    OFFER = "OFFER"


class ActivityType(str, Enum):
    CLIENT_CREATED = "CLIENT_CREATED"
    CLIENT_UPDATED = "CLIENT_UPDATED"
    POLICY_CREATED = "POLICY_CREATED"
    POLICY_RENEWED = "POLICY_RENEWED"
    POLICY_CANCELLED = "POLICY_CANCELLED"
    POLICY_EXPIRED = "POLICY_EXPIRED"
    PAYMENT_UPLOADED = "PAYMENT_UPLOADED"
    PAYMENT_VALIDATED = "PAYMENT_VALIDATED"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"
    GDPR_SIGNED = "GDPR_SIGNED"
    COMMISSION_PAID = "COMMISSION_PAID"
    STATUS_CHANGED = "STATUS_CHANGED"
    OFFER_CREATED = "OFFER_CREATED"
    OFFER_ACCEPTED = "OFFER_ACCEPTED"
    OFFER_EXPIRED = "OFFER_EXPIRED"


# ---------------------------------------------------------------------------
# Actor
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ActorContext:
    """The authenticated caller, as supplied by the session layer."""
    user_id: Optional[int]
    role: Optional[Role]
    broker_id: Optional[int] = None
    show_all_data: bool = False          # meaningful for BROKER_MANAGER only

    @property
    def is_authenticated(self) -> bool:
        return self.role is not None


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------

@dataclass
class CustomFieldDefinition:
    name: str
    label: str
    type: FieldType = FieldType.TEXT
    required: bool = False
    options: List[str] = field(default_factory=list)
    factor_multiplier: Optional[Decimal] = None
    factor_condition: Optional[str] = None
    condition: Optional[FactorCondition] = field(default=None, init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        self.type = FieldType(self.type)
        if self.factor_multiplier is not None:
            self.factor_multiplier = to_decimal(self.factor_multiplier)
        self.condition = try_parse_condition(self.factor_condition)


@dataclass
class Insurer:
    name: str
    code: str
    contact_email: str = ""
    contact_phone: str = ""
    address: str = ""
    active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None


@dataclass
class Product:
    name: str
    code: str
    category: ProductCategory
    insurer_id: Optional[int] = None
    insurer_name: str = ""                   # display copy of the insurer's name
    base_premium: Decimal = Decimal("0")
    base_rate: Optional[Decimal] = None      # fraction of sum insured per policy term
    active: bool = True
    custom_fields: List[CustomFieldDefinition] = field(default_factory=list)
    id: Optional[int] = None


@dataclass
class Broker:
    first_name: str
    last_name: str
    email: str
    commission_rate: Decimal                 # fraction of premium, e.g. 0.10
    license_number: str = ""
    role: Role = Role.BROKER
    active: bool = True
    id: Optional[int] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class Client:
    first_name: str
    last_name: str
    cnp: str                                 # 13-digit national identifier
    broker_id: int
    email: str = ""
    phone: str = ""
    gdpr_consent: bool = False
    gdpr_consent_date: Optional[date] = None
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# ---------------------------------------------------------------------------
# Offers, policies, commissions
# ---------------------------------------------------------------------------

@dataclass
class Offer:
    client_id: int
    client_name: str
    product_id: int
    product_name: str
    insurer_name: str
    broker_id: int
    broker_name: str
    start_date: date
    end_date: date
    premium: Decimal
    sum_insured: Decimal
    expires_at: datetime
    status: OfferStatus = OfferStatus.PENDING
    gdpr_consent: bool = False
    gdpr_consent_date: Optional[date] = None
    custom_field_values: Dict[str, Any] = field(default_factory=dict)
    premium_breakdown: Dict[str, Any] = field(default_factory=dict)
    offer_number: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None


@dataclass
class Policy:
    offer_id: Optional[int]
    client_id: int
    client_name: str
    product_id: int
    product_name: str
    insurer_name: str
    broker_id: int
    broker_name: str
    start_date: date
    end_date: date
    premium: Decimal
    sum_insured: Decimal
    status: PolicyStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    gdpr_consent: bool = False
    gdpr_consent_date: Optional[date] = None
    custom_field_values: Dict[str, Any] = field(default_factory=dict)
    proof_of_payment: Optional[str] = None   # file storage reference
    validated_by: Optional[int] = None
    validated_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    policy_number: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None


@dataclass
class Commission:
    broker_id: int
    broker_name: str
    rate: Decimal
    amount: Decimal
    status: CommissionStatus = CommissionStatus.PENDING
    policy_id: Optional[int] = None
    policy_number: Optional[str] = None
    payment_date: Optional[date] = None
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None


@dataclass
class ActivityLogEntry:
    entity_type: EntityType
    entity_id: int
    activity_type: ActivityType
    description: str
    performed_by: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None


@dataclass
class Renewal:
    original_policy_id: int
    policy_number: str
    client_id: int
    client_name: str
    broker_id: int
    renewal_date: date
    previous_premium: Decimal
    new_premium: Decimal
    status: RenewalStatus = RenewalStatus.PENDING
    new_policy_id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None
