"""
Contracts (data models).

This folder defines the shapes shared by the core and its collaborators:
- domain records and enums (interfaces.py)
- factor conditions attached to product custom fields (conditions.py)
- payment method rules (payments.py)
- storage and file storage boundaries (storage.py)

Both store implementations and every lifecycle service use these contracts,
so no layer has to guess a record's shape.
"""

from .interfaces import (
    ActivityLogEntry,
    ActivityType,
    ActorContext,
    Broker,
    Client,
    Commission,
    CommissionStatus,
    CustomFieldDefinition,
    EntityType,
    FieldType,
    Offer,
    OfferStatus,
    PaymentMethod,
    PaymentStatus,
    Policy,
    PolicyStatus,
    Product,
    ProductCategory,
    Role,
    utcnow,
)
from .storage import BrokerageStore, FileStore
