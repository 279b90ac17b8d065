"""
Storage contracts.

The lifecycle services talk to persistence only through ``BrokerageStore``
and to blob storage only through ``FileStore``. Two store implementations
exist:
- src/database/postgres.py       in-memory, used for local development and tests
- src/database/postgres_real.py  SQLAlchemy, used when DATABASE_URL is set

Every status change goes through a conditional ``transition_*`` call: the
store applies the updates only if the row is currently in one of the allowed
states and returns None otherwise, so two racing callers can never both win.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from src.integrations.contracts.interfaces import (
    ActivityLogEntry,
    Broker,
    Client,
    Commission,
    CommissionStatus,
    EntityType,
    Insurer,
    Offer,
    OfferStatus,
    Policy,
    PolicyStatus,
    Product,
    Renewal,
    RenewalStatus,
)


def format_number(prefix: str, year: int, sequence: int) -> str:
    """Business number in the ``<PREFIX>-<year>-<5-digit-seq>`` form."""
    return f"{prefix}-{year}-{sequence:05d}"


class BrokerageStore(ABC):
    offer_number_prefix: str = "OFF"
    policy_number_prefix: str = "POL"

    @abstractmethod
    def create_tables(self) -> None:
        ...

    # Brokers
    @abstractmethod
    def create_broker(self, broker: Broker) -> Broker:
        ...

    @abstractmethod
    def get_broker(self, broker_id: int) -> Optional[Broker]:
        ...

    @abstractmethod
    def list_brokers(self) -> List[Broker]:
        ...

    # Insurers
    @abstractmethod
    def create_insurer(self, insurer: Insurer) -> Insurer:
        ...

    @abstractmethod
    def get_insurer(self, insurer_id: int) -> Optional[Insurer]:
        ...

    @abstractmethod
    def list_insurers(self) -> List[Insurer]:
        ...

    @abstractmethod
    def update_insurer(self, insurer_id: int, updates: Dict[str, Any]) -> Optional[Insurer]:
        ...

    @abstractmethod
    def delete_insurer(self, insurer_id: int) -> bool:
        ...

    # Products
    @abstractmethod
    def create_product(self, product: Product) -> Product:
        ...

    @abstractmethod
    def get_product(self, product_id: int) -> Optional[Product]:
        ...

    @abstractmethod
    def list_products(self) -> List[Product]:
        ...

    # Clients
    @abstractmethod
    def create_client(self, client: Client) -> Client:
        ...

    @abstractmethod
    def get_client(self, client_id: int) -> Optional[Client]:
        ...

    @abstractmethod
    def list_clients(self) -> List[Client]:
        ...

    @abstractmethod
    def update_client(self, client_id: int, updates: Dict[str, Any]) -> Optional[Client]:
        ...

    @abstractmethod
    def delete_client(self, client_id: int) -> bool:
        ...

    # Offers
    @abstractmethod
    def create_offer(self, offer: Offer) -> Offer:
        """Insert the offer, assigning its id and offer number."""

    @abstractmethod
    def get_offer(self, offer_id: int) -> Optional[Offer]:
        ...

    @abstractmethod
    def list_offers(self) -> List[Offer]:
        ...

    @abstractmethod
    def transition_offer(
        self,
        offer_id: int,
        from_statuses: Iterable[OfferStatus],
        updates: Dict[str, Any],
    ) -> Optional[Offer]:
        ...

    @abstractmethod
    def convert_offer(
        self,
        offer_id: int,
        policy: Policy,
        commission: Commission,
        now: datetime,
    ) -> Optional[Tuple[Offer, Policy, Commission]]:
        """
        Accept a PENDING, unexpired offer and insert its policy and commission
        in one unit of work. The policy gets its id and policy number, the
        commission is linked to it. Returns None (and writes nothing) when the
        offer is no longer PENDING or has expired by ``now``.
        """

    # Policies
    @abstractmethod
    def get_policy(self, policy_id: int) -> Optional[Policy]:
        ...

    @abstractmethod
    def list_policies(self) -> List[Policy]:
        ...

    @abstractmethod
    def transition_policy(
        self,
        policy_id: int,
        from_statuses: Iterable[PolicyStatus],
        updates: Dict[str, Any],
    ) -> Optional[Policy]:
        ...

    # Commissions
    @abstractmethod
    def get_commission(self, commission_id: int) -> Optional[Commission]:
        ...

    @abstractmethod
    def list_commissions(self) -> List[Commission]:
        ...

    @abstractmethod
    def transition_commission(
        self,
        commission_id: int,
        from_statuses: Iterable[CommissionStatus],
        updates: Dict[str, Any],
    ) -> Optional[Commission]:
        ...

    # Renewals
    @abstractmethod
    def create_renewal(self, renewal: Renewal) -> Renewal:
        ...

    @abstractmethod
    def get_renewal(self, renewal_id: int) -> Optional[Renewal]:
        ...

    @abstractmethod
    def list_renewals(self) -> List[Renewal]:
        ...

    @abstractmethod
    def transition_renewal(
        self,
        renewal_id: int,
        from_statuses: Iterable[RenewalStatus],
        updates: Dict[str, Any],
    ) -> Optional[Renewal]:
        ...

    @abstractmethod
    def delete_renewal(self, renewal_id: int) -> bool:
        ...

    # Activity log (append-only)
    @abstractmethod
    def add_activity_log(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        ...

    @abstractmethod
    def list_activity_logs(
        self,
        entity_type: Optional[EntityType] = None,
        entity_id: Optional[int] = None,
    ) -> List[ActivityLogEntry]:
        ...


class FileStore(ABC):
    """Blob storage for payment proofs. The core keeps only the returned reference."""

    @abstractmethod
    def save(self, filename: str, content: bytes) -> str:
        ...

    @abstractmethod
    def open(self, reference: str) -> bytes:
        ...

    @abstractmethod
    def exists(self, reference: str) -> bool:
        ...

    @abstractmethod
    def delete(self, reference: str) -> None:
        """Remove a stored blob; unknown references are ignored."""
