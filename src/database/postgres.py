"""
Lightweight in-memory BrokerageDB for local development and tests.

Implements the full BrokerageStore contract so the service can run without a
real database. All access is serialized by one lock, which makes every
conditional transition atomic. Records are copied on the way in and out, so
callers can never mutate stored state behind the store's back.
"""

from __future__ import annotations

import itertools
import threading
from copy import deepcopy
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, TypeVar

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
from src.integrations.contracts.storage import BrokerageStore, format_number

T = TypeVar("T")


class BrokerageDB(BrokerageStore):
    """
    In-memory stand-in for the SQL-backed store.

    Ids are sequential per collection, starting at 1, like a serial column.
    """

    def __init__(self, offer_number_prefix: str = "OFF", policy_number_prefix: str = "POL") -> None:
        self.offer_number_prefix = offer_number_prefix
        self.policy_number_prefix = policy_number_prefix
        self._lock = threading.RLock()
        self._brokers: Dict[int, Broker] = {}
        self._insurers: Dict[int, Insurer] = {}
        self._products: Dict[int, Product] = {}
        self._clients: Dict[int, Client] = {}
        self._offers: Dict[int, Offer] = {}
        self._policies: Dict[int, Policy] = {}
        self._commissions: Dict[int, Commission] = {}
        self._renewals: Dict[int, Renewal] = {}
        self._activity: List[ActivityLogEntry] = []
        self._ids: Dict[str, "itertools.count[int]"] = {}

    # ------------------------------------------------------------------ #
    # Schema / lifecycle
    # ------------------------------------------------------------------ #
    def create_tables(self) -> None:
        """
        No-op for the in-memory implementation. Kept for compatibility
        with the startup hook in `src/api/main.py`.
        """
        return None

    def _next_id(self, table: str) -> int:
        counter = self._ids.setdefault(table, itertools.count(1))
        return next(counter)

    def _insert(self, table: str, rows: Dict[int, T], entity: T) -> T:
        with self._lock:
            stored = replace(deepcopy(entity), id=self._next_id(table))
            rows[stored.id] = stored
            return deepcopy(stored)

    def _get(self, rows: Dict[int, T], entity_id: int) -> Optional[T]:
        with self._lock:
            found = rows.get(entity_id)
            return deepcopy(found) if found is not None else None

    def _list(self, rows: Dict[int, T]) -> List[T]:
        with self._lock:
            return [deepcopy(rows[k]) for k in sorted(rows)]

    def _transition(
        self,
        rows: Dict[int, Any],
        entity_id: int,
        from_statuses: Iterable[Any],
        updates: Dict[str, Any],
    ) -> Optional[Any]:
        allowed = set(from_statuses)
        with self._lock:
            current = rows.get(entity_id)
            if current is None or current.status not in allowed:
                return None
            updated = replace(current, **deepcopy(updates))
            rows[entity_id] = updated
            return deepcopy(updated)

    def _update(self, rows: Dict[int, T], entity_id: int, updates: Dict[str, Any]) -> Optional[T]:
        with self._lock:
            current = rows.get(entity_id)
            if current is None:
                return None
            updated = replace(current, **deepcopy(updates))
            rows[entity_id] = updated
            return deepcopy(updated)

    def _delete(self, rows: Dict[int, Any], entity_id: int) -> bool:
        with self._lock:
            return rows.pop(entity_id, None) is not None

    # ------------------------------------------------------------------ #
    # Brokers
    # ------------------------------------------------------------------ #
    def create_broker(self, broker: Broker) -> Broker:
        return self._insert("brokers", self._brokers, broker)

    def get_broker(self, broker_id: int) -> Optional[Broker]:
        return self._get(self._brokers, broker_id)

    def list_brokers(self) -> List[Broker]:
        return self._list(self._brokers)

    # ------------------------------------------------------------------ #
    # Insurers
    # ------------------------------------------------------------------ #
    def create_insurer(self, insurer: Insurer) -> Insurer:
        return self._insert("insurers", self._insurers, insurer)

    def get_insurer(self, insurer_id: int) -> Optional[Insurer]:
        return self._get(self._insurers, insurer_id)

    def list_insurers(self) -> List[Insurer]:
        return self._list(self._insurers)

    def update_insurer(self, insurer_id: int, updates: Dict[str, Any]) -> Optional[Insurer]:
        return self._update(self._insurers, insurer_id, updates)

    def delete_insurer(self, insurer_id: int) -> bool:
        return self._delete(self._insurers, insurer_id)

    # ------------------------------------------------------------------ #
    # Products
    # ------------------------------------------------------------------ #
    def create_product(self, product: Product) -> Product:
        return self._insert("products", self._products, product)

    def get_product(self, product_id: int) -> Optional[Product]:
        return self._get(self._products, product_id)

    def list_products(self) -> List[Product]:
        return self._list(self._products)

    # ------------------------------------------------------------------ #
    # Clients
    # ------------------------------------------------------------------ #
    def create_client(self, client: Client) -> Client:
        return self._insert("clients", self._clients, client)

    def get_client(self, client_id: int) -> Optional[Client]:
        return self._get(self._clients, client_id)

    def list_clients(self) -> List[Client]:
        return self._list(self._clients)

    def update_client(self, client_id: int, updates: Dict[str, Any]) -> Optional[Client]:
        return self._update(self._clients, client_id, updates)

    def delete_client(self, client_id: int) -> bool:
        return self._delete(self._clients, client_id)

    # ------------------------------------------------------------------ #
    # Offers
    # ------------------------------------------------------------------ #
    def create_offer(self, offer: Offer) -> Offer:
        with self._lock:
            offer_id = self._next_id("offers")
            stored = replace(
                deepcopy(offer),
                id=offer_id,
                offer_number=format_number(self.offer_number_prefix, offer.created_at.year, offer_id),
            )
            self._offers[offer_id] = stored
            return deepcopy(stored)

    def get_offer(self, offer_id: int) -> Optional[Offer]:
        return self._get(self._offers, offer_id)

    def list_offers(self) -> List[Offer]:
        return self._list(self._offers)

    def transition_offer(
        self,
        offer_id: int,
        from_statuses: Iterable[OfferStatus],
        updates: Dict[str, Any],
    ) -> Optional[Offer]:
        return self._transition(self._offers, offer_id, from_statuses, updates)

    def convert_offer(
        self,
        offer_id: int,
        policy: Policy,
        commission: Commission,
        now: datetime,
    ) -> Optional[Tuple[Offer, Policy, Commission]]:
        with self._lock:
            offer = self._offers.get(offer_id)
            if offer is None or offer.status != OfferStatus.PENDING or now > offer.expires_at:
                return None

            accepted = replace(offer, status=OfferStatus.ACCEPTED, updated_at=now)

            policy_id = self._next_id("policies")
            stored_policy = replace(
                deepcopy(policy),
                id=policy_id,
                offer_id=offer_id,
                policy_number=format_number(self.policy_number_prefix, now.year, policy_id),
            )
            stored_commission = replace(
                deepcopy(commission),
                id=self._next_id("commissions"),
                policy_id=policy_id,
                policy_number=stored_policy.policy_number,
            )

            self._offers[offer_id] = accepted
            self._policies[policy_id] = stored_policy
            self._commissions[stored_commission.id] = stored_commission
            return deepcopy(accepted), deepcopy(stored_policy), deepcopy(stored_commission)

    # ------------------------------------------------------------------ #
    # Policies
    # ------------------------------------------------------------------ #
    def get_policy(self, policy_id: int) -> Optional[Policy]:
        return self._get(self._policies, policy_id)

    def list_policies(self) -> List[Policy]:
        return self._list(self._policies)

    def transition_policy(
        self,
        policy_id: int,
        from_statuses: Iterable[PolicyStatus],
        updates: Dict[str, Any],
    ) -> Optional[Policy]:
        return self._transition(self._policies, policy_id, from_statuses, updates)

    # ------------------------------------------------------------------ #
    # Commissions
    # ------------------------------------------------------------------ #
    def get_commission(self, commission_id: int) -> Optional[Commission]:
        return self._get(self._commissions, commission_id)

    def list_commissions(self) -> List[Commission]:
        return self._list(self._commissions)

    def transition_commission(
        self,
        commission_id: int,
        from_statuses: Iterable[CommissionStatus],
        updates: Dict[str, Any],
    ) -> Optional[Commission]:
        return self._transition(self._commissions, commission_id, from_statuses, updates)

    # ------------------------------------------------------------------ #
    # Renewals
    # ------------------------------------------------------------------ #
    def create_renewal(self, renewal: Renewal) -> Renewal:
        return self._insert("renewals", self._renewals, renewal)

    def get_renewal(self, renewal_id: int) -> Optional[Renewal]:
        return self._get(self._renewals, renewal_id)

    def list_renewals(self) -> List[Renewal]:
        return self._list(self._renewals)

    def transition_renewal(
        self,
        renewal_id: int,
        from_statuses: Iterable[RenewalStatus],
        updates: Dict[str, Any],
    ) -> Optional[Renewal]:
        return self._transition(self._renewals, renewal_id, from_statuses, updates)

    def delete_renewal(self, renewal_id: int) -> bool:
        return self._delete(self._renewals, renewal_id)

    # ------------------------------------------------------------------ #
    # Activity log
    # ------------------------------------------------------------------ #
    def add_activity_log(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        with self._lock:
            stored = replace(deepcopy(entry), id=self._next_id("activity_logs"))
            self._activity.append(stored)
            return deepcopy(stored)

    def list_activity_logs(
        self,
        entity_type: Optional[EntityType] = None,
        entity_id: Optional[int] = None,
    ) -> List[ActivityLogEntry]:
        with self._lock:
            return [
                deepcopy(e)
                for e in self._activity
                if (entity_type is None or e.entity_type == entity_type)
                and (entity_id is None or e.entity_id == entity_id)
            ]
