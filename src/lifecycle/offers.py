"""
Offer lifecycle.

    PENDING --convert--> ACCEPTED   (creates the policy and its commission)
    PENDING --reject---> REJECTED
    PENDING --time-----> EXPIRED    (applied when the offer is read)

Offers are always created PENDING. DRAFT exists in the status set but no code
path creates it; a stored DRAFT would expire like a PENDING offer.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional

from src.access.authorization import can_delete_offer, is_authenticated, require
from src.access.scope import filter_by_scope, in_scope
from src.errors import (
    ConsentRequiredError,
    InvalidStateError,
    NotFoundError,
    OfferExpiredError,
    PermissionDeniedError,
    ValidationError,
)
from src.integrations.contracts.interfaces import (
    ActivityType,
    ActorContext,
    Commission,
    EntityType,
    Offer,
    OfferStatus,
    Policy,
    Role,
    utcnow,
)
from src.integrations.contracts.payments import parse_payment_method
from src.integrations.contracts.storage import BrokerageStore, FileStore
from src.lifecycle.activity import ActivityLogger
from src.lifecycle.commissions import build_commission
from src.lifecycle.policies import build_policy_from_offer
from src.utils.config_loader import BrokerageConfig
from src.utils.money import round_money, to_decimal

logger = logging.getLogger(__name__)

# Statuses an offer can still leave; both expire when their window passes.
OPEN_STATUSES = (OfferStatus.PENDING, OfferStatus.DRAFT)


def effective_status(offer: Offer, now: datetime) -> OfferStatus:
    """The status a reader should see, taking the validity window into account."""
    if offer.status in OPEN_STATUSES and now > offer.expires_at:
        return OfferStatus.EXPIRED
    return offer.status


@dataclass(frozen=True)
class Conversion:
    offer: Offer
    policy: Policy
    commission: Commission


class OfferLifecycle:
    def __init__(
        self,
        db: BrokerageStore,
        activity: ActivityLogger,
        files: FileStore,
        config: BrokerageConfig,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.activity = activity
        self.files = files
        self.config = config
        self.clock = clock

    # ------------------------------------------------------------------ #
    # Reads (lazy expiry)
    # ------------------------------------------------------------------ #
    def _expire_if_due(self, offer: Offer) -> Offer:
        now = self.clock()
        if effective_status(offer, now) != OfferStatus.EXPIRED or offer.status == OfferStatus.EXPIRED:
            return offer

        expired = self.db.transition_offer(offer.id, OPEN_STATUSES, {"status": OfferStatus.EXPIRED, "updated_at": now})
        if expired is None:
            return self.db.get_offer(offer.id) or offer

        logger.info("[Offers] Offer %s expired (valid until %s)", expired.offer_number, expired.expires_at)
        self.activity.log(
            EntityType.OFFER,
            expired.id,
            ActivityType.OFFER_EXPIRED,
            f"Offer {expired.offer_number} expired",
            metadata={"expires_at": expired.expires_at.isoformat()},
        )
        return expired

    def _load(self, actor: ActorContext, offer_id: int) -> Offer:
        offer = self.db.get_offer(offer_id)
        if offer is None:
            raise NotFoundError(f"Offer {offer_id} not found")
        if not in_scope(offer, actor, self.config.scope.null_broker_visibility):
            raise PermissionDeniedError(f"Not allowed to access offer {offer_id}")
        return self._expire_if_due(offer)

    def get(self, actor: ActorContext, offer_id: int) -> Offer:
        require(is_authenticated, actor, "view offers")
        return self._load(actor, offer_id)

    def list_visible(self, actor: ActorContext) -> List[Offer]:
        require(is_authenticated, actor, "view offers")
        visible = filter_by_scope(self.db.list_offers(), actor, self.config.scope.null_broker_visibility)
        return [self._expire_if_due(o) for o in visible]

    # ------------------------------------------------------------------ #
    # Create
    # ------------------------------------------------------------------ #
    def create(
        self,
        actor: ActorContext,
        *,
        client_id: int,
        product_id: int,
        broker_id: int,
        start_date: date,
        end_date: date,
        sum_insured: Any,
        premium: Any,
        gdpr_consent: bool,
        custom_field_values: Optional[Mapping[str, Any]] = None,
        premium_breakdown: Optional[Mapping[str, Any]] = None,
    ) -> Offer:
        """
        Persist a priced offer. The premium comes from a quote the caller has
        already computed; it is stored as given and never recomputed here.
        """
        require(is_authenticated, actor, "create offers")
        if gdpr_consent is not True:
            raise ConsentRequiredError(
                "GDPR consent is required to create an offer",
                field_errors={"gdpr_consent": "The client must sign the GDPR consent"},
            )

        errors: Dict[str, str] = {}
        amount = to_decimal(premium)
        if amount is None or not amount.is_finite() or amount < 0:
            errors["premium"] = "A calculated premium is required"
        insured = to_decimal(sum_insured)
        if insured is None or not insured.is_finite() or insured <= 0:
            errors["sum_insured"] = "Sum insured must be greater than zero"
        if start_date and end_date and end_date <= start_date:
            errors["end_date"] = "End date must be after start date"
        if errors:
            raise ValidationError("Cannot create offer", field_errors=errors)

        if actor.role == Role.BROKER and actor.broker_id != broker_id:
            raise PermissionDeniedError("Brokers can only create offers under their own name")

        client = self.db.get_client(client_id)
        if client is None:
            raise NotFoundError(f"Client {client_id} not found")
        if not in_scope(client, actor, self.config.scope.null_broker_visibility):
            raise PermissionDeniedError(f"Not allowed to create offers for client {client_id}")
        product = self.db.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        if not product.active:
            raise ValidationError("Product is not active", field_errors={"product_id": "Product is not active"})
        broker = self.db.get_broker(broker_id)
        if broker is None:
            raise NotFoundError(f"Broker {broker_id} not found")

        now = self.clock()
        offer = self.db.create_offer(
            Offer(
                client_id=client.id,
                client_name=client.full_name,
                product_id=product.id,
                product_name=product.name,
                insurer_name=product.insurer_name,
                broker_id=broker.id,
                broker_name=broker.full_name,
                start_date=start_date,
                end_date=end_date,
                premium=round_money(amount),
                sum_insured=round_money(insured),
                expires_at=now + timedelta(days=self.config.offers.validity_days),
                status=OfferStatus.PENDING,
                gdpr_consent=True,
                gdpr_consent_date=now.date(),
                custom_field_values=dict(custom_field_values or {}),
                premium_breakdown=dict(premium_breakdown or {}),
                created_at=now,
                updated_at=now,
            )
        )

        logger.info("[Offers] Created %s for client %s (premium %s)", offer.offer_number, client.id, offer.premium)
        self.activity.log(
            EntityType.OFFER,
            offer.id,
            ActivityType.OFFER_CREATED,
            f"Offer {offer.offer_number} created for {client.full_name}",
            actor,
            {"premium": str(offer.premium), "product": product.code},
        )

        if not client.gdpr_consent:
            self.db.update_client(client.id, {"gdpr_consent": True, "gdpr_consent_date": now.date()})
            self.activity.log(
                EntityType.CLIENT,
                client.id,
                ActivityType.GDPR_SIGNED,
                f"GDPR consent signed by {client.full_name}",
                actor,
                {"offer_id": offer.id},
            )
        return offer

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #
    def reject(self, actor: ActorContext, offer_id: int) -> Offer:
        require(can_delete_offer, actor, "reject offers")
        offer = self._load(actor, offer_id)
        if offer.status not in OPEN_STATUSES:
            raise InvalidStateError(f"Offer {offer.offer_number} is {offer.status.value} and cannot be rejected")

        updated = self.db.transition_offer(
            offer.id, OPEN_STATUSES, {"status": OfferStatus.REJECTED, "updated_at": self.clock()}
        )
        if updated is None:
            current = self.db.get_offer(offer.id) or offer
            raise InvalidStateError(f"Offer {current.offer_number} is {current.status.value} and cannot be rejected")

        logger.info("[Offers] Rejected %s", updated.offer_number)
        self.activity.log(
            EntityType.OFFER,
            updated.id,
            ActivityType.STATUS_CHANGED,
            f"Offer {updated.offer_number} rejected",
            actor,
            {"from": offer.status.value, "to": OfferStatus.REJECTED.value},
        )
        return updated

    def _raise_not_convertible(self, offer: Offer) -> None:
        if offer.status == OfferStatus.EXPIRED:
            raise OfferExpiredError(f"Offer {offer.offer_number} has expired; create a new offer")
        raise InvalidStateError(f"Offer {offer.offer_number} is {offer.status.value} and cannot be converted")

    def convert_to_policy(
        self,
        actor: ActorContext,
        offer_id: int,
        payment_method: Any,
        proof_of_payment: Optional[str] = None,
    ) -> Conversion:
        """
        Accept the offer and issue its policy and commission in one unit of work.
        Either all three are written or none is.

        ``proof_of_payment`` must be a reference the FileStore already holds.
        """
        require(is_authenticated, actor, "convert offers")
        method = parse_payment_method(payment_method)
        proof_of_payment = (proof_of_payment or "").strip() or None
        if proof_of_payment is not None and not self.files.exists(proof_of_payment):
            raise ValidationError(
                "Payment proof not found",
                field_errors={"proof_of_payment": "Payment proof must be uploaded before checkout"},
            )
        offer = self._load(actor, offer_id)
        if offer.status != OfferStatus.PENDING:
            self._raise_not_convertible(offer)

        broker = self.db.get_broker(offer.broker_id)
        if broker is None:
            raise NotFoundError(f"Broker {offer.broker_id} not found")

        now = self.clock()
        policy = build_policy_from_offer(offer, method, proof_of_payment, now)
        commission = build_commission(broker, Decimal(offer.premium), now)

        result = self.db.convert_offer(offer.id, policy, commission, now)
        if result is None:
            current = self._expire_if_due(self.db.get_offer(offer.id) or offer)
            self._raise_not_convertible(current)
        accepted, issued, commission = result

        logger.info(
            "[Offers] Converted %s into policy %s (%s, %s)",
            accepted.offer_number, issued.policy_number, method.value, issued.status.value,
        )
        self.activity.log(
            EntityType.OFFER,
            accepted.id,
            ActivityType.OFFER_ACCEPTED,
            f"Offer {accepted.offer_number} accepted",
            actor,
            {"policy_id": issued.id, "policy_number": issued.policy_number},
        )
        self.activity.log(
            EntityType.POLICY,
            issued.id,
            ActivityType.POLICY_CREATED,
            f"Policy {issued.policy_number} issued from offer {accepted.offer_number}",
            actor,
            {"offer_id": accepted.id, "payment_method": method.value, "commission": str(commission.amount)},
        )
        return Conversion(offer=accepted, policy=issued, commission=commission)
