"""
Policy payment lifecycle.

    AWAITING_PAYMENT --upload proof--> AWAITING_VALIDATION --validate--> ACTIVE
            ^                                 |
            +----------reject payment---------+

    ACTIVE --suspend--> SUSPENDED
    any state except CANCELLED/EXPIRED --cancel--> CANCELLED
    ACTIVE past its end date reads (and is stored) as EXPIRED

Online card payments skip the manual steps and start ACTIVE. Policies are
never deleted; cancellation keeps the record and its reason.
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from src.access.authorization import can_cancel_policy, can_validate_payment, is_authenticated, require
from src.access.scope import filter_by_scope, in_scope
from src.errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from src.integrations.contracts.interfaces import (
    ActivityType,
    ActorContext,
    EntityType,
    Offer,
    PaymentMethod,
    PaymentStatus,
    Policy,
    PolicyStatus,
    utcnow,
)
from src.integrations.contracts.payments import (
    PROOF_UPLOAD_STATES,
    TERMINAL_POLICY_STATES,
    initial_payment_state,
    is_terminal_status,
)
from src.integrations.contracts.storage import BrokerageStore, FileStore
from src.lifecycle.activity import ActivityLogger
from src.utils.config_loader import BrokerageConfig

logger = logging.getLogger(__name__)

CANCELLABLE_STATES = frozenset(PolicyStatus) - TERMINAL_POLICY_STATES


def build_policy_from_offer(
    offer: Offer,
    payment_method: PaymentMethod,
    proof_of_payment: Optional[str],
    now: datetime,
) -> Policy:
    """Unsaved policy carrying the offer forward; the store assigns id and policy number."""
    status, payment_status = initial_payment_state(payment_method, bool(proof_of_payment))
    return Policy(
        offer_id=offer.id,
        client_id=offer.client_id,
        client_name=offer.client_name,
        product_id=offer.product_id,
        product_name=offer.product_name,
        insurer_name=offer.insurer_name,
        broker_id=offer.broker_id,
        broker_name=offer.broker_name,
        start_date=offer.start_date,
        end_date=offer.end_date,
        premium=offer.premium,
        sum_insured=offer.sum_insured,
        status=status,
        payment_method=payment_method,
        payment_status=payment_status,
        gdpr_consent=offer.gdpr_consent,
        gdpr_consent_date=offer.gdpr_consent_date,
        custom_field_values=dict(offer.custom_field_values),
        proof_of_payment=proof_of_payment or None,
        validated_at=now if payment_status == PaymentStatus.VALIDATED else None,
        created_at=now,
        updated_at=now,
    )


class PolicyPaymentLifecycle:
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
    def _expire_if_due(self, policy: Policy) -> Policy:
        now = self.clock()
        if policy.status != PolicyStatus.ACTIVE or now.date() <= policy.end_date:
            return policy

        expired = self.db.transition_policy(
            policy.id, [PolicyStatus.ACTIVE], {"status": PolicyStatus.EXPIRED, "updated_at": now}
        )
        if expired is None:
            # Someone else moved it first; report what is stored now.
            return self.db.get_policy(policy.id) or policy

        logger.info("[Policies] Policy %s expired on %s", expired.policy_number, expired.end_date)
        self.activity.log(
            EntityType.POLICY,
            expired.id,
            ActivityType.POLICY_EXPIRED,
            f"Policy {expired.policy_number} expired",
            metadata={"end_date": expired.end_date.isoformat()},
        )
        return expired

    def _load(self, actor: ActorContext, policy_id: int) -> Policy:
        policy = self.db.get_policy(policy_id)
        if policy is None:
            raise NotFoundError(f"Policy {policy_id} not found")
        if not in_scope(policy, actor, self.config.scope.null_broker_visibility):
            raise PermissionDeniedError(f"Not allowed to access policy {policy_id}")
        return self._expire_if_due(policy)

    def get(self, actor: ActorContext, policy_id: int) -> Policy:
        require(is_authenticated, actor, "view policies")
        return self._load(actor, policy_id)

    def list_visible(self, actor: ActorContext) -> List[Policy]:
        require(is_authenticated, actor, "view policies")
        visible = filter_by_scope(self.db.list_policies(), actor, self.config.scope.null_broker_visibility)
        return [self._expire_if_due(p) for p in visible]

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #
    def _transition(
        self,
        policy: Policy,
        from_statuses: Iterable[PolicyStatus],
        updates: dict,
        action: str,
    ) -> Policy:
        updated = self.db.transition_policy(policy.id, from_statuses, updates)
        if updated is None:
            current = self.db.get_policy(policy.id) or policy
            raise InvalidStateError(
                f"Cannot {action} policy {current.policy_number}: it is {current.status.value}"
            )
        return updated

    def upload_proof(self, actor: ActorContext, policy_id: int, filename: str, content: bytes) -> Policy:
        require(is_authenticated, actor, "upload payment proof")
        policy = self._load(actor, policy_id)
        if policy.status not in PROOF_UPLOAD_STATES:
            raise InvalidStateError(
                f"Cannot upload payment proof for policy {policy.policy_number}: it is {policy.status.value}"
            )

        reference = self.files.save(filename, content)
        try:
            updated = self._transition(
                policy,
                PROOF_UPLOAD_STATES,
                {
                    "status": PolicyStatus.AWAITING_VALIDATION,
                    "payment_status": PaymentStatus.PENDING,
                    "proof_of_payment": reference,
                    "updated_at": self.clock(),
                },
                "upload payment proof for",
            )
        except InvalidStateError:
            # The policy moved on meanwhile; nothing points at the new blob.
            self.files.delete(reference)
            raise

        logger.info("[Policies] Proof uploaded for %s (%s)", updated.policy_number, reference)
        self.activity.log(
            EntityType.POLICY,
            updated.id,
            ActivityType.PAYMENT_UPLOADED,
            f"Payment proof uploaded for policy {updated.policy_number}",
            actor,
            {"file": reference, "previous_status": policy.status.value},
        )
        return updated

    def validate(self, actor: ActorContext, policy_id: int) -> Policy:
        require(can_validate_payment, actor, "validate payments")
        policy = self._load(actor, policy_id)
        now = self.clock()
        updated = self._transition(
            policy,
            [PolicyStatus.AWAITING_VALIDATION],
            {
                "status": PolicyStatus.ACTIVE,
                "payment_status": PaymentStatus.VALIDATED,
                "validated_by": actor.user_id,
                "validated_at": now,
                "updated_at": now,
            },
            "validate payment for",
        )

        logger.info("[Policies] Payment validated for %s by user %s", updated.policy_number, actor.user_id)
        self.activity.log(
            EntityType.POLICY,
            updated.id,
            ActivityType.PAYMENT_VALIDATED,
            f"Payment validated for policy {updated.policy_number}",
            actor,
        )
        return updated

    def reject_payment(self, actor: ActorContext, policy_id: int, reason: Optional[str] = None) -> Policy:
        require(can_validate_payment, actor, "reject payments")
        policy = self._load(actor, policy_id)
        updated = self._transition(
            policy,
            [PolicyStatus.AWAITING_VALIDATION],
            {
                "status": PolicyStatus.AWAITING_PAYMENT,
                "payment_status": PaymentStatus.REJECTED,
                "updated_at": self.clock(),
            },
            "reject payment for",
        )

        reason = (reason or "").strip()
        logger.info("[Policies] Payment rejected for %s", updated.policy_number)
        self.activity.log(
            EntityType.POLICY,
            updated.id,
            ActivityType.PAYMENT_REJECTED,
            f"Payment proof rejected for policy {updated.policy_number}",
            actor,
            {"reason": reason} if reason else None,
        )
        return updated

    def cancel(self, actor: ActorContext, policy_id: int, reason: str) -> Policy:
        require(can_cancel_policy, actor, "cancel policies")
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError(
                "A cancellation reason is required",
                field_errors={"cancellation_reason": "Cancellation reason is required"},
            )

        policy = self._load(actor, policy_id)
        if is_terminal_status(policy.status):
            raise InvalidStateError(
                f"Cannot cancel a terminal policy: {policy.policy_number} is {policy.status.value}"
            )
        updated = self._transition(
            policy,
            CANCELLABLE_STATES,
            {"status": PolicyStatus.CANCELLED, "cancellation_reason": reason, "updated_at": self.clock()},
            "cancel",
        )

        logger.info("[Policies] Cancelled %s: %s", updated.policy_number, reason)
        self.activity.log(
            EntityType.POLICY,
            updated.id,
            ActivityType.POLICY_CANCELLED,
            f"Policy {updated.policy_number} cancelled",
            actor,
            {"reason": reason, "previous_status": policy.status.value},
        )
        return updated

    def suspend(self, actor: ActorContext, policy_id: int) -> Policy:
        require(can_cancel_policy, actor, "suspend policies")
        policy = self._load(actor, policy_id)
        updated = self._transition(
            policy,
            [PolicyStatus.ACTIVE],
            {"status": PolicyStatus.SUSPENDED, "updated_at": self.clock()},
            "suspend",
        )

        logger.info("[Policies] Suspended %s", updated.policy_number)
        self.activity.log(
            EntityType.POLICY,
            updated.id,
            ActivityType.STATUS_CHANGED,
            f"Policy {updated.policy_number} suspended",
            actor,
            {"from": PolicyStatus.ACTIVE.value, "to": PolicyStatus.SUSPENDED.value},
        )
        return updated

    def proof_content(self, actor: ActorContext, policy_id: int) -> Tuple[str, bytes]:
        """Return (reference, bytes) of the stored payment proof."""
        require(is_authenticated, actor, "download payment proof")
        policy = self._load(actor, policy_id)
        if not policy.proof_of_payment:
            raise NotFoundError(f"Policy {policy.policy_number} has no payment proof")
        return policy.proof_of_payment, self.files.open(policy.proof_of_payment)
