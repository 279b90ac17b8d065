"""
Policy renewals.

    PENDING --complete--> COMPLETED   (optionally linked to the replacement policy)
    PENDING --decline---> DECLINED

A renewal is opened against an ACTIVE or EXPIRED policy, at most one PENDING
renewal per policy. Renewals are scoped by the broker of the original policy.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, List, Optional

from src.access.authorization import can_delete_renewal, is_authenticated, require
from src.access.scope import filter_by_scope, in_scope
from src.errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from src.integrations.contracts.interfaces import (
    ActivityType,
    ActorContext,
    EntityType,
    PolicyStatus,
    Renewal,
    RenewalStatus,
    utcnow,
)
from src.integrations.contracts.storage import BrokerageStore
from src.lifecycle.activity import ActivityLogger
from src.lifecycle.policies import PolicyPaymentLifecycle
from src.utils.config_loader import BrokerageConfig
from src.utils.money import round_money, to_decimal

logger = logging.getLogger(__name__)

RENEWABLE_STATES = frozenset({PolicyStatus.ACTIVE, PolicyStatus.EXPIRED})


class RenewalLedger:
    def __init__(
        self,
        db: BrokerageStore,
        activity: ActivityLogger,
        policies: PolicyPaymentLifecycle,
        config: BrokerageConfig,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.activity = activity
        self.policies = policies
        self.config = config
        self.clock = clock

    def _load(self, actor: ActorContext, renewal_id: int) -> Renewal:
        renewal = self.db.get_renewal(renewal_id)
        if renewal is None:
            raise NotFoundError(f"Renewal {renewal_id} not found")
        if not in_scope(renewal, actor, self.config.scope.null_broker_visibility):
            raise PermissionDeniedError(f"Not allowed to access renewal {renewal_id}")
        return renewal

    def get(self, actor: ActorContext, renewal_id: int) -> Renewal:
        require(is_authenticated, actor, "view renewals")
        return self._load(actor, renewal_id)

    def list_visible(self, actor: ActorContext) -> List[Renewal]:
        require(is_authenticated, actor, "view renewals")
        return filter_by_scope(self.db.list_renewals(), actor, self.config.scope.null_broker_visibility)

    def create(
        self,
        actor: ActorContext,
        policy_id: int,
        new_premium: Any,
        renewal_date: Optional[date] = None,
    ) -> Renewal:
        """
        Open a renewal for a policy that is running or has run its course.

        The renewal date defaults to the day after the policy ends.
        """
        require(is_authenticated, actor, "renew policies")
        amount = to_decimal(new_premium)
        if amount is None or not amount.is_finite() or amount < 0:
            raise ValidationError("Cannot create renewal", field_errors={"new_premium": "A new premium is required"})

        policy = self.policies.get(actor, policy_id)
        if policy.status not in RENEWABLE_STATES:
            raise InvalidStateError(f"Policy {policy.policy_number} is {policy.status.value} and cannot be renewed")
        if any(
            r.original_policy_id == policy.id and r.status == RenewalStatus.PENDING for r in self.db.list_renewals()
        ):
            raise InvalidStateError(f"Policy {policy.policy_number} already has a pending renewal")

        now = self.clock()
        renewal = self.db.create_renewal(
            Renewal(
                original_policy_id=policy.id,
                policy_number=policy.policy_number,
                client_id=policy.client_id,
                client_name=policy.client_name,
                broker_id=policy.broker_id,
                renewal_date=renewal_date or policy.end_date + timedelta(days=1),
                previous_premium=policy.premium,
                new_premium=round_money(amount),
                status=RenewalStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
        )

        logger.info("[Renewals] Opened renewal %s for %s on %s", renewal.id, policy.policy_number, renewal.renewal_date)
        self.activity.log(
            EntityType.POLICY,
            policy.id,
            ActivityType.STATUS_CHANGED,
            f"Renewal opened for policy {policy.policy_number}",
            actor,
            {"renewal_id": renewal.id, "new_premium": str(renewal.new_premium)},
        )
        return renewal

    def _transition(self, renewal: Renewal, updates: dict, action: str) -> Renewal:
        updated = self.db.transition_renewal(renewal.id, [RenewalStatus.PENDING], updates)
        if updated is None:
            current = self.db.get_renewal(renewal.id) or renewal
            raise InvalidStateError(f"Cannot {action} renewal {renewal.id}: it is {current.status.value}")
        return updated

    def complete(self, actor: ActorContext, renewal_id: int, new_policy_id: Optional[int] = None) -> Renewal:
        require(is_authenticated, actor, "complete renewals")
        renewal = self._load(actor, renewal_id)
        if renewal.status != RenewalStatus.PENDING:
            raise InvalidStateError(f"Cannot complete renewal {renewal.id}: it is {renewal.status.value}")
        if new_policy_id is not None:
            replacement = self.policies.get(actor, new_policy_id)
            if replacement.id == renewal.original_policy_id or replacement.client_id != renewal.client_id:
                raise ValidationError(
                    "Replacement policy does not match the renewal",
                    field_errors={"new_policy_id": "Must be another policy of the same client"},
                )

        updated = self._transition(
            renewal,
            {"status": RenewalStatus.COMPLETED, "new_policy_id": new_policy_id, "updated_at": self.clock()},
            "complete",
        )
        logger.info("[Renewals] Completed renewal %s for %s", updated.id, updated.policy_number)
        self.activity.log(
            EntityType.POLICY,
            updated.original_policy_id,
            ActivityType.POLICY_RENEWED,
            f"Policy {updated.policy_number} renewed",
            actor,
            {"renewal_id": updated.id, "new_policy_id": new_policy_id, "new_premium": str(updated.new_premium)},
        )
        return updated

    def decline(self, actor: ActorContext, renewal_id: int) -> Renewal:
        require(is_authenticated, actor, "decline renewals")
        renewal = self._load(actor, renewal_id)
        updated = self._transition(
            renewal, {"status": RenewalStatus.DECLINED, "updated_at": self.clock()}, "decline"
        )
        logger.info("[Renewals] Declined renewal %s for %s", updated.id, updated.policy_number)
        self.activity.log(
            EntityType.POLICY,
            updated.original_policy_id,
            ActivityType.STATUS_CHANGED,
            f"Renewal of policy {updated.policy_number} declined",
            actor,
            {"renewal_id": updated.id},
        )
        return updated

    def delete(self, actor: ActorContext, renewal_id: int) -> None:
        require(can_delete_renewal, actor, "delete renewals")
        renewal = self._load(actor, renewal_id)
        if not self.db.delete_renewal(renewal.id):
            raise NotFoundError(f"Renewal {renewal_id} not found")
        logger.info("[Renewals] Renewal %s deleted by user %s", renewal_id, actor.user_id)
