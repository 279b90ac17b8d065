"""Broker commissions: created with each policy, then paid out by a manager."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from src.access.authorization import can_pay_commission, is_authenticated, require
from src.access.scope import filter_by_scope, in_scope
from src.errors import InvalidStateError, NotFoundError, PermissionDeniedError
from src.integrations.contracts.interfaces import (
    ActivityType,
    ActorContext,
    Broker,
    Commission,
    CommissionStatus,
    EntityType,
    utcnow,
)
from src.integrations.contracts.storage import BrokerageStore
from src.lifecycle.activity import ActivityLogger
from src.utils.config_loader import BrokerageConfig
from src.utils.money import round_money

logger = logging.getLogger(__name__)


def build_commission(broker: Broker, premium: Decimal, now: datetime) -> Commission:
    """Unsaved PENDING commission for ``premium`` at the broker's rate; the store links the policy."""
    rate = broker.commission_rate
    return Commission(
        broker_id=broker.id,
        broker_name=broker.full_name,
        rate=rate,
        amount=round_money(premium * rate),
        status=CommissionStatus.PENDING,
        created_at=now,
    )


class CommissionLedger:
    def __init__(
        self,
        db: BrokerageStore,
        activity: ActivityLogger,
        config: BrokerageConfig,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.activity = activity
        self.config = config
        self.clock = clock

    def _visible(self, actor: Optional[ActorContext], commission: Commission) -> bool:
        return in_scope(commission, actor, self.config.scope.null_broker_visibility)

    def get(self, actor: ActorContext, commission_id: int) -> Commission:
        require(is_authenticated, actor, "view commissions")
        commission = self.db.get_commission(commission_id)
        if commission is None:
            raise NotFoundError(f"Commission {commission_id} not found")
        if not self._visible(actor, commission):
            raise PermissionDeniedError(f"Not allowed to view commission {commission_id}")
        return commission

    def list_visible(self, actor: ActorContext) -> List[Commission]:
        require(is_authenticated, actor, "view commissions")
        return filter_by_scope(self.db.list_commissions(), actor, self.config.scope.null_broker_visibility)

    def mark_paid(self, actor: ActorContext, commission_id: int) -> Commission:
        require(can_pay_commission, actor, "mark commissions as paid")
        commission = self.get(actor, commission_id)

        updated = self.db.transition_commission(
            commission_id,
            [CommissionStatus.PENDING],
            {"status": CommissionStatus.PAID, "payment_date": self.clock().date()},
        )
        if updated is None:
            current = self.db.get_commission(commission_id) or commission
            raise InvalidStateError(
                f"Commission {commission_id} is {current.status.value} and cannot be marked as paid"
            )

        logger.info("[Commissions] Paid commission %s (%s) to broker %s", updated.id, updated.amount, updated.broker_id)
        if updated.policy_id is not None:
            self.activity.log(
                EntityType.POLICY,
                updated.policy_id,
                ActivityType.COMMISSION_PAID,
                f"Commission of {updated.amount} paid to {updated.broker_name}",
                actor,
                {"commission_id": updated.id, "amount": str(updated.amount)},
            )
        return updated
