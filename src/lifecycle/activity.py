"""Fire-and-forget activity logging.

An audit entry is written after the transition it describes has been
committed. A failure to write it is logged and dropped; it never undoes or
fails the transition.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from src.access.authorization import can_view_all_data, is_authenticated, require
from src.access.scope import NULL_BROKER_NONE, in_scope
from src.integrations.contracts.interfaces import (
    ActivityLogEntry,
    ActivityType,
    ActorContext,
    EntityType,
    utcnow,
)
from src.integrations.contracts.storage import BrokerageStore

logger = logging.getLogger(__name__)


class ActivityLogger:
    def __init__(self, db: BrokerageStore):
        self.db = db

    def log(
        self,
        entity_type: EntityType,
        entity_id: int,
        activity_type: ActivityType,
        description: str,
        actor: Optional[ActorContext] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[ActivityLogEntry]:
        entry = ActivityLogEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            activity_type=activity_type,
            description=description,
            performed_by=actor.user_id if actor is not None else None,
            metadata=dict(metadata or {}),
            created_at=utcnow(),
        )
        try:
            return self.db.add_activity_log(entry)
        except Exception:
            logger.warning(
                "Failed to record %s for %s %s",
                activity_type.value, entity_type.value, entity_id,
                exc_info=True,
            )
            return None

    def _entity_broker(self, entry: ActivityLogEntry) -> Optional[int]:
        if entry.entity_type == EntityType.CLIENT:
            owner = self.db.get_client(entry.entity_id)
        elif entry.entity_type == EntityType.OFFER:
            owner = self.db.get_offer(entry.entity_id)
        else:
            owner = self.db.get_policy(entry.entity_id)
        return owner.broker_id if owner is not None else None

    def list_visible(
        self,
        actor: ActorContext,
        entity_type: Optional[EntityType] = None,
        entity_id: Optional[int] = None,
        null_broker_visibility: str = NULL_BROKER_NONE,
    ) -> List[ActivityLogEntry]:
        """Entries about entities the actor can see, oldest first."""
        require(is_authenticated, actor, "view activity")
        entries = self.db.list_activity_logs(entity_type, entity_id)
        if can_view_all_data(actor):
            return entries

        owners: Dict[Tuple[EntityType, int], Optional[int]] = {}
        visible = []
        for entry in entries:
            key = (entry.entity_type, entry.entity_id)
            if key not in owners:
                owners[key] = self._entity_broker(entry)
            if in_scope({"broker_id": owners[key]}, actor, null_broker_visibility):
                visible.append(entry)
        return visible
