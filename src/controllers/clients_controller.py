"""Controller for client records."""
from datetime import datetime
from typing import Any, Callable, Dict, List
import logging

from src.access.authorization import can_delete_client, is_authenticated, require
from src.access.scope import filter_by_scope, in_scope
from src.errors import InvalidStateError, NotFoundError, PermissionDeniedError
from src.integrations.contracts.interfaces import (
    ActivityType,
    ActorContext,
    Client,
    EntityType,
    Role,
    utcnow,
)
from src.integrations.contracts.storage import BrokerageStore
from src.lifecycle.activity import ActivityLogger
from src.utils.config_loader import BrokerageConfig
from src.validation import (
    add_error,
    parse_bool,
    parse_int,
    raise_if_errors,
    require_str,
    validate_cnp,
    validate_email,
    validate_phone,
)

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ("first_name", "last_name", "email", "phone")


class ClientsController:
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

    def _load(self, actor: ActorContext, client_id: int) -> Client:
        client = self.db.get_client(client_id)
        if client is None:
            raise NotFoundError(f"Client {client_id} not found")
        if not in_scope(client, actor, self.config.scope.null_broker_visibility):
            raise PermissionDeniedError(f"Not allowed to access client {client_id}")
        return client

    def create_client(self, actor: ActorContext, payload: Dict[str, Any]) -> Client:
        require(is_authenticated, actor, "create clients")
        errors: Dict[str, str] = {}
        first_name = require_str(payload, "first_name", errors, label="First Name")
        last_name = require_str(payload, "last_name", errors, label="Last Name")
        cnp = validate_cnp(payload.get("cnp"), errors)
        email = validate_email(payload.get("email"), errors, required=False)
        phone = validate_phone(payload.get("phone"), errors)
        consent = parse_bool(payload, "gdpr_consent", errors)

        # Brokers always own the clients they register.
        if actor.role == Role.BROKER:
            broker_id = actor.broker_id
        else:
            broker_id = parse_int(payload, "broker_id", errors) or actor.broker_id
        if broker_id is None:
            add_error(errors, "broker_id", "Broker is required")
        elif self.db.get_broker(broker_id) is None:
            add_error(errors, "broker_id", "Broker does not exist")
        raise_if_errors(errors)

        now = self.clock()
        client = self.db.create_client(
            Client(
                first_name=first_name,
                last_name=last_name,
                cnp=cnp,
                broker_id=broker_id,
                email=email,
                phone=phone,
                gdpr_consent=consent,
                gdpr_consent_date=now.date() if consent else None,
                created_at=now,
            )
        )
        logger.info("Client %s registered under broker %s", client.id, broker_id)
        self.activity.log(EntityType.CLIENT, client.id, ActivityType.CLIENT_CREATED, f"Client {client.full_name} created", actor)
        if consent:
            self.activity.log(EntityType.CLIENT, client.id, ActivityType.GDPR_SIGNED, f"GDPR consent signed by {client.full_name}", actor)
        return client

    def get_client(self, actor: ActorContext, client_id: int) -> Client:
        require(is_authenticated, actor, "view clients")
        return self._load(actor, client_id)

    def list_clients(self, actor: ActorContext) -> List[Client]:
        require(is_authenticated, actor, "view clients")
        return filter_by_scope(self.db.list_clients(), actor, self.config.scope.null_broker_visibility)

    def update_client(self, actor: ActorContext, client_id: int, payload: Dict[str, Any]) -> Client:
        require(is_authenticated, actor, "update clients")
        client = self._load(actor, client_id)

        errors: Dict[str, str] = {}
        updates: Dict[str, Any] = {}
        for field in _EDITABLE_FIELDS:
            if field not in payload:
                continue
            if field == "email":
                updates[field] = validate_email(payload.get(field), errors, required=False)
            elif field == "phone":
                updates[field] = validate_phone(payload.get(field), errors)
            else:
                updates[field] = require_str(payload, field, errors)

        # Consent is set once and never revoked.
        if "gdpr_consent" in payload:
            consent = parse_bool(payload, "gdpr_consent", errors, default=client.gdpr_consent)
            if client.gdpr_consent and not consent:
                add_error(errors, "gdpr_consent", "GDPR consent cannot be revoked")
            elif consent and not client.gdpr_consent:
                updates["gdpr_consent"] = True
                updates["gdpr_consent_date"] = self.clock().date()
        raise_if_errors(errors)

        if not updates:
            return client
        updated = self.db.update_client(client_id, updates)
        if updated is None:
            raise NotFoundError(f"Client {client_id} not found")

        self.activity.log(
            EntityType.CLIENT,
            client_id,
            ActivityType.CLIENT_UPDATED,
            f"Client {updated.full_name} updated",
            actor,
            {"fields": sorted(updates)},
        )
        if updates.get("gdpr_consent"):
            self.activity.log(EntityType.CLIENT, client_id, ActivityType.GDPR_SIGNED, f"GDPR consent signed by {updated.full_name}", actor)
        return updated

    def delete_client(self, actor: ActorContext, client_id: int) -> None:
        require(can_delete_client, actor, "delete clients")
        client = self._load(actor, client_id)
        # Offers and policies keep an audit trail, so their client must stay.
        if any(o.client_id == client_id for o in self.db.list_offers()) or any(
            p.client_id == client_id for p in self.db.list_policies()
        ):
            raise InvalidStateError(f"Client {client.full_name} has offers or policies and cannot be deleted")
        if not self.db.delete_client(client_id):
            raise NotFoundError(f"Client {client_id} not found")
        logger.info("Client %s deleted by user %s", client_id, actor.user_id)
