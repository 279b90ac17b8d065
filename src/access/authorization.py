"""Role permissions.

Every predicate is a total function of the actor's role (and, for viewing all
data, the show-all flag). An actor without a role is unauthenticated and is
permitted nothing. Lifecycle services call ``require`` at the point of each
transition; the API layer is not trusted to have checked.
"""

from typing import Callable, Optional

from src.errors import PermissionDeniedError
from src.integrations.contracts.interfaces import ActorContext, Role

Predicate = Callable[[Optional[ActorContext]], bool]

_MANAGERS = frozenset({Role.ADMINISTRATOR, Role.BROKER_MANAGER})


def _role(actor: Optional[ActorContext]) -> Optional[Role]:
    return actor.role if actor is not None else None


def is_authenticated(actor: Optional[ActorContext]) -> bool:
    return _role(actor) is not None


def can_view_all_data(actor: Optional[ActorContext]) -> bool:
    role = _role(actor)
    if role == Role.ADMINISTRATOR:
        return True
    return role == Role.BROKER_MANAGER and actor.show_all_data


def _manager_or_admin(actor: Optional[ActorContext]) -> bool:
    return _role(actor) in _MANAGERS


def _admin_only(actor: Optional[ActorContext]) -> bool:
    return _role(actor) == Role.ADMINISTRATOR


can_delete_client: Predicate = _manager_or_admin
can_delete_offer: Predicate = _manager_or_admin
can_delete_renewal: Predicate = _manager_or_admin
can_cancel_policy: Predicate = _manager_or_admin
can_manage_brokers: Predicate = _manager_or_admin
can_validate_payment: Predicate = _manager_or_admin
can_pay_commission: Predicate = _manager_or_admin
can_manage_products: Predicate = _admin_only
can_manage_insurers: Predicate = _admin_only


def require(predicate: Predicate, actor: Optional[ActorContext], action: str) -> None:
    """Raise PermissionDeniedError unless ``predicate(actor)`` holds."""
    if not predicate(actor):
        role = _role(actor)
        who = role.value if role is not None else "unauthenticated user"
        raise PermissionDeniedError(f"Not allowed to {action} as {who}")
