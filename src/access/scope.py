"""Data visibility by broker."""

from typing import Any, Iterable, List, Mapping, Optional, TypeVar

from src.access.authorization import can_view_all_data
from src.integrations.contracts.interfaces import ActorContext

T = TypeVar("T")

NULL_BROKER_NONE = "none"
NULL_BROKER_ALL = "all"


def owner_broker_id(item: Any) -> Optional[int]:
    """The owning broker of a record or mapping (``broker_id`` or ``brokerId``)."""
    if isinstance(item, Mapping):
        value = item.get("broker_id", item.get("brokerId"))
    else:
        value = getattr(item, "broker_id", None)
    return value


def in_scope(item: Any, actor: Optional[ActorContext], null_broker_visibility: str = NULL_BROKER_NONE) -> bool:
    if can_view_all_data(actor):
        return True
    if actor is None or actor.role is None:
        return False
    if actor.broker_id is None:
        return null_broker_visibility == NULL_BROKER_ALL
    return owner_broker_id(item) == actor.broker_id


def filter_by_scope(
    collection: Iterable[T],
    actor: Optional[ActorContext],
    null_broker_visibility: str = NULL_BROKER_NONE,
) -> List[T]:
    """
    Return the elements of ``collection`` the actor may see, in their original order.

    Actors who can view all data get everything. Everyone else sees only the
    records owned by their broker id. A non-privileged actor with no broker id
    sees nothing, unless ``null_broker_visibility`` is ``"all"``.
    """
    items = list(collection)
    if can_view_all_data(actor):
        return items
    return [item for item in items if in_scope(item, actor, null_broker_visibility)]
