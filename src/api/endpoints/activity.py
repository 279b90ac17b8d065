from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from src.api.dependencies import BrokerageServices, get_actor, get_services
from src.api.serializers import to_jsonable
from src.integrations.contracts.interfaces import ActorContext, EntityType

api = APIRouter()
activity_api = api


@api.get("/activity-logs", tags=["Activity"])
def list_activity_logs(
    entity_type: Optional[str] = Query(default=None, alias="entityType"),
    entity_id: Optional[int] = Query(default=None, alias="entityId"),
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    parsed_type = None
    if entity_type:
        try:
            parsed_type = EntityType(entity_type.strip().upper())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown entity type: {entity_type}")
    entries = services.activity.list_visible(
        actor,
        parsed_type,
        entity_id,
        services.config.scope.null_broker_visibility,
    )
    return [to_jsonable(e) for e in entries]
