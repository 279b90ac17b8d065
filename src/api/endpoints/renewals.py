from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.dependencies import BrokerageServices, get_actor, get_services
from src.api.serializers import to_jsonable
from src.integrations.contracts.interfaces import ActorContext

api = APIRouter()
renewals_api = api


class RenewalCreateRequest(BaseModel):
    policy_id: int
    new_premium: Decimal
    renewal_date: Optional[date] = Field(default=None, description="Defaults to the day after the policy ends")


class RenewalCompleteRequest(BaseModel):
    new_policy_id: Optional[int] = None


@api.get("/renewals", tags=["Renewals"])
def list_renewals(
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return [to_jsonable(r) for r in services.renewals.list_visible(actor)]


@api.get("/renewals/{renewal_id}", tags=["Renewals"])
def get_renewal(
    renewal_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.renewals.get(actor, renewal_id))


@api.post("/renewals", status_code=201, tags=["Renewals"])
def create_renewal(
    request: RenewalCreateRequest,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    renewal = services.renewals.create(actor, request.policy_id, request.new_premium, request.renewal_date)
    return to_jsonable(renewal)


@api.post("/renewals/{renewal_id}/complete", tags=["Renewals"])
def complete_renewal(
    renewal_id: int,
    request: Optional[RenewalCompleteRequest] = None,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    new_policy_id = request.new_policy_id if request is not None else None
    return to_jsonable(services.renewals.complete(actor, renewal_id, new_policy_id))


@api.post("/renewals/{renewal_id}/decline", tags=["Renewals"])
def decline_renewal(
    renewal_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.renewals.decline(actor, renewal_id))


@api.delete("/renewals/{renewal_id}", status_code=204, tags=["Renewals"])
def delete_renewal(
    renewal_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    services.renewals.delete(actor, renewal_id)
