from fastapi import APIRouter, Depends

from src.api.dependencies import BrokerageServices, get_actor, get_services
from src.api.serializers import to_jsonable
from src.integrations.contracts.interfaces import ActorContext

api = APIRouter()
commissions_api = api


@api.get("/commissions", tags=["Commissions"])
def list_commissions(
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return [to_jsonable(c) for c in services.commissions.list_visible(actor)]


@api.get("/commissions/{commission_id}", tags=["Commissions"])
def get_commission(
    commission_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.commissions.get(actor, commission_id))


@api.post("/commissions/{commission_id}/pay", tags=["Commissions"])
def pay_commission(
    commission_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.commissions.mark_paid(actor, commission_id))
