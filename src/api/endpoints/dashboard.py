from fastapi import APIRouter, Depends

from src.api.dependencies import BrokerageServices, get_actor, get_services
from src.api.serializers import to_jsonable
from src.integrations.contracts.interfaces import ActorContext
from src.lifecycle.reports import build_dashboard

api = APIRouter()
dashboard_api = api


@api.get("/dashboard/stats", tags=["Dashboard"])
def dashboard_stats(
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    stats = build_dashboard(
        clients=services.clients.list_clients(actor),
        policies=services.policies.list_visible(actor),
        commissions=services.commissions.list_visible(actor),
        offers=services.offers.list_visible(actor),
        renewals=services.renewals.list_visible(actor),
        today=services.clock().date(),
    )
    return to_jsonable(stats)
