from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from src.api.dependencies import BrokerageServices, get_actor, get_services
from src.api.serializers import to_jsonable
from src.integrations.contracts.interfaces import ActorContext

api = APIRouter()
clients_api = api


# Payloads are validated field by field in ClientsController so that every
# problem is reported at once under its field name.
@api.get("/clients", tags=["Clients"])
def list_clients(
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return [to_jsonable(c) for c in services.clients.list_clients(actor)]


@api.post("/clients", status_code=201, tags=["Clients"])
def create_client(
    payload: Dict[str, Any] = Body(...),
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.clients.create_client(actor, payload))


@api.get("/clients/{client_id}", tags=["Clients"])
def get_client(
    client_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.clients.get_client(actor, client_id))


@api.put("/clients/{client_id}", tags=["Clients"])
def update_client(
    client_id: int,
    payload: Dict[str, Any] = Body(...),
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.clients.update_client(actor, client_id, payload))


@api.delete("/clients/{client_id}", status_code=204, tags=["Clients"])
def delete_client(
    client_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    services.clients.delete_client(actor, client_id)
