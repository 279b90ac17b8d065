from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query

from src.api.dependencies import BrokerageServices, get_actor, get_services
from src.api.serializers import to_jsonable
from src.integrations.contracts.interfaces import ActorContext

api = APIRouter()
catalog_api = api


@api.get("/products", tags=["Catalog"])
def list_products(
    active_only: bool = Query(default=False, alias="activeOnly"),
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return [to_jsonable(p) for p in services.catalog.list_products(actor, active_only)]


@api.get("/products/{product_id}", tags=["Catalog"])
def get_product(
    product_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.catalog.get_product(actor, product_id))


@api.post("/products", status_code=201, tags=["Catalog"])
def create_product(
    payload: Dict[str, Any] = Body(...),
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.catalog.create_product(actor, payload))


@api.get("/brokers", tags=["Catalog"])
def list_brokers(
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return [to_jsonable(b) for b in services.catalog.list_brokers(actor)]


@api.post("/brokers", status_code=201, tags=["Catalog"])
def create_broker(
    payload: Dict[str, Any] = Body(...),
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.catalog.create_broker(actor, payload))


@api.get("/insurers", tags=["Catalog"])
def list_insurers(
    active_only: bool = Query(default=False, alias="activeOnly"),
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return [to_jsonable(i) for i in services.catalog.list_insurers(actor, active_only)]


@api.get("/insurers/{insurer_id}", tags=["Catalog"])
def get_insurer(
    insurer_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.catalog.get_insurer(actor, insurer_id))


@api.post("/insurers", status_code=201, tags=["Catalog"])
def create_insurer(
    payload: Dict[str, Any] = Body(...),
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.catalog.create_insurer(actor, payload))


@api.put("/insurers/{insurer_id}", tags=["Catalog"])
def update_insurer(
    insurer_id: int,
    payload: Dict[str, Any] = Body(...),
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.catalog.update_insurer(actor, insurer_id, payload))


@api.delete("/insurers/{insurer_id}", status_code=204, tags=["Catalog"])
def delete_insurer(
    insurer_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    services.catalog.delete_insurer(actor, insurer_id)
