from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.dependencies import BrokerageServices, get_actor, get_services
from src.api.serializers import to_jsonable
from src.integrations.contracts.interfaces import ActorContext

api = APIRouter()
offers_api = api


class OfferCreateRequest(BaseModel):
    client_id: int
    product_id: int
    broker_id: Optional[int] = Field(default=None, description="Defaults to the caller's broker")
    start_date: date
    end_date: date
    sum_insured: Decimal
    premium: Decimal = Field(..., description="Premium from /premium/calculate; stored as given")
    premium_breakdown: Dict[str, Any] = Field(default_factory=dict)
    custom_field_values: Dict[str, Any] = Field(default_factory=dict)
    gdpr_consent: bool = False


class OfferConvertRequest(BaseModel):
    payment_method: str
    proof_of_payment: Optional[str] = Field(default=None, description="Reference of an already stored proof file")


@api.get("/offers", tags=["Offers"])
def list_offers(
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return [to_jsonable(o) for o in services.offers.list_visible(actor)]


@api.get("/offers/{offer_id}", tags=["Offers"])
def get_offer(
    offer_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.offers.get(actor, offer_id))


@api.post("/offers", status_code=201, tags=["Offers"])
def create_offer(
    request: OfferCreateRequest,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    broker_id = request.broker_id if request.broker_id is not None else actor.broker_id
    offer = services.offers.create(
        actor,
        client_id=request.client_id,
        product_id=request.product_id,
        broker_id=broker_id,
        start_date=request.start_date,
        end_date=request.end_date,
        sum_insured=request.sum_insured,
        premium=request.premium,
        gdpr_consent=request.gdpr_consent,
        custom_field_values=request.custom_field_values,
        premium_breakdown=request.premium_breakdown,
    )
    return to_jsonable(offer)


@api.post("/offers/{offer_id}/reject", tags=["Offers"])
@api.delete("/offers/{offer_id}", tags=["Offers"])
def reject_offer(
    offer_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    """Offers are never removed; deleting one rejects it."""
    return to_jsonable(services.offers.reject(actor, offer_id))


@api.post("/offers/{offer_id}/convert", status_code=201, tags=["Offers"])
def convert_offer(
    offer_id: int,
    request: OfferConvertRequest,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    result = services.offers.convert_to_policy(actor, offer_id, request.payment_method, request.proof_of_payment)
    return {
        "offer": to_jsonable(result.offer),
        "policy": to_jsonable(result.policy),
        "commission": to_jsonable(result.commission),
    }
