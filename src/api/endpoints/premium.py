from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.dependencies import BrokerageServices, get_actor, get_services
from src.integrations.contracts.interfaces import ActorContext
from src.rating.engine import calculate_premium

api = APIRouter()
premium_api = api


class PremiumCalculationRequest(BaseModel):
    product_id: int
    sum_insured: Decimal
    start_date: date
    end_date: date
    custom_field_values: Dict[str, Any] = Field(default_factory=dict)
    client_id: Optional[int] = Field(default=None, description="Existing client; their CNP drives the age factor")
    client_cnp: Optional[str] = Field(default=None, description="CNP for a client not registered yet")


@api.post("/premium/calculate", tags=["Premium"])
def calculate(
    request: PremiumCalculationRequest,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    product = services.catalog.get_product(actor, request.product_id)
    cnp = request.client_cnp
    if request.client_id is not None:
        cnp = services.clients.get_client(actor, request.client_id).cnp

    quote = calculate_premium(
        product,
        request.sum_insured,
        request.start_date,
        request.end_date,
        request.custom_field_values,
        cnp,
        today=services.clock().date(),
    )
    return {"product_id": product.id, "premium": float(quote.premium), "breakdown": quote.breakdown.to_dict()}
