from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, Field

from src.api.dependencies import BrokerageServices, get_actor, get_services
from src.api.serializers import to_jsonable
from src.integrations.contracts.interfaces import ActorContext

api = APIRouter()
policies_api = api


class PolicyCreateRequest(BaseModel):
    offer_id: int
    payment_method: str
    proof_of_payment: Optional[str] = None


class CancelPolicyRequest(BaseModel):
    cancellation_reason: str = Field(default="", description="Mandatory, non-empty")


class RejectPaymentRequest(BaseModel):
    reason: Optional[str] = None


@api.get("/policies", tags=["Policies"])
def list_policies(
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return [to_jsonable(p) for p in services.policies.list_visible(actor)]


@api.get("/policies/{policy_id}", tags=["Policies"])
def get_policy(
    policy_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.policies.get(actor, policy_id))


@api.post("/policies", status_code=201, tags=["Policies"])
def create_policy(
    request: PolicyCreateRequest,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    """Checkout: issue a policy from a pending offer."""
    result = services.offers.convert_to_policy(actor, request.offer_id, request.payment_method, request.proof_of_payment)
    return to_jsonable(result.policy)


@api.post("/policies/{policy_id}/upload-proof", tags=["Policies"])
async def upload_proof(
    policy_id: int,
    file: UploadFile = File(...),
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    content = await file.read()
    policy = services.policies.upload_proof(actor, policy_id, file.filename or "proof", content)
    return to_jsonable(policy)


@api.get("/policies/{policy_id}/download-proof", tags=["Policies"])
def download_proof(
    policy_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    reference, content = services.policies.proof_content(actor, policy_id)
    return Response(
        content=content,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{reference}"'},
    )


@api.post("/policies/{policy_id}/validate-payment", tags=["Policies"])
def validate_payment(
    policy_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.policies.validate(actor, policy_id))


@api.post("/policies/{policy_id}/reject-payment", tags=["Policies"])
def reject_payment(
    policy_id: int,
    request: Optional[RejectPaymentRequest] = None,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    reason = request.reason if request is not None else None
    return to_jsonable(services.policies.reject_payment(actor, policy_id, reason))


@api.post("/policies/{policy_id}/cancel", tags=["Policies"])
def cancel_policy(
    policy_id: int,
    request: CancelPolicyRequest,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.policies.cancel(actor, policy_id, request.cancellation_reason))


@api.post("/policies/{policy_id}/suspend", tags=["Policies"])
def suspend_policy(
    policy_id: int,
    actor: ActorContext = Depends(get_actor),
    services: BrokerageServices = Depends(get_services),
):
    return to_jsonable(services.policies.suspend(actor, policy_id))
