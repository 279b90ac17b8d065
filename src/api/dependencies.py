import hmac
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from fastapi import Header, HTTPException, Query, Request, status
from dotenv import load_dotenv

from src.controllers.catalog_controller import CatalogController
from src.controllers.clients_controller import ClientsController
from src.integrations.contracts.interfaces import ActorContext, Role, utcnow
from src.integrations.contracts.storage import BrokerageStore, FileStore
from src.lifecycle.activity import ActivityLogger
from src.lifecycle.commissions import CommissionLedger
from src.lifecycle.offers import OfferLifecycle
from src.lifecycle.policies import PolicyPaymentLifecycle
from src.lifecycle.renewals import RenewalLedger
from src.utils.config_loader import BrokerageConfig

load_dotenv()

logger = logging.getLogger(__name__)

_ALLOWLIST_PATHS = {
    "/",
    "/health",
    "/docs",
    "/docs/oauth2-redirect",
    "/openapi.json",
    "/redoc",
}


@dataclass
class BrokerageServices:
    """Everything a request handler needs, built once per application."""
    db: BrokerageStore
    files: FileStore
    config: BrokerageConfig
    clock: Callable[[], datetime]
    activity: ActivityLogger
    offers: OfferLifecycle
    policies: PolicyPaymentLifecycle
    commissions: CommissionLedger
    renewals: RenewalLedger
    clients: ClientsController
    catalog: CatalogController


def build_services(
    db: BrokerageStore,
    files: FileStore,
    config: BrokerageConfig,
    clock: Callable[[], datetime] = utcnow,
) -> BrokerageServices:
    activity = ActivityLogger(db)
    policies = PolicyPaymentLifecycle(db, activity, files, config, clock)
    return BrokerageServices(
        db=db,
        files=files,
        config=config,
        clock=clock,
        activity=activity,
        offers=OfferLifecycle(db, activity, files, config, clock),
        policies=policies,
        commissions=CommissionLedger(db, activity, config, clock),
        renewals=RenewalLedger(db, activity, policies, config, clock),
        clients=ClientsController(db, activity, config, clock),
        catalog=CatalogController(db),
    )


def get_services(request: Request) -> BrokerageServices:
    return request.app.state.services


def get_api_keys() -> List[str]:
    keys = os.getenv("API_KEYS", "")
    return [k.strip() for k in keys.split(",") if k.strip()]


async def api_key_protection(
    request: Request = None,  # keep Request type so FastAPI injects it; default None for direct calls/tests
    x_api_key: str = Header(default=None, alias="X-API-KEY"),
):
    debug = os.getenv("API_KEY_DEBUG", "").lower() in ("1", "true", "yes")
    path = request.url.path if request is not None else "<no-request>"

    if request is not None and request.url.path in _ALLOWLIST_PATHS:
        return

    valid_keys = get_api_keys()
    if not valid_keys:
        # No keys configured: the gate is open (local development).
        return

    candidate = (x_api_key or "").strip()
    ok = bool(candidate) and any(hmac.compare_digest(candidate, k) for k in valid_keys)
    if debug:
        logger.info("API key check: path=%s ok=%s configured_keys=%d", path, ok, len(valid_keys))

    if not ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API Key",
        )


def get_actor(
    x_user_id: Optional[int] = Header(default=None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
    x_broker_id: Optional[int] = Header(default=None, alias="X-Broker-Id"),
    show_all: bool = Query(default=False, alias="showAll"),
) -> ActorContext:
    """Build the caller's ActorContext from the session headers. No role means unauthenticated."""
    role: Optional[Role] = None
    if x_user_role:
        try:
            role = Role(x_user_role.strip().upper())
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown role: {x_user_role}",
            )
    return ActorContext(user_id=x_user_id, role=role, broker_id=x_broker_id, show_all_data=show_all)
