"""Credit purchase endpoints."""

import logging

from fastapi import APIRouter, Depends, Request

from bulkverify.api.deps import get_controller, require_actor
from bulkverify.api.models import PurchaseCreditsRequest, PurchaseResponse
from bulkverify.audit import get_audit_logger
from bulkverify.jobs.controller import JobLifecycleController

log = logging.getLogger(__name__)
router = APIRouter(prefix="/credits", tags=["credits"])


@router.post("/purchases", response_model=PurchaseResponse)
async def purchase_credits(
    body: PurchaseCreditsRequest,
    http_request: Request,
    actor: str = require_actor,
    controller: JobLifecycleController = Depends(get_controller),
) -> PurchaseResponse:
    """Record purchased credits for the actor."""
    record = controller.purchase_credits(actor, body.amount, reference=body.reference)
    get_audit_logger().log_access(
        action="credits.purchase",
        principal_id=actor,
        resource=f"record:{record.id}",
        details={"amount": body.amount},
        request=http_request,
    )
    return PurchaseResponse(record_id=record.id, credits_purchased=record.credits_purchased)
