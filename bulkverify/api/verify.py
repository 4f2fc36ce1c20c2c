"""Verification endpoints: single lookups and the bulk job lifecycle."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import Response

from bulkverify.api.deps import get_controller, require_actor
from bulkverify.api.lists import list_to_response
from bulkverify.api.models import (
    CreditBalanceResponse,
    DeleteResponse,
    DownloadRequest,
    JobActionResponse,
    JobReferenceRequest,
    JobStatusResponse,
    SingleVerifyRequest,
    SingleVerifyResponse,
    UploadResponse,
)
from bulkverify.audit import get_audit_logger
from bulkverify.config import UPLOAD_ALLOWED_CONTENT_TYPES
from bulkverify.exceptions import InvalidArgumentError, VerifyError
from bulkverify.jobs.controller import JobLifecycleController

log = logging.getLogger(__name__)
router = APIRouter(prefix="/verify", tags=["verify"])


def _list_resource(list_id: Optional[str], job_id: Optional[str]) -> str:
    if list_id:
        return f"list:{list_id}"
    return f"job:{job_id}"


@router.post("/single", response_model=SingleVerifyResponse)
async def verify_single(
    body: SingleVerifyRequest,
    actor: str = require_actor,
    controller: JobLifecycleController = Depends(get_controller),
) -> SingleVerifyResponse:
    """Verify one address; costs one credit."""
    outcome = await controller.single_lookup(actor, body.email)
    return SingleVerifyResponse(
        email=outcome.lookup.email,
        result=outcome.lookup.result,
        record_id=outcome.record.id,
        provider=outcome.lookup.raw,
    )


@router.post("/bulk/upload", response_model=UploadResponse)
async def upload_bulk(
    http_request: Request,
    file: UploadFile = File(..., description="CSV with a header row"),
    name: Optional[str] = Form(None, description="List name, defaults to the filename"),
    actor: str = require_actor,
    controller: JobLifecycleController = Depends(get_controller),
) -> UploadResponse:
    """Upload a CSV batch and submit it to the provider."""
    filename = file.filename or "upload.csv"
    content_type = (file.content_type or "").split(";")[0].strip().lower()
    if (
        content_type
        and content_type not in UPLOAD_ALLOWED_CONTENT_TYPES
        and not filename.lower().endswith(".csv")
    ):
        raise InvalidArgumentError(f"Unsupported upload type: {content_type}")

    content = await file.read()
    result = await controller.upload(actor, content, filename=filename, name=name)

    get_audit_logger().log_access(
        action="list.upload",
        principal_id=actor,
        resource=f"list:{result.verification_list.id}",
        details={
            "job_id": result.verification_list.external_job_id,
            "total_emails": result.verification_list.total_emails,
        },
        request=http_request,
    )
    return UploadResponse(
        message="File uploaded successfully",
        verification_list=list_to_response(result.verification_list),
        provider=result.provider_payload,
    )


@router.patch("/bulk/start", response_model=JobActionResponse)
async def start_bulk(
    body: JobReferenceRequest,
    http_request: Request,
    actor: str = require_actor,
    controller: JobLifecycleController = Depends(get_controller),
) -> JobActionResponse:
    """Start verification of an uploaded list."""
    audit = get_audit_logger()
    try:
        result = await controller.start(actor, list_id=body.list_id, job_id=body.job_id)
    except VerifyError as e:
        audit.log_access(
            action="list.start",
            principal_id=actor,
            resource=_list_resource(body.list_id, body.job_id),
            status="denied" if e.kind == "permission_denied" else "error",
            details={"error": e.kind},
            request=http_request,
        )
        raise

    audit.log_access(
        action="list.start",
        principal_id=actor,
        resource=f"list:{result.verification_list.id}",
        details={"owner": result.owner, "credits": result.record.credits_used},
        request=http_request,
    )
    return JobActionResponse(
        message="Bulk verification started",
        owner=result.owner,
        verification_list=list_to_response(result.verification_list),
        provider=result.provider_payload,
    )


@router.get("/bulk/status", response_model=JobStatusResponse)
async def bulk_status(
    http_request: Request,
    list_id: Optional[str] = Query(None, alias="listId"),
    job_id: Optional[str] = Query(None, alias="jobId"),
    actor: str = require_actor,
    controller: JobLifecycleController = Depends(get_controller),
) -> JobStatusResponse:
    """Poll the provider job and update the list."""
    result = await controller.poll_status(actor, list_id=list_id, job_id=job_id)
    get_audit_logger().log_access(
        action="list.poll",
        principal_id=actor,
        resource=f"list:{result.verification_list.id}",
        details={"status": result.verification_list.status, "owner": result.owner},
        request=http_request,
    )
    return JobStatusResponse(
        owner=result.owner,
        remote_status=result.job.status,
        verification_list=list_to_response(result.verification_list),
        provider=result.job.raw,
    )


@router.post("/bulk/download")
async def download_bulk(
    body: DownloadRequest,
    actor: str = require_actor,
    controller: JobLifecycleController = Depends(get_controller),
) -> Response:
    """Download result rows as a CSV attachment."""
    result = await controller.download(
        actor,
        list_id=body.list_id,
        job_id=body.job_id,
        category_filter=body.filter,
    )
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


@router.delete("/bulk", response_model=DeleteResponse)
async def delete_bulk(
    http_request: Request,
    list_id: Optional[str] = Query(None, alias="listId"),
    job_id: Optional[str] = Query(None, alias="jobId"),
    actor: str = require_actor,
    controller: JobLifecycleController = Depends(get_controller),
) -> DeleteResponse:
    """Delete a list locally and, best-effort, at the provider."""
    result = await controller.delete(actor, list_id=list_id, job_id=job_id)
    get_audit_logger().log_access(
        action="list.delete",
        principal_id=actor,
        resource=f"list:{result.verification_list.id}",
        details={
            "owner": result.owner,
            "remote_deleted": result.remote_deleted,
            "remote_error": result.remote_error,
        },
        request=http_request,
    )
    return DeleteResponse(
        message="Email list deleted",
        list_id=result.verification_list.id,
        remote_deleted=result.remote_deleted,
        remote_error=result.remote_error,
    )


@router.get("/credit-balance", response_model=CreditBalanceResponse)
async def credit_balance(
    actor: str = require_actor,
    controller: JobLifecycleController = Depends(get_controller),
) -> CreditBalanceResponse:
    """Remaining provider credits plus the actor's ledger totals."""
    summary = await controller.credit_summary(actor)
    return CreditBalanceResponse(
        credits_remaining=summary.credits_remaining,
        credits_consumed=summary.credits_consumed,
        credits_purchased=summary.credits_purchased,
        total_count_of_email_lists=summary.total_count_of_email_lists,
    )
