"""Log endpoints: ledger-backed verification logs and the caller's recent activity."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bulkverify.api.deps import require_actor
from bulkverify.api.models import (
    ActivityLogItem,
    ActivityLogResponse,
    Pagination,
    VerificationLogItem,
    VerificationLogResponse,
)
from bulkverify.audit.logger import get_audit_logger
from bulkverify.config import DEFAULT_LOG_PAGE_SIZE
from bulkverify.db.session import get_db
from bulkverify.ledger.store import CreditLedger

router = APIRouter(prefix="/logs", tags=["logs"])


@router.get("/verification-logs", response_model=VerificationLogResponse)
async def verification_logs(
    source: Optional[str] = Query(None, description="single, bulk, credit_purchase or all"),
    search: Optional[str] = Query(None),
    sort_by: str = Query("created_at", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    page: int = Query(1),
    limit: int = Query(DEFAULT_LOG_PAGE_SIZE),
    actor: str = require_actor,
    db: Session = Depends(get_db),
) -> VerificationLogResponse:
    """Paginated ledger entries with signed credit amounts."""
    result = CreditLedger(db).query(
        actor,
        source=source,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return VerificationLogResponse(
        items=[
            VerificationLogItem(
                id=item["id"],
                source=item["source"],
                email=item["email"],
                result=item["result"],
                summary=item["summary"],
                credits=item["credits"],
                list_id=item["list_id"],
                created_at=item["created_at"].isoformat() if item["created_at"] else "",
                updated_at=item["updated_at"].isoformat() if item["updated_at"] else "",
            )
            for item in result.items
        ],
        pagination=Pagination(
            page=result.page,
            limit=result.limit,
            total_count=result.total_count,
            pages=result.pages,
            sort_by=result.sort_by,
            sort_order=result.sort_order,
        ),
    )


@router.get("/activity-logs", response_model=ActivityLogResponse)
async def activity_logs(
    action: Optional[str] = Query(None, description="Action prefix, e.g. list. or share."),
    status: Optional[str] = Query(None, description="success, denied or error"),
    limit: int = Query(100, ge=1),
    actor: str = require_actor,
) -> ActivityLogResponse:
    """Recent audited actions taken by the caller, newest first.

    Events come from the in-memory audit buffer, so the view only covers
    what this process has recorded since it started.
    """
    audit = get_audit_logger()
    events = audit.get_recent_events(
        limit=limit,
        action_filter=action,
        status_filter=status,
        principal_filter=actor,
    )
    stats = audit.get_buffer_stats()

    return ActivityLogResponse(
        count=len(events),
        events=[ActivityLogItem(**e) for e in events],
        buffer_size=stats["buffer_size"],
        max_buffer_size=stats["max_buffer_size"],
    )
