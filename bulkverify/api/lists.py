"""Email list dashboard and sharing endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from bulkverify.api.deps import require_actor
from bulkverify.api.models import (
    AccessResponse,
    ChangeAccessTypeRequest,
    EmailListsResponse,
    MemberSummaryResponse,
    Pagination,
    PendingListItem,
    RemoveMemberRequest,
    RevokeResponse,
    ShareGrantResponse,
    ShareRequest,
    ShareStatsResponse,
    StatusSummaryItem,
    VerificationListResponse,
)
from bulkverify.audit import get_audit_logger
from bulkverify.auth.access import resolve_access
from bulkverify.config import DEFAULT_PAGE_SIZE
from bulkverify.db.models import ShareGrant, VerificationList
from bulkverify.db.session import get_db
from bulkverify.exceptions import InvalidArgumentError
from bulkverify.lists.store import ListQuery, VerificationListStore
from bulkverify.sharing.store import ShareRegistry, parse_access_type

log = logging.getLogger(__name__)
router = APIRouter(prefix="/email-lists", tags=["email-lists"])


def list_to_response(verification_list: VerificationList) -> VerificationListResponse:
    """Convert a VerificationList model to its response."""
    return VerificationListResponse(
        id=verification_list.id,
        owner_id=verification_list.owner_id,
        name=verification_list.name,
        status=verification_list.status,
        job_id=verification_list.external_job_id,
        total_emails=verification_list.total_emails or 0,
        verified_count=verification_list.verified_count or 0,
        credit_consumed=verification_list.credit_consumed or 0,
        **verification_list.category_counts,
        created_at=verification_list.created_at.isoformat() if verification_list.created_at else "",
        updated_at=verification_list.updated_at.isoformat() if verification_list.updated_at else "",
    )


def _grant_to_response(grant: ShareGrant) -> ShareGrantResponse:
    return ShareGrantResponse(
        id=grant.id,
        shared_by=grant.shared_by,
        member=grant.member,
        access_type=grant.access_type,
        shared_on=grant.shared_on.isoformat() if grant.shared_on else "",
        list_ids=sorted(grant.list_ids),
    )


@router.get("", response_model=EmailListsResponse)
async def list_email_lists(
    status: Optional[str] = Query(None, description="Status filter or 'all'"),
    search: Optional[str] = Query(None, description="Case-insensitive name search"),
    min_verified: Optional[int] = Query(None, alias="minVerified"),
    max_verified: Optional[int] = Query(None, alias="maxVerified"),
    min_total: Optional[int] = Query(None, alias="minTotal"),
    max_total: Optional[int] = Query(None, alias="maxTotal"),
    sort_by: str = Query("created_at", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    actor: str = require_actor,
    db: Session = Depends(get_db),
) -> EmailListsResponse:
    """Lists owned by or shared with the actor, with a status histogram."""
    result = VerificationListStore(db).query(
        actor,
        ListQuery(
            status=status,
            search=search,
            min_verified=min_verified,
            max_verified=max_verified,
            min_total=min_total,
            max_total=max_total,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            limit=limit,
        ),
    )
    return EmailListsResponse(
        items=[list_to_response(vl) for vl in result.items],
        pagination=Pagination(
            page=result.page,
            limit=result.limit,
            total_count=result.total_count,
            pages=result.pages,
            sort_by=result.sort_by,
            sort_order=result.sort_order,
        ),
        status_summary=[StatusSummaryItem(**row) for row in result.status_summary],
    )


@router.get("/id/name", response_model=list[PendingListItem])
async def pending_email_lists(
    actor: str = require_actor,
    db: Session = Depends(get_db),
) -> list[PendingListItem]:
    """Owned lists that are not verified yet."""
    return [
        PendingListItem(id=vl.id, name=vl.name, status=vl.status)
        for vl in VerificationListStore(db).pending_lists(actor)
    ]


@router.get("/stats/members", response_model=ShareStatsResponse)
async def share_stats(
    actor: str = require_actor,
    db: Session = Depends(get_db),
) -> ShareStatsResponse:
    """Sharing counters and the members the actor has added."""
    stats = ShareRegistry(db).stats(actor)
    return ShareStatsResponse(
        lists_shared_by_you=stats.lists_shared_by_you,
        lists_shared_with_you=stats.lists_shared_with_you,
        members_added_by_you=stats.members_added_by_you,
        members=[
            MemberSummaryResponse(
                grant_id=m.grant_id,
                member=m.member,
                access_type=m.access_type,
                shared_on=m.shared_on.isoformat() if m.shared_on else "",
                total_lists=m.total_lists,
            )
            for m in stats.members
        ],
    )


@router.get("/{list_id}/access", response_model=AccessResponse)
async def list_access(
    list_id: str,
    http_request: Request,
    actor: str = require_actor,
    db: Session = Depends(get_db),
) -> AccessResponse:
    """Effective owner and write capability of the actor on a list."""
    access = resolve_access(db, list_id, actor, require_write=False)
    get_audit_logger().log_access(
        action="list.access",
        principal_id=actor,
        resource=f"list:{list_id}",
        details={"owner": access.owner, "can_write": access.can_write},
        request=http_request,
    )
    return AccessResponse(list_id=list_id, owner=access.owner, can_write=access.can_write)


@router.post("/share", response_model=ShareGrantResponse)
async def share_lists(
    body: ShareRequest,
    http_request: Request,
    actor: str = require_actor,
    db: Session = Depends(get_db),
) -> ShareGrantResponse:
    """Share owned lists with a member, merging into any existing grant."""
    grant = ShareRegistry(db).share(
        owner=actor,
        member=body.member_id,
        resource_ids=body.email_list_ids,
        access_type=parse_access_type(body.access_type),
    )
    get_audit_logger().log(
        action="share.grant",
        principal=actor,
        resource_type="grant",
        resource_id=grant.id,
        details={
            "member": grant.member,
            "access_type": grant.access_type,
            "list_ids": sorted(body.email_list_ids),
        },
        request_id=http_request.headers.get("X-Request-ID"),
    )
    return _grant_to_response(grant)


async def _remove_member(
    body: RemoveMemberRequest,
    http_request: Request,
    actor: str,
    db: Session,
) -> RevokeResponse:
    revoked = ShareRegistry(db).revoke(actor, body.member_id)
    get_audit_logger().log_access(
        action="share.revoke",
        principal_id=actor,
        resource=f"member:{body.member_id}",
        details={"revoked": revoked},
        request=http_request,
    )
    return RevokeResponse(member=body.member_id, revoked=revoked)


@router.post("/remove-member", response_model=RevokeResponse)
async def remove_member(
    body: RemoveMemberRequest,
    http_request: Request,
    actor: str = require_actor,
    db: Session = Depends(get_db),
) -> RevokeResponse:
    """Remove a member and every list shared with them."""
    return await _remove_member(body, http_request, actor, db)


@router.delete("/remove-member", response_model=RevokeResponse)
async def delete_member(
    body: RemoveMemberRequest,
    http_request: Request,
    actor: str = require_actor,
    db: Session = Depends(get_db),
) -> RevokeResponse:
    """DELETE form of remove-member."""
    return await _remove_member(body, http_request, actor, db)


@router.post("/change-access-type", response_model=ShareGrantResponse)
async def change_access_type(
    body: ChangeAccessTypeRequest,
    http_request: Request,
    actor: str = require_actor,
    db: Session = Depends(get_db),
) -> ShareGrantResponse:
    """Switch a member between read and write access."""
    access_type = parse_access_type(body.access_type)
    if access_type is None:
        raise InvalidArgumentError("Access type is required")
    grant = ShareRegistry(db).change_access_type(actor, body.member_id, access_type)
    get_audit_logger().log_access(
        action="share.change_access",
        principal_id=actor,
        resource=f"grant:{grant.id}",
        details={"member": grant.member, "access_type": grant.access_type},
        request=http_request,
    )
    return _grant_to_response(grant)
