"""Verification list store.

Persistence for verification lists: creation, lookups that honour the
soft-delete marker, conditional state-machine writes, and the dashboard
query contract (filters, sort, pagination and a global status histogram).
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from bulkverify.config import DEFAULT_PAGE_SIZE
from bulkverify.db.models import ShareGrant, ShareGrantResource, VerificationList
from bulkverify.exceptions import ConflictError
from bulkverify.lists.states import STATUS_LABELS, ListStatus, can_transition

log = logging.getLogger(__name__)

SORTABLE_COLUMNS = {
    "name": VerificationList.name,
    "status": VerificationList.status,
    "created_at": VerificationList.created_at,
    "verified_count": VerificationList.verified_count,
    "total_emails": VerificationList.total_emails,
    "credit_consumed": VerificationList.credit_consumed,
}
DEFAULT_SORT = "created_at"


@dataclass
class ListQuery:
    """Filters for the list dashboard query."""

    status: Optional[str] = None
    search: Optional[str] = None
    min_verified: Optional[int] = None
    max_verified: Optional[int] = None
    min_total: Optional[int] = None
    max_total: Optional[int] = None
    sort_by: str = DEFAULT_SORT
    sort_order: str = "asc"
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE


@dataclass
class ListPage:
    """One page of lists plus pagination metadata and the status histogram."""

    items: list[VerificationList]
    total_count: int
    page: int
    limit: int
    sort_by: str
    sort_order: str
    status_summary: list[dict[str, Any]] = field(default_factory=list)

    @property
    def pages(self) -> int:
        return math.ceil(self.total_count / self.limit) if self.limit else 0


class VerificationListStore:
    """Store for verification list persistence.

    State-machine writes go through ``transition`` and ``soft_delete``,
    which update only when the row still carries the expected status and
    version.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        owner_id: str,
        name: str,
        status: ListStatus = ListStatus.UPLOADING,
        total_emails: int = 0,
        external_job_id: Optional[str] = None,
    ) -> VerificationList:
        """Create and commit a new verification list."""
        verification_list = VerificationList(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            name=name,
            status=ListStatus(status).value,
            external_job_id=external_job_id,
            total_emails=total_emails,
            verified_count=0,
            credit_consumed=0,
            version=1,
        )
        self.db.add(verification_list)
        self.db.commit()
        self.db.refresh(verification_list)
        log.info(f"Created verification list {verification_list.id[:8]}... for {owner_id}")
        return verification_list

    def get(self, list_id: str) -> Optional[VerificationList]:
        """Get a list by ID, including soft-deleted ones."""
        return self.db.query(VerificationList).filter(VerificationList.id == list_id).first()

    def get_active(self, list_id: str) -> Optional[VerificationList]:
        """Get a list by ID unless it has been soft-deleted."""
        return (
            self.db.query(VerificationList)
            .filter(
                VerificationList.id == list_id,
                VerificationList.deleted_at.is_(None),
            )
            .first()
        )

    def find_by_job_id(
        self, job_id: str, owner_id: Optional[str] = None
    ) -> Optional[VerificationList]:
        """Find the non-deleted list linked to a provider job."""
        query = self.db.query(VerificationList).filter(
            VerificationList.external_job_id == job_id,
            VerificationList.deleted_at.is_(None),
        )
        if owner_id:
            query = query.filter(VerificationList.owner_id == owner_id)
        return query.first()

    def transition(
        self,
        verification_list: VerificationList,
        expected_status: ListStatus,
        commit: bool = True,
        **changes: Any,
    ) -> VerificationList:
        """Apply changes only if the row still matches its observed state.

        Args:
            verification_list: The list as loaded by the caller
            expected_status: Status the row must still have
            commit: Commit the transaction after the update
            **changes: Column values to set (status given as ListStatus or str)

        Returns:
            The refreshed list

        Raises:
            ConflictError: If the row changed since it was loaded, or the
                status change is not a lifecycle transition
        """
        if "status" in changes:
            target = ListStatus(changes["status"])
            if not can_transition(expected_status, target):
                raise ConflictError(
                    f"Cannot move verification list from {ListStatus(expected_status).value} "
                    f"to {target.value}"
                )
            changes["status"] = target.value
        values = {
            **changes,
            "version": verification_list.version + 1,
            "updated_at": datetime.utcnow(),
        }
        updated = (
            self.db.query(VerificationList)
            .filter(
                VerificationList.id == verification_list.id,
                VerificationList.status == ListStatus(expected_status).value,
                VerificationList.version == verification_list.version,
                VerificationList.deleted_at.is_(None),
            )
            .update(values, synchronize_session=False)
        )
        if updated != 1:
            self.db.rollback()
            raise ConflictError(
                f"Verification list {verification_list.id} changed concurrently "
                f"(expected status {ListStatus(expected_status).value})"
            )
        if commit:
            self.db.commit()
        self.db.refresh(verification_list)
        return verification_list

    def soft_delete(
        self, verification_list: VerificationList, commit: bool = True
    ) -> VerificationList:
        """Mark a list deleted if it has not changed since it was loaded."""
        updated = (
            self.db.query(VerificationList)
            .filter(
                VerificationList.id == verification_list.id,
                VerificationList.version == verification_list.version,
                VerificationList.deleted_at.is_(None),
            )
            .update(
                {
                    "deleted_at": datetime.utcnow(),
                    "version": verification_list.version + 1,
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            self.db.rollback()
            raise ConflictError(
                f"Verification list {verification_list.id} changed concurrently"
            )
        if commit:
            self.db.commit()
        self.db.refresh(verification_list)
        log.info(f"Soft-deleted verification list {verification_list.id[:8]}...")
        return verification_list

    def remove(self, list_id: str) -> bool:
        """Hard-delete a list that never left the uploading state."""
        verification_list = self.get(list_id)
        if not verification_list:
            return False
        self.db.query(ShareGrantResource).filter(
            ShareGrantResource.list_id == list_id
        ).delete(synchronize_session=False)
        self.db.delete(verification_list)
        self.db.commit()
        return True

    def count_owned(self, owner_id: str) -> int:
        """Count non-deleted lists owned by an identity."""
        return (
            self.db.query(func.count(VerificationList.id))
            .filter(
                VerificationList.owner_id == owner_id,
                VerificationList.deleted_at.is_(None),
            )
            .scalar()
            or 0
        )

    def pending_lists(self, owner_id: str) -> list[VerificationList]:
        """Owned, non-deleted lists that are not verified yet."""
        return (
            self.db.query(VerificationList)
            .filter(
                VerificationList.owner_id == owner_id,
                VerificationList.deleted_at.is_(None),
                VerificationList.status != ListStatus.VERIFIED.value,
            )
            .order_by(VerificationList.created_at.desc())
            .all()
        )

    def _scope(self, actor: str):
        """Non-deleted lists the actor owns or has been granted."""
        shared_ids = (
            select(ShareGrantResource.list_id)
            .join(ShareGrant, ShareGrant.id == ShareGrantResource.grant_id)
            .where(ShareGrant.member == actor)
        )
        return self.db.query(VerificationList).filter(
            VerificationList.deleted_at.is_(None),
            or_(
                VerificationList.owner_id == actor,
                VerificationList.id.in_(shared_ids),
            ),
        )

    def query(self, actor: str, params: Optional[ListQuery] = None) -> ListPage:
        """Filtered, sorted, paginated lists visible to the actor.

        The status summary is computed over the unfiltered scope so the
        dashboard tabs keep their counts while filters change.
        """
        params = params or ListQuery()
        query = self._scope(actor)

        if params.status and params.status.lower() != "all":
            query = query.filter(VerificationList.status == params.status.lower())
        if params.search:
            query = query.filter(VerificationList.name.ilike(f"%{params.search}%"))
        if params.min_verified is not None:
            query = query.filter(VerificationList.verified_count >= params.min_verified)
        if params.max_verified is not None:
            query = query.filter(VerificationList.verified_count <= params.max_verified)
        if params.min_total is not None:
            query = query.filter(VerificationList.total_emails >= params.min_total)
        if params.max_total is not None:
            query = query.filter(VerificationList.total_emails <= params.max_total)

        sort_key = params.sort_by if params.sort_by in SORTABLE_COLUMNS else DEFAULT_SORT
        sort_order = "desc" if str(params.sort_order).lower() == "desc" else "asc"
        column = SORTABLE_COLUMNS[sort_key]
        ordering = column.desc() if sort_order == "desc" else column.asc()

        page = max(1, params.page or 1)
        limit = max(1, params.limit or DEFAULT_PAGE_SIZE)

        total_count = query.count()
        items = (
            query.order_by(ordering, VerificationList.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        return ListPage(
            items=items,
            total_count=total_count,
            page=page,
            limit=limit,
            sort_by=sort_key,
            sort_order=sort_order,
            status_summary=self.status_summary(actor),
        )

    def status_summary(self, actor: str) -> list[dict[str, Any]]:
        """Histogram of list statuses over everything the actor can see."""
        scope_ids = self._scope(actor).with_entities(VerificationList.id).subquery()
        rows = (
            self.db.query(VerificationList.status, func.count(VerificationList.id))
            .filter(VerificationList.id.in_(select(scope_ids.c.id)))
            .group_by(VerificationList.status)
            .all()
        )
        counts = {status: 0 for status in STATUS_LABELS}
        for status, count in rows:
            try:
                counts[ListStatus(status)] = count
            except ValueError:
                log.warning(f"Unknown list status in summary: {status}")

        summary = [{"value": "all", "label": "All", "count": sum(counts.values())}]
        summary.extend(
            {"value": status.value, "label": label, "count": counts[status]}
            for status, label in STATUS_LABELS.items()
        )
        return summary
