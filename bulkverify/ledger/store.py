"""Credit ledger backed by append-only verification records.

Debits (single and bulk verifications) and credits (purchases) are
appended and never edited; balances are aggregated on read.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from bulkverify.config import DEFAULT_LOG_PAGE_SIZE
from bulkverify.db.models import VerificationRecord
from bulkverify.exceptions import InvalidArgumentError, NotFoundError

log = logging.getLogger(__name__)


class LedgerSource(str, Enum):
    """What produced a ledger entry."""

    SINGLE = "single"
    BULK = "bulk"
    CREDIT_PURCHASE = "credit_purchase"


SORTABLE_FIELDS = {"source", "summary", "credits", "created_at", "updated_at", "result"}


@dataclass
class CreditBalance:
    """Aggregated credit usage for one owner."""

    used: int
    purchased: int
    remaining: Optional[int] = None


@dataclass
class LedgerPage:
    """One page of verification log entries."""

    items: list[dict[str, Any]]
    total_count: int
    page: int
    limit: int
    sort_by: str
    sort_order: str

    @property
    def pages(self) -> int:
        return math.ceil(self.total_count / self.limit) if self.limit else 0


def _signed_credits(record: VerificationRecord) -> int:
    # Debits show as negative amounts, purchases as positive
    if record.credits_used:
        return -record.credits_used
    return record.credits_purchased or 0


def _display_summary(record: VerificationRecord) -> Optional[str]:
    if record.source == LedgerSource.SINGLE.value:
        data_email = record.data.get("email") if isinstance(record.data, dict) else None
        return data_email or record.email
    return record.summary or record.email


def _display_result(record: VerificationRecord) -> Optional[str]:
    if isinstance(record.data, dict) and record.data.get("result"):
        return record.data["result"]
    return record.result


class CreditLedger:
    """Append-only credit ledger.

    The only permitted mutation after creation is the soft-delete marker.
    """

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        owner: str,
        source: LedgerSource | str,
        credits_used: int = 0,
        credits_purchased: int = 0,
        email: Optional[str] = None,
        result: Optional[str] = None,
        summary: Optional[str] = None,
        list_id: Optional[str] = None,
        external_job_id: Optional[str] = None,
        data: Any = None,
        commit: bool = True,
    ) -> VerificationRecord:
        """Append a ledger entry for an owner.

        Raises:
            InvalidArgumentError: Unknown source or missing owner
        """
        if not owner:
            raise InvalidArgumentError("Ledger entries need an owner")
        try:
            source = LedgerSource(source)
        except ValueError:
            raise InvalidArgumentError(f"Unknown ledger source: {source}")

        entry = VerificationRecord(
            id=str(uuid.uuid4()),
            user_id=owner,
            source=source.value,
            credits_used=credits_used,
            credits_purchased=credits_purchased,
            email=email,
            result=result,
            summary=summary,
            list_id=list_id,
            external_job_id=external_job_id,
            data=data,
        )
        self.db.add(entry)
        if commit:
            self.db.commit()
            self.db.refresh(entry)
        else:
            self.db.flush()
        log.info(
            f"Ledger {source.value} for {owner}: used={credits_used} "
            f"purchased={credits_purchased}"
        )
        return entry

    def balance(self, owner: str, remote_remaining: Optional[int] = None) -> CreditBalance:
        """Aggregate used and purchased credits over non-deleted entries.

        Args:
            owner: Account owner
            remote_remaining: Remaining balance reported by the provider
        """
        used, purchased = (
            self.db.query(
                func.coalesce(func.sum(VerificationRecord.credits_used), 0),
                func.coalesce(func.sum(VerificationRecord.credits_purchased), 0),
            )
            .filter(
                VerificationRecord.user_id == owner,
                VerificationRecord.deleted_at.is_(None),
            )
            .one()
        )
        return CreditBalance(
            used=int(used),
            purchased=int(purchased),
            remaining=remote_remaining,
        )

    def soft_delete(self, record_id: str, owner: str) -> VerificationRecord:
        """Hide a ledger entry from balances and logs.

        Raises:
            NotFoundError: Entry missing, already deleted, or not the owner's
        """
        entry = (
            self.db.query(VerificationRecord)
            .filter(
                VerificationRecord.id == record_id,
                VerificationRecord.user_id == owner,
                VerificationRecord.deleted_at.is_(None),
            )
            .first()
        )
        if entry is None:
            raise NotFoundError(f"Verification record not found: {record_id}")
        entry.deleted_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def query(
        self,
        owner: str,
        source: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = DEFAULT_LOG_PAGE_SIZE,
    ) -> LedgerPage:
        """Verification log view over the owner's ledger.

        Each item carries a signed ``credits`` amount, a display summary
        (the address for single lookups) and the provider result.
        """
        query = self.db.query(VerificationRecord).filter(
            VerificationRecord.user_id == owner,
            VerificationRecord.deleted_at.is_(None),
        )
        if source and source.lower() != "all":
            query = query.filter(VerificationRecord.source == source.lower())
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    VerificationRecord.email.ilike(pattern),
                    VerificationRecord.summary.ilike(pattern),
                    VerificationRecord.result.ilike(pattern),
                )
            )

        sort_key = sort_by if sort_by in SORTABLE_FIELDS else "created_at"
        sort_order = "asc" if str(sort_order).lower() == "asc" else "desc"
        page = max(1, page or 1)
        limit = max(1, limit or DEFAULT_LOG_PAGE_SIZE)

        items = [
            {
                "id": r.id,
                "email": r.email,
                "source": r.source,
                "result": _display_result(r),
                "summary": _display_summary(r),
                "credits": _signed_credits(r),
                "list_id": r.list_id,
                "created_at": r.created_at,
                "updated_at": r.updated_at,
                "data": r.data,
            }
            for r in query.all()
        ]

        # credits/summary/result are computed, so sort in Python
        def sort_value(item: dict[str, Any]):
            value = item[sort_key]
            return (value is None, value if value is not None else 0)

        items.sort(key=lambda i: i["id"], reverse=True)
        items.sort(key=sort_value, reverse=(sort_order == "desc"))

        offset = (page - 1) * limit
        return LedgerPage(
            items=items[offset:offset + limit],
            total_count=len(items),
            page=page,
            limit=limit,
            sort_by=sort_key,
            sort_order=sort_order,
        )
