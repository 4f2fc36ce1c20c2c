"""Bulk verification job lifecycle.

Drives a verification list through upload -> start -> poll -> download ->
delete against the provider. Every operation on an existing list is
authorized through the access resolver first, and all persistence is
attributed to the resolved owner rather than the acting identity.

Remote calls happen before local writes. A failed remote call leaves local
state untouched, except delete, which always commits its tombstone.
"""

import logging
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any, Optional

from sqlalchemy.orm import Session

from bulkverify.auth.access import AccessResult, resolve_access
from bulkverify.db.models import VerificationList, VerificationRecord
from bulkverify.exceptions import (
    ConflictError,
    ExternalProviderError,
    InvalidArgumentError,
    NotFoundError,
)
from bulkverify.jobs.locks import ResourceLockRegistry
from bulkverify.jobs.upload import count_email_rows, validate_upload
from bulkverify.ledger.store import CreditLedger, LedgerSource
from bulkverify.lists.states import JOB_BACKED_STATES, ListStatus, map_provider_status
from bulkverify.lists.store import VerificationListStore
from bulkverify.provider.client import BouncifyClient, filter_categories
from bulkverify.provider.models import RESULT_CATEGORIES, JobStatus, SingleLookupResult
from bulkverify.sharing.store import ShareRegistry

log = logging.getLogger(__name__)


@dataclass
class UploadResult:
    verification_list: VerificationList
    provider_payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class StartResult:
    verification_list: VerificationList
    owner: str
    record: VerificationRecord
    provider_payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class StatusResult:
    verification_list: VerificationList
    owner: str
    job: JobStatus
    reconciliation: Optional[VerificationRecord] = None


@dataclass
class DownloadResult:
    filename: str
    content: bytes
    category_filter: str
    media_type: str = "text/csv"


@dataclass
class DeleteResult:
    verification_list: VerificationList
    owner: str
    remote_deleted: bool
    remote_error: Optional[str] = None


@dataclass
class SingleLookupOutcome:
    record: VerificationRecord
    lookup: SingleLookupResult


@dataclass
class CreditSummary:
    credits_remaining: int
    credits_consumed: int
    credits_purchased: int
    total_count_of_email_lists: int


class JobLifecycleController:
    """Orchestrates bulk jobs against the provider for one request scope.

    The lock registry must be shared between controllers so transitions on
    the same list are serialized across requests.
    """

    def __init__(
        self,
        db: Session,
        provider: BouncifyClient,
        locks: ResourceLockRegistry | None = None,
    ):
        self.db = db
        self.provider = provider
        self.locks = locks or get_lock_registry()
        self.lists = VerificationListStore(db)
        self.shares = ShareRegistry(db)
        self.ledger = CreditLedger(db)

    # -------------------------------------------------------------------------
    # Resolution helpers
    # -------------------------------------------------------------------------

    def _locate(self, list_id: Optional[str], job_id: Optional[str]) -> str:
        """Turn a list id or a provider job id into a list id."""
        if not list_id and not job_id:
            raise InvalidArgumentError("jobId or listId is required")
        if list_id:
            if job_id:
                existing = self.lists.get_active(list_id)
                if existing is not None and existing.external_job_id not in (None, job_id):
                    raise InvalidArgumentError(
                        f"Job {job_id} does not belong to list {list_id}"
                    )
            return list_id
        verification_list = self.lists.find_by_job_id(job_id)
        if verification_list is None:
            raise NotFoundError(f"No email list found for job {job_id}")
        return verification_list.id

    def _authorize(self, list_id: str, actor: str, require_write: bool) -> AccessResult:
        return resolve_access(self.db, list_id, actor, require_write=require_write)

    @staticmethod
    def _require_job(verification_list: VerificationList) -> str:
        if not verification_list.external_job_id:
            raise InvalidArgumentError("No jobId associated with this list")
        return verification_list.external_job_id

    async def _discard_job(self, remote_job: str) -> None:
        try:
            await self.provider.delete_job(remote_job)
            log.info(f"Discarded provider job {remote_job} with no local list")
        except ExternalProviderError as e:
            log.warning(f"Could not discard provider job {remote_job}: {e.message}")

    # -------------------------------------------------------------------------
    # Lifecycle operations
    # -------------------------------------------------------------------------

    async def upload(
        self,
        owner: str,
        content: bytes,
        filename: Optional[str] = None,
        name: Optional[str] = None,
    ) -> UploadResult:
        """Accept a CSV batch and hand it to the provider.

        The list is committed in ``uploading`` while the batch is submitted,
        then moves to ``unverified`` with the provider's job id. The list lock
        is held across both steps, so a delete waits for the job id. A provider
        failure removes the uploading row.
        """
        if not owner:
            raise InvalidArgumentError("Owner is required")
        validate_upload(content)
        filename = PurePath(filename).name if filename else "upload.csv"
        list_name = (name or "").strip() or filename
        total = count_email_rows(content)

        verification_list = self.lists.create(
            owner_id=owner,
            name=list_name,
            status=ListStatus.UPLOADING,
            total_emails=total,
        )
        async with self.locks.hold(verification_list.id):
            try:
                batch = await self.provider.submit_batch(content, filename)
            except ExternalProviderError:
                self.lists.remove(verification_list.id)
                log.warning(f"Upload of {filename} for {owner} rejected by provider")
                raise

            try:
                verification_list = self.lists.transition(
                    verification_list,
                    ListStatus.UPLOADING,
                    status=ListStatus.UNVERIFIED,
                    external_job_id=batch.job_id,
                    total_emails=total or batch.total_emails,
                )
            except ConflictError:
                # The row changed elsewhere and the job id was never stored
                if batch.job_id:
                    await self._discard_job(batch.job_id)
                raise

        log.info(
            f"Uploaded list {verification_list.id[:8]}... ({verification_list.total_emails} "
            f"emails) as job {batch.job_id}"
        )
        return UploadResult(verification_list=verification_list, provider_payload=batch.raw)

    async def start(
        self,
        actor: str,
        list_id: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> StartResult:
        """Start provider processing and reserve the full credit cost."""
        resolved_id = self._locate(list_id, job_id)
        async with self.locks.hold(resolved_id):
            access = self._authorize(resolved_id, actor, require_write=True)
            verification_list = access.verification_list
            remote_job = self._require_job(verification_list)
            if verification_list.status != ListStatus.UNVERIFIED.value:
                raise ConflictError(
                    f"Cannot start list in status {verification_list.status}"
                )

            payload = await self.provider.start_job(remote_job)

            reserved = verification_list.total_emails
            try:
                self.lists.transition(
                    verification_list,
                    ListStatus.UNVERIFIED,
                    commit=False,
                    status=ListStatus.PROCESSING,
                    credit_consumed=reserved,
                )
                record = self.ledger.record(
                    access.owner,
                    LedgerSource.BULK,
                    credits_used=reserved,
                    summary="Bulk verification started",
                    list_id=verification_list.id,
                    external_job_id=remote_job,
                    data={"list_id": verification_list.id, "job_id": remote_job, "actor": actor},
                    commit=False,
                )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

            self.db.refresh(verification_list)
            log.info(
                f"Started job {remote_job} for list {verification_list.id[:8]}... "
                f"(owner {access.owner}, actor {actor}, reserved {reserved})"
            )
            return StartResult(
                verification_list=verification_list,
                owner=access.owner,
                record=record,
                provider_payload=payload,
            )

    async def poll_status(
        self,
        actor: str,
        list_id: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> StatusResult:
        """Refresh local state from the provider job.

        Counters are assigned from the remote snapshot, never incremented,
        so repeated polls converge. When the remote total changes the
        credit reservation, the signed difference is appended to the ledger.
        """
        resolved_id = self._locate(list_id, job_id)
        async with self.locks.hold(resolved_id):
            access = self._authorize(resolved_id, actor, require_write=True)
            verification_list = access.verification_list
            remote_job = self._require_job(verification_list)
            current = ListStatus(verification_list.status)
            if current not in JOB_BACKED_STATES:
                raise ConflictError("Bulk verification has not been started for this list")

            job = await self.provider.get_job_status(remote_job)

            new_status = map_provider_status(job.status, current)
            changes: dict[str, Any] = {
                "status": new_status,
                "verified_count": job.verified_count,
            }
            for category in RESULT_CATEGORIES:
                count = job.category_counts.get(category)
                if count is not None:
                    changes[category] = count

            previous_consumed = verification_list.credit_consumed
            consumed = previous_consumed
            if job.total is not None:
                known_total = verification_list.total_emails
                if not known_total:
                    known_total = job.total
                    changes["total_emails"] = job.total
                consumed = min(job.total, known_total)
                changes["credit_consumed"] = consumed
            delta = consumed - previous_consumed

            reconciliation = None
            try:
                self.lists.transition(verification_list, current, commit=False, **changes)
                if delta:
                    reconciliation = self.ledger.record(
                        access.owner,
                        LedgerSource.BULK,
                        credits_used=delta,
                        result=new_status.value,
                        summary="Bulk verification reconciled",
                        list_id=verification_list.id,
                        external_job_id=remote_job,
                        data={"job_id": remote_job, "remote_total": job.total},
                        commit=False,
                    )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

            self.db.refresh(verification_list)
            if new_status != current:
                log.info(
                    f"List {verification_list.id[:8]}... {current.value} -> {new_status.value}"
                )
            return StatusResult(
                verification_list=verification_list,
                owner=access.owner,
                job=job,
                reconciliation=reconciliation,
            )

    async def download(
        self,
        actor: str,
        list_id: Optional[str] = None,
        job_id: Optional[str] = None,
        category_filter: Optional[str] = "all",
    ) -> DownloadResult:
        """Fetch result rows for a list; read access is enough."""
        category_filter = category_filter or "all"
        filter_categories(category_filter)
        resolved_id = self._locate(list_id, job_id)
        access = self._authorize(resolved_id, actor, require_write=False)
        verification_list = access.verification_list
        remote_job = self._require_job(verification_list)
        if ListStatus(verification_list.status) not in JOB_BACKED_STATES:
            raise ConflictError("Results are not available before verification starts")

        content = await self.provider.download_results(remote_job, category_filter)
        log.info(
            f"Downloaded {category_filter} results for list {verification_list.id[:8]}... "
            f"({len(content)} bytes)"
        )
        return DownloadResult(
            filename=f"bouncify_{remote_job}.csv",
            content=content,
            category_filter=category_filter,
        )

    async def delete(
        self,
        actor: str,
        list_id: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> DeleteResult:
        """Soft-delete a list and ask the provider to drop its job.

        The remote delete is best-effort; the local tombstone is committed
        whatever the provider says. Grants stop covering the list, ledger
        entries stay.
        """
        resolved_id = self._locate(list_id, job_id)
        async with self.locks.hold(resolved_id):
            access = self._authorize(resolved_id, actor, require_write=True)
            verification_list = access.verification_list

            remote_deleted = False
            remote_error = None
            if verification_list.external_job_id:
                try:
                    await self.provider.delete_job(verification_list.external_job_id)
                    remote_deleted = True
                except ExternalProviderError as e:
                    if e.is_not_found:
                        remote_deleted = True
                        log.info(
                            f"Job {verification_list.external_job_id} already gone at provider"
                        )
                    else:
                        remote_error = e.message
                        log.warning(
                            f"Remote delete of job {verification_list.external_job_id} failed, "
                            f"keeping local delete: {e.message}"
                        )

            try:
                self.lists.soft_delete(verification_list, commit=False)
                dropped = self.shares.remove_resource(verification_list.id, commit=False)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

            self.db.refresh(verification_list)
            log.info(
                f"Deleted list {verification_list.id[:8]}... (removed from {dropped} grant(s))"
            )
            return DeleteResult(
                verification_list=verification_list,
                owner=access.owner,
                remote_deleted=remote_deleted,
                remote_error=remote_error,
            )

    # -------------------------------------------------------------------------
    # Single lookups and credits
    # -------------------------------------------------------------------------

    async def single_lookup(self, owner: str, email: Optional[str]) -> SingleLookupOutcome:
        """Verify one address and debit one credit."""
        email = (email or "").strip()
        if not email:
            raise InvalidArgumentError("Email required")

        lookup = await self.provider.single_lookup(email)
        record = self.ledger.record(
            owner,
            LedgerSource.SINGLE,
            credits_used=1,
            email=lookup.email,
            result=lookup.result,
            summary="Email Address",
            data=lookup.raw,
        )
        return SingleLookupOutcome(record=record, lookup=lookup)

    async def credit_summary(self, owner: str) -> CreditSummary:
        """Provider-reported remaining credits plus local ledger totals."""
        remaining = await self.provider.credit_balance()
        balance = self.ledger.balance(owner, remote_remaining=remaining)
        return CreditSummary(
            credits_remaining=remaining,
            credits_consumed=balance.used,
            credits_purchased=balance.purchased,
            total_count_of_email_lists=self.lists.count_owned(owner),
        )

    def purchase_credits(
        self, owner: str, amount: int, reference: Optional[str] = None
    ) -> VerificationRecord:
        """Record a credit purchase in the ledger."""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidArgumentError("Purchase amount must be a positive integer")
        return self.ledger.record(
            owner,
            LedgerSource.CREDIT_PURCHASE,
            credits_purchased=amount,
            summary="Credit purchase",
            data={"reference": reference} if reference else None,
        )


# Global lock registry shared by all request-scoped controllers
_lock_registry: ResourceLockRegistry | None = None


def get_lock_registry() -> ResourceLockRegistry:
    """Get the global per-list lock registry."""
    global _lock_registry
    if _lock_registry is None:
        _lock_registry = ResourceLockRegistry()
    return _lock_registry


def reset_lock_registry() -> None:
    """Reset the global lock registry (for testing)."""
    global _lock_registry
    _lock_registry = None
