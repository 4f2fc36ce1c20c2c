"""Tests for the bulk verification job lifecycle.

Tests cover:
- Upload, start, poll, download and delete through the controller
- Attribution of shared-list operations to the list owner
- Provider failures leaving local state untouched
- Concurrent polls converging without double reconciliation
- Soft-deleted lists disappearing from every operation
"""

import asyncio

import pytest

from bulkverify.db.models import VerificationList
from bulkverify.exceptions import (
    ConflictError,
    ExternalProviderError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from bulkverify.ledger.store import CreditLedger
from bulkverify.lists.store import ListQuery, VerificationListStore
from bulkverify.sharing.store import AccessType, ShareRegistry
from tests.conftest import make_csv


@pytest.fixture
async def uploaded(controller):
    """A 120-address list owned by alice, ready to start."""
    result = await controller.upload("alice", make_csv(120), filename="leads.csv")
    return result.verification_list


@pytest.fixture
async def started(controller, uploaded):
    await controller.start("alice", list_id=uploaded.id)
    return uploaded


async def _wait_for_upload_call(fake_bouncify):
    for _ in range(100):
        if "upload" in fake_bouncify.operations():
            return
        await asyncio.sleep(0)
    raise AssertionError("upload never reached the provider")


# =============================================================================
# Upload
# =============================================================================


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_creates_unverified_list(self, controller, fake_bouncify):
        result = await controller.upload("alice", make_csv(120), filename="leads.csv")
        vl = result.verification_list

        assert vl.status == "unverified"
        assert vl.total_emails == 120
        assert vl.owner_id == "alice"
        assert vl.name == "leads.csv"
        assert vl.external_job_id == "job-1"
        assert fake_bouncify.operations() == ["upload"]

    @pytest.mark.asyncio
    async def test_upload_uses_given_name_and_strips_path(self, controller):
        result = await controller.upload(
            "alice", make_csv(2), filename="/tmp/x/leads.csv", name="  Q3 leads "
        )
        assert result.verification_list.name == "Q3 leads"

        result = await controller.upload("alice", make_csv(2), filename="../../etc/leads.csv")
        assert result.verification_list.name == "leads.csv"

    @pytest.mark.asyncio
    async def test_provider_total_used_when_local_count_is_zero(self, controller, fake_bouncify):
        fake_bouncify.upload_total = 42
        result = await controller.upload("alice", b"email\n", filename="empty.csv")
        assert result.verification_list.total_emails == 42

    @pytest.mark.asyncio
    async def test_provider_failure_leaves_no_list(self, controller, fake_bouncify, in_memory_db):
        fake_bouncify.fail("upload", 500)

        with pytest.raises(ExternalProviderError):
            await controller.upload("alice", make_csv(5), filename="leads.csv")

        page = VerificationListStore(in_memory_db).query("alice")
        assert page.total_count == 0

    @pytest.mark.asyncio
    async def test_empty_upload_rejected_before_provider(self, controller, fake_bouncify):
        with pytest.raises(InvalidArgumentError):
            await controller.upload("alice", b"", filename="leads.csv")
        assert fake_bouncify.calls == []

    @pytest.mark.asyncio
    async def test_delete_during_upload_waits_for_job_id(
        self, controller, fake_bouncify, in_memory_db
    ):
        fake_bouncify.upload_gate = asyncio.Event()
        upload = asyncio.create_task(
            controller.upload("alice", make_csv(5), filename="leads.csv")
        )
        await _wait_for_upload_call(fake_bouncify)
        pending = in_memory_db.query(VerificationList).one()
        assert pending.status == "uploading"

        delete = asyncio.create_task(controller.delete("alice", list_id=pending.id))
        for _ in range(5):
            await asyncio.sleep(0)
        assert not delete.done()

        fake_bouncify.upload_gate.set()
        uploaded, deleted = await asyncio.gather(upload, delete)

        assert uploaded.verification_list.external_job_id == "job-1"
        assert deleted.remote_deleted is True
        assert fake_bouncify.operations() == ["upload", "delete"]
        assert fake_bouncify.jobs == {}
        assert VerificationListStore(in_memory_db).get_active(pending.id) is None

    @pytest.mark.asyncio
    async def test_job_discarded_when_list_changed_during_upload(
        self, controller, fake_bouncify, in_memory_db
    ):
        fake_bouncify.upload_gate = asyncio.Event()
        upload = asyncio.create_task(
            controller.upload("alice", make_csv(5), filename="leads.csv")
        )
        await _wait_for_upload_call(fake_bouncify)

        # Another worker tombstones the row without taking this process's lock
        pending = in_memory_db.query(VerificationList).one()
        VerificationListStore(in_memory_db).soft_delete(pending)
        fake_bouncify.upload_gate.set()

        with pytest.raises(ConflictError):
            await upload

        assert fake_bouncify.operations() == ["upload", "delete"]
        assert fake_bouncify.jobs == {}


# =============================================================================
# Start
# =============================================================================


class TestStart:
    @pytest.mark.asyncio
    async def test_start_reserves_credits(self, controller, uploaded, in_memory_db):
        result = await controller.start("alice", list_id=uploaded.id)

        assert result.verification_list.status == "processing"
        assert result.verification_list.credit_consumed == 120
        assert result.owner == "alice"
        assert result.record.credits_used == 120
        assert result.record.source == "bulk"
        assert CreditLedger(in_memory_db).balance("alice").used == 120

    @pytest.mark.asyncio
    async def test_start_by_job_id(self, controller, uploaded):
        result = await controller.start("alice", job_id=uploaded.external_job_id)
        assert result.verification_list.id == uploaded.id

    @pytest.mark.asyncio
    async def test_start_requires_a_reference(self, controller):
        with pytest.raises(InvalidArgumentError):
            await controller.start("alice")

    @pytest.mark.asyncio
    async def test_unknown_job_id(self, controller):
        with pytest.raises(NotFoundError):
            await controller.start("alice", job_id="job-404")

    @pytest.mark.asyncio
    async def test_mismatched_job_and_list(self, controller, uploaded):
        with pytest.raises(InvalidArgumentError):
            await controller.start("alice", list_id=uploaded.id, job_id="job-other")

    @pytest.mark.asyncio
    async def test_list_without_job_id(self, controller, fake_bouncify):
        fake_bouncify.omit_job_id = True
        result = await controller.upload("alice", make_csv(3), filename="leads.csv")
        assert result.verification_list.external_job_id is None

        with pytest.raises(InvalidArgumentError, match="jobId"):
            await controller.start("alice", list_id=result.verification_list.id)

    @pytest.mark.asyncio
    async def test_start_twice_conflicts(self, controller, started, fake_bouncify):
        with pytest.raises(ConflictError):
            await controller.start("alice", list_id=started.id)
        assert fake_bouncify.operations().count("start") == 1

    @pytest.mark.asyncio
    async def test_stranger_is_denied_before_provider(self, controller, uploaded, fake_bouncify):
        with pytest.raises(PermissionDeniedError):
            await controller.start("mallory", list_id=uploaded.id)
        assert "start" not in fake_bouncify.operations()

    @pytest.mark.asyncio
    async def test_read_only_member_cannot_start(self, controller, uploaded, in_memory_db):
        ShareRegistry(in_memory_db).share("alice", "bob", [uploaded.id], AccessType.READ)
        with pytest.raises(PermissionDeniedError, match="Read-only"):
            await controller.start("bob", list_id=uploaded.id)

    @pytest.mark.asyncio
    async def test_provider_failure_leaves_list_unverified(
        self, controller, uploaded, fake_bouncify, in_memory_db
    ):
        fake_bouncify.fail("start", 503)

        with pytest.raises(ExternalProviderError):
            await controller.start("alice", list_id=uploaded.id)

        in_memory_db.expire_all()
        vl = VerificationListStore(in_memory_db).get(uploaded.id)
        assert vl.status == "unverified"
        assert vl.credit_consumed == 0
        assert CreditLedger(in_memory_db).query("alice").total_count == 0


# =============================================================================
# Poll
# =============================================================================


class TestPoll:
    @pytest.mark.asyncio
    async def test_poll_in_progress_keeps_processing(self, controller, started, fake_bouncify):
        fake_bouncify.set_progress(started.external_job_id, "verifying", 40, total=120)

        result = await controller.poll_status("alice", list_id=started.id)

        assert result.verification_list.status == "processing"
        assert result.verification_list.verified_count == 40
        assert result.reconciliation is None

    @pytest.mark.asyncio
    async def test_poll_completed_marks_verified(self, controller, started, fake_bouncify):
        fake_bouncify.complete(
            started.external_job_id,
            verified=118,
            results={"deliverable": 100, "undeliverable": 18, "accept_all": 0, "unknown": 0},
            total=120,
        )

        result = await controller.poll_status("alice", job_id=started.external_job_id)
        vl = result.verification_list

        assert vl.status == "verified"
        assert vl.verified_count == 118
        assert vl.credit_consumed == 120
        assert vl.credit_consumed <= vl.total_emails
        assert vl.deliverable == 100
        assert vl.undeliverable == 18

    @pytest.mark.asyncio
    async def test_poll_before_start_conflicts(self, controller, uploaded, fake_bouncify):
        with pytest.raises(ConflictError):
            await controller.poll_status("alice", list_id=uploaded.id)
        assert "status" not in fake_bouncify.operations()

    @pytest.mark.asyncio
    async def test_verified_list_is_not_demoted(self, controller, started, fake_bouncify):
        job_id = started.external_job_id
        fake_bouncify.complete(job_id, verified=120, results={}, total=120)
        await controller.poll_status("alice", list_id=started.id)

        fake_bouncify.set_progress(job_id, "verifying", 120)
        result = await controller.poll_status("alice", list_id=started.id)
        assert result.verification_list.status == "verified"

    @pytest.mark.asyncio
    async def test_remote_total_reconciles_credit(
        self, controller, started, fake_bouncify, in_memory_db
    ):
        fake_bouncify.complete(started.external_job_id, verified=110, results={}, total=110)

        result = await controller.poll_status("alice", list_id=started.id)

        assert result.verification_list.credit_consumed == 110
        assert result.reconciliation is not None
        assert result.reconciliation.credits_used == -10
        assert CreditLedger(in_memory_db).balance("alice").used == 110

    @pytest.mark.asyncio
    async def test_repeated_polls_are_idempotent(
        self, controller, started, fake_bouncify, in_memory_db
    ):
        fake_bouncify.complete(started.external_job_id, verified=110, results={}, total=110)

        await controller.poll_status("alice", list_id=started.id)
        second = await controller.poll_status("alice", list_id=started.id)

        assert second.reconciliation is None
        assert CreditLedger(in_memory_db).query("alice").total_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_polls_converge(
        self, controller, started, fake_bouncify, in_memory_db
    ):
        fake_bouncify.complete(
            started.external_job_id,
            verified=100,
            results={"deliverable": 100},
            total=100,
        )

        results = await asyncio.gather(
            controller.poll_status("alice", list_id=started.id),
            controller.poll_status("alice", list_id=started.id),
        )

        assert all(r.verification_list.status == "verified" for r in results)
        assert sum(1 for r in results if r.reconciliation is not None) == 1
        assert CreditLedger(in_memory_db).balance("alice").used == 100

        vl = VerificationListStore(in_memory_db).get(started.id)
        assert vl.verified_count == 100
        assert vl.credit_consumed == 100

    @pytest.mark.asyncio
    async def test_provider_failure_leaves_list_untouched(
        self, controller, started, fake_bouncify, in_memory_db
    ):
        fake_bouncify.fail("status", 500)
        with pytest.raises(ExternalProviderError):
            await controller.poll_status("alice", list_id=started.id)

        in_memory_db.expire_all()
        vl = VerificationListStore(in_memory_db).get(started.id)
        assert vl.status == "processing"
        assert vl.verified_count == 0


# =============================================================================
# Download
# =============================================================================


class TestDownload:
    @pytest.mark.asyncio
    async def test_download_filters_results(self, controller, started, fake_bouncify):
        job = fake_bouncify.jobs[started.external_job_id]
        job["rows"] = [("a@x.com", "deliverable"), ("b@x.com", "undeliverable")]

        result = await controller.download(
            "alice", list_id=started.id, category_filter="undeliverable"
        )

        assert result.filename == f"bouncify_{started.external_job_id}.csv"
        assert b"b@x.com" in result.content
        assert b"a@x.com" not in result.content

    @pytest.mark.asyncio
    async def test_read_member_can_download(self, controller, started, in_memory_db):
        ShareRegistry(in_memory_db).share("alice", "bob", [started.id], AccessType.READ)
        result = await controller.download("bob", list_id=started.id)
        assert result.category_filter == "all"

    @pytest.mark.asyncio
    async def test_invalid_filter(self, controller, started, fake_bouncify):
        with pytest.raises(InvalidArgumentError):
            await controller.download("alice", list_id=started.id, category_filter="bogus")
        assert "download" not in fake_bouncify.operations()

    @pytest.mark.asyncio
    async def test_download_before_start_conflicts(self, controller, uploaded):
        with pytest.raises(ConflictError):
            await controller.download("alice", list_id=uploaded.id)


# =============================================================================
# Delete
# =============================================================================


class TestDelete:
    @pytest.mark.asyncio
    async def test_deleted_list_disappears(self, controller, started, in_memory_db):
        result = await controller.delete("alice", list_id=started.id)
        assert result.remote_deleted is True
        assert result.verification_list.is_deleted

        with pytest.raises(NotFoundError):
            await controller.poll_status("alice", list_id=started.id)
        with pytest.raises(NotFoundError):
            await controller.start("alice", list_id=started.id)
        with pytest.raises(NotFoundError):
            await controller.download("alice", list_id=started.id)
        with pytest.raises(NotFoundError):
            await controller.poll_status("alice", job_id=started.external_job_id)

        assert VerificationListStore(in_memory_db).query("alice", ListQuery()).total_count == 0
        assert CreditLedger(in_memory_db).query("alice").total_count == 1

    @pytest.mark.asyncio
    async def test_remote_failure_still_deletes_locally(
        self, controller, uploaded, fake_bouncify, in_memory_db
    ):
        fake_bouncify.fail("delete", 500, {"success": False, "result": "Internal error"})

        result = await controller.delete("alice", list_id=uploaded.id)

        assert result.remote_deleted is False
        assert "500" in result.remote_error
        assert VerificationListStore(in_memory_db).get_active(uploaded.id) is None

    @pytest.mark.asyncio
    async def test_job_already_gone_at_provider(self, controller, uploaded, fake_bouncify):
        del fake_bouncify.jobs[uploaded.external_job_id]

        result = await controller.delete("alice", list_id=uploaded.id)

        assert result.remote_deleted is True
        assert result.remote_error is None
        assert result.verification_list.is_deleted

    @pytest.mark.asyncio
    async def test_delete_removes_list_from_grants(self, controller, uploaded, in_memory_db):
        registry = ShareRegistry(in_memory_db)
        registry.share("alice", "bob", [uploaded.id], AccessType.WRITE)

        await controller.delete("alice", list_id=uploaded.id)

        assert registry.get("alice", "bob").list_ids == set()
        assert VerificationListStore(in_memory_db).query("bob").total_count == 0

    @pytest.mark.asyncio
    async def test_read_member_cannot_delete(self, controller, uploaded, in_memory_db):
        ShareRegistry(in_memory_db).share("alice", "bob", [uploaded.id], AccessType.READ)
        with pytest.raises(PermissionDeniedError):
            await controller.delete("bob", list_id=uploaded.id)


# =============================================================================
# End-to-end scenarios
# =============================================================================


class TestScenarios:
    @pytest.mark.asyncio
    async def test_full_lifecycle(self, controller, fake_bouncify, in_memory_db):
        uploaded = (await controller.upload("alice", make_csv(120), filename="leads.csv")).verification_list
        assert (uploaded.status, uploaded.total_emails) == ("unverified", 120)

        started = (await controller.start("alice", list_id=uploaded.id)).verification_list
        assert (started.status, started.credit_consumed) == ("processing", 120)

        fake_bouncify.complete(
            uploaded.external_job_id,
            verified=118,
            results={"deliverable": 110, "undeliverable": 8},
            total=120,
        )
        fake_bouncify.jobs[uploaded.external_job_id]["rows"] = [
            ("bad@example.com", "undeliverable"),
            ("good@example.com", "deliverable"),
        ]
        polled = (await controller.poll_status("alice", list_id=uploaded.id)).verification_list
        assert (polled.status, polled.verified_count) == ("verified", 118)

        download = await controller.download(
            "alice", list_id=uploaded.id, category_filter="undeliverable"
        )
        assert b"bad@example.com" in download.content
        assert b"good@example.com" not in download.content

        await controller.delete("alice", list_id=uploaded.id)
        with pytest.raises(NotFoundError):
            await controller.poll_status("alice", list_id=uploaded.id)

    @pytest.mark.asyncio
    async def test_shared_write_member_acts_for_owner(self, controller, in_memory_db):
        uploaded = (await controller.upload("alice", make_csv(30), filename="team.csv")).verification_list
        ShareRegistry(in_memory_db).share("alice", "bob", [uploaded.id], AccessType.WRITE)

        result = await controller.start("bob", list_id=uploaded.id)

        assert result.owner == "alice"
        assert result.record.user_id == "alice"
        assert result.verification_list.owner_id == "alice"

        ledger = CreditLedger(in_memory_db)
        assert ledger.balance("alice").used == 30
        assert ledger.balance("bob").used == 0


# =============================================================================
# Single lookups and credits
# =============================================================================


class TestCredits:
    @pytest.mark.asyncio
    async def test_single_lookup_debits_one_credit(self, controller, fake_bouncify, in_memory_db):
        fake_bouncify.single_results["x@example.com"] = "undeliverable"

        outcome = await controller.single_lookup("alice", " x@example.com ")

        assert outcome.lookup.result == "undeliverable"
        assert outcome.record.credits_used == 1
        assert outcome.record.email == "x@example.com"
        assert CreditLedger(in_memory_db).balance("alice").used == 1

    @pytest.mark.asyncio
    async def test_single_lookup_requires_email(self, controller, fake_bouncify):
        with pytest.raises(InvalidArgumentError):
            await controller.single_lookup("alice", "   ")
        assert fake_bouncify.calls == []

    @pytest.mark.asyncio
    async def test_credit_summary(self, controller, fake_bouncify, started):
        fake_bouncify.credits_remaining = 880
        controller.purchase_credits("alice", 1000)

        summary = await controller.credit_summary("alice")

        assert summary.credits_remaining == 880
        assert summary.credits_consumed == 120
        assert summary.credits_purchased == 1000
        assert summary.total_count_of_email_lists == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5, True])
    async def test_purchase_amount_must_be_positive(self, controller, amount):
        with pytest.raises(InvalidArgumentError):
            controller.purchase_credits("alice", amount)
