"""Bulk verification job lifecycle controller."""

from bulkverify.jobs.controller import (
    CreditSummary,
    DeleteResult,
    DownloadResult,
    JobLifecycleController,
    SingleLookupOutcome,
    StartResult,
    StatusResult,
    UploadResult,
    get_lock_registry,
    reset_lock_registry,
)
from bulkverify.jobs.locks import ResourceLockRegistry

__all__ = [
    "CreditSummary",
    "DeleteResult",
    "DownloadResult",
    "JobLifecycleController",
    "ResourceLockRegistry",
    "SingleLookupOutcome",
    "StartResult",
    "StatusResult",
    "UploadResult",
    "get_lock_registry",
    "reset_lock_registry",
]
