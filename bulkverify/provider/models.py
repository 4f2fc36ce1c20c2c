"""Result models for the Bouncify provider client."""

from dataclasses import dataclass, field
from typing import Any, Optional

RESULT_CATEGORIES = ("deliverable", "undeliverable", "accept_all", "unknown")


@dataclass
class SubmittedBatch:
    """Provider acknowledgement of an uploaded batch."""

    job_id: Optional[str]
    total_emails: int = 0
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class JobStatus:
    """Snapshot of a provider bulk job.

    ``total`` is None when the provider omitted it; category counts are
    None for categories the provider did not report.
    """

    job_id: str
    status: Optional[str]
    verified_count: int = 0
    total: Optional[int] = None
    category_counts: dict[str, Optional[int]] = field(default_factory=dict)
    created_at: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class SingleLookupResult:
    """Outcome of a synchronous one-address check."""

    email: str
    result: Optional[str]
    raw: dict[str, Any] = field(default_factory=dict)
