"""Lifecycle states for verification lists.

uploading -> unverified -> processing -> verified, with the soft-delete
tombstone reachable from any non-deleted state.
"""

from enum import Enum


class ListStatus(str, Enum):
    """Lifecycle status stored on a verification list."""

    UPLOADING = "uploading"
    UNVERIFIED = "unverified"
    PROCESSING = "processing"
    VERIFIED = "verified"


# Display order and labels for the status histogram
STATUS_LABELS: dict[ListStatus, str] = {
    ListStatus.VERIFIED: "Verified",
    ListStatus.PROCESSING: "Processing",
    ListStatus.UPLOADING: "Uploading",
    ListStatus.UNVERIFIED: "Unverified",
}

# Allowed forward transitions; delete is handled separately
TRANSITIONS: dict[ListStatus, set[ListStatus]] = {
    ListStatus.UPLOADING: {ListStatus.UNVERIFIED},
    ListStatus.UNVERIFIED: {ListStatus.PROCESSING},
    ListStatus.PROCESSING: {ListStatus.PROCESSING, ListStatus.VERIFIED},
    ListStatus.VERIFIED: {ListStatus.VERIFIED},
}

# States in which a provider job must exist
JOB_BACKED_STATES = frozenset({ListStatus.PROCESSING, ListStatus.VERIFIED})

# Remote statuses that mean the provider finished the job
PROVIDER_TERMINAL_STATUSES = frozenset({"completed"})


def can_transition(current: ListStatus | str, target: ListStatus | str) -> bool:
    """Check whether a status change is allowed by the lifecycle."""
    return ListStatus(target) in TRANSITIONS.get(ListStatus(current), set())


def map_provider_status(remote_status: str | None, current: ListStatus | str) -> ListStatus:
    """Map a provider job status onto the local lifecycle.

    A terminal provider status moves the list to verified; anything else
    keeps it processing. A verified list is never demoted.
    """
    if remote_status and remote_status.lower() in PROVIDER_TERMINAL_STATUSES:
        return ListStatus.VERIFIED
    if ListStatus(current) == ListStatus.VERIFIED:
        return ListStatus.VERIFIED
    return ListStatus.PROCESSING
