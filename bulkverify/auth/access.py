"""Ownership and access resolution for verification lists.

Every operation on a shared list is authorized here once. The resolver
returns the list's true owner, and callers attribute all persistence
(list state, ledger entries) to that owner rather than the acting identity.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from bulkverify.db.models import VerificationList
from bulkverify.exceptions import NotFoundError, PermissionDeniedError
from bulkverify.lists.store import VerificationListStore
from bulkverify.sharing.store import AccessType, ShareRegistry

log = logging.getLogger(__name__)


@dataclass
class AccessResult:
    """Outcome of resolving an actor against a list.

    Attributes:
        owner: Identity that owns the list (never the delegate)
        can_write: Whether the actor may mutate the list
        verification_list: The resolved, non-deleted list
    """

    owner: str
    can_write: bool
    verification_list: VerificationList


def resolve_access(
    db: Session,
    list_id: str,
    actor: str,
    require_write: bool = True,
) -> AccessResult:
    """Determine the effective owner of a list and whether the actor may write.

    Resolution:
    1. The list must exist and not be soft-deleted
    2. The owner always has full access
    3. Otherwise the actor needs a grant from the owner covering this list
    4. A read grant satisfies read operations only

    Args:
        db: Database session
        list_id: Verification list ID
        actor: The acting identity
        require_write: Whether the caller intends to mutate the list

    Returns:
        AccessResult with the original owner

    Raises:
        NotFoundError: List missing or soft-deleted
        PermissionDeniedError: No grant, or read-only grant for a write
    """
    verification_list = VerificationListStore(db).get_active(list_id)
    if verification_list is None:
        raise NotFoundError(f"Email list not found: {list_id}")

    if verification_list.owner_id == actor:
        return AccessResult(owner=actor, can_write=True, verification_list=verification_list)

    grant = ShareRegistry(db).find_covering_grant(
        member=actor,
        list_id=list_id,
        owner=verification_list.owner_id,
    )
    if grant is None:
        log.debug(f"Actor {actor} has no grant covering list {list_id[:8]}...")
        raise PermissionDeniedError("Permission denied: Not shared with you")

    can_write = grant.access_type == AccessType.WRITE.value
    if require_write and not can_write:
        log.debug(f"Actor {actor} has read-only access to list {list_id[:8]}...")
        raise PermissionDeniedError("Permission denied: Read-only access")

    return AccessResult(
        owner=grant.shared_by,
        can_write=can_write,
        verification_list=verification_list,
    )


def can_write_list(db: Session, list_id: str, actor: str) -> bool:
    """Check write access without raising for authorization failures.

    NotFoundError still propagates.
    """
    try:
        return resolve_access(db, list_id, actor, require_write=False).can_write
    except PermissionDeniedError:
        return False
