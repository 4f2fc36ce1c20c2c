"""Share registry for owner -> member grants.

A grant delegates read or write capability over a set of verification
lists. There is at most one grant per (owner, member) pair; repeated share
actions merge into it.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from bulkverify.db.models import ShareGrant, ShareGrantResource, VerificationList
from bulkverify.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)

log = logging.getLogger(__name__)


class AccessType(str, Enum):
    """Access level carried by a share grant."""

    READ = "read"
    WRITE = "write"


def parse_access_type(value: Optional[str]) -> Optional[AccessType]:
    """Interpret a free-form access type from the boundary.

    Anything mentioning "read" is read-only; any other non-empty value
    grants write. None stays None so merges can preserve the old level.
    """
    if value is None or not str(value).strip():
        return None
    if "read" in str(value).lower():
        return AccessType.READ
    return AccessType.WRITE


@dataclass
class MemberSummary:
    """One member an owner has shared with."""

    grant_id: str
    member: str
    access_type: str
    shared_on: datetime
    total_lists: int


@dataclass
class ShareStats:
    """Sharing counters shown on the list dashboard cards."""

    lists_shared_by_you: int = 0
    lists_shared_with_you: int = 0
    members_added_by_you: int = 0
    members: list[MemberSummary] = field(default_factory=list)


class ShareRegistry:
    """Store for share grants.

    Resource sets are merged as set unions over list ids, so sharing the
    same list twice has no additional effect.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, owner: str, member: str) -> Optional[ShareGrant]:
        """Get the grant between an owner and a member, if any."""
        return (
            self.db.query(ShareGrant)
            .filter(ShareGrant.shared_by == owner, ShareGrant.member == member)
            .first()
        )

    def find_covering_grant(
        self, member: str, list_id: str, owner: Optional[str] = None
    ) -> Optional[ShareGrant]:
        """Find a grant to ``member`` whose resource set contains ``list_id``."""
        query = (
            self.db.query(ShareGrant)
            .join(ShareGrantResource, ShareGrantResource.grant_id == ShareGrant.id)
            .filter(
                ShareGrant.member == member,
                ShareGrantResource.list_id == list_id,
            )
        )
        if owner is not None:
            query = query.filter(ShareGrant.shared_by == owner)
        return query.first()

    def grants_for_member(self, member: str) -> list[ShareGrant]:
        return self.db.query(ShareGrant).filter(ShareGrant.member == member).all()

    def grants_by_owner(self, owner: str) -> list[ShareGrant]:
        return (
            self.db.query(ShareGrant)
            .filter(ShareGrant.shared_by == owner)
            .order_by(ShareGrant.shared_on.desc())
            .all()
        )

    def _check_owned_lists(self, owner: str, list_ids: set[str]) -> None:
        """Ensure every list exists, is live, and belongs to the owner."""
        rows = (
            self.db.query(VerificationList)
            .filter(
                VerificationList.id.in_(list_ids),
                VerificationList.deleted_at.is_(None),
            )
            .all()
        )
        found = {row.id: row for row in rows}
        missing = sorted(list_ids - found.keys())
        if missing:
            raise NotFoundError(f"Verification list not found: {', '.join(missing)}")
        foreign = sorted(lid for lid, row in found.items() if row.owner_id != owner)
        if foreign:
            raise PermissionDeniedError(
                f"Cannot share lists owned by another account: {', '.join(foreign)}"
            )

    def share(
        self,
        owner: str,
        member: str,
        resource_ids: Iterable[str] | str,
        access_type: Optional[AccessType | str] = None,
    ) -> ShareGrant:
        """Share lists with a member, creating or merging the grant.

        Args:
            owner: Identity sharing its lists
            member: Identity receiving the grant
            resource_ids: One list id or an iterable of them
            access_type: "read" or "write"; None keeps the existing level
                (new grants default to read)

        Returns:
            The created or updated ShareGrant

        Raises:
            InvalidArgumentError: Missing member/resources, self-share, bad access type
            NotFoundError: A list does not exist or was deleted
            PermissionDeniedError: A list is owned by someone else
        """
        if not member:
            raise InvalidArgumentError("Member ID is required")
        if isinstance(resource_ids, str):
            resource_ids = [resource_ids]
        new_ids = {str(rid) for rid in (resource_ids or []) if rid}
        if not new_ids:
            raise InvalidArgumentError("Email list IDs are required")
        if member == owner:
            raise InvalidArgumentError("Cannot share lists with yourself")
        if access_type is not None:
            try:
                access_type = AccessType(access_type)
            except ValueError:
                raise InvalidArgumentError(f"Invalid access type: {access_type}")

        self._check_owned_lists(owner, new_ids)

        grant = self.get(owner, member)
        if grant is None:
            grant = ShareGrant(
                id=str(uuid.uuid4()),
                shared_by=owner,
                member=member,
                access_type=(access_type or AccessType.READ).value,
                shared_on=datetime.utcnow(),
            )
            self.db.add(grant)
            to_add = new_ids
        else:
            to_add = new_ids - grant.list_ids
            if access_type is not None:
                grant.access_type = access_type.value

        for list_id in sorted(to_add):
            grant.resources.append(ShareGrantResource(list_id=list_id))

        self.db.commit()
        self.db.refresh(grant)
        log.info(
            f"Shared {len(to_add)} new list(s) from {owner} with {member} "
            f"({grant.access_type}, {len(grant.resources)} total)"
        )
        return grant

    def revoke(self, owner: str, member: str) -> bool:
        """Remove a member entirely, dropping every list shared with them.

        Returns:
            True if a grant existed and was deleted
        """
        if not member:
            raise InvalidArgumentError("Member ID is required")
        grant = self.get(owner, member)
        if grant is None:
            log.debug(f"No grant from {owner} to {member} to revoke")
            return False
        self.db.delete(grant)
        self.db.commit()
        log.info(f"Revoked all access from {owner} to {member}")
        return True

    def change_access_type(
        self, owner: str, member: str, access_type: AccessType | str
    ) -> ShareGrant:
        """Change the access level of an existing grant.

        Raises:
            InvalidArgumentError: Missing member or bad access type
            NotFoundError: No grant exists between owner and member
        """
        if not member:
            raise InvalidArgumentError("Member ID is required")
        try:
            access_type = AccessType(access_type)
        except ValueError:
            raise InvalidArgumentError(f"Invalid access type: {access_type}")

        grant = self.get(owner, member)
        if grant is None:
            raise NotFoundError(f"No share grant from {owner} to {member}")
        grant.access_type = access_type.value
        self.db.commit()
        self.db.refresh(grant)
        log.info(f"Changed access from {owner} to {member}: {access_type.value}")
        return grant

    def remove_resource(self, list_id: str, commit: bool = True) -> int:
        """Drop a list from every grant that covers it.

        Returns:
            Number of grants that lost the list
        """
        removed = (
            self.db.query(ShareGrantResource)
            .filter(ShareGrantResource.list_id == list_id)
            .delete(synchronize_session=False)
        )
        if commit:
            self.db.commit()
        return removed

    def stats(self, owner: str) -> ShareStats:
        """Sharing counters for an identity, both directions."""
        given = self.grants_by_owner(owner)
        received = self.grants_for_member(owner)

        shared_by_you: set[str] = set()
        for grant in given:
            shared_by_you |= grant.list_ids
        shared_with_you: set[str] = set()
        for grant in received:
            shared_with_you |= grant.list_ids

        return ShareStats(
            lists_shared_by_you=len(shared_by_you),
            lists_shared_with_you=len(shared_with_you),
            members_added_by_you=len({g.member for g in given}),
            members=[
                MemberSummary(
                    grant_id=g.id,
                    member=g.member,
                    access_type=g.access_type,
                    shared_on=g.shared_on,
                    total_lists=len(g.resources),
                )
                for g in given
            ],
        )
