"""SQLAlchemy ORM models for the bulk verification service.

This module defines the database schema for:
- Verification lists (uploaded email batches linked to a provider job)
- Share grants (owner -> member delegation over a set of lists)
- Verification records (append-only credit ledger)
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class VerificationList(Base):
    """One uploaded batch of email addresses.

    The list is the resource under contention: it has exactly one owner,
    a lifecycle status driven by the job controller, and counters mirrored
    from the provider job. ``version`` is bumped on every state-machine
    write and guards the conditional updates.
    """

    __tablename__ = "verification_lists"

    id = Column(String(36), primary_key=True)  # UUID
    owner_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False)
    external_job_id = Column(String(128), nullable=True, index=True)
    total_emails = Column(Integer, default=0, nullable=False)
    verified_count = Column(Integer, default=0, nullable=False)
    credit_consumed = Column(Integer, default=0, nullable=False)

    deliverable = Column(Integer, default=0, nullable=False)
    undeliverable = Column(Integer, default=0, nullable=False)
    accept_all = Column(Integer, default=0, nullable=False)
    unknown = Column(Integer, default=0, nullable=False)

    version = Column(Integer, default=1, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def category_counts(self) -> dict[str, int]:
        return {
            "deliverable": self.deliverable,
            "undeliverable": self.undeliverable,
            "accept_all": self.accept_all,
            "unknown": self.unknown,
        }

    def __repr__(self) -> str:
        return (
            f"<VerificationList(id={self.id!r}, owner={self.owner_id!r}, "
            f"status={self.status!r}, job={self.external_job_id!r})>"
        )


class ShareGrant(Base):
    """Capability handed from an owner to a member.

    At most one grant exists per (shared_by, member) pair. Repeated share
    actions merge into its resource set.
    """

    __tablename__ = "share_grants"

    id = Column(String(36), primary_key=True)  # UUID
    shared_by = Column(String(64), nullable=False, index=True)
    member = Column(String(64), nullable=False, index=True)
    access_type = Column(String(10), default="read", nullable=False)
    shared_on = Column(DateTime, default=datetime.utcnow, nullable=False)

    resources = relationship(
        "ShareGrantResource",
        back_populates="grant",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("shared_by", "member", name="uq_share_grant_pair"),
    )

    @property
    def list_ids(self) -> set[str]:
        """Resource set covered by this grant."""
        return {r.list_id for r in self.resources}

    def __repr__(self) -> str:
        return (
            f"<ShareGrant(shared_by={self.shared_by!r}, member={self.member!r}, "
            f"access={self.access_type!r})>"
        )


class ShareGrantResource(Base):
    """One verification list covered by a share grant."""

    __tablename__ = "share_grant_resources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    grant_id = Column(
        String(36), ForeignKey("share_grants.id", ondelete="CASCADE"), nullable=False
    )
    list_id = Column(
        String(36), ForeignKey("verification_lists.id"), nullable=False, index=True
    )

    grant = relationship("ShareGrant", back_populates="resources")

    __table_args__ = (
        UniqueConstraint("grant_id", "list_id", name="uq_grant_list"),
    )

    def __repr__(self) -> str:
        return f"<ShareGrantResource(grant_id={self.grant_id!r}, list_id={self.list_id!r})>"


class VerificationRecord(Base):
    """Append-only ledger entry for a credit-affecting event.

    Never mutated after creation except for the soft-delete marker.
    """

    __tablename__ = "verification_records"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(64), nullable=False, index=True)
    source = Column(String(20), nullable=False)  # single | bulk | credit_purchase
    credits_used = Column(Integer, default=0, nullable=False)
    credits_purchased = Column(Integer, default=0, nullable=False)
    email = Column(String(320), nullable=True)
    result = Column(String(50), nullable=True)
    summary = Column(String(255), nullable=True)
    list_id = Column(String(36), nullable=True, index=True)
    external_job_id = Column(String(128), nullable=True)
    data = Column(JSON, nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<VerificationRecord(id={self.id!r}, user={self.user_id!r}, "
            f"source={self.source!r}, used={self.credits_used})>"
        )
