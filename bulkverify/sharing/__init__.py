"""Share registry: delegated read/write grants over verification lists."""

from bulkverify.sharing.store import (
    AccessType,
    MemberSummary,
    ShareRegistry,
    ShareStats,
    parse_access_type,
)

__all__ = [
    "AccessType",
    "MemberSummary",
    "ShareRegistry",
    "ShareStats",
    "parse_access_type",
]
