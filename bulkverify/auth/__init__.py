"""Authorization for the bulk verification service."""

from bulkverify.auth.access import AccessResult, can_write_list, resolve_access

__all__ = [
    "AccessResult",
    "can_write_list",
    "resolve_access",
]
