"""Verification list entity: lifecycle states and persistence."""

from bulkverify.lists.states import ListStatus, can_transition, map_provider_status
from bulkverify.lists.store import ListPage, ListQuery, VerificationListStore

__all__ = [
    "ListStatus",
    "ListPage",
    "ListQuery",
    "VerificationListStore",
    "can_transition",
    "map_provider_status",
]
