"""Database module for the bulk verification service.

This module provides SQLAlchemy ORM models and session management for
verification lists, share grants and the credit ledger.
"""

from bulkverify.db.models import (
    Base,
    ShareGrant,
    ShareGrantResource,
    VerificationList,
    VerificationRecord,
)
from bulkverify.db.session import SessionLocal, engine, get_db, init_database

__all__ = [
    "Base",
    "ShareGrant",
    "ShareGrantResource",
    "VerificationList",
    "VerificationRecord",
    "get_db",
    "init_database",
    "engine",
    "SessionLocal",
]
