"""Shared FastAPI dependencies: acting identity, provider and controller."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from bulkverify.db.session import get_db
from bulkverify.jobs.controller import JobLifecycleController, get_lock_registry
from bulkverify.provider.client import BouncifyClient, get_bouncify_client


def require_identity():
    """Create a dependency returning the acting identity.

    The identity is set by the upstream session layer in the header named
    by ``BULKVERIFY_IDENTITY_HEADER``.
    """

    async def dependency(request: Request) -> str:
        from bulkverify.config import IDENTITY_HEADER

        identity = request.headers.get(IDENTITY_HEADER, "").strip()
        if not identity:
            raise HTTPException(
                status_code=401,
                detail="Authentication required",
            )
        return identity

    return Depends(dependency)


# Pre-built identity dependency
require_actor: Annotated[str, Depends] = require_identity()


def get_provider() -> BouncifyClient:
    """Provider client dependency (overridden in tests)."""
    return get_bouncify_client()


def get_controller(
    db: Session = Depends(get_db),
    provider: BouncifyClient = Depends(get_provider),
) -> JobLifecycleController:
    """Request-scoped lifecycle controller sharing the global lock registry."""
    return JobLifecycleController(db, provider, locks=get_lock_registry())
