"""Pytest fixtures for bulk verification tests."""
import asyncio
import json
from typing import AsyncGenerator

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from bulkverify.audit.logger import reset_audit_logger
from bulkverify.db.models import Base
from bulkverify.jobs.controller import JobLifecycleController, reset_lock_registry
from bulkverify.jobs.locks import ResourceLockRegistry
from bulkverify.provider.client import BouncifyClient, reset_bouncify_client

PROVIDER_BASE = "https://bouncify.test/v1"


def make_csv(count: int, header: str = "email") -> bytes:
    """CSV bytes with a header row and ``count`` addresses."""
    rows = [header] + [f"user{i}@example.com" for i in range(count)]
    return ("\n".join(rows) + "\n").encode()


# =============================================================================
# Fake Provider
# =============================================================================


class FakeBouncify:
    """Scripted stand-in for the Bouncify HTTP API.

    Jobs live in ``jobs`` keyed by job id. ``fail(operation, ...)`` makes the
    next calls of that operation return an error response.
    Setting ``upload_gate`` holds uploads until the event is set.
    """

    def __init__(self):
        self.jobs: dict[str, dict] = {}
        self.calls: list[tuple[str, httpx.Request]] = []
        self.failures: dict[str, tuple[int, object]] = {}
        self.single_results: dict[str, str] = {}
        self.credits_remaining = 1000
        self.upload_total: int | None = None
        self.omit_job_id = False
        self.upload_gate: asyncio.Event | None = None
        self._counter = 0

    def fail(self, operation: str, status_code: int = 500, payload: object = None) -> None:
        self.failures[operation] = (
            status_code,
            payload if payload is not None else {"success": False, "result": "boom"},
        )

    def complete(self, job_id: str, verified: int, results: dict[str, int], total=None) -> None:
        job = self.jobs[job_id]
        job["status"] = "completed"
        job["verified"] = verified
        job["results"] = results
        if total is not None:
            job["total"] = total

    def set_progress(self, job_id: str, status: str, verified: int, total=None) -> None:
        job = self.jobs[job_id]
        job["status"] = status
        job["verified"] = verified
        if total is not None:
            job["total"] = total

    def operations(self) -> list[str]:
        return [op for op, _ in self.calls]

    def _operation(self, request: httpx.Request) -> tuple[str, str | None]:
        path = request.url.path
        if path == "/v1/bulk" and request.method == "POST":
            return "upload", None
        if path.startswith("/v1/bulk/"):
            job_id = path.rsplit("/", 1)[1]
            return {"PATCH": "start", "GET": "status", "DELETE": "delete"}[request.method], job_id
        if path == "/v1/download":
            return "download", request.url.params.get("jobId")
        if path == "/v1/verify":
            return "single", None
        if path == "/v1/info":
            return "info", None
        return "unknown", None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        # Yield so concurrent callers interleave around the remote call
        await asyncio.sleep(0)
        operation, job_id = self._operation(request)
        self.calls.append((operation, request))

        if operation == "upload" and self.upload_gate is not None:
            await self.upload_gate.wait()

        if operation in self.failures:
            status_code, payload = self.failures[operation]
            return httpx.Response(status_code, json=payload)

        if operation == "upload":
            self._counter += 1
            new_id = f"job-{self._counter}"
            self.jobs[new_id] = {
                "status": "ready",
                "total": self.upload_total,
                "verified": 0,
                "results": {},
                "rows": [],
            }
            body = {"success": True, "message": "File uploaded"}
            if not self.omit_job_id:
                body["job_id"] = new_id
            if self.upload_total is not None:
                body["total_emails"] = self.upload_total
            return httpx.Response(201, json=body)

        if operation == "single":
            email = request.url.params.get("email")
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "email": email,
                    "result": self.single_results.get(email, "deliverable"),
                },
            )

        if operation == "info":
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "credits_info": {"credits_remaining": self.credits_remaining},
                },
            )

        job = self.jobs.get(job_id)
        if job is None:
            return httpx.Response(404, json={"success": False, "result": "Job not found"})

        if operation == "start":
            job["status"] = "verifying"
            return httpx.Response(200, json={"success": True, "message": "Verification started"})

        if operation == "status":
            body = {
                "success": True,
                "job_id": job_id,
                "status": job["status"],
                "verified": job["verified"],
                "results": job["results"],
                "created_at": "2026-10-19T10:00:00Z",
            }
            if job["total"] is not None:
                body["total"] = job["total"]
            return httpx.Response(200, json=body)

        if operation == "download":
            wanted = set(json.loads(request.content)["filterResult"])
            lines = ["email,result"] + [
                f"{email},{result}" for email, result in job["rows"] if result in wanted
            ]
            return httpx.Response(
                200,
                content=("\n".join(lines) + "\n").encode(),
                headers={"Content-Type": "text/csv"},
            )

        if operation == "delete":
            del self.jobs[job_id]
            return httpx.Response(200, json={"success": True, "result": "Job deleted"})

        return httpx.Response(404, json={"success": False, "result": "Unknown endpoint"})


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset global singletons between tests."""
    reset_audit_logger()
    reset_lock_registry()
    reset_bouncify_client()
    yield
    reset_audit_logger()
    reset_lock_registry()
    reset_bouncify_client()


@pytest.fixture
def in_memory_db():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def fake_bouncify() -> FakeBouncify:
    return FakeBouncify()


@pytest.fixture
async def provider(fake_bouncify) -> AsyncGenerator[BouncifyClient, None]:
    """Provider client wired to the fake Bouncify API."""
    client = BouncifyClient(
        api_key="test-key",
        single_endpoint=f"{PROVIDER_BASE}/verify",
        bulk_endpoint=f"{PROVIDER_BASE}/bulk",
        download_endpoint=f"{PROVIDER_BASE}/download",
        info_endpoint=f"{PROVIDER_BASE}/info",
        transport=httpx.MockTransport(fake_bouncify.handler),
    )
    yield client
    await client.close()


@pytest.fixture
def controller(in_memory_db, provider) -> JobLifecycleController:
    return JobLifecycleController(in_memory_db, provider, locks=ResourceLockRegistry())


@pytest.fixture
async def client(in_memory_db, provider) -> AsyncGenerator[AsyncClient, None]:
    """ASGI client with the database and provider overridden."""
    from bulkverify.api.deps import get_provider
    from bulkverify.db.session import get_db
    from bulkverify.main import app

    def override_get_db():
        yield in_memory_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_provider] = lambda: provider
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as async_client:
            yield async_client
    finally:
        app.dependency_overrides.clear()


def identity(user: str) -> dict:
    """Headers carrying an acting identity."""
    return {"X-User-ID": user}
