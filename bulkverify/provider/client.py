"""Bouncify bulk verification API client.

Thin async wrapper over the provider's HTTP API. Each operation is a
single best-effort call: transport errors, non-2xx responses, undecodable
bodies and ``success: false`` payloads all raise ExternalProviderError.
"""

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from bulkverify.config import (
    BOUNCIFY_API_ENDPOINT,
    BOUNCIFY_API_KEY,
    BOUNCIFY_BULK_ENDPOINT,
    BOUNCIFY_DOWNLOAD_ENDPOINT,
    BOUNCIFY_INFO_ENDPOINT,
    PROVIDER_TIMEOUT_SECONDS,
)
from bulkverify.exceptions import ExternalProviderError, InvalidArgumentError
from bulkverify.provider.models import (
    RESULT_CATEGORIES,
    JobStatus,
    SingleLookupResult,
    SubmittedBatch,
)

log = logging.getLogger(__name__)

DOWNLOAD_FILTERS = RESULT_CATEGORIES + ("all",)


def filter_categories(category_filter: Optional[str]) -> list[str]:
    """Translate a download filter into the provider's result types.

    Raises:
        InvalidArgumentError: Unknown filter value
    """
    if not category_filter or category_filter == "all":
        return list(RESULT_CATEGORIES)
    if category_filter not in RESULT_CATEGORIES:
        raise InvalidArgumentError(
            f"Invalid filter {category_filter!r}; expected one of {', '.join(DOWNLOAD_FILTERS)}"
        )
    return [category_filter]


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


class BouncifyClient:
    """Client for the Bouncify single and bulk verification endpoints."""

    def __init__(
        self,
        api_key: str | None = None,
        single_endpoint: str = BOUNCIFY_API_ENDPOINT,
        bulk_endpoint: str = BOUNCIFY_BULK_ENDPOINT,
        download_endpoint: str = BOUNCIFY_DOWNLOAD_ENDPOINT,
        info_endpoint: str = BOUNCIFY_INFO_ENDPOINT,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: Provider API key. Defaults to BOUNCIFY_API_KEY.
            single_endpoint: Single-address verify URL
            bulk_endpoint: Bulk job collection URL
            download_endpoint: Result download URL
            info_endpoint: Account info URL
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.api_key = api_key if api_key is not None else BOUNCIFY_API_KEY
        self.single_endpoint = single_endpoint
        self.bulk_endpoint = bulk_endpoint.rstrip("/")
        self.download_endpoint = download_endpoint
        self.info_endpoint = info_endpoint
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _job_url(self, job_id: str) -> str:
        return f"{self.bulk_endpoint}/{quote(str(job_id), safe='')}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        params: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue one provider call and classify every failure."""
        query = {"apikey": self.api_key, **(params or {})}
        try:
            client = await self._get_client()
            response = await client.request(method, url, params=query, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            payload = _error_payload(e.response)
            log.warning(
                f"Bouncify {operation} failed: HTTP {e.response.status_code} {payload}"
            )
            raise ExternalProviderError(
                f"Provider {operation} failed: HTTP {e.response.status_code}",
                status_code=e.response.status_code,
                payload=payload,
            ) from e
        except httpx.TimeoutException as e:
            log.warning(f"Bouncify {operation} timed out")
            raise ExternalProviderError(f"Provider {operation} timed out") from e
        except httpx.RequestError as e:
            log.warning(f"Bouncify {operation} network error: {e}")
            raise ExternalProviderError(f"Network error during provider {operation}: {e}") from e

    def _json(self, response: httpx.Response, operation: str) -> dict[str, Any]:
        """Decode a JSON body and reject explicit failure payloads."""
        try:
            data = response.json() if response.content else {}
        except ValueError as e:
            raise ExternalProviderError(
                f"Invalid JSON from provider {operation}",
                status_code=response.status_code,
                payload=response.text,
            ) from e
        if not isinstance(data, dict):
            raise ExternalProviderError(
                f"Unexpected payload from provider {operation}",
                status_code=response.status_code,
                payload=data,
            )
        if data.get("success") is False:
            raise ExternalProviderError(
                f"Provider {operation} rejected: {data.get('result') or data.get('message') or 'error'}",
                status_code=response.status_code,
                payload=data,
            )
        return data

    async def submit_batch(self, content: bytes, filename: str) -> SubmittedBatch:
        """Upload raw CSV rows as a new bulk job."""
        response = await self._request(
            "POST",
            self.bulk_endpoint,
            operation="upload",
            files={"local_file": (filename, content, "text/csv")},
        )
        data = self._json(response, "upload")
        job_id = data.get("job_id") or data.get("jobId") or data.get("id")
        log.info(f"Bouncify accepted batch {filename} as job {job_id}")
        return SubmittedBatch(
            job_id=str(job_id) if job_id else None,
            total_emails=_as_int(data.get("total_emails")) or 0,
            raw=data,
        )

    async def start_job(self, job_id: str) -> dict[str, Any]:
        """Begin processing a previously submitted batch."""
        response = await self._request(
            "PATCH",
            self._job_url(job_id),
            operation="start",
            json={"action": "start"},
        )
        return self._json(response, "start")

    async def get_job_status(self, job_id: str) -> JobStatus:
        """Fetch the current status and counters of a bulk job."""
        response = await self._request("GET", self._job_url(job_id), operation="status")
        data = self._json(response, "status")

        verified = _as_int(data.get("verified"))
        if verified is None:
            verified = _as_int(data.get("processed"))
        total = _as_int(data.get("total"))
        if total is None:
            total = _as_int(data.get("total_emails"))
        results = data.get("results") if isinstance(data.get("results"), dict) else {}

        return JobStatus(
            job_id=job_id,
            status=data.get("status"),
            verified_count=verified or 0,
            total=total,
            category_counts={c: _as_int(results.get(c)) for c in RESULT_CATEGORIES},
            created_at=data.get("created_at"),
            raw=data,
        )

    async def download_results(
        self, job_id: str, category_filter: Optional[str] = "all"
    ) -> bytes:
        """Download result rows restricted to the requested categories."""
        categories = filter_categories(category_filter)
        response = await self._request(
            "POST",
            self.download_endpoint,
            operation="download",
            params={"jobId": job_id},
            json={"filterResult": categories},
        )
        return response.content

    async def delete_job(self, job_id: str) -> dict[str, Any]:
        """Delete a bulk job on the provider side."""
        response = await self._request("DELETE", self._job_url(job_id), operation="delete")
        return self._json(response, "delete")

    async def single_lookup(self, email: str) -> SingleLookupResult:
        """Verify one address synchronously."""
        response = await self._request(
            "GET",
            self.single_endpoint,
            operation="single verify",
            params={"email": email},
        )
        data = self._json(response, "single verify")
        return SingleLookupResult(
            email=data.get("email") or email,
            result=data.get("result"),
            raw=data,
        )

    async def credit_balance(self) -> int:
        """Remaining credits on the provider account."""
        response = await self._request("GET", self.info_endpoint, operation="info")
        data = self._json(response, "info")
        credits_info = data.get("credits_info") or {}
        return _as_int(credits_info.get("credits_remaining")) or 0


def _error_payload(response: httpx.Response) -> Any:
    """Best-effort extraction of the provider's error body."""
    try:
        return response.json()
    except ValueError:
        return response.text


# Global client instance
_bouncify_client: BouncifyClient | None = None


def get_bouncify_client() -> BouncifyClient:
    """Get the global provider client."""
    global _bouncify_client
    if _bouncify_client is None:
        _bouncify_client = BouncifyClient()
    return _bouncify_client


async def close_bouncify_client() -> None:
    """Close the global provider client."""
    global _bouncify_client
    if _bouncify_client is not None:
        await _bouncify_client.close()
        _bouncify_client = None


def reset_bouncify_client() -> None:
    """Reset the global client (for testing)."""
    global _bouncify_client
    _bouncify_client = None
