"""Tests for the Bouncify provider client."""

import json

import httpx
import pytest

from bulkverify.exceptions import ExternalProviderError, InvalidArgumentError
from bulkverify.provider.client import BouncifyClient, filter_categories
from tests.conftest import PROVIDER_BASE, make_csv


def _client(handler) -> BouncifyClient:
    return BouncifyClient(
        api_key="k-123",
        single_endpoint=f"{PROVIDER_BASE}/verify",
        bulk_endpoint=f"{PROVIDER_BASE}/bulk",
        download_endpoint=f"{PROVIDER_BASE}/download",
        info_endpoint=f"{PROVIDER_BASE}/info",
        transport=httpx.MockTransport(handler),
    )


class TestFilterCategories:
    def test_all_expands(self):
        assert filter_categories("all") == ["deliverable", "undeliverable", "accept_all", "unknown"]
        assert filter_categories(None) == filter_categories("all")

    def test_single_category(self):
        assert filter_categories("undeliverable") == ["undeliverable"]

    def test_unknown_filter(self):
        with pytest.raises(InvalidArgumentError):
            filter_categories("spam")


class TestRequests:
    @pytest.mark.asyncio
    async def test_submit_batch_sends_multipart_with_api_key(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["params"] = dict(request.url.params)
            seen["body"] = request.read()
            return httpx.Response(200, json={"success": True, "job_id": "abc", "total_emails": 3})

        client = _client(handler)
        batch = await client.submit_batch(make_csv(3), "leads.csv")
        await client.close()

        assert batch.job_id == "abc"
        assert batch.total_emails == 3
        assert seen["method"] == "POST"
        assert seen["params"] == {"apikey": "k-123"}
        assert b'name="local_file"' in seen["body"]
        assert b"user0@example.com" in seen["body"]

    @pytest.mark.asyncio
    async def test_start_job_patches_action(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["json"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True})

        client = _client(handler)
        await client.start_job("job/1")
        await client.close()

        assert seen["method"] == "PATCH"
        assert seen["json"] == {"action": "start"}
        assert seen["path"].startswith("/v1/bulk/job")

    @pytest.mark.asyncio
    async def test_job_status_parsing(self):
        def handler(request):
            return httpx.Response(
                200,
                json={
                    "status": "completed",
                    "processed": 118,
                    "total": 120,
                    "results": {"deliverable": 100, "undeliverable": 18},
                },
            )

        client = _client(handler)
        status = await client.get_job_status("j1")
        await client.close()

        assert status.status == "completed"
        assert status.verified_count == 118
        assert status.total == 120
        assert status.category_counts["deliverable"] == 100
        assert status.category_counts["unknown"] is None

    @pytest.mark.asyncio
    async def test_download_sends_filter(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            seen["json"] = json.loads(request.content)
            return httpx.Response(200, content=b"email,result\n", headers={"Content-Type": "text/csv"})

        client = _client(handler)
        content = await client.download_results("j1", "undeliverable")
        await client.close()

        assert content == b"email,result\n"
        assert seen["params"]["jobId"] == "j1"
        assert seen["json"] == {"filterResult": ["undeliverable"]}

    @pytest.mark.asyncio
    async def test_credit_balance(self):
        def handler(request):
            return httpx.Response(200, json={"credits_info": {"credits_remaining": 250}})

        client = _client(handler)
        assert await client.credit_balance() == 250
        await client.close()


class TestErrors:
    @pytest.mark.asyncio
    async def test_http_error_carries_status_and_payload(self):
        def handler(request):
            return httpx.Response(404, json={"success": False, "result": "Job not found"})

        client = _client(handler)
        with pytest.raises(ExternalProviderError) as exc_info:
            await client.delete_job("missing")
        await client.close()

        assert exc_info.value.status_code == 404
        assert exc_info.value.is_not_found
        assert exc_info.value.payload == {"success": False, "result": "Job not found"}
        assert exc_info.value.kind == "external_provider"

    @pytest.mark.asyncio
    async def test_success_false_payload_is_an_error(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "result": "Invalid API key"})

        client = _client(handler)
        with pytest.raises(ExternalProviderError, match="Invalid API key"):
            await client.single_lookup("a@b.c")
        await client.close()

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>oops</html>")

        client = _client(handler)
        with pytest.raises(ExternalProviderError, match="Invalid JSON"):
            await client.start_job("j1")
        await client.close()

    @pytest.mark.asyncio
    async def test_undecodable_body(self):
        def handler(request):
            return httpx.Response(200, content=b"\x80\x81{bad")

        client = _client(handler)
        with pytest.raises(ExternalProviderError, match="Invalid JSON") as exc_info:
            await client.get_job_status("job-1")
        await client.close()

        assert exc_info.value.status_code == 200

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(ExternalProviderError) as exc_info:
            await client.credit_balance()
        await client.close()

        assert exc_info.value.status_code is None
