"""
CloudFlare client against a mocked HTTP transport
"""
import json

import httpx
import pytest

from zonekeeper.models.provider import DNSProvider, ProviderType
from zonekeeper.providers.base import ErrorCause
from zonekeeper.providers.cloudflare import CloudflareClient
from zonekeeper.schemas.remote import RecordSpec


def envelope(result, page=1, total_pages=1, status_code=200):
    return httpx.Response(status_code, json={
        "success": True, "errors": [], "result": result,
        "result_info": {"page": page, "total_pages": total_pages},
    })


def make_client(handler, monkeypatch=None, slept=None):
    provider = DNSProvider(
        name="cloudflare",
        type=ProviderType.CLOUDFLARE,
        timeout=10,
        connection_config={"api_token": "cf-token", "account_id": "acc1"},
    )
    client = CloudflareClient(provider, transport=httpx.MockTransport(handler))
    if slept is not None:
        async def fake_sleep(seconds):
            slept.append(seconds)
        monkeypatch.setattr(client, "_sleep", fake_sleep)
    return client


async def test_list_zones_follows_pagination():
    pages = {
        "1": [{"id": "z1", "name": "example.com", "name_servers": ["ana.ns.cloudflare.com"]}],
        "2": [{"id": "z2", "name": "example.org", "name_servers": []}],
    }

    def handler(request):
        assert request.headers["Authorization"] == "Bearer cf-token"
        page = request.url.params["page"]
        return envelope(pages[page], page=int(page), total_pages=2)

    result = await make_client(handler).list_zones()

    assert result.success
    assert [z.name for z in result.data] == ["example.com.", "example.org."]
    assert result.data[0].nameservers == ["ana.ns.cloudflare.com."]


async def test_rate_limit_is_retried_with_backoff(monkeypatch):
    calls = []
    slept = []

    def handler(request):
        calls.append(request.url.path)
        if len(calls) == 1:
            return httpx.Response(429, json={"success": False, "errors": [{"message": "slow down"}]})
        return envelope([])

    result = await make_client(handler, monkeypatch, slept).list_zones()

    assert result.success
    assert len(calls) == 2
    assert slept == [1.0]


async def test_retry_after_header_raises_the_delay(monkeypatch):
    slept = []
    responses = [httpx.Response(429, headers={"Retry-After": "3"}), envelope([])]

    def handler(request):
        return responses.pop(0)

    result = await make_client(handler, monkeypatch, slept).list_zones()

    assert result.success
    assert slept == [3]


async def test_rate_limit_gives_up_after_three_attempts(monkeypatch):
    slept = []

    def handler(request):
        return httpx.Response(429, json={"success": False})

    result = await make_client(handler, monkeypatch, slept).list_zones()

    assert not result.success
    assert result.cause == ErrorCause.RATE_LIMITED
    assert result.retry_after == 60
    assert slept == [1.0, 2.0]


async def test_create_record_payload():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return envelope({
            "id": "rec1", "name": "www.example.com", "type": "A", "content": "192.0.2.1", "ttl": 300,
            "proxied": False,
        })

    result = await make_client(handler).create_record(
        "z1", RecordSpec(name="www.example.com.", type="A", content="192.0.2.1", ttl=300),
    )

    assert result.success
    assert seen["method"] == "POST"
    assert seen["path"].endswith("/zones/z1/dns_records")
    assert seen["body"] == {"type": "A", "name": "www.example.com", "content": "192.0.2.1", "ttl": 300,
                            "proxied": False}
    assert result.data.id == "rec1"
    assert result.data.name == "www.example.com."


async def test_invalid_ttl_never_reaches_the_api():
    def handler(request):
        raise AssertionError("no request expected")

    result = await make_client(handler).create_record(
        "z1", RecordSpec(name="www.example.com.", type="A", content="192.0.2.1", ttl=172800),
    )

    assert not result.success
    assert result.cause == ErrorCause.VALIDATION


async def test_api_errors_are_classified():
    def forbidden(request):
        return httpx.Response(403, json={"success": False, "errors": [{"code": 9109, "message": "Invalid token"}]})

    def missing(request):
        return httpx.Response(404, json={"success": False, "errors": [{"message": "Zone not found"}]})

    denied = await make_client(forbidden).list_zones()
    assert denied.cause == ErrorCause.AUTHENTICATION
    assert "Invalid token" in denied.message

    gone = await make_client(missing).get_zone("z404")
    assert gone.cause == ErrorCause.NOT_FOUND


async def test_zone_name_is_resolved_to_id():
    paths = []

    def handler(request):
        paths.append(request.url.path)
        if request.url.params.get("name") == "example.com":
            return envelope([{"id": "z1", "name": "example.com"}])
        return envelope({"status": "active", "ds": "example.com. 3600 IN DS 2371 13 2 1F98"})

    result = await make_client(handler).get_dnssec_status("example.com.")

    assert result.success
    assert result.data.managed_by_provider is True
    assert paths[-1].endswith("/zones/z1/dnssec")


async def test_kind_changes_are_unsupported():
    def handler(request):
        raise AssertionError("no request expected")

    result = await make_client(handler).update_zone("z1", {"kind": "Secondary"})
    assert result.cause == ErrorCause.UNSUPPORTED
