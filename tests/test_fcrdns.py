"""
Forward-confirmed reverse DNS checks against a scripted resolver
"""
import json

import pytest

from zonekeeper.cli import run_fcrdns
from zonekeeper.core.exceptions import ValidationError
from zonekeeper.services.fcrdns_service import (
    FORWARD_MISMATCH,
    MISMATCH,
    MISSING_FORWARD,
    MISSING_REVERSE,
    FcrDnsService,
)


@pytest.fixture
def service(lookup):
    return FcrDnsService(lookup)


async def test_pass(service, lookup):
    lookup.add("mail.example.com", "A", "203.0.113.10")
    lookup.add("10.113.0.203.in-addr.arpa", "PTR", "mail.example.com.")

    result = await service.validate("mail.example.com.", "203.0.113.10")

    assert result.passes()
    assert result.has_forward_dns and result.has_reverse_dns and result.has_fcrdns
    assert result.forward_ip == "203.0.113.10"
    assert result.reverse_fqdn == "mail.example.com"
    assert result.errors == []


async def test_missing_reverse(service, lookup):
    lookup.add("mail.example.com", "A", "203.0.113.10")

    result = await service.validate("mail.example.com", "203.0.113.10")

    assert not result.passes()
    assert not result.has_fcrdns
    assert result.error_codes() == [MISSING_REVERSE]


async def test_missing_forward(service, lookup):
    lookup.add("10.113.0.203.in-addr.arpa", "PTR", "mail.example.com.")

    result = await service.validate("mail.example.com", "203.0.113.10")

    assert not result.has_forward_dns
    assert result.has_reverse_dns
    assert MISSING_FORWARD in result.error_codes()
    assert not result.has_fcrdns


async def test_ptr_mismatch(service, lookup):
    lookup.add("mail.example.com", "A", "203.0.113.10")
    lookup.add("10.113.0.203.in-addr.arpa", "PTR", "host-203-0-113-10.isp.example.")

    result = await service.validate("mail.example.com", "203.0.113.10")

    assert result.error_codes() == [MISMATCH]
    assert result.reverse_fqdn == "host-203-0-113-10.isp.example"


async def test_forward_points_elsewhere_is_a_warning(service, lookup):
    """The reverse step follows the address the name actually resolves to"""
    lookup.add("mail.example.com", "A", "203.0.113.20")
    lookup.add("20.113.0.203.in-addr.arpa", "PTR", "mail.example.com.")

    result = await service.validate("mail.example.com", "203.0.113.10")

    assert [w.code for w in result.warnings] == [FORWARD_MISMATCH]
    assert result.forward_ip == "203.0.113.20"
    assert result.has_fcrdns


async def test_ipv6_uses_aaaa(service, lookup):
    lookup.add("mail.example.com", "AAAA", "2001:db8::1")
    lookup.add(
        "1.0.0.0.0.0.0.0.0.0.0.0.0.0.0.0.0.0.0.0.0.0.0.0.8.b.d.0.1.0.0.2.ip6.arpa", "PTR", "mail.example.com."
    )

    result = await service.validate("mail.example.com", "2001:0db8::0001")

    assert result.passes()
    assert result.ip == "2001:db8::1"


async def test_forward_only(service, lookup):
    lookup.add("mail.example.com", "A", "203.0.113.10")

    result = await service.validate_forward_only("mail.example.com", "203.0.113.10")

    assert result.has_forward_dns
    assert not result.has_fcrdns
    assert result.errors == []


async def test_invalid_ip(service):
    with pytest.raises(ValidationError):
        await service.validate("mail.example.com", "203.0.113")


async def test_json_uses_camel_case(service, lookup):
    lookup.add("mail.example.com", "A", "203.0.113.10")
    lookup.add("10.113.0.203.in-addr.arpa", "PTR", "mail.example.com.")

    body = json.loads((await service.validate("mail.example.com", "203.0.113.10")).to_json())

    assert body["hasFcrDns"] is True
    assert body["hasForwardDns"] is True
    assert body["reverseFqdn"] == "mail.example.com"


async def test_wait_for_propagation_times_out(service, monkeypatch):
    slept = []

    async def fake_sleep(seconds):
        slept.append(seconds)

    monkeypatch.setattr(service, "_sleep", fake_sleep)

    assert await service.wait_for_propagation("mail.example.com", "203.0.113.10",
                                              max_wait_seconds=5, interval_seconds=2) is False
    assert slept == [2, 2, 1]


async def test_wait_for_propagation_succeeds_once_published(service, lookup, monkeypatch):
    async def publish(seconds):
        lookup.add("mail.example.com", "A", "203.0.113.10")
        lookup.add("10.113.0.203.in-addr.arpa", "PTR", "mail.example.com.")

    monkeypatch.setattr(service, "_sleep", publish)

    assert await service.wait_for_propagation("mail.example.com", "203.0.113.10",
                                              max_wait_seconds=10, interval_seconds=2) is True


class Args:
    fqdn = "mail.example.com"
    ip = "203.0.113.10"
    json = False
    wait = 0
    nameserver = None


async def test_cli_exit_codes(lookup, capsys):
    assert await run_fcrdns(Args(), lookup=lookup) == 1
    assert "FCrDNS FAIL" in capsys.readouterr().out

    lookup.add("mail.example.com", "A", "203.0.113.10")
    lookup.add("10.113.0.203.in-addr.arpa", "PTR", "mail.example.com.")
    assert await run_fcrdns(Args(), lookup=lookup) == 0
    assert "FCrDNS PASS" in capsys.readouterr().out

    bad = Args()
    bad.ip = "not-an-ip"
    assert await run_fcrdns(bad, lookup=lookup) == 2
