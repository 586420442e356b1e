"""
Missing answers versus resolver failures
"""
import dns.exception
import dns.query
import dns.resolver
import pytest

from zonekeeper.services.resolver import DnsLookup


def raising(exc):
    def resolve(self, name, record_type, *args, **kwargs):
        raise exc
    return resolve


@pytest.fixture
def lookup():
    return DnsLookup(nameservers=["192.0.2.53", "192.0.2.54"], timeout=0.1)


@pytest.mark.parametrize("exc", [dns.resolver.NXDOMAIN(), dns.resolver.NoAnswer()])
async def test_absent_records_are_empty_even_when_strict(lookup, monkeypatch, exc):
    monkeypatch.setattr(dns.resolver.Resolver, "resolve", raising(exc))

    assert await lookup.resolve("example.com", "DS") == []
    assert await lookup.resolve("example.com", "DS", strict=True) == []


async def test_timeouts_only_raise_when_strict(lookup, monkeypatch):
    monkeypatch.setattr(dns.resolver.Resolver, "resolve", raising(dns.exception.Timeout()))

    assert await lookup.resolve("example.com", "A") == []
    with pytest.raises(dns.exception.Timeout):
        await lookup.resolve("example.com", "DS", strict=True)


async def test_signature_check_tries_every_nameserver(lookup, monkeypatch):
    tried = []

    def udp(query, nameserver, timeout=None):
        tried.append(nameserver)
        raise OSError("Network is unreachable")

    monkeypatch.setattr(dns.query, "udp", udp)

    assert await lookup.has_signatures("example.com") is False
    with pytest.raises(OSError):
        await lookup.has_signatures("example.com", strict=True)
    assert tried == ["192.0.2.53", "192.0.2.54"] * 2
