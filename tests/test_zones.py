"""
Zone write-through against the fake backend
"""
import asyncio

from sqlalchemy import select

from zonekeeper.core.exceptions import RemoteApiError
from zonekeeper.models import DNSRecord, DNSZone
from zonekeeper.models.zone import DnssecState, ZoneKind
from zonekeeper.schemas.dns import DNSRecordCreate
from zonekeeper.schemas.result import ErrorKind
from zonekeeper.schemas.zone import ZoneCreate, ZoneUpdate
from zonekeeper.services.record_service import RecordService
from zonekeeper.services.serial_service import parse_soa_serial, today_prefix
from zonekeeper.services.zone_service import ZoneService

from conftest import FakeClient, FakeManagedClient, count_live, live_records, make_provider


async def create_example(db, container, provider, **kwargs):
    data = dict(provider_id=provider.id, name="example.com", nameservers=["ns1.example.com", "ns2.example.com"],
                ttl=300)
    data.update(kwargs)
    return await ZoneService(db, container).create_zone(ZoneCreate(**data))


async def test_create_zone_with_default_records(db, container, provider, backend):
    result = await create_example(db, container, provider)

    assert result.success, result.message
    zone = result.local
    assert zone.name == "example.com."
    assert zone.kind == ZoneKind.NATIVE
    assert zone.serial == today_prefix() + 1
    assert zone.external_id == backend.zone_by_name("example.com.")["id"]

    records = await live_records(db, zone.id)
    assert sorted((r.type, r.content.split()[0]) for r in records) == [
        ("NS", "ns1.example.com."), ("NS", "ns2.example.com."), ("SOA", "ns1.example.com."),
    ]
    soa = next(r for r in records if r.type == "SOA")
    assert soa.content.split()[1] == "admin.example.com."
    assert parse_soa_serial(soa.content) == today_prefix() + 1
    assert all(r.external_id for r in records)
    assert len(backend.records("example.com.")) == 3


async def test_end_to_end_zone_record_and_ptr(db, container, provider, backend):
    zone_result = await create_example(db, container, provider)
    assert zone_result.success

    result = await RecordService(db, container).create_record(DNSRecordCreate(
        zone="example.com", name="www", type="A", content="192.168.1.100",
        auto_ptr=True, auto_create_ptr_zone=True,
    ))

    assert result.success, result.message
    assert result.local.name == "www.example.com."
    assert result.ptr is not None and result.ptr.success, result.ptr.message

    ptr_zone = await ZoneService(db, container).find_zone("1.168.192.in-addr.arpa.")
    assert ptr_zone is not None
    assert ptr_zone.provider_id == provider.id

    ptr = result.ptr.local
    assert ptr.zone_id == ptr_zone.id
    assert ptr.type == "PTR"
    assert ptr.name == "100.1.168.192.in-addr.arpa."
    assert ptr.content == "www.example.com."
    assert ptr.comment == "Auto-created for A www.example.com."
    assert [(r.name, r.content) for r in backend.records("1.168.192.in-addr.arpa.") if r.type == "PTR"] == [
        ("100.1.168.192.in-addr.arpa.", "www.example.com."),
    ]

    # The A record advanced the forward zone's serial
    soa = next(r for r in backend.records("example.com.") if r.type == "SOA")
    assert parse_soa_serial(soa.content) == today_prefix() + 2


async def test_auto_ptr_without_reverse_zone_reports_not_found(db, container, provider):
    await create_example(db, container, provider)

    result = await RecordService(db, container).create_record(DNSRecordCreate(
        zone="example.com", name="www", type="A", content="192.168.1.100", auto_ptr=True,
    ))

    assert result.success
    assert result.ptr.error == ErrorKind.NOT_FOUND
    assert await count_live(db, DNSRecord, type="PTR") == 0


async def test_duplicate_zone(db, container, provider):
    assert (await create_example(db, container, provider)).success

    result = await create_example(db, container, provider)
    assert result.error == ErrorKind.EXISTS


async def test_concurrent_creates_of_one_zone(db, container, provider, backend, monkeypatch):
    created = FakeClient._create_zone
    hold = container.locks.hold
    in_backend = asyncio.Event()
    release = asyncio.Event()
    queued = asyncio.Event()
    holders = []

    async def slow_create(self, spec):
        in_backend.set()
        await release.wait()
        return await created(self, spec)

    def counting_hold(key):
        holders.append(key)
        if len(holders) == 2:
            queued.set()
        return hold(key)

    monkeypatch.setattr(FakeClient, "_create_zone", slow_create)
    monkeypatch.setattr(container.locks, "hold", counting_hold)

    first = asyncio.create_task(create_example(db, container, provider))
    await in_backend.wait()
    second = asyncio.create_task(create_example(db, container, provider))
    await queued.wait()
    release.set()

    results = await asyncio.gather(first, second)

    assert results[0].success, results[0].message
    assert results[1].error == ErrorKind.EXISTS
    assert backend.calls.count("create_zone") == 1
    assert await count_live(db, DNSZone) == 1


async def test_same_name_on_two_providers(db, container, provider):
    other = await make_provider(db, "secondary-site")
    assert (await create_example(db, container, provider)).success
    assert (await create_example(db, container, other)).success

    service = ZoneService(db, container)
    assert (await service.find_zone("example.com", prefer_provider_id=other.id)).provider_id == other.id
    assert (await service.find_zone("example.com")).provider_id == provider.id


async def test_secondary_zone_rules(db, container, provider, backend):
    missing = await create_example(db, container, provider, kind=ZoneKind.SECONDARY)
    assert missing.error == ErrorKind.VALIDATION

    stray = await create_example(db, container, provider, masters=["192.0.2.53"])
    assert stray.error == ErrorKind.VALIDATION

    result = await create_example(db, container, provider, kind=ZoneKind.SECONDARY, masters=["192.0.2.53"])
    assert result.success
    assert result.local.masters == ["192.0.2.53"]
    assert backend.records("example.com.") == []


async def test_remote_failure_stores_nothing(db, container, provider, backend):
    backend.fail["create_zone"] = RemoteApiError("internal error", status_code=500)

    result = await create_example(db, container, provider)

    assert result.error == ErrorKind.REMOTE
    assert await count_live(db, DNSZone) == 0


async def test_failed_connection_test_aborts(db, container, provider, backend):
    backend.fail["test_connection"] = RemoteApiError("unauthorized", status_code=401)

    result = await create_example(db, container, provider, test_connection=True)

    assert not result.success
    assert "create_zone" not in backend.calls


async def test_managed_backend_keeps_its_own_apex(db, container, factory, provider, backend):
    factory.client_classes[provider.id] = FakeManagedClient

    result = await create_example(db, container, provider)

    assert result.success
    assert backend.records("example.com.") == []
    assert result.local.serial == 0


async def test_auto_dnssec_on_create(db, container, provider):
    result = await create_example(db, container, provider, auto_dnssec=True)

    assert result.success
    assert result.dnssec is not None and result.dnssec.success
    assert result.local.dnssec_state == DnssecState.KEYS_ACTIVE
    assert result.local.dnssec_enabled


async def test_update_zone_ttl(db, container, provider, backend):
    await create_example(db, container, provider)

    result = await ZoneService(db, container).update_zone("example.com", ZoneUpdate(ttl=600, description="main"))

    assert result.success
    assert result.changes["ttl"] == {"old": 300, "new": 600}
    assert "update_zone" in backend.calls


async def test_update_zone_local_fields_stay_local(db, container, provider, backend):
    await create_example(db, container, provider)

    result = await ZoneService(db, container).update_zone("example.com", ZoneUpdate(description="main"))

    assert result.success
    assert "update_zone" not in backend.calls


async def test_delete_zone_with_content_needs_cascade(db, container, provider, backend):
    zone = (await create_example(db, container, provider)).local
    await RecordService(db, container).create_record(
        DNSRecordCreate(zone="example.com", name="www", type="A", content="192.0.2.1")
    )
    service = ZoneService(db, container)

    refused = await service.delete_zone("example.com")
    assert refused.error == ErrorKind.CONFLICT
    assert backend.zone_by_name("example.com.") is not None

    result = await service.delete_zone("example.com", cascade=True)
    assert result.success
    assert backend.zone_by_name("example.com.") is None
    assert await count_live(db, DNSRecord, zone_id=zone.id) == 0
    assert await service.find_zone("example.com") is None


async def test_delete_apex_only_zone(db, container, provider, backend):
    await create_example(db, container, provider)

    result = await ZoneService(db, container).delete_zone("example.com")

    assert result.success
    assert await count_live(db, DNSZone) == 0


async def test_delete_zone_already_gone_remotely(db, container, provider, backend):
    await create_example(db, container, provider)
    backend.zones.clear()

    result = await ZoneService(db, container).delete_zone("example.com")

    assert result.success


async def test_bump_serial(db, container, provider, backend):
    await create_example(db, container, provider)

    result = await ZoneService(db, container).bump_serial("example.com")

    assert result.success
    assert result.changes["serial"] == {"old": today_prefix() + 1, "new": today_prefix() + 2}
    zone = (await db.execute(select(DNSZone).where(DNSZone.name == "example.com."))).scalar_one()
    assert zone.serial == today_prefix() + 2


async def test_list_zones_splits_reverse_from_forward(db, container, provider, backend):
    await create_example(db, container, provider)
    await create_example(db, container, provider, name="1.168.192.in-addr.arpa")
    await create_example(db, container, provider, name="8.b.d.0.1.0.0.2.ip6.arpa")
    service = ZoneService(db, container)

    reverse = await service.list_zones(reverse=True)
    forward = await service.list_zones(reverse=False)

    assert [z.name for z in reverse] == ["1.168.192.in-addr.arpa.", "8.b.d.0.1.0.0.2.ip6.arpa."]
    assert all(z.is_reverse for z in reverse)
    assert [z.name for z in forward] == ["example.com."]
    assert not forward[0].is_reverse
    assert len(await service.list_zones()) == 3
