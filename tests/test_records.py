"""
Record write-through: duplicates, failures, divergence and PTR side effects
"""
import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from zonekeeper.core.exceptions import RateLimitError, RemoteApiError
from zonekeeper.models import DNSRecord
from zonekeeper.schemas.dns import DNSRecordCreate, DNSRecordUpdate
from zonekeeper.schemas.result import ErrorKind
from zonekeeper.schemas.zone import ZoneCreate
from zonekeeper.services.record_service import RecordService
from zonekeeper.services.serial_service import parse_soa_serial, today_prefix
from zonekeeper.services.zone_service import ZoneService

from conftest import count_live, live_records


@pytest.fixture
async def zone(db, container, provider):
    result = await ZoneService(db, container).create_zone(ZoneCreate(
        provider_id=provider.id, name="example.com", nameservers=["ns1.example.com", "ns2.example.com"], ttl=300,
    ))
    return result.local


@pytest.fixture
async def reverse_zone(db, container, provider):
    result = await ZoneService(db, container).create_zone(ZoneCreate(
        provider_id=provider.id, name="2.0.192.in-addr.arpa", nameservers=["ns1.example.com"],
    ))
    return result.local


@pytest.fixture
def service(db, container):
    return RecordService(db, container)


def a_record(name="www", content="192.0.2.10", **kwargs):
    return DNSRecordCreate(zone="example.com", name=name, type="A", content=content, **kwargs)


def soa_serial(backend, zone_name="example.com."):
    return parse_soa_serial(next(r for r in backend.records(zone_name) if r.type == "SOA").content)


async def test_create_record(service, zone, backend):
    result = await service.create_record(a_record(ttl=120))

    assert result.success
    record = result.local
    assert (record.name, record.type, record.content, record.ttl) == ("www.example.com.", "A", "192.0.2.10", 120)
    assert record.external_id == result.remote["id"]
    assert soa_serial(backend) == today_prefix() + 2
    assert backend.calls[-3:] == ["create_record", "get_soa", "replace_soa"]


async def test_record_ttl_defaults_to_zone_ttl(service, zone):
    result = await service.create_record(a_record())
    assert result.local.ttl == 300


async def test_duplicate_is_rejected_before_the_backend(service, zone, backend):
    assert (await service.create_record(a_record())).success
    calls = len(backend.calls)

    result = await service.create_record(a_record(name="WWW.example.com."))

    assert result.error == ErrorKind.EXISTS
    assert len(backend.calls) == calls


async def test_allow_duplicate(service, zone, backend):
    await service.create_record(a_record())
    result = await service.create_record(a_record(allow_duplicate=True))

    assert result.success
    assert await count_live(service.db, DNSRecord, type="A") == 2


async def test_invalid_content_never_reaches_the_backend(service, zone, backend):
    calls = len(backend.calls)

    result = await service.create_record(a_record(content="999.0.0.1"))
    assert result.error == ErrorKind.VALIDATION

    result = await service.create_record(DNSRecordCreate(zone="example.com", name="@", type="MX",
                                                         content="mail.example.com."))
    assert result.error == ErrorKind.VALIDATION

    result = await service.create_record(a_record(name="www.example.org."))
    assert result.error == ErrorKind.VALIDATION
    assert len(backend.calls) == calls


async def test_unknown_zone(service):
    result = await service.create_record(a_record())
    assert result.error == ErrorKind.NOT_FOUND


async def test_remote_failure_leaves_no_local_row(service, zone, backend):
    backend.fail["create_record"] = RemoteApiError("backend down", status_code=503)

    result = await service.create_record(a_record())

    assert result.error == ErrorKind.REMOTE
    assert "backend down" in result.message
    assert await count_live(service.db, DNSRecord, type="A") == 0


async def test_rate_limit_is_reported(service, zone, backend):
    backend.fail["create_record"] = RateLimitError("throttled", retry_after=30)

    result = await service.create_record(a_record())

    assert result.error == ErrorKind.RATE_LIMITED
    assert result.remote["retry_after"] == 30


async def test_local_commit_failure_is_a_divergence(service, zone, backend, db, monkeypatch):
    async def failing_commit(self):
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)
    result = await service.create_record(a_record())
    monkeypatch.undo()

    assert result.success
    assert result.divergent
    assert "local commit failed" in result.divergence
    assert result.local is None
    assert result.remote["content"] == "192.0.2.10"
    # The backend holds the record, the local store does not
    assert [r.content for r in backend.records("example.com.") if r.type == "A"] == ["192.0.2.10"]
    assert await count_live(db, DNSRecord, type="A") == 0
    # No serial bump on a divergent write
    assert "replace_soa" not in backend.calls


async def test_update_record(service, zone, backend):
    record = (await service.create_record(a_record())).local

    result = await service.update_record(record.id, DNSRecordUpdate(content="192.0.2.20", ttl=60))

    assert result.success
    assert result.changes == {"content": {"old": "192.0.2.10", "new": "192.0.2.20"},
                              "ttl": {"old": 300, "new": 60}}
    assert [r.content for r in backend.records("example.com.") if r.type == "A"] == ["192.0.2.20"]
    assert soa_serial(backend) == today_prefix() + 3


async def test_comment_only_update_stays_local(service, zone, backend):
    record = (await service.create_record(a_record())).local
    calls = len(backend.calls)

    result = await service.update_record(record.id, DNSRecordUpdate(comment="web frontend"))

    assert result.success
    assert list(result.changes) == ["comment"]
    assert len(backend.calls) == calls


async def test_update_without_changes(service, zone, backend):
    record = (await service.create_record(a_record())).local

    result = await service.update_record(record.id, DNSRecordUpdate(content="192.0.2.10"))

    assert result.success
    assert result.message == "No changes"
    assert result.changes == {}


async def test_update_remote_failure_keeps_old_values(service, zone, backend):
    record = (await service.create_record(a_record())).local
    backend.fail["update_record"] = RemoteApiError("rejected", status_code=500)

    result = await service.update_record(record.id, DNSRecordUpdate(content="192.0.2.20"))

    assert not result.success
    assert (await service.get_record(record.id)).content == "192.0.2.10"


async def test_delete_record_is_soft(service, zone, backend, db):
    record = (await service.create_record(a_record())).local

    result = await service.delete_record(record.id)

    assert result.success
    assert await service.get_record(record.id) is None
    assert await db.get(DNSRecord, record.id) is not None
    assert [r for r in backend.records("example.com.") if r.type == "A"] == []


async def test_delete_tolerates_missing_remote(service, zone, backend):
    record = (await service.create_record(a_record())).local
    zone_row = backend.zone_by_name("example.com.")
    zone_row["records"] = {k: v for k, v in zone_row["records"].items() if v.type != "A"}

    result = await service.delete_record(record.id)

    assert result.success


async def test_delete_skip_remote(service, zone, backend):
    record = (await service.create_record(a_record())).local

    result = await service.delete_record(record.id, skip_remote=True)

    assert result.success
    assert [r.content for r in backend.records("example.com.") if r.type == "A"] == ["192.0.2.10"]


async def test_update_ptr_moves_the_pointer(service, zone, reverse_zone, backend, db):
    record = (await service.create_record(a_record(auto_ptr=True))).local
    assert (await service.find_ptr("192.0.2.10")).content == "www.example.com."

    result = await service.update_record(record.id, DNSRecordUpdate(content="192.0.2.20", update_ptr=True))

    assert result.success
    assert result.ptr.success
    assert await service.find_ptr("192.0.2.10") is None
    ptr = await service.find_ptr("192.0.2.20")
    assert ptr.name == "20.2.0.192.in-addr.arpa."
    assert [r.name for r in await live_records(db, reverse_zone.id) if r.type == "PTR"] == [ptr.name]


async def test_delete_with_ptr(service, zone, reverse_zone, backend):
    record = (await service.create_record(a_record(auto_ptr=True))).local

    result = await service.delete_record(record.id, delete_ptr=True)

    assert result.success
    assert result.ptr.success
    assert await service.find_ptr("192.0.2.10") is None
    assert [r for r in backend.records("2.0.192.in-addr.arpa.") if r.type == "PTR"] == []


async def test_find_forward(service, zone, reverse_zone):
    await service.create_record(a_record(auto_ptr=True))

    ptr = await service.find_ptr("192.0.2.10", "www.example.com.")
    forward = await service.find_forward(ptr)

    assert [(r.name, r.content) for r in forward] == [("www.example.com.", "192.0.2.10")]


async def test_list_records_filters(service, zone):
    await service.create_record(a_record())
    await service.create_record(a_record(name="api", content="192.0.2.11"))
    await service.create_record(DNSRecordCreate(zone="example.com", name="@", type="MX",
                                                content="mail.example.com.", priority=10))

    assert len(await service.list_records(zone="example.com", record_type="a")) == 2
    assert [r.content for r in await service.list_records(zone="example.com", name="api")] == ["192.0.2.11"]
    assert [r.type for r in await service.list_records(search="mail")] == ["MX"]
    assert await service.list_records(zone="missing.example") == []
