"""
Provider lifecycle and delete policy
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from zonekeeper.cli import build_parser, run_provider_call
from zonekeeper.models import DNSRecord, DNSZone, ProviderType
from zonekeeper.schemas.dns import DNSRecordCreate
from zonekeeper.schemas.provider import ProviderCreate, ProviderUpdate
from zonekeeper.schemas.result import ErrorKind
from zonekeeper.schemas.zone import ZoneCreate
from zonekeeper.services.provider_service import ProviderService
from zonekeeper.services.record_service import RecordService
from zonekeeper.services.zone_service import ZoneService

from conftest import FakeClient, count_live, make_provider


async def add_zone(db, container, provider, name="example.com"):
    result = await ZoneService(db, container).create_zone(ZoneCreate(
        provider_id=provider.id, name=name, nameservers=["ns1.example.com"],
    ))
    assert result.success, result.message
    return result.local


async def test_create_provider(db, container):
    service = ProviderService(db, container)

    result = await service.create(ProviderCreate(
        name="rest", type=ProviderType.CUSTOM, connection_config={"base_url": "http://dns.test/api"},
    ))
    assert result.success
    assert (await service.get_by_name("rest")).id == result.local.id

    duplicate = await service.create(ProviderCreate(name="rest", type=ProviderType.CUSTOM,
                                                    connection_config={"base_url": "http://dns.test/api"}))
    assert duplicate.error == ErrorKind.EXISTS


async def test_create_provider_with_bad_config(db, container):
    result = await ProviderService(db, container).create(ProviderCreate(name="cf", type=ProviderType.CLOUDFLARE))

    assert result.error == ErrorKind.CONFIGURATION
    assert await ProviderService(db, container).get_by_name("cf") is None


async def test_update_masks_credentials(db, container, provider):
    result = await ProviderService(db, container).update(provider, ProviderUpdate(
        description="lab", connection_config={"base_url": "http://dns.test/v2", "api_key": "s3cret"},
    ))

    assert result.success
    assert result.changes["connection_config"] == {"old": "***", "new": "***"}
    assert provider.connection_config["api_key"] == "s3cret"


async def test_update_rejects_taken_name(db, container, provider):
    await make_provider(db, "backup")
    result = await ProviderService(db, container).update(provider, ProviderUpdate(name="backup"))
    assert result.error == ErrorKind.EXISTS


async def test_delete_empty_provider(db, container, provider):
    result = await ProviderService(db, container).delete(provider)

    assert result.success
    assert provider.deleted_at is not None
    assert not provider.active


async def test_delete_with_zones_needs_a_policy(db, container, provider):
    await add_zone(db, container, provider)

    result = await ProviderService(db, container).delete(provider)

    assert result.error == ErrorKind.CONFLICT
    assert provider.deleted_at is None


async def test_cascade_delete(db, container, provider, backend):
    zone = await add_zone(db, container, provider)
    await RecordService(db, container).create_record(
        DNSRecordCreate(zone="example.com", name="www", type="A", content="192.0.2.1")
    )

    result = await ProviderService(db, container).delete(provider, cascade=True)

    assert result.success
    assert await count_live(db, DNSZone) == 0
    assert await count_live(db, DNSRecord, zone_id=zone.id) == 0
    # Nothing is removed from the backend
    assert backend.zone_by_name("example.com.") is not None


async def test_reassign_zones(db, container, provider):
    target = await make_provider(db, "backup")
    zone = await add_zone(db, container, provider)

    result = await ProviderService(db, container).delete(provider, reassign_to=target.id)

    assert result.success
    provider_id = (await db.execute(select(DNSZone.provider_id).where(DNSZone.id == zone.id))).scalar_one()
    assert provider_id == target.id


async def test_reassign_refuses_name_clash(db, container, provider):
    target = await make_provider(db, "backup")
    await add_zone(db, container, provider)
    await add_zone(db, container, target)

    result = await ProviderService(db, container).delete(provider, reassign_to=target.id)

    assert result.error == ErrorKind.CONFLICT
    assert "example.com." in result.message


async def test_reassign_to_unknown_provider(db, container, provider):
    await add_zone(db, container, provider)
    result = await ProviderService(db, container).delete(provider, reassign_to=9999)
    assert result.error == ErrorKind.NOT_FOUND


async def test_force_delete_leaves_zones(db, container, provider):
    await add_zone(db, container, provider)

    result = await ProviderService(db, container).delete(provider, force=True)

    assert result.success
    assert await count_live(db, DNSZone) == 1


async def test_connection_test_records_version(db, container, provider):
    result = await ProviderService(db, container).test_connection(provider)

    assert result.success
    assert provider.version == "4.8.3"


class CachingClient(FakeClient):
    """Fake backend that also runs a packet cache"""

    async def _server_stats(self):
        self.backend.check("server_stats")
        return {"uptime": 86400, "zones": len(self.backend.zones)}

    async def _flush_cache(self, domain):
        self.backend.check("flush_cache")
        return {"domain": domain, "count": 2, "result": "Flushed cache."}


async def test_server_stats(db, container, factory, provider):
    factory.client_classes[provider.id] = CachingClient
    await add_zone(db, container, provider)

    result = await ProviderService(db, container).server_stats(provider)

    assert result.success
    assert result.remote == {"uptime": 86400, "zones": 1}


async def test_flush_cache_normalizes_the_domain(db, container, factory, provider, backend):
    factory.client_classes[provider.id] = CachingClient

    result = await ProviderService(db, container).flush_cache(provider, "Example.com")

    assert result.success
    assert result.remote["domain"] == "example.com."
    assert "flush_cache" in backend.calls


async def test_flush_cache_rejects_bad_names(db, container, provider, backend):
    result = await ProviderService(db, container).flush_cache(provider, "bad name..")

    assert result.error == ErrorKind.VALIDATION
    assert "flush_cache" not in backend.calls


async def test_backends_without_a_cache_are_unsupported(db, container, provider):
    service = ProviderService(db, container)

    assert (await service.server_stats(provider)).error == ErrorKind.UNSUPPORTED
    assert (await service.flush_cache(provider, "example.com")).error == ErrorKind.UNSUPPORTED


async def test_cli_provider_calls(engine, provider, monkeypatch, capsys):
    monkeypatch.setattr(
        "zonekeeper.core.database.AsyncSessionLocal",
        async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
    )
    parser = build_parser()

    assert await run_provider_call(parser.parse_args(["stats", "primary"])) == 1
    assert "does not report server statistics" in capsys.readouterr().err

    assert await run_provider_call(parser.parse_args(["flush-cache", "missing", "example.com"])) == 1
    assert "provider not found: missing" in capsys.readouterr().err
