"""
Shared fixtures: in-memory database, fake backend and fake resolver
"""
import itertools
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from zonekeeper.core.database import Base
from zonekeeper.core.exceptions import (
    ConfigurationError,
    NotFoundError,
    RemoteApiError,
    UnsupportedOperationError,
)
from zonekeeper.models import DNSProvider, DNSRecord, ProviderType
from zonekeeper.providers.base import DNSProviderClient
from zonekeeper.providers.registry import ClientFactory
from zonekeeper.schemas.provider import CustomConnection
from zonekeeper.schemas.provider_data import DnssecInfo, DnssecKey
from zonekeeper.schemas.remote import RecordSpec, RemoteRecord, RemoteZone, ZoneSpec
from zonekeeper.services.container import ServiceContainer
from zonekeeper.services.resolver import DnsLookup


class FakeBackend:
    """In-memory authoritative server.

    Put an exception into ``fail`` under an operation name ("create_record",
    "list_zones", ...) to make the next calls of that operation raise it.
    """

    def __init__(self):
        self.zones: Dict[str, Dict[str, Any]] = {}
        self.keys: Dict[str, List[DnssecKey]] = {}
        self.dnssec: Dict[str, bool] = {}
        self.fail: Dict[str, Exception] = {}
        self.calls: List[str] = []
        self._ids = itertools.count(1)

    def check(self, operation: str):
        self.calls.append(operation)
        if operation in self.fail:
            raise self.fail[operation]

    def next_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids)}"

    def zone(self, zone_id: str) -> Dict[str, Any]:
        if zone_id in self.zones:
            return self.zones[zone_id]
        for zone in self.zones.values():
            if zone["name"] == zone_id:
                return zone
        raise NotFoundError(f"Zone {zone_id} not found")

    def zone_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        return next((z for z in self.zones.values() if z["name"] == name), None)

    def add_zone(self, name: str, kind: str = "Native", serial: int = 0) -> Dict[str, Any]:
        zone_id = self.next_id("z")
        zone = {"id": zone_id, "name": name, "kind": kind, "serial": serial, "masters": [],
                "nameservers": [], "records": {}}
        self.zones[zone_id] = zone
        return zone

    def add_record(self, zone: Dict[str, Any], name: str, record_type: str, content: str, ttl: int = 3600,
                   priority: Optional[int] = None) -> RemoteRecord:
        record = RemoteRecord(id=self.next_id("r"), name=name, type=record_type, content=content, ttl=ttl,
                              priority=priority)
        zone["records"][record.id] = record
        return record

    def records(self, name: str) -> List[RemoteRecord]:
        zone = self.zone_by_name(name)
        return list(zone["records"].values()) if zone else []

    def remote_zone(self, zone: Dict[str, Any]) -> RemoteZone:
        return RemoteZone(id=zone["id"], name=zone["name"], kind=zone["kind"], serial=zone["serial"] or None,
                          masters=zone["masters"], nameservers=zone["nameservers"],
                          dnssec=self.dnssec.get(zone["id"], False))


class FakeClient(DNSProviderClient):
    """Provider client backed by a FakeBackend"""

    provider_type = ProviderType.CUSTOM
    connection_model = CustomConnection

    def __init__(self, provider: DNSProvider, backend: FakeBackend, **kwargs):
        super().__init__(provider)
        self.backend = backend

    async def _test_connection(self):
        self.backend.check("test_connection")
        return {"version": "4.8.3"}

    async def _list_zones(self):
        self.backend.check("list_zones")
        return [self.backend.remote_zone(z) for z in self.backend.zones.values()]

    async def _get_zone(self, zone_id):
        self.backend.check("get_zone")
        return self.backend.remote_zone(self.backend.zone(zone_id))

    async def _create_zone(self, spec: ZoneSpec):
        self.backend.check("create_zone")
        if self.backend.zone_by_name(spec.name):
            raise RemoteApiError(f"Zone {spec.name} exists", status_code=409)
        zone = self.backend.add_zone(spec.name, kind=spec.kind.value)
        zone["masters"] = list(spec.masters)
        zone["nameservers"] = list(spec.nameservers)
        for record in spec.records:
            self.backend.add_record(zone, record.name, record.type, record.content, record.ttl)
        return self.backend.remote_zone(zone)

    async def _update_zone(self, zone_id, patch):
        self.backend.check("update_zone")
        zone = self.backend.zone(zone_id)
        for field in ("kind", "masters"):
            if field in patch:
                zone[field] = patch[field]
        return dict(patch)

    async def _delete_zone(self, zone_id):
        self.backend.check("delete_zone")
        zone = self.backend.zone(zone_id)
        del self.backend.zones[zone["id"]]

    async def _list_records(self, zone_id):
        self.backend.check("list_records")
        return list(self.backend.zone(zone_id)["records"].values())

    async def _create_record(self, zone_id, record: RecordSpec):
        self.backend.check("create_record")
        zone = self.backend.zone(zone_id)
        return self.backend.add_record(zone, record.name, record.type, record.content, record.ttl, record.priority)

    def _locate(self, zone, record_id, spec: RecordSpec) -> str:
        if record_id and record_id in zone["records"]:
            return record_id
        for remote in zone["records"].values():
            if (remote.name, remote.type, remote.content) == (spec.name, spec.type, spec.content):
                return remote.id
        raise RemoteApiError(f"Record {spec.name} {spec.type} not found", status_code=404)

    async def _update_record(self, zone_id, record_id, old: RecordSpec, new: RecordSpec):
        self.backend.check("update_record")
        zone = self.backend.zone(zone_id)
        record_id = self._locate(zone, record_id, old)
        updated = RemoteRecord(id=record_id, name=new.name, type=new.type, content=new.content, ttl=new.ttl,
                               priority=new.priority, disabled=new.disabled, comment=new.comment)
        zone["records"][record_id] = updated
        return updated

    async def _delete_record(self, zone_id, record_id, record: RecordSpec):
        self.backend.check("delete_record")
        zone = self.backend.zone(zone_id)
        del zone["records"][self._locate(zone, record_id, record)]

    async def _get_soa(self, zone_id):
        self.backend.check("get_soa")
        for record in self.backend.zone(zone_id)["records"].values():
            if record.type == "SOA":
                return record
        raise UnsupportedOperationError("No SOA published")

    async def _replace_soa(self, zone_id, zone_name, content, ttl):
        self.backend.check("replace_soa")
        zone = self.backend.zone(zone_id)
        soa = next((r for r in zone["records"].values() if r.type == "SOA"), None)
        if soa is None:
            raise UnsupportedOperationError("No SOA published")
        updated = soa.model_copy(update={"content": content, "ttl": ttl})
        zone["records"][soa.id] = updated
        return updated

    async def _get_dnssec_status(self, zone_id):
        self.backend.check("get_dnssec_status")
        zone = self.backend.zone(zone_id)
        enabled = self.backend.dnssec.get(zone["id"], False)
        return DnssecInfo(managed_by_provider=False, status="active" if enabled else "disabled")

    async def _set_dnssec(self, zone_id, enabled):
        self.backend.check("set_dnssec")
        zone = self.backend.zone(zone_id)
        self.backend.dnssec[zone["id"]] = enabled
        return DnssecInfo(managed_by_provider=False, status="active" if enabled else "disabled")

    async def _list_keys(self, zone_id):
        self.backend.check("list_keys")
        zone = self.backend.zone(zone_id)
        return [k.model_copy() for k in self.backend.keys.get(zone["id"], [])]

    async def _create_key(self, zone_id, key_type, algorithm, bits, active):
        self.backend.check("create_key")
        zone = self.backend.zone(zone_id)
        key_id = self.backend.next_id("")
        ds = [f"{zone['name']} IN DS {key_id} 13 2 ABCDEF"] if key_type == "ksk" else []
        key = DnssecKey(id=key_id, key_type=key_type, algorithm=algorithm, bits=bits or None, active=active,
                        ds=ds, created_at=datetime.utcnow())
        self.backend.keys.setdefault(zone["id"], []).append(key)
        return key.model_copy()

    async def _set_key_active(self, zone_id, key_id, active):
        self.backend.check("set_key_active")
        zone = self.backend.zone(zone_id)
        for key in self.backend.keys.get(zone["id"], []):
            if key.id == key_id:
                key.active = active
                return key.model_copy()
        raise RemoteApiError(f"Key {key_id} not found", status_code=404)

    async def _rectify_zone(self, zone_id):
        self.backend.check("rectify_zone")


class FakeManagedClient(FakeClient):
    """Backend that creates its own apex records and signs zones itself"""

    manages_apex_records = True
    manages_dnssec_keys = True

    async def _get_dnssec_status(self, zone_id):
        self.backend.check("get_dnssec_status")
        zone = self.backend.zone(zone_id)
        enabled = self.backend.dnssec.get(zone["id"], False)
        return DnssecInfo(managed_by_provider=True, status="active" if enabled else "disabled",
                          ds=f"{zone['name']} 3600 IN DS 2371 13 2 1F987CC6" if enabled else None)

    async def _set_dnssec(self, zone_id, enabled):
        await super()._set_dnssec(zone_id, enabled)
        return await self._get_dnssec_status(zone_id)


class FakeFactory(ClientFactory):
    """One FakeBackend per provider id"""

    def __init__(self):
        super().__init__()
        self.backends: Dict[int, FakeBackend] = {}
        self.client_classes: Dict[int, type] = {}

    def backend_for(self, provider: DNSProvider) -> FakeBackend:
        return self.backends.setdefault(provider.id, FakeBackend())

    def for_provider(self, provider: DNSProvider) -> DNSProviderClient:
        if provider is None:
            raise ConfigurationError("Zone has no provider")
        if not provider.active or provider.deleted_at is not None:
            raise ConfigurationError(f"Provider {provider.name} is not active")
        client_class = self.client_classes.get(provider.id, FakeClient)
        return client_class(provider, self.backend_for(provider))


class FakeLookup(DnsLookup):
    """Answers from a dict keyed by (name, type)"""

    def __init__(self):
        super().__init__(nameservers=["127.0.0.1"])
        self.answers: Dict[tuple, List[str]] = {}
        self.signed = set()

    def add(self, name: str, record_type: str, *values: str):
        self.answers.setdefault((name.rstrip(".").lower(), record_type), []).extend(values)

    async def resolve(self, name, record_type, strict=False):
        return list(self.answers.get((name.rstrip(".").lower(), record_type), []))

    async def has_signatures(self, name, record_type="DNSKEY", strict=False):
        return name.rstrip(".").lower() in self.signed


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def factory():
    return FakeFactory()


@pytest.fixture
def lookup():
    return FakeLookup()


@pytest.fixture
def container(factory, lookup):
    return ServiceContainer(clients=factory, lookup=lookup)


async def make_provider(db, name: str = "primary", provider_type: ProviderType = ProviderType.CUSTOM) -> DNSProvider:
    provider = DNSProvider(
        name=name,
        type=provider_type,
        active=True,
        connection_config={"base_url": f"http://{name}.dns.test/api"},
    )
    db.add(provider)
    await db.commit()
    return provider


@pytest.fixture
async def provider(db):
    return await make_provider(db)


@pytest.fixture
def backend(factory, provider):
    return factory.backend_for(provider)


async def count_live(db, model, **filters) -> int:
    query = select(func.count(model.id)).where(model.deleted_at.is_(None))
    for field, value in filters.items():
        query = query.where(getattr(model, field) == value)
    return (await db.execute(query)).scalar_one()


async def live_records(db, zone_id: int) -> List[DNSRecord]:
    result = await db.execute(
        select(DNSRecord).where(DNSRecord.zone_id == zone_id, DNSRecord.deleted_at.is_(None)).order_by(DNSRecord.id)
    )
    return list(result.scalars().all())
