"""PowerDNS authoritative server client"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from zonekeeper.core.exceptions import (
    ConfigurationError,
    NotFoundError,
    RemoteApiError,
    UnsupportedOperationError,
    ValidationError,
)
from zonekeeper.models.provider import DNSProvider, ProviderType
from zonekeeper.models.zone import ZoneKind
from zonekeeper.providers.base import DNSProviderClient
from zonekeeper.schemas.provider import PowerDnsConnection
from zonekeeper.schemas.provider_data import DnssecInfo, DnssecKey
from zonekeeper.schemas.remote import RecordSpec, RemoteRecord, RemoteZone, SSHTarget, ZoneSpec
from zonekeeper.services.remote_service import RemoteExecutor
from zonekeeper.services.tunnel_service import TunnelManager

logger = logging.getLogger(__name__)

TUNNEL_SERVICE = "powerdns"

# PowerDNS still speaks Master/Slave on most deployed versions
KIND_TO_REMOTE = {
    ZoneKind.NATIVE: "Native",
    ZoneKind.PRIMARY: "Master",
    ZoneKind.SECONDARY: "Slave",
}
KIND_FROM_REMOTE = {
    "native": ZoneKind.NATIVE.value,
    "master": ZoneKind.PRIMARY.value,
    "primary": ZoneKind.PRIMARY.value,
    "slave": ZoneKind.SECONDARY.value,
    "secondary": ZoneKind.SECONDARY.value,
}


def record_id(name: str, record_type: str, content: str) -> str:
    """PowerDNS has no per-record ids; derive a stable one"""
    return f"{name}|{record_type}|{content}"


class PowerDnsClient(DNSProviderClient):
    """PowerDNS HTTP API client, optionally through an SSH tunnel"""

    provider_type = ProviderType.POWERDNS
    connection_model = PowerDnsConnection
    embeds_priority = True

    def __init__(
        self,
        provider: DNSProvider,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        tunnels: Optional[TunnelManager] = None,
        executor: Optional[RemoteExecutor] = None,
        **kwargs,
    ):
        super().__init__(provider, transport=transport)
        if self.config.ssh_host and tunnels is None:
            raise ConfigurationError(f"Provider {provider.name} uses ssh_host but no tunnel manager was supplied")
        self.tunnels = tunnels
        self.executor = executor

    @property
    def ssh_target(self) -> Optional[SSHTarget]:
        if not self.config.ssh_host:
            return None
        return SSHTarget(
            host=self.config.ssh_host,
            port=self.config.ssh_port,
            username=self.config.ssh_user,
            client_key=self.config.ssh_key,
            password=self.config.ssh_password,
        )

    @property
    def _zones_path(self) -> str:
        return f"/servers/{self.config.server_id}/zones"

    async def _base_url(self) -> str:
        if self.config.ssh_host:
            tunnel, created = await self.tunnels.ensure_tunnel(self.ssh_target, TUNNEL_SERVICE, self.config.api_port)
            if created:
                logger.info(f"{self.provider_name}: PowerDNS API via {tunnel.endpoint}")
            return f"{tunnel.endpoint}/api/v1"

        endpoint = self.config.api_endpoint.rstrip("/")
        if not endpoint.endswith("/api/v1"):
            endpoint = f"{endpoint}/api/v1"
        return endpoint

    async def _request(self, method: str, path: str, json: Any = None, params: Optional[dict] = None) -> Any:
        url = f"{await self._base_url()}{path}"
        headers = {"X-API-Key": self.config.api_key, "Accept": "application/json"}
        response = await self._send(method, url, headers=headers, params=params, json=json)
        self._raise_for_status(response)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    def _to_remote_zone(self, data: Dict[str, Any]) -> RemoteZone:
        raw = {k: v for k, v in data.items() if k != "rrsets"}
        kind = data.get("kind")
        return RemoteZone(
            id=data.get("id") or data["name"],
            name=self.absolute(data["name"]),
            kind=KIND_FROM_REMOTE.get((kind or "").lower(), kind),
            serial=data.get("serial"),
            masters=data.get("masters") or [],
            nameservers=data.get("nameservers") or [],
            dnssec=bool(data.get("dnssec")),
            raw=raw,
        )

    def _flatten_rrsets(self, rrsets: List[Dict[str, Any]]) -> List[RemoteRecord]:
        records = []
        for rrset in rrsets:
            name = self.absolute(rrset["name"])
            record_type = rrset["type"].upper()
            comments = rrset.get("comments") or []
            comment = comments[0].get("content") if comments else None
            for item in rrset.get("records") or []:
                raw_content = item["content"]
                priority, content = self.split_priority(record_type, raw_content)
                records.append(RemoteRecord(
                    id=record_id(name, record_type, raw_content),
                    name=name,
                    type=record_type,
                    content=content,
                    ttl=rrset.get("ttl") or 3600,
                    priority=priority,
                    disabled=bool(item.get("disabled")),
                    comment=comment,
                    raw={"raw_content": raw_content},
                ))
        return records

    def _wire_content(self, record: RecordSpec) -> str:
        return self.join_priority(record.type, record.content, record.priority)

    def _to_remote_record(self, record: RecordSpec) -> RemoteRecord:
        name = self.absolute(record.name)
        raw_content = self._wire_content(record)
        return RemoteRecord(
            id=record_id(name, record.type, raw_content),
            name=name,
            type=record.type,
            content=record.content,
            ttl=record.ttl,
            priority=record.priority,
            disabled=record.disabled,
            comment=record.comment,
            raw={"raw_content": raw_content},
        )

    @staticmethod
    def _rrset(name: str, record_type: str, ttl: int, items: List[Dict[str, Any]],
               comment: Optional[str] = None) -> Dict[str, Any]:
        if not items:
            return {"name": name, "type": record_type, "changetype": "DELETE"}
        rrset = {
            "name": name,
            "type": record_type,
            "ttl": ttl,
            "changetype": "REPLACE",
            "records": items,
        }
        if comment:
            rrset["comments"] = [{"content": comment, "account": ""}]
        return rrset

    async def _get_rrsets(self, zone_id: str) -> List[Dict[str, Any]]:
        zone = await self._request("GET", f"{self._zones_path}/{zone_id}")
        return zone.get("rrsets") or []

    @staticmethod
    def _find_rrset(rrsets: List[Dict[str, Any]], name: str, record_type: str) -> Optional[Dict[str, Any]]:
        for rrset in rrsets:
            if rrset["name"].lower() == name and rrset["type"].upper() == record_type:
                return rrset
        return None

    async def _patch_rrsets(self, zone_id: str, rrsets: List[Dict[str, Any]]):
        await self._request("PATCH", f"{self._zones_path}/{zone_id}", json={"rrsets": rrsets})

    # ------------------------------------------------------------------
    # Zones
    # ------------------------------------------------------------------

    async def _test_connection(self) -> Dict[str, Any]:
        servers = await self._request("GET", "/servers")
        server = next((s for s in servers or [] if s.get("id") == self.config.server_id), None)
        if server is None:
            raise NotFoundError(f"PowerDNS server '{self.config.server_id}' not found")
        return {"server_id": server.get("id"), "version": server.get("version"), "daemon_type": server.get("daemon_type")}

    async def _list_zones(self) -> List[RemoteZone]:
        zones = await self._request("GET", self._zones_path)
        return [self._to_remote_zone(z) for z in zones or []]

    async def _get_zone(self, zone_id: str) -> RemoteZone:
        return self._to_remote_zone(await self._request("GET", f"{self._zones_path}/{zone_id}"))

    async def _create_zone(self, spec: ZoneSpec) -> RemoteZone:
        if spec.kind not in KIND_TO_REMOTE:
            raise ValidationError(f"PowerDNS does not support zone kind {spec.kind.value}")

        grouped: Dict[tuple, List[RecordSpec]] = {}
        for record in spec.records:
            grouped.setdefault((self.absolute(record.name), record.type), []).append(record)
        rrsets = [
            {
                "name": name,
                "type": record_type,
                "ttl": records[0].ttl,
                "records": [{"content": self._wire_content(r), "disabled": r.disabled} for r in records],
            }
            for (name, record_type), records in grouped.items()
        ]
        has_ns = any(record_type == "NS" for (_, record_type) in grouped)

        payload: Dict[str, Any] = {
            "name": self.absolute(spec.name),
            "kind": KIND_TO_REMOTE[spec.kind],
            "soa_edit_api": spec.soa_edit_api,
            "nameservers": [] if has_ns else [self.absolute(ns) for ns in spec.nameservers],
        }
        if spec.kind == ZoneKind.SECONDARY:
            payload["masters"] = spec.masters
        if spec.account:
            payload["account"] = spec.account
        if rrsets:
            payload["rrsets"] = rrsets

        data = await self._request("POST", self._zones_path, json=payload)
        return self._to_remote_zone(data or payload)

    async def _update_zone(self, zone_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        applied: Dict[str, Any] = {}
        body: Dict[str, Any] = {}
        if "kind" in patch:
            kind = ZoneKind(patch["kind"])
            if kind not in KIND_TO_REMOTE:
                raise ValidationError(f"PowerDNS does not support zone kind {kind.value}")
            body["kind"] = KIND_TO_REMOTE[kind]
        if "masters" in patch:
            body["masters"] = patch["masters"] or []
        if body:
            await self._request("PUT", f"{self._zones_path}/{zone_id}", json=body)
            applied.update(body)

        if "ttl" in patch:
            rrsets = await self._get_rrsets(zone_id)
            soa = next((r for r in rrsets if r["type"].upper() == "SOA"), None)
            if soa is None:
                raise NotFoundError(f"Zone {zone_id} has no SOA")
            await self._patch_rrsets(zone_id, [self._rrset(soa["name"], "SOA", patch["ttl"], soa["records"])])
            applied["ttl"] = patch["ttl"]
        return applied

    async def _delete_zone(self, zone_id: str) -> None:
        await self._request("DELETE", f"{self._zones_path}/{zone_id}")

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def _list_records(self, zone_id: str) -> List[RemoteRecord]:
        return self._flatten_rrsets(await self._get_rrsets(zone_id))

    async def _create_record(self, zone_id: str, record: RecordSpec) -> RemoteRecord:
        name = self.absolute(record.name)
        rrsets = await self._get_rrsets(zone_id)
        existing = self._find_rrset(rrsets, name, record.type)
        items = list(existing["records"]) if existing else []

        content = self._wire_content(record)
        if not any(item["content"] == content for item in items):
            items.append({"content": content, "disabled": record.disabled})
        await self._patch_rrsets(zone_id, [self._rrset(name, record.type, record.ttl, items, record.comment)])
        return self._to_remote_record(record)

    async def _update_record(self, zone_id: str, record_id: Optional[str], old: RecordSpec,
                             new: RecordSpec) -> RemoteRecord:
        old_name, new_name = self.absolute(old.name), self.absolute(new.name)
        old_content, new_content = self._wire_content(old), self._wire_content(new)
        rrsets = await self._get_rrsets(zone_id)

        old_rrset = self._find_rrset(rrsets, old_name, old.type)
        if old_rrset is None or not any(i["content"] == old_content for i in old_rrset["records"]):
            raise RemoteApiError(f"Record {old_name} {old.type} {old_content} not found on server", status_code=404)

        remaining = [i for i in old_rrset["records"] if i["content"] != old_content]
        new_item = {"content": new_content, "disabled": new.disabled}

        if (old_name, old.type) == (new_name, new.type):
            changes = [self._rrset(new_name, new.type, new.ttl, remaining + [new_item], new.comment)]
        else:
            target = self._find_rrset(rrsets, new_name, new.type)
            target_items = [i for i in (target["records"] if target else []) if i["content"] != new_content]
            changes = [
                self._rrset(old_name, old.type, old_rrset.get("ttl") or old.ttl, remaining),
                self._rrset(new_name, new.type, new.ttl, target_items + [new_item], new.comment),
            ]
        await self._patch_rrsets(zone_id, changes)
        return self._to_remote_record(new)

    async def _delete_record(self, zone_id: str, record_id: Optional[str], record: RecordSpec) -> None:
        name = self.absolute(record.name)
        content = self._wire_content(record)
        rrsets = await self._get_rrsets(zone_id)
        rrset = self._find_rrset(rrsets, name, record.type)
        if rrset is None or not any(i["content"] == content for i in rrset["records"]):
            raise RemoteApiError(f"Record {name} {record.type} {content} not found on server", status_code=404)

        remaining = [i for i in rrset["records"] if i["content"] != content]
        await self._patch_rrsets(zone_id, [self._rrset(name, record.type, rrset.get("ttl") or record.ttl, remaining)])

    # ------------------------------------------------------------------
    # SOA
    # ------------------------------------------------------------------

    async def _get_soa(self, zone_id: str) -> RemoteRecord:
        for record in await self._list_records(zone_id):
            if record.type == "SOA":
                return record
        raise NotFoundError(f"Zone {zone_id} has no SOA record")

    async def _replace_soa(self, zone_id: str, zone_name: str, content: str, ttl: int) -> RemoteRecord:
        name = self.absolute(zone_name)
        await self._patch_rrsets(zone_id, [self._rrset(name, "SOA", ttl, [{"content": content, "disabled": False}])])
        return RemoteRecord(id=record_id(name, "SOA", content), name=name, type="SOA", content=content, ttl=ttl)

    # ------------------------------------------------------------------
    # DNSSEC
    # ------------------------------------------------------------------

    def _to_key(self, data: Dict[str, Any]) -> DnssecKey:
        extra = {k: v for k, v in data.items() if k not in ("id", "keytype", "algorithm", "bits", "active", "published", "ds", "dnskey", "type")}
        return DnssecKey(
            id=str(data["id"]),
            key_type=(data.get("keytype") or "zsk").lower(),
            algorithm=data.get("algorithm"),
            bits=data.get("bits"),
            active=bool(data.get("active")),
            published=data.get("published", True),
            ds=data.get("ds") or [],
            dnskey=data.get("dnskey"),
            **extra,
        )

    async def _get_dnssec_status(self, zone_id: str) -> DnssecInfo:
        zone = await self._request("GET", f"{self._zones_path}/{zone_id}")
        return DnssecInfo(managed_by_provider=False, status="active" if zone.get("dnssec") else "disabled")

    async def _set_dnssec(self, zone_id: str, enabled: bool) -> DnssecInfo:
        if not enabled:
            if not (self.ssh_target and self.executor):
                raise UnsupportedOperationError("Disabling DNSSEC on PowerDNS needs ssh_host for pdnsutil")
            result = await self.executor.pdnsutil(self.ssh_target, "disable-dnssec", zone_id)
            if not result.success:
                raise RemoteApiError(f"pdnsutil disable-dnssec failed: {result.stderr.strip() or result.stdout.strip()}")
        else:
            await self._request("PUT", f"{self._zones_path}/{zone_id}", json={"dnssec": enabled})
        return DnssecInfo(managed_by_provider=False, status="active" if enabled else "disabled")

    async def _list_keys(self, zone_id: str) -> List[DnssecKey]:
        keys = await self._request("GET", f"{self._zones_path}/{zone_id}/cryptokeys")
        return [self._to_key(k) for k in keys or []]

    async def _create_key(self, zone_id: str, key_type: str, algorithm: str, bits: int, active: bool) -> DnssecKey:
        payload: Dict[str, Any] = {"keytype": key_type, "active": active, "algorithm": algorithm}
        if bits:
            payload["bits"] = bits
        data = await self._request("POST", f"{self._zones_path}/{zone_id}/cryptokeys", json=payload)
        key = self._to_key(data)
        key.created_at = datetime.utcnow()
        return key

    async def _set_key_active(self, zone_id: str, key_id: str, active: bool) -> DnssecKey:
        path = f"{self._zones_path}/{zone_id}/cryptokeys/{key_id}"
        await self._request("PUT", path, json={"active": active})
        return self._to_key(await self._request("GET", path))

    async def _rectify_zone(self, zone_id: str) -> None:
        await self._request("PUT", f"{self._zones_path}/{zone_id}/rectify")

    async def _server_stats(self) -> Dict[str, Any]:
        items = await self._request("GET", f"/servers/{self.config.server_id}/statistics")
        stats: Dict[str, Any] = {}
        for item in items or []:
            value = item.get("value")
            if isinstance(value, list):
                # Map and ring statistics carry name/value pairs
                stats[item["name"]] = {entry["name"]: entry.get("value") for entry in value}
            elif isinstance(value, str) and value.isdigit():
                stats[item["name"]] = int(value)
            else:
                stats[item["name"]] = value
        return stats

    async def _flush_cache(self, domain: str) -> Dict[str, Any]:
        domain = self.absolute(domain)
        data = await self._request(
            "PUT", f"/servers/{self.config.server_id}/cache/flush", params={"domain": domain}
        ) or {}
        logger.info(f"{self.provider_name}: flushed {data.get('count', 0)} cache entries for {domain}")
        return {"domain": domain, "count": data.get("count", 0), "result": data.get("result")}
