"""CloudFlare API v4 client"""
import logging
from typing import Any, Dict, List, Optional

from zonekeeper.core.config import settings
from zonekeeper.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    RemoteApiError,
    UnsupportedOperationError,
    ValidationError,
)
from zonekeeper.models.provider import ProviderType
from zonekeeper.providers.base import DNSProviderClient
from zonekeeper.schemas.provider import CloudflareConnection
from zonekeeper.schemas.provider_data import DnssecInfo
from zonekeeper.schemas.remote import RecordSpec, RemoteRecord, RemoteZone, ZoneSpec

logger = logging.getLogger(__name__)

VALID_RECORD_TYPES = {
    "A", "AAAA", "CAA", "CERT", "CNAME", "DNSKEY", "DS", "HTTPS", "LOC", "MX",
    "NAPTR", "NS", "PTR", "SMIMEA", "SRV", "SSHFP", "SVCB", "TLSA", "TXT", "URI",
}
ZONES_PER_PAGE = 50
RECORDS_PER_PAGE = 500


class CloudflareClient(DNSProviderClient):
    """CloudFlare v4 REST client with bearer-token auth"""

    provider_type = ProviderType.CLOUDFLARE
    connection_model = CloudflareConnection
    manages_apex_records = True
    manages_dnssec_keys = True

    @property
    def base_url(self) -> str:
        return (self.config.base_url or settings.CLOUDFLARE_API_URL).rstrip("/")

    def _error_message(self, response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            first = errors[0]
            return first.get("message", str(first)) if isinstance(first, dict) else str(first)
        return f"CloudFlare API error (HTTP {response.status_code})"

    async def _envelope(self, method: str, path: str, params: Optional[dict] = None,
                        json: Any = None) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.config.api_token}",
            "Content-Type": "application/json",
        }
        response = await self._send(method, f"{self.base_url}/{path.lstrip('/')}", headers=headers,
                                    params=params, json=json)
        self._raise_for_status(response)

        try:
            body = response.json()
        except ValueError:
            raise RemoteApiError("CloudFlare returned a non-JSON response", status_code=response.status_code)
        if not body.get("success", False):
            message = self._error_message(response)
            if response.status_code in (401, 403):
                raise AuthenticationError(message, status_code=response.status_code)
            raise RemoteApiError(message, status_code=response.status_code)
        return body

    async def _request(self, method: str, path: str, params: Optional[dict] = None, json: Any = None) -> Any:
        return (await self._envelope(method, path, params=params, json=json)).get("result")

    async def _paginate(self, path: str, params: Optional[dict] = None, per_page: int = ZONES_PER_PAGE) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            query = dict(params or {}, page=page, per_page=per_page)
            body = await self._envelope("GET", path, params=query)
            items.extend(body.get("result") or [])
            info = body.get("result_info") or {}
            if page >= int(info.get("total_pages") or 1):
                return items
            page += 1

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    def _to_remote_zone(self, data: Dict[str, Any]) -> RemoteZone:
        return RemoteZone(
            id=data["id"],
            name=self.absolute(data["name"]),
            nameservers=[self.absolute(ns) for ns in data.get("name_servers") or []],
            raw={k: data.get(k) for k in ("status", "type", "paused", "account", "plan") if k in data},
        )

    def _to_remote_record(self, data: Dict[str, Any]) -> RemoteRecord:
        return RemoteRecord(
            id=data["id"],
            name=self.absolute(data["name"]),
            type=data["type"].upper(),
            content=data.get("content", ""),
            ttl=data.get("ttl") or 1,
            priority=data.get("priority"),
            comment=data.get("comment"),
            raw={k: data.get(k) for k in ("proxied", "proxiable", "locked", "tags") if k in data},
        )

    def _record_payload(self, record: RecordSpec) -> Dict[str, Any]:
        record_type = record.type.upper()
        if record_type not in VALID_RECORD_TYPES:
            raise ValidationError(f"CloudFlare does not support record type {record_type}")
        if not 1 <= record.ttl <= 86400:
            raise ValidationError("CloudFlare TTL must be between 1 (automatic) and 86400")

        payload: Dict[str, Any] = {
            "type": record_type,
            "name": self.relative_to_root(record.name),
            "content": record.content,
            "ttl": record.ttl,
        }
        if record_type in ("MX", "SRV", "URI") and record.priority is not None:
            payload["priority"] = record.priority
        if record.comment:
            payload["comment"] = record.comment
        if record_type in ("A", "AAAA", "CNAME"):
            payload["proxied"] = False
        return payload

    async def _zone_id(self, zone_id: str) -> str:
        """Accept either a CloudFlare zone id or a zone name"""
        if "." not in zone_id:
            return zone_id
        zones = await self._request("GET", "zones", params={"name": self.relative_to_root(zone_id)})
        if not zones:
            raise NotFoundError(f"Zone {zone_id} not found on CloudFlare")
        return zones[0]["id"]

    async def _find_record_id(self, zone_id: str, record: RecordSpec) -> str:
        matches = await self._request(
            "GET", f"zones/{zone_id}/dns_records",
            params={"name": self.relative_to_root(record.name), "type": record.type},
        )
        for item in matches or []:
            if item.get("content") == record.content:
                return item["id"]
        raise NotFoundError(f"Record {record.name} {record.type} {record.content} not found on CloudFlare")

    # ------------------------------------------------------------------
    # Zones
    # ------------------------------------------------------------------

    async def _test_connection(self) -> Dict[str, Any]:
        return await self._request("GET", "user/tokens/verify") or {}

    async def _list_zones(self) -> List[RemoteZone]:
        return [self._to_remote_zone(z) for z in await self._paginate("zones")]

    async def _get_zone(self, zone_id: str) -> RemoteZone:
        return self._to_remote_zone(await self._request("GET", f"zones/{await self._zone_id(zone_id)}"))

    async def _create_zone(self, spec: ZoneSpec) -> RemoteZone:
        if not self.config.account_id:
            raise ConfigurationError(f"Provider {self.provider_name} needs account_id to create zones")
        payload = {
            "name": self.relative_to_root(spec.name),
            "account": {"id": self.config.account_id},
            "type": "full",
        }
        return self._to_remote_zone(await self._request("POST", "zones", json=payload))

    async def _update_zone(self, zone_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        unsupported = [field for field in ("kind", "masters") if field in patch]
        if unsupported:
            raise UnsupportedOperationError(f"CloudFlare zones have no {', '.join(unsupported)}")
        # CloudFlare has no zone-wide default TTL; records carry their own
        return {}

    async def _delete_zone(self, zone_id: str) -> None:
        await self._request("DELETE", f"zones/{await self._zone_id(zone_id)}")

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def _list_records(self, zone_id: str) -> List[RemoteRecord]:
        zone_id = await self._zone_id(zone_id)
        items = await self._paginate(f"zones/{zone_id}/dns_records", per_page=RECORDS_PER_PAGE)
        return [self._to_remote_record(r) for r in items]

    async def _create_record(self, zone_id: str, record: RecordSpec) -> RemoteRecord:
        payload = self._record_payload(record)
        zone_id = await self._zone_id(zone_id)
        return self._to_remote_record(await self._request("POST", f"zones/{zone_id}/dns_records", json=payload))

    async def _update_record(self, zone_id: str, record_id: Optional[str], old: RecordSpec,
                             new: RecordSpec) -> RemoteRecord:
        payload = self._record_payload(new)
        zone_id = await self._zone_id(zone_id)
        record_id = record_id or await self._find_record_id(zone_id, old)
        data = await self._request("PUT", f"zones/{zone_id}/dns_records/{record_id}", json=payload)
        return self._to_remote_record(data)

    async def _delete_record(self, zone_id: str, record_id: Optional[str], record: RecordSpec) -> None:
        zone_id = await self._zone_id(zone_id)
        record_id = record_id or await self._find_record_id(zone_id, record)
        await self._request("DELETE", f"zones/{zone_id}/dns_records/{record_id}")

    # ------------------------------------------------------------------
    # DNSSEC (signing is fully managed by CloudFlare)
    # ------------------------------------------------------------------

    def _to_dnssec_info(self, data: Dict[str, Any]) -> DnssecInfo:
        extra = {k: data.get(k) for k in ("ds", "digest", "key_tag", "algorithm", "public_key") if data.get(k)}
        return DnssecInfo(managed_by_provider=True, status=data.get("status"), **extra)

    async def _get_dnssec_status(self, zone_id: str) -> DnssecInfo:
        zone_id = await self._zone_id(zone_id)
        return self._to_dnssec_info(await self._request("GET", f"zones/{zone_id}/dnssec") or {})

    async def _set_dnssec(self, zone_id: str, enabled: bool) -> DnssecInfo:
        zone_id = await self._zone_id(zone_id)
        data = await self._request(
            "PATCH", f"zones/{zone_id}/dnssec", json={"status": "active" if enabled else "disabled"}
        )
        return self._to_dnssec_info(data or {})
