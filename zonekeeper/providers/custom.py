"""Generic REST backend client.

Expects a JSON API laid out as::

    GET/POST          {base_url}/zones
    GET/PATCH/DELETE  {base_url}/zones/{zone_id}
    GET/POST          {base_url}/zones/{zone_id}/records
    PUT/DELETE        {base_url}/zones/{zone_id}/records/{record_id}

Responses may be bare objects or wrapped in ``{"data": ...}``.
"""
from typing import Any, Dict, List, Optional

from zonekeeper.core.exceptions import NotFoundError, UnsupportedOperationError
from zonekeeper.models.provider import ProviderType
from zonekeeper.providers.base import DNSProviderClient
from zonekeeper.schemas.provider import CustomConnection
from zonekeeper.schemas.remote import RecordSpec, RemoteRecord, RemoteZone, ZoneSpec


class CustomRestClient(DNSProviderClient):
    provider_type = ProviderType.CUSTOM
    connection_model = CustomConnection

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", **self.config.headers}
        if self.config.api_key:
            scheme = f"{self.config.auth_scheme} " if self.config.auth_scheme else ""
            headers[self.config.auth_header] = f"{scheme}{self.config.api_key}"
        return headers

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        url = f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"
        response = await self._send(method, url, headers=self.headers, json=json)
        self._raise_for_status(response)
        if response.status_code == 204 or not response.content:
            return None
        body = response.json()
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    def _to_remote_zone(self, data: Dict[str, Any]) -> RemoteZone:
        return RemoteZone(
            id=str(data.get("id") or data["name"]),
            name=self.absolute(data["name"]),
            kind=data.get("kind"),
            serial=data.get("serial"),
            masters=data.get("masters") or [],
            nameservers=data.get("nameservers") or [],
            dnssec=bool(data.get("dnssec")),
            raw=data,
        )

    def _to_remote_record(self, data: Dict[str, Any]) -> RemoteRecord:
        return RemoteRecord(
            id=str(data["id"]),
            name=self.absolute(data["name"]),
            type=data["type"].upper(),
            content=data.get("content", ""),
            ttl=data.get("ttl") or 3600,
            priority=data.get("priority"),
            disabled=bool(data.get("disabled")),
            comment=data.get("comment"),
            raw=data,
        )

    async def _test_connection(self) -> Dict[str, Any]:
        zones = await self._request("GET", "zones")
        return {"zones": len(zones or [])}

    async def _list_zones(self) -> List[RemoteZone]:
        return [self._to_remote_zone(z) for z in await self._request("GET", "zones") or []]

    async def _get_zone(self, zone_id: str) -> RemoteZone:
        return self._to_remote_zone(await self._request("GET", f"zones/{zone_id}"))

    async def _create_zone(self, spec: ZoneSpec) -> RemoteZone:
        return self._to_remote_zone(await self._request("POST", "zones", json=spec.model_dump(mode="json")))

    async def _update_zone(self, zone_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PATCH", f"zones/{zone_id}", json=patch) or patch

    async def _delete_zone(self, zone_id: str) -> None:
        await self._request("DELETE", f"zones/{zone_id}")

    async def _list_records(self, zone_id: str) -> List[RemoteRecord]:
        return [self._to_remote_record(r) for r in await self._request("GET", f"zones/{zone_id}/records") or []]

    async def _create_record(self, zone_id: str, record: RecordSpec) -> RemoteRecord:
        data = await self._request("POST", f"zones/{zone_id}/records", json=record.model_dump())
        return self._to_remote_record(data)

    async def _resolve_record_id(self, zone_id: str, record: RecordSpec) -> str:
        for remote in await self._list_records(zone_id):
            if (remote.name, remote.type, remote.content) == (self.absolute(record.name), record.type, record.content):
                return remote.id
        raise NotFoundError(f"Record {record.name} {record.type} {record.content} not found")

    async def _update_record(self, zone_id: str, record_id: Optional[str], old: RecordSpec,
                             new: RecordSpec) -> RemoteRecord:
        record_id = record_id or await self._resolve_record_id(zone_id, old)
        data = await self._request("PUT", f"zones/{zone_id}/records/{record_id}", json=new.model_dump())
        return self._to_remote_record(data)

    async def _delete_record(self, zone_id: str, record_id: Optional[str], record: RecordSpec) -> None:
        record_id = record_id or await self._resolve_record_id(zone_id, record)
        await self._request("DELETE", f"zones/{zone_id}/records/{record_id}")

    async def _get_soa(self, zone_id: str) -> RemoteRecord:
        for record in await self._list_records(zone_id):
            if record.type == "SOA":
                return record
        raise UnsupportedOperationError("Backend does not publish an SOA record")

    async def _replace_soa(self, zone_id: str, zone_name: str, content: str, ttl: int) -> RemoteRecord:
        soa = await self._get_soa(zone_id)
        new = RecordSpec(name=soa.name, type="SOA", content=content, ttl=ttl)
        data = await self._request("PUT", f"zones/{zone_id}/records/{soa.id}", json=new.model_dump())
        return self._to_remote_record(data) if data else soa.model_copy(update={"content": content, "ttl": ttl})
