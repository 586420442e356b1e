"""Provider client interface shared by all DNS backends"""
import asyncio
import enum
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, List, Optional, Type

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from zonekeeper.core.config import settings
from zonekeeper.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    RateLimitError,
    RemoteApiError,
    TransientNetworkError,
    TunnelError,
    UnsupportedOperationError,
    ValidationError,
    ZoneKeeperError,
)
from zonekeeper.models.provider import DNSProvider, ProviderType
from zonekeeper.schemas.provider_data import DnssecInfo, DnssecKey
from zonekeeper.schemas.remote import RecordSpec, RemoteRecord, RemoteZone, ZoneSpec

logger = logging.getLogger(__name__)


class ErrorCause(str, enum.Enum):
    """Classified reason a provider call failed"""
    AUTHENTICATION = "authentication"
    RATE_LIMITED = "rate_limited"
    VALIDATION = "validation"
    TRANSIENT_NETWORK = "transient_network"
    NOT_FOUND = "not_found"
    TUNNEL = "tunnel"
    UNSUPPORTED = "unsupported"
    CONFIGURATION = "configuration"
    API = "api"


class ProviderResult(BaseModel):
    """Tagged result of a provider call: payload on success, cause on failure"""
    success: bool
    data: Any = None
    cause: Optional[ErrorCause] = None
    message: Optional[str] = None
    status_code: Optional[int] = None
    retry_after: Optional[int] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ProviderResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, cause: ErrorCause, message: str, **kwargs) -> "ProviderResult":
        return cls(success=False, cause=cause, message=message, **kwargs)

    @classmethod
    def from_exception(cls, exc: ZoneKeeperError) -> "ProviderResult":
        if isinstance(exc, RateLimitError):
            return cls.fail(ErrorCause.RATE_LIMITED, str(exc), status_code=exc.status_code,
                            retry_after=exc.retry_after)
        if isinstance(exc, AuthenticationError):
            return cls.fail(ErrorCause.AUTHENTICATION, str(exc), status_code=exc.status_code)
        if isinstance(exc, TransientNetworkError):
            return cls.fail(ErrorCause.TRANSIENT_NETWORK, str(exc))
        if isinstance(exc, RemoteApiError):
            if exc.status_code == 404:
                return cls.fail(ErrorCause.NOT_FOUND, str(exc), status_code=404)
            if exc.status_code in (400, 409, 422):
                return cls.fail(ErrorCause.VALIDATION, str(exc), status_code=exc.status_code)
            return cls.fail(ErrorCause.API, str(exc), status_code=exc.status_code)
        if isinstance(exc, TunnelError):
            return cls.fail(ErrorCause.TUNNEL, str(exc))
        if isinstance(exc, NotFoundError):
            return cls.fail(ErrorCause.NOT_FOUND, str(exc))
        if isinstance(exc, ValidationError):
            return cls.fail(ErrorCause.VALIDATION, str(exc))
        if isinstance(exc, UnsupportedOperationError):
            return cls.fail(ErrorCause.UNSUPPORTED, str(exc))
        if isinstance(exc, ConfigurationError):
            return cls.fail(ErrorCause.CONFIGURATION, str(exc))
        return cls.fail(ErrorCause.API, str(exc))


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return max(0, int(float(value)))
    except ValueError:
        return None


class DNSProviderClient(ABC):
    """Uniform zone and record CRUD over one backend.

    Public methods never raise for backend problems; they return a
    ProviderResult. Subclasses implement the underscored coroutines and raise
    from zonekeeper.core.exceptions, which the base class folds into results.
    Missing or invalid connection settings raise ConfigurationError from the
    constructor.
    """

    provider_type: ClassVar[ProviderType]
    connection_model: ClassVar[Type[BaseModel]]

    # Backend creates its own SOA/NS for new zones
    manages_apex_records: ClassVar[bool] = False
    # Backend signs zones itself, no key handling on our side
    manages_dnssec_keys: ClassVar[bool] = False
    # Priority travels inside MX/SRV content ("10 mail.example.com.")
    embeds_priority: ClassVar[bool] = False

    # Overridable in tests
    _sleep = staticmethod(asyncio.sleep)

    def __init__(self, provider: DNSProvider, transport: Optional[httpx.AsyncBaseTransport] = None, **kwargs):
        self.provider = provider
        self.provider_name = provider.name
        self.timeout = float(provider.timeout or settings.HTTP_TIMEOUT)
        self.transport = transport
        self.config = self._parse_config(provider.connection_config or {})

    @classmethod
    def _parse_config(cls, raw: Dict[str, Any]):
        try:
            return cls.connection_model.model_validate(raw)
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}" for err in e.errors()
            )
            raise ConfigurationError(f"Invalid connection config for {cls.provider_type.value}: {problems}")

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> httpx.Response:
        """Send one request, retrying HTTP 429 with exponential backoff"""
        max_attempts = max(1, settings.RATE_LIMIT_MAX_ATTEMPTS)

        for attempt in range(1, max_attempts + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                    response = await client.request(method, url, headers=headers, params=params, json=json)
            except httpx.TimeoutException as e:
                raise TransientNetworkError(f"Timeout calling {self.provider_name}: {e}")
            except httpx.TransportError as e:
                raise TransientNetworkError(f"Network error calling {self.provider_name}: {e}")

            if response.status_code != 429:
                return response

            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            if attempt >= max_attempts:
                raise RateLimitError(
                    f"Rate limited by {self.provider_name} after {max_attempts} attempts",
                    retry_after=retry_after if retry_after is not None else 60,
                )

            delay = settings.RATE_LIMIT_BACKOFF_BASE * (2 ** (attempt - 1))
            if retry_after:
                delay = max(delay, retry_after)
            delay = min(delay, settings.RATE_LIMIT_MAX_BACKOFF)
            logger.warning(
                f"{self.provider_name}: rate limited on {method} {url}, "
                f"retrying in {delay:.1f}s (attempt {attempt}/{max_attempts})"
            )
            await self._sleep(delay)

        raise RateLimitError(f"Rate limited by {self.provider_name}")

    def _error_message(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or body)
        return str(body)

    def _raise_for_status(self, response: httpx.Response):
        if response.status_code < 400:
            return
        message = self._error_message(response)
        if response.status_code in (401, 403):
            raise AuthenticationError(message, status_code=response.status_code)
        raise RemoteApiError(message, status_code=response.status_code)

    async def _call(self, operation: str, coro) -> ProviderResult:
        try:
            data = await coro
        except ZoneKeeperError as e:
            logger.warning(f"{self.provider_name}: {operation} failed: {e}")
            return ProviderResult.from_exception(e)
        return ProviderResult.ok(data)

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    async def test_connection(self) -> ProviderResult:
        return await self._call("test_connection", self._test_connection())

    async def list_zones(self) -> ProviderResult:
        return await self._call("list_zones", self._list_zones())

    async def get_zone(self, zone_id: str) -> ProviderResult:
        return await self._call(f"get_zone {zone_id}", self._get_zone(zone_id))

    async def create_zone(self, spec: ZoneSpec) -> ProviderResult:
        return await self._call(f"create_zone {spec.name}", self._create_zone(spec))

    async def update_zone(self, zone_id: str, patch: Dict[str, Any]) -> ProviderResult:
        return await self._call(f"update_zone {zone_id}", self._update_zone(zone_id, patch))

    async def delete_zone(self, zone_id: str) -> ProviderResult:
        return await self._call(f"delete_zone {zone_id}", self._delete_zone(zone_id))

    async def list_records(self, zone_id: str) -> ProviderResult:
        return await self._call(f"list_records {zone_id}", self._list_records(zone_id))

    async def create_record(self, zone_id: str, record: RecordSpec) -> ProviderResult:
        return await self._call(f"create_record {record.name} {record.type}", self._create_record(zone_id, record))

    async def update_record(self, zone_id: str, record_id: Optional[str], old: RecordSpec, new: RecordSpec) -> ProviderResult:
        return await self._call(f"update_record {old.name} {old.type}", self._update_record(zone_id, record_id, old, new))

    async def delete_record(self, zone_id: str, record_id: Optional[str], record: RecordSpec) -> ProviderResult:
        return await self._call(f"delete_record {record.name} {record.type}", self._delete_record(zone_id, record_id, record))

    async def get_soa(self, zone_id: str) -> ProviderResult:
        return await self._call(f"get_soa {zone_id}", self._get_soa(zone_id))

    async def replace_soa(self, zone_id: str, zone_name: str, content: str, ttl: int) -> ProviderResult:
        return await self._call(f"replace_soa {zone_id}", self._replace_soa(zone_id, zone_name, content, ttl))

    async def get_dnssec_status(self, zone_id: str) -> ProviderResult:
        return await self._call(f"get_dnssec_status {zone_id}", self._get_dnssec_status(zone_id))

    async def set_dnssec(self, zone_id: str, enabled: bool) -> ProviderResult:
        return await self._call(f"set_dnssec {zone_id}", self._set_dnssec(zone_id, enabled))

    async def list_keys(self, zone_id: str) -> ProviderResult:
        return await self._call(f"list_keys {zone_id}", self._list_keys(zone_id))

    async def create_key(self, zone_id: str, key_type: str, algorithm: str, bits: int = 0,
                         active: bool = False) -> ProviderResult:
        return await self._call(f"create_key {zone_id}", self._create_key(zone_id, key_type, algorithm, bits, active))

    async def set_key_active(self, zone_id: str, key_id: str, active: bool) -> ProviderResult:
        return await self._call(f"set_key_active {zone_id}/{key_id}", self._set_key_active(zone_id, key_id, active))

    async def rectify_zone(self, zone_id: str) -> ProviderResult:
        return await self._call(f"rectify_zone {zone_id}", self._rectify_zone(zone_id))

    async def server_stats(self) -> ProviderResult:
        return await self._call("server_stats", self._server_stats())

    async def flush_cache(self, domain: str) -> ProviderResult:
        return await self._call(f"flush_cache {domain}", self._flush_cache(domain))

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _test_connection(self) -> Dict[str, Any]: ...

    @abstractmethod
    async def _list_zones(self) -> List[RemoteZone]: ...

    @abstractmethod
    async def _get_zone(self, zone_id: str) -> RemoteZone: ...

    @abstractmethod
    async def _create_zone(self, spec: ZoneSpec) -> RemoteZone: ...

    @abstractmethod
    async def _update_zone(self, zone_id: str, patch: Dict[str, Any]) -> Dict[str, Any]: ...

    @abstractmethod
    async def _delete_zone(self, zone_id: str) -> None: ...

    @abstractmethod
    async def _list_records(self, zone_id: str) -> List[RemoteRecord]: ...

    @abstractmethod
    async def _create_record(self, zone_id: str, record: RecordSpec) -> RemoteRecord: ...

    @abstractmethod
    async def _update_record(self, zone_id: str, record_id: Optional[str], old: RecordSpec,
                             new: RecordSpec) -> RemoteRecord: ...

    @abstractmethod
    async def _delete_record(self, zone_id: str, record_id: Optional[str], record: RecordSpec) -> None: ...

    async def _get_soa(self, zone_id: str) -> RemoteRecord:
        raise UnsupportedOperationError(f"{self.provider_type.value} does not expose a writable SOA")

    async def _replace_soa(self, zone_id: str, zone_name: str, content: str, ttl: int) -> RemoteRecord:
        raise UnsupportedOperationError(f"{self.provider_type.value} does not expose a writable SOA")

    async def _get_dnssec_status(self, zone_id: str) -> DnssecInfo:
        raise UnsupportedOperationError(f"{self.provider_type.value} does not support DNSSEC")

    async def _set_dnssec(self, zone_id: str, enabled: bool) -> DnssecInfo:
        raise UnsupportedOperationError(f"{self.provider_type.value} cannot toggle DNSSEC remotely")

    async def _list_keys(self, zone_id: str) -> List[DnssecKey]:
        raise UnsupportedOperationError(f"{self.provider_type.value} does not expose DNSSEC keys")

    async def _create_key(self, zone_id: str, key_type: str, algorithm: str, bits: int, active: bool) -> DnssecKey:
        raise UnsupportedOperationError(f"{self.provider_type.value} does not expose DNSSEC keys")

    async def _set_key_active(self, zone_id: str, key_id: str, active: bool) -> DnssecKey:
        raise UnsupportedOperationError(f"{self.provider_type.value} does not expose DNSSEC keys")

    async def _rectify_zone(self, zone_id: str) -> None:
        return None

    async def _server_stats(self) -> Dict[str, Any]:
        raise UnsupportedOperationError(f"{self.provider_type.value} does not report server statistics")

    async def _flush_cache(self, domain: str) -> Dict[str, Any]:
        raise UnsupportedOperationError(f"{self.provider_type.value} has no cache to flush")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def absolute(name: str) -> str:
        name = name.strip().lower()
        return name if name.endswith(".") else f"{name}."

    @staticmethod
    def relative_to_root(name: str) -> str:
        return name.rstrip(".")

    @staticmethod
    def split_priority(record_type: str, content: str):
        """'10 mail.example.com.' -> (10, 'mail.example.com.') for MX/SRV"""
        if record_type in ("MX", "SRV"):
            head, _, rest = content.strip().partition(" ")
            if head.isdigit() and rest:
                return int(head), rest.strip()
        return None, content

    @staticmethod
    def join_priority(record_type: str, content: str, priority: Optional[int]) -> str:
        if record_type in ("MX", "SRV") and priority is not None:
            return f"{priority} {content}"
        return content
