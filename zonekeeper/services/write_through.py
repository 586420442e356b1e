"""Helpers shared by the services that write to a provider before the database"""
import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from zonekeeper.core.exceptions import DivergenceWarning
from zonekeeper.providers.base import ErrorCause, ProviderResult
from zonekeeper.schemas.provider_data import ZoneProviderData
from zonekeeper.schemas.remote import RemoteRecord, RemoteZone
from zonekeeper.schemas.result import ErrorKind, OperationResult

logger = logging.getLogger(__name__)

_CAUSE_TO_KIND = {
    ErrorCause.VALIDATION: ErrorKind.VALIDATION,
    ErrorCause.NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCause.RATE_LIMITED: ErrorKind.RATE_LIMITED,
    ErrorCause.TUNNEL: ErrorKind.TUNNEL,
    ErrorCause.UNSUPPORTED: ErrorKind.UNSUPPORTED,
    ErrorCause.CONFIGURATION: ErrorKind.CONFIGURATION,
}


def remote_failure(result: ProviderResult, action: str) -> OperationResult:
    """OperationResult for a provider call that did not succeed"""
    kind = _CAUSE_TO_KIND.get(result.cause, ErrorKind.REMOTE)
    return OperationResult.fail(kind, f"Failed to {action}: {result.message}", remote=result.model_dump())


async def commit_or_diverge(db: AsyncSession, message: str, local: Any, remote: Any) -> OperationResult:
    """Commit the session after a successful remote write.

    A failed commit is rolled back and reported as a divergence: the
    backend already holds the change and the next sync brings it home.
    """
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        warning = DivergenceWarning(f"{message} remotely, local commit failed: {e}", remote_payload=remote)
        logger.error(f"Divergence: {warning}")
        return OperationResult.ok(message, remote=remote, divergence=str(warning))
    return OperationResult.ok(message, local=local, remote=remote)


def record_snapshot(remote: RemoteRecord) -> dict:
    data = dict(remote.raw)
    data["id"] = remote.id
    return data


def zone_snapshot(remote: RemoteZone, previous: Optional[dict] = None) -> dict:
    """Merge the remote zone into the stored snapshot, keeping DNSSEC data"""
    data = ZoneProviderData.load(previous)
    merged = data.model_dump(mode="json", exclude_none=True)
    merged.update(remote.raw)
    merged.update({"id": remote.id, "kind": remote.kind, "serial": remote.serial,
                   "nameservers": remote.nameservers})
    if data.dnssec is not None:
        merged["dnssec"] = data.dnssec.model_dump(mode="json", exclude_none=True)
    else:
        merged.pop("dnssec", None)
    merged["dnssec_keys"] = [k.model_dump(mode="json", exclude_none=True) for k in data.dnssec_keys]
    return ZoneProviderData.load(merged).dump()
