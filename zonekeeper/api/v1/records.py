"""DNS record endpoints"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from zonekeeper.api.deps import get_container, raise_for_result, result_body
from zonekeeper.core.database import get_db
from zonekeeper.schemas.dns import DNSRecordCreate, DNSRecordResponse, DNSRecordUpdate
from zonekeeper.services.container import ServiceContainer
from zonekeeper.services.record_service import RecordService

router = APIRouter()


def _with_record(result) -> dict:
    body = result_body(result)
    if result.local is not None:
        body["record"] = DNSRecordResponse.model_validate(result.local).model_dump(mode="json")
    if result.ptr is not None and result.ptr.local is not None:
        body["ptr"]["record"] = DNSRecordResponse.model_validate(result.ptr.local).model_dump(mode="json")
    return body


@router.get("/", response_model=List[DNSRecordResponse])
async def list_records(
    zone: Optional[str] = None,
    type: Optional[str] = None,
    name: Optional[str] = None,
    content: Optional[str] = None,
    search: Optional[str] = None,
    skip: int = 0,
    limit: int = 500,
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """List records, optionally filtered"""
    return await RecordService(db, container).list_records(
        zone=zone, record_type=type, name=name, content=content, search=search, skip=skip, limit=limit
    )


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_record(
    record_in: DNSRecordCreate,
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Create a record on the provider, then locally"""
    result = raise_for_result(await RecordService(db, container).create_record(record_in))
    return _with_record(result)


@router.get("/{record_id}")
async def get_record(
    record_id: int,
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Record with its PTR (for A/AAAA) or forward records (for PTR)"""
    service = RecordService(db, container)
    record = await service.get_record(record_id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")

    body = {"record": DNSRecordResponse.model_validate(record).model_dump(mode="json")}
    if record.type in ("A", "AAAA"):
        ptr = await service.find_ptr(record.content, record.name)
        body["ptr"] = DNSRecordResponse.model_validate(ptr).model_dump(mode="json") if ptr else None
    elif record.type == "PTR":
        forward = await service.find_forward(record)
        body["forward"] = [DNSRecordResponse.model_validate(r).model_dump(mode="json") for r in forward]
    return body


@router.patch("/{record_id}")
async def update_record(
    record_id: int,
    record_update: DNSRecordUpdate,
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    result = raise_for_result(await RecordService(db, container).update_record(record_id, record_update))
    return _with_record(result)


@router.delete("/{record_id}")
async def delete_record(
    record_id: int,
    delete_ptr: bool = False,
    skip_remote: bool = False,
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Delete a record on the provider and soft-delete it locally"""
    result = await RecordService(db, container).delete_record(record_id, delete_ptr=delete_ptr,
                                                              skip_remote=skip_remote)
    return result_body(raise_for_result(result))
