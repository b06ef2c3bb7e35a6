"""AIRLOG — Payload Mapping API Routes."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from airlog.database import get_session
from airlog.mapping.evaluator import describe_defaults
from airlog.models.api_models import MappingCreate
from airlog.models.station_models import PayloadMapping
from airlog.store import catalog

router = APIRouter(prefix="/mappings", tags=["Mappings"])


@router.get("")
async def list_mappings(session: Session = Depends(get_session)):
    mappings = catalog.list_mappings(session)
    return {"status": "success", "count": len(mappings), "mappings": mappings}


@router.get("/defaults")
async def get_default_paths():
    """Paths tried per connection type when a connection has no mapping."""
    return {"status": "success", "defaults": describe_defaults()}


@router.post("", status_code=201)
async def create_mapping(
    request: MappingCreate, session: Session = Depends(get_session)
):
    return catalog.create_mapping(session, request)


@router.get("/{mapping_id}")
async def get_mapping(mapping_id: uuid.UUID, session: Session = Depends(get_session)):
    mapping = session.get(PayloadMapping, mapping_id)
    if mapping is None:
        raise HTTPException(status_code=404, detail="Mapping not found")
    return mapping


@router.put("/{mapping_id}")
async def update_mapping(
    mapping_id: uuid.UUID,
    request: MappingCreate,
    session: Session = Depends(get_session),
):
    # Workers load the mapping on every tick, so no reconcile is needed
    mapping = catalog.update_mapping(session, mapping_id, request)
    if mapping is None:
        raise HTTPException(status_code=404, detail="Mapping not found")
    return mapping


@router.delete("/{mapping_id}")
async def delete_mapping(mapping_id: uuid.UUID, session: Session = Depends(get_session)):
    if not catalog.delete_mapping(session, mapping_id):
        raise HTTPException(status_code=404, detail="Mapping not found")
    return {"status": "success", "deleted": str(mapping_id)}
