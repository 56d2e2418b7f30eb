from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from typing import Any, Dict, List, Optional
from datetime import datetime
import logging

from app.core.session_store import SessionStore
from app.services.airtable_service import AirtableService

logger = logging.getLogger(__name__)

async def require_admin_key(request: Request, x_api_key: Optional[str] = Header(None)):
    expected = request.app.state.settings.admin_api_key
    if not expected or x_api_key != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")

def get_store(request: Request) -> SessionStore:
    return request.app.state.store

def get_catalog(request: Request) -> AirtableService:
    return request.app.state.catalog

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin_key)])

@router.get("/history/{phone_number}")
async def get_history(
    phone_number: str,
    limit: int = Query(50, ge=1, le=500),
    store: SessionStore = Depends(get_store)
) -> List[Dict[str, Any]]:
    """Chat history for a user, newest first"""
    history = await store.get_history(phone_number, limit)
    return [entry.model_dump(mode="json") for entry in history]

@router.get("/session/{phone_number}")
async def get_session(phone_number: str, store: SessionStore = Depends(get_store)) -> Dict[str, Any]:
    session = await store.get(phone_number)
    return session.model_dump(mode="json") if session else {}

@router.delete("/session/{phone_number}")
async def clear_session(phone_number: str, store: SessionStore = Depends(get_store)) -> Dict[str, str]:
    await store.clear(phone_number)
    logger.info(f"Session cleared by admin for {phone_number}")
    return {"message": "Session cleared successfully"}

@router.get("/interactions")
async def get_interactions(
    phone_number: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    catalog: AirtableService = Depends(get_catalog)
) -> List[Dict[str, Any]]:
    interactions = await catalog.get_interactions(phone_number, limit)
    return [interaction.model_dump() for interaction in interactions]

@router.get("/status")
async def get_status(store: SessionStore = Depends(get_store)) -> Dict[str, Any]:
    store_ok = await store.ping()
    active_sessions = await store.count_active_sessions() if store_ok else None
    return {
        "timestamp": datetime.now().isoformat(),
        "services": {
            "session_store": "connected" if store_ok else "unavailable"
        },
        "metrics": {
            "active_sessions": active_sessions
        }
    }
