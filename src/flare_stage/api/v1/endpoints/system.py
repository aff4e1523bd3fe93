"""Health and service information endpoints."""

from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import text

from flare_stage.core.settings import settings

from ..dependencies import SessionDep

router = APIRouter(tags=["system"])


@router.get("/health")
async def api_health(db: SessionDep) -> dict[str, str]:
    """Report service and database status."""
    db.execute(text("SELECT 1"))
    return {"status": "ok", "database": "ok", "version": settings.app_version}
