"""
Main API router. Mounts all sub-routers under the API prefix.
"""

from fastapi import APIRouter

router = APIRouter()


# ── Health (no auth) ─────────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"status": "ok", "service": "palimpsest"}


# ── Routes (ownership checked per handler) ───────────────────────────

from .documents import documents_router
from .suggestions import suggestions_router
from .resources import resources_router

router.include_router(documents_router)
router.include_router(suggestions_router)
router.include_router(resources_router)
