"""
Realtime notifications. Thin wrapper around core.redis.
Provides typed event helpers for documents, suggestions and resources.
"""

from datetime import datetime

from ..core.redis import RedisPublisher


# ── Document events ──────────────────────────────────────────────────

async def version_created(publisher: RedisPublisher, owner_id: str, document_id: str, version: datetime):
    await publisher.notify_user(
        owner_id, "document.version_created",
        {"document_id": document_id, "version": version.isoformat()},
    )


async def document_truncated(publisher: RedisPublisher, owner_id: str, document_id: str, deleted: int):
    await publisher.notify_user(
        owner_id, "document.truncated", {"document_id": document_id, "deleted": deleted}
    )


# ── Suggestion events ────────────────────────────────────────────────

async def suggestion_created(publisher: RedisPublisher, owner_id: str, suggestion_id: str, document_id: str):
    await publisher.notify_user(
        owner_id, "suggestion.created",
        {"suggestion_id": suggestion_id, "document_id": document_id},
    )


async def suggestion_resolved(publisher: RedisPublisher, owner_id: str, suggestion_id: str):
    await publisher.notify_user(owner_id, "suggestion.resolved", {"suggestion_id": suggestion_id})


# ── Resource events ──────────────────────────────────────────────────

async def resource_ingested(publisher: RedisPublisher, owner_id: str, resource_id: str, chunks: int):
    await publisher.notify_user(
        owner_id, "resource.ingested", {"resource_id": resource_id, "chunks": chunks}
    )


async def resource_deleted(publisher: RedisPublisher, owner_id: str, resource_id: str):
    await publisher.notify_user(owner_id, "resource.deleted", {"resource_id": resource_id})
