"""
Tests for palimpsest/services/ingestion.py
All-or-nothing ingestion, failure modes, deletion.
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from palimpsest.core.errors import IngestionFailure, InvalidInput, NotFound, Unauthorized
from palimpsest.models.resource import Embedding, Resource
from palimpsest.services.ingestion import SUCCESS_MESSAGE, ResourceIngester

from conftest import DIM, FailingEmbedder, StaticEmbedder


async def count_rows(db):
    async with db.session() as session:
        resources = await session.scalar(select(func.count(Resource.id)))
        embeddings = await session.scalar(select(func.count(Embedding.id)))
    return resources, embeddings


class TestIngest:
    async def test_resource_and_embeddings_stored_together(self, db, users):
        ingester = ResourceIngester(db, StaticEmbedder(chunk_size=40), dimension=DIM)
        content = "Pets are allowed. " * 10

        result = await ingester.ingest(content, owner_id="alice")

        assert result.message == SUCCESS_MESSAGE
        assert result.chunk_count > 1
        assert await count_rows(db) == (1, result.chunk_count)

        async with db.session() as session:
            rows = (await session.execute(
                select(Embedding).where(Embedding.resource_id == result.resource_id).order_by(Embedding.chunk_index)
            )).scalars().all()
        assert [r.chunk_index for r in rows] == list(range(result.chunk_count))
        assert "".join(r.content for r in rows) == content

    @pytest.mark.parametrize("content", ["", "   ", "\n\t"])
    async def test_blank_content_rejected(self, db, users, content):
        ingester = ResourceIngester(db, StaticEmbedder(), dimension=DIM)
        with pytest.raises(InvalidInput):
            await ingester.ingest(content, owner_id="alice")
        assert await count_rows(db) == (0, 0)

    async def test_generator_failure_stores_nothing(self, db, users):
        ingester = ResourceIngester(db, FailingEmbedder(), dimension=DIM)
        with pytest.raises(IngestionFailure):
            await ingester.ingest("some content", owner_id="alice")
        assert await count_rows(db) == (0, 0)

    async def test_storage_failure_rolls_back_resource(self, db, users, monkeypatch):
        ingester = ResourceIngester(db, StaticEmbedder(), dimension=DIM)

        async def broken_write(session, resource_id, chunks):
            raise OperationalError("INSERT INTO embeddings", {}, Exception("disk full"))

        monkeypatch.setattr(ingester, "_write_embeddings", broken_write)
        with pytest.raises(IngestionFailure):
            await ingester.ingest("some content", owner_id="alice")
        assert await count_rows(db) == (0, 0)

    async def test_dimension_mismatch(self, db, users):
        embedder = StaticEmbedder(vectors={"short": [1.0, 0.0]})
        ingester = ResourceIngester(db, embedder, dimension=DIM)
        with pytest.raises(IngestionFailure):
            await ingester.ingest("short", owner_id="alice")
        assert await count_rows(db) == (0, 0)

    async def test_anonymous_ingest(self, db):
        ingester = ResourceIngester(db, StaticEmbedder(), dimension=DIM)
        result = await ingester.ingest("unowned knowledge")
        assert result.chunk_count == 1


class TestDeleteAndList:
    async def test_delete_cascades_to_embeddings(self, db, users):
        ingester = ResourceIngester(db, StaticEmbedder(chunk_size=40), dimension=DIM)
        result = await ingester.ingest("Quiet street. " * 10, owner_id="alice")

        await ingester.delete(result.resource_id, owner_id="alice")
        assert await count_rows(db) == (0, 0)

    async def test_delete_needs_owner(self, db, users):
        ingester = ResourceIngester(db, StaticEmbedder(), dimension=DIM)
        result = await ingester.ingest("mine", owner_id="alice")
        with pytest.raises(Unauthorized):
            await ingester.delete(result.resource_id, owner_id="bob")
        with pytest.raises(NotFound):
            await ingester.delete("missing", owner_id="alice")

    async def test_list_for_owner(self, db, users):
        ingester = ResourceIngester(db, StaticEmbedder(chunk_size=40), dimension=DIM)
        long = await ingester.ingest("Close to the park. " * 6, owner_id="alice")
        await ingester.ingest("bob's note", owner_id="bob")

        summaries = await ingester.list_for_owner("alice")
        assert [s.id for s in summaries] == [long.resource_id]
        assert summaries[0].chunk_count == long.chunk_count
