"""Tests for reconciliation, repair and enrichment migration."""

from datetime import datetime

import pytest

from memory_merge.knowledge_service import KnowledgeService
from memory_merge.maintenance import KnowledgeMaintenance
from memory_merge.models import KnowledgeEntry
from memory_merge.storage.vector.models import vector_id_for


@pytest.fixture
def knowledge_service(vector_store, embedding, document_store):
    return KnowledgeService(vector_store, embedding, document_store=document_store)


@pytest.fixture
def maintenance(vector_store, document_store, knowledge_service):
    return KnowledgeMaintenance(vector_store, document_store, knowledge_service)


async def _seed(document_store, knowledge_service, vector_store, embedding):
    # doc1: in both stores
    document_store.put_document("acct", "doc1", {"content": "Spare key under the mat"})
    await knowledge_service.store("acct", "doc1", KnowledgeEntry(content="Spare key under the mat"))
    # doc2: document only (vector write never happened)
    document_store.put_document("acct", "doc2", {"content": "Wifi password is on the fridge"})
    # doc3: vector only (document was deleted)
    vector = await embedding.embed_document("Old note")
    await vector_store.upsert("acct", "doc3", "Old note", vector)


@pytest.mark.asyncio
async def test_reconcile(maintenance, document_store, knowledge_service, vector_store, embedding):
    await _seed(document_store, knowledge_service, vector_store, embedding)

    report = await maintenance.reconcile("acct")

    assert report.orphaned == [vector_id_for("acct", "doc3")]
    assert report.missing == ["doc2"]
    assert report.consistent is False


@pytest.mark.asyncio
async def test_reconcile_empty_account(maintenance):
    report = await maintenance.reconcile("nobody")

    assert report.consistent is True


@pytest.mark.asyncio
async def test_repair(maintenance, document_store, knowledge_service, vector_store, embedding):
    await _seed(document_store, knowledge_service, vector_store, embedding)

    result = await maintenance.repair("acct")

    assert result.deleted == [vector_id_for("acct", "doc3")]
    assert result.embedded == ["doc2"]
    assert result.failed == []
    assert (await maintenance.reconcile("acct")).consistent is True


@pytest.mark.asyncio
async def test_repair_reports_blank_documents(maintenance, document_store):
    document_store.put_document("acct", "empty", {"content": "   "})

    result = await maintenance.repair("acct")

    assert result.failed == ["empty"]
    assert result.embedded == []


@pytest.mark.asyncio
async def test_migrate_enrichment(maintenance, document_store, knowledge_service, vector_store, embedding):
    document_store.put_document("acct", "stale", {"content": "Borrowed cash from my buddy"})
    vector = await embedding.embed_document("Borrowed cash from my buddy")
    await vector_store.upsert(
        "acct",
        "stale",
        "Borrowed cash from my buddy",
        vector,
        embedding_model="old-model",
        enrichment_version="0",
    )
    document_store.put_document("acct", "current", {"content": "Spare key under the mat"})
    await knowledge_service.store("acct", "current", KnowledgeEntry(content="Spare key under the mat"))

    migrated = await maintenance.migrate_enrichment("acct")

    assert migrated == 1
    row = await vector_store.get(vector_id_for("acct", "stale"))
    assert row.payload.enrichment_version == "1"
    assert row.payload.embedding_model == "hashing-test"
    assert "[Semantic context: related to money, related to friend." in row.payload.enriched_content


@pytest.mark.asyncio
async def test_migrate_skips_rows_without_document(maintenance, vector_store, embedding):
    vector = await embedding.embed_document("Orphan")
    await vector_store.upsert("acct", "gone", "Orphan", vector, enrichment_version="0")

    assert await maintenance.migrate_enrichment("acct") == 0


@pytest.mark.asyncio
async def test_migrate_keeps_original_storage_date(maintenance, document_store, vector_store, embedding):
    document_store.put_document("acct", "stale", {"content": "Spare key under the mat"})
    vector = await embedding.embed_document("Spare key under the mat")
    await vector_store.upsert(
        "acct",
        "stale",
        "Added on 2023-05-01: Spare key under the mat",
        vector,
        enrichment_version="0",
        created_at=datetime(2023, 5, 1, 9, 30),
    )

    assert await maintenance.migrate_enrichment("acct") == 1

    row = await vector_store.get(vector_id_for("acct", "stale"))
    assert row.payload.enriched_content.startswith("Added on 2023-05-01: Spare key")
    assert row.payload.created_at == datetime(2023, 5, 1, 9, 30).isoformat()
