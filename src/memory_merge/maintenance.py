"""
Consistency and migration tasks across the document and vector stores.

The two stores are written independently, so they can drift: a vector whose
document was deleted, or a document whose vector write failed. These tasks
detect and repair that drift, and re-embed rows produced by an older synonym
table or embedding model. They run from the CLI, never inside a request.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from memory_merge.knowledge_service import KnowledgeService, entry_from_document
from memory_merge.storage import DocumentStore, KnowledgeVectorStore

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    account_id: str
    orphaned: List[str] = field(default_factory=list)  # vector ids without a document
    missing: List[str] = field(default_factory=list)  # document ids without a vector

    @property
    def consistent(self) -> bool:
        return not self.orphaned and not self.missing


@dataclass
class RepairResult:
    deleted: List[str] = field(default_factory=list)
    embedded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class KnowledgeMaintenance:
    def __init__(
        self,
        vector_store: KnowledgeVectorStore,
        document_store: DocumentStore,
        knowledge_service: KnowledgeService,
    ):
        self.vector_store = vector_store
        self.document_store = document_store
        self.knowledge_service = knowledge_service

    async def reconcile(self, account_id: str) -> ReconciliationReport:
        """Compare both stores for one account."""
        rows = await self.vector_store.scan(account_id)
        document_ids = set(await self.document_store.list_document_ids(account_id))
        vectored = {row.payload.document_id for row in rows}

        report = ReconciliationReport(
            account_id=account_id,
            orphaned=[row.id for row in rows if row.payload.document_id not in document_ids],
            missing=sorted(document_ids - vectored),
        )

        logger.info(
            f"Reconciled account {account_id}: {len(rows)} vectors, {len(document_ids)} documents, "
            f"{len(report.orphaned)} orphaned, {len(report.missing)} missing"
        )
        return report

    async def repair(
        self, account_id: str, report: Optional[ReconciliationReport] = None
    ) -> RepairResult:
        """
        Delete orphaned vectors and embed documents that have no vector.

        Documents that cannot be embedded are reported in ``failed`` and left
        for the next run.
        """
        report = report or await self.reconcile(account_id)
        result = RepairResult()

        for vector_id in report.orphaned:
            if await self.vector_store.delete_by_vector_id(vector_id):
                result.deleted.append(vector_id)

        for document_id in report.missing:
            document = await self.document_store.get_document(account_id, document_id)
            if not document or not (document.get("content") or "").strip():
                logger.warning(f"Document {document_id} has no content, cannot embed")
                result.failed.append(document_id)
                continue

            await self.knowledge_service.store(account_id, document_id, entry_from_document(document))
            result.embedded.append(document_id)

        logger.info(
            f"Repaired account {account_id}: deleted {len(result.deleted)}, "
            f"embedded {len(result.embedded)}, failed {len(result.failed)}"
        )
        return result

    async def migrate_enrichment(self, account_id: str) -> int:
        """
        Re-enrich and re-embed rows with a stale enrichment version or model.

        Returns:
            Number of rows migrated
        """
        enricher_version = self.knowledge_service.enricher.version
        model_name = self.knowledge_service.embedding.model_name

        migrated = 0
        for row in await self.vector_store.scan(account_id):
            payload = row.payload
            if (
                payload.enrichment_version == enricher_version
                and payload.embedding_model == model_name
            ):
                continue

            document = await self.document_store.get_document(account_id, payload.document_id)
            if not document:
                logger.warning(
                    f"Skipping stale vector {row.id}: document {payload.document_id} not found"
                )
                continue

            # Keep the original provenance date
            await self.knowledge_service.store(
                account_id,
                payload.document_id,
                entry_from_document(document),
                storage_date=datetime.fromisoformat(payload.created_at),
            )
            migrated += 1

        logger.info(
            f"Migrated {migrated} vectors for account {account_id} "
            f"(enrichment={enricher_version}, model={model_name})"
        )
        return migrated
