"""
In-memory document storage implementation.

Stands in for the external document database in tests and single-instance
development setups. Data is lost on restart.
"""

import copy
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class InMemoryDocumentStore:
    """In-memory implementation of the DocumentStore protocol."""

    def __init__(self):
        # account_id -> document_id -> fields
        self._documents: Dict[str, Dict[str, Dict[str, Any]]] = {}

        logger.info("InMemoryDocumentStore initialized")

    def put_document(self, account_id: str, document_id: str, fields: Dict[str, Any]) -> None:
        """Create or replace a raw entry."""
        document = dict(fields)
        document.setdefault("created_at", datetime.now().isoformat())
        self._documents.setdefault(account_id, {})[document_id] = document
        logger.debug(f"Stored document {document_id} (account={account_id})")

    def delete_document(self, account_id: str, document_id: str) -> bool:
        removed = self._documents.get(account_id, {}).pop(document_id, None)
        return removed is not None

    async def get_document(self, account_id: str, document_id: str) -> Optional[Dict[str, Any]]:
        document = self._documents.get(account_id, {}).get(document_id)
        return copy.deepcopy(document) if document is not None else None

    async def exists(self, account_id: str, document_id: str) -> bool:
        return document_id in self._documents.get(account_id, {})

    async def list_document_ids(self, account_id: str) -> List[str]:
        return list(self._documents.get(account_id, {}))
