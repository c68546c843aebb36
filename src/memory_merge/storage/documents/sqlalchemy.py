"""
SQLAlchemy-based document storage implementation.

Provides a read-mostly view of the raw knowledge entries on any
SQLAlchemy-compatible database (PostgreSQL, SQLite, MySQL, etc.). Sessions
are synchronous and run in a worker thread so the event loop is never blocked.
"""

import asyncio
import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, Engine, Index, String, Text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base

from memory_merge.errors import StoreUnavailable

logger = logging.getLogger(__name__)

# Create SQLAlchemy Base
Base = declarative_base()


class KnowledgeDocumentDB(Base):
    """SQLAlchemy model for raw knowledge entries."""

    __tablename__ = "knowledge_documents"

    # Primary key
    account_id = Column(String, primary_key=True)
    id = Column(String, primary_key=True)

    # Entry
    content = Column(Text, nullable=False)
    tags_json = Column(Text, nullable=False, default="[]")

    # Provenance
    added_by = Column(String, nullable=True)
    added_by_name = Column(String, nullable=True)
    client_storage_date = Column(String, nullable=True)
    user_timezone = Column(String, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=True)

    # Indexes
    __table_args__ = (Index("idx_knowledge_documents_account", "account_id"),)

    def to_document(self) -> Dict[str, Any]:
        """Convert database model to a document dictionary."""
        return {
            "id": self.id,
            "account_id": self.account_id,
            "content": self.content,
            "tags": json.loads(self.tags_json) if self.tags_json else [],
            "added_by": self.added_by,
            "added_by_name": self.added_by_name,
            "client_storage_date": self.client_storage_date,
            "user_timezone": self.user_timezone,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class SQLAlchemyDocumentStore:
    """
    SQLAlchemy-based document storage.

    Example:
        from sqlalchemy import create_engine
        engine = create_engine("sqlite:///memory_merge.db")
        store = SQLAlchemyDocumentStore(engine)
        store.create_tables()
    """

    def __init__(self, engine: Engine):
        """
        Initialize the SQLAlchemy document store.

        Args:
            engine: SQLAlchemy engine for database connection
        """
        self.engine = engine
        logger.info(f"SQLAlchemyDocumentStore initialized (engine={engine.url})")

    @contextmanager
    def _session(self):
        """Context manager for database sessions with automatic commit/rollback."""
        session = Session(self.engine)
        try:
            yield session
            session.commit()
        except OperationalError as e:
            session.rollback()
            logger.error(f"Database unavailable: {e}")
            raise StoreUnavailable(f"Document database unavailable: {e}") from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            session.close()

    def create_tables(self):
        """Create database tables if they don't exist."""
        Base.metadata.create_all(self.engine)
        logger.info("Database tables created/verified")

    def put_document(self, account_id: str, document_id: str, fields: Dict[str, Any]) -> None:
        """Create or replace a raw entry."""
        with self._session() as session:
            db_document = session.get(KnowledgeDocumentDB, (account_id, document_id))
            if db_document is None:
                db_document = KnowledgeDocumentDB(account_id=account_id, id=document_id)
                session.add(db_document)
            else:
                db_document.updated_at = datetime.now()

            db_document.content = fields["content"]
            db_document.tags_json = json.dumps(list(fields.get("tags") or []))
            db_document.added_by = fields.get("added_by")
            db_document.added_by_name = fields.get("added_by_name")
            db_document.client_storage_date = fields.get("client_storage_date")
            db_document.user_timezone = fields.get("user_timezone")

            logger.debug(f"Stored document {document_id} (account={account_id})")

    def delete_document(self, account_id: str, document_id: str) -> bool:
        with self._session() as session:
            count = (
                session.query(KnowledgeDocumentDB)
                .filter(
                    KnowledgeDocumentDB.account_id == account_id,
                    KnowledgeDocumentDB.id == document_id,
                )
                .delete()
            )
            return count > 0

    def _get_document(self, account_id: str, document_id: str) -> Optional[Dict[str, Any]]:
        with self._session() as session:
            db_document = session.get(KnowledgeDocumentDB, (account_id, document_id))
            if not db_document:
                return None
            return db_document.to_document()

    def _list_document_ids(self, account_id: str) -> List[str]:
        with self._session() as session:
            rows = (
                session.query(KnowledgeDocumentDB.id)
                .filter(KnowledgeDocumentDB.account_id == account_id)
                .order_by(KnowledgeDocumentDB.created_at)
                .all()
            )
            return [row.id for row in rows]

    async def get_document(self, account_id: str, document_id: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._get_document, account_id, document_id)

    async def exists(self, account_id: str, document_id: str) -> bool:
        return await self.get_document(account_id, document_id) is not None

    async def list_document_ids(self, account_id: str) -> List[str]:
        return await asyncio.to_thread(self._list_document_ids, account_id)
