"""HTTP interface for memory-merge (FastAPI)."""

from memory_merge.web.app import create_app

__all__ = ["create_app"]
