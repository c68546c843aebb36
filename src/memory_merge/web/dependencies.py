"""
FastAPI dependencies for the HTTP interface.
"""

from fastapi import HTTPException, Request

from memory_merge.config import Settings
from memory_merge.factory import Components
from memory_merge.knowledge_service import KnowledgeService
from memory_merge.search_service import HybridSearchService


def get_components(request: Request) -> Components:
    """Get the components wired at application startup."""
    components = getattr(request.app.state, "components", None)
    if components is None:
        raise HTTPException(status_code=503, detail="Components not initialized")
    return components


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_search_service(request: Request) -> HybridSearchService:
    return get_components(request).search_service


def get_knowledge_service(request: Request) -> KnowledgeService:
    return get_components(request).knowledge_service
