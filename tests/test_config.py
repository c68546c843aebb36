"""Tests for runtime settings and component wiring."""

import pytest
from pydantic import ValidationError

from memory_merge.config import Settings
from memory_merge.factory import build_cache, build_components, build_document_store, build_vector_store
from memory_merge.storage import (
    InMemoryDocumentStore,
    InMemoryKnowledgeVectorStore,
    InMemorySearchCache,
    SQLAlchemyDocumentStore,
)


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.default_match_threshold == 0.5
    assert settings.default_match_count == 10
    assert settings.threshold_ladder == (0.4, 0.3, 0.2, 0.1, 0.0)
    assert settings.tag_match_score == -2.0
    assert settings.vector_backend == "memory"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MEMORY_MERGE_DEFAULT_MATCH_COUNT", "5")
    monkeypatch.setenv("MEMORY_MERGE_THRESHOLD_LADDER", "[0.3, 0.1]")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    settings = Settings(_env_file=None)

    assert settings.default_match_count == 5
    assert settings.threshold_ladder == (0.3, 0.1)
    assert settings.openai_api_key == "sk-test"


def test_ladder_must_descend():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, threshold_ladder=(0.1, 0.3))


def test_memory_backends():
    settings = Settings(_env_file=None, cache_backend="memory")

    assert isinstance(build_vector_store(settings), InMemoryKnowledgeVectorStore)
    assert isinstance(build_document_store(settings), InMemoryDocumentStore)
    assert isinstance(build_cache(settings), InMemorySearchCache)
    assert build_cache(Settings(_env_file=None)) is None


def test_sqlalchemy_backend(tmp_path):
    settings = Settings(
        _env_file=None,
        document_backend="sqlalchemy",
        database_url=f"sqlite:///{tmp_path / 'docs.db'}",
    )

    assert isinstance(build_document_store(settings), SQLAlchemyDocumentStore)


def test_components_share_one_vocabulary(embedding):
    settings = Settings(_env_file=None, default_match_count=7)

    components = build_components(settings, embedding=embedding)

    assert components.search_service.expander.table is components.knowledge_service.enricher.table
    assert components.search_service.default_match_count == 7
    assert components.search_service.embedding is components.knowledge_service.embedding
