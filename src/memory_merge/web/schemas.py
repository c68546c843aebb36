"""
Request bodies of the HTTP interface.

Each endpoint accepts one tagged variant per ``action``. Bodies are validated
here into typed commands; the services never see raw request dictionaries.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from memory_merge.models import (
    KnowledgeEntry,
    KnowledgeUpdate,
    SearchOptions,
    TemporalFilter,
    TimeFrame,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TemporalFilterBody(CamelModel):
    time_frame: TimeFrame = "all"
    relevance_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    include_expired_events: bool = False
    match_query_intent: bool = True


class SearchOptionsBody(CamelModel):
    match_threshold: Optional[float] = None
    match_count: Optional[int] = None
    limit: Optional[int] = None
    temporal_filter: Optional[TemporalFilterBody] = None

    def to_options(self) -> SearchOptions:
        return SearchOptions(
            match_threshold=self.match_threshold,
            match_count=self.match_count,
            temporal_filter=(
                TemporalFilter(**self.temporal_filter.model_dump()) if self.temporal_filter else None
            ),
        )


class SearchCommand(CamelModel):
    action: Literal["search"]
    account_id: str = Field(min_length=1)
    query: str = ""
    tags: List[str] = Field(default_factory=list)
    options: Optional[SearchOptionsBody] = None


class RecentCommand(CamelModel):
    action: Literal["recent"]
    account_id: str = Field(min_length=1)
    options: Optional[SearchOptionsBody] = None


class TagsCommand(CamelModel):
    action: Literal["tags"]
    account_id: str = Field(min_length=1)
    tags: List[str] = Field(min_length=1)
    options: Optional[SearchOptionsBody] = None


SearchRequest = Annotated[
    Union[SearchCommand, RecentCommand, TagsCommand], Field(discriminator="action")
]
search_request_adapter = TypeAdapter(SearchRequest)


class EntryBody(CamelModel):
    content: str = Field(min_length=1)
    tags: List[str] = Field(default_factory=list)
    added_by: Optional[str] = None
    added_by_name: Optional[str] = None
    client_storage_date: Optional[str] = None
    user_timezone: Optional[str] = None

    def to_entry(self) -> KnowledgeEntry:
        return KnowledgeEntry(**self.model_dump())


class UpdatesBody(CamelModel):
    content: Optional[str] = None
    tags: Optional[List[str]] = None

    def to_update(self) -> KnowledgeUpdate:
        return KnowledgeUpdate(**self.model_dump())


class StoreCommand(CamelModel):
    action: Literal["store"]
    account_id: str = Field(min_length=1)
    firebase_doc_id: str = Field(min_length=1)
    entry: EntryBody


class UpdateCommand(CamelModel):
    action: Literal["update"]
    vector_id: str = Field(min_length=1)
    updates: UpdatesBody
    firebase_doc_id: Optional[str] = None


class DeleteCommand(CamelModel):
    action: Literal["delete"]
    vector_id: str = Field(min_length=1)


KnowledgeRequest = Annotated[
    Union[StoreCommand, UpdateCommand, DeleteCommand], Field(discriminator="action")
]
knowledge_request_adapter = TypeAdapter(KnowledgeRequest)
