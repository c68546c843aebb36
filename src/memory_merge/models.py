from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

TimeFrame = Literal["future", "past", "current", "all"]
TemporalIntent = Literal["future", "past", "current", "general"]


class KnowledgeEntry(BaseModel):
    """A raw memory as written by a user, before enrichment."""

    content: str
    tags: List[str] = Field(default_factory=list)
    added_by: Optional[str] = Field(
        default=None, description="Opaque user id of the author"
    )
    added_by_name: Optional[str] = Field(
        default=None, description="Cached display name of the author"
    )
    client_storage_date: Optional[str] = Field(
        default=None,
        description="Storage date in the user's local time (YYYY-MM-DD or ISO timestamp)",
    )
    user_timezone: Optional[str] = None

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("content must not be empty")
        return value


class KnowledgeUpdate(BaseModel):
    content: Optional[str] = None
    tags: Optional[List[str]] = None


class RecurringPattern(BaseModel):
    frequency: Literal["daily", "weekly", "monthly", "yearly"]
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6, description="0=Monday")
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    month: Optional[int] = Field(default=None, ge=1, le=12)


class TemporalReference(BaseModel):
    """One temporal expression found in a piece of text."""

    original_text: str
    resolved_date: Optional[datetime] = None
    temporal_type: Literal["absolute", "relative", "recurring"]
    confidence: float = Field(ge=0.0, le=1.0)
    is_in_past: bool = False
    days_since_storage: int = 0
    recurring_pattern: Optional[RecurringPattern] = None


class ProcessedTemporalContent(BaseModel):
    original_content: str
    processed_content: str
    temporal_info: List[TemporalReference] = Field(default_factory=list)
    temporal_relevance_score: float = 0.0
    contains_temporal_refs: bool = False
    resolved_dates: List[datetime] = Field(default_factory=list)


class TemporalFilter(BaseModel):
    time_frame: TimeFrame = "all"
    relevance_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    include_expired_events: bool = False
    match_query_intent: bool = True


class SearchOptions(BaseModel):
    match_threshold: Optional[float] = None
    match_count: Optional[int] = None
    temporal_filter: Optional[TemporalFilter] = None


class SearchResult(BaseModel):
    """A ranked row returned by the search and browse operations."""

    id: str
    document_id: str
    account_id: str
    enriched_content: str
    tags: List[str] = Field(default_factory=list)
    temporal_info: List[TemporalReference] = Field(default_factory=list)
    resolved_dates: List[datetime] = Field(default_factory=list)
    temporal_relevance_score: float = 0.0
    contains_temporal_refs: bool = False
    created_at: str
    updated_at: str
    similarity: float
    match_type: Literal["vector", "tag", "recent"] = "vector"
    temporal_context: Optional[str] = None
