"""Utility functions for temporal processing."""

from memory_merge.utils.temporal import (
    detect_temporal_intent,
    is_temporally_relevant,
    matches_temporal_intent,
    next_occurrence,
    process_temporal_content,
    temporal_context,
    temporal_relevance_score,
)

__all__ = [
    "process_temporal_content",
    "temporal_relevance_score",
    "is_temporally_relevant",
    "detect_temporal_intent",
    "matches_temporal_intent",
    "next_occurrence",
    "temporal_context",
]
