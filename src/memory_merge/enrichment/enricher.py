"""
Content enrichment.

Turns the raw text of a memory into the surrogate text that gets embedded:
provenance, the text with resolved dates inlined, the synonyms of every
recognized category and a cue listing temporal references. Embeddings of the
enriched text capture meanings the literal text does not contain.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Literal, Optional

from memory_merge.enrichment.synonyms import SynonymMatch, SynonymTable, default_table
from memory_merge.models import ProcessedTemporalContent
from memory_merge.utils.temporal import process_temporal_content

logger = logging.getLogger(__name__)

_PROVENANCE_RE = re.compile(
    r"^(?:Added|Updated) (?:by [^:\n]+?(?: on \d{4}-\d{2}-\d{2})?|on \d{4}-\d{2}-\d{2}): "
)
# Only the full marker sequence the enricher writes; a lone "[Keywords: ...]"
# typed by a user is content
_BLOCK_RE = re.compile(
    r" \[Semantic context: [^\]]*\] \[Synonyms: [^\]]*\] \[Keywords: [^\]]*\]"
)
_CUE_EVENT = r"\"[^\"\n]*\" \((?:\d{4}-\d{2}-\d{2}|unresolved)\)"
_TEMPORAL_CUE_RE = re.compile(rf", referring to temporal events: {_CUE_EVENT}(?:, {_CUE_EVENT})*$")
_AUTHOR_SEPARATOR_RE = re.compile(r"[:\s]+")
_INLINE_DATE_RE = re.compile(
    r" \((?:Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday), "
    r"(?:January|February|March|April|May|June|July|August|September|October|November|December) "
    r"\d{1,2}, \d{4}\)"
)


@dataclass
class EnrichmentContext:
    """
    Optional provenance for an enrichment call.

    Attributes:
        author: Display name of whoever wrote or edited the entry
        action: "Added" for new entries, "Updated" for edits
        storage_date: When the entry was first stored
        storage_date_label: Client-local storage date (YYYY-MM-DD); wins over storage_date
        reference_date: Date relative expressions resolve against (default: storage_date)
        now: Current time for past/future decisions (default: datetime.now())
    """

    author: Optional[str] = None
    action: Literal["Added", "Updated"] = "Added"
    storage_date: Optional[datetime] = None
    storage_date_label: Optional[str] = None
    reference_date: Optional[datetime] = None
    now: Optional[datetime] = None

    @property
    def date_label(self) -> Optional[str]:
        if self.storage_date_label:
            return self.storage_date_label[:10]
        if self.storage_date:
            return self.storage_date.strftime("%Y-%m-%d")
        return None


@dataclass
class EnrichedContent:
    text: str
    temporal: ProcessedTemporalContent
    synonym_matches: List[SynonymMatch] = field(default_factory=list)


def strip_enrichment(text: str) -> str:
    """Remove every marker the enricher adds, recovering the base text."""
    text = _TEMPORAL_CUE_RE.sub("", text)
    text = _BLOCK_RE.sub("", text)
    text = _INLINE_DATE_RE.sub("", text)
    return _PROVENANCE_RE.sub("", text, count=1)


class ContentEnricher:
    """
    Expands raw memory text into the text that gets embedded.

    Pure and deterministic for a fixed synonym table and context. Calling it
    on its own output yields the same result as calling it on the raw text.

    Example:
        >>> enricher = ContentEnricher()
        >>> enricher.enrich("Spare key is under the car mat")
        'Spare key is under the car mat [Semantic context: related to car. ...'
    """

    def __init__(self, table: Optional[SynonymTable] = None, max_related_terms: int = 40):
        self.table = table or default_table()
        self.max_related_terms = max_related_terms

    @property
    def version(self) -> str:
        return self.table.version

    def enrich(self, raw_text: str, context: Optional[EnrichmentContext] = None) -> str:
        return self.enrich_entry(raw_text, context).text

    def enrich_entry(self, raw_text: str, context: Optional[EnrichmentContext] = None) -> EnrichedContent:
        context = context or EnrichmentContext()
        base = strip_enrichment(raw_text)

        temporal = process_temporal_content(
            base,
            reference_date=context.reference_date or context.storage_date,
            storage_date=context.storage_date,
            now=context.now,
        )
        matches = self.table.match_groups(base)

        text = temporal.processed_content
        prefix = self._provenance(context)
        if prefix:
            text = f"{prefix}: {text}"

        if matches:
            text += self._synonym_blocks(matches)

        if temporal.contains_temporal_refs:
            events = ", ".join(
                f'"{ref.original_text}" '
                f"({ref.resolved_date.strftime('%Y-%m-%d') if ref.resolved_date else 'unresolved'})"
                for ref in temporal.temporal_info
            )
            text += f", referring to temporal events: {events}"

        logger.debug(
            f"Enriched '{base[:50]}' with {len(matches)} categories, "
            f"{len(temporal.temporal_info)} temporal refs ({len(base)} -> {len(text)} chars)"
        )
        return EnrichedContent(text=text, temporal=temporal, synonym_matches=matches)

    def _provenance(self, context: EnrichmentContext) -> str:
        date_label = context.date_label
        # ": " ends the header, so it cannot appear in the name
        author = _AUTHOR_SEPARATOR_RE.sub(" ", context.author or "").strip()
        if author and date_label:
            return f"{context.action} by {author} on {date_label}"
        if author:
            return f"{context.action} by {author}"
        if date_label:
            return f"{context.action} on {date_label}"
        return ""

    def _synonym_blocks(self, matches: List[SynonymMatch]) -> str:
        related: List[str] = []
        for match in matches:
            for term in match.related:
                if term not in related:
                    related.append(term)
        related = related[: self.max_related_terms]

        categories = ", ".join(f"related to {match.category}" for match in matches)
        return (
            f" [Semantic context: {categories}. Related terms: {', '.join(related)}]"
            f" [Synonyms: {' '.join(related[:10])}]"
            f" [Keywords: {' • '.join(related[:5])}]"
        )
