"""
Vocabulary enrichment for memory-merge.

- SynonymTable: shared, immutable synonym/semantic-category table
- ContentEnricher: expands stored text before it is embedded
- QueryExpander: expands search queries with the same table
"""

from memory_merge.enrichment.enricher import (
    ContentEnricher,
    EnrichedContent,
    EnrichmentContext,
    strip_enrichment,
)
from memory_merge.enrichment.expander import QueryExpander
from memory_merge.enrichment.synonyms import SynonymMatch, SynonymTable, default_table

__all__ = [
    "ContentEnricher",
    "EnrichedContent",
    "EnrichmentContext",
    "QueryExpander",
    "SynonymMatch",
    "SynonymTable",
    "default_table",
    "strip_enrichment",
]
