"""Query expansion with the shared synonym table."""

import logging
from typing import List, Optional

from memory_merge.enrichment.synonyms import SynonymTable, default_table

logger = logging.getLogger(__name__)


class QueryExpander:
    """
    Expands a search query with the synonyms of every recognized category.

    Uses the same ``SynonymTable`` as ``ContentEnricher`` so that expanded
    queries and enriched content share vocabulary.
    """

    def __init__(self, table: Optional[SynonymTable] = None, max_added_terms: int = 40):
        self.table = table or default_table()
        self.max_added_terms = max_added_terms

    def expand(self, raw_query: str) -> str:
        """
        Append synonyms of the categories mentioned in ``raw_query``.

        Returns an empty string for an empty or blank query (tag-only search).
        """
        query = (raw_query or "").strip()
        if not query:
            return ""

        matches = self.table.match_groups(query)
        if not matches:
            return query

        present = {token.lower() for token in query.split()}
        added: List[str] = []
        for match in matches:
            for term in match.synonyms:
                if term not in present and term not in added and term != match.matched:
                    added.append(term)
        added = added[: self.max_added_terms]

        logger.debug(
            f"Expanded '{query}' via {[m.category for m in matches]} with {len(added)} terms"
        )
        return f"{query} {' '.join(added)}" if added else query
