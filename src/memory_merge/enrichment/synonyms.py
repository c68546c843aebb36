"""
Synonym and semantic-category table.

The same table drives content enrichment (write side) and query expansion
(read side): retrieval quality depends on the two sides sharing vocabulary,
so both must be built from one ``SynonymTable`` instance.

The table is immutable. Changing its contents means bumping ``version``,
which marks every stored vector as stale until ``migrate_enrichment`` runs.
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

TABLE_VERSION = "1"

DEFAULT_SYNONYM_GROUPS: Dict[str, List[str]] = {
    # Anatomical terms (male)
    "testicles": [
        "balls", "nuts", "testicles", "testicle", "sack", "ballsack", "nutsack",
        "family jewels", "nads", "gonads", "stones", "plums", "rocks", "eggs",
        "cojones", "bollocks", "beans",
    ],
    "penis": [
        "dick", "cock", "penis", "johnson", "prick", "dong", "wang", "tool",
        "member", "shaft", "rod", "pecker", "stick", "phallus", "meat",
        "package", "junk", "manhood",
    ],
    # Anatomical terms (female)
    "vagina": [
        "pussy", "vagina", "cooch", "coochie", "kitty", "snatch", "vajayjay",
        "beaver", "hoo-ha", "fanny", "flower", "lady bits", "cunt",
    ],
    # Anatomical terms (general)
    "breasts": [
        "boobs", "tits", "breasts", "boob", "titties", "rack", "melons",
        "knockers", "chest", "girls", "jugs", "assets", "hooters", "bust",
        "bosom",
    ],
    "buttocks": [
        "ass", "butt", "booty", "buttocks", "cheeks", "rear", "behind",
        "bottom", "glutes", "bum", "rump", "arse", "derriere",
    ],
    "anus": [
        "asshole", "anus", "butthole", "arsehole", "brown eye", "backdoor",
        "starfish",
    ],
    "sex": [
        "sex", "hook up", "bang", "smash", "get laid", "bone", "score",
        "screw", "do it", "make love", "shag", "get busy", "fool around",
        "get it on", "ride",
    ],
    "money": [
        "money", "cash", "bucks", "dollars", "bread", "cheddar", "dough",
        "moolah", "loot", "stacks", "green", "paper", "bands", "cream",
        "scratch", "bank", "dinero",
    ],
    "car": [
        "car", "ride", "wheels", "vehicle", "whip", "auto", "motor",
        "beater", "hoopty", "set of wheels",
    ],
    "house": [
        "house", "home", "crib", "pad", "place", "spot", "diggs", "dwelling",
        "residence",
    ],
    "alcohol": [
        "booze", "drinks", "alcohol", "liquor", "beer", "brew", "shots",
        "spirits", "vino", "wine", "hooch", "bevvies",
    ],
    # Intoxication (alcohol)
    "drunk": [
        "drunk", "wasted", "hammered", "sloshed", "plastered", "smashed",
        "lit", "buzzed", "tipsy", "blitzed", "tanked",
    ],
    "marijuana": [
        "weed", "pot", "marijuana", "ganja", "herb", "grass", "bud",
        "mary jane", "chronic", "loud", "reefer", "dope", "greenery",
    ],
    "cocaine": [
        "coke", "blow", "cocaine", "snow", "powder", "nose candy", "white",
        "yayo", "charlie",
    ],
    "police": [
        "cops", "police", "cop", "five-o", "po-po", "law", "heat", "fuzz",
        "boys in blue", "pigs",
    ],
    "friend": [
        "friend", "buddy", "pal", "homie", "bro", "dude", "mate", "amigo",
        "compadre", "ace", "partner-in-crime",
    ],
}


def _term_pattern(term: str) -> re.Pattern:
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)", re.IGNORECASE)


@dataclass(frozen=True)
class SynonymMatch:
    """A category recognized in a piece of text."""

    category: str
    matched: str
    synonyms: Tuple[str, ...]

    @property
    def related(self) -> Tuple[str, ...]:
        """Every synonym in the group except the one that matched."""
        return tuple(s for s in self.synonyms if s != self.matched)


@dataclass(frozen=True)
class SynonymTable:
    """Immutable mapping of semantic categories to synonym groups."""

    groups: Tuple[Tuple[str, Tuple[str, ...]], ...]
    version: str = TABLE_VERSION
    _patterns: Tuple[Tuple[str, Tuple[Tuple[str, re.Pattern], ...]], ...] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self):
        patterns = tuple(
            (category, tuple((term, _term_pattern(term)) for term in terms))
            for category, terms in self.groups
        )
        object.__setattr__(self, "_patterns", patterns)

    @classmethod
    def from_mapping(cls, groups: Mapping[str, Sequence[str]], version: str = TABLE_VERSION) -> "SynonymTable":
        return cls(
            groups=tuple(
                (category, tuple(term.lower() for term in terms)) for category, terms in groups.items()
            ),
            version=version,
        )

    @property
    def categories(self) -> Tuple[str, ...]:
        return tuple(category for category, _ in self.groups)

    def synonyms(self, category: str) -> Tuple[str, ...]:
        for name, terms in self.groups:
            if name == category:
                return terms
        return ()

    def lookup(self, term: str) -> Optional[str]:
        """Category a single term belongs to, if any (first in table order)."""
        term = term.strip().lower()
        for category, terms in self.groups:
            if term in terms:
                return category
        return None

    def match_groups(self, text: str) -> List[SynonymMatch]:
        """
        Find the categories mentioned in ``text``.

        Matching is case-insensitive on whole words or phrases. At most one
        match is reported per category: the first synonym of the group, in
        table order, that occurs in the text.
        """
        if not text:
            return []

        matches = []
        for (category, terms), (_, patterns) in zip(self.groups, self._patterns):
            for term, pattern in patterns:
                if pattern.search(text):
                    matches.append(SynonymMatch(category=category, matched=term, synonyms=terms))
                    break
        return matches


@lru_cache(maxsize=1)
def default_table() -> SynonymTable:
    """The process-wide synonym table, built once on first use."""
    return SynonymTable.from_mapping(DEFAULT_SYNONYM_GROUPS)
