"""In-memory full-text search over note content."""

from __future__ import annotations

import itertools
import logging
import re
import unicodedata
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"\w+")
DEFAULT_LIMIT = 15

# Letters NFKD leaves intact that still have a plain Latin spelling.
_LATIN_EXTRA = str.maketrans(
    {"æ": "ae", "œ": "oe", "ø": "o", "đ": "d", "ð": "d", "ł": "l", "þ": "th", "ı": "i"}
)

TEnum = TypeVar("TEnum", bound=Enum)


class IndexConfigurationError(ValueError):
    """Raised when the search index is configured with unknown options."""


class NoteContentError(TypeError):
    """Raised when note content is not text and cannot be indexed."""


class CaseFolding(str, Enum):
    EXTENDED_LATIN = "extended_latin"
    SIMPLE = "simple"
    NONE = "none"


class MatchMode(str, Enum):
    SUBSTRING = "substring"
    PREFIX = "prefix"
    EXACT = "exact"


class Tokenization(str, Enum):
    STRICT = "strict"


def _coerce(enum_type: type[TEnum], value: Any, option: str) -> TEnum:
    if isinstance(value, str):
        value = value.strip().lower()
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(str(member.value) for member in enum_type)
        raise IndexConfigurationError(
            f"Unknown {option} {value!r}; expected one of: {allowed}"
        ) from None


@dataclass(frozen=True)
class IndexConfig:
    """Tokenizer options, fixed for the lifetime of an index.

    Plain strings are accepted and converted to the matching enum member.
    """

    case_folding: CaseFolding = CaseFolding.EXTENDED_LATIN
    match_mode: MatchMode = MatchMode.SUBSTRING
    tokenization: Tokenization = Tokenization.STRICT

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "case_folding", _coerce(CaseFolding, self.case_folding, "case folding")
        )
        object.__setattr__(self, "match_mode", _coerce(MatchMode, self.match_mode, "match mode"))
        object.__setattr__(
            self, "tokenization", _coerce(Tokenization, self.tokenization, "tokenization")
        )


def normalize(text: str, folding: CaseFolding) -> str:
    """Apply the configured case folding to *text*."""

    if folding is CaseFolding.NONE:
        return text
    if folding is CaseFolding.SIMPLE:
        return text.lower()
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold().translate(_LATIN_EXTRA)


@dataclass(frozen=True)
class IndexBuild:
    """Result of indexing a whole corpus."""

    index: SearchIndex
    skipped: tuple[str, ...]


class SearchIndex:
    """Inverted index from normalized tokens to the notes containing them.

    Results are ranked by the earliest position of a matching token in each
    note, then by the order notes were added.
    """

    def __init__(self, config: IndexConfig | None = None) -> None:
        self.config = config or IndexConfig()
        self._postings: dict[str, dict[str, int]] = {}
        self._documents: dict[str, tuple[str, ...]] = {}
        self._order: dict[str, int] = {}
        self._sequence = itertools.count()

    @classmethod
    def rebuild(
        cls, corpus: Mapping[str, Any], config: IndexConfig | None = None
    ) -> IndexBuild:
        """Index every note of *corpus*, skipping notes that are not text."""

        index = cls(config)
        skipped: list[str] = []
        for key in sorted(corpus, key=str):
            try:
                index.add(key, corpus[key])
            except NoteContentError as exc:
                logger.warning("Skipping note %r from search index: %s", key, exc)
                skipped.append(key)
        return IndexBuild(index=index, skipped=tuple(skipped))

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, key: object) -> bool:
        return key in self._documents

    def tokenize(self, text: str) -> list[str]:
        return TOKEN_PATTERN.findall(normalize(text, self.config.case_folding))

    def add(self, key: str, content: str) -> None:
        """Index *content* under *key*, replacing any earlier entry for *key*."""

        if not isinstance(content, str):
            raise NoteContentError(f"expected text, got {type(content).__name__}")

        self._discard(key)
        positions: dict[str, int] = {}
        for position, token in enumerate(self.tokenize(content)):
            positions.setdefault(token, position)
        for token, position in positions.items():
            self._postings.setdefault(token, {})[key] = position
        self._documents[key] = tuple(positions)
        self._order[key] = next(self._sequence)

    def _discard(self, key: str) -> None:
        for token in self._documents.pop(key, ()):
            postings = self._postings[token]
            postings.pop(key, None)
            if not postings:
                del self._postings[token]
        self._order.pop(key, None)

    def _candidates(self, term: str) -> list[str]:
        mode = self.config.match_mode
        if mode is MatchMode.EXACT:
            return [term] if term in self._postings else []
        if mode is MatchMode.PREFIX:
            return [token for token in self._postings if token.startswith(term)]
        return [token for token in self._postings if term in token]

    def _lookup(self, term: str) -> dict[str, int]:
        hits: dict[str, int] = {}
        for token in self._candidates(term):
            for key, position in self._postings[token].items():
                if key not in hits or position < hits[key]:
                    hits[key] = position
        return hits

    def search(self, query: str | None, limit: int = DEFAULT_LIMIT) -> list[str]:
        """Return up to *limit* keys whose content matches every query token."""

        if not isinstance(query, str) or not query or limit <= 0:
            return []

        terms = list(dict.fromkeys(self.tokenize(query)))
        if not terms:
            return []

        matched = self._lookup(terms[0])
        for term in terms[1:]:
            if not matched:
                break
            hits = self._lookup(term)
            matched = {
                key: min(position, hits[key]) for key, position in matched.items() if key in hits
            }

        ranked = sorted(matched, key=lambda key: (matched[key], self._order[key]))
        return ranked[:limit]
