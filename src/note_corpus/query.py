"""Resolve search results against the current corpus."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .search import DEFAULT_LIMIT, SearchIndex


def project(
    query: str | None,
    index: SearchIndex | None,
    corpus: Mapping[str, Any],
    limit: int = DEFAULT_LIMIT,
) -> list[tuple[str, Any]]:
    """Return ``(key, content)`` pairs for *query* in search rank order.

    Keys the index returns that are missing from *corpus* are dropped, since
    the index may have been built from an older corpus.
    """

    if index is None or not corpus:
        return []
    return [(key, corpus[key]) for key in index.search(query, limit) if key in corpus]
