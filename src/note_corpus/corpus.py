"""Corpus snapshots and the store that swaps them."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from .paths import InvalidKeyError, validate_key
from .query import project
from .search import DEFAULT_LIMIT, IndexConfig, SearchIndex
from .tree import PathTree

logger = logging.getLogger(__name__)


class CorpusUnavailableError(RuntimeError):
    """Raised when the corpus cannot be retrieved from the notes service."""


@dataclass(frozen=True)
class Note:
    key: str
    content: Any

    @property
    def is_text(self) -> bool:
        return isinstance(self.content, str)


class Corpus(Mapping[str, Any]):
    """Read-only mapping of note keys to note content."""

    __slots__ = ("_notes",)

    def __init__(self, notes: Mapping[str, Any] | None = None) -> None:
        self._notes = MappingProxyType(dict(notes or {}))

    def __getitem__(self, key: str) -> Any:
        return self._notes[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._notes)

    def __len__(self) -> int:
        return len(self._notes)

    def __repr__(self) -> str:
        return f"Corpus({len(self)} notes)"

    def note(self, key: str) -> Note:
        return Note(key=key, content=self._notes[key])

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[Any, Any], accept_empty_segments: bool = False
    ) -> CorpusLoad:
        """Build a corpus from *mapping*, rejecting keys that are not usable.

        Rejected keys are logged and reported rather than failing the load.
        """

        notes: dict[str, Any] = {}
        rejected: list[str] = []
        for key, content in mapping.items():
            try:
                notes[validate_key(key, accept_empty_segments)] = content
            except InvalidKeyError as exc:
                logger.warning("Rejecting note: %s", exc)
                rejected.append(str(key))
        return CorpusLoad(corpus=cls(notes), rejected=tuple(rejected))


@dataclass(frozen=True)
class CorpusLoad:
    corpus: Corpus
    rejected: tuple[str, ...]


class CorpusStatus(str, Enum):
    NOT_LOADED = "not_loaded"
    EMPTY = "empty"
    READY = "ready"
    UNAVAILABLE = "unavailable"


STATUS_MESSAGES = {
    CorpusStatus.NOT_LOADED: "Notes have not been fetched yet.",
    CorpusStatus.EMPTY: "No notes found. Please import.",
    CorpusStatus.READY: "Ready to search!",
    CorpusStatus.UNAVAILABLE: "Error fetching notes. Please try again.",
}


@dataclass(frozen=True)
class CorpusSnapshot:
    """One consistent generation of corpus, search index and path tree."""

    version: int
    corpus: Corpus
    index: SearchIndex
    tree: PathTree
    skipped: tuple[str, ...] = ()
    rejected: tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        corpus: Corpus,
        version: int,
        config: IndexConfig | None = None,
        rejected: Iterable[str] = (),
    ) -> CorpusSnapshot:
        build = SearchIndex.rebuild(corpus, config)
        return cls(
            version=version,
            corpus=corpus,
            index=build.index,
            tree=PathTree.rebuild(corpus.keys()),
            skipped=build.skipped,
            rejected=tuple(rejected),
        )


class CorpusStore:
    """Holds the current snapshot and replaces it wholesale on refresh.

    Every refresh takes a generation number before it starts. A finished
    snapshot is installed only if it is newer than the installed one, so a
    slow refresh never overwrites the result of a later one.
    """

    def __init__(
        self, config: IndexConfig | None = None, accept_empty_segments: bool = False
    ) -> None:
        self.config = config or IndexConfig()
        self.accept_empty_segments = accept_empty_segments
        self._current: CorpusSnapshot | None = None
        self._generations = itertools.count(1)
        self._status = CorpusStatus.NOT_LOADED
        self._error: str | None = None

    @property
    def current(self) -> CorpusSnapshot | None:
        return self._current

    @property
    def status(self) -> CorpusStatus:
        return self._status

    @property
    def error(self) -> str | None:
        return self._error

    def status_message(self) -> str:
        return STATUS_MESSAGES[self._status]

    def begin_refresh(self) -> int:
        return next(self._generations)

    def build(self, mapping: Mapping[Any, Any], version: int) -> CorpusSnapshot:
        load = Corpus.from_mapping(mapping, self.accept_empty_segments)
        return CorpusSnapshot.build(load.corpus, version, self.config, load.rejected)

    def install(self, snapshot: CorpusSnapshot) -> bool:
        current = self._current
        if current is not None and snapshot.version <= current.version:
            logger.info(
                "Discarding stale corpus snapshot %d (installed: %d)",
                snapshot.version,
                current.version,
            )
            return False

        self._current = snapshot
        self._status = CorpusStatus.READY if snapshot.corpus else CorpusStatus.EMPTY
        self._error = None
        logger.info(
            "Installed corpus snapshot %d: %d notes, %d not searchable",
            snapshot.version,
            len(snapshot.corpus),
            len(snapshot.skipped),
        )
        return True

    def rebuild(self, mapping: Mapping[Any, Any]) -> CorpusSnapshot:
        """Build and install a snapshot from *mapping* synchronously."""

        snapshot = self.build(mapping, self.begin_refresh())
        self.install(snapshot)
        return snapshot

    def mark_unavailable(self, reason: str, version: int) -> None:
        """Record a failed refresh; the installed snapshot stays in place."""

        current = self._current
        if current is not None and version < current.version:
            return
        self._status = CorpusStatus.UNAVAILABLE
        self._error = reason
        logger.error("Corpus refresh %d failed: %s", version, reason)

    async def refresh(self, fetch: Callable[[], Awaitable[Mapping[str, Any]]]) -> bool:
        """Fetch a new corpus and install it once its index and tree are built.

        Returns ``True`` if the new snapshot was installed. A failed fetch or
        build marks the store unavailable and keeps the installed snapshot.
        """

        version = self.begin_refresh()
        try:
            mapping = await fetch()
        except CorpusUnavailableError as exc:
            self.mark_unavailable(str(exc), version)
            return False

        try:
            snapshot = await asyncio.to_thread(self.build, mapping, version)
        except Exception as exc:
            self.mark_unavailable(f"Failed to index notes: {exc}", version)
            return False
        return self.install(snapshot)

    def search(self, query: str | None, limit: int = DEFAULT_LIMIT) -> list[tuple[str, Any]]:
        current = self._current
        if current is None:
            return project(query, None, {}, limit)
        return project(query, current.index, current.corpus, limit)
