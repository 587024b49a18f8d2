"""FastMCP server exposing the notes corpus for browsing and search."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar, cast

import httpx
from dotenv import load_dotenv
from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from .client import NotesClient
from .corpus import CorpusStatus, CorpusStore
from .paths import (
    ImportRootError,
    collect_folder,
    ensure_in_roots,
    key_from_node_id,
    node_id_for,
    parse_import_roots,
    split_key,
)
from .search import DEFAULT_LIMIT, IndexConfig
from .tree import PathTree

TToolFunc = TypeVar("TToolFunc", bound=Callable[..., Any])

PREVIEW_LENGTH = 200

logger = logging.getLogger(__name__)

load_dotenv()


class SettingsError(ValueError):
    """Raised when server configuration is invalid."""


@dataclass(slots=True)
class Settings:
    notes_api_url: str
    host: str
    port: int
    log_level: str
    search_limit: int = DEFAULT_LIMIT
    request_timeout: float = 30.0
    index_config: IndexConfig = field(default_factory=IndexConfig)
    accept_empty_segments: bool = False
    import_roots: tuple[Path, ...] = ()


@dataclass(slots=True)
class NoteService:
    """Business logic for browsing, searching and importing notes."""

    store: CorpusStore
    client: NotesClient
    search_limit: int = DEFAULT_LIMIT
    import_roots: tuple[Path, ...] = ()

    def status(self) -> dict[str, Any]:
        snapshot = self.store.current
        return {
            "ok": True,
            "status": self.store.status.value,
            "message": self.store.status_message(),
            "detail": self.store.error,
            "version": snapshot.version if snapshot else None,
            "notes": len(snapshot.corpus) if snapshot else 0,
            "unsearchable": list(snapshot.skipped) if snapshot else [],
            "rejected": list(snapshot.rejected) if snapshot else [],
        }

    async def refresh(self) -> dict[str, Any]:
        installed = await self.store.refresh(self.client.fetch_corpus)
        if self.store.status is CorpusStatus.UNAVAILABLE:
            return {
                "ok": False,
                "error": self.store.error or self.store.status_message(),
                "message": self.store.status_message(),
            }
        return {"ok": True, "installed": installed, "message": self.store.status_message()}

    def note_tree(self) -> dict[str, Any]:
        snapshot = self.store.current
        tree = snapshot.tree if snapshot else PathTree.rebuild(())
        return {"ok": True, "fingerprint": tree.fingerprint, "tree": tree.to_data()}

    def search_notes(self, query: str | None, limit: int | None = None) -> dict[str, Any]:
        if limit is None:
            limit = self.search_limit
        results = [
            {
                "key": key,
                "id": node_id_for(split_key(key)),
                "preview": content[:PREVIEW_LENGTH] if isinstance(content, str) else "",
            }
            for key, content in self.store.search(query, limit)
        ]
        return {"ok": True, "results": results}

    def read_note(self, path: str) -> dict[str, Any]:
        """Read a note by corpus key or by tree node id."""

        snapshot = self.store.current
        if snapshot is None:
            return {"ok": False, "error": self.store.status_message(), "key": path}

        key = key_from_node_id(path)
        if key not in snapshot.corpus and path in snapshot.corpus:
            key = path
        if key not in snapshot.corpus:
            return {"ok": False, "error": f"Note not found: {key}", "key": key}

        note = snapshot.corpus.note(key)
        return {"ok": True, "key": key, "is_text": note.is_text, "content": note.content}

    async def import_notes(self, files: Mapping[str, str]) -> dict[str, Any]:
        if not files:
            return {"ok": False, "error": "No files to import"}

        result = await self.client.import_files(files)
        if not result.ok:
            return {
                "ok": False,
                "status": result.status,
                "error": result.detail or "Failed to import notes.",
            }

        refreshed = await self.refresh()
        return {
            "ok": True,
            "status": result.status,
            "imported": len(files),
            "refresh": refreshed,
        }

    async def import_folder(self, path: str) -> dict[str, Any]:
        """Import a folder that lies inside one of the configured import roots."""

        try:
            folder = ensure_in_roots(Path(path), self.import_roots)
            files = collect_folder(folder)
        except PermissionError as exc:
            logger.warning("Refusing folder import: %s", exc)
            return {"ok": False, "error": str(exc)}
        except OSError as exc:
            return {"ok": False, "error": str(exc)}
        return await self.import_notes(files)


def parse_api_url(raw: str) -> str:
    """Validate the notes service base URL."""

    if not raw or not raw.strip():
        raise SettingsError("NOTES_API_URL must be provided")
    try:
        url = httpx.URL(raw.strip())
    except httpx.InvalidURL as exc:
        raise SettingsError(f"Invalid NOTES_API_URL {raw!r}: {exc}") from None
    if url.scheme not in ("http", "https") or not url.host:
        raise SettingsError(f"NOTES_API_URL must be an absolute http(s) URL: {raw!r}")
    return str(url).rstrip("/")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise SettingsError(f"{name} must be an integer: {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise SettingsError(f"{name} must be a number: {raw!r}") from None


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    raise SettingsError(f"{name} must be a boolean: {raw!r}")


def load_settings() -> Settings:
    """Load configuration from environment variables."""

    notes_api_url = parse_api_url(os.environ.get("NOTES_API_URL", ""))

    host = os.environ.get("HOST", "0.0.0.0")  # noqa: S104 (intentional bind)
    port = _env_int("PORT", 8000)

    search_limit = _env_int("SEARCH_LIMIT", DEFAULT_LIMIT)
    if search_limit <= 0:
        raise SettingsError("SEARCH_LIMIT must be positive")
    request_timeout = _env_float("REQUEST_TIMEOUT", 30.0)

    try:
        import_roots = parse_import_roots(os.environ.get("IMPORT_ROOTS", ""))
    except ImportRootError as exc:
        raise SettingsError(str(exc)) from None

    index_config = IndexConfig(
        case_folding=os.environ.get("SEARCH_CASE_FOLDING", "extended_latin"),
        match_mode=os.environ.get("SEARCH_MATCH_MODE", "substring"),
        tokenization=os.environ.get("SEARCH_TOKENIZATION", "strict"),
    )

    log_level = os.environ.get("LOG_LEVEL", "info").upper()
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
    if not import_roots:
        logger.info("IMPORT_ROOTS is not set; folder imports are disabled")

    return Settings(
        notes_api_url=notes_api_url,
        host=host,
        port=port,
        log_level=log_level,
        search_limit=search_limit,
        request_timeout=request_timeout,
        index_config=index_config,
        accept_empty_segments=_env_bool("ACCEPT_EMPTY_SEGMENTS"),
        import_roots=import_roots,
    )


def build_service(settings: Settings) -> NoteService:
    store = CorpusStore(settings.index_config, settings.accept_empty_segments)
    client = NotesClient(settings.notes_api_url, timeout=settings.request_timeout)
    return NoteService(store, client, settings.search_limit, settings.import_roots)


def create_server(
    settings: Settings | None = None, service: NoteService | None = None
) -> FastMCP:
    """Create a configured :class:`FastMCP` instance."""

    settings = settings or load_settings()
    service = service or build_service(settings)
    server = FastMCP(
        "Notes Corpus",
        instructions="Browse, search and import a personal notes knowledge base",
    )

    def tool(*args: Any, **kwargs: Any) -> Callable[[TToolFunc], TToolFunc]:
        decorator = server.tool(*args, **kwargs)
        return cast(Callable[[TToolFunc], TToolFunc], decorator)

    @tool()
    async def notes_status() -> dict[str, Any]:
        return service.status()

    @tool()
    async def refresh_notes() -> dict[str, Any]:
        return await service.refresh()

    @tool()
    async def note_tree() -> dict[str, Any]:
        return service.note_tree()

    @tool()
    async def search_notes(query: str | None = None, limit: int | None = None) -> dict[str, Any]:
        return service.search_notes(query, limit)

    @tool()
    async def read_note(path: str) -> dict[str, Any]:
        return service.read_note(path)

    @tool()
    async def import_notes(files: dict[str, str]) -> dict[str, Any]:
        return await service.import_notes(files)

    @tool()
    async def import_folder(path: str) -> dict[str, Any]:
        return await service.import_folder(path)

    @server.custom_route("/health", methods=["GET"])
    async def health(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "notes": service.store.status.value})

    return server


def main() -> None:
    """Fetch the corpus once, then run the FastMCP server."""

    settings = load_settings()
    service = build_service(settings)
    refreshed = asyncio.run(service.refresh())
    if not refreshed["ok"]:
        logger.warning("Starting without notes: %s", refreshed["error"])
    server = create_server(settings, service)
    server.run(transport="http", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
