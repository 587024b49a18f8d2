"""HTTP client for the remote notes service."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from .corpus import CorpusUnavailableError

logger = logging.getLogger(__name__)

FETCH_NOTES_PATH = "/notes"
IMPORT_NOTES_PATH = "/import_notes"


@dataclass(frozen=True)
class ImportResult:
    status: Literal["success", "failure"]
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


class NotesClient:
    """Talks to the service that stores notes.

    A new :class:`httpx.AsyncClient` is opened per call; *transport* lets
    tests substitute an :class:`httpx.MockTransport`.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Content-Type": "application/json"},
        )

    async def fetch_corpus(self) -> dict[str, Any]:
        """Return the full ``{key: content}`` corpus.

        Values are passed through untouched, even when they are not text.
        """

        try:
            async with self._client() as client:
                response = await client.post(FETCH_NOTES_PATH)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as exc:
            raise CorpusUnavailableError(f"Failed to fetch notes: {exc}") from exc
        except ValueError as exc:
            raise CorpusUnavailableError(f"Notes response is not valid JSON: {exc}") from exc

        if not isinstance(payload, dict):
            raise CorpusUnavailableError(
                f"Notes response must be a JSON object, got {type(payload).__name__}"
            )
        return payload

    async def import_files(self, files: Mapping[str, str]) -> ImportResult:
        """Send ``{relative_path: text}`` to the notes service for storage."""

        try:
            async with self._client() as client:
                response = await client.post(IMPORT_NOTES_PATH, json=dict(files))
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as exc:
            logger.error("Importing %d notes failed: %s", len(files), exc)
            return ImportResult("failure", str(exc))
        except ValueError as exc:
            return ImportResult("failure", f"Invalid response: {exc}")

        if isinstance(payload, dict) and payload.get("message") == "success":
            return ImportResult("success")
        return ImportResult("failure", f"Unexpected response: {payload!r}")
