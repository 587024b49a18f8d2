"""Utilities for working with note keys and import folders."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

SEPARATOR = "/"
ROOT_ID = "root"


class InvalidKeyError(ValueError):
    """Raised when a note key cannot be placed in the corpus."""


class ImportRootError(ValueError):
    """Raised when the configured import roots are invalid."""


def split_key(key: str) -> list[str]:
    """Split *key* into its ``/`` delimited path segments."""

    return key.split(SEPARATOR)


def has_empty_segment(key: str) -> bool:
    return any(not segment for segment in split_key(key))


def validate_key(key: object, accept_empty_segments: bool = False) -> str:
    """Ensure *key* is usable as a corpus key and return it."""

    if not isinstance(key, str):
        raise InvalidKeyError(f"Note key must be a string: {key!r}")
    if not accept_empty_segments and has_empty_segment(key):
        raise InvalidKeyError(f"Note key has an empty path segment: {key!r}")
    return key


def node_id_for(segments: Iterable[str]) -> str:
    """Return the tree node id for a chain of path segments."""

    return SEPARATOR.join([ROOT_ID, *segments])


def key_from_node_id(node_id: str) -> str:
    """Strip the synthetic root prefix from a tree node id.

    Identifiers without the prefix are assumed to already be corpus keys.
    """

    prefix = ROOT_ID + SEPARATOR
    if node_id.startswith(prefix):
        return node_id[len(prefix) :]
    return node_id


def parse_import_roots(raw: str) -> tuple[Path, ...]:
    """Parse a comma separated list of folders that imports may read from.

    An empty value yields no roots, which disables folder imports.
    """

    roots: list[Path] = []
    for chunk in raw.split(","):
        candidate = chunk.strip()
        if not candidate:
            continue
        path = Path(candidate).expanduser()
        if not path.is_absolute():
            raise ImportRootError(f"Import root must be absolute: {candidate!r}")
        root = path.resolve(strict=False)
        if root not in roots:
            roots.append(root)
    return tuple(roots)


def ensure_in_roots(path: Path, roots: Iterable[Path]) -> Path:
    """Resolve *path* and ensure it lies inside one of *roots*."""

    resolved = path.expanduser().resolve(strict=False)
    for root in roots:
        try:
            resolved.relative_to(root)
        except ValueError:
            continue
        return resolved
    raise PermissionError(f"Folder {resolved} is outside the configured import roots")


def collect_folder(folder: Path) -> dict[str, str]:
    """Read every file below *folder* into a ``{relative_path: text}`` mapping.

    Relative paths start with the folder's own name, matching what a browser
    folder picker reports for each file. Files that resolve outside *folder*
    (through symlinks) are skipped.
    """

    root = folder.expanduser().resolve(strict=False)
    if not root.is_dir():
        raise NotADirectoryError(f"Import folder does not exist: {folder}")

    files: dict[str, str] = {}
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        try:
            path.resolve(strict=False).relative_to(root)
        except ValueError:
            logger.warning("Skipping %s: it resolves outside %s", path, root)
            continue
        key = path.relative_to(root.parent).as_posix()
        try:
            files[key] = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.warning("Skipping unreadable file %s: %s", path, exc)
    return files
