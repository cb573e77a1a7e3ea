"""Directory-backed document store for the CLI.

Documents are text files under one root directory; a locator is the
file's path relative to that root, in POSIX form. Path traversal,
symlink escapes and binary files are rejected.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from quill.tools.base import DocumentRef

if TYPE_CHECKING:
    from quill.tools.base import WriteMode

MAX_FILE_SIZE = 512 * 1024  # 512KB


class DirectoryDocumentStore:
    """Implements the :class:`~quill.tools.base.DocumentStore` protocol.

    Args:
        root: Directory holding the documents. Created on first write.
        extension: Suffix of files treated as documents; appended to
            written locators that have no suffix.
    """

    def __init__(self, root: str | Path, *, extension: str = ".md") -> None:
        self._root = Path(root).expanduser().resolve()
        self._extension = extension if extension.startswith(".") else f".{extension}"

    @property
    def root(self) -> Path:
        return self._root

    async def list_documents(self, query: str = "") -> list[DocumentRef]:
        if not self._root.is_dir():
            return []
        needle = query.strip().lower()
        refs: list[DocumentRef] = []
        for path in sorted(self._root.rglob(f"*{self._extension}")):
            if not path.is_file() or not self._is_within(path.resolve()):
                continue
            locator = path.relative_to(self._root).as_posix()
            if needle and needle not in locator.lower():
                continue
            refs.append(DocumentRef(name=path.stem, locator=locator))
        return refs

    async def read_document(self, locator: str) -> str:
        path = self._resolve(locator)
        if not path.exists():
            msg = f"Document not found: {locator}"
            raise FileNotFoundError(msg)
        if not path.is_file():
            msg = f"Not a regular file: {locator}"
            raise ValueError(msg)

        size = path.stat().st_size
        if size > MAX_FILE_SIZE:
            msg = f"Document too large: {size} bytes (max {MAX_FILE_SIZE} bytes)"
            raise ValueError(msg)
        if b"\x00" in path.read_bytes()[:8192]:
            msg = f"Binary file cannot be read as text: {locator}"
            raise ValueError(msg)
        return path.read_text(encoding="utf-8")

    async def write_document(
        self, locator: str, content: str, mode: WriteMode = "replace"
    ) -> None:
        if not Path(locator).suffix:
            locator = f"{locator}{self._extension}"
        path = self._resolve(locator)
        if path.exists() and not path.is_file():
            msg = f"Not a regular file: {locator}"
            raise ValueError(msg)

        path.parent.mkdir(parents=True, exist_ok=True)
        if mode == "append":
            # Appended text starts its own paragraph.
            with path.open("a", encoding="utf-8") as fh:
                fh.write(f"\n\n{content}\n")
        else:
            path.write_text(content, encoding="utf-8")

    def _resolve(self, locator: str) -> Path:
        """Map a locator to a path inside the root, rejecting escapes."""
        if not locator or not isinstance(locator, str):
            msg = "Locator must be a non-empty string"
            raise ValueError(msg)
        normalized = os.path.normpath(locator)
        if os.path.isabs(normalized) or ".." in normalized.split(os.sep):
            msg = f"Path traversal not allowed: {locator}"
            raise ValueError(msg)

        resolved = (self._root / normalized).resolve()
        if not self._is_within(resolved):
            msg = f"Path is outside the document root: {locator}"
            raise ValueError(msg)
        return resolved

    def _is_within(self, path: Path) -> bool:
        try:
            path.relative_to(self._root)
        except ValueError:
            return False
        return True
