from __future__ import annotations

import logging
import mimetypes
import os
from datetime import datetime
from pathlib import Path
from typing import Iterator

from .errors import DocumentStoreError
from .models import DocumentRef
from .search import CONTAINER, LEAF

logger = logging.getLogger(__name__)

GRANTED = "granted"
DENIED = "denied"

MAX_COPY_SUFFIX = 100

TEXT_APPLICATION_TYPES = {
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-yaml",
    "application/x-sh",
}


def safe_join(root: Path, rel_path: str) -> Path:
    rel_path = rel_path.strip().lstrip("/").replace("\\", "/")
    p = (root / rel_path).resolve()
    if p != root.resolve() and root.resolve() not in p.parents:
        raise ValueError("Path traversal detected")
    return p


def _rel(root: Path, p: Path) -> str:
    return str(p.relative_to(root)).replace("\\", "/")


def is_text_document(name: str) -> bool:
    """True for files whose type is text, or unknown (plain notes such as ``.md``)."""
    mime_type = mimetypes.guess_type(name)[0]
    return mime_type is None or mime_type.startswith("text/") or mime_type in TEXT_APPLICATION_TYPES


class LocalHandle:
    """Resource handle over a local directory tree."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    @property
    def name(self) -> str:
        return self.path.name or str(self.path)

    @property
    def kind(self) -> str:
        # Symlinked folders are not followed, which keeps traversal acyclic
        if self.path.is_dir() and not self.path.is_symlink():
            return CONTAINER
        return LEAF

    @property
    def token(self) -> str:
        return str(self.path.resolve())

    @classmethod
    def from_token(cls, token: str) -> "LocalHandle":
        return cls(Path(token))

    def entries(self) -> Iterator["LocalHandle"]:
        for child in self.path.iterdir():
            yield LocalHandle(child)

    def modified(self) -> datetime:
        return datetime.fromtimestamp(self.path.stat().st_mtime)

    def query_permission(self) -> str:
        if self.path.is_dir() and os.access(self.path, os.R_OK | os.X_OK):
            return GRANTED
        return DENIED

    def request_permission(self) -> str:
        # Filesystem permissions cannot be raised from here; re-check only.
        return self.query_permission()

    def __repr__(self) -> str:
        return f"LocalHandle({str(self.path)!r})"


class VaultDocumentStore:
    """Document store backed by a Markdown vault on disk.

    Document ids are vault-relative POSIX paths. The managed workspace is a
    top-level folder of the vault.
    """

    def __init__(self, vault_root: Path | str, workspace_folder: str = "Mobius"):
        self.root = Path(vault_root).resolve()
        self.workspace_folder = workspace_folder.strip("/") or "Mobius"

    def workspace_id(self) -> str:
        try:
            (self.root / self.workspace_folder).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DocumentStoreError(f"Cannot prepare workspace folder: {e}") from e
        return self.workspace_folder

    def _path(self, doc_id: str) -> Path:
        try:
            return safe_join(self.root, doc_id)
        except ValueError as e:
            raise DocumentStoreError(str(e)) from e

    def _ref(self, p: Path) -> DocumentRef:
        rel = _rel(self.root, p)
        parent = _rel(self.root, p.parent) if p.parent != self.root else ""
        mime_type = mimetypes.guess_type(p.name)[0] or "text/plain"
        in_workspace = rel.split("/", 1)[0] == self.workspace_folder
        return DocumentRef(
            id=rel,
            name=p.name,
            mime_type=mime_type,
            path=parent or None,
            in_workspace=in_workspace,
        )

    def find(self, name_query: str, container_id: str | None = None, limit: int = 50) -> list[DocumentRef]:
        """Documents whose file name contains ``name_query`` (case-insensitive)."""
        q = (name_query or "").strip().lower()
        if not q:
            return []
        base = self._path(container_id) if container_id else self.root
        if not base.is_dir():
            return []
        out = []
        try:
            for p in sorted(base.rglob("*")):
                if not p.is_file() or p.name.startswith("."):
                    continue
                if q in p.name.lower():
                    out.append(self._ref(p))
                    if len(out) >= limit:
                        break
        except OSError as e:
            raise DocumentStoreError(f"Search failed: {e}") from e
        logger.debug("find(%r, container=%r) -> %d hits", name_query, container_id, len(out))
        return out

    def read(self, doc_id: str, mime_type: str = "text/plain") -> str:
        p = self._path(doc_id)
        try:
            return p.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise DocumentStoreError(f"{doc_id} is not UTF-8 text") from e
        except OSError as e:
            raise DocumentStoreError(f"Cannot read {doc_id}: {e.strerror or e}") from e

    def create(self, name: str, container_id: str) -> DocumentRef:
        p = self._path(f"{container_id}/{name}")
        if p.exists():
            raise DocumentStoreError(f"{name} already exists")
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text("", encoding="utf-8")
        except OSError as e:
            raise DocumentStoreError(f"Cannot create {name}: {e.strerror or e}") from e
        logger.info("Created %s", _rel(self.root, p))
        return self._ref(p)

    def copy_into(self, doc_id: str, mime_type: str, name: str, container_id: str) -> tuple[DocumentRef, str]:
        """Copy a document's text into ``container_id`` as ``<stem>.md``.

        An existing workspace file is never replaced: the copy takes the first
        free name of ``<stem>.md``, ``<stem> (1).md``, ``<stem> (2).md`` ...
        """
        if not is_text_document(doc_id):
            raise DocumentStoreError(f"{name} is not a text document")
        content = self.read(doc_id, mime_type)
        stem = Path(name).stem
        target = None
        try:
            self._path(container_id).mkdir(parents=True, exist_ok=True)
            for n in range(MAX_COPY_SUFFIX):
                candidate = self._path(f"{container_id}/{stem}.md" if n == 0 else f"{container_id}/{stem} ({n}).md")
                try:
                    with candidate.open("x", encoding="utf-8") as f:
                        f.write(content)
                except FileExistsError:
                    continue
                target = candidate
                break
        except OSError as e:
            raise DocumentStoreError(f"Cannot copy {name}: {e.strerror or e}") from e
        if target is None:
            raise DocumentStoreError(f"Cannot copy {name}: too many copies in {container_id}")
        logger.info("Copied %s -> %s", doc_id, _rel(self.root, target))
        return self._ref(target), content

    def write(self, doc_id: str, content: str) -> None:
        p = self._path(doc_id)
        if not p.is_file():
            raise DocumentStoreError(f"{doc_id} not found")
        if not is_text_document(doc_id):
            raise DocumentStoreError(f"{doc_id} is not a text document; refusing to overwrite it")
        try:
            p.write_text(content, encoding="utf-8")
        except OSError as e:
            raise DocumentStoreError(f"Cannot write {doc_id}: {e.strerror or e}") from e

    def list_top_level(self) -> tuple[list[str], list[str]]:
        """(folders, files) directly under the vault root, sorted by name."""
        if not self.root.is_dir():
            raise DocumentStoreError("Vault root not found")
        folders, files = [], []
        for p in sorted(self.root.iterdir(), key=lambda x: x.name.lower()):
            if p.name.startswith("."):
                continue
            (folders if p.is_dir() else files).append(p.name)
        return folders, files

    def account_info(self, user_id: str | None) -> dict[str, str]:
        if not user_id:
            raise DocumentStoreError("Not logged in.")
        return {"name": user_id, "email": "unknown", "store": self.root.name}
