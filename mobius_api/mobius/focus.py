from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Protocol

from .errors import DocumentStoreError
from .models import DocumentRef

logger = logging.getLogger(__name__)

USAGE = "Usage: Focus: filename  |  Focus: add [text]  |  Focus: update  |  Focus: end"


class DocumentStore(Protocol):
    def workspace_id(self) -> str: ...
    def find(self, name_query: str, container_id: Optional[str] = None) -> List[DocumentRef]: ...
    def read(self, doc_id: str, mime_type: str = "text/plain") -> str: ...
    def create(self, name: str, container_id: str) -> DocumentRef: ...
    def copy_into(self, doc_id: str, mime_type: str, name: str, container_id: str) -> tuple[DocumentRef, str]: ...
    def write(self, doc_id: str, content: str) -> None: ...


class FocusState(str, Enum):
    UNFOCUSED = "unfocused"
    PENDING_SELECTION = "pending_selection"
    FOCUSED = "focused"


@dataclass(frozen=True)
class FocusSession:
    document_id: str
    display_name: str
    mime_type: str
    content: str
    container_id: str
    original_document_id: Optional[str] = None
    path: Optional[str] = None


@dataclass
class FocusReply:
    message: str
    success: bool = True
    candidates: Optional[List[DocumentRef]] = None
    container_id: Optional[str] = None


def _timestamp(now: datetime) -> str:
    hour = now.hour % 12 or 12
    suffix = "am" if now.hour < 12 else "pm"
    return f"{now:%d/%m/%Y}, {hour}:{now:%M:%S} {suffix}"


def _is_add(arg: str) -> bool:
    return arg[:3].lower() == "add" and (len(arg) == 3 or arg[3].isspace())


class FocusWorkflow:
    """
    The session's focused document and the transitions that touch it.

    ``handle()`` takes the text after ``focus:``; ``select()`` completes a
    multiple-match search with the candidate the user picked. A failed
    operation never changes the current focus.
    """

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock
        self.session: Optional[FocusSession] = None
        self.pending: List[DocumentRef] = []
        self.pending_container: Optional[str] = None

    @property
    def state(self) -> FocusState:
        if self.pending:
            return FocusState.PENDING_SELECTION
        if self.session is not None:
            return FocusState.FOCUSED
        return FocusState.UNFOCUSED

    def handle(self, args: str) -> FocusReply:
        trimmed = (args or "").strip()
        lowered = trimmed.lower()
        if lowered == "end":
            return self.end()
        if lowered == "update":
            return self.update()
        if _is_add(trimmed):
            return self.add(trimmed[3:].lstrip())
        if not trimmed:
            return FocusReply(USAGE, success=False)
        return self.focus_on(trimmed)

    def end(self) -> FocusReply:
        self.session = None
        self.pending = []
        self.pending_container = None
        return FocusReply("🔴 Focus ended. File detached from queries.")

    def update(self) -> FocusReply:
        if self.session is None:
            return FocusReply("❌ No file in focus.", success=False)
        if not self.session.original_document_id:
            return FocusReply(
                "❌ No original file to update (file was created in Mobius folder).", success=False
            )
        try:
            self.store.write(self.session.original_document_id, self.session.content)
        except DocumentStoreError as e:
            logger.warning("Write-back to %s failed: %s", self.session.original_document_id, e.message)
            return FocusReply(f"❌ Update failed: {e.message}", success=False)
        logger.info("Wrote focus copy back to %s", self.session.original_document_id)
        return FocusReply("✅ Original file updated successfully.")

    def add(self, text: str) -> FocusReply:
        if self.session is None:
            return FocusReply("❌ No file in focus. Use Focus: filename first.", success=False)
        if not text:
            return FocusReply("Usage: Focus: add [your text here]", success=False)

        current = self.session
        entry = f"[{_timestamp(self.clock())}]\n{text}"
        updated = f"{current.content}\n\n{entry}" if current.content else entry
        try:
            self.store.write(current.document_id, updated)
        except DocumentStoreError as e:
            logger.warning("Append to %s failed: %s", current.document_id, e.message)
            return FocusReply(f"❌ Save failed: {e.message}", success=False)
        self.session = replace(current, content=updated)
        return FocusReply(f'✅ Saved to "{current.display_name}".')

    def focus_on(self, name: str) -> FocusReply:
        """Search the workspace, then the whole store, for ``name``."""
        try:
            container_id = self.store.workspace_id()
            found = self.store.find(name, container_id=container_id)
            if not found:
                found = self.store.find(name)
        except DocumentStoreError as e:
            return FocusReply(f"❌ {e.message}", success=False)

        if not found:
            return self._create(name, container_id)
        if len(found) == 1:
            return self._open(found[0], container_id)

        self.pending = found
        self.pending_container = container_id
        lines = [
            ("📂 " if f.in_workspace else "📄 ") + f.name + (f" — Path: {f.path}" if f.path else "")
            for f in found
        ]
        return FocusReply(
            f"📋 Found {len(found)} files. Select one:\n" + "\n".join(lines),
            candidates=found,
            container_id=container_id,
        )

    def _create(self, name: str, container_id: str) -> FocusReply:
        filename = name if name.lower().endswith(".md") else f"{name}.md"
        try:
            created = self.store.create(filename, container_id)
        except DocumentStoreError as e:
            return FocusReply(f"❌ {e.message}", success=False)
        self._focus(FocusSession(
            document_id=created.id,
            display_name=created.name,
            mime_type="text/plain",
            content="",
            container_id=container_id,
            path=created.path,
        ))
        return FocusReply(
            f'📄 Not found. Created "{created.name}" in Mobius folder.\n'
            f"🟢 Focused on new file: {created.name}\n📄 File is empty.\n\n"
            'Use "Focus: add [text]" to add content.\nUse "Focus: end" to detach.'
        )

    def select(self, candidate_id: str) -> FocusReply:
        """Complete a multiple-match search with the candidate the user picked.

        Only ids offered by the pending search are accepted; the stored
        candidate decides whether the document is read or copied in.
        """
        if not self.pending:
            return FocusReply("❌ No file selection is pending. Use Focus: filename first.", success=False)
        chosen = next((c for c in self.pending if c.id == candidate_id), None)
        if chosen is None:
            logger.warning("Rejected selection of %r: not among the pending candidates", candidate_id)
            return FocusReply("❌ That file was not offered by the last search.", success=False)
        return self._open(chosen, self.pending_container)

    def _open(self, candidate: DocumentRef, container_id: str) -> FocusReply:
        """Focus on ``candidate``; documents outside the workspace are copied in."""
        try:
            if candidate.in_workspace:
                content = self.store.read(candidate.id, candidate.mime_type)
                session = FocusSession(
                    document_id=candidate.id,
                    display_name=candidate.name,
                    mime_type=candidate.mime_type,
                    content=content,
                    container_id=container_id,
                    path=candidate.path,
                )
            else:
                copy, content = self.store.copy_into(
                    candidate.id, candidate.mime_type, candidate.name, container_id
                )
                session = FocusSession(
                    document_id=copy.id,
                    display_name=copy.name,
                    mime_type="text/plain",
                    content=content,
                    container_id=container_id,
                    original_document_id=candidate.id,
                    path=candidate.path,
                )
        except DocumentStoreError as e:
            verb = "Read" if candidate.in_workspace else "Copy"
            return FocusReply(f"❌ {verb} failed: {e.message}", success=False)

        self._focus(session)
        head = f"🟢 Focused on: {session.display_name}" + (f" — Path: {session.path}" if session.path else "")
        body = f"📝 Current content:\n{session.content}" if session.content else "📄 File is empty."
        tips = ["File will be attached to all AI queries this session.", 'Use "Focus: add [text]" to append entries.']
        if session.original_document_id:
            tips.append('Use "Focus: update" to write back to the original.')
        tips.append('Use "Focus: end" to detach.')
        return FocusReply("\n".join([head, body, ""] + tips))

    def _focus(self, session: FocusSession) -> None:
        self.session = session
        self.pending = []
        self.pending_container = None
        logger.info("Focus -> %s (original=%s)", session.document_id, session.original_document_id)

    def attachment(self) -> Optional[str]:
        """Focused document formatted for inclusion in an AI request."""
        if self.session is None:
            return None
        return f"[File: {self.session.display_name}]\n{self.session.content}"
