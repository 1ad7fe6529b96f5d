from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Optional, Protocol

from .errors import AccessCancelled, AccessDenied
from .search import list_contents
from .vault import GRANTED, LocalHandle

if TYPE_CHECKING:
    from .session import SessionContext

logger = logging.getLogger(__name__)

GRANTED_OUTCOME = "granted"
CANCELLED_OUTCOME = "cancelled"
DENIED_OUTCOME = "denied"


class CapabilityStore:
    """Single named slot holding the granted folder, kept in a JSON file."""

    SLOT = "rootHandle"

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Capability store unreadable (%s): %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def get(self) -> Optional[str]:
        return self._load().get(self.SLOT)

    def set(self, token: str) -> None:
        self._save({self.SLOT: token})

    def clear(self) -> None:
        data = self._load()
        if self.SLOT in data:
            del data[self.SLOT]
            self._save(data)


class FolderPicker(Protocol):
    def pick(self, hint: str = "") -> LocalHandle:
        """Return a granted folder or raise AccessCancelled / AccessDenied."""
        ...


class PathPicker:
    """Grants the folder the user names, or the configured default folder."""

    def __init__(self, default_root: str = ""):
        self.default_root = default_root

    def pick(self, hint: str = "") -> LocalHandle:
        target = (hint or self.default_root).strip()
        if not target:
            raise AccessCancelled("Folder selection cancelled.")
        handle = LocalHandle(Path(target).expanduser())
        if not handle.path.is_dir():
            raise AccessDenied(f"{target} is not a folder")
        if handle.query_permission() != GRANTED:
            raise AccessDenied(f"{target} is not readable")
        return handle


@dataclass
class AccessResult:
    granted: bool
    outcome: str
    messages: List[str] = field(default_factory=list)


class AccessManager:
    """Owns the session's resource handle: restore, re-validate, acquire.

    There is one granted folder per process. A session's handle stays valid
    only while it is the current grant; once any session acquires another
    folder, older handles are dropped and replaced from the store on next use.
    """

    def __init__(
        self,
        store: CapabilityStore,
        picker: FolderPicker,
        restore: Callable[[str], LocalHandle] = LocalHandle.from_token,
    ):
        self.store = store
        self.picker = picker
        self.restore = restore
        self.current_token: Optional[str] = None

    def ensure_access(self, session: "SessionContext") -> AccessResult:
        if session.resource_handle is not None:
            if session.resource_handle.token == self.current_token:
                return AccessResult(granted=True, outcome=GRANTED_OUTCOME)
            logger.info("Session %s holds a superseded folder grant; dropping it", session.session_id[:16])
            session.resource_handle = None

        token = self.store.get()
        if token:
            handle = self.restore(token)
            try:
                perm = handle.query_permission()
                if perm != GRANTED:
                    perm = handle.request_permission()
            except OSError as e:
                logger.info("Stored folder could not be re-validated: %s", e)
                perm = None
            if perm == GRANTED:
                session.resource_handle = handle
                self.current_token = handle.token
                logger.debug("Restored folder access to %s", handle.name)
                return AccessResult(granted=True, outcome=GRANTED_OUTCOME)

        result = self.acquire(session)
        result.messages.insert(0, "No folder access granted. Running Access...")
        return result

    def acquire(self, session: "SessionContext", hint: str = "") -> AccessResult:
        """Prompt for a new folder. Any previous grant is dropped first."""
        session.resource_handle = None
        self.current_token = None
        try:
            self.store.clear()
        except OSError as e:
            logger.warning("Could not clear previous folder grant: %s", e)
        try:
            handle = self.picker.pick(hint)
        except AccessCancelled:
            return AccessResult(False, CANCELLED_OUTCOME, ["❌ Folder selection cancelled."])
        except AccessDenied as e:
            return AccessResult(False, DENIED_OUTCOME, [f"❌ Access denied: {e.message}"])

        session.resource_handle = handle
        self.current_token = handle.token
        try:
            self.store.set(handle.token)
        except OSError as e:
            logger.warning("Could not persist folder grant: %s", e)

        try:
            entries = [hit.label() for hit in list_contents(handle)]
        except OSError as e:
            return AccessResult(True, GRANTED_OUTCOME, [
                f"✅ Access granted to: {handle.name}",
                f"(contents unreadable: {e.strerror or e})",
            ])
        logger.info("Folder access granted: %s (%d items)", handle.name, len(entries))
        return AccessResult(True, GRANTED_OUTCOME, [
            f"✅ Access granted to: {handle.name}\n\n📁 Contents ({len(entries)} items):\n" + "\n".join(entries)
        ])
