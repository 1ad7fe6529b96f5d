"""
In-memory session store. Each session owns its folder grant, focused
document, preferred provider and conversation history; nothing is shared
between sessions except the single-slot capability store.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .focus import FocusWorkflow

logger = logging.getLogger(__name__)

SESSION_GAP = timedelta(minutes=30)


@dataclass(frozen=True)
class Exchange:
    question: str
    answer: str
    provider: str
    created_at: datetime


@dataclass
class SessionContext:
    session_id: str
    focus: FocusWorkflow
    user_id: Optional[str] = None
    resource_handle: Optional[Any] = None
    last_provider: Optional[str] = None
    history: List[Exchange] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, question: str, answer: str, provider: str, when: Optional[datetime] = None) -> None:
        self.history.append(Exchange(question, answer, provider, when or datetime.now()))

    def messages(self, limit: int = 10) -> List[Dict[str, str]]:
        """Recent exchanges as chat messages, oldest first."""
        out: List[Dict[str, str]] = []
        for ex in self.history[-limit:]:
            out.append({"role": "user", "content": ex.question})
            out.append({"role": "assistant", "content": ex.answer})
        return out


def group_history(history: List[Exchange], gap: timedelta = SESSION_GAP) -> List[List[Exchange]]:
    """Split exchanges into conversations at gaps longer than ``gap``; newest first."""
    groups: List[List[Exchange]] = []
    last: Optional[datetime] = None
    for ex in sorted(history, key=lambda e: e.created_at):
        if last is None or ex.created_at - last > gap:
            groups.append([])
        groups[-1].append(ex)
        last = ex.created_at
    groups.reverse()
    return groups


class SessionStore:
    def __init__(self, focus_factory: Callable[[], FocusWorkflow]):
        self.focus_factory = focus_factory
        self._sessions: Dict[str, SessionContext] = {}
        self._lock = threading.Lock()

    def get(self, session_id: Optional[str] = None, user_id: Optional[str] = None) -> SessionContext:
        """Existing session for ``session_id`` or a new one."""
        with self._lock:
            if session_id and session_id in self._sessions:
                ctx = self._sessions[session_id]
                if user_id and not ctx.user_id:
                    ctx.user_id = user_id
                return ctx
            sid = session_id or uuid.uuid4().hex
            ctx = SessionContext(session_id=sid, focus=self.focus_factory(), user_id=user_id)
            self._sessions[sid] = ctx
        logger.info("[session_store] new session %s user=%s", sid[:16], user_id)
        return ctx

    def find(self, session_id: str) -> Optional[SessionContext]:
        with self._lock:
            return self._sessions.get(session_id)
