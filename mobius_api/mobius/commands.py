from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

import yaml
from pydantic import ValidationError

from .models import CommandSpec, DocumentRef

if TYPE_CHECKING:
    from .access import AccessManager
    from .session import SessionContext

logger = logging.getLogger(__name__)

COLON_COMMAND_RE = re.compile(r"^(\w+):\s*([\s\S]*)")


@dataclass
class CommandResult:
    handled: bool
    success: bool = True
    messages: List[str] = field(default_factory=list)
    candidates: Optional[List[DocumentRef]] = None
    container_id: Optional[str] = None

    @property
    def reply(self) -> str:
        return "\n".join(self.messages)

    @classmethod
    def ok(cls, *messages: str) -> "CommandResult":
        return cls(handled=True, success=True, messages=list(messages))

    @classmethod
    def fail(cls, *messages: str) -> "CommandResult":
        return cls(handled=True, success=False, messages=list(messages))


Handler = Callable[["SessionContext", str], CommandResult]


@dataclass(frozen=True)
class CommandDescriptor:
    keyword: str
    handler: Optional[Handler] = None
    requires_access: bool = False
    is_ai: bool = False
    bare: bool = False
    usage: Optional[str] = None


def load_commands(commands_file: Path) -> List[CommandSpec]:
    """
    Read the YAML command table.

    Items that fail validation are logged and skipped; a missing or empty
    file yields an empty list.
    """
    if not commands_file.exists():
        logger.warning("Command table not found: %s", commands_file)
        return []
    data = yaml.safe_load(commands_file.read_text(encoding="utf-8"))
    if not data:
        return []
    commands = []
    for item in data:
        try:
            commands.append(CommandSpec(**item))
        except (ValidationError, TypeError) as e:
            logger.warning("Skipping invalid command entry %r: %s", item, e)
    return commands


class CommandRegistry:
    """Keyword -> descriptor table with detection and dispatch."""

    def __init__(self, descriptors: List[CommandDescriptor], access: Optional["AccessManager"] = None):
        self._commands: Dict[str, CommandDescriptor] = {d.keyword.lower(): d for d in descriptors}
        self.access = access

    @classmethod
    def from_specs(
        cls,
        specs: List[CommandSpec],
        handlers: Dict[str, Handler],
        access: Optional["AccessManager"] = None,
    ) -> "CommandRegistry":
        descriptors = []
        for spec in specs:
            handler = handlers.get(spec.handler) if spec.handler else None
            if not spec.is_ai and handler is None:
                logger.warning("No handler named %r for command %r; skipped", spec.handler, spec.keyword)
                continue
            descriptors.append(CommandDescriptor(
                keyword=spec.keyword.lower(),
                handler=handler,
                requires_access=spec.requires_access,
                is_ai=spec.is_ai,
                bare=spec.bare,
                usage=spec.usage,
            ))
        return cls(descriptors, access=access)

    def get(self, keyword: str) -> Optional[CommandDescriptor]:
        return self._commands.get((keyword or "").lower())

    @property
    def keywords(self) -> List[str]:
        return list(self._commands)

    @property
    def bare_keywords(self) -> List[str]:
        return [k for k, d in self._commands.items() if d.bare]

    def detect(self, text: str) -> Optional[tuple[str, str]]:
        """
        Recognise ``keyword`` (bare shortcut) or ``keyword: args``.

        Returns (keyword, args) or None when the text is not a known command.
        """
        trimmed = (text or "").strip()
        lower = trimmed.lower()

        bare = self._commands.get(lower)
        if bare and bare.bare and not re.search(r"\s", trimmed):
            return lower, ""

        m = COLON_COMMAND_RE.match(trimmed)
        if not m:
            return None
        keyword = m.group(1).lower()
        if keyword not in self._commands:
            return None
        return keyword, m.group(2).strip()

    def dispatch(self, session: "SessionContext", keyword: str, args: str = "") -> CommandResult:
        """Run a command handler; unknown and AI-deferred keywords are not handled."""
        cmd = self.get(keyword)
        if cmd is None or cmd.is_ai or cmd.handler is None:
            return CommandResult(handled=False)

        preface: List[str] = []
        if cmd.requires_access:
            if self.access is None:
                return CommandResult.fail("❌ Folder access is not available on this server.")
            access = self.access.ensure_access(session)
            if not access.granted:
                logger.info("Command %r blocked: access %s", cmd.keyword, access.outcome)
                return CommandResult.fail(*access.messages)
            preface = access.messages

        logger.debug("Dispatching %r args=%r", cmd.keyword, args)
        result = cmd.handler(session, args)
        if preface:
            result.messages = preface + result.messages
        return result
