from __future__ import annotations

import logging
import os
import platform
from datetime import datetime
from typing import Callable, Dict, Optional

import httpx

from .access import AccessManager
from .commands import CommandResult, Handler
from .config import Settings
from .errors import DocumentStoreError
from .search import list_contents, parse_find_args, search_tree
from .session import SessionContext, group_history
from .vault import VaultDocumentStore

logger = logging.getLogger(__name__)

FIND_USAGE = "Usage: Find: filename [Ext: pdf] [From: last month] [To: today]"


def _au_date(value: datetime) -> str:
    return f"{value.day}/{value.month}/{value.year}"


class CommandHandlers:
    """Handlers for the command table, bound to their collaborators."""

    def __init__(
        self,
        settings: Settings,
        access: AccessManager,
        store: VaultDocumentStore,
        clock: Callable[[], datetime] = datetime.now,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.settings = settings
        self.access = access
        self.store = store
        self.clock = clock
        self.transport = transport

    def table(self) -> Dict[str, Handler]:
        return {
            "date": self.date,
            "time": self.time,
            "location": self.location,
            "device": self.device,
            "google": self.google,
            "access": self.access_folder,
            "find": self.find,
            "list": self.list_folder,
            "history": self.history,
            "focus": self.focus,
        }

    def date(self, session: SessionContext, args: str) -> CommandResult:
        now = self.clock()
        return CommandResult.ok(f"📅 {now:%A}, {now.day} {now:%B %Y}")

    def time(self, session: SessionContext, args: str) -> CommandResult:
        now = self.clock()
        hour = now.hour % 12 or 12
        return CommandResult.ok(f"🕐 {hour}:{now:%M} {'am' if now.hour < 12 else 'pm'}")

    def location(self, session: SessionContext, args: str) -> CommandResult:
        try:
            with httpx.Client(timeout=self.settings.location_timeout, transport=self.transport) as client:
                response = client.get(self.settings.location_url)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("[location] lookup failed: %s", e)
            return CommandResult.fail(f"❌ Location unavailable: {e}")
        if data.get("error"):
            return CommandResult.fail(f"❌ Location unavailable: {data.get('reason') or 'Unknown error'}")
        return CommandResult.ok(
            f"📍 {data.get('city')}, {data.get('region')}, {data.get('country_name')} ({data.get('country_code')})\n"
            f"🌐 IP: {data.get('ip')}\n"
            f"🕐 Timezone: {data.get('timezone')}"
        )

    def device(self, session: SessionContext, args: str) -> CommandResult:
        lines = ["🖥️  Device Information"]
        lines.append(f"OS: {platform.system()} {platform.release()}".rstrip())
        if platform.machine():
            lines.append(f"Architecture: {platform.machine()}")
        lines.append(f"Host: {platform.node() or 'unknown'}")
        if os.cpu_count():
            lines.append(f"CPU cores: {os.cpu_count()}")
        lines.append(f"Python: {platform.python_version()}")
        return CommandResult.ok("\n".join(lines))

    def google(self, session: SessionContext, args: str) -> CommandResult:
        try:
            info = self.store.account_info(session.user_id)
        except DocumentStoreError as e:
            return CommandResult.fail(f"❌ {e.message}")
        return CommandResult.ok(f"🔗 Google Account\nName:  {info['name']}\nEmail: {info['email']}")

    def access_folder(self, session: SessionContext, args: str) -> CommandResult:
        result = self.access.acquire(session, hint=args)
        return CommandResult(handled=True, success=result.granted, messages=result.messages)

    def find(self, session: SessionContext, args: str) -> CommandResult:
        if not args.strip():
            return CommandResult.fail(FIND_USAGE)
        flt = parse_find_args(args, now=self.clock())
        if not flt.name:
            return CommandResult.fail(FIND_USAGE)

        root = session.resource_handle
        desc = f'Searching "{root.name}" for "{flt.name}"'
        if flt.ext:
            desc += f" [.{flt.ext}]"
        if flt.modified_from:
            desc += f" [from {_au_date(flt.modified_from)}]"
        if flt.modified_to:
            desc += f" [to {_au_date(flt.modified_to)}]"

        hits = list(search_tree(root, flt, limit=self.settings.search_limit))
        logger.info("[find] %r -> %d hits", flt.name, len(hits))
        if not hits:
            return CommandResult.ok(f"🔍 {desc}...", f'No matches found for "{flt.name}".')
        return CommandResult.ok(
            f"🔍 {desc}...",
            f"Found {len(hits)} result(s):\n" + "\n".join(h.label() for h in hits),
        )

    def list_folder(self, session: SessionContext, args: str) -> CommandResult:
        root = session.resource_handle
        try:
            entries = list_contents(root)
        except OSError as e:
            return CommandResult.fail(f'❌ Cannot list "{root.name}": {e.strerror or e}')
        return CommandResult.ok(
            f'📁 "{root.name}" ({len(entries)} items):\n' + "\n".join(h.label() for h in entries)
        )

    def history(self, session: SessionContext, args: str) -> CommandResult:
        groups = group_history(session.history)
        if not groups:
            return CommandResult.ok("No chat history yet.")
        lines = [f"🗂️ Chat history ({len(groups)} conversation(s)):"]
        for group in groups:
            first = group[0]
            title = first.question if len(first.question) <= 60 else first.question[:57] + "..."
            lines.append(f"• {first.created_at:%d/%m/%Y %H:%M} {title} ({len(group)} message(s))")
        return CommandResult.ok("\n".join(lines))

    def focus(self, session: SessionContext, args: str) -> CommandResult:
        if not session.user_id:
            return CommandResult.fail("❌ Not logged in.")
        reply = session.focus.handle(args)
        return CommandResult(
            handled=True,
            success=reply.success,
            messages=[reply.message],
            candidates=reply.candidates,
            container_id=reply.container_id,
        )
