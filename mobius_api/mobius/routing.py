from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional


# Leading "Ask: <word>" means the user picked a provider; keyword routing is skipped.
PROVIDER_OVERRIDE_RE = re.compile(r"^\s*ask:\s*\w+", re.IGNORECASE)


@dataclass(frozen=True)
class ServiceRoute:
    """Keyword set that sends an utterance to a domain service."""
    service_id: str
    pattern: re.Pattern

    def matches(self, text: str) -> bool:
        return bool(self.pattern.search(text))


SERVICE_ROUTES: tuple[ServiceRoute, ...] = (
    ServiceRoute("google_drive", re.compile(r"\b(drive|my files|google drive|gdrive)\b", re.I)),
    ServiceRoute("google_tasks", re.compile(r"\b(task|todo|to-do|to do list)\b", re.I)),
    ServiceRoute("google_calendar", re.compile(r"\b(calendar|schedule|my events|appointments)\b", re.I)),
    ServiceRoute("google_gmail", re.compile(r"\b(email|gmail|inbox|my emails|my mail)\b", re.I)),
)

SERVICE_LABELS = {
    "google_drive": "Google Drive",
    "google_tasks": "Google Tasks",
    "google_calendar": "Google Calendar",
    "google_gmail": "Gmail",
}


def has_provider_override(text: str) -> bool:
    return bool(PROVIDER_OVERRIDE_RE.match(text or ""))


def route_service(text: str, routes: tuple[ServiceRoute, ...] = SERVICE_ROUTES) -> Optional[str]:
    """Return the service id for ``text`` or None.

    Never routes when the user named a provider explicitly.
    """
    if has_provider_override(text):
        return None
    for route in routes:
        if route.matches(text):
            return route.service_id
    return None


def parse_ask(args: str, providers: list[str]) -> tuple[Optional[str], str]:
    """Split ``"<provider> <question>"`` into (provider, question).

    The first word only counts as a provider when it names one in the chain.
    """
    stripped = (args or "").strip()
    parts = re.split(r"\s+", stripped, maxsplit=1)
    if parts[0].lower() in providers:
        return parts[0].lower(), parts[1].strip() if len(parts) > 1 else ""
    return None, stripped
