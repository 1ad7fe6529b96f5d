from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .routing import SERVICE_ROUTES, ServiceRoute, route_service


class ActionType(str, Enum):
    COMMAND = "command"
    LOCAL = "local"
    SERVICE = "service"
    AI = "ai"


@dataclass(frozen=True)
class ResolvedAction:
    """Exactly one of command / local answer / domain service / AI request."""
    type: ActionType
    keyword: Optional[str] = None
    args: str = ""
    answer: Optional[str] = None
    service_id: Optional[str] = None

    @classmethod
    def command(cls, keyword: str, args: str = "") -> "ResolvedAction":
        return cls(type=ActionType.COMMAND, keyword=keyword, args=args)

    @classmethod
    def local(cls, answer: str) -> "ResolvedAction":
        return cls(type=ActionType.LOCAL, answer=answer)

    @classmethod
    def service(cls, service_id: str) -> "ResolvedAction":
        return cls(type=ActionType.SERVICE, service_id=service_id)

    @classmethod
    def ai(cls) -> "ResolvedAction":
        return cls(type=ActionType.AI)


def normalize(text: str) -> str:
    """Collapse whitespace and straighten quotes for pattern matching."""
    t = (text or "").replace("’", "'").replace("‘", "'")
    return re.sub(r"\s+", " ", t).strip()


def parse_context(context: str) -> dict[str, str]:
    """``Label: value`` lines to a dict; the first occurrence of a label wins."""
    labels: dict[str, str] = {}
    for line in (context or "").splitlines():
        label, sep, value = line.partition(":")
        if not sep:
            continue
        label = label.strip()
        if label and label not in labels:
            labels[label] = value.strip()
    return labels


def _join(labels: dict[str, str], *keys: str) -> Optional[str]:
    values = [labels[k] for k in keys if labels.get(k)]
    return ", ".join(values) or None


def _datetime(labels: dict[str, str]) -> Optional[str]:
    dt = labels.get("Date/Time")
    if not dt:
        return None
    tz = labels.get("Timezone")
    return f"{dt} ({tz})" if tz else dt


@dataclass(frozen=True)
class LocalDataRule:
    """Phrase pattern answered from the caller-supplied context blob."""
    key: str
    pattern: re.Pattern
    extract: Callable[[dict[str, str]], Optional[str]]

    def answer(self, text: str, labels: dict[str, str]) -> Optional[str]:
        if not self.pattern.search(text):
            return None
        return self.extract(labels)


LOCAL_RULES: tuple[LocalDataRule, ...] = (
    LocalDataRule(
        "datetime",
        re.compile(r"\b(what('s| is) the (time|date|day)|(current|today'?s?) (time|date|day))\b", re.I),
        _datetime,
    ),
    LocalDataRule("datetime", re.compile(r"\b(what (time|day|date) is it)\b", re.I), _datetime),
    LocalDataRule(
        "location",
        re.compile(r"\b(where am i|my location|what city|what country|what region)\b", re.I),
        lambda labels: labels.get("Location") or None,
    ),
    LocalDataRule(
        "device",
        re.compile(r"\b(what (browser|device|os|operating system) am i (using|on))\b", re.I),
        lambda labels: _join(labels, "OS", "Browser", "Device"),
    ),
    LocalDataRule(
        "timezone",
        re.compile(r"\b(my (timezone|time zone|utc offset))\b", re.I),
        lambda labels: labels.get("Timezone") or None,
    ),
    LocalDataRule(
        "network",
        re.compile(r"\b(am i online|internet connection|my connection|my bandwidth)\b", re.I),
        lambda labels: _join(labels, "Online", "Connection", "Bandwidth", "Latency"),
    ),
    LocalDataRule(
        "currency",
        re.compile(r"\b(my (currency|local currency))\b", re.I),
        lambda labels: labels.get("Currency") or None,
    ),
    LocalDataRule(
        "screen",
        re.compile(r"\b(my (screen|resolution|display))\b", re.I),
        lambda labels: labels.get("Screen") or None,
    ),
)


def resolve_local_data(text: str, context: str, rules: tuple[LocalDataRule, ...] = LOCAL_RULES) -> Optional[str]:
    """Answer from context, or None so the utterance falls through to AI."""
    if not context:
        return None
    labels = parse_context(context)
    for rule in rules:
        answer = rule.answer(text, labels)
        if answer:
            return answer
    return None


@dataclass(frozen=True)
class IntentResolver:
    """Ordered classifier pipeline: command, local data, domain service, AI.

    The first classifier that matches wins; AI is the default so resolution
    is total.
    """

    detect_command: Callable[[str], Optional[tuple[str, str]]]
    local_rules: tuple[LocalDataRule, ...] = LOCAL_RULES
    service_routes: tuple[ServiceRoute, ...] = SERVICE_ROUTES

    def resolve(self, text: str, context: str = "") -> ResolvedAction:
        detected = self.detect_command(text or "")
        if detected:
            keyword, args = detected
            return ResolvedAction.command(keyword, args)

        t = normalize(text)
        answer = resolve_local_data(t, context, self.local_rules)
        if answer:
            return ResolvedAction.local(answer)

        service_id = route_service(t, self.service_routes)
        if service_id:
            return ResolvedAction.service(service_id)

        return ResolvedAction.ai()
