from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, Optional, Protocol

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

CONTAINER = "directory"
LEAF = "file"

DEFAULT_LIMIT = 200


class ResourceNode(Protocol):
    """A named node in a granted tree.

    Containers expose ``entries()``; leaves expose ``modified()``. Both raise
    ``OSError`` when the underlying storage cannot be read.
    """

    name: str
    kind: str

    def entries(self) -> Iterable["ResourceNode"]: ...

    def modified(self) -> datetime: ...


@dataclass(frozen=True)
class SearchFilter:
    name: str = ""
    ext: Optional[str] = None
    modified_from: Optional[datetime] = None
    modified_to: Optional[datetime] = None


@dataclass(frozen=True)
class SearchHit:
    kind: str
    path: str

    def label(self) -> str:
        return ("📁 " if self.kind == CONTAINER else "📄 ") + self.path


# "last month" etc. are measured back from now, then truncated to midnight
RELATIVE_DATES = {
    "today": relativedelta(),
    "yesterday": relativedelta(days=1),
    "last week": relativedelta(weeks=1),
    "last month": relativedelta(months=1),
    "last year": relativedelta(years=1),
}

FIND_MARKER_RE = re.compile(r"\b(ext|from|to):\s*", re.IGNORECASE)


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=999000)


def parse_natural_date(text: str | None, now: datetime | None = None) -> datetime | None:
    """Parse "today", "last week", ... or any date dateutil understands.

    Returns None when the text cannot be read as a date.
    """
    s = (text or "").strip()
    if not s:
        return None
    delta = RELATIVE_DATES.get(s.lower())
    if delta is not None:
        return start_of_day((now or datetime.now()) - delta)
    try:
        parsed = date_parser.parse(s)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_find_args(raw: str, now: datetime | None = None) -> SearchFilter:
    """Split ``name [Ext: x] [From: y] [To: z]`` into a SearchFilter."""
    tokens = FIND_MARKER_RE.split(raw or "")
    name = tokens[0].strip().lower()
    ext = None
    modified_from = None
    modified_to = None
    for i in range(1, len(tokens), 2):
        key = tokens[i].lower()
        value = tokens[i + 1].strip() if i + 1 < len(tokens) else ""
        if key == "ext":
            ext = (value[1:] if value.startswith(".") else value).lower()
        elif key == "from":
            modified_from = parse_natural_date(value, now)
        elif key == "to":
            modified_to = parse_natural_date(value, now)
    if modified_to is not None:
        modified_to = end_of_day(modified_to)
    return SearchFilter(name=name, ext=ext or None, modified_from=modified_from, modified_to=modified_to)


def _extension(name: str) -> str:
    lowered = name.lower()
    dot = lowered.rfind(".")
    return lowered[dot + 1:] if dot != -1 else ""


def _leaf_passes(node: ResourceNode, flt: SearchFilter) -> bool:
    if flt.ext and _extension(node.name) != flt.ext:
        return False
    if flt.modified_from is None and flt.modified_to is None:
        return True
    try:
        modified = node.modified()
    except OSError as e:
        logger.debug("Skipping %s, timestamp unreadable: %s", node.name, e)
        return False
    if flt.modified_from is not None and modified < flt.modified_from:
        return False
    if flt.modified_to is not None and modified > flt.modified_to:
        return False
    return True


def _admitted(node: ResourceNode, is_container: bool, flt: SearchFilter) -> bool:
    # Folders have no extension, so an Ext: filter keeps them out of results.
    # They are still descended into either way.
    if is_container:
        return not flt.ext
    return _leaf_passes(node, flt)


def _open(node: ResourceNode) -> Iterator[ResourceNode] | None:
    try:
        return iter(node.entries())
    except OSError as e:
        logger.debug("Skipping unreadable folder %s: %s", node.name, e)
        return None


def search_tree(root: ResourceNode, flt: SearchFilter, limit: int = DEFAULT_LIMIT) -> Iterator[SearchHit]:
    """Depth-first search below ``root`` yielding hits in traversal order.

    The name filter narrows results, not traversal: every readable folder is
    entered. Date filters only apply to leaves and an extension filter
    admits leaves only. Iteration stops as soon as ``limit`` hits have been
    produced, so nothing past the last hit is touched.
    """
    if limit <= 0:
        return
    produced = 0
    top = _open(root)
    if top is None:
        return
    stack: list[tuple[Iterator[ResourceNode], str]] = [(top, "")]
    while stack:
        entries, parent = stack[-1]
        try:
            node = next(entries)
        except StopIteration:
            stack.pop()
            continue
        except OSError as e:
            logger.debug("Abandoning folder %s mid-listing: %s", parent or root.name, e)
            stack.pop()
            continue

        path = f"{parent}/{node.name}" if parent else node.name
        is_container = node.kind == CONTAINER

        if flt.name in node.name.lower() and _admitted(node, is_container, flt):
            yield SearchHit(kind=node.kind, path=path)
            produced += 1
            if produced >= limit:
                return

        if is_container:
            children = _open(node)
            if children is not None:
                stack.append((children, path))


def list_contents(root: ResourceNode) -> list[SearchHit]:
    """Immediate children of ``root`` sorted by name."""
    hits = [SearchHit(kind=node.kind, path=node.name) for node in root.entries()]
    hits.sort(key=lambda h: h.path.lower())
    return hits
