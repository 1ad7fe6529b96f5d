from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional

import pytest

from mobius.access import AccessManager, CapabilityStore, PathPicker
from mobius.commands import CommandRegistry, CommandResult, load_commands
from mobius.config import Settings
from mobius.errors import ProviderError
from mobius.focus import FocusWorkflow
from mobius.search import CONTAINER, LEAF
from mobius.session import SessionContext
from mobius.vault import VaultDocumentStore

COMMANDS_FILE = Path(__file__).parent.parent / "commands.yml"

FIXED_NOW = datetime(2026, 10, 18, 15, 30, 0)


class FakeNode:
    """In-memory tree node; counts how often it is listed or stat'ed."""

    def __init__(self, name: str, children: Optional[list] = None,
                 modified: Optional[datetime] = None, unreadable: bool = False,
                 stat_error: bool = False, kind: Optional[str] = None):
        self.name = name
        self.kind = kind or (CONTAINER if children is not None else LEAF)
        self.children = children or []
        self._modified = modified or FIXED_NOW
        self.unreadable = unreadable
        self.stat_error = stat_error
        self.yielded = 0
        self.opened = 0

    def entries(self) -> Iterable["FakeNode"]:
        self.opened += 1
        if self.unreadable:
            raise PermissionError(13, "Permission denied", self.name)
        for child in self.children:
            self.yielded += 1
            yield child

    def modified(self) -> datetime:
        if self.stat_error:
            raise OSError(5, "I/O error", self.name)
        return self._modified


class FakeProvider:
    def __init__(self, name: str, reply: str = "ok", error: Optional[Exception] = None,
                 vision: bool = False):
        self.name = name
        self.reply = reply
        self.error = error
        self.vision = vision
        self.calls: list = []

    def complete(self, messages, image_parts=None) -> str:
        self.calls.append((messages, image_parts))
        if self.error is not None:
            raise self.error
        return self.reply


def failing(name: str, message: str = "quota exceeded") -> FakeProvider:
    return FakeProvider(name, error=ProviderError(name, message))


class CountingPicker:
    """Folder picker that records prompts and returns a fixed outcome."""

    def __init__(self, outcome: Callable[[str], object]):
        self.outcome = outcome
        self.prompts = 0

    def pick(self, hint: str = ""):
        self.prompts += 1
        return self.outcome(hint)


def stub_handlers(calls: list) -> dict:
    def make(name):
        def handler(session, args):
            calls.append((name, args))
            return CommandResult.ok(f"{name}:{args}")
        return handler
    names = ["date", "time", "location", "device", "google", "access", "find", "list", "history", "focus"]
    return {n: make(n) for n in names}


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    (root / "Projects").mkdir(parents=True)
    (root / "Projects" / "roadmap.md").write_text("# Roadmap\n\n- ship it\n", encoding="utf-8")
    (root / "Projects" / "notes.txt").write_text("project notes", encoding="utf-8")
    (root / "journal.md").write_text("Dear diary", encoding="utf-8")
    (root / "Mobius").mkdir()
    (root / "Mobius" / "scratch.md").write_text("scratch pad", encoding="utf-8")
    return root


@pytest.fixture
def store(vault: Path) -> VaultDocumentStore:
    return VaultDocumentStore(vault, "Mobius")


@pytest.fixture
def session(store: VaultDocumentStore) -> SessionContext:
    return SessionContext(session_id="test-session", focus=FocusWorkflow(store, clock=lambda: FIXED_NOW),
                          user_id="alice")


@pytest.fixture
def capability_store(tmp_path: Path) -> CapabilityStore:
    return CapabilityStore(tmp_path / "state" / "handles.json")


@pytest.fixture
def access_manager(capability_store: CapabilityStore, vault: Path) -> AccessManager:
    return AccessManager(capability_store, PathPicker(str(vault)))


@pytest.fixture
def registry() -> CommandRegistry:
    return CommandRegistry.from_specs(load_commands(COMMANDS_FILE), stub_handlers([]))


@pytest.fixture
def settings_for(tmp_path: Path):
    def make(vault: Path, **overrides) -> Settings:
        values = dict(
            api_key="",
            vault_root=str(vault),
            workspace_folder="Mobius",
            access_root=str(vault),
            capability_store=str(tmp_path / "state" / "handles.json"),
            commands_file=str(COMMANDS_FILE),
            provider_chain=["groq", "gemini", "mistral"],
            default_provider="groq",
        )
        values.update(overrides)
        return Settings(**values)
    return make
