from pathlib import Path

import pytest

from mobius.access import AccessManager
from mobius.commands import CommandRegistry, load_commands
from mobius.errors import AccessCancelled, AccessDenied
from mobius.vault import LocalHandle

from conftest import COMMANDS_FILE, CountingPicker, stub_handlers


def registry_with(calls, access=None):
    return CommandRegistry.from_specs(load_commands(COMMANDS_FILE), stub_handlers(calls), access)


class TestLoadCommands:
    def test_command_table_loads(self):
        specs = load_commands(COMMANDS_FILE)
        keywords = {s.keyword for s in specs}
        assert {"date", "time", "find", "focus", "ask", "list"} <= keywords
        ask = next(s for s in specs if s.keyword == "ask")
        assert ask.is_ai and ask.handler is None

    def test_bare_set_matches_command_surface(self, registry):
        assert set(registry.bare_keywords) == {
            "date", "time", "location", "device", "access", "list", "history", "google"
        }

    def test_missing_file_gives_empty_table(self, tmp_path):
        assert load_commands(tmp_path / "nope.yml") == []

    def test_invalid_entries_are_skipped(self, tmp_path):
        f = tmp_path / "commands.yml"
        f.write_text("- keyword: date\n  handler: date\n- handler: orphan\n- just a string\n", encoding="utf-8")
        specs = load_commands(f)
        assert [s.keyword for s in specs] == ["date"]

    def test_entries_without_handler_are_dropped(self, tmp_path):
        f = tmp_path / "commands.yml"
        f.write_text("- keyword: date\n  handler: nonexistent\n", encoding="utf-8")
        registry = CommandRegistry.from_specs(load_commands(f), {})
        assert registry.get("date") is None


class TestDispatch:
    def test_unknown_keyword_is_not_handled(self, session):
        calls = []
        result = registry_with(calls).dispatch(session, "weather", "")
        assert result.handled is False
        assert calls == []

    def test_ai_keyword_is_not_dispatchable(self, session):
        calls = []
        result = registry_with(calls).dispatch(session, "ask", "groq hi")
        assert result.handled is False

    def test_plain_command_runs_handler(self, session):
        calls = []
        result = registry_with(calls).dispatch(session, "DATE", "")
        assert result.handled and result.success
        assert calls == [("date", "")]

    def test_access_denied_blocks_handler(self, session, capability_store):
        calls = []
        picker = CountingPicker(lambda hint: (_ for _ in ()).throw(AccessDenied("nope")))
        registry = registry_with(calls, AccessManager(capability_store, picker))
        result = registry.dispatch(session, "find", "report")
        assert result.handled is True
        assert result.success is False
        assert calls == []
        assert "❌ Access denied: nope" in result.reply

    def test_access_cancelled_blocks_handler(self, session, capability_store):
        calls = []
        picker = CountingPicker(lambda hint: (_ for _ in ()).throw(AccessCancelled("closed")))
        registry = registry_with(calls, AccessManager(capability_store, picker))
        result = registry.dispatch(session, "list", "")
        assert calls == []
        assert "cancelled" in result.reply

    def test_access_granted_runs_handler_after_confirmation(self, session, capability_store, vault: Path):
        calls = []
        picker = CountingPicker(lambda hint: LocalHandle(vault))
        registry = registry_with(calls, AccessManager(capability_store, picker))
        result = registry.dispatch(session, "find", "road")
        assert calls == [("find", "road")]
        assert result.messages[0] == "No folder access granted. Running Access..."
        assert result.messages[1].startswith("✅ Access granted to: vault")
        assert result.messages[-1] == "find:road"

    def test_access_required_without_manager_fails_cleanly(self, session):
        calls = []
        result = registry_with(calls).dispatch(session, "find", "x")
        assert result.handled and not result.success
        assert calls == []

    def test_commands_without_access_flag_skip_access(self, session, capability_store):
        calls = []
        picker = CountingPicker(lambda hint: pytest.fail("should not prompt"))
        registry = registry_with(calls, AccessManager(capability_store, picker))
        registry.dispatch(session, "focus", "end")
        assert picker.prompts == 0
        assert calls == [("focus", "end")]
