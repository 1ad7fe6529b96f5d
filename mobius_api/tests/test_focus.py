from __future__ import annotations

from typing import Dict, List, Optional

import pytest

from mobius.errors import DocumentStoreError
from mobius.focus import USAGE, FocusState, FocusWorkflow
from mobius.models import DocumentRef

from conftest import FIXED_NOW

WORKSPACE = "ws"


class MemoryStore:
    """Dict-backed document store; ids are "<container>/<name>"."""

    def __init__(self, docs: Optional[Dict[str, str]] = None):
        self.docs: Dict[str, str] = dict(docs or {})
        self.fail_writes = False
        self.fail_finds = False
        self.fail_reads = False
        self.writes: List[tuple] = []

    def _ref(self, doc_id: str) -> DocumentRef:
        container, _, name = doc_id.rpartition("/")
        return DocumentRef(id=doc_id, name=name, path=container or None,
                           in_workspace=container == WORKSPACE)

    def workspace_id(self) -> str:
        return WORKSPACE

    def find(self, name_query: str, container_id: Optional[str] = None) -> List[DocumentRef]:
        if self.fail_finds:
            raise DocumentStoreError("Search failed: offline")
        q = name_query.lower()
        return [
            self._ref(d) for d in sorted(self.docs)
            if q in d.rpartition("/")[2].lower()
            and (container_id is None or d.startswith(container_id + "/"))
        ]

    def read(self, doc_id: str, mime_type: str = "text/plain") -> str:
        if self.fail_reads:
            raise DocumentStoreError(f"Cannot read {doc_id}")
        return self.docs[doc_id]

    def create(self, name: str, container_id: str) -> DocumentRef:
        doc_id = f"{container_id}/{name}"
        self.docs[doc_id] = ""
        return self._ref(doc_id)

    def copy_into(self, doc_id, mime_type, name, container_id):
        content = self.read(doc_id, mime_type)
        copy_id = f"{container_id}/{name.rsplit('.', 1)[0]}.md"
        self.docs[copy_id] = content
        return self._ref(copy_id), content

    def write(self, doc_id: str, content: str) -> None:
        if self.fail_writes:
            raise DocumentStoreError("quota exceeded")
        self.writes.append((doc_id, content))
        self.docs[doc_id] = content


@pytest.fixture
def memory_store():
    return MemoryStore({
        "ws/ideas.md": "first idea",
        "docs/Plan.txt": "the plan",
        "docs/plan-b.md": "backup",
    })


@pytest.fixture
def workflow(memory_store):
    return FocusWorkflow(memory_store, clock=lambda: FIXED_NOW)


class TestFocusOn:
    def test_no_match_creates_workspace_file(self, workflow, memory_store):
        reply = workflow.handle("groceries")
        assert reply.success
        assert 'Created "groceries.md"' in reply.message
        assert memory_store.docs["ws/groceries.md"] == ""
        assert workflow.state == FocusState.FOCUSED
        assert workflow.session.original_document_id is None

    def test_created_file_has_no_original_to_update(self, workflow):
        workflow.handle("groceries")
        reply = workflow.handle("update")
        assert not reply.success
        assert reply.message == "❌ No original file to update (file was created in Mobius folder)."

    def test_workspace_document_is_read_directly(self, workflow, memory_store):
        reply = workflow.handle("ideas")
        assert "🟢 Focused on: ideas.md" in reply.message
        assert "first idea" in reply.message
        assert workflow.session.document_id == "ws/ideas.md"
        assert workflow.session.original_document_id is None
        assert memory_store.writes == []

    def test_outside_document_is_copied_in(self, workflow, memory_store):
        memory_store.docs.pop("docs/plan-b.md")
        workflow.handle("plan")
        assert workflow.session.document_id == "ws/Plan.md"
        assert workflow.session.original_document_id == "docs/Plan.txt"
        assert memory_store.docs["ws/Plan.md"] == "the plan"

    def test_workspace_match_shadows_outside_matches(self, workflow, memory_store):
        memory_store.docs["ws/plan-notes.md"] = "local"
        workflow.handle("plan")
        assert workflow.session.document_id == "ws/plan-notes.md"

    def test_multiple_matches_wait_for_selection(self, workflow):
        reply = workflow.handle("plan")
        assert reply.message.startswith("📋 Found 2 files. Select one:")
        assert [c.id for c in reply.candidates] == ["docs/Plan.txt", "docs/plan-b.md"]
        assert reply.container_id == WORKSPACE
        assert workflow.state == FocusState.PENDING_SELECTION
        assert workflow.session is None

    def test_select_completes_pending_search(self, workflow):
        reply = workflow.handle("plan")
        workflow.select(reply.candidates[1].id)
        assert workflow.state == FocusState.FOCUSED
        assert workflow.session.original_document_id == "docs/plan-b.md"
        assert workflow.pending == []

    def test_selected_outside_document_is_copied_not_edited_in_place(self, workflow, memory_store):
        workflow.handle("plan")
        workflow.select("docs/Plan.txt")
        workflow.handle("add from the copy")
        assert workflow.session.document_id == "ws/Plan.md"
        assert memory_store.docs["docs/Plan.txt"] == "the plan"

    def test_select_rejects_id_not_offered(self, workflow, memory_store):
        memory_store.docs["secret/keys.txt"] = "hunter2"
        workflow.handle("plan")
        reply = workflow.select("secret/keys.txt")
        assert not reply.success
        assert reply.message == "❌ That file was not offered by the last search."
        assert workflow.state == FocusState.PENDING_SELECTION
        assert memory_store.writes == []

    def test_select_without_pending_search(self, workflow):
        reply = workflow.select("docs/Plan.txt")
        assert not reply.success
        assert workflow.state == FocusState.UNFOCUSED

    def test_failed_search_keeps_current_focus(self, workflow, memory_store):
        workflow.handle("ideas")
        memory_store.fail_finds = True
        reply = workflow.handle("plan")
        assert not reply.success
        assert workflow.session.document_id == "ws/ideas.md"

    def test_failed_read_keeps_current_focus(self, workflow, memory_store):
        workflow.handle("groceries")
        memory_store.fail_reads = True
        reply = workflow.handle("ideas")
        assert reply.message.startswith("❌ Read failed:")
        assert workflow.session.document_id == "ws/groceries.md"

    def test_empty_args_show_usage(self, workflow):
        reply = workflow.handle("   ")
        assert reply.message == USAGE
        assert workflow.state == FocusState.UNFOCUSED


class TestAdd:
    def test_appends_timestamped_entry(self, workflow, memory_store):
        workflow.handle("ideas")
        reply = workflow.handle("add second idea")
        expected = "first idea\n\n[18/10/2026, 3:30:00 pm]\nsecond idea"
        assert reply.message == '✅ Saved to "ideas.md".'
        assert memory_store.docs["ws/ideas.md"] == expected
        assert workflow.session.content == expected

    def test_first_entry_in_empty_file_has_no_leading_blank(self, workflow, memory_store):
        workflow.handle("groceries")
        workflow.handle("add milk")
        assert memory_store.docs["ws/groceries.md"] == "[18/10/2026, 3:30:00 pm]\nmilk"

    def test_failed_save_leaves_memory_unchanged(self, workflow, memory_store):
        workflow.handle("ideas")
        memory_store.fail_writes = True
        reply = workflow.handle("add lost thought")
        assert not reply.success
        assert reply.message == "❌ Save failed: quota exceeded"
        assert workflow.session.content == "first idea"

    def test_add_without_focus(self, workflow):
        reply = workflow.handle("add something")
        assert not reply.success
        assert reply.message.startswith("❌ No file in focus.")

    def test_add_is_only_a_whole_word(self, workflow, memory_store):
        memory_store.docs["ws/addendum.md"] = "appendix"
        workflow.handle("addendum")
        assert workflow.session.document_id == "ws/addendum.md"


class TestUpdateAndEnd:
    def test_update_writes_copy_back_to_original(self, workflow, memory_store):
        memory_store.docs.pop("docs/plan-b.md")
        workflow.handle("plan")
        workflow.handle("add revised")
        reply = workflow.handle("update")
        assert reply.message == "✅ Original file updated successfully."
        assert memory_store.docs["docs/Plan.txt"] == workflow.session.content

    def test_update_failure_is_reported(self, workflow, memory_store):
        memory_store.docs.pop("docs/plan-b.md")
        workflow.handle("plan")
        memory_store.fail_writes = True
        reply = workflow.handle("update")
        assert reply.message == "❌ Update failed: quota exceeded"
        assert workflow.state == FocusState.FOCUSED

    def test_update_without_focus(self, workflow):
        assert workflow.handle("update").message == "❌ No file in focus."

    def test_end_detaches(self, workflow):
        workflow.handle("ideas")
        reply = workflow.handle("END")
        assert reply.message.startswith("🔴 Focus ended.")
        assert workflow.state == FocusState.UNFOCUSED
        assert workflow.attachment() is None

    def test_attachment_format(self, workflow):
        workflow.handle("ideas")
        assert workflow.attachment() == "[File: ideas.md]\nfirst idea"


class TestVaultBackend:
    def test_copy_and_write_back_on_disk(self, session, vault):
        focus = session.focus
        focus.handle("notes")
        assert focus.session.document_id == "Mobius/notes.md"
        assert focus.session.original_document_id == "Projects/notes.txt"

        focus.handle("add follow up")
        focus.handle("update")

        original = (vault / "Projects" / "notes.txt").read_text(encoding="utf-8")
        assert original == "project notes\n\n[18/10/2026, 3:30:00 pm]\nfollow up"

    def test_copy_never_replaces_existing_workspace_file(self, session, vault):
        (vault / "Mobius" / "notes.md").write_text("weeks of entries", encoding="utf-8")
        focus = session.focus
        reply = focus.handle("notes.txt")
        assert reply.success
        assert focus.session.document_id == "Mobius/notes (1).md"
        assert focus.session.original_document_id == "Projects/notes.txt"
        assert (vault / "Mobius" / "notes.md").read_text(encoding="utf-8") == "weeks of entries"
        assert (vault / "Mobius" / "notes (1).md").read_text(encoding="utf-8") == "project notes"

    def test_binary_document_is_not_copied(self, session, vault):
        (vault / "Projects" / "scan.pdf").write_bytes(b"%PDF-1.4\x00\xff\xfe")
        focus = session.focus
        reply = focus.handle("scan")
        assert not reply.success
        assert reply.message == "❌ Copy failed: scan.pdf is not a text document"
        assert not (vault / "Mobius" / "scan.md").exists()
        assert focus.session is None

    def test_write_refuses_binary_document(self, store, vault):
        pdf = vault / "Projects" / "scan.pdf"
        pdf.write_bytes(b"%PDF-1.4\x00\xff\xfe")
        with pytest.raises(DocumentStoreError):
            store.write("Projects/scan.pdf", "text")
        assert pdf.read_bytes() == b"%PDF-1.4\x00\xff\xfe"

    def test_read_refuses_undecodable_text(self, store, vault):
        (vault / "Projects" / "latin.txt").write_bytes(b"caf\xe9 \xff")
        with pytest.raises(DocumentStoreError, match="not UTF-8"):
            store.read("Projects/latin.txt")
