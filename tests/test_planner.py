"""Tests for differential index planning."""

from __future__ import annotations

from notefinder.index.planner import DifferentialPlanner, compute_plan
from notefinder.models import DocumentRef, IndexedDocument
from tests.fakes import MemoryCorpus


def upstream(document_id: str, content_hash: str) -> DocumentRef:
    return DocumentRef(document_id, "u1", "/" + document_id, content_hash)


def indexed(document_id: str, content_hash: str) -> IndexedDocument:
    return IndexedDocument("u1", document_id, "/" + document_id, content_hash, 1, 10)


class TestComputePlan:
    """Tests for compute_plan."""

    def test_changed_document_is_reindexed(self) -> None:
        plan = compute_plan([upstream("A", "h2")], {"A": indexed("A", "h1")})

        assert [d.document_id for d in plan.to_index] == ["A"]
        assert plan.to_delete == []
        assert plan.to_skip == []

    def test_unchanged_document_is_skipped(self) -> None:
        plan = compute_plan([upstream("A", "h1")], {"A": indexed("A", "h1")})

        assert plan.to_index == []
        assert plan.to_delete == []
        assert [d.document_id for d in plan.to_skip] == ["A"]

    def test_vanished_document_is_deleted(self) -> None:
        plan = compute_plan([], {"A": indexed("A", "h1")})

        assert [d.document_id for d in plan.to_delete] == ["A"]
        assert plan.to_index == []

    def test_new_document_is_indexed(self) -> None:
        plan = compute_plan([upstream("B", "h1")], {})
        assert [d.document_id for d in plan.to_index] == ["B"]

    def test_force_reindexes_everything(self) -> None:
        plan = compute_plan(
            [upstream("A", "h1"), upstream("B", "h1")],
            {"A": indexed("A", "h1")},
            force=True,
        )

        assert [d.document_id for d in plan.to_index] == ["A", "B"]
        assert plan.to_skip == []

    def test_lists_are_ordered_by_document_id(self) -> None:
        plan = compute_plan(
            [upstream("c", "h"), upstream("a", "h"), upstream("b", "h")],
            {"z": indexed("z", "h"), "y": indexed("y", "h")},
        )

        assert [d.document_id for d in plan.to_index] == ["a", "b", "c"]
        assert [d.document_id for d in plan.to_delete] == ["y", "z"]

    def test_partitions_are_disjoint(self) -> None:
        plan = compute_plan(
            [upstream("keep", "h"), upstream("edit", "new"), upstream("add", "h")],
            {"keep": indexed("keep", "h"), "edit": indexed("edit", "old"), "gone": indexed("gone", "h")},
        )

        index_ids = {d.document_id for d in plan.to_index}
        skip_ids = {d.document_id for d in plan.to_skip}
        delete_ids = {d.document_id for d in plan.to_delete}
        assert index_ids == {"edit", "add"}
        assert skip_ids == {"keep"}
        assert delete_ids == {"gone"}


class TestDifferentialPlanner:
    """Tests for DifferentialPlanner against a real store."""

    def test_plans_from_registry_and_store(self, temp_store) -> None:
        corpus = MemoryCorpus()
        corpus.put("u1", "a.md", "alpha")
        corpus.put("u1", "b.md", "beta")
        current = {doc.document_id: doc for doc in corpus.list_documents("u1")}
        temp_store.replace_document("u1", current["a.md"], [], None, total_chars=5)
        temp_store.replace_document(
            "u1", DocumentRef("gone.md", "u1", "/gone", "h"), [], None, total_chars=0
        )

        plan = DifferentialPlanner(corpus, temp_store).plan("u1")

        assert [d.document_id for d in plan.to_index] == ["b.md"]
        assert [d.document_id for d in plan.to_skip] == ["a.md"]
        assert [d.document_id for d in plan.to_delete] == ["gone.md"]

    def test_other_users_are_ignored(self, temp_store) -> None:
        corpus = MemoryCorpus()
        corpus.put("u2", "a.md", "alpha")

        plan = DifferentialPlanner(corpus, temp_store).plan("u1")

        assert plan.to_index == [] and plan.to_delete == [] and plan.to_skip == []
