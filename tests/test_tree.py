"""Unit tests for the stage tree model."""

import random

import pytest

from conftest import OLD, make_task
from stagegraph.models import Stage, Status, Task
from stagegraph.recovery import DisallowedOperationError, RootStageDeletionError
from stagegraph.tree import StageTree, find_deepest, find_tree_issues, build_parent_index


def assert_is_tree(task):
    """Every non-root stage is reachable from root through exactly one parent."""
    parents = {}
    for parent_id, stage in task.stages.items():
        for child_id in stage.children:
            assert child_id not in parents, f"{child_id} has two parents"
            parents[child_id] = parent_id
    reachable = StageTree(task).reachable_ids()
    assert reachable == set(task.stages)
    assert set(parents) == set(task.stages) - {"root"}


class TestEnsureRoot:
    """Test root stage creation."""

    def test_creates_root_from_task_name(self):
        task = Task(id="t", name="Ship it")
        root = StageTree(task).ensure_root()
        assert root.id == "root"
        assert root.label == "Ship it"
        assert root.status == Status.IN_PROGRESS
        assert task.stages == {"root": root}

    def test_idempotent(self):
        task = Task(id="t", name="Ship it")
        tree = StageTree(task)
        first = tree.ensure_root()
        first.label = "Renamed"
        second = tree.ensure_root()
        assert second is first
        assert len(task.stages) == 1


class TestAddStage:
    """Test adding stages."""

    def test_add_under_root(self):
        task = make_task([])
        stage_id = StageTree(task).add_stage("root", "  Design  ")

        assert stage_id.startswith("stage_")
        stage = task.stages[stage_id]
        assert stage.label == "Design"
        assert stage.status == Status.IN_PROGRESS
        assert task.stages["root"].children == [stage_id]
        assert task.stages["root"].updated_at > OLD
        assert task.updated_at > OLD

    def test_children_keep_insertion_order(self):
        task = make_task([])
        tree = StageTree(task)
        ids = [tree.add_stage("root", name) for name in ("a", "b", "c")]
        assert task.stages["root"].children == ids

    def test_missing_parent_is_noop(self):
        task = make_task([("root", "A")])
        before = task.model_dump()
        assert StageTree(task).add_stage("nope", "Child") is None
        assert task.model_dump() == before

    def test_blank_label_is_noop(self):
        task = make_task([])
        before = task.model_dump()
        assert StageTree(task).add_stage("root", "   ") is None
        assert task.model_dump() == before

    def test_label_must_be_text(self):
        with pytest.raises(TypeError):
            StageTree(make_task([])).add_stage("root", None)


class TestRenameAndStatus:
    """Test rename_stage and change_stage_status."""

    def test_rename(self):
        task = make_task([("root", "A")])
        assert StageTree(task).rename_stage("A", " Alpha ")
        assert task.stages["A"].label == "Alpha"
        assert task.stages["A"].updated_at > OLD
        assert task.updated_at > OLD

    def test_rename_root_keeps_task_name(self):
        task = make_task([], name="Demo")
        StageTree(task).rename_stage("root", "Other")
        assert task.name == "Demo"

    def test_rename_missing_or_blank_is_noop(self):
        task = make_task([("root", "A")])
        before = task.model_dump()
        tree = StageTree(task)
        assert not tree.rename_stage("missing", "X")
        assert not tree.rename_stage("A", "  ")
        assert task.model_dump() == before

    def test_rename_label_must_be_text(self):
        task = make_task([("root", "A")])
        before = task.model_dump()
        with pytest.raises(TypeError):
            StageTree(task).rename_stage("A", None)
        assert task.model_dump() == before

    def test_status_change_does_not_cascade(self):
        task = make_task([("root", "A"), ("A", "B")])
        assert StageTree(task).change_stage_status("A", Status.COMPLETED)
        assert task.stages["A"].status == Status.COMPLETED
        assert task.stages["root"].status == Status.IN_PROGRESS
        assert task.stages["B"].status == Status.IN_PROGRESS
        assert task.stages["B"].updated_at == OLD

    def test_status_change_missing_is_noop(self):
        task = make_task([("root", "A")])
        before = task.model_dump()
        assert not StageTree(task).change_stage_status("missing", Status.FAILED)
        assert task.model_dump() == before

    def test_status_must_be_enum(self):
        with pytest.raises(TypeError):
            StageTree(make_task([("root", "A")])).change_stage_status("A", "failed")


class TestDeleteStage:
    """Test recursive deletion."""

    def test_cascade(self):
        task = make_task([("root", "A"), ("A", "A1"), ("A1", "A2"), ("A", "A3"), ("root", "B"), ("B", "B1")])
        removed = StageTree(task).delete_stage("A")

        assert removed == ["A", "A1", "A2", "A3"]
        assert set(task.stages) == {"root", "B", "B1"}
        assert task.stages["root"].children == ["B"]
        assert task.stages["root"].updated_at > OLD
        assert task.updated_at > OLD
        # Stages outside the subtree are untouched
        assert task.stages["B"].updated_at == OLD
        assert task.stages["B1"].updated_at == OLD
        assert task.stages["B"].children == ["B1"]

    def test_delete_leaf(self):
        task = make_task([("root", "A"), ("A", "B")])
        assert StageTree(task).delete_stage("B") == ["B"]
        assert task.stages["A"].children == []

    def test_root_is_protected(self):
        task = make_task([("root", "A")])
        before = task.model_dump()
        with pytest.raises(RootStageDeletionError) as exc_info:
            StageTree(task).delete_stage("root")
        assert isinstance(exc_info.value, DisallowedOperationError)
        assert exc_info.value.task_id == task.id
        assert task.model_dump() == before

    def test_missing_stage(self):
        task = make_task([("root", "A")])
        before = task.model_dump()
        assert StageTree(task).delete_stage("missing") == []
        assert task.model_dump() == before

    def test_dangling_child_reference_is_skipped(self):
        task = make_task([("root", "A")])
        task.stages["A"].children.append("ghost")
        removed = StageTree(task).delete_stage("A")
        assert removed == ["A"]
        assert set(task.stages) == {"root"}

    def test_cycle_back_to_root_does_not_delete_root(self):
        task = make_task([("root", "A"), ("A", "B")])
        task.stages["B"].children.append("root")
        removed = StageTree(task).delete_stage("A")
        assert removed == ["A", "B"]
        assert set(task.stages) == {"root"}
        assert task.stages["root"].children == []

    def test_random_operations_keep_tree_shape(self):
        """Any mix of adds and deletes leaves a well-formed tree."""
        rng = random.Random(42)
        task = make_task([])
        tree = StageTree(task)
        for step in range(300):
            ids = sorted(task.stages)
            if rng.random() < 0.65 or len(ids) == 1:
                tree.add_stage(rng.choice(ids), f"stage {step}")
            else:
                victim = rng.choice([i for i in ids if i != "root"])
                tree.delete_stage(victim)
            assert_is_tree(task)
            assert find_tree_issues(task.stages) == []


class TestFindDeepest:
    """Test depth search."""

    def test_single_deepest(self):
        task = make_task([("root", "A"), ("A", "B"), ("root", "C")])
        assert find_deepest(task.stages) == ["B"]

    def test_ties_in_preorder(self):
        task = make_task([("root", "A"), ("root", "B")])
        assert find_deepest(task.stages) == ["A", "B"]

    def test_ties_across_branches(self):
        task = make_task([("root", "A"), ("A", "A1"), ("root", "B"), ("B", "B1")])
        assert find_deepest(task.stages) == ["A1", "B1"]

    def test_root_only(self):
        assert find_deepest(make_task([]).stages) == ["root"]

    def test_no_root(self):
        assert find_deepest({}) == []
        assert find_deepest({"x": Stage(id="x", label="x")}) == []

    def test_cycle_stops_descending(self):
        task = make_task([("root", "A"), ("A", "B")])
        task.stages["B"].children.append("A")
        assert find_deepest(task.stages) == ["B"]

    def test_orphans_ignored(self):
        task = make_task([("root", "A"), ("X", "Y"), ("Y", "Z")])
        assert find_deepest(task.stages) == ["A"]

    def test_dangling_reference_ignored(self):
        task = make_task([("root", "A")])
        task.stages["A"].children.append("ghost")
        assert find_deepest(task.stages) == ["A"]

    def test_method_matches_function(self):
        task = make_task([("root", "A"), ("A", "B")])
        assert StageTree(task).find_deepest() == ["B"]


class TestQueries:
    """Test parent lookup, depth and edges."""

    def test_parent_and_depth(self):
        task = make_task([("root", "A"), ("A", "B")])
        tree = StageTree(task)
        assert tree.parent_of("B") == "A"
        assert tree.parent_of("root") is None
        assert tree.depth_of("B") == 2
        assert tree.depth_of("missing") is None

    def test_preorder_and_edges(self):
        task = make_task([("root", "A"), ("A", "B"), ("root", "C")])
        tree = StageTree(task)
        assert [sid for sid, _, _ in tree.iter_preorder()] == ["root", "A", "B", "C"]
        assert tree.edges() == {("root", "A"), ("A", "B"), ("root", "C")}

    def test_parent_index(self):
        task = make_task([("root", "A"), ("A", "B")])
        assert build_parent_index(task.stages) == {"A": "root", "B": "A"}


class TestFindTreeIssues:
    """Test integrity reporting."""

    def test_clean_tree(self):
        assert find_tree_issues(make_task([("root", "A")]).stages) == []
        assert find_tree_issues({}) == []

    def test_reports_problems(self):
        task = make_task([("root", "A"), ("root", "B"), ("X", "Y")])
        task.stages["A"].children.append("ghost")
        task.stages["B"].children.append("A")
        issues = "\n".join(find_tree_issues(task.stages))
        assert "missing child 'ghost'" in issues
        assert "stage 'A' is listed 2 times" in issues
        assert "stage 'X' is not reachable" in issues

    def test_missing_root(self):
        issues = find_tree_issues({"x": Stage(id="x", label="x")})
        assert "root stage is missing" in issues

    def test_key_mismatch(self):
        issues = find_tree_issues({"root": Stage(id="other", label="r")})
        assert "stage stored under 'root' has id 'other'" in issues
