"""
Stage tree model.

A task's stages are a flat ``{stage_id: Stage}`` map; the tree structure lives
only in each stage's ``children`` list, rooted at the stage with id ``root``.
There are no back-pointers: parents are found through an index rebuilt from
the ``children`` lists whenever it is needed.

Traversals are iterative with an explicit stack and a seen-set. A stage seen
twice stops that branch instead of failing, and child IDs that have no stage
in the map are skipped, so corrupted data can still be walked and cleaned.
"""
from typing import Dict, Iterator, List, Mapping, Optional, Set, Tuple, Iterable

from stagegraph.ids import generate_id
from stagegraph.logs import get_logger
from stagegraph.models import Stage, Status, Task, ROOT_STAGE_ID, now
from stagegraph.recovery import RootStageDeletionError

log = get_logger("tree")

def walk_preorder(stages: Mapping[str, Stage], start: str = ROOT_STAGE_ID,
                  exclude: Iterable[str] = ()) -> Iterator[Tuple[str, Optional[str], int]]:
    """
    Yield ``(stage_id, parent_id, depth)`` in pre-order, children in list order.

    Args:
        stages: The task's stage map
        start: Stage to start from (depth 0)
        exclude: IDs that are neither yielded nor descended into
    """
    seen: Set[str] = set(exclude)
    stack: List[Tuple[str, Optional[str], int]] = [(start, None, 0)]
    while stack:
        stage_id, parent_id, depth = stack.pop()
        if stage_id in seen:
            continue
        stage = stages.get(stage_id)
        if stage is None:
            continue
        seen.add(stage_id)
        yield stage_id, parent_id, depth
        for child_id in reversed(stage.children):
            stack.append((child_id, stage_id, depth + 1))

def find_deepest(stages: Mapping[str, Stage]) -> List[str]:
    """
    Find every stage at the maximum depth below the root.

    Depth of the root is 0. Ties are returned in pre-order. Stages that cannot
    be reached from the root are ignored; a map without a root gives ``[]``.
    """
    max_depth = -1
    deepest: List[str] = []
    for stage_id, _, depth in walk_preorder(stages):
        if depth > max_depth:
            max_depth = depth
            deepest = [stage_id]
        elif depth == max_depth:
            deepest.append(stage_id)
    return deepest

def build_parent_index(stages: Mapping[str, Stage]) -> Dict[str, str]:
    """Map each child ID to the first stage listing it in ``children``."""
    index: Dict[str, str] = {}
    for parent_id, stage in stages.items():
        for child_id in stage.children:
            index.setdefault(child_id, parent_id)
    return index

def find_tree_issues(stages: Mapping[str, Stage]) -> List[str]:
    """
    Report structural problems in a stage map.

    Returns a list of human readable messages, empty when the map is a
    well-formed tree rooted at ``root``.
    """
    issues: List[str] = []
    if not stages:
        return issues
    if ROOT_STAGE_ID not in stages:
        issues.append("root stage is missing")

    for key, stage in stages.items():
        if stage.id != key:
            issues.append(f"stage stored under '{key}' has id '{stage.id}'")

    parents: Dict[str, List[str]] = {}
    for parent_id, stage in stages.items():
        for child_id in stage.children:
            parents.setdefault(child_id, []).append(parent_id)
            if child_id not in stages:
                issues.append(f"stage '{parent_id}' references missing child '{child_id}'")

    if ROOT_STAGE_ID in parents:
        issues.append(f"root stage is listed as a child of {', '.join(parents[ROOT_STAGE_ID])}")
    for child_id, parent_ids in parents.items():
        if child_id != ROOT_STAGE_ID and len(parent_ids) > 1:
            issues.append(f"stage '{child_id}' is listed {len(parent_ids)} times (by {', '.join(parent_ids)})")

    reachable = {stage_id for stage_id, _, _ in walk_preorder(stages)}
    for stage_id in stages:
        if stage_id not in reachable and ROOT_STAGE_ID in stages:
            issues.append(f"stage '{stage_id}' is not reachable from the root")
    return issues

class StageTree:
    """
    Mutation protocol for one task's stage map.

    Lookups of unknown IDs are not errors: mutators return ``None``, ``False``
    or an empty list and leave the map untouched. The only reported refusal is
    deleting the root stage.
    """

    def __init__(self, task: Task):
        self.task = task

    @property
    def stages(self) -> Dict[str, Stage]:
        return self.task.stages

    def get(self, stage_id: str) -> Optional[Stage]:
        return self.task.stages.get(stage_id)

    def ensure_root(self) -> Stage:
        """Create the root stage, labelled with the task name, if it does not exist."""
        root = self.task.stages.get(ROOT_STAGE_ID)
        if root is None:
            root = Stage(id=ROOT_STAGE_ID, label=self.task.name, status=Status.IN_PROGRESS)
            self.task.stages[ROOT_STAGE_ID] = root
            log.debug(f"Created root stage for task {self.task.id}")
        return root

    def add_stage(self, parent_id: str, label: str) -> Optional[str]:
        """
        Append a new in-progress stage under ``parent_id``.

        Returns:
            The new stage ID, or None when the parent does not exist or the
            label is blank
        """
        if not isinstance(label, str):
            raise TypeError(f"Stage label must be a string, got {type(label).__name__}")
        parent = self.task.stages.get(parent_id)
        if parent is None:
            log.debug(f"add_stage: parent '{parent_id}' not found in task {self.task.id}")
            return None
        label = label.strip()
        if not label:
            log.debug("add_stage: blank label ignored")
            return None

        when = now()
        stage_id = generate_id("stage")
        self.task.stages[stage_id] = Stage(
            id=stage_id, label=label, status=Status.IN_PROGRESS, created_at=when, updated_at=when
        )
        parent.children.append(stage_id)
        parent.touch(when)
        self.task.touch(when)
        log.info(f"Added stage {stage_id} under {parent_id} in task {self.task.id}")
        return stage_id

    def rename_stage(self, stage_id: str, new_label: str) -> bool:
        if not isinstance(new_label, str):
            raise TypeError(f"Stage label must be a string, got {type(new_label).__name__}")
        stage = self.task.stages.get(stage_id)
        if stage is None:
            log.debug(f"rename_stage: stage '{stage_id}' not found in task {self.task.id}")
            return False
        new_label = new_label.strip()
        if not new_label:
            return False

        when = now()
        stage.label = new_label
        stage.touch(when)
        self.task.touch(when)
        return True

    def change_stage_status(self, stage_id: str, status: Status) -> bool:
        """Set one stage's status. Parents and children keep theirs."""
        if not isinstance(status, Status):
            raise TypeError(f"Expected a Status, got {status!r}")
        stage = self.task.stages.get(stage_id)
        if stage is None:
            log.debug(f"change_stage_status: stage '{stage_id}' not found in task {self.task.id}")
            return False

        when = now()
        stage.status = status
        stage.touch(when)
        self.task.touch(when)
        return True

    def delete_stage(self, stage_id: str) -> List[str]:
        """
        Delete a stage together with its whole subtree.

        Returns:
            IDs of the removed stages in pre-order, empty if the stage does not exist

        Raises:
            RootStageDeletionError: if ``stage_id`` is the root stage
        """
        if stage_id == ROOT_STAGE_ID:
            log.warning(f"Refused to delete the root stage of task {self.task.id}")
            raise RootStageDeletionError(self.task.id)
        stages = self.task.stages
        if stage_id not in stages:
            log.debug(f"delete_stage: stage '{stage_id}' not found in task {self.task.id}")
            return []

        doomed = [sid for sid, _, _ in walk_preorder(stages, start=stage_id, exclude=(ROOT_STAGE_ID,))]
        doomed_set = set(doomed)

        when = now()
        parent_id = build_parent_index(stages).get(stage_id)
        if parent_id is not None and parent_id not in doomed_set:
            stages[parent_id].touch(when)

        # Only the parent references the subtree root in a well-formed tree;
        # stray references elsewhere are dropped without touching those stages
        for sid, stage in stages.items():
            if sid in doomed_set:
                continue
            if any(child_id in doomed_set for child_id in stage.children):
                stage.children = [c for c in stage.children if c not in doomed_set]

        for sid in doomed:
            del stages[sid]
        self.task.touch(when)
        log.info(f"Deleted {len(doomed)} stage(s) from task {self.task.id}, starting at {stage_id}")
        return doomed

    def parent_of(self, stage_id: str) -> Optional[str]:
        return build_parent_index(self.task.stages).get(stage_id)

    def depth_of(self, stage_id: str) -> Optional[int]:
        """Depth below the root, or None when the stage is not reachable."""
        for sid, _, depth in walk_preorder(self.task.stages):
            if sid == stage_id:
                return depth
        return None

    def iter_preorder(self) -> Iterator[Tuple[str, Optional[str], int]]:
        return walk_preorder(self.task.stages)

    def reachable_ids(self) -> Set[str]:
        return {sid for sid, _, _ in walk_preorder(self.task.stages)}

    def edges(self) -> Set[Tuple[str, str]]:
        """Parent to child pairs along the root-reachable tree."""
        return {(parent_id, sid) for sid, parent_id, _ in walk_preorder(self.task.stages)
                if parent_id is not None}

    def find_deepest(self) -> List[str]:
        return find_deepest(self.task.stages)
