"""
Task collection: the ordered set of tasks owned by the application.
"""
from typing import Dict, Iterable, List, Optional, TYPE_CHECKING

from stagegraph.ids import generate_id
from stagegraph.logs import get_logger
from stagegraph.models import Status, Task, TaskSnapshot, now
from stagegraph.tree import StageTree

if TYPE_CHECKING:
    from stagegraph.data.store import TaskStore

log = get_logger("collection")

DEMO_TASK_NAME = "Example task"

# Display order of task statuses in the task list
STATUS_RANK: Dict[Status, int] = {
    Status.IN_PROGRESS: 0,
    Status.FROZEN: 1,
    Status.COMPLETED: 2,
    Status.WAITING: 3,
    Status.FAILED: 4,
}

def sort_for_display(tasks: Iterable[Task]) -> List[Task]:
    """Order tasks by status rank, then by name; stable for equal keys."""
    return sorted(tasks, key=lambda t: (STATUS_RANK.get(t.status, len(STATUS_RANK)), t.name))

class TaskCollection:
    """Owns every task of the session and triggers whole-snapshot persistence."""

    def __init__(self, store: Optional['TaskStore'] = None, tasks: Optional[List[Task]] = None):
        self.store = store
        self.tasks: List[Task] = list(tasks) if tasks else []

    def __len__(self) -> int:
        return len(self.tasks)

    def __iter__(self):
        return iter(self.tasks)

    def find_task(self, task_id: str) -> Optional[Task]:
        return next((t for t in self.tasks if t.id == task_id), None)

    def add_task(self, name: str) -> Task:
        when = now()
        task = Task(id=generate_id("task"), name=name, status=Status.IN_PROGRESS,
                    created_at=when, updated_at=when)
        self.tasks.append(task)
        log.info(f"Added task {task.id} ({name!r})")
        return task

    def edit_task(self, task_id: str, new_name: str) -> bool:
        """Rename a task and keep its root stage label in step."""
        task = self.find_task(task_id)
        if task is None:
            log.debug(f"edit_task: task '{task_id}' not found")
            return False
        when = now()
        task.name = new_name
        task.touch(when)
        root = task.root
        if root is not None:
            root.label = new_name
            root.touch(when)
        return True

    def delete_task(self, task_id: str) -> bool:
        for index, task in enumerate(self.tasks):
            if task.id == task_id:
                del self.tasks[index]
                log.info(f"Deleted task {task_id}")
                return True
        log.debug(f"delete_task: task '{task_id}' not found")
        return False

    def change_task_status(self, task_id: str, status: Status) -> bool:
        if not isinstance(status, Status):
            raise TypeError(f"Expected a Status, got {status!r}")
        task = self.find_task(task_id)
        if task is None:
            log.debug(f"change_task_status: task '{task_id}' not found")
            return False
        task.status = status
        task.touch()
        return True

    def sorted_for_display(self) -> List[Task]:
        return sort_for_display(self.tasks)

    def create_demo_task(self) -> Task:
        """Seed an empty collection with one task whose root stage already exists."""
        task = self.add_task(DEMO_TASK_NAME)
        StageTree(task).ensure_root()
        return task

    def to_snapshot(self) -> TaskSnapshot:
        return TaskSnapshot(tasks=list(self.tasks), updated_at=now())

    @classmethod
    def from_snapshot(cls, snapshot: TaskSnapshot, store: Optional['TaskStore'] = None) -> 'TaskCollection':
        return cls(store=store, tasks=snapshot.tasks)

    @property
    def load_error(self):
        """Why the last load fell back to an empty collection, or None."""
        return self.store.load_error if self.store is not None else None

    async def load(self) -> int:
        """Replace the in-memory tasks with the stored snapshot. Returns the task count."""
        if self.store is None:
            raise RuntimeError("TaskCollection has no store to load from")
        snapshot = await self.store.load()
        self.tasks = list(snapshot.tasks)
        return len(self.tasks)

    async def save(self) -> bool:
        if self.store is None:
            raise RuntimeError("TaskCollection has no store to save to")
        return await self.store.save(self.to_snapshot())
