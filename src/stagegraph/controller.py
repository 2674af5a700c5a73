"""
Application controller.

Turns user intents into task collection and stage tree mutations, then saves
the collection and patches the open graph view. Messages for the user go
through the ``notify`` callback as ``(level, message)`` pairs.

Save policy: a failed save never rolls back the in-memory change. The
controller records ``last_save_failed``, emits a warning and the next
successful save writes the full, current collection.
"""
import logging
from typing import Callable, List, Optional

from stagegraph.collection import TaskCollection
from stagegraph.graph import GraphView
from stagegraph.license import LicenseGate, LicenseMonitor
from stagegraph.logs import get_logger
from stagegraph.models import Status, Task, ROOT_STAGE_ID
from stagegraph.recovery import InvalidLicenseError, DisallowedOperationError
from stagegraph.tree import StageTree

log = get_logger("controller")

Notifier = Callable[[str, str], None]

NOTICE_LEVELS = {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}

LICENSE_MESSAGE = "License not found or invalid. Make sure the LICENSE file is present."

def log_notice(level: str, message: str):
    log.log(NOTICE_LEVELS.get(level, logging.INFO), message)

class AppController:
    def __init__(self, collection: TaskCollection, view: GraphView, gate: LicenseGate,
                 notify: Optional[Notifier] = None):
        self.collection = collection
        self.view = view
        self.gate = gate
        self.notify = notify or log_notice
        self.current_task_id: Optional[str] = None
        self.blocked = False
        self.last_save_failed = False
        self.monitor: Optional[LicenseMonitor] = None

    # -------------------- lifecycle --------------------
    async def start(self) -> int:
        """
        Check the license, load the collection and seed it when there is no data yet.

        A data file that exists but cannot be loaded is reported and left
        alone: no demo task is seeded and nothing is saved over it.

        Returns:
            Number of tasks in the collection

        Raises:
            InvalidLicenseError: if the license is not valid; nothing is loaded
        """
        self._require_license("load tasks")
        count = await self.collection.load()
        if self.collection.load_error is not None:
            self.notify("error", f"Tasks could not be loaded and the data file was left unchanged: "
                                 f"{self.collection.load_error}")
        elif count == 0:
            self.collection.create_demo_task()
            await self.save()
        return len(self.collection)

    def start_monitoring(self, interval: float = 30.0):
        """Watch the license in the background; must run inside the event loop."""
        if self.monitor is None:
            self.monitor = LicenseMonitor(self.gate, self.on_license_invalid, interval)
        self.monitor.start()

    async def shutdown(self):
        if self.monitor is not None:
            await self.monitor.stop()
        self.close_task()

    def on_license_invalid(self):
        """Enter the blocked state; the open graph is torn down."""
        self.blocked = True
        self.close_task()
        self.notify("error", LICENSE_MESSAGE)

    def _require_license(self, action: str):
        if not self.gate.check_valid():
            self.blocked = True
            self.notify("error", LICENSE_MESSAGE)
            raise InvalidLicenseError(f"Cannot {action}: license is not valid")
        self.blocked = False

    def _clean(self, value: Optional[str], what: str) -> Optional[str]:
        cleaned = (value or "").strip()
        if not cleaned:
            self.notify("warning", f"{what} cannot be empty")
            return None
        return cleaned

    async def save(self) -> bool:
        """Persist the whole collection. Returns False if it was not written."""
        if not self.gate.check_valid():
            self.blocked = True
            self.last_save_failed = True
            self.notify("error", LICENSE_MESSAGE)
            return False
        saved = await self.collection.save()
        if saved:
            self.last_save_failed = False
        else:
            self.last_save_failed = True
            self.notify("warning", "Changes could not be saved. They are kept in memory "
                                   "and will be written by the next successful save.")
        return saved

    # -------------------- tasks --------------------
    @property
    def current_task(self) -> Optional[Task]:
        if self.current_task_id is None:
            return None
        return self.collection.find_task(self.current_task_id)

    def sorted_tasks(self) -> List[Task]:
        return self.collection.sorted_for_display()

    async def add_task(self, name: str) -> Optional[Task]:
        name = self._clean(name, "Task name")
        if name is None:
            return None
        self._require_license("add a task")
        task = self.collection.add_task(name)
        await self.save()
        return task

    async def edit_task(self, task_id: str, new_name: str) -> bool:
        new_name = self._clean(new_name, "Task name")
        if new_name is None:
            return False
        self._require_license("rename a task")
        if not self.collection.edit_task(task_id, new_name):
            self.notify("warning", f"Task {task_id} not found")
            return False
        if self.current_task_id == task_id:
            self.view.patch_update(ROOT_STAGE_ID, label=new_name)
        await self.save()
        return True

    async def delete_task(self, task_id: str) -> bool:
        self._require_license("delete a task")
        if self.current_task_id == task_id:
            self.close_task()
        if not self.collection.delete_task(task_id):
            self.notify("warning", f"Task {task_id} not found")
            return False
        await self.save()
        return True

    async def change_task_status(self, task_id: str, status: Status) -> bool:
        self._require_license("change a task status")
        if not self.collection.change_task_status(task_id, status):
            self.notify("warning", f"Task {task_id} not found")
            return False
        await self.save()
        return True

    # -------------------- graph view --------------------
    async def open_task(self, task_id: str) -> bool:
        """Show a task's stage graph, focused on its deepest stage."""
        self._require_license("open the task graph")
        task = self.collection.find_task(task_id)
        if task is None:
            log.error(f"Task not found: {task_id}")
            self.notify("warning", f"Task {task_id} not found")
            return False
        await self.view.materialize(task)
        self.view.focus_deepest()
        self.current_task_id = task_id
        return True

    def close_task(self):
        self.view.destroy()
        self.current_task_id = None

    def _open_tree(self) -> Optional[StageTree]:
        task = self.current_task
        if task is None:
            self.notify("warning", "No task is open")
            return None
        return StageTree(task)

    # -------------------- stages --------------------
    async def add_stage(self, parent_id: str, label: str) -> Optional[str]:
        label = self._clean(label, "Stage name")
        if label is None:
            return None
        tree = self._open_tree()
        if tree is None:
            return None
        self._require_license("add a stage")
        # Stages not reachable from the root are not shown and cannot take children
        if parent_id not in self.view.nodes:
            self.notify("warning", f"Stage {parent_id} not found")
            return None
        stage_id = tree.add_stage(parent_id, label)
        if stage_id is None:
            self.notify("warning", f"Stage {parent_id} not found")
            return None
        await self.view.patch_add(tree.get(stage_id), parent_id)
        await self.save()
        return stage_id

    async def rename_stage(self, stage_id: str, label: str) -> bool:
        label = self._clean(label, "Stage name")
        if label is None:
            return False
        tree = self._open_tree()
        if tree is None:
            return False
        self._require_license("rename a stage")
        if not tree.rename_stage(stage_id, label):
            self.notify("warning", f"Stage {stage_id} not found")
            return False
        self.view.patch_update(stage_id, label=label)
        await self.save()
        return True

    async def change_stage_status(self, stage_id: str, status: Status) -> bool:
        tree = self._open_tree()
        if tree is None:
            return False
        self._require_license("change a stage status")
        if not tree.change_stage_status(stage_id, status):
            self.notify("warning", f"Stage {stage_id} not found")
            return False
        self.view.patch_update(stage_id, status=status)
        await self.save()
        return True

    async def delete_stage(self, stage_id: str) -> List[str]:
        """
        Delete a stage and its subtree.

        Raises:
            RootStageDeletionError: for the root stage, after notifying the user
        """
        tree = self._open_tree()
        if tree is None:
            return []
        self._require_license("delete a stage")
        try:
            removed = tree.delete_stage(stage_id)
        except DisallowedOperationError as e:
            self.notify("error", str(e))
            raise
        if not removed:
            self.notify("warning", f"Stage {stage_id} not found")
            return []
        await self.view.patch_remove(stage_id)
        await self.save()
        return removed
