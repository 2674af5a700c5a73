"""
Whole-file snapshot storage for the task collection.

Every save rewrites the complete file with the latest in-memory snapshot, so
overlapping saves resolve as last-write-wins. Loading never fails: a missing
file is an empty collection, and an unreadable or invalid one is logged,
treated as empty and protected from being overwritten by later saves.
"""
import asyncio
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from stagegraph.logs import get_logger
from stagegraph.models import TaskSnapshot
from stagegraph.recovery import StageGraphError, CorruptionError
from .io import atomic_write, read_document, data_format_for
from .validate import validate_snapshot_data, find_snapshot_issues

log = get_logger("data.store")

class TaskStore:
    """Reads and writes a TaskSnapshot as a JSON or YAML file."""

    def __init__(self, file_path: Union[Path, str]):
        self.file_path = Path(file_path)
        self.data_type = data_format_for(self.file_path)
        self.load_error: Optional[StageGraphError] = None

    def read_snapshot(self) -> TaskSnapshot:
        """
        Read and validate the data file.

        Raises:
            CorruptionError: if the file does not match the data schema
            FileOperationError: if the file cannot be read
        """
        data = read_document(self.file_path)
        if data is None:
            log.info(f"No data file at {self.file_path}, starting empty")
            return TaskSnapshot()

        errors = validate_snapshot_data(data)
        if errors:
            raise CorruptionError(f"{self.file_path} does not match the data schema: " + "; ".join(errors[:5]))
        try:
            snapshot = TaskSnapshot.from_data(data)
        except ValidationError as e:
            raise CorruptionError(f"Invalid data in {self.file_path}: {e}") from e

        for task_id, issues in find_snapshot_issues(snapshot).items():
            for issue in issues:
                log.warning(f"Task {task_id}: {issue}")
        log.info(f"Loaded {len(snapshot.tasks)} task(s) from {self.file_path}")
        return snapshot

    async def load(self) -> TaskSnapshot:
        """
        Load the stored snapshot, or an empty one on any read failure.

        A failure is kept in ``load_error`` and blocks ``save`` so the file
        that could not be read is never overwritten. A missing file is not a
        failure.
        """
        try:
            snapshot = await asyncio.to_thread(self.read_snapshot)
        except StageGraphError as e:
            log.error(f"Could not load tasks, starting with an empty collection: {e}")
            self.load_error = e
            return TaskSnapshot()
        self.load_error = None
        return snapshot

    async def save(self, snapshot: TaskSnapshot) -> bool:
        """Overwrite the data file with ``snapshot``. Returns False on failure; never retries."""
        if self.load_error is not None:
            log.error(f"Not saving over {self.file_path}, it could not be loaded: {self.load_error}")
            return False
        # Serialize on the caller's thread so later mutations cannot leak into this write
        data = snapshot.to_data()
        try:
            return await asyncio.to_thread(atomic_write, self.data_type, self.file_path, data, True)
        except StageGraphError as e:
            log.error(f"Could not save tasks to {self.file_path}: {e}")
            return False
