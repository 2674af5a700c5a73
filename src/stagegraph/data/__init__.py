"""
Data management submodule: snapshot storage, file I/O and validation.
"""

from .core import DataCore
from .store import TaskStore
from .validate import snapshot_schema, validate_snapshot_data, find_snapshot_issues

__all__ = [
    'DataCore',
    'TaskStore',
    'snapshot_schema',
    'validate_snapshot_data',
    'find_snapshot_issues',
]
