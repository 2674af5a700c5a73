"""
stagegraph - track the stages of a task as a navigable tree.

Each task owns a tree of stages rooted at its ``root`` stage. The tree is kept
as a flat ID-keyed map and mirrored into an incrementally patched graph view.
"""

from .version import VERSION, APP_SCHEMA_VERSION
from .models import (
    Status,
    Stage,
    Task,
    TaskSnapshot,
    status_text,
    status_colors,
)
from .tree import StageTree, find_deepest
from .collection import TaskCollection, sort_for_display
from .graph import GraphView, HierarchicalLayoutEngine, LayoutEngine, Viewport
from .controller import AppController
from .data import DataCore

__version__ = VERSION

__all__ = [
    "VERSION",
    "APP_SCHEMA_VERSION",
    "Status",
    "Stage",
    "Task",
    "TaskSnapshot",
    "status_text",
    "status_colors",
    "StageTree",
    "find_deepest",
    "TaskCollection",
    "sort_for_display",
    "GraphView",
    "HierarchicalLayoutEngine",
    "LayoutEngine",
    "Viewport",
    "AppController",
    "DataCore",
]
