"""
Graph view of a task's stage tree.

``GraphView`` mirrors one task's stages as nodes and ``parent -> child`` edges
and forwards every change to a ``LayoutEngine``. Single-stage edits are
applied as patches; the camera (viewport) the user has set is captured before
each patch and put back once the engine reports that its layout pass is done.

View states::

    EMPTY --materialize--> MATERIALIZED --patch_*--> MATERIALIZED --destroy--> EMPTY
"""
import abc
import asyncio
from enum import Enum
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Set, Any

from pydantic import BaseModel, Field

from stagegraph.logs import get_logger
from stagegraph.models import Stage, Status, Task, status_colors
from stagegraph.recovery import ViewStateError
from stagegraph.tree import StageTree, find_deepest

log = get_logger("graph")

LABEL_WIDTH = 18

# Hierarchical layout, top-down
LEVEL_SEPARATION = 200.0
NODE_SPACING = 180.0
TREE_SPACING = 300.0
NODE_WIDTH = 220.0
NODE_HEIGHT = 60.0

class Viewport(NamedTuple):
    x: float
    y: float
    scale: float

class Point(NamedTuple):
    x: float
    y: float

class Edge(NamedTuple):
    source: str
    target: str

class GraphNode(BaseModel):
    """Visual attributes of one stage."""

    id: str
    label: str = ""
    color: Dict[str, Any] = Field(default_factory=dict)

def wrap_text(text: Optional[str], max_length: int = LABEL_WIDTH) -> str:
    """
    Break a label into lines of at most ``max_length`` characters.

    Lines break between words; a word longer than a line is cut into pieces
    that end with a hyphen.
    """
    if not text or len(text) <= max_length:
        return text or ''

    lines: List[str] = []
    current = ''
    chunk_size = max(max_length - 2, 1)
    for word in text.split(' '):
        if len(word) > max_length:
            if current:
                lines.append(current)
                current = ''
            chunks = [word[i:i + chunk_size] for i in range(0, len(word), chunk_size)]
            lines.extend(chunk + '-' for chunk in chunks[:-1])
            current = chunks[-1]
        else:
            candidate = f"{current} {word}" if current else word
            if len(candidate) <= max_length:
                current = candidate
            else:
                if current:
                    lines.append(current)
                current = word
    if current:
        lines.append(current)
    return '\n'.join(lines)

def node_color(status: Status) -> Dict[str, Any]:
    colors = status_colors(status)
    return {
        'background': colors.fill,
        'border': colors.border,
        'highlight': {'background': colors.highlight, 'border': colors.border},
        'hover': {'background': colors.highlight, 'border': colors.border},
    }

def node_for(stage: Stage) -> GraphNode:
    return GraphNode(id=stage.id, label=wrap_text(stage.label), color=node_color(stage.status))

class LayoutEngine(abc.ABC):
    """
    A graph layout/render capability.

    Structural changes are applied immediately; positions are recomputed by
    ``layout()``, whose completion is the signal that the viewport may be
    restored.
    """

    @abc.abstractmethod
    def add_nodes(self, nodes: Iterable[GraphNode]):
        pass

    @abc.abstractmethod
    def update_node(self, node: GraphNode):
        pass

    @abc.abstractmethod
    def remove_nodes(self, node_ids: Iterable[str]):
        pass

    @abc.abstractmethod
    def add_edges(self, edges: Iterable[Edge]):
        pass

    @abc.abstractmethod
    def remove_edges(self, edges: Iterable[Edge]):
        pass

    @abc.abstractmethod
    def get_viewport(self) -> Viewport:
        pass

    @abc.abstractmethod
    def move_to(self, viewport: Viewport):
        pass

    @abc.abstractmethod
    def fit(self):
        """Move the camera so every node is visible."""
        pass

    @abc.abstractmethod
    def focus(self, node_id: str, scale: float = 1.0):
        """Centre the camera on one node."""
        pass

    @abc.abstractmethod
    async def layout(self):
        """Recompute node positions; returns once the new layout is in place."""
        pass

    @abc.abstractmethod
    def destroy(self):
        pass

class HierarchicalLayoutEngine(LayoutEngine):
    """
    In-process top-down tree layout.

    Leaves take consecutive slots ``NODE_SPACING`` apart, parents are centred
    over their first and last child, and every tier is ``LEVEL_SEPARATION``
    below its parent. Like interactive graph widgets, a layout pass re-fits the
    camera unless ``fit_on_layout`` is disabled.
    """

    def __init__(self, width: float = 1200.0, height: float = 800.0, fit_on_layout: bool = True):
        self.width = width
        self.height = height
        self.fit_on_layout = fit_on_layout
        self.nodes: Dict[str, GraphNode] = {}
        self.edges: Dict[Edge, None] = {}
        self.positions: Dict[str, Point] = {}
        self.viewport = Viewport(0.0, 0.0, 1.0)
        self.layout_passes = 0
        self.destroyed = False

    def _check_alive(self):
        if self.destroyed:
            raise ViewStateError("Layout engine has been destroyed")

    def add_nodes(self, nodes: Iterable[GraphNode]):
        self._check_alive()
        for node in nodes:
            self.nodes[node.id] = node

    def update_node(self, node: GraphNode):
        self._check_alive()
        if node.id not in self.nodes:
            raise KeyError(node.id)
        self.nodes[node.id] = node

    def remove_nodes(self, node_ids: Iterable[str]):
        self._check_alive()
        for node_id in node_ids:
            self.nodes.pop(node_id, None)
            self.positions.pop(node_id, None)

    def add_edges(self, edges: Iterable[Edge]):
        self._check_alive()
        for edge in edges:
            self.edges[edge] = None

    def remove_edges(self, edges: Iterable[Edge]):
        self._check_alive()
        for edge in edges:
            self.edges.pop(edge, None)

    def get_viewport(self) -> Viewport:
        return self.viewport

    def move_to(self, viewport: Viewport):
        self._check_alive()
        self.viewport = Viewport(*viewport)

    def fit(self):
        self._check_alive()
        self._ensure_positions()
        if not self.positions:
            self.viewport = Viewport(0.0, 0.0, 1.0)
            return
        xs = [p.x for p in self.positions.values()]
        ys = [p.y for p in self.positions.values()]
        span_x = max(xs) - min(xs) + NODE_WIDTH
        span_y = max(ys) - min(ys) + NODE_HEIGHT
        scale = min(self.width / span_x, self.height / span_y, 1.0)
        self.viewport = Viewport((max(xs) + min(xs)) / 2, (max(ys) + min(ys)) / 2, scale)

    def focus(self, node_id: str, scale: float = 1.0):
        self._check_alive()
        self._ensure_positions()
        if node_id not in self.positions:
            raise KeyError(node_id)
        position = self.positions[node_id]
        self.viewport = Viewport(position.x, position.y, scale)

    async def layout(self):
        self._check_alive()
        # Yield once so callers observe the pass as asynchronous
        await asyncio.sleep(0)
        self._check_alive()
        self.positions = self._compute_positions()
        self.layout_passes += 1
        if self.fit_on_layout:
            self.fit()

    def destroy(self):
        self.nodes.clear()
        self.edges.clear()
        self.positions.clear()
        self.destroyed = True

    def _ensure_positions(self):
        if any(node_id not in self.positions for node_id in self.nodes):
            self.positions = self._compute_positions()

    def _compute_positions(self) -> Dict[str, Point]:
        children: Dict[str, List[str]] = {node_id: [] for node_id in self.nodes}
        has_parent: Set[str] = set()
        for edge in self.edges:
            if edge.source in children and edge.target in self.nodes:
                children[edge.source].append(edge.target)
                has_parent.add(edge.target)

        positions: Dict[str, Point] = {}
        placed_children: Dict[str, List[str]] = {}
        seen: Set[str] = set()
        cursor = 0.0
        roots = [n for n in self.nodes if n not in has_parent]
        # Nodes only reachable through a cycle still get a place
        starts = roots + [n for n in self.nodes if n in has_parent]
        for start in starts:
            if start in seen:
                continue
            # (node, parent, depth, expanded)
            stack = [(start, None, 0, False)]
            while stack:
                node_id, parent_id, depth, expanded = stack.pop()
                if expanded:
                    kids = placed_children[node_id]
                    if kids:
                        x = (positions[kids[0]].x + positions[kids[-1]].x) / 2
                    else:
                        x = cursor
                        cursor += NODE_SPACING
                    positions[node_id] = Point(x, depth * LEVEL_SEPARATION)
                    continue
                if node_id in seen:
                    continue
                seen.add(node_id)
                placed_children[node_id] = []
                if parent_id is not None:
                    placed_children[parent_id].append(node_id)
                stack.append((node_id, parent_id, depth, True))
                for child_id in reversed(children[node_id]):
                    if child_id not in seen:
                        stack.append((child_id, node_id, depth + 1, False))
            cursor += TREE_SPACING - NODE_SPACING
        return positions

class ViewState(Enum):
    EMPTY = "empty"
    MATERIALIZED = "materialized"

class GraphView:
    """
    Incrementally patched node/edge mirror of one task's stage tree.

    The view is derived data: it can be thrown away and rebuilt from the task
    at any time with ``materialize``.
    """

    def __init__(self, engine_factory: Callable[[], LayoutEngine] = HierarchicalLayoutEngine):
        self.engine_factory = engine_factory
        self.engine: Optional[LayoutEngine] = None
        self.task: Optional[Task] = None
        self.nodes: Dict[str, GraphNode] = {}
        self.edges: Dict[Edge, None] = {}

    @property
    def state(self) -> ViewState:
        return ViewState.EMPTY if self.engine is None else ViewState.MATERIALIZED

    @property
    def task_id(self) -> Optional[str]:
        return self.task.id if self.task is not None else None

    def _require_materialized(self, operation: str):
        if self.engine is None:
            raise ViewStateError(f"Cannot {operation}: the graph view is empty, materialize a task first")

    def viewport(self) -> Viewport:
        self._require_materialized("read the viewport")
        return self.engine.get_viewport()

    def edge_set(self) -> Set[Edge]:
        return set(self.edges)

    async def materialize(self, task: Task):
        """Build the full view of ``task``, creating its root stage if needed."""
        self.destroy()
        tree = StageTree(task)
        tree.ensure_root()

        nodes: Dict[str, GraphNode] = {}
        edges: Dict[Edge, None] = {}
        for stage_id, parent_id, _ in tree.iter_preorder():
            nodes[stage_id] = node_for(task.stages[stage_id])
            if parent_id is not None:
                edges[Edge(parent_id, stage_id)] = None

        engine = self.engine_factory()
        engine.add_nodes(nodes.values())
        engine.add_edges(edges)
        self.task = task
        self.nodes = nodes
        self.edges = edges
        self.engine = engine
        await engine.layout()
        engine.fit()
        log.debug(f"Materialized task {task.id}: {len(nodes)} node(s), {len(edges)} edge(s)")

    async def patch_add(self, stage: Stage, parent_id: str):
        """Add one node and its incoming edge, keeping the user's viewport."""
        self._require_materialized("add a node")
        if parent_id not in self.nodes:
            raise ViewStateError(f"Parent node '{parent_id}' is not in the view")
        if stage.id in self.nodes:
            raise ViewStateError(f"Node '{stage.id}' is already in the view")

        viewport = self.engine.get_viewport()
        node = node_for(stage)
        edge = Edge(parent_id, stage.id)
        self.nodes[stage.id] = node
        self.edges[edge] = None
        self.engine.add_nodes([node])
        self.engine.add_edges([edge])
        await self._relayout(viewport)

    def patch_update(self, stage_id: str, label: Optional[str] = None, status: Optional[Status] = None) -> bool:
        """
        Merge a new label and/or status colors into an existing node.

        Returns:
            False if the node is not in the view
        """
        self._require_materialized("update a node")
        node = self.nodes.get(stage_id)
        if node is None:
            log.debug(f"patch_update: node '{stage_id}' not in view")
            return False

        viewport = self.engine.get_viewport()
        changes: Dict[str, Any] = {}
        if label is not None:
            changes['label'] = wrap_text(label)
        if status is not None:
            changes['color'] = node_color(status)
        updated = node.model_copy(update=changes)
        self.nodes[stage_id] = updated
        self.engine.update_node(updated)
        self.engine.move_to(viewport)
        return True

    def descendant_closure(self, node_id: str) -> List[str]:
        """``node_id`` and every node reachable from it over the view's edges."""
        outgoing: Dict[str, List[str]] = {}
        for edge in self.edges:
            outgoing.setdefault(edge.source, []).append(edge.target)

        closure: List[str] = []
        seen: Set[str] = set()
        stack = [node_id]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            closure.append(current)
            stack.extend(reversed(outgoing.get(current, [])))
        return closure

    async def patch_remove(self, stage_id: str) -> List[str]:
        """
        Remove a node, all of its descendants and every edge touching them.

        Returns:
            The removed node IDs, empty if the node is not in the view
        """
        self._require_materialized("remove a node")
        if stage_id not in self.nodes:
            log.debug(f"patch_remove: node '{stage_id}' not in view")
            return []

        viewport = self.engine.get_viewport()
        doomed = self.descendant_closure(stage_id)
        doomed_set = set(doomed)
        doomed_edges = [e for e in self.edges if e.source in doomed_set or e.target in doomed_set]
        for edge in doomed_edges:
            del self.edges[edge]
        for node_id in doomed:
            self.nodes.pop(node_id, None)
        self.engine.remove_edges(doomed_edges)
        self.engine.remove_nodes(doomed)
        await self._relayout(viewport)
        return doomed

    async def _relayout(self, viewport: Viewport):
        await self.engine.layout()
        self.engine.move_to(viewport)

    def focus_deepest(self) -> Optional[str]:
        """
        Centre on the first of the deepest stages.

        Returns:
            The focused stage ID, or None when the whole graph was fitted instead
        """
        self._require_materialized("focus")
        deepest = [sid for sid in find_deepest(self.task.stages) if sid in self.nodes]
        if deepest:
            self.engine.focus(deepest[0], scale=1.0)
            return deepest[0]
        self.engine.fit()
        return None

    def destroy(self):
        """Release the layout engine and forget the view."""
        if self.engine is not None:
            self.engine.destroy()
            log.debug(f"Destroyed graph view of task {self.task_id}")
        self.engine = None
        self.task = None
        self.nodes = {}
        self.edges = {}
