"""In-memory host document.

Implements ``HostFactory`` and ``DocumentView`` so imports and exports can run
without a real diagramming host, plus the editing surface a host exposes to
its clients: add / connect / update / delete / move / resize, and JSON-ready
snapshots of nodes and edges.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Hashable, Iterable, Sequence

from mermaid_bridge.model import Container, GraphEdge, GraphEntity, StandaloneNode
from mermaid_bridge.types import EdgeStyle, Point, Rect, ShapeKind, bounding_box

logger = logging.getLogger(__name__)

DEFAULT_NODE_WIDTH: float = 200.0
DEFAULT_NODE_HEIGHT: float = 100.0


def _clamp_rate(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


class Document:
    """Entities and edges keyed by generated ids, in insertion order."""

    def __init__(self) -> None:
        self.entities: dict[str, GraphEntity] = {}
        self.edges: dict[str, GraphEdge] = {}

    # ── Lookup ────────────────────────────────────────────────────────────────

    def get(self, entity_id: str) -> GraphEntity | None:
        return self.entities.get(entity_id)

    def _require(self, entity_id: str) -> GraphEntity:
        entity = self.entities.get(entity_id)
        if entity is None:
            raise ValueError(f"Node not found: {entity_id}")
        return entity

    def _require_edge(self, edge_id: str) -> GraphEdge:
        edge = self.edges.get(edge_id)
        if edge is None:
            raise ValueError(f"Edge not found: {edge_id}")
        return edge

    def roots(self) -> list[GraphEntity]:
        return [e for e in self.entities.values() if e.parent is None]

    # ── HostFactory ───────────────────────────────────────────────────────────

    def _insert(self, entity: GraphEntity) -> str:
        if entity.parent is not None:
            parent = self._require(entity.parent)
            if not isinstance(parent, Container):
                raise ValueError(f"Parent is not a container: {entity.parent}")
            parent.children.append(entity.id)
        self.entities[entity.id] = entity
        return entity.id

    def create_node(self, shape: ShapeKind, label: str, rect: Rect, parent: Hashable | None) -> str:
        node = StandaloneNode(id=str(uuid.uuid4()), label=label, shape=shape, rect=rect, parent=parent)
        return self._insert(node)

    def create_container(self, label: str, rect: Rect, parent: Hashable | None) -> str:
        container = Container(id=str(uuid.uuid4()), label=label, rect=rect, parent=parent)
        return self._insert(container)

    def create_edge(self, source: Hashable, target: Hashable, style: EdgeStyle, label: str | None) -> str:
        return self.connect_nodes(source, target, style=style, label=label)

    # ── DocumentView ──────────────────────────────────────────────────────────

    def children_of(self, container_id: str) -> Sequence[str]:
        entity = self.entities.get(container_id)
        if isinstance(entity, Container):
            return list(entity.children)
        return []

    def iter_edges(self) -> Iterable[GraphEdge]:
        return iter(list(self.edges.values()))

    # ── Editing ───────────────────────────────────────────────────────────────

    def add_node(
        self,
        text: str,
        x: float,
        y: float,
        width: float | None = None,
        height: float | None = None,
        shape: ShapeKind = ShapeKind.Rectangle,
    ) -> str:
        """Add a root node with its top-left corner at (x, y); 200 x 100 unless sized."""
        rect = Rect(
            x,
            y,
            DEFAULT_NODE_WIDTH if width is None else width,
            DEFAULT_NODE_HEIGHT if height is None else height,
        )
        node_id = self.create_node(shape, text, rect, None)
        logger.debug("added node %s", node_id)
        return node_id

    def connect_nodes(
        self,
        source_id: str,
        target_id: str,
        style: EdgeStyle = EdgeStyle.Solid,
        label: str | None = None,
    ) -> str:
        if source_id not in self.entities or target_id not in self.entities:
            raise ValueError("Source or target node not found")
        edge = GraphEdge(id=str(uuid.uuid4()), source=source_id, target=target_id, style=style, label=label)
        self.edges[edge.id] = edge
        return edge.id

    def update_node(self, node_id: str, text: str) -> None:
        self._require(node_id).label = text

    def delete_node(self, node_id: str) -> None:
        """Remove an entity and the edges touching it.

        A container's children are handed to the container's own parent.
        """
        entity = self._require(node_id)
        parent_id = entity.parent
        parent = self.entities.get(parent_id) if parent_id is not None else None

        if isinstance(entity, Container):
            for child_id in entity.children:
                self.entities[child_id].parent = parent_id
            if isinstance(parent, Container):
                at = parent.children.index(node_id)
                parent.children[at : at + 1] = entity.children
        elif isinstance(parent, Container):
            parent.children.remove(node_id)

        del self.entities[node_id]
        for edge_id in [e.id for e in self.edges.values() if node_id in (e.source, e.target)]:
            del self.edges[edge_id]

    def update_node_position(self, node_id: str, x: float, y: float) -> None:
        entity = self._require(node_id)
        entity.rect = Rect(x, y, entity.rect.width, entity.rect.height)

    def update_node_size(self, node_id: str, width: float, height: float | None = None) -> None:
        """Resize in place; ``height`` defaults to the current height."""
        entity = self._require(node_id)
        rect = entity.rect
        entity.rect = Rect(rect.x, rect.y, width, rect.height if height is None else height)

    def update_edge_direction(
        self,
        edge_id: str,
        source_rate: Point | None = None,
        target_rate: Point | None = None,
    ) -> None:
        """Move an edge's attachment points; rates are clamped to 0..1."""
        edge = self._require_edge(edge_id)
        if source_rate is not None:
            edge.source_rate = Point(_clamp_rate(source_rate.x), _clamp_rate(source_rate.y))
        if target_rate is not None:
            edge.target_rate = Point(_clamp_rate(target_rate.x), _clamp_rate(target_rate.y))

    # ── Snapshots ─────────────────────────────────────────────────────────────

    def nodes_snapshot(self) -> list[dict]:
        return [
            {
                "id": e.id,
                "text": e.label,
                "location": {"x": e.rect.x, "y": e.rect.y},
                "size": {"width": e.rect.width, "height": e.rect.height},
            }
            for e in self.entities.values()
        ]

    def edges_snapshot(self) -> list[dict]:
        return [
            {
                "id": e.id,
                "source": e.source,
                "target": e.target,
                "sourceRectangleRate": {"x": e.source_rate.x, "y": e.source_rate.y},
                "targetRectangleRate": {"x": e.target_rate.x, "y": e.target_rate.y},
            }
            for e in self.edges.values()
        ]

    def free_origin(self, gap: float = 100.0) -> Point:
        """Top-left point to the right of all existing content."""
        box = bounding_box([e.rect for e in self.entities.values()])
        if box is None:
            return Point(0.0, 0.0)
        return Point(box.right + gap, box.y)
