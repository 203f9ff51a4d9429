"""Host-side graph entities and the capabilities the core needs from a host.

The core never owns host entities. On import it asks a ``HostFactory`` to
create them; on export it reads them through a ``DocumentView``.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from mermaid_bridge.types import EdgeStyle, Point, Rect, ShapeKind

# ─── Entity Records ───────────────────────────────────────────────────────────


@dataclass
class StandaloneNode:
    """A leaf entity: shape, label text and a rectangle."""

    id: str
    label: str
    shape: ShapeKind
    rect: Rect
    parent: str | None = None


@dataclass
class Container:
    """A rectangular grouping. Children are referenced by id, in order."""

    id: str
    label: str
    rect: Rect
    children: list[str] = field(default_factory=list)
    parent: str | None = None


# Sum type over the two entity kinds; dispatch with isinstance.
GraphEntity = StandaloneNode | Container


@dataclass
class GraphEdge:
    """A connector between two entities.

    ``source_rate``/``target_rate`` give the attachment point on each
    endpoint's rectangle as fractions of its size (0.5, 0.5 is the center).
    """

    id: str
    source: str
    target: str
    style: EdgeStyle = EdgeStyle.Solid
    label: str | None = None
    source_rate: Point = field(default_factory=lambda: Point(0.5, 0.5))
    target_rate: Point = field(default_factory=lambda: Point(0.5, 0.5))


# ─── Host Capabilities ────────────────────────────────────────────────────────


class HostFactory(Protocol):
    """Protocol a host document implements so imports can create entities."""

    def create_node(self, shape: ShapeKind, label: str, rect: Rect, parent: Hashable | None) -> Hashable:
        """Create a standalone node and return a reference to it."""
        ...

    def create_container(self, label: str, rect: Rect, parent: Hashable | None) -> Hashable:
        """Create a container and return a reference to it."""
        ...

    def create_edge(self, source: Hashable, target: Hashable, style: EdgeStyle, label: str | None) -> Hashable:
        """Connect two previously created entities and return a reference to the edge."""
        ...


class DocumentView(Protocol):
    """Read access to container membership and edges, used by export."""

    def children_of(self, container_id: str) -> Sequence[str]:
        """Ids of the direct children of a container, in order."""
        ...

    def iter_edges(self) -> Iterable[GraphEdge]:
        """Every edge in the document."""
        ...
