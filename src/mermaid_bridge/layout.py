"""Layout module — positions for entities created by an import.

Phases:
  1. Unit selection   (standalone nodes + empty containers)
  2. Layer assignment (Kahn peeling, first-appearance order inside a layer)
  3. Coordinate assignment per weakly connected component
  4. Grid fallback    (whole batch, as soon as any cycle is found)
  5. Container sizing (bounding boxes, innermost containers first)

Output is deterministic for identical input: no randomness, and every
ordering is derived from the source text.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Hashable, Sequence
from dataclasses import dataclass, field
from enum import Enum

import networkx as nx

from mermaid_bridge.builder import PendingContainer, PendingEntity, ResolvedEdge
from mermaid_bridge.types import Direction, Point, Rect, bounding_box

logger = logging.getLogger(__name__)

# ─── Geometry Constants ───────────────────────────────────────────────────────

NODE_WIDTH: float = 200.0  # default node size, same as a node added by hand
NODE_HEIGHT: float = 100.0
LAYER_GAP: float = 80.0  # gap between adjacent layers along the primary axis
SIBLING_GAP: float = 50.0  # gap between entities in the same layer
COMPONENT_GAP: float = 120.0  # gap between disconnected components
GRID_GAP: float = 60.0  # gap between grid cells in the cyclic fallback
CONTAINER_PADDING: float = 30.0  # margin between a container and its children


@dataclass(frozen=True)
class LayoutConfig:
    """Per-call overrides for the geometry constants."""

    node_width: float = NODE_WIDTH
    node_height: float = NODE_HEIGHT
    layer_gap: float = LAYER_GAP
    sibling_gap: float = SIBLING_GAP
    component_gap: float = COMPONENT_GAP
    grid_gap: float = GRID_GAP
    container_padding: float = CONTAINER_PADDING


class LayoutStrategy(Enum):
    Layered = "layered"
    Grid = "grid"


@dataclass
class LayoutOutcome:
    """Rectangles for every arena index plus how they were obtained.

    ``layers`` holds the layering used for placement (arena indices), empty
    when the grid fallback ran.
    """

    rects: dict[int, Rect]
    strategy: LayoutStrategy
    layers: list[list[int]] = field(default_factory=list)


# ─── Unit Graph ───────────────────────────────────────────────────────────────


def is_layout_unit(entity: PendingEntity) -> bool:
    """Standalone nodes and empty containers are placed directly; the rest wrap children."""
    return not isinstance(entity, PendingContainer) or not entity.children


def build_unit_graph(entities: Sequence[PendingEntity], edges: Sequence[ResolvedEdge]) -> nx.DiGraph:
    """DiGraph over layout units, nodes inserted in order of first appearance.

    Edges that touch a non-empty container do not constrain layering.
    """
    graph: nx.DiGraph = nx.DiGraph()
    units = [e for e in entities if is_layout_unit(e)]
    for entity in sorted(units, key=lambda e: e.appearance):
        graph.add_node(entity.index)
    for edge in edges:
        if edge.source in graph and edge.target in graph:
            graph.add_edge(edge.source, edge.target)
    return graph


# ─── Layer Assignment ─────────────────────────────────────────────────────────


class LayerAssignment:
    """Result of Kahn layering: ``layers[i]`` lists the nodes of layer ``i``.

    Node order inside each layer follows the graph's node insertion order,
    which ``build_unit_graph`` makes the order of first appearance.
    """

    def __init__(self, layers: list[list[Hashable]]) -> None:
        self.layers = layers
        self.rank: dict[Hashable, int] = {n: i for i, layer in enumerate(layers) for n in layer}

    @property
    def layer_count(self) -> int:
        return len(self.layers)

    @classmethod
    def assign(cls, graph: nx.DiGraph) -> LayerAssignment | None:
        """Peel in-degree-0 nodes layer by layer.

        Returns None when peeling stops with nodes left over, i.e. the graph
        has a cycle (self-loops included).
        """
        order: dict[Hashable, int] = {n: i for i, n in enumerate(graph.nodes)}
        in_degree: dict[Hashable, int] = {n: graph.in_degree(n) for n in graph.nodes}

        layers: list[list[Hashable]] = []
        current = [n for n in graph.nodes if in_degree[n] == 0]
        placed = 0
        while current:
            layers.append(current)
            placed += len(current)
            nxt: list[Hashable] = []
            for node in current:
                for succ in graph.successors(node):
                    in_degree[succ] -= 1
                    if in_degree[succ] == 0:
                        nxt.append(succ)
            current = sorted(nxt, key=order.__getitem__)

        if placed < graph.number_of_nodes():
            return None
        return cls(layers)


def assign_layers(graph: nx.DiGraph) -> list[list[Hashable]] | None:
    """Convenience wrapper: the layer lists, or None for a cyclic graph."""
    la = LayerAssignment.assign(graph)
    return la.layers if la is not None else None


# ─── Coordinate Assignment ────────────────────────────────────────────────────


def place_layers(
    layers: list[list[Hashable]],
    direction: Direction,
    config: LayoutConfig,
) -> dict[Hashable, Rect]:
    """Place layers along the primary axis (y for TD, x for LR).

    Entities in a layer are spaced evenly along the other axis, centered on the
    centroid of the previous layer.
    """
    is_td = direction is Direction.TD
    primary_step = (config.node_height if is_td else config.node_width) + config.layer_gap
    cross_step = (config.node_width if is_td else config.node_height) + config.sibling_gap

    rects: dict[Hashable, Rect] = {}
    centroid = 0.0
    for layer_idx, layer in enumerate(layers):
        if not layer:
            continue
        primary = layer_idx * primary_step
        crosses = [centroid + (k - (len(layer) - 1) / 2) * cross_step for k in range(len(layer))]
        for unit, cross in zip(layer, crosses):
            center = Point(cross, primary) if is_td else Point(primary, cross)
            rects[unit] = Rect.around(center, config.node_width, config.node_height)
        centroid = sum(crosses) / len(crosses)
    return rects


def _components(graph: nx.DiGraph) -> list[list[Hashable]]:
    """Weakly connected components, each sorted, ordered by their first node."""
    order: dict[Hashable, int] = {n: i for i, n in enumerate(graph.nodes)}
    components = [sorted(c, key=order.__getitem__) for c in nx.weakly_connected_components(graph)]
    components.sort(key=lambda c: order[c[0]])
    return components


def layered_positions(
    graph: nx.DiGraph,
    la: LayerAssignment,
    direction: Direction,
    config: LayoutConfig,
) -> dict[Hashable, Rect]:
    """Place each component on its own, then line components up side by side.

    Components are separated by ``component_gap`` along the axis
    perpendicular to the layers; no further overlap removal is attempted.
    """
    is_td = direction is Direction.TD
    rects: dict[Hashable, Rect] = {}
    cursor = 0.0

    for component in _components(graph):
        members = set(component)
        sub_layers = [[n for n in layer if n in members] for layer in la.layers]
        while sub_layers and not sub_layers[-1]:
            sub_layers.pop()
        placed = place_layers(sub_layers, direction, config)

        box = bounding_box(list(placed.values()))
        if box is None:
            continue
        if is_td:
            dx, dy = cursor - box.x, -box.y
            cursor += box.width + config.component_gap
        else:
            dx, dy = -box.x, cursor - box.y
            cursor += box.height + config.component_gap
        for unit, rect in placed.items():
            rects[unit] = rect.translated(dx, dy)
    return rects


def grid_positions(units: Sequence[Hashable], config: LayoutConfig) -> dict[Hashable, Rect]:
    """Deterministic grid in the given order, ``ceil(sqrt(n))`` columns."""
    if not units:
        return {}
    columns = math.ceil(math.sqrt(len(units)))
    step_x = config.node_width + config.grid_gap
    step_y = config.node_height + config.grid_gap
    rects: dict[Hashable, Rect] = {}
    for i, unit in enumerate(units):
        row, col = divmod(i, columns)
        rects[unit] = Rect(col * step_x, row * step_y, config.node_width, config.node_height)
    return rects


# ─── Container Sizing ─────────────────────────────────────────────────────────


def post_order(entities: Sequence[PendingEntity]) -> list[int]:
    """Arena indices with every child before its container (explicit stack, no recursion)."""
    order: list[int] = []
    stack: list[tuple[int, bool]] = [(e.index, False) for e in reversed(entities) if e.parent is None]
    while stack:
        index, expanded = stack.pop()
        if expanded:
            order.append(index)
            continue
        stack.append((index, True))
        entity = entities[index]
        if isinstance(entity, PendingContainer):
            for child in reversed(entity.children):
                stack.append((child, False))
    return order


def size_containers(
    entities: Sequence[PendingEntity],
    rects: dict[int, Rect],
    config: LayoutConfig,
) -> None:
    """Give every non-empty container the padded bounding box of its children."""
    for index in post_order(entities):
        entity = entities[index]
        if isinstance(entity, PendingContainer) and entity.children:
            box = bounding_box([rects[c] for c in entity.children])
            if box is not None:
                rects[index] = box.expanded(config.container_padding)


# ─── Full Layout Pipeline ─────────────────────────────────────────────────────


def layout_entities(
    entities: Sequence[PendingEntity],
    edges: Sequence[ResolvedEdge],
    direction: Direction = Direction.TD,
    origin: Point = Point(0.0, 0.0),
    config: LayoutConfig | None = None,
) -> LayoutOutcome:
    """Run the full layout pipeline for one import batch.

    The whole batch is translated so its top-left corner sits at ``origin``.
    """
    config = config or LayoutConfig()
    graph = build_unit_graph(entities, edges)

    la = LayerAssignment.assign(graph)
    if la is None:
        strategy = LayoutStrategy.Grid
        # Grid cells follow declaration order.
        unit_rects = grid_positions([e.index for e in entities if is_layout_unit(e)], config)
        layers: list[list[int]] = []
    else:
        strategy = LayoutStrategy.Layered
        unit_rects = layered_positions(graph, la, direction, config)
        layers = [list(layer) for layer in la.layers]
    logger.debug("%s layout for %d units", strategy.value, graph.number_of_nodes())

    rects: dict[int, Rect] = dict(unit_rects)
    size_containers(entities, rects, config)

    box = bounding_box(list(rects.values()))
    if box is not None:
        dx, dy = origin.x - box.x, origin.y - box.y
        rects = {index: rect.translated(dx, dy) for index, rect in rects.items()}

    return LayoutOutcome(rects=rects, strategy=strategy, layers=layers)
