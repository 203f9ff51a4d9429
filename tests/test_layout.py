"""Tests for layout.py — Kahn layering, layered placement, grid fallback, container sizing.

Layering tests use plain networkx graphs; placement tests go through the
builder so arena indices match declaration order.
"""

from __future__ import annotations

import networkx as nx

from mermaid_bridge.builder import BuildResult, build
from mermaid_bridge.layout import (
    COMPONENT_GAP,
    CONTAINER_PADDING,
    GRID_GAP,
    NODE_HEIGHT,
    NODE_WIDTH,
    LayerAssignment,
    LayoutConfig,
    LayoutOutcome,
    LayoutStrategy,
    assign_layers,
    build_unit_graph,
    grid_positions,
    layout_entities,
    post_order,
)
from mermaid_bridge.lexer import normalize
from mermaid_bridge.types import Point, Rect, bounding_box

DIAMOND = "A[a]\nB[b]\nC[c]\nD[d]\nA --> B\nA --> C\nB --> D\nC --> D"

# ─── Helpers ──────────────────────────────────────────────────────────────────


def make_graph(*edges: tuple[str, str]) -> nx.DiGraph:
    """Build a DiGraph from a list of (src, tgt) string pairs."""
    g: nx.DiGraph = nx.DiGraph()
    for src, tgt in edges:
        g.add_edge(src, tgt)
    return g


def built(text: str) -> BuildResult:
    return build(normalize(text))


def lay_out(text: str, origin: Point = Point(0.0, 0.0), config: LayoutConfig | None = None) -> LayoutOutcome:
    result = built(text)
    return layout_entities(result.entities, result.edges, result.direction, origin, config)


# ─── Layer Assignment Tests ───────────────────────────────────────────────────


class TestLayerAssignment:
    def test_chain(self):
        """A → B → C gives three singleton layers."""
        la = LayerAssignment.assign(make_graph(("A", "B"), ("B", "C")))
        assert la is not None
        assert la.layers == [["A"], ["B"], ["C"]]
        assert la.rank == {"A": 0, "B": 1, "C": 2}
        assert la.layer_count == 3

    def test_diamond(self):
        """Diamond layers are {A}, {B, C}, {D} with declaration order inside."""
        g = make_graph(("A", "B"), ("A", "C"), ("B", "D"), ("C", "D"))
        assert assign_layers(g) == [["A"], ["B", "C"], ["D"]]

    def test_insertion_order_breaks_ties(self):
        """Roots keep insertion order even when edges arrive in another order."""
        g: nx.DiGraph = nx.DiGraph()
        g.add_nodes_from(["X", "Y", "Z"])
        g.add_edge("Z", "Y")
        assert assign_layers(g) == [["X", "Z"], ["Y"]]

    def test_cycle(self):
        """A → B → A cannot be layered."""
        assert LayerAssignment.assign(make_graph(("A", "B"), ("B", "A"))) is None

    def test_self_loop(self):
        """A self-loop is a cycle."""
        assert assign_layers(make_graph(("A", "A"))) is None

    def test_empty_graph(self):
        """Empty graph has no layers."""
        la = LayerAssignment.assign(nx.DiGraph())
        assert la is not None
        assert la.layer_count == 0


# ─── Unit Graph Tests ─────────────────────────────────────────────────────────


class TestUnitGraph:
    def test_non_empty_containers_excluded(self):
        """Only nodes and empty containers are layout units."""
        result = built("subgraph S\nA[a]\nend\nsubgraph E\nend\nB[b]")
        g = build_unit_graph(result.entities, result.edges)
        assert list(g.nodes) == [1, 2, 3]

    def test_container_edges_ignored(self):
        """Edges to a non-empty container do not constrain layering."""
        result = built("subgraph S\nA[a]\nend\nB[b]\nB --> S")
        g = build_unit_graph(result.entities, result.edges)
        assert g.number_of_edges() == 0


# ─── Placement Tests ──────────────────────────────────────────────────────────


class TestLayeredPlacement:
    def test_diamond_layers(self):
        """B and C share a row below A; D is below them, centered under A."""
        outcome = lay_out(DIAMOND)
        r = outcome.rects
        assert outcome.strategy is LayoutStrategy.Layered
        assert outcome.layers == [[0], [1, 2], [3]]
        assert r[1].y == r[2].y
        assert r[0].bottom < r[1].y
        assert r[1].bottom < r[3].y
        assert r[1].x < r[2].x
        assert r[0].center.x == r[3].center.x

    def test_deterministic(self):
        """Identical input gives identical rectangles."""
        assert lay_out(DIAMOND).rects == lay_out(DIAMOND).rects

    def test_default_sizes(self):
        """Nodes get the default 200 x 100 size."""
        rect = lay_out("A[a]").rects[0]
        assert (rect.width, rect.height) == (NODE_WIDTH, NODE_HEIGHT)

    def test_origin(self):
        """The batch's top-left corner sits at the origin."""
        outcome = lay_out(DIAMOND, origin=Point(500.0, 300.0))
        box = bounding_box(list(outcome.rects.values()))
        assert box is not None
        assert (box.x, box.y) == (500.0, 300.0)

    def test_lr_direction(self):
        """LR layers run along x."""
        r = lay_out("graph LR\nA[a]\nB[b]\nA --> B").rects
        assert r[0].right < r[1].x
        assert r[0].y == r[1].y

    def test_siblings_do_not_overlap(self):
        """Nodes in one layer are separated."""
        r = lay_out("A[a]\nB[b]\nC[c]\nD[d]\nA --> B & C & D").rects
        assert r[1].right < r[2].x
        assert r[2].right < r[3].x

    def test_components_side_by_side(self):
        """Disconnected nodes are separated by the component gap."""
        r = lay_out("A[a]\nB[b]").rects
        assert r[1].x - r[0].x == NODE_WIDTH + COMPONENT_GAP
        assert r[0].y == r[1].y

    def test_config_override(self):
        """LayoutConfig changes node size per call."""
        rect = lay_out("A[a]", config=LayoutConfig(node_width=50.0, node_height=20.0)).rects[0]
        assert (rect.width, rect.height) == (50.0, 20.0)

    def test_empty(self):
        """No entities, no rectangles."""
        outcome = layout_entities([], [])
        assert outcome.rects == {}

    def test_layer_order_follows_first_appearance(self):
        """C is mentioned before B, so C sits left of B although B is declared first."""
        outcome = lay_out("A[a]\nA --> C\nA --> B\nB[b]\nC[c]")
        assert outcome.layers == [[0], [2, 1]]
        assert outcome.rects[2].x < outcome.rects[1].x


class TestGridFallback:
    def test_cycle_switches_to_grid(self):
        """Any cycle lays out the whole batch as a grid."""
        outcome = lay_out("A[a]\nB[b]\nC[c]\nD[d]\nA --> B\nB --> A")
        assert outcome.strategy is LayoutStrategy.Grid
        assert outcome.layers == []
        step_x = NODE_WIDTH + GRID_GAP
        step_y = NODE_HEIGHT + GRID_GAP
        assert outcome.rects[0] == Rect(0.0, 0.0, NODE_WIDTH, NODE_HEIGHT)
        assert outcome.rects[1] == Rect(step_x, 0.0, NODE_WIDTH, NODE_HEIGHT)
        assert outcome.rects[2] == Rect(0.0, step_y, NODE_WIDTH, NODE_HEIGHT)
        assert outcome.rects[3] == Rect(step_x, step_y, NODE_WIDTH, NODE_HEIGHT)

    def test_self_loop_switches_to_grid(self):
        """A self-loop alone is enough for the fallback."""
        assert lay_out("A[a]\nA --> A").strategy is LayoutStrategy.Grid

    def test_grid_columns(self):
        """ceil(sqrt(n)) columns: 3 units use 2 columns."""
        rects = grid_positions(["a", "b", "c"], LayoutConfig())
        assert rects["c"].x == 0.0
        assert rects["c"].y == NODE_HEIGHT + GRID_GAP

    def test_grid_empty(self):
        """No units, no cells."""
        assert grid_positions([], LayoutConfig()) == {}

    def test_grid_follows_declaration_order(self):
        """Grid cells are filled in declaration order, not mention order."""
        outcome = lay_out("A[a]\nB --> C\nC --> B\nC[c]\nB[b]")
        assert outcome.strategy is LayoutStrategy.Grid
        assert outcome.rects[1] == Rect(NODE_WIDTH + GRID_GAP, 0.0, NODE_WIDTH, NODE_HEIGHT)
        assert outcome.rects[2] == Rect(0.0, NODE_HEIGHT + GRID_GAP, NODE_WIDTH, NODE_HEIGHT)


# ─── Container Sizing Tests ───────────────────────────────────────────────────


class TestContainerSizing:
    def test_post_order(self):
        """Children come before their container."""
        result = built("subgraph outer\nsubgraph inner\nA[a]\nend\nB[b]\nend")
        assert post_order(result.entities) == [2, 1, 3, 0]

    def test_container_wraps_children(self):
        """A container is the padded bounding box of its children."""
        outcome = lay_out("subgraph S[Box]\nA[a]\nB[b]\nA --> B\nend")
        r = outcome.rects
        box = bounding_box([r[1], r[2]])
        assert box is not None
        assert r[0] == box.expanded(CONTAINER_PADDING)
        assert (r[0].x, r[0].y) == (0.0, 0.0)

    def test_nested_containers(self):
        """Padding accumulates outwards."""
        r = lay_out("subgraph outer\nsubgraph inner\nA[a]\nend\nend").rects
        assert r[1] == r[2].expanded(CONTAINER_PADDING)
        assert r[0] == r[1].expanded(CONTAINER_PADDING)

    def test_empty_container_is_a_unit(self):
        """An empty container gets a node-sized rectangle."""
        rect = lay_out("subgraph E\nend").rects[0]
        assert (rect.width, rect.height) == (NODE_WIDTH, NODE_HEIGHT)
