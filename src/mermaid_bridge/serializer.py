"""Serializer — selected host entities back to diagram text.

Output is always valid input for the classifier: identifiers are made
grammar-safe and unique per call, labels are quoted and entity-encoded, and
only the supported shape/edge subset is emitted.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from mermaid_bridge.model import Container, DocumentView, GraphEdge, GraphEntity, StandaloneNode
from mermaid_bridge.types import Direction, EdgeStyle, ShapeKind

INDENT = "    "

# Inverse of the classifier's delimiter table: one canonical pair per shape.
SHAPE_DELIMITERS: dict[ShapeKind, tuple[str, str]] = {
    ShapeKind.Rectangle: ("[", "]"),
    ShapeKind.Rounded: ("(", ")"),
    ShapeKind.Circle: ("((", "))"),
    ShapeKind.Rhombus: ("{", "}"),
    ShapeKind.Stadium: ("([", "])"),
    ShapeKind.Hexagon: ("{{", "}}"),
    ShapeKind.Parallelogram: ("[/", "/]"),
    ShapeKind.Trapezoid: ("[/", "\\]"),
}

EDGE_OPERATORS: dict[EdgeStyle, str] = {
    EdgeStyle.Solid: "-->",
    EdgeStyle.Dashed: "-.->",
    EdgeStyle.Thick: "==>",
    EdgeStyle.Undirected: "---",
    EdgeStyle.Bidirectional: "<-->",
}

# Words the classifier or normalizer would read as keywords at line start.
RESERVED_IDENTIFIERS: frozenset[str] = frozenset(
    {
        "end",
        "graph",
        "flowchart",
        "subgraph",
        "classdef",
        "class",
        "style",
        "linkstyle",
        "click",
        "direction",
        "acctitle",
        "accdescr",
    }
)

_UNSAFE_ID_CHARS_RE = re.compile(r"[^\w]+")
_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")

# "#" first so the codes introduced below are not re-escaped.
_LABEL_ESCAPES: list[tuple[str, str]] = [
    ("#", "#35;"),
    ('"', "#quot;"),
    ("&", "#amp;"),
    ("<", "#lt;"),
    (">", "#gt;"),
    ("|", "#124;"),
]

# ─── Labels & Identifiers ─────────────────────────────────────────────────────


def encode_label(label: str) -> str:
    """Escape a label so ``classifier.decode_label`` returns it unchanged (modulo trimming).

    Every line break style becomes ``<br>`` and so comes back as a newline.
    """
    text = label.strip()
    for raw, code in _LABEL_ESCAPES:
        text = text.replace(raw, code)
    return _LINE_BREAK_RE.sub("<br>", text)


class IdentifierTable:
    """Collision-free identifiers for one export call."""

    def __init__(self) -> None:
        self.by_entity: dict[str, str] = {}
        self._used: set[str] = set()

    @staticmethod
    def base_identifier(entity: GraphEntity) -> str:
        token = _UNSAFE_ID_CHARS_RE.sub("_", entity.label.strip()).strip("_")
        if not token:
            token = "node_" + _UNSAFE_ID_CHARS_RE.sub("", entity.id)[:8]
        if token[0].isdigit():
            token = "_" + token
        if token.lower() in RESERVED_IDENTIFIERS:
            token = token + "_"
        return token

    def assign(self, entity: GraphEntity) -> str:
        """Identifier for ``entity``; the second "A" becomes "A_2", then "A_3"."""
        existing = self.by_entity.get(entity.id)
        if existing is not None:
            return existing
        base = self.base_identifier(entity)
        candidate = base
        suffix = 1
        while candidate in self._used:
            suffix += 1
            candidate = f"{base}_{suffix}"
        self._used.add(candidate)
        self.by_entity[entity.id] = candidate
        return candidate


# ─── Containment ──────────────────────────────────────────────────────────────


def descendants(container_id: str, view: DocumentView) -> list[str]:
    """Every id below ``container_id``, depth-first, without recursion."""
    found: list[str] = []
    seen: set[str] = {container_id}
    stack = list(reversed(view.children_of(container_id)))
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        found.append(current)
        stack.extend(reversed(view.children_of(current)))
    return found


def innermost_owner(
    entity_id: str,
    candidates: Sequence[str],
    contents: dict[str, set[str]],
) -> str | None:
    """The selected container holding ``entity_id`` that holds no other holder."""
    holders = [c for c in candidates if c != entity_id and entity_id in contents[c]]
    for holder in holders:
        if not any(other != holder and other in contents[holder] for other in holders):
            return holder
    return None


# ─── Emission ─────────────────────────────────────────────────────────────────


def _node_line(identifier: str, node: StandaloneNode) -> str:
    opener, closer = SHAPE_DELIMITERS[node.shape]
    return f'{identifier}{opener}"{encode_label(node.label)}"{closer}'


def _edge_line(source: str, target: str, edge: GraphEdge) -> str:
    operator = EDGE_OPERATORS[edge.style]
    if edge.label is not None and edge.label.strip():
        return f"{source} {operator}|{encode_label(edge.label)}| {target}"
    return f"{source} {operator} {target}"


def serialize(
    selected: Sequence[GraphEntity],
    view: DocumentView,
    direction: Direction = Direction.TD,
) -> str:
    """Diagram text for ``selected`` and the edges among them.

    A selected container brings its whole subtree along. Each entity is
    emitted once, under the innermost selected container that holds it.
    Edges come from ``view.iter_edges()`` and are kept only when both
    endpoints are exported.

    Rectangles are emitted as plain nodes. On import the default container
    heuristic (``classifier.looks_like_container``) turns a rectangle whose
    label names a grouping, e.g. "Auth module", into an empty container;
    import with ``container_predicate=None`` to keep such nodes as nodes.
    """
    if selected is None:
        raise TypeError("selection must be a sequence of entities, not None")
    by_id: dict[str, GraphEntity] = {}
    for entity in selected:
        if not isinstance(entity, (StandaloneNode, Container)):
            raise ValueError(f"Unsupported entity kind: {type(entity).__name__}")
        by_id.setdefault(entity.id, entity)

    # Pull in the subtrees of selected containers.
    lookup = _EntityLookup(view, by_id)
    for entity in list(by_id.values()):
        if isinstance(entity, Container):
            for child_id in descendants(entity.id, view):
                child = lookup.get(child_id)
                if child is not None:
                    by_id.setdefault(child_id, child)

    containers = [e.id for e in by_id.values() if isinstance(e, Container)]
    contents = {cid: set(descendants(cid, view)) for cid in containers}
    owner = {eid: innermost_owner(eid, containers, contents) for eid in by_id}

    children: dict[str | None, list[str]] = {}
    for eid in _emission_order(by_id, containers, view):
        children.setdefault(owner[eid], []).append(eid)

    ids = IdentifierTable()
    lines = [f"graph {direction.value}"]

    # Explicit stack of (entity id, depth, closing?) instead of recursion.
    stack: list[tuple[str, int, bool]] = [(eid, 1, False) for eid in reversed(children.get(None, []))]
    while stack:
        eid, depth, closing = stack.pop()
        indent = INDENT * depth
        if closing:
            lines.append(f"{indent}end")
            continue
        entity = by_id[eid]
        identifier = ids.assign(entity)
        if isinstance(entity, Container):
            lines.append(f'{indent}subgraph {identifier}["{encode_label(entity.label)}"]')
            stack.append((eid, depth, True))
            for child_id in reversed(children.get(eid, [])):
                stack.append((child_id, depth + 1, False))
        else:
            lines.append(indent + _node_line(identifier, entity))

    for edge in view.iter_edges():
        if edge.source in by_id and edge.target in by_id:
            source = ids.assign(by_id[edge.source])
            target = ids.assign(by_id[edge.target])
            lines.append(INDENT + _edge_line(source, target, edge))

    return "\n".join(lines) + "\n"


def _emission_order(
    by_id: dict[str, GraphEntity],
    containers: Iterable[str],
    view: DocumentView,
) -> list[str]:
    """Selection order, except that a container's members follow its own child order."""
    order: list[str] = list(by_id)
    position = {eid: i for i, eid in enumerate(order)}
    for cid in containers:
        for rank, child_id in enumerate(view.children_of(cid)):
            if child_id in position:
                position[child_id] = len(order) + rank
    return sorted(order, key=lambda eid: position[eid])


class _EntityLookup:
    """Resolves ids pulled in through container membership to entity records.

    Views that also offer ``get(entity_id)`` (like ``document.Document``) let
    a selected container bring unselected descendants along.
    """

    def __init__(self, view: DocumentView, known: dict[str, GraphEntity]) -> None:
        self.view = view
        self.known = known

    def get(self, entity_id: str) -> GraphEntity | None:
        if entity_id in self.known:
            return self.known[entity_id]
        getter = getattr(self.view, "get", None)
        if getter is None:
            return None
        entity = getter(entity_id)
        return entity if isinstance(entity, (StandaloneNode, Container)) else None
