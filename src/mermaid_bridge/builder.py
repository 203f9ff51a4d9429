"""Graph builder — classification events to an arena of pending entities.

One ``GraphBuilder`` owns all mutable state of a single import pass: the
identifier table, the container stack, the entity arena and the deferred edge
queue. Nothing here touches the host document; entities are materialized by
``api.import_diagram`` once layout is known.

Edges are resolved in a second phase (``finish``) because endpoints may be
declared after the edge that mentions them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from mermaid_bridge.classifier import (
    ContainerClose,
    ContainerOpen,
    ContainerPredicate,
    DirectionLine,
    EdgeDescriptor,
    EdgeStatement,
    LineEvent,
    NodeDeclaration,
    NodeToken,
    Unrecognized,
    classify_line,
    looks_like_container,
)
from mermaid_bridge.lexer import NormalizedSource, SourceLine
from mermaid_bridge.types import Diagnostic, DiagnosticKind, Direction, EdgeStyle, ShapeKind

logger = logging.getLogger(__name__)

GENERATED_PREFIX = "__subgraph_"

# ─── Arena Entities ───────────────────────────────────────────────────────────


@dataclass
class PendingNode:
    index: int
    identifier: str
    label: str
    shape: ShapeKind
    parent: int | None
    line: int
    appearance: int = 0  # rank of the first mention of the identifier, edges included


@dataclass
class PendingContainer:
    index: int
    identifier: str
    label: str
    parent: int | None
    line: int
    children: list[int] = field(default_factory=list)
    appearance: int = 0


PendingEntity = PendingNode | PendingContainer


@dataclass
class ResolvedEdge:
    source: int
    target: int
    style: EdgeStyle
    label: str | None
    line: int


@dataclass
class BuildResult:
    """Output of one pass: arena in declaration order, resolved edges, diagnostics."""

    entities: list[PendingEntity]
    edges: list[ResolvedEdge]
    identifiers: dict[str, int]
    direction: Direction
    diagnostics: list[Diagnostic]


# ─── Builder ──────────────────────────────────────────────────────────────────


class GraphBuilder:
    """State machine over line events for a single import pass.

    Args:
        container_predicate: Decides whether a bare node declaration should
            become an (empty) container. ``None`` disables the heuristic.
        implicit_nodes: When True, bare identifiers used as edge endpoints
            declare rectangle nodes (plain Mermaid behavior). When False they
            are references only and must be declared somewhere in the text.
    """

    def __init__(
        self,
        container_predicate: ContainerPredicate | None = looks_like_container,
        implicit_nodes: bool = False,
    ) -> None:
        self.container_predicate = container_predicate
        self.implicit_nodes = implicit_nodes
        self.entities: list[PendingEntity] = []
        self.identifiers: dict[str, int] = {}
        self.first_seen: dict[str, int] = {}
        self.stack: list[int] = []
        self.pending_edges: list[EdgeDescriptor] = []
        self.direction = Direction.TD
        self.diagnostics: list[Diagnostic] = []
        self._generated = 0

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _report(self, line: int, kind: DiagnosticKind, message: str) -> None:
        self.diagnostics.append(Diagnostic(line=line, message=message, kind=kind))

    def _current_parent(self) -> int | None:
        return self.stack[-1] if self.stack else None

    def _see(self, identifier: str) -> int:
        """Rank of the first mention of ``identifier`` in the text."""
        return self.first_seen.setdefault(identifier, len(self.first_seen))

    def _attach(self, index: int, parent: int | None) -> None:
        container = self.entities[parent] if parent is not None else None
        if isinstance(container, PendingContainer):
            container.children.append(index)

    def _generate_identifier(self) -> str:
        while True:
            self._generated += 1
            candidate = f"{GENERATED_PREFIX}{self._generated}"
            if candidate not in self.identifiers:
                return candidate

    def _new_container(self, identifier: str, label: str, line: int) -> PendingContainer:
        parent = self._current_parent()
        container = PendingContainer(
            index=len(self.entities),
            identifier=identifier,
            label=label,
            parent=parent,
            line=line,
            appearance=self._see(identifier),
        )
        self.entities.append(container)
        self.identifiers[identifier] = container.index
        self._attach(container.index, parent)
        return container

    def _check_degraded(self, token: NodeToken, line: int) -> None:
        if token.degraded is not None:
            self._report(
                line,
                DiagnosticKind.DegradedShape,
                f"{token.degraded} shape of {token.identifier!r} is not supported; using {token.shape.value}",
            )

    def declare(self, token: NodeToken, line: int, as_container: bool = False) -> int:
        """Create the entity for ``token`` or update the existing one.

        Re-declaration is idempotent: the label (and shape, for an explicit
        token) is updated in place and the entity keeps its first parent.
        """
        self._check_degraded(token, line)
        existing = self.identifiers.get(token.identifier)
        if existing is not None:
            entity = self.entities[existing]
            if token.explicit:
                entity.label = token.label
                if isinstance(entity, PendingNode):
                    entity.shape = token.shape
            return existing

        if as_container:
            return self._new_container(token.identifier, token.label, line).index

        parent = self._current_parent()
        node = PendingNode(
            index=len(self.entities),
            identifier=token.identifier,
            label=token.label,
            shape=token.shape,
            parent=parent,
            line=line,
            appearance=self._see(token.identifier),
        )
        self.entities.append(node)
        self.identifiers[token.identifier] = node.index
        self._attach(node.index, parent)
        return node.index

    # ── Event Handlers ────────────────────────────────────────────────────────

    def _on_direction(self, event: DirectionLine) -> None:
        if event.unknown is not None:
            self._report(
                event.line,
                DiagnosticKind.UnknownDirection,
                f"unknown direction {event.unknown!r}; using TD",
            )
        self.direction = event.direction

    def _on_open(self, event: ContainerOpen) -> None:
        token = event.token
        identifier = token.identifier
        label = token.label
        if identifier:
            existing = self.identifiers.get(identifier)
            if existing is not None:
                entity = self.entities[existing]
                if isinstance(entity, PendingContainer) and existing not in self.stack:
                    if token.explicit:
                        entity.label = label
                    self.stack.append(existing)
                    return
                self._report(
                    event.line,
                    DiagnosticKind.IdentifierConflict,
                    f"subgraph {identifier!r} is already declared; opening it under a new identifier",
                )
                identifier = ""
        if not identifier:
            identifier = self._generate_identifier()
        container = self._new_container(identifier, label, event.line)
        self.stack.append(container.index)

    def _on_close(self, event: ContainerClose) -> None:
        if not self.stack:
            self._report(event.line, DiagnosticKind.UnmatchedClose, "'end' without an open subgraph")
            return
        self.stack.pop()

    def _on_node(self, event: NodeDeclaration) -> None:
        token = event.token
        as_container = self.container_predicate is not None and self.container_predicate(token)
        self.declare(token, event.line, as_container=as_container)

    def _on_edge(self, event: EdgeStatement) -> None:
        for token in event.endpoints:
            self._see(token.identifier)
        for token in event.endpoints:
            if token.explicit or (self.implicit_nodes and token.identifier not in self.identifiers):
                self.declare(token, event.line)
        self.pending_edges.extend(event.edges)

    def _on_unrecognized(self, event: Unrecognized) -> None:
        self._report(event.line, event.kind, event.message)

    def handle(self, event: LineEvent) -> None:
        if isinstance(event, DirectionLine):
            self._on_direction(event)
        elif isinstance(event, ContainerOpen):
            self._on_open(event)
        elif isinstance(event, ContainerClose):
            self._on_close(event)
        elif isinstance(event, NodeDeclaration):
            self._on_node(event)
        elif isinstance(event, EdgeStatement):
            self._on_edge(event)
        elif isinstance(event, Unrecognized):
            self._on_unrecognized(event)
        else:
            raise TypeError(f"Unknown line event: {event!r}")

    def feed(self, line: SourceLine) -> None:
        """Classify one normalized line and apply it."""
        self.handle(classify_line(line))

    # ── End of Pass ───────────────────────────────────────────────────────────

    def _resolve_edges(self) -> list[ResolvedEdge]:
        resolved: list[ResolvedEdge] = []
        for desc in self.pending_edges:
            source = self.identifiers.get(desc.source)
            target = self.identifiers.get(desc.target)
            if source is None or target is None:
                missing = [ident for ident, idx in ((desc.source, source), (desc.target, target)) if idx is None]
                self._report(
                    desc.line,
                    DiagnosticKind.UnresolvedEdge,
                    f"edge {desc.source} -> {desc.target} dropped: undeclared {', '.join(missing)}",
                )
                continue
            resolved.append(
                ResolvedEdge(
                    source=source,
                    target=target,
                    style=desc.style,
                    label=desc.label,
                    line=desc.line,
                )
            )
        return resolved

    def finish(self) -> BuildResult:
        """Auto-close open containers, resolve deferred edges, return the pass result."""
        while self.stack:
            container = self.entities[self.stack.pop()]
            self._report(
                container.line,
                DiagnosticKind.UnterminatedContainer,
                f"subgraph {container.identifier!r} is never closed; closing it at end of input",
            )
        edges = self._resolve_edges()
        logger.debug(
            "built %d entities, %d edges (%d dropped)",
            len(self.entities),
            len(edges),
            len(self.pending_edges) - len(edges),
        )
        return BuildResult(
            entities=list(self.entities),
            edges=edges,
            identifiers=dict(self.identifiers),
            direction=self.direction,
            diagnostics=list(self.diagnostics),
        )


def build(
    source: NormalizedSource,
    container_predicate: ContainerPredicate | None = looks_like_container,
    implicit_nodes: bool = False,
) -> BuildResult:
    """Run a whole pass over normalized lines."""
    builder = GraphBuilder(container_predicate=container_predicate, implicit_nodes=implicit_nodes)
    for dropped in source.dropped:
        logger.debug("line %d: dropped unsupported directive %r", dropped.number, dropped.text)
    for line in source.lines:
        builder.feed(line)
    return builder.finish()
