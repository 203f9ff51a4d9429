"""Import / export entry points.

    import_diagram(text, origin, factory)  -> ImportResult
    export_diagram(selected, view)         -> str
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Sequence
from dataclasses import dataclass, field

from mermaid_bridge.builder import PendingContainer, build
from mermaid_bridge.classifier import ContainerPredicate, looks_like_container
from mermaid_bridge.layout import LayoutConfig, LayoutStrategy, layout_entities
from mermaid_bridge.lexer import normalize
from mermaid_bridge.model import DocumentView, GraphEntity, HostFactory
from mermaid_bridge.serializer import serialize
from mermaid_bridge.types import Diagnostic, Direction, Point

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """What one import created, in declaration order.

    ``identifiers`` maps each source identifier to the host reference created
    for it; generated subgraph identifiers are included.
    """

    created: list[Hashable] = field(default_factory=list)
    edges: list[Hashable] = field(default_factory=list)
    identifiers: dict[str, Hashable] = field(default_factory=dict)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    direction: Direction = Direction.TD
    strategy: LayoutStrategy = LayoutStrategy.Layered


def import_diagram(
    text: str,
    origin: Point,
    factory: HostFactory,
    *,
    container_predicate: ContainerPredicate | None = looks_like_container,
    implicit_nodes: bool = False,
    config: LayoutConfig | None = None,
) -> ImportResult:
    """Parse ``text``, lay it out at ``origin`` and create it through ``factory``.

    Line-level problems never raise; they come back as diagnostics. Parents
    are created before their children, so every ``parent`` passed to the
    factory is already a host reference.
    """
    if not isinstance(text, str):
        raise TypeError(f"diagram text must be str, not {type(text).__name__}")
    if factory is None:
        raise TypeError("a host factory is required")

    built = build(normalize(text), container_predicate=container_predicate, implicit_nodes=implicit_nodes)
    outcome = layout_entities(built.entities, built.edges, built.direction, origin, config)

    result = ImportResult(
        diagnostics=list(built.diagnostics),
        direction=built.direction,
        strategy=outcome.strategy,
    )
    refs: list[Hashable] = []
    for entity in built.entities:
        parent = refs[entity.parent] if entity.parent is not None else None
        rect = outcome.rects[entity.index]
        if isinstance(entity, PendingContainer):
            ref = factory.create_container(entity.label, rect, parent)
        else:
            ref = factory.create_node(entity.shape, entity.label, rect, parent)
        refs.append(ref)
        result.created.append(ref)
        result.identifiers[entity.identifier] = ref

    for edge in built.edges:
        result.edges.append(factory.create_edge(refs[edge.source], refs[edge.target], edge.style, edge.label))

    logger.debug(
        "imported %d entities, %d edges, %d diagnostics",
        len(result.created),
        len(result.edges),
        len(result.diagnostics),
    )
    return result


def export_diagram(
    selected: Sequence[GraphEntity],
    view: DocumentView,
    direction: Direction = Direction.TD,
) -> str:
    """Diagram text for the selected entities and the edges among them."""
    return serialize(selected, view, direction)
