"""Shared enums, diagnostics and geometry for the import/export pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# ─── Enums ────────────────────────────────────────────────────────────────────


class ShapeKind(Enum):
    """Closed set of node shapes, one per delimiter pair in the grammar."""

    Rectangle = "rectangle"
    Rounded = "rounded"
    Circle = "circle"
    Rhombus = "rhombus"
    Stadium = "stadium"
    Hexagon = "hexagon"
    Parallelogram = "parallelogram"
    Trapezoid = "trapezoid"


class EdgeStyle(Enum):
    """Closed set of connector styles."""

    Solid = "solid"
    Dashed = "dashed"
    Thick = "thick"
    Undirected = "undirected"
    Bidirectional = "bidirectional"


class Direction(Enum):
    """Layout direction hint. Only the primary axis is kept."""

    TD = "TD"
    LR = "LR"


class Severity(Enum):
    Warning = "warning"


class DiagnosticKind(Enum):
    UnrecognizedLine = "unrecognized line"
    MalformedNode = "malformed node"
    UnmatchedClose = "unmatched close"
    UnterminatedContainer = "unterminated container"
    UnresolvedEdge = "unresolved edge"
    IdentifierConflict = "identifier conflict"
    DegradedShape = "degraded shape"
    UnknownDirection = "unknown direction"


# ─── Diagnostics ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal problem found during import, tied to a source line (1-based)."""

    line: int
    message: str
    kind: DiagnosticKind
    severity: Severity = Severity.Warning


# ─── Geometry ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle: top-left corner plus size."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    @classmethod
    def around(cls, center: Point, width: float, height: float) -> Rect:
        return cls(center.x - width / 2, center.y - height / 2, width, height)

    def translated(self, dx: float, dy: float) -> Rect:
        return Rect(self.x + dx, self.y + dy, self.width, self.height)

    def expanded(self, margin: float) -> Rect:
        return Rect(self.x - margin, self.y - margin, self.width + 2 * margin, self.height + 2 * margin)

    def union(self, other: Rect) -> Rect:
        left = min(self.x, other.x)
        top = min(self.y, other.y)
        return Rect(left, top, max(self.right, other.right) - left, max(self.bottom, other.bottom) - top)


def bounding_box(rects: list[Rect]) -> Rect | None:
    """Smallest rectangle covering every rect, or None for an empty list."""
    if not rects:
        return None
    box = rects[0]
    for r in rects[1:]:
        box = box.union(r)
    return box
