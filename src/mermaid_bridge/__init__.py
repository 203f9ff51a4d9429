"""mermaid_bridge — Mermaid flowchart text to a node/edge/container graph and back."""

from mermaid_bridge.api import ImportResult, export_diagram, import_diagram
from mermaid_bridge.document import Document
from mermaid_bridge.layout import LayoutConfig, LayoutStrategy
from mermaid_bridge.types import Diagnostic, DiagnosticKind, Direction, EdgeStyle, Point, Rect, ShapeKind

__version__ = "0.1.0"

__all__ = [
    "Diagnostic",
    "DiagnosticKind",
    "Direction",
    "Document",
    "EdgeStyle",
    "ImportResult",
    "LayoutConfig",
    "LayoutStrategy",
    "Point",
    "Rect",
    "ShapeKind",
    "export_diagram",
    "import_diagram",
]
