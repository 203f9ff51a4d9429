"""Token classifier — one logical line to one classification event.

Classification is stateless: the container stack and identifier table live in
the builder. Priority order (first match wins):

  1. direction declaration   ``graph TD`` / ``flowchart LR``
  2. container open          ``subgraph id[Label]``
  3. container close         ``end``
  4. edge statement          ``A -->|x| B & C``
  5. node declaration        ``A([Label])``

Anything else becomes an ``Unrecognized`` event.
"""

from __future__ import annotations

import html
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from html.entities import html5

from mermaid_bridge.lexer import SourceLine
from mermaid_bridge.types import DiagnosticKind, Direction, EdgeStyle, ShapeKind

# ─── Tokens ───────────────────────────────────────────────────────────────────


@dataclass
class NodeToken:
    """A parsed node reference or declaration.

    ``explicit`` is True when the token carried a shape/label and therefore
    declares the node; a bare identifier inside an edge is only a reference.
    An empty ``identifier`` on a forced container asks the builder to
    generate one.
    """

    identifier: str
    label: str
    shape: ShapeKind = ShapeKind.Rectangle
    is_forced_container: bool = False
    explicit: bool = False
    degraded: str | None = None


@dataclass
class EdgeDescriptor:
    """An unresolved edge between two source identifiers."""

    source: str
    target: str
    style: EdgeStyle = EdgeStyle.Solid
    label: str | None = None
    line: int = 0


# ─── Line Events ──────────────────────────────────────────────────────────────


@dataclass
class DirectionLine:
    line: int
    direction: Direction
    unknown: str | None = None  # raw direction text when it was not recognized


@dataclass
class ContainerOpen:
    line: int
    token: NodeToken


@dataclass
class ContainerClose:
    line: int


@dataclass
class EdgeStatement:
    """Edge line: every endpoint token in order plus the expanded descriptors."""

    line: int
    endpoints: list[NodeToken] = field(default_factory=list)
    edges: list[EdgeDescriptor] = field(default_factory=list)


@dataclass
class NodeDeclaration:
    line: int
    token: NodeToken


@dataclass
class Unrecognized:
    line: int
    message: str
    kind: DiagnosticKind = DiagnosticKind.UnrecognizedLine


LineEvent = DirectionLine | ContainerOpen | ContainerClose | EdgeStatement | NodeDeclaration | Unrecognized

# ─── Label Decoding ───────────────────────────────────────────────────────────

_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_ENTITY_CODE_RE = re.compile(r"#(\w+);")
_MAX_CODEPOINT = 0x10FFFF


def _decode_entity_code(m: re.Match[str]) -> str:
    code = m.group(1)
    if code.isdigit():
        value = int(code)
        return chr(value) if value <= _MAX_CODEPOINT else m.group(0)
    decoded = html5.get(f"{code};")
    return m.group(0) if decoded is None else decoded


def decode_label(raw: str) -> str:
    """Unquote and decode label text: ``<br>`` to newline, HTML entities, ``#quot;`` codes."""
    text = raw.strip()
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        text = text[1:-1]
    text = _BR_RE.sub("\n", text)
    text = html.unescape(text)
    text = _ENTITY_CODE_RE.sub(_decode_entity_code, text)
    return text.strip()


def safe_identifier(raw: str) -> str:
    """Identifiers may not start with a digit; prefix those with ``_``."""
    return f"_{raw}" if raw[:1].isdigit() else raw


# ─── Node Tokens ──────────────────────────────────────────────────────────────

# Longer / more specific delimiter pairs first: "([" before "(" and "[",
# "((" before "(", "[/" before "[", "{{" before "{".
_SHAPE_DELIMITERS: list[tuple[str, str, ShapeKind]] = [
    ("([", "])", ShapeKind.Stadium),
    ("[(", ")]", ShapeKind.Rectangle),
    ("((", "))", ShapeKind.Circle),
    ("{{", "}}", ShapeKind.Hexagon),
    ("[/", "\\]", ShapeKind.Trapezoid),
    ("[\\", "/]", ShapeKind.Trapezoid),
    ("[/", "/]", ShapeKind.Parallelogram),
    ("[\\", "\\]", ShapeKind.Parallelogram),
    ("[", "]", ShapeKind.Rectangle),
    ("(", ")", ShapeKind.Rounded),
    ("{", "}", ShapeKind.Rhombus),
]

# Delimiters of shapes outside ShapeKind, accepted but degraded.
_DEGRADED_SHAPES: dict[str, str] = {"[(": "cylinder"}

_NODE_TOKEN_RE = re.compile(r"(?P<id>[^\s\[\](){}|&\"<>;:]+)\s*(?P<shape>.*)", re.DOTALL)
_CLASS_SUFFIX_RE = re.compile(r":::[\w-]+\s*$")
_SHAPE_OPENERS = ("[", "(", "{")


def parse_node_token(text: str) -> NodeToken | None:
    """Parse ``id``, ``id[label]``, ``id(["label"])`` etc. Returns None when malformed."""
    text = _CLASS_SUFFIX_RE.sub("", text.strip())
    m = _NODE_TOKEN_RE.fullmatch(text)
    if m is None:
        return None
    raw_id = m.group("id")
    shape_part = m.group("shape").strip()
    if not shape_part:
        return NodeToken(identifier=safe_identifier(raw_id), label=raw_id)

    for opener, closer, shape in _SHAPE_DELIMITERS:
        if len(shape_part) < len(opener) + len(closer):
            continue
        if shape_part.startswith(opener) and shape_part.endswith(closer):
            inner = shape_part[len(opener) : len(shape_part) - len(closer)]
            return NodeToken(
                identifier=safe_identifier(raw_id),
                label=decode_label(inner),
                shape=shape,
                explicit=True,
                degraded=_DEGRADED_SHAPES.get(opener),
            )
    return None


def _failure_kind(text: str) -> DiagnosticKind:
    """A token that starts like a node but has bad delimiters is a malformed node."""
    m = _NODE_TOKEN_RE.fullmatch(text.strip())
    if m is not None and m.group("shape").strip().startswith(_SHAPE_OPENERS):
        return DiagnosticKind.MalformedNode
    return DiagnosticKind.UnrecognizedLine


# ─── Container Heuristic ──────────────────────────────────────────────────────

ContainerPredicate = Callable[[NodeToken], bool]

_CONTAINER_WORDS_RE = re.compile(r"\b(?:group|cluster|container|module|package|namespace)s?\b", re.IGNORECASE)


def looks_like_container(token: NodeToken) -> bool:
    """Best-effort guess that a rectangle declaration names a grouping.

    Matches rectangle tokens whose label contains a container-indicating word.
    Fuzzy by nature: pass a different predicate, or None, to the builder to
    override or disable it.
    """
    return token.explicit and token.shape is ShapeKind.Rectangle and bool(_CONTAINER_WORDS_RE.search(token.label))


# ─── Edge Statements ──────────────────────────────────────────────────────────

_MASK = "\x00"
_CLOSERS = {"[": "]", "(": ")", "{": "}"}

# At any position the infix-label form is tried first, then plain operators
# from most to least specific so "-.->" is never read as "-->" and "<-->" is
# never read as "-->".
_CONNECTOR_RE = re.compile(
    r"""
    (?P<infix_open>--|==|-\.)\s*
        (?P<infix_label>"[^"]*"|[^\s"|>.=\-][^"|]*?)\s*
        (?P<infix_close>-{2,}>|-{3,}|\.+->|\.+-|={2,}>|={3,})
    | (?P<op>
        <-{2,}>|<={2,}>|<-\.+->
        | ={2,}>|={3,}
        | -\.+->|-\.+-
        | -{2,}>
        | -{3,}
      )
    """,
    re.VERBOSE,
)
_PIPE_LABEL_RE = re.compile(r"\s*\|(?P<body>[^|]*)\|")


def mask_labels(text: str) -> str:
    """Blank out label text (inside brackets, quotes and pipes) with NULs.

    The result has the same length as ``text`` so spans found in the mask can
    be sliced from the original. Outer delimiters stay visible.
    """
    out = list(text)
    stack: list[str] = []
    in_quote = False
    in_pipe = False
    for i, ch in enumerate(text):
        if in_quote:
            if ch == '"':
                in_quote = False
                if stack:
                    out[i] = _MASK
            else:
                out[i] = _MASK
        elif stack:
            if ch == '"':
                in_quote = True
            elif ch in _CLOSERS:
                stack.append(_CLOSERS[ch])
            elif ch == stack[-1]:
                stack.pop()
                if not stack:
                    continue
            out[i] = _MASK
        elif in_pipe:
            if ch == "|":
                in_pipe = False
            else:
                out[i] = _MASK
        elif ch == '"':
            in_quote = True
        elif ch == "|":
            in_pipe = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
    return "".join(out)


def style_of_operator(op: str) -> EdgeStyle:
    if op.startswith("<"):
        return EdgeStyle.Bidirectional
    if "=" in op:
        return EdgeStyle.Thick
    if "." in op:
        return EdgeStyle.Dashed
    if op.endswith(">"):
        return EdgeStyle.Solid
    return EdgeStyle.Undirected


def _split_endpoints(text: str, masked: str, start: int, end: int) -> list[str]:
    """Split one endpoint list on ``&`` separators that are not inside labels."""
    parts: list[str] = []
    cursor = start
    for i in range(start, end):
        if masked[i] == "&":
            parts.append(text[cursor:i])
            cursor = i + 1
    parts.append(text[cursor:end])
    return [p.strip() for p in parts]


def parse_edge_statement(text: str, line: int) -> EdgeStatement | Unrecognized | None:
    """Parse an edge line. Returns None when the line has no connector at all."""
    masked = mask_labels(text)
    matches = list(_CONNECTOR_RE.finditer(masked))
    if not matches:
        return None

    spans: list[tuple[int, int]] = []
    hops: list[tuple[EdgeStyle, str | None]] = []
    cursor = 0
    for m in matches:
        if m.start() < cursor:
            continue
        spans.append((cursor, m.start()))
        if m.group("op") is not None:
            style = style_of_operator(m.group("op"))
            label = None
        else:
            style = style_of_operator(m.group("infix_close"))
            label = decode_label(text[m.start("infix_label") : m.end("infix_label")])
        cursor = m.end()
        pipe = _PIPE_LABEL_RE.match(masked, cursor)
        if pipe is not None:
            label = decode_label(text[pipe.start("body") : pipe.end("body")])
            cursor = pipe.end()
        hops.append((style, label or None))
    spans.append((cursor, len(text)))

    groups: list[list[NodeToken]] = []
    for start, end in spans:
        group: list[NodeToken] = []
        for part in _split_endpoints(text, masked, start, end):
            token = parse_node_token(part) if part else None
            if token is None:
                return Unrecognized(
                    line=line,
                    message=f"malformed edge endpoint {part!r}",
                    kind=DiagnosticKind.MalformedNode,
                )
            group.append(token)
        groups.append(group)

    statement = EdgeStatement(line=line, endpoints=[t for group in groups for t in group])
    for i, (style, label) in enumerate(hops):
        for source in groups[i]:
            for target in groups[i + 1]:
                statement.edges.append(
                    EdgeDescriptor(
                        source=source.identifier,
                        target=target.identifier,
                        style=style,
                        label=label,
                        line=line,
                    )
                )
    return statement


# ─── Direction & Containers ───────────────────────────────────────────────────

_DIRECTION_LINE_RE = re.compile(r"(?:graph|flowchart(?:-elk)?)(?:\s+(?P<dir>\S+))?\s*")
_DIRECTIONS: dict[str, Direction] = {
    "TD": Direction.TD,
    "TB": Direction.TD,
    "BT": Direction.TD,
    "LR": Direction.LR,
    "RL": Direction.LR,
}
_SUBGRAPH_RE = re.compile(r"subgraph(?:\s+(?P<rest>.*))?", re.DOTALL)
_CLOSE_KEYWORD = "end"


def parse_direction(text: str, line: int) -> DirectionLine | None:
    m = _DIRECTION_LINE_RE.fullmatch(text)
    if m is None:
        return None
    raw = m.group("dir")
    if raw is None:
        return DirectionLine(line=line, direction=Direction.TD)
    direction = _DIRECTIONS.get(raw.upper())
    if direction is None:
        return DirectionLine(line=line, direction=Direction.TD, unknown=raw)
    return DirectionLine(line=line, direction=direction)


def parse_container_open(text: str, line: int) -> ContainerOpen | None:
    """``subgraph id``, ``subgraph id[Label]``, ``subgraph "Label"`` or ``subgraph Free title``."""
    m = _SUBGRAPH_RE.fullmatch(text)
    if m is None:
        return None
    rest = (m.group("rest") or "").strip()
    token = parse_node_token(rest) if rest and not rest.startswith('"') else None
    if token is None:
        # No usable identifier: the builder generates one.
        token = NodeToken(identifier="", label=decode_label(rest), explicit=bool(rest))
    token.is_forced_container = True
    token.shape = ShapeKind.Rectangle
    return ContainerOpen(line=line, token=token)


# ─── Public API ───────────────────────────────────────────────────────────────


def classify_line(source: SourceLine) -> LineEvent:
    """Classify one normalized line."""
    text = source.text
    line = source.number

    direction = parse_direction(text, line)
    if direction is not None:
        return direction

    opened = parse_container_open(text, line)
    if opened is not None:
        return opened

    if text == _CLOSE_KEYWORD:
        return ContainerClose(line=line)

    statement = parse_edge_statement(text, line)
    if statement is not None:
        return statement

    token = parse_node_token(text)
    if token is not None:
        return NodeDeclaration(line=line, token=token)

    kind = _failure_kind(text)
    what = "malformed node token" if kind is DiagnosticKind.MalformedNode else "unrecognized line"
    return Unrecognized(line=line, message=f"{what}: {text!r}", kind=kind)
