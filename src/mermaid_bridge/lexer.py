"""Lexical normalizer — raw diagram text to clean logical lines.

Comment lines and unsupported directive lines are removed; everything else is
stripped and kept in source order together with its physical line number.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_NEWLINE_RE = re.compile(r"\r\n|\n|\r")
_COMMENT_MARKER = "%%"

# Styling / interaction directives outside the supported subset; dropped whole.
DIRECTIVE_KEYWORDS: frozenset[str] = frozenset(
    {
        "classDef",
        "class",
        "style",
        "linkStyle",
        "click",
        "direction",
        "accTitle",
        "accDescr",
    }
)
_DIRECTIVE_RE = re.compile(r"^(?P<keyword>[A-Za-z]+)(?=\s|:|$)")

_CLOSERS = {"[": "]", "(": ")", "{": "}"}


@dataclass(frozen=True)
class SourceLine:
    """One logical line: 1-based physical line number and stripped text."""

    number: int
    text: str


@dataclass
class NormalizedSource:
    """Result of normalization: kept lines plus the directive lines dropped."""

    lines: list[SourceLine] = field(default_factory=list)
    dropped: list[SourceLine] = field(default_factory=list)


def split_statements(text: str) -> list[str]:
    """Split one physical line on ``;`` separators outside labels.

    Semicolons inside quotes, brackets or ``|...|`` edge labels are kept.
    """
    parts: list[str] = []
    buf: list[str] = []
    stack: list[str] = []
    in_quote = False
    in_pipe = False
    for ch in text:
        if in_quote:
            in_quote = ch != '"'
        elif ch == '"':
            in_quote = True
        elif stack:
            if ch in _CLOSERS:
                stack.append(_CLOSERS[ch])
            elif ch == stack[-1]:
                stack.pop()
        elif ch == "|":
            in_pipe = not in_pipe
        elif in_pipe:
            pass
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch == ";":
            parts.append("".join(buf))
            buf = []
            continue
        buf.append(ch)
    parts.append("".join(buf))
    return parts


def is_directive(text: str) -> bool:
    m = _DIRECTIVE_RE.match(text)
    return m is not None and m.group("keyword") in DIRECTIVE_KEYWORDS


def normalize(text: str) -> NormalizedSource:
    """Turn raw diagram text into ordered, trimmed, non-empty logical lines."""
    result = NormalizedSource()
    for number, physical in enumerate(_NEWLINE_RE.split(text), start=1):
        if physical.strip().startswith(_COMMENT_MARKER):
            continue
        for statement in split_statements(physical):
            stripped = statement.strip()
            if not stripped:
                continue
            line = SourceLine(number=number, text=stripped)
            if is_directive(stripped):
                result.dropped.append(line)
            else:
                result.lines.append(line)
    return result
