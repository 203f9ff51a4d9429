"""Tests for lexer.py — comment removal, statement splitting, directive dropping."""

from __future__ import annotations

from mermaid_bridge.lexer import SourceLine, is_directive, normalize, split_statements

# ─── split_statements Tests ───────────────────────────────────────────────────


class TestSplitStatements:
    def test_plain_semicolons(self):
        """A --> B; B --> C splits into two statements."""
        assert split_statements("A --> B; B --> C") == ["A --> B", " B --> C"]

    def test_semicolon_inside_brackets_kept(self):
        """A semicolon inside a node label does not split."""
        assert split_statements("A[a;b] --> B") == ["A[a;b] --> B"]

    def test_semicolon_inside_quotes_kept(self):
        """A semicolon inside a quoted label does not split."""
        assert split_statements('A["x; y"]') == ['A["x; y"]']

    def test_semicolon_inside_pipe_label_kept(self):
        """A semicolon inside |...| edge label does not split."""
        assert split_statements("A -->|x;y| B") == ["A -->|x;y| B"]

    def test_trailing_semicolon(self):
        """A trailing separator yields an empty final part."""
        assert split_statements("A;") == ["A", ""]


# ─── is_directive Tests ───────────────────────────────────────────────────────


class TestIsDirective:
    def test_class_def(self):
        """classDef lines are directives."""
        assert is_directive("classDef hot fill:#f96")

    def test_style_and_link_style(self):
        """style / linkStyle lines are directives."""
        assert is_directive("style A fill:#f00")
        assert is_directive("linkStyle 0 stroke:#333")

    def test_acc_title_with_colon(self):
        """accTitle: text is a directive even without a space."""
        assert is_directive("accTitle: My diagram")

    def test_prefix_is_not_a_directive(self):
        """An identifier that merely starts with a keyword is kept."""
        assert not is_directive("classification --> B")
        assert not is_directive("styled[Styled]")

    def test_end_is_not_a_directive(self):
        """'end' closes a subgraph and must reach the classifier."""
        assert not is_directive("end")


# ─── normalize Tests ──────────────────────────────────────────────────────────


class TestNormalize:
    def test_empty_text(self):
        """Empty input produces no lines."""
        result = normalize("")
        assert result.lines == []
        assert result.dropped == []

    def test_comments_and_blank_lines_removed(self):
        """%% comment lines and blank lines disappear; numbering is physical."""
        result = normalize("graph TD\n%% a comment\n\n  A[x]  \n")
        assert result.lines == [SourceLine(1, "graph TD"), SourceLine(4, "A[x]")]

    def test_indented_comment_removed(self):
        """Comments may be indented."""
        result = normalize("    %% indented\nA")
        assert result.lines == [SourceLine(2, "A")]

    def test_statements_share_line_number(self):
        """Statements split on ';' keep their physical line number."""
        result = normalize("graph TD\nA --> B; B --> C")
        assert result.lines == [
            SourceLine(1, "graph TD"),
            SourceLine(2, "A --> B"),
            SourceLine(2, "B --> C"),
        ]

    def test_directives_dropped_in_order(self):
        """Directive lines go to ``dropped`` and never to ``lines``."""
        result = normalize("A[x]\nclassDef hot fill:#f96\nclass A hot\nB[y]")
        assert [line.text for line in result.lines] == ["A[x]", "B[y]"]
        assert result.dropped == [
            SourceLine(2, "classDef hot fill:#f96"),
            SourceLine(3, "class A hot"),
        ]

    def test_windows_line_endings(self):
        """CRLF and lone CR both end a line."""
        result = normalize("A\r\nB\rC")
        assert result.lines == [SourceLine(1, "A"), SourceLine(2, "B"), SourceLine(3, "C")]

    def test_nested_direction_dropped(self):
        """'direction LR' inside a subgraph is an unsupported directive."""
        result = normalize("subgraph S\ndirection LR\nend")
        assert [line.text for line in result.lines] == ["subgraph S", "end"]
        assert [line.text for line in result.dropped] == ["direction LR"]
