"""Source file model used by the analysis engine.

Files are scanned with regular expressions for top-level declarations and
identifier occurrences. This is enough for name-based completions, lookups
and references; there is no type inference.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

IDENTIFIER_RE = re.compile(r"[A-Za-z_$][\w$]*")

DECLARATION_RE = re.compile(
    r"\b(?P<kind>var|let|const|function\*?|class)\s+(?P<name>[A-Za-z_$][\w$]*)"
)

STRING_RE = re.compile(r"""(?P<quote>["'])(?P<body>(?:\\.|(?!(?P=quote)).)*?)(?P=quote)""")

_COMMENT_RE = re.compile(r"//[^\n]*|/\*.*?\*/", re.S)


def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


@dataclass
class Declaration:
    """A named declaration found in a source file."""

    name: str
    kind: str
    start: int
    end: int

    @property
    def type(self) -> str:
        if self.kind.startswith("function"):
            return "fn()"
        if self.kind == "class":
            return "fn()"
        return "?"


@dataclass
class SourceFile:
    """Text of one file plus the declarations scanned from it."""

    name: str
    text: str
    declarations: Dict[str, Declaration] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.declarations = self._scan_declarations()

    def _scan_declarations(self) -> Dict[str, Declaration]:
        masked = _mask_comments(self.text)
        found: Dict[str, Declaration] = {}
        for match in DECLARATION_RE.finditer(masked):
            name = match.group("name")
            # First declaration wins, later ones are reassignments.
            if name not in found:
                found[name] = Declaration(
                    name=name,
                    kind=match.group("kind"),
                    start=match.start("name"),
                    end=match.end("name"),
                )
        return found

    def resolve_offset(self, pos: object) -> int:
        """Turn an ``end`` query value into a character offset.

        Accepts an integer offset or a ``{"line": n, "ch": n}`` object with
        zero-based line numbers.

        Raises:
            ValueError: If the position is malformed or out of range
        """
        if _is_int(pos):
            offset = pos
        elif isinstance(pos, dict) and _is_int(pos.get("line")) and _is_int(pos.get("ch", 0)):
            offset = self._line_offset(pos["line"]) + pos.get("ch", 0)
        else:
            raise ValueError(f"Invalid position: {pos!r}")
        if offset < 0 or offset > len(self.text):
            raise ValueError(f"Position {offset} is outside of file {self.name}")
        return offset

    def _line_offset(self, line: int) -> int:
        if line < 0:
            raise ValueError(f"Line {line} is outside of file {self.name}")
        offset = 0
        for _ in range(line):
            nl = self.text.find("\n", offset)
            if nl == -1:
                raise ValueError(f"Line {line} is outside of file {self.name}")
            offset = nl + 1
        return offset

    def word_before(self, offset: int) -> Tuple[int, str]:
        """Return the start offset and text of the identifier ending at offset."""
        start = offset
        while start > 0 and _is_ident_char(self.text[start - 1]):
            start -= 1
        return start, self.text[start:offset]

    def word_at(self, offset: int) -> Optional[Tuple[int, int, str]]:
        """Return ``(start, end, name)`` of the identifier touching offset."""
        start, _ = self.word_before(offset)
        end = offset
        while end < len(self.text) and _is_ident_char(self.text[end]):
            end += 1
        if start == end:
            return None
        name = self.text[start:end]
        if name[0].isdigit():
            return None
        return start, end, name

    def occurrences(self, name: str) -> Iterator[Tuple[int, int]]:
        masked = _mask_comments(self.text)
        for match in IDENTIFIER_RE.finditer(masked):
            if match.group() == name:
                yield match.start(), match.end()

    def string_literals(self) -> List[str]:
        return [m.group("body") for m in STRING_RE.finditer(self.text)]

    def string_at(self, offset: int) -> Optional[Tuple[int, str]]:
        """Return ``(start, prefix)`` when offset falls inside a string literal.

        The literal may be unterminated, as it usually is while typing.
        """
        line_start = self.text.rfind("\n", 0, offset) + 1
        quote: Optional[str] = None
        quote_pos = -1
        i = line_start
        while i < offset:
            ch = self.text[i]
            if quote is None and ch in "'\"":
                quote, quote_pos = ch, i
            elif quote is not None and ch == "\\":
                i += 1
            elif quote is not None and ch == quote:
                quote = None
            i += 1
        if quote is None:
            return None
        return quote_pos + 1, self.text[quote_pos + 1 : offset]

    def comment_before(self, offset: int) -> Optional[str]:
        """Return the comment block directly above the line holding offset."""
        line_start = self.text.rfind("\n", 0, offset) + 1
        lines = self.text[:line_start].split("\n")[:-1]
        collected: List[str] = []
        block_open = False
        while lines:
            line = lines.pop().strip()
            if block_open:
                collected.append(line.lstrip("/*").strip())
                if line.startswith("/*"):
                    block_open = False
                    break
                continue
            if line.startswith("//"):
                collected.append(line[2:].strip())
            elif line.endswith("*/"):
                body = line[:-2]
                if body.lstrip().startswith("/*"):
                    collected.append(body.lstrip("/*").strip())
                    break
                collected.append(body.lstrip("*").strip())
                block_open = True
            else:
                break
        text = "\n".join(reversed([c for c in collected if c])).strip()
        return text or None


def _mask_comments(text: str) -> str:
    """Blank out comments while keeping offsets stable."""
    return _COMMENT_RE.sub(lambda m: re.sub(r"[^\n]", " ", m.group()), text)


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
