"""
Lenient reader for the JSON dialect found in BeamNG level files.

Accepted beyond strict JSON:
- ``//`` line and ``/* */`` block comments
- trailing commas before ``]`` or ``}``
- repeated or missing commas between values (repaired, with a warning)
- invalid escapes such as ``"art\\shapes"`` (kept literally, with a warning)
- raw tabs and other control characters inside strings, except newlines
- a leading ``+`` on numbers
- duplicate object keys (last one wins, earlier ones are flagged as shadowed)
- several top-level values in one document (newline-delimited scene files)

Every value keeps its source span and numbers keep their raw text, so callers
can patch the original text in place instead of re-serialising it.
"""
from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from ...models.errors import DuplicateKeyWarning, FormatError, RepairedSyntaxWarning
from ...models.schema import JsonArray, JsonLiteral, JsonNumber, JsonObject, JsonString, Member, Node
from ...utils.diagnostics import DiagnosticLog

_NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_WS_RE = re.compile("[ \t\r\n\ufeff]*")
_STR_CHUNK_RE = re.compile(r'[^"\\\n]*')
_HEX4_RE = re.compile(r"[0-9a-fA-F]{4}")
_LITERALS = (("true", True), ("false", False), ("null", None))
_ESCAPES = {'"': '"', "\\": "\\", "/": "/", "b": "\b", "f": "\f", "n": "\n", "r": "\r", "t": "\t"}


class _SyntaxError(Exception):
    def __init__(self, message: str, pos: int):
        super().__init__(message)
        self.pos = pos


def line_col(text: str, pos: int) -> Tuple[int, int]:
    line = text.count("\n", 0, pos) + 1
    col = pos - (text.rfind("\n", 0, pos) + 1) + 1
    return line, col


class _Reader:
    def __init__(self, text: str, source: str, log: Optional[DiagnosticLog]):
        self.text = text
        self.n = len(text)
        self.pos = 0
        self.source = source
        self.log = log
        self.comments = 0

    # -- diagnostics --------------------------------------------------------

    def _repair(self, what: str, pos: int) -> None:
        if self.log is not None:
            line, _ = line_col(self.text, pos)
            self.log.warning(
                f"Repaired {what} in {self.source} at line {line}",
                code=RepairedSyntaxWarning.__name__,
                source_file=self.source,
            )

    def _duplicate(self, key: str, pos: int) -> None:
        if self.log is not None:
            line, _ = line_col(self.text, pos)
            self.log.warning(
                f"Duplicate key '{key}' in {self.source} at line {line}; using the later value",
                code=DuplicateKeyWarning.__name__,
                source_file=self.source,
            )

    # -- lexing -------------------------------------------------------------

    def skip_ws(self) -> None:
        text, n = self.text, self.n
        while self.pos < n:
            self.pos = _WS_RE.match(text, self.pos).end()
            if self.pos >= n:
                break
            if text.startswith("//", self.pos):
                end = text.find("\n", self.pos)
                self.pos = n if end < 0 else end + 1
                self.comments += 1
            elif text.startswith("/*", self.pos):
                end = text.find("*/", self.pos + 2)
                if end < 0:
                    raise _SyntaxError("unterminated block comment", self.pos)
                self.pos = end + 2
                self.comments += 1
            else:
                break

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < self.n else ""

    # -- values -------------------------------------------------------------

    def parse_value(self) -> Node:
        self.skip_ws()
        c = self.peek()
        if c == "{":
            return self.parse_object()
        if c == "[":
            return self.parse_array()
        if c == '"':
            return self.parse_string()
        if c and (c.isdigit() or c in "+-."):
            return self.parse_number()
        for word, value in _LITERALS:
            if self.text.startswith(word, self.pos):
                start = self.pos
                self.pos += len(word)
                return JsonLiteral(value=value, start=start, end=self.pos)
        if not c:
            raise _SyntaxError("unexpected end of document", self.pos)
        raise _SyntaxError(f"unexpected character {c!r}", self.pos)

    def parse_object(self) -> JsonObject:
        start = self.pos
        self.pos += 1
        members: List[Member] = []
        seen: Dict[str, int] = {}
        while True:
            self.skip_ws()
            c = self.peek()
            if c == "}":
                self.pos += 1
                break
            if c == ",":
                self._repair("a stray comma", self.pos)
                self.pos += 1
                continue
            if c != '"':
                if not c:
                    raise _SyntaxError("unterminated object", start)
                raise _SyntaxError(f"expected a quoted key, found {c!r}", self.pos)
            key_start = self.pos
            key = self.parse_string().value
            self.skip_ws()
            if self.peek() != ":":
                raise _SyntaxError(f"expected ':' after key '{key}'", self.pos)
            self.pos += 1
            value = self.parse_value()
            if key in seen:
                members[seen[key]].shadowed = True
                self._duplicate(key, key_start)
            seen[key] = len(members)
            members.append(Member(key=key, value=value, key_start=key_start))

            self.skip_ws()
            c = self.peek()
            if c == ",":
                self.pos += 1
            elif c == '"':
                self._repair("a missing comma", self.pos)
            elif c != "}":
                if not c:
                    raise _SyntaxError("unterminated object", start)
                raise _SyntaxError(f"expected ',' or '}}', found {c!r}", self.pos)
        return JsonObject(members=members, start=start, end=self.pos)

    def parse_array(self) -> JsonArray:
        start = self.pos
        self.pos += 1
        items: List[Node] = []
        while True:
            self.skip_ws()
            c = self.peek()
            if c == "]":
                self.pos += 1
                break
            if c == ",":
                self._repair("a stray comma", self.pos)
                self.pos += 1
                continue
            if not c:
                raise _SyntaxError("unterminated array", start)
            items.append(self.parse_value())

            self.skip_ws()
            c = self.peek()
            if c == ",":
                self.pos += 1
            elif c == "]":
                continue
            elif c and (c in '{["+-.' or c.isdigit() or c in "tfn"):
                self._repair("a missing comma", self.pos)
            elif not c:
                raise _SyntaxError("unterminated array", start)
            else:
                raise _SyntaxError(f"expected ',' or ']', found {c!r}", self.pos)
        return JsonArray(items=items, start=start, end=self.pos)

    def parse_string(self) -> JsonString:
        start = self.pos
        text, n = self.text, self.n
        self.pos += 1
        out: List[str] = []
        while True:
            chunk = _STR_CHUNK_RE.match(text, self.pos)
            out.append(chunk.group(0))
            self.pos = chunk.end()
            if self.pos >= n:
                raise _SyntaxError("unterminated string", start)
            c = text[self.pos]
            if c == '"':
                self.pos += 1
                break
            if c == "\n":
                raise _SyntaxError("unterminated string", start)
            # backslash
            nxt = text[self.pos + 1] if self.pos + 1 < n else ""
            if nxt in _ESCAPES and nxt:
                out.append(_ESCAPES[nxt])
                self.pos += 2
                continue
            if nxt == "u" and _HEX4_RE.fullmatch(text, self.pos + 2, self.pos + 6):
                code = int(text[self.pos + 2:self.pos + 6], 16)
                self.pos += 6
                if 0xD800 <= code < 0xDC00 and text.startswith("\\u", self.pos):
                    if _HEX4_RE.fullmatch(text, self.pos + 2, self.pos + 6):
                        low = int(text[self.pos + 2:self.pos + 6], 16)
                        if 0xDC00 <= low < 0xE000:
                            code = 0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00)
                            self.pos += 6
                out.append(chr(code))
                continue
            # Windows style path separators; keep the backslash
            self._repair("an invalid escape", self.pos)
            out.append("\\")
            self.pos += 1
        return JsonString(value="".join(out), start=start, end=self.pos)

    def parse_number(self) -> JsonNumber:
        m = _NUMBER_RE.match(self.text, self.pos)
        if not m:
            raise _SyntaxError("malformed number", self.pos)
        raw = m.group(0)
        try:
            value = Decimal(raw)
        except InvalidOperation:
            raise _SyntaxError(f"malformed number {raw!r}", self.pos)
        start = self.pos
        self.pos = m.end()
        return JsonNumber(raw=raw, value=value, start=start, end=self.pos)


def _format_error(source: str, text: str, err: _SyntaxError) -> FormatError:
    line, col = line_col(text, err.pos)
    return FormatError(source, str(err), line=line, column=col)


def _report_comments(reader: _Reader, log: Optional[DiagnosticLog]) -> None:
    if reader.comments and log is not None:
        log.info(
            f"Stripped {reader.comments} comment(s) from {reader.source}",
            code="CommentStripped",
            source_file=reader.source,
        )


def parse_json_text(text: str, source: str, log: Optional[DiagnosticLog] = None) -> Node:
    """Parse exactly one top-level value."""
    reader = _Reader(text, source, log)
    try:
        value = reader.parse_value()
        reader.skip_ws()
    except _SyntaxError as e:
        raise _format_error(source, text, e)
    if reader.pos < reader.n:
        raise _format_error(source, text, _SyntaxError("unexpected content after the document", reader.pos))
    _report_comments(reader, log)
    return value


def parse_json_stream(text: str, source: str, log: Optional[DiagnosticLog] = None) -> Tuple[List[Node], bool]:
    """
    Parse a sequence of top-level values. A broken value is reported as an error
    and reading resumes on the next line. Returns (values, damaged).

    Raises FormatError when nothing in a non-empty document can be read.
    """
    reader = _Reader(text, source, log)
    values: List[Node] = []
    damaged = False
    first_error: Optional[FormatError] = None
    while True:
        try:
            reader.skip_ws()
        except _SyntaxError as e:
            err = _format_error(source, text, e)
            damaged = True
            first_error = first_error or err
            if log is not None:
                log.error(str(err), code=FormatError.__name__, source_file=source)
            break
        if reader.pos >= reader.n:
            break
        value_start = reader.pos
        try:
            values.append(reader.parse_value())
        except _SyntaxError as e:
            err = _format_error(source, text, e)
            damaged = True
            first_error = first_error or err
            if log is not None:
                log.error(str(err), code=FormatError.__name__, source_file=source)
            # resume on the line after the one the broken value started on
            nl = text.find("\n", value_start)
            reader.pos = reader.n if nl < 0 else nl + 1
    if not values and first_error is not None:
        raise first_error
    _report_comments(reader, log)
    return values, damaged
