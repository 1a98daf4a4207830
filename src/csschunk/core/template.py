"""Small builder for the generated loader source.

Statements are assembled from typed fragments: plain strings are literal
code, ``Json`` values are interpolated as JSON, ``None`` parts are dropped.
Blocks indent their body with one tab per level.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Any, Iterable, Iterator

INDENT_UNIT = "\t"


class Json:
    __slots__ = ("value",)

    def __init__(self, value: Any) -> None:
        self.value = value

    def render(self) -> str:
        return json.dumps(self.value, separators=(",", ":"), ensure_ascii=False)

    def __repr__(self) -> str:
        return f"Json({self.value!r})"


def render_fragment(part: Any) -> str:
    if part is None:
        return ""
    if isinstance(part, Json):
        return part.render()
    if isinstance(part, str):
        return part
    raise TypeError(f"Unsupported code fragment: {part!r}")


def indent(text: str, depth: int = 1) -> str:
    prefix = INDENT_UNIT * depth
    return "\n".join(prefix + line if line else line for line in text.split("\n"))


def as_string(lines: Iterable[str]) -> str:
    return "\n".join(lines)


class CodeBuilder:
    def __init__(self) -> None:
        self._lines: list[str] = []
        self._depth = 0

    def line(self, *parts: Any) -> CodeBuilder:
        text = "".join(render_fragment(part) for part in parts)
        self._lines.append(indent(text, self._depth) if text else "")
        return self

    def when(self, condition: Any, *parts: Any) -> CodeBuilder:
        if condition:
            self.line(*parts)
        return self

    def source(self, text: str) -> CodeBuilder:
        """Append an already rendered multi-line fragment at the current depth."""
        if text:
            self._lines.append(indent(text, self._depth))
        return self

    def blank(self) -> CodeBuilder:
        self._lines.append("")
        return self

    @contextmanager
    def indented(self) -> Iterator[CodeBuilder]:
        self._depth += 1
        try:
            yield self
        finally:
            self._depth -= 1

    @contextmanager
    def block(self, *head: Any, close: str = "}") -> Iterator[CodeBuilder]:
        self.line(*head)
        with self.indented():
            yield self
        self.line(close)

    def render(self) -> str:
        return as_string(self._lines)
