from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from csschunk.core.modules import CssModule

logger = logging.getLogger(__name__)

_EXTERNAL_IMPORT_PREFIX = "@import url"
_SINGLE_IMPORT_RE = re.compile(r"^(@import url\([^)]*\))\s*(;?)\s*$")


@dataclass(frozen=True)
class SourceSegment:
    text: str
    name: str | None = None
    source_map: dict[str, Any] | None = None


@dataclass
class RenderedAsset:
    segments: list[SourceSegment] = field(default_factory=list)

    def add(self, text: str, name: str | None = None, source_map: dict[str, Any] | None = None) -> None:
        self.segments.append(SourceSegment(text=text, name=name, source_map=source_map))

    def source(self) -> str:
        return "".join(segment.text for segment in self.segments)

    def size(self) -> int:
        return len(self.source())

    def sources(self) -> list[str]:
        return [segment.name for segment in self.segments if segment.name]


def is_external_import(content: str) -> bool:
    return content.strip().startswith(_EXTERNAL_IMPORT_PREFIX)


def splice_import_media(content: str, media: str) -> str:
    """Insert a media condition into a single ``@import url(...)`` statement.

    Statements that already carry a media list, hold more than one rule or do
    not match the ``@import url(...)`` shape are returned unchanged.
    """
    if not media:
        return content
    match = _SINGLE_IMPORT_RE.match(content.strip())
    if match is None:
        logger.debug("Leaving unsupported @import statement unchanged: %r", content)
        return content
    return f"{match.group(1)} {media};"


def render_css_asset(
    modules: Iterable[CssModule],
    shorten: Callable[[str], str] | None = None,
) -> RenderedAsset:
    externals = RenderedAsset()
    body = RenderedAsset()

    for module in modules:
        if is_external_import(module.content):
            externals.add(splice_import_media(module.content, module.media))
            externals.add("\n")
            continue

        if module.media:
            body.add(f"@media {module.media} {{\n")
        body.add(
            module.content,
            name=module.readable_identifier(shorten),
            source_map=module.source_map,
        )
        body.add("\n")
        if module.media:
            body.add("}\n")

    return RenderedAsset(segments=[*externals.segments, *body.segments])
