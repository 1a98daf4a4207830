from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable

MODULE_TYPE = "css/mini-extract"

_SKIN_RE = re.compile(
    r"(?:\?|%3F|&|%26)skin(?:=|%3D)([^|&% ]*)(?:\||%7C)?([^&% ]*)",
    re.IGNORECASE,
)


def skin_of(identifier: str) -> str:
    """Return the skin tag encoded in a module request, or "" for the base."""
    match = _SKIN_RE.search(identifier)
    if match is None:
        return ""
    return match.group(1)


@dataclass(frozen=True)
class CssModule:
    identifier: str
    content: str
    identifier_index: int = 0
    media: str = ""
    source_map: dict[str, Any] | None = None
    skin: str | None = None
    module_type: str = MODULE_TYPE

    @property
    def skin_tag(self) -> str:
        if self.skin is not None:
            return self.skin
        return skin_of(self.identifier)

    @property
    def ref(self) -> str:
        if self.identifier_index:
            return f"{self.identifier}#{self.identifier_index}"
        return self.identifier

    @property
    def full_identifier(self) -> str:
        return f"css {self.identifier} {self.identifier_index}"

    def readable_identifier(self, shorten: Callable[[str], str] | None = None) -> str:
        name = shorten(self.identifier) if shorten is not None else self.identifier
        suffix = f" ({self.identifier_index})" if self.identifier_index else ""
        return f"css {name}{suffix}"

    def name_for_condition(self) -> str:
        resource = self.identifier.split("!")[-1]
        idx = resource.find("?")
        if idx >= 0:
            return resource[:idx]
        return resource

    def size(self) -> int:
        return len(self.content)

    def update_hash(self, digest: Any) -> None:
        digest.update(self.full_identifier.encode("utf-8"))
        digest.update(self.content.encode("utf-8"))
        digest.update((self.media or "").encode("utf-8"))
        if self.source_map:
            serialized = json.dumps(self.source_map, sort_keys=True, separators=(",", ":"))
            digest.update(serialized.encode("utf-8"))


def module_from_dict(payload: Any, *, field_name: str = "module") -> CssModule:
    if not isinstance(payload, dict):
        raise ValueError(f"{field_name} must be an object.")

    identifier = payload.get("identifier")
    if not isinstance(identifier, str) or not identifier:
        raise ValueError(f"{field_name}.identifier must be a non-empty string.")
    content = payload.get("content", "")
    if not isinstance(content, str):
        raise ValueError(f"{field_name}.content must be a string.")

    index = payload.get("index", 0)
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise ValueError(f"{field_name}.index must be a non-negative integer.")

    media = payload.get("media") or ""
    if not isinstance(media, str):
        raise ValueError(f"{field_name}.media must be a string.")

    source_map = payload.get("source_map")
    if source_map is not None and not isinstance(source_map, dict):
        raise ValueError(f"{field_name}.source_map must be an object.")

    skin = payload.get("skin")
    if skin is not None and not isinstance(skin, str):
        raise ValueError(f"{field_name}.skin must be a string.")

    return CssModule(
        identifier=identifier,
        content=content,
        identifier_index=index,
        media=media.strip(),
        source_map=source_map,
        skin=skin.strip() if isinstance(skin, str) else None,
    )


def css_modules(modules: Iterable[Any]) -> list[CssModule]:
    return [
        module
        for module in modules
        if isinstance(module, CssModule) and module.module_type == MODULE_TYPE
    ]


def group_modules_by_skin(modules: Iterable[Any]) -> dict[str, list[CssModule]]:
    """Split a chunk's CSS modules into one list per skin, in first-seen order."""
    grouped: dict[str, list[CssModule]] = {}
    for module in css_modules(modules):
        grouped.setdefault(module.skin_tag, []).append(module)
    return grouped
