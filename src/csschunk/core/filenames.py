from __future__ import annotations

import re
from typing import Any

DEFAULT_FILENAME = "[name].css"

PLACEHOLDER_RE = re.compile(
    r"\[(id|name|chunkhash|contenthash|hash)(?::(\d+))?\]",
    re.IGNORECASE,
)
CHUNKHASH_RE = re.compile(r"\[chunkhash(?::(\d+))?\]", re.IGNORECASE)
CONTENTHASH_RE = re.compile(r"\[contenthash(?::(\d+))?\]", re.IGNORECASE)
NAME_RE = re.compile(r"\[name\]", re.IGNORECASE)

_CHUNK_PLACEHOLDERS_RE = re.compile(r"\[(name|id|chunkhash)\]")
_BASENAME_RE = re.compile(r"(^|/)([^/]*(?:\?|$))")
_DIRNAME_RE = re.compile(r"^(.*[\\/])?")


def derive_chunk_filename(filename: str) -> str:
    """Return a chunk filename template that differs per chunk.

    Templates that already depend on the chunk are kept; otherwise ``[id].``
    is prefixed to the basename.
    """
    if _CHUNK_PLACEHOLDERS_RE.search(filename):
        return filename
    return _BASENAME_RE.sub(r"\1[id].\2", filename, count=1)


def split_dirname(template: str) -> tuple[str, str]:
    match = _DIRNAME_RE.match(template)
    dirname = (match.group(1) if match else None) or ""
    return dirname, template[len(dirname):]


def skin_filename(template: str, skin: str) -> str:
    if not skin:
        return template
    dirname, basename = split_dirname(template)
    return f"{dirname}{skin}@{basename}"


def _truncate(value: str, length: str | None) -> str:
    if length:
        return value[: int(length)]
    return value


def render_filename(
    template: str,
    *,
    chunk_id: Any,
    name: str | None = None,
    chunk_hash: str = "",
    content_hash: str = "",
    full_hash: str = "",
) -> str:
    def _replace(match: re.Match[str]) -> str:
        placeholder = match.group(1).lower()
        length = match.group(2)
        if placeholder == "id":
            return str(chunk_id)
        if placeholder == "name":
            return name or str(chunk_id)
        if placeholder == "chunkhash":
            return _truncate(chunk_hash, length)
        if placeholder == "contenthash":
            return _truncate(content_hash, length)
        return _truncate(full_hash, length)

    return PLACEHOLDER_RE.sub(_replace, template)
