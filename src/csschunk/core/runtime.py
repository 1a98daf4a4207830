from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from csschunk.core.compilation import ChunkMaps
from csschunk.core.filenames import PLACEHOLDER_RE
from csschunk.core.ordering import PLUGIN_NAME
from csschunk.core.skins import SkinMap
from csschunk.core.template import CodeBuilder, Json

DEFAULT_REQUIRE_FN = "__require__"
CHUNK_LOAD_ERROR_CODE = "CSS_CHUNK_LOAD_FAILED"

# Flags stored per chunk in the generated ``cssChunks`` table.
FLAG_BASE = 1
FLAG_SKINNED = 2


def is_identity_mapping(mapping: Mapping[Any, Any]) -> bool:
    """True when every key maps to itself, so ``chunkId`` can be used directly."""
    return all(str(key) == str(value) for key, value in mapping.items())


def prune_identity_entries(mapping: Mapping[Any, Any]) -> dict[str, Any]:
    return {str(key): value for key, value in mapping.items() if str(key) != str(value)}


def chunk_lookup(mapping: Mapping[Any, Any]) -> str:
    if is_identity_mapping(mapping):
        return "chunkId"
    return f"({Json(prune_identity_entries(mapping)).render()}[chunkId]||chunkId)"


def _truncated(mapping: Mapping[str, str], length: str | None) -> dict[str, str]:
    if not length:
        return dict(mapping)
    return {key: value[: int(length)] for key, value in mapping.items() if isinstance(value, str)}


@dataclass(frozen=True)
class PathPart:
    code: str
    literal: bool


@dataclass(frozen=True)
class AssetPath:
    parts: tuple[PathPart, ...]

    @classmethod
    def from_template(
        cls,
        template: str,
        chunk_maps: ChunkMaps,
        *,
        full_hash: str = "",
    ) -> AssetPath:
        parts: list[PathPart] = []
        cursor = 0
        for match in PLACEHOLDER_RE.finditer(template):
            if match.start() > cursor:
                parts.append(PathPart(template[cursor : match.start()], True))
            cursor = match.end()

            placeholder = match.group(1).lower()
            length = match.group(2)
            if placeholder == "id":
                parts.append(PathPart("chunkId", False))
            elif placeholder == "name":
                parts.append(PathPart(chunk_lookup(chunk_maps.name), False))
            elif placeholder == "chunkhash":
                parts.append(PathPart(chunk_lookup(_truncated(chunk_maps.hash, length)), False))
            elif placeholder == "contenthash":
                parts.append(
                    PathPart(chunk_lookup(_truncated(chunk_maps.content_hash, length)), False)
                )
            else:
                value = full_hash[: int(length)] if length else full_hash
                parts.append(PathPart(value, True))
        if cursor < len(template):
            parts.append(PathPart(template[cursor:], True))
        return cls(parts=tuple(parts))

    def expression(self) -> str:
        pieces: list[str] = []
        pending = ""
        has_literal = False
        for part in self.parts:
            if part.literal:
                pending += part.code
                has_literal = True
                continue
            if has_literal:
                pieces.append(Json(pending).render())
                pending, has_literal = "", False
            pieces.append(part.code)
        if has_literal:
            pieces.append(Json(pending).render())
        return " + ".join(pieces) or '""'

    def split_basename(self) -> tuple[AssetPath, AssetPath]:
        """Split into directory and basename so a skin prefix can go in between."""
        for index in range(len(self.parts) - 1, -1, -1):
            part = self.parts[index]
            if not part.literal:
                continue
            cut = max(part.code.rfind("/"), part.code.rfind("\\"))
            if cut < 0:
                continue
            head = PathPart(part.code[: cut + 1], True)
            tail = PathPart(part.code[cut + 1 :], True)
            before = (*self.parts[:index], head)
            after = (tail, *self.parts[index + 1 :]) if tail.code else self.parts[index + 1 :]
            return AssetPath(parts=before), AssetPath(parts=tuple(after))
        return AssetPath(parts=()), self


def css_chunk_flags(chunks: Iterable[Any]) -> dict[str, int]:
    """Return ``chunk id -> flags`` for every chunk carrying CSS modules."""
    flags: dict[str, int] = {}
    for chunk in chunks:
        value = 0
        for module in chunk.modules:
            value |= FLAG_SKINNED if module.skin_tag else FLAG_BASE
        if value:
            flags[str(chunk.chunk_id)] = value
    return flags


def render_local_vars(source: str, chunk_ids: Iterable[Any]) -> str:
    code = CodeBuilder()
    code.source(source)
    code.blank()
    code.line("// object to store loaded CSS chunks")
    with code.block("var installedCssChunks = {", close="};"):
        ids = [str(chunk_id) for chunk_id in chunk_ids]
        for position, chunk_id in enumerate(ids):
            code.line(Json(chunk_id), ": 0", "," if position < len(ids) - 1 else None)
    return code.render()


def _render_stylesheet_loader(
    code: CodeBuilder,
    *,
    require_fn: str,
    cross_origin_loading: str | None,
) -> None:
    with code.block("var loadStylesheet = function(href, title, isAlternate) {", close="};"):
        with code.block("return new Promise(function(resolve, reject) {", close="});"):
            code.line("var fullhref = ", require_fn, ".p + href, DOC = document, tag, list, i, j;")
            code.line(
                "var existingTags = [",
                "DOC.querySelectorAll('link[rel=\"stylesheet\"],link[rel=\"alternate stylesheet\"]'), ",
                'DOC.querySelectorAll("style")];',
            )
            with code.block("for(i = 0; i < existingTags.length; i++) {"):
                with code.block("for(list = existingTags[i], j = 0; j < list.length; j++) {"):
                    code.line(
                        'tag = list[j].getAttribute("data-href") || list[j].getAttribute("href");'
                    )
                    code.line("if(tag === href || tag === fullhref) { return resolve(); }")
            code.line('tag = DOC.createElement("link");')
            code.line('tag.type = "text/css";')
            code.line('tag.rel = isAlternate ? "alternate stylesheet" : "stylesheet";')
            code.line("if(title) { tag.title = title; }")
            # A link disabled before insertion is never fetched, so alternates are
            # disabled once loaded and do not hold up the chunk.
            with code.block("tag.onload = function() {", close="};"):
                code.line("tag.onload = null;")
                code.line("if(isAlternate) { tag.disabled = true; return; }")
                code.line("if(title) { tag.disabled = true; tag.disabled = false; }")
                code.line("resolve();")
            with code.block("tag.onerror = function() {", close="};"):
                code.line("tag.onerror = null;")
                code.line("tag.parentNode.removeChild(tag);")
                with code.block("if(isAlternate) {"):
                    code.line(
                        'console.warn("Loading alternate skin " + title + " of CSS chunk " + '
                        'chunkId + " failed.\\n(" + fullhref + ")");'
                    )
                    code.line("return;")
                code.line(
                    'var err = new Error("Loading CSS chunk " + chunkId + " failed.\\n(" + '
                    'fullhref + ")");'
                )
                code.line("err.code = ", Json(CHUNK_LOAD_ERROR_CODE), ";")
                code.line("err.request = fullhref;")
                code.line("reject(err);")
            code.line("tag.href = fullhref;")
            code.when(
                cross_origin_loading,
                'if(tag.href.indexOf(window.location.origin + "/") !== 0) { tag.crossOrigin = ',
                Json(cross_origin_loading),
                "; }",
            )
            code.line("DOC.head.appendChild(tag);")
            code.line("if(isAlternate) { resolve(); }")


def _render_skin_requests(
    code: CodeBuilder,
    *,
    asset_path: AssetPath,
    skin_map: SkinMap,
    skin_field: str,
    default_skin: str,
) -> None:
    directory, basename = asset_path.split_basename()
    runtime = skin_map.to_runtime()

    code.line("var flags = cssChunks[chunkId];")
    code.line("var dir = ", directory.expression(), ", base = ", basename.expression(), ";")
    code.line("if(flags & ", str(FLAG_BASE), ') { sheets.push(loadStylesheet(dir + base, "", false)); }')
    with code.block("if(flags & ", str(FLAG_SKINNED), ") {"):
        code.line(
            "var skins = ",
            Json(runtime["skins"]),
            ", active = window[",
            Json(skin_field),
            "] || ",
            Json(default_skin),
            ", diff = ",
            f"{Json(runtime['map']).render()}[chunkId]" if runtime["map"] else "0",
            ", k;",
        )
        if runtime["info"]:
            with code.block("if(diff && (diff = ", Json(runtime["info"]), "[diff])) {"):
                code.line(
                    "if(diff.l) { skins = skins.filter(function(skin) "
                    "{ return diff.l.indexOf(skin) < 0; }); }"
                )
                code.line("if(diff.e) { skins = skins.concat(diff.e); }")
        with code.block("for(k = 0; k < skins.length; k++) {"):
            code.line(
                'sheets.push(loadStylesheet(dir + skins[k] + "@" + base, skins[k], '
                "skins[k] !== active));"
            )


def render_require_ensure(
    source: str,
    *,
    css_chunks: Mapping[str, int],
    asset_path: AssetPath,
    skin_map: SkinMap | None = None,
    cross_origin_loading: str | None = None,
    skin_field: str = "__SKIN__",
    default_skin: str = "default",
    require_fn: str = DEFAULT_REQUIRE_FN,
) -> str:
    """Render the chunk-ensure fragment that loads a chunk's CSS on demand.

    The fragment runs inside the host's ensure function, where ``chunkId`` and
    the ``promises`` array are in scope. A load in flight is shared through
    ``installedCssChunks``; a failed load removes its entry so a later request
    starts over.
    """
    code = CodeBuilder()
    code.source(source)
    code.blank()
    code.line(f"// {PLUGIN_NAME} CSS loading")
    code.line("var cssChunks = ", Json(dict(css_chunks)), ";")
    code.line("if(installedCssChunks[chunkId]) { promises.push(installedCssChunks[chunkId]); }")
    with code.block("else if(installedCssChunks[chunkId] !== 0 && cssChunks[chunkId]) {"):
        _render_stylesheet_loader(
            code,
            require_fn=require_fn,
            cross_origin_loading=cross_origin_loading,
        )
        code.line("var sheets = [];")
        if skin_map is None:
            code.line('sheets.push(loadStylesheet(', asset_path.expression(), ', "", false));')
        else:
            _render_skin_requests(
                code,
                asset_path=asset_path,
                skin_map=skin_map,
                skin_field=skin_field,
                default_skin=default_skin,
            )
        code.line("promises.push(installedCssChunks[chunkId] = Promise.all(sheets).then(function() {")
        with code.indented():
            code.line("installedCssChunks[chunkId] = 0;")
        code.line("}, function(err) {")
        with code.indented():
            code.line("delete installedCssChunks[chunkId];")
            code.line("throw err;")
        code.line("}));")
    return code.render()
