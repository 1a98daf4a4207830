from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from csschunk.core.compilation import Chunk, Compilation
from csschunk.core.filenames import render_filename, skin_filename
from csschunk.core.hashing import content_hash, create_hash, encode_digest, fold_chunk_maps
from csschunk.core.loader import CssChunkLoader, StyleDocument
from csschunk.core.modules import MODULE_TYPE, CssModule, css_modules, group_modules_by_skin
from csschunk.core.options import ExtractOptions
from csschunk.core.ordering import PLUGIN_NAME, OrderResult, format_conflict, resolve_module_order
from csschunk.core.render import RenderedAsset, render_css_asset
from csschunk.core.runtime import (
    AssetPath,
    css_chunk_flags,
    render_local_vars,
    render_require_ensure,
)
from csschunk.core.skins import SkinMap, build_skin_map, collect_chunk_skins

logger = logging.getLogger(__name__)

PHASE_CONTENT_HASH = "content_hash"
PHASE_CHUNK_HASH = "chunk_hash"
PHASE_MANIFEST = "manifest_assembly"
PHASE_LOCAL_VARS = "runtime_local_vars"
PHASE_REQUIRE_ENSURE = "runtime_require_ensure"
PHASES = (
    PHASE_CONTENT_HASH,
    PHASE_CHUNK_HASH,
    PHASE_MANIFEST,
    PHASE_LOCAL_VARS,
    PHASE_REQUIRE_ENSURE,
)


class PhaseDispatcher:
    """Named build phases with callbacks run in registration order."""

    def __init__(self) -> None:
        self._callbacks: Dict[str, List[tuple[str, Callable[..., Any]]]] = {
            phase: [] for phase in PHASES
        }

    def tap(self, phase: str, name: str, callback: Callable[..., Any]) -> None:
        if phase not in self._callbacks:
            raise ValueError(f"Unknown build phase: {phase!r}")
        self._callbacks[phase].append((name, callback))

    def call(self, phase: str, *args: Any) -> None:
        for name, callback in self._callbacks[phase]:
            logger.debug("phase %s -> %s", phase, name)
            callback(*args)

    def waterfall(self, phase: str, value: Any, *args: Any) -> Any:
        for name, callback in self._callbacks[phase]:
            logger.debug("phase %s -> %s", phase, name)
            value = callback(value, *args)
        return value


@dataclass(frozen=True)
class ManifestEntry:
    identifier: str
    filename: str
    chunk_id: Any
    skin: str
    hash: str
    render: Callable[[], RenderedAsset]


@dataclass
class BuildResult:
    assets: Dict[str, RenderedAsset] = field(default_factory=dict)
    runtime: Dict[str, Dict[str, str]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


class CssExtractPlugin:
    def __init__(self, options: ExtractOptions | None = None) -> None:
        self.options = options or ExtractOptions()

    def apply(self, dispatcher: PhaseDispatcher) -> None:
        dispatcher.tap(PHASE_CONTENT_HASH, PLUGIN_NAME, self.update_content_hash)
        dispatcher.tap(PHASE_CHUNK_HASH, PLUGIN_NAME, self.hash_for_chunk)
        dispatcher.tap(PHASE_MANIFEST, PLUGIN_NAME, self.render_manifest)
        dispatcher.tap(PHASE_LOCAL_VARS, PLUGIN_NAME, self.local_vars)
        dispatcher.tap(PHASE_REQUIRE_ENSURE, PLUGIN_NAME, self.require_ensure)

    # -- hashing -------------------------------------------------------------

    def update_content_hash(self, chunk: Chunk, compilation: Compilation) -> None:
        output = compilation.output
        chunk.content_hash[MODULE_TYPE] = content_hash(
            chunk.modules,
            hash_function=output.hash_function,
            hash_digest=output.hash_digest,
            hash_digest_length=output.hash_digest_length,
        )

    def hash_for_chunk(self, digest: Any, chunk: Chunk, compilation: Compilation) -> None:
        maps = compilation.chunk_maps(chunk)
        fold_chunk_maps(
            digest,
            self.options.chunk_filename,
            hash_map=maps.hash,
            content_hash_map=maps.content_hash,
            name_map=maps.name,
        )

    # -- assets --------------------------------------------------------------

    def chunk_filename_template(self, chunk: Chunk) -> str:
        return self.options.filename if chunk.has_runtime else self.options.chunk_filename

    def asset_filename(self, chunk: Chunk, skin: str, compilation: Compilation) -> str:
        return render_filename(
            skin_filename(self.chunk_filename_template(chunk), skin),
            chunk_id=chunk.chunk_id,
            name=chunk.name,
            chunk_hash=chunk.hash,
            content_hash=chunk.content_hash.get(MODULE_TYPE, ""),
            full_hash=compilation.full_hash,
        )

    def render_manifest(
        self,
        entries: List[ManifestEntry],
        chunk: Chunk,
        compilation: Compilation,
    ) -> List[ManifestEntry]:
        for skin, modules in group_modules_by_skin(chunk.modules).items():
            entries.append(
                ManifestEntry(
                    identifier=f"{PLUGIN_NAME}.{chunk.chunk_id}{'@' + skin if skin else ''}",
                    filename=self.asset_filename(chunk, skin, compilation),
                    chunk_id=chunk.chunk_id,
                    skin=skin,
                    hash=chunk.content_hash.get(MODULE_TYPE, ""),
                    render=lambda modules=modules: self.render_content_asset(
                        compilation, chunk, modules
                    ),
                )
            )
        return entries

    def order_modules(self, chunk: Chunk, modules: List[CssModule]) -> OrderResult:
        consumers = [(group.name, group.sorted_modules(modules)) for group in chunk.groups]
        return resolve_module_order(modules, consumers)

    def render_content_asset(
        self,
        compilation: Compilation,
        chunk: Chunk,
        modules: List[CssModule],
    ) -> RenderedAsset:
        result = self.order_modules(chunk, modules)
        if not self.options.ignore_order:
            for conflict in result.conflicts:
                compilation.warnings.append(
                    format_conflict(chunk.label, conflict, lambda module: module.readable_identifier())
                )
        return render_css_asset(result.modules)

    # -- runtime -------------------------------------------------------------

    def local_vars(self, source: str, chunk: Chunk, compilation: Compilation) -> str:
        if not css_chunk_flags(compilation.all_async_chunks(chunk)):
            return source
        return render_local_vars(source, [chunk.chunk_id])

    def skin_map(self, chunk: Chunk, compilation: Compilation) -> SkinMap | None:
        return build_skin_map(collect_chunk_skins(compilation.all_async_chunks(chunk)))

    def require_ensure(self, source: str, chunk: Chunk, compilation: Compilation) -> str:
        async_chunks = compilation.all_async_chunks(chunk)
        flags = css_chunk_flags(async_chunks)
        if not flags:
            return source

        asset_path = AssetPath.from_template(
            self.options.chunk_filename,
            compilation.chunk_maps(chunk),
            full_hash=compilation.full_hash,
        )
        return render_require_ensure(
            source,
            css_chunks=flags,
            asset_path=asset_path,
            skin_map=self.skin_map(chunk, compilation),
            cross_origin_loading=self.options.cross_origin_loading
            or compilation.output.cross_origin_loading,
            skin_field=self.options.skin_field,
            default_skin=self.options.default_skin,
        )

    def create_loader(
        self,
        chunk: Chunk,
        compilation: Compilation,
        document: StyleDocument,
        *,
        active_skin: Callable[[], str | None] | None = None,
    ) -> CssChunkLoader:
        """Build the loader model the runtime chunk's generated code implements."""

        def href_for(chunk_id: str, skin: str) -> str:
            return self.asset_filename(compilation.chunk_by_id(chunk_id), skin, compilation)

        return CssChunkLoader(
            document,
            css_chunks=css_chunk_flags(compilation.all_async_chunks(chunk)),
            href_for=href_for,
            skin_map=self.skin_map(chunk, compilation),
            public_path=compilation.output.public_path,
            cross_origin_loading=self.options.cross_origin_loading
            or compilation.output.cross_origin_loading,
            active_skin=active_skin,
            default_skin=self.options.default_skin,
        )


def run_compilation(
    compilation: Compilation,
    options: ExtractOptions | None = None,
    *,
    dispatcher: PhaseDispatcher | None = None,
) -> BuildResult:
    """Run every build phase over ``compilation`` and collect the outputs."""
    dispatcher = dispatcher or PhaseDispatcher()
    plugin = CssExtractPlugin(options)
    plugin.apply(dispatcher)
    output = compilation.output

    for chunk in compilation.chunks:
        if css_modules(chunk.modules):
            dispatcher.call(PHASE_CONTENT_HASH, chunk, compilation)
        if not chunk.hash:
            chunk.hash = chunk.content_hash.get(MODULE_TYPE, "")

    for chunk in compilation.chunks:
        if not chunk.has_runtime:
            continue
        digest = create_hash(output.hash_function)
        digest.update(chunk.hash.encode("utf-8"))
        dispatcher.call(PHASE_CHUNK_HASH, digest, chunk, compilation)
        chunk.hash = encode_digest(digest, output.hash_digest)[: output.hash_digest_length]

    result = BuildResult()
    for chunk in compilation.chunks:
        entries = dispatcher.waterfall(PHASE_MANIFEST, [], chunk, compilation)
        for entry in entries:
            if entry.filename in result.assets:
                raise ValueError(
                    f"Conflict: multiple assets emit to the same filename {entry.filename}"
                )
            result.assets[entry.filename] = entry.render()

        if chunk.has_runtime:
            local_vars = dispatcher.waterfall(PHASE_LOCAL_VARS, "", chunk, compilation)
            require_ensure = dispatcher.waterfall(PHASE_REQUIRE_ENSURE, "", chunk, compilation)
            if local_vars or require_ensure:
                result.runtime[str(chunk.chunk_id)] = {
                    "local_vars": local_vars,
                    "require_ensure": require_ensure,
                }

    result.warnings = list(compilation.warnings)
    return result
