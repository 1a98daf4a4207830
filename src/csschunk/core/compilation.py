from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Hashable

import yaml

from csschunk.core.hashing import (
    DEFAULT_HASH_DIGEST,
    DEFAULT_HASH_DIGEST_LENGTH,
    DEFAULT_HASH_FUNCTION,
)
from csschunk.core.modules import MODULE_TYPE, CssModule, module_from_dict
from csschunk.core.schema_registry import validate_against_schema

COMPILATION_SCHEMA = "compilation.schema.json"


@dataclass(frozen=True)
class OutputOptions:
    hash_function: str = DEFAULT_HASH_FUNCTION
    hash_digest: str = DEFAULT_HASH_DIGEST
    hash_digest_length: int = DEFAULT_HASH_DIGEST_LENGTH
    public_path: str = ""
    cross_origin_loading: str | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> OutputOptions:
        payload = payload or {}
        cross_origin = payload.get("cross_origin_loading")
        return cls(
            hash_function=payload.get("hash_function", DEFAULT_HASH_FUNCTION),
            hash_digest=payload.get("hash_digest", DEFAULT_HASH_DIGEST),
            hash_digest_length=payload.get("hash_digest_length", DEFAULT_HASH_DIGEST_LENGTH),
            public_path=payload.get("public_path", ""),
            cross_origin_loading=cross_origin or None,
        )


@dataclass
class ChunkGroup:
    name: str
    chunks: list[Hashable] = field(default_factory=list)
    order: list[str] = field(default_factory=list)

    def module_index(self, module: CssModule) -> int | None:
        try:
            return self.order.index(module.ref)
        except ValueError:
            return None

    def sorted_modules(self, modules: list[CssModule]) -> list[CssModule]:
        """Return the modules this group places, in the group's desired order."""
        indexed = [
            (index, module)
            for module in modules
            if (index := self.module_index(module)) is not None
        ]
        indexed.sort(key=lambda item: item[0])
        return [module for _, module in indexed]


@dataclass
class Chunk:
    chunk_id: Hashable
    name: str | None = None
    hash: str = ""
    modules: list[CssModule] = field(default_factory=list)
    has_runtime: bool = False
    async_chunks: list[Hashable] = field(default_factory=list)
    groups: list[ChunkGroup] = field(default_factory=list)
    content_hash: dict[str, str] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.name or str(self.chunk_id)


@dataclass(frozen=True)
class ChunkMaps:
    hash: dict[str, str]
    content_hash: dict[str, str]
    name: dict[str, str]


@dataclass
class Compilation:
    chunks: list[Chunk] = field(default_factory=list)
    chunk_groups: list[ChunkGroup] = field(default_factory=list)
    output: OutputOptions = field(default_factory=OutputOptions)
    full_hash: str = ""
    warnings: list[str] = field(default_factory=list)

    def chunk_by_id(self, chunk_id: Hashable) -> Chunk:
        for chunk in self.chunks:
            if chunk.chunk_id == chunk_id or str(chunk.chunk_id) == str(chunk_id):
                return chunk
        raise ValueError(f"Unknown chunk id: {chunk_id!r}")

    def all_async_chunks(self, chunk: Chunk) -> list[Chunk]:
        """Return every chunk reachable on demand from ``chunk``, breadth first."""
        found: list[Chunk] = []
        seen: set[str] = {str(chunk.chunk_id)}
        queue = list(chunk.async_chunks)
        while queue:
            chunk_id = queue.pop(0)
            if str(chunk_id) in seen:
                continue
            seen.add(str(chunk_id))
            target = self.chunk_by_id(chunk_id)
            found.append(target)
            queue.extend(target.async_chunks)
        return found

    def chunk_maps(self, chunk: Chunk) -> ChunkMaps:
        hashes: dict[str, str] = {}
        content_hashes: dict[str, str] = {}
        names: dict[str, str] = {}
        for target in self.all_async_chunks(chunk):
            key = str(target.chunk_id)
            hashes[key] = target.hash
            if MODULE_TYPE in target.content_hash:
                content_hashes[key] = target.content_hash[MODULE_TYPE]
            if target.name:
                names[key] = target.name
        return ChunkMaps(hash=hashes, content_hash=content_hashes, name=names)


def compilation_from_dict(payload: Any) -> Compilation:
    validate_against_schema(payload, COMPILATION_SCHEMA, label="Compilation")

    groups = [
        ChunkGroup(
            name=item["name"],
            chunks=list(item.get("chunks", [])),
            order=list(item.get("order", [])),
        )
        for item in payload.get("chunk_groups", [])
    ]

    chunks: list[Chunk] = []
    seen_ids: set[str] = set()
    for chunk_index, item in enumerate(payload["chunks"]):
        chunk_id = item["id"]
        if str(chunk_id) in seen_ids:
            raise ValueError(f"Compilation contains duplicate chunk id: {chunk_id!r}")
        seen_ids.add(str(chunk_id))
        modules = [
            module_from_dict(module, field_name=f"chunks[{chunk_index}].modules[{module_index}]")
            for module_index, module in enumerate(item.get("modules", []))
        ]
        chunks.append(
            Chunk(
                chunk_id=chunk_id,
                name=item.get("name"),
                hash=item.get("hash", ""),
                modules=modules,
                has_runtime=bool(item.get("has_runtime", False)),
                async_chunks=list(item.get("async_chunks", [])),
                groups=[
                    group
                    for group in groups
                    if any(str(member) == str(chunk_id) for member in group.chunks)
                ],
            )
        )

    compilation = Compilation(
        chunks=chunks,
        chunk_groups=groups,
        output=OutputOptions.from_dict(payload.get("output")),
        full_hash=payload.get("full_hash", ""),
    )
    for chunk in chunks:
        for chunk_id in chunk.async_chunks:
            compilation.chunk_by_id(chunk_id)
    return compilation


def load_compilation(path: Path) -> Compilation:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Failed to read compilation {path}: {exc}") from exc

    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            raw = yaml.safe_load(text)
        else:
            raw = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ValueError(f"Compilation is not valid JSON/YAML: {path}") from exc

    if not isinstance(raw, dict):
        raise ValueError("Compilation must be an object.")
    return compilation_from_dict(raw)
