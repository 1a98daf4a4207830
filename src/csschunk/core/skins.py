from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Hashable, Iterable, Sequence

from csschunk.core.modules import css_modules


@dataclass(frozen=True)
class SkinDiff:
    lacking: tuple[str, ...] | None = None
    extra: tuple[str, ...] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.lacking:
            payload["l"] = list(self.lacking)
        if self.extra:
            payload["e"] = list(self.extra)
        return payload


@dataclass(frozen=True)
class SkinMap:
    skins: tuple[str, ...]
    all_skins: tuple[str, ...]
    chunk_map: dict[Hashable, int] = field(default_factory=dict)
    diffs: dict[int, SkinDiff] = field(default_factory=dict)

    def skins_for(self, chunk_id: Hashable) -> list[str]:
        """Rebuild the ordered skin list of one chunk from reference and diff."""
        cluster_id = self.chunk_map.get(chunk_id)
        if cluster_id is None:
            by_key = {str(key): value for key, value in self.chunk_map.items()}
            cluster_id = by_key.get(str(chunk_id))
        if not cluster_id:
            return list(self.skins)
        diff = self.diffs.get(cluster_id)
        if diff is None:
            return list(self.skins)
        skins = [skin for skin in self.skins if skin not in (diff.lacking or ())]
        skins.extend(diff.extra or ())
        return skins

    def to_runtime(self) -> dict[str, Any]:
        return {
            "skins": list(self.skins),
            "map": {str(chunk_id): cluster for chunk_id, cluster in self.chunk_map.items()}
            or 0,
            "info": {str(cluster): diff.to_dict() for cluster, diff in self.diffs.items()}
            or 0,
        }


def _insert_in_canonical_order(
    chunk_skins: list[str],
    skin: str,
    canonical: list[str],
) -> None:
    position = canonical.index(skin)
    for index in range(len(chunk_skins) - 1, -1, -1):
        if canonical.index(chunk_skins[index]) < position:
            chunk_skins.insert(index + 1, skin)
            return
    chunk_skins.insert(0, skin)


def collect_chunk_skins(chunks: Iterable[Any]) -> list[tuple[Hashable, list[str]]]:
    """Return ``(chunk_id, skin tags)`` for each chunk, in module order."""
    collected: list[tuple[Hashable, list[str]]] = []
    for chunk in chunks:
        tags = [module.skin_tag for module in css_modules(chunk.modules)]
        collected.append((chunk.chunk_id, tags))
    return collected


def build_skin_map(chunk_skins: Sequence[tuple[Hashable, Iterable[str]]]) -> SkinMap | None:
    canonical: list[str] = []
    clusters: dict[tuple[str, ...], list[Hashable]] = {}

    for chunk_id, tags in chunk_skins:
        per_chunk: list[str] = []
        for skin in tags:
            if not skin:
                continue
            if skin not in canonical:
                canonical.append(skin)
            if skin not in per_chunk:
                _insert_in_canonical_order(per_chunk, skin, canonical)
        if per_chunk:
            clusters.setdefault(tuple(per_chunk), []).append(chunk_id)

    reference: tuple[str, ...] | None = None
    largest = 0
    for key, members in clusters.items():
        if len(members) > largest:
            largest = len(members)
            reference = key
    if reference is None:
        return None

    chunk_map: dict[Hashable, int] = {}
    diffs: dict[int, SkinDiff] = {}
    cluster_id = 0
    for key, members in clusters.items():
        if key == reference:
            continue
        cluster_id += 1
        for chunk_id in members:
            chunk_map[chunk_id] = cluster_id

        lacking = [skin for skin in canonical if skin in reference and skin not in key]
        extra = [skin for skin in canonical if skin in key and skin not in reference]
        diffs[cluster_id] = SkinDiff(
            lacking=tuple(lacking) or None,
            extra=tuple(extra) or None,
        )

    return SkinMap(
        skins=reference,
        all_skins=tuple(canonical),
        chunk_map=chunk_map,
        diffs=diffs,
    )
