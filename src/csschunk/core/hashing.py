from __future__ import annotations

import base64
import hashlib
import json
from typing import Any, Iterable

from csschunk.core.filenames import CHUNKHASH_RE, CONTENTHASH_RE, NAME_RE
from csschunk.core.modules import css_modules

DEFAULT_HASH_FUNCTION = "sha256"
DEFAULT_HASH_DIGEST = "hex"
DEFAULT_HASH_DIGEST_LENGTH = 20
SUPPORTED_DIGESTS = ("hex", "base64")


def create_hash(hash_function: str = DEFAULT_HASH_FUNCTION) -> Any:
    try:
        return hashlib.new(hash_function)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Unsupported hash function: {hash_function!r}") from exc


def encode_digest(digest: Any, hash_digest: str = DEFAULT_HASH_DIGEST) -> str:
    if hash_digest == "hex":
        return digest.hexdigest()
    if hash_digest == "base64":
        return base64.b64encode(digest.digest()).decode("ascii")
    raise ValueError(
        f"Unsupported hash digest: {hash_digest!r} (expected one of {', '.join(SUPPORTED_DIGESTS)})."
    )


def content_hash(
    modules: Iterable[Any],
    *,
    hash_function: str = DEFAULT_HASH_FUNCTION,
    hash_digest: str = DEFAULT_HASH_DIGEST,
    hash_digest_length: int = DEFAULT_HASH_DIGEST_LENGTH,
) -> str:
    """Digest every CSS module of a chunk, in chunk order."""
    digest = create_hash(hash_function)
    for module in css_modules(modules):
        module.update_hash(digest)
    return encode_digest(digest, hash_digest)[:hash_digest_length]


def _dump(value: Any) -> bytes:
    return json.dumps(value, sort_keys=True, separators=(",", ":")).encode("utf-8")


def fold_chunk_maps(
    digest: Any,
    chunk_filename: str,
    *,
    hash_map: dict[str, str],
    content_hash_map: dict[str, str],
    name_map: dict[str, str],
) -> None:
    """Fold the chunk maps the runtime path depends on into a runtime chunk hash."""
    if CHUNKHASH_RE.search(chunk_filename):
        digest.update(_dump(hash_map))
    if CONTENTHASH_RE.search(chunk_filename):
        digest.update(_dump(content_hash_map))
    if NAME_RE.search(chunk_filename):
        digest.update(_dump(name_map))
