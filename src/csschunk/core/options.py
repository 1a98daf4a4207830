from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from csschunk.core.filenames import DEFAULT_FILENAME, derive_chunk_filename
from csschunk.core.schema_registry import validate_against_schema

OPTIONS_SCHEMA = "plugin_options.schema.json"
DEFAULT_SKIN_FIELD = "__SKIN__"
DEFAULT_SKIN = "default"

_TOP_LEVEL_KEYS = {
    "filename",
    "chunk_filename",
    "ignore_order",
    "cross_origin_loading",
    "skin_field",
    "default_skin",
}
_STRING_KEYS = ("filename", "chunk_filename", "skin_field", "default_skin")


def _coerce_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        token = value.strip().lower()
        if token in {"1", "true", "yes", "on"}:
            return True
        if token in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"{field_name} must be a boolean.")


def normalize_options(raw: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValueError("Options must be an object.")

    unknown = sorted(set(raw.keys()) - _TOP_LEVEL_KEYS)
    if unknown:
        raise ValueError(f"Unknown option field(s): {', '.join(unknown)}")

    normalized: dict[str, Any] = {}
    for key in sorted(raw.keys()):
        value = raw[key]
        if value is None:
            continue
        if key in _STRING_KEYS:
            if not isinstance(value, str):
                raise ValueError(f"{key} must be a string.")
            token = value.strip()
            if token or key == "default_skin":
                normalized[key] = token
        elif key == "ignore_order":
            normalized[key] = _coerce_bool(value, key)
        elif key == "cross_origin_loading":
            if value is False:
                continue
            if not isinstance(value, str):
                raise ValueError("cross_origin_loading must be a string or false.")
            normalized[key] = value.strip()

    validate_against_schema(normalized, OPTIONS_SCHEMA, label="Options")
    return normalized


@dataclass(frozen=True)
class ExtractOptions:
    filename: str = DEFAULT_FILENAME
    chunk_filename: str = derive_chunk_filename(DEFAULT_FILENAME)
    ignore_order: bool = False
    cross_origin_loading: str | None = None
    skin_field: str = DEFAULT_SKIN_FIELD
    default_skin: str = DEFAULT_SKIN

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None = None) -> ExtractOptions:
        cfg = normalize_options(raw or {})
        filename = cfg.get("filename", DEFAULT_FILENAME)
        return cls(
            filename=filename,
            chunk_filename=cfg.get("chunk_filename") or derive_chunk_filename(filename),
            ignore_order=cfg.get("ignore_order", False),
            cross_origin_loading=cfg.get("cross_origin_loading"),
            skin_field=cfg.get("skin_field")
            or os.environ.get("CSSCHUNK_SKIN_FIELD")
            or DEFAULT_SKIN_FIELD,
            default_skin=cfg["default_skin"]
            if "default_skin" in cfg
            else os.environ.get("CSSCHUNK_SKIN", DEFAULT_SKIN),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "filename": self.filename,
            "chunk_filename": self.chunk_filename,
            "ignore_order": self.ignore_order,
            "skin_field": self.skin_field,
            "default_skin": self.default_skin,
        }
        if self.cross_origin_loading:
            payload["cross_origin_loading"] = self.cross_origin_loading
        return payload


def load_options(path: Path) -> ExtractOptions:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Failed to read options {path}: {exc}") from exc

    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            raw = yaml.safe_load(text)
        else:
            raw = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ValueError(f"Options file is not valid JSON/YAML: {path}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError("Options file must contain an object.")
    return ExtractOptions.from_dict(raw)
