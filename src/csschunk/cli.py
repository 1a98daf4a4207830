from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from csschunk import __version__
from csschunk.core.compilation import Compilation, load_compilation
from csschunk.core.modules import group_modules_by_skin
from csschunk.core.options import ExtractOptions, load_options
from csschunk.core.ordering import format_conflict
from csschunk.core.pipeline import CssExtractPlugin, run_compilation


def _write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def _load_options_arg(config: str | None) -> ExtractOptions:
    if config is None:
        return ExtractOptions.from_dict({})
    return load_options(Path(config))


def _print_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        print(f"WARNING {warning}", file=sys.stderr)


def _run_build(args: argparse.Namespace) -> int:
    options = _load_options_arg(args.config)
    compilation = load_compilation(Path(args.compilation))
    result = run_compilation(compilation, options)

    out_dir = Path(args.out_dir)
    for filename in sorted(result.assets):
        _write_text(out_dir / filename, result.assets[filename].source())

    runtime_files: list[str] = []
    for chunk_id in sorted(result.runtime):
        for fragment, source in sorted(result.runtime[chunk_id].items()):
            rel_path = f"runtime/{chunk_id}.{fragment}.js"
            _write_text(out_dir / rel_path, source + "\n")
            runtime_files.append(rel_path)

    _print_warnings(result.warnings)
    _print_json(
        {
            "assets": sorted(result.assets),
            "runtime": runtime_files,
            "warning_count": len(result.warnings),
        }
    )
    return 0


def _run_order(args: argparse.Namespace) -> int:
    options = _load_options_arg(args.config)
    compilation = load_compilation(Path(args.compilation))
    chunk = compilation.chunk_by_id(args.chunk)
    modules = group_modules_by_skin(chunk.modules).get(args.skin, [])

    result = CssExtractPlugin(options).order_modules(chunk, modules)
    conflicts = [
        format_conflict(chunk.label, conflict, lambda module: module.readable_identifier())
        for conflict in result.conflicts
    ]
    if args.format == "text":
        for module in result.modules:
            print(module.ref)
        if not options.ignore_order:
            _print_warnings(conflicts)
        return 0

    _print_json(
        {
            "chunk": str(chunk.chunk_id),
            "skin": args.skin,
            "order": [module.ref for module in result.modules],
            "conflicts": [] if options.ignore_order else conflicts,
        }
    )
    return 0


def _run_skins(args: argparse.Namespace) -> int:
    compilation: Compilation = load_compilation(Path(args.compilation))
    chunk = compilation.chunk_by_id(args.chunk)
    skin_map = CssExtractPlugin().skin_map(chunk, compilation)
    _print_json(skin_map.to_runtime() if skin_map is not None else None)
    return 0


def _run_options(args: argparse.Namespace) -> int:
    _print_json(_load_options_arg(args.config).to_dict())
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="csschunk command-line tools.")
    parser.add_argument("--version", action="version", version=f"csschunk {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser(
        "build", help="Render CSS assets and loader fragments for a compilation."
    )
    build_parser.add_argument("compilation", help="Path to a compilation JSON/YAML file.")
    build_parser.add_argument("--out-dir", required=True, help="Directory for emitted files.")
    build_parser.add_argument(
        "--config",
        default=None,
        help="Optional path to an options JSON/YAML file.",
    )
    build_parser.set_defaults(handler=_run_build)

    order_parser = subparsers.add_parser(
        "order", help="Show the resolved module order for one chunk."
    )
    order_parser.add_argument("compilation", help="Path to a compilation JSON/YAML file.")
    order_parser.add_argument("--chunk", required=True, help="Chunk id.")
    order_parser.add_argument("--skin", default="", help="Skin to order (default: base).")
    order_parser.add_argument(
        "--format",
        choices=["json", "text"],
        default="json",
        help="Output format.",
    )
    order_parser.add_argument(
        "--config",
        default=None,
        help="Optional path to an options JSON/YAML file.",
    )
    order_parser.set_defaults(handler=_run_order)

    skins_parser = subparsers.add_parser(
        "skins", help="Show the skin table embedded in a runtime chunk's loader."
    )
    skins_parser.add_argument("compilation", help="Path to a compilation JSON/YAML file.")
    skins_parser.add_argument("--chunk", required=True, help="Runtime chunk id.")
    skins_parser.set_defaults(handler=_run_skins)

    options_parser = subparsers.add_parser("options", help="Show the effective options.")
    options_parser.add_argument(
        "--config",
        default=None,
        help="Optional path to an options JSON/YAML file.",
    )
    options_parser.set_defaults(handler=_run_options)

    args = parser.parse_args(argv)
    try:
        return args.handler(args)
    except (OSError, RuntimeError, ValueError) as exc:
        print(str(exc), file=sys.stderr)
        return 1
