"""Command line interface for rendering template modules."""

from __future__ import annotations

import argparse
import importlib.util
import logging
import sys
from pathlib import Path
from types import ModuleType

from .config import RendererOptions
from .engine import parse_param_pairs
from .errors import InkstreamError
from .rendering import Renderer


def load_template_module(path: str | Path) -> ModuleType:
    """Import a Python file exposing ``TEMPLATE``.

    ``PARTIALS`` (name -> body) and a ``FRONT_MATTER`` string are optional.
    """
    module_path = Path(path)
    if not module_path.is_file():
        msg = f"template file '{module_path}' does not exist."
        raise ValueError(msg)
    spec = importlib.util.spec_from_file_location(f"inkstream_template_{module_path.stem}", module_path)
    if spec is None or spec.loader is None:
        msg = f"cannot load template file '{module_path}'."
        raise ValueError(msg)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    if not callable(getattr(module, "TEMPLATE", None)):
        msg = f"template file '{module_path}' does not define a TEMPLATE body."
        raise ValueError(msg)
    return module


def _add_plugin_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--plugin",
        action="append",
        default=[],
        help="Plugin module path, optionally module:attr (repeatable).",
    )


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="inkstream", description="Streamed template rendering.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    render_parser = subparsers.add_parser("render", help="Render a template module to stdout.")
    render_parser.add_argument("template", type=Path, help="Python file defining TEMPLATE.")
    render_parser.add_argument(
        "--data",
        action="append",
        default=[],
        help="Data file or directory (repeatable, later paths win).",
    )
    render_parser.add_argument(
        "--helpers",
        action="append",
        default=[],
        help="Helper module path (repeatable).",
    )
    render_parser.add_argument(
        "--set",
        action="append",
        default=[],
        help="Context value in key=value form (repeatable).",
    )
    render_parser.add_argument(
        "--option",
        action="append",
        default=[],
        help="Renderer option in key=value form, e.g. on_helper_error=placeholder (repeatable).",
    )
    _add_plugin_argument(render_parser)

    plugins_parser = subparsers.add_parser("plugins", help="List attached plugins.")
    _add_plugin_argument(plugins_parser)

    extensions_parser = subparsers.add_parser("extensions", help="List registered data extensions.")
    _add_plugin_argument(extensions_parser)
    return parser


def _build_renderer(args: argparse.Namespace, raw_options: dict[str, str] | None = None) -> Renderer:
    raw = dict(raw_options or {})
    raw.setdefault("plugin_modules", ",".join(args.plugin))
    if getattr(args, "data", None):
        raw.setdefault("data_paths", ",".join(args.data))
    if getattr(args, "helpers", None):
        raw.setdefault("helper_modules", ",".join(args.helpers))
    renderer = Renderer(RendererOptions.from_mapping(raw))
    for warning in renderer.warnings:
        print(warning, file=sys.stderr)
    return renderer


def main(argv: list[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(list(sys.argv[1:] if argv is None else argv))
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "render":
            renderer = _build_renderer(args, parse_param_pairs(args.option, option="--option"))
            module = load_template_module(args.template)
            for name, body in getattr(module, "PARTIALS", {}).items():
                renderer.add_template(name, body)
            name = args.template.stem
            renderer.add_template(name, module.TEMPLATE, getattr(module, "FRONT_MATTER", None))
            with renderer:
                renderer.render_sync(name, parse_param_pairs(args.set), sink=sys.stdout.write)
            sys.stdout.write("\n")
            return 0

        renderer = _build_renderer(args)
        if args.command == "plugins":
            for plugin_name, config in renderer.plugins.plugin_info().items():
                print(f"{plugin_name}\t{config or {}}")
            return 0
        if args.command == "extensions":
            for extension in renderer.data.registry.extensions():
                print(extension)
            return 0
    except (ValueError, InkstreamError) as exc:
        parser.exit(status=2, message=f"error: {exc}\n")

    parser.exit(status=2, message=f"error: unknown command '{args.command}'\n")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
