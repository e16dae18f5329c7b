"""Command-line interface for picotwig."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from picotwig.errors import CompileError, LexError, LoaderError, ParseError, RenderError


@dataclass(frozen=True, slots=True)
class CliOptions:
    """Parsed CLI options."""

    template: Path
    output_file: Path | None
    variables: dict[str, Any]
    search_paths: list[Path]
    debug: bool
    verbose: bool


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser (separate function for testability)."""
    p = argparse.ArgumentParser(
        prog="picotwig",
        description="Render a picotwig template",
    )
    p.add_argument("template", help="Template file to render")
    p.add_argument("-o", "--output", help="Output file (default: stdout)")
    p.add_argument(
        "-D",
        "--define",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Set a template variable (repeatable)",
    )
    p.add_argument(
        "--vars",
        metavar="FILE",
        help="JSON file holding an object of template variables",
    )
    p.add_argument(
        "--path",
        action="append",
        default=[],
        metavar="DIR",
        help="Extra template search directory (repeatable)",
    )
    p.add_argument(
        "--config",
        metavar="FILE",
        help="Config file (default: auto-discover picotwig.toml)",
    )
    p.add_argument("--debug", action="store_true", help="Dump AST to stderr")
    p.add_argument("--verbose", action="store_true", help="Log loader and compiler activity")
    return p


def parse_var_arg(s: str) -> tuple[str, str]:
    """Parse a NAME=VALUE string into (name, value)."""
    name, sep, value = s.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"invalid variable format (expected NAME=VALUE): {s}")
    return name, value


def load_config(config_path: Path | None, template_dir: Path) -> dict[str, Any]:
    """Load a TOML config file, returning an empty dict on missing/absent file."""
    path = config_path if config_path is not None else template_dir / "picotwig.toml"

    if not path.is_file():
        return {}

    with open(path, "rb") as f:
        return tomllib.load(f)


def load_vars_file(path: Path) -> dict[str, Any]:
    """Read template variables from a JSON object file."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise argparse.ArgumentTypeError(f"cannot read variables from {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise argparse.ArgumentTypeError(f"variables file must hold a JSON object: {path}")
    return data


def resolve_options(args: argparse.Namespace) -> CliOptions:
    """Merge config file and CLI args into CliOptions.

    Precedence: config file < --vars file < -D flags.
    """
    template = Path(args.template)
    template_dir = template.parent
    if not template_dir.parts:
        template_dir = Path(".")

    config_path = Path(args.config) if args.config else None
    config = load_config(config_path, template_dir)

    variables: dict[str, Any] = {}
    cfg_vars = config.get("vars")
    if isinstance(cfg_vars, dict):
        variables.update((str(k), v) for k, v in cfg_vars.items())
    if args.vars:
        variables.update(load_vars_file(Path(args.vars)))
    for raw in args.define:
        name, value = parse_var_arg(raw)
        variables[name] = value

    # Search paths: template dir, then config, then CLI
    search_paths: list[Path] = [template_dir]
    cfg_loader = config.get("loader")
    if isinstance(cfg_loader, dict):
        cfg_paths = cfg_loader.get("paths")
        if isinstance(cfg_paths, list):
            search_paths.extend(Path(p) for p in cfg_paths)
    search_paths.extend(Path(p) for p in args.path)

    output_file = Path(args.output) if args.output else None

    return CliOptions(
        template=template,
        output_file=output_file,
        variables=variables,
        search_paths=search_paths,
        debug=args.debug,
        verbose=args.verbose,
    )


def render_file(options: CliOptions) -> str:
    """Read, parse, compile and render a template file."""
    from picotwig.compiler import compile_document
    from picotwig.debug import dump_ast
    from picotwig.loader import FileSystemLoader
    from picotwig.parser import parse
    from picotwig.render import render

    source = options.template.read_text(encoding="utf-8")
    document = parse(source, options.template.name)

    if options.debug:
        dump_ast(document)

    loader = FileSystemLoader(list(options.search_paths))
    content = compile_document(document, loader, source)
    return render(
        content, options.variables, loader=loader, source=source, name=document.span.name
    )


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code (0/1/2). Does not call sys.exit()."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        options = resolve_options(args)
    except argparse.ArgumentTypeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except tomllib.TOMLDecodeError as exc:
        print(f"error: invalid config file: {exc}", file=sys.stderr)
        return 2

    if options.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    try:
        text = render_file(options)
    except (LexError, ParseError) as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except (CompileError, RenderError, LoaderError) as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except (OSError, UnicodeDecodeError) as exc:
        print(f"error: cannot read {options.template}: {exc}", file=sys.stderr)
        return 2

    if options.output_file:
        options.output_file.write_text(text, encoding="utf-8")
    else:
        sys.stdout.write(text)

    return 0
