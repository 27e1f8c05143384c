"""CLI entrypoint for the agentpm SDK (inspect and invoke installed tools)."""
from __future__ import annotations
import argparse
import asyncio
import json
import sys
from pathlib import Path

from .core.errors import ToolError
from .core.locator import ToolLocator, parse_specifier
from .core.logging import set_level
from .core.settings import Settings
from .loader import load, load_with_meta


def _env_pair(raw: str):
    if "=" not in raw:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {raw!r}")
    key, value = raw.split("=", 1)
    return key, value


def build_parser():
    p = argparse.ArgumentParser(prog="agentpm-sdk", description="Resolve and run agentpm tools")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command")

    def _tool_dir(sp):
        sp.add_argument("--tool-dir", help="Search this tool directory before the defaults")

    which = sub.add_parser("which", help="Print the manifest path a specifier resolves to")
    which.add_argument("spec")
    _tool_dir(which)

    versions = sub.add_parser("versions", help="List installed versions of a tool per search root")
    versions.add_argument("name", help="Tool name, e.g. @scope/name")
    _tool_dir(versions)

    meta = sub.add_parser("meta", help="Print tool metadata as JSON")
    meta.add_argument("spec")
    _tool_dir(meta)

    run = sub.add_parser("run", help="Invoke a tool with a JSON payload and print its result")
    run.add_argument("spec")
    _tool_dir(run)
    src = run.add_mutually_exclusive_group()
    src.add_argument("--input", help="JSON payload (default: read from stdin)")
    src.add_argument("--input-file", help="Read the JSON payload from this file")
    run.add_argument("--timeout-ms", type=int, help="Override the tool timeout")
    run.add_argument(
        "--env",
        action="append",
        type=_env_pair,
        default=[],
        metavar="KEY=VALUE",
        help="Extra environment variable for the tool (repeatable)",
    )
    return p


def _read_payload(args):
    if args.input is not None:
        raw = args.input
    elif args.input_file:
        raw = Path(args.input_file).read_text(encoding="utf-8")
    else:
        raw = sys.stdin.read()
    return json.loads(raw) if raw.strip() else {}


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1
    if args.debug:
        set_level("DEBUG")
    try:
        settings = Settings.from_env()
        if args.command == "which":
            hit = ToolLocator(settings).locate(args.spec, args.tool_dir)
            print(hit.manifest_path)
        elif args.command == "versions":
            locator = ToolLocator(settings)
            name = args.name if "@" not in args.name[1:] else parse_specifier(args.name).name
            listing = {str(root): locator.installed_versions(root, name) for root in locator.search_roots(args.tool_dir)}
            print(json.dumps(listing, indent=2))
        elif args.command == "meta":
            loaded = load_with_meta(args.spec, tool_dir_override=args.tool_dir, settings=settings)
            print(json.dumps(loaded.meta.to_dict(), indent=2))
        else:
            payload = _read_payload(args)
            tool = load(
                args.spec,
                timeout_ms=args.timeout_ms,
                tool_dir_override=args.tool_dir,
                env=dict(args.env),
                settings=settings,
            )
            result = asyncio.run(tool(payload))
            print(json.dumps(result))
    except (ToolError, json.JSONDecodeError, OSError) as e:
        print(f"agentpm-sdk: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
