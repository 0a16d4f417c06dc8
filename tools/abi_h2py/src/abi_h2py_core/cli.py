from __future__ import annotations

import argparse
import sys

from ._core_base import TOOL_VERSION, H2PyError
from .commands import command_generate, command_list_targets, command_probe


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="abi_h2py",
        description="Generate dependency-free Python modules from C header constants and structure layouts.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {TOOL_VERSION}")

    sub = parser.add_subparsers(dest="command", required=True)

    generate = sub.add_parser("generate", help="Probe the host toolchain and write generated modules.")
    generate.add_argument(
        "--repo-root",
        default=".",
        help="Repository root used to resolve relative paths (default: current directory).",
    )
    generate.add_argument("--config", required=True, help="Path to abi_h2py config JSON.")
    generate.add_argument("--target", help="Optional target name. If omitted, all targets are generated.")
    generate.add_argument("--output", help="Override the output path (only valid with --target).")
    generate.add_argument("--dry-run", action="store_true", help="Do not write files; report what would change.")
    generate.add_argument("--check", action="store_true", help="Return non-zero if generated output is out of date.")
    generate.add_argument("--print-diff", action="store_true", help="Print unified diff of generated changes.")
    generate.set_defaults(func=command_generate)

    probe = sub.add_parser("probe", help="Run the layout probe and print the discovered facts as JSON.")
    probe.add_argument(
        "--repo-root",
        default=".",
        help="Repository root used to resolve relative paths (default: current directory).",
    )
    probe.add_argument("--config", required=True, help="Path to abi_h2py config JSON.")
    probe.add_argument("--target", required=True, help="Target name from config targets map.")
    probe.add_argument("--output", help="Write probe facts JSON to path.")
    probe.set_defaults(func=command_probe)

    list_targets = sub.add_parser("list-targets", help="List targets from config.")
    list_targets.add_argument("--config", required=True, help="Path to abi_h2py config JSON.")
    list_targets.set_defaults(func=command_list_targets)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return int(args.func(args))
    except H2PyError as exc:
        print(f"abi_h2py error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
