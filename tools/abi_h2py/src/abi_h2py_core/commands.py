from __future__ import annotations

import argparse
import json
from pathlib import Path

from ._core_base import ConfigurationError, load_config, resolve_target, resolve_target_names, write_json
from .generation import generate_target, probe_target


def command_generate(args: argparse.Namespace) -> int:
    repo_root = Path(args.repo_root).resolve()
    config = load_config(Path(args.config).resolve())
    target_names = resolve_target_names(config=config, target_name=args.target)

    if args.output and len(target_names) != 1:
        raise ConfigurationError("--output can only be used with a single target via --target.")

    exit_code = 0
    for target_name in target_names:
        result = generate_target(
            repo_root=repo_root,
            config=config,
            target_name=target_name,
            output_override=args.output,
            dry_run=args.dry_run,
            check=args.check,
        )
        print(f"[{target_name}] generate: module={result['module']} status={result['status']} path={result['output_path']}")
        if args.print_diff and result["diff"]:
            print(result["diff"])
        if args.check and result["status"] == "drift":
            exit_code = 1
    return exit_code


def command_probe(args: argparse.Namespace) -> int:
    repo_root = Path(args.repo_root).resolve()
    config = load_config(Path(args.config).resolve())
    payload = probe_target(repo_root=repo_root, config=config, target_name=args.target)

    if args.output:
        write_json(Path(args.output).resolve(), payload)
        print(f"[{args.target}] probe: wrote {len(payload['declarations'])} declarations to {args.output}")
    else:
        print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


def command_list_targets(args: argparse.Namespace) -> int:
    config = load_config(Path(args.config).resolve())
    for target_name in resolve_target_names(config=config, target_name=None):
        target = resolve_target(config, target_name)
        print(f"{target_name}\t{target['module']}")
    return 0
