from __future__ import annotations

from pathlib import Path
from typing import Any

from ._core_base import (
    ConfigurationError,
    ensure_relative_path,
    normalize_string_list,
    resolve_target,
    write_artifact_if_changed,
)
from .builder import ModuleBuilder
from .toolchain import ToolchainRunner


def build_runner_for_target(target: dict[str, Any], repo_root: Path) -> ToolchainRunner:
    toolchain_cfg = target.get("toolchain")
    if toolchain_cfg is None:
        toolchain_cfg = {}
    if not isinstance(toolchain_cfg, dict):
        raise ConfigurationError("Target field 'toolchain' must be an object when specified.")

    include_dirs_raw = normalize_string_list(toolchain_cfg.get("include_dirs"), "toolchain.include_dirs")
    return ToolchainRunner(
        compiler=toolchain_cfg.get("compiler"),
        compiler_candidates=normalize_string_list(toolchain_cfg.get("compiler_candidates"), "toolchain.compiler_candidates"),
        cflags=normalize_string_list(toolchain_cfg.get("cflags"), "toolchain.cflags"),
        ldflags=normalize_string_list(toolchain_cfg.get("ldflags"), "toolchain.ldflags"),
        include_dirs=[str(ensure_relative_path(repo_root, item).resolve()) for item in include_dirs_raw],
    )


def resolve_output_path(repo_root: Path, target: dict[str, Any], output_override: str | None) -> Path:
    if output_override:
        return ensure_relative_path(repo_root, output_override).resolve()
    output_path = target.get("output_path")
    if isinstance(output_path, str) and output_path:
        return ensure_relative_path(repo_root, output_path).resolve()
    module_name = str(target["module"])
    return ensure_relative_path(repo_root, module_name.replace(".", "/") + ".py").resolve()


def apply_declarations(builder: ModuleBuilder, declarations: list[dict[str, Any]]) -> None:
    for decl in declarations:
        if "include" in decl:
            builder.include(str(decl["include"]), local=bool(decl.get("local", False)))
        elif "export" in decl:
            builder.set_export_mode(str(decl["export"]))
        elif "constant" in decl:
            builder.constant(str(decl["constant"]), name=decl.get("name"))
        elif "structure" in decl:
            builder.structure(
                str(decl["structure"]),
                members=list(decl.get("members") or []),
                encode_func=decl.get("encode_func"),
                decode_func=decl.get("decode_func"),
                with_tail=bool(decl.get("with_tail", False)),
            )
        else:
            raise ConfigurationError(f"Unknown declaration: {decl!r}")


def builder_for_target(
    config: dict[str, Any],
    target_name: str,
    repo_root: Path,
    runner: ToolchainRunner | None = None,
    source_label: str | None = None,
) -> ModuleBuilder:
    target = resolve_target(config, target_name)
    builder = ModuleBuilder(
        str(target["module"]),
        runner=runner if runner is not None else build_runner_for_target(target, repo_root),
        source_label=source_label or f"target '{target_name}'",
    )
    declarations = target.get("declarations")
    if not isinstance(declarations, list):
        raise ConfigurationError(f"Target '{target_name}' has no declarations.")
    apply_declarations(builder, declarations)
    return builder


def generate_target(
    *,
    repo_root: Path,
    config: dict[str, Any],
    target_name: str,
    output_override: str | None = None,
    dry_run: bool = False,
    check: bool = False,
    runner: ToolchainRunner | None = None,
) -> dict[str, Any]:
    target = resolve_target(config, target_name)
    output_path = resolve_output_path(repo_root, target, output_override)
    builder = builder_for_target(config, target_name, repo_root, runner=runner)
    module_name = builder.name
    content = builder.finalize()
    status, diff = write_artifact_if_changed(path=output_path, content=content, dry_run=dry_run, check=check)
    return {
        "target": target_name,
        "module": module_name,
        "output_path": str(output_path),
        "status": status,
        "diff": diff,
    }


def probe_target(
    *,
    repo_root: Path,
    config: dict[str, Any],
    target_name: str,
    runner: ToolchainRunner | None = None,
) -> dict[str, Any]:
    builder = builder_for_target(config, target_name, repo_root, runner=runner)
    resolved = builder.resolve()
    commands = list(getattr(builder.runner, "commands", []))
    return {
        "target": target_name,
        "module": builder.name,
        "commands": commands,
        "declarations": [item.as_dict() for item in resolved],
    }
