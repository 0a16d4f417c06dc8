from __future__ import annotations

import difflib
import json
import os
import shutil
from enum import Enum
from pathlib import Path
from typing import Any

import jsonschema

TOOL_NAME = "abi_h2py"
TOOL_VERSION = "1.0.0"
DECLARATION_KINDS = ("include", "export", "constant", "structure")


class H2PyError(Exception):
    pass


class ConfigurationError(H2PyError):
    pass


class ToolchainError(H2PyError):
    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage} failed: {message}")
        self.stage = stage


class ProbeParseError(H2PyError):
    pass


class ExportMode(Enum):
    NONE = "none"
    DEFAULT = "default"
    ON_REQUEST = "on_request"

    @classmethod
    def parse(cls, value: str) -> "ExportMode":
        for mode in cls:
            if mode.value == value:
                return mode
        allowed = ", ".join(mode.value for mode in cls)
        raise ConfigurationError(f"Unknown export mode '{value}'. Expected one of: {allowed}")


def load_json(path: Path) -> dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"Unable to read JSON file '{path}': {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in '{path}': {exc}") from exc


def write_json(path: Path, value: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(value, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def get_schema_path(kind: str) -> Path:
    base = Path(__file__).resolve().parent / "schemas"
    mapping = {
        "config": base / "config.schema.json",
    }
    if kind not in mapping:
        raise ConfigurationError(f"Unknown schema kind: {kind}")
    return mapping[kind]


def validate_with_jsonschema(kind: str, payload: dict[str, Any]) -> None:
    schema_path = get_schema_path(kind)
    schema_payload = load_json(schema_path)
    try:
        jsonschema.validate(payload, schema_payload)
    except jsonschema.ValidationError as exc:
        location = "/".join(str(item) for item in exc.absolute_path) or "<root>"
        raise ConfigurationError(f"{kind} failed JSON schema validation at {location}: {exc.message}") from exc


def normalize_string_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError(f"Target field '{key}' must be an array when specified.")
    out: list[str] = []
    for idx, item in enumerate(value):
        if not isinstance(item, str) or not item:
            raise ConfigurationError(f"Target field '{key}[{idx}]' must be a non-empty string.")
        out.append(item)
    return out


def validate_declaration(decl: Any, label: str) -> None:
    if not isinstance(decl, dict):
        raise ConfigurationError(f"{label} must be an object")
    kinds = [kind for kind in DECLARATION_KINDS if kind in decl]
    if len(kinds) != 1:
        raise ConfigurationError(
            f"{label} must contain exactly one of: {', '.join(DECLARATION_KINDS)}"
        )
    kind = kinds[0]
    value = decl[kind]
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"{label}.{kind} must be a non-empty string")

    if kind == "export":
        ExportMode.parse(value)
    elif kind == "include":
        local = decl.get("local")
        if local is not None and not isinstance(local, bool):
            raise ConfigurationError(f"{label}.local must be boolean when specified")
    elif kind == "constant":
        name = decl.get("name")
        if name is not None and (not isinstance(name, str) or not name):
            raise ConfigurationError(f"{label}.name must be a non-empty string when specified")
    elif kind == "structure":
        members = normalize_string_list(decl.get("members"), f"{label}.members")
        if not members:
            raise ConfigurationError(f"{label}.members must list at least one member")
        for key in ["encode_func", "decode_func"]:
            func = decl.get(key)
            if func is not None and (not isinstance(func, str) or not func):
                raise ConfigurationError(f"{label}.{key} must be a non-empty string when specified")
        with_tail = decl.get("with_tail")
        if with_tail is not None and not isinstance(with_tail, bool):
            raise ConfigurationError(f"{label}.with_tail must be boolean when specified")


def validate_config_payload(payload: dict[str, Any]) -> None:
    if not isinstance(payload, dict):
        raise ConfigurationError("config root must be an object")

    targets = payload.get("targets")
    if not isinstance(targets, dict) or not targets:
        raise ConfigurationError("config must define non-empty 'targets' object")
    for target_name, target in targets.items():
        if not isinstance(target_name, str) or not target_name:
            raise ConfigurationError("config target names must be non-empty strings")
        if not isinstance(target, dict):
            raise ConfigurationError(f"config.targets.{target_name} must be an object")
        label = f"config.targets.{target_name}"

        module_name = target.get("module")
        if not isinstance(module_name, str) or not module_name:
            raise ConfigurationError(f"{label}.module must be a non-empty string")
        output_path = target.get("output_path")
        if output_path is not None and (not isinstance(output_path, str) or not output_path):
            raise ConfigurationError(f"{label}.output_path must be a non-empty string when specified")

        toolchain = target.get("toolchain")
        if toolchain is not None:
            if not isinstance(toolchain, dict):
                raise ConfigurationError(f"{label}.toolchain must be an object when specified")
            compiler = toolchain.get("compiler")
            if compiler is not None and (not isinstance(compiler, str) or not compiler):
                raise ConfigurationError(f"{label}.toolchain.compiler must be a non-empty string when specified")
            for key in ["compiler_candidates", "cflags", "ldflags", "include_dirs"]:
                normalize_string_list(toolchain.get(key), f"{label}.toolchain.{key}")

        declarations = target.get("declarations")
        if not isinstance(declarations, list) or not declarations:
            raise ConfigurationError(f"{label}.declarations must be a non-empty array")
        for idx, decl in enumerate(declarations):
            validate_declaration(decl, f"{label}.declarations[{idx}]")

    validate_with_jsonschema("config", payload)


def load_config(path: Path) -> dict[str, Any]:
    config = load_json(path)
    validate_config_payload(config)
    return config


def resolve_target(config: dict[str, Any], target_name: str) -> dict[str, Any]:
    targets = config.get("targets")
    if not isinstance(targets, dict):
        raise ConfigurationError("Config is missing required object: 'targets'.")
    target = targets.get(target_name)
    if not isinstance(target, dict):
        known = ", ".join(sorted(targets.keys()))
        raise ConfigurationError(f"Unknown target '{target_name}'. Known targets: {known or '<none>'}")
    return target


def resolve_target_names(config: dict[str, Any], target_name: str | None) -> list[str]:
    if target_name:
        resolve_target(config, target_name)
        return [target_name]
    targets = config.get("targets")
    if not isinstance(targets, dict) or not targets:
        raise ConfigurationError("Config has no valid targets.")
    return sorted(targets.keys())


def ensure_relative_path(root: Path, value: str) -> Path:
    path = Path(value)
    if path.is_absolute():
        return path
    return root / path


def _dedupe_non_empty_strings(values: list[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for raw in values:
        value = raw.strip()
        if not value or value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


def default_compiler_candidates() -> list[str]:
    candidates: list[str] = []
    for env_key in ["ABI_H2PY_CC", "CC"]:
        value = os.environ.get(env_key)
        if isinstance(value, str) and value.strip():
            candidates.append(value.strip())
    if os.name == "nt":
        candidates.extend(["gcc.exe", "clang.exe"])
    else:
        candidates.extend(["cc", "gcc", "clang"])
    return _dedupe_non_empty_strings(candidates)


def _resolve_executable_candidate(candidate: str) -> str | None:
    expanded = os.path.expanduser(os.path.expandvars(candidate.strip()))
    if not expanded:
        return None

    # Explicit path (absolute or relative with separators).
    if any(sep in expanded for sep in ["/", "\\"]):
        candidate_path = Path(expanded)
        if candidate_path.exists():
            return str(candidate_path)
        return None

    return shutil.which(expanded)


def resolve_compiler(compiler: str | None, compiler_candidates: list[str] | None = None) -> str:
    candidate_sources: list[str] = []
    if compiler:
        candidate_sources.append(compiler)
    candidate_sources.extend(compiler_candidates or [])
    candidate_sources.extend(default_compiler_candidates())

    candidates = _dedupe_non_empty_strings(candidate_sources)
    for candidate in candidates:
        resolved = _resolve_executable_candidate(candidate)
        if resolved:
            return resolved

    raise ToolchainError(
        "compile",
        "C compiler not found; tried: "
        + (", ".join(candidates) or "<none>")
        + ". Configure toolchain.compiler/toolchain.compiler_candidates or set ABI_H2PY_CC.",
    )


def read_text_if_exists(path: Path) -> str:
    if not path.exists():
        return ""
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Unable to read file '{path}': {exc}") from exc


def write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def normalized_lines(value: str) -> list[str]:
    return value.replace("\r\n", "\n").splitlines()


def compute_unified_diff(old_content: str, new_content: str, old_label: str, new_label: str) -> str:
    diff_lines = difflib.unified_diff(
        normalized_lines(old_content),
        normalized_lines(new_content),
        fromfile=old_label,
        tofile=new_label,
        lineterm="",
    )
    return "\n".join(diff_lines)


def write_artifact_if_changed(
    *,
    path: Path,
    content: str,
    dry_run: bool,
    check: bool,
) -> tuple[str, str]:
    old_content = read_text_if_exists(path)
    if old_content == content:
        return "unchanged", ""
    if check:
        return "drift", compute_unified_diff(old_content, content, f"a/{path}", f"b/{path}")
    if dry_run:
        return "would_write", compute_unified_diff(old_content, content, f"a/{path}", f"b/{path}")
    write_text(path, content)
    return "updated", compute_unified_diff(old_content, content, f"a/{path}", f"b/{path}")
