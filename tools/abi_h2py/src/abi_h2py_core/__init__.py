from ._core_base import (
    ConfigurationError,
    ExportMode,
    H2PyError,
    ProbeParseError,
    ToolchainError,
    load_config,
)
from .builder import ModuleBuilder
from .declarations import member_numeric
from .generation import generate_target, probe_target
from .layout import IntegerField, LayoutTemplate, MemberFact, PaddingField, TrailingBytes, synthesize_layout
from .probe import parse_probe_output
from .render import render_module
from .toolchain import ToolchainRunner

__all__ = [
    "ConfigurationError",
    "ExportMode",
    "H2PyError",
    "IntegerField",
    "LayoutTemplate",
    "MemberFact",
    "ModuleBuilder",
    "PaddingField",
    "ProbeParseError",
    "ToolchainError",
    "ToolchainRunner",
    "TrailingBytes",
    "generate_target",
    "load_config",
    "member_numeric",
    "parse_probe_output",
    "probe_target",
    "render_module",
    "synthesize_layout",
]
