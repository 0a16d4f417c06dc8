from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import Iterable, Union

from ._core_base import TOOL_NAME, ConfigurationError, ExportMode, write_artifact_if_changed
from .declarations import (
    ConstantDeclaration,
    Declaration,
    IncludeDirective,
    MemberSpec,
    StructureDeclaration,
    make_constant_declaration,
    make_structure_declaration,
)
from .pipeline import ResolvedDeclaration, build_probe_source, resolve_declarations
from .render import DEFAULT_EXPORT_LIST, ON_REQUEST_EXPORT_LIST, render_module, struct_object_name
from .toolchain import ToolchainRunner

MODULE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")
RESERVED_MODULE_NAMES = frozenset({"_struct", "UsageError", DEFAULT_EXPORT_LIST, ON_REQUEST_EXPORT_LIST})


class ModuleBuilder:
    """Accumulates declarations for one generated module.

    The export mode is state of the builder: each declaration captures the
    mode active when it is made, so later mode changes never affect earlier
    symbols. ``finalize()`` runs the probe once for everything pending,
    renders the module and clears the buffers for the next section.

    Used as a context manager, a clean exit finalizes pending declarations
    and writes them to ``output_path``, or to stdout when none was given.
    """

    def __init__(
        self,
        name: str | None = None,
        *,
        runner: ToolchainRunner | None = None,
        output_path: Path | str | None = None,
        source_label: str | None = None,
    ) -> None:
        self.name: str | None = None
        self.runner = runner if runner is not None else ToolchainRunner()
        self.output_path = Path(output_path) if output_path is not None else None
        self.source_label = source_label or Path(sys.argv[0]).name or TOOL_NAME
        self.includes: list[IncludeDirective] = []
        self.declarations: list[Declaration] = []
        self.export_mode = ExportMode.ON_REQUEST
        self._keys: set[str] = set()
        self._symbols: set[str] = set(RESERVED_MODULE_NAMES)
        if name is not None:
            self.module(name)

    def __enter__(self) -> "ModuleBuilder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None or not self.pending:
            return
        if self.output_path is not None:
            self.write()
        else:
            sys.stdout.write(self.finalize())

    @property
    def pending(self) -> bool:
        return bool(self.declarations)

    def _reset(self) -> None:
        self.includes = []
        self.declarations = []
        self.export_mode = ExportMode.ON_REQUEST
        self._keys = set()
        self._symbols = set(RESERVED_MODULE_NAMES)

    def module(self, name: str) -> None:
        if self.pending:
            raise ConfigurationError(
                f"Module '{self.name}' has pending declarations; finalize it before starting '{name}'."
            )
        if not MODULE_NAME_RE.match(name):
            raise ConfigurationError(f"Invalid module name '{name}'.")
        self.name = name

    def include(self, path: str, *, local: bool = False) -> IncludeDirective:
        if not path.strip():
            raise ConfigurationError("Include path must be a non-empty string.")
        directive = IncludeDirective(path=path.strip(), local=local)
        self.includes.append(directive)
        return directive

    def no_export(self) -> None:
        self.export_mode = ExportMode.NONE

    def use_export(self) -> None:
        self.export_mode = ExportMode.DEFAULT

    def use_export_ok(self) -> None:
        self.export_mode = ExportMode.ON_REQUEST

    def set_export_mode(self, mode: ExportMode | str) -> None:
        self.export_mode = mode if isinstance(mode, ExportMode) else ExportMode.parse(mode)

    def _register(self, decl: Declaration) -> None:
        if decl.key in self._keys:
            raise ConfigurationError(f"'{decl.key}' is already declared in module '{self.name}'.")
        for symbol in decl.exported_names:
            if symbol in self._symbols:
                raise ConfigurationError(f"Symbol '{symbol}' is already generated in module '{self.name}'.")
        internal = struct_object_name(decl.basename) if isinstance(decl, StructureDeclaration) else None
        if internal is not None and internal in self._symbols:
            raise ConfigurationError(f"Symbol '{internal}' is already generated in module '{self.name}'.")
        self._keys.add(decl.key)
        self._symbols.update(decl.exported_names)
        if internal is not None:
            self._symbols.add(internal)
        self.declarations.append(decl)

    def constant(self, source_name: str, *, name: str | None = None) -> ConstantDeclaration:
        decl = make_constant_declaration(source_name, name, self.export_mode)
        self._register(decl)
        return decl

    def structure(
        self,
        struct_name: str,
        *,
        members: Iterable[Union[MemberSpec, str]],
        encode_func: str | None = None,
        decode_func: str | None = None,
        with_tail: bool = False,
    ) -> StructureDeclaration:
        decl = make_structure_declaration(
            struct_name,
            members,
            self.export_mode,
            encode_func=encode_func,
            decode_func=decode_func,
            with_tail=with_tail,
        )
        self._register(decl)
        return decl

    def probe_source(self) -> str:
        return build_probe_source(self.includes, self.declarations)

    def resolve(self) -> list[ResolvedDeclaration]:
        """Run the probe for the pending declarations without consuming them."""
        return resolve_declarations(self.includes, self.declarations, self.runner)

    def finalize(self) -> str:
        if self.name is None:
            raise ConfigurationError("Cannot generate a module yet - no module name.")
        resolved = self.resolve()
        text = render_module(self.name, resolved, self.source_label)
        self._reset()
        return text

    def write(
        self,
        path: Path | str | None = None,
        *,
        check: bool = False,
        dry_run: bool = False,
    ) -> tuple[str, str]:
        target = Path(path) if path is not None else self.output_path
        if target is None:
            raise ConfigurationError(f"No output path configured for module '{self.name}'.")
        content = self.finalize()
        return write_artifact_if_changed(path=target, content=content, dry_run=dry_run, check=check)
