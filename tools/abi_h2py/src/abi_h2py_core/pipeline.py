from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .declarations import ConstantDeclaration, Declaration, IncludeDirective
from .layout import LayoutTemplate, synthesize_layout
from .probe import (
    StructureFacts,
    assemble_probe_source,
    emit_probe_fragment,
    parse_constant_result,
    parse_probe_output,
    parse_structure_result,
    require_result,
)
from .toolchain import ToolchainRunner


@dataclass(frozen=True)
class ResolvedDeclaration:
    declaration: Declaration
    value: int | None = None
    facts: StructureFacts | None = None
    layout: LayoutTemplate | None = None

    def as_dict(self) -> dict[str, Any]:
        decl = self.declaration
        if isinstance(decl, ConstantDeclaration):
            return {
                "kind": "constant",
                "name": decl.exposed_name,
                "source_name": decl.source_name,
                "export": decl.export_mode.value,
                "value": self.value,
            }
        return {
            "kind": "structure",
            "name": decl.struct_name,
            "encode_func": decl.encode_name,
            "decode_func": decl.decode_name,
            "export": decl.export_mode.value,
            "facts": self.facts.as_dict(),
            "layout": self.layout.as_dict(),
        }


def build_probe_source(includes: list[IncludeDirective], declarations: list[Declaration]) -> str:
    return assemble_probe_source(includes, [emit_probe_fragment(decl) for decl in declarations])


def resolve_from_output(declarations: list[Declaration], raw_output: str) -> list[ResolvedDeclaration]:
    results = parse_probe_output(raw_output)
    resolved: list[ResolvedDeclaration] = []
    for decl in declarations:
        value = require_result(results, decl.key)
        if isinstance(decl, ConstantDeclaration):
            resolved.append(ResolvedDeclaration(declaration=decl, value=parse_constant_result(decl.source_name, value)))
            continue
        facts = parse_structure_result(decl.basename, value, decl.members)
        layout = synthesize_layout(decl.basename, facts.members, has_tail=decl.has_tail, size=facts.size)
        resolved.append(ResolvedDeclaration(declaration=decl, facts=facts, layout=layout))
    return resolved


def resolve_declarations(
    includes: list[IncludeDirective],
    declarations: list[Declaration],
    runner: ToolchainRunner,
) -> list[ResolvedDeclaration]:
    if not declarations:
        return []
    source = build_probe_source(includes, declarations)
    raw_output = runner.run_probe(source)
    return resolve_from_output(declarations, raw_output)
