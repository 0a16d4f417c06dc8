from __future__ import annotations

from ._core_base import TOOL_NAME, ExportMode
from .declarations import ConstantDeclaration, StructureDeclaration
from .layout import LayoutTemplate
from .pipeline import ResolvedDeclaration

DEFAULT_EXPORT_LIST = "__all__"
ON_REQUEST_EXPORT_LIST = "__export_ok__"


def struct_object_name(basename: str) -> str:
    return f"_struct_{basename}"


def render_constant(decl: ConstantDeclaration, value: int) -> str:
    return f"{decl.exposed_name} = {value}"


def render_encode(decl: StructureDeclaration, layout: LayoutTemplate) -> list[str]:
    packer = struct_object_name(decl.basename)
    params = ", ".join(decl.parameter_names)
    arity = len(decl.parameter_names)

    lines: list[str] = []
    lines.append(f"def {decl.encode_name}(*values):")
    lines.append(f"    if len(values) != {arity}:")
    lines.append(f'        raise UsageError("usage: {decl.encode_name}({params})")')
    if layout.has_tail:
        lines.append("    tail = values[-1]")
        lines.append("    if not isinstance(tail, (bytes, bytearray, memoryview)):")
        lines.append(f'        raise UsageError("{decl.encode_name}: tail must be a bytes-like object")')
        lines.append("    try:")
        lines.append(f"        return {packer}.pack(*values[:-1]) + bytes(tail)")
    else:
        lines.append("    try:")
        lines.append(f"        return {packer}.pack(*values)")
    lines.append("    except _struct.error as exc:")
    lines.append(f'        raise UsageError(f"{decl.encode_name}: {{exc}}") from exc')
    return lines


def render_decode(decl: StructureDeclaration, layout: LayoutTemplate) -> list[str]:
    packer = struct_object_name(decl.basename)
    length = layout.fixed_length

    lines: list[str] = []
    lines.append(f"def {decl.decode_name}(data):")
    if layout.has_tail:
        lines.append(f"    if len(data) < {length}:")
        lines.append(f'        raise UsageError("{decl.decode_name}: expected at least {length} bytes")')
        lines.append(f"    return {packer}.unpack_from(data) + (bytes(data[{length}:]),)")
    else:
        lines.append(f"    if len(data) != {length}:")
        lines.append(f'        raise UsageError("{decl.decode_name}: expected {length} bytes")')
        lines.append(f"    return {packer}.unpack(data)")
    return lines


def render_structure(decl: StructureDeclaration, layout: LayoutTemplate) -> str:
    lines: list[str] = []
    lines.append(f"# {decl.struct_name}: {layout.fixed_length} bytes" + (" plus trailing data" if layout.has_tail else ""))
    lines.append(f'{struct_object_name(decl.basename)} = _struct.Struct("{layout.struct_format}")')
    lines.append("")
    lines.append("")
    lines.extend(render_encode(decl, layout))
    lines.append("")
    lines.append("")
    lines.extend(render_decode(decl, layout))
    return "\n".join(lines)


def render_fragment(resolved: ResolvedDeclaration) -> str:
    decl = resolved.declaration
    if isinstance(decl, ConstantDeclaration):
        return render_constant(decl, int(resolved.value or 0))
    return render_structure(decl, resolved.layout)


def collect_exports(resolved: list[ResolvedDeclaration]) -> tuple[list[str], list[str]]:
    exports: list[str] = []
    exports_ok: list[str] = []
    for item in resolved:
        decl = item.declaration
        if decl.export_mode is ExportMode.DEFAULT:
            exports.extend(decl.exported_names)
        elif decl.export_mode is ExportMode.ON_REQUEST:
            exports_ok.extend(decl.exported_names)
    return exports, exports_ok


def render_export_list(list_name: str, names: list[str]) -> list[str]:
    lines = [f"{list_name} = ["]
    lines.extend(f'    "{name}",' for name in names)
    lines.append("]")
    return lines


def render_module_header(module_name: str, source_label: str, with_structures: bool) -> list[str]:
    lines: list[str] = []
    lines.append(f"# This module was generated automatically by {TOOL_NAME} from {source_label}.")
    lines.append("# Do not edit manually; regenerate it instead.")
    lines.append(f'"""Constants and structure helpers for {module_name}."""')
    if with_structures:
        lines.append("")
        lines.append("import struct as _struct")
        lines.append("")
        lines.append("")
        lines.append("class UsageError(ValueError):")
        lines.append('    """Raised when a generated encode or decode routine is misused."""')
    return lines


def render_module(module_name: str, resolved: list[ResolvedDeclaration], source_label: str = TOOL_NAME) -> str:
    """Render the complete generated module.

    Order: header, default exports, on-request exports, one fragment per
    declaration in declaration order, trailer.
    """
    with_structures = any(isinstance(item.declaration, StructureDeclaration) for item in resolved)
    exports, exports_ok = collect_exports(resolved)

    sections: list[str] = []
    sections.append("\n".join(render_module_header(module_name, source_label, with_structures)))
    if exports:
        sections.append("\n".join(render_export_list(DEFAULT_EXPORT_LIST, exports)))
    if exports_ok:
        sections.append("\n".join(render_export_list(ON_REQUEST_EXPORT_LIST, exports_ok)))

    previous_constant = False
    for item in resolved:
        fragment = render_fragment(item)
        is_constant = isinstance(item.declaration, ConstantDeclaration)
        if is_constant and previous_constant:
            sections[-1] = sections[-1] + "\n" + fragment
        else:
            sections.append(fragment)
        previous_constant = is_constant

    sections.append(f"# end of generated module {module_name}")
    return "\n\n\n".join(sections) + "\n"
