from __future__ import annotations

import keyword
import re
from dataclasses import dataclass
from typing import Iterable, Union

from ._core_base import ConfigurationError, ExportMode

MEMBER_KIND_NUMERIC = "numeric"


def is_valid_c_name(name: str) -> bool:
    return bool(re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", name))


def is_valid_python_name(name: str) -> bool:
    return is_valid_c_name(name) and not keyword.iskeyword(name)


def struct_basename(struct_name: str) -> str:
    return re.sub(r"^struct\s+", "", struct_name.strip())


@dataclass(frozen=True)
class IncludeDirective:
    path: str
    local: bool = False

    def render(self) -> str:
        if self.local:
            return f'#include "{self.path}"'
        return f"#include <{self.path}>"


@dataclass(frozen=True)
class ConstantDeclaration:
    source_name: str
    exposed_name: str
    export_mode: ExportMode

    @property
    def key(self) -> str:
        return self.source_name

    @property
    def exported_names(self) -> tuple[str, ...]:
        return (self.exposed_name,)


@dataclass(frozen=True)
class MemberSpec:
    name: str
    kind: str = MEMBER_KIND_NUMERIC


def member_numeric(name: str) -> MemberSpec:
    """A member holding a single signed or unsigned integer.

    Its offset, size and signedness are detected by the probe program.
    """
    return MemberSpec(name=name, kind=MEMBER_KIND_NUMERIC)


@dataclass(frozen=True)
class StructureDeclaration:
    struct_name: str
    basename: str
    members: tuple[MemberSpec, ...]
    encode_name: str
    decode_name: str
    has_tail: bool
    export_mode: ExportMode

    @property
    def key(self) -> str:
        return self.basename

    @property
    def exported_names(self) -> tuple[str, ...]:
        return (self.encode_name, self.decode_name)

    @property
    def parameter_names(self) -> list[str]:
        names = [member.name for member in self.members]
        if self.has_tail:
            names.append("tail")
        return names


Declaration = Union[ConstantDeclaration, StructureDeclaration]


def make_constant_declaration(source_name: str, exposed_name: str | None, export_mode: ExportMode) -> ConstantDeclaration:
    if not is_valid_c_name(source_name):
        raise ConfigurationError(f"Invalid constant name '{source_name}'.")
    exposed = exposed_name or source_name
    if not is_valid_python_name(exposed):
        raise ConfigurationError(f"Constant '{source_name}' cannot be exposed as '{exposed}': not a Python identifier.")
    return ConstantDeclaration(source_name=source_name, exposed_name=exposed, export_mode=export_mode)


def normalize_members(struct_name: str, members: Iterable[Union[MemberSpec, str]]) -> tuple[MemberSpec, ...]:
    out: list[MemberSpec] = []
    seen: set[str] = set()
    for member in members:
        spec = member_numeric(member) if isinstance(member, str) else member
        if not isinstance(spec, MemberSpec):
            raise ConfigurationError(f"Structure {struct_name} member {member!r} is not a member definition.")
        if spec.kind != MEMBER_KIND_NUMERIC:
            raise ConfigurationError(f"Structure {struct_name} member {spec.name} has unsupported kind '{spec.kind}'.")
        if not is_valid_c_name(spec.name):
            raise ConfigurationError(f"Structure {struct_name} has invalid member name '{spec.name}'.")
        if spec.name in seen:
            raise ConfigurationError(f"Structure {struct_name} declares member {spec.name} twice.")
        seen.add(spec.name)
        out.append(spec)
    if not out:
        raise ConfigurationError(f"Structure {struct_name} must declare at least one member.")
    return tuple(out)


def make_structure_declaration(
    struct_name: str,
    members: Iterable[Union[MemberSpec, str]],
    export_mode: ExportMode,
    encode_func: str | None = None,
    decode_func: str | None = None,
    with_tail: bool = False,
) -> StructureDeclaration:
    basename = struct_basename(struct_name)
    if not is_valid_c_name(basename):
        raise ConfigurationError(f"Invalid structure name '{struct_name}'.")

    encode_name = encode_func or f"encode_{basename}"
    decode_name = decode_func or f"decode_{basename}"
    for func_name in [encode_name, decode_name]:
        if not is_valid_python_name(func_name):
            raise ConfigurationError(f"Structure {struct_name} routine name '{func_name}' is not a Python identifier.")
    if encode_name == decode_name:
        raise ConfigurationError(f"Structure {struct_name} uses '{encode_name}' for both routines.")

    return StructureDeclaration(
        struct_name=struct_name.strip(),
        basename=basename,
        members=normalize_members(struct_name, members),
        encode_name=encode_name,
        decode_name=decode_name,
        has_tail=bool(with_tail),
        export_mode=export_mode,
    )
