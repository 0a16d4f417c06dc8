from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable

from ._core_base import ProbeParseError
from .declarations import (
    ConstantDeclaration,
    Declaration,
    IncludeDirective,
    MemberSpec,
    StructureDeclaration,
)
from .layout import MemberFact

PROBE_LINE_RE = re.compile(r"^(\w+)=(.*)$")
MEMBER_TOKEN_RE = re.compile(r"^(\w+)@(\d+)\+(\d+)([us])$")


@dataclass(frozen=True)
class StructureFacts:
    size: int
    members: tuple[MemberFact, ...]

    def as_dict(self) -> dict[str, Any]:
        return {
            "size": self.size,
            "members": [fact.as_dict() for fact in self.members],
        }


def probe_variable_name(basename: str) -> str:
    return f"probe_{basename}"


def emit_constant_probe(decl: ConstantDeclaration) -> list[str]:
    name = decl.source_name
    # Values above LLONG_MAX only fit the unsigned conversion.
    return [
        f"  if (({name}) < 0)",
        f'    printf("{name}=%lld\\n", (long long)({name}));',
        "  else",
        f'    printf("{name}=%llu\\n", (unsigned long long)({name}));',
    ]


def emit_member_probe(var: str, member: MemberSpec) -> str:
    field = f"{var}.{member.name}"
    offset = f"(long)((char *)&{field} - (char *)&{var})"
    width = f"(unsigned long)sizeof({field})"
    # Signedness: store -1 and see whether it reads back negative.
    sign = f"(({field} = -1) < 0 ? 's' : 'u')"
    return f'    printf(",{member.name}@%ld+%lu%c", {offset}, {width}, {sign});'


def emit_structure_probe(decl: StructureDeclaration) -> list[str]:
    var = probe_variable_name(decl.basename)
    lines = [
        "  {",
        f"    {decl.struct_name} {var};",
        f'    printf("{decl.basename}=%lu", (unsigned long)sizeof({var}));',
    ]
    lines.extend(emit_member_probe(var, member) for member in decl.members)
    lines.append('    printf("\\n");')
    lines.append("  }")
    return lines


def emit_probe_fragment(decl: Declaration) -> list[str]:
    if isinstance(decl, ConstantDeclaration):
        return emit_constant_probe(decl)
    return emit_structure_probe(decl)


def assemble_probe_source(includes: Iterable[IncludeDirective], fragments: Iterable[list[str]]) -> str:
    lines: list[str] = ["#include <stdio.h>"]
    lines.extend(include.render() for include in includes)
    lines.append("")
    lines.append("int main(void) {")
    for fragment in fragments:
        lines.extend(fragment)
    lines.append("  return 0;")
    lines.append("}")
    return "\n".join(lines) + "\n"


def parse_probe_output(raw_output: str) -> dict[str, str]:
    results: dict[str, str] = {}
    for line in raw_output.splitlines():
        match = PROBE_LINE_RE.match(line.strip())
        if not match:
            continue
        results[match.group(1)] = match.group(2)
    return results


def require_result(results: dict[str, str], key: str) -> str:
    value = results.get(key)
    if value is None:
        raise ProbeParseError(f"Probe output has no result for '{key}'.")
    return value


def parse_constant_result(name: str, value: str) -> int:
    try:
        return int(value.strip())
    except ValueError as exc:
        raise ProbeParseError(f"Probe result for constant {name} is not an integer: {value!r}") from exc


def parse_member_token(basename: str, token: str) -> MemberFact:
    match = MEMBER_TOKEN_RE.match(token.strip())
    if not match:
        raise ProbeParseError(f"Malformed probe token for structure {basename}: {token!r}")
    name, offset, width, sign = match.groups()
    return MemberFact(name=name, offset=int(offset), byte_width=int(width), signed=sign == "s")


def parse_structure_result(
    basename: str,
    value: str,
    members: Iterable[MemberSpec] | None = None,
) -> StructureFacts:
    tokens = [token for token in value.strip().split(",") if token.strip()]
    if not tokens:
        raise ProbeParseError(f"Probe result for structure {basename} is empty.")
    size_token = tokens[0].strip()
    if not size_token.isdigit():
        raise ProbeParseError(f"Probe result for structure {basename} has no size: {value!r}")
    facts = tuple(parse_member_token(basename, token) for token in tokens[1:])

    if members is not None:
        expected = [member.name for member in members]
        actual = [fact.name for fact in facts]
        if expected != actual:
            raise ProbeParseError(
                f"Probe result for structure {basename} lists members {actual}, expected {expected}."
            )
    return StructureFacts(size=int(size_token), members=facts)
