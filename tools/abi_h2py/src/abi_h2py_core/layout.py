"""Binary layout synthesis for probed C structures.

A structure's probed member facts are turned into a ``LayoutTemplate``: an
ordered run of integer slots, automatically inserted padding and an optional
trailing variable-length region. The template drives both the generated
``struct`` format string and the length checks of the generated routines.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Any, Iterable, Union

from ._core_base import ConfigurationError

# Native byte order, standard sizes, no implicit alignment: every pad byte is
# spelled out by the template itself.
STRUCT_BYTE_ORDER = "="
_CANDIDATE_CODES = ("b", "h", "i", "l", "q")


def build_primitive_table() -> dict[tuple[int, bool], str]:
    table: dict[tuple[int, bool], str] = {}
    for code in _CANDIDATE_CODES:
        width = struct.calcsize(STRUCT_BYTE_ORDER + code)
        table.setdefault((width, True), code)
        table.setdefault((width, False), code.upper())
    return table


PRIMITIVE_CODES = build_primitive_table()


@dataclass(frozen=True)
class MemberFact:
    name: str
    offset: int
    byte_width: int
    signed: bool

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "offset": self.offset,
            "byte_width": self.byte_width,
            "signed": self.signed,
        }


@dataclass(frozen=True)
class IntegerField:
    byte_width: int
    signed: bool
    name: str = ""

    @property
    def struct_code(self) -> str:
        return primitive_code(self.byte_width, self.signed)


@dataclass(frozen=True)
class PaddingField:
    byte_count: int

    @property
    def struct_code(self) -> str:
        return "x" if self.byte_count == 1 else f"{self.byte_count}x"


@dataclass(frozen=True)
class TrailingBytes:
    pass


FieldCode = Union[IntegerField, PaddingField, TrailingBytes]


@dataclass(frozen=True)
class LayoutTemplate:
    basename: str
    fields: tuple[FieldCode, ...]
    fixed_length: int

    @property
    def has_tail(self) -> bool:
        return any(isinstance(field, TrailingBytes) for field in self.fields)

    @property
    def integer_fields(self) -> list[IntegerField]:
        return [field for field in self.fields if isinstance(field, IntegerField)]

    @property
    def value_count(self) -> int:
        return len(self.integer_fields)

    @property
    def struct_format(self) -> str:
        codes = [field.struct_code for field in self.fields if not isinstance(field, TrailingBytes)]
        return STRUCT_BYTE_ORDER + "".join(codes)

    def as_dict(self) -> dict[str, Any]:
        described: list[dict[str, Any]] = []
        for field in self.fields:
            if isinstance(field, IntegerField):
                described.append(
                    {"kind": "integer", "name": field.name, "byte_width": field.byte_width, "signed": field.signed}
                )
            elif isinstance(field, PaddingField):
                described.append({"kind": "padding", "byte_count": field.byte_count})
            else:
                described.append({"kind": "trailing_bytes"})
        return {
            "basename": self.basename,
            "fixed_length": self.fixed_length,
            "has_tail": self.has_tail,
            "struct_format": self.struct_format,
            "fields": described,
        }


def primitive_code(byte_width: int, signed: bool) -> str:
    code = PRIMITIVE_CODES.get((byte_width, signed))
    if code is None:
        kind = "signed" if signed else "unsigned"
        raise ConfigurationError(f"Unsupported member size: {byte_width}-byte {kind} integer")
    return code


def field_code_for_member(basename: str, fact: MemberFact) -> IntegerField:
    if (fact.byte_width, fact.signed) not in PRIMITIVE_CODES:
        kind = "signed" if fact.signed else "unsigned"
        raise ConfigurationError(
            f"Unsupported member size for structure {basename} member {fact.name}: "
            f"{fact.byte_width}-byte {kind} integer"
        )
    return IntegerField(byte_width=fact.byte_width, signed=fact.signed, name=fact.name)


def synthesize_layout(
    basename: str,
    facts: Iterable[MemberFact],
    has_tail: bool = False,
    size: int | None = None,
) -> LayoutTemplate:
    """Build the layout template for one structure.

    Members must be supplied in declaration order with strictly increasing,
    non-overlapping offsets. Gaps between members become ``PaddingField``
    codes. When ``size`` (the probed ``sizeof``) exceeds the end of the last
    member, the difference becomes trailing padding so the fixed length
    matches the native structure size.
    """
    fields: list[FieldCode] = []
    cursor = 0

    for fact in facts:
        if fact.offset > cursor:
            fields.append(PaddingField(fact.offset - cursor))
            cursor = fact.offset
        elif fact.offset < cursor:
            raise ConfigurationError(
                f"Cannot go backwards for structure {basename} member {fact.name}: "
                f"offset {fact.offset} is before byte {cursor}"
            )
        fields.append(field_code_for_member(basename, fact))
        cursor += fact.byte_width

    if size is not None:
        if size < cursor:
            raise ConfigurationError(
                f"Structure {basename} reports size {size} but its members end at byte {cursor}"
            )
        if size > cursor:
            fields.append(PaddingField(size - cursor))
            cursor = size

    if has_tail:
        fields.append(TrailingBytes())

    return LayoutTemplate(basename=basename, fields=tuple(fields), fixed_length=cursor)
