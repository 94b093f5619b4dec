"""Data types for declaration parsing and type reflection"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class TypeExpr:
    """Parsed Rust type expression.

    Tuples use the name ``()`` with their elements in ``args``; the unit type
    is a tuple without elements. ``bindings`` holds associated type bindings
    such as ``Item = Result<i32, String>``.
    """
    name: str
    args: tuple = ()
    bindings: tuple = ()
    path: tuple = field(default=(), compare=False)
    is_impl: bool = False
    is_ref: bool = False
    is_array: bool = False

    @property
    def is_tuple(self) -> bool:
        return self.name == "()"

    @property
    def is_unit(self) -> bool:
        return self.is_tuple and not self.args

    def binding(self, name: str) -> Optional["TypeExpr"]:
        for key, value in self.bindings:
            if key == name:
                return value
        return None

    def __str__(self) -> str:
        if self.is_tuple:
            inner = ", ".join(str(a) for a in self.args)
            text = f"({inner},)" if len(self.args) == 1 else f"({inner})"
        elif self.is_array:
            text = f"[{self.args[0]}]"
        else:
            text = "::".join(self.path + (self.name,))
            generics = [str(a) for a in self.args]
            generics += [f"{k} = {v}" for k, v in self.bindings]
            if generics:
                text += f"<{', '.join(generics)}>"
        if self.is_impl:
            text = f"impl {text}"
        if self.is_ref:
            text = f"&{text}"
        return text


class OutputStyle(Enum):
    """Delivery model of a declaration"""
    SERIALIZED = "Serialized"
    STREAM_SERIALIZED = "StreamSerialized"
    CHANNEL = "Channel"

    @property
    def is_stream(self) -> bool:
        return self is not OutputStyle.SERIALIZED


@dataclass
class Parameter:
    """Declaration parameter"""
    name: str
    type: TypeExpr

    @property
    def is_optional(self) -> bool:
        return self.type.name == "Option"


@dataclass
class Options:
    """Options attached to an ``async_dart`` attribute"""
    namespace: str
    disable_logging: bool = False


@dataclass
class Declaration:
    """One boundary-crossing operation"""
    name: str
    namespace: str
    output_style: OutputStyle
    success_type: TypeExpr
    error_type: TypeExpr
    params: list[Parameter] = field(default_factory=list)
    disable_logging: bool = False
    is_async: bool = True
    module_path: tuple = ()
    source: str = ""

    @property
    def symbol(self) -> str:
        return f"membrane_{self.namespace}_{self.name}"

    @property
    def where(self) -> str:
        module = "::".join(self.module_path) or "crate"
        return f"{module}::{self.name} (namespace `{self.namespace}`)"


@dataclass
class Field:
    """Struct or variant field. ``serde_with`` is the path of its `#[serde(with = "...")]` attribute."""
    name: str
    type: TypeExpr
    serde_with: str = field(default="", compare=False)


@dataclass
class Variant:
    """Enum variant. ``kind`` is one of ``unit``, ``tuple`` or ``struct``."""
    name: str
    kind: str = "unit"
    fields: list[Field] = field(default_factory=list)


@dataclass
class StructSchema:
    """Structural description of a struct. ``kind`` is one of ``struct``, ``tuple`` or ``unit``;
    tuple struct fields are named ``value0``, ``value1``, ...
    """
    name: str
    fields: list[Field] = field(default_factory=list)
    module_path: tuple = ()
    kind: str = "struct"

    def shape(self) -> tuple:
        return ("struct", self.kind, tuple((f.name, f.type) for f in self.fields))


@dataclass
class EnumSchema:
    """Structural description of an enum. Variant order is the wire index."""
    name: str
    variants: list[Variant] = field(default_factory=list)
    module_path: tuple = ()

    @property
    def is_simple(self) -> bool:
        return all(v.kind == "unit" for v in self.variants)

    def shape(self) -> tuple:
        return ("enum", tuple(
            (v.name, v.kind, tuple((f.name, f.type) for f in v.fields))
            for v in self.variants
        ))

    def index_of(self, variant: str) -> int:
        for i, v in enumerate(self.variants):
            if v.name == variant:
                return i
        raise KeyError(variant)


@dataclass
class EnumRegistration:
    """Enum registered explicitly for a namespace with ``dart_enum``"""
    name: str
    namespace: str
    module_path: tuple = ()


@dataclass
class ParsedSource:
    """Everything found in one scanned source file"""
    module_path: tuple = ()
    declarations: list[Declaration] = field(default_factory=list)
    schemas: list = field(default_factory=list)
    enum_registrations: list[EnumRegistration] = field(default_factory=list)
