"""Reference implementation of the binary payload encoding.

The layout is the one produced by the native side and read by the generated
Dart deserializers:

* ``bool``: one byte, 0 or 1
* fixed width integers: little-endian two's complement
* ``f32``/``f64``: IEEE 754 little-endian
* strings and sequences: ``u64`` length prefix, then UTF-8 bytes or items
* ``Option``: one tag byte (0 = absent, 1 = present) then the value
* structs: fields in declaration order, no framing (newtype structs are their field)
* enums: ``u32`` variant index then the variant's fields
* ``i128``/``u128``: decimal string, to keep full precision on the client. The
  generated bridge converts top level values and reflected fields go through
  the generated ``membrane_decimal`` serde module.
* unit: nothing

Python values: integers and floats as ``int``/``float``, strings as ``str``,
options as ``None`` or the value, sequences as ``list``, structs as ``dict``
keyed by field name, tuple structs like tuple variants below, unit structs as
``None``, unit enum variants as the variant name and data
carrying variants as a single-entry ``dict`` ``{variant: payload}`` where
the payload is the value (one tuple field), a ``tuple`` (several tuple
fields) or a ``dict`` (named fields).

Every type is described by a Construct definition, built once per type
expression and composed the same way the types nest.
"""

import io
import re
from collections.abc import Mapping

from construct import (
    Adapter, Construct, ConstructError, Float32l, Float64l, GreedyBytes, Int8sl, Int8ul, Int16sl, Int16ul,
    Int32sl, Int32ul, Int64sl, Int64ul, LazyBound, Pass, Prefixed, PrefixedArray, Subconstruct, ValidationError,
)

from .errors import EnvelopeDecodeFailure, EnvelopeEncodeFailure
from .types import EnumSchema, TypeExpr

INTEGERS = {
    'i8': Int8sl, 'i16': Int16sl, 'i32': Int32sl, 'i64': Int64sl,
    'u8': Int8ul, 'u16': Int16ul, 'u32': Int32ul, 'u64': Int64ul,
}
WIDE = ('i128', 'u128')
DECIMAL_RE = re.compile(r"-?[0-9]+")


def int_range(kind: str) -> tuple[int, int]:
    """Inclusive bounds of an integer type, e.g. ``(0, 255)`` for ``u8``"""
    bits = int(kind[1:])
    if kind[0] == 'i':
        return -(1 << bits - 1), (1 << bits - 1) - 1
    return 0, (1 << bits) - 1


def check_int(value, kind: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"expected {kind}, got {value!r}")
    low, high = int_range(kind)
    if not low <= value <= high:
        raise ValidationError(f"{value} is out of range for {kind}")
    return value


# ── primitives ───────────────────────────────────────────────────────

class UnitAdapter(Adapter):
    def _decode(self, obj, context, path):
        return None

    def _encode(self, obj, context, path):
        if obj is not None:
            raise ValidationError(f"expected (), got {obj!r}")
        return obj


class BoolAdapter(Adapter):
    def _decode(self, obj, context, path):
        if obj > 1:
            raise ValidationError(f"invalid bool byte {obj}")
        return obj == 1

    def _encode(self, obj, context, path):
        if not isinstance(obj, bool):
            raise ValidationError(f"expected bool, got {obj!r}")
        return int(obj)


class IntegerAdapter(Adapter):
    """Fixed width integer that refuses bools and out of range values"""

    def __init__(self, kind: str):
        super().__init__(INTEGERS[kind])
        self.kind = kind

    def _decode(self, obj, context, path):
        return obj

    def _encode(self, obj, context, path):
        return check_int(obj, self.kind)


class FloatAdapter(Adapter):
    def __init__(self, kind: str):
        super().__init__(Float32l if kind == 'f32' else Float64l)
        self.kind = kind

    def _decode(self, obj, context, path):
        return obj

    def _encode(self, obj, context, path):
        if isinstance(obj, bool) or not isinstance(obj, (int, float)):
            raise ValidationError(f"expected {self.kind}, got {obj!r}")
        return float(obj)


class TextAdapter(Adapter):
    def _decode(self, obj, context, path):
        try:
            return obj.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ValidationError(f"invalid UTF-8 in string: {e}") from e

    def _encode(self, obj, context, path):
        if not isinstance(obj, str):
            raise ValidationError(f"expected String, got {obj!r}")
        return obj.encode('utf-8')


Unit = UnitAdapter(Pass)
Bool = BoolAdapter(Int8ul)
Text = TextAdapter(Prefixed(Int64ul, GreedyBytes))


class WideIntegerAdapter(Adapter):
    """128-bit integer carried as its decimal string"""

    def __init__(self, kind: str):
        super().__init__(Text)
        self.kind = kind

    def _decode(self, obj, context, path):
        if not DECIMAL_RE.fullmatch(obj):
            raise ValidationError(f"invalid {self.kind} literal {obj!r}")
        return check_int(int(obj), self.kind)

    def _encode(self, obj, context, path):
        return str(check_int(obj, self.kind))


# ── compound types ───────────────────────────────────────────────────

class OptionOf(Subconstruct):
    """Tag byte, then the value when the tag is 1"""

    def _parse(self, stream, context, path):
        tag = Int8ul._parsereport(stream, context, path)
        if tag > 1:
            raise ValidationError(f"invalid option tag {tag}")
        return self.subcon._parsereport(stream, context, path) if tag else None

    def _build(self, obj, stream, context, path):
        Int8ul._build(0 if obj is None else 1, stream, context, path)
        if obj is not None:
            self.subcon._build(obj, stream, context, path)
        return obj


class SequenceAdapter(Adapter):
    def __init__(self, subcon: Construct, owner: str):
        super().__init__(PrefixedArray(Int64ul, subcon))
        self.owner = owner

    def _decode(self, obj, context, path):
        return list(obj)

    def _encode(self, obj, context, path):
        if isinstance(obj, (str, bytes, Mapping)) or not hasattr(obj, '__len__'):
            raise ValidationError(f"expected a sequence for {self.owner}, got {obj!r}")
        return list(obj)


class Record(Construct):
    """Named fields back to back, as a ``dict``"""

    def __init__(self, owner: str, fields: list):
        super().__init__()
        self.owner = owner
        self.fields = fields

    def _parse(self, stream, context, path):
        return {name: sub._parsereport(stream, context, f"{path} -> {name}") for name, sub in self.fields}

    def _build(self, obj, stream, context, path):
        if not isinstance(obj, Mapping):
            raise ValidationError(f"expected a mapping for {self.owner}, got {obj!r}")
        for name, sub in self.fields:
            if name not in obj:
                raise ValidationError(f"missing field `{name}` of {self.owner}")
            sub._build(obj[name], stream, context, f"{path} -> {name}")
        return obj


class Positional(Construct):
    """Unnamed fields back to back, as a ``tuple``"""

    def __init__(self, owner: str, items: list):
        super().__init__()
        self.owner = owner
        self.items = items

    def _parse(self, stream, context, path):
        return tuple(sub._parsereport(stream, context, path) for sub in self.items)

    def _build(self, obj, stream, context, path):
        if not isinstance(obj, (tuple, list)) or len(obj) != len(self.items):
            raise ValidationError(f"{self.owner} expects {len(self.items)} values")
        for value, sub in zip(obj, self.items):
            sub._build(value, stream, context, path)
        return obj


class Variants(Construct):
    """``u32`` variant index, then the payload of that variant"""

    def __init__(self, name: str, variants: list):
        super().__init__()
        self.enum_name = name
        self.variants = variants
        self.indexes = {variant: i for i, (variant, _) in enumerate(variants)}

    def _parse(self, stream, context, path):
        index = Int32ul._parsereport(stream, context, path)
        if index >= len(self.variants):
            raise ValidationError(f"unknown variant index {index} for {self.enum_name}")
        variant, payload = self.variants[index]
        if payload is None:
            return variant
        return {variant: payload._parsereport(stream, context, path)}

    def _build(self, obj, stream, context, path):
        if isinstance(obj, str):
            variant, value = obj, None
        elif isinstance(obj, Mapping) and len(obj) == 1:
            variant, value = next(iter(obj.items()))
        else:
            raise ValidationError(f"expected a variant of {self.enum_name}, got {obj!r}")
        if variant not in self.indexes:
            raise ValidationError(f"{self.enum_name} has no variant `{variant}`")

        index = self.indexes[variant]
        payload = self.variants[index][1]
        if payload is None and value is not None:
            raise ValidationError(f"{self.enum_name}::{variant} carries no data")
        Int32ul._build(index, stream, context, path)
        if payload is not None:
            payload._build(value, stream, context, path)
        return obj


class Codec:
    """Encodes and decodes values of reflected types"""

    def __init__(self, schemas: dict):
        self.schemas = schemas
        self._constructs = {}
        self._schema_constructs = {}

    def encode(self, value, ty: TypeExpr) -> bytes:
        try:
            return self.construct_for(ty).build(value)
        except ConstructError as e:
            raise EnvelopeEncodeFailure(f"cannot encode {ty}: {e}") from e

    def decode(self, data: bytes, ty: TypeExpr):
        data = bytes(data)
        stream = io.BytesIO(data)
        try:
            value = self.construct_for(ty).parse_stream(stream)
        except ConstructError as e:
            raise EnvelopeDecodeFailure(f"cannot decode {ty}: {e}") from e
        remaining = len(data) - stream.tell()
        if remaining:
            raise EnvelopeDecodeFailure(f"{remaining} trailing bytes after {ty}")
        return value

    def construct_for(self, ty: TypeExpr) -> Construct:
        key = str(ty)
        if key not in self._constructs:
            self._constructs[key] = self._make(ty)
        return self._constructs[key]

    def _make(self, ty: TypeExpr) -> Construct:
        name = ty.name
        if ty.is_unit:
            return Unit
        if name == 'bool':
            return Bool
        if name in INTEGERS:
            return IntegerAdapter(name)
        if name in WIDE:
            return WideIntegerAdapter(name)
        if name in ('f32', 'f64'):
            return FloatAdapter(name)
        if name == 'String':
            return Text
        if name == 'Option':
            return OptionOf(self.construct_for(ty.args[0]))
        if name == 'Vec':
            return SequenceAdapter(self.construct_for(ty.args[0]), str(ty))
        # bound lazily so recursive types terminate
        return LazyBound(lambda: self._schema_construct(name))

    def _schema_construct(self, name: str) -> Construct:
        if name not in self._schema_constructs:
            schema = self.schemas.get(name)
            if schema is None:
                raise ValidationError(f"no schema for type `{name}`")
            if isinstance(schema, EnumSchema):
                built = Variants(name, [(v.name, self._payload(f"{name}::{v.name}", v.kind, v.fields))
                                        for v in schema.variants])
            else:
                built = self._payload(name, schema.kind, schema.fields)
                if built is None:
                    built = Unit
            self._schema_constructs[name] = built
        return self._schema_constructs[name]

    def _payload(self, owner: str, kind: str, fields: list):
        """Construct for the fields of a struct or variant; None when there are none to carry"""
        if kind == 'unit':
            return None
        if kind == 'struct':
            return Record(owner, [(f.name, self.construct_for(f.type)) for f in fields])
        if len(fields) == 1:
            return self.construct_for(fields[0].type)
        return Positional(owner, [self.construct_for(f.type) for f in fields])
