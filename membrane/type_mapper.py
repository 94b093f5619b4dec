"""Type mapping from Rust declaration types to C, Rust extern and Dart types"""

import re
from dataclasses import dataclass
from typing import Iterator

from .errors import UnsupportedType
from .types import Parameter, TypeExpr


@dataclass(frozen=True)
class Abi:
    """How one parameter crosses the C boundary"""
    kind: str
    rust: str
    c: str
    dart_native: str
    dart_ffi: str


class TypeMapper:
    """Maps Rust types to the representations used on both sides of the bridge"""

    # Scalars passed by value: rust extern, C, dart:ffi native, dart:ffi Dart, client Dart
    SCALARS = {
        'bool': ('bool', 'bool', 'Bool', 'bool', 'bool'),
        'i8': ('i8', 'int8_t', 'Int8', 'int', 'int'),
        'i16': ('i16', 'int16_t', 'Int16', 'int', 'int'),
        'i32': ('i32', 'int32_t', 'Int32', 'int', 'int'),
        'i64': ('i64', 'int64_t', 'Int64', 'int', 'int'),
        'u8': ('u8', 'uint8_t', 'Uint8', 'int', 'int'),
        'u16': ('u16', 'uint16_t', 'Uint16', 'int', 'int'),
        'u32': ('u32', 'uint32_t', 'Uint32', 'int', 'int'),
        'f32': ('f32', 'float', 'Float', 'double', 'double'),
        'f64': ('f64', 'double', 'Double', 'double', 'double'),
    }

    # Integers wider than a Dart int: BigInt on the client, decimal strings as parameters
    WIDE = ('u64', 'i128', 'u128')

    # Suffix of the bincode serializer/deserializer method for each primitive
    CODEC_NAMES = {
        'bool': 'Bool',
        'i8': 'Int8', 'i16': 'Int16', 'i32': 'Int32', 'i64': 'Int64',
        'u8': 'Uint8', 'u16': 'Uint16', 'u32': 'Uint32', 'u64': 'Uint64',
        'i128': 'Int128', 'u128': 'Uint128',
        'f32': 'Float32', 'f64': 'Float64',
        'String': 'String',
    }

    PLATFORM_SIZED = ('usize', 'isize')

    # Carried as decimal strings in payloads, see DECIMAL_MODULE
    DECIMAL = ('i128', 'u128')
    DECIMAL_MODULE = 'membrane_decimal'

    C_STRING = Abi('string', '*const ::std::os::raw::c_char', 'const char *', 'Pointer<Char>', 'Pointer<Char>')
    BUFFER = Abi('buffer', '*const u8', 'const uint8_t *', 'Pointer<Uint8>', 'Pointer<Uint8>')

    @classmethod
    def is_primitive(cls, ty: TypeExpr) -> bool:
        return not ty.args and ty.name in cls.CODEC_NAMES

    @classmethod
    def is_user_type(cls, ty: TypeExpr) -> bool:
        return (not ty.args and not ty.bindings and not ty.is_tuple and not ty.is_ref
                and not ty.is_impl and not ty.is_array and ty.name not in cls.CODEC_NAMES
                and ty.name not in cls.PLATFORM_SIZED and ty.name not in ('Option', 'Vec'))

    @classmethod
    def check(cls, ty: TypeExpr, where: str = "", allow_unit: bool = False):
        """Raise ``UnsupportedType`` unless every part of ``ty`` has a mapping"""
        if ty.is_unit and allow_unit:
            return
        if ty.is_ref:
            raise UnsupportedType(str(ty), where, "references cannot cross the boundary, use an owned type")
        if ty.is_tuple:
            raise UnsupportedType(str(ty), where, "wrap tuples in a named struct")
        if ty.is_impl or ty.is_array or ty.bindings:
            raise UnsupportedType(str(ty), where)
        if ty.name in cls.PLATFORM_SIZED:
            raise UnsupportedType(str(ty), where, "platform dependent width, use a fixed width integer")
        if ty.name == 'Option':
            if len(ty.args) != 1:
                raise UnsupportedType(str(ty), where)
            if ty.args[0].name == 'Option':
                raise UnsupportedType(str(ty), where, "nested options have no client representation")
            cls.check(ty.args[0], where)
        elif ty.name == 'Vec':
            if len(ty.args) != 1:
                raise UnsupportedType(str(ty), where)
            cls.check(ty.args[0], where)
        elif ty.args:
            raise UnsupportedType(str(ty), where)

    @classmethod
    def user_types(cls, ty: TypeExpr) -> Iterator[str]:
        """Names of user defined types referenced anywhere in ``ty``"""
        if cls.is_user_type(ty):
            yield ty.name
        for arg in ty.args:
            yield from cls.user_types(arg)

    @classmethod
    def carries_decimal(cls, ty: TypeExpr) -> bool:
        """True when ``ty`` holds a 128-bit integer outside of any user type"""
        if ty.name in cls.DECIMAL and not ty.args:
            return True
        return any(cls.carries_decimal(arg) for arg in ty.args)

    @classmethod
    def decimal_adapter(cls, ty: TypeExpr, where: str = "") -> str:
        """Serde ``with`` module a field of type ``ty`` needs, or ``""`` when it needs none"""
        if not cls.carries_decimal(ty):
            return ""
        if ty.name in cls.DECIMAL:
            return cls.DECIMAL_MODULE
        inner = ty.args[0]
        if ty.name in ('Option', 'Vec') and inner.name in cls.DECIMAL and not inner.args:
            return f'{cls.DECIMAL_MODULE}::{ty.name.lower()}'
        raise UnsupportedType(str(ty), where, "a 128-bit field may sit in at most one Option or Vec")

    @classmethod
    def rust_wire_type(cls, ty: TypeExpr) -> str:
        """Rust type of the payload form of ``ty``: 128-bit integers become ``String``"""
        if ty.name in cls.DECIMAL and not ty.args:
            return '::std::string::String'
        if ty.name == 'Option':
            return f'::std::option::Option<{cls.rust_wire_type(ty.args[0])}>'
        if ty.name == 'Vec':
            return f'::std::vec::Vec<{cls.rust_wire_type(ty.args[0])}>'
        return str(ty)

    @classmethod
    def rust_to_wire(cls, ty: TypeExpr, value: str, depth: int = 0) -> str:
        """Rust expression converting owned ``value`` of type ``ty`` to its payload form"""
        if not cls.carries_decimal(ty):
            return value
        if ty.name in cls.DECIMAL:
            return f'{value}.to_string()'
        var = f'v{depth}'
        inner = cls.rust_to_wire(ty.args[0], var, depth + 1)
        if ty.name == 'Option':
            return f'{value}.map(|{var}| {inner})'
        return f'{value}.into_iter().map(|{var}| {inner}).collect::<::std::vec::Vec<_>>()'

    @classmethod
    def rust_from_wire(cls, ty: TypeExpr, value: str, depth: int = 0) -> str:
        """Rust expression turning the payload form back into ``Option<ty>``, None when a decimal fails to parse"""
        if not cls.carries_decimal(ty):
            return f'Some({value})'
        if ty.name in cls.DECIMAL:
            return f'{value}.parse::<{ty.name}>().ok()'
        var = f'v{depth}'
        inner = cls.rust_from_wire(ty.args[0], var, depth + 1)
        if ty.name == 'Option':
            return f'match {value} {{ None => Some(None), Some({var}) => {inner}.map(Some) }}'
        return f'{value}.into_iter().map(|{var}| {inner}).collect::<::std::option::Option<::std::vec::Vec<_>>>()'

    @classmethod
    def abi(cls, ty: TypeExpr) -> Abi:
        """ABI-safe representation of a parameter of type ``ty``"""
        if ty.name == 'String' and not ty.args:
            return cls.C_STRING
        if ty.name in cls.SCALARS and not ty.args:
            rust, c, native, ffi, _ = cls.SCALARS[ty.name]
            return Abi('bool' if ty.name == 'bool' else 'scalar', rust, c, native, ffi)
        if ty.name in cls.WIDE and not ty.args:
            return Abi('wide', cls.C_STRING.rust, cls.C_STRING.c, cls.C_STRING.dart_native, cls.C_STRING.dart_ffi)
        if ty.name == 'Option' and len(ty.args) == 1:
            inner = ty.args[0]
            if inner.name == 'String' and not inner.args:
                return Abi('opt_string', *cls._abi_fields(cls.C_STRING))
            if inner.name in cls.WIDE and not inner.args:
                return Abi('opt_wide', *cls._abi_fields(cls.C_STRING))
            if inner.name in cls.SCALARS and not inner.args:
                rust, c, native, _, _ = cls.SCALARS[inner.name]
                return Abi('opt_scalar', f'*const {rust}', f'const {c} *', f'Pointer<{native}>', f'Pointer<{native}>')
        return cls.BUFFER

    @classmethod
    def _abi_fields(cls, abi: Abi) -> tuple:
        return abi.rust, abi.c, abi.dart_native, abi.dart_ffi

    @classmethod
    def to_c_param(cls, param: Parameter) -> str:
        """C header declaration of a parameter, e.g. ``const char *user_id``"""
        c = cls.abi(param.type).c
        if c.endswith('*'):
            return f'{c}{param.name}'
        return f'{c} {param.name}'

    @classmethod
    def to_rust_param(cls, param: Parameter) -> str:
        return f'{param.name}: {cls.abi(param.type).rust}'

    @classmethod
    def to_dart(cls, ty: TypeExpr) -> str:
        """Client-side Dart type of ``ty``"""
        if ty.is_unit:
            return 'void'
        if ty.name == 'String' and not ty.args:
            return 'String'
        if ty.name in cls.SCALARS and not ty.args:
            return cls.SCALARS[ty.name][4]
        if ty.name in cls.WIDE and not ty.args:
            return 'BigInt'
        if ty.name == 'Option':
            return f'{cls.to_dart(ty.args[0])}?'
        if ty.name == 'Vec':
            return f'List<{cls.to_dart(ty.args[0])}>'
        return ty.name

    @classmethod
    def dart_write(cls, ty: TypeExpr, value: str, depth: int = 0) -> str:
        """Dart expression writing ``value`` of type ``ty`` to ``serializer``"""
        if cls.is_primitive(ty):
            return f'serializer.serialize{cls.CODEC_NAMES[ty.name]}({value})'
        if ty.name in ('Option', 'Vec'):
            inner = ty.args[0]
            var = f'v{depth}'
            method = 'serializeOption' if ty.name == 'Option' else 'serializeSeq'
            write = cls.dart_write(inner, var, depth + 1)
            return f'serializer.{method}<{cls.to_dart(inner)}>({value}, ({var}) => {write})'
        return f'{value}.serialize(serializer)'

    @classmethod
    def dart_read(cls, ty: TypeExpr) -> str:
        """Dart expression reading a value of type ``ty`` from ``deserializer``"""
        if ty.is_unit:
            return 'null'
        if cls.is_primitive(ty):
            return f'deserializer.deserialize{cls.CODEC_NAMES[ty.name]}()'
        if ty.name in ('Option', 'Vec'):
            inner = ty.args[0]
            method = 'deserializeOption' if ty.name == 'Option' else 'deserializeSeq'
            return f'deserializer.{method}<{cls.to_dart(inner)}>(() => {cls.dart_read(inner)})'
        return f'{ty.name}.deserialize(deserializer)'

    @classmethod
    def rust_transform(cls, param: Parameter) -> list[str]:
        """Rust statements turning the extern argument into the declared Rust value"""
        name = param.name
        kind = cls.abi(param.type).kind
        cstr = f'unsafe {{ ::std::ffi::CStr::from_ptr({name}) }}'
        null = 'return ::std::ptr::null_mut()'

        if kind in ('scalar', 'bool'):
            return []
        if kind == 'string':
            return [
                f'if {name}.is_null() {{ {null}; }}',
                f'let {name} = {cstr}.to_string_lossy().into_owned();',
            ]
        if kind == 'opt_string':
            return [
                f'let {name} = if {name}.is_null() {{ None }} '
                f'else {{ Some({cstr}.to_string_lossy().into_owned()) }};',
            ]
        if kind == 'opt_scalar':
            return [f'let {name} = if {name}.is_null() {{ None }} else {{ Some(unsafe {{ *{name} }}) }};']
        if kind == 'wide':
            return [
                f'if {name}.is_null() {{ {null}; }}',
                f'let {name}: {param.type} = match {cstr}.to_str().ok().and_then(|s| s.parse().ok()) {{',
                '    Some(value) => value,',
                f'    None => {null},',
                '};',
            ]
        if kind == 'opt_wide':
            return [
                f'let {name}: {param.type} = if {name}.is_null() {{ None }} else {{',
                f'    match {cstr}.to_str().ok().and_then(|s| s.parse().ok()) {{',
                '        Some(value) => Some(value),',
                f'        None => {null},',
                '    }',
                '};',
            ]
        lines = [
            f'if {name}.is_null() {{ {null}; }}',
            f'let {name}: {param.type} = {{',
            f'    let len = u64::from_le_bytes(unsafe {{ ::std::ptr::read_unaligned({name} as *const [u8; 8]) }}) as usize;',
            f'    let bytes = unsafe {{ ::std::slice::from_raw_parts({name}.add(8), len) }};',
        ]
        if cls.carries_decimal(param.type):
            lines += [
                f'    let wire: {cls.rust_wire_type(param.type)} = match ::membrane::bincode::deserialize(bytes) {{',
                '        Ok(value) => value,',
                f'        Err(_) => {null},',
                '    };',
                f'    match {cls.rust_from_wire(param.type, "wire")} {{',
                '        Some(value) => value,',
                f'        None => {null},',
                '    }',
            ]
        else:
            lines += [
                '    match ::membrane::bincode::deserialize(bytes) {',
                '        Ok(value) => value,',
                f'        Err(_) => {null},',
                '    }',
            ]
        return lines + ['};']

    @classmethod
    def dart_transform(cls, param: Parameter) -> tuple:
        """``(setup statement or None, argument expression)`` for the Dart call site.

        A setup statement allocates native memory into ``_<name>`` which the
        caller frees once the entry point has returned.
        """
        name = to_mixed_case(param.name)
        temp = f'_{name}'
        kind = cls.abi(param.type).kind

        if kind in ('scalar', 'bool'):
            return None, name
        if kind == 'string':
            return f'final {temp} = {name}.toNativeUtf8().cast<Char>();', temp
        if kind == 'wide':
            return f'final {temp} = {name}.toString().toNativeUtf8().cast<Char>();', temp
        if kind == 'opt_string':
            return f'final {temp} = {name} == null ? nullptr : {name}.toNativeUtf8().cast<Char>();', temp
        if kind == 'opt_wide':
            return f'final {temp} = {name} == null ? nullptr : {name}.toString().toNativeUtf8().cast<Char>();', temp
        if kind == 'opt_scalar':
            native = cls.SCALARS[param.type.args[0].name][2]
            return f'final {temp} = {name} == null ? nullptr : (malloc<{native}>()..value = {name});', temp
        write = cls.dart_write(param.type, name)
        return f'final {temp} = membraneEncode((serializer) => {write});', temp


def to_mixed_case(name: str) -> str:
    """``user_id`` -> ``userId``"""
    parts = [p for p in name.split('_') if p]
    if not parts:
        return name
    if name.isupper():
        parts = [p.lower() for p in parts]
    return parts[0] + ''.join(p[0].upper() + p[1:] for p in parts[1:])


def to_pascal_case(name: str) -> str:
    """``user_accounts`` -> ``UserAccounts``"""
    mixed = to_mixed_case(name)
    return mixed[0].upper() + mixed[1:] if mixed else mixed


def to_snake_case(name: str) -> str:
    """``MoreTypes`` -> ``more_types``"""
    name = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', name)
    name = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', name)
    return name.lower()
