"""Dart Type Generator - generates one Dart file per reflected struct or enum"""

from .type_mapper import TypeMapper, to_mixed_case, to_pascal_case, to_snake_case
from .types import EnumSchema, Field, StructSchema, TypeExpr, Variant

DART_RESERVED = {
    'assert', 'break', 'case', 'catch', 'class', 'const', 'continue', 'default', 'do',
    'else', 'enum', 'extends', 'false', 'final', 'finally', 'for', 'if', 'in', 'is',
    'new', 'null', 'rethrow', 'return', 'super', 'switch', 'this', 'throw', 'true',
    'try', 'var', 'void', 'while', 'with', 'hashCode', 'runtimeType', 'toString',
}

# Members every Dart enum already has
ENUM_RESERVED = DART_RESERVED | {'index', 'name', 'values'}

DEEP_EQUALITY = 'const DeepCollectionEquality()'


def dart_field_name(name: str, reserved=DART_RESERVED) -> str:
    """``full_name`` -> ``fullName``; reserved words get a trailing underscore"""
    dart = to_mixed_case(name)
    return f'{dart}_' if dart in reserved else dart


def type_file(name: str) -> str:
    return f'{to_snake_case(name)}.dart'


def has_sequence(ty: TypeExpr) -> bool:
    return ty.name == 'Vec' or any(has_sequence(a) for a in ty.args)


class DartTypeGenerator:
    """Generates lib/src/types/<type>.dart for every type in the reflection table"""

    def __init__(self, schemas: dict):
        self.schemas = schemas

    def generate(self) -> dict[str, str]:
        return {f'lib/src/types/{type_file(name)}': self.generate_type(schema)
                for name, schema in self.schemas.items()}

    def generate_type(self, schema) -> str:
        if isinstance(schema, EnumSchema) and schema.is_simple:
            body = self._simple_enum(schema)
        elif isinstance(schema, EnumSchema):
            body = self._data_enum(schema)
        else:
            body = self._struct(schema)
        return "\n".join(self._imports(schema) + body)

    def _imports(self, schema) -> list[str]:
        fields = self._fields(schema)
        simple = isinstance(schema, EnumSchema) and schema.is_simple
        lines = [
            "// AUTO-GENERATED - DO NOT EDIT",
            "import 'dart:typed_data';",
            "",
        ]
        packages = []
        if any(has_sequence(f.type) for f in fields):
            packages.append("import 'package:collection/collection.dart';")
        if not simple:
            packages.append("import 'package:meta/meta.dart';")
        if packages:
            lines.extend(packages + [""])

        lines.append("import '../membrane.dart';")
        referenced = []
        for f in fields:
            for name in TypeMapper.user_types(f.type):
                if name != schema.name and name not in referenced:
                    referenced.append(name)
        lines.extend(f"import '{type_file(name)}';" for name in referenced)
        lines.append("")
        return lines

    def _fields(self, schema) -> list[Field]:
        if isinstance(schema, EnumSchema):
            return [f for v in schema.variants for f in v.fields]
        return schema.fields

    def _struct(self, schema: StructSchema) -> list[str]:
        name = schema.name
        lines = ["@immutable"]
        fields = schema.fields
        if schema.kind == 'tuple' and len(fields) == 1:
            fields = [Field(name='value', type=fields[0].type)]
        lines.extend(self._value_class(name, fields, positional=schema.kind == 'tuple'))
        lines[-2:-2] = self._bincode_helpers(name)
        return lines

    def _simple_enum(self, schema: EnumSchema) -> list[str]:
        name = schema.name
        values = [dart_field_name(to_snake_case(v.name), ENUM_RESERVED) for v in schema.variants]
        lines = [f"enum {name} {{"]
        lines.extend(f"  {v}," for v in values[:-1])
        lines.extend([
            f"  {values[-1]};",
            "",
            "  void serialize(BincodeSerializer serializer) => serializer.serializeVariantIndex(index);",
            "",
            f"  static {name} deserialize(BincodeDeserializer deserializer) {{",
            "    final index = deserializer.deserializeVariantIndex();",
            "    if (index >= values.length) {",
            f"      throw MembraneDecodeError('unknown variant index $index for {name}');",
            "    }",
            "    return values[index];",
            "  }",
            "",
        ])
        lines.extend(self._bincode_helpers(name))
        lines.extend(["}", ""])
        return lines

    def _data_enum(self, schema: EnumSchema) -> list[str]:
        name = schema.name
        lines = [
            "@immutable",
            f"abstract class {name} {{",
            f"  const {name}();",
            "",
            "  void serialize(BincodeSerializer serializer);",
            "",
            f"  static {name} deserialize(BincodeDeserializer deserializer) {{",
            "    final index = deserializer.deserializeVariantIndex();",
            "    switch (index) {",
        ]
        for index, variant in enumerate(schema.variants):
            lines.extend([
                f"      case {index}:",
                f"        return {self._variant_class(name, variant)}._read(deserializer);",
            ])
        lines.extend([
            "      default:",
            f"        throw MembraneDecodeError('unknown variant index $index for {name}');",
            "    }",
            "  }",
            "",
        ])
        lines.extend(self._bincode_helpers(name))
        lines.extend(["}", ""])

        for index, variant in enumerate(schema.variants):
            lines.extend(self._value_class(
                self._variant_class(name, variant),
                self._variant_fields(variant),
                positional=variant.kind == 'tuple',
                base=name,
                index=index,
            ))
        return lines

    def _variant_class(self, enum_name: str, variant: Variant) -> str:
        return f"{enum_name}{to_pascal_case(variant.name)}"

    def _variant_fields(self, variant: Variant) -> list[Field]:
        if variant.kind == 'tuple' and len(variant.fields) == 1:
            return [Field(name='value', type=variant.fields[0].type)]
        return variant.fields

    def _value_class(self, name: str, fields: list[Field], positional: bool,
                     base: str = None, index: int = None) -> list[str]:
        """Immutable class with fields, serialize, a reader, equality and toString"""
        names = [dart_field_name(f.name) for f in fields]
        types = [TypeMapper.to_dart(f.type) for f in fields]
        extends = f" extends {base}" if base else ""
        lines = [f"class {name}{extends} {{"]

        if not fields:
            lines.append(f"  const {name}();")
        elif positional:
            lines.append(f"  const {name}({', '.join(f'this.{n}' for n in names)});")
        else:
            lines.append(f"  const {name}({{")
            for n, f in zip(names, fields):
                required = "" if f.type.name == 'Option' else "required "
                lines.append(f"    {required}this.{n},")
            lines.append("  });")
        lines.append("")

        if fields:
            lines.extend(f"  final {t} {n};" for t, n in zip(types, names))
            lines.append("")

        override = ["  @override"] if base else []
        lines.extend(override)
        lines.append("  void serialize(BincodeSerializer serializer) {")
        if index is not None:
            lines.append(f"    serializer.serializeVariantIndex({index});")
        lines.extend(f"    {TypeMapper.dart_write(f.type, n)};" for n, f in zip(names, fields))
        lines.extend(["  }", ""])

        reader = "_read" if base else "deserialize"
        reads = [TypeMapper.dart_read(f.type) for f in fields]
        if not fields:
            construct = f"const {name}()"
        elif positional:
            construct = f"{name}({', '.join(reads)})"
        else:
            construct = f"{name}({', '.join(f'{n}: {r}' for n, r in zip(names, reads))})"
        lines.extend([
            f"  static {name} {reader}(BincodeDeserializer deserializer) =>",
            f"      {construct};",
            "",
        ])

        lines.extend(self._equality(name, names, fields))
        shown = ", ".join(f"{n}: ${n}" if not positional else f"${n}" for n in names)
        lines.extend([
            "  @override",
            f"  String toString() => '{name}({shown})';",
            "}",
            "",
        ])
        return lines

    def _equality(self, name: str, names: list[str], fields: list[Field]) -> list[str]:
        checks = []
        hashes = []
        for n, f in zip(names, fields):
            if has_sequence(f.type):
                checks.append(f"{DEEP_EQUALITY}.equals({n}, other.{n})")
                hashes.append(f"{DEEP_EQUALITY}.hash({n})")
            else:
                checks.append(f"{n} == other.{n}")
                hashes.append(n)

        condition = " &&\n          ".join([f"other is {name}"] + checks)
        if not hashes:
            hash_code = "runtimeType.hashCode"
        elif len(hashes) == 1:
            hash_code = hashes[0] if hashes[0] != names[0] else f"{names[0]}.hashCode"
        elif len(hashes) <= 20:
            hash_code = f"Object.hash({', '.join(hashes)})"
        else:
            hash_code = f"Object.hashAll([{', '.join(hashes)}])"

        return [
            "  @override",
            "  bool operator ==(Object other) =>",
            "      identical(this, other) ||",
            f"      ({condition});",
            "",
            "  @override",
            f"  int get hashCode => {hash_code};",
            "",
        ]

    def _bincode_helpers(self, name: str) -> list[str]:
        return [
            "  Uint8List bincodeSerialize() {",
            "    final serializer = BincodeSerializer();",
            "    serialize(serializer);",
            "    return serializer.bytes;",
            "  }",
            "",
            f"  static {name} bincodeDeserialize(Uint8List input) {{",
            "    final deserializer = BincodeDeserializer(input);",
            "    final value = deserialize(deserializer);",
            "    deserializer.finish();",
            "    return value;",
            "  }",
            "",
        ]
