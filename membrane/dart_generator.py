"""Dart Generator - generates the client API library of one namespace"""

from .dart_type_generator import type_file
from .reflection import Reflection
from .registry import Registry
from .type_mapper import TypeMapper, to_mixed_case, to_pascal_case
from .types import Declaration, OutputStyle

# Locals of generated methods; prefixed so they cannot shadow parameters
PORT = '_membranePort'
HANDLE = '_membraneTaskHandle'
MESSAGE = '_membraneMessage'
VALUE = '_membraneValue'


class DartGenerator:
    """Generates lib/<namespace>.dart: the API class, its error type and FFI bindings"""

    def __init__(self, registry: Registry, reflection: Reflection, namespace: str):
        self.registry = registry
        self.reflection = reflection
        self.namespace = namespace
        self.decls = registry.declarations_for(namespace)
        self.class_name = f"{to_pascal_case(namespace)}Api"
        self.error_name = f"{self.class_name}Error"
        self.bindings_name = f"_{to_pascal_case(namespace)}Bindings"

    def generate(self) -> str:
        lines = self._imports()
        if any(not d.disable_logging for d in self.decls):
            lines.extend([f"final _log = Logger('membrane.{self.namespace}');", ""])
        lines.extend(self._error_class())
        lines.extend(self._bindings())
        lines.extend([
            "@immutable",
            f"class {self.class_name} {{",
            f"  const {self.class_name}();",
            "",
        ])
        for decl in self.decls:
            if decl.output_style is OutputStyle.SERIALIZED:
                lines.extend(self._serialized_method(decl))
            else:
                lines.extend(self._stream_method(decl))
        if lines[-1] == "":
            lines.pop()
        lines.extend(["}", ""])
        return "\n".join(lines)

    def _imports(self) -> list[str]:
        types = self.reflection.namespace_types.get(self.namespace, [])
        logs = any(not d.disable_logging for d in self.decls)
        allocates = any(TypeMapper.dart_transform(p)[0] for d in self.decls for p in d.params)

        lines = ["// AUTO-GENERATED - DO NOT EDIT"]
        lines.extend(["import 'dart:ffi';", "import 'dart:isolate';", ""])
        if allocates:
            lines.append("import 'package:ffi/ffi.dart';")
        if logs:
            lines.append("import 'package:logging/logging.dart';")
        lines.extend(["import 'package:meta/meta.dart';", ""])

        lines.append("import 'src/membrane.dart';")
        lines.extend(f"import 'src/types/{type_file(name)}';" for name in types)
        lines.append("")
        if types:
            lines.extend(f"export 'src/types/{type_file(name)}';" for name in types)
            lines.append("")
        return lines

    def _error_class(self) -> list[str]:
        return [
            "/// Carries the error value returned by the native implementation.",
            "@immutable",
            f"class {self.error_name} implements Exception {{",
            f"  const {self.error_name}(this.e);",
            "",
            "  final Object? e;",
            "",
            "  @override",
            f"  String toString() => '{self.error_name}($e)';",
            "}",
            "",
        ]

    def _bindings(self) -> list[str]:
        lines = [
            f"class {self.bindings_name} {{",
            f"  {self.bindings_name}(this._library);",
            "",
            "  final DynamicLibrary _library;",
        ]
        for decl in self.decls:
            native = ", ".join(["Int64"] + [TypeMapper.abi(p.type).dart_native for p in decl.params])
            dart = ", ".join(["int"] + [TypeMapper.abi(p.type).dart_ffi for p in decl.params])
            lines.extend([
                "",
                f"  late final {to_mixed_case(decl.name)} = _library.lookupFunction<",
                f"      Pointer<MembraneTaskHandle> Function({native}),",
                f"      Pointer<MembraneTaskHandle> Function({dart})>('{decl.symbol}');",
            ])
        lines.extend([
            "}",
            "",
            f"final _bindings = {self.bindings_name}(membraneLibrary);",
            "",
        ])
        return lines

    def _signature(self, decl: Declaration) -> str:
        """``({required String userId, int? limit})`` or ``()``"""
        if not decl.params:
            return "()"
        params = []
        for p in decl.params:
            dart_type = TypeMapper.to_dart(p.type)
            required = "" if p.is_optional else "required "
            params.append(f"{required}{dart_type} {to_mixed_case(p.name)}")
        return "({" + ", ".join(params) + "})"

    def _invoke(self, decl: Declaration) -> list[str]:
        """Statements calling the entry point and checking the returned task handle"""
        setups = []
        frees = []
        args = [f"{PORT}.sendPort.nativePort"]
        for p in decl.params:
            setup, arg = TypeMapper.dart_transform(p)
            args.append(arg)
            if setup:
                setups.append(f"    {setup}")
                if p.is_optional:
                    frees.append(f"    if ({arg} != nullptr) malloc.free({arg});")
                else:
                    frees.append(f"    malloc.free({arg});")

        lines = []
        if not decl.disable_logging:
            lines.append(f"    _log.fine('{decl.symbol}');")
        lines.append(f"    final {PORT} = ReceivePort();")
        lines.extend(setups)
        lines.append(f"    final {HANDLE} = _bindings.{to_mixed_case(decl.name)}({', '.join(args)});")
        lines.extend(frees)
        lines.extend([
            f"    if ({HANDLE} == nullptr) {{",
            f"      {PORT}.close();",
            f"      throw ArgumentError('{decl.symbol} rejected its arguments');",
            "    }",
        ])
        return lines

    def _decode(self, decl: Declaration, message: str, indent: str) -> list[str]:
        dart_type = TypeMapper.to_dart(decl.success_type)
        return [
            f"{indent}membraneDecode<{dart_type}>(",
            f"{indent}  {message},",
            f"{indent}  (deserializer) => {TypeMapper.dart_read(decl.success_type)},",
            f"{indent}  (deserializer) => {self.error_name}({TypeMapper.dart_read(decl.error_type)}),",
            f"{indent})",
        ]

    def _serialized_method(self, decl: Declaration) -> list[str]:
        dart_type = TypeMapper.to_dart(decl.success_type)
        name = to_mixed_case(decl.name)
        lines = [f"  Future<{dart_type}> {name}{self._signature(decl)} async {{"]
        lines.extend(self._invoke(decl))
        lines.append("    try {")
        decode = self._decode(decl, f"await {PORT}.first", "      ")
        keyword = "" if decl.success_type.is_unit else "return "
        lines.append(f"      {keyword}{decode[0].lstrip()}")
        lines.extend(decode[1:-1])
        lines.append(f"{decode[-1]};")
        lines.extend([
            "    } finally {",
            f"      {PORT}.close();",
            f"      membraneDropTask({HANDLE});",
            "    }",
            "  }",
            "",
        ])
        return lines

    def _stream_method(self, decl: Declaration) -> list[str]:
        dart_type = TypeMapper.to_dart(decl.success_type)
        name = to_mixed_case(decl.name)
        lines = [f"  Stream<{dart_type}> {name}{self._signature(decl)} async* {{"]
        lines.extend(self._invoke(decl))
        decode = self._decode(decl, MESSAGE, "          ")
        lines.extend([
            "    try {",
            f"      await for (final {MESSAGE} in {PORT}) {{",
            f"        if (membraneIsEndOfStream({MESSAGE})) break;",
            f"        final {dart_type} {VALUE};",
            "        try {",
            f"          {VALUE} = {decode[0].lstrip()}",
            *decode[1:-1],
            f"{decode[-1]};",
            f"        }} on {self.error_name} catch (e, stack) {{",
            "          // the stream stays open after an error item",
            f"          yield* Stream<{dart_type}>.error(e, stack);",
            "          continue;",
            "        }",
            f"        yield {VALUE};",
            "      }",
            "    } finally {",
            f"      membraneCancelTask({HANDLE});",
            f"      membraneDropTask({HANDLE});",
            f"      {PORT}.close();",
            "    }",
            "  }",
            "",
        ])
        return lines
