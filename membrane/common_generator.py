"""Common Generator - generates the Dart support library shared by every namespace"""


class CommonGenerator:
    """Generates lib/src/membrane.dart: library loading, bincode, envelopes and task handles"""

    def __init__(self, lib_name: str):
        self.lib_name = lib_name

    def generate(self) -> str:
        lines = [
            "// AUTO-GENERATED - DO NOT EDIT",
            "import 'dart:convert';",
            "import 'dart:ffi';",
            "import 'dart:io' show Platform;",
            "import 'dart:typed_data';",
            "",
            "import 'package:ffi/ffi.dart';",
            "",
        ]
        lines.extend(self._library())
        lines.extend(self._tasks())
        lines.extend(self._errors())
        lines.extend(self._serializer())
        lines.extend(self._deserializer())
        lines.extend(self._envelopes())
        return "\n".join(lines)

    def _library(self) -> list[str]:
        name = self.lib_name
        return [
            "/// Opaque native task handle returned by every bridge entry point.",
            "final class MembraneTaskHandle extends Opaque {}",
            "",
            "DynamicLibrary _openLibrary() {",
            "  if (Platform.isIOS) return DynamicLibrary.process();",
            f"  if (Platform.isMacOS) return DynamicLibrary.open('lib{name}.dylib');",
            f"  if (Platform.isWindows) return DynamicLibrary.open('{name}.dll');",
            f"  return DynamicLibrary.open('lib{name}.so');",
            "}",
            "",
            "final DynamicLibrary membraneLibrary = _openLibrary();",
            "",
        ]

    def _tasks(self) -> list[str]:
        return [
            "final _cancelTask = membraneLibrary.lookupFunction<",
            "    Bool Function(Pointer<MembraneTaskHandle>),",
            "    bool Function(Pointer<MembraneTaskHandle>)>('membrane_cancel_membrane_task');",
            "",
            "final _dropTask = membraneLibrary.lookupFunction<",
            "    Void Function(Pointer<MembraneTaskHandle>),",
            "    void Function(Pointer<MembraneTaskHandle>)>('membrane_drop_membrane_task');",
            "",
            "/// Requests cancellation of a native task. Cancelling twice is harmless.",
            "bool membraneCancelTask(Pointer<MembraneTaskHandle> handle) =>",
            "    handle == nullptr ? false : _cancelTask(handle);",
            "",
            "/// Releases a task handle. The handle must not be used afterwards.",
            "void membraneDropTask(Pointer<MembraneTaskHandle> handle) {",
            "  if (handle != nullptr) _dropTask(handle);",
            "}",
            "",
        ]

    def _errors(self) -> list[str]:
        return [
            "/// Raised when a delivered payload is not a well-formed envelope.",
            "class MembraneDecodeError implements Exception {",
            "  const MembraneDecodeError(this.message);",
            "",
            "  final String message;",
            "",
            "  @override",
            "  String toString() => 'MembraneDecodeError: $message';",
            "}",
            "",
        ]

    def _serializer(self) -> list[str]:
        lines = [
            "class BincodeSerializer {",
            "  final _builder = BytesBuilder();",
            "  final _scratch = ByteData(8);",
            "",
            "  Uint8List get bytes => _builder.toBytes();",
            "",
            "  void _flush(int length) => _builder.add(_scratch.buffer.asUint8List(0, length));",
            "",
            "  void serializeBool(bool value) => _builder.addByte(value ? 1 : 0);",
            "",
        ]
        for name, setter, size in self._fixed():
            endian = "" if size == 1 else ", Endian.little"
            dart_type = "double" if name.startswith("Float") else "int"
            lines.extend([
                f"  void serialize{name}({dart_type} value) {{",
                f"    _scratch.{setter}(0, value{endian});",
                f"    _flush({size});",
                "  }",
                "",
            ])
        lines.extend([
            "  void serializeUint64(BigInt value) {",
            "    final mask = BigInt.from(0xffffffff);",
            "    _scratch.setUint32(0, (value & mask).toInt(), Endian.little);",
            "    _scratch.setUint32(4, ((value >> 32) & mask).toInt(), Endian.little);",
            "    _flush(8);",
            "  }",
            "",
            "  // 128-bit integers travel as decimal strings",
            "  void serializeInt128(BigInt value) => serializeString(value.toString());",
            "",
            "  void serializeUint128(BigInt value) => serializeString(value.toString());",
            "",
            "  void serializeLength(int length) {",
            "    _scratch.setInt64(0, length, Endian.little);",
            "    _flush(8);",
            "  }",
            "",
            "  void serializeString(String value) {",
            "    final data = utf8.encode(value);",
            "    serializeLength(data.length);",
            "    _builder.add(data);",
            "  }",
            "",
            "  void serializeOption<T>(T? value, void Function(T) write) {",
            "    if (value == null) {",
            "      _builder.addByte(0);",
            "    } else {",
            "      _builder.addByte(1);",
            "      write(value);",
            "    }",
            "  }",
            "",
            "  void serializeSeq<T>(List<T> values, void Function(T) write) {",
            "    serializeLength(values.length);",
            "    values.forEach(write);",
            "  }",
            "",
            "  void serializeVariantIndex(int index) => serializeUint32(index);",
            "}",
            "",
        ])
        return lines

    def _deserializer(self) -> list[str]:
        lines = [
            "class BincodeDeserializer {",
            "  BincodeDeserializer(Uint8List input)",
            "      : _input = input,",
            "        _data = ByteData.sublistView(input);",
            "",
            "  final Uint8List _input;",
            "  final ByteData _data;",
            "  int _offset = 0;",
            "",
            "  int get remaining => _input.length - _offset;",
            "",
            "  void _need(int length) {",
            "    if (length > remaining) {",
            "      throw MembraneDecodeError(",
            "          'unexpected end of payload: need $length bytes at offset $_offset, $remaining left');",
            "    }",
            "  }",
            "",
            "  bool deserializeBool() {",
            "    _need(1);",
            "    final byte = _data.getUint8(_offset++);",
            "    if (byte > 1) throw MembraneDecodeError('invalid bool byte $byte');",
            "    return byte == 1;",
            "  }",
            "",
        ]
        for name, setter, size in self._fixed():
            getter = "get" + setter[3:]
            endian = "" if size == 1 else ", Endian.little"
            dart_type = "double" if name.startswith("Float") else "int"
            lines.extend([
                f"  {dart_type} deserialize{name}() {{",
                f"    _need({size});",
                f"    final value = _data.{getter}(_offset{endian});",
                f"    _offset += {size};",
                "    return value;",
                "  }",
                "",
            ])
        lines.extend([
            "  BigInt deserializeUint64() {",
            "    _need(8);",
            "    final low = _data.getUint32(_offset, Endian.little);",
            "    final high = _data.getUint32(_offset + 4, Endian.little);",
            "    _offset += 8;",
            "    return (BigInt.from(high) << 32) | BigInt.from(low);",
            "  }",
            "",
            "  BigInt deserializeInt128() => _parseDecimal(deserializeString(), 'i128');",
            "",
            "  BigInt deserializeUint128() => _parseDecimal(deserializeString(), 'u128');",
            "",
            "  BigInt _parseDecimal(String text, String kind) {",
            "    final value = BigInt.tryParse(text);",
            "    if (value == null) throw MembraneDecodeError('invalid $kind literal \"$text\"');",
            "    return value;",
            "  }",
            "",
            "  int deserializeLength() {",
            "    _need(8);",
            "    final length = _data.getInt64(_offset, Endian.little);",
            "    _offset += 8;",
            "    if (length < 0) throw MembraneDecodeError('invalid length $length');",
            "    return length;",
            "  }",
            "",
            "  String deserializeString() {",
            "    final length = deserializeLength();",
            "    _need(length);",
            "    final bytes = _input.sublist(_offset, _offset + length);",
            "    _offset += length;",
            "    try {",
            "      return utf8.decode(bytes);",
            "    } on FormatException catch (e) {",
            "      throw MembraneDecodeError('invalid UTF-8 in string: ${e.message}');",
            "    }",
            "  }",
            "",
            "  T? deserializeOption<T>(T Function() read) {",
            "    _need(1);",
            "    final tag = _data.getUint8(_offset++);",
            "    if (tag == 0) return null;",
            "    if (tag == 1) return read();",
            "    throw MembraneDecodeError('invalid option tag $tag');",
            "  }",
            "",
            "  List<T> deserializeSeq<T>(T Function() read) {",
            "    final length = deserializeLength();",
            "    return List<T>.generate(length, (_) => read());",
            "  }",
            "",
            "  int deserializeVariantIndex() => deserializeUint32();",
            "",
            "  void finish() {",
            "    if (remaining != 0) throw MembraneDecodeError('$remaining trailing bytes');",
            "  }",
            "}",
            "",
        ])
        return lines

    def _envelopes(self) -> list[str]:
        return [
            "/// Copies a serialized argument into native memory, prefixed with its",
            "/// little-endian u64 length. The caller frees the returned pointer.",
            "Pointer<Uint8> membraneEncode(void Function(BincodeSerializer) write) {",
            "  final serializer = BincodeSerializer();",
            "  write(serializer);",
            "  final payload = serializer.bytes;",
            "  final buffer = malloc<Uint8>(payload.length + 8);",
            "  final view = buffer.asTypedList(payload.length + 8);",
            "  ByteData.sublistView(view).setUint64(0, payload.length, Endian.little);",
            "  view.setAll(8, payload);",
            "  return buffer;",
            "}",
            "",
            "/// True for the empty delivery that follows the last item of a stream.",
            "bool membraneIsEndOfStream(Object? message) => message is Uint8List && message.isEmpty;",
            "",
            "/// Decodes one `(bool, payload)` envelope, returning the success value or",
            "/// throwing the error built by [readError].",
            "T membraneDecode<T>(",
            "  Object? message,",
            "  T Function(BincodeDeserializer) readValue,",
            "  Object Function(BincodeDeserializer) readError,",
            ") {",
            "  if (message is! Uint8List || message.isEmpty) {",
            "    throw MembraneDecodeError('expected an envelope, got ${message.runtimeType}');",
            "  }",
            "  final deserializer = BincodeDeserializer(message);",
            "  if (deserializer.deserializeBool()) {",
            "    final value = readValue(deserializer);",
            "    deserializer.finish();",
            "    return value;",
            "  }",
            "  final error = readError(deserializer);",
            "  deserializer.finish();",
            "  throw error;",
            "}",
            "",
        ]

    def _fixed(self) -> list[tuple[str, str, int]]:
        return [
            ("Int8", "setInt8", 1),
            ("Int16", "setInt16", 2),
            ("Int32", "setInt32", 4),
            ("Int64", "setInt64", 8),
            ("Uint8", "setUint8", 1),
            ("Uint16", "setUint16", 2),
            ("Uint32", "setUint32", 4),
            ("Float32", "setFloat32", 4),
            ("Float64", "setFloat64", 8),
        ]
