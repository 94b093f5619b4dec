"""
Async FFI Bridge Generator Package

Parses annotated async Rust declarations and generates:
  1. Rust extern "C" entry points that spawn the work and post results to a port
  2. C headers listing every entry point
  3. Dart bindings: futures and streams over the entry points, data classes and enums

Also ships a reference codec for the binary envelope format and an asyncio
loopback bridge that runs declarations in-process.
"""

from .types import (
    TypeExpr, OutputStyle, Parameter, Options, Declaration,
    Field, Variant, StructSchema, EnumSchema, EnumRegistration, ParsedSource,
)
from .errors import (
    MembraneError, MalformedDeclaration, DuplicateDeclaration, SchemaConflict,
    UnsupportedType, EnvelopeEncodeFailure, EnvelopeDecodeFailure, ApiError, TaskFailure,
)
from .type_expr import parse_type
from .classifier import classify_return_type
from .parser import DeclarationParser, SourceParser, parse_options, parse_source
from .type_mapper import TypeMapper
from .registry import Registry
from .reflection import Reflection, ReflectionPass
from .codec import Codec
from .envelope import END_OF_STREAM, Ok, Err, EnvelopeCodec
from .bridge_generator import BridgeGenerator
from .header_generator import HeaderGenerator
from .common_generator import CommonGenerator
from .dart_type_generator import DartTypeGenerator
from .dart_generator import DartGenerator
from .config import GeneratorConfig
from .generator import Membrane
from .loopback import Broadcast, LoopbackBridge, LoopbackClient, TaskHandle

__all__ = [
    'TypeExpr', 'OutputStyle', 'Parameter', 'Options', 'Declaration',
    'Field', 'Variant', 'StructSchema', 'EnumSchema', 'EnumRegistration', 'ParsedSource',
    'MembraneError', 'MalformedDeclaration', 'DuplicateDeclaration', 'SchemaConflict',
    'UnsupportedType', 'EnvelopeEncodeFailure', 'EnvelopeDecodeFailure', 'ApiError', 'TaskFailure',
    'parse_type', 'classify_return_type',
    'DeclarationParser', 'SourceParser', 'parse_options', 'parse_source',
    'TypeMapper', 'Registry', 'Reflection', 'ReflectionPass',
    'Codec', 'END_OF_STREAM', 'Ok', 'Err', 'EnvelopeCodec',
    'BridgeGenerator', 'HeaderGenerator', 'CommonGenerator', 'DartTypeGenerator', 'DartGenerator',
    'GeneratorConfig', 'Membrane',
    'Broadcast', 'LoopbackBridge', 'LoopbackClient', 'TaskHandle',
]
