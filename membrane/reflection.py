"""Type reflection pass: resolves the schema of every type crossing the boundary"""

import logging
from dataclasses import dataclass, field

from .errors import MalformedDeclaration, SchemaConflict, UnsupportedType
from .registry import Registry
from .type_mapper import TypeMapper
from .types import EnumSchema, Field

logger = logging.getLogger(__name__)


@dataclass
class Reflection:
    """Result of the reflection pass"""
    schemas: dict = field(default_factory=dict)
    namespace_types: dict = field(default_factory=dict)

    def schema(self, name: str):
        return self.schemas[name]

    def types_for(self, namespace: str) -> list:
        return [self.schemas[name] for name in self.namespace_types.get(namespace, [])]


class ReflectionPass:
    """Whole-program pass run once after every declaration is registered.

    Type definitions come from the explicit descriptors parsed out of the
    source (struct fields, enum variants). Each distinct type name is
    resolved exactly once; a name defined twice with different shapes is
    rejected.
    """

    def __init__(self, registry: Registry):
        self.registry = registry
        self._candidates: dict[str, list] = {}
        for schema in registry.schemas:
            self._candidates.setdefault(schema.name, []).append(schema)
        self._result = None

    def run(self) -> Reflection:
        if self._result is not None:
            return self._result

        result = Reflection()
        for decl in self.registry.declarations:
            names = result.namespace_types.setdefault(decl.namespace, [])
            roots = [decl.success_type, decl.error_type] + [p.type for p in decl.params]
            for root in roots:
                for name in TypeMapper.user_types(root):
                    self._resolve(name, decl.where, result, names)

        for registration in self.registry.enum_registrations:
            where = "::".join(registration.module_path + (registration.name,))
            names = result.namespace_types.setdefault(registration.namespace, [])
            self._resolve(registration.name, where, result, names)
            if not isinstance(result.schemas[registration.name], EnumSchema):
                raise MalformedDeclaration(f"#[dart_enum] `{registration.name}` is not an enum", where)

        logger.debug("reflected %d types", len(result.schemas))
        self._result = result
        return result

    def _resolve(self, name: str, where: str, result: Reflection, names: list):
        if name in names:
            return
        names.append(name)
        if name not in result.schemas:
            result.schemas[name] = self._definition(name, where)
        schema = result.schemas[name]

        for owner, member in self._members(schema):
            TypeMapper.check(member.type, owner)
            self._check_decimal(member, owner)
            for child in TypeMapper.user_types(member.type):
                self._resolve(child, owner, result, names)

    def _definition(self, name: str, where: str):
        candidates = self._candidates.get(name)
        if not candidates:
            raise UnsupportedType(name, where, "no struct or enum definition found")
        first = candidates[0]
        for other in candidates[1:]:
            if other.shape() != first.shape():
                modules = " and ".join("::".join(s.module_path) or "crate" for s in (first, other))
                raise SchemaConflict(
                    f"type `{name}` is defined with different shapes in {modules}", where)
        if isinstance(first, EnumSchema) and not first.variants:
            raise UnsupportedType(name, where, "an enum without variants has no client representation")
        return first

    def _members(self, schema) -> list[tuple[str, Field]]:
        if isinstance(schema, EnumSchema):
            return [(f"{schema.name}::{v.name}", f) for v in schema.variants for f in v.fields]
        return [(f"{schema.name}.{f.name}", f) for f in schema.fields]

    def _check_decimal(self, member: Field, owner: str):
        """128-bit fields must be serialized through the generated decimal module"""
        expected = TypeMapper.decimal_adapter(member.type, owner)
        if not expected:
            return
        path = member.serde_with.replace(" ", "").split("::")
        if path[0] in ("crate", "self", "super", ""):
            path = path[1:]
        if "::".join(path) != expected:
            raise UnsupportedType(
                str(member.type), owner, f"add #[serde(with = \"crate::{expected}\")] so it crosses as a decimal string")
