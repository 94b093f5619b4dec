"""Registration phase: collects declarations and type descriptors"""

import logging

from .errors import DuplicateDeclaration, MalformedDeclaration
from .type_mapper import TypeMapper
from .types import Declaration, EnumRegistration, OutputStyle, ParsedSource

logger = logging.getLogger(__name__)


class Registry:
    """Explicit registry filled by the registration phase.

    Every parsed source is added here; the generation phase iterates the
    registry's contents instead of relying on global state.
    """

    def __init__(self):
        self.declarations: list[Declaration] = []
        self.schemas: list = []
        self.enum_registrations: list[EnumRegistration] = []
        self._symbols: dict[str, Declaration] = {}

    def register(self, parsed: ParsedSource) -> "Registry":
        for schema in parsed.schemas:
            self.schemas.append(schema)
        for registration in parsed.enum_registrations:
            self.enum_registrations.append(registration)
        for decl in parsed.declarations:
            self.add(decl)
        return self

    def add(self, decl: Declaration):
        if decl.output_style is OutputStyle.CHANNEL and decl.params:
            raise MalformedDeclaration("a channel declaration takes no parameters", decl.where)

        existing = self._symbols.get(decl.symbol)
        if existing is not None:
            raise DuplicateDeclaration(
                f"exported symbol `{decl.symbol}` is already used by {existing.where}", decl.where)

        for param in decl.params:
            TypeMapper.check(param.type, decl.where)
        TypeMapper.check(decl.success_type, decl.where, allow_unit=True)
        TypeMapper.check(decl.error_type, decl.where)

        self._symbols[decl.symbol] = decl
        self.declarations.append(decl)
        logger.debug("registered %s as %s", decl.where, decl.symbol)

    def namespaces(self) -> list[str]:
        seen = []
        for decl in self.declarations:
            if decl.namespace not in seen:
                seen.append(decl.namespace)
        for registration in self.enum_registrations:
            if registration.namespace not in seen:
                seen.append(registration.namespace)
        return seen

    def declarations_for(self, namespace: str) -> list[Declaration]:
        return [d for d in self.declarations if d.namespace == namespace]

    def lookup(self, symbol: str) -> Declaration:
        return self._symbols[symbol]
