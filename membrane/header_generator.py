"""Header Generator - generates the per-namespace C header of bridge entry points"""

from .registry import Registry
from .type_mapper import TypeMapper
from .types import Declaration

TASK_HANDLE_C = "MembraneTaskHandle *"


class HeaderGenerator:
    """Generates a C header listing every exported entry point of one namespace"""

    def __init__(self, registry: Registry, namespace: str):
        self.registry = registry
        self.namespace = namespace

    def declarations(self) -> list[tuple[str, list[str], str]]:
        """``(symbol, [parameter C types], return C type)`` in declaration order"""
        return [self._signature(d) for d in self.registry.declarations_for(self.namespace)]

    def generate(self) -> str:
        lines = self._preamble()
        for decl in self.registry.declarations_for(self.namespace):
            lines.append(self._decl(decl))
        lines.extend(self._postamble())
        return "\n".join(lines)

    def _signature(self, decl: Declaration) -> tuple[str, list[str], str]:
        types = ["int64_t"] + [TypeMapper.abi(p.type).c for p in decl.params]
        return decl.symbol, types, TASK_HANDLE_C.strip()

    def _decl(self, decl: Declaration) -> str:
        params = ["int64_t port"] + [TypeMapper.to_c_param(p) for p in decl.params]
        return f"{TASK_HANDLE_C}{decl.symbol}({', '.join(params)});"

    def _guard(self) -> str:
        return f"MEMBRANE_{self.namespace.upper()}_H"

    def _preamble(self) -> list[str]:
        guard = self._guard()
        return [
            "// AUTO-GENERATED - DO NOT EDIT",
            f"#ifndef {guard}",
            f"#define {guard}",
            "",
            "#include <stdbool.h>",
            "#include <stdint.h>",
            "",
            "#ifdef __cplusplus",
            'extern "C" {',
            "#endif",
            "",
            "typedef struct MembraneTaskHandle MembraneTaskHandle;",
            "",
            "bool membrane_cancel_membrane_task(MembraneTaskHandle *task_handle);",
            "void membrane_drop_membrane_task(MembraneTaskHandle *task_handle);",
            "",
        ]

    def _postamble(self) -> list[str]:
        return [
            "",
            "#ifdef __cplusplus",
            "}",
            "#endif",
            "",
            f"#endif // {self._guard()}",
            "",
        ]
