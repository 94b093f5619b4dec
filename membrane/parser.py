"""Parser for annotated Rust declarations and type definitions"""

import logging
import re
from pathlib import Path
from typing import Optional

from .classifier import classify_return_type
from .errors import MalformedDeclaration
from .type_expr import parse_type, split_top_level
from .types import (
    Declaration, EnumRegistration, EnumSchema, Field, Options, OutputStyle,
    Parameter, ParsedSource, StructSchema, Variant,
)

logger = logging.getLogger(__name__)

VALID_OPTIONS_MESSAGE = '#[async_dart] only `namespace=""` and `disable_logging=true` are valid options'
SELF_MESSAGE = "self is not supported in #[async_dart] functions"

NAMESPACE_RE = re.compile(r"[a-z][a-z0-9_]*$")
ATTRIBUTE_RE = re.compile(r"#\[\s*(async_dart|dart_enum)\s*(?:\((.*?)\))?\s*\]", re.DOTALL)
OTHER_ATTRIBUTE_RE = re.compile(r"\s*#!?\[")
VIS_RE = r"(?:pub(?:\s*\([^)]*\))?\s+)?"
STRUCT_RE = re.compile(rf"{VIS_RE}struct\s+(\w+)\s*(<[^>{{]*>)?\s*([{{(;])")
ENUM_RE = re.compile(rf"{VIS_RE}enum\s+(\w+)\s*(<[^>{{]*>)?\s*\{{")
FN_RE = re.compile(r"(?P<vis>pub(?:\s*\([^)]*\))?\s+)?(?P<quals>(?:\w+\s+)*?)fn\s+(?P<name>\w+)\s*")
STATIC_RE = re.compile(r"(?P<vis>pub(?:\s*\([^)]*\))?\s+)?static\s+(?:mut\s+)?(?P<name>\w+)\s*:")
PARAM_RE = re.compile(r"(?:mut\s+)?(\w+)\s*:(?!:)\s*(.+)$", re.DOTALL)
SELF_RE = re.compile(r"(&\s*('\w+\s+)?(mut\s+)?)?(mut\s+)?self\b")
LEADING_ATTRIBUTES_RE = re.compile(r"^\s*(?:#\[[^\]]*\]\s*)*")
SERDE_WITH_RE = re.compile(r'#\[\s*serde\s*\([^\]]*?\bwith\s*=\s*"([^"]+)"')


def strip_comments(content: str) -> str:
    content = re.sub(r'//.*$', '', content, flags=re.MULTILINE)
    content = re.sub(r'/\*.*?\*/', '', content, flags=re.DOTALL)
    return content


def module_path_for(path: Path, source_root: Path) -> tuple:
    """Rust module path of a source file relative to the crate's ``src`` root"""
    parts = list(Path(path).relative_to(source_root).with_suffix("").parts)
    if parts and parts[-1] in ("lib", "main", "mod"):
        parts.pop()
    return tuple(parts)


def parse_options(text: str, where: str = "") -> Options:
    """Parse the option list of an ``async_dart`` or ``dart_enum`` attribute"""
    values = {}
    for item in split_top_level(text or ""):
        m = re.match(r"(\w+)\s*=\s*(.+)$", item, re.DOTALL)
        if not m:
            raise MalformedDeclaration(f"expected `name = value` option, found `{item}`", where)
        key, raw = m.group(1), m.group(2).strip()
        if key not in ("namespace", "disable_logging"):
            raise MalformedDeclaration(VALID_OPTIONS_MESSAGE, where)
        if key in values:
            raise MalformedDeclaration(f"duplicate option `{key}`", where)

        if key == "namespace":
            lit = re.match(r'"([^"\\]*)"$', raw)
            if not lit:
                raise MalformedDeclaration("`namespace` must be a string literal", where)
            values[key] = lit.group(1)
        else:
            if raw not in ("true", "false"):
                raise MalformedDeclaration("`disable_logging` must be `true` or `false`", where)
            values[key] = raw == "true"

    namespace = values.get("namespace", "")
    if not namespace:
        raise MalformedDeclaration("#[async_dart] expects a `namespace` attribute", where)
    if not NAMESPACE_RE.match(namespace):
        raise MalformedDeclaration(f"`namespace` must be a lowercase identifier, found `{namespace}`", where)
    return Options(namespace=namespace, disable_logging=values.get("disable_logging", False))


class DeclarationParser:
    """Turns the text of one annotated item plus its options into a Declaration"""

    def __init__(self, module_path: tuple = ()):
        self.module_path = tuple(module_path)

    def parse(self, text: str, options_text: str) -> Declaration:
        text = strip_comments(text).strip()
        name = self._item_name(text)
        where = "::".join(self.module_path + (name,)) if name else "::".join(self.module_path)
        options = parse_options(options_text, where)

        if STATIC_RE.match(text):
            decl = self._parse_static(text, where)
        elif FN_RE.match(text):
            decl = self._parse_fn(text, where)
        else:
            raise MalformedDeclaration("expected a `pub async fn` or a `pub static` item", where)

        decl.namespace = options.namespace
        decl.disable_logging = options.disable_logging
        decl.module_path = self.module_path
        decl.source = text
        return decl

    def _item_name(self, text: str) -> str:
        m = STATIC_RE.match(text) or FN_RE.match(text)
        return m.group("name") if m else ""

    def _parse_static(self, text: str, where: str) -> Declaration:
        m = STATIC_RE.match(text)
        if not m.group("vis"):
            raise MalformedDeclaration("an #[async_dart] static must be `pub`", where)
        rest = text[m.end():]
        type_end = _find_top_level(rest, "=", angle=True)
        if type_end < 0:
            raise MalformedDeclaration("expected `= <initializer>;` after the static type", where)

        ret = parse_type(rest[:type_end])
        style, ok, err = classify_return_type(ret, is_static=True, where=where)
        return Declaration(
            name=m.group("name"),
            namespace="",
            output_style=style,
            success_type=ok,
            error_type=err,
            params=[],
            is_async=False,
        )

    def _parse_fn(self, text: str, where: str) -> Declaration:
        m = FN_RE.match(text)
        if not m.group("vis"):
            raise MalformedDeclaration("an #[async_dart] function must be `pub`", where)
        quals = m.group("quals").split()
        is_async = "async" in quals
        rest = text[m.end():]
        if rest.startswith("<"):
            raise MalformedDeclaration("generic functions are not supported", where)
        if not rest.startswith("("):
            raise MalformedDeclaration("expected `(` after the function name", where)

        close = _matching(rest, 0)
        if close < 0:
            raise MalformedDeclaration("unbalanced parameter list", where)
        params = self._parse_params(rest[1:close], where)

        tail = rest[close + 1:].strip()
        if not tail.startswith("->"):
            raise MalformedDeclaration("expected a return type `-> Result<T, E>`", where)
        ret_text = tail[2:]
        body = _find_top_level(ret_text, "{")
        if body >= 0:
            ret_text = ret_text[:body]
        ret_text = re.split(r"\bwhere\b", ret_text)[0]

        style, ok, err = classify_return_type(parse_type(ret_text), where=where)
        if style is OutputStyle.SERIALIZED and not is_async:
            raise MalformedDeclaration("expected `async fn`", where)

        return Declaration(
            name=m.group("name"),
            namespace="",
            output_style=style,
            success_type=ok,
            error_type=err,
            params=params,
            is_async=is_async,
        )

    def _parse_params(self, text: str, where: str) -> list[Parameter]:
        params = []
        for item in split_top_level(text):
            item = re.sub(r"#\[[^\]]*\]", "", item).strip()
            if SELF_RE.match(item) and (item.endswith("self") or re.match(r"(mut\s+)?self\s*:", item)):
                raise MalformedDeclaration(SELF_MESSAGE, where)
            m = PARAM_RE.match(item)
            if not m:
                raise MalformedDeclaration(f"expected `name: Type`, found `{item}`", where)
            params.append(Parameter(name=m.group(1), type=parse_type(m.group(2))))
        return params


class SourceParser:
    """Scans one Rust source file for declarations, enum registrations and type definitions"""

    def __init__(self, content: str, module_path: tuple = ()):
        self.content = strip_comments(content)
        self.module_path = tuple(module_path)

    def parse(self) -> ParsedSource:
        result = ParsedSource(module_path=self.module_path)
        result.schemas = self._parse_structs() + self._parse_enums()
        for match in ATTRIBUTE_RE.finditer(self.content):
            kind, options_text = match.group(1), match.group(2) or ""
            item = self._item_text(match.end())
            if kind == "async_dart":
                decl = DeclarationParser(self.module_path).parse(item, options_text)
                logger.debug("found %s declaration %s", decl.output_style.value, decl.where)
                result.declarations.append(decl)
            else:
                result.enum_registrations.append(self._enum_registration(item, options_text))
        return result

    def _item_text(self, start: int) -> str:
        """Text of the item following an attribute, up to its body or terminating `;`"""
        pos = start
        while m := OTHER_ATTRIBUTE_RE.match(self.content, pos):
            close = _matching(self.content, m.end() - 1)
            pos = close + 1 if close >= 0 else len(self.content)
        text = self.content[pos:].lstrip()
        if STATIC_RE.match(text):
            end = _find_top_level(text, ";")
            return text[:end + 1] if end >= 0 else text
        m = FN_RE.match(text)
        if m:
            # the body starts at the first `{` after the parameter list
            paren = text.find("(", m.end())
            close = _matching(text, paren) if paren >= 0 else -1
            body = text.find("{", close) if close >= 0 else -1
            return text[:body] if body >= 0 else text
        end = _find_top_level(text, "{")
        return text[:end] if end >= 0 else text

    def _enum_registration(self, item: str, options_text: str) -> EnumRegistration:
        m = ENUM_RE.match(item + "{") or ENUM_RE.match(item)
        if not m:
            raise MalformedDeclaration("#[dart_enum] can only be applied to an enum", "::".join(self.module_path))
        options = parse_options(options_text, "::".join(self.module_path + (m.group(1),)))
        return EnumRegistration(name=m.group(1), namespace=options.namespace, module_path=self.module_path)

    def _parse_structs(self) -> list[StructSchema]:
        structs = []
        for match in STRUCT_RE.finditer(self.content):
            name, generics, opener = match.groups()
            if generics:
                logger.debug("skipping generic struct %s", name)
                continue
            if opener == ";":
                structs.append(StructSchema(name=name, module_path=self.module_path, kind="unit"))
                continue
            body = self._body(match.end() - 1)
            if opener == "(":
                fields = _positional_fields(body)
                kind = "tuple"
            else:
                fields = _named_fields(body)
                kind = "struct"
            structs.append(StructSchema(name=name, fields=fields, module_path=self.module_path, kind=kind))
        return structs

    def _parse_enums(self) -> list[EnumSchema]:
        enums = []
        for match in ENUM_RE.finditer(self.content):
            name, generics = match.groups()
            if generics:
                logger.debug("skipping generic enum %s", name)
                continue
            body = self._body(match.end() - 1)
            variants = [self._variant(LEADING_ATTRIBUTES_RE.sub("", item)) for item in split_top_level(body)]
            enums.append(EnumSchema(name=name, variants=variants, module_path=self.module_path))
        return enums

    def _variant(self, item: str) -> Variant:
        m = re.match(r"(\w+)\s*(.*)$", item, re.DOTALL)
        name, rest = m.group(1), m.group(2).strip()
        if rest.startswith("("):
            return Variant(name=name, kind="tuple", fields=_positional_fields(rest[1:_matching(rest, 0)]))
        if rest.startswith("{"):
            return Variant(name=name, kind="struct", fields=_named_fields(rest[1:_matching(rest, 0)]))
        return Variant(name=name)

    def _body(self, open_pos: int) -> str:
        close = _matching(self.content, open_pos)
        return self.content[open_pos + 1:close] if close >= 0 else ""


def _strip_attributes(text: str) -> str:
    return re.sub(r"#\[[^\]]*\]", "", text)


def _serde_with(item: str) -> str:
    m = SERDE_WITH_RE.search(item)
    return m.group(1) if m else ""


def _named_fields(body: str) -> list[Field]:
    fields = []
    for item in split_top_level(body):
        m = re.match(rf"{VIS_RE}(\w+)\s*:(?!:)\s*(.+)$", _strip_attributes(item).strip(), re.DOTALL)
        if m:
            fields.append(Field(name=m.group(1), type=parse_type(m.group(2)), serde_with=_serde_with(item)))
    return fields


def _positional_fields(body: str) -> list[Field]:
    fields = []
    for i, item in enumerate(split_top_level(body)):
        text = re.sub(rf"^{VIS_RE}", "", _strip_attributes(item).strip())
        fields.append(Field(name=f"value{i}", type=parse_type(text), serde_with=_serde_with(item)))
    return fields


def _matching(text: str, open_pos: int) -> int:
    """Index of the bracket closing the one at ``open_pos``, or -1"""
    pairs = {"(": ")", "[": "]", "{": "}", "<": ">"}
    opener = text[open_pos]
    closer = pairs[opener]
    depth = 0
    for i in range(open_pos, len(text)):
        ch = text[i]
        if ch == opener:
            depth += 1
        elif ch == closer:
            if closer == ">" and text[i - 1] == "-":
                continue
            depth -= 1
            if depth == 0:
                return i
    return -1


def _find_top_level(text: str, target: str, angle: bool = False) -> int:
    """Index of ``target`` outside any bracket pair, or -1"""
    opens = "([{<" if angle else "([{"
    closes = ")]}>" if angle else ")]}"
    depth = 0
    for i, ch in enumerate(text):
        if ch == target and depth == 0:
            return i
        if ch in opens:
            depth += 1
        elif ch in closes:
            if ch == ">" and i and text[i - 1] == "-":
                continue
            depth -= 1
    return -1


def parse_source(content: str, module_path: tuple = ()) -> ParsedSource:
    return SourceParser(content, module_path).parse()


def find_declaration(parsed: ParsedSource, name: str) -> Optional[Declaration]:
    return next((d for d in parsed.declarations if d.name == name), None)
