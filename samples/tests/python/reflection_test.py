"""Registration phase and the type reflection pass"""

import pytest

from membrane import (
    Declaration, DuplicateDeclaration, EnumSchema, MalformedDeclaration, MembraneError, OutputStyle, Parameter,
    ReflectionPass, Registry, SchemaConflict, StructSchema, UnsupportedType, parse_source, parse_type,
)

from conftest import make_membrane


def registry_for(*sources) -> Registry:
    registry = Registry()
    for module, text in sources:
        registry.register(parse_source(text, module))
    return registry


def test_sample_declarations_in_source_order(sample):
    symbols = [d.symbol for d in sample.registry.declarations]
    assert symbols == [
        "membrane_accounts_contact",
        "membrane_accounts_options_demo",
        "membrane_accounts_more_types",
        "membrane_accounts_add_u128",
        "membrane_accounts_ping",
        "membrane_accounts_contacts",
        "membrane_accounts_STATUS_UPDATES",
        "membrane_drawings_get_drawing",
        "membrane_drawings_save_drawing",
        "membrane_drawings_tagged",
        "membrane_drawings_shapes",
    ]
    assert sample.registry.namespaces() == ["accounts", "drawings"]
    assert sample.registry.lookup("membrane_accounts_STATUS_UPDATES").output_style is OutputStyle.CHANNEL


def test_duplicate_symbols_are_rejected():
    text = '#[async_dart(namespace = "a")]\npub async fn f() -> Result<i32, String> {}'
    with pytest.raises(DuplicateDeclaration, match="membrane_a_f"):
        registry_for((("one",), text), (("two",), text))


def test_same_name_in_different_namespaces_is_allowed():
    registry = registry_for(
        (("one",), '#[async_dart(namespace = "a")]\npub async fn f() -> Result<i32, String> {}'),
        (("two",), '#[async_dart(namespace = "b")]\npub async fn f() -> Result<i32, String> {}'),
    )
    assert [d.symbol for d in registry.declarations] == ["membrane_a_f", "membrane_b_f"]


def test_channel_with_parameters_is_rejected():
    decl = Declaration(
        name="X", namespace="a", output_style=OutputStyle.CHANNEL,
        success_type=parse_type("i32"), error_type=parse_type("String"),
        params=[Parameter("x", parse_type("i32"))],
    )
    with pytest.raises(MalformedDeclaration, match="takes no parameters"):
        Registry().add(decl)


def test_unsupported_parameter_names_type_and_declaration():
    text = '#[async_dart(namespace = "a")]\npub async fn greet(name: &str) -> Result<String, String> {}'
    with pytest.raises(UnsupportedType) as info:
        registry_for((("people",), text))
    assert info.value.type_name == "&str"
    assert "people::greet" in str(info.value)


def test_sample_reflection_tables(sample):
    reflection = sample.reflect()
    assert reflection.namespace_types["accounts"] == ["Contact", "Status", "OptionsDemo", "MoreTypes"]
    assert reflection.namespace_types["drawings"] == ["Drawing", "Shape", "Contact", "Status", "DrawingError"]
    assert set(reflection.schemas) == {
        "Contact", "Status", "OptionsDemo", "MoreTypes", "Drawing", "Shape", "DrawingError"}


def test_shared_types_resolve_to_one_schema(sample):
    reflection = sample.reflect()
    accounts = {s.name: s for s in reflection.types_for("accounts")}
    drawings = {s.name: s for s in reflection.types_for("drawings")}
    assert accounts["Contact"] is drawings["Contact"]
    assert isinstance(accounts["Contact"], StructSchema)
    assert isinstance(drawings["Shape"], EnumSchema)


def test_unused_and_generic_types_are_not_reflected(sample):
    assert "Cache" not in sample.reflect().schemas


def test_reflection_runs_once():
    registry = registry_for((("a",), '#[async_dart(namespace = "a")]\npub async fn f() -> Result<i32, String> {}'))
    reflection = ReflectionPass(registry)
    assert reflection.run() is reflection.run()


def test_undefined_type_is_unsupported():
    text = '#[async_dart(namespace = "a")]\npub async fn f() -> Result<Missing, String> {}'
    with pytest.raises(UnsupportedType, match="no struct or enum definition found"):
        ReflectionPass(registry_for((("a",), text))).run()


def test_conflicting_definitions_are_rejected():
    registry = registry_for(
        (("one",), 'pub struct Point { pub x: i32 }\n'
                   '#[async_dart(namespace = "a")]\npub async fn f() -> Result<Point, String> {}'),
        (("two",), 'pub struct Point { pub x: i64 }'),
    )
    with pytest.raises(SchemaConflict, match="type `Point` is defined with different shapes in one and two"):
        ReflectionPass(registry).run()


def test_identical_definitions_are_merged():
    registry = registry_for(
        (("one",), 'pub struct Point { pub x: i32 }\n'
                   '#[async_dart(namespace = "a")]\npub async fn f() -> Result<Point, String> {}'),
        (("two",), 'pub struct Point { pub x: i32 }'),
    )
    assert ReflectionPass(registry).run().namespace_types["a"] == ["Point"]


def test_unsupported_field_type():
    registry = registry_for((("a",), 'pub struct Bag { pub size: usize }\n'
                                     '#[async_dart(namespace = "a")]\npub async fn f() -> Result<Bag, String> {}'))
    with pytest.raises(UnsupportedType) as info:
        ReflectionPass(registry).run()
    assert info.value.where == "Bag.size"


def test_recursive_types_terminate():
    registry = registry_for((("a",), 'pub struct Node { pub children: Vec<Node>, pub label: String }\n'
                                     '#[async_dart(namespace = "a")]\npub async fn f() -> Result<Node, String> {}'))
    assert ReflectionPass(registry).run().namespace_types["a"] == ["Node"]


def test_dart_enum_registration_adds_the_enum():
    registry = registry_for((("a",), '#[dart_enum(namespace = "a")]\npub enum Color { Red, Green }'))
    reflection = ReflectionPass(registry).run()
    assert reflection.namespace_types["a"] == ["Color"]
    assert registry.namespaces() == ["a"]


def test_dart_enum_must_name_an_enum():
    registry = registry_for((("a",), '#[dart_enum(namespace = "a")]\npub enum Color { Red }'))
    registry.schemas = [StructSchema(name="Color")]
    with pytest.raises(MalformedDeclaration, match="is not an enum"):
        ReflectionPass(registry).run()


def test_enum_without_variants_is_unsupported():
    registry = registry_for((("a",), 'pub enum Never {}\n'
                                     '#[async_dart(namespace = "a")]\npub async fn f() -> Result<i32, Never> {}'))
    with pytest.raises(UnsupportedType, match="without variants"):
        ReflectionPass(registry).run()


def test_namespace_filter_rejects_unknown_namespaces():
    membrane = make_membrane(namespaces=["billing"]).register_directory()
    with pytest.raises(MembraneError, match="unknown namespace `billing`"):
        membrane.generate()


def test_tuple_and_unit_structs_are_reflected():
    registry = registry_for((("m",), 'pub struct UserId(pub i64);\n'
                                     'pub struct Pair(pub String, #[serde(default)] pub Option<i32>);\n'
                                     'pub struct Marker;\n'
                                     '#[async_dart(namespace = "a")]\n'
                                     'pub async fn f(id: UserId, pair: Pair) -> Result<Marker, String> {}'))
    reflection = ReflectionPass(registry).run()
    assert reflection.namespace_types["a"] == ["Marker", "UserId", "Pair"]

    user_id = reflection.schema("UserId")
    assert user_id.kind == "tuple"
    assert [(f.name, str(f.type)) for f in user_id.fields] == [("value0", "i64")]
    pair = reflection.schema("Pair")
    assert [(f.name, str(f.type)) for f in pair.fields] == [("value0", "String"), ("value1", "Option<i32>")]
    assert reflection.schema("Marker").kind == "unit"
    assert reflection.schema("Marker").fields == []


def test_tuple_and_named_structs_do_not_merge():
    registry = registry_for(
        (("one",), 'pub struct Point(pub i32);\n'
                   '#[async_dart(namespace = "a")]\npub async fn f() -> Result<Point, String> {}'),
        (("two",), 'pub struct Point { pub value0: i32 }'),
    )
    with pytest.raises(SchemaConflict, match="type `Point`"):
        ReflectionPass(registry).run()


def wide_field_registry(field: str) -> Registry:
    return registry_for((("a",), f'pub struct Totals {{ {field} }}\n'
                                  '#[async_dart(namespace = "a")]\npub async fn f() -> Result<Totals, String> {}'))


@pytest.mark.parametrize("field", [
    '#[serde(with = "crate::membrane_decimal")] pub total: u128',
    '#[serde(with = "membrane_decimal")] pub total: i128',
    '#[serde(default, with = "crate::membrane_decimal::option")] pub total: Option<i128>',
    '#[serde(with = "crate::membrane_decimal::vec")] pub total: Vec<u128>',
])
def test_wide_fields_with_the_decimal_module(field):
    assert ReflectionPass(wide_field_registry(field)).run().namespace_types["a"] == ["Totals"]


@pytest.mark.parametrize("field, message", [
    ("pub total: u128", 'add #\\[serde\\(with = "crate::membrane_decimal"\\)\\]'),
    ('#[serde(with = "crate::membrane_decimal")] pub total: Vec<u128>', "crate::membrane_decimal::vec"),
    ('#[serde(rename = "t")] pub total: Option<i128>', "crate::membrane_decimal::option"),
    ('#[serde(with = "crate::membrane_decimal::vec")] pub total: Option<Vec<u128>>', "at most one Option or Vec"),
])
def test_wide_fields_without_the_decimal_module(field, message):
    with pytest.raises(UnsupportedType, match=message) as info:
        ReflectionPass(wide_field_registry(field)).run()
    assert info.value.where == "Totals.total"


def test_wide_variant_fields_need_the_decimal_module():
    text = ('pub enum Amount {{ Small(i64), Big({attr} u128) }}\n'
            '#[async_dart(namespace = "a")]\npub async fn f() -> Result<Amount, String> {{}}')
    with pytest.raises(UnsupportedType) as info:
        ReflectionPass(registry_for((("a",), text.format(attr="")))).run()
    assert info.value.where == "Amount::Big"

    registry = registry_for((("a",), text.format(attr='#[serde(with = "crate::membrane_decimal")]')))
    assert ReflectionPass(registry).run().namespace_types["a"] == ["Amount"]
