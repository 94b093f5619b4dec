"""Declaration parsing, option validation and return-shape classification"""

import re
from pathlib import Path

import pytest

from membrane import MalformedDeclaration, Options, OutputStyle, Parameter, parse_options, parse_type
from membrane.classifier import STREAM_MESSAGE, TUPLE_MESSAGE, VECTOR_MESSAGE, classify_return_type
from membrane.parser import (
    SELF_MESSAGE, VALID_OPTIONS_MESSAGE, DeclarationParser, find_declaration, module_path_for, parse_source,
)

NS = 'namespace = "accounts"'


def parse(text: str, options: str = NS):
    return DeclarationParser(("application", "accounts")).parse(text, options)


def rejects(text: str, message: str, options: str = NS):
    with pytest.raises(MalformedDeclaration, match=re.escape(message)):
        parse(text, options)


# ── options ──────────────────────────────────────────────────────────

def test_options_namespace_only():
    assert parse_options(NS) == Options(namespace="accounts", disable_logging=False)


def test_options_disable_logging():
    assert parse_options('namespace = "accounts", disable_logging = true').disable_logging is True
    assert parse_options('disable_logging = false, namespace = "a"').disable_logging is False


def test_options_missing_namespace():
    with pytest.raises(MalformedDeclaration, match="expects a `namespace`"):
        parse_options("disable_logging = true")
    with pytest.raises(MalformedDeclaration, match="expects a `namespace`"):
        parse_options("")


def test_options_unknown_option():
    with pytest.raises(MalformedDeclaration, match=re.escape(VALID_OPTIONS_MESSAGE)):
        parse_options('namespace = "accounts", timeout = 5')


def test_options_duplicate():
    with pytest.raises(MalformedDeclaration, match="duplicate option `namespace`"):
        parse_options('namespace = "a", namespace = "b"')


def test_options_wrong_literal_kind():
    with pytest.raises(MalformedDeclaration, match="must be a string literal"):
        parse_options("namespace = accounts")
    with pytest.raises(MalformedDeclaration, match="must be `true` or `false`"):
        parse_options('namespace = "a", disable_logging = "yes"')


def test_options_namespace_must_be_lowercase_identifier():
    with pytest.raises(MalformedDeclaration, match="lowercase identifier"):
        parse_options('namespace = "Accounts"')


# ── declaration forms ────────────────────────────────────────────────

def test_serialized_declaration():
    decl = parse("pub async fn contact(user_id: String) -> Result<Contact, String> {")
    assert decl.name == "contact"
    assert decl.namespace == "accounts"
    assert decl.output_style is OutputStyle.SERIALIZED
    assert decl.success_type == parse_type("Contact")
    assert decl.error_type == parse_type("String")
    assert decl.params == [Parameter("user_id", parse_type("String"))]
    assert decl.symbol == "membrane_accounts_contact"
    assert decl.module_path == ("application", "accounts")
    assert decl.disable_logging is False


def test_parameter_order_is_preserved():
    decl = parse("pub async fn f(b: i32, a: Option<String>, mut c: Vec<u8>) -> Result<(), String>")
    assert [p.name for p in decl.params] == ["b", "a", "c"]
    assert decl.params[1].is_optional
    assert decl.success_type.is_unit


def test_stream_declaration():
    decl = parse("pub fn contacts(limit: u32) -> impl Stream<Item = Result<Contact, String>> {")
    assert decl.output_style is OutputStyle.STREAM_SERIALIZED
    assert decl.success_type == parse_type("Contact")
    assert decl.is_async is False


def test_async_stream_declaration():
    decl = parse("pub async fn shapes() -> impl Stream<Item = Result<Shape, DrawingError>> {")
    assert decl.output_style is OutputStyle.STREAM_SERIALIZED
    assert decl.is_async is True


def test_channel_declaration():
    decl = parse(
        "pub static UPDATES: Lazy<(Sender<Result<Status, String>>, Receiver<Result<Status, String>>)> ="
        " Lazy::new(async_channel::unbounded);",
        'namespace = "accounts", disable_logging = true',
    )
    assert decl.output_style is OutputStyle.CHANNEL
    assert decl.params == []
    assert decl.success_type == parse_type("Status")
    assert decl.disable_logging is True
    assert decl.symbol == "membrane_accounts_UPDATES"


def test_qualified_types_keep_their_name():
    decl = parse("pub async fn f() -> Result<crate::data::Contact, crate::Error>")
    assert decl.success_type.name == "Contact"
    assert str(decl.success_type) == "crate::data::Contact"


def test_where_clause_and_comments_are_ignored():
    decl = parse("pub async fn f(x: i32 /* count */) -> Result<i32, String> where Self: Sized {")
    assert decl.params == [Parameter("x", parse_type("i32"))]


# ── rejected shapes ──────────────────────────────────────────────────

def test_rejects_non_result():
    rejects("pub async fn f() -> Contact", "expected enum `Result`")


def test_rejects_tuple_success():
    rejects("pub async fn f() -> Result<(i32, String), String>", TUPLE_MESSAGE)


def test_rejects_vector_success():
    rejects("pub async fn f() -> Result<Vec<Contact>, String>", VECTOR_MESSAGE)


def test_rejects_generic_success():
    rejects("pub async fn f() -> Result<Option<Contact>, String>", "expected a struct or scalar type")
    rejects("pub async fn f() -> Result<HashMap<String, i32>, String>", "expected a struct or scalar type")


def test_rejects_generic_error():
    rejects("pub async fn f() -> Result<i32, Vec<String>>", "expected a struct or scalar error type")


def test_rejects_stream_without_item():
    rejects("pub fn f() -> impl Stream<Contact>", STREAM_MESSAGE)


def test_rejects_stream_of_plain_values():
    rejects("pub fn f() -> impl Stream<Item = Contact>", "a stream item must be `Result<T, E>`, found `Contact`")


def test_rejects_channel_without_lazy():
    rejects("pub static X: Vec<i32> = Vec::new();", "expected `Lazy`")


def test_rejects_channel_without_pair():
    rejects("pub static X: Lazy<Receiver<Result<i32, String>>> = Lazy::new(f);", "expected `(`")


def test_rejects_channel_without_receiver():
    rejects("pub static X: Lazy<(Sender<i32>, Channel<i32>)> = Lazy::new(f);", "expected `Receiver`")


def test_rejects_channel_of_plain_values():
    rejects("pub static X: Lazy<(Sender<i32>, Receiver<i32>)> = Lazy::new(f);", "a receiver item must be")


def test_rejects_sync_serialized_function():
    rejects("pub fn f() -> Result<i32, String>", "expected `async fn`")


def test_rejects_private_declarations():
    rejects("async fn f() -> Result<i32, String>", "must be `pub`")
    rejects("static X: Lazy<(Sender<i32>, Receiver<Result<i32, String>>)> = Lazy::new(f);", "must be `pub`")


@pytest.mark.parametrize("receiver", ["self", "&self", "&mut self", "mut self"])
def test_rejects_self_receivers(receiver):
    rejects(f"pub async fn f({receiver}, x: i32) -> Result<i32, String>", SELF_MESSAGE)


def test_rejects_generic_functions():
    rejects("pub async fn f<T>(x: T) -> Result<i32, String>", "generic functions are not supported")


def test_rejects_untyped_parameters():
    rejects("pub async fn f(x) -> Result<i32, String>", "expected `name: Type`")


def test_diagnostic_names_the_declaration():
    with pytest.raises(MalformedDeclaration) as info:
        parse("pub async fn broken() -> Result<Vec<i32>, String>")
    assert info.value.where == "application::accounts::broken"
    assert str(info.value).startswith("application::accounts::broken: ")


def test_classifier_is_a_pure_function_of_the_type():
    ret = parse_type("impl Stream<Item = Result<u64, String>>")
    assert classify_return_type(ret) == (OutputStyle.STREAM_SERIALIZED, parse_type("u64"), parse_type("String"))


# ── type expressions ─────────────────────────────────────────────────

def test_type_expressions():
    assert str(parse_type("Option<Vec<crate::data::Contact>>")) == "Option<Vec<crate::data::Contact>>"
    assert parse_type("&'a str").is_ref
    assert parse_type("(i32, String)").is_tuple
    assert parse_type("()").is_unit
    assert parse_type("[u8; 4]").is_array
    stream = parse_type("impl Stream<Item = Result<i32, String>>")
    assert stream.is_impl
    assert stream.binding("Item") == parse_type("Result<i32, String>")


def test_malformed_type_expression():
    with pytest.raises(MalformedDeclaration, match="invalid type"):
        parse_type("Result<i32,")


# ── source scanning ──────────────────────────────────────────────────

SOURCE = '''
use membrane::async_dart;

/// Doc comments and other attributes are skipped.
#[async_dart(namespace = "people")]
#[allow(dead_code)]
pub async fn find(id: i64) -> Result<Person, String> {
    // `#[async_dart]` in a comment is not a declaration
    todo!()
}

#[derive(Serialize, Deserialize)]
pub struct Person {
    pub id: i64,
    #[serde(default)]
    pub nickname: Option<String>,
}

#[dart_enum(namespace = "people")]
pub enum Mood { Happy, Sad = 3 }

pub enum Event {
    Joined(i64),
    Moved(f32, f32),
    Renamed { from: String, to: String },
    Left,
}

pub struct Wrapper<T> { pub inner: T }
'''


def test_source_scanning():
    parsed = parse_source(SOURCE, ("people",))
    assert [d.name for d in parsed.declarations] == ["find"]
    assert find_declaration(parsed, "find").namespace == "people"
    assert find_declaration(parsed, "missing") is None

    schemas = {s.name: s for s in parsed.schemas}
    assert set(schemas) == {"Person", "Mood", "Event"}
    assert [(f.name, str(f.type)) for f in schemas["Person"].fields] == [
        ("id", "i64"), ("nickname", "Option<String>")]
    assert [v.name for v in schemas["Mood"].variants] == ["Happy", "Sad"]
    assert schemas["Mood"].is_simple

    event = schemas["Event"]
    assert [(v.name, v.kind, len(v.fields)) for v in event.variants] == [
        ("Joined", "tuple", 1), ("Moved", "tuple", 2), ("Renamed", "struct", 2), ("Left", "unit", 0)]
    assert not event.is_simple

    assert [(r.name, r.namespace) for r in parsed.enum_registrations] == [("Mood", "people")]


def test_dart_enum_on_a_struct_is_rejected():
    with pytest.raises(MalformedDeclaration, match="can only be applied to an enum"):
        parse_source('#[dart_enum(namespace = "a")]\npub struct S { pub x: i32 }')


def test_module_paths():
    root = Path("src")
    assert module_path_for(Path("src/application/accounts.rs"), root) == ("application", "accounts")
    assert module_path_for(Path("src/application/mod.rs"), root) == ("application",)
    assert module_path_for(Path("src/lib.rs"), root) == ()


def test_tuple_unit_structs_and_serde_paths():
    parsed = parse_source('''
pub struct UserId(pub i64);
pub(crate) struct Span(u32, #[serde(with = "crate::membrane_decimal")] pub u128);
pub struct Marker;
pub struct Ledger {
    #[serde(default, with = "crate::membrane_decimal::vec")]
    pub entries: Vec<i128>,
}
''')
    schemas = {s.name: s for s in parsed.schemas}
    assert [(s.kind, [str(f.type) for f in s.fields]) for s in parsed.schemas] == [
        ("tuple", ["i64"]), ("tuple", ["u32", "u128"]), ("unit", []), ("struct", ["Vec<i128>"])]
    assert [f.name for f in schemas["Span"].fields] == ["value0", "value1"]
    assert [f.serde_with for f in schemas["Span"].fields] == ["", "crate::membrane_decimal"]
    assert schemas["Ledger"].fields[0].serde_with == "crate::membrane_decimal::vec"
