"""Type mapping rows shared by the Rust, C and Dart emitters"""

import pytest

from membrane import Parameter, TypeMapper, UnsupportedType, parse_type
from membrane.type_mapper import to_mixed_case, to_pascal_case, to_snake_case


def param(name: str, ty: str) -> Parameter:
    return Parameter(name, parse_type(ty))


@pytest.mark.parametrize("rust, dart", [
    ("bool", "bool"),
    ("String", "String"),
    ("i8", "int"),
    ("i64", "int"),
    ("u32", "int"),
    ("u64", "BigInt"),
    ("i128", "BigInt"),
    ("u128", "BigInt"),
    ("f32", "double"),
    ("f64", "double"),
    ("()", "void"),
    ("Option<i32>", "int?"),
    ("Option<Contact>", "Contact?"),
    ("Vec<Contact>", "List<Contact>"),
    ("Vec<Option<u64>>", "List<BigInt?>"),
])
def test_dart_types(rust, dart):
    assert TypeMapper.to_dart(parse_type(rust)) == dart


@pytest.mark.parametrize("rust, kind, c", [
    ("i32", "scalar", "int32_t"),
    ("u8", "scalar", "uint8_t"),
    ("f64", "scalar", "double"),
    ("bool", "bool", "bool"),
    ("String", "string", "const char *"),
    ("u64", "wide", "const char *"),
    ("u128", "wide", "const char *"),
    ("Option<String>", "opt_string", "const char *"),
    ("Option<i128>", "opt_wide", "const char *"),
    ("Option<i64>", "opt_scalar", "const int64_t *"),
    ("Option<bool>", "opt_scalar", "const bool *"),
    ("Vec<u8>", "buffer", "const uint8_t *"),
    ("Contact", "buffer", "const uint8_t *"),
    ("Option<Contact>", "buffer", "const uint8_t *"),
])
def test_abi_rows(rust, kind, c):
    abi = TypeMapper.abi(parse_type(rust))
    assert abi.kind == kind
    assert abi.c == c


def test_c_parameters():
    assert TypeMapper.to_c_param(param("user_id", "String")) == "const char *user_id"
    assert TypeMapper.to_c_param(param("limit", "u32")) == "uint32_t limit"
    assert TypeMapper.to_c_param(param("three", "Option<i64>")) == "const int64_t *three"


def test_rust_parameters():
    assert TypeMapper.to_rust_param(param("user_id", "String")) == "user_id: *const ::std::os::raw::c_char"
    assert TypeMapper.to_rust_param(param("three", "Option<i64>")) == "three: *const i64"
    assert TypeMapper.to_rust_param(param("value", "MoreTypes")) == "value: *const u8"


@pytest.mark.parametrize("rust", [
    "&str",
    "&String",
    "(i32, i32)",
    "[u8; 4]",
    "usize",
    "isize",
    "Option<Option<i32>>",
    "HashMap<String, i32>",
    "Vec<&str>",
    "impl Iterator<Item = i32>",
])
def test_unsupported_types(rust):
    with pytest.raises(UnsupportedType) as info:
        TypeMapper.check(parse_type(rust), "accounts::f")
    assert "accounts::f" in str(info.value)


def test_unit_only_allowed_where_requested():
    TypeMapper.check(parse_type("()"), allow_unit=True)
    with pytest.raises(UnsupportedType):
        TypeMapper.check(parse_type("()"))


def test_user_types_are_collected_through_generics():
    assert list(TypeMapper.user_types(parse_type("Option<Vec<Contact>>"))) == ["Contact"]
    assert list(TypeMapper.user_types(parse_type("Vec<String>"))) == []


def test_wide_parameters_are_validated_natively():
    lines = TypeMapper.rust_transform(param("left", "u128"))
    assert lines[0] == "if left.is_null() { return ::std::ptr::null_mut(); }"
    assert "let left: u128 = match" in lines[1]
    assert any("None => return ::std::ptr::null_mut()," in line for line in lines)


def test_scalar_parameters_need_no_conversion():
    assert TypeMapper.rust_transform(param("limit", "u32")) == []
    assert TypeMapper.dart_transform(param("limit", "u32")) == (None, "limit")


def test_dart_call_site_conversions():
    assert TypeMapper.dart_transform(param("user_id", "String")) == (
        "final _userId = userId.toNativeUtf8().cast<Char>();", "_userId")
    setup, arg = TypeMapper.dart_transform(param("five", "Option<u64>"))
    assert setup == "final _five = five == null ? nullptr : five.toString().toNativeUtf8().cast<Char>();"
    setup, arg = TypeMapper.dart_transform(param("tags", "Vec<String>"))
    assert setup == (
        "final _tags = membraneEncode((serializer) => "
        "serializer.serializeSeq<String>(tags, (v0) => serializer.serializeString(v0)));")
    assert arg == "_tags"


def test_dart_readers():
    assert TypeMapper.dart_read(parse_type("Option<Contact>")) == (
        "deserializer.deserializeOption<Contact>(() => Contact.deserialize(deserializer))")
    assert TypeMapper.dart_read(parse_type("u128")) == "deserializer.deserializeUint128()"
    assert TypeMapper.dart_read(parse_type("()")) == "null"


@pytest.mark.parametrize("fn, given, expected", [
    (to_mixed_case, "user_id", "userId"),
    (to_mixed_case, "unsigned_128", "unsigned128"),
    (to_mixed_case, "STATUS_UPDATES", "statusUpdates"),
    (to_mixed_case, "contact", "contact"),
    (to_pascal_case, "accounts", "Accounts"),
    (to_pascal_case, "user_accounts", "UserAccounts"),
    (to_snake_case, "MoreTypes", "more_types"),
    (to_snake_case, "HTTPRequest", "http_request"),
    (to_snake_case, "Status", "status"),
])
def test_case_conversion(fn, given, expected):
    assert fn(given) == expected


@pytest.mark.parametrize("text, adapter", [
    ("u128", "membrane_decimal"),
    ("Option<i128>", "membrane_decimal::option"),
    ("Vec<u128>", "membrane_decimal::vec"),
    ("u64", ""),
    ("Vec<Contact>", ""),
])
def test_decimal_adapter(text, adapter):
    assert TypeMapper.decimal_adapter(parse_type(text)) == adapter


def test_decimal_conversions():
    assert TypeMapper.rust_to_wire(parse_type("Vec<String>"), "value") == "value"
    assert TypeMapper.rust_to_wire(parse_type("Option<u128>"), "value") == "value.map(|v0| v0.to_string())"
    assert TypeMapper.rust_from_wire(parse_type("i128"), "wire") == "wire.parse::<i128>().ok()"
    assert TypeMapper.rust_from_wire(parse_type("Contact"), "wire") == "Some(wire)"
    assert TypeMapper.rust_wire_type(parse_type("Vec<Option<u128>>")) == \
        "::std::vec::Vec<::std::option::Option<::std::string::String>>"
