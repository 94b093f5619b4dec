"""Output style classification of declaration return types"""

from .errors import MalformedDeclaration
from .types import OutputStyle, TypeExpr

TUPLE_MESSAGE = (
    "A tuple may not be returned from an `async_dart` function. "
    "If a tuple is needed return a struct containing the tuple."
)
VECTOR_MESSAGE = (
    "A vector may not be returned from an `async_dart` function. "
    "If a vector is needed return a struct containing the vector."
)
STREAM_MESSAGE = "expected `impl Stream<Item = Result>`"

LAZY_NAMES = ("Lazy", "LazyLock")


def classify_return_type(ret: TypeExpr, is_static: bool = False, where: str = ""):
    """Return ``(OutputStyle, success_type, error_type)`` for a declared return type.

    ``is_static`` marks the module scoped ``static`` form, which can only be a
    channel. Any other shape raises ``MalformedDeclaration``.
    """
    if is_static:
        return (OutputStyle.CHANNEL,) + _channel(ret, where)
    if ret.is_impl:
        return (OutputStyle.STREAM_SERIALIZED,) + _stream(ret, where)
    return (OutputStyle.SERIALIZED,) + _result(ret, where)


def _result(ty: TypeExpr, where: str) -> tuple:
    if ty.is_tuple and ty.args:
        raise MalformedDeclaration(TUPLE_MESSAGE, where)
    if ty.name == "Vec":
        raise MalformedDeclaration(VECTOR_MESSAGE, where)
    if ty.name != "Result" or ty.is_impl or ty.is_ref or ty.is_tuple:
        raise MalformedDeclaration("expected enum `Result`", where)
    if len(ty.args) != 2:
        if ty.args and ty.args[0].is_tuple and ty.args[0].args:
            raise MalformedDeclaration(TUPLE_MESSAGE, where)
        if ty.args and ty.args[0].name == "Vec":
            raise MalformedDeclaration(VECTOR_MESSAGE, where)
        raise MalformedDeclaration("expected a struct or scalar type", where)

    ok, err = ty.args
    if ok.is_tuple and ok.args:
        raise MalformedDeclaration(TUPLE_MESSAGE, where)
    if ok.name == "Vec":
        raise MalformedDeclaration(VECTOR_MESSAGE, where)
    if not ok.is_unit and not _is_plain_path(ok):
        raise MalformedDeclaration("expected a struct or scalar type", where)
    if not _is_plain_path(err):
        raise MalformedDeclaration(f"expected a struct or scalar error type, found `{err}`", where)
    return ok, err


def _stream(ty: TypeExpr, where: str) -> tuple:
    item = ty.binding("Item")
    if ty.name != "Stream" or item is None or ty.args:
        raise MalformedDeclaration(STREAM_MESSAGE, where)
    if item.name != "Result":
        raise MalformedDeclaration(f"a stream item must be `Result<T, E>`, found `{item}`", where)
    return _result(item, where)


def _channel(ty: TypeExpr, where: str) -> tuple:
    if ty.name not in LAZY_NAMES:
        raise MalformedDeclaration("expected `Lazy`", where)
    if len(ty.args) != 1 or not ty.args[0].is_tuple:
        raise MalformedDeclaration("expected `(`", where)
    pair = ty.args[0]
    if len(pair.args) != 2:
        raise MalformedDeclaration("expected a `(Sender, Receiver)` pair", where)
    receiver = pair.args[1]
    if receiver.name != "Receiver" or len(receiver.args) != 1:
        raise MalformedDeclaration("expected `Receiver`", where)
    item = receiver.args[0]
    if item.name != "Result":
        raise MalformedDeclaration(f"a receiver item must be `Result<T, E>`, found `{item}`", where)
    return _result(item, where)


def _is_plain_path(ty: TypeExpr) -> bool:
    return not (ty.args or ty.bindings or ty.is_tuple or ty.is_ref or ty.is_impl or ty.is_array)
