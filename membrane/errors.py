"""Error taxonomy for generation time and for the envelope protocol"""


class MembraneError(Exception):
    """Base class for every error raised by membrane"""


class MalformedDeclaration(MembraneError):
    """A declaration or its options violate the declaration grammar"""

    def __init__(self, message: str, where: str = ""):
        self.message = message
        self.where = where
        super().__init__(f"{where}: {message}" if where else message)


class DuplicateDeclaration(MalformedDeclaration):
    """Two declarations derive the same exported symbol"""


class SchemaConflict(MalformedDeclaration):
    """One type name has two structurally different definitions"""


class UnsupportedType(MembraneError):
    """No mapping rule matches a type used by a declaration"""

    def __init__(self, type_name: str, where: str = "", reason: str = ""):
        self.type_name = type_name
        self.where = where
        message = f"unsupported type `{type_name}`"
        if reason:
            message += f" ({reason})"
        if where:
            message += f" in {where}"
        super().__init__(message)


class EnvelopeEncodeFailure(MembraneError):
    """A value could not be serialized into an envelope"""


class EnvelopeDecodeFailure(MembraneError):
    """A delivered payload is not a well-formed envelope"""


class ApiError(MembraneError):
    """A declared error value delivered through a failure envelope"""

    def __init__(self, e):
        self.e = e
        super().__init__(repr(e))


class TaskFailure(MembraneError):
    """A bound loopback implementation raised instead of producing a result"""
