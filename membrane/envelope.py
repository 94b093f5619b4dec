"""Result envelopes: ``(bool is_success, payload)`` wire units"""

from dataclasses import dataclass
from typing import Any, Union

from .codec import Codec
from .errors import EnvelopeDecodeFailure, EnvelopeEncodeFailure
from .types import Declaration

# Delivered after the last item of a stream or channel. Never a valid
# envelope, which always carries at least the flag byte.
END_OF_STREAM = b""


@dataclass(frozen=True)
class Ok:
    """Successful result"""
    value: Any = None


@dataclass(frozen=True)
class Err:
    """Declared error result"""
    error: Any


Result = Union[Ok, Err]


class EnvelopeCodec:
    """Encodes and decodes the envelopes of one declaration"""

    def __init__(self, decl: Declaration, schemas: dict):
        self.decl = decl
        self.codec = Codec(schemas)

    def encode(self, result: Result) -> bytes:
        if isinstance(result, Ok):
            return b"\x01" + self.codec.encode(result.value, self.decl.success_type)
        if isinstance(result, Err):
            return b"\x00" + self.codec.encode(result.error, self.decl.error_type)
        raise EnvelopeEncodeFailure(f"{self.decl.where} produced {result!r}, expected Ok or Err")

    def decode(self, data: bytes) -> Result:
        if not data:
            raise EnvelopeDecodeFailure(f"empty envelope for {self.decl.symbol}")
        flag = data[0]
        if flag > 1:
            raise EnvelopeDecodeFailure(f"invalid success flag {flag} in envelope for {self.decl.symbol}")
        if flag:
            return Ok(self.codec.decode(data[1:], self.decl.success_type))
        return Err(self.codec.decode(data[1:], self.decl.error_type))
