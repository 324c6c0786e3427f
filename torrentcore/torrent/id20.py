import functools
import os
import string
from typing import Callable

from torrentcore.common.config import ID20_LENGTH
from torrentcore.common.errors import EntropyError, InvalidFormat, OutOfRange

# (n) -> n random bytes; os.urandom by default, deterministic in tests
EntropySource = Callable[[int], bytes]

HEX_DIGITS = frozenset(string.hexdigits)


@functools.total_ordering
class Id20:
    """A 20-byte identifier: info hashes and peer ids.

    Immutable. Equality, ordering and hashing all work on the raw bytes, so
    ids sort lexicographically and can be used as dict keys. On the wire an
    id is always the 20 raw bytes; hex is for display and logs.
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: bytes):
        if not isinstance(raw, (bytes, bytearray, memoryview)):
            raise InvalidFormat(
                f"Id20 needs a bytes-like value, got {type(raw).__name__}"
            )
        raw = bytes(raw)
        if len(raw) != ID20_LENGTH:
            raise InvalidFormat(
                f"Id20 needs exactly {ID20_LENGTH} bytes, got {len(raw)}"
            )
        object.__setattr__(self, "_raw", raw)

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Id20":
        return cls(raw)

    @classmethod
    def from_hex(cls, text: str) -> "Id20":
        if not isinstance(text, str):
            raise InvalidFormat(f"hex id must be str, got {type(text).__name__}")
        if len(text) != ID20_LENGTH * 2:
            raise InvalidFormat(
                f"hex id must be {ID20_LENGTH * 2} characters, got {len(text)}"
            )
        # bytes.fromhex alone would accept embedded whitespace
        if not HEX_DIGITS.issuperset(text):
            raise InvalidFormat(f"hex id contains non-hex characters: {text!r}")
        return cls(bytes.fromhex(text))

    @classmethod
    def random(cls, entropy: EntropySource | None = None) -> "Id20":
        """Draw a fresh id from ``entropy`` (``os.urandom`` when omitted).

        Errors from the entropy source are not caught: without randomness
        the client cannot mint peer ids.
        """
        source = entropy if entropy is not None else os.urandom
        raw = source(ID20_LENGTH)
        if len(raw) != ID20_LENGTH:
            raise EntropyError(
                f"entropy source returned {len(raw)} bytes, expected {ID20_LENGTH}"
            )
        return cls(raw)

    def to_hex(self) -> str:
        return self._raw.hex()

    def as_bytes(self) -> bytes:
        return self._raw

    def distance(self, other: "Id20") -> "Id20":
        """XOR metric used by the DHT routing table."""
        return Id20(bytes(a ^ b for a, b in zip(self._raw, other._raw)))

    def get_bit(self, index: int) -> bool:
        """Bit ``index`` counting from the most significant bit of byte 0."""
        if not 0 <= index < ID20_LENGTH * 8:
            raise OutOfRange(f"bit index {index} outside [0, {ID20_LENGTH * 8})")
        byte_index, bit_index = divmod(index, 8)
        return bool((self._raw[byte_index] >> (7 - bit_index)) & 1)

    def __setattr__(self, name, value):
        raise AttributeError("Id20 is immutable")

    def __bytes__(self) -> bytes:
        return self._raw

    def __str__(self) -> str:
        return self.to_hex()

    def __repr__(self) -> str:
        return f"Id20({self.to_hex()!r})"

    def __eq__(self, other):
        if not isinstance(other, Id20):
            return NotImplemented
        return self._raw == other._raw

    def __lt__(self, other):
        if not isinstance(other, Id20):
            return NotImplemented
        return self._raw < other._raw

    def __hash__(self) -> int:
        return hash(self._raw)

    def __reduce__(self):
        return (Id20, (self._raw,))
