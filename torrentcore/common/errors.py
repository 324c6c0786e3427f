class TorrentCoreError(Exception):
    """Base class for every error raised by torrentcore."""


class InvalidFormat(TorrentCoreError, ValueError):
    """Malformed identifier input (bad hex text, wrong byte length)."""


class InvalidConfiguration(TorrentCoreError, ValueError):
    """Impossible length configuration or inconsistent metadata."""


class OutOfRange(TorrentCoreError, IndexError):
    """Piece/block index or byte offset outside the computed bounds.

    Raised both for internal misuse and for untrusted peer input. Callers
    handling peer messages should turn it into a protocol violation.
    """


class BlockLengthMismatch(OutOfRange):
    """A peer claimed a block position or size that does not match the layout."""


class InvalidBitfield(OutOfRange):
    """A peer bitfield payload has the wrong size or spare bits set."""


class EntropyError(TorrentCoreError, RuntimeError):
    """The entropy provider could not produce the requested bytes."""
