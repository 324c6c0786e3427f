import logging
from typing import Iterator

from bitarray import bitarray

from torrentcore.common.config import BLOCK_SIZE, MAX_WIRE_VALUE
from torrentcore.common.errors import (
    BlockLengthMismatch,
    InvalidBitfield,
    InvalidConfiguration,
    OutOfRange,
)

logger = logging.getLogger(__name__)


def ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def _require_positive(name: str, value) -> int:
    # bool is an int subclass, but Lengths(True, ...) is always a bug
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfiguration(f"{name} must be an int, got {value!r}")
    if value <= 0:
        raise InvalidConfiguration(f"{name} must be positive, got {value}")
    return value


class BlockInfo:
    """Position and size of one block, as requested over the wire."""

    __slots__ = (
        "piece_index",
        "block_index",
        "absolute_index",
        "offset",
        "length",
        "absolute_offset",
    )

    def __init__(
        self,
        piece_index: int,
        block_index: int,
        absolute_index: int,
        offset: int,
        length: int,
        absolute_offset: int,
    ):
        self.piece_index = piece_index
        self.block_index = block_index
        self.absolute_index = absolute_index  # block number across all pieces
        self.offset = offset  # "begin" within the piece
        self.length = length
        self.absolute_offset = absolute_offset

    @property
    def end(self) -> int:
        """Absolute offset one past the last byte of the block."""
        return self.absolute_offset + self.length

    def _key(self) -> tuple:
        return (
            self.piece_index,
            self.block_index,
            self.absolute_index,
            self.offset,
            self.length,
            self.absolute_offset,
        )

    def __eq__(self, other):
        if not isinstance(other, BlockInfo):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __repr__(self) -> str:
        return (
            f"BlockInfo(piece={self.piece_index}, block={self.block_index}, "
            f"offset={self.offset}, length={self.length})"
        )


class Lengths:
    """Maps between piece index, block index and absolute byte offset.

    Built once per torrent from the total content length, the nominal piece
    length and the nominal block length. Only the last piece may be shorter
    than the nominal piece length, and only the last block of each piece may
    be shorter than the nominal block length. Everything is derived at
    construction and the instance never changes afterwards, so one instance
    is shared by storage, peer connections and progress tracking.
    """

    __slots__ = (
        "_total_length",
        "_piece_length",
        "_block_length",
        "_piece_count",
        "_last_piece_length",
        "_blocks_per_piece",
        "_last_piece_block_count",
    )

    def __init__(
        self, total_length: int, piece_length: int, block_length: int = BLOCK_SIZE
    ):
        self._total_length = _require_positive("total_length", total_length)
        self._piece_length = _require_positive("piece_length", piece_length)
        self._block_length = _require_positive("block_length", block_length)

        self._piece_count = ceil_div(total_length, piece_length)
        self._last_piece_length = total_length - piece_length * (self._piece_count - 1)
        self._blocks_per_piece = ceil_div(piece_length, block_length)
        self._last_piece_block_count = ceil_div(self._last_piece_length, block_length)

        if self._piece_count - 1 > MAX_WIRE_VALUE:
            raise InvalidConfiguration(
                f"{self._piece_count} pieces cannot be indexed by the wire protocol"
            )
        largest_piece = piece_length if self._piece_count > 1 else total_length
        if largest_piece > MAX_WIRE_VALUE:
            raise InvalidConfiguration(
                f"piece length {largest_piece} cannot be addressed by the wire protocol"
            )

        logger.debug(
            f"Computed lengths: total={total_length}, piece={piece_length}, "
            f"block={block_length}, pieces={self._piece_count}, "
            f"last_piece={self._last_piece_length}"
        )

    # Configuration and derived totals

    @property
    def total_length(self) -> int:
        return self._total_length

    @property
    def default_piece_length(self) -> int:
        return self._piece_length

    @property
    def default_block_length(self) -> int:
        return self._block_length

    @property
    def piece_count(self) -> int:
        return self._piece_count

    @property
    def last_piece_index(self) -> int:
        return self._piece_count - 1

    @property
    def last_piece_length(self) -> int:
        return self._last_piece_length

    @property
    def blocks_per_piece(self) -> int:
        """Block count of every piece except possibly the last."""
        return self._blocks_per_piece

    @property
    def total_blocks(self) -> int:
        return (
            self._blocks_per_piece * (self._piece_count - 1)
            + self._last_piece_block_count
        )

    # Pieces

    def is_valid_piece_index(self, piece_index: int) -> bool:
        return 0 <= piece_index < self._piece_count

    def _check_piece(self, piece_index: int):
        if not self.is_valid_piece_index(piece_index):
            raise OutOfRange(
                f"piece index {piece_index} outside [0, {self._piece_count})"
            )

    def _check_block(self, piece_index: int, block_index: int):
        self._check_piece(piece_index)
        block_count = self.block_count(piece_index)
        if not 0 <= block_index < block_count:
            raise OutOfRange(
                f"block index {block_index} outside [0, {block_count}) "
                f"for piece {piece_index}"
            )

    def piece_length(self, piece_index: int) -> int:
        self._check_piece(piece_index)
        if piece_index == self._piece_count - 1:
            return self._last_piece_length
        return self._piece_length

    def piece_offset(self, piece_index: int) -> int:
        # nominal length: only the last piece is short
        self._check_piece(piece_index)
        return self._piece_length * piece_index

    def piece_range(self, piece_index: int) -> range:
        start = self.piece_offset(piece_index)
        return range(start, start + self.piece_length(piece_index))

    def offset_to_piece(self, absolute_offset: int) -> tuple[int, int]:
        """Return ``(piece_index, offset_within_piece)`` for a content offset."""
        if not 0 <= absolute_offset < self._total_length:
            raise OutOfRange(
                f"offset {absolute_offset} outside content of {self._total_length} bytes"
            )
        return divmod(absolute_offset, self._piece_length)

    def iter_piece_indices(self) -> Iterator[int]:
        return iter(range(self._piece_count))

    # Blocks

    def block_count(self, piece_index: int) -> int:
        self._check_piece(piece_index)
        if piece_index == self._piece_count - 1:
            return self._last_piece_block_count
        return self._blocks_per_piece

    def block_length(self, piece_index: int, block_index: int) -> int:
        self._check_block(piece_index, block_index)
        return self._block_length_unchecked(piece_index, block_index)

    def _block_length_unchecked(self, piece_index: int, block_index: int) -> int:
        block_count = self.block_count(piece_index)
        if block_index < block_count - 1:
            return self._block_length
        return self.piece_length(piece_index) - self._block_length * (block_count - 1)

    def block_offset(self, piece_index: int, block_index: int) -> int:
        self._check_block(piece_index, block_index)
        return self._piece_length * piece_index + self._block_length * block_index

    def block_range(self, piece_index: int, block_index: int) -> range:
        start = self.block_offset(piece_index, block_index)
        return range(start, start + self.block_length(piece_index, block_index))

    def block_absolute_index(self, piece_index: int, block_index: int) -> int:
        self._check_block(piece_index, block_index)
        return self._blocks_per_piece * piece_index + block_index

    def block_info(self, piece_index: int, block_index: int) -> BlockInfo:
        self._check_block(piece_index, block_index)
        return self._make_block_info(piece_index, block_index)

    def _make_block_info(self, piece_index: int, block_index: int) -> BlockInfo:
        offset = self._block_length * block_index
        return BlockInfo(
            piece_index=piece_index,
            block_index=block_index,
            absolute_index=self._blocks_per_piece * piece_index + block_index,
            offset=offset,
            length=self._block_length_unchecked(piece_index, block_index),
            absolute_offset=self._piece_length * piece_index + offset,
        )

    def block_info_from_absolute_index(self, absolute_index: int) -> BlockInfo:
        if not 0 <= absolute_index < self.total_blocks:
            raise OutOfRange(
                f"absolute block index {absolute_index} outside [0, {self.total_blocks})"
            )
        piece_index, block_index = divmod(absolute_index, self._blocks_per_piece)
        return self._make_block_info(piece_index, block_index)

    def offset_to_block(self, absolute_offset: int) -> BlockInfo:
        """The block containing a content offset."""
        piece_index, offset = self.offset_to_piece(absolute_offset)
        return self._make_block_info(piece_index, offset // self._block_length)

    def iter_block_infos(self, piece_index: int) -> Iterator[BlockInfo]:
        for block_index in range(self.block_count(piece_index)):
            yield self._make_block_info(piece_index, block_index)

    def iter_all_block_infos(self) -> Iterator[BlockInfo]:
        for piece_index in range(self._piece_count):
            yield from self.iter_block_infos(piece_index)

    # Untrusted input from peers

    def validate_block(
        self, piece_index: int, block_index: int, length: int
    ) -> BlockInfo:
        """Accept a claimed block only if its length matches the layout exactly."""
        self._check_block(piece_index, block_index)
        expected = self._block_length_unchecked(piece_index, block_index)
        if length != expected:
            logger.warning(
                f"Rejected block claim: piece {piece_index}, block {block_index}, "
                f"length {length} (expected {expected})"
            )
            raise BlockLengthMismatch(
                f"block {block_index} of piece {piece_index} is {expected} bytes, "
                f"peer claimed {length}"
            )
        return self._make_block_info(piece_index, block_index)

    def block_info_from_received(
        self, piece_index: int, begin: int, length: int
    ) -> BlockInfo:
        """Validate a (piece index, begin, length) triple from a request/piece message."""
        piece_length = self.piece_length(piece_index)
        if not 0 <= begin < piece_length:
            raise OutOfRange(
                f"begin {begin} outside piece {piece_index} of {piece_length} bytes"
            )
        block_index, misalignment = divmod(begin, self._block_length)
        if misalignment:
            logger.warning(
                f"Rejected block claim: piece {piece_index}, begin {begin} is not "
                f"aligned to {self._block_length}"
            )
            raise BlockLengthMismatch(
                f"begin {begin} is not a multiple of the block length {self._block_length}"
            )
        return self.validate_block(piece_index, block_index, length)

    def validate_bitfield(self, payload: bytes) -> bitarray:
        """Parse a peer's bitfield message payload into a piece bitfield."""
        expected_length = ceil_div(self._piece_count, 8)
        if len(payload) != expected_length:
            raise InvalidBitfield(
                f"Bitfield wrong length: expected {expected_length}, got {len(payload)}"
            )

        num_spare_bits = (8 - (self._piece_count % 8)) % 8
        if num_spare_bits:
            last_byte = payload[-1]
            spare_mask = (1 << num_spare_bits) - 1
            if last_byte & spare_mask:
                raise InvalidBitfield(
                    f"Bitfield has spare bits set: last_byte=0b{last_byte:08b}, "
                    f"mask=0b{spare_mask:08b}"
                )

        bitfield = bitarray(endian="big")
        bitfield.frombytes(bytes(payload))
        return bitfield[: self._piece_count]

    # Progress accounting

    def empty_piece_bitfield(self) -> bitarray:
        bitfield = bitarray(self._piece_count, endian="big")
        bitfield.setall(0)
        return bitfield

    def empty_block_bitfield(self) -> bitarray:
        """One bit per block, indexed by ``BlockInfo.absolute_index``."""
        bitfield = bitarray(self.total_blocks, endian="big")
        bitfield.setall(0)
        return bitfield

    def bytes_in_pieces(self, piece_bitfield: bitarray) -> int:
        """Content bytes covered by the set bits of a piece bitfield."""
        if len(piece_bitfield) != self._piece_count:
            raise OutOfRange(
                f"bitfield has {len(piece_bitfield)} bits, expected {self._piece_count}"
            )
        have = piece_bitfield.count()
        if piece_bitfield[self._piece_count - 1]:
            return (have - 1) * self._piece_length + self._last_piece_length
        return have * self._piece_length

    # Value semantics

    def _key(self) -> tuple[int, int, int]:
        return (self._total_length, self._piece_length, self._block_length)

    def __eq__(self, other):
        if not isinstance(other, Lengths):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __repr__(self) -> str:
        return (
            f"Lengths(total_length={self._total_length}, "
            f"piece_length={self._piece_length}, block_length={self._block_length})"
        )
