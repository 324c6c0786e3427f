import logging

import pytest
from bitarray import bitarray

from torrentcore.common.config import BLOCK_SIZE, MAX_WIRE_VALUE
from torrentcore.common.errors import (
    BlockLengthMismatch,
    InvalidBitfield,
    InvalidConfiguration,
    OutOfRange,
)
from torrentcore.torrent.lengths import BlockInfo, Lengths, ceil_div

CONFIGS = [
    (1000, 400, 150),
    (10, 1024, 16384),
    (1200, 400, 100),
    (1, 1, 1),
    (BLOCK_SIZE * 5 + 1, BLOCK_SIZE * 2, BLOCK_SIZE),
    (999, 1000, 7),
    (65536, 16384, 16384),
    (12345, 512, 100),
    (1000, 400, 300),
    (4097, 4096, 16384),
]


@pytest.fixture(params=CONFIGS, ids=lambda c: "-".join(map(str, c)))
def lengths(request) -> Lengths:
    return Lengths(*request.param)


def test_ceil_div():
    assert ceil_div(10, 5) == 2
    assert ceil_div(11, 5) == 3
    assert ceil_div(1, 5) == 1


# Boundary scenarios


def test_uneven_last_piece(uneven_lengths):
    assert uneven_lengths.piece_count == 3
    assert uneven_lengths.last_piece_length == 200
    assert uneven_lengths.block_count(2) == 2
    assert uneven_lengths.block_length(2, 0) == 150
    assert uneven_lengths.block_length(2, 1) == 50
    assert [uneven_lengths.block_length(0, b) for b in range(3)] == [150, 150, 100]
    assert uneven_lengths.total_blocks == 8


def test_content_smaller_than_piece_and_block():
    lengths = Lengths(10, 1024, 16384)
    assert lengths.piece_count == 1
    assert lengths.last_piece_length == 10
    assert lengths.piece_length(0) == 10
    assert lengths.block_count(0) == 1
    assert lengths.block_length(0, 0) == 10
    assert lengths.total_blocks == 1


def test_exactly_divisible():
    lengths = Lengths(1200, 400, 100)
    assert lengths.piece_count == 3
    assert lengths.last_piece_length == 400
    assert lengths.block_count(2) == 4
    assert lengths.block_length(2, 3) == 100


def test_block_longer_than_last_piece():
    lengths = Lengths(1000, 400, 300)
    assert [lengths.block_length(0, b) for b in range(2)] == [300, 100]
    assert lengths.block_count(2) == 1
    assert lengths.block_length(2, 0) == 200


def test_default_block_length():
    lengths = Lengths(BLOCK_SIZE * 3, BLOCK_SIZE * 2)
    assert lengths.default_block_length == BLOCK_SIZE
    assert lengths.block_count(0) == 2
    assert lengths.block_count(1) == 1


# Construction


@pytest.mark.parametrize(
    "args",
    [
        (0, 400, 150),
        (1000, 0, 150),
        (1000, 400, 0),
        (-1, 400, 150),
        (1000, -400, 150),
        (1000, 400, -150),
        (True, 400, 150),
        (1000.0, 400, 150),
        ("1000", 400, 150),
        (None, 400, 150),
    ],
)
def test_invalid_configuration(args):
    with pytest.raises(InvalidConfiguration):
        Lengths(*args)


def test_invalid_configuration_is_value_error():
    with pytest.raises(ValueError):
        Lengths(0, 1)


def test_wire_limits():
    # last piece index must fit in 32 bits
    assert Lengths(MAX_WIRE_VALUE + 1, 1).piece_count == MAX_WIRE_VALUE + 1
    with pytest.raises(InvalidConfiguration):
        Lengths(MAX_WIRE_VALUE + 2, 1)
    with pytest.raises(InvalidConfiguration):
        Lengths(MAX_WIRE_VALUE + 1, MAX_WIRE_VALUE + 1)
    # a huge nominal piece length is fine when the single piece is small
    assert Lengths(10, MAX_WIRE_VALUE * 2).piece_length(0) == 10


def test_construction_logged(caplog):
    with caplog.at_level(logging.DEBUG, logger="torrentcore.torrent.lengths"):
        Lengths(1000, 400, 150)
    assert "pieces=3" in caplog.text


# Properties over representative configurations


def test_piece_lengths_sum_to_total(lengths):
    assert sum(lengths.piece_length(p) for p in lengths.iter_piece_indices()) == (
        lengths.total_length
    )


def test_block_lengths_sum_to_piece_length(lengths):
    for p in lengths.iter_piece_indices():
        total = sum(lengths.block_length(p, b) for b in range(lengths.block_count(p)))
        assert total == lengths.piece_length(p)


def test_lengths_positive(lengths):
    assert 0 < lengths.last_piece_length <= lengths.default_piece_length
    for block in lengths.iter_all_block_infos():
        assert block.length > 0
        assert block.length <= lengths.default_block_length


def test_piece_offsets_within_total(lengths):
    for p in lengths.iter_piece_indices():
        end = lengths.piece_offset(p) + lengths.piece_length(p)
        assert end <= lengths.total_length
    assert end == lengths.total_length


def test_offset_to_piece_round_trip(lengths):
    for p in lengths.iter_piece_indices():
        start = lengths.piece_offset(p)
        for k in range(lengths.piece_length(p)):
            assert lengths.offset_to_piece(start + k) == (p, k)


def test_blocks_tile_content(lengths):
    position = 0
    for block in lengths.iter_all_block_infos():
        assert block.absolute_offset == position
        assert lengths.block_offset(block.piece_index, block.block_index) == position
        assert lengths.block_range(block.piece_index, block.block_index) == range(
            position, block.end
        )
        position = block.end
    assert position == lengths.total_length


def test_total_blocks_matches_iteration(lengths):
    blocks = list(lengths.iter_all_block_infos())
    assert len(blocks) == lengths.total_blocks
    assert [b.absolute_index for b in blocks] == list(range(lengths.total_blocks))


def test_absolute_index_round_trip(lengths):
    for block in lengths.iter_all_block_infos():
        index = lengths.block_absolute_index(block.piece_index, block.block_index)
        assert lengths.block_info_from_absolute_index(index) == block


def test_validate_block_exact_length_only(lengths):
    for block in lengths.iter_all_block_infos():
        p, b = block.piece_index, block.block_index
        assert lengths.validate_block(p, b, block.length) == block
        for wrong in (block.length - 1, block.length + 1, 0):
            with pytest.raises(BlockLengthMismatch):
                lengths.validate_block(p, b, wrong)


# Out of range


@pytest.mark.parametrize("piece_index", [-1, 3, 100])
def test_piece_out_of_range(uneven_lengths, piece_index):
    for op in (
        uneven_lengths.piece_length,
        uneven_lengths.piece_offset,
        uneven_lengths.piece_range,
        uneven_lengths.block_count,
    ):
        with pytest.raises(OutOfRange):
            op(piece_index)
    with pytest.raises(OutOfRange):
        list(uneven_lengths.iter_block_infos(piece_index))
    assert not uneven_lengths.is_valid_piece_index(piece_index)


@pytest.mark.parametrize("piece_index, block_index", [(0, 3), (0, -1), (2, 2), (3, 0)])
def test_block_out_of_range(uneven_lengths, piece_index, block_index):
    for op in (
        uneven_lengths.block_length,
        uneven_lengths.block_offset,
        uneven_lengths.block_range,
        uneven_lengths.block_absolute_index,
        uneven_lengths.block_info,
    ):
        with pytest.raises(OutOfRange):
            op(piece_index, block_index)
    with pytest.raises(OutOfRange):
        uneven_lengths.validate_block(piece_index, block_index, 150)


@pytest.mark.parametrize("offset", [-1, 1000, 5000])
def test_offset_out_of_range(uneven_lengths, offset):
    with pytest.raises(OutOfRange):
        uneven_lengths.offset_to_piece(offset)
    with pytest.raises(OutOfRange):
        uneven_lengths.offset_to_block(offset)


def test_absolute_index_out_of_range(uneven_lengths):
    with pytest.raises(OutOfRange):
        uneven_lengths.block_info_from_absolute_index(8)
    with pytest.raises(OutOfRange):
        uneven_lengths.block_info_from_absolute_index(-1)


def test_out_of_range_is_index_error(uneven_lengths):
    with pytest.raises(IndexError):
        uneven_lengths.piece_length(3)


# Lookups


def test_offset_to_piece_examples(uneven_lengths):
    assert uneven_lengths.offset_to_piece(0) == (0, 0)
    assert uneven_lengths.offset_to_piece(399) == (0, 399)
    assert uneven_lengths.offset_to_piece(400) == (1, 0)
    assert uneven_lengths.offset_to_piece(999) == (2, 199)


def test_offset_to_block(uneven_lengths):
    block = uneven_lengths.offset_to_block(650)
    assert (block.piece_index, block.block_index) == (1, 1)
    assert block.offset == 150
    assert block.length == 150
    assert uneven_lengths.offset_to_block(999) == uneven_lengths.block_info(2, 1)


def test_block_info_fields(uneven_lengths):
    block = uneven_lengths.block_info(2, 1)
    assert block == BlockInfo(
        piece_index=2,
        block_index=1,
        absolute_index=7,
        offset=150,
        length=50,
        absolute_offset=950,
    )
    assert block.end == 1000
    assert "piece=2" in repr(block)


def test_piece_range(uneven_lengths):
    assert uneven_lengths.piece_range(2) == range(800, 1000)


# Peer claims


def test_validate_block_last_block(uneven_lengths):
    block = uneven_lengths.validate_block(2, 1, 50)
    assert block.absolute_offset == 950
    with pytest.raises(BlockLengthMismatch):
        uneven_lengths.validate_block(2, 1, 150)


def test_validate_block_mismatch_logged(uneven_lengths, caplog):
    with caplog.at_level(logging.WARNING):
        with pytest.raises(OutOfRange):
            uneven_lengths.validate_block(0, 0, 16384)
    assert "Rejected block claim" in caplog.text


def test_block_info_from_received(uneven_lengths):
    assert uneven_lengths.block_info_from_received(2, 150, 50) == (
        uneven_lengths.block_info(2, 1)
    )
    assert uneven_lengths.block_info_from_received(0, 0, 150).block_index == 0


@pytest.mark.parametrize(
    "piece_index, begin, length, error",
    [
        (2, 100, 50, BlockLengthMismatch),
        (2, 150, 150, BlockLengthMismatch),
        (0, 300, 150, BlockLengthMismatch),
        (2, 200, 50, OutOfRange),
        (0, -150, 150, OutOfRange),
        (3, 0, 150, OutOfRange),
    ],
)
def test_block_info_from_received_rejects(uneven_lengths, piece_index, begin, length, error):
    with pytest.raises(error):
        uneven_lengths.block_info_from_received(piece_index, begin, length)


def test_validate_bitfield(uneven_lengths):
    bitfield = uneven_lengths.validate_bitfield(b"\xa0")
    assert bitfield == bitarray("101")


def test_validate_bitfield_no_spare_bits():
    lengths = Lengths(3200, 400)
    assert lengths.validate_bitfield(b"\xff").all()


@pytest.mark.parametrize("payload", [b"", b"\xe0\x00", b"\xf0", b"\x01"])
def test_validate_bitfield_rejects(uneven_lengths, payload):
    with pytest.raises(InvalidBitfield):
        uneven_lengths.validate_bitfield(payload)


# Progress accounting


def test_empty_bitfields(uneven_lengths):
    pieces = uneven_lengths.empty_piece_bitfield()
    blocks = uneven_lengths.empty_block_bitfield()
    assert len(pieces) == 3
    assert len(blocks) == 8
    assert not pieces.any()
    assert not blocks.any()


def test_bytes_in_pieces(uneven_lengths):
    bitfield = uneven_lengths.empty_piece_bitfield()
    assert uneven_lengths.bytes_in_pieces(bitfield) == 0
    bitfield[0] = 1
    assert uneven_lengths.bytes_in_pieces(bitfield) == 400
    bitfield[2] = 1
    assert uneven_lengths.bytes_in_pieces(bitfield) == 600
    bitfield.setall(1)
    assert uneven_lengths.bytes_in_pieces(bitfield) == 1000


def test_bytes_in_pieces_wrong_size(uneven_lengths):
    with pytest.raises(OutOfRange):
        uneven_lengths.bytes_in_pieces(bitarray("1010"))


# Value semantics


def test_equality_and_hash():
    assert Lengths(1000, 400, 150) == Lengths(1000, 400, 150)
    assert Lengths(1000, 400, 150) != Lengths(1000, 400, 100)
    assert len({Lengths(1000, 400, 150), Lengths(1000, 400, 150)}) == 1


def test_repr(uneven_lengths):
    assert repr(uneven_lengths) == (
        "Lengths(total_length=1000, piece_length=400, block_length=150)"
    )


def test_read_only_properties(uneven_lengths):
    with pytest.raises(AttributeError):
        uneven_lengths.piece_count = 4
