"""
torrentcore - inspect piece/block layouts and peer ids from the command line.
"""

import argparse
import logging
import sys
from pathlib import Path

from torrentcore.common.config import (
    BLOCK_SIZE,
    DEFAULT_LOG_DIR,
    DEFAULT_LOG_FILE,
    PEER_ID_PREFIX,
)
from torrentcore.common.errors import TorrentCoreError
from torrentcore.common.logging import config_logging
from torrentcore.torrent.lengths import Lengths
from torrentcore.torrent.peer_id import decode_peer_id, generate_peer_id

logger = logging.getLogger(__name__)


def show_lengths(args: argparse.Namespace):
    lengths = Lengths(args.total, args.piece_length, args.block)

    print(f"\n{'='*60}")
    print(f"Total length:      {lengths.total_length}")
    print(f"Piece length:      {lengths.default_piece_length}")
    print(f"Block length:      {lengths.default_block_length}")
    print(f"Pieces:            {lengths.piece_count}")
    print(f"Last piece length: {lengths.last_piece_length}")
    print(f"Blocks per piece:  {lengths.blocks_per_piece}")
    print(f"Total blocks:      {lengths.total_blocks}")
    print(f"{'='*60}")

    if args.piece is not None:
        print(
            f"\nPiece {args.piece}: offset {lengths.piece_offset(args.piece)}, "
            f"length {lengths.piece_length(args.piece)}, "
            f"{lengths.block_count(args.piece)} blocks"
        )
        for block in lengths.iter_block_infos(args.piece):
            print(
                f"  block {block.block_index:>5}: begin {block.offset:>10} "
                f"length {block.length:>8} absolute {block.absolute_offset}"
            )


def locate_offset(args: argparse.Namespace):
    lengths = Lengths(args.total, args.piece_length, args.block)
    block = lengths.offset_to_block(args.offset)
    within_piece = args.offset - lengths.piece_offset(block.piece_index)
    print(
        f"offset {args.offset}: piece {block.piece_index} (+{within_piece}), "
        f"block {block.block_index} (begin {block.offset}, length {block.length})"
    )


def show_peer_id(args: argparse.Namespace):
    peer_id = generate_peer_id(args.prefix.encode("ascii"))
    decoded = decode_peer_id(peer_id)
    print(peer_id.to_hex())
    if decoded is not None:
        print(f"client {decoded.client} version {decoded.version}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="torrentcore",
        description="Inspect torrent piece/block layouts and peer ids",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s lengths 1000 400 --block 150 --piece 2
  %(prog)s locate 1000 400 650 --block 150
  %(prog)s peer-id --prefix=-XX0100-
        """,
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log debug output to stderr"
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=DEFAULT_LOG_DIR / DEFAULT_LOG_FILE,
        help=f"Path to JSON log file (default: {DEFAULT_LOG_DIR / DEFAULT_LOG_FILE})",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    lengths_parser = subparsers.add_parser("lengths", help="Show the piece/block layout")
    lengths_parser.add_argument("total", type=int, help="Total content length in bytes")
    lengths_parser.add_argument("piece_length", type=int, help="Nominal piece length")
    lengths_parser.add_argument(
        "--block", type=int, default=BLOCK_SIZE, help=f"Block length (default: {BLOCK_SIZE})"
    )
    lengths_parser.add_argument("--piece", type=int, help="List the blocks of this piece")
    lengths_parser.set_defaults(handler=show_lengths)

    locate_parser = subparsers.add_parser(
        "locate", help="Find the piece and block holding a byte offset"
    )
    locate_parser.add_argument("total", type=int, help="Total content length in bytes")
    locate_parser.add_argument("piece_length", type=int, help="Nominal piece length")
    locate_parser.add_argument("offset", type=int, help="Absolute byte offset")
    locate_parser.add_argument(
        "--block", type=int, default=BLOCK_SIZE, help=f"Block length (default: {BLOCK_SIZE})"
    )
    locate_parser.set_defaults(handler=locate_offset)

    peer_id_parser = subparsers.add_parser("peer-id", help="Generate a peer id")
    peer_id_parser.add_argument(
        "--prefix",
        default=PEER_ID_PREFIX.decode("ascii"),
        help=f"Client prefix (default: {PEER_ID_PREFIX.decode('ascii')})",
    )
    peer_id_parser.set_defaults(handler=show_peer_id)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config_logging(args.log_file, "DEBUG" if args.verbose else "WARNING")

    try:
        args.handler(args)
    except (TorrentCoreError, UnicodeEncodeError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
