import logging
from typing import Iterator

from torrentcore.common.config import BLOCK_SIZE
from torrentcore.common.errors import InvalidConfiguration, OutOfRange
from torrentcore.torrent.id20 import Id20
from torrentcore.torrent.lengths import Lengths

logger = logging.getLogger(__name__)


class TorrentFile:
    __slots__ = ("path", "length", "offset")

    def __init__(self, path: list[str], length: int, offset: int):
        self.path = path
        self.length = length
        self.offset = offset  # absolute offset of the file's first byte

    def __repr__(self) -> str:
        return f"TorrentFile(path={self.path!r}, length={self.length}, offset={self.offset})"


class FileSpan:
    """The part of a byte range that falls inside one file."""

    __slots__ = ("file_index", "file_offset", "length")

    def __init__(self, file_index: int, file_offset: int, length: int):
        self.file_index = file_index
        self.file_offset = file_offset
        self.length = length

    def __eq__(self, other):
        if not isinstance(other, FileSpan):
            return NotImplemented
        return (self.file_index, self.file_offset, self.length) == (
            other.file_index,
            other.file_offset,
            other.length,
        )

    def __repr__(self) -> str:
        return (
            f"FileSpan(file_index={self.file_index}, "
            f"file_offset={self.file_offset}, length={self.length})"
        )


class TorrentMetadata:
    """Fields a metadata parser extracted from a torrent's info dictionary."""

    __slots__ = (
        "announce",
        "piece_length",
        "pieces",
        "info_hash",
        "files",
        "total_length",
        "name",
    )

    def __init__(
        self,
        announce: str | None,
        piece_length: int,
        pieces: list[bytes],
        info_hash: Id20,
        files: list[TorrentFile],
        total_length: int,
        name: str,
    ):
        self.announce = announce
        self.piece_length = piece_length
        self.pieces = pieces
        self.info_hash = info_hash
        self.files = files
        self.total_length = total_length
        self.name = name

    @classmethod
    def from_files(
        cls,
        name: str,
        piece_length: int,
        pieces: list[bytes],
        info_hash: Id20,
        file_entries: list[tuple[list[str], int]],
        announce: str | None = None,
    ) -> "TorrentMetadata":
        """Lay ``(path, length)`` entries end to end in the content set."""
        files = []
        offset = 0
        for path, length in file_entries:
            if length < 0:
                raise InvalidConfiguration(f"file {path!r} has negative length {length}")
            files.append(TorrentFile(path, length, offset))
            offset += length
        return cls(
            announce=announce,
            piece_length=piece_length,
            pieces=pieces,
            info_hash=info_hash,
            files=files,
            total_length=offset,
            name=name,
        )


def make_lengths(metadata: TorrentMetadata, block_length: int = BLOCK_SIZE) -> Lengths:
    """Build the addressing engine for a torrent and check its piece hashes."""
    total_length = sum(f.length for f in metadata.files)
    if total_length != metadata.total_length:
        raise InvalidConfiguration(
            f"files sum to {total_length} bytes, metadata says {metadata.total_length}"
        )
    lengths = Lengths(total_length, metadata.piece_length, block_length)
    if len(metadata.pieces) != lengths.piece_count:
        raise InvalidConfiguration(
            f"torrent lists {len(metadata.pieces)} piece hashes, "
            f"content needs {lengths.piece_count}"
        )
    logger.info(
        f"Computed lengths for {metadata.name} ({metadata.info_hash.to_hex()[:8]}...): "
        f"{lengths.piece_count} pieces, {lengths.total_blocks} blocks"
    )
    return lengths


def iter_file_spans(
    files: list[TorrentFile], absolute_offset: int, length: int
) -> Iterator[FileSpan]:
    """Split the byte range ``[absolute_offset, absolute_offset + length)`` by file."""
    total_length = files[-1].offset + files[-1].length if files else 0
    if absolute_offset < 0 or length < 0 or absolute_offset + length > total_length:
        raise OutOfRange(
            f"range {absolute_offset}+{length} outside content of {total_length} bytes"
        )

    remaining = length
    position = absolute_offset
    for file_index, file in enumerate(files):
        if remaining == 0:
            return
        file_end = file.offset + file.length
        if file.length == 0 or position >= file_end:
            continue
        # range spans multiple files: take what fits and continue in the next one
        span_length = min(remaining, file_end - position)
        yield FileSpan(file_index, position - file.offset, span_length)
        position += span_length
        remaining -= span_length
