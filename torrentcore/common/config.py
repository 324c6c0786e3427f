from pathlib import Path

BLOCK_SIZE = 16384  # 16KB standard block size
ID20_LENGTH = 20
PEER_ID_PREFIX = b"-TC0001-"  # Azureus style: -<client><version>-
MAX_WIRE_VALUE = 2**32 - 1  # piece index, begin and length are u32 on the wire

DEFAULT_LOG_DIR = Path("data") / "logs"
DEFAULT_LOG_FILE = "torrentcore.log.jsonl"
