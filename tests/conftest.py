import logging

import pytest

from torrentcore.torrent.lengths import Lengths


@pytest.fixture
def restore_root_logging():
    # config_logging replaces the root handlers; put pytest's back afterwards
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def uneven_lengths() -> Lengths:
    # 3 pieces: 400, 400, 200; blocks of 150 -> 150/150/100 and 150/50
    return Lengths(1000, 400, 150)


def fixed_entropy(n: int) -> bytes:
    return bytes(range(n))
