import logging
import re

from torrentcore.common.config import ID20_LENGTH, PEER_ID_PREFIX
from torrentcore.common.errors import InvalidConfiguration
from torrentcore.torrent.id20 import EntropySource, Id20

logger = logging.getLogger(__name__)

AZUREUS_STYLE = re.compile(rb"-([A-Za-z~]{2})([0-9A-Za-z]{4})-")


class AzureusStylePeerId:
    __slots__ = ("client", "version")

    def __init__(self, client: str, version: str):
        self.client = client
        self.version = version

    def __eq__(self, other):
        if not isinstance(other, AzureusStylePeerId):
            return NotImplemented
        return (self.client, self.version) == (other.client, other.version)

    def __repr__(self) -> str:
        return f"AzureusStylePeerId(client={self.client!r}, version={self.version!r})"


def generate_peer_id(
    prefix: bytes = PEER_ID_PREFIX, entropy: EntropySource | None = None
) -> Id20:
    """Build an ephemeral peer id: ``prefix`` followed by random bytes."""
    if len(prefix) > ID20_LENGTH:
        raise InvalidConfiguration(
            f"peer id prefix is {len(prefix)} bytes, at most {ID20_LENGTH} allowed"
        )
    suffix = Id20.random(entropy).as_bytes()[: ID20_LENGTH - len(prefix)]
    peer_id = Id20(bytes(prefix) + suffix)
    logger.debug(f"Generated peer id {peer_id.to_hex()[:16]}...")
    return peer_id


def decode_peer_id(peer_id: Id20) -> AzureusStylePeerId | None:
    """Decode the ``-XXvvvv-`` client prefix, or None for other conventions."""
    match = AZUREUS_STYLE.fullmatch(peer_id.as_bytes()[:8])
    if match is None:
        return None
    client, version = match.groups()
    return AzureusStylePeerId(client.decode("ascii"), version.decode("ascii"))
