"""
Padding Module

Block padding schemes used at the ciphertext boundary of PBES2.

Two schemes are provided:

- NULL: zero bytes up to the next block boundary. Unpadding strips every
  trailing zero byte, so data that genuinely ends in zero bytes loses them.
  This is a known limitation of the scheme, not a bug.
- RFC1423: n bytes of value n, with n in [1, block_size]. Block-aligned
  input gets a whole extra block. Unpadding is unambiguous.

unpad() returns None when the padding is malformed instead of raising, so
callers can treat it as "cannot decrypt". The check is not constant time and
can act as a padding oracle; callers that need tamper resistance must verify
integrity separately.
"""

import enum
import logging
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)


class PaddingScheme(enum.Enum):
    NULL = "null"
    RFC1423 = "rfc1423"


def _check_block_size(block_size: int) -> None:
    if not 1 <= block_size <= 255:
        raise ValueError(f"Block size must be between 1 and 255, got {block_size}")


class Padding:
    """Base class for padding schemes."""

    scheme: PaddingScheme

    def pad(self, data: bytes, block_size: int) -> bytes:
        raise NotImplementedError

    def unpad(self, data: bytes, block_size: int) -> Optional[bytes]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class ZeroPadding(Padding):
    """Zero-byte padding. Lossy for data ending in zero bytes."""

    scheme = PaddingScheme.NULL

    def pad(self, data: bytes, block_size: int) -> bytes:
        _check_block_size(block_size)
        remainder = len(data) % block_size
        if remainder == 0:
            return bytes(data)
        return bytes(data) + b'\x00' * (block_size - remainder)

    def unpad(self, data: bytes, block_size: int) -> Optional[bytes]:
        _check_block_size(block_size)
        return bytes(data).rstrip(b'\x00')


class CountingPadding(Padding):
    """RFC 1423 / PKCS #7 style padding where each pad byte holds the pad length."""

    scheme = PaddingScheme.RFC1423

    def pad(self, data: bytes, block_size: int) -> bytes:
        _check_block_size(block_size)
        count = block_size - (len(data) % block_size)
        return bytes(data) + bytes([count]) * count

    def unpad(self, data: bytes, block_size: int) -> Optional[bytes]:
        _check_block_size(block_size)
        if not data:
            return None

        count = data[-1]
        if count == 0 or count > block_size or count > len(data):
            return None

        if data[-count:] != bytes([count]) * count:
            return None

        return bytes(data[:-count])


PADDING_SCHEMES: Dict[PaddingScheme, Padding] = {
    PaddingScheme.NULL: ZeroPadding(),
    PaddingScheme.RFC1423: CountingPadding(),
}

PADDING_ALIASES: Dict[str, PaddingScheme] = {
    'null': PaddingScheme.NULL,
    'zero': PaddingScheme.NULL,
    'rfc1423': PaddingScheme.RFC1423,
    'pkcs7': PaddingScheme.RFC1423,
    'counting': PaddingScheme.RFC1423,
}


def get_padding(scheme: Union[PaddingScheme, str, None]) -> Optional[Padding]:
    """
    Resolve a padding selector to its implementation.

    Args:
        scheme: A PaddingScheme, an alias such as "rfc1423" or "null", or
            None / "none" to disable padding

    Returns:
        Padding implementation, or None when padding is disabled

    Raises:
        ValueError: If the name is not a known padding scheme
    """
    if scheme is None:
        return None

    if isinstance(scheme, PaddingScheme):
        return PADDING_SCHEMES[scheme]

    name = str(scheme).strip().lower()
    if name in ('', 'none'):
        return None

    try:
        resolved = PADDING_ALIASES[name]
    except KeyError:
        raise ValueError(f"Unknown padding scheme: {scheme}")

    logger.debug("Padding %r resolved to %s", scheme, resolved.name)
    return PADDING_SCHEMES[resolved]
