"""
Cipher Parameter Resolution

Maps friendly cipher and mode names to engine ids and reads the key, IV and
block sizes from an opened engine handle. Names that are not recognized are
passed to the engine unchanged so callers can use engine ids directly.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .engine import CipherEngine, CipherHandle

logger = logging.getLogger(__name__)

# the Rijndael variants chosen for AES are synonyms here
CIPHER_ALIASES: Dict[str, str] = {
    'aes': 'AES-128',
    'aes128': 'AES-128',
    'aes_128': 'AES-128',
    'aes192': 'AES-192',
    'aes_192': 'AES-192',
    'aes256': 'AES-256',
    'aes_256': 'AES-256',
    '3des': 'DES3',
}

MODE_ALIASES: Dict[str, str] = {
    'CBC': 'MODE_CBC',
    'OFB': 'MODE_OFB',
    'CFB': 'MODE_CFB',
    'ECB': 'MODE_ECB',
}

# feedback modes should be given an IV; without one they run on a zero IV and
# open_cipher warns
MODES_REQUIRING_IV = frozenset(['MODE_OFB', 'MODE_CFB'])


@dataclass(frozen=True)
class CipherSpec:
    """Logical cipher selection as configured by the user."""

    cipher: str = 'aes256'
    mode: str = 'CBC'
    iv: Optional[bytes] = None


@dataclass(frozen=True)
class ResolvedCipher:
    """Engine ids and sizes for a CipherSpec."""

    cipher_id: str
    mode_id: str
    key_size: int
    iv_size: int
    block_size: int

    @property
    def requires_iv(self) -> bool:
        return self.mode_id in MODES_REQUIRING_IV


def resolve_cipher_id(cipher: str) -> str:
    return CIPHER_ALIASES.get(cipher.lower(), cipher)


def resolve_mode_id(mode: str) -> str:
    return MODE_ALIASES.get(mode.upper(), mode)


def open_cipher(engine: CipherEngine, spec: CipherSpec) -> Tuple[CipherHandle, ResolvedCipher]:
    """
    Open an engine handle for a cipher spec and read its sizes.

    The caller owns the returned handle and must close it with
    engine.deinit_and_close(). OFB and CFB without an explicit IV are
    allowed and run on a zero IV; a warning is logged for them.

    Args:
        engine: Cipher engine to open the handle on
        spec: Logical cipher selection

    Returns:
        Tuple of (open handle, resolved ids and sizes)

    Raises:
        CipherEngineError: If the engine rejects the resolved ids
    """
    cipher_id = resolve_cipher_id(spec.cipher)
    mode_id = resolve_mode_id(spec.mode)

    handle = engine.open(cipher_id, mode_id)
    try:
        resolved = ResolvedCipher(
            cipher_id=cipher_id,
            mode_id=mode_id,
            key_size=engine.key_size(handle),
            iv_size=engine.iv_size(handle),
            block_size=engine.block_size(handle)
        )
    except Exception:
        engine.deinit_and_close(handle)
        raise

    logger.debug(
        "Resolved %s/%s to %s/%s (key=%d, iv=%d, block=%d)",
        spec.cipher, spec.mode, cipher_id, mode_id,
        resolved.key_size, resolved.iv_size, resolved.block_size
    )
    if resolved.requires_iv and spec.iv is None:
        logger.warning("%s used without an explicit IV, falling back to a zero IV", mode_id)

    return handle, resolved


def describe_cipher(engine: CipherEngine, spec: CipherSpec) -> ResolvedCipher:
    """Resolve a spec and release the handle straight away."""
    handle, resolved = open_cipher(engine, spec)
    engine.deinit_and_close(handle)
    return resolved
