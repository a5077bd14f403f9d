"""
Cipher Engine Module

A small handle-based block cipher engine on top of PyCryptodome. A handle is
opened for one cipher/mode pair, sized, initialized with a key and IV, used
for a single encrypt or decrypt and then closed. session() wraps that
lifecycle so the handle is always released.

Raw encrypt/decrypt accept input of any length. CFB (8-bit segments) and OFB
are length preserving by nature. For CBC and ECB the full blocks go through
the mode as usual and a trailing partial block is finished with residual
block termination: it is XORed with the block encryption of the last
ciphertext block (the IV for CBC, or a zero block for ECB, when the input is
shorter than one block).
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from Crypto.Cipher import AES, DES3
from Crypto.Util.strxor import strxor

logger = logging.getLogger(__name__)


class CipherEngineError(Exception):
    """Raised when the cipher engine rejects an operation."""
    pass


# engine cipher id -> (PyCryptodome module, key size in bytes)
CIPHERS: Dict[str, Tuple[Any, int]] = {
    'AES-128': (AES, 16),
    'AES-192': (AES, 24),
    'AES-256': (AES, 32),
    'DES3': (DES3, 24),
}

MODES = ('MODE_CBC', 'MODE_ECB', 'MODE_CFB', 'MODE_OFB')

_RESIDUAL_MODES = ('MODE_CBC', 'MODE_ECB')


@dataclass
class CipherHandle:
    """State for one opened cipher/mode pair."""

    cipher_id: str
    mode_id: str
    module: Any
    key_size: int
    block_size: int
    key: Optional[bytes] = None
    iv: Optional[bytes] = None
    closed: bool = False

    @property
    def initialized(self) -> bool:
        return self.key is not None and not self.closed

    def __repr__(self) -> str:
        state = 'closed' if self.closed else ('ready' if self.initialized else 'open')
        return f"CipherHandle({self.cipher_id}, {self.mode_id}, {state})"


class CipherEngine:
    """PyCryptodome-backed engine exposing the open/init/use/close lifecycle."""

    def open(self, cipher_id: str, mode_id: str) -> CipherHandle:
        """
        Open a handle for a cipher and mode.

        Args:
            cipher_id: Engine cipher id (AES-128, AES-192, AES-256, DES3)
            mode_id: Engine mode id (MODE_CBC, MODE_ECB, MODE_CFB, MODE_OFB)

        Returns:
            An open, uninitialized handle

        Raises:
            CipherEngineError: If the cipher or mode is unknown
        """
        try:
            module, key_size = CIPHERS[cipher_id]
        except (KeyError, TypeError):
            raise CipherEngineError(f"Unknown cipher: {cipher_id}")

        if mode_id not in MODES:
            raise CipherEngineError(f"Unknown mode: {mode_id}")

        handle = CipherHandle(
            cipher_id=cipher_id,
            mode_id=mode_id,
            module=module,
            key_size=key_size,
            block_size=module.block_size
        )
        logger.debug("Opened %r", handle)
        return handle

    def key_size(self, handle: CipherHandle) -> int:
        self._check_open(handle)
        return handle.key_size

    def iv_size(self, handle: CipherHandle) -> int:
        # every mode takes a block-sized IV; ECB accepts and ignores it
        self._check_open(handle)
        return handle.block_size

    def block_size(self, handle: CipherHandle) -> int:
        self._check_open(handle)
        return handle.block_size

    def init(self, handle: CipherHandle, key: bytes, iv: bytes) -> None:
        """
        Load the key and IV into a handle.

        Raises:
            CipherEngineError: If the key or IV has the wrong size or the
                cipher rejects the key
        """
        self._check_open(handle)

        if len(key) != handle.key_size:
            raise CipherEngineError(
                f"{handle.cipher_id} needs a {handle.key_size}-byte key, got {len(key)}"
            )
        if len(iv) != self.iv_size(handle):
            raise CipherEngineError(
                f"{handle.cipher_id} needs a {self.iv_size(handle)}-byte IV, got {len(iv)}"
            )

        handle.key = bytes(key)
        handle.iv = bytes(iv)

        try:
            self._new_cipher(handle)
        except ValueError as e:
            handle.key = None
            handle.iv = None
            raise CipherEngineError(f"{handle.cipher_id} rejected the key: {e}")

    def encrypt(self, handle: CipherHandle, data: bytes) -> bytes:
        self._check_ready(handle)
        if not data:
            return b''
        if handle.mode_id in _RESIDUAL_MODES:
            return self._residual(handle, bytes(data), encrypting=True)
        return self._new_cipher(handle).encrypt(bytes(data))

    def decrypt(self, handle: CipherHandle, data: bytes) -> bytes:
        self._check_ready(handle)
        if not data:
            return b''
        if handle.mode_id in _RESIDUAL_MODES:
            return self._residual(handle, bytes(data), encrypting=False)
        return self._new_cipher(handle).decrypt(bytes(data))

    def deinit_and_close(self, handle: CipherHandle) -> None:
        """Drop the key material and close the handle. Safe to call twice."""
        handle.key = None
        handle.iv = None
        if not handle.closed:
            handle.closed = True
            logger.debug("Closed %r", handle)

    @contextmanager
    def session(self, cipher_id: str, mode_id: str) -> Iterator[CipherHandle]:
        """Open a handle and close it when the block exits, whatever happens."""
        handle = self.open(cipher_id, mode_id)
        try:
            yield handle
        finally:
            self.deinit_and_close(handle)

    def _check_open(self, handle: CipherHandle) -> None:
        if handle.closed:
            raise CipherEngineError(f"{handle!r} is already closed")

    def _check_ready(self, handle: CipherHandle) -> None:
        self._check_open(handle)
        if not handle.initialized:
            raise CipherEngineError(f"{handle!r} used before init")

    def _new_cipher(self, handle: CipherHandle):
        mode = getattr(handle.module, handle.mode_id)
        if handle.mode_id == 'MODE_ECB':
            return handle.module.new(handle.key, mode)
        return handle.module.new(handle.key, mode, iv=handle.iv)

    def _residual(self, handle: CipherHandle, data: bytes, encrypting: bool) -> bytes:
        block_size = handle.block_size
        full = len(data) - len(data) % block_size
        head, tail = data[:full], data[full:]

        output = b''
        if head:
            cipher = self._new_cipher(handle)
            output = cipher.encrypt(head) if encrypting else cipher.decrypt(head)

        if not tail:
            return output

        previous = (output if encrypting else head)[-block_size:]
        if not previous:
            previous = handle.iv if handle.mode_id == 'MODE_CBC' else bytes(block_size)

        ecb = handle.module.new(handle.key, handle.module.MODE_ECB)
        keystream = ecb.encrypt(previous)
        return output + strxor(tail, keystream[:len(tail)])


def available_ciphers() -> List[str]:
    return list(CIPHERS)


def available_modes() -> List[str]:
    return list(MODES)
