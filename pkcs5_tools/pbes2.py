"""
PBES2 Module

Password-based encryption: a PBKDF2-derived key drives a block cipher from
the engine, with optional padding at the ciphertext boundary.

Note on padding order: encrypt() pads the *ciphertext* produced by the engine
and decrypt() unpads before decrypting. This differs from the usual PBES2
construction, where the plaintext is padded before encryption, and does not
hide the plaintext length the way that construction does. It is kept so
output stays byte-compatible with existing PBES2 data produced this way.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional, Union

from .cipher_params import CipherSpec, ResolvedCipher, open_cipher
from .engine import CipherEngine, CipherHandle
from .key_derivation import MAX_BLOCKS, derive_key
from .padding import Padding, PaddingScheme, get_padding
from .utils import decode_input, encode_output

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when a PBES2 configuration cannot be applied to the cipher."""
    pass


@dataclass(frozen=True)
class PBES2Config:
    """
    Immutable PBES2 settings.

    Every with_* method returns a new configuration, so a base configuration
    can be shared and specialized freely:

        config = new_pbes2("secret", salt).with_cipher("aes128").with_mode("CFB")
    """

    password: bytes
    salt: bytes
    iterations: int = 1000
    length: int = 32
    algorithm: str = 'sha256'
    cipher: str = 'aes256'
    mode: str = 'CBC'
    pad: Union[PaddingScheme, str, None] = PaddingScheme.RFC1423
    iv: Optional[bytes] = None
    max_blocks: int = MAX_BLOCKS

    def __post_init__(self):
        for name in ('password', 'salt', 'iv'):
            value = getattr(self, name)
            if isinstance(value, str):
                object.__setattr__(self, name, value.encode('utf-8'))
            elif value is not None:
                object.__setattr__(self, name, bytes(value))

    def with_password(self, password: Union[str, bytes]) -> 'PBES2Config':
        return replace(self, password=password)

    def with_salt(self, salt: Union[str, bytes]) -> 'PBES2Config':
        return replace(self, salt=salt)

    def with_iterations(self, iterations: int) -> 'PBES2Config':
        return replace(self, iterations=iterations)

    def with_length(self, length: int) -> 'PBES2Config':
        return replace(self, length=length)

    def with_algorithm(self, algorithm: str) -> 'PBES2Config':
        return replace(self, algorithm=algorithm)

    def with_cipher(self, cipher: str) -> 'PBES2Config':
        return replace(self, cipher=cipher)

    def with_mode(self, mode: str) -> 'PBES2Config':
        return replace(self, mode=mode)

    def with_pad(self, pad: Union[PaddingScheme, str, None]) -> 'PBES2Config':
        return replace(self, pad=pad)

    def with_iv(self, iv: Union[str, bytes, None]) -> 'PBES2Config':
        return replace(self, iv=iv)

    @property
    def cipher_spec(self) -> CipherSpec:
        return CipherSpec(cipher=self.cipher, mode=self.mode, iv=self.iv)

    def __repr__(self) -> str:
        return (
            f"PBES2Config(cipher={self.cipher!r}, mode={self.mode!r}, pad={self.pad!r}, "
            f"iterations={self.iterations}, length={self.length}, algorithm={self.algorithm!r})"
        )


def new_pbes2(password: Union[str, bytes], salt: Union[str, bytes]) -> PBES2Config:
    """Start a PBES2 configuration with default settings."""
    return PBES2Config(password=password, salt=salt)


def resolve_iv(iv: Optional[bytes], iv_size: int) -> bytes:
    """
    Fit a configured IV to the cipher's IV size.

    A missing IV becomes iv_size zero bytes and a short one is right-padded
    with zero bytes.

    Raises:
        ConfigurationError: If the IV is longer than iv_size
    """
    if iv is None:
        return bytes(iv_size)
    if len(iv) > iv_size:
        raise ConfigurationError(f"IV is {len(iv)} bytes, the cipher takes at most {iv_size}")
    return iv + bytes(iv_size - len(iv))


def fit_key(derived_key: bytes, key_size: int) -> bytes:
    """
    Truncate a derived key to the cipher's key size.

    Raises:
        ConfigurationError: If the derived key is shorter than key_size
    """
    if len(derived_key) < key_size:
        raise ConfigurationError(
            f"Derived key is {len(derived_key)} bytes, the cipher needs {key_size}; "
            f"raise the configured length"
        )
    return derived_key[:key_size]


class PBES2:
    """
    Encrypts and decrypts with a PBES2Config.

    Each call derives the key, opens its own engine handle, and closes the
    handle before returning, on success and on error alike. Instances hold
    no per-call state and can be reused.
    """

    def __init__(self, config: PBES2Config, engine: Optional[CipherEngine] = None):
        try:
            self.padding: Optional[Padding] = get_padding(config.pad)
        except ValueError as e:
            raise ConfigurationError(str(e))
        self.config = config
        self.engine = engine or CipherEngine()

    def _derive(self) -> bytes:
        config = self.config
        return derive_key(
            config.password,
            config.salt,
            iterations=config.iterations,
            key_length=config.length,
            hash_algorithm=config.algorithm,
            max_blocks=config.max_blocks
        )

    def _setup(self, handle: CipherHandle, resolved: ResolvedCipher, derived: bytes) -> None:
        iv = resolve_iv(self.config.iv, resolved.iv_size)
        key = fit_key(derived, resolved.key_size)
        self.engine.init(handle, key, iv)

    def encrypt(self, data: Union[bytes, str], encoding: str = 'raw') -> Union[bytes, str]:
        """
        Encrypt data.

        Args:
            data: Plaintext bytes (str is UTF-8 encoded)
            encoding: Output encoding: "raw", "hex" or "base64"

        Returns:
            Ciphertext, padded after encryption when padding is enabled

        Raises:
            KeyDerivationError: If the key cannot be derived
            ConfigurationError: If the IV or key does not fit the cipher
            CipherEngineError: If the engine rejects the cipher, mode or key
        """
        if isinstance(data, str):
            data = data.encode('utf-8')

        derived = self._derive()
        handle, resolved = open_cipher(self.engine, self.config.cipher_spec)
        try:
            self._setup(handle, resolved, derived)
            encrypted = self.engine.encrypt(handle, data)

            if self.padding is not None:
                encrypted = self.padding.pad(encrypted, resolved.block_size)
        finally:
            self.engine.deinit_and_close(handle)

        logger.debug("Encrypted %d bytes into %d", len(data), len(encrypted))
        return encode_output(encrypted, encoding)

    def decrypt(self, data: Union[bytes, str], encoding: str = 'raw') -> Optional[bytes]:
        """
        Decrypt data produced by encrypt().

        Args:
            data: Ciphertext, in the given encoding
            encoding: Input encoding: "raw", "hex" or "base64"

        Returns:
            Plaintext bytes, or None when the padding is malformed (corrupted
            or tampered input)

        Raises:
            KeyDerivationError: If the key cannot be derived
            ConfigurationError: If the IV or key does not fit the cipher
            CipherEngineError: If the engine rejects the cipher, mode or key
        """
        ciphertext = decode_input(data, encoding)

        derived = self._derive()
        handle, resolved = open_cipher(self.engine, self.config.cipher_spec)
        try:
            self._setup(handle, resolved, derived)

            if self.padding is not None:
                unpadded = self.padding.unpad(ciphertext, resolved.block_size)
                if unpadded is None:
                    logger.debug("Padding check failed on %d bytes", len(ciphertext))
                    return None
                ciphertext = unpadded

            return self.engine.decrypt(handle, ciphertext)
        finally:
            self.engine.deinit_and_close(handle)


def encrypt(config: PBES2Config, data: Union[bytes, str], encoding: str = 'raw') -> Union[bytes, str]:
    """Encrypt data with a one-off PBES2 instance."""
    return PBES2(config).encrypt(data, encoding)


def decrypt(config: PBES2Config, data: Union[bytes, str], encoding: str = 'raw') -> Optional[bytes]:
    """Decrypt data with a one-off PBES2 instance."""
    return PBES2(config).decrypt(data, encoding)
