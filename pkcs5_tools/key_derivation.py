"""
Key Derivation Module

Implements PBKDF2 (PKCS #5 v2.0, section 5.2) over HMAC with a configurable
hash, plus salt generation and an immutable parameter set for callers that
prefer to pass derivation settings around as a single value.
"""

import logging
import math
import secrets
import struct
from dataclasses import dataclass, replace
from typing import Union

from Crypto.Hash import HMAC, MD5, SHA1, SHA224, SHA256, SHA384, SHA512
from Crypto.Util.strxor import strxor

logger = logging.getLogger(__name__)

# PKCS #5 caps the derived key at (2^32 - 1) hash-length blocks
MAX_BLOCKS = 2 ** 32 - 1

# Stricter cap used by some older PBKDF2 ports
LEGACY_MAX_BLOCKS = 2 ** 23 - 1

HASH_MODULES = {
    'md5': MD5,
    'sha1': SHA1,
    'sha224': SHA224,
    'sha256': SHA256,
    'sha384': SHA384,
    'sha512': SHA512,
}


class KeyDerivationError(Exception):
    """Raised when key derivation fails."""
    pass


class DerivedKeyTooLongError(KeyDerivationError):
    """Raised when the requested key is longer than the PRF can produce."""
    pass


def _normalize_algorithm(name: str) -> str:
    return name.lower().replace('-', '').replace('_', '')


def get_hash_module(hash_algorithm: str):
    """
    Look up the PyCryptodome hash module for a hash name.

    Args:
        hash_algorithm: Hash name such as "sha256", "SHA-512" or "sha_1"

    Returns:
        Hash module usable as an HMAC digestmod

    Raises:
        KeyDerivationError: If the hash is not supported
    """
    try:
        return HASH_MODULES[_normalize_algorithm(hash_algorithm)]
    except (KeyError, AttributeError):
        raise KeyDerivationError(f"Unsupported hash algorithm: {hash_algorithm}")


def max_derived_length(hash_algorithm: str, max_blocks: int = MAX_BLOCKS) -> int:
    """Largest key, in bytes, derivable with the given hash and block bound."""
    return max_blocks * get_hash_module(hash_algorithm).digest_size


def generate_salt(length: int = 32) -> bytes:
    """
    Generate a cryptographically secure random salt.

    Args:
        length: Salt length in bytes (default: 32)

    Returns:
        Random salt bytes

    Raises:
        KeyDerivationError: If the length is not positive
    """
    if length < 1:
        raise KeyDerivationError(f"Salt length must be positive, got {length}")
    return secrets.token_bytes(length)


def _to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, str):
        return value.encode('utf-8')
    return bytes(value)


def derive_key(
    password: Union[str, bytes],
    salt: Union[str, bytes],
    iterations: int = 1000,
    key_length: int = 32,
    hash_algorithm: str = "sha1",
    max_blocks: int = MAX_BLOCKS
) -> bytes:
    """
    Derive a key from a password using PBKDF2.

    Each output block is U1 ^ U2 ^ ... ^ Uc where U1 = HMAC(password, salt ||
    INT32BE(block index)) and Uj = HMAC(password, U(j-1)). The XOR is taken
    over the raw digest bytes.

    Args:
        password: Password string (UTF-8 encoded) or bytes
        salt: Salt string (UTF-8 encoded) or bytes
        iterations: PRF iterations per block (default: 1000)
        key_length: Derived key length in bytes (default: 32)
        hash_algorithm: HMAC hash (md5, sha1, sha224, sha256, sha384, sha512)
        max_blocks: Upper bound on hash-length blocks (default: 2^32 - 1)

    Returns:
        Derived key of exactly key_length bytes

    Raises:
        DerivedKeyTooLongError: If key_length exceeds max_blocks * hash length
        KeyDerivationError: If any other parameter is invalid
    """
    hash_module = get_hash_module(hash_algorithm)
    hash_length = hash_module.digest_size

    if key_length < 0:
        raise KeyDerivationError(f"Key length must not be negative, got {key_length}")
    if key_length > max_blocks * hash_length:
        raise DerivedKeyTooLongError(
            f"Derived key too long: {key_length} bytes requested, "
            f"{hash_algorithm} allows at most {max_blocks * hash_length}"
        )
    if iterations < 1:
        raise KeyDerivationError(f"Iteration count must be at least 1, got {iterations}")

    password_bytes = _to_bytes(password)
    salt_bytes = _to_bytes(salt)

    key_blocks = math.ceil(key_length / hash_length)
    logger.debug(
        "Deriving %d bytes (%d blocks) with HMAC-%s, %d iterations",
        key_length, key_blocks, hash_algorithm, iterations
    )

    # keyed once, copied per PRF call
    prf = HMAC.new(password_bytes, digestmod=hash_module)

    derived = bytearray()
    for block in range(1, key_blocks + 1):
        mac = prf.copy()
        mac.update(salt_bytes + struct.pack('>I', block))
        u = mac.digest()
        t = u

        for _ in range(1, iterations):
            mac = prf.copy()
            mac.update(u)
            u = mac.digest()
            t = strxor(t, u)

        derived += t

    return bytes(derived[:key_length])


@dataclass(frozen=True)
class KDFParameters:
    """Immutable PBKDF2 settings. The with_* methods return a new instance."""

    password: bytes
    salt: bytes
    iterations: int = 1000
    length: int = 32
    algorithm: str = "sha1"
    max_blocks: int = MAX_BLOCKS

    def __post_init__(self):
        object.__setattr__(self, 'password', _to_bytes(self.password))
        object.__setattr__(self, 'salt', _to_bytes(self.salt))

    def with_password(self, password: Union[str, bytes]) -> 'KDFParameters':
        return replace(self, password=password)

    def with_salt(self, salt: Union[str, bytes]) -> 'KDFParameters':
        return replace(self, salt=salt)

    def with_iterations(self, iterations: int) -> 'KDFParameters':
        return replace(self, iterations=iterations)

    def with_length(self, length: int) -> 'KDFParameters':
        return replace(self, length=length)

    def with_algorithm(self, algorithm: str) -> 'KDFParameters':
        return replace(self, algorithm=algorithm)

    def with_max_blocks(self, max_blocks: int) -> 'KDFParameters':
        return replace(self, max_blocks=max_blocks)

    def derive(self) -> bytes:
        """Derive the key described by these parameters."""
        return derive_key(
            self.password,
            self.salt,
            iterations=self.iterations,
            key_length=self.length,
            hash_algorithm=self.algorithm,
            max_blocks=self.max_blocks
        )

    def hexdigest(self) -> str:
        """Derive the key and return it hex encoded."""
        return self.derive().hex()

    def __repr__(self) -> str:
        return (
            f"KDFParameters(iterations={self.iterations}, length={self.length}, "
            f"algorithm={self.algorithm!r}, salt={self.salt.hex()!r})"
        )


def pbkdf2(password: Union[str, bytes], salt: Union[str, bytes]) -> KDFParameters:
    """Start a PBKDF2 parameter set with default settings."""
    return KDFParameters(password=password, salt=salt)
