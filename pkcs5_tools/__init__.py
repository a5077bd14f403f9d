"""
pkcs5-tools - PBKDF2 Key Derivation and PBES2 Encryption

Derives symmetric keys from a password and salt with PBKDF2 (PKCS #5 v2.0)
and uses them to drive AES or 3DES in CBC, ECB, CFB or OFB mode, with
zero or RFC 1423 padding.

License: MIT
Version: 1.0.0
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .key_derivation import (
    derive_key, generate_salt, pbkdf2, KDFParameters,
    KeyDerivationError, DerivedKeyTooLongError, MAX_BLOCKS, LEGACY_MAX_BLOCKS
)
from .padding import PaddingScheme, ZeroPadding, CountingPadding, get_padding
from .engine import CipherEngine, CipherEngineError
from .cipher_params import CipherSpec, ResolvedCipher, open_cipher
from .pbes2 import PBES2, PBES2Config, ConfigurationError, new_pbes2, encrypt, decrypt
from .config import Config, ConfigError

__all__ = [
    "derive_key",
    "generate_salt",
    "pbkdf2",
    "KDFParameters",
    "KeyDerivationError",
    "DerivedKeyTooLongError",
    "MAX_BLOCKS",
    "LEGACY_MAX_BLOCKS",
    "PaddingScheme",
    "ZeroPadding",
    "CountingPadding",
    "get_padding",
    "CipherEngine",
    "CipherEngineError",
    "CipherSpec",
    "ResolvedCipher",
    "open_cipher",
    "PBES2",
    "PBES2Config",
    "ConfigurationError",
    "new_pbes2",
    "encrypt",
    "decrypt",
    "Config",
    "ConfigError",
]
