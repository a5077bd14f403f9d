"""
Tests for PBES2 encryption and decryption.
"""

import base64
import inspect

import pytest
from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2

import pkcs5_tools
import pkcs5_tools.pbes2 as pbes2_submodule
from pkcs5_tools import pbes2 as pbes2_module
from pkcs5_tools.engine import CipherEngineError
from pkcs5_tools.key_derivation import DerivedKeyTooLongError
from pkcs5_tools.padding import PaddingScheme
from pkcs5_tools.pbes2 import (
    PBES2, ConfigurationError, PBES2Config, fit_key, new_pbes2, resolve_iv
)

CIPHERS = ["aes", "aes128", "aes192", "aes256", "3des"]
MODES = ["CBC", "ECB", "CFB", "OFB"]
LENGTHS = [0, 1, 8, 15, 16, 17, 100]


@pytest.fixture
def config(sample_password, sample_salt):
    return new_pbes2(sample_password, sample_salt).with_iterations(2)


class TestPBES2Config:
    """Test the immutable configuration."""

    def test_defaults(self):
        config = new_pbes2("password", "salt")

        assert config.password == b"password"
        assert config.salt == b"salt"
        assert config.iterations == 1000
        assert config.length == 32
        assert config.algorithm == "sha256"
        assert config.cipher == "aes256"
        assert config.mode == "CBC"
        assert config.pad is PaddingScheme.RFC1423
        assert config.iv is None

    def test_builder_chain(self):
        base = new_pbes2("password", "salt")
        config = (
            base.with_password("other")
            .with_salt(b"pepper")
            .with_iterations(5)
            .with_length(24)
            .with_algorithm("sha512")
            .with_cipher("3des")
            .with_mode("OFB")
            .with_pad("null")
            .with_iv("12345678")
        )

        assert config.password == b"other"
        assert config.salt == b"pepper"
        assert config.iterations == 5
        assert config.length == 24
        assert config.algorithm == "sha512"
        assert config.cipher == "3des"
        assert config.mode == "OFB"
        assert config.pad == "null"
        assert config.iv == b"12345678"
        assert base.password == b"password"
        assert base.iterations == 1000

    def test_immutable(self, config):
        with pytest.raises(AttributeError):
            config.cipher = "3des"

    def test_repr_hides_secrets(self):
        config = new_pbes2("hunter2", "salt")
        assert "hunter2" not in repr(config)

    def test_cipher_spec(self, config):
        spec = config.with_iv(b"abc").cipher_spec
        assert spec.cipher == "aes256"
        assert spec.mode == "CBC"
        assert spec.iv == b"abc"


class TestHelpers:
    """Test IV and key fitting."""

    def test_missing_iv_is_zeros(self):
        assert resolve_iv(None, 16) == bytes(16)

    def test_short_iv_is_zero_padded(self):
        assert resolve_iv(b"abc", 8) == b"abc" + bytes(5)

    def test_exact_iv(self):
        assert resolve_iv(b"12345678", 8) == b"12345678"

    def test_long_iv_rejected(self):
        with pytest.raises(ConfigurationError):
            resolve_iv(b"123456789", 8)

    def test_key_truncated(self):
        assert fit_key(bytes(range(32)), 24) == bytes(range(24))

    def test_short_key_rejected(self):
        with pytest.raises(ConfigurationError):
            fit_key(bytes(16), 32)


class TestRoundTrip:
    """Test encrypt/decrypt round trips."""

    @pytest.mark.parametrize("cipher", CIPHERS)
    @pytest.mark.parametrize("mode", MODES)
    @pytest.mark.parametrize("pad", ["rfc1423", None])
    def test_round_trip(self, config, cipher, mode, pad):
        pbes = PBES2(config.with_cipher(cipher).with_mode(mode).with_pad(pad))

        for length in LENGTHS:
            plaintext = bytes((i * 13 + 1) % 256 for i in range(length))
            assert pbes.decrypt(pbes.encrypt(plaintext)) == plaintext

    def test_zero_padding_round_trip(self, config):
        plaintext = b"zero padded payload"
        raw = PBES2(config.with_pad(None)).encrypt(plaintext)
        padded = PBES2(config.with_pad("null")).encrypt(plaintext)

        assert len(padded) % 16 == 0
        assert padded.startswith(raw)
        assert padded[len(raw):] == bytes(len(padded) - len(raw))
        if not raw.endswith(b"\x00"):
            assert PBES2(config.with_pad("null")).decrypt(padded) == plaintext

    @pytest.mark.parametrize("encoding", ["hex", "base64"])
    def test_encoded_round_trip(self, config, encoding):
        pbes = PBES2(config)
        encoded = pbes.encrypt(b"encoded payload", encoding)

        assert isinstance(encoded, str)
        assert pbes.decrypt(encoded, encoding) == b"encoded payload"

    def test_encodings_agree(self, config):
        pbes = PBES2(config)
        raw = pbes.encrypt(b"payload")

        assert pbes.encrypt(b"payload", "hex") == raw.hex()
        assert pbes.encrypt(b"payload", "base64") == base64.b64encode(raw).decode("ascii")

    def test_str_plaintext(self, config):
        pbes = PBES2(config)
        assert pbes.decrypt(pbes.encrypt("grüße")) == "grüße".encode("utf-8")

    def test_module_functions(self, config):
        ciphertext = pbes2_module.encrypt(config, b"one-off", "hex")
        assert pbes2_module.decrypt(config, ciphertext, "hex") == b"one-off"

    def test_submodule_reachable_from_package(self):
        assert inspect.ismodule(pbes2_submodule)
        assert inspect.ismodule(pbes2_module)
        assert inspect.ismodule(pkcs5_tools.pbes2)
        assert pkcs5_tools.pbes2.encrypt is pkcs5_tools.encrypt
        assert pkcs5_tools.new_pbes2 is new_pbes2

    def test_wrong_password(self, config):
        ciphertext = PBES2(config).encrypt(b"secret message here")
        assert PBES2(config.with_password("wrong")).decrypt(ciphertext) != b"secret message here"


class TestEncryptionOutput:
    """Test the exact ciphertext layout."""

    def test_matches_reference_construction(self):
        config = new_pbes2("password", b"salt").with_iterations(10)
        plaintext = b"exactly thirty-two bytes long!!!"

        key = PBKDF2("password", b"salt", dkLen=32, count=10, hmac_hash_module=SHA256)
        expected = AES.new(key, AES.MODE_CBC, iv=bytes(16)).encrypt(plaintext) + b"\x10" * 16

        assert PBES2(config).encrypt(plaintext) == expected

    def test_padding_applied_to_ciphertext(self, config):
        plaintext = b"sixteen byte msg"
        unpadded = PBES2(config.with_pad(None)).encrypt(plaintext)
        padded = PBES2(config).encrypt(plaintext)

        assert len(unpadded) == 16
        assert padded == unpadded + b"\x10" * 16

    def test_empty_plaintext(self, config):
        assert PBES2(config).encrypt(b"") == b"\x10" * 16

    def test_zero_iv_default_is_deterministic(self, config):
        pbes = PBES2(config)
        first = pbes.encrypt(b"same plaintext")

        assert pbes.encrypt(b"same plaintext") == first
        assert PBES2(config.with_iv(bytes(16))).encrypt(b"same plaintext") == first

    def test_short_iv_matches_zero_padded_iv(self, config):
        short = PBES2(config.with_iv(b"abc")).encrypt(b"payload payload payload")
        full = PBES2(config.with_iv(b"abc" + bytes(13))).encrypt(b"payload payload payload")
        assert short == full

    def test_iv_changes_ciphertext(self, config):
        assert PBES2(config.with_iv(b"abc")).encrypt(b"payload") != PBES2(config).encrypt(b"payload")

    def test_engine_ids_match_aliases(self, config):
        alias = PBES2(config.with_cipher("aes128").with_mode("CFB")).encrypt(b"payload")
        native = PBES2(config.with_cipher("AES-128").with_mode("MODE_CFB")).encrypt(b"payload")
        assert alias == native

    def test_bare_aes_uses_128_bit_key(self, config):
        bare = PBES2(config.with_cipher("aes")).encrypt(b"payload")
        assert bare == PBES2(config.with_cipher("aes128")).encrypt(b"payload")
        assert bare != PBES2(config.with_cipher("aes256")).encrypt(b"payload")


class TestErrorHandling:
    """Test failures and resource release."""

    def test_long_iv_rejected_and_handle_closed(self, config, recording_engine):
        pbes = PBES2(config.with_iv(bytes(17)), engine=recording_engine)

        with pytest.raises(ConfigurationError):
            pbes.encrypt(b"payload")

        assert len(recording_engine.handles) == 1
        assert recording_engine.handles[0].closed

    def test_short_derived_key_rejected(self, config, recording_engine):
        pbes = PBES2(config.with_length(16), engine=recording_engine)

        with pytest.raises(ConfigurationError):
            pbes.decrypt(b"\x10" * 16)

        assert all(handle.closed for handle in recording_engine.handles)

    def test_length_exceeded(self, recording_engine):
        config = PBES2Config(password=b"password", salt=b"salt", length=33, max_blocks=1)

        with pytest.raises(DerivedKeyTooLongError):
            PBES2(config, engine=recording_engine).encrypt(b"payload")

        assert recording_engine.handles == []

    def test_unknown_cipher_propagates(self, config, recording_engine):
        with pytest.raises(CipherEngineError):
            PBES2(config.with_cipher("twofish"), engine=recording_engine).encrypt(b"payload")

    def test_unknown_padding(self, config):
        with pytest.raises(ConfigurationError):
            PBES2(config.with_pad("iso10126"))

    def test_bad_padding_returns_none(self, config, recording_engine):
        pbes = PBES2(config, engine=recording_engine)
        ciphertext = pbes.encrypt(b"payload")
        tampered = ciphertext[:-1] + b"\xff"

        assert pbes.decrypt(tampered) is None
        assert all(handle.closed for handle in recording_engine.handles)

    def test_empty_ciphertext_returns_none(self, config):
        assert PBES2(config).decrypt(b"") is None

    def test_handles_closed_after_success(self, config, recording_engine):
        pbes = PBES2(config, engine=recording_engine)
        pbes.decrypt(pbes.encrypt(b"payload"))

        assert len(recording_engine.handles) == 2
        assert all(handle.closed for handle in recording_engine.handles)
        assert all(handle.key is None for handle in recording_engine.handles)
