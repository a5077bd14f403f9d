"""
Command Line Interface Module

CLI for pkcs5-tools: PBKDF2 key derivation and PBES2 encryption/decryption.
Uses argparse for command parsing and rich for console output.
"""

import sys
import time
import logging
import argparse
import getpass
from typing import Optional, List, Dict, Any, Union

from . import __version__
from .cipher_params import CIPHER_ALIASES, MODE_ALIASES, CipherSpec, describe_cipher
from .config import Config, ConfigError, load_config, create_default_config
from .engine import CipherEngine, CipherEngineError, available_ciphers
from .key_derivation import KeyDerivationError, derive_key, generate_salt
from .pbes2 import PBES2, ConfigurationError
from .utils import (
    ENCODINGS, UtilsError, decode_input, encode_output, format_duration, setup_logging,
    print_error, print_success, print_warning, create_table
)

logger = logging.getLogger(__name__)


class CLIError(Exception):
    """Raised when CLI operations fail."""
    pass


class PKCS5ToolsCLI:
    """Main CLI application class."""

    def __init__(self):
        """Initialize CLI application."""
        self.config: Optional[Config] = None
        self.verbose = False
        self.use_rich = True

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run the CLI application.

        Args:
            args: Command line arguments (default: sys.argv)

        Returns:
            Exit code
        """
        parser = self._create_parser()
        parsed_args = parser.parse_args(args)

        self.verbose = parsed_args.verbose
        self.use_rich = not parsed_args.no_rich

        try:
            self._load_configuration(parsed_args)

            if self.verbose or self.config.get('output.verbose'):
                setup_logging(logging.DEBUG, self.use_rich)
            else:
                setup_logging(self.config.get('output.log_level', 'WARNING'), self.use_rich)

            if not hasattr(parsed_args, 'func'):
                parser.print_help()
                return 1

            return parsed_args.func(parsed_args)

        except KeyboardInterrupt:
            print_error("Operation cancelled by user", self.use_rich)
            return 1
        except (CLIError, ConfigError) as e:
            print_error(str(e), self.use_rich)
            return 1
        except (KeyDerivationError, ConfigurationError, CipherEngineError, UtilsError, ValueError) as e:
            print_error(str(e), self.use_rich)
            return 1
        except OSError as e:
            print_error(f"I/O error: {e}", self.use_rich)
            return 1

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create the main argument parser."""
        parser = argparse.ArgumentParser(
            prog='pkcs5-tools',
            description='PBKDF2 key derivation and PBES2 password-based encryption',
            formatter_class=argparse.RawDescriptionHelpFormatter
        )

        # Global options
        parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose output')
        parser.add_argument('--no-rich', action='store_true', help='Disable rich formatting')
        parser.add_argument('--config', help='Configuration file path')
        parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

        subparsers = parser.add_subparsers(dest='command', title='Commands', metavar='COMMAND')

        # Derive command
        derive_parser = subparsers.add_parser('derive', help='Derive a key with PBKDF2')
        self._add_secret_arguments(derive_parser)
        self._add_kdf_arguments(derive_parser)
        derive_parser.add_argument('--encoding', choices=['hex', 'base64'], default='hex',
                                   help='Output encoding for the key')
        derive_parser.set_defaults(func=self._cmd_derive)

        # Encrypt command
        encrypt_parser = subparsers.add_parser('encrypt', help='Encrypt data with PBES2')
        encrypt_parser.add_argument('input', nargs='?', default='-', help='Input file (default: stdin)')
        encrypt_parser.add_argument('-o', '--output', help='Output file (default: stdout)')
        self._add_secret_arguments(encrypt_parser)
        self._add_kdf_arguments(encrypt_parser)
        self._add_cipher_arguments(encrypt_parser)
        encrypt_parser.set_defaults(func=self._cmd_encrypt)

        # Decrypt command
        decrypt_parser = subparsers.add_parser('decrypt', help='Decrypt PBES2 data')
        decrypt_parser.add_argument('input', nargs='?', default='-', help='Input file (default: stdin)')
        decrypt_parser.add_argument('-o', '--output', help='Output file (default: stdout)')
        self._add_secret_arguments(decrypt_parser)
        self._add_kdf_arguments(decrypt_parser)
        self._add_cipher_arguments(decrypt_parser)
        decrypt_parser.set_defaults(func=self._cmd_decrypt)

        # Salt command
        salt_parser = subparsers.add_parser('salt', help='Generate a random salt')
        salt_parser.add_argument('--length', type=int, help='Salt length in bytes')
        salt_parser.add_argument('--encoding', choices=['hex', 'base64'], default='hex',
                                 help='Output encoding')
        salt_parser.set_defaults(func=self._cmd_salt)

        # Ciphers command
        ciphers_parser = subparsers.add_parser('ciphers', help='List cipher and mode names')
        ciphers_parser.set_defaults(func=self._cmd_ciphers)

        # Configuration commands
        config_parser = subparsers.add_parser('config', help='Configuration management')
        config_subparsers = config_parser.add_subparsers(dest='config_command', title='Config Commands')

        config_show_parser = config_subparsers.add_parser('show', help='Show current configuration')
        config_show_parser.set_defaults(func=self._cmd_config_show)

        config_create_parser = config_subparsers.add_parser('create', help='Create default configuration')
        config_create_parser.add_argument('file', help='Configuration file path')
        config_create_parser.set_defaults(func=self._cmd_config_create)

        config_set_parser = config_subparsers.add_parser('set', help='Set configuration value')
        config_set_parser.add_argument('key', help='Configuration key')
        config_set_parser.add_argument('value', help='Configuration value')
        config_set_parser.set_defaults(func=self._cmd_config_set)

        return parser

    def _add_secret_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument('-p', '--password', help='Password (prompted if omitted)')
        parser.add_argument('-s', '--salt', required=True, help='Salt')
        parser.add_argument('--salt-encoding', choices=ENCODINGS, default='raw',
                            help='How --salt is written (default: raw text)')

    def _add_kdf_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument('--iterations', type=int, help='PBKDF2 iterations')
        parser.add_argument('--length', type=int, help='Derived key length in bytes')
        parser.add_argument('--algorithm', help='PBKDF2 hash algorithm')

    def _add_cipher_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument('--cipher', help='Cipher (aes, aes128, aes192, aes256, 3des)')
        parser.add_argument('--mode', help='Mode (CBC, ECB, CFB, OFB)')
        parser.add_argument('--pad', help='Padding (rfc1423, null, none)')
        parser.add_argument('--iv', help='IV as hex')
        parser.add_argument('--encoding', choices=ENCODINGS, help='Ciphertext encoding')

    def _load_configuration(self, args: argparse.Namespace) -> None:
        """Load configuration from file or defaults."""
        self.config = load_config(args.config)
        if not self.config.validate():
            print_warning("Configuration contains invalid values", self.use_rich)

    def _get_password(self, args: argparse.Namespace, confirm: bool = False) -> str:
        """Get password from args or prompt."""
        if args.password:
            return args.password

        password = getpass.getpass("Enter password: ")
        if confirm:
            confirm_password = getpass.getpass("Confirm password: ")
            if password != confirm_password:
                raise CLIError("Passwords do not match")

        if not password:
            raise CLIError("Password must not be empty")

        return password

    def _get_salt(self, args: argparse.Namespace) -> bytes:
        return decode_input(args.salt, args.salt_encoding)

    def _get_iv(self, args: argparse.Namespace) -> Optional[bytes]:
        if args.iv is None:
            return None
        return decode_input(args.iv, 'hex')

    def _build_pbes2(self, args: argparse.Namespace, confirm: bool) -> PBES2:
        password = self._get_password(args, confirm=confirm)
        config = self.config.to_pbes2_config(
            password,
            self._get_salt(args),
            iterations=args.iterations,
            length=args.length,
            algorithm=args.algorithm,
            cipher=args.cipher,
            mode=args.mode,
            pad=args.pad,
            iv=self._get_iv(args)
        )
        logger.debug("Using %r", config)
        return PBES2(config)

    def _encoding(self, args: argparse.Namespace) -> str:
        return args.encoding or self.config.get('pbes2.encoding', 'hex')

    def _read_input(self, path: str) -> bytes:
        if path == '-':
            return sys.stdin.buffer.read()
        with open(path, 'rb') as f:
            return f.read()

    def _write_output(self, path: Optional[str], data: Union[bytes, str]) -> None:
        if isinstance(data, str):
            data = (data + '\n').encode('ascii')

        if path is None or path == '-':
            sys.stdout.buffer.write(data)
            sys.stdout.flush()
        else:
            with open(path, 'wb') as f:
                f.write(data)

    def _cmd_derive(self, args: argparse.Namespace) -> int:
        """Handle derive command."""
        password = self._get_password(args)
        iterations = args.iterations
        if iterations is None:
            iterations = self.config.get('pbes2.iterations', 1000)
        length = args.length
        if length is None:
            length = self.config.get('pbes2.length', 32)
        algorithm = args.algorithm or self.config.get('pbes2.algorithm', 'sha256')

        start = time.time()
        key = derive_key(
            password,
            self._get_salt(args),
            iterations=iterations,
            key_length=length,
            hash_algorithm=algorithm,
            max_blocks=self.config.get('kdf.max_blocks')
        )
        elapsed = time.time() - start

        logger.debug("Derived %d-byte key in %s", len(key), format_duration(elapsed))
        print(encode_output(key, args.encoding))
        return 0

    def _cmd_encrypt(self, args: argparse.Namespace) -> int:
        """Handle encrypt command."""
        pbes2 = self._build_pbes2(args, confirm=args.password is None)
        plaintext = self._read_input(args.input)

        ciphertext = pbes2.encrypt(plaintext, self._encoding(args))
        self._write_output(args.output, ciphertext)

        if args.output:
            print_success(f"Encrypted {len(plaintext)} bytes to {args.output}", self.use_rich)
        return 0

    def _cmd_decrypt(self, args: argparse.Namespace) -> int:
        """Handle decrypt command."""
        pbes2 = self._build_pbes2(args, confirm=False)
        data = self._read_input(args.input)

        encoding = self._encoding(args)
        if encoding != 'raw':
            data = data.decode('ascii').strip()

        plaintext = pbes2.decrypt(data, encoding)
        if plaintext is None:
            raise CLIError("Decryption failed: invalid padding (wrong password or corrupted data)")

        self._write_output(args.output, plaintext)

        if args.output:
            print_success(f"Decrypted {len(plaintext)} bytes to {args.output}", self.use_rich)
        return 0

    def _cmd_salt(self, args: argparse.Namespace) -> int:
        """Handle salt command."""
        length = args.length
        if length is None:
            length = self.config.get('kdf.salt_length', 32)
        print(encode_output(generate_salt(length), args.encoding))
        return 0

    def _cmd_ciphers(self, args: argparse.Namespace) -> int:
        """Handle ciphers command."""
        engine = CipherEngine()

        headers = ['Name', 'Engine id', 'Key size', 'Block size']
        rows = []
        for alias, cipher_id in CIPHER_ALIASES.items():
            resolved = describe_cipher(engine, CipherSpec(cipher=alias))
            rows.append([alias, cipher_id, resolved.key_size, resolved.block_size])
        create_table(headers, rows, self.use_rich)

        mode_rows = [[alias, mode_id] for alias, mode_id in MODE_ALIASES.items()]
        create_table(['Mode', 'Engine id'], mode_rows, self.use_rich)

        logger.debug("Engine ciphers: %s", ', '.join(available_ciphers()))
        return 0

    def _cmd_config_show(self, args: argparse.Namespace) -> int:
        """Handle config show command."""
        print("Current configuration:")
        self._print_config_dict(self.config.to_dict(), "")
        return 0

    def _cmd_config_create(self, args: argparse.Namespace) -> int:
        """Handle config create command."""
        create_default_config(args.file)
        print_success(f"Default configuration created: {args.file}", self.use_rich)
        return 0

    def _cmd_config_set(self, args: argparse.Namespace) -> int:
        """Handle config set command."""
        value: Any = args.value
        if value.lower() in ('true', 'false'):
            value = value.lower() == 'true'
        elif value.isdigit():
            value = int(value)

        self.config.set(args.key, value)
        self.config.save()

        print_success(f"Configuration updated: {args.key} = {value}", self.use_rich)
        return 0

    def _print_config_dict(self, config_dict: Dict[str, Any], prefix: str = "") -> None:
        """Print configuration dictionary recursively."""
        for key, value in config_dict.items():
            full_key = f"{prefix}.{key}" if prefix else key

            if isinstance(value, dict):
                print(f"{full_key}:")
                self._print_config_dict(value, full_key)
            else:
                print(f"  {key}: {value}")


def main() -> int:
    """Main entry point."""
    cli = PKCS5ToolsCLI()
    return cli.run()


if __name__ == '__main__':
    sys.exit(main())
