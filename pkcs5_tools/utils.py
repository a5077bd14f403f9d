"""
Utilities Module

Output encoding helpers, console output and logging setup shared by the
library and the command line interface.
"""

import base64
import binascii
import logging
import sys
from typing import Union

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

ENCODINGS = ('raw', 'hex', 'base64')


class UtilsError(Exception):
    """Raised when utility operations fail."""
    pass


def _check_encoding(encoding: str) -> str:
    encoding = encoding.lower()
    if encoding not in ENCODINGS:
        raise ValueError(f"Unknown encoding: {encoding} (expected one of {', '.join(ENCODINGS)})")
    return encoding


def encode_output(data: bytes, encoding: str = 'raw') -> Union[bytes, str]:
    """
    Encode binary data for output.

    Args:
        data: Bytes to encode
        encoding: "raw", "hex" or "base64"

    Returns:
        The bytes unchanged for "raw", otherwise an ASCII string
    """
    encoding = _check_encoding(encoding)
    if encoding == 'hex':
        return data.hex()
    if encoding == 'base64':
        return base64.b64encode(data).decode('ascii')
    return data


def decode_input(data: Union[bytes, str], encoding: str = 'raw') -> bytes:
    """
    Decode data produced by encode_output().

    Args:
        data: Raw bytes, or a hex/base64 string (bytes are accepted too)
        encoding: "raw", "hex" or "base64"

    Returns:
        Decoded bytes

    Raises:
        UtilsError: If the text is not valid for the encoding
    """
    encoding = _check_encoding(encoding)

    if encoding == 'raw':
        if isinstance(data, str):
            return data.encode('utf-8')
        return bytes(data)

    if isinstance(data, bytes):
        data = data.decode('ascii', errors='strict')
    text = ''.join(data.split())

    try:
        if encoding == 'hex':
            return bytes.fromhex(text)
        return base64.b64decode(text, validate=True)
    except (ValueError, binascii.Error) as e:
        raise UtilsError(f"Invalid {encoding} input: {e}")


def format_duration(seconds: float) -> str:
    """
    Format duration in human-readable format.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string
    """
    if seconds < 1:
        return f"{seconds*1000:.0f} ms"
    elif seconds < 60:
        return f"{seconds:.1f} s"
    else:
        minutes = seconds / 60
        return f"{minutes:.1f} min"


def setup_logging(level: Union[int, str] = logging.WARNING, use_rich: bool = True) -> None:
    """
    Configure the package logger.

    Args:
        level: Logging level or level name
        use_rich: Use rich's log handler instead of a plain stream handler
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    if use_rich:
        handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    package_logger = logging.getLogger('pkcs5_tools')
    for existing in list(package_logger.handlers):
        package_logger.removeHandler(existing)
    package_logger.addHandler(handler)
    package_logger.setLevel(level)


def print_error(message: str, use_rich: bool = True) -> None:
    """
    Print error message with formatting.

    Args:
        message: Error message
        use_rich: Use rich formatting
    """
    if use_rich:
        console = Console(stderr=True)
        console.print(Panel(f"[red]Error: {message}[/red]", title="Error"))
    else:
        print(f"Error: {message}", file=sys.stderr)


def print_success(message: str, use_rich: bool = True) -> None:
    """
    Print success message with formatting.

    Args:
        message: Success message
        use_rich: Use rich formatting
    """
    if use_rich:
        console = Console(stderr=True)
        console.print(Panel(f"[green]{message}[/green]", title="Success"))
    else:
        print(message, file=sys.stderr)


def print_warning(message: str, use_rich: bool = True) -> None:
    """
    Print warning message with formatting.

    Args:
        message: Warning message
        use_rich: Use rich formatting
    """
    if use_rich:
        console = Console(stderr=True)
        console.print(Panel(f"[yellow]{message}[/yellow]", title="Warning"))
    else:
        print(f"Warning: {message}", file=sys.stderr)


def create_table(headers: list, rows: list, use_rich: bool = True) -> None:
    """
    Display data in table format.

    Args:
        headers: Table headers
        rows: Table rows
        use_rich: Use rich formatting
    """
    if use_rich:
        console = Console()
        table = Table(show_header=True, header_style="bold magenta")

        for header in headers:
            table.add_column(header)

        for row in rows:
            table.add_row(*[str(cell) for cell in row])

        console.print(table)
    else:
        col_widths = [len(str(header)) for header in headers]
        for row in rows:
            for i, cell in enumerate(row):
                col_widths[i] = max(col_widths[i], len(str(cell)))

        header_line = "  ".join(str(h).ljust(w) for h, w in zip(headers, col_widths))
        print(header_line)
        print("-" * len(header_line))
        for row in rows:
            print("  ".join(str(c).ljust(w) for c, w in zip(row, col_widths)))
