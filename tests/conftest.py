"""
Test configuration and fixtures for pytest.
"""

import logging
import os

import pytest

from pkcs5_tools.engine import CipherEngine


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep user config files and PKCS5_TOOLS_* variables out of the tests."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)

    for name in list(os.environ):
        if name.startswith("PKCS5_TOOLS_"):
            monkeypatch.delenv(name)

    yield tmp_path

    # the CLI installs handlers bound to the captured stderr of the test
    package_logger = logging.getLogger("pkcs5_tools")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def sample_password():
    """Sample password for testing."""
    return "test_password_123"


@pytest.fixture
def sample_salt():
    """Sample salt for testing."""
    return b"0123456789abcdef"


class RecordingEngine(CipherEngine):
    """CipherEngine that remembers every handle it opened."""

    def __init__(self):
        self.handles = []

    def open(self, cipher_id, mode_id):
        handle = super().open(cipher_id, mode_id)
        self.handles.append(handle)
        return handle


@pytest.fixture
def recording_engine():
    """Engine that records opened handles so tests can check they were closed."""
    return RecordingEngine()
