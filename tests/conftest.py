"""Shared pytest fixtures."""

import logging

import pytest
from keyring.errors import NoKeyringError, PasswordDeleteError

from zenodo_cli.core.logging_setup import HANDLER_MARKER


class MemoryKeyring:
    """In-memory keyring backend; raises NoKeyringError when unavailable."""

    def __init__(self, available: bool = True):
        self.available = available
        self.passwords = {}

    def _check(self):
        if not self.available:
            raise NoKeyringError("no keyring backend")

    def get_password(self, service, user):
        self._check()
        return self.passwords.get((service, user))

    def set_password(self, service, user, password):
        self._check()
        self.passwords[(service, user)] = password

    def delete_password(self, service, user):
        self._check()
        if (service, user) not in self.passwords:
            raise PasswordDeleteError("password not found")
        del self.passwords[(service, user)]


@pytest.fixture
def memory_keyring():
    return MemoryKeyring()


@pytest.fixture(autouse=True)
def reset_logging():
    """Remove handlers installed by configure_logging and restore levels."""
    root = logging.getLogger()
    root_level = root.level
    httpx_level = logging.getLogger("httpx").level
    yield
    for handler in [h for h in root.handlers if getattr(h, HANDLER_MARKER, False)]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(root_level)
    logging.getLogger("httpx").setLevel(httpx_level)
