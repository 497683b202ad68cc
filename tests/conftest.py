"""Shared test setup."""

from __future__ import annotations

import logging
import os

import pytest
from rich.logging import RichHandler

from accelsense.config import ENV_PREFIX, reset_config


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch):
    """Each test starts with no ACCELSENSE_* variables and a cold config cache."""
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key)
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def restore_root_logger():
    """The CLI installs a RichHandler on the root logger; drop it afterwards."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    root.setLevel(level)
