"""Shared pytest fixtures."""

from __future__ import annotations

import logging

import pytest

from scopeassist.ai.tools import ToolRegistry

from tests.helpers import EchoProvider


@pytest.fixture
def echo_provider() -> EchoProvider:
    return EchoProvider()


@pytest.fixture
def registry(echo_provider: EchoProvider):
    reg = ToolRegistry(timeout=2.0)
    reg.register(echo_provider)
    yield reg
    echo_provider.release.set()
    reg.shutdown()


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.captureWarnings(False)
