"""Pytest configuration and shared fixtures."""

import pytest

from tests.helpers import MockRconServer, ThreadedServer


@pytest.fixture
def threaded_server():
    """A MockRconServer on a background thread, for blocking clients."""
    with ThreadedServer(MockRconServer(replies={"status": "ok"})) as threaded:
        yield threaded
