from unittest.mock import MagicMock

import pytest

from reverb_channels.auth import factory


class FakeClient:
    """Stands in for the client that owns a channel"""

    def __init__(self, options=None):
        self.options = options or {}
        self.socket_id = '1.23'
        self.send_event = MagicMock(return_value=True)
        self.unsubscribe = MagicMock()


class FakeAuthorizer:
    """Authorizer that keeps the callback so a test can answer it"""

    def __init__(self):
        self.calls = []
        self._callback = None

    def authorize(self, socket_id, callback):
        self.calls.append(socket_id)
        self._callback = callback

    def reply(self, error, auth):
        self._callback(error, auth)


@pytest.fixture
def client():
    return FakeClient({'foo': 'bar'})


@pytest.fixture
def authorizer():
    return FakeAuthorizer()


@pytest.fixture(autouse=True)
def default_factory():
    yield
    factory.reset_default_factory()
