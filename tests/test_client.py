from unittest.mock import MagicMock

import pytest

from reverb_channels import RevPy
from reverb_channels.errors import AuthorizationError

from conftest import FakeAuthorizer


@pytest.fixture
def reverb(monkeypatch):
    reverb = RevPy({'key': 'app-key', 'secret': 'app-secret'})
    monkeypatch.setattr(reverb.connector, 'send_event', MagicMock(return_value=True))
    return reverb


def connect(reverb, socket_id='1.23'):
    reverb.connector.socket_id = socket_id
    reverb.connector.state = 'connected'
    reverb.connector.dispatcher.emit('connected', socket_id)


def receive(reverb, frame):
    reverb.connector.dispatcher.emit('message', frame)


def succeed(reverb, name):
    receive(reverb, {'event': 'pusher_internal:subscription_succeeded', 'data': {}, 'channel': name})


class TestSubscribe:
    def test_waits_for_connection(self, reverb):
        channel = reverb.subscribe('test')

        assert channel.subscription_pending is False
        reverb.connector.send_event.assert_not_called()

        connect(reverb)

        assert channel.subscription_pending is True
        reverb.connector.send_event.assert_called_once_with(
            'pusher:subscribe', {'channel': 'test', 'auth': ''}, None
        )

    def test_when_connected(self, reverb):
        connect(reverb)
        channel = reverb.subscribe('private-test')

        assert channel.subscription_pending is True
        event, data, _ = reverb.connector.send_event.call_args.args
        assert event == 'pusher:subscribe'
        assert data['channel'] == 'private-test'
        assert data['auth'].startswith('app-key:')

    def test_returns_same_channel(self, reverb):
        assert reverb.subscribe('test') is reverb.subscribe('test')
        assert reverb.find('test') is reverb.subscribe('test')

    def test_subscribes_once_while_pending(self, reverb):
        connect(reverb)
        reverb.subscribe('test')
        reverb.subscribe('test')

        assert reverb.connector.send_event.call_count == 1

    def test_resubscribe_while_cancelled_reuses_pending_request(self, reverb):
        connect(reverb)
        callback = MagicMock()
        old = reverb.subscribe('test')
        old.bind('pusher:subscription_succeeded', callback)
        reverb.unsubscribe('test')

        channel = reverb.subscribe('test')
        succeed(reverb, 'test')

        assert channel is not old
        assert channel.subscribed is True
        assert reverb.connector.send_event.call_count == 1
        callback.assert_called_once_with({}, {})


class TestUnsubscribe:
    def test_subscribed_channel(self, reverb):
        connect(reverb)
        channel = reverb.subscribe('test')
        succeed(reverb, 'test')

        reverb.unsubscribe('test')

        assert channel.subscribed is False
        assert reverb.find('test') is None
        reverb.connector.send_event.assert_called_with('pusher:unsubscribe', {'channel': 'test'}, None)

    def test_pending_channel_is_cancelled(self, reverb):
        connect(reverb)
        channel = reverb.subscribe('test')
        callback = MagicMock()
        channel.bind('pusher:subscription_succeeded', callback)

        reverb.unsubscribe('test')
        assert channel.subscription_cancelled is True
        assert reverb.find('test') is channel

        succeed(reverb, 'test')

        callback.assert_not_called()
        assert reverb.find('test') is None
        reverb.connector.send_event.assert_called_with('pusher:unsubscribe', {'channel': 'test'}, None)

    def test_unknown_channel(self, reverb):
        reverb.unsubscribe('missing')
        reverb.connector.send_event.assert_not_called()


class TestRouting:
    def test_channel_events(self, reverb):
        connect(reverb)
        channel = reverb.subscribe('test')
        callback, other = MagicMock(), MagicMock()
        channel.bind('update', callback)
        reverb.subscribe('other').bind('update', other)

        receive(reverb, {'event': 'update', 'data': {'n': 1}, 'channel': 'test'})

        callback.assert_called_once_with({'n': 1}, {})
        other.assert_not_called()

    def test_global_bindings(self, reverb):
        connect(reverb)
        reverb.subscribe('test')
        callback = MagicMock()
        reverb.bind_global(callback)

        succeed(reverb, 'test')
        receive(reverb, {'event': 'update', 'data': 1, 'channel': 'test', 'user_id': '7'})
        receive(reverb, {'event': 'pusher:error', 'data': {'code': None}})

        assert callback.call_args_list[0].args == ('update', 1, {'user_id': '7'})
        assert callback.call_args_list[1].args == ('pusher:error', {'code': None}, {})
        assert callback.call_count == 2

    def test_unknown_channel(self, reverb):
        callback = MagicMock()
        reverb.bind('update', callback)

        receive(reverb, {'event': 'update', 'data': 1, 'channel': 'missing'})

        callback.assert_called_once_with(1, {})


class TestConnectionLoss:
    def test_disconnect_and_resubscribe(self, reverb):
        connect(reverb)
        channel = reverb.subscribe('test')
        succeed(reverb, 'test')

        reverb.connector.dispatcher.emit('disconnected')
        assert channel.subscribed is False

        reverb.connector.send_event.reset_mock()
        connect(reverb, '4.56')

        assert channel.subscription_pending is True
        reverb.connector.send_event.assert_called_once_with(
            'pusher:subscribe', {'channel': 'test', 'auth': ''}, None
        )

    def test_cancelled_channels_are_dropped(self, reverb):
        connect(reverb)
        reverb.subscribe('test')
        reverb.unsubscribe('test')

        reverb.connector.dispatcher.emit('disconnected')
        reverb.connector.send_event.reset_mock()
        connect(reverb)

        assert reverb.find('test') is None
        reverb.connector.send_event.assert_not_called()


def test_trigger_goes_through_connector(reverb):
    connect(reverb)
    channel = reverb.subscribe('private-test')

    assert channel.trigger('client-test', {'k': 'v'}) is True
    reverb.connector.send_event.assert_called_with('client-test', {'k': 'v'}, 'private-test')


def test_trigger_when_not_connected():
    reverb = RevPy({'key': 'app-key'})
    channel = reverb.subscribe('private-test')

    assert channel.trigger('client-test', {}) is False


class TestAuthorizationFailure:
    @pytest.fixture
    def authorizers(self, reverb):
        created = []

        def create(channel, options):
            created.append(FakeAuthorizer())
            return created[-1]

        reverb.options['authorizer'] = create
        return created

    def test_cancelled_channel_is_dropped(self, reverb, authorizers):
        connect(reverb)
        reverb.subscribe('private-x')
        reverb.unsubscribe('private-x')

        authorizers[0].reply(AuthorizationError('Auth failed: forbidden', status=403), None)

        assert reverb.find('private-x') is None
        reverb.connector.send_event.assert_not_called()

    def test_fresh_subscription_after_cancelled_failure(self, reverb, authorizers):
        connect(reverb)
        reverb.subscribe('private-x')
        reverb.unsubscribe('private-x')
        authorizers[0].reply(AuthorizationError('Auth failed: forbidden', status=403), None)

        channel = reverb.subscribe('private-x')
        callback = MagicMock()
        channel.bind('pusher:subscription_succeeded', callback)
        authorizers[1].reply(None, {'auth': 'app-key:signature'})
        succeed(reverb, 'private-x')

        callback.assert_called_once_with({}, {})
        assert reverb.find('private-x') is channel
        assert channel.subscribed is True
        sent = [call.args[0] for call in reverb.connector.send_event.call_args_list]
        assert sent == ['pusher:subscribe']

    def test_subscribe_replaces_settled_cancelled_channel(self, reverb):
        connect(reverb)
        old = reverb.subscribe('test')
        old.subscription_pending = False
        old.cancel_subscription()
        reverb.connector.send_event.reset_mock()

        channel = reverb.subscribe('test')

        assert channel is not old
        assert channel.subscription_cancelled is False
        assert channel.subscription_pending is True
        reverb.connector.send_event.assert_called_once_with(
            'pusher:subscribe', {'channel': 'test', 'auth': ''}, None
        )

    def test_missing_configuration_is_a_subscription_error(self, monkeypatch):
        monkeypatch.delenv('REVERB_APP_SECRET', raising=False)
        reverb = RevPy({'key': 'app-key', 'secret': None})
        monkeypatch.setattr(reverb.connector, 'send_event', MagicMock(return_value=True))
        errors = []
        channel = reverb.subscribe('private-x')
        channel.bind('pusher:subscription_error', lambda data, metadata: errors.append(data))

        connect(reverb)

        assert channel.subscription_pending is False
        assert errors == [{
            'type': 'AuthError',
            'error': 'Either secret or authEndpoint required',
            'status': None,
        }]
        reverb.connector.send_event.assert_not_called()


class TestHelpers:
    async def test_channel_subscribes_public_channel(self, reverb):
        connect(reverb)

        channel = await reverb.channel('news')

        assert reverb.find('news') is channel
        assert channel.subscription_pending is True
        reverb.connector.send_event.assert_called_once_with(
            'pusher:subscribe', {'channel': 'news', 'auth': ''}, None
        )

    async def test_private_adds_prefix(self, reverb):
        connect(reverb)

        channel = await reverb.private('room')

        assert channel.name == 'private-room'
        assert reverb.find('room') is None
