import logging

from ..auth import ChannelAuthorization
from ..dispatcher import Dispatcher
from ..errors import BadEventName
from .. import protocol

logger = logging.getLogger(__name__)


class Channel:
    """A named channel on a client.

    ``client`` is the owning client. The channel only calls its
    ``send_event(event, data, channel_name)`` and ``unsubscribe(channel_name)``
    and reads its ``options`` and ``socket_id``.

    Private and presence channels carry a ChannelAuthorization; public
    channels have none and authorize with an empty token.
    """

    def __init__(self, name, client):
        self.name = name
        self.client = client
        self.dispatcher = Dispatcher(self._fail_through)
        self.authorization = ChannelAuthorization(self) if protocol.requires_authorization(name) else None

        self.subscribed = False
        self.subscription_pending = False
        self.subscription_cancelled = False
        self.subscription_count = None

    def __repr__(self):
        return (
            f"<{type(self).__name__} {self.name!r} subscribed={self.subscribed} "
            f"pending={self.subscription_pending} cancelled={self.subscription_cancelled}>"
        )

    def bind(self, event_name, callback):
        self.dispatcher.bind(event_name, callback)
        return self

    def bind_global(self, callback):
        self.dispatcher.bind_global(callback)
        return self

    def unbind(self, event_name=None, callback=None):
        self.dispatcher.unbind(event_name, callback)
        return self

    def unbind_global(self, callback=None):
        self.dispatcher.unbind_global(callback)
        return self

    def unbind_all(self):
        self.dispatcher.unbind_all()
        return self

    def authorize(self, socket_id, callback):
        """Authorize the subscription, replying ``callback(error, auth)``"""
        if self.authorization is None:
            callback(None, {'auth': ''})
            return
        self.authorization.authorize(socket_id, callback)

    def trigger(self, event_name, data):
        """Send a client event to the other subscribers of this channel.

        Returns whether the connection accepted the frame.
        """
        if not event_name.startswith(protocol.CLIENT_PREFIX):
            raise BadEventName(f"Event '{event_name}' does not start with '{protocol.CLIENT_PREFIX}'")
        if not self.subscribed:
            logger.warning(f"Client event triggered before channel '{self.name}' subscription succeeded")
        return self.client.send_event(event_name, data, self.name)

    def handle_event(self, frame):
        event_name = frame['event']
        data = frame.get('data')

        if event_name == protocol.SUBSCRIPTION_SUCCEEDED:
            self._handle_subscription_succeeded(data)
        elif event_name == protocol.SUBSCRIPTION_COUNT:
            self._handle_subscription_count(data)
        elif protocol.is_internal(event_name):
            logger.debug(f"Ignoring {event_name} on {self.name}")
        else:
            metadata = {}
            if frame.get('user_id') is not None:
                metadata['user_id'] = frame['user_id']
            self.dispatcher.emit(event_name, data, metadata)

    def _handle_subscription_succeeded(self, data):
        self.subscription_pending = False
        self.subscribed = True
        if self.subscription_cancelled:
            logger.debug(f"Subscription to {self.name} was cancelled, unsubscribing")
            self.client.unsubscribe(self.name)
        else:
            self.dispatcher.emit(protocol.public_event_name(protocol.SUBSCRIPTION_SUCCEEDED), data, {})

    def _handle_subscription_count(self, data):
        if isinstance(data, dict):
            self.subscription_count = data.get('subscription_count')
        self.dispatcher.emit(protocol.public_event_name(protocol.SUBSCRIPTION_COUNT), data, {})

    def subscribe(self):
        """Authorize and send the subscribe frame unless already subscribed"""
        if self.subscribed:
            return
        self.subscription_pending = True
        self.authorize(self.client.socket_id, self._on_authorized)

    def _on_authorized(self, error, auth):
        if error:
            self.subscription_pending = False
            logger.error(f"Unable to authorize {self.name}: {error}")
            self.dispatcher.emit(protocol.SUBSCRIPTION_ERROR, {
                'type': 'AuthError',
                'error': str(error),
                'status': getattr(error, 'status', None),
            }, {})
            if self.subscription_cancelled:
                # No acknowledgement will come to clean this channel up
                self.client.unsubscribe(self.name)
            return

        data = {'channel': self.name, 'auth': auth.get('auth', '')}
        if auth.get('channel_data') is not None:
            data['channel_data'] = auth['channel_data']
        self.client.send_event(protocol.SUBSCRIBE, data)

    def unsubscribe(self):
        self.subscribed = False
        self.client.send_event(protocol.UNSUBSCRIBE, {'channel': self.name})

    def cancel_subscription(self):
        self.subscription_cancelled = True

    def disconnect(self):
        """Forget the live subscription after the connection went away"""
        self.subscribed = False

    def _fail_through(self, event_name, data):
        logger.debug(f"No callbacks on {self.name} for {event_name}")


class Channels:
    """Channels of a client, keyed by name"""

    def __init__(self):
        self.channels = {}

    def add(self, name, client):
        if name not in self.channels:
            self.channels[name] = Channel(name, client)
        return self.channels[name]

    def replace(self, name, client):
        """Swap in a fresh channel, moving the bindings of the old one over"""
        old = self.channels.get(name)
        channel = self.channels[name] = Channel(name, client)
        if old is not None:
            channel.dispatcher, old.dispatcher = old.dispatcher, channel.dispatcher
            channel.dispatcher.fail_through = channel._fail_through
        return channel

    def find(self, name):
        return self.channels.get(name)

    def remove(self, name):
        return self.channels.pop(name, None)

    def all(self):
        return list(self.channels.values())

    def disconnect(self):
        for channel in self.all():
            channel.disconnect()

    def __contains__(self, name):
        return name in self.channels

    def __len__(self):
        return len(self.channels)

    def __iter__(self):
        return iter(self.all())
