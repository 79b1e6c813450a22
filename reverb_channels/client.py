import logging

from .channels import Channels
from .config import build_uri, load_options
from .connectors import WebSocketConnector
from .dispatcher import Dispatcher
from .logger import setup_logging
from .protocol import PRESENCE_PREFIX, PRIVATE_PREFIX, is_internal

logger = logging.getLogger(__name__)


class RevPy:
    """Client for a Reverb (Pusher protocol) server.

    Owns the connection and the channels subscribed through it. Channels
    talk back to the client through :meth:`send_event` and
    :meth:`unsubscribe`.
    """

    def __init__(self, options=None):
        self.options = load_options(options)
        setup_logging(self.options['debug'], self.options['log_file'])

        self.uri = build_uri(self.options)
        self.channels = Channels()
        self.global_dispatcher = Dispatcher()

        self.connector = WebSocketConnector(self.uri, self.options)
        self.connector.bind('connected', self._on_connected)
        self.connector.bind('disconnected', self._on_disconnected)
        self.connector.bind('message', self._on_message)

    @property
    def socket_id(self):
        return self.connector.socket_id

    @property
    def connected(self):
        return self.connector.connected

    async def connect(self):
        """Establish connection to Reverb server"""
        await self.connector.connect()
        return self

    async def disconnect(self):
        """Close connection to Reverb server"""
        await self.connector.disconnect()

    def subscribe(self, name):
        """Return the channel called ``name``, subscribing it if needed"""
        channel = self.channels.find(name)
        if channel is not None and channel.subscription_cancelled:
            # A cancelled channel never delivers again, so a new request
            # gets a fresh channel that takes over the bindings.
            pending = channel.subscription_pending
            channel = self.channels.replace(name, self)
            if pending:
                # The server has not acknowledged the cancelled subscription
                # yet, so its acknowledgement now belongs to the fresh channel.
                channel.subscription_pending = True
                return channel
        else:
            channel = self.channels.add(name, self)

        if self.connected and not channel.subscription_pending and not channel.subscribed:
            channel.subscribe()
        return channel

    def unsubscribe(self, name):
        """Stop listening on a channel.

        A channel still waiting for its acknowledgement is only marked
        cancelled; it calls back here once the acknowledgement arrives.
        """
        channel = self.channels.find(name)
        if channel is not None and channel.subscription_pending:
            channel.cancel_subscription()
            return

        channel = self.channels.remove(name)
        if channel is not None and channel.subscribed:
            channel.unsubscribe()

    def find(self, name):
        return self.channels.find(name)

    async def channel(self, name):
        """Subscribe to a public channel"""
        if not self.connected:
            await self.connect()
        return self.subscribe(name)

    async def private(self, name):
        """Subscribe to a private channel"""
        if not name.startswith(PRIVATE_PREFIX):
            name = f"{PRIVATE_PREFIX}{name}"
        return await self.channel(name)

    async def presence(self, name):
        """Subscribe to a presence channel"""
        if not name.startswith(PRESENCE_PREFIX):
            name = f"{PRESENCE_PREFIX}{name}"
        return await self.channel(name)

    def send_event(self, event, data, channel=None):
        return self.connector.send_event(event, data, channel)

    def bind(self, event_name, callback):
        """Bind to an event on any channel or on the connection itself"""
        self.global_dispatcher.bind(event_name, callback)
        return self

    def bind_global(self, callback):
        self.global_dispatcher.bind_global(callback)
        return self

    def unbind(self, event_name=None, callback=None):
        self.global_dispatcher.unbind(event_name, callback)
        return self

    def unbind_global(self, callback=None):
        self.global_dispatcher.unbind_global(callback)
        return self

    def _on_connected(self, socket_id, metadata):
        logger.debug(f"Subscribing {len(self.channels)} channel(s) on {socket_id}")
        for channel in self.channels:
            if channel.subscription_cancelled:
                # Nothing is left to cancel on a fresh connection
                self.channels.remove(channel.name)
                continue
            channel.subscribe()

    def _on_disconnected(self, data, metadata):
        self.channels.disconnect()

    def _on_message(self, frame, metadata):
        event_name = frame['event']
        channel_name = frame.get('channel')

        if channel_name:
            channel = self.channels.find(channel_name)
            if channel is not None:
                channel.handle_event(frame)
            else:
                logger.debug(f"Received {event_name} for unknown channel {channel_name}")

        if not is_internal(event_name):
            event_metadata = {}
            if frame.get('user_id') is not None:
                event_metadata['user_id'] = frame['user_id']
            self.global_dispatcher.emit(event_name, frame.get('data'), event_metadata)
