import asyncio
import logging
import random

import websockets

from ..dispatcher import Dispatcher
from ..errors import ProtocolError
from ..protocol import (
    CONNECTION_ESTABLISHED,
    ERROR,
    PING,
    PONG,
    decode_message,
    encode_message,
)

logger = logging.getLogger(__name__)


class WebSocketConnector:
    """Pusher protocol connection over a websocket.

    Emits ``state_change``, ``connected`` (with the socket id),
    ``disconnected``, ``message`` (with each decoded frame) and ``error``.
    """

    def __init__(self, uri, options):
        self.uri = uri
        self.options = options
        self.websocket = None
        self.socket_id = None
        self.dispatcher = Dispatcher()

        # Connection management
        self.state = "initialized"
        self.disconnect_called = False
        self.reconnecting = False
        self.reconnect_interval = options.get('reconnect_interval', 2)
        self.default_reconnect_interval = self.reconnect_interval
        self.max_reconnect_interval = options.get('max_reconnect_interval', 30)
        self.max_retries = options.get('max_retries', 5)
        self.retry_count = 0
        self.connect_timeout = options.get('connect_timeout', 30)

        # Heartbeat settings
        self.activity_timeout = options.get('activity_timeout', 120)
        self.pong_timeout = options.get('pong_timeout', 30)
        self.pong_received = asyncio.Event()
        self.last_activity = 0

        # Background tasks
        self.tasks = set()
        self.outbound = None

    def bind(self, event_name, callback):
        self.dispatcher.bind(event_name, callback)
        return self

    @property
    def connected(self):
        return self.state == "connected"

    def _set_state(self, state):
        previous = self.state
        if previous == state:
            return
        self.state = state
        logger.debug(f"State changed: {previous} -> {state}")
        self.dispatcher.emit('state_change', {'previous': previous, 'current': state})

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    async def connect(self):
        """Establish the websocket connection, retrying with backoff"""
        if self.connected:
            return self
        self.disconnect_called = False
        return await self._connect()

    async def _connect(self):
        self.retry_count = 0
        self.reconnect_interval = self.default_reconnect_interval

        while self.retry_count < self.max_retries:
            try:
                self._set_state("connecting")
                logger.debug(f"Connecting to {self.uri}")
                logger.debug(f"Connection attempt {self.retry_count + 1}/{self.max_retries}")

                self.websocket = await asyncio.wait_for(
                    websockets.connect(
                        self.uri,
                        close_timeout=5,
                        ping_interval=None
                    ),
                    timeout=self.connect_timeout
                )
                # Wait for connection established message
                message = await asyncio.wait_for(self.websocket.recv(), timeout=self.connect_timeout)
                logger.debug(f"Received message: {message}")
                frame = decode_message(message)

                if frame['event'] == CONNECTION_ESTABLISHED:
                    self._established(frame['data'])
                    return self
                if frame['event'] == ERROR:
                    raise ConnectionError(f"Connection rejected: {frame.get('data')}")
                raise ConnectionError("Unexpected connection response")

            except asyncio.TimeoutError:
                logger.error(f"Connection attempt timed out after {self.connect_timeout}s")
                await self._handle_connection_refused()

            except (OSError, ProtocolError, websockets.WebSocketException) as e:
                logger.debug(f"Connection error details: {e!r}")
                logger.error(f"Connection failed: {type(e).__name__}")
                await self._handle_connection_refused()

        logger.error("Connection failed after max retries")
        self._set_state("failed")
        raise ConnectionError(f"Unable to connect to {self.uri} after {self.max_retries} attempts")

    def _established(self, data):
        if not isinstance(data, dict) or 'socket_id' not in data:
            raise ProtocolError(f"Connection established without a socket id: {data!r}")
        self.socket_id = data['socket_id']
        if data.get('activity_timeout'):
            self.activity_timeout = min(self.activity_timeout, data['activity_timeout'])

        loop = asyncio.get_running_loop()
        self.last_activity = loop.time()
        self.outbound = asyncio.Queue()
        self._spawn(self._listen_for_messages(self.websocket))
        self._spawn(self._write_messages(self.websocket, self.outbound))
        self._spawn(self._heartbeat())

        logger.info(f"Connected with socket_id: {self.socket_id}")
        self._set_state("connected")
        self.dispatcher.emit('connected', self.socket_id)

    async def _handle_connection_refused(self):
        """Wait before the next attempt with exponential backoff and jitter"""
        self.retry_count += 1

        jitter = random.uniform(0, 0.1) * self.reconnect_interval
        backoff = min(
            (self.reconnect_interval * 2) + jitter,
            self.max_reconnect_interval
        )

        # Clean up existing connection if any
        await self._close_websocket()
        if self.retry_count >= self.max_retries:
            return

        logger.info(
            f"Connection refused. Retrying in {backoff:.1f} seconds... "
            f"(Attempt {self.retry_count}/{self.max_retries})"
        )
        self.reconnect_interval = backoff
        await asyncio.sleep(backoff)

    async def _close_websocket(self):
        websocket, self.websocket = self.websocket, None
        if websocket is not None:
            await websocket.close()

    async def _teardown(self):
        """Stop background tasks, close the socket and report the loss"""
        current = asyncio.current_task()
        tasks = [task for task in self.tasks if task is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        was_connected = self.connected
        self.socket_id = None
        self.outbound = None
        await self._close_websocket()
        if was_connected:
            self._set_state("unavailable")
            self.dispatcher.emit('disconnected')

    async def reconnect(self, reconnect_interval=None):
        """Drop the current socket and connect again"""
        if self.reconnecting:
            return
        self.reconnecting = True
        try:
            await self._teardown()
            await asyncio.sleep(
                self.default_reconnect_interval if reconnect_interval is None else reconnect_interval
            )
            await self._connect()
            logger.info("Successfully reconnected")
        except ConnectionError as e:
            logger.error(f"Reconnection failed: {e}")
            self.dispatcher.emit('error', e)
        finally:
            self.reconnecting = False

    async def disconnect(self):
        """Close the connection without reconnecting"""
        self.disconnect_called = True
        await self._teardown()
        self._set_state("disconnected")

    def send_event(self, event, data, channel=None):
        """Queue a frame for sending.

        Returns False when there is no live connection to send it on.
        """
        if not self.connected or self.outbound is None:
            logger.debug(f"Not connected, dropping {event}")
            return False
        message = encode_message(event, data, channel)
        logger.debug(f"Sending: {message}")
        self.outbound.put_nowait(message)
        return True

    async def _write_messages(self, websocket, outbound):
        try:
            while True:
                message = await outbound.get()
                await websocket.send(message)
        except websockets.ConnectionClosed:
            logger.debug("WebSocket connection closed while sending")

    async def _listen_for_messages(self, websocket):
        try:
            async for message in websocket:
                self.last_activity = asyncio.get_running_loop().time()
                logger.debug(f"Received: {message}")
                try:
                    frame = decode_message(message)
                except ProtocolError as e:
                    logger.error(str(e))
                    continue
                try:
                    self._handle_frame(frame)
                except Exception as e:
                    logger.exception(f"Message processing error: {e!r}")
        except websockets.ConnectionClosedError as e:
            logger.info(f"WebSocket connection closed: {e}")

        if not self.disconnect_called:
            self._spawn(self.reconnect())

    def _handle_frame(self, frame):
        event = frame['event']
        if event == PING:
            logger.debug("Connection: ping from server")
            self.send_event(PONG, {})
        elif event == PONG:
            logger.debug("Connection: pong from server")
            self.pong_received.set()
        elif event == ERROR:
            self._handle_pusher_error(frame.get('data'))
        self.dispatcher.emit('message', frame)

    def _handle_pusher_error(self, data):
        """Handle Pusher error messages"""
        self.dispatcher.emit('error', data)
        if not isinstance(data, dict) or data.get('code') is None:
            logger.error("Connection: No error code supplied")
            return

        try:
            error_code = int(data['code'])
        except (TypeError, ValueError):
            logger.error("Connection: Unknown error code")
            return

        logger.error(f"Connection: Received error {error_code}: {data.get('message')}")
        if 4000 <= error_code <= 4099:
            # Unrecoverable error
            logger.info("Connection: Error is unrecoverable. Disconnecting")
            self.disconnect_called = True
            self._spawn(self.disconnect())
        elif 4100 <= error_code <= 4199:
            # Reconnect with backoff
            self._spawn(self.reconnect())
        elif 4200 <= error_code <= 4299:
            # Reconnect immediately
            self._spawn(self.reconnect(0))

    async def _heartbeat(self):
        """Ping the server after a quiet period and expect a pong"""
        loop = asyncio.get_running_loop()
        while True:
            idle = loop.time() - self.last_activity
            if idle < self.activity_timeout:
                await asyncio.sleep(self.activity_timeout - idle)
                continue

            logger.debug("Connection: ping to server")
            self.pong_received.clear()
            self.send_event(PING, {})
            try:
                await asyncio.wait_for(self.pong_received.wait(), timeout=self.pong_timeout)
            except asyncio.TimeoutError:
                logger.info("Pong timeout. Reconnecting.")
                self._spawn(self.reconnect())
                return
            self.last_activity = loop.time()
