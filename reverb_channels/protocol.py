import json

from .errors import ProtocolError

INTERNAL_PREFIX = 'pusher_internal:'
PUBLIC_PREFIX = 'pusher:'
CLIENT_PREFIX = 'client-'

PRIVATE_PREFIX = 'private-'
PRESENCE_PREFIX = 'presence-'

PROTOCOL_VERSION = 7

# Connection level events
CONNECTION_ESTABLISHED = 'pusher:connection_established'
ERROR = 'pusher:error'
PING = 'pusher:ping'
PONG = 'pusher:pong'
SUBSCRIBE = 'pusher:subscribe'
UNSUBSCRIBE = 'pusher:unsubscribe'

# Channel level events
SUBSCRIPTION_SUCCEEDED = 'pusher_internal:subscription_succeeded'
SUBSCRIPTION_COUNT = 'pusher_internal:subscription_count'
SUBSCRIPTION_ERROR = 'pusher:subscription_error'


def is_internal(event_name):
    return event_name.startswith(INTERNAL_PREFIX)


def public_event_name(event_name):
    """Map an internal control event onto its public counterpart"""
    if is_internal(event_name):
        return PUBLIC_PREFIX + event_name[len(INTERNAL_PREFIX):]
    return event_name


def requires_authorization(channel_name):
    return channel_name.startswith((PRIVATE_PREFIX, PRESENCE_PREFIX))


def decode_message(raw):
    """Decode a text frame into a dict with event, data and optional channel.

    Pusher servers double encode ``data``: when it is a string holding JSON it
    is decoded as well, otherwise it is passed through untouched.
    """
    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Invalid message format: {e}") from e

    if not isinstance(message, dict) or 'event' not in message:
        raise ProtocolError(f"Message without event: {raw!r}")

    data = message.get('data')
    if isinstance(data, str):
        try:
            message['data'] = json.loads(data)
        except ValueError:
            pass
    return message


def encode_message(event, data, channel=None):
    message = {
        'event': event,
        'data': data
    }
    if channel:
        message['channel'] = channel
    return json.dumps(message)
