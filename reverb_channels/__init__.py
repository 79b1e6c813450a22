from .channels import Channel, Channels
from .client import RevPy
from .connectors import WebSocketConnector
from .dispatcher import Dispatcher
from .errors import AuthorizationError, BadEventName, ProtocolError, RevPyError

__all__ = [
    'AuthorizationError',
    'BadEventName',
    'Channel',
    'Channels',
    'Dispatcher',
    'ProtocolError',
    'RevPy',
    'RevPyError',
    'WebSocketConnector',
]
