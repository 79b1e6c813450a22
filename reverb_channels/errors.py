class RevPyError(Exception):
    """Base class for errors raised by the client"""


class BadEventName(RevPyError, ValueError):
    """Client event name outside the client- namespace"""


class ProtocolError(RevPyError, ValueError):
    """Inbound frame could not be decoded"""


class AuthorizationError(RevPyError, ValueError):
    """Channel authorization was refused or could not be performed.

    Handed to authorization callbacks as data, never raised by a channel.
    """

    def __init__(self, message, status=None, body=None):
        super().__init__(message)
        self.status = status
        self.body = body
