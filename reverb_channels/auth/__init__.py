from . import factory
from .authorizers import EndpointAuthorizer, SecretAuthorizer, default_authorizer_factory
from ..errors import AuthorizationError


class ChannelAuthorization:
    """Authorization capability of a private or presence channel.

    The authorizer is created on the first call and reused afterwards.
    A factory that cannot build one answers the callback with its error.
    """

    def __init__(self, channel):
        self.channel = channel
        self.authorizer = None

    def authorize(self, socket_id, callback):
        if self.authorizer is None:
            try:
                self.authorizer = factory.create_authorizer(self.channel, self.channel.client.options)
            except AuthorizationError as e:
                callback(e, None)
                return
        self.authorizer.authorize(socket_id, callback)


__all__ = [
    'ChannelAuthorization',
    'EndpointAuthorizer',
    'SecretAuthorizer',
    'default_authorizer_factory',
    'factory',
]
