"""Authorizer construction.

The default factory is process-wide and installed explicitly with
:func:`set_default_factory`. A factory supplied in the client options under
``authorizer`` takes precedence for that client's channels.
"""
from .authorizers import default_authorizer_factory

_default_factory = default_authorizer_factory


def set_default_factory(factory):
    global _default_factory
    _default_factory = factory


def reset_default_factory():
    set_default_factory(default_authorizer_factory)


def get_default_factory():
    return _default_factory


def create_authorizer(channel, options):
    """Return the authorizer for ``channel`` given the client options"""
    custom = options.get('authorizer')
    if custom is not None:
        return custom(channel, options)
    return _default_factory(channel, options)
