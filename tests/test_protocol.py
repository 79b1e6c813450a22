import json

import pytest

from reverb_channels import protocol
from reverb_channels.errors import ProtocolError


def test_decodes_nested_data():
    raw = json.dumps({
        'event': 'pusher:connection_established',
        'data': json.dumps({'socket_id': '1.23', 'activity_timeout': 30}),
    })

    assert protocol.decode_message(raw) == {
        'event': 'pusher:connection_established',
        'data': {'socket_id': '1.23', 'activity_timeout': 30},
    }


def test_keeps_plain_string_data():
    raw = json.dumps({'event': 'client-test', 'data': 'hello', 'channel': 'test'})

    assert protocol.decode_message(raw) == {'event': 'client-test', 'data': 'hello', 'channel': 'test'}


def test_keeps_object_data():
    raw = json.dumps({'event': 'client-test', 'data': {'k': 'v'}, 'user_id': '7'})

    assert protocol.decode_message(raw)['data'] == {'k': 'v'}


@pytest.mark.parametrize('raw', ['not json', '[]', '{"data": 1}'])
def test_rejects_bad_frames(raw):
    with pytest.raises(ProtocolError):
        protocol.decode_message(raw)


def test_encode_with_channel():
    message = json.loads(protocol.encode_message('client-test', {'k': 'v'}, 'private-test'))
    assert message == {'event': 'client-test', 'data': {'k': 'v'}, 'channel': 'private-test'}


def test_encode_without_channel():
    message = json.loads(protocol.encode_message('pusher:ping', {}))
    assert message == {'event': 'pusher:ping', 'data': {}}


def test_public_event_name():
    assert protocol.public_event_name('pusher_internal:subscription_succeeded') == 'pusher:subscription_succeeded'
    assert protocol.public_event_name('client-test') == 'client-test'


def test_internal_and_public_names_do_not_collide():
    assert not protocol.is_internal('pusher:subscription_succeeded')
    assert protocol.is_internal('pusher_internal:subscription_succeeded')


@pytest.mark.parametrize('name, expected', [
    ('private-test', True),
    ('presence-room', True),
    ('test', False),
    ('privatetest', False),
])
def test_requires_authorization(name, expected):
    assert protocol.requires_authorization(name) is expected
