import os
from urllib.parse import urlencode

from dotenv import load_dotenv

from .protocol import PROTOCOL_VERSION

load_dotenv()

CLIENT_NAME = 'revpy'
CLIENT_VERSION = '0.2.0'

DEFAULTS = {
    'scheme': 'ws',
    'host': 'localhost',
    'port': 8080,
    'reconnect_interval': 2,
    'max_reconnect_interval': 30,
    'max_retries': 5,
    'connect_timeout': 30,
    'activity_timeout': 120,
    'pong_timeout': 30,
    'debug': False,
    'log_file': None,
}


def from_env():
    """Read the Reverb application settings from the environment"""
    env = {
        'key': os.getenv('REVERB_APP_KEY'),
        'secret': os.getenv('REVERB_APP_SECRET'),
        'app_key': os.getenv('APP_KEY'),
        'scheme': os.getenv('REVERB_SCHEME'),
        'host': os.getenv('REVERB_HOST'),
        'port': os.getenv('REVERB_PORT'),
    }
    return {name: value for name, value in env.items() if value}


def load_options(options=None):
    """Merge defaults, environment and caller options, in that order"""
    return {
        **DEFAULTS,
        **from_env(),
        **(options or {})
    }


def build_uri(options):
    query = urlencode({
        'protocol': PROTOCOL_VERSION,
        'client': CLIENT_NAME,
        'version': CLIENT_VERSION,
    })
    return (
        f"{options['scheme']}://"
        f"{options['host']}:"
        f"{options['port']}/app/{options.get('key')}?{query}"
    )
