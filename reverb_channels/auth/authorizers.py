import asyncio
import hashlib
import hmac
import json
import logging

import aiohttp

from ..errors import AuthorizationError
from ..protocol import PRESENCE_PREFIX

logger = logging.getLogger(__name__)


class SecretAuthorizer:
    """Sign the subscription locally with the application secret"""

    def __init__(self, channel, options):
        self.channel = channel
        self.key = options.get('key')
        self.secret = options.get('secret')
        self.user_data = options.get('user_data')

    def authorize(self, socket_id, callback):
        channel_name = self.channel.name
        if channel_name.startswith(PRESENCE_PREFIX):
            channel_data = json.dumps(self.user_data or {'user_id': socket_id})
            to_sign = f"{socket_id}:{channel_name}:{channel_data}"
        else:
            channel_data = None
            to_sign = f"{socket_id}:{channel_name}"

        signature = hmac.new(
            self.secret.encode(),
            to_sign.encode(),
            hashlib.sha256
        ).hexdigest()

        auth = {'auth': f"{self.key}:{signature}"}
        if channel_data is not None:
            auth['channel_data'] = channel_data
        callback(None, auth)


class EndpointAuthorizer:
    """Ask the application's auth endpoint to sign the subscription.

    The request runs as a task on the running loop; the callback is called
    once, with an AuthorizationError or with the decoded response body.
    """

    def __init__(self, channel, options):
        self.channel = channel
        self.endpoint = options.get('authEndpoint')
        self.headers = options.get('auth', {}).get('headers', {})
        self.timeout = options.get('auth_timeout', 30)
        self.tasks = set()

    def authorize(self, socket_id, callback):
        task = asyncio.ensure_future(self._request(socket_id, callback))
        self.tasks.add(task)
        task.add_done_callback(self._done)

    def _done(self, task):
        self.tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Authorization callback for {self.channel.name} failed: {task.exception()!r}")

    async def _request(self, socket_id, callback):
        payload = {
            'socket_id': socket_id,
            'channel_name': self.channel.name
        }
        logger.debug(f"Requesting authorization for {self.channel.name} from {self.endpoint}")

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    self.endpoint,
                    json=payload,
                    headers=self.headers
                ) as response:
                    if response.status != 200:
                        body = await response.text()
                        error = AuthorizationError(
                            f"Auth failed: {body}",
                            status=response.status,
                            body=body
                        )
                        auth = None
                    else:
                        error = None
                        auth = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Authorization request for {self.channel.name} failed: {e!r}")
            error = AuthorizationError(f"Auth request failed: {e!r}")
            auth = None

        callback(error, auth)


def default_authorizer_factory(channel, options):
    if options.get('secret'):
        return SecretAuthorizer(channel, options)
    elif options.get('authEndpoint'):
        return EndpointAuthorizer(channel, options)
    raise AuthorizationError("Either secret or authEndpoint required")
