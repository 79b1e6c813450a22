# main.py
import asyncio
from reverb_channels import RevPy


async def message_handler(data, metadata):
    print(f"Received message: {data}")


async def main():
    """
    Change the authEndpoint to the URL of your authentication endpoint
    if you want to use authentication with your Reverb server instead of using secret tokens.
    """
    options = {
        'authEndpoint': 'http://localhost:8000/broadcasting/auth',
        'auth': {
            'headers': {
                'Accept': 'application/json',
                'Authorization': 'Bearer my-secret-token'
            }
        }
    }

    reverb = RevPy(options)
    subscribed = asyncio.Event()

    try:
        # Connect to Reverb server
        await reverb.connect()

        # Connect to private channel
        channel = await reverb.private('chat.1')

        # Bind to events
        channel.bind('pusher:subscription_succeeded', lambda data, metadata: subscribed.set())
        channel.bind('pusher:subscription_error', lambda data, metadata: print(f"Subscription failed: {data}"))
        channel.bind('client-chat-message', message_handler)

        # Send test message once the server accepted the subscription
        await subscribed.wait()
        channel.trigger('client-chat-message', {'message': 'Hello World!'})

        # Keep connection alive
        while True:
            await asyncio.sleep(1)

    finally:
        await reverb.disconnect()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("Program terminated")
