import getpass
import asyncio
from datetime import datetime

from termcolor import colored

from reverb_channels import RevPy

CHAT_EVENT = 'client-chat-message'


class TerminalChat:
    def __init__(self):
        self.reverb = None
        self.channel = None
        self.chatroom = None
        self.user = None
        self.running = True
        self.users = {
            "samuel": "abc",
            "daniel": "abc",
            "tobi": "abc",
            "sarah": "abc"
        }
        self.chatrooms = ["sports", "general", "education", "health", "technology"]
        self.debug = False

    def clear_line(self):
        """Clear current line and move cursor up"""
        print('\033[2K\033[1G', end='')

    async def main(self):
        """Entry point of the application"""
        self.login()
        self.select_chatroom()
        await self.join()
        await self.message_loop()

    def login(self):
        """Ask for credentials until they match a known user"""
        while True:
            username = input("Please enter your username: ")
            password = getpass.getpass(f"Please enter {username}'s Password: ")

            if username not in self.users:
                print(colored("Your username is incorrect", "red"))
            elif self.users[username] != password:
                print(colored("Your password is incorrect", "red"))
            else:
                self.user = username
                return

    def select_chatroom(self):
        """Select a chatroom to join"""
        print(colored(f"Info! Available chatrooms are {self.chatrooms}", "blue"))
        while True:
            chatroom = input(colored("Please select a chatroom: ", "green"))
            if chatroom in self.chatrooms:
                self.chatroom = chatroom
                return
            print(colored("No such chatroom in our list", "red"))

    def print_message(self, sender, message, color="white", show_timestamp=True):
        """Print formatted chat message"""
        self.clear_line()
        timestamp = f"[{datetime.now().strftime('%H:%M:%S')}] " if show_timestamp else ""
        print(colored(f"\n{timestamp}{sender}: {message}", color))
        print(colored(f"{self.user}: ", "green"), end='', flush=True)

    def on_message(self, data, metadata):
        if not isinstance(data, dict) or 'user' not in data or 'message' not in data:
            return
        if data['user'] != self.user:
            self.print_message(data['user'], data['message'])

    def on_subscribed(self, data, metadata):
        self.print_message("system", f"joined #{self.chatroom}", color="yellow", show_timestamp=False)

    def on_subscription_error(self, data, metadata):
        self.print_message("system", f"could not join #{self.chatroom}: {data['error']}", color="red")
        self.running = False

    async def join(self):
        """Connect and subscribe to the chatroom's private channel"""
        options = {
            'debug': self.debug,
            'authEndpoint': 'http://localhost:8000/broadcasting/auth',
            'auth': {
                'headers': {
                    'Accept': 'application/json',
                    'Authorization': f'Bearer {self.user}-token'
                }
            }
        }

        self.reverb = RevPy(options)
        self.channel = await self.reverb.private(f"chat.{self.chatroom}")
        self.channel.bind('pusher:subscription_succeeded', self.on_subscribed)
        self.channel.bind('pusher:subscription_error', self.on_subscription_error)
        self.channel.bind(CHAT_EVENT, self.on_message)

    async def message_loop(self):
        """Read lines from the terminal and send them to the room"""
        try:
            while self.running:
                message = await self.get_async_input()
                if not message.strip():
                    continue
                if message.lower() == 'quit':
                    break

                sent = self.channel.trigger(CHAT_EVENT, {'user': self.user, 'message': message})
                if not sent:
                    self.print_message("system", "not connected, message dropped", color="red")

        finally:
            self.running = False
            if self.reverb:
                self.reverb.unsubscribe(self.channel.name)
                await self.reverb.disconnect()
                print(colored("\n--- Disconnected from chat ---", "yellow"))

    async def get_async_input(self):
        """Get user input asynchronously"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: input(colored(f"{self.user}: ", "green")))


if __name__ == "__main__":
    chat = TerminalChat()
    try:
        asyncio.run(chat.main())
    except KeyboardInterrupt:
        print("\nChat terminated by user")
