"""Telegram bot commands that link a chat to a user account.

The bot long-polls ``getUpdates`` and answers:

    /get_id                  the id of the current chat
    /set_id <email>          store the current chat id on the user with that email

Any other text gets the list of commands.
"""

import asyncio
import logging
from typing import Optional

import requests

from ..interfaces import ChatSender, UserStore
from .telegram import API_URL, describe_api_error

logger = logging.getLogger(__name__)

USER_NOT_FOUND = "Usuário não encontrado!"
CHAT_ID_ADDED = "Id de chat adicionado com sucesso!"
HELP_TEXT = (
    "<b>Os comandos disponíveis atualmente são:</b>\n"
    "<b>• /get_id</b> - Retorna o Id deste chat\n"
    "<b>• /set_id</b> - Adiciona o Id deste chat ao usuário\n"
    "no seguinte formato: /set_id seuemail@gmail.com"
)


class TelegramBotService:
    """Answer chat commands received through the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        user_store: UserStore,
        chat_sender: ChatSender,
        session: requests.Session = None,
        poll_timeout: int = 10,
        retry_delay: float = 5.0,
    ):
        """Initialize the bot.

        Args:
            bot_token: Bot API token
            user_store: Lookup and update of users by email
            chat_sender: Sends the replies
            session: HTTP session used for getUpdates
            poll_timeout: Long-poll timeout in seconds
            retry_delay: Pause after a failed poll, in seconds
        """
        self.bot_token = bot_token
        self.user_store = user_store
        self.chat_sender = chat_sender
        self.session = session or requests.Session()
        self.poll_timeout = poll_timeout
        self.retry_delay = retry_delay
        self.offset: Optional[int] = None

    def _get_updates(self, offset: Optional[int], timeout: int = 0) -> list[dict]:
        params = {"timeout": timeout}
        if offset is not None:
            params["offset"] = offset

        response = self.session.get(
            f"{API_URL}/bot{self.bot_token}/getUpdates",
            params=params,
            timeout=timeout + 10,
        )
        response.raise_for_status()
        return response.json().get("result", [])

    async def clear_pending_updates(self) -> None:
        """Acknowledge updates sent while the bot was offline without answering them."""
        updates = await asyncio.to_thread(self._get_updates, -1)
        if updates:
            self.offset = updates[-1]["update_id"] + 1
            await asyncio.to_thread(self._get_updates, self.offset)
            logger.info(f"Discarded pending updates up to {self.offset - 1}")

    async def poll_once(self) -> int:
        """Fetch and answer one batch of updates.

        Returns:
            int: Number of updates received
        """
        updates = await asyncio.to_thread(self._get_updates, self.offset, self.poll_timeout)

        for update in updates:
            # Acknowledged before handling so a failing update is not redelivered forever
            self.offset = update["update_id"] + 1
            await self.handle_update(update)

        return len(updates)

    async def handle_update(self, update: dict) -> None:
        message = update.get("message")
        if not message or not (message.get("text") or "").strip():
            return

        chat_id = message["chat"]["id"]
        reply = await self.handle_command(chat_id, message["text"])
        await self.chat_sender.send_message(chat_id, reply)

    async def handle_command(self, chat_id: int, text: str) -> str:
        """Build the reply to a chat message."""
        words = text.split()
        # "/get_id@SomeBot" is how commands arrive in group chats
        command = words[0].lower().split("@", 1)[0]

        if command == "/get_id":
            return f"O Id deste chat é <b>{chat_id}</b>"

        if command == "/set_id":
            email = words[-1].lower()
            user = await self.user_store.get_user_by_email(email)
            if user is None:
                logger.warning(f"/set_id from chat {chat_id}: no user with email {email}")
                return USER_NOT_FOUND

            await self.user_store.update_telegram_chat_id(user.id, chat_id)
            logger.info(f"Chat {chat_id} linked to user {user.id}")
            return CHAT_ID_ADDED

        return HELP_TEXT

    async def run(self) -> None:
        """Poll until cancelled. Errors are logged and polling resumes after a pause."""
        cleared = False
        logger.info("Telegram Bot Service is now listening for chat interactions...")

        while True:
            try:
                if not cleared:
                    await self.clear_pending_updates()
                    cleared = True
                await self.poll_once()
            except requests.HTTPError as e:
                logger.error(f"Telegram API error: {describe_api_error(e.response)}")
                await asyncio.sleep(self.retry_delay)
            except Exception as e:
                logger.error(f"Unexpected error: {e}", exc_info=True)
                await asyncio.sleep(self.retry_delay)
