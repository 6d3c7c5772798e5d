"""Telegram Bot API notifications."""

import asyncio
import logging

import requests

from ..interfaces import ChatSender

logger = logging.getLogger(__name__)

API_URL = "https://api.telegram.org"


def describe_api_error(response: requests.Response) -> str:
    """Format a Bot API error response as "[code] description"."""
    try:
        body = response.json()
    except ValueError:
        return f"[{response.status_code}] {response.text}"
    return f"[{body.get('error_code', response.status_code)}] {body.get('description', '')}"


class TelegramMessageSender(ChatSender):
    """Send HTML messages through the Telegram Bot API.

    Delivery failures are logged and swallowed so that one failed message
    never aborts a dispatch run.
    """

    def __init__(self, bot_token: str, session: requests.Session = None, timeout: float = 30):
        self.bot_token = bot_token
        self.session = session or requests.Session()
        self.timeout = timeout

    async def send_message(self, chat_id: int, message: str) -> None:
        logger.info("Sending a new message...")
        await asyncio.to_thread(self._post, chat_id, message)

    def _post(self, chat_id: int, message: str) -> None:
        url = f"{API_URL}/bot{self.bot_token}/sendMessage"
        payload = {"chat_id": chat_id, "text": message, "parse_mode": "HTML"}

        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            description = describe_api_error(e.response)
            logger.error(f"Telegram API error: {description}")
        except requests.RequestException as e:
            logger.error(f"Unexpected error: {e}")
