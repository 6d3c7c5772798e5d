"""Tests for the chat command bot."""

import asyncio
import json
import logging

import pytest
import requests

from fakes import FakeChatSender, FakeUserStore
from invoice_reminder.messaging import TelegramBotService
from invoice_reminder.messaging.telegram_bot import CHAT_ID_ADDED, HELP_TEXT, USER_NOT_FOUND


def make_response(status_code: int, body: dict) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(body).encode()
    return response


def updates(*texts: str, first_id: int = 100, chat_id: int = 555) -> requests.Response:
    result = [
        {"update_id": first_id + i, "message": {"chat": {"id": chat_id}, "text": text}}
        for i, text in enumerate(texts)
    ]
    return make_response(200, {"ok": True, "result": result})


class FakeSession:
    """Answers getUpdates calls from a queue of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[tuple[str, dict]] = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, dict(params)))
        response = self.responses.pop(0) if self.responses else updates()
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def sender() -> FakeChatSender:
    return FakeChatSender()


def build_bot(user_store, sender, session) -> TelegramBotService:
    return TelegramBotService("123:abc", user_store, sender, session=session, poll_timeout=0, retry_delay=0)


# ============================================================================
# Commands
# ============================================================================


async def test_get_id_replies_with_chat_id(user, sender):
    bot = build_bot(FakeUserStore(user), sender, FakeSession())

    assert await bot.handle_command(555, "/get_id") == "O Id deste chat é <b>555</b>"


async def test_command_is_case_insensitive_and_ignores_bot_name(user, sender):
    bot = build_bot(FakeUserStore(user), sender, FakeSession())

    assert await bot.handle_command(555, "/GET_ID@InvoiceReminderBot") == "O Id deste chat é <b>555</b>"


async def test_set_id_links_chat_to_user(user, sender):
    store = FakeUserStore(user)
    bot = build_bot(store, sender, FakeSession())

    reply = await bot.handle_command(987654321, "/set_id Maria@Gmail.com")

    assert reply == CHAT_ID_ADDED
    assert store.users[user.id].telegram_chat_id == 987654321


async def test_set_id_unknown_email(user, sender):
    store = FakeUserStore(user)
    bot = build_bot(store, sender, FakeSession())

    reply = await bot.handle_command(987654321, "/set_id joao@gmail.com")

    assert reply == USER_NOT_FOUND
    assert store.users[user.id].telegram_chat_id == 123456789


@pytest.mark.parametrize("text", ["oi", "/start", "/help"])
async def test_other_text_gets_help(user, sender, text):
    bot = build_bot(FakeUserStore(user), sender, FakeSession())

    assert await bot.handle_command(555, text) == HELP_TEXT


# ============================================================================
# Polling
# ============================================================================


async def test_poll_once_answers_each_message_and_advances_offset(user, sender):
    session = FakeSession(updates("/get_id", "oi", first_id=100))
    bot = build_bot(FakeUserStore(user), sender, session)

    assert await bot.poll_once() == 2

    url, params = session.requests[0]
    assert url == "https://api.telegram.org/bot123:abc/getUpdates"
    assert "offset" not in params
    assert sender.messages == [(555, "O Id deste chat é <b>555</b>"), (555, HELP_TEXT)]
    assert bot.offset == 102

    await bot.poll_once()
    assert session.requests[1][1]["offset"] == 102


async def test_updates_without_text_are_ignored(user, sender):
    body = {"ok": True, "result": [
        {"update_id": 7, "edited_message": {"chat": {"id": 555}, "text": "/get_id"}},
        {"update_id": 8, "message": {"chat": {"id": 555}, "text": "   "}},
        {"update_id": 9, "message": {"chat": {"id": 555}, "photo": []}},
    ]}
    bot = build_bot(FakeUserStore(user), sender, FakeSession(make_response(200, body)))

    await bot.poll_once()

    assert sender.messages == []
    assert bot.offset == 10


async def test_clear_pending_updates_skips_backlog(user, sender):
    session = FakeSession(updates("/get_id", first_id=41), updates())
    bot = build_bot(FakeUserStore(user), sender, session)

    await bot.clear_pending_updates()

    assert [params["offset"] for _, params in session.requests] == [-1, 42]
    assert bot.offset == 42
    assert sender.messages == []


async def test_clear_pending_updates_with_empty_queue(user, sender):
    session = FakeSession(updates())
    bot = build_bot(FakeUserStore(user), sender, session)

    await bot.clear_pending_updates()

    assert len(session.requests) == 1
    assert bot.offset is None


async def test_run_logs_api_errors_and_keeps_polling(user, sender, caplog):
    error_body = {"ok": False, "error_code": 409, "description": "Conflict: terminated by other getUpdates request"}
    api_error = make_response(409, error_body)
    session = FakeSession(
        updates(),
        api_error,
        requests.ConnectionError("connection reset"),
        updates("/get_id"),
    )
    bot = build_bot(FakeUserStore(user), sender, session)

    task = asyncio.create_task(bot.run())
    for _ in range(100):
        if sender.messages:
            break
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert sender.messages[0] == (555, "O Id deste chat é <b>555</b>")
    errors = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
    assert errors[0] == "Telegram API error: [409] Conflict: terminated by other getUpdates request"
    assert errors[1].startswith("Unexpected error")
