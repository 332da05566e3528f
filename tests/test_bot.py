import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram import InlineKeyboardMarkup
from telegram.error import BadRequest, Forbidden, NetworkError, TimedOut

from cita_monitor.bot import TelegramBot
from cita_monitor.bot.bot import build_markup, is_unreachable
from cita_monitor.bot.router import MAIN_MENU
from cita_monitor.errors import DeliveryError


def _bot(side_effect=None):
    bot = TelegramBot("123:TEST")
    bot.application = MagicMock()
    bot.application.bot.send_message = AsyncMock(side_effect=side_effect)
    return bot


@pytest.mark.parametrize("error, expected", [
    (Forbidden("Forbidden: bot was blocked by the user"), True),
    (BadRequest("Chat not found"), True),
    (BadRequest("Forbidden: user is deactivated"), True),
    (BadRequest("Message is too long"), False),
    (TimedOut(), False),
    (NetworkError("connection reset"), False),
])
def test_is_unreachable(error, expected):
    assert is_unreachable(error) is expected


def test_build_markup():
    assert build_markup(None) is None

    markup = build_markup(MAIN_MENU)

    assert isinstance(markup, InlineKeyboardMarkup)
    rows = markup.inline_keyboard
    assert [len(row) for row in rows] == [1, 2]
    assert rows[0][0].callback_data == "subscribe"


def test_send_message_uses_html():
    bot = _bot()

    asyncio.run(bot.send_message(42, "<b>hola</b>", MAIN_MENU))

    kwargs = bot.application.bot.send_message.await_args.kwargs
    assert kwargs["chat_id"] == 42
    assert kwargs["parse_mode"] == "HTML"
    assert kwargs["reply_markup"] is not None


@pytest.mark.parametrize("error, permanent", [
    (Forbidden("Forbidden: bot was blocked by the user"), True),
    (BadRequest("Chat not found"), True),
    (TimedOut(), False),
])
def test_send_errors_become_delivery_errors(error, permanent):
    bot = _bot(side_effect=error)

    with pytest.raises(DeliveryError) as exc_info:
        asyncio.run(bot.send_message(42, "hola"))

    assert exc_info.value.chat_id == 42
    assert exc_info.value.permanent is permanent


def test_send_before_setup_fails():
    with pytest.raises(DeliveryError):
        asyncio.run(TelegramBot("123:TEST").send_message(42, "hola"))


def test_setup_registers_handlers():
    router = MagicMock()

    application = TelegramBot("123:TEST").setup(router)

    assert len(application.handlers[0]) == 2
    assert len(application.error_handlers) == 1
