import asyncio
from unittest.mock import AsyncMock, MagicMock

from telegram.error import BadRequest

from cita_monitor.bot.handlers import BotHandlers, parse_command, to_inbound
from cita_monitor.models import MenuSelection, TextCommand


def _message_update(text, chat_id=100, user_id=7):
    update = MagicMock()
    update.callback_query = None
    update.message.text = text
    update.message.chat.id = chat_id
    if user_id is None:
        update.message.from_user = None
    else:
        update.message.from_user.id = user_id
    return update


def _callback_update(data, chat_id=100, user_id=7):
    update = MagicMock()
    query = update.callback_query
    query.data = data
    query.id = "cb-1"
    query.message.chat.id = chat_id
    query.from_user.id = user_id
    query.answer = AsyncMock()
    return update


def test_parse_command_strips_bot_name_and_splits_args():
    assert parse_command("/subscribe@CitaBot now please") == ("subscribe", ("now", "please"))
    assert parse_command("/start") == ("start", ())
    assert parse_command("hola") is None
    assert parse_command("/") is None


def test_text_command_is_converted():
    inbound = to_inbound(_message_update("/status"))

    assert inbound == TextCommand(chat_id=100, sender_id=7, command="status", args=())


def test_plain_text_is_ignored():
    assert to_inbound(_message_update("hola bot")) is None


def test_missing_sender_is_kept_for_router_to_drop():
    inbound = to_inbound(_message_update("/subscribe", user_id=None))

    assert inbound.sender_id is None


def test_callback_is_converted():
    inbound = to_inbound(_callback_update("main"))

    assert inbound == MenuSelection(chat_id=100, sender_id=7, data="main", query_id="cb-1")


def test_callback_is_answered_then_routed():
    router = MagicMock()
    router.handle_update = AsyncMock()
    handlers = BotHandlers(router)
    update = _callback_update("subscribe")
    update.callback_query.answer.side_effect = BadRequest("Query is too old")

    asyncio.run(handlers.on_callback(update, MagicMock()))

    update.callback_query.answer.assert_awaited_once()
    router.handle_update.assert_awaited_once()
    assert router.handle_update.await_args.args[0].data == "subscribe"


def test_non_command_message_not_routed():
    router = MagicMock()
    router.handle_update = AsyncMock()
    handlers = BotHandlers(router)

    asyncio.run(handlers.on_command(_message_update("hola"), MagicMock()))

    router.handle_update.assert_not_awaited()
