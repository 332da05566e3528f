import logging
from typing import Optional, Tuple

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from ..models import InboundUpdate, MenuSelection, TextCommand
from .router import CommandRouter

logger = logging.getLogger(__name__)


def parse_command(text: str) -> Optional[Tuple[str, Tuple[str, ...]]]:
    """Split "/cmd@BotName arg1 arg2" into command and args"""
    if not text or not text.startswith("/"):
        return None
    parts = text.split()
    command = parts[0][1:].split("@", 1)[0]
    if not command:
        return None
    return command, tuple(parts[1:])


def to_inbound(update: Update) -> Optional[InboundUpdate]:
    """Convert a Telegram update into a TextCommand or MenuSelection

    Returns None for shapes the bot does not react to.
    """
    if update.callback_query is not None:
        query = update.callback_query
        message = query.message
        return MenuSelection(
            chat_id=message.chat.id if message is not None else None,
            sender_id=query.from_user.id if query.from_user is not None else None,
            data=query.data or "",
            query_id=query.id,
        )

    message = update.message
    if message is not None and message.text:
        parsed = parse_command(message.text)
        if parsed is None:
            return None
        return TextCommand(
            chat_id=message.chat.id if message.chat is not None else None,
            sender_id=message.from_user.id if message.from_user is not None else None,
            command=parsed[0],
            args=parsed[1],
        )
    return None


class BotHandlers:
    """python-telegram-bot callbacks, thin adapters around CommandRouter"""

    def __init__(self, router: CommandRouter):
        self.router = router

    async def on_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        inbound = to_inbound(update)
        if inbound is None:
            return
        await self.router.handle_update(inbound)

    async def on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        # Stop the client-side spinner before doing any work
        try:
            await update.callback_query.answer()
        except TelegramError as e:
            logger.debug(f"answer_callback_query failed: {e}")

        inbound = to_inbound(update)
        if inbound is None:
            return
        await self.router.handle_update(inbound)

    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error(f"Failed to process update: {context.error}", exc_info=context.error)
