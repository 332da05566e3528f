import logging
from typing import Awaitable, Callable, Optional

from telegram import BotCommand, InlineKeyboardButton, InlineKeyboardMarkup, LinkPreviewOptions
from telegram.constants import ParseMode
from telegram.error import BadRequest, Forbidden, TelegramError
from telegram.ext import Application, CallbackQueryHandler, MessageHandler, filters
from telegram.request import HTTPXRequest

from ..errors import DeliveryError
from ..models import Menu
from .base import BaseMessenger
from .handlers import BotHandlers
from .router import CommandRouter

logger = logging.getLogger(__name__)

# Telegram API timeouts (seconds)
CONNECT_TIMEOUT = 30.0
READ_TIMEOUT = 30.0
WRITE_TIMEOUT = 30.0
POOL_TIMEOUT = 10.0

# BadRequest messages meaning the chat is gone for good
UNREACHABLE_MARKERS = (
    "chat not found",
    "user is deactivated",
    "bot was kicked",
    "have no rights to send",
)

BOT_COMMANDS = [
    BotCommand("start", "Menú principal"),
    BotCommand("subscribe", "Recibir alertas de nuevos turnos"),
    BotCommand("unsubscribe", "Dejar de recibir alertas"),
    BotCommand("status", "Ver si estás suscripto"),
    BotCommand("help", "Ayuda"),
]

AppHook = Callable[[Application], Awaitable[None]]


def build_markup(menu: Optional[Menu]) -> Optional[InlineKeyboardMarkup]:
    if not menu:
        return None
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(button.text, callback_data=button.data) for button in row]
        for row in menu
    ])


def is_unreachable(error: TelegramError) -> bool:
    """Whether the error means the recipient can never be reached again"""
    if isinstance(error, Forbidden):
        return True
    if isinstance(error, BadRequest):
        message = str(error).lower()
        return any(marker in message for marker in UNREACHABLE_MARKERS)
    return False


class TelegramBot(BaseMessenger):
    """Telegram bot wrapper"""

    def __init__(self, token: str):
        self.token = token
        self.application: Optional[Application] = None

    def setup(
        self,
        router: CommandRouter,
        post_init: Optional[AppHook] = None,
        post_shutdown: Optional[AppHook] = None,
    ) -> Application:
        """Setup bot application with handlers"""
        request = HTTPXRequest(
            connect_timeout=CONNECT_TIMEOUT,
            read_timeout=READ_TIMEOUT,
            write_timeout=WRITE_TIMEOUT,
            pool_timeout=POOL_TIMEOUT,
        )

        async def _post_init(app: Application) -> None:
            try:
                await app.bot.set_my_commands(BOT_COMMANDS)
            except TelegramError as e:
                logger.warning(f"Could not register bot commands: {e}")
            if post_init:
                await post_init(app)

        builder = (
            Application.builder()
            .token(self.token)
            .request(request)
            .post_init(_post_init)
        )
        if post_shutdown:
            builder = builder.post_shutdown(post_shutdown)
        self.application = builder.build()

        handlers = BotHandlers(router)
        # Every command goes to the router, which ignores the unknown ones
        self.application.add_handler(MessageHandler(filters.COMMAND, handlers.on_command))
        self.application.add_handler(CallbackQueryHandler(handlers.on_callback))
        self.application.add_error_handler(handlers.on_error)

        return self.application

    async def send_message(self, chat_id: int, text: str, menu: Optional[Menu] = None) -> None:
        if self.application is None:
            raise DeliveryError(chat_id, "bot is not set up")

        try:
            await self.application.bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
                link_preview_options=LinkPreviewOptions(is_disabled=True),
                reply_markup=build_markup(menu),
            )
        except TelegramError as e:
            raise DeliveryError(chat_id, f"{type(e).__name__}: {e}", permanent=is_unreachable(e)) from e
