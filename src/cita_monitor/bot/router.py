import html
import logging
from typing import Optional

from ..errors import DeliveryError, MalformedUpdate, StoreUnavailable
from ..models import InboundUpdate, Menu, MenuButton, MenuSelection, TextCommand
from ..storage import SubscriberStore
from .base import BaseMessenger

logger = logging.getLogger(__name__)

# Menu callback data
CB_SUBSCRIBE = "subscribe"
CB_UNSUBSCRIBE = "unsubscribe"
CB_STATUS = "status"
# "Iniciar" button of the first bot version
CB_LEGACY_START = "main"

MAIN_MENU: Menu = [
    [MenuButton("🔔 Suscribirme", CB_SUBSCRIBE)],
    [MenuButton("ℹ️ Estado", CB_STATUS), MenuButton("🔕 Cancelar", CB_UNSUBSCRIBE)],
]

MSG_WELCOME = (
    "👋 ¡Hola! Este bot avisa cuando se abren nuevos turnos para "
    "renovación de pasaportes en el consulado.\n\n"
    "Tap en Suscribirme para recibir las alertas."
)
MSG_HELP = (
    "📖 Comandos disponibles\n\n"
    "/subscribe - Recibir alertas de nuevos turnos\n"
    "/unsubscribe - Dejar de recibir alertas\n"
    "/status - Ver si estás suscripto\n"
    "/help - Esta ayuda"
)
MSG_ALREADY_SUBSCRIBED = "⚠️ Ya estás registrado, no hace falta suscribirse de nuevo."
MSG_SUBSCRIBED = "✅ Se notificará cuando haya un nuevo turno. ({chat_id})"
MSG_UNSUBSCRIBED = "✅ Suscripción cancelada. Ya no recibirás alertas."
MSG_NOT_SUBSCRIBED = "⚠️ No estás suscripto actualmente."
MSG_STATUS_ON = "🔔 Estás suscripto. Te avisaremos cuando haya un nuevo turno."
MSG_STATUS_OFF = "🔕 No estás suscripto. Usá /subscribe para recibir alertas."
MSG_STORE_ERROR = "❌ No se pudo procesar el pedido, intentá de nuevo más tarde."


class CommandRouter:
    """Maps inbound user intents onto the subscriber store

    Each update is handled on its own; there is no conversation state.
    """

    def __init__(self, store: SubscriberStore, messenger: BaseMessenger, page_url: Optional[str] = None):
        self.store = store
        self.messenger = messenger
        self.page_url = page_url

    async def handle_update(self, update: InboundUpdate) -> None:
        """Single entry point for polled and webhook updates"""
        try:
            self._validate(update)
        except MalformedUpdate as e:
            logger.warning(f"Dropping malformed update: {e}")
            return

        try:
            if isinstance(update, TextCommand):
                await self._handle_command(update)
            elif isinstance(update, MenuSelection):
                await self._handle_selection(update)
            else:
                logger.debug(f"Ignoring unsupported update: {update!r}")
        except StoreUnavailable as e:
            logger.error(f"Store unavailable while handling {update!r}: {e}")
            await self._reply(update.chat_id, MSG_STORE_ERROR)

    @staticmethod
    def _validate(update: InboundUpdate) -> None:
        if not isinstance(update, (TextCommand, MenuSelection)):
            return
        if update.chat_id is None:
            raise MalformedUpdate("missing chat id", raw=update)
        if update.sender_id is None:
            raise MalformedUpdate("missing sender id", raw=update)

    async def _handle_command(self, update: TextCommand) -> None:
        command = update.command.lower()
        if command == "start":
            await self._reply(update.chat_id, MSG_WELCOME, MAIN_MENU)
        elif command == "help":
            await self._reply(update.chat_id, MSG_HELP)
        elif command == "subscribe":
            await self.subscribe(update.chat_id)
        elif command in ("unsubscribe", "stop"):
            await self.unsubscribe(update.chat_id)
        elif command == "status":
            await self.status(update.chat_id)
        else:
            logger.debug(f"Ignoring unknown command /{command} from {update.chat_id}")

    async def _handle_selection(self, update: MenuSelection) -> None:
        if update.data in (CB_SUBSCRIBE, CB_LEGACY_START):
            await self.subscribe(update.chat_id)
        elif update.data == CB_UNSUBSCRIBE:
            await self.unsubscribe(update.chat_id)
        elif update.data == CB_STATUS:
            await self.status(update.chat_id)
        else:
            logger.debug(f"Ignoring unknown menu data {update.data!r} from {update.chat_id}")

    async def subscribe(self, chat_id: int) -> bool:
        """Returns True when the chat was newly added"""
        if self.store.contains(chat_id):
            await self._reply(chat_id, MSG_ALREADY_SUBSCRIBED)
            return False
        self.store.add(chat_id)
        await self._reply(chat_id, MSG_SUBSCRIBED.format(chat_id=chat_id))
        return True

    async def unsubscribe(self, chat_id: int) -> bool:
        """Returns True when the chat was removed"""
        if not self.store.contains(chat_id):
            await self._reply(chat_id, MSG_NOT_SUBSCRIBED)
            return False
        self.store.remove(chat_id)
        await self._reply(chat_id, MSG_UNSUBSCRIBED)
        return True

    async def status(self, chat_id: int) -> bool:
        subscribed = self.store.contains(chat_id)
        text = MSG_STATUS_ON if subscribed else MSG_STATUS_OFF
        if self.page_url:
            text += f"\n\n🔗 Página monitoreada: {html.escape(self.page_url)}"
        await self._reply(chat_id, text)
        return subscribed

    async def _reply(self, chat_id: int, text: str, menu: Optional[Menu] = None) -> None:
        try:
            await self.messenger.send_message(chat_id, text, menu)
        except DeliveryError as e:
            logger.error(f"Reply to {chat_id} failed: {e}")
