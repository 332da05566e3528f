from .bot import TelegramBot
from .router import CommandRouter

__all__ = ["TelegramBot", "CommandRouter"]
