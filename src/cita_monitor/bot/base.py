from abc import ABC, abstractmethod
from typing import Optional

from ..models import Menu


class BaseMessenger(ABC):
    """Outbound side of the chat transport"""

    @abstractmethod
    async def send_message(self, chat_id: int, text: str, menu: Optional[Menu] = None) -> None:
        """Send a message, optionally with an inline menu

        Raises:
            DeliveryError: the message was not delivered
        """
        pass
