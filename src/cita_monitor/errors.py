"""Error taxonomy shared by the monitor components"""
from typing import Optional


class CitaMonitorError(Exception):
    """Base class for all monitor errors"""


class ConfigError(CitaMonitorError):
    """Configuration is missing or invalid"""


class FetchError(CitaMonitorError):
    """Tracked page is unreachable or could not be downloaded"""


class StoreUnavailable(CitaMonitorError):
    """Persistence layer failed to read or write the subscriber set"""


class DeliveryError(CitaMonitorError):
    """A message could not be delivered to one recipient

    ``permanent`` is set when the recipient can no longer be reached
    (bot blocked, chat deleted) and should be dropped from the store.
    """

    def __init__(self, chat_id: int, message: str, permanent: bool = False):
        super().__init__(message)
        self.chat_id = chat_id
        self.permanent = permanent


class MalformedUpdate(CitaMonitorError):
    """Inbound update is missing a required field"""

    def __init__(self, message: str, raw: Optional[object] = None):
        super().__init__(message)
        self.raw = raw
