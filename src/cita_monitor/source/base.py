from abc import ABC, abstractmethod

from ..models import StatusSnapshot


class BaseSource(ABC):
    """Abstract base class for page status sources"""

    @abstractmethod
    def fetch(self, url: str) -> StatusSnapshot:
        """Fetch the page and extract the tracked row

        Raises:
            FetchError: the page could not be downloaded
        """
        pass

    @abstractmethod
    def get_source_name(self) -> str:
        """Return the name of this source for logging"""
        pass
