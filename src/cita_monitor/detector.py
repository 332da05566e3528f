import logging
from abc import ABC, abstractmethod

from .models import NotifyDecision, StatusSnapshot

logger = logging.getLogger(__name__)

DEFAULT_CONFIRM_MARKER = "confirmar"


class BaseDetector(ABC):
    """Abstract base class for change detectors"""

    @abstractmethod
    def evaluate(self, snapshot: StatusSnapshot) -> NotifyDecision:
        """Decide whether the snapshot announces a new slot"""
        pass


class ChangeDetector(BaseDetector):
    """Substring policy on the page's own "next opening" cell

    - empty current date: extraction failed, suppress
    - current date contains the confirm marker (case-insensitive): the page
      still shows a placeholder such as "fecha por confirmar", suppress
    - anything else: notify

    The page carries both the previous and the upcoming date, so no state
    is kept between calls.
    """

    def __init__(self, confirm_marker: str = DEFAULT_CONFIRM_MARKER):
        self.confirm_marker = confirm_marker.strip().lower()

    def evaluate(self, snapshot: StatusSnapshot) -> NotifyDecision:
        current = (snapshot.current_date or "").strip()
        if not current:
            return NotifyDecision.suppress("current date is empty")

        if self.confirm_marker and self.confirm_marker in current.lower():
            return NotifyDecision.suppress(f"current date still to confirm: {current}")

        return NotifyDecision.notify(snapshot)
