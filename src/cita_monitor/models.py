from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple, Union


@dataclass(frozen=True)
class StatusSnapshot:
    """One fetch-and-parse result of the tracked page"""
    title: str = ""
    last_known_date: str = ""
    current_date: str = ""

    def is_empty(self) -> bool:
        return not (self.title or self.last_known_date or self.current_date)


class DecisionKind(str, Enum):
    NOTIFY = "notify"
    SUPPRESS = "suppress"


@dataclass(frozen=True)
class NotifyDecision:
    """Outcome of evaluating a snapshot"""
    kind: DecisionKind
    title: str = ""
    last_known_date: str = ""
    current_date: str = ""
    reason: str = ""

    @classmethod
    def notify(cls, snapshot: StatusSnapshot) -> "NotifyDecision":
        return cls(
            kind=DecisionKind.NOTIFY,
            title=snapshot.title,
            last_known_date=snapshot.last_known_date,
            current_date=snapshot.current_date,
        )

    @classmethod
    def suppress(cls, reason: str) -> "NotifyDecision":
        return cls(kind=DecisionKind.SUPPRESS, reason=reason)

    @property
    def should_notify(self) -> bool:
        return self.kind == DecisionKind.NOTIFY


@dataclass(frozen=True)
class DispatchReport:
    """Counts of one dispatch run"""
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    removal_candidates: FrozenSet[int] = field(default_factory=frozenset)


@dataclass(frozen=True)
class CycleResult:
    """Summary of one scheduler cycle"""
    subscribers: int = 0
    fetched: bool = False
    snapshot: Optional[StatusSnapshot] = None
    decision: Optional[NotifyDecision] = None
    report: Optional[DispatchReport] = None
    removed: int = 0
    skipped_reason: str = ""


@dataclass(frozen=True)
class MenuButton:
    """Inline menu button: visible text and the data sent back on tap"""
    text: str
    data: str


# Rows of buttons
Menu = List[List[MenuButton]]


@dataclass(frozen=True)
class TextCommand:
    """A slash command typed by the user"""
    chat_id: Optional[int]
    sender_id: Optional[int]
    command: str
    args: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MenuSelection:
    """A tap on an inline menu button"""
    chat_id: Optional[int]
    sender_id: Optional[int]
    data: str
    query_id: Optional[str] = None


InboundUpdate = Union[TextCommand, MenuSelection]
