import asyncio
import html
import logging
from typing import Iterable, List, Optional, Tuple

from .bot.base import BaseMessenger
from .errors import DeliveryError
from .models import DispatchReport, NotifyDecision

logger = logging.getLogger(__name__)

# Batch sending configuration
BATCH_SIZE = 25  # Number of messages to send concurrently
BATCH_INTERVAL = 1.0  # Seconds between batches (Telegram rate limit ~30/sec)

HEARTBEAT_TEXT = "✅ Bot corriendo sin problemas"


def format_notification(decision: NotifyDecision, page_url: Optional[str] = None) -> str:
    """Build the HTML alert for a notify decision"""
    lines = [
        "🔔 <b>¡SE PUEDE SACAR TURNO!</b>",
        "",
    ]
    if decision.title:
        lines.append(f"📌 <b>{html.escape(decision.title)}</b>")
    lines.append(f"📅 Última apertura: {html.escape(decision.last_known_date or '-')}")
    lines.append(f"🆕 Próxima apertura: {html.escape(decision.current_date)}")
    if page_url:
        lines.append("")
        lines.append(f"🔗 <a href=\"{html.escape(page_url, quote=True)}\">Ver página de citas →</a>")
    return "\n".join(lines)


class NotificationDispatcher:
    """Delivers one message to every subscriber of a snapshot

    Recipients are isolated from each other: any failure is logged and
    counted, never raised. Recipients that can no longer be reached are
    reported as removal candidates; the caller applies the removal.
    """

    def __init__(
        self,
        messenger: BaseMessenger,
        page_url: Optional[str] = None,
        delivery_timeout: float = 15.0,
        batch_size: int = BATCH_SIZE,
        batch_interval: float = BATCH_INTERVAL,
    ):
        self.messenger = messenger
        self.page_url = page_url
        self.delivery_timeout = delivery_timeout
        self.batch_size = batch_size
        self.batch_interval = batch_interval

    async def dispatch(self, decision: NotifyDecision, subscribers: Iterable[int]) -> DispatchReport:
        if not decision.should_notify:
            logger.info(f"🔕 Notification suppressed: {decision.reason}")
            return DispatchReport()

        text = format_notification(decision, self.page_url)
        return await self.broadcast(text, subscribers)

    async def broadcast(self, text: str, subscribers: Iterable[int]) -> DispatchReport:
        """Send the same text to every recipient, batch by batch"""
        recipients = list(subscribers)
        if not recipients:
            return DispatchReport()

        outcomes: List[Tuple[int, bool, bool]] = []
        for i in range(0, len(recipients), self.batch_size):
            batch = recipients[i:i + self.batch_size]
            outcomes.extend(await asyncio.gather(
                *[self._send_one(chat_id, text) for chat_id in batch]
            ))

            # Rate limit between batches
            if i + self.batch_size < len(recipients):
                await asyncio.sleep(self.batch_interval)

        succeeded = sum(1 for _, ok, _ in outcomes if ok)
        removal = frozenset(chat_id for chat_id, _, gone in outcomes if gone)
        report = DispatchReport(
            attempted=len(outcomes),
            succeeded=succeeded,
            failed=len(outcomes) - succeeded,
            removal_candidates=removal,
        )
        logger.info(
            f"📤 Sent {report.succeeded}/{report.attempted}, "
            f"failed {report.failed}, unreachable {len(report.removal_candidates)}"
        )
        return report

    async def _send_one(self, chat_id: int, text: str) -> Tuple[int, bool, bool]:
        """Returns (chat_id, delivered, unreachable)"""
        try:
            await asyncio.wait_for(
                self.messenger.send_message(chat_id, text),
                timeout=self.delivery_timeout,
            )
            return chat_id, True, False
        except DeliveryError as e:
            if e.permanent:
                logger.warning(f"🚫 {chat_id} unreachable, flagged for removal: {e}")
            else:
                logger.error(f"Send failed {chat_id}: {e}")
            return chat_id, False, e.permanent
        except asyncio.TimeoutError:
            logger.error(f"Send timed out {chat_id} after {self.delivery_timeout}s")
            return chat_id, False, False
        except Exception as e:
            logger.error(f"Send failed {chat_id}: {type(e).__name__}: {e}")
            return chat_id, False, False
