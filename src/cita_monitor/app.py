import asyncio
import logging
import logging.handlers
from pathlib import Path
from typing import Iterable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from telegram import Update

from .bot.base import BaseMessenger
from .bot.bot import TelegramBot
from .bot.router import CommandRouter
from .config import AppConfig, StorageType
from .detector import ChangeDetector
from .dispatcher import HEARTBEAT_TEXT, NotificationDispatcher
from .errors import StoreUnavailable
from .models import CycleResult
from .source import BaseSource, HtmlStatusSource
from .storage import KeyValueBackend, MemoryBackend, RedisBackend, SqliteBackend, SubscriberStore

logger = logging.getLogger(__name__)

CHECK_JOB_ID = "status_check"


def setup_logging(log_dir: Optional[Path] = None, level: int = logging.INFO) -> None:
    """Configure logging

    - stdout (collected by journald / the container runtime)
    - optional file, rotated at midnight, 30 days kept
    """
    log_format = "%(asctime)s - %(levelname)s - %(message)s"
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Avoid duplicate handlers on repeated setup
    root_logger.handlers.clear()

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(log_format))
    root_logger.addHandler(stream_handler)

    if log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.TimedRotatingFileHandler(
            filename=log_dir / "app.log",
            when="midnight",
            interval=1,
            backupCount=30,
            encoding="utf-8"
        )
        file_handler.setFormatter(logging.Formatter(log_format))
        file_handler.suffix = "%Y-%m-%d"
        root_logger.addHandler(file_handler)

    # Suppress noisy library logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def create_backend(config: AppConfig, db_path: Optional[Path] = None) -> KeyValueBackend:
    """Factory function to create the persistence backend based on config"""
    if config.storage == StorageType.REDIS:
        return RedisBackend(host=config.redis_host, port=config.redis_port, db=config.redis_db)
    if config.storage == StorageType.MEMORY or db_path is None:
        logger.warning("Using in-memory storage, subscribers are lost on restart")
        return MemoryBackend()
    return SqliteBackend(db_path)


def create_source(config: AppConfig) -> BaseSource:
    return HtmlStatusSource(row_keyword=config.row_keyword, timeout=config.fetch_timeout)


class Application:
    """Wires the bot, the store and the periodic page check together"""

    def __init__(
        self,
        config: AppConfig,
        store: SubscriberStore,
        source: Optional[BaseSource] = None,
        messenger: Optional[BaseMessenger] = None,
    ):
        self.config = config
        self.store = store
        self.source = source or create_source(config)
        self.bot = TelegramBot(config.bot_token)
        self.messenger = messenger or self.bot
        self.detector = ChangeDetector(config.confirm_marker)
        self.dispatcher = NotificationDispatcher(
            self.messenger,
            page_url=config.page_url,
            delivery_timeout=config.delivery_timeout,
        )
        self.router = CommandRouter(store, self.messenger, page_url=config.page_url)
        self.scheduler = AsyncIOScheduler()

    def _apply_removals(self, candidates: Iterable[int]) -> int:
        candidates = set(candidates)
        if not candidates:
            return 0
        try:
            removed = self.store.remove_many(candidates)
        except StoreUnavailable as e:
            logger.error(f"Could not drop unreachable subscribers {sorted(candidates)}: {e}")
            return 0
        logger.info(f"🧹 Dropped {removed} unreachable subscriber(s)")
        return removed

    async def run_cycle(self) -> CycleResult:
        """One poll -> detect -> dispatch -> cleanup pass"""
        try:
            subscribers = self.store.list_all()
        except StoreUnavailable as e:
            logger.error(f"❌ Subscriber store unavailable, skipping check: {e}")
            return CycleResult(skipped_reason="store unavailable")

        if not subscribers:
            logger.info("💤 No subscribers, skipping check")
            return CycleResult(skipped_reason="no subscribers")

        removal = set()
        if self.config.heartbeat:
            heartbeat = await self.dispatcher.broadcast(HEARTBEAT_TEXT, subscribers)
            removal |= heartbeat.removal_candidates

        logger.info(f"📡 Checking {self.config.page_url} for {len(subscribers)} subscriber(s)...")
        loop = asyncio.get_running_loop()
        try:
            # Blocking HTTP in the thread pool, bounded by the source timeout
            snapshot = await loop.run_in_executor(None, self.source.fetch, self.config.page_url)
        except Exception as e:
            logger.error(f"❌ Page check failed ({self.source.get_source_name()}): {type(e).__name__}: {e}")
            removed = self._apply_removals(removal)
            return CycleResult(subscribers=len(subscribers), removed=removed, skipped_reason="fetch failed")

        decision = self.detector.evaluate(snapshot)
        report = await self.dispatcher.dispatch(decision, subscribers)

        # Only after every recipient had its attempt
        removal |= report.removal_candidates
        removed = self._apply_removals(removal)

        logger.info(
            f"✅ Check done: decision={decision.kind.value}, "
            f"sent {report.succeeded}/{report.attempted}, removed {removed}"
        )
        return CycleResult(
            subscribers=len(subscribers),
            fetched=True,
            snapshot=snapshot,
            decision=decision,
            report=report,
            removed=removed,
        )

    async def run_once(self) -> CycleResult:
        """Single cycle with a short-lived bot session"""
        application = self.bot.setup(self.router)
        async with application:
            return await self.run_cycle()

    async def _scheduled_cycle(self) -> None:
        # A failing cycle must never cancel the following ones
        try:
            await self.run_cycle()
        except Exception:
            logger.exception("Unexpected error during scheduled check")

    def schedule_jobs(self) -> None:
        """Register the periodic check; safe to call more than once"""
        # Pending jobs of a stopped scheduler are not deduplicated by id
        if self.scheduler.get_job(CHECK_JOB_ID):
            self.scheduler.remove_job(CHECK_JOB_ID)
        self.scheduler.add_job(
            self._scheduled_cycle,
            "interval",
            seconds=self.config.check_interval,
            id=CHECK_JOB_ID,
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=None,
            coalesce=True
        )

    async def _post_init(self, app) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
        logger.info(f"⏰ Scheduler started, checking every {self.config.check_interval} seconds")
        if self.config.run_on_start:
            await self._scheduled_cycle()

    async def _post_shutdown(self, app) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("🛑 Stopped")

    def run(self) -> None:
        """Start the bot and the scheduler (blocking)"""
        application = self.bot.setup(
            self.router,
            post_init=self._post_init,
            post_shutdown=self._post_shutdown,
        )
        self.schedule_jobs()

        try:
            if self.config.is_development:
                # run_polling removes any registered webhook first
                logger.info("🤖 Telegram Bot starting (development, long polling)...")
                application.run_polling(allowed_updates=Update.ALL_TYPES)
            else:
                logger.info(f"🤖 Telegram Bot starting (production, webhook {self.config.webhook_endpoint})...")
                application.run_webhook(
                    listen=self.config.webhook_listen,
                    port=self.config.webhook_port,
                    url_path="webhook",
                    secret_token=self.config.webhook_secret,
                    webhook_url=self.config.webhook_endpoint,
                    allowed_updates=Update.ALL_TYPES,
                )
        except Exception:
            logger.exception("❌ Bot stopped with an unhandled error")
