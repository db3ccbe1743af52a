"""
Service wiring: one place that builds the production object graph from Settings.

The API lifespan and main.py use build_services(); tests assemble Services
directly from in-memory stores and fakes. `sessions` is the conversation
state handle for the chat front end; the backend only purges expired
entries on a timer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from backend_octra.agent_worker.auto_cycle import AutoCycleConfig, AutoCycleEngine
from backend_octra.config import Settings
from backend_octra.conversation.session import SessionRegistry
from backend_octra.database.sql import (
    SqlTransactionLog,
    SqlWalletStore,
    create_engine_from_url,
    init_db,
)
from backend_octra.database.store import TransactionLog, WalletStore
from backend_octra.dispatch.dispatcher import TransferDispatcher
from backend_octra.dispatch.notifier import (
    NotificationSender,
    Notifier,
    NullNotifier,
    TelegramNotifier,
)
from backend_octra.ledger.client import LedgerClient
from backend_octra.octra_logging import get_logger
from backend_octra.scheduler.engine import CycleScheduler
from backend_octra.wallet.service import WalletService

logger = get_logger(__name__)

SESSION_PURGE_KEY = "sessions:purge"


@dataclass
class Services:
    settings: Settings
    store: WalletStore
    tx_log: TransactionLog
    ledger: Any
    notifier: Notifier
    notifications: NotificationSender
    dispatcher: TransferDispatcher
    scheduler: Any
    engine: AutoCycleEngine
    wallets: WalletService
    sessions: SessionRegistry

    async def start(self) -> None:
        """Start the scheduler on the running loop and re-book persisted auto-cycles."""
        self.scheduler.start()
        self._book_session_purge()
        await self.engine.resume_active()

    async def purge_sessions(self) -> int:
        """Scheduled job: drop expired conversation sessions, then re-book."""
        purged = self.sessions.purge_expired()
        self._book_session_purge()
        return purged

    def _book_session_purge(self) -> None:
        self.scheduler.schedule(SESSION_PURGE_KEY, self.settings.session_ttl_sec, self.purge_sessions)

    async def aclose(self) -> None:
        self.scheduler.shutdown()
        await self.notifications.drain()
        for resource in (self.ledger, self.notifier):
            close = getattr(resource, "aclose", None)
            if close is not None:
                await close()
        logger.info("services_closed")


def assemble_services(
    settings: Settings,
    store: WalletStore,
    tx_log: TransactionLog,
    ledger: Any,
    *,
    notifier: Notifier | None = None,
    scheduler: Any = None,
    sleep: Any = None,
) -> Services:
    """Wire the domain objects around the given backends."""
    notifier = notifier or NullNotifier()
    notifications = NotificationSender(notifier)
    scheduler = scheduler or CycleScheduler()
    timing: dict[str, Any] = {"sleep": sleep} if sleep is not None else {}
    dispatcher = TransferDispatcher(
        store,
        tx_log,
        ledger,
        notifications=notifications,
        explorer_url=settings.explorer_url,
        send_interval_sec=settings.multi_send_interval_sec,
        **timing,
    )
    engine = AutoCycleEngine(
        store,
        ledger,
        dispatcher,
        scheduler,
        AutoCycleConfig.from_settings(settings),
        **timing,
    )
    return Services(
        settings=settings,
        store=store,
        tx_log=tx_log,
        ledger=ledger,
        notifier=notifier,
        notifications=notifications,
        dispatcher=dispatcher,
        scheduler=scheduler,
        engine=engine,
        wallets=WalletService(store, ledger),
        sessions=SessionRegistry(settings.session_ttl_sec),
    )


def build_services(settings: Settings) -> Services:
    """Production stack: SQL store, HTTP ledger client, Telegram notifier when a token is set."""
    engine = create_engine_from_url(settings.database_url)
    init_db(engine)
    ledger = LedgerClient(
        settings.rpc_url,
        timeout_sec=settings.rpc_timeout_sec,
        max_retries=settings.rpc_max_retries,
    )
    notifier: Notifier
    if settings.telegram_bot_token:
        notifier = TelegramNotifier(settings.telegram_bot_token)
    else:
        notifier = NullNotifier()
        logger.info("notifier_disabled", reason="TELEGRAM_BOT_TOKEN not set")
    return assemble_services(
        settings,
        SqlWalletStore(engine),
        SqlTransactionLog(engine),
        ledger,
        notifier=notifier,
    )
