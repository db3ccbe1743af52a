"""
SQLAlchemy-backed wallet store and transaction log.

Uses DATABASE_URL (PostgreSQL or any SQLAlchemy URL) when set; otherwise a
SQLite file. Session work is synchronous and runs in a worker thread via
asyncio.to_thread so the event loop is never blocked. Amounts are stored as
strings to avoid float precision loss.
"""

from __future__ import annotations

import asyncio
import threading
import time
from contextlib import contextmanager, nullcontext
from decimal import Decimal
from typing import Any, Callable, ContextManager, Iterator, TypeVar

from sqlalchemy import Boolean, Column, Float, Integer, String, create_engine, or_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from backend_octra.config.env import mask_url
from backend_octra.core.exceptions import TransportFailure, WalletNotFound
from backend_octra.database.models import TransactionRecord, WalletRecord
from backend_octra.database.store import (
    DEFAULT_LIST_LIMIT,
    TransactionLog,
    WalletStore,
    check_update_fields,
)
from backend_octra.octra_logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()

T = TypeVar("T")

# -----------------------------------------------------------------------------
# SQLAlchemy models
# -----------------------------------------------------------------------------


class WalletRow(Base):
    """One row per user: key material, profile, auto-cycle enrollment."""

    __tablename__ = "wallets"

    user_id = Column(String(64), primary_key=True)
    address = Column(String(64), nullable=False, index=True)
    public_key = Column(String(128), nullable=False)
    private_key = Column(String(256), nullable=False)
    mnemonic = Column(String(512), nullable=True)
    username = Column(String(256), nullable=False, default="unknown")
    created_at = Column(Float, nullable=True, index=True)
    updated_at = Column(Float, nullable=True)
    auto_approved = Column(Boolean, nullable=False, default=False, index=True)
    auto_active = Column(Boolean, nullable=False, default=False, index=True)
    auto_amount = Column(String(64), nullable=True)
    auto_duration = Column(Integer, nullable=True)  # minutes
    auto_started_at = Column(Float, nullable=True)
    auto_stopped_at = Column(Float, nullable=True)
    last_auto_cycle = Column(Float, nullable=True)
    last_notified_tx = Column(String(128), nullable=True)

    def to_record(self) -> WalletRecord:
        return WalletRecord(
            user_id=self.user_id,
            address=self.address,
            public_key=self.public_key,
            private_key=self.private_key,
            mnemonic=self.mnemonic,
            username=self.username or "unknown",
            created_at=self.created_at,
            updated_at=self.updated_at,
            auto_approved=bool(self.auto_approved),
            auto_active=bool(self.auto_active),
            auto_amount=Decimal(self.auto_amount) if self.auto_amount else None,
            auto_duration=self.auto_duration,
            auto_started_at=self.auto_started_at,
            auto_stopped_at=self.auto_stopped_at,
            last_auto_cycle=self.last_auto_cycle,
            last_notified_tx=self.last_notified_tx,
        )


class TransactionRow(Base):
    """Append-only log of ledger-accepted transfers."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    tx_hash = Column(String(128), nullable=False, index=True)
    sender = Column(String(64), nullable=False, index=True)
    recipient = Column(String(64), nullable=False, index=True)
    amount = Column(String(64), nullable=False)
    nonce = Column(Integer, nullable=False)
    status = Column(String(32), nullable=False, default="pending")
    timestamp = Column(Float, nullable=False, index=True)

    def to_record(self) -> TransactionRecord:
        return TransactionRecord(
            id=self.id,
            user_id=self.user_id,
            tx_hash=self.tx_hash,
            sender=self.sender,
            recipient=self.recipient,
            amount=Decimal(self.amount),
            nonce=self.nonce,
            status=self.status,
            timestamp=self.timestamp,
        )


def _column_value(name: str, value: Any) -> Any:
    if name == "auto_amount" and value is not None:
        return str(value)
    return value


# -----------------------------------------------------------------------------
# Engine and session
# -----------------------------------------------------------------------------


def create_engine_from_url(url: str) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
    logger.info("wallet_store_engine", url=mask_url(url.split("?")[0]))
    return engine


def init_db(engine: Engine) -> None:
    """Create tables if they do not exist. Safe to call on every startup."""
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.exception("wallet_store_init_db_failed", error=str(e))
        raise


class _SqlBase:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Single session. Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    async def _run(self, fn: Callable[[Session], T], lock: ContextManager[Any] | None = None) -> T:
        def work() -> T:
            with lock or nullcontext(), self._session_scope() as session:
                return fn(session)

        try:
            return await asyncio.to_thread(work)
        except SQLAlchemyError as e:
            logger.warning("wallet_store_error", error=type(e).__name__)
            raise TransportFailure("Wallet store unavailable") from e


class SqlWalletStore(_SqlBase, WalletStore):
    def __init__(self, engine: Engine) -> None:
        super().__init__(engine)
        # Check-then-insert runs one at a time in this process
        self._insert_lock = threading.Lock()

    async def get(self, user_id: str) -> WalletRecord | None:
        def fn(session: Session) -> WalletRecord | None:
            row = session.get(WalletRow, str(user_id))
            return row.to_record() if row else None

        return await self._run(fn)

    async def put(self, record: WalletRecord) -> WalletRecord:
        def fn(session: Session) -> WalletRecord:
            now = time.time()
            row = session.get(WalletRow, record.user_id) or WalletRow(user_id=record.user_id)
            row.address = record.address
            row.public_key = record.public_key
            row.private_key = record.private_key
            row.mnemonic = record.mnemonic
            row.username = record.username
            row.created_at = record.created_at or row.created_at or now
            row.updated_at = now
            row.auto_approved = record.auto_approved
            row.auto_active = record.auto_active
            row.auto_amount = _column_value("auto_amount", record.auto_amount)
            row.auto_duration = record.auto_duration
            row.auto_started_at = record.auto_started_at
            row.auto_stopped_at = record.auto_stopped_at
            row.last_auto_cycle = record.last_auto_cycle
            row.last_notified_tx = record.last_notified_tx
            session.add(row)
            session.flush()
            return row.to_record()

        return await self._run(fn)

    async def create(self, record: WalletRecord) -> WalletRecord | None:
        def fn(session: Session) -> WalletRecord | None:
            if session.get(WalletRow, record.user_id) is not None:
                return None
            now = time.time()
            row = WalletRow(
                user_id=record.user_id,
                address=record.address,
                public_key=record.public_key,
                private_key=record.private_key,
                mnemonic=record.mnemonic,
                username=record.username,
                created_at=record.created_at or now,
                updated_at=now,
                auto_approved=record.auto_approved,
                auto_active=record.auto_active,
                auto_amount=_column_value("auto_amount", record.auto_amount),
                auto_duration=record.auto_duration,
            )
            session.add(row)
            try:
                session.flush()
            except IntegrityError:
                # Another writer inserted the same user_id first
                session.rollback()
                return None
            return row.to_record()

        return await self._run(fn, lock=self._insert_lock)

    async def update(self, user_id: str, **fields: Any) -> WalletRecord:
        check_update_fields(fields)

        def fn(session: Session) -> WalletRecord:
            row = session.get(WalletRow, str(user_id))
            if row is None:
                raise WalletNotFound()
            for name, value in fields.items():
                setattr(row, name, _column_value(name, value))
            row.updated_at = time.time()
            session.flush()
            return row.to_record()

        return await self._run(fn)

    async def replace_keys(
        self,
        user_id: str,
        *,
        address: str,
        public_key: str,
        private_key: str,
    ) -> WalletRecord:
        def fn(session: Session) -> WalletRecord:
            row = session.get(WalletRow, str(user_id))
            if row is None:
                raise WalletNotFound()
            row.address = address
            row.public_key = public_key
            row.private_key = private_key
            row.mnemonic = None
            row.updated_at = time.time()
            session.flush()
            return row.to_record()

        return await self._run(fn)

    async def find_by_address(self, address: str) -> WalletRecord | None:
        def fn(session: Session) -> WalletRecord | None:
            row = session.query(WalletRow).filter(WalletRow.address == address).first()
            return row.to_record() if row else None

        return await self._run(fn)

    async def list_wallets(self, limit: int = DEFAULT_LIST_LIMIT) -> list[WalletRecord]:
        def fn(session: Session) -> list[WalletRecord]:
            rows = session.query(WalletRow).order_by(WalletRow.created_at).limit(limit).all()
            return [r.to_record() for r in rows]

        return await self._run(fn)

    async def list_auto_approved(self, exclude_user_id: str, limit: int) -> list[WalletRecord]:
        def fn(session: Session) -> list[WalletRecord]:
            rows = (
                session.query(WalletRow)
                .filter(WalletRow.auto_approved.is_(True))
                .filter(WalletRow.user_id != str(exclude_user_id))
                .order_by(WalletRow.created_at)
                .limit(limit)
                .all()
            )
            return [r.to_record() for r in rows]

        return await self._run(fn)

    async def list_active_auto(self) -> list[WalletRecord]:
        def fn(session: Session) -> list[WalletRecord]:
            rows = session.query(WalletRow).filter(WalletRow.auto_active.is_(True)).all()
            return [r.to_record() for r in rows]

        return await self._run(fn)


class SqlTransactionLog(_SqlBase, TransactionLog):
    async def append(self, record: TransactionRecord) -> TransactionRecord:
        def fn(session: Session) -> TransactionRecord:
            row = TransactionRow(
                user_id=record.user_id,
                tx_hash=record.tx_hash,
                sender=record.sender,
                recipient=record.recipient,
                amount=str(record.amount),
                nonce=record.nonce,
                status=record.status,
                timestamp=record.timestamp,
            )
            session.add(row)
            session.flush()
            return row.to_record()

        return await self._run(fn)

    async def list_for_address(self, address: str, limit: int = 50) -> list[TransactionRecord]:
        def fn(session: Session) -> list[TransactionRecord]:
            rows = (
                session.query(TransactionRow)
                .filter(or_(TransactionRow.sender == address, TransactionRow.recipient == address))
                .order_by(TransactionRow.id.desc())
                .limit(limit)
                .all()
            )
            return [r.to_record() for r in rows]

        return await self._run(fn)
