"""
Transfer dispatcher: single and multi-recipient sends from custodial wallets.

Pipeline per transfer: validate → load wallet → (address lock) allocate nonce
→ build + sign → submit → on acceptance append a 'pending' transaction record.

Validation and wallet lookup happen before any network call and raise.
Ledger-stage failures of a single send (nonce query, transport, rejection)
come back as a failed TransferResult and persist nothing. Multi-send is a
best-effort fan-out, not an atomic batch: nonces start+0 .. start+N-1 are
assigned in input order, submissions go out sequentially in that order, and
one recipient's failure never stops the next.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Callable, Iterable

import nacl.signing

from backend_octra.config.env import DEFAULT_EXPLORER_URL
from backend_octra.core.exceptions import (
    InvalidAddress,
    InvalidRecipients,
    LedgerRejected,
    NonceUnavailable,
    TransportFailure,
    WalletError,
)
from backend_octra.database.models import TransactionRecord, WalletRecord
from backend_octra.database.store import TransactionLog, WalletStore
from backend_octra.dispatch.nonce import AddressLocks, NonceSequencer
from backend_octra.dispatch.notifier import NotificationSender
from backend_octra.dispatch.throttle import paced
from backend_octra.octra_logging import get_logger
from backend_octra.wallet.keys import ADDRESS_PREFIX, open_signing_key
from backend_octra.wallet.signer import (
    assemble_signed_transaction,
    build_transfer_message,
    message_digest,
    quantize_amount,
    sign,
    to_decimal,
)

logger = get_logger(__name__)

DEFAULT_SEND_INTERVAL_SEC = 0.3


@dataclass(frozen=True)
class Recipient:
    address: str
    amount: Decimal

    @classmethod
    def coerce(cls, value: Any) -> "Recipient":
        if isinstance(value, Recipient):
            return value
        if isinstance(value, dict):
            return cls(address=value.get("address") or "", amount=to_decimal(value.get("amount")))
        address, amount = value
        return cls(address=address, amount=to_decimal(amount))


@dataclass
class TransferResult:
    success: bool
    recipient: str
    amount: Decimal | None = None
    nonce: int | None = None
    tx_hash: str | None = None
    explorer_url: str | None = None
    error: str | None = None
    error_code: str | None = None
    detail: Any = None

    @classmethod
    def failed(
        cls,
        recipient: str,
        amount: Decimal,
        error: WalletError,
        nonce: int | None = None,
    ) -> "TransferResult":
        return cls(
            success=False,
            recipient=recipient,
            amount=amount,
            nonce=nonce,
            error=error.message,
            error_code=error.code,
            detail=getattr(error, "detail", None),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success, "recipient": self.recipient}
        if self.nonce is not None:
            out["nonce"] = self.nonce
        if self.success:
            out["txHash"] = self.tx_hash
            out["explorerUrl"] = self.explorer_url
        else:
            out["error"] = self.error
            out["code"] = self.error_code
            if self.detail is not None:
                out["details"] = self.detail
        return out


@dataclass
class BatchResult:
    results: list[TransferResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> dict[str, Any]:
        return {
            "successCount": self.success_count,
            "failedCount": self.failed_count,
            "results": [r.to_dict() for r in self.results],
        }


def validate_recipient_address(address: Any) -> str:
    if not isinstance(address, str) or not address.strip():
        raise InvalidAddress()
    address = address.strip()
    if not address.startswith(ADDRESS_PREFIX):
        raise InvalidAddress(f"Recipient address must start with '{ADDRESS_PREFIX}'")
    return address


def received_message(amount: Decimal, sender_username: str | None) -> str:
    sender = f"@{sender_username}" if sender_username and sender_username != "unknown" else "a user"
    return f"✅ You just received <b>{amount:.6f} OCT</b>\nFrom: {sender}"


class TransferDispatcher:
    def __init__(
        self,
        store: WalletStore,
        tx_log: TransactionLog,
        ledger: Any,
        *,
        notifications: NotificationSender | None = None,
        locks: AddressLocks | None = None,
        explorer_url: str = DEFAULT_EXPLORER_URL,
        send_interval_sec: float = DEFAULT_SEND_INTERVAL_SEC,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._tx_log = tx_log
        self._ledger = ledger
        self._sequencer = NonceSequencer(ledger)
        self._notifications = notifications or NotificationSender()
        self._locks = locks or AddressLocks()
        self._explorer_url = explorer_url
        self._send_interval = send_interval_sec
        self._sleep = sleep
        self._clock = clock

    @property
    def locks(self) -> AddressLocks:
        return self._locks

    def explorer_link(self, tx_hash: str) -> str:
        return f"{self._explorer_url}{tx_hash}"

    async def send_single(
        self,
        user_id: str,
        recipient: str,
        amount: Any,
        memo: str | None = None,
    ) -> TransferResult:
        amount = quantize_amount(amount)
        recipient = validate_recipient_address(recipient)
        wallet = await self._store.require(str(user_id))

        with open_signing_key(wallet.private_key) as signing_key:
            async with self._locks.hold(wallet.address):
                try:
                    nonce = await self._sequencer.allocate(wallet.address, 1)
                except NonceUnavailable as e:
                    logger.warning("transfer_nonce_unavailable", address=wallet.address)
                    return TransferResult.failed(recipient, amount, e)
                result = await self._submit_one(wallet, signing_key, recipient, amount, nonce, memo)

        if result.success:
            await self._notify_recipients(wallet, [result])
        return result

    async def send_multi(self, user_id: str, recipients: Iterable[Any]) -> BatchResult:
        try:
            batch = [Recipient.coerce(r) for r in (recipients or [])]
        except (TypeError, ValueError) as e:
            raise InvalidRecipients() from e
        if not batch:
            raise InvalidRecipients()
        batch = [
            Recipient(address=validate_recipient_address(r.address), amount=quantize_amount(r.amount))
            for r in batch
        ]
        wallet = await self._store.require(str(user_id))

        result = BatchResult()
        with open_signing_key(wallet.private_key) as signing_key:
            async with self._locks.hold(wallet.address):
                start = await self._sequencer.allocate(wallet.address, len(batch))
                async for index, r in paced(enumerate(batch), self._send_interval, sleep=self._sleep):
                    result.results.append(
                        await self._submit_one(wallet, signing_key, r.address, r.amount, start + index)
                    )

        logger.info(
            "multi_send_done",
            address=wallet.address,
            recipients=len(batch),
            success_count=result.success_count,
            failed_count=result.failed_count,
        )
        await self._notify_recipients(wallet, [r for r in result.results if r.success])
        return result

    async def _submit_one(
        self,
        wallet: WalletRecord,
        signing_key: nacl.signing.SigningKey,
        recipient: str,
        amount: Decimal,
        nonce: int,
        memo: str | None = None,
    ) -> TransferResult:
        record = build_transfer_message(wallet.address, recipient, amount, nonce, memo)
        payload = assemble_signed_transaction(
            record, sign(record, signing_key), bytes(signing_key.verify_key)
        )
        try:
            submitted = await self._ledger.submit_transaction(payload)
        except TransportFailure as e:
            logger.warning(
                "transfer_transport_failed",
                address=wallet.address,
                recipient=recipient,
                nonce=nonce,
                error=e.message,
            )
            return TransferResult.failed(recipient, amount, e, nonce)

        if not submitted.accepted:
            logger.info("transfer_rejected", address=wallet.address, recipient=recipient, nonce=nonce)
            return TransferResult.failed(recipient, amount, LedgerRejected(detail=submitted.detail), nonce)

        tx_hash = submitted.tx_hash or message_digest(record)
        await self._record(wallet, recipient, amount, nonce, tx_hash)
        logger.info(
            "transfer_accepted",
            address=wallet.address,
            recipient=recipient,
            amount=str(amount),
            nonce=nonce,
            tx_hash=tx_hash,
        )
        return TransferResult(
            success=True,
            recipient=recipient,
            amount=amount,
            nonce=nonce,
            tx_hash=tx_hash,
            explorer_url=self.explorer_link(tx_hash),
        )

    async def _record(
        self,
        wallet: WalletRecord,
        recipient: str,
        amount: Decimal,
        nonce: int,
        tx_hash: str,
    ) -> None:
        # The ledger already accepted the transfer; a log write failure cannot undo it.
        try:
            await self._tx_log.append(
                TransactionRecord(
                    user_id=wallet.user_id,
                    tx_hash=tx_hash,
                    sender=wallet.address,
                    recipient=recipient,
                    amount=amount,
                    nonce=nonce,
                    timestamp=self._clock(),
                )
            )
        except Exception as e:
            logger.exception("transaction_record_failed", tx_hash=tx_hash, nonce=nonce, error=str(e))

    async def _notify_recipients(self, sender: WalletRecord, results: list[TransferResult]) -> None:
        for r in results:
            try:
                owner = await self._store.find_by_address(r.recipient)
            except Exception as e:
                logger.info("notification_lookup_failed", recipient=r.recipient, error=str(e))
                continue
            if owner is not None:
                self._notifications.send(owner.user_id, received_message(r.amount, sender.username))

    async def drain_notifications(self) -> None:
        await self._notifications.drain()
