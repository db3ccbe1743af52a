"""
Wallet account service: create, import (switch), inspect and export custodial wallets.

Every identity owns exactly one wallet record. create_wallet is idempotent;
switch_wallet replaces the whole key triple and clears the mnemonic in one
store call. Key material is returned only by export_keys and never logged.
"""

from __future__ import annotations

from typing import Any

from backend_octra.core.exceptions import InvalidAmount
from backend_octra.database.models import WalletRecord
from backend_octra.database.store import DEFAULT_LIST_LIMIT, WalletStore
from backend_octra.ledger.client import DEFAULT_HISTORY_LIMIT
from backend_octra.octra_logging import get_logger
from backend_octra.wallet.keys import derive_from_mnemonic, derive_from_private_key

logger = get_logger(__name__)

DEFAULT_USERNAME = "unknown"


def _existing_wallet(record: WalletRecord) -> dict[str, Any]:
    return {
        "success": True,
        "exists": True,
        "address": record.address,
        "publicKey": record.public_key,
    }


class WalletService:
    def __init__(self, store: WalletStore, ledger: Any) -> None:
        self._store = store
        self._ledger = ledger

    async def create_wallet(self, user_id: str, username: str | None = None) -> dict[str, Any]:
        user_id = str(user_id)
        existing = await self._store.get(user_id)
        if existing is not None:
            return _existing_wallet(existing)

        derived = derive_from_mnemonic()
        record = await self._store.create(
            WalletRecord(
                user_id=user_id,
                address=derived.address,
                public_key=derived.keypair.public_key_hex,
                private_key=derived.keypair.private_key_hex,
                mnemonic=derived.mnemonic,
                username=username or DEFAULT_USERNAME,
            )
        )
        if record is None:
            # A concurrent call created the wallet first; its keys stand
            return _existing_wallet(await self._store.require(user_id))
        logger.info("wallet_created", user_id=user_id, address=record.address)
        return {
            "success": True,
            "exists": False,
            "address": record.address,
            "publicKey": record.public_key,
        }

    async def switch_wallet(self, user_id: str, material: str) -> dict[str, Any]:
        """Import a wallet from raw key material, replacing the user's current keys."""
        user_id = str(user_id)
        keypair = derive_from_private_key(material)
        address = keypair.address
        # The ledger must answer for the derived address before anything is stored
        await self._ledger.get_account_state(address)

        created = await self._store.create(
            WalletRecord(
                user_id=user_id,
                address=address,
                public_key=keypair.public_key_hex,
                private_key=keypair.private_key_hex,
                mnemonic=None,
            )
        )
        if created is None:
            await self._store.replace_keys(
                user_id,
                address=address,
                public_key=keypair.public_key_hex,
                private_key=keypair.private_key_hex,
            )
        logger.info("wallet_switched", user_id=user_id, address=address)
        return {"success": True, "address": address, "message": "Wallet successfully switched"}

    async def get_user_info(self, user_id: str) -> dict[str, Any]:
        wallet = await self._store.require(str(user_id))
        return {
            "address": wallet.address,
            "publicKey": wallet.public_key,
            "createdAt": wallet.created_at,
            "username": wallet.username,
            "isImported": wallet.is_imported,
        }

    async def export_keys(self, user_id: str) -> dict[str, Any]:
        wallet = await self._store.require(str(user_id))
        out: dict[str, Any] = {
            "privateKey": wallet.private_key,
            "address": wallet.address,
            "hasMnemonic": not wallet.is_imported,
        }
        if wallet.mnemonic:
            out["mnemonic"] = wallet.mnemonic
        logger.info("wallet_keys_exported", user_id=wallet.user_id)
        return out

    async def update_username(self, user_id: str, username: str) -> dict[str, Any]:
        await self._store.update(str(user_id), username=username)
        return {"success": True, "message": "Username updated successfully"}

    async def set_last_notified_tx(self, user_id: str, tx_hash: str) -> dict[str, Any]:
        await self._store.update(str(user_id), last_notified_tx=tx_hash)
        return {"success": True}

    async def get_balance(self, address: str) -> dict[str, Any]:
        state = await self._ledger.get_account_state(address)
        return {
            "success": True,
            "address": address,
            "balance": float(state.balance),
            "nonce": state.nonce,
        }

    async def get_history(self, address: str, limit: int = DEFAULT_HISTORY_LIMIT) -> dict[str, Any]:
        transactions = await self._ledger.get_recent_transactions(address, limit)
        return {
            "success": True,
            "address": address,
            "transactions": [tx.to_dict() for tx in transactions],
        }

    async def list_wallets(self, limit: int = DEFAULT_LIST_LIMIT) -> list[dict[str, Any]]:
        return [w.public_view() for w in await self._store.list_wallets(limit)]

    async def list_user_ids(self, limit: int = DEFAULT_LIST_LIMIT) -> list[str]:
        return [w.user_id for w in await self._store.list_wallets(limit)]

    async def approve_for_auto_cycle(self, user_id: str, duration_minutes: int) -> WalletRecord:
        """Admin step: enroll a wallet in the auto-cycle cohort for duration_minutes."""
        if int(duration_minutes) <= 0:
            raise InvalidAmount("Duration must be positive")
        record = await self._store.update(
            str(user_id), auto_approved=True, auto_duration=int(duration_minutes)
        )
        logger.info("auto_cycle_approved", user_id=record.user_id, duration_min=record.auto_duration)
        return record
