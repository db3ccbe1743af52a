"""
WalletService: creation idempotence, wallet switch, key export, profile updates, lookups.
"""

from __future__ import annotations

import asyncio
import base64
from decimal import Decimal

import pytest

from backend_octra.core.exceptions import InvalidAmount, InvalidKeyFormat, TransportFailure, WalletNotFound
from backend_octra.ledger.models import LedgerTransaction
from backend_octra.wallet.keys import derive_from_private_key

IMPORT_SEED = "33" * 32


def test_create_wallet_is_idempotent(services, store):
    first = asyncio.run(services.wallets.create_wallet(42, "alice"))
    second = asyncio.run(services.wallets.create_wallet("42", "bob"))
    assert first["exists"] is False
    assert second["exists"] is True
    assert first["address"] == second["address"]
    assert first["address"].startswith("oct")
    record = asyncio.run(store.get("42"))
    assert record.username == "alice"
    assert record.mnemonic
    assert len(record.private_key) == 128


def test_create_wallet_defaults_username(services, store):
    asyncio.run(services.wallets.create_wallet("7"))
    assert asyncio.run(store.get("7")).username == "unknown"


def test_switch_wallet_replaces_keys_and_clears_mnemonic(services, store, ledger):
    expected = derive_from_private_key(IMPORT_SEED)

    async def main():
        await services.wallets.create_wallet("1", "alice")
        return await services.wallets.switch_wallet("1", IMPORT_SEED)

    out = asyncio.run(main())
    assert out["success"]
    assert out["address"] == expected.address
    record = asyncio.run(store.get("1"))
    assert record.address == expected.address
    assert record.public_key == expected.public_key_hex
    assert record.private_key == expected.private_key_hex
    assert record.mnemonic is None
    assert record.username == "alice"
    assert ledger.state_calls == 1


def test_switch_wallet_is_idempotent_across_formats(services, store):
    b64 = base64.b64encode(bytes.fromhex(IMPORT_SEED)).decode()
    first = asyncio.run(services.wallets.switch_wallet("1", IMPORT_SEED))
    second = asyncio.run(services.wallets.switch_wallet("1", b64))
    assert first["address"] == second["address"]


def test_switch_wallet_creates_record_when_absent(services, store):
    asyncio.run(services.wallets.switch_wallet("new", IMPORT_SEED))
    record = asyncio.run(store.get("new"))
    assert record.is_imported
    assert record.username == "unknown"


def test_switch_wallet_bad_material_changes_nothing(services, store, ledger):
    asyncio.run(services.wallets.create_wallet("1"))
    before = asyncio.run(store.get("1"))
    with pytest.raises(InvalidKeyFormat):
        asyncio.run(services.wallets.switch_wallet("1", "nope"))
    assert asyncio.run(store.get("1")).address == before.address
    assert ledger.state_calls == 0


def test_switch_wallet_requires_reachable_ledger(services, store, ledger):
    ledger.state_down = True
    asyncio.run(services.wallets.create_wallet("1"))
    with pytest.raises(TransportFailure):
        asyncio.run(services.wallets.switch_wallet("1", IMPORT_SEED))
    assert asyncio.run(store.get("1")).mnemonic is not None


def test_user_info_and_key_export(services):
    async def main():
        await services.wallets.create_wallet("1")
        await services.wallets.switch_wallet("2", IMPORT_SEED)
        return (
            await services.wallets.get_user_info("1"),
            await services.wallets.get_user_info("2"),
            await services.wallets.export_keys("1"),
            await services.wallets.export_keys("2"),
        )

    info1, info2, keys1, keys2 = asyncio.run(main())
    assert info1["isImported"] is False
    assert info2["isImported"] is True
    assert keys1["hasMnemonic"] is True
    assert len(keys1["mnemonic"].split()) == 12
    assert keys2["hasMnemonic"] is False
    assert "mnemonic" not in keys2
    assert keys2["privateKey"] == derive_from_private_key(IMPORT_SEED).private_key_hex


def test_unknown_user_raises(services):
    with pytest.raises(WalletNotFound):
        asyncio.run(services.wallets.get_user_info("nobody"))
    with pytest.raises(WalletNotFound):
        asyncio.run(services.wallets.update_username("nobody", "x"))


def test_profile_updates(services, store):
    async def main():
        await services.wallets.create_wallet("1")
        await services.wallets.update_username("1", "carol")
        await services.wallets.set_last_notified_tx("1", "hash9")

    asyncio.run(main())
    record = asyncio.run(store.get("1"))
    assert record.username == "carol"
    assert record.last_notified_tx == "hash9"


def test_balance_and_history(services, ledger):
    ledger.balances["octA"] = Decimal("3.5")
    ledger.nonces["octA"] = 2
    ledger.history["octA"] = [
        LedgerTransaction(
            hash="h1", direction="in", amount=Decimal(1), counterparty="octB", timestamp=1.0, nonce=1, status="pending"
        )
    ]
    balance = asyncio.run(services.wallets.get_balance("octA"))
    history = asyncio.run(services.wallets.get_history("octA"))
    assert balance["balance"] == 3.5
    assert balance["nonce"] == 2
    assert history["transactions"][0]["type"] == "in"


def test_listing_and_approval(services, store):
    async def main():
        await services.wallets.create_wallet("1", "alice")
        await services.wallets.create_wallet("2")
        await services.wallets.approve_for_auto_cycle("2", 45)
        return await services.wallets.list_wallets(), await services.wallets.list_user_ids()

    wallets, user_ids = asyncio.run(main())
    assert [w["userId"] for w in wallets] == ["1", "2"]
    assert "privateKey" not in wallets[0]
    assert user_ids == ["1", "2"]
    record = asyncio.run(store.get("2"))
    assert record.auto_approved
    assert record.auto_duration == 45
    with pytest.raises(InvalidAmount):
        asyncio.run(services.wallets.approve_for_auto_cycle("2", 0))
