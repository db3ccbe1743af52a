"""
TransferDispatcher: single and multi-recipient sends against the fake ledger.
"""

from __future__ import annotations

import asyncio
import base64
from decimal import Decimal

import pytest

from backend_octra.core.exceptions import (
    InvalidAddress,
    InvalidAmount,
    InvalidRecipients,
    NonceUnavailable,
    WalletNotFound,
)
from backend_octra.wallet.signer import verify


def test_send_single_builds_signed_transfer_and_records_it(services, ledger, tx_log, make_wallet):
    async def main():
        wallet = await make_wallet("u1")
        ledger.nonces[wallet.address] = 4
        return wallet, await services.dispatcher.send_single("u1", "octABC", 10)

    wallet, result = asyncio.run(main())

    assert result.success
    assert result.nonce == 5
    assert result.tx_hash == "hash1"
    assert result.explorer_url == "https://octrascan.io/tx/hash1"

    payload = ledger.submitted[0]
    assert payload["from"] == wallet.address
    assert payload["to_"] == "octABC"
    assert payload["amount"] == "10000000"
    assert payload["ou"] == "1"
    assert payload["nonce"] == 5
    record = {k: payload[k] for k in ("from", "to_", "amount", "nonce", "ou", "timestamp")}
    assert verify(record, base64.b64decode(payload["signature"]), base64.b64decode(payload["public_key"]))

    assert len(tx_log.records) == 1
    stored = tx_log.records[0]
    assert stored.status == "pending"
    assert stored.tx_hash == "hash1"
    assert stored.nonce == 5
    assert stored.amount == Decimal(10)


def test_high_amount_uses_upper_fee_tier(services, ledger, make_wallet):
    async def main():
        await make_wallet("u1")
        return await services.dispatcher.send_single("u1", "octABC", 1000)

    assert asyncio.run(main()).success
    assert ledger.submitted[0]["ou"] == "3"


def test_memo_travels_unsigned(services, ledger, make_wallet):
    async def main():
        await make_wallet("u1")
        return await services.dispatcher.send_single("u1", "octABC", 1, memo="for lunch")

    result = asyncio.run(main())
    payload = ledger.submitted[0]
    assert result.success
    assert payload["message"] == "for lunch"
    record = {k: v for k, v in payload.items() if k not in ("signature", "public_key")}
    assert verify(record, base64.b64decode(payload["signature"]), base64.b64decode(payload["public_key"]))


@pytest.mark.parametrize(
    "recipient,amount,error",
    [
        ("octABC", 0, InvalidAmount),
        ("octABC", -3, InvalidAmount),
        ("octABC", "ten", InvalidAmount),
        ("", 1, InvalidAddress),
        ("0xABC", 1, InvalidAddress),
    ],
)
def test_preflight_errors_raise_before_network(services, ledger, make_wallet, recipient, amount, error):
    async def main():
        await make_wallet("u1")
        await services.dispatcher.send_single("u1", recipient, amount)

    with pytest.raises(error):
        asyncio.run(main())
    assert ledger.state_calls == 0
    assert ledger.submitted == []


def test_unknown_wallet_raises(services, ledger):
    with pytest.raises(WalletNotFound):
        asyncio.run(services.dispatcher.send_single("ghost", "octABC", 1))
    assert ledger.state_calls == 0


def test_rejection_returns_failure_and_persists_nothing(services, ledger, tx_log, make_wallet):
    ledger.reject_nonces.add(1)

    async def main():
        await make_wallet("u1")
        return await services.dispatcher.send_single("u1", "octABC", 1)

    result = asyncio.run(main())
    assert not result.success
    assert result.error_code == "LedgerRejected"
    assert result.detail == {"error": "nonce rejected"}
    assert result.to_dict()["details"] == {"error": "nonce rejected"}
    assert tx_log.records == []


def test_transport_failure_on_submit_returns_failure(services, ledger, tx_log, make_wallet):
    ledger.submit_down = True

    async def main():
        await make_wallet("u1")
        return await services.dispatcher.send_single("u1", "octABC", 1)

    result = asyncio.run(main())
    assert not result.success
    assert result.error_code == "TransportFailure"
    assert tx_log.records == []


def test_nonce_unavailable_returns_failure_without_submitting(services, ledger, make_wallet):
    ledger.state_down = True

    async def main():
        await make_wallet("u1")
        return await services.dispatcher.send_single("u1", "octABC", 1)

    result = asyncio.run(main())
    assert not result.success
    assert result.error_code == "NonceUnavailable"
    assert ledger.submitted == []


def test_log_write_failure_does_not_fail_transfer(services, tx_log, make_wallet, monkeypatch):
    async def broken_append(record):
        raise RuntimeError("disk full")

    monkeypatch.setattr(tx_log, "append", broken_append)

    async def main():
        await make_wallet("u1")
        return await services.dispatcher.send_single("u1", "octABC", 1)

    assert asyncio.run(main()).success


def test_known_recipient_is_notified(services, notifier, make_wallet):
    async def main():
        await make_wallet("u1", username="alice")
        bob = await make_wallet("u2")
        result = await services.dispatcher.send_single("u1", bob.address, "2.5")
        await services.dispatcher.drain_notifications()
        return result

    assert asyncio.run(main()).success
    assert len(notifier.messages) == 1
    user_id, message = notifier.messages[0]
    assert user_id == "u2"
    assert "You just received" in message
    assert "2.500000 OCT" in message
    assert "@alice" in message


def test_notifier_failure_does_not_change_result(services, notifier, make_wallet):
    notifier.fail = True

    async def main():
        await make_wallet("u1")
        bob = await make_wallet("u2")
        result = await services.dispatcher.send_single("u1", bob.address, 1)
        await services.dispatcher.drain_notifications()
        return result

    result = asyncio.run(main())
    assert result.success
    assert notifier.messages == []


def test_multi_send_assigns_consecutive_nonces_in_input_order(services, ledger, tx_log, make_wallet):
    async def main():
        wallet = await make_wallet("u1")
        ledger.nonces[wallet.address] = 10
        return await services.dispatcher.send_multi(
            "u1",
            [
                {"address": "octA", "amount": 1},
                {"address": "octB", "amount": "2"},
                ("octC", 3),
            ],
        )

    batch = asyncio.run(main())
    assert [p["nonce"] for p in ledger.submitted] == [11, 12, 13]
    assert [p["to_"] for p in ledger.submitted] == ["octA", "octB", "octC"]
    assert batch.success_count == 3
    assert batch.failed_count == 0
    assert [r.nonce for r in tx_log.records] == [11, 12, 13]
    # one ledger query for the whole batch
    assert ledger.state_calls == 1


def test_multi_send_continues_past_a_rejection(services, ledger, tx_log, make_wallet):
    ledger.reject_nonces.add(2)

    async def main():
        await make_wallet("u1")
        return await services.dispatcher.send_multi(
            "u1", [("octA", 1), ("octB", 1), ("octC", 1)]
        )

    batch = asyncio.run(main())
    assert [r.success for r in batch.results] == [True, False, True]
    assert batch.to_dict()["successCount"] == 2
    assert batch.to_dict()["failedCount"] == 1
    assert batch.results[1].recipient == "octB"
    assert [r.recipient for r in tx_log.records] == ["octA", "octC"]


def test_recorded_amount_matches_signed_units(services, ledger, tx_log, notifier, make_wallet):
    async def main():
        await make_wallet("u1")
        m2 = await make_wallet("u2")
        batch = await services.dispatcher.send_multi(
            "u1", [("octA", Decimal("0.95") / 3), (m2.address, Decimal("1.0000004"))]
        )
        await services.dispatcher.drain_notifications()
        return batch

    batch = asyncio.run(main())
    assert [int(p["amount"]) for p in ledger.submitted] == [316667, 1000000]
    for record, payload in zip(tx_log.records, ledger.submitted):
        assert record.amount * 10**6 == int(payload["amount"])
    assert [r.amount for r in batch.results] == [Decimal("0.316667"), Decimal("1")]
    assert "1.000000 OCT" in notifier.messages[0][1]


@pytest.mark.parametrize(
    "recipients,error",
    [
        ([], InvalidRecipients),
        (None, InvalidRecipients),
        ([("octA", 1), ("bad", 1)], InvalidAddress),
        ([("octA", 1), ("octB", 0)], InvalidAmount),
    ],
)
def test_multi_send_validates_everything_first(services, ledger, make_wallet, recipients, error):
    async def main():
        await make_wallet("u1")
        await services.dispatcher.send_multi("u1", recipients)

    with pytest.raises(error):
        asyncio.run(main())
    assert ledger.state_calls == 0
    assert ledger.submitted == []


def test_multi_send_nonce_outage_raises_for_batch(services, ledger, make_wallet):
    ledger.state_down = True

    async def main():
        await make_wallet("u1")
        await services.dispatcher.send_multi("u1", [("octA", 1)])

    with pytest.raises(NonceUnavailable):
        asyncio.run(main())
    assert ledger.submitted == []


def test_concurrent_sends_from_one_wallet_get_distinct_nonces(services, ledger, make_wallet):
    async def main():
        await make_wallet("u1")
        return await asyncio.gather(
            *(services.dispatcher.send_single("u1", "octABC", 1) for _ in range(4))
        )

    results = asyncio.run(main())
    assert all(r.success for r in results)
    assert sorted(r.nonce for r in results) == [1, 2, 3, 4]
