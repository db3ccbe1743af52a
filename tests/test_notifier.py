"""
TelegramNotifier request shape and NotificationSender failure handling.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from backend_octra.dispatch.notifier import NotificationSender, NullNotifier, TelegramNotifier


def test_telegram_notifier_posts_send_message():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    async def main():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = TelegramNotifier("TOKEN", client=client)
        await notifier.notify("99", "<b>hi</b>")
        await client.aclose()

    asyncio.run(main())
    request = seen[0]
    assert request.url.path == "/botTOKEN/sendMessage"
    assert json.loads(request.content) == {"chat_id": "99", "text": "<b>hi</b>", "parse_mode": "HTML"}


def test_telegram_notifier_raises_on_http_error():
    async def main():
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(403)))
        await TelegramNotifier("TOKEN", client=client).notify("1", "x")

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(main())


def test_empty_token_rejected():
    with pytest.raises(ValueError):
        TelegramNotifier("  ")


def test_sender_discards_failures(notifier):
    notifier.fail = True

    async def main():
        sender = NotificationSender(notifier)
        sender.send("1", "hello")
        await sender.drain()

    asyncio.run(main())
    assert notifier.messages == []


def test_sender_delivers_in_background(notifier):
    async def main():
        sender = NotificationSender(notifier)
        sender.send(5, "a")
        sender.send("6", "b")
        await sender.drain()

    asyncio.run(main())
    assert sorted(notifier.messages) == [("5", "a"), ("6", "b")]


def test_null_notifier_is_silent():
    asyncio.run(NullNotifier().notify("1", "x"))
