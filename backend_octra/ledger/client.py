"""
Octra RPC client: balance/nonce queries, transaction submission, history.

Responsibilities:
- Query account state (GET /balance/{address}); the node answers either JSON
  or a whitespace-delimited "balance nonce" line. 404 means a fresh account.
- Submit signed transactions (POST /send-tx) and classify the answer as
  accepted (with ledger hash) or rejected (with the node's detail).
- Fetch recent transactions for history display.
- Retry transport errors with linear backoff. Submissions are only retried
  when the connection was never established, so a payload is never posted twice.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable

import httpx

from backend_octra.core.exceptions import TransportFailure
from backend_octra.ledger.models import AccountState, LedgerTransaction, SubmitResult
from backend_octra.octra_logging import get_logger

logger = get_logger(__name__)

USER_AGENT = "OctraWallet/2.0"
BROWSER_USER_AGENT = "Mozilla/5.0"
DEFAULT_TIMEOUT_SEC = 5.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF_SEC = 0.5
DEFAULT_HISTORY_LIMIT = 5

# Errors where the request cannot have reached the node
_NOT_SENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


def _parse_number(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal(0)
    try:
        out = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise TransportFailure("Malformed balance response") from e
    if not out.is_finite():
        raise TransportFailure("Malformed balance response")
    return out


def _parse_nonce(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise TransportFailure("Malformed balance response") from e


def parse_account_state(response: httpx.Response) -> AccountState:
    """Accept {"balance": .., "nonce": ..} or a "balance nonce" text line."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        return AccountState(
            balance=_parse_number(data.get("balance")),
            nonce=_parse_nonce(data.get("nonce")),
        )
    parts = response.text.strip().split()
    if len(parts) < 2:
        raise TransportFailure("Malformed balance response")
    return AccountState(balance=_parse_number(parts[0]), nonce=_parse_nonce(parts[1]))


def parse_submit_response(response: httpx.Response) -> SubmitResult:
    try:
        data = response.json()
    except ValueError:
        data = None
    text = response.text.strip()
    if response.status_code == 200:
        if isinstance(data, dict) and data.get("status") == "accepted":
            return SubmitResult(accepted=True, tx_hash=data.get("tx_hash"), detail=data)
        if data is None and text.lower().startswith("ok"):
            return SubmitResult(accepted=True, tx_hash=text.split()[-1], detail=text)
    return SubmitResult(accepted=False, detail=data if data is not None else text)


class LedgerClient:
    """
    Async client for one Octra RPC node.

    Owns an httpx.AsyncClient unless one is injected (tests pass a client
    built on httpx.MockTransport). Call aclose() on shutdown.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff_sec: float = DEFAULT_RETRY_BACKOFF_SEC,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        self._rpc_url = rpc_url.rstrip("/")
        self._max_retries = max(1, max_retries)
        self._retry_backoff = retry_backoff_sec
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._rpc_url,
            timeout=timeout_sec,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        retry_on: tuple[type[Exception], ...] = (httpx.TransportError,),
        **kwargs: Any,
    ) -> httpx.Response:
        last_error: str = ""
        for attempt in range(1, self._max_retries + 1):
            try:
                response = await self._client.request(method, path, **kwargs)
            except retry_on as e:
                last_error = f"{type(e).__name__}: {e}"
            except httpx.HTTPError as e:
                logger.warning("ledger_request_failed", method=method, path=path, error=str(e))
                raise TransportFailure(f"Ledger request failed: {type(e).__name__}") from e
            else:
                if response.status_code < 500:
                    return response
                last_error = f"HTTP {response.status_code}"
            if attempt < self._max_retries:
                delay = self._retry_backoff * attempt
                logger.debug(
                    "ledger_request_retry",
                    method=method,
                    path=path,
                    attempt=attempt,
                    delay_sec=delay,
                    error=last_error,
                )
                await self._sleep(delay)
        logger.warning("ledger_request_exhausted", method=method, path=path, error=last_error)
        raise TransportFailure(f"Ledger unreachable ({last_error})")

    async def get_account_state(self, address: str) -> AccountState:
        response = await self._request("GET", f"/balance/{address}")
        if response.status_code == 403:
            response = await self._request(
                "GET", f"/balance/{address}", headers={"User-Agent": BROWSER_USER_AGENT}
            )
        if response.status_code == 404:
            return AccountState.empty()
        if response.status_code >= 400:
            raise TransportFailure(f"Balance query failed (HTTP {response.status_code})")
        return parse_account_state(response)

    async def submit_transaction(self, payload: dict[str, Any]) -> SubmitResult:
        response = await self._request("POST", "/send-tx", json=payload, retry_on=_NOT_SENT_ERRORS)
        result = parse_submit_response(response)
        if not result.accepted:
            logger.info(
                "ledger_submit_rejected",
                status_code=response.status_code,
                nonce=payload.get("nonce"),
                detail=str(result.detail)[:200],
            )
        return result

    async def _get_transaction(self, tx_hash: str) -> dict[str, Any]:
        response = await self._request("GET", f"/tx/{tx_hash}")
        if response.status_code >= 400:
            raise TransportFailure(f"Transaction lookup failed (HTTP {response.status_code})")
        data = response.json()
        return data if isinstance(data, dict) else {}

    async def get_recent_transactions(
        self,
        address: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[LedgerTransaction]:
        response = await self._request("GET", f"/address/{address}", params={"limit": limit})
        if response.status_code == 404:
            return []
        if response.status_code >= 400:
            raise TransportFailure(f"History query failed (HTTP {response.status_code})")
        try:
            data = response.json()
        except ValueError as e:
            raise TransportFailure("Malformed history response") from e
        refs = (data or {}).get("recent_transactions") or []
        hashes = [ref["hash"] for ref in refs[:limit] if isinstance(ref, dict) and ref.get("hash")]
        if not hashes:
            return []
        details = await asyncio.gather(*(self._get_transaction(h) for h in hashes))
        return [_to_ledger_transaction(h, d, address) for h, d in zip(hashes, details)]


def _to_ledger_transaction(tx_hash: str, tx: dict[str, Any], address: str) -> LedgerTransaction:
    parsed = tx.get("parsed_tx") or {}
    incoming = parsed.get("to") == address
    try:
        amount = Decimal(str(parsed.get("amount") or 0))
    except InvalidOperation:
        amount = Decimal(0)
    epoch = tx.get("epoch")
    return LedgerTransaction(
        hash=tx.get("hash") or tx_hash,
        direction="in" if incoming else "out",
        amount=amount,
        counterparty=parsed.get("from") if incoming else parsed.get("to"),
        timestamp=parsed.get("timestamp"),
        nonce=int(parsed.get("nonce") or 0),
        status=f"confirmed (epoch {epoch})" if epoch else "pending",
    )
