"""
FastAPI server: the HTTP backend the chat bot calls.

Wallet lifecycle (create, import, info, key export), balance and history
lookups, single and multi-recipient sends, and auto-cycle control. Domain
errors (WalletError) become JSON bodies {"success": false, "error", "code"}
with the error's HTTP status. Services are built in the lifespan hook unless
create_app() is handed a prepared Services instance.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from backend_octra import __version__
from backend_octra.config import get_settings
from backend_octra.core.exceptions import (
    InvalidRecipients,
    LedgerRejected,
    NonceUnavailable,
    TransportFailure,
    WalletError,
)
from backend_octra.octra_logging import get_logger
from backend_octra.services import Services, build_services

logger = get_logger(__name__)

SERVER_CAPACITY = 100
_STATUS_BY_CODE = {cls.code: cls.status_code for cls in (LedgerRejected, NonceUnavailable, TransportFailure)}


# -----------------------------------------------------------------------------
# Request models
# -----------------------------------------------------------------------------


class _CamelBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateWalletRequest(_CamelBody):
    """POST /create-wallet body."""

    user_id: int | str = Field(..., alias="userId", description="Chat user id")
    username: str | None = Field(None, max_length=256)


class UpdateUsernameRequest(_CamelBody):
    user_id: int | str = Field(..., alias="userId")
    username: str = Field(..., min_length=1, max_length=256)


class UpdateWalletRequest(_CamelBody):
    """POST /update-wallet body: last incoming tx the bot already notified about."""

    user_id: int | str = Field(..., alias="userId")
    tx_hash: str = Field(..., alias="txHash", min_length=1)


class SwitchWalletRequest(_CamelBody):
    user_id: int | str = Field(..., alias="userId")
    private_key: str = Field(..., alias="privateKey", min_length=1, description="64/128 hex or 44-char base64")


class SendTxRequest(_CamelBody):
    user_id: int | str = Field(..., alias="userId")
    recipient: str = Field(..., min_length=1)
    amount: Any = Field(..., description="Whole OCT, number or decimal string")
    message: str | None = Field(None, max_length=1024, description="Optional memo (not signed)")


class RecipientBody(BaseModel):
    address: str
    amount: Any


class SendMultiRequest(_CamelBody):
    user_id: int | str = Field(..., alias="userId")
    recipients: list[RecipientBody] = Field(default_factory=list)


class AutoTxStartRequest(_CamelBody):
    user_id: int | str = Field(..., alias="userId")
    amount: Any = Field(..., description="Whole OCT to cycle per pass")


class AutoTxStopRequest(_CamelBody):
    user_id: int | str = Field(..., alias="userId")


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def get_services(request: Request) -> Services:
    return request.app.state.services


def create_app(services: Services | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        svc = services or build_services(get_settings())
        app.state.services = svc
        await svc.start()
        logger.info("api_started", rpc_url=svc.settings.rpc_url)
        yield
        await svc.aclose()
        logger.info("api_stopped")

    app = FastAPI(
        title="Octra Wallet Backend",
        description="Custodial Octra wallets, transfers and auto-cycle control for the chat bot.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.active_requests = 0
    app.state.started_at = time.monotonic()

    @app.middleware("http")
    async def count_requests(request: Request, call_next):
        app.state.active_requests += 1
        try:
            return await call_next(request)
        finally:
            app.state.active_requests -= 1

    @app.exception_handler(WalletError)
    async def wallet_error_handler(request: Request, exc: WalletError) -> JSONResponse:
        logger.info("api_wallet_error", path=request.url.path, code=exc.code)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Missing required fields", "code": "InvalidRequest"},
        )

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    def health() -> dict[str, Any]:
        """Liveness probe."""
        return {"status": "OK", "uptime": round(time.monotonic() - app.state.started_at, 3)}

    @app.get("/server-status")
    def server_status() -> dict[str, Any]:
        """Load hint for bots choosing between backends."""
        active = app.state.active_requests
        return {
            "status": "OK",
            "activeRequests": active,
            "capacity": SERVER_CAPACITY,
            "availableSlots": max(0, SERVER_CAPACITY - active),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.post("/create-wallet")
    async def create_wallet(body: CreateWalletRequest, svc: Services = Depends(get_services)):
        return await svc.wallets.create_wallet(str(body.user_id), body.username)

    @app.get("/get-user-info/{user_id}")
    async def get_user_info(user_id: str, svc: Services = Depends(get_services)):
        return await svc.wallets.get_user_info(user_id)

    @app.get("/get-keys/{user_id}")
    async def get_keys(user_id: str, svc: Services = Depends(get_services)):
        return await svc.wallets.export_keys(user_id)

    @app.post("/update-username")
    async def update_username(body: UpdateUsernameRequest, svc: Services = Depends(get_services)):
        return await svc.wallets.update_username(str(body.user_id), body.username)

    @app.post("/update-wallet")
    async def update_wallet(body: UpdateWalletRequest, svc: Services = Depends(get_services)):
        return await svc.wallets.set_last_notified_tx(str(body.user_id), body.tx_hash)

    @app.get("/wallets")
    async def list_wallets(svc: Services = Depends(get_services)):
        return {"wallets": await svc.wallets.list_wallets()}

    @app.get("/get-all-users")
    async def get_all_users(svc: Services = Depends(get_services)):
        return {"users": [{"userId": uid} for uid in await svc.wallets.list_user_ids()]}

    @app.get("/get-balance/{address}")
    async def get_balance(address: str, svc: Services = Depends(get_services)):
        out = await svc.wallets.get_balance(address)
        out["lastUpdated"] = datetime.now(timezone.utc).isoformat()
        return out

    @app.get("/get-transactions/{address}")
    async def get_transactions(address: str, svc: Services = Depends(get_services)):
        return await svc.wallets.get_history(address)

    @app.post("/switch-wallet")
    async def switch_wallet(body: SwitchWalletRequest, svc: Services = Depends(get_services)):
        return await svc.wallets.switch_wallet(str(body.user_id), body.private_key)

    @app.post("/send-tx")
    async def send_tx(body: SendTxRequest, svc: Services = Depends(get_services)):
        result = await svc.dispatcher.send_single(str(body.user_id), body.recipient, body.amount, body.message)
        if result.success:
            return result.to_dict()
        return JSONResponse(
            status_code=_STATUS_BY_CODE.get(result.error_code, 400),
            content=result.to_dict(),
        )

    @app.post("/send-multi")
    async def send_multi(body: SendMultiRequest, svc: Services = Depends(get_services)):
        if not body.recipients:
            raise InvalidRecipients()
        batch = await svc.dispatcher.send_multi(
            str(body.user_id),
            [{"address": r.address, "amount": r.amount} for r in body.recipients],
        )
        return batch.to_dict()

    @app.post("/auto-tx/start")
    async def auto_tx_start(body: AutoTxStartRequest, svc: Services = Depends(get_services)):
        return await svc.engine.start(str(body.user_id), body.amount)

    @app.post("/auto-tx/stop")
    async def auto_tx_stop(body: AutoTxStopRequest, svc: Services = Depends(get_services)):
        return await svc.engine.stop(str(body.user_id))

    @app.get("/auto-tx/status/{user_id}")
    async def auto_tx_status(user_id: str, svc: Services = Depends(get_services)):
        return await svc.engine.status(user_id)


app = create_app()
