"""
Main entrypoint: FastAPI server with the auto-cycle scheduler on the same event loop.

The scheduler, ledger client and store are built in the app lifespan, so the
API and the auto-cycle jobs share one loop and one set of address locks.
On SIGINT/SIGTERM uvicorn runs the lifespan shutdown and pending
notifications are drained.

Env: OCTRA_RPC_URL, DATABASE_URL or DB_PATH, TELEGRAM_BOT_TOKEN, API_HOST, PORT, etc.

API only, without this wrapper: uvicorn backend_octra.api_server.app:app --host 0.0.0.0 --port 3000
"""

import os

# Configure structured JSON logging before other imports that may log
from backend_octra.octra_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Load settings and run the API server in the main thread."""
    from backend_octra.config import get_settings
    from backend_octra.config.env import mask_url

    settings = get_settings()
    logger.info(
        "main_config_loaded",
        rpc_url=settings.rpc_url,
        database_url=mask_url(settings.database_url),
        notifier="telegram" if settings.telegram_bot_token else "disabled",
    )

    from backend_octra.api_server.app import app
    import uvicorn

    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
