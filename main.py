"""
Main entrypoint: FastAPI chat gateway under uvicorn.

Env: SOLANA_RPC_URL / HELIUS_API_KEY, SOLANA_NETWORK, PAYMENT_RECIPIENT,
OPENAI_API_KEY (optional), RATE_LIMIT_DB_URL (optional), API_HOST, API_PORT, etc.

Equivalent: uvicorn backend_x402.api_server.app:app --host 0.0.0.0 --port 8000
"""

import os

# Configure structured JSON logging before other imports that may log
from backend_x402.x402_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Load settings and run the FastAPI server in the main thread."""
    from backend_x402.config.settings import get_settings

    settings = get_settings()
    logger.info(
        "main_config_loaded",
        network=settings.solana_network,
        recipient=settings.payment_recipient[:8] + "...",
        amount=str(settings.payment_amount),
        rate_limit_store="sql" if settings.rate_limit_db_url else "memory",
    )

    from backend_x402.api_server.app import app
    import uvicorn

    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())


if __name__ == "__main__":
    main()
