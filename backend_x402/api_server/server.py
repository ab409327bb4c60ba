"""
FastAPI server: pay-per-message crypto chat gateway.

POST /api/x402-chatbot is the paid chat endpoint (402 until a verified USDC
payment signature is supplied). Two helper routes build an unsigned payment
transaction for the wallet and relay the signed one to the ledger.
Config via env (see backend_x402.config).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Awaitable, TypeVar

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend_x402 import __version__
from backend_x402.api_server.controller import ChatGatewayController, build_controller
from backend_x402.api_server.schemas import (
    ChatRequest,
    PaymentSubmitRequest,
    PaymentTransactionRequest,
)
from backend_x402.config.settings import get_settings
from backend_x402.core.exceptions import InternalError, InvalidRequestBody, X402Error
from backend_x402.x402_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def _guarded(route: str, call: Awaitable[T]) -> T:
    """Await a controller call; anything that is not an X402Error becomes InternalError."""
    try:
        return await call
    except X402Error:
        raise
    except Exception as e:
        logger.exception("route_unhandled_error", route=route, error_type=type(e).__name__)
        raise InternalError() from e


def _controller(request: Request) -> ChatGatewayController:
    controller = getattr(request.app.state, "controller", None)
    if controller is None:
        raise InternalError()
    return controller


def create_app(controller: ChatGatewayController | None = None) -> FastAPI:
    """
    Build the ASGI app.

    With no controller one is built from settings at startup and closed on
    shutdown; an injected controller (tests) is used as-is and left open.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = controller is None
        app.state.controller = build_controller(get_settings()) if owned else controller
        logger.info("api_started", owned_controller=owned)
        yield
        if owned:
            await app.state.controller.close()
        logger.info("api_stopped")

    app = FastAPI(
        title="Backend X402 API",
        description="Pay-per-message crypto assistant gated by USDC payments on Solana (HTTP 402).",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.controller = controller

    @app.exception_handler(X402Error)
    async def x402_error_handler(request: Request, exc: X402Error) -> JSONResponse:
        """Consistent JSON error body for every gateway error."""
        if exc.status_code >= 500:
            logger.warning("api_error_response", path=request.url.path, status=exc.status_code, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("api_invalid_body", path=request.url.path, error_count=len(exc.errors()))
        err = InvalidRequestBody()
        return JSONResponse(status_code=err.status_code, content=err.to_payload())

    @app.post("/api/x402-chatbot")
    async def chat(body: ChatRequest, request: Request) -> JSONResponse:
        """
        Paid chat. Returns the assistant reply, or the USDC balance when
        checkBalance is set. 402 without a verified payment signature.
        """
        resp = await _guarded("chat", _controller(request).handle_chat(body))
        return JSONResponse(status_code=200, content=resp.model_dump(by_alias=True))

    @app.post("/api/x402-chatbot/payment-transaction")
    async def payment_transaction(body: PaymentTransactionRequest, request: Request) -> JSONResponse:
        """Unsigned USDC transfer (payer -> recipient) for the wallet to sign."""
        resp = await _guarded(
            "payment_transaction",
            _controller(request).build_payment_transaction(body.wallet_address, body.memo),
        )
        return JSONResponse(status_code=200, content=resp.model_dump(by_alias=True))

    @app.post("/api/x402-chatbot/payment-submit")
    async def payment_submit(body: PaymentSubmitRequest, request: Request) -> JSONResponse:
        """Relay a wallet-signed transaction; the returned signature is the payment proof."""
        resp = await _guarded("payment_submit", _controller(request).submit_payment(body.transaction))
        return JSONResponse(status_code=200, content=resp.model_dump(by_alias=True))

    @app.get("/health")
    def health() -> dict[str, Any]:
        """Liveness probe: API is up."""
        return {"status": "ok"}

    return app
