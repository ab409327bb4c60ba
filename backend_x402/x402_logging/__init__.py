"""
Structured logging for Backend X402.

JSON logs with timestamp, wallet_id and event_type.
Use get_logger() in all gateway modules.
"""

from backend_x402.x402_logging.logger import bind_wallet, get_logger

__all__ = ["bind_wallet", "get_logger"]
