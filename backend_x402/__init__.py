"""
Backend X402: payment-gated crypto chat gateway.

Every chat message is paid for with a USDC micro-transfer on Solana. The
gateway verifies the transfer on-chain, rate limits per wallet, classifies
the message and answers from live market data or a generative model.
"""

__version__ = "0.1.0"
