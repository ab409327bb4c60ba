"""
API server package: HTTP interface of the chat gateway.

Validates requests, gates them on USDC payment and rate limits, and
delegates to the chat and market data layers for the reply.
"""
