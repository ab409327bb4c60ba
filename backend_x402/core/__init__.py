"""
Core utilities shared by the ledger, chat and API layers.

Defines the exception taxonomy every layer raises and the API server renders.
"""
