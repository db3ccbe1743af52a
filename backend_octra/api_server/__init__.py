"""
API server package: HTTP interface used by the chat bot.

Exposes wallet lifecycle, balances, transfers and auto-cycle control, and
maps domain errors to JSON responses.
"""
