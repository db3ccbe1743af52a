"""
Backend Octra: custodial Octra wallet service behind a Telegram bot.

Issues keypairs for users, signs and relays transfers to the Octra RPC node,
reports balances and history, and runs the recurring auto-cycle job.
Modular architecture with clear separation between key handling, ledger
client, dispatch pipeline, background worker, storage, and API server.
"""

__version__ = "0.1.0"
