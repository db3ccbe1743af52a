"""
Structured logging for the Octra wallet backend.

JSON logs with timestamp, event_type, address and user id; key material redacted.
Use get_logger() in all modules for aggregation-friendly output.
"""

from backend_octra.octra_logging.logger import bind_wallet, get_logger

__all__ = ["bind_wallet", "get_logger"]
