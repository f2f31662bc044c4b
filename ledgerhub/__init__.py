"""Double-entry ledger rules, request handlers and signed webhook delivery."""

__version__ = "0.1.0"