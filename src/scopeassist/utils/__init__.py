"""Utility helpers."""

from .logging import SecretRedactionFilter, get_log_path, register_secret, setup_logging

__all__ = ["SecretRedactionFilter", "get_log_path", "register_secret", "setup_logging"]
