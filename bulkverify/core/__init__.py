"""Core utilities shared across the bulk verification service."""

from bulkverify.core.logging import JsonFormatter, configure_logging

__all__ = [
    "JsonFormatter",
    "configure_logging",
]
