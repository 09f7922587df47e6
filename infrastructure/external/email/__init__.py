"""Outbound email adapters."""
from .logging_sender import LoggingEmailSender

__all__ = ["LoggingEmailSender"]
