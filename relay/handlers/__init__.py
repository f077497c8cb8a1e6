"""Inbound message handlers."""

from .dispatch_handler import EnvelopeSink, RequestDispatcher

__all__ = ["EnvelopeSink", "RequestDispatcher"]
