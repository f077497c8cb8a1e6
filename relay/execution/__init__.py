"""Execution pipeline for relayed HTTP requests."""

from .http import (
    ExecutionError,
    HttpExecutor,
    OutboundCall,
    build_outbound_call,
    describe_failure,
    merge_headers,
    run_in_own_thread,
)
from .results import ResponseCorrelator

__all__ = [
    "ExecutionError",
    "HttpExecutor",
    "OutboundCall",
    "ResponseCorrelator",
    "build_outbound_call",
    "describe_failure",
    "merge_headers",
    "run_in_own_thread",
]
