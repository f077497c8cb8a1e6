from .proxy import (
    DecodeError,
    ProxyMessage,
    build_setup_message,
    encode_message,
    parse_message,
)

__all__ = [
    "DecodeError",
    "ProxyMessage",
    "build_setup_message",
    "encode_message",
    "parse_message",
]
