"""JSON-RPC provider."""

from .provider import JsonRpcProvider

__all__ = ["JsonRpcProvider"]
