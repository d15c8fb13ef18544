"""Upstream provider implementations."""

from .jsonrpc import JsonRpcProvider

__all__ = ["JsonRpcProvider"]
