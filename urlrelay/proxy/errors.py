"""
Error taxonomy of the proxy.

Each error knows the HTTP status it maps to. ``RewriteParseError`` never
reaches the client: rewriters catch it and leave the offending value as-is.
"""

from typing import Optional


class ProxyError(Exception):
    status_code = 500

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class UnresolvableTargetError(ProxyError):
    """The incoming path carries no usable destination."""

    status_code = 400


class BlockedTargetError(ProxyError):
    """The destination is rejected by the operator's allow/block lists."""

    status_code = 403


class UpstreamFetchError(ProxyError):
    """The destination could not be reached or the connection failed."""

    status_code = 502


class RewriteParseError(ProxyError):
    """A single URL inside content could not be parsed."""
