"""
Encoding of destination URLs into proxy paths and back.

A destination ``https://site.example/a?b=1`` is addressed through the proxy as
``{proxy_origin}/https://site.example/a?b=1``. Every rewriter goes through
:func:`wrap`, so HTML, playlists, redirects and the browser shim agree on one
representation.
"""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urljoin, urlsplit

from urlrelay.proxy.errors import RewriteParseError

HTTP_SCHEMES = ("http", "https")

# Values carrying one of these schemes never leave the document
SKIPPED_PREFIXES = ("data:", "blob:", "javascript:", "about:", "mailto:", "tel:", "#")

# Element attributes holding a single URL, rewritten in markup and by the browser shim
URL_ATTRIBUTES = ("href", "src", "action", "data", "poster", "data-src", "formaction")

_SCHEME_SEPARATOR_RE = re.compile(r"^(https?):/*", re.IGNORECASE)
_ENCODED_SCHEME_RE = re.compile(r"^https?%3A", re.IGNORECASE)
_EMBEDDED_SCHEME_RE = re.compile(r"https?:/", re.IGNORECASE)
_ROOT_EMBEDDED_RE = re.compile(r"^/https?(:|%3A)", re.IGNORECASE)


@dataclass(frozen=True)
class RewriteContext:
    """Per-request pair every content rewriter works against."""

    proxy_origin: str
    target: str

    @property
    def target_origin(self) -> str:
        return origin_of(self.target)


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def same_origin(first: str, second: str) -> bool:
    a, b = urlsplit(first), urlsplit(second)
    return (a.scheme.lower(), a.netloc.lower()) == (b.scheme.lower(), b.netloc.lower())


def is_absolute(url: str) -> bool:
    """True for a parseable ``http``/``https`` URL with a host."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme.lower() in HTTP_SCHEMES and bool(parts.netloc)


def is_special(value: str) -> bool:
    return value.lstrip().lower().startswith(SKIPPED_PREFIXES)


def is_proxied(url: str, proxy_origin: str) -> bool:
    """True when ``url`` already points at the proxy itself."""
    if _ROOT_EMBEDDED_RE.match(url):
        return True
    return is_absolute(url) and same_origin(url, proxy_origin)


def normalize_embedded(value: str) -> str:
    """
    Repair an embedded destination the way clients and front proxies mangle it.

    Handles a percent-encoded scheme, a protocol-relative ``//host`` value and
    a collapsed ``https:/host`` separator. Anything else is returned as-is.
    """
    if _ENCODED_SCHEME_RE.match(value):
        value = unquote(value)
    if value.startswith("//"):
        return "https:" + value
    match = _SCHEME_SEPARATOR_RE.match(value)
    if match:
        value = f"{match.group(1)}://{value[match.end():]}"
    return value


def collapse_nested(url: str) -> str:
    """
    Keep only the innermost destination of a double-wrapped URL.

    Only the path is inspected so that query values carrying URLs
    (``?next=https://...``) survive.
    """
    path_part = url.split("?", 1)[0]
    matches = list(_EMBEDDED_SCHEME_RE.finditer(path_part))
    if len(matches) > 1:
        return normalize_embedded(url[matches[-1].start():])
    return url


def encode(target: str, proxy_origin: str) -> str:
    if is_proxied(target, proxy_origin):
        return target
    return f"{proxy_origin}/{target}"


def decode(encoded: str, proxy_origin: str) -> str:
    prefix = proxy_origin + "/"
    if encoded[: len(prefix)].lower() == prefix.lower():
        remainder = encoded[len(prefix):]
    elif encoded.startswith("/"):
        remainder = encoded[1:]
    else:
        remainder = encoded
    return normalize_embedded(remainder)


def wrap(value: str, context: RewriteContext, base: Optional[str] = None) -> str:
    """
    Turn a URL found in content into its proxied form.

    Special schemes, fragment-only references, values already pointing at the
    proxy and anything resolving to a non-HTTP URL come back unchanged.
    Raises RewriteParseError when the value cannot be resolved.
    """
    candidate = value.strip()
    if not candidate or is_special(candidate):
        return value
    if is_proxied(candidate, context.proxy_origin):
        return value

    try:
        absolute = urljoin(base or context.target, candidate)
        parts = urlsplit(absolute)
        parts.port  # raises on an out-of-range port
    except ValueError as exc:
        raise RewriteParseError(f"Cannot resolve {candidate!r}", url=candidate) from exc

    if parts.scheme.lower() not in HTTP_SCHEMES or not parts.netloc:
        return value
    return encode(absolute, context.proxy_origin)
