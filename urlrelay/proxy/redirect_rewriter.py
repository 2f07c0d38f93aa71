import logging
from typing import List, Tuple

from urlrelay.proxy.errors import RewriteParseError
from urlrelay.proxy.url_codec import RewriteContext, wrap

logger = logging.getLogger("uvicorn.error")


def is_redirect(status_code: int) -> bool:
    return 300 <= status_code < 400


def rewrite_location(location: str, context: RewriteContext) -> str:
    """
    Point a redirect back through the proxy.

    Handles both absolute and relative Location values; a value that does not
    parse is passed through unchanged.
    """
    if not location:
        return location
    try:
        return wrap(location, context)
    except RewriteParseError as e:
        logger.warning(f"[Redirect] Leaving unparseable Location as-is: {e}")
        return location


def rewrite_redirect_headers(
    headers: List[Tuple[str, str]], context: RewriteContext
) -> List[Tuple[str, str]]:
    return [
        (name, rewrite_location(value, context))
        if name.lower() in ("location", "content-location")
        else (name, value)
        for name, value in headers
    ]
