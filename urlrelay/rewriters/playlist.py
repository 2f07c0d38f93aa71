"""HLS playlist rewriter routing every media URI back through the proxy."""

import logging
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from urlrelay.proxy.errors import RewriteParseError
from urlrelay.proxy.url_codec import RewriteContext, wrap

logger = logging.getLogger("uvicorn.error")

PLAYLIST_EXTENSIONS = (".m3u8", ".m3u")


def is_playlist(content_type: Optional[str], target: str) -> bool:
    if content_type and "mpegurl" in content_type.lower():
        return True
    return urlsplit(target).path.lower().endswith(PLAYLIST_EXTENSIONS)


def playlist_base(target: str) -> str:
    """The target with its path cut after the last ``/`` and no query."""
    parts = urlsplit(target)
    path = parts.path[: parts.path.rfind("/") + 1] or "/"
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


class PlaylistRewriter:
    """
    Rewrites an M3U8 playlist line by line.

    URI lines are resolved against the playlist's directory and proxied.
    Comment and blank lines are emitted byte-for-byte: tags such as
    ``#EXTINF`` carry timing data that must not change.
    """

    def __init__(self, context: RewriteContext):
        self.context = context
        self.base_url = playlist_base(context.target)

    def rewrite(self, content: str) -> str:
        return "\n".join(self._rewrite_line(line) for line in content.split("\n"))

    def rewrite_bytes(self, body: bytes, encoding: Optional[str] = None) -> bytes:
        encoding = encoding or "utf-8"
        text = body.decode(encoding, errors="surrogateescape")
        return self.rewrite(text).encode(encoding, errors="surrogateescape")

    def _rewrite_line(self, line: str) -> str:
        content = line.rstrip("\r")
        ending = line[len(content):]
        uri = content.strip()
        if not uri or uri.startswith("#"):
            return line

        try:
            return wrap(uri, self.context, base=self.base_url) + ending
        except RewriteParseError as e:
            logger.debug(f"[Playlist] Keeping line unchanged: {e}")
            return line
