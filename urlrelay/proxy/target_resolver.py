import logging
from typing import Optional
from urllib.parse import unquote, urljoin, urlsplit

from urlrelay.proxy.errors import BlockedTargetError, UnresolvableTargetError
from urlrelay.proxy.settings import ProxySettings
from urlrelay.proxy.url_codec import (
    collapse_nested,
    decode,
    is_absolute,
    normalize_embedded,
    origin_of,
    same_origin,
)
from urlrelay.utils import redact_query

logger = logging.getLogger("uvicorn.error")


class TargetResolver:
    """
    Recover the absolute destination of an incoming proxy request.

    Browsers drop the proxy's own path when they resolve references such as
    ``/assets/app.js``, so the destination is rebuilt from an ordered chain of
    signals: the path itself, the referring proxied page, the recovery cookie
    and finally a bare-hostname guess. The first signal yielding an absolute
    URL wins.
    """

    def __init__(self, settings: ProxySettings):
        self.settings = settings

    def resolve(
        self,
        path: str,
        proxy_origin: str,
        query: str = "",
        referer: Optional[str] = None,
        recovery_cookie: Optional[str] = None,
    ) -> str:
        remainder = path[1:] if path.startswith("/") else path

        target = self._from_path(remainder)
        source = "path"
        if target is None:
            target = self._from_referer(remainder, referer, proxy_origin)
            source = "referer"
        if target is None:
            target = self._from_cookie(remainder, recovery_cookie)
            source = "cookie"
        if target is None:
            target = self._from_bare_host(remainder)
            source = "hostname"
        if target is None:
            raise UnresolvableTargetError(
                f"Cannot determine a destination URL from '{path}'. "
                f"Use {proxy_origin}/https://example.com/",
                url=path,
            )

        target = self._unwrap(target, proxy_origin)
        if query:
            target = f"{target}{'&' if '?' in target else '?'}{query}"

        self._validate(target)
        logger.debug(f"[Resolver] {path} -> {redact_query(target)} (via {source})")
        return target

    @staticmethod
    def _from_path(remainder: str) -> Optional[str]:
        candidate = normalize_embedded(remainder)
        return candidate if is_absolute(candidate) else None

    def _from_referer(
        self, remainder: str, referer: Optional[str], proxy_origin: str
    ) -> Optional[str]:
        if not referer or not is_absolute(referer):
            return None
        if not same_origin(referer, proxy_origin):
            return None

        base = collapse_nested(decode(referer, proxy_origin))
        if not is_absolute(base):
            return None
        # Root-relative: "/assets/x.js" belongs to the site root, not the
        # directory of the previous page.
        return urljoin(base, "/" + remainder)

    @staticmethod
    def _from_cookie(remainder: str, recovery_cookie: Optional[str]) -> Optional[str]:
        if not recovery_cookie:
            return None
        recorded = unquote(recovery_cookie)
        if not is_absolute(recorded):
            return None
        return urljoin(origin_of(recorded), "/" + remainder)

    @staticmethod
    def _from_bare_host(remainder: str) -> Optional[str]:
        if "." not in remainder or remainder.startswith("/"):
            return None
        candidate = "https://" + remainder
        return candidate if is_absolute(candidate) else None

    @staticmethod
    def _unwrap(target: str, proxy_origin: str) -> str:
        target = collapse_nested(target)
        # A destination on the proxy itself would loop forever
        while same_origin(target, proxy_origin):
            unwrapped = collapse_nested(decode(target, proxy_origin))
            # The bare proxy origin decodes to itself
            if unwrapped == target or not is_absolute(unwrapped):
                raise UnresolvableTargetError(
                    "The destination points back at this proxy.", url=target
                )
            target = unwrapped
        return target

    def _validate(self, target: str) -> None:
        try:
            parts = urlsplit(target)
            parts.port  # raises on an out-of-range port
        except ValueError as exc:
            raise UnresolvableTargetError(f"Invalid URL: {target}", url=target) from exc

        hostname = (parts.hostname or "").lower()
        if not hostname:
            raise UnresolvableTargetError(f"Invalid URL: {target}", url=target)

        if hostname in self.settings.origin_blocklist:
            raise BlockedTargetError(
                "The origin was blacklisted by the operator of this proxy.", url=target
            )
        if self.settings.origin_allowlist and hostname not in self.settings.origin_allowlist:
            raise BlockedTargetError(
                "The origin was not whitelisted by the operator of this proxy.",
                url=target,
            )
        lowered = target.lower()
        if any(keyword in lowered for keyword in self.settings.keyword_blocklist):
            raise BlockedTargetError(
                "The keyword was blacklisted by the operator of this proxy.", url=target
            )
