from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import quote, urlsplit

from urlrelay.proxy.settings import ProxySettings
from urlrelay.proxy.url_codec import (
    RewriteContext,
    collapse_nested,
    decode,
    is_absolute,
    same_origin,
)


# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

# Headers that identify the proxy host or the true client
FORWARDING_HEADERS = frozenset(
    {
        "forwarded",
        "via",
        "x-real-ip",
        "true-client-ip",
        "x-client-ip",
        "x-request-start",
        "cdn-loop",
    }
)

# Headers that stop a document from running inside the proxy's origin
EMBEDDING_BLOCKERS = frozenset(
    {
        "content-security-policy",
        "content-security-policy-report-only",
        "x-frame-options",
        "x-content-type-options",
        "x-xss-protection",
        "clear-site-data",
    }
)

SAFE_METHODS = frozenset({"GET", "HEAD"})

ALLOW_ORIGIN = "Access-Control-Allow-Origin"
ALLOW_CREDENTIALS = "Access-Control-Allow-Credentials"
EXPOSE_HEADERS = "Access-Control-Expose-Headers"


@dataclass(frozen=True)
class HeaderPolicy:
    """Static strip tables per direction."""

    request_strip: FrozenSet[str] = field(
        default=HOP_BY_HOP_HEADERS
        | FORWARDING_HEADERS
        | {"host", "origin", "referer", "content-length", "accept-encoding"}
    )
    request_strip_prefixes: Tuple[str, ...] = ("x-forwarded-", "cf-", "x-heroku-")
    response_strip: FrozenSet[str] = field(
        default=HOP_BY_HOP_HEADERS
        | EMBEDDING_BLOCKERS
        # Bodies are re-emitted decoded, so the upstream framing no longer applies
        | {"content-encoding", "content-length"}
        | {
            ALLOW_ORIGIN.lower(),
            ALLOW_CREDENTIALS.lower(),
            EXPOSE_HEADERS.lower(),
        }
    )

    def strips_request(self, name: str) -> bool:
        lowered = name.lower()
        return lowered in self.request_strip or lowered.startswith(
            self.request_strip_prefixes
        )

    def strips_response(self, name: str) -> bool:
        return name.lower() in self.response_strip


DEFAULT_POLICY = HeaderPolicy()


def rewrite_set_cookie(set_cookie: str) -> str:
    """
    Re-home a cookie on the proxy: drop ``Domain`` and force ``Path=/``.

    Remaining attributes are kept verbatim.
    """
    parts = [part.strip() for part in set_cookie.split(";")]
    name_value, attributes = parts[0], parts[1:]
    kept = []
    for attribute in attributes:
        key = attribute.split("=", 1)[0].strip().lower()
        if not attribute or key in ("domain", "path"):
            continue
        kept.append(attribute)
    return "; ".join([name_value, "Path=/"] + kept)


def preflight_headers(request_headers: Mapping[str, str]) -> Dict[str, str]:
    """Static answer to a CORS preflight, echoing what the browser asked for."""
    return {
        ALLOW_ORIGIN: "*",
        ALLOW_CREDENTIALS: "true",
        "Access-Control-Allow-Methods": request_headers.get(
            "access-control-request-method"
        )
        or "*",
        "Access-Control-Allow-Headers": request_headers.get(
            "access-control-request-headers"
        )
        or "*",
    }


def cors_headers() -> Dict[str, str]:
    return {ALLOW_ORIGIN: "*", ALLOW_CREDENTIALS: "true"}


class HeaderTransformer:
    """
    Builds the outbound request headers and the returned response headers so
    the destination sees a direct client and the browser sees a same-origin,
    embeddable response.
    """

    def __init__(self, settings: ProxySettings, policy: HeaderPolicy = DEFAULT_POLICY):
        self.settings = settings
        self.policy = policy

    def request_headers(
        self,
        incoming: Mapping[str, str],
        method: str,
        context: RewriteContext,
    ) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        for name, value in incoming.items():
            lowered = name.lower()
            if self.policy.strips_request(lowered):
                continue
            if lowered == "cookie":
                value = self._forwarded_cookie(value)
                if not value:
                    continue
            headers[lowered] = value

        headers["host"] = urlsplit(context.target).netloc
        if method.upper() not in SAFE_METHODS or self.settings.spoof_origin_on_safe_methods:
            headers["origin"] = context.target_origin
        headers["referer"] = self._referer(incoming.get("referer"), context)
        if not headers.get("user-agent"):
            headers["user-agent"] = self.settings.default_user_agent
        # Only encodings httpx can decode itself
        headers["accept-encoding"] = "gzip, deflate"
        return headers

    def response_headers(
        self,
        upstream: Iterable[Tuple[str, str]],
        context: RewriteContext,
    ) -> List[Tuple[str, str]]:
        headers: List[Tuple[str, str]] = []
        for name, value in upstream:
            if self.policy.strips_response(name):
                continue
            if name.lower() == "set-cookie":
                value = rewrite_set_cookie(value)
            headers.append((name, value))

        exposed = []
        for name, _ in headers:
            if name.lower() not in exposed:
                exposed.append(name.lower())
        headers.extend(cors_headers().items())
        if exposed:
            headers.append((EXPOSE_HEADERS, ",".join(exposed)))
        headers.append(("x-final-url", context.target))
        return headers

    def recovery_cookie(self, context: RewriteContext) -> str:
        origin = quote(context.target_origin, safe="")
        return f"{self.settings.recovery_cookie_name}={origin}; Path=/; SameSite=Lax"

    def _referer(self, referer: Optional[str], context: RewriteContext) -> str:
        if referer and is_absolute(referer) and same_origin(referer, context.proxy_origin):
            original = collapse_nested(decode(referer, context.proxy_origin))
            if is_absolute(original):
                return original
        return context.target_origin + "/"

    def _forwarded_cookie(self, cookie: str) -> Optional[str]:
        if not self.settings.forward_cookies:
            return None
        recovery = self.settings.recovery_cookie_name + "="
        pairs = [p.strip() for p in cookie.split(";")]
        kept = [p for p in pairs if p and not p.startswith(recovery)]
        return "; ".join(kept) or None
