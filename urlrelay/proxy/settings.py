from dataclasses import dataclass
from typing import Tuple

from urlrelay import vars as env


@dataclass(frozen=True)
class ProxySettings:
    """Deployment switches, read once at startup and shared read-only."""

    public_url: str = ""
    timeout: float = 30.0
    forward_cookies: bool = False
    spoof_origin_on_safe_methods: bool = False
    inject_client_shim: bool = True
    recovery_cookie_name: str = "__proxy_target__"
    default_user_agent: str = env.DEFAULT_USER_AGENT
    origin_allowlist: Tuple[str, ...] = ()
    origin_blocklist: Tuple[str, ...] = ()
    keyword_blocklist: Tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> "ProxySettings":
        return cls(
            public_url=env.PUBLIC_URL,
            timeout=env.PROXY_TIMEOUT,
            forward_cookies=env.FORWARD_COOKIES,
            spoof_origin_on_safe_methods=env.SPOOF_ORIGIN_ON_SAFE_METHODS,
            inject_client_shim=env.INJECT_CLIENT_SHIM,
            recovery_cookie_name=env.RECOVERY_COOKIE_NAME,
            default_user_agent=env.DEFAULT_USER_AGENT,
            origin_allowlist=tuple(env.ORIGIN_ALLOWLIST),
            origin_blocklist=tuple(env.ORIGIN_BLOCKLIST),
            keyword_blocklist=tuple(env.KEYWORD_BLOCKLIST),
        )
