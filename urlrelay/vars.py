import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "urlrelay")

# Public-facing origin of the proxy; derived from each request when empty
PUBLIC_URL = os.environ.get("PUBLIC_URL", "").rstrip("/")
PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "30"))

FORWARD_COOKIES = os.environ.get("FORWARD_COOKIES", "false").lower() == "true"
SPOOF_ORIGIN_ON_SAFE_METHODS = (
    os.environ.get("SPOOF_ORIGIN_ON_SAFE_METHODS", "false").lower() == "true"
)
INJECT_CLIENT_SHIM = os.environ.get("INJECT_CLIENT_SHIM", "true").lower() == "true"

RECOVERY_COOKIE_NAME = os.environ.get("RECOVERY_COOKIE_NAME", "__proxy_target__")
DEFAULT_USER_AGENT = os.environ.get(
    "DEFAULT_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/136.0.0.0 Safari/537.36",
)


def _parse_list(raw: str) -> list:
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


ORIGIN_ALLOWLIST = _parse_list(os.getenv("ORIGIN_ALLOWLIST", ""))
ORIGIN_BLOCKLIST = _parse_list(os.getenv("ORIGIN_BLOCKLIST", ""))
KEYWORD_BLOCKLIST = _parse_list(os.getenv("KEYWORD_BLOCKLIST", ""))

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
