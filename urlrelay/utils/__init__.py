from urllib.parse import urlsplit, urlunsplit


def redact_query(url: str) -> str:
    """Hide query values (tokens, signatures) before a URL reaches the logs."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.query:
        return url
    keys = [pair.split("=", 1)[0] for pair in parts.query.split("&") if pair]
    masked = "&".join(f"{key}=****" for key in keys)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, masked, ""))
