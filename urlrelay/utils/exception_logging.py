"""
Utility functions for logging failures of outbound proxy calls.

Upstream failures surface as httpx exceptions, sometimes wrapped in exception
groups raised by the ASGI task group. These helpers never raise themselves.
"""

import logging


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def format_exception_message(exception: Exception) -> str:
    """
    Describe an exception as ``Type: message``, flattening exception groups.

    Used for the body of 502 responses, so it stays a single line.
    """
    if exception is None:
        return "None"

    def describe(exc) -> str:
        text = _safe_str(exc)
        name = type(exc).__name__
        return f"{name}: {text}" if text else name

    subs = _sub_exceptions(exception)
    if subs:
        joined = "; ".join(describe(sub) for sub in subs)
        return f"{describe(exception)} (Sub-exceptions: {joined})"
    return describe(exception)


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception, including each sub-exception of an exception group.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Proxy]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        subs = _sub_exceptions(exception)
        if subs:
            logger.log(
                level,
                f"{prefix} Exception with {len(subs)} sub-exceptions: {_safe_str(exception)}",
            )
            for i, sub_exc in enumerate(subs):
                logger.log(
                    level,
                    f"{prefix} Sub-exception {i+1}: {format_exception_message(sub_exc)}",
                    exc_info=sub_exc,
                )
        else:
            logger.log(
                level,
                f"{prefix} Exception: {format_exception_message(exception)}",
                exc_info=exception if exception is not None else False,
            )
    except Exception:
        # Logging must never take the request down with it
        try:
            logger.log(logging.ERROR, f"{prefix} Exception logging failed")
        except Exception:
            pass
