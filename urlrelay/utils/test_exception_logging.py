import logging
from unittest.mock import Mock

import httpx

from urlrelay.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)


class BrokenStrException(Exception):
    """An exception that breaks when __str__ is called."""

    def __str__(self):
        raise RuntimeError("Cannot convert to string!")

    def __repr__(self):
        return "BrokenStrException(cannot convert to string)"


class BrokenReprException(Exception):
    """An exception that breaks when both __str__ and __repr__ are called."""

    def __str__(self):
        raise RuntimeError("Cannot convert to string!")

    def __repr__(self):
        raise RuntimeError("Cannot convert to repr!")


class TestFormatExceptionMessage:
    def test_type_and_message(self):
        error = httpx.ConnectError("connection refused")
        assert format_exception_message(error) == "ConnectError: connection refused"

    def test_empty_message(self):
        assert format_exception_message(httpx.ReadTimeout("")) == "ReadTimeout"

    def test_broken_str_falls_back_to_repr(self):
        message = format_exception_message(BrokenStrException())
        assert message == "BrokenStrException: BrokenStrException(cannot convert to string)"

    def test_broken_repr(self):
        message = format_exception_message(BrokenReprException())
        assert "string conversion failed" in message

    def test_exception_group_is_flattened(self):
        group = ExceptionGroup(
            "unhandled errors in a TaskGroup",
            [httpx.ConnectError("refused"), ValueError("bad port")],
        )
        message = format_exception_message(group)
        assert message.startswith("ExceptionGroup: ")
        assert "ConnectError: refused" in message
        assert "ValueError: bad port" in message
        assert "\n" not in message

    def test_none(self):
        assert format_exception_message(None) == "None"


class TestLogExceptionWithDetails:
    def test_single_exception(self):
        logger = Mock(spec=logging.Logger)
        error = httpx.ConnectError("refused")
        log_exception_with_details(logger, "[Proxy]", error)
        logger.log.assert_called_once()
        level, message = logger.log.call_args.args
        assert level == logging.ERROR
        assert message == "[Proxy] Exception: ConnectError: refused"
        assert logger.log.call_args.kwargs["exc_info"] is error

    def test_custom_level(self):
        logger = Mock(spec=logging.Logger)
        log_exception_with_details(
            logger, "[Proxy]", httpx.ReadError("reset"), level=logging.WARNING
        )
        assert logger.log.call_args.args[0] == logging.WARNING

    def test_group_logs_each_sub_exception(self):
        logger = Mock(spec=logging.Logger)
        group = ExceptionGroup("errors", [httpx.ConnectError("a"), httpx.ReadError("b")])
        log_exception_with_details(logger, "[Proxy]", group)
        messages = [call.args[1] for call in logger.log.call_args_list]
        assert messages[0].startswith("[Proxy] Exception with 2 sub-exceptions")
        assert messages[1] == "[Proxy] Sub-exception 1: ConnectError: a"
        assert messages[2] == "[Proxy] Sub-exception 2: ReadError: b"

    def test_never_raises_when_logger_fails(self):
        logger = Mock(spec=logging.Logger)
        logger.log.side_effect = RuntimeError("handler broken")
        log_exception_with_details(logger, "[Proxy]", ValueError("x"))
        assert logger.log.call_count == 2

    def test_with_real_logger(self, caplog):
        logger = logging.getLogger("urlrelay.test")
        with caplog.at_level(logging.ERROR, logger="urlrelay.test"):
            log_exception_with_details(logger, "[Proxy]", httpx.ConnectError("refused"))
        assert "[Proxy] Exception: ConnectError: refused" in caplog.text
