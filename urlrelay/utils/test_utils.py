from unittest.mock import MagicMock

from urlrelay.utils import redact_query
from urlrelay.utils.traced_requests import traced_request


def test_redact_query_masks_values():
    assert (
        redact_query("https://site.example/a?token=secret&page=2")
        == "https://site.example/a?token=****&page=****"
    )


def test_redact_query_without_query():
    assert redact_query("https://site.example/a") == "https://site.example/a"


def test_redact_query_drops_fragment():
    assert redact_query("https://site.example/a?sig=x#frag") == "https://site.example/a?sig=****"


def test_traced_request_sets_attributes():
    tracer = MagicMock()
    span = tracer.start_as_current_span.return_value.__enter__.return_value
    with traced_request(
        tracer,
        operation="proxy_request",
        method="GET",
        target="https://site.example/a?token=secret",
        start_message="[Proxy] GET",
        extra_attrs={"proxy.treatment": "markup"},
    ) as yielded:
        assert yielded is span
    tracer.start_as_current_span.assert_called_once_with("proxy_request")
    span.set_attribute.assert_any_call("proxy.method", "GET")
    span.set_attribute.assert_any_call(
        "proxy.target_url", "https://site.example/a?token=****"
    )
    span.set_attribute.assert_any_call("proxy.treatment", "markup")
