from typing import Sequence

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

# ASGI send/receive events emitted once per body chunk. A streamed download
# or upload would otherwise produce one span per chunk.
NOISY_ASGI_EVENTS = frozenset({"http.response.body", "http.request", "http.disconnect"})


def is_noisy(span: ReadableSpan) -> bool:
    attributes = span.attributes or {}
    return attributes.get("asgi.event.type") in NOISY_ASGI_EVENTS


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that drops per-chunk ASGI spans of proxied bodies and
    forwards everything else, including the ``proxy_request`` spans.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [span for span in spans if not is_noisy(span)]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)
