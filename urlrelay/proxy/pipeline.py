import asyncio
import logging
from typing import AsyncIterator, List, Optional, Tuple

import httpx
from fastapi import Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from opentelemetry import trace

from urlrelay.proxy.errors import ProxyError, UpstreamFetchError
from urlrelay.proxy.header_policy import (
    DEFAULT_POLICY,
    HeaderPolicy,
    HeaderTransformer,
    cors_headers,
    preflight_headers,
)
from urlrelay.proxy.redirect_rewriter import is_redirect, rewrite_redirect_headers
from urlrelay.proxy.settings import ProxySettings
from urlrelay.proxy.target_resolver import TargetResolver
from urlrelay.proxy.url_codec import RewriteContext
from urlrelay.rewriters.markup import MarkupRewriter, is_markup
from urlrelay.rewriters.playlist import PlaylistRewriter, is_playlist
from urlrelay.utils import redact_query
from urlrelay.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from urlrelay.utils.traced_requests import traced_request

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

Headers = List[Tuple[str, str]]

PLAYLIST = "playlist"
MARKUP = "markup"
PASSTHROUGH = "passthrough"

BODYLESS_STATUSES = (204, 304)


def classify(content_type: Optional[str], target: str) -> str:
    """Pick the body treatment from the content type, falling back to the URL."""
    if content_type and "mpegurl" in content_type.lower():
        return PLAYLIST
    if is_markup(content_type):
        return MARKUP
    if is_playlist(content_type, target):
        return PLAYLIST
    return PASSTHROUGH


def _build_response(status_code: int, headers: Headers, content: bytes = b"") -> Response:
    response = Response(content=content, status_code=status_code)
    for name, value in headers:
        response.headers.append(name, value)
    return response


def _replace_header(headers: Headers, name: str, value: str) -> Headers:
    kept = [(k, v) for k, v in headers if k.lower() != name.lower()]
    kept.append((name, value))
    return kept


class RequestPipeline:
    """
    Handles one proxied request end to end:
    resolve the destination, rewrite request headers, dispatch, rewrite
    response headers and redirects, then rewrite or stream the body.

    Instances hold configuration only and are shared across requests.
    """

    def __init__(
        self,
        settings: ProxySettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        policy: HeaderPolicy = DEFAULT_POLICY,
    ):
        self.settings = settings
        self.transport = transport
        self.resolver = TargetResolver(settings)
        self.header_transformer = HeaderTransformer(settings, policy)

    def proxy_origin(self, request: Request) -> str:
        if self.settings.public_url:
            return self.settings.public_url
        scheme = request.headers.get("x-forwarded-proto", request.url.scheme)
        host = request.headers.get("host") or request.url.netloc
        return f"{scheme}://{host}"

    async def handle(self, request: Request) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=preflight_headers(request.headers))

        proxy_origin = self.proxy_origin(request)
        try:
            target = self.resolver.resolve(
                request.url.path,
                proxy_origin,
                query=request.url.query,
                referer=request.headers.get("referer"),
                recovery_cookie=request.cookies.get(self.settings.recovery_cookie_name),
            )
        except ProxyError as e:
            logger.info(f"[Proxy] Rejected {request.method} {request.url.path}: {e}")
            return self._error_response(e)

        context = RewriteContext(proxy_origin=proxy_origin, target=target)
        with traced_request(
            tracer,
            operation="proxy_request",
            method=request.method,
            target=target,
            start_message=f"[Proxy] {request.method} {redact_query(target)}",
        ) as span:
            try:
                return await self._dispatch(request, context, span)
            except UpstreamFetchError as e:
                span.set_attribute("proxy.error", type(e.__cause__).__name__)
                span.record_exception(e)
                return self._error_response(e)

    async def _dispatch(self, request: Request, context: RewriteContext, span) -> Response:
        outbound_headers = self.header_transformer.request_headers(
            request.headers, request.method, context
        )
        body = await request.body()

        client = httpx.AsyncClient(
            transport=self.transport,
            timeout=httpx.Timeout(self.settings.timeout),
            follow_redirects=False,  # Handle redirects manually for rewriting
        )
        try:
            upstream_request = client.build_request(
                request.method,
                context.target,
                headers=outbound_headers,
                content=body or None,
            )
            upstream = await client.send(upstream_request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeError) as e:
            # UnicodeError: a header value httpx cannot encode as ASCII
            await client.aclose()
            log_exception_with_details(
                logger, f"[Proxy] Upstream fetch failed for {redact_query(context.target)}", e
            )
            raise UpstreamFetchError(
                f"Proxy request failed: {format_exception_message(e)}", url=context.target
            ) from e
        except asyncio.CancelledError:
            await client.aclose()
            raise

        span.set_attribute("proxy.status_code", upstream.status_code)

        headers = self.header_transformer.response_headers(
            upstream.headers.multi_items(), context
        )
        headers = rewrite_redirect_headers(headers, context)

        if is_redirect(upstream.status_code) and "location" in upstream.headers:
            await upstream.aclose()
            await client.aclose()
            span.set_attribute("proxy.rewritten_location", dict(headers).get("location", ""))
            return _build_response(upstream.status_code, headers)

        if upstream.status_code in BODYLESS_STATUSES:
            await upstream.aclose()
            await client.aclose()
            return _build_response(upstream.status_code, headers)

        treatment = classify(upstream.headers.get("content-type"), context.target)
        if request.method == "HEAD":
            # No body to rewrite
            treatment = PASSTHROUGH
        span.set_attribute("proxy.treatment", treatment)

        if treatment == PLAYLIST:
            content = await self._read(upstream, client, context)
            rewritten = PlaylistRewriter(context).rewrite_bytes(content, upstream.encoding)
            return _build_response(upstream.status_code, headers, rewritten)

        if treatment == MARKUP:
            content = await self._read(upstream, client, context)
            rewriter = MarkupRewriter(context, inject_shim=self.settings.inject_client_shim)
            rewritten = rewriter.rewrite(content, upstream.charset_encoding)
            headers = _replace_header(headers, "content-type", "text/html; charset=utf-8")
            headers.append(("set-cookie", self.header_transformer.recovery_cookie(context)))
            return _build_response(upstream.status_code, headers, rewritten)

        return self._stream(upstream, client, headers, context)

    async def _read(
        self, upstream: httpx.Response, client: httpx.AsyncClient, context: RewriteContext
    ) -> bytes:
        # Rewriting needs the complete document
        try:
            return await upstream.aread()
        except httpx.HTTPError as e:
            log_exception_with_details(
                logger, f"[Proxy] Upstream body failed for {redact_query(context.target)}", e
            )
            raise UpstreamFetchError(
                f"Proxy request failed: {format_exception_message(e)}", url=context.target
            ) from e
        finally:
            await upstream.aclose()
            await client.aclose()

    @staticmethod
    def _stream(
        upstream: httpx.Response,
        client: httpx.AsyncClient,
        headers: Headers,
        context: RewriteContext,
    ) -> StreamingResponse:
        async def body() -> AsyncIterator[bytes]:
            # A client disconnect cancels this generator; finally releases the
            # upstream connection.
            try:
                async for chunk in upstream.aiter_bytes():
                    yield chunk
            except httpx.HTTPError as e:
                log_exception_with_details(
                    logger,
                    f"[Proxy] Upstream stream interrupted for {redact_query(context.target)}",
                    e,
                    level=logging.WARNING,
                )
                raise
            finally:
                await upstream.aclose()
                await client.aclose()

        response = StreamingResponse(body(), status_code=upstream.status_code)
        for name, value in headers:
            response.headers.append(name, value)
        return response

    @staticmethod
    def _error_response(error: ProxyError) -> Response:
        return PlainTextResponse(
            str(error), status_code=error.status_code, headers=cors_headers()
        )
