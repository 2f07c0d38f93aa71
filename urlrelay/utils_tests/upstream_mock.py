from typing import Callable, Dict, List, Optional, Sequence, Tuple

import httpx


class FakeUpstream:
    """Stands in for destination sites and records what the proxy sends them."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._routes: Dict[str, Tuple[int, Sequence[Tuple[str, str]], bytes]] = {}
        self._error: Optional[Callable[[httpx.Request], Exception]] = None

    def respond(
        self,
        url: str,
        status_code: int = 200,
        headers: Optional[Sequence[Tuple[str, str]]] = None,
        content: bytes = b"",
    ) -> "FakeUpstream":
        self._routes[str(httpx.URL(url))] = (status_code, list(headers or []), content)
        return self

    def fail_with(self, error_factory: Callable[[httpx.Request], Exception]) -> None:
        self._error = error_factory

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._error is not None:
            raise self._error(request)
        route = self._routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text=f"no route for {request.url}")
        status_code, headers, content = route
        return httpx.Response(status_code, headers=headers, content=content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def last_request(self) -> httpx.Request:
        assert self.requests, "the proxy did not call upstream"
        return self.requests[-1]
