import logging
import re
from typing import Callable, Dict, List, Optional, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Doctype, Tag

from urlrelay.proxy.errors import RewriteParseError
from urlrelay.proxy.url_codec import URL_ATTRIBUTES, RewriteContext, is_special, wrap
from urlrelay.rewriters.client_shim import SHIM_MARKER, build_client_shim

logger = logging.getLogger("uvicorn.error")

SRCSET_ATTRIBUTES = ("srcset", "data-srcset")

_SRCSET_SEPARATOR_RE = re.compile(r"(,\s*)")
_SRCSET_CANDIDATE_RE = re.compile(r"^(\s*)(\S+)(.*)$", re.DOTALL)
_REFRESH_URL_RE = re.compile(r"(\burl\s*=\s*)(['\"]?)([^'\"\s]+)", re.IGNORECASE)

TagHandler = Callable[[Tag], None]


def is_markup(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    lowered = content_type.lower()
    return "text/html" in lowered or "application/xhtml+xml" in lowered


def rewrite_srcset(value: str, context: RewriteContext, base: Optional[str] = None) -> str:
    """
    Rewrite each ``url descriptor`` candidate of a srcset.

    Descriptors and the original separators are kept. A candidate that
    fails to parse stays as it was.
    """
    if is_special(value):
        # data: URIs carry commas of their own
        return value

    pieces = _SRCSET_SEPARATOR_RE.split(value)
    for i in range(0, len(pieces), 2):
        match = _SRCSET_CANDIDATE_RE.match(pieces[i])
        if not match:
            continue
        leading, url, rest = match.groups()
        try:
            pieces[i] = f"{leading}{wrap(url, context, base=base)}{rest}"
        except RewriteParseError as e:
            logger.debug(f"[Markup] Keeping srcset candidate unchanged: {e}")
    return "".join(pieces)


def rewrite_refresh(content: str, context: RewriteContext, base: Optional[str] = None) -> str:
    """Rewrite the ``url=`` part of a meta refresh directive in place."""
    match = _REFRESH_URL_RE.search(content)
    if not match:
        return content
    url = match.group(3)
    try:
        rewritten = wrap(url, context, base=base)
    except RewriteParseError as e:
        logger.debug(f"[Markup] Keeping refresh target unchanged: {e}")
        return content
    return content[: match.start(3)] + rewritten + content[match.end(3):]


class MarkupRewriter:
    """
    Rewrites URL-bearing attributes of an HTML document so that every link,
    form and sub-resource points back through the proxy.

    Handlers are registered per tag name (``"*"`` for every element) and run
    for each element in document order. A ``<base href>`` is honored as the
    resolution base for the whole document and rewritten itself.
    """

    def __init__(self, context: RewriteContext, inject_shim: bool = True):
        self.context = context
        self.inject_shim = inject_shim
        self.document_base = context.target
        self._handlers: Dict[str, List[TagHandler]] = {}

        self.on("base", self._rewrite_base)
        self.on("*", self._rewrite_url_attributes)
        self.on("*", self._rewrite_srcset_attributes)
        self.on("meta", self._rewrite_meta_refresh)

    def on(self, tag_name: str, handler: TagHandler) -> "MarkupRewriter":
        self._handlers.setdefault(tag_name.lower(), []).append(handler)
        return self

    def rewrite(self, html: Union[bytes, str], encoding: Optional[str] = None) -> bytes:
        if isinstance(html, bytes):
            soup = BeautifulSoup(html, "html.parser", from_encoding=encoding)
        else:
            soup = BeautifulSoup(html, "html.parser")

        base_tag = soup.find("base", href=True)
        if base_tag is not None:
            self.document_base = self._resolve(base_tag["href"]) or self.context.target

        for element in soup.find_all(True):
            for handler in self._handlers.get(element.name, []):
                handler(element)
            for handler in self._handlers.get("*", []):
                handler(element)

        if self.inject_shim:
            self._inject_shim(soup)

        return soup.encode("utf-8")

    def _resolve(self, value: str) -> Optional[str]:
        try:
            return urljoin(self.context.target, value.strip())
        except ValueError:
            return None

    def _rewrite_attribute(self, element: Tag, attribute: str, base: Optional[str]) -> None:
        value = element.get(attribute)
        if not isinstance(value, str) or not value.strip():
            return
        try:
            element[attribute] = wrap(value, self.context, base=base)
        except RewriteParseError as e:
            logger.debug(f"[Markup] Keeping {element.name}[{attribute}] unchanged: {e}")

    def _rewrite_base(self, element: Tag) -> None:
        # The base itself resolves against the document URL, not against itself
        self._rewrite_attribute(element, "href", self.context.target)

    def _rewrite_url_attributes(self, element: Tag) -> None:
        for attribute in URL_ATTRIBUTES:
            if element.name == "base" and attribute == "href":
                continue
            self._rewrite_attribute(element, attribute, self.document_base)

    def _rewrite_srcset_attributes(self, element: Tag) -> None:
        for attribute in SRCSET_ATTRIBUTES:
            value = element.get(attribute)
            if isinstance(value, str) and value.strip():
                element[attribute] = rewrite_srcset(value, self.context, self.document_base)

    def _rewrite_meta_refresh(self, element: Tag) -> None:
        if (element.get("http-equiv") or "").lower() != "refresh":
            return
        content = element.get("content")
        if isinstance(content, str):
            element["content"] = rewrite_refresh(content, self.context, self.document_base)

    def _inject_shim(self, soup: BeautifulSoup) -> None:
        if soup.find("script", attrs={SHIM_MARKER: True}) is not None:
            return
        # Parsed rather than built so the script body is emitted verbatim
        script = BeautifulSoup(
            build_client_shim(self.context, self.document_base), "html.parser"
        ).script

        head = soup.head
        if head is None:
            head = soup.new_tag("head")
            if soup.html is not None:
                soup.html.insert(0, head)
            else:
                position = 0
                for index, node in enumerate(soup.contents):
                    if isinstance(node, Doctype):
                        position = index + 1
                soup.insert(position, head)
        head.insert(0, script)
