import json
import re

from urlrelay.proxy.url_codec import URL_ATTRIBUTES, RewriteContext
from urlrelay.rewriters.client_shim import (
    SHIM_MARKER,
    build_client_shim,
    build_client_shim_source,
)

PROXY = "https://proxy.example"

_CONFIG_RE = re.compile(r"var config = (\{.*?\});")


def _config(source: str) -> dict:
    match = _CONFIG_RE.search(source)
    assert match, "config literal not found"
    return json.loads(match.group(1))


def test_config_carries_origins():
    context = RewriteContext(proxy_origin=PROXY, target="https://site.example/app/")
    config = _config(build_client_shim_source(context))
    assert config["proxyOrigin"] == PROXY
    assert config["documentBase"] == "https://site.example/app/"
    assert "javascript:" in config["skippedPrefixes"]
    assert config["urlAttributes"] == list(URL_ATTRIBUTES)


def test_document_base_override():
    context = RewriteContext(proxy_origin=PROXY, target="https://site.example/app/")
    config = _config(build_client_shim_source(context, "https://cdn.example/base/"))
    assert config["documentBase"] == "https://cdn.example/base/"


def test_closing_tag_in_url_is_escaped():
    context = RewriteContext(
        proxy_origin=PROXY, target="https://site.example/</script><b>x"
    )
    source = build_client_shim_source(context)
    assert "</script>" not in source
    assert _config(source)["documentBase"] == "https://site.example/</script><b>x"


def test_hooks_present():
    source = build_client_shim_source(
        RewriteContext(proxy_origin=PROXY, target="https://site.example/")
    )
    for hook in (
        "window.fetch =",
        "XMLHttpRequest.prototype.open =",
        "navigator.sendBeacon =",
        "window.EventSource =",
        "window.open =",
        "'pushState', 'replaceState'",
        "Element.prototype.setAttribute =",
        "navigator.serviceWorker.register =",
    ):
        assert hook in source


def test_script_element_is_marked():
    html = build_client_shim(RewriteContext(proxy_origin=PROXY, target="https://site.example/"))
    assert html.startswith(f'<script {SHIM_MARKER}="1">')
    assert html.endswith("</script>")
    assert html.count("</script>") == 1
