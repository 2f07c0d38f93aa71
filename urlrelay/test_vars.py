import importlib

import urlrelay.vars as vars_module
from urlrelay.proxy.settings import ProxySettings


def _reload():
    return importlib.reload(vars_module)


def test_defaults(monkeypatch):
    for name in ("PUBLIC_URL", "FORWARD_COOKIES", "INJECT_CLIENT_SHIM", "ORIGIN_BLOCKLIST"):
        monkeypatch.delenv(name, raising=False)
    module = _reload()
    assert module.PUBLIC_URL == ""
    assert module.FORWARD_COOKIES is False
    assert module.INJECT_CLIENT_SHIM is True
    assert module.ORIGIN_BLOCKLIST == []


def test_list_parsing(monkeypatch):
    monkeypatch.setenv("ORIGIN_BLOCKLIST", " Evil.example, ,tracker.example ")
    monkeypatch.setenv("KEYWORD_BLOCKLIST", ".MPD")
    module = _reload()
    assert module.ORIGIN_BLOCKLIST == ["evil.example", "tracker.example"]
    assert module.KEYWORD_BLOCKLIST == [".mpd"]


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("PUBLIC_URL", "https://relay.example/")
    monkeypatch.setenv("PROXY_TIMEOUT", "5")
    monkeypatch.setenv("FORWARD_COOKIES", "TRUE")
    monkeypatch.setenv("ORIGIN_ALLOWLIST", "site.example")
    _reload()
    settings = ProxySettings.from_env()
    assert settings.public_url == "https://relay.example"
    assert settings.timeout == 5.0
    assert settings.forward_cookies is True
    assert settings.origin_allowlist == ("site.example",)


def teardown_module():
    # Leave module constants as the environment defines them for other tests
    _reload()
