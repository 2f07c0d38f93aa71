"""
Browser-side interception script injected into proxied HTML.

Markup rewriting only covers URLs present when the document is served. Scripts
build URLs at runtime, so the page also gets a ``wrap(u)`` function mirroring
:func:`urlrelay.proxy.url_codec.wrap` and hooks that route every runtime URL
through it.
"""

import json
from typing import Optional

from urlrelay.proxy.url_codec import RewriteContext, SKIPPED_PREFIXES, URL_ATTRIBUTES

SHIM_MARKER = "data-urlrelay-shim"

_CONFIG_PLACEHOLDER = "__URLRELAY_CONFIG__"

_SHIM_TEMPLATE = """
(function () {
  'use strict';
  var config = __URLRELAY_CONFIG__;
  var PROXY_ORIGIN = config.proxyOrigin;
  var DOCUMENT_BASE = config.documentBase;
  var SKIPPED_PREFIXES = config.skippedPrefixes;
  var URL_ATTRIBUTES = config.urlAttributes;

  function wrap(u) {
    if (u === null || u === undefined) return u;
    var value = String(u);
    var trimmed = value.trim();
    if (!trimmed) return value;
    var lowered = trimmed.toLowerCase();
    for (var i = 0; i < SKIPPED_PREFIXES.length; i++) {
      if (lowered.indexOf(SKIPPED_PREFIXES[i]) === 0) return value;
    }
    if (/^\\/https?(:|%3A)/i.test(trimmed)) return value;
    var absolute;
    try {
      absolute = new URL(trimmed, DOCUMENT_BASE);
    } catch (e) {
      return value;
    }
    if (absolute.protocol !== 'http:' && absolute.protocol !== 'https:') return value;
    if (absolute.origin === PROXY_ORIGIN) return value;
    return PROXY_ORIGIN + '/' + absolute.href;
  }
  window.__urlrelayWrap = wrap;

  var nativeFetch = window.fetch;
  if (nativeFetch) {
    window.fetch = function (input, init) {
      if (typeof input === 'string' || input instanceof URL) {
        input = wrap(String(input));
      } else if (input && input.url) {
        input = new Request(wrap(input.url), input);
      }
      return nativeFetch.call(this, input, init);
    };
  }

  if (window.XMLHttpRequest) {
    var nativeOpen = XMLHttpRequest.prototype.open;
    XMLHttpRequest.prototype.open = function (method, url) {
      var args = Array.prototype.slice.call(arguments);
      args[1] = wrap(url);
      return nativeOpen.apply(this, args);
    };
  }

  if (navigator.sendBeacon) {
    var nativeBeacon = navigator.sendBeacon.bind(navigator);
    navigator.sendBeacon = function (url, data) {
      return nativeBeacon(wrap(url), data);
    };
  }

  if (window.EventSource) {
    var NativeEventSource = window.EventSource;
    window.EventSource = function (url, options) {
      return new NativeEventSource(wrap(url), options);
    };
    window.EventSource.prototype = NativeEventSource.prototype;
  }

  var nativeWindowOpen = window.open;
  window.open = function (url) {
    var args = Array.prototype.slice.call(arguments);
    if (url) args[0] = wrap(url);
    return nativeWindowOpen.apply(this, args);
  };

  ['pushState', 'replaceState'].forEach(function (name) {
    var nativeHistory = history[name];
    if (!nativeHistory) return;
    history[name] = function (state, title, url) {
      var args = Array.prototype.slice.call(arguments);
      if (url !== undefined && url !== null) args[2] = wrap(url);
      return nativeHistory.apply(this, args);
    };
  });

  var URL_PROPERTIES = [
    ['HTMLAnchorElement', 'href'],
    ['HTMLAreaElement', 'href'],
    ['HTMLLinkElement', 'href'],
    ['HTMLBaseElement', 'href'],
    ['HTMLImageElement', 'src'],
    ['HTMLScriptElement', 'src'],
    ['HTMLIFrameElement', 'src'],
    ['HTMLFrameElement', 'src'],
    ['HTMLEmbedElement', 'src'],
    ['HTMLSourceElement', 'src'],
    ['HTMLMediaElement', 'src'],
    ['HTMLTrackElement', 'src'],
    ['HTMLInputElement', 'src'],
    ['HTMLFormElement', 'action'],
    ['HTMLVideoElement', 'poster'],
    ['HTMLObjectElement', 'data']
  ];
  URL_PROPERTIES.forEach(function (entry) {
    var ctor = window[entry[0]];
    if (!ctor) return;
    var descriptor = Object.getOwnPropertyDescriptor(ctor.prototype, entry[1]);
    if (!descriptor || !descriptor.set) return;
    Object.defineProperty(ctor.prototype, entry[1], {
      configurable: true,
      enumerable: descriptor.enumerable,
      get: descriptor.get,
      set: function (value) {
        descriptor.set.call(this, wrap(value));
      }
    });
  });

  var nativeSetAttribute = Element.prototype.setAttribute;
  Element.prototype.setAttribute = function (name, value) {
    if (URL_ATTRIBUTES.indexOf(String(name).toLowerCase()) !== -1) {
      value = wrap(value);
    }
    return nativeSetAttribute.call(this, name, value);
  };

  // Workers run outside this patched scope and would bypass the proxy
  if (navigator.serviceWorker) {
    try {
      navigator.serviceWorker.register = function () {
        return Promise.reject(new Error('Service workers are disabled by the proxy'));
      };
    } catch (e) {}
  }
})();
"""


def build_client_shim_source(
    context: RewriteContext, document_base: Optional[str] = None
) -> str:
    """Return the shim's JavaScript with this request's origins embedded."""
    config = json.dumps(
        {
            "proxyOrigin": context.proxy_origin,
            "documentBase": document_base or context.target,
            "skippedPrefixes": list(SKIPPED_PREFIXES),
            "urlAttributes": list(URL_ATTRIBUTES),
        }
    )
    # A literal "</script>" inside a URL would end the element early
    config = config.replace("</", "<\\/")
    return _SHIM_TEMPLATE.replace(_CONFIG_PLACEHOLDER, config)


def build_client_shim(context: RewriteContext, document_base: Optional[str] = None) -> str:
    """Return the complete ``<script>`` element to place at the top of ``<head>``."""
    source = build_client_shim_source(context, document_base)
    return f'<script {SHIM_MARKER}="1">{source}</script>'
