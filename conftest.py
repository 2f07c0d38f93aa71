# Ensure tests import the package from this checkout first.
import os
import sys

import pytest
from fastapi.testclient import TestClient

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

from urlrelay.proxy.pipeline import RequestPipeline  # noqa: E402
from urlrelay.proxy.settings import ProxySettings  # noqa: E402
from urlrelay.utils_tests.upstream_mock import FakeUpstream  # noqa: E402


@pytest.fixture
def fake_upstream():
    """Destination sites answered in-process through httpx.MockTransport."""
    return FakeUpstream()


@pytest.fixture
def proxy_settings():
    return ProxySettings()


@pytest.fixture
def use_pipeline(fake_upstream):
    """Swap the pipeline behind the routes; returns a setter for custom settings."""
    from urlrelay.server import app
    from urlrelay.routes import get_pipeline

    def _use(settings: ProxySettings) -> RequestPipeline:
        pipeline = RequestPipeline(settings, transport=fake_upstream.transport)
        app.dependency_overrides[get_pipeline] = lambda: pipeline
        return pipeline

    yield _use
    app.dependency_overrides.clear()


@pytest.fixture
def test_client(use_pipeline, proxy_settings):
    from urlrelay.server import app

    use_pipeline(proxy_settings)
    with TestClient(app) as client:
        yield client
