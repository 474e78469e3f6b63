import pathlib
import sys
from io import BytesIO

import pytest
import requests

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from certifyer.app import create_app
from certifyer.shared.links import LinkCodec

API_BASE = "https://api.test/functions/v1/server"
PUBLIC_BASE = "https://certs.test"
LINK_SECRET = "test-link-secret"


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, content=b"", headers=None):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.headers = headers or {}

    def json(self):
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json

    def raise_for_status(self):
        if not 200 <= self.status_code < 300:
            raise requests.HTTPError(f"status {self.status_code}")


class FakeSession:
    """Stands in for ``requests.Session``; unknown URLs raise ConnectionError.

    Routes are matched on the exact URL first, then on the URL without its
    query string. A route may be a response, an exception to raise, or a
    callable taking the recorded call.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, url, result, method="GET"):
        self.routes[(method, url)] = result
        return self

    def add_json(self, url, data, status_code=200, method="GET"):
        return self.add(url, FakeResponse(status_code, json_data=data), method=method)

    def calls_to(self, prefix):
        return [call for call in self.calls if call["url"].startswith(prefix)]

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        call = {"method": method, "url": url, "headers": headers or {}, "timeout": timeout, **kwargs}
        self.calls.append(call)
        result = self.routes.get((method, url))
        if result is None:
            result = self.routes.get((method, url.split("?", 1)[0]))
        if result is None:
            raise requests.ConnectionError(f"no route for {method} {url}")
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(call)
        return result

    def get(self, url, headers=None, timeout=None, **kwargs):
        return self.request("GET", url, headers=headers, timeout=timeout, **kwargs)


def png_bytes(size=(40, 20), color=(200, 30, 30, 255)):
    from PIL import Image

    buffer = BytesIO()
    Image.new("RGBA", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def certificate_payload(cert_id="c1", **fields):
    certificate = {
        "id": cert_id,
        "studentName": "Ada Lovelace",
        "courseName": "Analytical Engines",
        "completionDate": "2024-03-01",
        "status": "active",
        "organizationId": "o1",
        "programId": "p1",
        "signatories": [
            {"name": "Charles Babbage", "title": "Director"},
        ],
    }
    certificate.update(fields)
    return {
        "certificate": certificate,
        "organization": {"id": "o1", "name": "Difference Academy", "logo": None},
        "program": {"id": "p1", "name": "Engines Program", "description": "Mechanical computing."},
    }


@pytest.fixture
def http():
    return FakeSession()


@pytest.fixture
def codec():
    return LinkCodec(LINK_SECRET)


@pytest.fixture
def app(http):
    application = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "LINK_SECRET": LINK_SECRET,
            "API_BASE_URL": API_BASE,
            "API_KEY": "",
            "PUBLIC_BASE_URL": PUBLIC_BASE,
            "EXPORT_PIXEL_RATIO": 1,
            "EXPORT_IMAGE_TIMEOUT": 1.0,
            "TEMPLATE_LIBRARY_TIMEOUT": 1.0,
            "REMOTE_STYLESHEETS": ["https://fonts.example.com/css2?family=Inter"],
        },
        http=http,
    )
    with application.app_context():
        yield application


@pytest.fixture
def client(app):
    return app.test_client()
