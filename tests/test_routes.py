import threading
from datetime import timedelta
from io import BytesIO

import pytest
import requests
from PIL import Image

from conftest import API_BASE, PUBLIC_BASE, FakeResponse, certificate_payload
from certifyer.app import services
from certifyer.shared.time import now_utc

CERT_URL = f"{API_BASE}/certificates/c1"


def _token(codec, days_ago=1):
    return codec.issue("o1", "p1", "c1", issued_at=now_utc() - timedelta(days=days_ago))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.data == b"OK"


@pytest.mark.smoke
def test_valid_token_renders_certificate(client, http, codec):
    http.add_json(CERT_URL, certificate_payload())
    response = client.get(f"/certificate/{_token(codec)}")
    assert response.status_code == 200
    body = response.get_data(as_text=True)
    assert "Ada Lovelace" in body
    assert "Analytical Engines" in body
    assert "VER-c1" in body
    assert "March 1, 2024" in body
    assert [call["url"] for call in http.calls] == [CERT_URL]


@pytest.mark.smoke
def test_expired_token_shows_error_without_fetch(client, http, codec):
    http.add_json(CERT_URL, certificate_payload())
    response = client.get(f"/certificate/{_token(codec, days_ago=40)}")
    assert response.status_code == 410
    assert "Invalid or expired certificate link" in response.get_data(as_text=True)
    assert http.calls == []


@pytest.mark.parametrize("count, shown", [("7", "7 times"), (None, "0 times"), ("lots", "0 times")])
def test_viewer_shows_download_count(client, http, codec, count, shown):
    http.add_json(CERT_URL, certificate_payload(downloadCount=count))
    body = client.get(f"/certificate/{_token(codec)}").get_data(as_text=True)
    assert f"<dd>{shown}</dd>" in body


def test_legacy_path_still_resolves(client, http):
    http.add_json(CERT_URL, certificate_payload())
    response = client.get("/certificate/o1/p1/c1")
    assert response.status_code == 200
    assert "Ada Lovelace" in response.get_data(as_text=True)


def test_two_segment_path_has_no_identifier(client, http):
    response = client.get("/certificate/o1/c1")
    assert response.status_code == 404
    assert "No certificate ID" in response.get_data(as_text=True)
    assert http.calls == []


def test_name_collection_before_render(client, http, codec, monkeypatch):
    http.add_json(CERT_URL, certificate_payload(studentName=None))
    submitted = []
    monkeypatch.setattr(
        services().fetcher,
        "submit_testimonial",
        lambda view, name, testimonial: submitted.append((view.id, name, testimonial)),
    )
    token = _token(codec)
    form_page = client.get(f"/certificate/{token}")
    assert form_page.status_code == 200
    assert 'name="student_name"' in form_page.get_data(as_text=True)

    with client.session_transaction() as sess:
        sess["_csrf_token"] = "token"
    response = client.post(
        f"/certificate/{token}",
        data={"csrf_token": "token", "student_name": "  Grace   Hopper ", "testimonial": "Great course"},
    )
    assert response.status_code == 302
    assert response.headers["Location"].endswith(f"/certificate/{token}")
    assert submitted == [("c1", "Grace Hopper", "Great course")]

    page = client.get(f"/certificate/{token}")
    assert page.status_code == 200
    assert "Grace Hopper" in page.get_data(as_text=True)

    data = client.get(f"/api/certificates/resolve/{token}").get_json()
    assert data["certificate"]["studentName"] == "Grace Hopper"
    assert data["certificate"]["needsName"] is False


def test_name_submission_requires_csrf(client, http, codec):
    http.add_json(CERT_URL, certificate_payload(studentName=None))
    response = client.post(f"/certificate/{_token(codec)}", data={"student_name": "X"})
    assert response.status_code == 400


def test_blank_name_is_rejected(client, http, codec):
    http.add_json(CERT_URL, certificate_payload(studentName=None))
    with client.session_transaction() as sess:
        sess["_csrf_token"] = "token"
    response = client.post(
        f"/certificate/{_token(codec)}", data={"csrf_token": "token", "student_name": "   "}
    )
    assert response.status_code == 400
    assert "Please enter your name" in response.get_data(as_text=True)


def test_download_with_unreachable_logo(client, http, codec):
    payload = certificate_payload()
    payload["organization"]["logo"] = "https://cdn.example.com/missing.png"
    http.add_json(CERT_URL, payload)
    http.add("https://cdn.example.com/missing.png", requests.ConnectionError("unreachable"))
    response = client.get(f"/certificates/download/{_token(codec)}")
    assert response.status_code == 200
    assert response.mimetype == "image/jpeg"
    assert "Analytical_Engines_Ada_Lovelace.jpeg" in response.headers["Content-Disposition"]
    image = Image.open(BytesIO(response.data))
    assert image.format == "JPEG"
    assert image.size == (1000, 600)


def test_inline_image(client, http, codec):
    http.add_json(CERT_URL, certificate_payload())
    response = client.get(f"/certificates/image/{_token(codec)}")
    assert response.status_code == 200
    assert response.mimetype == "image/jpeg"
    assert "attachment" not in response.headers.get("Content-Disposition", "")


def test_download_conflict_while_export_running(client, http, codec):
    http.add_json(CERT_URL, certificate_payload())
    guard = services().pipeline.guard
    with guard.hold("c1"):
        response = client.get(f"/certificates/download/{_token(codec)}")
    assert response.status_code == 409


def test_share_redirects_to_platform(client, http, codec):
    http.add_json(CERT_URL, certificate_payload())
    token = _token(codec)
    response = client.get(f"/certificates/share/twitter/{token}")
    assert response.status_code == 302
    location = response.headers["Location"]
    assert location.startswith("https://twitter.com/intent/tweet?text=")
    assert f"certs.test%2Fcertificate%2F{token}" in location


def test_unknown_share_platform(client, http, codec):
    http.add_json(CERT_URL, certificate_payload())
    response = client.get(f"/certificates/share/myspace/{_token(codec)}")
    assert response.status_code == 404


@pytest.mark.parametrize(
    "result, status",
    [
        (FakeResponse(404, json_data={}), 404),
        (requests.ConnectionError("down"), 503),
        (FakeResponse(500, json_data={}), 502),
    ],
)
def test_fetch_failures_map_to_status(client, http, codec, result, status):
    http.add(CERT_URL, result)
    assert client.get(f"/certificate/{_token(codec)}").status_code == status


def test_api_errors_are_json(client, http, codec):
    response = client.get(f"/api/certificates/resolve/{_token(codec, days_ago=31)}")
    assert response.status_code == 410
    body = response.get_json()
    assert body == {
        "error": "InvalidOrExpiredLink",
        "message": "Invalid or expired certificate link",
        "recovery": "back",
    }


def test_resolve_api_reports_canonical_url(client, http, codec):
    http.add_json(CERT_URL, certificate_payload())
    token = _token(codec)
    data = client.get(f"/api/certificates/resolve/{token}").get_json()
    assert data["canonicalUrl"] == f"{PUBLIC_BASE}/certificate/{token}"
    assert data["lookup"] == {"source": "token", "organizationId": "o1", "programId": "p1"}
    assert data["certificate"]["verificationCode"] == "VER-c1"


@pytest.mark.slow
def test_template_catalog_previews(client):
    assert client.get("/templates").status_code == 200
    response = client.get("/templates/template9/preview")
    assert response.status_code == 200
    assert response.mimetype == "image/jpeg"
    assert client.get("/templates/template99/preview").status_code == 404


def test_busy_asset_pool_does_not_starve_template_lookups(app, http):
    svc = services()
    assert svc.pipeline.barrier.executor is svc.asset_executor
    assert svc.fetcher.executor is not svc.asset_executor
    http.add_json(f"{API_BASE}/templates/template3", {"template": {"config": {"colors": {}}}})
    release = threading.Event()
    blockers = [
        svc.asset_executor.submit(release.wait, 5)
        for _ in range(app.config["EXPORT_ASSET_WORKERS"])
    ]
    try:
        assert svc.fetcher.load_library_config("template3") == {"colors": {}}
    finally:
        release.set()
        for blocker in blockers:
            blocker.result(5)
