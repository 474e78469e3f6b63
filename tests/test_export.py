import logging
import threading
from contextlib import nullcontext
from io import BytesIO

import pytest
import requests
from PIL import Image

from conftest import FakeResponse, FakeSession, png_bytes
from certifyer.errors import CrossOriginStyleSheetError, ExportFailure, ExportInProgress
from certifyer.models import CertificateView, OrganizationRef, Signatory
from certifyer.render.assets import TRANSPARENT_GIF, FontLoader, ImageLoader
from certifyer.render.dom import Box, Document, Element, FontFace, disable_cross_origin_stylesheets
from certifyer.render.templates import MODE_STUDENT, render
from certifyer.services import export as export_module
from certifyer.services.export import ExportGuard, ExportPipeline, export_filename

ORIGIN = "https://certs.test"
LOGO = "https://cdn.example.com/logo.png"


def _view(**fields):
    base = dict(
        id="cert-1",
        completion_date="2024-03-01",
        student_name="Ada Lovelace",
        course_name="Analytical Engines",
        organization=OrganizationRef(name="Difference Academy", logo=LOGO),
        template_id="template1",
        signatories=(Signatory(name="Charles Babbage", title="Director"),),
    )
    base.update(fields)
    return CertificateView(**base)


def _pipeline(session, document=None, **kwargs):
    document = document or Document(ORIGIN)
    kwargs.setdefault("pixel_ratio", 1)
    return ExportPipeline(
        document,
        ImageLoader(session=session, timeout=1.0),
        FontLoader(session=session),
        image_timeout=1.0,
        clock=lambda: 1700000000.0,
        **kwargs,
    )


def _decode(artifact):
    return Image.open(BytesIO(artifact.data))


def test_export_filename_collapses_whitespace():
    assert export_filename("Intro  to\tPython", "Ada  Lovelace") == "Intro_to_Python_Ada_Lovelace.jpeg"
    assert export_filename(None, None) == "Certificate_Student.jpeg"


def test_export_filename_is_a_single_path_component():
    assert export_filename("AI/ML Basics", "Ada Lovelace") == "AI_ML_Basics_Ada_Lovelace.jpeg"
    assert export_filename("../../etc/passwd", "x\\y") == "_.._etc_passwd_x_y.jpeg"
    assert export_filename('Q: "why?"', "<a|b>*") == "Q___why____a_b__.jpeg"
    assert export_filename("..", "..") == "_...jpeg"


def test_onscreen_capture_restores_live_node():
    session = FakeSession().add(LOGO, FakeResponse(200, content=png_bytes()))
    node = render(_view(), mode=MODE_STUDENT, scale=0.6)
    canvas = node.first_child
    before = dict(canvas.style)
    artifact = _pipeline(session).export_as_image(_view(), dom_node=node)
    assert artifact.strategy == "onscreen"
    assert artifact.mime_type == "image/jpeg"
    assert artifact.filename == "Analytical_Engines_Ada_Lovelace.jpeg"
    image = _decode(artifact)
    assert image.format == "JPEG"
    assert image.size == (1000, 600)
    assert canvas.style == before
    assert canvas.first_child.style == {}


def test_pixel_ratio_is_capped():
    session = FakeSession().add(LOGO, FakeResponse(200, content=png_bytes()))
    pipeline = _pipeline(session, pixel_ratio=3, max_pixel_ratio=2)
    assert pipeline.pixel_ratio == 2


def test_onscreen_failure_falls_back_to_offscreen(caplog):
    session = FakeSession().add(LOGO, FakeResponse(200, content=png_bytes()))
    stray = Element("div", Box(0, 0, 100, 100), id="not-a-certificate")
    with caplog.at_level(logging.INFO, logger="certifyer.export"):
        artifact = _pipeline(session).export_as_image(_view(), dom_node=stray)
    assert artifact.strategy == "offscreen"
    assert _decode(artifact).size == (1000, 600)
    assert "[EXPORT-ONSCREEN-FAIL]" in caplog.text
    assert "div#not-a-certificate" in caplog.text
    assert "[EXPORT-OK]" in caplog.text


def test_onscreen_exception_still_restores_styles(monkeypatch):
    session = FakeSession().add(LOGO, FakeResponse(200, content=png_bytes()))
    pipeline = _pipeline(session)
    node = render(_view(), mode=MODE_STUDENT)
    canvas = node.first_child
    before = dict(canvas.style)
    real_capture = pipeline.capture
    attempts = []

    def flaky_capture(target):
        attempts.append(target)
        if len(attempts) == 1:
            assert target.style["transform"] == "none"
            raise RuntimeError("canvas tainted")
        return real_capture(target)

    monkeypatch.setattr(pipeline, "capture", flaky_capture)
    artifact = pipeline.export_as_image(_view(), dom_node=node)
    assert artifact.strategy == "offscreen"
    assert canvas.style == before
    assert attempts[1].id == "export-root"


def test_total_failure_raises_export_failure(monkeypatch, caplog):
    session = FakeSession()
    pipeline = _pipeline(session)

    def broken(target, pixel_ratio):
        raise RuntimeError("no canvas")

    monkeypatch.setattr(pipeline.rasterizer, "rasterize", broken)
    with caplog.at_level(logging.ERROR, logger="certifyer.export"):
        with pytest.raises(ExportFailure):
            pipeline.export_as_image(_view(), dom_node=render(_view()))
    assert "[EXPORT-OFFSCREEN-FAIL]" in caplog.text
    assert not pipeline.guard.busy("cert-1")


def test_unreachable_logo_becomes_transparent_placeholder(caplog):
    session = FakeSession()
    session.add(LOGO, requests.ConnectionError("unreachable"))
    pipeline = _pipeline(session)
    node = render(_view(), mode=MODE_STUDENT)
    with caplog.at_level(logging.INFO, logger="certifyer.export"):
        artifact = pipeline.export_as_image(_view(), dom_node=node)
    assert _decode(artifact).size == (1000, 600)
    assert "[EXPORT-ASSET-FALLBACK]" in caplog.text
    assert "img.organization-logo" in caplog.text
    logo = node.query(".organization-logo")
    assert logo.src == TRANSPARENT_GIF


def test_sanitation_reloads_with_cache_buster_and_origin():
    session = FakeSession().add(LOGO, FakeResponse(200, content=png_bytes()))
    node = render(_view(), mode=MODE_STUDENT)
    _pipeline(session).export_as_image(_view(), dom_node=node)
    reloads = [call for call in session.calls if "_cb=" in call["url"]]
    assert reloads
    assert reloads[0]["url"] == f"{LOGO}?_cb=1700000000000"
    assert reloads[0]["headers"] == {"Origin": ORIGIN}
    assert node.query(".organization-logo").src == LOGO


def test_required_cors_grant_is_enforced(caplog):
    def respond(call):
        headers = {"Access-Control-Allow-Origin": "https://elsewhere.test"} if "_cb=" in call["url"] else {}
        return FakeResponse(200, content=png_bytes(), headers=headers)

    session = FakeSession().add(LOGO, respond)
    node = render(_view(), mode=MODE_STUDENT)
    with caplog.at_level(logging.WARNING, logger="certifyer.export"):
        _pipeline(session, require_cors=True).export_as_image(_view(), dom_node=node)
    assert node.query(".organization-logo").src == TRANSPARENT_GIF
    assert "no CORS grant" in caplog.text


def test_one_bad_image_does_not_affect_others():
    signature = "https://cdn.example.com/sig.png"
    session = (
        FakeSession()
        .add(LOGO, FakeResponse(404))
        .add(signature, FakeResponse(200, content=png_bytes()))
    )
    view = _view(signatories=(Signatory(name="Signer", signature_image_url=signature),))
    node = render(view, mode=MODE_STUDENT)
    _pipeline(session).export_as_image(view, dom_node=node)
    assert node.query(".organization-logo").src == TRANSPARENT_GIF
    assert node.query(".signature-image").src == signature


def test_stylesheets_are_disabled_only_while_rasterizing(monkeypatch):
    document = Document(ORIGIN)
    foreign = document.add_stylesheet("https://fonts.example.com/css")
    session = FakeSession().add(LOGO, FakeResponse(200, content=png_bytes()))
    pipeline = _pipeline(session, document=document)
    seen = []
    real = pipeline.rasterizer.rasterize

    def spy(target, pixel_ratio):
        seen.append(foreign.disabled)
        return real(target, pixel_ratio)

    monkeypatch.setattr(pipeline.rasterizer, "rasterize", spy)
    pipeline.export_as_image(_view(), dom_node=render(_view()))
    assert seen == [True]
    assert not foreign.disabled


def test_crop_failure_keeps_uncropped_image(monkeypatch, caplog):
    session = FakeSession().add(LOGO, FakeResponse(200, content=png_bytes()))

    def bad_crop(*args, **kwargs):
        raise ValueError("crop box outside image")

    monkeypatch.setattr(export_module, "crop_to", bad_crop)
    with caplog.at_level(logging.WARNING, logger="certifyer.export"):
        artifact = _pipeline(session).export_as_image(_view())
    assert _decode(artifact).size == (1000, 600)
    assert "[EXPORT-CROP-FAIL]" in caplog.text


def test_second_concurrent_export_is_rejected():
    guard = ExportGuard()
    session = FakeSession().add(LOGO, FakeResponse(200, content=png_bytes()))
    pipeline = _pipeline(session, guard=guard)
    with guard.hold("cert-1"):
        with pytest.raises(ExportInProgress):
            pipeline.export_as_image(_view())
        other = pipeline.export_as_image(_view(id="cert-2"))
    assert other.data
    assert not guard.busy("cert-1")


def test_guard_releases_across_threads():
    guard = ExportGuard()
    entered = threading.Event()
    release = threading.Event()

    def worker():
        with guard.hold("c"):
            entered.set()
            release.wait(5)

    thread = threading.Thread(target=worker)
    thread.start()
    entered.wait(5)
    with pytest.raises(ExportInProgress):
        with guard.hold("c"):
            pass
    release.set()
    thread.join(5)
    with guard.hold("c"):
        assert guard.busy("c")


def _font_document():
    document = Document(ORIGIN)
    document.add_stylesheet("/static/app.css", [FontFace("Brand", f"{ORIGIN}/fonts/brand.ttf")])
    document.add_stylesheet(
        "https://fonts.example.com/css", [FontFace("Brand", "https://fonts.example.com/brand.ttf")]
    )
    return document


def test_foreign_font_faces_fall_back_to_bundled_fonts(caplog):
    session = FakeSession().add(LOGO, FakeResponse(200, content=png_bytes()))
    view = _view(library_config={"typography": {"headingFont": "Brand"}})
    pipeline = _pipeline(session, document=_font_document())
    with caplog.at_level(logging.WARNING, logger="certifyer.export"):
        artifact = pipeline.export_as_image(view, dom_node=render(view))
    assert artifact.strategy == "onscreen"
    fetched = [call["url"] for call in session.calls if "/brand.ttf" in call["url"]]
    assert fetched == [f"{ORIGIN}/fonts/brand.ttf"]
    assert "[EXPORT-FONT-FALLBACK]" in caplog.text


def test_font_rules_need_foreign_sheets_disabled():
    document = _font_document()
    loader = FontLoader(session=FakeSession())
    with pytest.raises(CrossOriginStyleSheetError):
        loader.prepare({("Brand", "normal")}, document)
    with disable_cross_origin_stylesheets(document):
        loader.prepare({("Brand", "normal")}, document)


def test_export_fails_without_stylesheet_isolation(monkeypatch):
    session = FakeSession().add(LOGO, FakeResponse(200, content=png_bytes()))
    pipeline = _pipeline(session, document=_font_document())
    monkeypatch.setattr(export_module, "disable_cross_origin_stylesheets", lambda document: nullcontext([]))
    with pytest.raises(ExportFailure) as excinfo:
        pipeline.export_as_image(_view(), dom_node=render(_view()))
    assert isinstance(excinfo.value.__cause__, CrossOriginStyleSheetError)
