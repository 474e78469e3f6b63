import pytest

from certifyer.errors import CrossOriginStyleSheetError
from certifyer.render.dom import (
    Box,
    Document,
    Element,
    FontFace,
    disable_cross_origin_stylesheets,
    enabled_rules,
    inline_style_override,
    origin_of,
    parse_scale,
)


def _tree():
    outer = Element("div", Box(0, 0, 1000, 360), classes=["certificate-viewport"])
    canvas = outer.append(
        Element(
            "div",
            Box(0, 0, 1000, 600),
            classes=["certificate-canvas"],
            style={"transform": "scale(0.6)", "marginLeft": "200px"},
        )
    )
    inner = canvas.append(Element("div", Box(0, 0, 1000, 600), classes=["certificate"]))
    return outer, canvas, inner


def test_override_restores_previous_values_and_absence():
    _, canvas, inner = _tree()
    before_canvas = dict(canvas.style)
    with inline_style_override(
        [
            (canvas, {"transform": "none", "width": "1000px", "marginLeft": "0px"}),
            (inner, {"height": "600px"}),
        ]
    ):
        assert canvas.style["transform"] == "none"
        assert inner.style == {"height": "600px"}
    assert canvas.style == before_canvas
    assert "width" not in canvas.style
    assert inner.style == {}


def test_override_restores_on_exception():
    _, canvas, _ = _tree()
    with pytest.raises(RuntimeError):
        with inline_style_override([(canvas, {"transform": "none"})]):
            raise RuntimeError("capture failed")
    assert canvas.style["transform"] == "scale(0.6)"


def test_bounding_rect_follows_scale_and_margin():
    _, canvas, inner = _tree()
    rect = canvas.bounding_rect()
    assert (rect.left, rect.top, rect.width, rect.height) == (200, 0, 600, 360)
    assert inner.bounding_rect().width == 600
    with inline_style_override([(canvas, {"transform": "none", "marginLeft": "0px"})]):
        assert canvas.bounding_rect().width == 1000


def test_parse_scale():
    assert parse_scale(None) == 1.0
    assert parse_scale("none") == 1.0
    assert parse_scale("scale(0.25)") == 0.25
    with pytest.raises(ValueError):
        parse_scale("rotate(45deg)")


def test_query_and_describe():
    outer, canvas, _ = _tree()
    logo = canvas.append(Element("img", Box(0, 0, 10, 10), id="logo", classes=["organization-logo"], src="x.png"))
    assert outer.query(".certificate-canvas") is canvas
    assert outer.query("#logo") is logo
    assert logo.describe() == "img#logo.organization-logo"
    assert not logo.complete
    logo.load_state = "error"
    assert logo.complete
    logo.src = "y.png"
    assert logo.load_state == "pending"


def test_origin_of():
    assert origin_of("https://Example.com:443/a?b") == "https://example.com"
    assert origin_of("http://example.com:8080/") == "http://example.com:8080"
    assert origin_of("data:image/png;base64,xx") is None


def test_cross_origin_rules_raise_until_disabled():
    document = Document("https://certs.test/some/page")
    local = document.add_stylesheet("/static/app.css", [FontFace("Local", "/static/local.ttf")])
    inline = document.add_stylesheet(None)
    foreign = document.add_stylesheet("https://fonts.example.com/css", [FontFace("Inter", "https://fonts.example.com/inter.ttf")])
    assert document.origin == "https://certs.test"
    assert local.css_rules[0].family == "Local"
    assert inline.css_rules == ()
    with pytest.raises(CrossOriginStyleSheetError):
        foreign.css_rules
    with pytest.raises(CrossOriginStyleSheetError):
        enabled_rules(document)
    foreign.disabled = True
    assert [face.family for face in enabled_rules(document)] == ["Local"]


def test_disable_cross_origin_stylesheets_restores():
    document = Document("https://certs.test")
    local = document.add_stylesheet("https://certs.test/app.css")
    foreign = document.add_stylesheet("https://fonts.example.com/css")
    already = document.add_stylesheet("https://other.example.com/css")
    already.disabled = True
    with pytest.raises(ValueError):
        with disable_cross_origin_stylesheets(document) as disabled:
            assert disabled == [foreign]
            assert foreign.disabled and not local.disabled
            raise ValueError("boom")
    assert not foreign.disabled
    assert already.disabled
