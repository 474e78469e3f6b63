"""In-memory visual tree the certificate templates render into.

Elements carry a layout box at natural size, relative to their parent, plus
a dict of inline style overrides (``transform``, ``width``, ``height``,
``marginLeft``). Transforms scale about the element's top-left corner. The
rasterizer paints a subtree of this model with Pillow.
"""

from __future__ import annotations

import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterable, Iterator
from urllib.parse import urlsplit

from ..errors import CrossOriginStyleSheetError

STYLE_PROPERTIES = ("transform", "width", "height", "marginLeft")

_SCALE_RE = re.compile(r"^scale\(\s*([0-9]*\.?[0-9]+)\s*\)$")
_PX_RE = re.compile(r"^(-?[0-9]*\.?[0-9]+)(px)?$")


@dataclass
class Box:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class Rect:
    left: float
    top: float
    width: float
    height: float


def parse_px(value: str | None, default: float) -> float:
    if value is None or value == "":
        return default
    match = _PX_RE.match(str(value).strip())
    if not match:
        raise ValueError(f"unsupported length {value!r}")
    return float(match.group(1))


def parse_scale(value: str | None) -> float:
    if value is None or value.strip() in ("", "none"):
        return 1.0
    match = _SCALE_RE.match(value.strip())
    if not match:
        raise ValueError(f"unsupported transform {value!r}")
    scale = float(match.group(1))
    if scale <= 0:
        raise ValueError(f"degenerate transform {value!r}")
    return scale


class Element:
    def __init__(
        self,
        tag: str,
        box: Box | None = None,
        *,
        id: str | None = None,
        classes: Iterable[str] = (),
        style: dict[str, str] | None = None,
        **attrs,
    ):
        self.tag = tag
        self.box = box or Box()
        self.id = id
        self.classes = list(classes)
        self.style: dict[str, str] = dict(style or {})
        self.attrs = attrs
        self.children: list[Element] = []
        self.parent: Element | None = None
        # Image loading state, only meaningful for ``img`` elements.
        self.load_state = "pending"
        self.resource = None

    def __repr__(self) -> str:
        return f"<Element {self.describe()}>"

    def append(self, child: "Element") -> "Element":
        child.parent = self
        self.children.append(child)
        return child

    def extend(self, children: Iterable["Element"]) -> None:
        for child in children:
            self.append(child)

    @property
    def first_child(self) -> "Element | None":
        return self.children[0] if self.children else None

    @property
    def src(self) -> str | None:
        return self.attrs.get("src")

    @src.setter
    def src(self, value: str) -> None:
        self.attrs["src"] = value
        self.load_state = "pending"
        self.resource = None

    @property
    def complete(self) -> bool:
        return self.load_state in ("loaded", "error")

    def describe(self) -> str:
        label = self.tag
        if self.id:
            label += f"#{self.id}"
        if self.classes:
            label += "." + ".".join(self.classes)
        return label

    def iter(self) -> Iterator["Element"]:
        yield self
        for child in self.children:
            yield from child.iter()

    def find_all(self, tag: str) -> list["Element"]:
        return [el for el in self.iter() if el.tag == tag]

    def matches(self, selector: str) -> bool:
        if selector.startswith("#"):
            return self.id == selector[1:]
        if selector.startswith("."):
            return selector[1:] in self.classes
        return self.tag == selector

    def query(self, selector: str) -> "Element | None":
        for el in self.iter():
            if el.matches(selector):
                return el
        return None

    # Geometry

    def used_width(self) -> float:
        return parse_px(self.style.get("width"), self.box.width)

    def used_height(self) -> float:
        return parse_px(self.style.get("height"), self.box.height)

    def margin_left(self) -> float:
        return parse_px(self.style.get("marginLeft"), 0.0)

    def scale(self) -> float:
        return parse_scale(self.style.get("transform"))

    def _origin_and_scale(self) -> tuple[float, float, float]:
        if self.parent is None:
            return self.box.x + self.margin_left(), self.box.y, self.scale()
        px, py, pscale = self.parent._origin_and_scale()
        x = px + (self.box.x + self.margin_left()) * pscale
        y = py + self.box.y * pscale
        return x, y, pscale * self.scale()

    def absolute_scale(self) -> float:
        return self._origin_and_scale()[2]

    def bounding_rect(self) -> Rect:
        x, y, scale = self._origin_and_scale()
        return Rect(x, y, self.used_width() * scale, self.used_height() * scale)


@contextmanager
def inline_style_override(
    overrides: Iterable[tuple[Element, dict[str, str]]],
    properties: tuple[str, ...] = STYLE_PROPERTIES,
):
    """Apply inline style overrides and put every saved value back on exit.

    Absent properties stay absent after restore, so the node ends up exactly
    as it was whether the body returns or raises.
    """
    plan = [(element, dict(values)) for element, values in overrides]
    saved = [
        (element, {prop: element.style.get(prop) for prop in properties})
        for element, _ in plan
    ]
    try:
        for element, values in plan:
            element.style.update(values)
        yield
    finally:
        for element, previous in saved:
            for prop, value in previous.items():
                if value is None:
                    element.style.pop(prop, None)
                else:
                    element.style[prop] = value


def origin_of(url: str | None) -> str | None:
    if not url:
        return None
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return None
    default_port = 443 if parts.scheme == "https" else 80
    host = parts.hostname.lower()
    if parts.port and parts.port != default_port:
        host = f"{host}:{parts.port}"
    return f"{parts.scheme}://{host}"


@dataclass(frozen=True)
class FontFace:
    family: str
    src: str
    weight: str = "normal"


class StyleSheet:
    def __init__(self, document: "Document", href: str | None, rules: Iterable[FontFace] = ()):
        self.document = document
        self.href = href
        self.disabled = False
        self._rules = tuple(rules)

    def __repr__(self) -> str:
        return f"<StyleSheet {self.href or 'inline'}>"

    @property
    def cross_origin(self) -> bool:
        return not self.document.is_same_origin(self.href)

    @property
    def css_rules(self) -> tuple[FontFace, ...]:
        if self.cross_origin:
            raise CrossOriginStyleSheetError(
                f"Cannot read rules of cross-origin stylesheet {self.href}"
            )
        return self._rules


@dataclass
class Document:
    origin: str
    stylesheets: list[StyleSheet] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.origin = origin_of(self.origin) or self.origin.rstrip("/")

    def add_stylesheet(self, href: str | None, rules: Iterable[FontFace] = ()) -> StyleSheet:
        sheet = StyleSheet(self, href, rules)
        self.stylesheets.append(sheet)
        return sheet

    def is_same_origin(self, url: str | None) -> bool:
        if not url or not url.lower().startswith(("http://", "https://")):
            return True
        return origin_of(url) == self.origin


def enabled_rules(document: Document) -> list[FontFace]:
    """Rules of every enabled sheet, in document order.

    Raises ``CrossOriginStyleSheetError`` while a foreign sheet is still
    enabled; call inside ``disable_cross_origin_stylesheets``.
    """
    return [
        rule
        for sheet in document.stylesheets
        if not sheet.disabled
        for rule in sheet.css_rules
    ]


@contextmanager
def disable_cross_origin_stylesheets(document: Document):
    """Disable foreign stylesheets for the duration; always re-enable them."""
    disabled: list[StyleSheet] = []
    try:
        for sheet in document.stylesheets:
            if not sheet.disabled and sheet.cross_origin:
                sheet.disabled = True
                disabled.append(sheet)
        yield disabled
    finally:
        for sheet in disabled:
            sheet.disabled = False
