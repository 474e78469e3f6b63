from __future__ import annotations

from dataclasses import dataclass, replace

from ...models import CertificateView, Signatory
from ...shared.time import format_display_date
from ..dom import Box, Element

CANVAS_WIDTH = 1000
CANVAS_HEIGHT = 600
MAX_SIGNATORIES = 2

MODE_STUDENT = "student"
MODE_TEMPLATE_SELECTION = "template-selection"
MODES = (MODE_STUDENT, MODE_TEMPLATE_SELECTION)


@dataclass(frozen=True)
class TemplateProps:
    header: str
    course_title: str
    description: str
    date: str
    recipient_name: str
    certificate_id: str = ""
    organization_name: str | None = None
    organization_logo: str | None = None
    signatories: tuple[Signatory, ...] = ()
    preview: bool = False
    mode: str = MODE_TEMPLATE_SELECTION
    accent_color: str | None = None
    library_config: dict | None = None

    @property
    def visible_signatories(self) -> tuple[Signatory, ...]:
        """Only the first two slots exist, and a slot without a name is skipped."""
        return tuple(
            signatory
            for signatory in self.signatories[:MAX_SIGNATORIES]
            if (signatory.name or "").strip()
        )


def props_for_view(
    view: CertificateView,
    mode: str = MODE_TEMPLATE_SELECTION,
    recipient_name: str | None = None,
    preview: bool | None = None,
) -> TemplateProps:
    if mode not in MODES:
        raise ValueError(f"unknown render mode {mode!r}")
    organization = view.organization
    return TemplateProps(
        header=view.display_header,
        course_title=view.display_course_name,
        description=view.display_description,
        date=format_display_date(view.completion_date),
        recipient_name=view.recipient_name(recipient_name),
        certificate_id=view.id,
        organization_name=organization.name if organization else None,
        organization_logo=organization.logo if organization else None,
        signatories=tuple(view.signatories[:MAX_SIGNATORIES]),
        preview=(mode == MODE_STUDENT) if preview is None else preview,
        mode=mode,
        accent_color=organization.primary_color if organization else None,
        library_config=view.library_config,
    )


@dataclass(frozen=True)
class Palette:
    background: str = "#ffffff"
    accent: str = "#1e3a8a"
    text: str = "#1f2937"
    muted: str = "#6b7280"
    border: str = "#1e3a8a"
    heading_font: str = "serif"
    body_font: str = "sans-serif"
    name_font: str = "serif-italic"
    gradient: tuple[str, str, str] | None = None

    def with_overrides(
        self, config: dict | None, brand_color: str | None = None
    ) -> "Palette":
        palette = self
        if brand_color:
            palette = replace(palette, accent=brand_color, border=brand_color)
        if not isinstance(config, dict):
            return palette
        colors = config.get("colors") if isinstance(config.get("colors"), dict) else {}
        typography = (
            config.get("typography") if isinstance(config.get("typography"), dict) else {}
        )
        changes = {}
        if colors.get("accentColor"):
            changes["accent"] = colors["accentColor"]
        if colors.get("textColor"):
            changes["text"] = colors["textColor"]
        if colors.get("background"):
            changes["background"] = colors["background"]
            changes["gradient"] = None
        if colors.get("borderColor"):
            changes["border"] = colors["borderColor"]
        if typography.get("headingFont"):
            changes["heading_font"] = typography["headingFont"]
        if typography.get("bodyFont"):
            changes["body_font"] = typography["bodyFont"]
        return replace(palette, **changes) if changes else palette


def new_canvas(background: str, gradient: tuple[str, str, str] | None = None) -> tuple[Element, Element]:
    """The fixed-size canvas every variant draws into, and its inner certificate."""
    canvas = Element(
        "div", Box(0, 0, CANVAS_WIDTH, CANVAS_HEIGHT), classes=["certificate-canvas"]
    )
    inner = canvas.append(
        Element(
            "div",
            Box(0, 0, CANVAS_WIDTH, CANVAS_HEIGHT),
            classes=["certificate"],
            fill=background,
            gradient=gradient,
        )
    )
    return canvas, inner


def rect(box: Box, fill: str | None = None, **attrs) -> Element:
    return Element("div", box, fill=fill, **attrs)


def ellipse(box: Box, fill: str | None = None, outline: str | None = None, width: int = 2) -> Element:
    return Element("ellipse", box, fill=fill, outline=outline, outline_width=width)


def rule(box: Box, color: str, thickness: int = 2) -> Element:
    return Element("rule", box, color=color, thickness=thickness)


def image(box: Box, src: str, **attrs) -> Element:
    return Element("img", box, src=src, **attrs)


def text(
    box: Box,
    value: str,
    *,
    family: str,
    size: float,
    color: str,
    weight: str = "normal",
    align: str = "center",
    max_lines: int = 1,
    min_size: float | None = None,
    classes: tuple[str, ...] = (),
) -> Element:
    return Element(
        "text",
        box,
        classes=classes,
        text=value,
        font_family=family,
        font_size=size,
        font_weight=weight,
        color=color,
        align=align,
        max_lines=max_lines,
        min_font_size=min_size or max(8.0, size * 0.6),
    )


def signature_blocks(
    parent: Element,
    signatories: tuple[Signatory, ...],
    area: Box,
    palette: Palette,
    *,
    name_size: float = 16,
    title_size: float = 12,
    line_color: str | None = None,
) -> list[Element]:
    """Lay out up to two signature slots evenly across ``area``.

    Each slot is an optional signature image over an underline rule, then the
    signatory's name and title. Without an image the rule stands alone.
    """
    slots = []
    count = len(signatories)
    if not count:
        return slots
    slot_width = min(240.0, area.width / count)
    for index, signatory in enumerate(signatories):
        center_x = area.x + area.width * (index + 1) / (count + 1)
        slot = parent.append(
            Element(
                "div",
                Box(center_x - slot_width / 2, area.y, slot_width, area.height),
                classes=["signature-slot"],
            )
        )
        if signatory.signature_image_url:
            slot.append(
                image(
                    Box(slot_width / 2 - 80, 0, 160, 48),
                    signatory.signature_image_url,
                    classes=["signature-image"],
                )
            )
        slot.append(
            rule(Box(10, 52, slot_width - 20, 0), line_color or palette.text, 2)
        )
        slot.append(
            text(
                Box(0, 58, slot_width, name_size + 8),
                signatory.name,
                family=palette.body_font,
                size=name_size,
                color=palette.text,
                weight="bold",
                classes=("signatory-name",),
            )
        )
        if signatory.title:
            slot.append(
                text(
                    Box(0, 58 + name_size + 8, slot_width, title_size + 6),
                    signatory.title,
                    family=palette.body_font,
                    size=title_size,
                    color=palette.muted,
                    classes=("signatory-title",),
                )
            )
        slots.append(slot)
    return slots


def organization_mark(
    parent: Element,
    props: TemplateProps,
    box: Box,
    palette: Palette,
    *,
    align: str = "center",
    show_name: bool = True,
) -> None:
    logo_height = box.height * 0.65 if show_name and props.organization_name else box.height
    if props.organization_logo:
        logo_width = min(box.width, logo_height * 3)
        if align == "left":
            logo_x = box.x
        elif align == "right":
            logo_x = box.x + box.width - logo_width
        else:
            logo_x = box.x + (box.width - logo_width) / 2
        parent.append(
            image(
                Box(logo_x, box.y, logo_width, logo_height),
                props.organization_logo,
                classes=["organization-logo"],
                fit="contain",
            )
        )
    if show_name and props.organization_name:
        top = box.y + (logo_height if props.organization_logo else 0)
        parent.append(
            text(
                Box(box.x, top, box.width, box.height - (top - box.y)),
                props.organization_name,
                family=palette.body_font,
                size=14,
                color=palette.muted,
                align=align,
                classes=("organization-name",),
            )
        )


class TemplateVariant:
    """One visual layout. Subclasses own their geometry, colors and fonts."""

    key = "base"
    label = "Base"
    brand_accent = False

    def __init__(self, palette: Palette | None = None):
        self.palette = palette or Palette()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.key}>"

    def resolve_palette(self, props: TemplateProps) -> Palette:
        brand = props.accent_color if self.brand_accent else None
        return self.palette.with_overrides(props.library_config, brand)

    def render(self, props: TemplateProps) -> Element:
        palette = self.resolve_palette(props)
        canvas, inner = new_canvas(palette.background, palette.gradient)
        self.compose(inner, props, palette)
        return canvas

    def compose(self, root: Element, props: TemplateProps, palette: Palette) -> None:
        raise NotImplementedError
