"""Certificates designed in the template builder.

The saved configuration comes in two shapes. The builder writes
``layout``/``colors``/``typography``/``content``/``elements`` with boolean
``elements.showLogo`` style toggles, while older records carry an inline
``elements.logo`` object and their own ``elements.signatures`` list.
Both are read here; missing keys fall back to the builder defaults.
"""

from __future__ import annotations

from ...models import Signatory
from ..dom import Box, Element
from .base import (
    CANVAS_HEIGHT,
    CANVAS_WIDTH,
    Palette,
    TemplateProps,
    TemplateVariant,
    ellipse,
    image,
    new_canvas,
    rect,
    signature_blocks,
    text,
)

DEFAULT_ACCENT = "#ea580c"
DEFAULT_TEXT = "#000000"

_GRADIENT_DIRECTIONS = {
    "to-r": "to right",
    "to-l": "to left",
    "to-b": "to bottom",
    "to-t": "to top",
    "to-br": "to bottom right",
    "to-bl": "to bottom left",
    "to-tr": "to top right",
    "to-tl": "to top left",
}


def _section(config: dict, name: str) -> dict:
    value = config.get(name)
    return value if isinstance(value, dict) else {}


def _int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class CustomTemplate(TemplateVariant):
    key = "custom"
    label = "Custom"

    def __init__(self, config: dict):
        super().__init__()
        self.config = config if isinstance(config, dict) else {}

    def resolve_palette(self, props: TemplateProps) -> Palette:
        colors = _section(self.config, "colors")
        typography = _section(self.config, "typography")
        accent = colors.get("accentColor") or DEFAULT_ACCENT
        gradient = None
        if colors.get("backgroundType") == "gradient" and colors.get("gradientFrom") and colors.get("gradientTo"):
            direction = colors.get("gradientDirection") or "to bottom right"
            gradient = (
                colors["gradientFrom"],
                colors["gradientTo"],
                _GRADIENT_DIRECTIONS.get(direction, direction),
            )
        return Palette(
            background=colors.get("background") or "#ffffff",
            accent=accent,
            text=colors.get("textColor") or DEFAULT_TEXT,
            muted="#4b5563",
            border=colors.get("border") or colors.get("borderColor") or accent,
            heading_font=typography.get("headingFont") or "serif",
            body_font=typography.get("bodyFont") or "sans-serif",
            name_font=typography.get("headingFont") or "serif",
            gradient=gradient,
        )

    def logo(self, props: TemplateProps) -> tuple[str | None, str, int]:
        """Return ``(url, alignment, max_width)`` for the logo, url None when hidden."""
        elements = _section(self.config, "elements")
        inline = elements.get("logo")
        if isinstance(inline, dict):
            if not inline.get("enabled") or not inline.get("url"):
                return None, "center", 0
            return inline["url"], inline.get("alignment") or "center", _int(inline.get("size"), 200)
        if elements.get("showLogo", True) and props.organization_logo:
            return props.organization_logo, "center", 200
        return None, "center", 0

    def signatories(self, props: TemplateProps) -> tuple[Signatory, ...]:
        elements = _section(self.config, "elements")
        configured = elements.get("signatures")
        if not isinstance(configured, list):
            return props.visible_signatories
        signatories = []
        for entry in configured:
            if not isinstance(entry, dict):
                continue
            name = (entry.get("name") or "").strip()
            if not name:
                continue
            signatories.append(
                Signatory(
                    name=name,
                    title=entry.get("title") or "",
                    signature_image_url=entry.get("imageUrl") or entry.get("signatureUrl"),
                )
            )
        return tuple(signatories[:2])

    def render(self, props: TemplateProps) -> Element:
        palette = self.resolve_palette(props)
        layout = _section(self.config, "layout")
        canvas, inner = new_canvas(palette.background, palette.gradient)
        border = _int(layout.get("borderWidth"), 4) or 4
        inner.attrs.update(
            border_color=palette.border,
            border_width=border,
            border_style=layout.get("borderStyle") or "solid",
        )
        self.compose(inner, props, palette)
        return canvas

    def compose(self, root: Element, props: TemplateProps, palette: Palette) -> None:
        content = _section(self.config, "content")
        elements = _section(self.config, "elements")
        small = props.preview
        y = 40.0

        url, alignment, max_width = self.logo(props)
        if url:
            height = 48 if small else 64
            width = min(float(max_width), CANVAS_WIDTH - 120.0)
            if alignment in ("start", "left"):
                x = 60.0
            elif alignment in ("end", "right"):
                x = CANVAS_WIDTH - 60.0 - width
            else:
                x = (CANVAS_WIDTH - width) / 2
            root.append(image(Box(x, y, width, height), url, classes=["organization-logo"], fit="contain"))
            y += height + (8 if small else 16)

        title = content.get("title")
        if title:
            size = 28 if small else 36
            root.append(
                text(Box(60, y, CANVAS_WIDTH - 120, size + 12), title, family=palette.heading_font,
                     size=size, color=palette.text, classes=("certificate-header",))
            )
            y += size + (16 if small else 22)

        subtitle = content.get("subtitle")
        if subtitle:
            root.append(
                text(Box(60, y, CANVAS_WIDTH - 120, 22), subtitle, family=palette.body_font,
                     size=14 if small else 16, color=palette.text)
            )
            y += 30

        y = max(y, 180.0)
        root.append(
            text(Box(60, y, CANVAS_WIDTH - 120, 24), "This certifies that", family=palette.body_font,
                 size=16 if small else 18, color=palette.text)
        )
        y += 30
        name_size = 40 if small else 48
        root.append(
            text(Box(60, y, CANVAS_WIDTH - 120, name_size + 14), props.recipient_name,
                 family=palette.heading_font, size=name_size, color=palette.accent,
                 min_size=24, classes=("recipient-name",))
        )
        y += name_size + 20
        root.append(
            text(Box(60, y, CANVAS_WIDTH - 120, 24),
                 content.get("recipientLabel") or "has successfully completed the",
                 family=palette.body_font, size=16 if small else 18, color=palette.text)
        )
        y += 30
        root.append(
            text(Box(60, y, CANVAS_WIDTH - 120, 34), props.course_title, family=palette.heading_font,
                 size=22 if small else 26, color=palette.text, classes=("course-title",))
        )
        y += 40
        if props.description:
            root.append(
                text(Box(160, y, CANVAS_WIDTH - 320, 40), props.description, family=palette.body_font,
                     size=12 if small else 14, color=palette.text, max_lines=1 if small else 2)
            )

        if elements.get("showSeal"):
            root.append(
                ellipse(Box(CANVAS_WIDTH - 150, CANVAS_HEIGHT - 230, 90, 90),
                        fill=palette.accent, outline=palette.border, width=3)
            )

        signature_blocks(
            root, self.signatories(props), Box(100, CANVAS_HEIGHT - 190, CANVAS_WIDTH - 200, 110),
            palette, name_size=12 if small else 14, line_color=palette.text,
        )

        footer_y = CANVAS_HEIGHT - 60
        root.append(
            text(Box(50, footer_y, 450, 20), f"Date: {props.date}" if props.date else "",
                 family=palette.body_font, size=13, color=palette.muted, align="left",
                 classes=("completion-date",))
        )
        if props.certificate_id:
            root.append(
                text(Box(500, footer_y, 450, 20), f"ID: {props.certificate_id}",
                     family="monospace", size=13, color=palette.muted, align="right",
                     classes=("certificate-id",))
            )
        if elements.get("showCorners"):
            for x, y_corner in ((20, 20), (CANVAS_WIDTH - 60, 20), (20, CANVAS_HEIGHT - 60), (CANVAS_WIDTH - 60, CANVAS_HEIGHT - 60)):
                root.append(rect(Box(x, y_corner, 40, 40), border_color=palette.accent, border_width=3))
