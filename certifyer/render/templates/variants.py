from __future__ import annotations

from ..dom import Box, Element
from .base import (
    CANVAS_HEIGHT,
    CANVAS_WIDTH,
    Palette,
    TemplateProps,
    TemplateVariant,
    ellipse,
    organization_mark,
    rect,
    rule,
    signature_blocks,
    text,
)


def _description_lines(props: TemplateProps) -> int:
    return 1 if props.preview else 2


class ClassicTemplate(TemplateVariant):
    """Double border, centred serif headings."""

    key = "classic"
    label = "Classic"

    def compose(self, root: Element, props: TemplateProps, palette: Palette) -> None:
        root.append(
            rect(Box(18, 18, CANVAS_WIDTH - 36, CANVAS_HEIGHT - 36), border_color=palette.border, border_width=6)
        )
        root.append(
            rect(Box(32, 32, CANVAS_WIDTH - 64, CANVAS_HEIGHT - 64), border_color=palette.border, border_width=2)
        )
        organization_mark(root, props, Box(350, 48, 300, 70), palette)
        root.append(
            text(Box(100, 128, 800, 52), props.header.upper(), family=palette.heading_font,
                 size=40, color=palette.accent, weight="bold", classes=("certificate-header",))
        )
        root.append(
            text(Box(100, 190, 800, 26), "This is to certify that", family=palette.body_font,
                 size=18, color=palette.muted)
        )
        root.append(
            text(Box(100, 220, 800, 64), props.recipient_name, family=palette.name_font,
                 size=48, color=palette.text, min_size=28, classes=("recipient-name",))
        )
        root.append(rule(Box(250, 290, 500, 0), palette.border, 2))
        root.append(
            text(Box(100, 300, 800, 24), "has successfully completed", family=palette.body_font,
                 size=16, color=palette.muted)
        )
        root.append(
            text(Box(100, 328, 800, 38), props.course_title, family=palette.heading_font,
                 size=28, color=palette.accent, weight="bold", classes=("course-title",))
        )
        if props.description:
            root.append(
                text(Box(150, 370, 700, 44), props.description, family=palette.body_font,
                     size=14, color=palette.muted, max_lines=_description_lines(props))
            )
        root.append(
            text(Box(100, 420, 800, 22), f"Date: {props.date}" if props.date else "",
                 family=palette.body_font, size=14, color=palette.text, classes=("completion-date",))
        )
        signature_blocks(root, props.visible_signatories, Box(60, 455, 880, 110), palette)


class ModernTemplate(TemplateVariant):
    """Left accent band, left-aligned sans-serif type."""

    key = "modern"
    label = "Modern"
    brand_accent = True

    def compose(self, root: Element, props: TemplateProps, palette: Palette) -> None:
        root.append(rect(Box(0, 0, 70, CANVAS_HEIGHT), fill=palette.accent))
        root.append(rect(Box(70, 0, 8, CANVAS_HEIGHT), fill=palette.border))
        organization_mark(root, props, Box(120, 40, 260, 60), palette, align="left")
        root.append(
            text(Box(120, 120, 820, 46), props.header, family=palette.heading_font, size=36,
                 color=palette.text, weight="bold", align="left", classes=("certificate-header",))
        )
        root.append(rule(Box(120, 176, 120, 0), palette.accent, 4))
        root.append(
            text(Box(120, 196, 820, 24), "Presented to", family=palette.body_font, size=16,
                 color=palette.muted, align="left")
        )
        root.append(
            text(Box(120, 224, 820, 60), props.recipient_name, family=palette.heading_font, size=46,
                 color=palette.accent, weight="bold", align="left", min_size=26,
                 classes=("recipient-name",))
        )
        root.append(
            text(Box(120, 296, 820, 24), "for successfully completing", family=palette.body_font,
                 size=16, color=palette.muted, align="left")
        )
        root.append(
            text(Box(120, 322, 820, 36), props.course_title, family=palette.body_font, size=26,
                 color=palette.text, weight="bold", align="left", classes=("course-title",))
        )
        if props.description:
            root.append(
                text(Box(120, 364, 760, 44), props.description, family=palette.body_font, size=14,
                     color=palette.muted, align="left", max_lines=_description_lines(props))
            )
        root.append(
            text(Box(120, 414, 400, 22), props.date, family=palette.body_font, size=14,
                 color=palette.text, align="left", classes=("completion-date",))
        )
        signature_blocks(root, props.visible_signatories, Box(100, 455, 860, 110), palette)


class ElegantTemplate(TemplateVariant):
    """Soft gradient with corner ornaments."""

    key = "elegant"
    label = "Elegant"
    brand_accent = True

    def compose(self, root: Element, props: TemplateProps, palette: Palette) -> None:
        for x, y in ((24, 24), (CANVAS_WIDTH - 104, 24), (24, CANVAS_HEIGHT - 104), (CANVAS_WIDTH - 104, CANVAS_HEIGHT - 104)):
            root.append(rect(Box(x, y, 80, 80), border_color=palette.accent, border_width=3, radius=16))
        root.append(rect(Box(44, 44, CANVAS_WIDTH - 88, CANVAS_HEIGHT - 88), border_color=palette.border, border_width=1))
        organization_mark(root, props, Box(380, 56, 240, 60), palette, show_name=False)
        root.append(
            text(Box(100, 124, 800, 50), props.header, family=palette.heading_font, size=42,
                 color=palette.accent, classes=("certificate-header",))
        )
        root.append(
            text(Box(100, 184, 800, 24), "proudly presented to", family=palette.body_font,
                 size=16, color=palette.muted)
        )
        root.append(
            text(Box(100, 212, 800, 70), props.recipient_name, family=palette.name_font, size=54,
                 color=palette.text, min_size=30, classes=("recipient-name",))
        )
        root.append(
            text(Box(100, 292, 800, 24), "in recognition of completing", family=palette.body_font,
                 size=16, color=palette.muted)
        )
        root.append(
            text(Box(100, 320, 800, 36), props.course_title, family=palette.heading_font, size=28,
                 color=palette.accent, weight="bold", classes=("course-title",))
        )
        if props.description:
            root.append(
                text(Box(160, 362, 680, 44), props.description, family=palette.body_font, size=14,
                     color=palette.muted, max_lines=_description_lines(props))
            )
        if props.organization_name:
            root.append(
                text(Box(100, 412, 800, 22), props.organization_name, family=palette.body_font,
                     size=14, color=palette.text, classes=("organization-name",))
            )
        signature_blocks(root, props.visible_signatories, Box(80, 446, 840, 110), palette)
        root.append(
            text(Box(100, 540, 800, 20), props.date, family=palette.body_font, size=13,
                 color=palette.muted, classes=("completion-date",))
        )


class MinimalTemplate(TemplateVariant):
    """White page, a single hairline and generous spacing."""

    key = "minimal"
    label = "Minimal"

    def compose(self, root: Element, props: TemplateProps, palette: Palette) -> None:
        organization_mark(root, props, Box(60, 50, 300, 50), palette, align="left")
        root.append(
            text(Box(600, 60, 340, 20), props.date, family=palette.body_font, size=13,
                 color=palette.muted, align="right", classes=("completion-date",))
        )
        root.append(
            text(Box(60, 170, 880, 30), props.header.upper(), family=palette.body_font, size=20,
                 color=palette.muted, align="left", classes=("certificate-header",))
        )
        root.append(
            text(Box(60, 210, 880, 70), props.recipient_name, family=palette.heading_font, size=56,
                 color=palette.text, align="left", min_size=30, classes=("recipient-name",))
        )
        root.append(rule(Box(60, 296, 880, 0), palette.border, 1))
        root.append(
            text(Box(60, 314, 880, 34), props.course_title, family=palette.body_font, size=24,
                 color=palette.accent, align="left", classes=("course-title",))
        )
        if props.description:
            root.append(
                text(Box(60, 356, 820, 44), props.description, family=palette.body_font, size=14,
                     color=palette.muted, align="left", max_lines=_description_lines(props))
            )
        signature_blocks(root, props.visible_signatories, Box(40, 450, 920, 110), palette)


class BoldTemplate(TemplateVariant):
    """Dark header band with reversed-out title."""

    key = "bold"
    label = "Bold"
    brand_accent = True

    def compose(self, root: Element, props: TemplateProps, palette: Palette) -> None:
        root.append(rect(Box(0, 0, CANVAS_WIDTH, 170), fill=palette.accent))
        root.append(rect(Box(0, 170, CANVAS_WIDTH, 8), fill=palette.border))
        organization_mark(root, props, Box(40, 30, 200, 60), palette, align="left", show_name=False)
        root.append(
            text(Box(40, 96, 920, 52), props.header.upper(), family=palette.heading_font, size=40,
                 color=palette.background, weight="bold", classes=("certificate-header",))
        )
        root.append(
            text(Box(100, 210, 800, 64), props.recipient_name, family=palette.heading_font, size=48,
                 color=palette.text, weight="bold", min_size=26, classes=("recipient-name",))
        )
        root.append(
            text(Box(100, 284, 800, 24), "has successfully completed", family=palette.body_font,
                 size=16, color=palette.muted)
        )
        root.append(
            text(Box(100, 312, 800, 36), props.course_title, family=palette.body_font, size=28,
                 color=palette.accent, weight="bold", classes=("course-title",))
        )
        if props.description:
            root.append(
                text(Box(150, 356, 700, 44), props.description, family=palette.body_font, size=14,
                     color=palette.muted, max_lines=_description_lines(props))
            )
        meta = " • ".join(part for part in (props.organization_name, props.date) if part)
        root.append(
            text(Box(100, 410, 800, 22), meta, family=palette.body_font, size=14,
                 color=palette.text, classes=("completion-date",))
        )
        signature_blocks(root, props.visible_signatories, Box(60, 450, 880, 110), palette)


class SealTemplate(TemplateVariant):
    """Framed certificate with a round seal in the lower right corner."""

    key = "seal"
    label = "Seal"

    def compose(self, root: Element, props: TemplateProps, palette: Palette) -> None:
        root.append(rect(Box(24, 24, CANVAS_WIDTH - 48, CANVAS_HEIGHT - 48), border_color=palette.border, border_width=10))
        root.append(ellipse(Box(820, 420, 120, 120), fill=palette.accent, outline=palette.border, width=4))
        root.append(ellipse(Box(836, 436, 88, 88), outline=palette.background, width=2))
        root.append(
            text(Box(820, 468, 120, 24), "VERIFIED", family=palette.body_font, size=14,
                 color=palette.background, weight="bold")
        )
        organization_mark(root, props, Box(60, 50, 280, 60), palette, align="left")
        root.append(
            text(Box(100, 130, 800, 50), props.header, family=palette.heading_font, size=40,
                 color=palette.text, weight="bold", classes=("certificate-header",))
        )
        root.append(
            text(Box(100, 196, 800, 66), props.recipient_name, family=palette.name_font, size=50,
                 color=palette.accent, min_size=28, classes=("recipient-name",))
        )
        root.append(
            text(Box(100, 276, 800, 24), "for the successful completion of", family=palette.body_font,
                 size=16, color=palette.muted)
        )
        root.append(
            text(Box(100, 304, 800, 36), props.course_title, family=palette.heading_font, size=28,
                 color=palette.text, weight="bold", classes=("course-title",))
        )
        if props.description:
            root.append(
                text(Box(150, 348, 700, 44), props.description, family=palette.body_font, size=14,
                     color=palette.muted, max_lines=_description_lines(props))
            )
        root.append(
            text(Box(100, 400, 800, 22), props.date, family=palette.body_font, size=14,
                 color=palette.text, classes=("completion-date",))
        )
        signature_blocks(root, props.visible_signatories, Box(40, 440, 760, 110), palette)


class GradientTemplate(TemplateVariant):
    """Colourful gradient backdrop with a light content panel."""

    key = "gradient"
    label = "Gradient"

    def compose(self, root: Element, props: TemplateProps, palette: Palette) -> None:
        panel = root.append(
            rect(Box(60, 50, CANVAS_WIDTH - 120, CANVAS_HEIGHT - 100), fill="#ffffff", radius=8)
        )
        panel.append(rect(Box(0, 20, CANVAS_WIDTH - 120, 18), gradient=(palette.accent, palette.border, "to left")))
        organization_mark(panel, props, Box(620, 50, 220, 50), palette, align="right", show_name=False)
        panel.append(
            text(Box(50, 60, 560, 36), props.header, family=palette.heading_font, size=28,
                 color=palette.accent, weight="bold", align="left", classes=("certificate-header",))
        )
        panel.append(
            text(Box(50, 104, 560, 22), "awarded to", family=palette.body_font, size=15,
                 color=palette.muted, align="left")
        )
        panel.append(
            text(Box(50, 132, 780, 50), props.recipient_name, family=palette.heading_font, size=38,
                 color=palette.border, weight="bold", align="left", min_size=22,
                 classes=("recipient-name",))
        )
        panel.append(
            text(Box(50, 192, 780, 22), "in recognition of", family=palette.body_font, size=15,
                 color=palette.muted, align="left")
        )
        panel.append(
            text(Box(50, 218, 780, 34), props.course_title, family=palette.body_font, size=26,
                 color=palette.text, weight="bold", align="left", classes=("course-title",))
        )
        if props.description:
            panel.append(
                text(Box(50, 260, 760, 44), props.description, family=palette.body_font, size=14,
                     color=palette.muted, align="left", max_lines=_description_lines(props))
            )
        panel.append(
            text(Box(50, 312, 400, 22), props.date, family=palette.body_font, size=14,
                 color=palette.text, align="left", classes=("completion-date",))
        )
        signature_blocks(
            panel, props.visible_signatories, Box(20, 350, CANVAS_WIDTH - 160, 110), palette
        )


_NAVY = Palette(accent="#1e3a8a", border="#1e3a8a")
_BURGUNDY = Palette(accent="#7f1d1d", border="#b45309", background="#fffbeb")
_FOREST = Palette(accent="#166534", border="#14532d", background="#f7fdf9")
_INDIGO = Palette(accent="#6366f1", border="#4338ca", heading_font="sans-serif")
_TEAL = Palette(accent="#0f766e", border="#115e59", heading_font="sans-serif")
_ORANGE = Palette(accent="#ea580c", border="#9a3412", heading_font="sans-serif")
_GOLD = Palette(accent="#b45309", border="#d97706", gradient=("#f8fafc", "#f1f5f9", "to bottom right"))
_EMERALD = Palette(accent="#047857", border="#10b981", gradient=("#ecfdf5", "#f0fdfa", "to bottom right"))
_SLATE = Palette(accent="#334155", border="#94a3b8", text="#0f172a", heading_font="sans-serif")
_GRAPHITE = Palette(accent="#374151", border="#9ca3af", heading_font="serif")
_CRIMSON = Palette(accent="#991b1b", border="#f59e0b", heading_font="sans-serif")
_MIDNIGHT = Palette(accent="#111827", border="#6366f1", heading_font="sans-serif")
_ROYAL = Palette(accent="#4c1d95", border="#a16207", background="#fefce8")
_SUNSET = Palette(
    accent="#d604da", border="#fd8207", text="#4d4d4d", heading_font="sans-serif",
    gradient=("#ddb4fb", "#fdba18", "to right"),
)
_OCEAN = Palette(
    accent="#0369a1", border="#0ea5e9", heading_font="sans-serif",
    gradient=("#bae6fd", "#1e3a8a", "to bottom right"),
)
_ACADEMIC = Palette(accent="#1f2937", border="#1f2937", background="#ffffff")

BUILTIN_VARIANTS: dict[str, TemplateVariant] = {
    "template1": ClassicTemplate(_NAVY),
    "template2": ModernTemplate(_INDIGO),
    "template3": ElegantTemplate(_GOLD),
    "template4": BoldTemplate(_MIDNIGHT),
    "template5": MinimalTemplate(_GRAPHITE),
    "template6": SealTemplate(_ROYAL),
    "template7": ClassicTemplate(_BURGUNDY),
    "template8": ModernTemplate(_TEAL),
    "template9": GradientTemplate(_SUNSET),
    "template10": ElegantTemplate(_EMERALD),
    "template11": BoldTemplate(_CRIMSON),
    "template12": MinimalTemplate(_SLATE),
    "template13": SealTemplate(_FOREST),
    "template14": GradientTemplate(_OCEAN),
    "template15": ModernTemplate(_ORANGE),
    "template16": ClassicTemplate(_ACADEMIC),
}
