"""Template renderer dispatch.

``render`` turns a certificate into the visual tree the viewer shows and the
exporter rasterizes. Student mode wraps the canvas in a scaled viewport;
template-selection mode returns the bare 1000x600 canvas.
"""

from __future__ import annotations

from ...models import DEFAULT_TEMPLATE_ID, CertificateView
from ..dom import Box, Element
from .base import (
    CANVAS_HEIGHT,
    CANVAS_WIDTH,
    MODE_STUDENT,
    MODE_TEMPLATE_SELECTION,
    MODES,
    Palette,
    TemplateProps,
    TemplateVariant,
    props_for_view,
)
from .custom import CustomTemplate
from .variants import BUILTIN_VARIANTS

DEFAULT_STUDENT_SCALE = 0.6

__all__ = [
    "BUILTIN_VARIANTS",
    "CANVAS_HEIGHT",
    "CANVAS_WIDTH",
    "CustomTemplate",
    "MODES",
    "MODE_STUDENT",
    "MODE_TEMPLATE_SELECTION",
    "Palette",
    "TemplateProps",
    "TemplateVariant",
    "props_for_view",
    "render",
    "render_props",
    "select_variant",
    "template_catalog",
]


def variant_for_id(template_id: str | None) -> TemplateVariant:
    return BUILTIN_VARIANTS.get(template_id or "", BUILTIN_VARIANTS[DEFAULT_TEMPLATE_ID])


def select_variant(view: CertificateView) -> TemplateVariant:
    if view.custom_template_config:
        return CustomTemplate(view.custom_template_config)
    return variant_for_id(view.effective_template_id)


def template_catalog() -> list[tuple[str, str]]:
    return [(template_id, variant.label) for template_id, variant in BUILTIN_VARIANTS.items()]


def render_props(
    variant: TemplateVariant,
    props: TemplateProps,
    scale: float | None = None,
) -> Element:
    canvas = variant.render(props)
    if props.mode == MODE_TEMPLATE_SELECTION:
        return canvas
    scale = DEFAULT_STUDENT_SCALE if scale is None else scale
    if scale <= 0:
        raise ValueError(f"scale must be positive, got {scale!r}")
    scaled_width = CANVAS_WIDTH * scale
    viewport = Element(
        "div",
        Box(0, 0, CANVAS_WIDTH, CANVAS_HEIGHT * scale),
        classes=["certificate-viewport"],
        style={
            "width": f"{CANVAS_WIDTH}px",
            "height": f"{CANVAS_HEIGHT * scale:g}px",
        },
    )
    canvas.style.update(
        {
            "transform": f"scale({scale:g})",
            "marginLeft": f"{(CANVAS_WIDTH - scaled_width) / 2:g}px",
        }
    )
    viewport.append(canvas)
    return viewport


def render(
    view: CertificateView,
    mode: str = MODE_STUDENT,
    scale: float | None = None,
    recipient_name: str | None = None,
    preview: bool | None = None,
) -> Element:
    props = props_for_view(view, mode, recipient_name=recipient_name, preview=preview)
    return render_props(select_variant(view), props, scale=scale)
