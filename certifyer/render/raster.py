from __future__ import annotations

from io import BytesIO

from PIL import Image, ImageChops, ImageColor, ImageDraw, ImageOps

from .assets import FontLoader
from .dom import Element, Rect

_FALLBACK_COLOR = (0, 0, 0)


def _rgb(value: str | None, default=_FALLBACK_COLOR) -> tuple[int, int, int]:
    if not value:
        return default
    try:
        return ImageColor.getrgb(value)[:3]
    except ValueError:
        return default


def _gradient_mask(size: tuple[int, int], direction: str) -> Image.Image:
    vertical = Image.linear_gradient("L")
    horizontal = vertical.rotate(90)
    direction = (direction or "to right").replace("-", " ")
    masks = {
        "to right": horizontal,
        "to left": ImageOps.invert(horizontal),
        "to bottom": vertical,
        "to top": ImageOps.invert(vertical),
        "to bottom right": ImageChops.add(vertical, horizontal, scale=2),
        "to top left": ImageOps.invert(ImageChops.add(vertical, horizontal, scale=2)),
        "to bottom left": ImageChops.add(vertical, ImageOps.invert(horizontal), scale=2),
        "to top right": ImageChops.add(ImageOps.invert(vertical), horizontal, scale=2),
    }
    return masks.get(direction, horizontal).resize(size)


def linear_gradient(size: tuple[int, int], start: str, end: str, direction: str) -> Image.Image:
    first = Image.new("RGB", size, _rgb(start))
    second = Image.new("RGB", size, _rgb(end))
    return Image.composite(second, first, _gradient_mask(size, direction))


def _wrap(text: str, font, max_width: float) -> list[str]:
    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}".strip()
        if not current or font.getlength(candidate) <= max_width:
            current = candidate
        else:
            lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def _ellipsize(line: str, font, max_width: float) -> str:
    while line and font.getlength(line + "…") > max_width:
        line = line[:-1].rstrip()
    return line + "…"


class Rasterizer:
    """Paint an element subtree onto an opaque Pillow image.

    Every ``img`` in the subtree must already be loaded or errored; the
    readiness barrier guarantees that before this runs.
    """

    def __init__(self, font_loader: FontLoader, background: str = "#ffffff"):
        self.font_loader = font_loader
        self.background = background

    def rasterize(self, target: Element, pixel_ratio: float) -> Image.Image:
        pending = [el.describe() for el in target.find_all("img") if not el.complete]
        if pending:
            raise RuntimeError(f"images not ready: {', '.join(pending)}")
        origin = target.bounding_rect()
        size = (
            max(int(round(origin.width * pixel_ratio)), 1),
            max(int(round(origin.height * pixel_ratio)), 1),
        )
        canvas = Image.new("RGB", size, _rgb(self.background, (255, 255, 255)))
        draw = ImageDraw.Draw(canvas)
        for element in target.iter():
            self._paint(canvas, draw, element, origin, pixel_ratio)
        return canvas

    def _box(self, element: Element, origin: Rect, ratio: float) -> tuple[int, int, int, int]:
        rect = element.bounding_rect()
        left = (rect.left - origin.left) * ratio
        top = (rect.top - origin.top) * ratio
        return (
            int(round(left)),
            int(round(top)),
            int(round(left + rect.width * ratio)),
            int(round(top + rect.height * ratio)),
        )

    def _paint(self, canvas, draw, element: Element, origin: Rect, ratio: float) -> None:
        painter = getattr(self, f"_paint_{element.tag}", None)
        if painter is None:
            return
        box = self._box(element, origin, ratio)
        painter(canvas, draw, element, box, element.absolute_scale() * ratio)

    def _paint_div(self, canvas, draw, element, box, scale) -> None:
        attrs = element.attrs
        width, height = box[2] - box[0], box[3] - box[1]
        if width <= 0 or height <= 0:
            return
        radius = int(round((attrs.get("radius") or 0) * scale))
        gradient = attrs.get("gradient")
        if gradient:
            start, end, direction = gradient
            fill_image = linear_gradient((width, height), start, end, direction)
            mask = None
            if radius:
                mask = Image.new("L", (width, height), 0)
                ImageDraw.Draw(mask).rounded_rectangle((0, 0, width - 1, height - 1), radius, fill=255)
            canvas.paste(fill_image, box[:2], mask)
        elif attrs.get("fill"):
            draw.rounded_rectangle(
                (box[0], box[1], box[2] - 1, box[3] - 1), radius, fill=_rgb(attrs["fill"])
            )
        border = attrs.get("border_width")
        if border and attrs.get("border_color"):
            draw.rounded_rectangle(
                (box[0], box[1], box[2] - 1, box[3] - 1),
                radius,
                outline=_rgb(attrs["border_color"]),
                width=max(int(round(border * scale)), 1),
            )

    def _paint_ellipse(self, canvas, draw, element, box, scale) -> None:
        attrs = element.attrs
        draw.ellipse(
            (box[0], box[1], box[2] - 1, box[3] - 1),
            fill=_rgb(attrs["fill"]) if attrs.get("fill") else None,
            outline=_rgb(attrs["outline"]) if attrs.get("outline") else None,
            width=max(int(round((attrs.get("outline_width") or 1) * scale)), 1),
        )

    def _paint_rule(self, canvas, draw, element, box, scale) -> None:
        thickness = max(int(round((element.attrs.get("thickness") or 1) * scale)), 1)
        draw.line(
            (box[0], box[1], box[2], box[1]),
            fill=_rgb(element.attrs.get("color")),
            width=thickness,
        )

    def _paint_img(self, canvas, draw, element, box, scale) -> None:
        if element.load_state != "loaded" or element.resource is None:
            return
        width, height = box[2] - box[0], box[3] - box[1]
        if width <= 0 or height <= 0:
            return
        source = element.resource
        fitted = ImageOps.contain(source, (width, height))
        x = box[0] + (width - fitted.width) // 2
        y = box[1] + (height - fitted.height) // 2
        mask = fitted.getchannel("A") if fitted.mode == "RGBA" else None
        canvas.paste(fitted.convert("RGB"), (x, y), mask)

    def fit_text(self, element: Element, scale: float, max_width: float):
        """Shrink the font until the text fits ``max_lines`` lines, then truncate."""
        attrs = element.attrs
        value = " ".join(str(attrs.get("text") or "").split())
        family = attrs.get("font_family")
        weight = attrs.get("font_weight") or "normal"
        max_lines = max(int(attrs.get("max_lines") or 1), 1)
        size = float(attrs.get("font_size") or 16)
        min_size = min(float(attrs.get("min_font_size") or size), size)
        while True:
            font = self.font_loader.font(family, size * scale, weight)
            lines = _wrap(value, font, max_width) if max_lines > 1 else [value]
            widest = max((font.getlength(line) for line in lines), default=0)
            if (len(lines) <= max_lines and widest <= max_width) or size <= min_size:
                break
            size = max(size - 1, min_size)
        if len(lines) > max_lines:
            lines = lines[:max_lines]
            lines[-1] = _ellipsize(lines[-1], font, max_width)
        elif lines and font.getlength(lines[-1]) > max_width:
            lines[-1] = _ellipsize(lines[-1], font, max_width)
        return font, lines, size * scale

    def _paint_text(self, canvas, draw, element, box, scale) -> None:
        if not str(element.attrs.get("text") or "").strip():
            return
        width = box[2] - box[0]
        font, lines, size_px = self.fit_text(element, scale, width)
        align = element.attrs.get("align") or "center"
        color = _rgb(element.attrs.get("color"))
        line_height = size_px * 1.25
        y = box[1]
        for line in lines:
            line_width = font.getlength(line)
            if align == "left":
                x = box[0]
            elif align == "right":
                x = box[2] - line_width
            else:
                x = box[0] + (width - line_width) / 2
            draw.text((int(round(x)), int(round(y))), line, font=font, fill=color)
            y += line_height


def encode_jpeg(image: Image.Image, quality: int = 92) -> bytes:
    buffer = BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def crop_to(image: Image.Image, outer: Rect, inner: Rect, pixel_ratio: float) -> Image.Image:
    """Crop a capture of ``outer`` down to the region covered by ``inner``."""
    left = int(round((inner.left - outer.left) * pixel_ratio))
    top = int(round((inner.top - outer.top) * pixel_ratio))
    right = left + int(round(inner.width * pixel_ratio))
    bottom = top + int(round(inner.height * pixel_ratio))
    if left < 0 or top < 0 or right > image.width or bottom > image.height:
        raise ValueError(
            f"crop box {(left, top, right, bottom)} outside image {image.size}"
        )
    if right <= left or bottom <= top:
        raise ValueError("crop box is empty")
    return image.crop((left, top, right, bottom))
