"""Turn a rendered certificate into a downloadable JPEG.

The live, scaled viewer node is captured first. If that fails for any
reason the certificate is re-rendered at natural size in a detached
container and captured again. Only when both attempts fail does the caller
see an ``ExportFailure``.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager, nullcontext

from ..errors import ExportFailure, ExportInProgress
from ..models import DEFAULT_RECIPIENT, CertificateView, ExportArtifact
from ..render.assets import FontLoader, ImageLoader, ReadinessBarrier
from ..render.dom import (
    Box,
    Document,
    Element,
    disable_cross_origin_stylesheets,
    inline_style_override,
)
from ..render.raster import Rasterizer, crop_to, encode_jpeg
from ..render.templates import CANVAS_HEIGHT, CANVAS_WIDTH, MODE_TEMPLATE_SELECTION, render

logger = logging.getLogger("certifyer.export")

CANVAS_SELECTOR = ".certificate-canvas"
EXPORT_ROOT_ID = "export-root"
_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def export_filename(course_name: str | None, student_name: str | None) -> str:
    """``{course}_{student}.jpeg`` as a single path component."""
    course = (course_name or "").strip() or "Certificate"
    student = (student_name or "").strip() or DEFAULT_RECIPIENT
    stem = re.sub(r"\s+", "_", f"{course}_{student}")
    stem = _UNSAFE_FILENAME_CHARS.sub("_", stem).lstrip(".")
    return (stem or "Certificate") + ".jpeg"


def filename_for_view(view: CertificateView, recipient_name: str | None = None) -> str:
    program_name = view.program.name if view.program else None
    return export_filename(
        view.course_name or program_name,
        view.student_name or recipient_name,
    )


class ExportGuard:
    """At most one export per certificate at a time."""

    def __init__(self):
        self._lock = threading.Lock()
        self._active: set[str] = set()

    @contextmanager
    def hold(self, key: str):
        with self._lock:
            if key in self._active:
                raise ExportInProgress(certificate_id=key)
            self._active.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(key)

    def busy(self, key: str) -> bool:
        with self._lock:
            return key in self._active


class ExportPipeline:
    def __init__(
        self,
        document: Document,
        image_loader: ImageLoader,
        font_loader: FontLoader,
        pixel_ratio: float = 2,
        max_pixel_ratio: float = 2,
        jpeg_quality: int = 92,
        background: str = "#ffffff",
        image_timeout: float = 2.5,
        require_cors: bool = False,
        executor: ThreadPoolExecutor | None = None,
        guard: ExportGuard | None = None,
        clock=time.time,
    ):
        self.document = document
        self.pixel_ratio = min(max_pixel_ratio, pixel_ratio)
        self.jpeg_quality = jpeg_quality
        self.background = background
        self.barrier = ReadinessBarrier(
            image_loader,
            font_loader,
            document,
            timeout=image_timeout,
            require_cors=require_cors,
            executor=executor,
        )
        self.rasterizer = Rasterizer(font_loader, background=background)
        self.guard = guard or ExportGuard()
        self.clock = clock

    def export_as_image(
        self,
        view: CertificateView,
        dom_node: Element | None = None,
        recipient_name: str | None = None,
        exclusive: bool = True,
    ) -> ExportArtifact:
        with self.guard.hold(view.id) if exclusive else nullcontext():
            data = None
            strategy = "onscreen"
            if dom_node is not None:
                try:
                    data = self.capture_onscreen(dom_node)
                except Exception as exc:
                    logger.warning(
                        "[EXPORT-ONSCREEN-FAIL] stage=onscreen node=%s certificate=%s %s: %s",
                        dom_node.describe(), view.id, type(exc).__name__, exc,
                    )
            if data is None:
                strategy = "offscreen"
                try:
                    data = self.capture_offscreen(view, recipient_name)
                except Exception as exc:
                    logger.error(
                        "[EXPORT-OFFSCREEN-FAIL] stage=offscreen node=div#%s certificate=%s %s: %s",
                        EXPORT_ROOT_ID, view.id, type(exc).__name__, exc,
                    )
                    raise ExportFailure(certificate_id=view.id) from exc
            filename = filename_for_view(view, recipient_name)
            logger.info(
                "[EXPORT-OK] stage=%s certificate=%s filename=%s bytes=%d",
                strategy, view.id, filename, len(data),
            )
            return ExportArtifact(data=data, filename=filename, strategy=strategy)

    def capture_onscreen(self, node: Element) -> bytes:
        target = node if node.matches(CANVAS_SELECTOR) else node.query(CANVAS_SELECTOR)
        if target is None:
            raise LookupError(f"no {CANVAS_SELECTOR} inside {node.describe()}")
        natural = {
            "transform": "none",
            "width": f"{target.box.width:g}px",
            "height": f"{target.box.height:g}px",
            "marginLeft": "0px",
        }
        overrides = [(target, natural)]
        child = target.first_child
        if child is not None:
            overrides.append(
                (
                    child,
                    {
                        "transform": "none",
                        "width": f"{child.box.width:g}px",
                        "height": f"{child.box.height:g}px",
                        "marginLeft": "0px",
                    },
                )
            )
        with inline_style_override(overrides):
            return self.capture(target)

    def capture_offscreen(self, view: CertificateView, recipient_name: str | None = None) -> bytes:
        root = Element(
            "div",
            Box(0, 0, CANVAS_WIDTH, CANVAS_HEIGHT),
            id=EXPORT_ROOT_ID,
            fill=self.background,
        )
        root.append(
            render(
                view,
                mode=MODE_TEMPLATE_SELECTION,
                recipient_name=recipient_name,
                preview=False,
            )
        )
        return self.capture(root)

    def capture(self, target: Element) -> bytes:
        with disable_cross_origin_stylesheets(self.document):
            self.barrier.wait(target, now_ms=int(self.clock() * 1000))
            image = self.rasterizer.rasterize(target, self.pixel_ratio)
        image = self.crop(image, target)
        return encode_jpeg(image, self.jpeg_quality)

    def crop(self, image, target: Element):
        child = target.first_child
        if child is None:
            return image
        try:
            return crop_to(image, target.bounding_rect(), child.bounding_rect(), self.pixel_ratio)
        except Exception as exc:
            logger.warning(
                "[EXPORT-CROP-FAIL] stage=crop node=%s %s", child.describe(), exc
            )
            return image
