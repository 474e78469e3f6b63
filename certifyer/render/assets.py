"""Images and fonts for the rasterizer, and the barrier that waits for them."""

from __future__ import annotations

import base64
import binascii
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, wait
from io import BytesIO
from urllib.parse import unquote_to_bytes, urljoin

import requests
from PIL import Image, ImageFont

from ..errors import AssetSanitationFailure
from .dom import Document, Element, enabled_rules

logger = logging.getLogger("certifyer.export")

TRANSPARENT_GIF = (
    "data:image/gif;base64,R0lGODlhAQABAIAAAAAAAP///ywAAAAAAQABAAACAUwAOw=="
)

DEFAULT_FONT_DIR = "/usr/share/fonts/truetype/dejavu"

_FONT_FILES = {
    ("sans-serif", "normal"): "DejaVuSans.ttf",
    ("sans-serif", "bold"): "DejaVuSans-Bold.ttf",
    ("serif", "normal"): "DejaVuSerif.ttf",
    ("serif", "bold"): "DejaVuSerif-Bold.ttf",
    ("serif-italic", "normal"): "DejaVuSerif-Italic.ttf",
    ("serif-italic", "bold"): "DejaVuSerif-BoldItalic.ttf",
    ("monospace", "normal"): "DejaVuSansMono.ttf",
    ("monospace", "bold"): "DejaVuSansMono-Bold.ttf",
}

_FAMILY_ALIASES = {
    "serif": "serif",
    "georgia": "serif",
    "times": "serif",
    "times new roman": "serif",
    "playfair display": "serif",
    "merriweather": "serif",
    "garamond": "serif",
    "cursive": "serif-italic",
    "great vibes": "serif-italic",
    "dancing script": "serif-italic",
    "monospace": "monospace",
    "courier": "monospace",
    "courier new": "monospace",
}


def generic_family(family: str | None) -> str:
    """Map a CSS family list to one of the bundled DejaVu families."""
    for candidate in (family or "").split(","):
        name = candidate.strip().strip("'\"").lower()
        if name in _FAMILY_ALIASES:
            return _FAMILY_ALIASES[name]
        if name.endswith("-italic"):
            return "serif-italic"
    return "sans-serif"


def primary_family(family: str | None) -> str:
    return (family or "").split(",")[0].strip().strip("'\"").lower()


def normalize_weight(weight: str | int | None) -> str:
    if weight in ("bold", "bolder") or (str(weight).isdigit() and int(weight) >= 600):
        return "bold"
    return "normal"


def decode_data_uri(uri: str) -> bytes:
    header, sep, payload = uri.partition(",")
    if not header.startswith("data:") or not sep:
        raise ValueError("malformed data URI")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=False)
        except binascii.Error as exc:
            raise ValueError("malformed base64 payload") from exc
    return unquote_to_bytes(payload)


def cache_busted(url: str, epoch_ms: int) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}_cb={epoch_ms}"


def is_remote(url: str | None) -> bool:
    return bool(url) and url.lower().startswith(("http://", "https://"))


class ImageLoader:
    """Fetch image bytes for ``img`` elements and decode them with Pillow.

    ``data:`` URIs are decoded in place, paths under ``/static/`` are read
    from ``static_root`` when given, other relative paths resolve against
    the document origin.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = 2.5,
        static_root: str | None = None,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.static_root = static_root

    def _decode(self, data: bytes) -> Image.Image:
        try:
            image = Image.open(BytesIO(data))
            image.load()
        except OSError as exc:
            raise AssetSanitationFailure("image could not be decoded") from exc
        return image.convert("RGBA")

    def _read_static(self, path: str) -> bytes | None:
        if not self.static_root or not path.startswith("/static/"):
            return None
        root = os.path.realpath(self.static_root)
        candidate = os.path.realpath(os.path.join(root, path[len("/static/"):]))
        if not candidate.startswith(root + os.sep):
            raise AssetSanitationFailure(f"static path escapes root: {path}")
        try:
            with open(candidate, "rb") as fh:
                return fh.read()
        except OSError as exc:
            raise AssetSanitationFailure(f"static file unreadable: {path}") from exc

    def _get(self, url: str, headers: dict | None = None) -> requests.Response:
        try:
            response = self.session.get(url, headers=headers or {}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise AssetSanitationFailure(f"request failed: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise AssetSanitationFailure(f"status {response.status_code}")
        return response

    def load(self, src: str | None, document: Document | None = None) -> Image.Image:
        if not src:
            raise AssetSanitationFailure("image has no source")
        if src.startswith("data:"):
            try:
                return self._decode(decode_data_uri(src))
            except ValueError as exc:
                raise AssetSanitationFailure(str(exc)) from exc
        data = self._read_static(src)
        if data is not None:
            return self._decode(data)
        url = src
        if not is_remote(src):
            if document is None:
                raise AssetSanitationFailure(f"relative source without a document: {src}")
            url = urljoin(document.origin + "/", src)
        return self._decode(self._get(url).content)

    def load_anonymous(
        self, src: str, origin: str, epoch_ms: int, require_cors: bool = False
    ) -> Image.Image:
        """Reload a foreign image without credentials, bypassing caches."""
        response = self._get(cache_busted(src, epoch_ms), headers={"Origin": origin})
        if require_cors:
            allowed = response.headers.get("Access-Control-Allow-Origin")
            if allowed not in ("*", origin):
                raise AssetSanitationFailure(f"no CORS grant for {origin}")
        return self._decode(response.content)


class FontLoader:
    def __init__(
        self,
        font_dir: str = DEFAULT_FONT_DIR,
        session: requests.Session | None = None,
        timeout: float = 2.5,
    ):
        self.font_dir = font_dir
        self.session = session or requests.Session()
        self.timeout = timeout
        self._remote: dict[tuple[str, str], bytes] = {}
        self._cache: dict[tuple[str, str, int], ImageFont.ImageFont] = {}
        self._warned: set[tuple[str, str]] = set()

    def _path(self, family: str, weight: str) -> str:
        generic = generic_family(family)
        filename = _FONT_FILES.get((generic, weight)) or _FONT_FILES[(generic, "normal")]
        return os.path.join(self.font_dir, filename)

    def prepare(self, families: set[tuple[str, str]], document: Document | None = None) -> None:
        """Load the web font faces declared by enabled stylesheets for ``families``.

        Faces of disabled sheets are never fetched; text in those families
        falls back to the bundled fonts.
        """
        if document is None:
            return
        wanted = {primary_family(family) for family, _ in families}
        for face in enabled_rules(document):
            key = (face.family.lower(), normalize_weight(face.weight))
            if face.family.lower() not in wanted or key in self._remote:
                continue
            try:
                if face.src.startswith("data:"):
                    data = decode_data_uri(face.src)
                else:
                    response = self.session.get(face.src, timeout=self.timeout)
                    response.raise_for_status()
                    data = response.content
                ImageFont.truetype(BytesIO(data), 12)
            except (requests.RequestException, OSError, ValueError) as exc:
                logger.warning(
                    "[EXPORT-FONT-FALLBACK] stage=fonts face=%s src=%s %s",
                    face.family, face.src, exc,
                )
                continue
            self._remote[key] = data

    def font(self, family: str | None, size: float, weight: str = "normal") -> ImageFont.ImageFont:
        weight = normalize_weight(weight)
        size_px = max(int(round(size)), 1)
        primary = primary_family(family)
        key = (primary, weight, size_px)
        if key in self._cache:
            return self._cache[key]
        remote = self._remote.get((primary, weight)) or self._remote.get((primary, "normal"))
        try:
            if remote is not None:
                font = ImageFont.truetype(BytesIO(remote), size_px)
            else:
                font = ImageFont.truetype(self._path(family or "", weight), size_px)
        except OSError as exc:
            if (primary, weight) not in self._warned:
                self._warned.add((primary, weight))
                logger.warning(
                    "[EXPORT-FONT-FALLBACK] stage=fonts family=%s weight=%s %s",
                    family, weight, exc,
                )
            font = ImageFont.load_default(size=size_px)
        self._cache[key] = font
        return font


class ReadinessBarrier:
    """Wait until a subtree can be rasterized.

    In order: every image has loaded or errored, the fonts used by text
    elements are ready, and cross-origin images have been reloaded
    anonymously or replaced by a transparent placeholder.

    Font faces come from the rules of enabled stylesheets, so ``wait`` has
    to run inside ``disable_cross_origin_stylesheets``.
    """

    def __init__(
        self,
        image_loader: ImageLoader,
        font_loader: FontLoader,
        document: Document,
        timeout: float = 2.5,
        require_cors: bool = False,
        executor: ThreadPoolExecutor | None = None,
    ):
        self.image_loader = image_loader
        self.font_loader = font_loader
        self.document = document
        self.timeout = timeout
        self.require_cors = require_cors
        self.executor = executor or ThreadPoolExecutor(
            max_workers=8, thread_name_prefix="certifyer-assets"
        )

    def wait(self, target: Element, now_ms: int | None = None) -> None:
        self.wait_for_images(target)
        self.wait_for_fonts(target)
        self.sanitize_images(target, now_ms)

    def _join(self, jobs: dict, on_failure) -> None:
        if not jobs:
            return
        done, pending = wait(jobs, timeout=self.timeout)
        for future in pending:
            future.cancel()
            on_failure(jobs[future], f"timed out after {self.timeout:g}s")
        for future in done:
            element = jobs[future]
            exc = future.exception()
            if exc is not None:
                on_failure(element, exc)
                continue
            element.resource = future.result()
            element.load_state = "loaded"

    def wait_for_images(self, target: Element) -> None:
        jobs = {
            self.executor.submit(self.image_loader.load, el.src, self.document): el
            for el in target.find_all("img")
            if not el.complete
        }

        def mark_errored(element: Element, reason) -> None:
            element.load_state = "error"
            element.resource = None
            logger.info(
                "[EXPORT-ASSET-FALLBACK] stage=images node=%s src=%s %s",
                element.describe(), element.src, reason,
            )

        self._join(jobs, mark_errored)

    def wait_for_fonts(self, target: Element) -> None:
        families = {
            (el.attrs.get("font_family") or "sans-serif", normalize_weight(el.attrs.get("font_weight")))
            for el in target.find_all("text")
        }
        self.font_loader.prepare(families, self.document)

    def sanitize_images(self, target: Element, now_ms: int | None = None) -> None:
        epoch_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        foreign = [
            el
            for el in target.find_all("img")
            if is_remote(el.src) and not self.document.is_same_origin(el.src)
        ]
        jobs = {
            self.executor.submit(
                self.image_loader.load_anonymous,
                el.src,
                self.document.origin,
                epoch_ms,
                self.require_cors,
            ): el
            for el in foreign
        }

        def use_placeholder(element: Element, reason) -> None:
            logger.warning(
                "[EXPORT-ASSET-FALLBACK] stage=sanitize node=%s src=%s %s",
                element.describe(), element.src, reason,
            )
            element.src = TRANSPARENT_GIF
            element.resource = self.image_loader.load(TRANSPARENT_GIF)
            element.load_state = "loaded"

        self._join(jobs, use_placeholder)
