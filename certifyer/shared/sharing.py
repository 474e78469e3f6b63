from __future__ import annotations

import logging
import shutil
import subprocess
from typing import Callable
from urllib.parse import quote

from ..errors import UnsupportedSharePlatform

logger = logging.getLogger("certifyer.share")

SHARE_PLATFORMS = ("facebook", "twitter", "linkedin", "whatsapp", "email")

EMAIL_SUBJECT = "My Certificate Achievement"

# Tried in order; the first one installed wins.
_CLIPBOARD_COMMANDS: tuple[tuple[str, ...], ...] = (
    ("pbcopy",),
    ("wl-copy",),
    ("xclip", "-selection", "clipboard"),
    ("xsel", "--clipboard", "--input"),
    ("clip",),
)


def _enc(value: str) -> str:
    # Same escaping as encodeURIComponent.
    return quote(value, safe="-_.!~*'()")


def share_message(course_name: str, organization_name: str) -> str:
    return (
        f"I've completed the {course_name} at {organization_name}! "
        "\U0001F393 #Certificate #Achievement"
    )


def build_share_target(
    platform: str, canonical_url: str, course_name: str, organization_name: str
) -> str:
    text = share_message(course_name, organization_name)
    key = (platform or "").strip().lower()
    if key == "facebook":
        return (
            "https://www.facebook.com/sharer/sharer.php"
            f"?u={_enc(canonical_url)}&quote={_enc(text)}"
        )
    if key == "twitter":
        return (
            "https://twitter.com/intent/tweet"
            f"?text={_enc(text)}&url={_enc(canonical_url)}"
        )
    if key == "linkedin":
        return (
            "https://www.linkedin.com/sharing/share-offsite/"
            f"?url={_enc(canonical_url)}&summary={_enc(text)}"
        )
    if key == "whatsapp":
        return f"https://wa.me/?text={_enc(text + ' ' + canonical_url)}"
    if key == "email":
        return (
            f"mailto:?subject={_enc(EMAIL_SUBJECT)}"
            f"&body={_enc(text + chr(10) + chr(10) + canonical_url)}"
        )
    raise UnsupportedSharePlatform(f"Unsupported share platform: {platform!r}")


def system_clipboard_writer() -> Callable[[str], None] | None:
    for command in _CLIPBOARD_COMMANDS:
        if shutil.which(command[0]):
            def write(text: str, _command=command) -> None:
                subprocess.run(
                    list(_command),
                    input=text.encode("utf-8"),
                    check=True,
                    timeout=5,
                )

            return write
    return None


def copy_link(url: str, writer: Callable[[str], None] | None = None) -> bool:
    """Put ``url`` on the clipboard; failure is reported, never raised."""
    target = writer or system_clipboard_writer()
    if target is None:
        logger.warning("[CLIPBOARD-FAIL] no clipboard command available")
        return False
    try:
        target(url)
    except (OSError, subprocess.SubprocessError, RuntimeError) as exc:
        logger.warning("[CLIPBOARD-FAIL] %s", exc)
        return False
    return True
