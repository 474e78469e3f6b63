"""Encrypted, time-limited certificate links.

A link token carries the organization, program and certificate ids plus the
moment it was issued. Tokens are Fernet-encrypted, so nothing about their
structure is visible without the key, and the base64 padding is dropped so
the token can sit in a URL path segment untouched.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import math
from datetime import datetime, timedelta
from urllib.parse import quote, unquote

from cryptography.fernet import Fernet, InvalidToken

from ..models import DecodeFailure, LinkPayload
from .time import ensure_utc, now_utc

logger = logging.getLogger("certifyer.links")

DEFAULT_VALIDITY = timedelta(days=30)
_MAX_UNQUOTE_ROUNDS = 3


def derive_fernet_key(secret: str | bytes) -> bytes:
    """Stretch an arbitrary secret into the 32-byte urlsafe key Fernet wants."""
    if isinstance(secret, str):
        secret = secret.encode("utf-8")
    return base64.urlsafe_b64encode(hashlib.sha256(secret).digest())


def normalize_token(token: str) -> str:
    """Undo any percent-encoding a router left on the token and restore padding.

    Tokens may reach us already decoded or still encoded (sometimes twice),
    so decoding is repeated while ``%`` escapes remain.
    """
    text = token.strip()
    rounds = 0
    while "%" in text and rounds < _MAX_UNQUOTE_ROUNDS:
        decoded = unquote(text)
        if decoded == text:
            break
        text = decoded
        rounds += 1
    text = text.strip().rstrip("=")
    return text + "=" * (-len(text) % 4)


class LinkCodec:
    def __init__(self, secret: str | bytes, validity: timedelta = DEFAULT_VALIDITY):
        if not secret:
            raise ValueError("A link secret is required to issue certificate links")
        self._fernet = Fernet(derive_fernet_key(secret))
        self.validity = validity
        self._ttl = max(1, math.ceil(validity.total_seconds()))

    def encode(self, payload: LinkPayload) -> str:
        issued_at = ensure_utc(payload.issued_at)
        body = json.dumps(
            {
                "o": payload.organization_id,
                "p": payload.program_id,
                "c": payload.certificate_id,
                "t": issued_at.isoformat(),
            },
            separators=(",", ":"),
        )
        token = self._fernet.encrypt_at_time(
            body.encode("utf-8"), int(issued_at.timestamp())
        )
        return token.decode("ascii").rstrip("=")

    def issue(
        self,
        organization_id: str,
        program_id: str,
        certificate_id: str,
        issued_at: datetime | None = None,
    ) -> str:
        return self.encode(
            LinkPayload(
                organization_id=organization_id,
                program_id=program_id,
                certificate_id=certificate_id,
                issued_at=issued_at or now_utc(),
            )
        )

    def decode(
        self, token: str, now: datetime | None = None
    ) -> LinkPayload | DecodeFailure:
        """Return the payload, or ``DecodeFailure`` for anything unusable.

        Expired and malformed tokens produce the same failure; the reason is
        only logged.
        """
        if not isinstance(token, str) or not token.strip():
            logger.debug("[LINK-DECODE-FAIL] reason=empty")
            return DecodeFailure()
        current = ensure_utc(now or now_utc())
        try:
            raw = normalize_token(token).encode("ascii")
            data = self._fernet.decrypt_at_time(
                raw, ttl=self._ttl, current_time=int(current.timestamp())
            )
            payload = self._parse(data)
        except (InvalidToken, ValueError, KeyError, TypeError) as exc:
            logger.debug("[LINK-DECODE-FAIL] reason=%s", type(exc).__name__)
            return DecodeFailure()
        if current - payload.issued_at > self.validity:
            logger.debug("[LINK-DECODE-FAIL] reason=expired")
            return DecodeFailure()
        return payload

    def time_remaining(
        self, token: str, now: datetime | None = None
    ) -> timedelta | None:
        """Informational only; ``decode`` is the authoritative expiry check."""
        if not isinstance(token, str) or not token.strip():
            return None
        try:
            data = self._fernet.decrypt(normalize_token(token).encode("ascii"))
            payload = self._parse(data)
        except (InvalidToken, ValueError, KeyError, TypeError):
            return None
        current = ensure_utc(now or now_utc())
        return payload.issued_at + self.validity - current

    @staticmethod
    def _parse(data: bytes) -> LinkPayload:
        body = json.loads(data.decode("utf-8"))
        if not isinstance(body, dict):
            raise TypeError("link payload is not an object")
        ids = [body["o"], body["p"], body["c"]]
        if not all(isinstance(value, str) and value for value in ids):
            raise ValueError("link payload is missing identifiers")
        return LinkPayload(
            organization_id=ids[0],
            program_id=ids[1],
            certificate_id=ids[2],
            issued_at=ensure_utc(datetime.fromisoformat(body["t"])),
        )


def build_certificate_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/certificate/{token}"


def build_legacy_certificate_url(
    base_url: str, organization_id: str, program_id: str, certificate_id: str
) -> str:
    segments = "/".join(
        quote(part, safe="") for part in (organization_id, program_id, certificate_id)
    )
    return f"{base_url.rstrip('/')}/certificate/{segments}"
