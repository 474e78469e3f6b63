from __future__ import annotations

import logging
from datetime import datetime

from ..errors import InvalidOrExpiredLink, MissingCertificateIdentifier
from ..models import CertificateLookupKey, DecodeFailure, ResolutionFailure
from .links import LinkCodec

logger = logging.getLogger("certifyer.links")

CERTIFICATE_PREFIX = "certificate"


def split_certificate_path(raw_path: str | None) -> list[str]:
    """Path segments after ``/certificate/``; empty segments are dropped."""
    segments = [part for part in (raw_path or "").split("/") if part.strip()]
    if segments and segments[0] == CERTIFICATE_PREFIX and (raw_path or "").startswith("/"):
        segments = segments[1:]
    return segments


def resolve(
    raw_path: str | None, codec: LinkCodec, now: datetime | None = None
) -> CertificateLookupKey | ResolutionFailure:
    """Turn a certificate URL path into a lookup key.

    ``<token>`` is decoded with ``codec``; ``<org>/<program>/<cert>`` is the
    legacy form and is used verbatim. A token that fails to decode is never
    reinterpreted as a legacy path.
    """
    segments = split_certificate_path(raw_path)
    if len(segments) == 3:
        organization_id, program_id, certificate_id = segments
        return CertificateLookupKey(
            certificate_id=certificate_id,
            organization_id=organization_id,
            program_id=program_id,
            source="legacy",
        )
    if len(segments) == 1:
        decoded = codec.decode(segments[0], now=now)
        if isinstance(decoded, DecodeFailure):
            logger.info("[LINK-INVALID] token rejected")
            return ResolutionFailure(InvalidOrExpiredLink())
        return CertificateLookupKey(
            certificate_id=decoded.certificate_id,
            organization_id=decoded.organization_id,
            program_id=decoded.program_id,
            source="token",
        )
    logger.info("[LINK-INVALID] unsupported path shape segments=%d", len(segments))
    return ResolutionFailure(MissingCertificateIdentifier())
