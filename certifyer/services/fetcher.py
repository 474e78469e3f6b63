from __future__ import annotations

import logging
import re
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import replace
from typing import Any

from ..errors import (
    CertificateNotFound,
    CertifyerError,
    TemplateLoadFailure,
    UnknownFetchError,
)
from ..models import (
    CertificateLookupKey,
    CertificateView,
    FetchFailure,
    OrganizationRef,
    ProgramRef,
    Signatory,
    normalize_status,
)
from .api import CertifyerApi

logger = logging.getLogger("certifyer.fetcher")

LIBRARY_TEMPLATE_RE = re.compile(r"^template\d+$")


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_organization(raw: Any) -> OrganizationRef | None:
    if not isinstance(raw, dict):
        return None
    settings = raw.get("settings") if isinstance(raw.get("settings"), dict) else {}
    return OrganizationRef(
        id=_text(raw.get("id")),
        name=_text(raw.get("name")),
        logo=_text(raw.get("logo") or raw.get("logoUrl")),
        primary_color=_text(settings.get("primaryColor") or raw.get("primaryColor")),
    )


def normalize_program(raw: Any) -> ProgramRef | None:
    if not isinstance(raw, dict):
        return None
    return ProgramRef(
        id=_text(raw.get("id")),
        name=_text(raw.get("name")),
        description=_text(raw.get("description")),
        template=_text(raw.get("template")),
    )


def normalize_signatories(raw: Any) -> tuple[Signatory, ...]:
    if not isinstance(raw, list):
        return ()
    signatories = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        signatories.append(
            Signatory(
                name=_text(entry.get("name")) or "",
                title=_text(entry.get("title")) or "",
                signature_image_url=_text(
                    entry.get("signatureUrl") or entry.get("signatureImageUrl")
                ),
            )
        )
    return tuple(signatories)


def normalize_certificate(payload: dict) -> CertificateView:
    """Merge a lookup response into one ``CertificateView``.

    Older records embed ``studentName`` and ship the organization as
    ``subsidiary``; newer ones carry course-level fields and leave the
    student name to be collected when the certificate is viewed.
    """
    cert = payload.get("certificate")
    if not isinstance(cert, dict) or not _text(cert.get("id")):
        raise CertificateNotFound()
    organization = normalize_organization(
        payload.get("organization") or payload.get("subsidiary") or cert.get("organization")
    )
    program = normalize_program(payload.get("program") or cert.get("program"))
    custom_config = cert.get("customTemplateConfig")
    try:
        download_count = int(cert.get("downloadCount") or 0)
    except (TypeError, ValueError):
        download_count = 0
    return CertificateView(
        id=str(cert["id"]),
        student_name=_text(cert.get("studentName")),
        course_name=_text(cert.get("courseName")),
        certificate_header=_text(cert.get("certificateHeader")),
        course_description=_text(cert.get("courseDescription")),
        completion_date=_text(cert.get("completionDate")) or "",
        issued_date=_text(cert.get("generatedAt") or cert.get("issuedDate")),
        status=normalize_status(cert.get("status")),
        organization=organization,
        program=program,
        template_id=_text(cert.get("template")),
        custom_template_config=custom_config if isinstance(custom_config, dict) and custom_config else None,
        signatories=normalize_signatories(cert.get("signatories")),
        organization_id=_text(cert.get("organizationId")) or (organization.id if organization else None),
        program_id=_text(cert.get("programId")) or (program.id if program else None),
        download_count=download_count,
    )


def wants_library_template(view: CertificateView) -> bool:
    """A saved custom design always wins; the library is never consulted then."""
    if view.custom_template_config:
        return False
    return bool(view.template_id and LIBRARY_TEMPLATE_RE.match(view.template_id))


class CertificateFetcher:
    def __init__(
        self,
        api: CertifyerApi,
        library_timeout: float = 2.0,
        executor: ThreadPoolExecutor | None = None,
    ):
        self.api = api
        self.library_timeout = library_timeout
        self.executor = executor or ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="certifyer-fetch"
        )

    def fetch(self, key: CertificateLookupKey) -> CertificateView | FetchFailure:
        try:
            payload = self.api.get_certificate(key.certificate_id)
            view = normalize_certificate(payload)
        except CertifyerError as exc:
            return FetchFailure(exc, {"certificate_id": key.certificate_id})
        except (KeyError, TypeError, ValueError) as exc:
            logger.error(
                "[API-ERROR] malformed certificate %s: %s", key.certificate_id, exc
            )
            return FetchFailure(
                UnknownFetchError(certificate_id=key.certificate_id),
                {"certificate_id": key.certificate_id},
            )
        if wants_library_template(view):
            view = replace(view, library_config=self.load_library_config(view.template_id))
        return view

    def load_library_config(self, template_id: str) -> dict | None:
        """Best effort: a slow or failing library never blocks the certificate."""
        future = self.executor.submit(self._get_library_config, template_id)
        try:
            return future.result(timeout=self.library_timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning(
                "[TEMPLATE-LOAD-FAIL] template=%s timed out after %.1fs",
                template_id,
                self.library_timeout,
            )
        except CertifyerError as exc:
            logger.warning("[TEMPLATE-LOAD-FAIL] template=%s %s", template_id, exc)
        return None

    def _get_library_config(self, template_id: str) -> dict | None:
        data = self.api.get_template(template_id)
        template = data.get("template")
        if not isinstance(template, dict):
            raise TemplateLoadFailure(template_id=template_id)
        config = template.get("config")
        if not isinstance(config, dict):
            raise TemplateLoadFailure(template_id=template_id)
        logger.info("[TEMPLATE-LOADED] template=%s name=%s", template_id, template.get("name"))
        return config

    def submit_testimonial(
        self, view: CertificateView, student_name: str, testimonial: str
    ) -> Future:
        """Fire-and-forget; failures are logged and never reach the viewer."""
        payload = {
            "certificateId": view.id,
            "studentName": student_name,
            "testimonial": testimonial,
            "courseName": view.display_course_name,
            "organizationId": view.organization_id or "",
            "programId": view.program_id or "",
        }
        future = self.executor.submit(self.api.submit_testimonial, view.id, payload)

        def _log_outcome(done: Future) -> None:
            exc = done.exception()
            if exc is not None:
                logger.warning("[TESTIMONIAL-FAIL] certificate=%s %s", view.id, exc)
            else:
                logger.info("[TESTIMONIAL-OK] certificate=%s", view.id)

        future.add_done_callback(_log_outcome)
        return future
