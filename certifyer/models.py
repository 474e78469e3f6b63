from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .errors import CertifyerError

DEFAULT_HEADER = "Certificate of Completion"
DEFAULT_COURSE = "Course"
DEFAULT_TEMPLATE_ID = "template1"
DEFAULT_RECIPIENT = "Student"
DEFAULT_ORGANIZATION = "Organization"

STATUS_VALUES = ("valid", "revoked", "expired")

STATUS_BADGE_CLASSES = {
    "valid": "bg-green-100 text-green-800",
    "revoked": "bg-red-100 text-red-800",
    "expired": "bg-yellow-100 text-yellow-800",
}


def normalize_status(value: str | None) -> str:
    """``active`` displays as ``valid``; anything unknown is treated as valid."""
    status = (value or "").strip().lower()
    if status == "active":
        return "valid"
    if status in STATUS_VALUES:
        return status
    return "valid"


def status_badge_class(status: str) -> str:
    return STATUS_BADGE_CLASSES.get(status, "bg-gray-100 text-gray-800")


@dataclass(frozen=True)
class OrganizationRef:
    id: str | None = None
    name: str | None = None
    logo: str | None = None
    primary_color: str | None = None


@dataclass(frozen=True)
class ProgramRef:
    id: str | None = None
    name: str | None = None
    description: str | None = None
    template: str | None = None


@dataclass(frozen=True)
class Signatory:
    name: str = ""
    title: str = ""
    signature_image_url: str | None = None


@dataclass(frozen=True)
class CertificateView:
    id: str
    completion_date: str = ""
    student_name: str | None = None
    course_name: str | None = None
    certificate_header: str | None = None
    course_description: str | None = None
    status: str = "valid"
    organization: OrganizationRef | None = None
    program: ProgramRef | None = None
    template_id: str | None = None
    custom_template_config: dict | None = None
    signatories: tuple[Signatory, ...] = ()
    issued_date: str | None = None
    organization_id: str | None = None
    program_id: str | None = None
    download_count: int = 0
    library_config: dict | None = None

    @property
    def verification_code(self) -> str:
        return "VER-" + self.id[-8:]

    @property
    def needs_name(self) -> bool:
        return not (self.student_name or "").strip()

    @property
    def display_course_name(self) -> str:
        program_name = self.program.name if self.program else None
        return self.course_name or program_name or DEFAULT_COURSE

    @property
    def display_header(self) -> str:
        return self.certificate_header or DEFAULT_HEADER

    @property
    def display_description(self) -> str:
        program_desc = self.program.description if self.program else None
        return self.course_description or program_desc or ""

    @property
    def effective_template_id(self) -> str:
        program_template = self.program.template if self.program else None
        return self.template_id or program_template or DEFAULT_TEMPLATE_ID

    @property
    def organization_name(self) -> str:
        name = self.organization.name if self.organization else None
        return name or DEFAULT_ORGANIZATION

    def recipient_name(self, entered: str | None = None) -> str:
        return (
            (self.student_name or "").strip()
            or (entered or "").strip()
            or DEFAULT_RECIPIENT
        )


@dataclass(frozen=True)
class LinkPayload:
    organization_id: str
    program_id: str
    certificate_id: str
    issued_at: datetime


@dataclass(frozen=True)
class CertificateLookupKey:
    certificate_id: str
    organization_id: str | None = None
    program_id: str | None = None
    source: str = "legacy"


@dataclass(frozen=True)
class ExportArtifact:
    data: bytes
    filename: str
    mime_type: str = "image/jpeg"
    strategy: str = "offscreen"


@dataclass(frozen=True)
class DecodeFailure:
    """A token that could not be used, whether tampered, truncated or expired."""

    message: str = "Invalid or expired certificate link"


@dataclass(frozen=True)
class ResolutionFailure:
    error: CertifyerError


@dataclass(frozen=True)
class FetchFailure:
    error: CertifyerError
    context: dict = field(default_factory=dict)
