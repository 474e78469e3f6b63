from __future__ import annotations

from io import BytesIO

from flask import Blueprint, abort, render_template, send_file

from ..app import services
from ..models import CertificateView, OrganizationRef, ProgramRef, Signatory
from ..render.templates import BUILTIN_VARIANTS, template_catalog

bp = Blueprint("catalog", __name__, url_prefix="/templates")


def sample_view(template_id: str) -> CertificateView:
    """Placeholder certificate used to preview a built-in design."""
    return CertificateView(
        id=f"preview-{template_id}",
        completion_date="2025-12-31",
        student_name="Sample Learner Name",
        course_name="Sample Program",
        course_description="A short description of what the learner completed.",
        organization=OrganizationRef(name="Sample Organization"),
        program=ProgramRef(name="Sample Program", template=template_id),
        template_id=template_id,
        signatories=(
            Signatory(name="Alex Smith", title="Program Director"),
            Signatory(name="Jamie Doe", title="Lead Instructor"),
        ),
    )


@bp.get("")
def index():
    return render_template("templates.html", templates=template_catalog())


@bp.get("/<template_id>/preview")
def preview(template_id: str):
    if template_id not in BUILTIN_VARIANTS:
        abort(404)
    artifact = services().pipeline.export_as_image(
        sample_view(template_id), exclusive=False
    )
    return send_file(BytesIO(artifact.data), mimetype=artifact.mime_type)
