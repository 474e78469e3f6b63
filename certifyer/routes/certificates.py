from __future__ import annotations

from io import BytesIO

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    send_file,
    session,
    url_for,
)

from ..app import services
from ..models import CertificateLookupKey, CertificateView, FetchFailure, ResolutionFailure
from ..render.templates import MODE_STUDENT, render
from ..shared.links import build_certificate_url
from ..shared.resolver import resolve, split_certificate_path
from ..shared.sharing import SHARE_PLATFORMS, build_share_target

bp = Blueprint("certificates", __name__)

ENTERED_NAMES_KEY = "entered_names"


def _load(cert_path: str) -> tuple[CertificateLookupKey, CertificateView]:
    svc = services()
    key = resolve(cert_path, svc.codec)
    if isinstance(key, ResolutionFailure):
        raise key.error
    view = svc.fetcher.fetch(key)
    if isinstance(view, FetchFailure):
        current_app.logger.info(
            "[API-ERROR] certificate=%s %s", key.certificate_id, type(view.error).__name__
        )
        raise view.error
    return key, view


def _entered_name(view: CertificateView) -> str | None:
    return (session.get(ENTERED_NAMES_KEY) or {}).get(view.id)


def _remember_name(view: CertificateView, name: str) -> None:
    names = dict(session.get(ENTERED_NAMES_KEY) or {})
    names[view.id] = name
    session[ENTERED_NAMES_KEY] = names


def canonical_url(cert_path: str) -> str:
    path = "/".join(split_certificate_path(cert_path))
    return build_certificate_url(current_app.config["PUBLIC_BASE_URL"], path)


@bp.get("/certificate/<path:cert_path>")
def view_certificate(cert_path: str):
    key, view = _load(cert_path)
    entered = _entered_name(view)
    if view.needs_name and not entered:
        return render_template("name_form.html", view=view, cert_path=cert_path)
    share_links = {
        platform: url_for("certificates.share", platform=platform, cert_path=cert_path)
        for platform in SHARE_PLATFORMS
    }
    return render_template(
        "certificate.html",
        view=view,
        lookup=key,
        cert_path=cert_path,
        recipient_name=view.recipient_name(entered),
        canonical_url=canonical_url(cert_path),
        share_links=share_links,
    )


@bp.post("/certificate/<path:cert_path>")
def submit_name(cert_path: str):
    token = request.form.get("csrf_token")
    if not token or token != session.get("_csrf_token"):
        abort(400)
    _, view = _load(cert_path)
    name = " ".join((request.form.get("student_name") or "").split())
    if not name:
        flash("Please enter your name", "error")
        return render_template("name_form.html", view=view, cert_path=cert_path), 400
    _remember_name(view, name)
    testimonial = (request.form.get("testimonial") or "").strip()
    if testimonial:
        services().fetcher.submit_testimonial(view, name, testimonial)
    return redirect(url_for("certificates.view_certificate", cert_path=cert_path))


@bp.get("/certificates/image/<path:cert_path>")
def certificate_image(cert_path: str):
    _, view = _load(cert_path)
    entered = _entered_name(view)
    node = render(
        view,
        mode=MODE_STUDENT,
        scale=current_app.config["STUDENT_SCALE"],
        recipient_name=entered,
    )
    artifact = services().pipeline.export_as_image(
        view, dom_node=node, recipient_name=entered, exclusive=False
    )
    return send_file(BytesIO(artifact.data), mimetype=artifact.mime_type)


@bp.get("/certificates/download/<path:cert_path>")
def download_certificate(cert_path: str):
    _, view = _load(cert_path)
    entered = _entered_name(view)
    node = render(
        view,
        mode=MODE_STUDENT,
        scale=current_app.config["STUDENT_SCALE"],
        recipient_name=entered,
    )
    artifact = services().pipeline.export_as_image(
        view, dom_node=node, recipient_name=entered
    )
    return send_file(
        BytesIO(artifact.data),
        mimetype=artifact.mime_type,
        as_attachment=True,
        download_name=artifact.filename,
    )


@bp.get("/certificates/share/<platform>/<path:cert_path>")
def share(platform: str, cert_path: str):
    _, view = _load(cert_path)
    target = build_share_target(
        platform, canonical_url(cert_path), view.display_course_name, view.organization_name
    )
    return redirect(target)


@bp.get("/api/certificates/resolve/<path:cert_path>")
def resolve_api(cert_path: str):
    key, view = _load(cert_path)
    entered = _entered_name(view)
    return jsonify(
        {
            "certificate": {
                "id": view.id,
                "studentName": view.recipient_name(entered),
                "courseName": view.display_course_name,
                "certificateHeader": view.display_header,
                "courseDescription": view.display_description,
                "completionDate": view.completion_date,
                "status": view.status,
                "template": view.effective_template_id,
                "hasCustomTemplate": bool(view.custom_template_config),
                "verificationCode": view.verification_code,
                "needsName": view.needs_name and not entered,
            },
            "organization": {
                "id": view.organization_id,
                "name": view.organization_name,
            },
            "lookup": {
                "source": key.source,
                "organizationId": key.organization_id,
                "programId": key.program_id,
            },
            "canonicalUrl": canonical_url(cert_path),
        }
    )
