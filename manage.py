from datetime import datetime, timezone

import click
from flask import current_app
from flask.cli import FlaskGroup

from certifyer.app import create_app, services
from certifyer.models import DecodeFailure, FetchFailure, ResolutionFailure
from certifyer.shared.links import build_certificate_url
from certifyer.shared.resolver import resolve
from certifyer.shared.sharing import SHARE_PLATFORMS, build_share_target, copy_link

cli = FlaskGroup(create_app=create_app)


def _parse_when(value):
    if not value:
        return None
    when = datetime.fromisoformat(value)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when


@cli.command("encode-link")
@click.option("--org", "organization_id", required=True)
@click.option("--program", "program_id", required=True)
@click.option("--certificate", "certificate_id", required=True)
@click.option("--issued-at", default=None, help="ISO timestamp, defaults to now")
def encode_link(organization_id: str, program_id: str, certificate_id: str, issued_at):
    """Print a shareable certificate URL."""
    token = services().codec.issue(
        organization_id, program_id, certificate_id, issued_at=_parse_when(issued_at)
    )
    click.echo(build_certificate_url(current_app.config["PUBLIC_BASE_URL"], token))


@cli.command("decode-link")
@click.argument("token")
@click.option("--now", default=None, help="ISO timestamp to evaluate expiry at")
def decode_link(token: str, now):
    codec = services().codec
    when = _parse_when(now)
    payload = codec.decode(token, now=when)
    if isinstance(payload, DecodeFailure):
        click.echo(payload.message, err=True)
        raise SystemExit(1)
    click.echo(f"organization={payload.organization_id}")
    click.echo(f"program={payload.program_id}")
    click.echo(f"certificate={payload.certificate_id}")
    click.echo(f"issued_at={payload.issued_at.isoformat()}")
    remaining = codec.time_remaining(token, now=when)
    if remaining is not None:
        click.echo(f"expires_in={remaining}")


def _load_view(cert_path: str):
    svc = services()
    key = resolve(cert_path, svc.codec)
    if isinstance(key, ResolutionFailure):
        click.echo(key.error.user_message, err=True)
        raise SystemExit(1)
    view = svc.fetcher.fetch(key)
    if isinstance(view, FetchFailure):
        click.echo(view.error.user_message, err=True)
        raise SystemExit(1)
    return view


@cli.command("export")
@click.argument("cert_path")
@click.option("--name", "recipient_name", default=None, help="Name to print when the record has none")
@click.option("--output", "output", default=None, type=click.Path(dir_okay=False))
def export(cert_path: str, recipient_name, output):
    """Render a certificate to JPEG."""
    view = _load_view(cert_path)
    artifact = services().pipeline.export_as_image(view, recipient_name=recipient_name)
    path = output or artifact.filename
    with open(path, "wb") as fh:
        fh.write(artifact.data)
    click.echo(path)


@cli.command("share")
@click.argument("cert_path")
@click.option("--platform", type=click.Choice(SHARE_PLATFORMS), default=None)
@click.option("--copy", "copy", is_flag=True, help="Copy the certificate link to the clipboard")
def share(cert_path: str, platform, copy: bool):
    view = _load_view(cert_path)
    url = build_certificate_url(current_app.config["PUBLIC_BASE_URL"], cert_path.strip("/"))
    if platform:
        click.echo(build_share_target(platform, url, view.display_course_name, view.organization_name))
    else:
        click.echo(url)
    if copy:
        if copy_link(url):
            click.echo("Link copied to clipboard")
        else:
            click.echo("Could not copy link", err=True)


if __name__ == "__main__":
    cli()
