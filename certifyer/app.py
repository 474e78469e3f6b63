import logging
import os
import secrets
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta

import requests
from flask import Flask, current_app, jsonify, render_template, request, session

from .errors import CertifyerError, UnsupportedSharePlatform
from .models import status_badge_class
from .render.assets import DEFAULT_FONT_DIR, FontLoader, ImageLoader
from .render.dom import Document
from .services.api import CertifyerApi
from .services.export import ExportPipeline
from .services.fetcher import CertificateFetcher
from .shared.links import LinkCodec
from .shared.time import fmt_dt, format_display_date

DEFAULT_API_BASE_URL = "http://localhost:54321/functions/v1/server"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config() -> dict:
    secret_key = os.getenv("SECRET_KEY", "dev")
    stylesheets = os.getenv("REMOTE_STYLESHEETS", "")
    return {
        "SECRET_KEY": secret_key,
        "LINK_SECRET": os.getenv("LINK_SECRET") or secret_key,
        "LINK_VALIDITY_DAYS": int(os.getenv("LINK_VALIDITY_DAYS", "30")),
        "PUBLIC_BASE_URL": os.getenv("PUBLIC_BASE_URL", "http://localhost:5000"),
        "API_BASE_URL": os.getenv("CERTIFYER_API_BASE_URL", DEFAULT_API_BASE_URL),
        "API_KEY": os.getenv("CERTIFYER_API_KEY", ""),
        "API_TIMEOUT": float(os.getenv("CERTIFYER_API_TIMEOUT", "10")),
        "TEMPLATE_LIBRARY_TIMEOUT": float(os.getenv("TEMPLATE_LIBRARY_TIMEOUT", "2.0")),
        "EXPORT_PIXEL_RATIO": float(os.getenv("EXPORT_PIXEL_RATIO", "2")),
        "EXPORT_MAX_PIXEL_RATIO": 2,
        "EXPORT_IMAGE_TIMEOUT": float(os.getenv("EXPORT_IMAGE_TIMEOUT", "2.5")),
        "EXPORT_ASSET_WORKERS": int(os.getenv("EXPORT_ASSET_WORKERS", "8")),
        "EXPORT_REQUIRE_CORS": _env_bool("EXPORT_REQUIRE_CORS"),
        "EXPORT_JPEG_QUALITY": int(os.getenv("EXPORT_JPEG_QUALITY", "92")),
        "STUDENT_SCALE": float(os.getenv("STUDENT_SCALE", "0.6")),
        "FONT_DIR": os.getenv("FONT_DIR", DEFAULT_FONT_DIR),
        "REMOTE_STYLESHEETS": [s.strip() for s in stylesheets.split(",") if s.strip()],
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
    }


@dataclass
class Services:
    codec: LinkCodec
    api: CertifyerApi
    fetcher: CertificateFetcher
    document: Document
    pipeline: ExportPipeline
    executor: ThreadPoolExecutor
    asset_executor: ThreadPoolExecutor


def build_services(app: Flask, http: requests.Session | None = None) -> Services:
    config = app.config
    http = http or requests.Session()
    executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="certifyer")
    asset_executor = ThreadPoolExecutor(
        max_workers=config["EXPORT_ASSET_WORKERS"], thread_name_prefix="certifyer-assets"
    )
    document = Document(config["PUBLIC_BASE_URL"])
    for href in config["REMOTE_STYLESHEETS"]:
        document.add_stylesheet(href)
    api = CertifyerApi(
        config["API_BASE_URL"],
        api_key=config["API_KEY"] or None,
        timeout=config["API_TIMEOUT"],
        session=http,
    )
    image_loader = ImageLoader(
        session=http,
        timeout=config["EXPORT_IMAGE_TIMEOUT"],
        static_root=app.static_folder,
    )
    font_loader = FontLoader(
        config["FONT_DIR"], session=http, timeout=config["EXPORT_IMAGE_TIMEOUT"]
    )
    return Services(
        codec=LinkCodec(
            config["LINK_SECRET"], validity=timedelta(days=config["LINK_VALIDITY_DAYS"])
        ),
        api=api,
        fetcher=CertificateFetcher(
            api, library_timeout=config["TEMPLATE_LIBRARY_TIMEOUT"], executor=executor
        ),
        document=document,
        pipeline=ExportPipeline(
            document,
            image_loader,
            font_loader,
            pixel_ratio=config["EXPORT_PIXEL_RATIO"],
            max_pixel_ratio=config["EXPORT_MAX_PIXEL_RATIO"],
            jpeg_quality=config["EXPORT_JPEG_QUALITY"],
            image_timeout=config["EXPORT_IMAGE_TIMEOUT"],
            require_cors=config["EXPORT_REQUIRE_CORS"],
            executor=asset_executor,
        ),
        executor=executor,
        asset_executor=asset_executor,
    )


def services() -> Services:
    return current_app.extensions["certifyer"]


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def create_app(overrides=None, http=None):
    app = Flask(__name__, template_folder="templates")
    app.config.update(load_config())
    if overrides:
        app.config.update(overrides)
    app.secret_key = app.config["SECRET_KEY"]
    app.config["PREFERRED_URL_SCHEME"] = "https"
    app.logger.setLevel(app.config["LOG_LEVEL"])
    logging.getLogger("certifyer").setLevel(app.config["LOG_LEVEL"])

    app.jinja_env.filters["fmt_dt"] = fmt_dt
    app.jinja_env.filters["display_date"] = format_display_date
    app.jinja_env.filters["status_badge"] = status_badge_class

    def generate_csrf_token():
        token = session.get("_csrf_token")
        if not token:
            token = secrets.token_hex(16)
            session["_csrf_token"] = token
        return token

    app.jinja_env.globals["csrf_token"] = generate_csrf_token

    app.extensions["certifyer"] = build_services(app, http)

    @app.errorhandler(CertifyerError)
    def handle_certifyer_error(exc: CertifyerError):
        status = exc.status_code
        if status >= 500:
            app.logger.error("[%s] %s %s", type(exc).__name__, request.path, exc.context)
        if _wants_json():
            body = {
                "error": type(exc).__name__,
                "message": exc.user_message,
                "recovery": exc.recovery,
            }
            return jsonify(body), status
        return (
            render_template(
                "error.html",
                message=exc.user_message,
                recovery=exc.recovery,
                status=status,
            ),
            status,
        )

    @app.errorhandler(UnsupportedSharePlatform)
    def handle_unknown_platform(exc):
        return render_template("error.html", message=str(exc), recovery="back", status=404), 404

    @app.get("/health")
    def health():  # pragma: no cover - simple healthcheck
        return "OK", 200

    from .routes.certificates import bp as certificates_bp
    from .routes.catalog import bp as catalog_bp

    app.register_blueprint(certificates_bp)
    app.register_blueprint(catalog_bp)

    return app
