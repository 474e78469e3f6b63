from __future__ import annotations


class CertifyerError(Exception):
    """Base for every failure the viewer knows how to explain to a user."""

    status_code = 500
    user_message = "Something went wrong while loading this certificate."
    recovery = "reload"

    def __init__(self, message: str | None = None, **context):
        super().__init__(message or self.user_message)
        self.context = context


class InvalidOrExpiredLink(CertifyerError):
    # Tampered and expired tokens deliberately share this bucket.
    status_code = 410
    user_message = "Invalid or expired certificate link"
    recovery = "back"


class MissingCertificateIdentifier(CertifyerError):
    status_code = 404
    user_message = "No certificate ID was provided in this link."
    recovery = "back"


class CertificateNotFound(CertifyerError):
    status_code = 404
    user_message = (
        "Certificate not found. The certificate you're looking for doesn't "
        "exist or may have been removed."
    )
    recovery = "back"


class NetworkError(CertifyerError):
    status_code = 503
    user_message = "Network error. Please check your connection and try again."
    recovery = "reload"


class UnknownFetchError(CertifyerError):
    status_code = 502
    user_message = "Failed to load certificate"
    recovery = "reload"


class TemplateLoadFailure(CertifyerError):
    user_message = "Template configuration could not be loaded."


class AssetSanitationFailure(CertifyerError):
    user_message = "An image on this certificate could not be prepared for export."


class ExportFailure(CertifyerError):
    status_code = 500
    user_message = (
        "An error occurred while generating your certificate. Please try again."
    )
    recovery = "retry"


class ExportInProgress(CertifyerError):
    status_code = 409
    user_message = "Your certificate image is already being generated."
    recovery = "wait"


class CrossOriginStyleSheetError(Exception):
    """Reading rules from an enabled stylesheet served by another origin."""


class UnsupportedSharePlatform(ValueError):
    pass
