from datetime import datetime, timedelta, timezone

import pytest

from certifyer.errors import InvalidOrExpiredLink, MissingCertificateIdentifier
from certifyer.models import CertificateLookupKey, ResolutionFailure
from certifyer.shared.resolver import resolve, split_certificate_path

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def test_legacy_path_is_used_verbatim(codec):
    key = resolve("o1/p1/c1", codec)
    assert key == CertificateLookupKey("c1", "o1", "p1", source="legacy")


def test_full_legacy_url_path(codec):
    key = resolve("/certificate/o1/p1/c1", codec)
    assert key.certificate_id == "c1"
    assert key.source == "legacy"


def test_token_path_decodes(codec):
    token = codec.issue("o9", "p9", "c9", issued_at=NOW - timedelta(days=1))
    key = resolve(token, codec, now=NOW)
    assert key == CertificateLookupKey("c9", "o9", "p9", source="token")


def test_expired_token_is_not_reinterpreted(codec):
    token = codec.issue("o1", "p1", "c1", issued_at=NOW - timedelta(days=40))
    result = resolve(f"/certificate/{token}", codec, now=NOW)
    assert isinstance(result, ResolutionFailure)
    assert isinstance(result.error, InvalidOrExpiredLink)


def test_garbage_token_is_invalid(codec):
    result = resolve("definitely-not-a-token", codec, now=NOW)
    assert isinstance(result.error, InvalidOrExpiredLink)


@pytest.mark.parametrize("path", ["", "/", "o1/p1", "a/b/c/d", None])
def test_other_shapes_have_no_identifier(codec, path):
    result = resolve(path, codec, now=NOW)
    assert isinstance(result, ResolutionFailure)
    assert isinstance(result.error, MissingCertificateIdentifier)


def test_split_keeps_relative_certificate_segment():
    assert split_certificate_path("certificate/p1/c1") == ["certificate", "p1", "c1"]
    assert split_certificate_path("/certificate/tok/") == ["tok"]
