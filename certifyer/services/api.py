"""Client for the backend's certificate, template and testimonial endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from ..errors import CertificateNotFound, NetworkError, UnknownFetchError

logger = logging.getLogger("certifyer.api")


class CertifyerApi:
    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
            headers["apikey"] = self.api_key
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.warning("[API-ERROR] %s %s transport failure: %s", method, path, exc)
            raise NetworkError(url=url) from exc
        except requests.RequestException as exc:
            logger.error("[API-ERROR] %s %s request failed: %s", method, path, exc)
            raise UnknownFetchError(url=url) from exc

        if response.status_code == 404:
            logger.info("[API-ERROR] %s %s not found", method, path)
            raise CertificateNotFound(url=url)
        if not 200 <= response.status_code < 300:
            logger.error(
                "[API-ERROR] %s %s status=%s", method, path, response.status_code
            )
            raise UnknownFetchError(url=url, status=response.status_code)
        try:
            data = response.json()
        except ValueError as exc:
            logger.error("[API-ERROR] %s %s returned a non-JSON body", method, path)
            raise UnknownFetchError(url=url) from exc
        if not isinstance(data, dict):
            raise UnknownFetchError(url=url)
        return data

    def get_certificate(self, certificate_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/certificates/{quote(certificate_id, safe='')}")

    def get_template(self, template_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/templates/{quote(template_id, safe='')}")

    def submit_testimonial(
        self, certificate_id: str, payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/certificates/{quote(certificate_id, safe='')}/testimonial",
            json=payload,
        )
