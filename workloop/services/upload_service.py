"""
Upload Service — archives rendered reports on Cloudinary.

Uses Cloudinary's signed raw-upload REST endpoint through ``requests``.
Uploading is best-effort: callers catch ``UploadError`` and carry on with
an empty document URL.
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from typing import Any, Dict, Optional

import requests

from workloop.config import Settings
from workloop.errors import UploadError
from workloop.logger import get_logger

logger = get_logger(__name__)

_BASE = "https://api.cloudinary.com/v1_1"
FOLDER = "weekly-reports"


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """Cloudinary request signature: SHA-1 of the sorted params plus the secret."""
    payload = "&".join(f"{k}={params[k]}" for k in sorted(params) if params[k] not in (None, ""))
    return hashlib.sha1(f"{payload}{api_secret}".encode("utf-8")).hexdigest()


class CloudinaryUploader:
    """Uploads PDF bytes and returns their secure URL."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None) -> None:
        self._cloud_name = settings.cloudinary_cloud_name
        self._api_key = settings.cloudinary_api_key
        self._api_secret = settings.cloudinary_api_secret
        self._timeout = settings.upload_timeout_seconds
        self._session = session or requests.Session()
        self._enabled = settings.upload_enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def upload_sync(self, document: bytes, destination_key: str) -> str:
        """
        Upload *document* as ``<folder>/<destination_key>.pdf``.

        Returns:
            The ``secure_url`` reported by Cloudinary.

        Raises:
            UploadError: not configured, HTTP failure, or malformed response.
        """
        if not self.enabled:
            raise UploadError("Cloudinary is not configured", destination_key=destination_key)

        params = {
            "folder": FOLDER,
            "format": "pdf",
            "public_id": destination_key,
            "timestamp": int(time.time()),
        }
        data = dict(params, api_key=self._api_key, signature=sign_params(params, self._api_secret))
        url = f"{_BASE}/{self._cloud_name}/raw/upload"

        try:
            resp = self._session.post(
                url,
                data=data,
                files={"file": (f"{destination_key}.pdf", document, "application/pdf")},
                timeout=self._timeout,
            )
            resp.raise_for_status()
            body = resp.json()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise UploadError(f"Cloudinary rejected upload: {exc}", destination_key, status) from exc
        except (requests.RequestException, ValueError) as exc:
            raise UploadError(f"Cloudinary upload failed: {exc}", destination_key) from exc

        secure_url = body.get("secure_url") if isinstance(body, dict) else None
        if not secure_url:
            raise UploadError("Cloudinary response carried no secure_url", destination_key)

        logger.info("Uploaded report to Cloudinary: %s", secure_url)
        return secure_url

    async def upload(self, document: bytes, destination_key: str) -> str:
        return await asyncio.to_thread(self.upload_sync, document, destination_key)
