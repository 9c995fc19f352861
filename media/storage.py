"""
media/storage.py -- Asset store adapter backed by the Cloudinary upload API.

AssetStore is the interface SessionManager depends on; CloudinaryAssetStore
is the production implementation. Tests substitute a MagicMock.

Upload contract:
  upload(path) -> UploadedAsset | None
    None      -- no file was given (falsy path). Nothing is sent.
    raises    -- UploadError when the request fails, the service rejects the
                 file, or the response carries no URL.
  The local file is NOT removed here. The caller owns the staged file and
  discards it with discard_local_file() whatever the outcome.

Signed uploads: Cloudinary authenticates an upload with
  signature = sha1("<sorted params joined by &><api_secret>")
over every signed parameter (here only the timestamp). The api_secret itself
is never sent.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from pathlib import Path

import requests

from core.config import get_settings
from core.errors import UploadError

logger = logging.getLogger("vidtube.storage")

CLOUDINARY_UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/auto/upload"


@dataclass(frozen=True)
class UploadedAsset:
    url: str
    public_id: str = ""


class AssetStore:
    """Interface for binary asset storage."""

    def upload(self, local_path: str | Path | None) -> UploadedAsset | None:
        raise NotImplementedError

    def close(self) -> None:
        pass


def discard_local_file(local_path: str | Path | None) -> None:
    """Remove a staged upload. Missing files and falsy paths are ignored."""
    if not local_path:
        return
    try:
        Path(local_path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove staged upload %s: %s", local_path, e)


class CloudinaryAssetStore(AssetStore):
    def __init__(
        self,
        cloud_name: str | None = None,
        api_key: str | None = None,
        api_secret: str | None = None,
        timeout: float = 30,
    ) -> None:
        settings = get_settings()
        self.cloud_name = cloud_name or settings.cloudinary_cloud_name
        self.api_key = api_key or settings.cloudinary_api_key
        self.api_secret = api_secret or settings.cloudinary_api_secret
        self.timeout = timeout
        # Shared session for connection pooling. 3 hops is generous for a
        # known API and limits SSRF via redirect chains.
        self._session = requests.Session()
        self._session.max_redirects = 3
        if not (self.cloud_name and self.api_key and self.api_secret):
            logger.warning("Cloudinary credentials are not configured -- uploads will fail")

    def _signature(self, params: dict[str, str]) -> str:
        to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
        return hashlib.sha1(f"{to_sign}{self.api_secret}".encode("utf-8")).hexdigest()  # noqa: S324

    def upload(self, local_path: str | Path | None) -> UploadedAsset | None:
        if not local_path:
            return None
        path = Path(local_path)
        params = {"timestamp": str(int(time.time()))}
        data = {**params, "api_key": self.api_key, "signature": self._signature(params)}
        url = CLOUDINARY_UPLOAD_URL.format(cloud_name=self.cloud_name)
        try:
            with path.open("rb") as fh:
                resp = self._session.post(url, data=data, files={"file": (path.name, fh)}, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except (OSError, ValueError, requests.RequestException) as e:
            logger.warning("Asset upload failed for %s: %s", path.name, e)
            raise UploadError("Asset upload failed.", detail=str(e)) from e

        asset_url = body.get("secure_url") or body.get("url")
        if not asset_url:
            logger.warning("Asset upload for %s returned no URL", path.name)
            raise UploadError("Asset upload failed.", detail="response did not include a URL")
        logger.info("Uploaded %s as %s", path.name, body.get("public_id", ""))
        return UploadedAsset(url=asset_url, public_id=body.get("public_id", ""))

    def close(self) -> None:
        self._session.close()
