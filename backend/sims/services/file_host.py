"""
Cloudinary client.

Uploads are unsigned (cloud name + upload preset); deletion is a signed
``destroy`` call and needs the API key pair. Signatures follow
Cloudinary's scheme: SHA-1 over the alphabetically sorted parameters
joined as ``k=v&k=v`` with the API secret appended.
"""

import hashlib
import time
from typing import Any, Dict, Optional

import httpx

from sims.core.config import settings
from sims.core.exceptions import FileHostError, FileHostNotConfiguredError, FileUploadError
from sims.core.logging_config import logger


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """Cloudinary request signature"""
    to_sign = "&".join(
        f"{key}={params[key]}"
        for key in sorted(params)
        if params[key] is not None and params[key] != ""
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode()).hexdigest()


def resource_type_for(mime_type: Optional[str]) -> str:
    """Resource type an "auto" upload is stored under: image for images and PDFs, else raw"""
    if mime_type and (mime_type.startswith("image/") or mime_type == "application/pdf"):
        return "image"
    return "raw"


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("error", {}).get("message") or "Unknown error"
    except ValueError:
        return response.text or "Unknown error"


class CloudinaryClient:
    """Async client for the Cloudinary upload API"""

    def __init__(
        self,
        cloud_name: Optional[str] = None,
        upload_preset: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cloud_name = cloud_name if cloud_name is not None else settings.CLOUDINARY_CLOUD_NAME
        self.upload_preset = upload_preset if upload_preset is not None else settings.CLOUDINARY_UPLOAD_PRESET
        self.api_key = api_key if api_key is not None else settings.CLOUDINARY_API_KEY
        self.api_secret = api_secret if api_secret is not None else settings.CLOUDINARY_API_SECRET
        self.base_url = f"{settings.CLOUDINARY_API_BASE_URL.rstrip('/')}/{self.cloud_name}"
        self._transport = transport

    @property
    def can_upload(self) -> bool:
        return bool(self.cloud_name and self.upload_preset)

    @property
    def can_sign(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=settings.FILE_HOST_TIMEOUT, transport=self._transport)

    async def upload_file(
        self,
        content: bytes,
        filename: str,
        mime_type: str,
        folder: str = settings.UPLOAD_FOLDER,
        public_id: Optional[str] = None,
        resource_type: str = "auto",
    ) -> Dict[str, Any]:
        """
        Upload bytes; returns Cloudinary's result
        (``public_id``, ``url``, ``secure_url``, ``format``, ``bytes``, ...).
        """
        if not self.can_upload:
            raise FileHostNotConfiguredError("upload")

        data = {"upload_preset": self.upload_preset, "folder": folder}
        if public_id:
            data["public_id"] = public_id

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/{resource_type}/upload",
                    data=data,
                    files={"file": (filename, content, mime_type)},
                )
        except httpx.RequestError as e:
            logger.error(f"[Cloudinary] Request error during upload: {e}")
            raise FileUploadError(str(e))

        if response.status_code >= 400:
            message = _error_message(response)
            logger.error(f"[Cloudinary] Upload rejected: {response.status_code} - {message}")
            raise FileUploadError(message)

        result = response.json()
        logger.log_file_event("hosted", result.get("public_id"), original_filename=filename, size=len(content))
        return result

    async def delete_file(self, public_id: str, resource_type: str = "raw") -> bool:
        """Signed destroy; True when Cloudinary reports the asset gone"""
        if not self.can_sign:
            raise FileHostNotConfiguredError("signed deletion")

        params = {"public_id": public_id, "timestamp": int(time.time())}
        payload = {
            **params,
            "api_key": self.api_key,
            "signature": sign_params(params, self.api_secret),
        }

        try:
            async with self._client() as client:
                response = await client.post(f"{self.base_url}/{resource_type}/destroy", data=payload)
        except httpx.RequestError as e:
            logger.error(f"[Cloudinary] Request error during destroy: {e}")
            raise FileHostError(f"Delete failed: {e}")

        if response.status_code >= 400:
            raise FileHostError(f"Delete failed: {_error_message(response)}")

        result = response.json().get("result")
        logger.log_file_event("destroyed", public_id, host_result=result)
        return result in ("ok", "not found")

    def get_download_url(
        self,
        public_id: str,
        format: Optional[str] = None,
        quality: Optional[str] = None,
        flags: Optional[str] = None,
        resource_type: str = "image",
    ) -> str:
        """Delivery URL with optional flags/quality transformations"""
        url = f"https://res.cloudinary.com/{self.cloud_name}/{resource_type}/upload/"
        if flags:
            url += f"fl_{flags}/"
        if quality:
            url += f"q_{quality}/"
        url += public_id
        if format:
            url += f".{format}"
        return url
