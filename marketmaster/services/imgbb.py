# marketmaster/services/imgbb.py
from __future__ import annotations

import httpx

from ..config import settings
from ..errors import CollaboratorError
from ..utils.log import get_logger

logger = get_logger(__name__)


class ImageHost:
    """Загрузка фото объявлений на imgbb. Повторов нет: любой не-2xx: ошибка."""

    def __init__(
        self,
        api_key: str | None = None,
        upload_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.IMGBB_API_KEY
        self.upload_url = upload_url or settings.IMGBB_UPLOAD_URL
        self.timeout = timeout or settings.IMAGE_HOST_TIMEOUT_SEC
        self._transport = transport

    async def upload(self, data: bytes, filename: str = "image.jpg", content_type: str | None = None) -> str:
        if not self.api_key:
            raise CollaboratorError("Image hosting is not configured")

        files = {"image": (filename, data, content_type or "application/octet-stream")}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as c:
            try:
                r = await c.post(self.upload_url, params={"key": self.api_key}, files=files)
            except httpx.HTTPError as e:
                logger.warning("imgbb upload error: %s", e)
                raise CollaboratorError("Image upload failed") from e

        if not r.is_success:
            logger.warning("imgbb upload failed: HTTP %s", r.status_code)
            raise CollaboratorError("Image upload failed")
        try:
            return r.json()["data"]["url"]
        except (ValueError, KeyError, TypeError) as e:
            raise CollaboratorError("Image upload failed") from e
