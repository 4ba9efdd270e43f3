# marketmaster/services/storage.py
from __future__ import annotations

from pathlib import Path, PurePosixPath

from ..config import settings
from ..errors import CollaboratorError
from ..utils.log import get_logger

logger = get_logger(__name__)


class ObjectStore:
    """Файлы пользователей (аватарки). Отдаются статикой по MEDIA_URL."""

    def __init__(self, root: str | Path | None = None, base_url: str | None = None):
        self.root = Path(root or settings.MEDIA_DIR)
        self.base_url = (base_url or settings.MEDIA_URL).rstrip("/")

    def _target(self, path: str) -> Path:
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            raise CollaboratorError(f"Invalid storage path: {path}")
        return self.root.joinpath(*rel.parts)

    def upload(self, path: str, data: bytes) -> str:
        target = self._target(path)
        if target.exists():
            raise CollaboratorError("The resource already exists")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.warning("storage upload %s failed: %s", path, e)
            raise CollaboratorError("Upload failed") from e
        return path

    def get_public_url(self, path: str) -> str:
        return f"{self.base_url}/{PurePosixPath(path)}"
