"""
Local file system storage provider.
"""

from pathlib import Path
from typing import Optional

from marketplace.core.config import get_settings
from marketplace.core.exceptions import InfrastructureError, NotFoundError, ValidationError
from marketplace.interfaces.storage_provider import IStorageProvider


class LocalStorageProvider(IStorageProvider):
    """
    Local file system storage implementation.

    Files live under base_path and are served at {BASE_URL}/storage/{path}.
    """

    def __init__(self, base_path: Optional[str] = None, base_url: Optional[str] = None):
        """
        Args:
            base_path: Base directory for file storage (default: ./storage)
            base_url: Public server URL (default: settings.BASE_URL)
        """
        self.base_path = Path(base_path or "./storage").resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._base_url = (base_url or get_settings().BASE_URL).rstrip("/")

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        """Upload a file. Existing files at the same path are replaced."""
        file_path = self._resolve_path(path)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(data)
        except OSError as e:
            raise InfrastructureError(f"Failed to upload file: {e}")
        return path

    async def download(self, path: str) -> bytes:
        file_path = self._resolve_path(path)
        if not file_path.exists():
            raise NotFoundError(f"File not found: {path}")
        try:
            return file_path.read_bytes()
        except OSError as e:
            raise InfrastructureError(f"Failed to download file: {e}")

    async def delete(self, path: str) -> bool:
        file_path = self._resolve_path(path)
        if not file_path.exists():
            return False
        try:
            file_path.unlink()
        except OSError as e:
            raise InfrastructureError(f"Failed to delete file: {e}")
        return True

    async def exists(self, path: str) -> bool:
        return self._resolve_path(path).exists()

    def get_public_url(self, path: str) -> str:
        return f"{self._base_url}/storage/{path.lstrip('/')}"

    def _resolve_path(self, path: str) -> Path:
        """Resolve a relative storage path, refusing paths outside base_path."""
        file_path = (self.base_path / path.lstrip("/")).resolve()
        if file_path != self.base_path and self.base_path not in file_path.parents:
            raise ValidationError(f"Invalid storage path: {path}")
        return file_path
