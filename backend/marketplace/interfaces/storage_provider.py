"""
Storage provider interface.

Defines the contract for binary file storage (avatars, listing photos).
"""

from abc import ABC, abstractmethod
from typing import Optional


class IStorageProvider(ABC):
    """Abstract interface for file storage."""

    @abstractmethod
    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        """
        Upload a file.

        Args:
            path: Storage path relative to the storage root
            data: File contents
            content_type: MIME type

        Returns:
            Storage location of the uploaded file
        """
        pass

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Download a file. Raises NotFoundError if missing."""
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Delete a file. Returns False if it did not exist."""
        pass

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check if a file exists."""
        pass

    @abstractmethod
    def get_public_url(self, path: str) -> str:
        """Get a public URL for a stored file."""
        pass
