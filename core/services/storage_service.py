# =============================================================================
# core/services/storage_service.py - Result File Storage
# =============================================================================
# Stores transformation outputs on the local filesystem. The storage
# directory is served by the API under FILES_URL_PATH, so every saved file
# gets a stable URL path:
#
#   {STORAGE_DIR}/{user_id}/{filename}  ->  {FILES_URL_PATH}/{user_id}/{filename}
# =============================================================================

import logging
import re
from pathlib import Path

from app.config import settings
from app.exceptions import StorageUploadError

logger = logging.getLogger(__name__)

# Keep stored names to a safe character set
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_filename(filename: str) -> str:
    """
    Strip directories and unsafe characters from a filename.

    Example: "../a b.png" -> "a_b.png"
    """
    name = _UNSAFE_CHARS.sub("_", Path(filename).name).lstrip(".")
    return name or "file"


class StorageService:
    """
    Service for result file storage.

    Handles saving generated images under a per-user directory.
    """

    @staticmethod
    def save_file(
        content: bytes,
        filename: str,
        user_id: int,
        root: str | Path | None = None,
    ) -> str:
        """
        Save file content for a user.

        Args:
            content: File bytes
            filename: Target filename (sanitized before use)
            user_id: Owner; files are grouped per user
            root: Storage directory (defaults to STORAGE_DIR)

        Returns:
            URL path the file is served under

        Raises:
            StorageUploadError: If the file cannot be written
        """
        name = safe_filename(filename)
        directory = Path(root or settings.STORAGE_DIR) / str(user_id)

        try:
            directory.mkdir(parents=True, exist_ok=True)
            (directory / name).write_bytes(content)
        except OSError as e:
            logger.error(f"Storage write failed: {e}")
            raise StorageUploadError(str(e))

        logger.info(f"Stored file: {directory / name} ({len(content)} bytes)")
        return f"{settings.FILES_URL_PATH.rstrip('/')}/{user_id}/{name}"
