"""
Blob storage for uploaded audio.

LocalAudioStorage writes under AUDIO_STORAGE_DIR and serves files from the
/media mount. Anything implementing AudioStorage.put can replace it.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Protocol

from backend.core.config import settings
from backend.core.logging import LOGGER_NAME


logger = logging.getLogger(LOGGER_NAME)

MEDIA_PREFIX = "/media"


class AudioStorage(Protocol):
    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under `key` and return a URL the LLM can fetch."""
        ...

    def delete(self, key: str) -> None:
        """Remove the blob under `key`; a missing key is not an error."""
        ...


class LocalAudioStorage:
    def __init__(self, root_dir: Optional[str] = None, public_base_url: Optional[str] = None):
        self.root_dir = Path(root_dir or settings.AUDIO_STORAGE_DIR)
        self.public_base_url = (public_base_url or settings.BASE_URL).rstrip("/")

    def _path_for(self, key: str) -> Path:
        path = (self.root_dir / key).resolve()
        root = self.root_dir.resolve()
        if root not in path.parents:
            raise ValueError(f"storage key escapes root: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path_for(key)
        os.makedirs(path.parent, exist_ok=True)
        with open(path, "wb") as fh:
            fh.write(data)
        logger.info("audio.stored", extra={"file_key": key, "size": len(data), "mime_type": content_type})
        return f"{self.public_base_url}{MEDIA_PREFIX}/{key}"

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        if path.exists():
            path.unlink()
            logger.info("audio.deleted", extra={"file_key": key})
