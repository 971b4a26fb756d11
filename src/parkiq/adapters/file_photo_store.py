"""Filesystem-backed storage for session photos."""

from dataclasses import dataclass
from pathlib import Path

from parkiq.services.sessions import PhotoStore


@dataclass
class FilePhotoStore(PhotoStore):
    """Stores one photo per session under a root directory."""

    root: Path

    def put(self, session_id: str, image_bytes: bytes) -> str:
        """Write the photo and return its file URI."""
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._path(session_id)
        path.write_bytes(image_bytes)
        return path.resolve().as_uri()

    def get(self, session_id: str) -> str | None:
        """Return the photo URI for a session, if one was stored."""
        path = self._path(session_id)
        if not path.exists():
            return None
        return path.resolve().as_uri()

    def _path(self, session_id: str) -> Path:
        return self.root / f"parking_photo_{session_id}.jpg"
