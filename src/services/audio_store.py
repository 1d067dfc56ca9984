import re
import secrets
import time
from pathlib import Path
from typing import Optional

from src.core.logger import logger

AUDIO_URL_PREFIX = "/api/audio"
AUDIO_FILENAME_PATTERN = re.compile(r"^jarvis_\d+_[0-9a-f]+\.mp3$")


class AudioStore:
    """Keeps synthesized replies on disk so clients can fetch them by URL."""

    def __init__(self, directory: str):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def save(self, audio: bytes) -> str:
        self._directory.mkdir(parents=True, exist_ok=True)
        filename = f"jarvis_{int(time.time() * 1000)}_{secrets.token_hex(4)}.mp3"
        (self._directory / filename).write_bytes(audio)
        logger.debug(f"Saved {len(audio)} bytes of reply audio to {filename}")
        return filename

    def path_for(self, filename: str) -> Optional[Path]:
        if not AUDIO_FILENAME_PATTERN.match(filename):
            return None
        path = self._directory / filename
        return path if path.is_file() else None

    @staticmethod
    def url_for(filename: str) -> str:
        return f"{AUDIO_URL_PREFIX}/{filename}"
