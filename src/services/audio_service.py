from typing import List, Optional

from src.core.logger import logger


class AudioService:
    """Collects the audio chunks a client streams during one capture."""

    def __init__(self, content_type: Optional[str] = None):
        self._buffer: List[bytes] = []
        self.content_type = content_type

    def add_chunk(self, chunk: bytes) -> None:
        if chunk:
            self._buffer.append(chunk)

    def reset(self, content_type: Optional[str] = None) -> None:
        self._buffer.clear()
        self.content_type = content_type

    def get_chunk_count(self) -> int:
        return len(self._buffer)

    def get_size_bytes(self) -> int:
        return sum(len(chunk) for chunk in self._buffer)

    def drain(self) -> bytes:
        data = b"".join(self._buffer)
        logger.debug(f"Drained {len(self._buffer)} audio chunks ({len(data)} bytes)")
        self._buffer.clear()
        return data
