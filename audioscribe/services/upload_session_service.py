"""
In-memory upload sessions for chunked audio uploads.
"""
from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional

from ..config import Config
from ..upload_limits import format_megabytes

logger = logging.getLogger(__name__)
config = Config()


class UploadSessionError(Exception):
    """Raised when a chunk or session request cannot be honoured."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class UploadSession:
    """Chunks received so far for one logical upload."""

    def __init__(self, session_id: str, total_chunks: int, file_name: str, mime_type: str):
        self.session_id = session_id
        self.total_chunks = total_chunks
        self.file_name = file_name
        self.mime_type = mime_type
        self.chunks: Dict[int, bytes] = {}
        self.merged: Optional[bytes] = None
        self.created_at = time.time()

    @property
    def complete(self) -> bool:
        return self.merged is not None

    @property
    def received_count(self) -> int:
        if self.merged is not None:
            return self.total_chunks
        return len(self.chunks)

    def missing_indexes(self) -> List[int]:
        return [index for index in range(self.total_chunks) if index not in self.chunks]

    def merge(self) -> bytes:
        self.merged = b"".join(self.chunks[index] for index in range(self.total_chunks))
        self.chunks = {}
        return self.merged


class UploadSessionStore:
    """
    Process-local map of session id -> UploadSession.

    Nothing expires on its own: sessions leave the store through delete() or
    clear(). Writes to the same chunk position overwrite the previous bytes.
    """

    def __init__(self, max_chunk_size_bytes: Optional[int] = None, max_total_chunks: Optional[int] = None):
        self.max_chunk_size_bytes = int(max_chunk_size_bytes or config.max_chunk_size_bytes)
        self.max_total_chunks = int(max_total_chunks or config.max_total_chunks)
        self._sessions: Dict[str, UploadSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def check_chunk_size(self, size_bytes: int) -> None:
        if size_bytes > self.max_chunk_size_bytes:
            raise UploadSessionError(
                f"Chunk size too large: {format_megabytes(size_bytes)} "
                f"(max: {self.max_chunk_size_bytes // (1024 * 1024)}MB)",
                status_code=413,
            )

    def add_chunk(
        self,
        session_id: str,
        chunk_index: int,
        total_chunks: int,
        data: bytes,
        file_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> UploadSession:
        """Store one chunk and merge the session once every position is filled."""
        normalized_id = (session_id or "").strip()
        if not normalized_id:
            raise UploadSessionError("Missing required fields: chunk or sessionId")
        if total_chunks < 1 or chunk_index < 0 or chunk_index >= total_chunks:
            raise UploadSessionError("Invalid chunkIndex or totalChunks")
        if total_chunks > self.max_total_chunks:
            raise UploadSessionError(f"totalChunks exceeds the limit of {self.max_total_chunks}")
        self.check_chunk_size(len(data))

        session = self._sessions.get(normalized_id)
        if session is None:
            session = UploadSession(
                session_id=normalized_id,
                total_chunks=total_chunks,
                file_name=(file_name or "").strip() or "audio",
                mime_type=(mime_type or "").strip(),
            )
            self._sessions[normalized_id] = session
            logger.info(f"Created upload session {normalized_id} ({total_chunks} chunks)")
        elif session.complete:
            raise UploadSessionError(f"Upload session {normalized_id} is already complete", status_code=409)
        elif chunk_index >= session.total_chunks:
            raise UploadSessionError("Invalid chunkIndex or totalChunks")

        session.chunks[chunk_index] = data

        # Indexes are range-checked, so a full map means every position is filled.
        if len(session.chunks) == session.total_chunks:
            merged = session.merge()
            logger.info(
                f"Upload session {normalized_id} complete: merged {session.total_chunks} chunks "
                f"({format_megabytes(len(merged))})"
            )
        return session

    def get(self, session_id: str) -> Optional[UploadSession]:
        return self._sessions.get((session_id or "").strip())

    def get_completed(self, session_id: str) -> UploadSession:
        session = self.get(session_id)
        if session is None or not session.complete:
            raise UploadSessionError("File not found or not complete", status_code=404)
        return session

    def delete(self, session_id: str) -> bool:
        removed = self._sessions.pop((session_id or "").strip(), None)
        if removed is not None:
            logger.info(f"Deleted upload session {removed.session_id}")
        return removed is not None

    def clear(self) -> int:
        count = len(self._sessions)
        self._sessions.clear()
        logger.info(f"Cleared {count} upload sessions")
        return count


upload_sessions = UploadSessionStore()


def get_upload_store() -> UploadSessionStore:
    return upload_sessions
