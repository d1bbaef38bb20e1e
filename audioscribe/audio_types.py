"""
Audio upload type validation and MIME resolution.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

ALLOWED_AUDIO_MIME_TYPES = {
    "audio/mpeg",
    "audio/wav",
    "audio/mp3",
    "audio/webm",
    "audio/ogg",
    "audio/mp4",
    "audio/x-m4a",
    "audio/m4a",
}
EXTENSION_MIME_TYPES = {
    "m4a": "audio/mp4",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "webm": "audio/webm",
}
GENERIC_MIME_TYPES = {"", "application/octet-stream"}
FALLBACK_AUDIO_MIME_TYPE = "audio/mp4"


class AudioValidationError(Exception):
    """Raised when an uploaded file is not an accepted audio payload."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def _file_extension(file_name: Optional[str]) -> str:
    return Path(file_name or "").suffix.lower().lstrip(".")


def is_allowed_audio(file_name: Optional[str], mime_type: Optional[str]) -> bool:
    normalized_mime = (mime_type or "").strip().lower()
    if normalized_mime in ALLOWED_AUDIO_MIME_TYPES:
        return True
    # Browsers often report m4a as an empty or generic type.
    return _file_extension(file_name) == "m4a"


def resolve_mime_type(file_name: Optional[str], mime_type: Optional[str]) -> str:
    """Return the MIME type to send upstream, guessing from the extension for generic types."""
    normalized_mime = (mime_type or "").strip().lower()
    if normalized_mime not in GENERIC_MIME_TYPES:
        return normalized_mime
    return EXTENSION_MIME_TYPES.get(_file_extension(file_name), normalized_mime or "application/octet-stream")


def validate_audio_upload(
    file_name: Optional[str],
    mime_type: Optional[str],
    size_bytes: int,
    max_size_bytes: int,
) -> str:
    """Validate size and type of a whole-file upload and return the resolved MIME type."""
    if size_bytes <= 0:
        raise AudioValidationError("Uploaded audio file is empty")
    if size_bytes > max_size_bytes:
        raise AudioValidationError(
            f"File too large! Maximum supported size: {max_size_bytes // (1024 * 1024)}MB "
            f"(your file: {size_bytes / 1024 / 1024:.2f} MB)",
            status_code=413,
        )
    if not is_allowed_audio(file_name, mime_type):
        raise AudioValidationError("Unsupported file type. Please upload an audio file (MP3, WAV, OGG, WebM, M4A)")
    return resolve_mime_type(file_name, mime_type)
