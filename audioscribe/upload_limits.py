"""
Shared request-size limits and segmentation step-downs.
"""

from __future__ import annotations

UPLOAD_READ_SIZE = 1024 * 1024  # 1MB
SEGMENT_DURATION_STEPS_SECONDS = (120, 90, 60, 30)
WAV_HEADER_BYTES = 44
PCM_SAMPLE_WIDTH_BYTES = 2


def format_megabytes(size_bytes: int) -> str:
    return f"{size_bytes / 1024 / 1024:.2f}MB"
