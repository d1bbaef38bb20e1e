"""
Audio service - validates audio payloads and runs them through the model fallback list.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

from ..ai import build_segment_prompt, generate_text_from_audio
from ..audio_types import FALLBACK_AUDIO_MIME_TYPE, resolve_mime_type, validate_audio_upload
from ..config import Config
from .upload_session_service import UploadSessionStore

logger = logging.getLogger(__name__)
config = Config()


class AudioService:
    """Service for whole-file, segment and chunked-session processing."""

    def __init__(self, models: Optional[Sequence[str]] = None, api_key: Optional[str] = None):
        self.models = models
        self.api_key = api_key

    def resolve_prompt(self, prompt: Optional[str]) -> str:
        return (prompt or "").strip() or config.default_prompt

    async def process_file(
        self,
        data: bytes,
        file_name: str,
        mime_type: Optional[str],
        prompt: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Process a complete audio file sent in one request."""
        resolved_mime = validate_audio_upload(
            file_name,
            mime_type,
            size_bytes=len(data),
            max_size_bytes=config.max_audio_file_size_bytes,
        )
        result = await generate_text_from_audio(
            data,
            resolved_mime,
            self.resolve_prompt(prompt),
            models=self.models,
            api_key=self.api_key,
        )
        return {
            "success": True,
            "message": "Processing complete",
            "result": result.text,
            "model": result.model,
            "fileName": file_name,
            "fileSize": len(data),
            "fileType": resolved_mime,
        }

    async def process_segment(
        self,
        data: bytes,
        mime_type: Optional[str],
        prompt: str,
        segment_index: int,
        total_segments: int,
    ) -> Dict[str, Any]:
        segment_prompt = build_segment_prompt(prompt, segment_index, total_segments)
        logger.info(f"Processing segment {segment_index + 1}/{total_segments} ({len(data)} bytes)")
        result = await generate_text_from_audio(
            data,
            (mime_type or "").strip() or FALLBACK_AUDIO_MIME_TYPE,
            segment_prompt,
            models=self.models,
            api_key=self.api_key,
        )
        return {
            "success": True,
            "text": result.text,
            "model": result.model,
            "segmentIndex": segment_index,
            "totalSegments": total_segments,
        }

    async def process_session(
        self,
        store: UploadSessionStore,
        session_id: str,
        prompt: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Run the model on a merged upload session, deleting it once the model answered."""
        session = store.get_completed(session_id)
        merged = session.merged or b""
        resolved_mime = resolve_mime_type(session.file_name, session.mime_type)
        result = await generate_text_from_audio(
            merged,
            resolved_mime,
            self.resolve_prompt(prompt),
            models=self.models,
            api_key=self.api_key,
        )
        store.delete(session.session_id)
        return {
            "success": True,
            "message": "Processing complete",
            "result": result.text,
            "model": result.model,
            "fileName": session.file_name,
            "fileSize": len(merged),
            "fileType": resolved_mime,
        }
