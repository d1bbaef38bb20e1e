"""
Client-side upload orchestration: direct submission, time segments, chunked upload.
"""
from __future__ import annotations

import asyncio
import logging
import math
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import aiofiles
import httpx
from pydantic import BaseModel, Field

from ..audio_segments import (
    AudioDecodeError,
    AudioSegment,
    decode_audio_file,
    segment_durations_for_limit,
    split_into_segments,
)
from ..audio_types import is_allowed_audio, resolve_mime_type
from ..config import Config
from ..upload_limits import format_megabytes

logger = logging.getLogger(__name__)
config = Config()
ProgressCallback = Callable[[Dict[str, Any]], None]


class OrchestrationError(Exception):
    """Raised when an upload strategy (or all of them) failed."""


class OrchestrationResult(BaseModel):
    """Final text for a file and how it was obtained."""
    text: str
    strategy: str = Field(description="direct, segmented or chunked")
    model: Optional[str] = None
    segments_total: int = 0
    segments_failed: int = 0
    segment_seconds: Optional[int] = None
    attempted_strategies: List[str] = Field(default_factory=list)


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip() or f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        for key in ("detail", "error", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return f"HTTP {response.status_code}"


def _json_or_raise(response: httpx.Response) -> Dict[str, Any]:
    if response.status_code >= 400:
        raise OrchestrationError(f"HTTP {response.status_code}: {_error_detail(response)}")
    try:
        payload = response.json()
    except ValueError as exc:
        raise OrchestrationError("Server returned invalid JSON") from exc
    if not isinstance(payload, dict):
        raise OrchestrationError("Server returned an unexpected payload")
    return payload


def merge_segment_texts(outcomes: List[Tuple[AudioSegment, Union[str, BaseException]]]) -> str:
    parts: List[str] = []
    for segment, outcome in sorted(outcomes, key=lambda item: item[0].index):
        if isinstance(outcome, BaseException):
            parts.append(f"[Segment {segment.index + 1} failed: {outcome}]")
        else:
            parts.append(outcome.strip())
    return "\n\n".join(parts)


class AudioOrchestrator:
    """
    Pick an upload strategy for a local audio file and fall back on failure.

    Order: whole-file submission (small files only), time-sliced WAV segments
    dispatched in bounded batches, then server-side chunked upload with the
    final chunk triggering processing.
    """

    def __init__(
        self,
        server_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        concurrency: Optional[int] = None,
        direct_max_bytes: Optional[int] = None,
        max_request_bytes: Optional[int] = None,
        chunk_size_bytes: Optional[int] = None,
        max_file_bytes: Optional[int] = None,
        sample_rate: Optional[int] = None,
        timeout_seconds: Optional[int] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.server_url = (server_url or config.client_server_url).rstrip("/")
        self.client = client
        self.concurrency = max(1, int(concurrency or config.segment_concurrency))
        self.direct_max_bytes = int(direct_max_bytes or config.direct_upload_max_bytes)
        self.max_request_bytes = int(max_request_bytes or config.max_chunk_size_bytes)
        self.chunk_size_bytes = int(chunk_size_bytes or config.upload_chunk_size_bytes)
        self.max_file_bytes = int(max_file_bytes or config.max_audio_file_size_bytes)
        self.sample_rate = int(sample_rate or config.segment_sample_rate)
        self.timeout_seconds = int(timeout_seconds or config.client_timeout_seconds)
        self.progress_callback = progress_callback

    def _emit_progress(self, payload: Dict[str, Any]) -> None:
        if self.progress_callback is None:
            return
        try:
            self.progress_callback(payload)
        except Exception as exc:
            logger.warning(f"Failed to emit progress payload: {exc}")

    async def process_file(
        self,
        audio_path: Union[str, Path],
        prompt: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> OrchestrationResult:
        audio_path = Path(audio_path)
        async with aiofiles.open(audio_path, "rb") as source:
            data = await source.read()

        file_name = audio_path.name
        resolved_mime = resolve_mime_type(file_name, mime_type)
        if not data:
            raise OrchestrationError(f"{file_name} is empty")
        if len(data) > self.max_file_bytes:
            raise OrchestrationError(
                f"File too large! Maximum supported size: {format_megabytes(self.max_file_bytes)} "
                f"(your file: {format_megabytes(len(data))})"
            )
        if not is_allowed_audio(file_name, resolved_mime):
            raise OrchestrationError("Unsupported file type. Please upload an audio file (MP3, WAV, OGG, WebM, M4A)")

        resolved_prompt = (prompt or "").strip() or config.default_prompt

        if self.client is not None:
            return await self._run_strategies(self.client, audio_path, data, resolved_mime, resolved_prompt)
        async with httpx.AsyncClient(base_url=self.server_url, timeout=self.timeout_seconds) as client:
            return await self._run_strategies(client, audio_path, data, resolved_mime, resolved_prompt)

    async def _run_strategies(
        self,
        client: httpx.AsyncClient,
        audio_path: Path,
        data: bytes,
        mime_type: str,
        prompt: str,
    ) -> OrchestrationResult:
        strategies: List[Tuple[str, Callable[[], Any]]] = []
        if len(data) <= self.direct_max_bytes:
            strategies.append(("direct", lambda: self._submit_direct(client, audio_path.name, data, mime_type, prompt)))
        strategies.append(("segmented", lambda: self._submit_segmented(client, audio_path, prompt)))
        strategies.append(("chunked", lambda: self._submit_chunked(client, audio_path.name, data, mime_type, prompt)))

        attempted: List[str] = []
        last_error: Optional[Exception] = None
        for name, run in strategies:
            attempted.append(name)
            logger.info(f"Processing {audio_path.name} ({format_megabytes(len(data))}) with strategy '{name}'")
            try:
                result = await run()
            except (OrchestrationError, AudioDecodeError, httpx.HTTPError) as exc:
                last_error = exc
                logger.warning(f"Strategy '{name}' failed for {audio_path.name}: {exc}")
                self._emit_progress({"strategy": name, "status": "failed", "error": str(exc)})
                continue
            result.attempted_strategies = attempted
            return result

        raise OrchestrationError(f"All upload strategies failed. Last error: {last_error}")

    async def _submit_direct(
        self,
        client: httpx.AsyncClient,
        file_name: str,
        data: bytes,
        mime_type: str,
        prompt: str,
    ) -> OrchestrationResult:
        self._emit_progress({"strategy": "direct", "status": "uploading", "percent": 0})
        response = await client.post(
            "/process-file",
            files={"audio": (file_name, data, mime_type)},
            data={"prompt": prompt},
        )
        payload = _json_or_raise(response)
        text = str(payload.get("result") or "")
        if not text.strip():
            raise OrchestrationError("Server returned an empty result")
        self._emit_progress({"strategy": "direct", "status": "complete", "percent": 100})
        return OrchestrationResult(text=text, strategy="direct", model=payload.get("model"))

    async def _send_segment(self, client: httpx.AsyncClient, segment: AudioSegment, prompt: str) -> str:
        response = await client.post(
            "/process-segment",
            files={"audio": (segment.file_name, segment.data, segment.mime_type)},
            data={
                "prompt": prompt,
                "segmentIndex": str(segment.index),
                "totalSegments": str(segment.total),
            },
        )
        payload = _json_or_raise(response)
        text = str(payload.get("text") or "")
        if not text.strip():
            raise OrchestrationError("empty segment result")
        return text

    async def _dispatch_segments(
        self,
        client: httpx.AsyncClient,
        segments: List[AudioSegment],
        prompt: str,
    ) -> List[Tuple[AudioSegment, Union[str, BaseException]]]:
        """Send segments in batches of ``concurrency``; each batch finishes before the next starts."""
        outcomes: List[Tuple[AudioSegment, Union[str, BaseException]]] = []
        total = len(segments)
        for batch_start in range(0, total, self.concurrency):
            batch = segments[batch_start:batch_start + self.concurrency]
            results = await asyncio.gather(
                *(self._send_segment(client, segment, prompt) for segment in batch),
                return_exceptions=True,
            )
            for segment, outcome in zip(batch, results):
                if isinstance(outcome, BaseException):
                    logger.warning(f"Segment {segment.index + 1}/{total} failed: {outcome}")
                outcomes.append((segment, outcome))

            completed = len(outcomes)
            self._emit_progress(
                {
                    "strategy": "segmented",
                    "status": "processing",
                    "segments_completed": completed,
                    "segments_total": total,
                    "percent": int(completed * 100 / total),
                }
            )
        return outcomes

    async def _submit_segmented(self, client: httpx.AsyncClient, audio_path: Path, prompt: str) -> OrchestrationResult:
        try:
            decoded = await asyncio.to_thread(decode_audio_file, audio_path, self.sample_rate)
        except ValueError as exc:
            raise AudioDecodeError(f"Could not decode {audio_path.name}: {exc}") from exc
        durations = segment_durations_for_limit(decoded.sample_rate, decoded.channels, self.max_request_bytes)
        if not durations:
            raise OrchestrationError(
                f"No segment duration fits the {format_megabytes(self.max_request_bytes)} request limit"
            )

        for segment_seconds in durations:
            segments = split_into_segments(decoded, segment_seconds)
            logger.info(
                f"Dispatching {len(segments)} segments of {segment_seconds}s "
                f"({self.concurrency} at a time) for {audio_path.name}"
            )
            outcomes = await self._dispatch_segments(client, segments, prompt)
            failed = sum(1 for _segment, outcome in outcomes if isinstance(outcome, BaseException))
            if failed < len(segments):
                self._emit_progress({"strategy": "segmented", "status": "complete", "percent": 100})
                return OrchestrationResult(
                    text=merge_segment_texts(outcomes),
                    strategy="segmented",
                    segments_total=len(segments),
                    segments_failed=failed,
                    segment_seconds=segment_seconds,
                )
            logger.warning(f"Every {segment_seconds}s segment failed for {audio_path.name}; stepping down")

        raise OrchestrationError("Every segment failed at every segment duration")

    async def _delete_session(self, client: httpx.AsyncClient, session_id: str) -> None:
        try:
            await client.delete("/upload-chunk", params={"sessionId": session_id})
        except httpx.HTTPError as exc:
            logger.warning(f"Failed to clean up upload session {session_id}: {exc}")

    async def _submit_chunked(
        self,
        client: httpx.AsyncClient,
        file_name: str,
        data: bytes,
        mime_type: str,
        prompt: str,
    ) -> OrchestrationResult:
        session_id = uuid.uuid4().hex
        total_chunks = max(1, math.ceil(len(data) / self.chunk_size_bytes))
        payload: Dict[str, Any] = {}

        try:
            for chunk_index in range(total_chunks):
                start = chunk_index * self.chunk_size_bytes
                piece = data[start:start + self.chunk_size_bytes]
                form = {
                    "chunkIndex": str(chunk_index),
                    "totalChunks": str(total_chunks),
                    "sessionId": session_id,
                    "fileName": file_name,
                    "mimeType": mime_type,
                }
                if chunk_index == total_chunks - 1:
                    form["prompt"] = prompt
                    form["processImmediately"] = "true"

                response = await client.post(
                    "/upload-chunk",
                    files={"chunk": (file_name, piece, "application/octet-stream")},
                    data=form,
                )
                payload = _json_or_raise(response)
                self._emit_progress(
                    {
                        "strategy": "chunked",
                        "status": "uploading",
                        "chunks_sent": chunk_index + 1,
                        "chunks_total": total_chunks,
                        "percent": int((chunk_index + 1) * 100 / total_chunks),
                    }
                )
        except (OrchestrationError, httpx.HTTPError):
            await self._delete_session(client, session_id)
            raise

        text = str(payload.get("result") or "")
        if not payload.get("complete") or not text.strip():
            await self._delete_session(client, session_id)
            raise OrchestrationError("Chunked upload finished without a result")
        return OrchestrationResult(text=text, strategy="chunked", model=payload.get("model"))
