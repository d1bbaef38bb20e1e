"""
Whole-file and segment processing API routes.
"""
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from typing import Optional
import logging

from ...ai import ModelInvocationError
from ...audio_types import AudioValidationError
from ...config import Config
from ...services.audio_service import AudioService
from ...upload_limits import UPLOAD_READ_SIZE
from .uploads import get_audio_service

logger = logging.getLogger(__name__)
config = Config()
router = APIRouter(tags=["audio"])


async def _read_upload(upload: UploadFile, max_size_bytes: int) -> bytes:
    parts = []
    bytes_read = 0
    while True:
        piece = await upload.read(UPLOAD_READ_SIZE)
        if not piece:
            break
        bytes_read += len(piece)
        if bytes_read > max_size_bytes:
            raise AudioValidationError(
                f"File too large! Maximum supported size: {max_size_bytes // (1024 * 1024)}MB",
                status_code=413,
            )
        parts.append(piece)
    return b"".join(parts)


@router.post("/process-file")
async def process_file(
    audio: Optional[UploadFile] = File(None),
    prompt: Optional[str] = Form(None),
    audio_service: AudioService = Depends(get_audio_service),
):
    """Process a whole audio file sent in a single request."""
    try:
        if audio is None or not audio.filename:
            raise HTTPException(status_code=400, detail="No audio file uploaded")

        data = await _read_upload(audio, config.max_audio_file_size_bytes)
        return await audio_service.process_file(
            data,
            file_name=audio.filename,
            mime_type=audio.content_type,
            prompt=prompt,
        )
    except HTTPException:
        raise
    except (AudioValidationError, ModelInvocationError) as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    except Exception as e:
        logger.error(f"Error processing audio: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error processing audio: {str(e)}")
    finally:
        if audio is not None:
            await audio.close()


@router.post("/process-segment")
async def process_segment(
    audio: Optional[UploadFile] = File(None),
    prompt: Optional[str] = Form(None),
    segment_index: Optional[str] = Form("0", alias="segmentIndex"),
    total_segments: Optional[str] = Form("1", alias="totalSegments"),
    audio_service: AudioService = Depends(get_audio_service),
):
    """Process one time-bounded segment of a larger recording."""
    try:
        if audio is None:
            raise HTTPException(status_code=400, detail="Missing audio file")
        if not (prompt or "").strip():
            raise HTTPException(status_code=400, detail="Missing prompt")

        try:
            index = int(str(segment_index or "0").strip())
            total = int(str(total_segments or "1").strip())
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid segmentIndex or totalSegments") from exc
        if total < 1 or index < 0 or index >= total:
            raise HTTPException(status_code=400, detail="Invalid segmentIndex or totalSegments")

        data = await _read_upload(audio, config.max_chunk_size_bytes)
        if not data:
            raise HTTPException(status_code=400, detail="Missing audio file")
        return await audio_service.process_segment(
            data,
            mime_type=audio.content_type,
            prompt=prompt,
            segment_index=index,
            total_segments=total,
        )
    except HTTPException:
        raise
    except (AudioValidationError, ModelInvocationError) as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    except Exception as e:
        logger.error(f"Error processing segment: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error processing segment: {str(e)}")
    finally:
        if audio is not None:
            await audio.close()
