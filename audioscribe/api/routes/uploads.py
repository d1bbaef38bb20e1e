"""
Chunked upload API routes.
"""
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response
from typing import Optional
import logging

from ...ai import ModelInvocationError
from ...services.audio_service import AudioService
from ...services.upload_session_service import UploadSessionError, UploadSessionStore, get_upload_store
from ...upload_limits import UPLOAD_READ_SIZE

logger = logging.getLogger(__name__)
router = APIRouter(tags=["uploads"])


def get_audio_service() -> AudioService:
    return AudioService()


def _coerce_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return default


def _coerce_int(raw: Optional[str], message: str) -> int:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=message) from exc


async def _read_chunk(chunk: UploadFile, store: UploadSessionStore) -> bytes:
    parts = []
    bytes_read = 0
    while True:
        piece = await chunk.read(UPLOAD_READ_SIZE)
        if not piece:
            break
        bytes_read += len(piece)
        store.check_chunk_size(bytes_read)
        parts.append(piece)
    return b"".join(parts)


@router.post("/upload-chunk")
async def upload_chunk(
    chunk: Optional[UploadFile] = File(None),
    chunk_index: Optional[str] = Form(None, alias="chunkIndex"),
    total_chunks: Optional[str] = Form(None, alias="totalChunks"),
    session_id: Optional[str] = Form(None, alias="sessionId"),
    file_name: Optional[str] = Form(None, alias="fileName"),
    mime_type: Optional[str] = Form(None, alias="mimeType"),
    prompt: Optional[str] = Form(None),
    process_immediately: Optional[str] = Form(None, alias="processImmediately"),
    store: UploadSessionStore = Depends(get_upload_store),
    audio_service: AudioService = Depends(get_audio_service),
):
    """Receive one chunk; merge when all chunks arrived and optionally run the model."""
    try:
        if chunk is None or not (session_id or "").strip():
            raise HTTPException(status_code=400, detail="Missing required fields: chunk or sessionId")
        if not (chunk_index or "").strip() or not (total_chunks or "").strip():
            raise HTTPException(status_code=400, detail="Missing required fields: chunkIndex or totalChunks")

        index = _coerce_int(chunk_index, "Invalid chunkIndex or totalChunks")
        total = _coerce_int(total_chunks, "Invalid chunkIndex or totalChunks")

        data = await _read_chunk(chunk, store)
        session = store.add_chunk(
            session_id,
            chunk_index=index,
            total_chunks=total,
            data=data,
            file_name=file_name or chunk.filename,
            mime_type=mime_type or chunk.content_type,
        )

        if not session.complete:
            return {
                "success": True,
                "complete": False,
                "received": session.received_count,
                "total": session.total_chunks,
                "sessionId": session.session_id,
            }

        if not _coerce_bool(process_immediately):
            return {
                "success": True,
                "complete": True,
                "message": "All chunks received and merged",
                "sessionId": session.session_id,
                "fileSize": len(session.merged or b""),
            }

        result = await audio_service.process_session(store, session.session_id, prompt)
        return {"complete": True, "sessionId": session.session_id, **result}
    except HTTPException:
        raise
    except (UploadSessionError, ModelInvocationError) as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    except Exception as e:
        logger.error(f"Error uploading chunk: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to upload chunk: {str(e)}")
    finally:
        if chunk is not None:
            await chunk.close()


@router.get("/upload-chunk")
async def download_merged_file(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    store: UploadSessionStore = Depends(get_upload_store),
):
    """Return the merged file of a completed session as a download."""
    if not (session_id or "").strip():
        raise HTTPException(status_code=400, detail="Missing sessionId")
    try:
        session = store.get_completed(session_id)
    except UploadSessionError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    return Response(
        content=session.merged or b"",
        media_type=session.mime_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{session.file_name}"'},
    )


@router.delete("/upload-chunk")
async def delete_upload_session(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    store: UploadSessionStore = Depends(get_upload_store),
):
    """Delete one session, or every session when no sessionId is given."""
    if (session_id or "").strip():
        deleted = 1 if store.delete(session_id) else 0
    else:
        deleted = store.clear()
    return {"success": True, "deleted": deleted}


@router.post("/process-audio")
async def process_uploaded_audio(
    session_id: Optional[str] = Form(None, alias="sessionId"),
    prompt: Optional[str] = Form(None),
    store: UploadSessionStore = Depends(get_upload_store),
    audio_service: AudioService = Depends(get_audio_service),
):
    """Run the model on a session whose chunks were already merged."""
    if not (session_id or "").strip():
        raise HTTPException(status_code=400, detail="Missing sessionId")
    try:
        return await audio_service.process_session(store, session_id, prompt)
    except (UploadSessionError, ModelInvocationError) as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    except Exception as e:
        logger.error(f"Error processing audio for session {session_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error processing audio: {str(e)}")
