"""
Model availability API routes.
"""
from fastapi import APIRouter, HTTPException
import logging

from ...ai import ModelInvocationError, probe_models

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/list-models", tags=["models"])


@router.get("")
async def list_candidate_models():
    """Probe every configured candidate model with a short prompt."""
    try:
        results = await probe_models()
    except ModelInvocationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    available = sum(1 for row in results if row["status"] == "available")
    logger.info(f"Model probe finished: {available}/{len(results)} available")
    return {"success": True, "models": results}
