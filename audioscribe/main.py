"""
FastAPI application entry point.
"""
from contextlib import asynccontextmanager
import logging

from fastapi import Depends, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware

from .api.routes.audio import router as audio_router
from .api.routes.models import router as models_router
from .api.routes.uploads import router as uploads_router
from .config import Config
from .services.upload_session_service import UploadSessionStore, get_upload_store

config = Config()
logging.basicConfig(
    level=config.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not config.google_api_key:
        logger.warning("GEMINI_API_KEY is not set; model calls will fail until it is configured")
    logger.info(f"Model candidates: {', '.join(config.model_candidates)}")
    yield
    cleared = get_upload_store().clear()
    logger.info(f"Shutdown complete, dropped {cleared} in-flight upload sessions")


app = FastAPI(
    title="audioscribe",
    description="Chunked audio upload and Gemini transcription backend.",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(uploads_router, prefix="/api")
app.include_router(audio_router, prefix="/api")
app.include_router(models_router, prefix="/api")


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check(store: UploadSessionStore = Depends(get_upload_store)):
    return {"status": "ok", "uploadSessions": len(store)}
