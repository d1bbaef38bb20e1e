"""
Gemini audio generation with an ordered model fallback list.
"""

from typing import List, Dict, Any, Optional, Sequence
import logging

from pydantic_ai import Agent, BinaryContent
from pydantic import BaseModel, Field

from .config import Config

logger = logging.getLogger(__name__)
config = Config()
ERROR_PREVIEW_CHARS = 200
PROBE_PROMPT = "test"


class ModelInvocationError(Exception):
    """Raised when no candidate model produced text."""

    def __init__(self, message: str, status_code: int = 502, attempts: Optional[List["ModelAttempt"]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts or []


class ModelAttempt(BaseModel):
    model: str
    success: bool
    error: Optional[str] = None


class AudioGenerationResult(BaseModel):
    """Text produced for an audio payload and the model that produced it."""
    text: str
    model: str = Field(description="Model name that returned the text")
    attempts: List[ModelAttempt] = Field(default_factory=list)


def resolve_model_candidates(models: Optional[Sequence[str]] = None) -> List[str]:
    source = models if models is not None else config.model_candidates
    resolved: List[str] = []
    for name in source:
        normalized = str(name or "").strip()
        if normalized and normalized not in resolved:
            resolved.append(normalized)
    return resolved


def _resolve_api_key(api_key: Optional[str]) -> str:
    resolved_key = (api_key or "").strip() or str(config.google_api_key or "").strip()
    if not resolved_key:
        raise ModelInvocationError("Google API key is not configured (set GEMINI_API_KEY)", status_code=500)
    return resolved_key


def _build_audio_agent(model_name: str, api_key: str) -> Agent:
    from pydantic_ai.models.google import GoogleModel
    from pydantic_ai.providers.google import GoogleProvider

    provider = GoogleProvider(api_key=api_key)
    model = GoogleModel(model_name, provider=provider)
    return Agent(model=model, output_type=str)


async def _run_audio_prompt(agent: Agent, audio_bytes: bytes, mime_type: str, prompt: str) -> str:
    result = await agent.run([BinaryContent(data=audio_bytes, media_type=mime_type), prompt])
    if result.output is None:
        raise RuntimeError("Response is empty")
    return result.output


def build_segment_prompt(prompt: str, segment_index: int, total_segments: int) -> str:
    if total_segments <= 1:
        return prompt
    return (
        f"{prompt}\n\n"
        f"Note: this is part {segment_index + 1} of {total_segments} of the audio file. "
        "Transcribe this part only."
    )


async def generate_text_from_audio(
    audio_bytes: bytes,
    mime_type: str,
    prompt: str,
    models: Optional[Sequence[str]] = None,
    api_key: Optional[str] = None,
) -> AudioGenerationResult:
    """
    Send an audio payload and prompt to each candidate model in order.

    The first model that returns non-empty text wins. Empty responses count as
    failures. When every candidate fails, ModelInvocationError carries the last
    error message and the per-model attempts.
    """
    resolved_key = _resolve_api_key(api_key)
    candidates = resolve_model_candidates(models)
    if not candidates:
        raise ModelInvocationError("No candidate models are configured", status_code=500)

    attempts: List[ModelAttempt] = []
    last_error: Optional[Exception] = None

    for model_name in candidates:
        try:
            logger.info(f"Trying model: {model_name}")
            agent = _build_audio_agent(model_name, resolved_key)
            text = await _run_audio_prompt(agent, audio_bytes, mime_type, prompt)
            if not text.strip():
                raise ValueError("Response text is empty")
        except Exception as exc:
            last_error = exc
            message = str(exc) or type(exc).__name__
            logger.warning(f"Model {model_name} failed: {message[:ERROR_PREVIEW_CHARS]}")
            attempts.append(ModelAttempt(model=model_name, success=False, error=message))
            continue

        attempts.append(ModelAttempt(model=model_name, success=True))
        logger.info(f"Success with model: {model_name}, text length: {len(text)}")
        return AudioGenerationResult(text=text, model=model_name, attempts=attempts)

    error_message = (str(last_error) or type(last_error).__name__) if last_error else "Unknown error"
    logger.error(f"All models failed or returned empty responses. Last error: {error_message}")
    raise ModelInvocationError(
        f"Unable to process audio with any configured model. Error: {error_message}",
        attempts=attempts,
    )


async def probe_models(
    models: Optional[Sequence[str]] = None,
    api_key: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Best-effort availability check: send a short text prompt to each candidate."""
    resolved_key = _resolve_api_key(api_key)
    results: List[Dict[str, Any]] = []
    for model_name in resolve_model_candidates(models):
        try:
            agent = _build_audio_agent(model_name, resolved_key)
            await agent.run(PROBE_PROMPT)
            results.append({"model": model_name, "status": "available"})
        except Exception as exc:
            results.append({"model": model_name, "status": "unavailable", "error": str(exc)})
    return results
