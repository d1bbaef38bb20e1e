"""Shared fixtures: environment, a fake Gemini backend and an isolated upload store."""

import io
import os
import wave
from typing import Dict, List, Optional, Union

os.environ["GEMINI_API_KEY"] = "test-key"
os.environ["AI_MODEL_CANDIDATES"] = "model-a,model-b,model-c"
os.environ["LOG_LEVEL"] = "WARNING"

import numpy as np
import pytest
from fastapi.testclient import TestClient
from pydantic_ai import Agent, BinaryContent
from pydantic_ai.messages import ModelMessage, ModelRequest, ModelResponse, TextPart, UserPromptPart
from pydantic_ai.models.function import AgentInfo, FunctionModel

from audioscribe import ai
from audioscribe.main import app
from audioscribe.services.upload_session_service import UploadSessionStore, get_upload_store


class FakeGemini:
    """Stands in for the Google models: per-model text or exception, with a call log."""

    def __init__(self) -> None:
        self.responses: Dict[str, Union[str, Exception]] = {}
        self.default_text = "transcribed text"
        self.fail_prompts_containing: List[str] = []
        self.calls: List[Dict[str, Optional[str]]] = []

    def build_agent(self, model_name: str, api_key: str) -> Agent:
        def respond(messages: List[ModelMessage], info: AgentInfo) -> ModelResponse:
            prompt_text, media_type = self._last_user_prompt(messages)
            self.calls.append({"model": model_name, "prompt": prompt_text, "media_type": media_type})

            for marker in self.fail_prompts_containing:
                if marker in (prompt_text or ""):
                    raise RuntimeError(f"{model_name} refused prompt")
            outcome = self.responses.get(model_name, self.default_text)
            if isinstance(outcome, Exception):
                raise outcome
            return ModelResponse(parts=[TextPart(outcome)])

        return Agent(FunctionModel(respond), output_type=str)

    @staticmethod
    def _last_user_prompt(messages: List[ModelMessage]):
        prompt_text = None
        media_type = None
        for message in messages:
            if not isinstance(message, ModelRequest):
                continue
            for part in message.parts:
                if not isinstance(part, UserPromptPart):
                    continue
                content = part.content if isinstance(part.content, list) else [part.content]
                for item in content:
                    if isinstance(item, BinaryContent):
                        media_type = item.media_type
                    elif isinstance(item, str):
                        prompt_text = item
        return prompt_text, media_type

    def models_called(self) -> List[str]:
        return [str(call["model"]) for call in self.calls]


@pytest.fixture
def fake_gemini(monkeypatch: pytest.MonkeyPatch) -> FakeGemini:
    fake = FakeGemini()
    monkeypatch.setattr(ai, "_build_audio_agent", fake.build_agent)
    return fake


@pytest.fixture
def store() -> UploadSessionStore:
    return UploadSessionStore(max_chunk_size_bytes=4 * 1024 * 1024)


@pytest.fixture
def client(store: UploadSessionStore, fake_gemini: FakeGemini) -> TestClient:
    app.dependency_overrides[get_upload_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_wav_bytes(seconds: float, sample_rate: int = 16000, channels: int = 1) -> bytes:
    """A deterministic 16-bit PCM WAV file."""
    frames = int(seconds * sample_rate)
    samples = (np.arange(frames * channels, dtype=np.int64) % 2000 - 1000).astype("<i2")
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(2)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(samples.tobytes())
    return buffer.getvalue()


@pytest.fixture
def wav_factory(tmp_path):
    def _write(name: str, seconds: float, sample_rate: int = 16000, channels: int = 1):
        path = tmp_path / name
        path.write_bytes(make_wav_bytes(seconds, sample_rate=sample_rate, channels=channels))
        return path

    return _write
