from dotenv import load_dotenv
import os

load_dotenv()

DEFAULT_MODEL_CANDIDATES = (
    "gemini-2.5-flash",
    "gemini-2.5-pro",
    "gemini-1.5-flash",
    "gemini-1.5-pro",
    "gemini-pro",
)
DEFAULT_PROMPT = (
    "You are an audio processing expert. Transcribe the speech in this audio file to text, "
    "then summarize it in English and in Thai."
)


class Config:
    def __init__(self):
        def env_int(name: str, default: int) -> int:
            raw = (os.getenv(name) or "").strip()
            if not raw:
                return default
            try:
                return int(raw)
            except ValueError:
                return default

        def env_list(name: str, default: tuple) -> list:
            raw = os.getenv(name) or ""
            values = [value.strip() for value in raw.split(",") if value.strip()]
            return values or list(default)

        # GEMINI_API_KEY is the documented name; GOOGLE_API_KEY is accepted as well.
        self.google_api_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        self.model_candidates = env_list("AI_MODEL_CANDIDATES", DEFAULT_MODEL_CANDIDATES)
        self.default_prompt = (os.getenv("DEFAULT_PROMPT") or "").strip() or DEFAULT_PROMPT

        self.max_chunk_size_bytes = env_int("MAX_CHUNK_SIZE_BYTES", 4 * 1024 * 1024)
        self.max_audio_file_size_bytes = env_int("MAX_AUDIO_FILE_SIZE_BYTES", 90 * 1024 * 1024)
        self.max_total_chunks = max(1, env_int("MAX_TOTAL_CHUNKS", 10000))

        # Client-side orchestrator
        self.direct_upload_max_bytes = env_int("DIRECT_UPLOAD_MAX_BYTES", 4 * 1024 * 1024)
        self.upload_chunk_size_bytes = env_int("UPLOAD_CHUNK_SIZE_BYTES", int(3.5 * 1024 * 1024))
        self.segment_concurrency = max(1, env_int("SEGMENT_CONCURRENCY", 3))
        self.segment_sample_rate = env_int("SEGMENT_SAMPLE_RATE", 16000)
        self.client_server_url = (
            os.getenv("CLIENT_SERVER_URL", "http://localhost:8000/api") or "http://localhost:8000/api"
        ).strip().rstrip("/")
        self.client_timeout_seconds = env_int("CLIENT_TIMEOUT_SECONDS", 300)

        self.log_level = (os.getenv("LOG_LEVEL", "INFO") or "INFO").strip().upper()
        self.cors_origins = env_list("CORS_ORIGINS", ("*",))
