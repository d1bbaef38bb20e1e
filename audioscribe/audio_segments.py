"""
Decode audio to PCM and cut it into self-contained WAV segments.
"""
from __future__ import annotations

import io
import logging
import math
import subprocess
import wave
from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np

from .upload_limits import PCM_SAMPLE_WIDTH_BYTES, SEGMENT_DURATION_STEPS_SECONDS, WAV_HEADER_BYTES

logger = logging.getLogger(__name__)
SEGMENT_MIME_TYPE = "audio/wav"


class AudioDecodeError(Exception):
    """Raised when an audio file cannot be decoded to PCM."""


class DecodedAudio:
    """16-bit PCM samples shaped (frames, channels)."""

    def __init__(self, samples: np.ndarray, sample_rate: int):
        if samples.ndim == 1:
            samples = samples.reshape(-1, 1)
        self.samples = samples.astype("<i2", copy=False)
        self.sample_rate = int(sample_rate)

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1])

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_seconds(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frame_count / float(self.sample_rate)


class AudioSegment:
    def __init__(self, index: int, total: int, start_seconds: float, end_seconds: float, data: bytes):
        self.index = index
        self.total = total
        self.start_seconds = start_seconds
        self.end_seconds = end_seconds
        self.data = data
        self.mime_type = SEGMENT_MIME_TYPE

    @property
    def file_name(self) -> str:
        return f"segment_{self.index + 1:04d}.wav"


def _is_wav_header(header: bytes) -> bool:
    return len(header) >= 12 and header[:4] == b"RIFF" and header[8:12] == b"WAVE"


def _read_pcm16_wav(source: Union[Path, io.BytesIO]) -> Optional[DecodedAudio]:
    handle = str(source) if isinstance(source, Path) else source
    with wave.open(handle, "rb") as wav_file:
        if wav_file.getsampwidth() != PCM_SAMPLE_WIDTH_BYTES or wav_file.getcomptype() != "NONE":
            return None
        channels = wav_file.getnchannels()
        sample_rate = wav_file.getframerate()
        frames = wav_file.readframes(wav_file.getnframes())
    # Truncated files can end inside a frame.
    frame_bytes = channels * PCM_SAMPLE_WIDTH_BYTES
    frames = frames[: len(frames) - len(frames) % frame_bytes]
    samples = np.frombuffer(frames, dtype="<i2").reshape(-1, channels)
    return DecodedAudio(samples, sample_rate)


def _decode_with_ffmpeg(audio_path: Path, sample_rate: int) -> DecodedAudio:
    cmd = [
        "ffmpeg",
        "-hide_banner",
        "-loglevel",
        "error",
        "-nostdin",
        "-i",
        str(audio_path),
        "-vn",
        "-ac",
        "1",
        "-ar",
        str(sample_rate),
        "-f",
        "s16le",
        "pipe:1",
    ]
    try:
        completed = subprocess.run(cmd, check=True, capture_output=True)
    except FileNotFoundError as exc:
        raise AudioDecodeError("ffmpeg is not installed; only PCM WAV files can be segmented") from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
        raise AudioDecodeError(f"ffmpeg could not decode {audio_path.name}: {stderr or exc}") from exc

    pcm = completed.stdout[: len(completed.stdout) - len(completed.stdout) % PCM_SAMPLE_WIDTH_BYTES]
    return DecodedAudio(np.frombuffer(pcm, dtype="<i2"), sample_rate)


def decode_audio_file(audio_path: Path, sample_rate: int = 16000) -> DecodedAudio:
    """
    Decode an audio file to 16-bit PCM.

    Mono PCM WAV files at ``sample_rate`` are read as-is; anything else goes
    through ffmpeg and comes back as mono at ``sample_rate``. Without ffmpeg,
    other PCM WAV files are kept at their own rate and downmixed to mono.
    """
    audio_path = Path(audio_path)
    with open(audio_path, "rb") as source:
        header = source.read(12)

    wav_audio: Optional[DecodedAudio] = None
    if _is_wav_header(header):
        try:
            wav_audio = _read_pcm16_wav(audio_path)
        except (wave.Error, EOFError, ValueError) as exc:
            logger.warning(f"Failed to read {audio_path.name} as WAV, falling back to ffmpeg: {exc}")

    if wav_audio is not None and wav_audio.channels == 1 and wav_audio.sample_rate == sample_rate:
        decoded = wav_audio
    else:
        try:
            decoded = _decode_with_ffmpeg(audio_path, sample_rate)
        except AudioDecodeError:
            if wav_audio is None:
                raise
            logger.warning(f"ffmpeg unavailable for {audio_path.name}; downmixing WAV without resampling")
            decoded = downmix_to_mono(wav_audio)

    if decoded.sample_rate <= 0:
        raise AudioDecodeError(f"Invalid sample rate in {audio_path.name}: {decoded.sample_rate}")
    if decoded.frame_count == 0:
        raise AudioDecodeError(f"No audio samples decoded from {audio_path.name}")
    logger.info(
        f"Decoded {audio_path.name}: {decoded.duration_seconds:.1f}s, "
        f"{decoded.sample_rate}Hz, {decoded.channels}ch"
    )
    return decoded


def downmix_to_mono(decoded: DecodedAudio) -> DecodedAudio:
    if decoded.channels == 1:
        return decoded
    mono = decoded.samples.astype(np.int32).mean(axis=1).round().astype("<i2")
    return DecodedAudio(mono, decoded.sample_rate)


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Wrap 16-bit PCM samples in a WAV container."""
    if samples.ndim == 1:
        samples = samples.reshape(-1, 1)
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(int(samples.shape[1]))
        wav_file.setsampwidth(PCM_SAMPLE_WIDTH_BYTES)
        wav_file.setframerate(int(sample_rate))
        wav_file.writeframes(samples.astype("<i2", copy=False).tobytes())
    return buffer.getvalue()


def decode_wav_bytes(data: bytes) -> DecodedAudio:
    decoded = _read_pcm16_wav(io.BytesIO(data))
    if decoded is None:
        raise AudioDecodeError("WAV payload is not 16-bit PCM")
    return decoded


def estimate_segment_bytes(segment_seconds: float, sample_rate: int, channels: int) -> int:
    frames = int(math.ceil(segment_seconds * sample_rate))
    return WAV_HEADER_BYTES + frames * channels * PCM_SAMPLE_WIDTH_BYTES


def segment_durations_for_limit(
    sample_rate: int,
    channels: int,
    max_segment_bytes: int,
    steps: Sequence[int] = SEGMENT_DURATION_STEPS_SECONDS,
) -> List[int]:
    """Return the duration step-downs whose encoded segments fit in one request."""
    return [
        seconds
        for seconds in steps
        if estimate_segment_bytes(seconds, sample_rate, channels) <= max_segment_bytes
    ]


def split_into_segments(decoded: DecodedAudio, segment_seconds: float) -> List[AudioSegment]:
    """Slice decoded audio by time and package every slice as its own WAV file."""
    frames_per_segment = max(1, int(round(segment_seconds * decoded.sample_rate)))
    total = int(math.ceil(decoded.frame_count / frames_per_segment))

    segments: List[AudioSegment] = []
    for index in range(total):
        start_frame = index * frames_per_segment
        end_frame = min(decoded.frame_count, start_frame + frames_per_segment)
        segments.append(
            AudioSegment(
                index=index,
                total=total,
                start_seconds=start_frame / decoded.sample_rate,
                end_seconds=end_frame / decoded.sample_rate,
                data=encode_wav(decoded.samples[start_frame:end_frame], decoded.sample_rate),
            )
        )
    return segments
