import numpy as np
import pytest

from audioscribe.audio_segments import (
    AudioDecodeError,
    DecodedAudio,
    decode_audio_file,
    decode_wav_bytes,
    downmix_to_mono,
    estimate_segment_bytes,
    segment_durations_for_limit,
    split_into_segments,
)

FOUR_MIB = 4 * 1024 * 1024


def test_decode_mono_wav_at_target_rate(wav_factory):
    path = wav_factory("speech.wav", seconds=2.5, sample_rate=16000)

    decoded = decode_audio_file(path, sample_rate=16000)

    assert decoded.channels == 1
    assert decoded.sample_rate == 16000
    assert decoded.frame_count == 40000
    assert decoded.duration_seconds == pytest.approx(2.5)


def test_split_covers_every_sample_once():
    samples = (np.arange(25_000) % 3000 - 1500).astype("<i2")
    decoded = DecodedAudio(samples, sample_rate=1000)

    segments = split_into_segments(decoded, 10)

    assert [segment.index for segment in segments] == [0, 1, 2]
    assert all(segment.total == 3 for segment in segments)
    assert segments[-1].start_seconds == 20.0
    assert segments[-1].end_seconds == 25.0
    assert segments[0].file_name == "segment_0001.wav"
    assert segments[0].mime_type == "audio/wav"

    rejoined = np.concatenate([decode_wav_bytes(segment.data).samples[:, 0] for segment in segments])
    np.testing.assert_array_equal(rejoined, samples)


def test_segment_size_estimate_matches_encoded_wav():
    decoded = DecodedAudio(np.zeros(3000, dtype="<i2"), sample_rate=1000)
    segment = split_into_segments(decoded, 3)[0]
    assert len(segment.data) == estimate_segment_bytes(3, 1000, 1)


def test_segment_durations_step_down_to_fit_the_request_limit():
    assert segment_durations_for_limit(16000, 1, FOUR_MIB) == [120, 90, 60, 30]
    assert segment_durations_for_limit(16000, 1, 2 * 1024 * 1024) == [60, 30]
    assert segment_durations_for_limit(44100, 2, 8 * 1024 * 1024) == [30]
    assert segment_durations_for_limit(44100, 2, FOUR_MIB) == []


def test_downmix_averages_channels():
    stereo = np.array([[100, 300], [-200, -400]], dtype="<i2")
    mono = downmix_to_mono(DecodedAudio(stereo, sample_rate=8000))
    assert mono.channels == 1
    np.testing.assert_array_equal(mono.samples[:, 0], np.array([200, -300], dtype="<i2"))


def test_undecodable_file_raises(tmp_path, monkeypatch):
    path = tmp_path / "broken.mp3"
    path.write_bytes(b"\x00" * 64)

    def fail_ffmpeg(audio_path, sample_rate):
        raise AudioDecodeError("ffmpeg could not decode broken.mp3")

    monkeypatch.setattr("audioscribe.audio_segments._decode_with_ffmpeg", fail_ffmpeg)
    with pytest.raises(AudioDecodeError):
        decode_audio_file(path)


def test_stereo_wav_is_downmixed_when_ffmpeg_is_unavailable(wav_factory, monkeypatch):
    path = wav_factory("stereo.wav", seconds=1, sample_rate=8000, channels=2)

    def fail_ffmpeg(audio_path, sample_rate):
        raise AudioDecodeError("ffmpeg is not installed")

    monkeypatch.setattr("audioscribe.audio_segments._decode_with_ffmpeg", fail_ffmpeg)
    decoded = decode_audio_file(path, sample_rate=16000)

    assert decoded.channels == 1
    assert decoded.sample_rate == 8000
    assert decoded.frame_count == 8000


def test_truncated_stereo_wav_drops_the_partial_frame(wav_factory, monkeypatch):
    path = wav_factory("cut.wav", seconds=1, sample_rate=8000, channels=2)
    path.write_bytes(path.read_bytes()[:-2])

    def fail_ffmpeg(audio_path, sample_rate):
        raise AudioDecodeError("ffmpeg is not installed")

    monkeypatch.setattr("audioscribe.audio_segments._decode_with_ffmpeg", fail_ffmpeg)
    decoded = decode_audio_file(path, sample_rate=16000)

    assert decoded.channels == 1
    assert decoded.frame_count == 7999


def test_zero_sample_rate_is_rejected(wav_factory, monkeypatch):
    path = wav_factory("zero.wav", seconds=1, sample_rate=8000)
    data = bytearray(path.read_bytes())
    data[24:32] = b"\x00" * 8
    path.write_bytes(bytes(data))

    def fail_ffmpeg(audio_path, sample_rate):
        raise AudioDecodeError("ffmpeg is not installed")

    monkeypatch.setattr("audioscribe.audio_segments._decode_with_ffmpeg", fail_ffmpeg)
    with pytest.raises(AudioDecodeError):
        decode_audio_file(path, sample_rate=16000)
