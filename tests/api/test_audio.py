from audioscribe.api.routes import audio as audio_routes


def test_process_file_returns_model_text(client, fake_gemini):
    response = client.post(
        "/api/process-file",
        files={"audio": ("memo.m4a", b"m4a-bytes", "application/octet-stream")},
        data={"prompt": "Summarize the meeting"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Processing complete",
        "result": "transcribed text",
        "model": "model-a",
        "fileName": "memo.m4a",
        "fileSize": len(b"m4a-bytes"),
        "fileType": "audio/mp4",
    }
    assert fake_gemini.calls[0]["media_type"] == "audio/mp4"
    assert fake_gemini.calls[0]["prompt"] == "Summarize the meeting"


def test_process_file_uses_default_prompt(client, fake_gemini):
    client.post("/api/process-file", files={"audio": ("talk.mp3", b"mp3", "audio/mpeg")})
    assert fake_gemini.calls[0]["prompt"] == audio_routes.config.default_prompt


def test_process_file_requires_a_file(client):
    response = client.post("/api/process-file", data={"prompt": "Transcribe"})
    assert response.status_code == 400
    assert response.json()["detail"] == "No audio file uploaded"


def test_process_file_rejects_unsupported_types(client, fake_gemini):
    response = client.post("/api/process-file", files={"audio": ("notes.txt", b"hello", "text/plain")})
    assert response.status_code == 400
    assert "Unsupported file type" in response.json()["detail"]
    assert fake_gemini.calls == []


def test_process_file_rejects_oversize_uploads(client, monkeypatch):
    monkeypatch.setattr(audio_routes.config, "max_audio_file_size_bytes", 1024)
    response = client.post("/api/process-file", files={"audio": ("talk.mp3", b"x" * 2048, "audio/mpeg")})
    assert response.status_code == 413
    assert response.json()["detail"].startswith("File too large!")


def test_process_file_reports_model_exhaustion(client, fake_gemini):
    for name in ("model-a", "model-b", "model-c"):
        fake_gemini.responses[name] = RuntimeError(f"{name} is down")

    response = client.post("/api/process-file", files={"audio": ("talk.mp3", b"mp3", "audio/mpeg")})

    assert response.status_code == 502
    assert response.json()["detail"].endswith("model-c is down")


def test_process_segment_annotates_the_prompt(client, fake_gemini):
    response = client.post(
        "/api/process-segment",
        files={"audio": ("segment_0002.wav", b"RIFFdata", "audio/wav")},
        data={"prompt": "Transcribe", "segmentIndex": "1", "totalSegments": "3"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "text": "transcribed text",
        "model": "model-a",
        "segmentIndex": 1,
        "totalSegments": 3,
    }
    assert "part 2 of 3" in fake_gemini.calls[0]["prompt"]
    assert fake_gemini.calls[0]["media_type"] == "audio/wav"


def test_process_segment_validation(client):
    wav = {"audio": ("segment.wav", b"RIFFdata", "audio/wav")}

    assert client.post("/api/process-segment", data={"prompt": "Transcribe"}).status_code == 400

    response = client.post("/api/process-segment", files=wav, data={"prompt": "  "})
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing prompt"

    response = client.post(
        "/api/process-segment",
        files=wav,
        data={"prompt": "Transcribe", "segmentIndex": "3", "totalSegments": "3"},
    )
    assert response.status_code == 400


def test_process_segment_enforces_request_limit(client, monkeypatch):
    monkeypatch.setattr(audio_routes.config, "max_chunk_size_bytes", 16)
    response = client.post(
        "/api/process-segment",
        files={"audio": ("segment.wav", b"x" * 32, "audio/wav")},
        data={"prompt": "Transcribe"},
    )
    assert response.status_code == 413
