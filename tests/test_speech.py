import json
import threading

import httpx
import pytest
import respx

from deliveryline.speech import ELEVENLABS_BASE_URL, ElevenLabsSynthesizer

VOICE_ID = "voice123"
TTS_URL = f"{ELEVENLABS_BASE_URL}/text-to-speech/{VOICE_ID}"


def _synth(tmp_path, api_key="el-key"):
    return ElevenLabsSynthesizer(
        api_key=api_key,
        audio_dir=tmp_path,
        public_base_url="https://example.ngrok.app/",
        voice_id=VOICE_ID,
    )


@pytest.mark.asyncio
async def test_writes_audio_and_returns_public_url(tmp_path):
    with respx.mock:
        route = respx.post(TTS_URL).mock(return_value=httpx.Response(200, content=b"ID3fakeaudio"))
        synth = _synth(tmp_path)
        url = await synth.synthesize("Hello there")

        assert url.startswith("https://example.ngrok.app/audio/speech_")
        assert url.endswith(".mp3")
        filename = url.rsplit("/", 1)[-1]
        assert (tmp_path / filename).read_bytes() == b"ID3fakeaudio"

        req = route.calls[0].request
        assert req.headers["xi-api-key"] == "el-key"
        body = json.loads(req.content)
        assert body["text"] == "Hello there"
        assert body["model_id"] == "eleven_monolingual_v1"


@pytest.mark.asyncio
async def test_audio_file_is_written_off_the_event_loop(tmp_path, monkeypatch):
    writer_threads = []
    synth = _synth(tmp_path)
    original_save = synth._save

    def recording_save(filename, audio):
        writer_threads.append(threading.get_ident())
        original_save(filename, audio)

    monkeypatch.setattr(synth, "_save", recording_save)
    with respx.mock:
        respx.post(TTS_URL).mock(return_value=httpx.Response(200, content=b"ID3fakeaudio"))
        assert await synth.synthesize("Hello there") is not None
    assert writer_threads and writer_threads[0] != threading.get_ident()


@pytest.mark.asyncio
async def test_unwritable_audio_dir_returns_none(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    synth = ElevenLabsSynthesizer(
        api_key="el-key",
        audio_dir=blocker,
        public_base_url="https://example.ngrok.app",
        voice_id=VOICE_ID,
    )
    with respx.mock:
        respx.post(TTS_URL).mock(return_value=httpx.Response(200, content=b"ID3fakeaudio"))
        assert await synth.synthesize("Hello") is None


@pytest.mark.asyncio
async def test_http_error_returns_none(tmp_path):
    with respx.mock:
        respx.post(TTS_URL).mock(return_value=httpx.Response(401))
        assert await _synth(tmp_path).synthesize("Hello") is None


@pytest.mark.asyncio
async def test_empty_body_returns_none(tmp_path):
    with respx.mock:
        respx.post(TTS_URL).mock(return_value=httpx.Response(200, content=b""))
        assert await _synth(tmp_path).synthesize("Hello") is None
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_unconfigured_makes_no_request(tmp_path):
    with respx.mock:
        route = respx.post(TTS_URL).mock(return_value=httpx.Response(200, content=b"x"))
        assert await _synth(tmp_path, api_key="").synthesize("Hello") is None
        assert not route.called


@pytest.mark.asyncio
async def test_blank_text_returns_none(tmp_path):
    assert await _synth(tmp_path).synthesize("   ") is None


@pytest.mark.asyncio
async def test_circuit_opens_after_failures(tmp_path):
    with respx.mock:
        route = respx.post(TTS_URL).mock(return_value=httpx.Response(500))
        synth = _synth(tmp_path)
        for _ in range(4):
            assert await synth.synthesize("Hello") is None
        assert route.call_count == 3
