"""ElevenLabs speech synthesis for prompt audio.

Each prompt is rendered to an mp3 under the audio directory and played by the
carrier from ``{base_url}/audio/<file>``. Synthesis never raises: any failure
returns None and the composer decides what the caller hears instead.
"""

import asyncio
import logging
import uuid
from pathlib import Path

import httpx

from deliveryline.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

ELEVENLABS_BASE_URL = "https://api.elevenlabs.io/v1"
DEFAULT_VOICE_ID = "EXAVITQu4vr4xnSDxMaL"
PLACEHOLDER_KEYS = {"", "your_elevenlabs_api_key_here"}


class ElevenLabsSynthesizer:
    def __init__(
        self,
        api_key: str,
        audio_dir: str | Path,
        public_base_url: str,
        voice_id: str = DEFAULT_VOICE_ID,
        model_id: str = "eleven_monolingual_v1",
        timeout: float = 4.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key or ""
        self.audio_dir = Path(audio_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self.voice_id = voice_id or DEFAULT_VOICE_ID
        self.model_id = model_id
        self.timeout = timeout
        self._circuit = CircuitBreaker(
            failure_threshold=3,
            cooldown_seconds=60.0,
            label="ElevenLabs TTS",
        )
        self._client = client or httpx.AsyncClient(
            base_url=ELEVENLABS_BASE_URL,
            timeout=self.timeout,
        )

    @property
    def configured(self) -> bool:
        return self.api_key not in PLACEHOLDER_KEYS

    async def close(self):
        await self._client.aclose()

    def _save(self, filename: str, audio: bytes) -> None:
        self.audio_dir.mkdir(parents=True, exist_ok=True)
        (self.audio_dir / filename).write_bytes(audio)

    async def synthesize(self, text: str) -> str | None:
        """Return a public URL for the spoken text, or None if unavailable."""
        if not text or not text.strip():
            return None
        if not self.configured:
            logger.debug("ElevenLabs not configured; no audio for prompt")
            return None
        if not self._circuit.should_try():
            logger.warning("ElevenLabs circuit breaker open; skipping synthesis")
            return None

        try:
            resp = await asyncio.wait_for(
                self._client.post(
                    f"/text-to-speech/{self.voice_id}",
                    headers={
                        "Accept": "audio/mpeg",
                        "Content-Type": "application/json",
                        "xi-api-key": self.api_key,
                    },
                    json={
                        "text": text,
                        "model_id": self.model_id,
                        "voice_settings": {
                            "stability": 0.5,
                            "similarity_boost": 0.5,
                            "style": 0.0,
                            "use_speaker_boost": True,
                        },
                    },
                ),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            audio = resp.content
            if not audio:
                raise ValueError("empty audio body")
            filename = f"speech_{uuid.uuid4().hex}.mp3"
            await asyncio.to_thread(self._save, filename, audio)
        except asyncio.TimeoutError:
            self._circuit.record_failure()
            logger.warning("ElevenLabs timed out after %.1fs", self.timeout)
            return None
        except (httpx.HTTPError, OSError, ValueError) as e:
            self._circuit.record_failure()
            logger.error("ElevenLabs synthesis failed: %s", e)
            return None

        self._circuit.record_success()
        logger.debug("Synthesized %d bytes to %s", len(audio), filename)
        return f"{self.public_base_url}/audio/{filename}"
