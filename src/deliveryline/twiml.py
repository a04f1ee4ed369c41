"""Carrier markup (TwiML) for one dialogue turn.

The prompt is played from synthesized audio when available, otherwise spoken
with ``<Say>`` (or left silent when the Say fallback is switched off). After
the prompt comes exactly one of: a speech ``<Gather>`` followed by a hangup
for when it times out, a ``<Dial>`` out to a person, or a plain hangup.
"""

import logging
from dataclasses import dataclass

from twilio.twiml.voice_response import VoiceResponse

logger = logging.getLogger(__name__)

SAY_VOICE = "alice"
APOLOGY_TEXT = "Sorry, an error occurred. Please try again later."


@dataclass(frozen=True)
class Gather:
    action: str
    speech_timeout: int = 3
    timeout: int = 10


@dataclass(frozen=True)
class Dial:
    number: str


def apology_response() -> str:
    """Generic apology and hangup; needs no collaborator, so it cannot fail."""
    response = VoiceResponse()
    response.say(APOLOGY_TEXT, voice=SAY_VOICE)
    response.hangup()
    return str(response)


def hangup_response() -> str:
    response = VoiceResponse()
    response.hangup()
    return str(response)


class ResponseComposer:
    """``synthesizer`` is any object with ``async synthesize(text) -> url | None``."""

    def __init__(self, synthesizer=None, say_fallback: bool = True, voice: str = SAY_VOICE):
        self.synthesizer = synthesizer
        self.say_fallback = say_fallback
        self.voice = voice

    async def _audio_url(self, text: str) -> str | None:
        if self.synthesizer is None or not text:
            return None
        try:
            return await self.synthesizer.synthesize(text)
        except Exception as e:
            logger.warning("Speech synthesis raised: %s", e)
            return None

    def _add_prompt(self, verb, text: str, audio_url: str | None):
        if audio_url:
            verb.play(audio_url)
        elif text and self.say_fallback:
            verb.say(text, voice=self.voice)
        elif text:
            logger.warning("No audio for prompt and Say fallback disabled; turn is silent")

    async def compose(self, text: str, next_action: Gather | Dial | None = None) -> str:
        audio_url = await self._audio_url(text)
        response = VoiceResponse()

        if isinstance(next_action, Gather):
            gather = response.gather(
                input="speech",
                action=next_action.action,
                method="POST",
                speech_timeout=next_action.speech_timeout,
                timeout=next_action.timeout,
            )
            self._add_prompt(gather, text, audio_url)
            response.hangup()
        elif isinstance(next_action, Dial):
            self._add_prompt(response, text, audio_url)
            response.dial(next_action.number)
        else:
            self._add_prompt(response, text, audio_url)
            response.hangup()
        return str(response)
