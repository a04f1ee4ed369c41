import logging

from deliveryline.prompts import fallback_response
from deliveryline.tiers import Tier, first_success

logger = logging.getLogger(__name__)


class ResponseGenerator:
    """Natural-language prompt text for a context tag, with a canned line per tag.

    ``generator`` is any object with
    ``async generate_response(context, user_input, extra) -> str``.
    """

    def __init__(self, generator=None, timeout: float = 4.0):
        self.generator = generator
        self.timeout = timeout

    def _generator_enabled(self) -> bool:
        if self.generator is None:
            return False
        return getattr(self.generator, "configured", True)

    async def render(self, context: str, last_utterance: str = "", extra: dict | None = None) -> str:
        async def _fallback():
            return fallback_response(context, extra)

        result = await first_success(
            [
                Tier(
                    "generator",
                    lambda: self.generator.generate_response(context, last_utterance or "", extra or {}),
                    timeout=self.timeout,
                    enabled=self._generator_enabled(),
                ),
                Tier("fallback", _fallback),
            ],
            accept=lambda text: bool(text and text.strip()),
            label=f"response[{context}]",
        )
        if not result.available:
            return fallback_response(context, extra)
        return result.value
