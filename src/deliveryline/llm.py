import asyncio
import json
import logging

import httpx

from deliveryline.circuit_breaker import CircuitBreaker
from deliveryline.prompts import (
    INTENT_DETECTION_PROMPT,
    PERSONA,
    build_response_prompt,
    clean_generated_text,
)
from deliveryline.tiers import CollaboratorError

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
PLACEHOLDER_KEYS = {"", "your_openai_api_key_here"}


class OpenAIClient:
    """Chat-completions client used as intent classifier and response generator.

    Both operations raise CollaboratorError (or let httpx errors through) on
    failure; callers run them as the first of their fallback tiers. After 3
    consecutive failures the circuit opens and calls fail fast for 60s.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout: float = 4.0,
        base_url: str = OPENAI_BASE_URL,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key or ""
        self.model = model
        self.timeout = timeout
        self._circuit = CircuitBreaker(
            failure_threshold=3,
            cooldown_seconds=60.0,
            label="OpenAI",
        )
        if client is not None:
            self._client = client
        else:
            self._client = httpx.AsyncClient(
                base_url=base_url.rstrip("/"),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )

    @property
    def configured(self) -> bool:
        return self.api_key not in PLACEHOLDER_KEYS

    async def close(self):
        await self._client.aclose()

    async def _chat(
        self,
        messages: list[dict],
        *,
        max_tokens: int,
        temperature: float,
        json_mode: bool = False,
    ) -> str:
        if not self._circuit.should_try():
            raise CollaboratorError("OpenAI circuit breaker open")
        body = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}
        try:
            resp = await asyncio.wait_for(
                self._client.post("/chat/completions", json=body),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            content = resp.json()["choices"][0]["message"]["content"]
        except asyncio.TimeoutError as e:
            self._circuit.record_failure()
            raise CollaboratorError(f"OpenAI timed out after {self.timeout:.1f}s") from e
        except asyncio.CancelledError:
            # The tier deadline fired before ours
            self._circuit.record_failure()
            raise
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            self._circuit.record_failure()
            raise CollaboratorError(f"OpenAI chat completion failed: {e}") from e
        self._circuit.record_success()
        return (content or "").strip()

    async def classify_intent(self, text: str) -> dict:
        content = await self._chat(
            [
                {"role": "system", "content": INTENT_DETECTION_PROMPT},
                {"role": "user", "content": f'Caller: "{text}"'},
            ],
            max_tokens=200,
            temperature=0.1,
            json_mode=True,
        )
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error("Intent classifier returned non-JSON output: %r", content[:200])
            raise CollaboratorError("intent classifier output is not JSON") from e
        logger.debug("Intent classifier output: %s", data)
        return data

    async def generate_response(
        self,
        context: str,
        user_input: str = "",
        extra: dict | None = None,
    ) -> str:
        content = await self._chat(
            [
                {"role": "system", "content": PERSONA},
                {"role": "user", "content": build_response_prompt(context, user_input, extra)},
            ],
            max_tokens=100,
            temperature=0.6,
        )
        text = clean_generated_text(content)
        if not text:
            raise CollaboratorError(f"empty generated response for {context}")
        return text
