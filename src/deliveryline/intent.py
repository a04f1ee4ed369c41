"""Caller intent resolution.

Two tiers: the configured intent classifier (an LLM) and a deterministic
keyword scorer. The keyword scorer is total; it is what keeps a live call
moving when the classifier is slow, down or talking nonsense.
"""

import logging
import re
from dataclasses import dataclass, field

from deliveryline.states import Intent
from deliveryline.tiers import CollaboratorError, Tier, first_success
from deliveryline.validation import matched_keywords

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.7
MIN_RULE_SCORE = 0.15

# Declaration order breaks ties: first declared wins.
INTENT_KEYWORDS = {
    Intent.START: (
        "start", "begin", "new", "subscribe", "sign up", "get started",
        "want to start", "need to start", "would like to start",
    ),
    Intent.MISSED: (
        "missed", "missing", "didn't get", "didn't receive", "not delivered",
        "haven't received", "where is my", "delivery problem",
    ),
    Intent.STOP: (
        "stop", "cancel", "end", "unsubscribe", "discontinue", "quit",
        "want to stop", "need to cancel", "would like to stop",
    ),
    Intent.LIVE_AGENT: (
        "speak to someone", "talk to person", "human", "representative",
        "agent", "help me", "customer service", "support",
    ),
}

ENTITY_PATTERNS = {
    "phone": re.compile(r"(?:\+?1[-.\s]?)?\(?\b\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b"),
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "number": re.compile(r"\b\d{1,5}\b"),
    "zip_code": re.compile(r"\b\d{5}(?:-\d{4})?\b"),
}


@dataclass
class IntentClassification:
    intent: Intent
    confidence: float
    entities: dict = field(default_factory=dict)
    method: str = ""
    matched_keywords: list = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.intent != Intent.UNKNOWN


def extract_entities(text: str) -> dict:
    """Phone numbers, emails, bare digit runs and zip codes found in text."""
    entities = {}
    for name, pattern in ENTITY_PATTERNS.items():
        values = [m.group(0) for m in pattern.finditer(text or "")]
        if values:
            entities[name] = values
    return entities


def score_intents(text: str) -> dict[Intent, float]:
    """Keyword score per intent: min(matched / total * 2, 1.0)."""
    normalized = (text or "").replace("’", "'")
    return {
        intent: min(len(matched_keywords(normalized, keywords)) / len(keywords) * 2, 1.0)
        for intent, keywords in INTENT_KEYWORDS.items()
    }


def classify_rule_based(text: str) -> IntentClassification:
    normalized = (text or "").replace("’", "'")
    best_intent = None
    best_score = 0.0
    for intent, score in score_intents(normalized).items():
        if score > best_score:
            best_intent, best_score = intent, score

    if best_intent is None or best_score <= MIN_RULE_SCORE:
        return IntentClassification(
            intent=Intent.UNKNOWN,
            confidence=best_score,
            entities=extract_entities(text),
            method="rule_based",
        )
    return IntentClassification(
        intent=best_intent,
        confidence=best_score,
        entities=extract_entities(text),
        method="rule_based",
        matched_keywords=matched_keywords(normalized, INTENT_KEYWORDS[best_intent]),
    )


def _parse_classifier_output(data) -> tuple[Intent, float, dict]:
    if not isinstance(data, dict):
        raise CollaboratorError(f"classifier returned {type(data).__name__}, expected object")
    intent = Intent.parse(data.get("intent"))
    if intent is None:
        raise CollaboratorError(f"classifier returned unknown intent {data.get('intent')!r}")
    try:
        confidence = float(data.get("confidence"))
    except (TypeError, ValueError):
        raise CollaboratorError(f"classifier returned bad confidence {data.get('confidence')!r}")
    if not 0.0 <= confidence <= 1.0:
        raise CollaboratorError(f"classifier confidence {confidence} outside [0, 1]")
    entities = data.get("entities") or {}
    if not isinstance(entities, dict):
        entities = {}
    return intent, confidence, entities


class IntentResolver:
    """``classifier`` is any object with ``async classify_intent(text) -> dict``
    returning ``{intent, confidence, entities}`` and an optional ``configured`` flag.
    """

    def __init__(
        self,
        classifier=None,
        threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        timeout: float = 4.0,
        method: str = "openai",
    ):
        self.classifier = classifier
        self.threshold = threshold
        self.timeout = timeout
        self.method = method

    def _classifier_enabled(self) -> bool:
        if self.classifier is None:
            return False
        return getattr(self.classifier, "configured", True)

    async def resolve(self, transcript: str) -> IntentClassification:
        text = transcript or ""
        entities = extract_entities(text)

        async def _primary():
            raw = await self.classifier.classify_intent(text)
            intent, confidence, extra = _parse_classifier_output(raw)
            merged = dict(entities)
            merged.update({k: v for k, v in extra.items() if v})
            return IntentClassification(
                intent=intent,
                confidence=confidence,
                entities=merged,
                method=self.method,
            )

        async def _rule_based():
            return classify_rule_based(text)

        result = await first_success(
            [
                Tier("classifier", _primary, timeout=self.timeout, enabled=self._classifier_enabled()),
                Tier("rule_based", _rule_based),
            ],
            accept=lambda c: c is not None and (
                c.method == "rule_based" or c.confidence >= self.threshold
            ),
            label="intent",
        )
        classification = result.value
        if classification is None:
            # Only reached if the rule-based tier itself raised
            classification = IntentClassification(Intent.UNKNOWN, 0.0, entities, "none")
        logger.info(
            "Intent %s (%.2f) via %s",
            classification.intent.value, classification.confidence, classification.method,
        )
        return classification
