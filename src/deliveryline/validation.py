import re
from dataclasses import dataclass

from deliveryline.session import CallerName


# A keyword may carry a verb ending: stop -> stopped, cancel -> cancelled, start -> starting
INFLECTION_SUFFIX = r"(?:ed|d|ing|es|[a-z](?:ed|ing))?"


def match_any_keyword(text: str, keywords) -> bool:
    """Check if any keyword appears in text as a word or an inflected word (not a substring)."""
    return bool(matched_keywords(text, keywords))


def matched_keywords(text: str, keywords) -> list[str]:
    """Keywords (in the given order) that appear in text as words/phrases or their inflections."""
    lower = (text or "").lower()
    return [
        kw for kw in keywords
        if re.search(rf"\b{re.escape(kw)}{INFLECTION_SUFFIX}\b", lower)
    ]


AFFIRMATIVE_KEYWORDS = (
    "yes", "yeah", "correct", "right", "alright", "that's", "sure", "okay", "ok",
)

# Callers who start explaining their problem again at the confirmation prompt
# are treated as having accepted the address.
INTENT_EXPLANATION_KEYWORDS = (
    "didn't get", "didn't receive", "missed", "delivery", "start", "stop", "cancel",
)


@dataclass(frozen=True)
class ConfirmationSignal:
    affirmative: bool
    intent_explanation: bool
    strict: bool = False

    @property
    def confirmed(self) -> bool:
        if self.strict:
            return self.affirmative
        return self.affirmative or self.intent_explanation

    def __bool__(self) -> bool:
        return self.confirmed


def _normalize_apostrophes(text: str) -> str:
    return (text or "").replace("’", "'")


def detect_confirmation(text: str, strict: bool = False) -> ConfirmationSignal:
    normalized = _normalize_apostrophes(text)
    return ConfirmationSignal(
        affirmative=match_any_keyword(normalized, AFFIRMATIVE_KEYWORDS),
        intent_explanation=match_any_keyword(normalized, INTENT_EXPLANATION_KEYWORDS),
        strict=strict,
    )


_FIRST_NAME_RE = re.compile(
    r"first name is\s+(.+?)(?=\s*(?:[.,;]|\band\b|\b(?:my\s+)?last name is\b|$))",
    re.IGNORECASE,
)
_LAST_NAME_RE = re.compile(r"last name is\s+([^.,;]+)", re.IGNORECASE)

UNKNOWN_FIRST_NAME = "Unknown"


def _clean_name_part(value: str) -> str:
    return value.strip().strip(".,;!?").strip()


def parse_caller_name(utterance: str | None) -> CallerName:
    """Turn a spoken name into first/last name.

    Prefers "my first name is X. my last name is Y."; otherwise the first
    token is the first name and the rest is the last name.
    """
    text = (utterance or "").strip()

    first_match = _FIRST_NAME_RE.search(text)
    if first_match and _clean_name_part(first_match.group(1)):
        last_match = _LAST_NAME_RE.search(text)
        return CallerName(
            first_name=_clean_name_part(first_match.group(1)),
            last_name=_clean_name_part(last_match.group(1)) if last_match else "",
        )

    parts = [_clean_name_part(p) for p in text.split()]
    parts = [p for p in parts if p]
    if not parts:
        return CallerName(first_name=UNKNOWN_FIRST_NAME, last_name="")
    return CallerName(first_name=parts[0], last_name=" ".join(parts[1:]))
