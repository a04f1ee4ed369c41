"""Multi-turn address accumulation and completeness checks.

Callers rarely give a full address in one breath. Each turn's fragment is
merged into the session's accumulator, and the accumulated text is checked
for completeness: first by the external address validator, then, if that is
unavailable, by the local structural heuristic below.
"""

import logging
import re
from dataclasses import dataclass, field

from deliveryline.tiers import PRIMARY, Tier, first_success

logger = logging.getLogger(__name__)

MIN_VALIDATOR_CONFIDENCE = 0.5
ADDRESS_NOT_PROVIDED = "Address not provided"

STREET_TYPES = (
    "street", "st", "avenue", "ave", "road", "rd", "drive", "dr", "lane", "ln",
    "court", "ct", "boulevard", "blvd", "place", "pl", "parkway", "pkwy",
    "circle", "cir", "terrace", "ter", "way", "wy", "trail", "trl",
    "highway", "hwy",
)

US_STATE_NAMES = (
    "alabama", "alaska", "arizona", "arkansas", "california", "colorado",
    "connecticut", "delaware", "florida", "georgia", "hawaii", "idaho",
    "illinois", "indiana", "iowa", "kansas", "kentucky", "louisiana", "maine",
    "maryland", "massachusetts", "michigan", "minnesota", "mississippi",
    "missouri", "montana", "nebraska", "nevada", "new hampshire", "new jersey",
    "new mexico", "new york", "north carolina", "north dakota", "ohio",
    "oklahoma", "oregon", "pennsylvania", "rhode island", "south carolina",
    "south dakota", "tennessee", "texas", "utah", "vermont", "virginia",
    "washington", "west virginia", "wisconsin", "wyoming",
)

US_STATE_CODES = (
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "DC", "FL", "GA", "HI",
    "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD", "MA", "MI", "MN",
    "MS", "MO", "MT", "NE", "NV", "NH", "NJ", "NM", "NY", "NC", "ND", "OH",
    "OK", "OR", "PA", "RI", "SC", "SD", "TN", "TX", "UT", "VT", "VA", "WA",
    "WV", "WI", "WY",
)

_DIGIT_RE = re.compile(r"\d")
_STREET_TYPE_RE = re.compile(
    r"\b(?:" + "|".join(STREET_TYPES) + r")\b\.?", re.IGNORECASE
)
_CITY_SEGMENT_RE = re.compile(r",\s*[A-Za-z][A-Za-z ]*")
_STATE_NAME_RE = re.compile(
    r"\b(?:" + "|".join(US_STATE_NAMES) + r")\b", re.IGNORECASE
)
# Upper-case only: lower-case "in", "or", "me" are ordinary words
_STATE_CODE_RE = re.compile(r"\b(?:" + "|".join(US_STATE_CODES) + r")\b")
_ZIP_RE = re.compile(r"\b\d{4,5}(?:-\d{4})?\b")
_FIVE_DIGIT_RE = re.compile(r"\d{5}")


@dataclass(frozen=True)
class AddressValidation:
    """What an address validator (remote or local) said about a candidate."""

    is_valid: bool
    confidence: float
    components: dict = field(default_factory=dict)
    standardized: str | None = None
    source: str = ""


@dataclass(frozen=True)
class AddressCandidate:
    text: str
    is_complete: bool
    confidence: float
    source: str = ""


def merge_address(previous: str | None, fragment: str | None) -> str | None:
    """Merge a new address fragment into what has been collected so far."""
    fragment = (fragment or "").strip()
    if not previous:
        return fragment or previous
    if not fragment:
        return previous
    if fragment in previous:
        return previous
    if previous in fragment:
        return fragment
    return previous.strip() + ", " + fragment


def has_street_number(text: str) -> bool:
    return bool(_DIGIT_RE.search(text or ""))


def has_street_type(text: str) -> bool:
    return bool(_STREET_TYPE_RE.search(text or ""))


def has_city_state(text: str) -> bool:
    text = text or ""
    return bool(
        _CITY_SEGMENT_RE.search(text)
        or _STATE_NAME_RE.search(text)
        or _STATE_CODE_RE.search(text)
    )


def has_zip(text: str) -> bool:
    return bool(_ZIP_RE.search(text or ""))


def basic_address_validation(text: str | None) -> AddressValidation:
    """Structural check used when no address validator is reachable."""
    if not text or not text.strip():
        return AddressValidation(is_valid=False, confidence=0.0, source="basic")

    checks = {
        "has_number": has_street_number(text),
        "has_street": has_street_type(text),
        "has_city_state": has_city_state(text),
        "has_zip": has_zip(text),
    }
    is_valid = all(checks.values())
    return AddressValidation(
        is_valid=is_valid,
        confidence=0.3 if is_valid else 0.1,
        components=checks,
        standardized=text.strip() if is_valid else None,
        source="basic",
    )


def extract_final_address(accumulated: str | None) -> str:
    """Pick the address to record from an accumulator of several attempts.

    The first comma-separated segment with a number, a street type and a
    5-digit zip wins; otherwise the last segment.
    """
    if not accumulated or not accumulated.strip():
        return ADDRESS_NOT_PROVIDED
    segments = [part.strip() for part in accumulated.split(",") if part.strip()]
    if not segments:
        return ADDRESS_NOT_PROVIDED
    for segment in segments:
        if (
            has_street_number(segment)
            and has_street_type(segment)
            and _FIVE_DIGIT_RE.search(segment)
        ):
            return segment
    return segments[-1]


class AddressAccumulator:
    """Merges fragments and decides whether the accumulated address is complete.

    ``validator`` is any object with ``async validate(text) -> AddressValidation``
    and an optional ``configured`` flag; it may raise or time out.
    """

    def __init__(self, validator=None, timeout: float = 4.0):
        self.validator = validator
        self.timeout = timeout

    @staticmethod
    def merge(previous: str | None, fragment: str | None) -> str | None:
        return merge_address(previous, fragment)

    def _validator_enabled(self) -> bool:
        if self.validator is None:
            return False
        return getattr(self.validator, "configured", True)

    async def evaluate(self, text: str | None) -> AddressCandidate:
        if not text or not text.strip():
            return AddressCandidate(text=text or "", is_complete=False, confidence=0.0)

        async def _basic():
            return basic_address_validation(text)

        result = await first_success(
            [
                Tier(
                    "address_validator",
                    lambda: self.validator.validate(text),
                    timeout=self.timeout,
                    enabled=self._validator_enabled(),
                ),
                Tier("basic", _basic),
            ],
            label="address",
        )
        validation = result.value
        if result.kind == PRIMARY:
            complete = validation.is_valid and validation.confidence >= MIN_VALIDATOR_CONFIDENCE
        else:
            complete = validation.is_valid
        logger.info(
            "Address completeness via %s: complete=%s confidence=%.2f",
            result.source, complete, validation.confidence,
        )
        return AddressCandidate(
            text=text,
            is_complete=complete,
            confidence=validation.confidence,
            source=result.source,
        )

    async def is_complete(self, text: str | None) -> bool:
        candidate = await self.evaluate(text)
        return candidate.is_complete
