import time
from dataclasses import dataclass, field

from deliveryline.states import Intent, Step


@dataclass
class CallerName:
    first_name: str = "Unknown"
    last_name: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class CallSession:
    call_id: str
    caller_number: str = ""
    step: Step = Step.GREETING

    # From intent resolution
    intent: Intent | None = None
    intent_confidence: float = 0.0
    intent_method: str = ""

    # Address accumulator; merged, never replaced
    address: str | None = None
    address_stalled_turns: int = 0

    # From name collection / completion
    caller_name: CallerName | None = None
    customer_id: int | None = None
    service_request_id: int | None = None

    # Metadata
    turn_count: int = 0
    step_turn_count: int = 0
    created_at: float = field(default_factory=time.monotonic)
    updated_at: float = field(default_factory=time.monotonic)

    # Replay of the last turn for retried deliveries
    last_turn_key: tuple | None = None
    last_response: str = ""

    def touch(self, now: float | None = None) -> None:
        self.updated_at = time.monotonic() if now is None else now
