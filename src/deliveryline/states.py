from enum import Enum

TERMINAL_STEPS = {"completed", "forwarded"}


class Step(Enum):
    GREETING = "greeting"
    AWAIT_INTENT = "await_intent"
    AWAIT_ADDRESS = "await_address"
    AWAIT_CONFIRMATION = "await_confirmation"
    AWAIT_NAME = "await_name"
    COMPLETED = "completed"
    FORWARDED = "forwarded"

    @property
    def is_terminal(self) -> bool:
        return self.value in TERMINAL_STEPS


class Intent(Enum):
    START = "start"
    MISSED = "missed"
    STOP = "stop"
    LIVE_AGENT = "live_agent"
    UNKNOWN = "unknown"

    @property
    def is_service(self) -> bool:
        """True for the intents that end in a ServiceRequest."""
        return self in (Intent.START, Intent.MISSED, Intent.STOP)

    @classmethod
    def parse(cls, value) -> "Intent | None":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None
