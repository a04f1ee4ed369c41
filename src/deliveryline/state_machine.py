import logging
from dataclasses import dataclass, field

from deliveryline.address import merge_address
from deliveryline.prompts import describe_intent, fallback_response
from deliveryline.session import CallSession
from deliveryline.states import Intent, Step
from deliveryline.validation import detect_confirmation, parse_caller_name

logger = logging.getLogger(__name__)

MAX_TURNS_PER_STEP = 5
MAX_TURNS_PER_CALL = 20
MAX_STALLED_ADDRESS_TURNS = 2


@dataclass
class Action:
    """What the controller should do after one turn.

    ``speak`` is a fixed line; otherwise ``context`` (plus ``extra``) is handed
    to the response generator. ``call_tool`` asks the controller to run a
    collaborator and feed the result to ``handle_tool_result``.
    """

    context: str = ""
    speak: str = ""
    extra: dict = field(default_factory=dict)
    call_tool: str = ""
    collect: bool = False
    transfer: bool = False
    end_call: bool = False


TRANSITIONS = {
    Step.GREETING: {Step.AWAIT_INTENT, Step.FORWARDED},
    Step.AWAIT_INTENT: {Step.AWAIT_ADDRESS, Step.FORWARDED},
    Step.AWAIT_ADDRESS: {Step.AWAIT_CONFIRMATION, Step.FORWARDED},
    Step.AWAIT_CONFIRMATION: {Step.AWAIT_NAME, Step.AWAIT_ADDRESS, Step.FORWARDED},
    Step.AWAIT_NAME: {Step.COMPLETED, Step.FORWARDED},
    Step.COMPLETED: set(),
    Step.FORWARDED: set(),
}

TURN_LIMIT_SCRIPT = (
    "I'm sorry this is taking a while. "
    "Let me connect you to a representative who can help."
)


def _transition(session: CallSession, new_step: Step):
    """Helper to change step and reset the per-step turn counter."""
    if new_step not in TRANSITIONS.get(session.step, set()):
        logger.error(
            "[%s] Unexpected transition %s -> %s",
            session.call_id, session.step.value, new_step.value,
        )
    logger.info("[%s] %s -> %s", session.call_id, session.step.value, new_step.value)
    session.step = new_step
    session.step_turn_count = 0


class StateMachine:
    def __init__(self, strict_confirmation: bool = False):
        self.strict_confirmation = strict_confirmation

    def process(self, session: CallSession, user_text: str) -> Action:
        session.turn_count += 1
        session.step_turn_count += 1

        if session.step.is_terminal:
            return Action(end_call=True)

        if session.turn_count > MAX_TURNS_PER_CALL:
            logger.warning("[%s] Per-call turn limit exceeded; forwarding", session.call_id)
            return self._forward(session, TURN_LIMIT_SCRIPT)

        if session.step_turn_count > MAX_TURNS_PER_STEP:
            logger.warning(
                "[%s] Per-step turn limit exceeded in %s; forwarding",
                session.call_id, session.step.value,
            )
            return self._forward(session, TURN_LIMIT_SCRIPT)

        handler = getattr(self, f"_handle_{session.step.value}", None)
        if handler:
            return handler(session, user_text or "")
        return Action(end_call=True)

    def handle_tool_result(self, session: CallSession, tool: str, result) -> Action:
        handler = getattr(self, f"_tool_result_{tool}", None)
        if handler:
            return handler(session, result)
        logger.error("[%s] No result handler for tool %s", session.call_id, tool)
        return Action(context="error_recovery", collect=True)

    def _forward(self, session: CallSession, speak: str = "", context: str = "") -> Action:
        _transition(session, Step.FORWARDED)
        if not speak and not context:
            speak = fallback_response("transfer")
        return Action(speak=speak, context=context, transfer=True)

    # ── Step handlers ──

    def _handle_greeting(self, session: CallSession, text: str) -> Action:
        _transition(session, Step.AWAIT_INTENT)
        return Action(context="greeting", collect=True)

    def _handle_await_intent(self, session: CallSession, text: str) -> Action:
        return Action(call_tool="resolve_intent")

    def _handle_await_address(self, session: CallSession, text: str) -> Action:
        merged = merge_address(session.address, text)
        if merged == session.address:
            session.address_stalled_turns += 1
            if session.address_stalled_turns >= MAX_STALLED_ADDRESS_TURNS:
                logger.warning(
                    "[%s] No new address information for %d turns; forwarding",
                    session.call_id, session.address_stalled_turns,
                )
                return self._forward(session)
        else:
            session.address = merged
            session.address_stalled_turns = 0

        if not session.address:
            return Action(context="address_request", collect=True)
        return Action(call_tool="check_address")

    def _handle_await_confirmation(self, session: CallSession, text: str) -> Action:
        signal = detect_confirmation(text, strict=self.strict_confirmation)
        if signal.confirmed:
            if not signal.affirmative:
                logger.info("[%s] Intent re-explanation taken as confirmation", session.call_id)
            _transition(session, Step.AWAIT_NAME)
            return Action(context="name_request", collect=True)

        _transition(session, Step.AWAIT_ADDRESS)
        session.address_stalled_turns = 0
        return Action(context="address_request", collect=True)

    def _handle_await_name(self, session: CallSession, text: str) -> Action:
        session.caller_name = parse_caller_name(text)
        if session.intent is None or not session.intent.is_service:
            # Session was rebuilt mid-call and never heard the request
            logger.warning("[%s] Name collected without a service intent; forwarding", session.call_id)
            return self._forward(session)
        return Action(call_tool="record_request")

    # ── Tool result handlers ──

    def _tool_result_resolve_intent(self, session: CallSession, result) -> Action:
        session.intent = result.intent
        session.intent_confidence = result.confidence
        session.intent_method = result.method

        if result.intent == Intent.LIVE_AGENT:
            return self._forward(session)
        if not result.intent.is_service:
            return self._forward(session, context="intent_clarification")

        _transition(session, Step.AWAIT_ADDRESS)
        return Action(
            context="address_request",
            extra={"intent": describe_intent(result.intent)},
            collect=True,
        )

    def _tool_result_check_address(self, session: CallSession, result) -> Action:
        if result.is_complete:
            _transition(session, Step.AWAIT_CONFIRMATION)
            return Action(
                context="address_confirmation",
                extra={"address": session.address},
                collect=True,
            )
        return Action(context="address_request", collect=True)

    def _tool_result_record_request(self, session: CallSession, result: dict) -> Action:
        session.customer_id = result.get("customer_id")
        session.service_request_id = result.get("service_request_id")
        _transition(session, Step.COMPLETED)
        name = session.caller_name
        return Action(
            context="completion",
            extra={
                "first_name": name.first_name if name else "",
                "intent": describe_intent(session.intent),
                "address": result.get("address", ""),
            },
            end_call=True,
        )
