"""Per-turn dialogue driver for the webhook transport.

Each webhook delivery is one turn. Under the call's lock the controller loads
the session, writes the caller's words to the trace, asks the state machine
what to do, runs any collaborator the step needs, turns the outcome into
TwiML and writes the agent's words to the trace. Whatever goes wrong, the
carrier gets a well-formed TwiML document back.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from deliveryline.post_call import call_duration, record_service_request
from deliveryline.session import CallSession
from deliveryline.states import Step
from deliveryline.transcript import agent_entry, tool_entry, user_entry
from deliveryline.twiml import APOLOGY_TEXT, Dial, Gather, apology_response, hangup_response

logger = logging.getLogger(__name__)

ENTRY_ROUTE = "voice"

GATHER_ROUTES = {
    Step.AWAIT_INTENT: Gather("/webhook/gather", speech_timeout=5, timeout=15),
    Step.AWAIT_ADDRESS: Gather("/webhook/address", speech_timeout=5, timeout=20),
    Step.AWAIT_CONFIRMATION: Gather("/webhook/confirm", speech_timeout=3, timeout=10),
    Step.AWAIT_NAME: Gather("/webhook/name", speech_timeout=5, timeout=15),
}

ROUTE_STEPS = {
    ENTRY_ROUTE: Step.GREETING,
    "gather": Step.AWAIT_INTENT,
    "address": Step.AWAIT_ADDRESS,
    "confirm": Step.AWAIT_CONFIRMATION,
    "name": Step.AWAIT_NAME,
}


class PersistenceError(Exception):
    """The completed request could not be recorded."""


class CallController:
    def __init__(
        self,
        store,
        machine,
        intents,
        addresses,
        responder,
        composer,
        repository,
        live_agent_number: str,
    ):
        self.store = store
        self.machine = machine
        self.intents = intents
        self.addresses = addresses
        self.responder = responder
        self.composer = composer
        self.repository = repository
        self.live_agent_number = live_agent_number

    async def start_call(self, call_id: str, caller_number: str = "", call_status: str = "") -> str:
        """Entry webhook: open the call log and greet the caller."""
        if not call_id:
            logger.warning("Entry webhook without CallSid; hanging up")
            return hangup_response()
        logger.info("[%s] Incoming call from %s (%s)", call_id, caller_number or "unknown", call_status)
        return await self.handle_turn(
            call_id, "", ENTRY_ROUTE,
            caller_number=caller_number, call_status=call_status,
        )

    async def handle_turn(
        self,
        call_id: str,
        speech: str,
        route: str,
        caller_number: str = "",
        call_status: str = "",
    ) -> str:
        if not call_id:
            logger.warning("Webhook /%s without CallSid; hanging up", route)
            return hangup_response()
        speech = (speech or "").strip()

        async with self.store.lock(call_id):
            try:
                return await self._locked_turn(call_id, speech, route, caller_number, call_status)
            except Exception:
                logger.exception("[%s] Unhandled error on /%s", call_id, route)
                apology = apology_response()
                self.store.remove(call_id, apology)
                return apology

    async def _locked_turn(
        self,
        call_id: str,
        speech: str,
        route: str,
        caller_number: str,
        call_status: str,
    ) -> str:
        finished = self.store.finished_response(call_id)
        if finished is not None:
            logger.info("[%s] Delivery to /%s after call finished; replaying", call_id, route)
            return finished or hangup_response()

        turn_key = (route, speech)
        session = self.store.get(call_id)
        if session is not None and session.last_turn_key == turn_key and session.last_response:
            logger.info("[%s] Duplicate delivery to /%s; replaying last response", call_id, route)
            return session.last_response

        route_step = ROUTE_STEPS.get(route, Step.GREETING)
        if session is None:
            if route_step != Step.GREETING:
                logger.warning("[%s] No session for /%s; resuming at %s", call_id, route, route_step.value)
            session = self.store.get_or_create(call_id, caller_number=caller_number, step=route_step)
            await self._open_call_log(session, call_status)
        elif session.step != route_step:
            logger.warning(
                "[%s] Out-of-order delivery: /%s while at %s; replaying last response",
                call_id, route, session.step.value,
            )
            return session.last_response or hangup_response()

        return await self._run_turn(session, speech, turn_key)

    async def _run_turn(self, session: CallSession, speech: str, turn_key: tuple) -> str:
        if speech:
            await self._trace(session, user_entry(speech, session.step.value))

        action = self.machine.process(session, speech)
        if action.call_tool:
            try:
                result = await self._run_tool(session, action.call_tool, speech)
            except PersistenceError:
                return await self._fail_call(session)
            action = self.machine.handle_tool_result(session, action.call_tool, result)

        text = action.speak or await self.responder.render(action.context, speech, action.extra)
        xml = await self.composer.compose(text, self._next_directive(session, action))
        await self._trace(session, agent_entry(text, session.step.value))

        session.last_turn_key = turn_key
        session.last_response = xml
        if session.step.is_terminal:
            await self._finish(session, xml)
        else:
            self.store.put(session.call_id, session)
        return xml

    async def _run_tool(self, session: CallSession, tool: str, speech: str):
        if tool == "resolve_intent":
            result = await self.intents.resolve(speech)
            summary = {
                "intent": result.intent.value,
                "confidence": round(result.confidence, 2),
                "method": result.method,
            }
        elif tool == "check_address":
            result = await self.addresses.evaluate(session.address)
            summary = {
                "address": result.text,
                "complete": result.is_complete,
                "confidence": round(result.confidence, 2),
                "source": result.source,
            }
        elif tool == "record_request":
            try:
                result = await record_service_request(self.repository, session)
            except (SQLAlchemyError, ValueError) as e:
                logger.error("[%s] Failed to record service request: %s", session.call_id, e)
                raise PersistenceError(str(e)) from e
            summary = dict(result)
        else:
            raise ValueError(f"unknown tool {tool!r}")

        await self._trace(session, tool_entry(tool, summary, session.step.value))
        return result

    def _next_directive(self, session: CallSession, action):
        if action.transfer:
            return Dial(self.live_agent_number)
        if action.end_call or session.step.is_terminal:
            return None
        return GATHER_ROUTES.get(session.step)

    async def _open_call_log(self, session: CallSession, call_status: str) -> None:
        try:
            await self.repository.start_call(
                session.call_id, session.caller_number, call_status or "ringing"
            )
        except SQLAlchemyError as e:
            logger.error("[%s] Could not open call log: %s", session.call_id, e)

    async def _trace(self, session: CallSession, entry: dict) -> None:
        try:
            await self.repository.append_turn(session.call_id, entry)
        except SQLAlchemyError as e:
            logger.error("[%s] Trace write failed: %s", session.call_id, e)

    async def _finish(self, session: CallSession, xml: str) -> None:
        logger.info("[%s] Call finished at %s", session.call_id, session.step.value)
        self.store.remove(session.call_id, xml)
        if session.step == Step.FORWARDED:
            await self._set_status(session, "forwarded")

    async def _fail_call(self, session: CallSession) -> str:
        apology = apology_response()
        self.store.remove(session.call_id, apology)
        await self._trace(session, agent_entry(APOLOGY_TEXT, session.step.value))
        await self._set_status(session, "failed")
        return apology

    async def _set_status(self, session: CallSession, status: str) -> None:
        try:
            await self.repository.set_call_status(session.call_id, status, call_duration(session))
        except SQLAlchemyError as e:
            logger.error("[%s] Could not set call status %s: %s", session.call_id, status, e)
