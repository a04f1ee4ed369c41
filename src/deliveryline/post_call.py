import logging
import time

from deliveryline.address import extract_final_address
from deliveryline.session import CallerName, CallSession

logger = logging.getLogger(__name__)


def call_duration(session: CallSession, now: float | None = None) -> int:
    """Whole seconds since the session was created."""
    now = time.monotonic() if now is None else now
    return max(int(now - session.created_at), 0)


async def record_service_request(repository, session: CallSession) -> dict:
    """Create the customer and pending service request for a finished dialogue.

    Runs once, on the name step. Raises whatever the repository raises; the
    controller turns that into an apology.
    """
    name = session.caller_name or CallerName()
    address = extract_final_address(session.address)
    intent = session.intent.value if session.intent else ""

    customer_id, request_id = await repository.record_completed_call(
        call_sid=session.call_id,
        first_name=name.first_name,
        last_name=name.last_name,
        address=address,
        phone_number=session.caller_number,
        intent=intent,
        duration=call_duration(session),
    )
    logger.info(
        "[%s] Service request %d (%s) for %s at %r",
        session.call_id, request_id, intent, name.full_name, address,
    )
    return {
        "customer_id": customer_id,
        "service_request_id": request_id,
        "address": address,
    }
