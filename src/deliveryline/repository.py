"""Persistence for calls: the conversation trace and the completed request.

The trace is an append-only JSON list on the call's ``call_logs`` row. Every
write reads the current list and stores a new list with the entry appended;
turns for one call are serialised by the session store's per-call lock, so
no entry is ever lost or reordered.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from deliveryline.database import Database
from deliveryline.models import SERVICE_INTENTS, CallLog, Customer, ServiceRequest

logger = logging.getLogger(__name__)


class CallRepository:
    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    async def _find_log(session: AsyncSession, call_sid: str) -> CallLog | None:
        result = await session.execute(select(CallLog).where(CallLog.call_sid == call_sid))
        return result.scalar_one_or_none()

    async def start_call(self, call_sid: str, phone_number: str = "", call_status: str = "ringing") -> CallLog:
        """Create the call's log row; a repeated start keeps the existing row."""
        async with self.db.session() as session:
            log = await self._find_log(session, call_sid)
            if log is None:
                log = CallLog(
                    call_sid=call_sid,
                    phone_number=phone_number or "",
                    call_status=call_status or "ringing",
                    conversation_log=[],
                )
                session.add(log)
                logger.info("[%s] Call log created (%s)", call_sid, log.call_status)
            return log

    async def append_turn(self, call_sid: str, entry: dict) -> None:
        async with self.db.session() as session:
            log = await self._find_log(session, call_sid)
            if log is None:
                logger.warning("[%s] No call log yet; creating one for the trace", call_sid)
                session.add(CallLog(
                    call_sid=call_sid,
                    phone_number="",
                    call_status="in-progress",
                    conversation_log=[entry],
                ))
                return
            log.conversation_log = [*(log.conversation_log or []), entry]

    async def set_call_status(self, call_sid: str, status: str, duration: int | None = None) -> None:
        async with self.db.session() as session:
            log = await self._find_log(session, call_sid)
            if log is None:
                logger.warning("[%s] Cannot set status %s: no call log", call_sid, status)
                return
            log.call_status = status
            if duration is not None:
                log.duration = duration

    async def record_completed_call(
        self,
        call_sid: str,
        first_name: str,
        last_name: str,
        address: str,
        phone_number: str,
        intent: str,
        duration: int | None = None,
    ) -> tuple[int, int]:
        """Create the customer and its pending request and close the call log.

        All in one transaction. Returns (customer_id, service_request_id).
        """
        if intent not in SERVICE_INTENTS:
            raise ValueError(f"cannot record a service request for intent {intent!r}")

        async with self.db.session() as session:
            customer = Customer(
                first_name=first_name,
                last_name=last_name or "",
                address=address,
                phone_number=phone_number or None,
            )
            session.add(customer)
            await session.flush()

            request = ServiceRequest(customer_id=customer.id, intent=intent, status="pending")
            session.add(request)

            log = await self._find_log(session, call_sid)
            if log is None:
                log = CallLog(
                    call_sid=call_sid,
                    phone_number=phone_number or "",
                    call_status="completed",
                    conversation_log=[],
                )
                session.add(log)
            log.customer_id = customer.id
            log.call_status = "completed"
            if duration is not None:
                log.duration = duration
            await session.flush()

            logger.info(
                "[%s] Recorded %s request %d for customer %d",
                call_sid, intent, request.id, customer.id,
            )
            return customer.id, request.id

    async def list_customers(self) -> list[Customer]:
        async with self.db.session() as session:
            result = await session.execute(select(Customer).order_by(Customer.id.desc()))
            return list(result.scalars().all())

    async def list_service_requests(self) -> list[ServiceRequest]:
        async with self.db.session() as session:
            result = await session.execute(select(ServiceRequest).order_by(ServiceRequest.id.desc()))
            return list(result.scalars().all())

    async def list_call_logs(self) -> list[CallLog]:
        async with self.db.session() as session:
            result = await session.execute(select(CallLog).order_by(CallLog.id.desc()))
            return list(result.scalars().all())

    async def get_call_log(self, call_sid: str) -> CallLog | None:
        async with self.db.session() as session:
            return await self._find_log(session, call_sid)

    async def latest_call_log(self) -> CallLog | None:
        async with self.db.session() as session:
            result = await session.execute(select(CallLog).order_by(CallLog.id.desc()).limit(1))
            return result.scalar_one_or_none()

    async def counts(self) -> dict:
        async with self.db.session() as session:
            calls = await session.scalar(select(func.count()).select_from(CallLog))
            customers = await session.scalar(select(func.count()).select_from(Customer))
            requests = await session.scalar(select(func.count()).select_from(ServiceRequest))
        return {
            "totalCalls": calls or 0,
            "totalCustomers": customers or 0,
            "totalRequests": requests or 0,
        }
