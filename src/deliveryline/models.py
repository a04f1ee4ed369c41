"""ORM models: customers, their service requests, and per-call logs."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

SERVICE_INTENTS = ("start", "missed", "stop")
REQUEST_STATUSES = ("pending", "processed", "completed")


class Base(DeclarativeBase):
    pass


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    service_requests: Mapped[list["ServiceRequest"]] = relationship(
        back_populates="customer", lazy="selectin", order_by="ServiceRequest.id"
    )
    call_logs: Mapped[list["CallLog"]] = relationship(
        back_populates="customer", lazy="selectin", order_by="CallLog.id"
    )

    def as_dict(self, include_related: bool = False) -> dict:
        data = {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "address": self.address,
            "phoneNumber": self.phone_number,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if include_related:
            data["serviceRequests"] = [r.as_dict() for r in self.service_requests]
            data["callLogs"] = [c.as_dict() for c in self.call_logs]
        return data


class ServiceRequest(Base):
    __tablename__ = "service_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), nullable=False, index=True)
    intent: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    customer: Mapped[Customer] = relationship(back_populates="service_requests", lazy="selectin")

    def as_dict(self, include_customer: bool = False) -> dict:
        data = {
            "id": self.id,
            "customerId": self.customer_id,
            "intent": self.intent,
            "status": self.status,
            "notes": self.notes,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if include_customer:
            data["customer"] = self.customer.as_dict() if self.customer else None
        return data


class CallLog(Base):
    __tablename__ = "call_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    call_sid: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    customer_id: Mapped[int | None] = mapped_column(ForeignKey("customers.id"), nullable=True)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    call_status: Mapped[str] = mapped_column(String(20), nullable=False)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Append-only list of {role, content, timestamp, step}
    conversation_log: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    customer: Mapped[Customer | None] = relationship(back_populates="call_logs", lazy="selectin")

    def as_dict(self, include_customer: bool = False) -> dict:
        data = {
            "id": self.id,
            "callSid": self.call_sid,
            "customerId": self.customer_id,
            "phoneNumber": self.phone_number,
            "callStatus": self.call_status,
            "duration": self.duration,
            "conversationLog": list(self.conversation_log or []),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if include_customer:
            customer = self.customer
            data["customer"] = None
            if customer is not None:
                data["customer"] = customer.as_dict()
                data["customer"]["serviceRequests"] = [
                    r.as_dict() for r in customer.service_requests
                ]
        return data
