from __future__ import annotations
from datetime import date, datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, Float, Date, DateTime, ForeignKey, func

from aftersales.constants.enums import RequestStatus, Priority
from .users import Base


class ServiceRequest(Base):
    """After-sales service ticket.

    Lifecycle timestamps are written once, on first entry into the matching status,
    and only through the status guard.
    """
    __tablename__ = 'requests'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    customer_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    product_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    department_id: Mapped[int] = mapped_column(ForeignKey('departments.id'), nullable=False, index=True)
    received_by_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False, index=True)
    assigned_technician_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True, index=True)
    issue_description: Mapped[str] = mapped_column(Text, nullable=False)
    serial_number: Mapped[Optional[str]] = mapped_column(String(64))
    purchase_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    execution_method: Mapped[str] = mapped_column(String(16), nullable=False)
    warranty_status: Mapped[str] = mapped_column(String(24), nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=Priority.NORMAL.value)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=RequestStatus.NEW.value, index=True)
    sla_due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    is_overdue: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    final_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_satisfaction: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    activities = relationship('RequestActivity', back_populates='request', order_by='RequestActivity.id.desc()')
    costs = relationship('RequestCost', back_populates='request', order_by='RequestCost.id.desc()')
    parts = relationship('RequestPart', back_populates='request', order_by='RequestPart.id.desc()')


class RequestCost(Base):
    __tablename__ = 'request_costs'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(ForeignKey('requests.id'), nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    cost_type: Mapped[str] = mapped_column(String(24), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default='SYP')
    request_part_id: Mapped[Optional[int]] = mapped_column(ForeignKey('request_parts.id', ondelete='SET NULL'), nullable=True)
    added_by_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    request = relationship('ServiceRequest', back_populates='costs')


class RequestActivity(Base):
    """Append-only trail of request-level mutations. Rows are never updated or deleted."""
    __tablename__ = 'request_activities'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(ForeignKey('requests.id'), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False, index=True)
    activity_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    request = relationship('ServiceRequest', back_populates='activities')
