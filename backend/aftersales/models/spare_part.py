from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Float, DateTime, ForeignKey, CheckConstraint, func

from .users import Base


class SparePart(Base):
    """Warehouse stock item. present_pieces is the authoritative on-hand count."""
    __tablename__ = 'spare_parts'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    part_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default='GENERAL')
    present_pieces: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    unit_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default='SYP')
    department_id: Mapped[Optional[int]] = mapped_column(ForeignKey('departments.id'), nullable=True, index=True)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    request_parts = relationship('RequestPart', back_populates='spare_part')

    __table_args__ = (CheckConstraint('present_pieces >= 0', name='ck_spare_parts_present_pieces_non_negative'),)

    # Every UPDATE carries "WHERE version_id = <read value>"; a writer holding a
    # stale row gets StaleDataError instead of overwriting a newer count.
    __mapper_args__ = {'version_id_col': version_id}


class RequestPart(Base):
    """Reservation of spare part units against a request.

    unit_price and total_cost are snapshots taken at reservation time; later price
    edits on the SparePart do not touch existing rows.
    """
    __tablename__ = 'request_parts'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(ForeignKey('requests.id'), nullable=False, index=True)
    spare_part_id: Mapped[int] = mapped_column(ForeignKey('spare_parts.id'), nullable=False, index=True)
    quantity_used: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[float] = mapped_column(Float, nullable=False)
    total_cost: Mapped[float] = mapped_column(Float, nullable=False)
    added_by_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    request = relationship('ServiceRequest', back_populates='parts')
    spare_part = relationship('SparePart', back_populates='request_parts')


class SparePartHistory(Base):
    """Append-only stock ledger.

    spare_part_id / request_id are plain indexed columns (no FK) so rows outlive the
    part they describe; history is never updated or deleted.
    """
    __tablename__ = 'spare_part_history'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    spare_part_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    changed_by_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    change_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    field_changed: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    old_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    quantity_change: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    request_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
