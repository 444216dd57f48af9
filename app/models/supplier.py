# ===== app/models/supplier.py =====
from sqlalchemy import Column, String, Integer, Boolean, Time, Date, DateTime, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.models.base import Base
import uuid


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    phone_number = Column(String(20), nullable=True)

    # IANA zone the operating hours are expressed in; null = buyer's local zone
    timezone = Column(String(50), nullable=True)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    scheduling_profile = relationship(
        "SupplierSchedulingProfile", back_populates="supplier", uselist=False
    )
    operating_hours = relationship("SupplierOperatingHours", back_populates="supplier")
    blackout_dates = relationship("SupplierBlackoutDate", back_populates="supplier")

    def __repr__(self):
        return f"<Supplier(id={self.id}, name={self.name})>"


class SupplierSchedulingProfile(Base):
    """Same-day cutoff, lead time and slot shape for a supplier"""
    __tablename__ = "supplier_scheduling_profiles"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    supplier_id = Column(Uuid(as_uuid=True), ForeignKey("suppliers.id"), nullable=False, unique=True)

    same_day_cutoff = Column(Time, nullable=True)  # buyer-local; null = same-day always open
    min_lead_time_hours = Column(Integer, default=0)
    slot_duration_minutes = Column(Integer, default=60)
    slot_capacity = Column(Integer, nullable=True)  # concurrent bookings per slot
    horizon_days = Column(Integer, nullable=True)

    is_active = Column(Boolean, default=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    supplier = relationship("Supplier", back_populates="scheduling_profile")


class SupplierOperatingHours(Base):
    __tablename__ = "supplier_operating_hours"
    __table_args__ = (UniqueConstraint("supplier_id", "day_of_week"),)

    id = Column(Integer, primary_key=True)
    supplier_id = Column(Uuid(as_uuid=True), ForeignKey("suppliers.id"), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0=Monday, 6=Sunday
    open_time = Column(Time, nullable=False)
    close_time = Column(Time, nullable=False)
    is_closed = Column(Boolean, default=False)

    supplier = relationship("Supplier", back_populates="operating_hours")

    def __repr__(self):
        return f"<SupplierOperatingHours(supplier_id={self.supplier_id}, day={self.day_of_week})>"


class SupplierBlackoutDate(Base):
    """Specific dates the supplier does not deliver (holidays, stocktake, ...)"""
    __tablename__ = "supplier_blackout_dates"
    __table_args__ = (UniqueConstraint("supplier_id", "date"),)

    id = Column(Integer, primary_key=True)
    supplier_id = Column(Uuid(as_uuid=True), ForeignKey("suppliers.id"), nullable=False)
    date = Column(Date, nullable=False)
    reason = Column(String, nullable=True)

    supplier = relationship("Supplier", back_populates="blackout_dates")
