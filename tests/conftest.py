# tests/conftest.py
import os
from datetime import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

# Settings are read at import time; point the app at SQLite before loading it
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from app.api.dependencies import get_now  # noqa: E402
from app.config.database import build_engine, create_tables, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models import (  # noqa: E402
    Order,
    Supplier,
    SupplierBlackoutDate,
    SupplierOperatingHours,
    SupplierSchedulingProfile,
)
from app.models.order import OrderStatus, Resolution, WindowMode  # noqa: E402
from tests.helpers import BUYER_ID, BUYER_PHONE, MONDAY, Clock, at, auth_headers  # noqa: E402


# ==========================
# Database
# ==========================

@pytest.fixture()
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'fulfillment.db'}")
    create_tables(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ==========================
# Factories
# ==========================

@pytest.fixture()
def make_supplier(db):
    def _make(
            name="Tbilisi Timber",
            tz=None,
            same_day_cutoff=time(14, 0),
            min_lead_time_hours=0,
            slot_duration_minutes=60,
            slot_capacity=3,
            horizon_days=7,
            open_time=time(9, 0),
            close_time=time(17, 0),
            closed_days=(6,),
            blackout_dates=(),
            with_profile=True,
    ):
        supplier = Supplier(name=name, phone_number="+995322000000", timezone=tz, is_active=True)
        db.add(supplier)
        db.flush()

        if with_profile:
            db.add(SupplierSchedulingProfile(
                supplier_id=supplier.id,
                same_day_cutoff=same_day_cutoff,
                min_lead_time_hours=min_lead_time_hours,
                slot_duration_minutes=slot_duration_minutes,
                slot_capacity=slot_capacity,
                horizon_days=horizon_days,
                is_active=True,
            ))
        for day in range(7):
            db.add(SupplierOperatingHours(
                supplier_id=supplier.id,
                day_of_week=day,
                open_time=open_time,
                close_time=close_time,
                is_closed=day in closed_days,
            ))
        for blackout in blackout_dates:
            db.add(SupplierBlackoutDate(supplier_id=supplier.id, date=blackout, reason="Holiday"))

        db.commit()
        db.refresh(supplier)
        return supplier

    return _make


@pytest.fixture()
def supplier(make_supplier):
    return make_supplier()


@pytest.fixture()
def make_order(db):
    """Insert an order directly in a given lifecycle state"""
    counter = {"n": 0}

    def _make(supplier, status=OrderStatus.CREATED, delivered_at=None, pickup_or_delivery="delivery",
              window_mode=WindowMode.NEGOTIABLE, buyer_phone=BUYER_PHONE):
        counter["n"] += 1
        order = Order(
            order_number=f"ORD-TEST-{counter['n']:04d}",
            supplier_id=supplier.id,
            buyer_id=BUYER_ID,
            buyer_phone=buyer_phone,
            items=[{"productId": "rebar-12mm", "quantity": 40}],
            pickup_or_delivery=pickup_or_delivery,
            window_mode=window_mode.value,
            status=status.value,
            resolution=Resolution.PENDING.value if status == OrderStatus.DELIVERED else None,
            delivered_at=delivered_at,
            created_at=MONDAY,
            updated_at=MONDAY,
        )
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make


@pytest.fixture()
def delivered_order(make_order, supplier):
    """Delivered 2024-01-01T10:00Z; deadline 2024-01-02T10:00Z"""
    return make_order(supplier, status=OrderStatus.DELIVERED, delivered_at=at(10))


# ==========================
# API
# ==========================

@pytest.fixture()
def clock():
    return Clock(at(8))


@pytest.fixture()
def client(session_factory, clock):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_now] = lambda: clock.now
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def buyer_headers():
    return auth_headers()


@pytest.fixture()
def supplier_headers(supplier):
    return auth_headers(sub="supplier-user", phone="+995322000000", supplier_id=supplier.id)
