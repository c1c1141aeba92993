"""
Pytest fixtures for the readiness engine test suite.

Provides:
- an in-memory SQLite database per test (StaticPool, all tables created fresh)
- a Factory for facilities, users, catalog items, units, preference cards and cases
- plain-object builders for the pure engine modules
- a FastAPI TestClient bound to the test database, with JWT helpers
"""

import itertools
import os
from datetime import date, datetime, time, timedelta
from types import SimpleNamespace

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALG"] = "HS256"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import ascready.models  # noqa: F401
from ascready.db.base import Base
from ascready.models import (
    AvailabilityStatus,
    CaseRequirementOverride,
    CatalogItem,
    Criticality,
    Facility,
    InventoryInstance,
    Location,
    PreferenceCard,
    PreferenceCardVersion,
    SterilityStatus,
    SurgicalCase,
    User,
)

NOW = datetime(2026, 3, 10, 12, 0, 0)
TARGET_DATE = date(2026, 3, 11)
FAR_EXPIRY = datetime(2027, 1, 1)


# =========================================================
# DATABASE
# =========================================================
@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


# =========================================================
# FACTORY
# =========================================================
class Factory:
    def __init__(self, db):
        self.db = db
        self._seq = itertools.count(1)

    def _add(self, obj):
        self.db.add(obj)
        self.db.flush()
        return obj

    def facility(self, **kw):
        n = next(self._seq)
        kw.setdefault("code", f"ASC{n}")
        kw.setdefault("name", f"Surgery Center {n}")
        kw.setdefault("timezone", "UTC")
        kw.setdefault("verification_policy", "BINDING")
        return self._add(Facility(**kw))

    def user(self, facility, roles=("ADMIN",), **kw):
        n = next(self._seq)
        kw.setdefault("name", f"User {n}")
        kw.setdefault("email", f"user{n}@example.test")
        return self._add(User(facility_id=facility.id, roles=list(roles), **kw))

    def location(self, facility, name="Sterile Core"):
        return self._add(Location(facility_id=facility.id, name=name))

    def catalog_item(self, facility, name="Item", **kw):
        kw.setdefault("category", "INSTRUMENT")
        kw.setdefault("criticality", Criticality.ROUTINE.value)
        kw.setdefault("requires_sterility", False)
        kw.setdefault("requires_lot_tracking", False)
        kw.setdefault("requires_serial_tracking", False)
        kw.setdefault("requires_expiration_tracking", False)
        return self._add(CatalogItem(facility_id=facility.id, name=name, **kw))

    def instance(self, item, **kw):
        kw.setdefault("sterility_status", SterilityStatus.STERILE.value)
        kw.setdefault("sterility_expires_at", FAR_EXPIRY)
        kw.setdefault("availability_status", AvailabilityStatus.AVAILABLE.value)
        return self._add(InventoryInstance(
            facility_id=item.facility_id, catalog_id=item.id, **kw))

    def card(self, facility, items, *, kind="instrumentation", sections=None):
        card = self._add(PreferenceCard(facility_id=facility.id, procedure_name="Procedure"))
        if sections is None:
            sections = {"sections": [{"kind": kind, "items": items}]}
        ver = self._add(PreferenceCardVersion(card_id=card.id, version_no=1, sections=sections))
        card.current_version_id = ver.id
        self.db.flush()
        return card

    def case(self, facility, card=None, **kw):
        n = next(self._seq)
        kw.setdefault("case_number", f"C-{n:04d}")
        kw.setdefault("scheduled_date", TARGET_DATE)
        kw.setdefault("scheduled_time", time(7, 30))
        kw.setdefault("procedure_name", "Total Hip Arthroplasty")
        return self._add(SurgicalCase(
            facility_id=facility.id,
            preference_card_id=card.id if card is not None else None,
            **kw,
        ))

    def override(self, case, item, quantity, requires_sterility=None):
        return self._add(CaseRequirementOverride(
            case_id=case.id, catalog_id=item.id, quantity=quantity,
            requires_sterility=requires_sterility))


@pytest.fixture
def make(db):
    return Factory(db)


@pytest.fixture
def facility(make):
    return make.facility()


@pytest.fixture
def admin(make, facility):
    return make.user(facility, roles=("ADMIN",), name="Casey Admin")


# =========================================================
# PLAIN OBJECTS (pure engine modules)
# =========================================================
def plain_item(id=1, name="Item", **kw):
    base = dict(
        id=id,
        name=name,
        criticality=Criticality.ROUTINE.value,
        requires_sterility=False,
        requires_lot_tracking=False,
        requires_serial_tracking=False,
        requires_expiration_tracking=False,
        expiration_warning_days=None,
        readiness_required=True,
        is_active=True,
    )
    base.update(kw)
    return SimpleNamespace(**base)


_unit_ids = itertools.count(1000)


def plain_unit(catalog_id=1, **kw):
    base = dict(
        id=next(_unit_ids),
        catalog_id=catalog_id,
        location_id=1,
        lot_number=None,
        serial_number=None,
        barcode=None,
        identifier=None,
        sterility_status=SterilityStatus.STERILE.value,
        sterility_expires_at=None,
        availability_status=AvailabilityStatus.AVAILABLE.value,
        reserved_for_case_id=None,
        last_verified_at=None,
    )
    base.update(kw)
    return SimpleNamespace(**base)


# =========================================================
# HTTP
# =========================================================
@pytest.fixture
def client(session_factory):
    from fastapi.testclient import TestClient

    from ascready.db.session import get_db
    from ascready.main import create_app

    app = create_app()

    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c


def auth_headers(user):
    from ascready.api.deps import create_access_token

    return {"Authorization": f"Bearer {create_access_token(user)}"}


def days_ahead(n):
    return datetime.utcnow() + timedelta(days=n)
