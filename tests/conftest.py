import json
import os
import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SWEEPER_INTERVAL_SECONDS", "0")
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from cinebook.api.deps import get_payment_gateway
from cinebook.core.exceptions import PaymentProviderUnavailable
from cinebook.core.security import create_access_token
from cinebook.db.base import Base
from cinebook.db.session import engine_options, get_db
from cinebook.integrations.payments import InvalidProviderEvent, to_minor_units
from cinebook.main import app
from cinebook.models.showtime import Showtime, ScreenFormat

VALID_SIGNATURE = "t=1,v1=valid"


class FakeGateway:
    """In-memory stand-in for the hosted checkout provider."""

    enabled = True

    def __init__(self):
        self.sessions = {}
        self.created = []
        self.fail_create = False

    def create_checkout_session(self, **params):
        if self.fail_create:
            raise PaymentProviderUnavailable("Payment provider is unavailable, try again shortly")
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions[session_id] = {
            "id": session_id,
            "url": f"https://checkout.test/{session_id}",
            "status": "open",
            "payment_status": "unpaid",
            "payment_intent": None,
            "amount_total": to_minor_units(params["amount"]),
            "currency": params["currency"],
            "payment_method_types": ["card"],
            "metadata": params["metadata"],
        }
        self.created.append(params)
        return {"id": session_id, "url": self.sessions[session_id]["url"]}

    def retrieve_session(self, session_ref):
        if session_ref not in self.sessions:
            raise PaymentProviderUnavailable("Payment provider is unavailable")
        return self.sessions[session_ref]

    def find_session_by_payment_intent(self, payment_intent_id):
        for session in self.sessions.values():
            if session["payment_intent"] == payment_intent_id:
                return session
        return None

    def construct_event(self, payload, signature):
        if signature != VALID_SIGNATURE:
            raise InvalidProviderEvent("Invalid signature")
        return json.loads(payload)

    # --- test helpers ---

    def complete(self, session_id, payment_intent="pi_test_1"):
        session = self.sessions[session_id]
        session.update(status="complete", payment_status="paid", payment_intent=payment_intent)
        return session

    def expire(self, session_id):
        session = self.sessions[session_id]
        session.update(status="expired")
        return session

    def attach_intent(self, session_id, payment_intent):
        self.sessions[session_id]["payment_intent"] = payment_intent
        return self.sessions[session_id]


def make_event(event_type, obj, event_id="evt_test_1"):
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", **engine_options("sqlite://"))
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(session_factory, gateway):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def show_day():
    # Far enough ahead that no payment window or hold cut-off applies
    return date.today() + timedelta(days=30)


@pytest.fixture
def make_showtime(db, show_day):
    def _make(
        movie_id=550,
        show_date=None,
        show_time=time(17, 0),
        screen_format=ScreenFormat.two_d,
        total_seats=100,
        available_seats=None,
        price=Decimal("150.00"),
    ):
        showtime = Showtime(
            id=uuid.uuid4(),
            movie_id=movie_id,
            show_date=show_date or show_day,
            show_time=show_time,
            screen_format=screen_format,
            total_seats=total_seats,
            available_seats=total_seats if available_seats is None else available_seats,
            price=price,
        )
        db.add(showtime)
        db.commit()
        db.refresh(showtime)
        return showtime

    return _make


def auth_headers(user_id, role=None):
    return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}


def at_show_start(showtime) -> datetime:
    return datetime.combine(showtime.show_date, showtime.show_time)
