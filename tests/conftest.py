import os

# must be set before orderflow.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./orderflow_app.db")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from orderflow.auth import verify_token
from orderflow.database import Base
from orderflow.main import app as fastapi_app
from orderflow.push import PushNotifier
from orderflow.routes import get_notifier

VENDOR_ID = 7

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_orderflow.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def notifier(mocker):
    fake = mocker.AsyncMock(spec=PushNotifier)
    fake.notify_new_order.return_value = 1
    fake.notify_status_change.return_value = True
    return fake


@pytest.fixture
def service(monkeypatch, notifier):
    """The FastAPI app wired to the test database, a fake notifier and a fixed vendor."""
    monkeypatch.setattr("orderflow.routes.SessionLocal", TestingSessionLocal)
    monkeypatch.setattr("orderflow.main.SessionLocal", TestingSessionLocal)

    fastapi_app.dependency_overrides[verify_token] = lambda: VENDOR_ID
    fastapi_app.dependency_overrides[get_notifier] = lambda: notifier
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(service):
    with TestClient(service) as c:
        yield c


def order_body(total="250.00", vendor_id=VENDOR_ID, **overrides):
    body = {
        "payment_type": "order",
        "amount": total,
        "customer_name": "Asha",
        "customer_mobile": "9800000001",
        "order": {
            "vendor_id": vendor_id,
            "vendor_phone": "9811111111",
            "customer_name": "Asha",
            "customer_phone": "9800000001",
            "table_no": "4",
            "items": [
                {"product_id": 1, "variant_id": 11, "product_name": "Momo", "unit_price": "100.00", "quantity": 2},
                {"product_id": 2, "variant_id": 21, "product_name": "Tea", "unit_price": "50.00", "quantity": 1},
            ],
            "total": total,
        },
    }
    body.update(overrides)
    return body


def checkout_session(mocker, session_id, url=None):
    session = mocker.Mock()
    session.id = session_id
    session.url = url or f"https://checkout.stripe.com/c/pay/{session_id}"
    return session


def completed_event(session_id, payment_status="paid", event_type="checkout.session.completed"):
    return {
        "id": f"evt_{session_id}",
        "type": event_type,
        "data": {
            "object": {
                "id": session_id,
                "status": "complete",
                "payment_status": payment_status,
            }
        },
    }
