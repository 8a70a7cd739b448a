import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("MERCADO_PAGO_MODE", "sandbox")
os.environ.setdefault("MERCADO_PAGO_ACCESS_TOKEN", "TEST-token")
os.environ.setdefault("MERCADO_PAGO_WEBHOOK_URL", "https://agendo.test/api/webhooks/mercadopago")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.core.exceptions import ProviderError
from app import models  # noqa: F401
from app.models import Appointment, Plan, Subscription, User
from app.core.config import ProviderConfig

WEBHOOK_URL = "https://agendo.test/api/webhooks/mercadopago"
BACK_URL = "https://agendo.test/minha-assinatura"


class FakeGateway:
    """In-memory stand-in for SubscriptionGateway."""

    def __init__(self, config=None):
        self.config = config or ProviderConfig(
            access_token="TEST-token",
            mode="sandbox",
            back_url=BACK_URL,
            webhook_url=WEBHOOK_URL,
        )
        self.remote = {}
        self.payments = {}
        self.errors = {}
        self.calls = []
        self.created = 0

    def _fail(self, key):
        error = self.errors.get(key)
        if error is not None:
            raise error

    def not_found(self, key):
        self.errors[key] = ProviderError("not found", provider_status=404, payload={"status": 404})

    async def create_plan(self, payload):
        self.calls.append(("create_plan", payload))
        self._fail("create_plan")
        self.created += 1
        return {"id": f"plan-{self.created}", "status": "active"}

    async def create_subscription(self, payload):
        self.calls.append(("create_subscription", payload))
        self._fail("create_subscription")
        self.created += 1
        remote_id = f"pre-{self.created}"
        self.remote[remote_id] = {"id": remote_id, "status": "pending"}
        return {
            "id": remote_id,
            "init_point": f"https://www.mercadopago.com.br/subscriptions/checkout?id={remote_id}",
            "sandbox_init_point": f"https://sandbox.mercadopago.com.br/subscriptions/checkout?id={remote_id}",
        }

    async def get_subscription(self, remote_id):
        self.calls.append(("get_subscription", remote_id))
        self._fail(remote_id)
        if remote_id not in self.remote:
            raise ProviderError("not found", provider_status=404)
        return dict(self.remote[remote_id])

    async def update_subscription(self, remote_id, body):
        self.calls.append(("update_subscription", remote_id, body))
        self._fail(f"update:{remote_id}")
        self.remote.setdefault(remote_id, {"id": remote_id}).update(body)
        return dict(self.remote[remote_id])

    async def get_payment(self, payment_id):
        self.calls.append(("get_payment", payment_id))
        if payment_id not in self.payments:
            raise ProviderError("not found", provider_status=404)
        return self.payments[payment_id]


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def user(db):
    user = User(email="ana@example.com", full_name="Ana Souza")
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def admin(db):
    admin = User(email="admin@example.com", is_admin=True)
    db.add(admin)
    await db.flush()
    return admin


@pytest_asyncio.fixture
async def bronze(db):
    plan = Plan(
        key="bronze",
        name="Bronze",
        monthly_limit=20,
        price=Decimal("49.90"),
        frequency=1,
        frequency_type="months",
        mp_plan_id="mp-plan-bronze",
    )
    db.add(plan)
    await db.flush()
    return plan


async def add_subscription(db, user, plan=None, **fields):
    values = {
        "user_id": user.id,
        "plan_id": plan.id if plan else None,
        "mp_plan_id": plan.mp_plan_id if plan else None,
        "plan_name": plan.name if plan else fields.pop("plan_name", "Custom"),
        "status": "active",
    }
    values.update(fields)
    subscription = Subscription(**values)
    db.add(subscription)
    await db.flush()
    return subscription


async def add_appointments(db, user, created_at_list, status="confirmed"):
    for created_at in created_at_list:
        db.add(Appointment(user_id=user.id, status=status, created_at=created_at))
    await db.flush()


@pytest_asyncio.fixture
async def client(db, gateway):
    from app.api.deps import get_gateway
    from app.core.database import get_db
    from app.main import app

    async def override_get_db():
        try:
            yield db
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client

    app.dependency_overrides.clear()


def auth_headers(user):
    from app.core.security import create_access_token

    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture
def future():
    return datetime.now(timezone.utc) + timedelta(days=10)
