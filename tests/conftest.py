from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ledenbeheer.db import get_db
from ledenbeheer.errors import MailerError, PaymentProviderError
from ledenbeheer.main import app
from ledenbeheer.models import Base, Member, RoleEnum, UserRole
from ledenbeheer.schemas import ProviderPayment
from ledenbeheer.services.mailer import Mailer, get_mailer
from ledenbeheer.services.payment_provider import PaymentProvider, get_payment_provider

ADMIN_USER = "admin-1"
MEMBER_USER = "member-1"


class FakePaymentProvider(PaymentProvider):
    def __init__(self) -> None:
        self.payments: dict[str, ProviderPayment] = {}
        self.created: list[dict] = []
        self.fail_create = False
        self.fail_get = False

    def create_payment(self, *, amount, description, redirect_url, webhook_url, metadata):
        if self.fail_create:
            raise PaymentProviderError("provider down")
        payment_id = f"tr_test{len(self.payments) + 1}"
        self.created.append(
            {
                "amount": amount,
                "description": description,
                "redirect_url": redirect_url,
                "webhook_url": webhook_url,
                "metadata": metadata,
            }
        )
        payment = ProviderPayment(
            id=payment_id,
            status="open",
            amount=amount,
            metadata=metadata,
            checkout_url=f"https://pay.example/{payment_id}",
        )
        self.payments[payment_id] = payment
        return payment

    def get_payment(self, payment_id):
        if self.fail_get or payment_id not in self.payments:
            raise PaymentProviderError(f"unknown payment {payment_id}")
        return self.payments[payment_id]

    def set_status(self, payment_id, status, paid_at=None):
        payment = self.payments[payment_id]
        self.payments[payment_id] = payment.model_copy(
            update={"status": status, "paid_at": paid_at}
        )

    def add_payment(self, payment_id, status, amount, metadata, paid_at=None):
        self.payments[payment_id] = ProviderPayment(
            id=payment_id,
            status=status,
            amount=Decimal(amount),
            metadata=metadata,
            paid_at=paid_at,
        )


class FakeMailer(Mailer):
    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.sent: list[dict] = []
        self.fail_for: set[str] = set()

    def is_configured(self) -> bool:
        return self.configured

    def send(self, to, subject, html, text=None):
        if to in self.fail_for:
            raise MailerError(f"rejected {to}")
        self.sent.append({"to": to, "subject": subject, "html": html})


@pytest.fixture()
def engine(tmp_path):
    db_path = tmp_path / "test.db"
    engine = create_engine(
        f"sqlite+pysqlite:///{db_path}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def SessionLocal(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(SessionLocal):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def provider():
    return FakePaymentProvider()


@pytest.fixture()
def mailer():
    return FakeMailer()


@pytest.fixture()
def paid_at():
    return datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


@pytest.fixture()
def admin_role(db_session):
    db_session.add(UserRole(user_id=ADMIN_USER, role=RoleEnum.ADMIN.value))
    db_session.commit()


@pytest.fixture()
def member(db_session):
    member = Member(
        first_name="Jan",
        last_name="Janssen",
        email="jan@voorbeeld.be",
        auth_user_id=MEMBER_USER,
        is_active=True,
        receives_mail=True,
    )
    db_session.add(member)
    db_session.commit()
    return member


@pytest.fixture()
def app_client(SessionLocal, provider, mailer):
    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_provider] = lambda: provider
    app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def client(app_client, admin_role):
    app_client.headers.update({"X-Auth-User": ADMIN_USER})
    return app_client
