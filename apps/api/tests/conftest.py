import os

os.environ.setdefault("AUTH_MODE", "none")
os.environ.setdefault("BOOTSTRAP_ROLES_ON_STARTUP", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.db import get_db
from app.main import app
from app.models.base import Base
from app.models import entities  # noqa: F401
from app.models.entities import Account, AccountStatusEnum, ApprovalStatusEnum, Family, MemberRecord
from app.services import purge
from app.services.roles import get_role_by_key, initialize_system_roles


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite defers BEGIN until the first DML statement, which breaks SAVEPOINT
# and rollback semantics; take over transaction control instead.
@event.listens_for(engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    # Sessions share the single pooled connection; only the first one opens the transaction.
    if not conn.connection.dbapi_connection.in_transaction:
        conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def clear_dependent_sources():
    saved = purge.registered_sources()
    yield
    purge._dependent_sources[:] = saved


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def second_session():
    """Another session on the same database, for interleaving two callers."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def system_roles(db_session):
    seeded = initialize_system_roles(db_session)
    db_session.commit()
    return seeded


@pytest.fixture
def make_account(db_session, system_roles):
    counter = {"n": 0}

    def _make(
        first_name="Asha",
        last_name="Patel",
        *,
        email=None,
        mobile=None,
        family=None,
        is_primary=True,
        role="user",
        status=AccountStatusEnum.approved,
    ):
        counter["n"] += 1
        if family is None:
            family = Family(family_number=f"FAM-20260101-{counter['n']:04d}")
            db_session.add(family)
            db_session.flush()
        account = Account(
            first_name=first_name,
            last_name=last_name,
            email=email if email is not None else f"{first_name.lower()}{counter['n']}@example.com",
            mobile=mobile,
            password_hash="not-a-real-hash",
            family_id=family.id,
            is_primary=is_primary,
            role_id=get_role_by_key(db_session, role).id,
            status=status,
            is_active=True,
            transfer_history=[],
        )
        db_session.add(account)
        db_session.commit()
        return account

    return _make


@pytest.fixture
def make_member(db_session):
    def _make(owner, first_name="Kiran", *, relationship="Son", status=ApprovalStatusEnum.approved, **fields):
        record = MemberRecord(
            owner_account_id=owner.id,
            family_id=owner.family_id,
            relationship_to_owner=relationship,
            first_name=first_name,
            last_name=owner.last_name,
            approval_status=status,
            needs_approval=status == ApprovalStatusEnum.pending,
            **fields,
        )
        db_session.add(record)
        db_session.commit()
        return record

    return _make
