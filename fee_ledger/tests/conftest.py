# fee_ledger/tests/conftest.py

import itertools
import os

# The application engine is built at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fee_ledger.balances.initializer import BulkInitializer
from fee_ledger.balances.models import BalanceKind
from fee_ledger.balances.repository import BalanceRepository
from fee_ledger.core.db import Base
from fee_ledger.enrollments.models import Enrollment
from fee_ledger.fee_structures.services import FeeStructureService

BRANCH_ID = 1
OTHER_BRANCH_ID = 2
CLASS_ID = 7
PERIOD_ID = 2025
ROUTE_ID = 3
SLAB_ID = 1


@pytest.fixture
def engine():
    """In-memory SQLite engine with working SAVEPOINT support."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transaction_handling(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    """Database session fixture for testing"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def enroll(db_session):
    """Factory that creates committed enrollments for the test class."""
    counter = itertools.count(1)

    def _enroll(count=1, **overrides):
        created = []
        for _ in range(count):
            n = next(counter)
            enrollment = Enrollment(
                branch_id=BRANCH_ID,
                period_id=PERIOD_ID,
                class_id=CLASS_ID,
                section_id=None,
                student_name=f"Student {n:03d}",
                admission_no=f"ADM{n:04d}",
                is_active=True,
                transport_enabled=False,
                tuition_concession=Decimal("0.00"),
                transport_concession=Decimal("0.00"),
            )
            for key, value in overrides.items():
                setattr(enrollment, key, value)
            db_session.add(enrollment)
            created.append(enrollment)
        db_session.commit()
        return created

    return _enroll


@pytest.fixture
def fee_structure(db_session):
    """Class 7 charges 1500 for books and 9000 tuition."""
    return FeeStructureService(db_session).upsert_structure(
        branch_id=BRANCH_ID,
        class_id=CLASS_ID,
        period_id=PERIOD_ID,
        book_fee=Decimal("1500.00"),
        tuition_fee=Decimal("9000.00"),
    )


@pytest.fixture
def transport_fee(db_session):
    return FeeStructureService(db_session).upsert_transport_fee(
        branch_id=BRANCH_ID,
        period_id=PERIOD_ID,
        route_id=ROUTE_ID,
        slab_id=SLAB_ID,
        amount=Decimal("6000.00"),
    )


@pytest.fixture
def initializer(db_session):
    return BulkInitializer(db_session)


@pytest.fixture
def balance_repo(db_session):
    return BalanceRepository(db_session)


@pytest.fixture
def tuition_balance(db_session, enroll, fee_structure, initializer, balance_repo):
    """A freshly initialized 9000 tuition balance with nothing paid."""
    enrollment = enroll()[0]
    result = initializer.initialize_enrollment(BRANCH_ID, enrollment.id, PERIOD_ID, BalanceKind.TUITION)
    return balance_repo.get_by_id(BalanceKind.TUITION, result.created_balance_ids[0])


@pytest.fixture
def transport_balance(db_session, enroll, fee_structure, transport_fee, initializer, balance_repo):
    """A freshly initialized 6000 transport balance with nothing paid."""
    enrollment = enroll(transport_enabled=True, route_id=ROUTE_ID, slab_id=SLAB_ID)[0]
    result = initializer.initialize_enrollment(BRANCH_ID, enrollment.id, PERIOD_ID, BalanceKind.TRANSPORT)
    return balance_repo.get_by_id(BalanceKind.TRANSPORT, result.created_balance_ids[0])
