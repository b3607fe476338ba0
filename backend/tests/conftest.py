"""Shared test fixtures."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
from datetime import date, datetime, timedelta
from decimal import Decimal
import uuid

from app.database import Base, get_db
from app.main import app
from app.models.category import Category
from app.models.category_rule import CategoryRule, MatchType
from app.models.correction import CategoryCorrection
from app.models.transaction import Transaction


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test using in-memory SQLite."""
    # Use StaticPool to ensure all connections use the same in-memory database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create session
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def sample_category(db_session):
    """Create a sample category."""
    category = Category(
        id=str(uuid.uuid4()),
        name="Groceries",
        color="#22c55e",
        is_system=True
    )
    db_session.add(category)
    db_session.commit()
    db_session.refresh(category)
    return category


@pytest.fixture
def other_category(db_session):
    """Create a second category to correct away from."""
    category = Category(id=str(uuid.uuid4()), name="Shopping", color="#f97316")
    db_session.add(category)
    db_session.commit()
    db_session.refresh(category)
    return category


@pytest.fixture
def sample_transaction(db_session, other_category):
    """Create a transaction auto-categorised by a pattern rule."""
    txn = Transaction(
        id=str(uuid.uuid4()),
        date=date(2024, 1, 15),
        amount=Decimal("-50.00"),
        raw_description="AMZN MKTP UK",
        category_id=other_category.id,
        categorisation_source="pattern-rule",
        categorisation_confidence=0.8,
        import_session_id="session-1",
    )
    db_session.add(txn)
    db_session.commit()
    db_session.refresh(txn)
    return txn


@pytest.fixture
def sample_rule(db_session, sample_category):
    """Create a user rule."""
    rule = CategoryRule(
        id=str(uuid.uuid4()),
        pattern="TESCO",
        category_id=sample_category.id,
        match_type=MatchType.contains,
        confidence=0.9,
    )
    db_session.add(rule)
    db_session.commit()
    db_session.refresh(rule)
    return rule


@pytest.fixture
def add_corrections(db_session):
    """Factory that stores corrections for a category, `days_ago` days old."""
    def _add(descriptions, category_id, days_ago=1, original_category_id=None):
        created = []
        for description in descriptions:
            correction = CategoryCorrection(
                id=str(uuid.uuid4()),
                description=description,
                original_category_id=original_category_id,
                corrected_category_id=category_id,
                original_source="similarity",
                created_at=datetime.utcnow() - timedelta(days=days_ago),
            )
            db_session.add(correction)
            created.append(correction)
        db_session.commit()
        return created

    return _add
