import os
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from db.base import Base
from db.session import make_engine
import models  # noqa: F401 ensure model registration
from models.shop import Shop
from models.product import Product


class FakeClock:
    """Stands in for the database clock in ViewRecorder"""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'views.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


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
def clock():
    return FakeClock()


@pytest.fixture
def shop(db):
    db.add(Shop(id=9, owner_id=1, name="Corner Bakery"))
    db.commit()
    return 9


@pytest.fixture
def other_shop(db):
    db.add(Shop(id=10, owner_id=2, name="Night Market"))
    db.commit()
    return 10


@pytest.fixture
def product(db, shop):
    db.add(Product(id=42, shop_id=shop, name="Sourdough loaf"))
    db.commit()
    return 42


@pytest.fixture
def pg_engine():
    """PostgreSQL engine from TEST_DATABASE_URL; tests using it skip when unset."""
    url = os.getenv("TEST_DATABASE_URL")
    if not url or not url.startswith("postgres"):
        pytest.skip("TEST_DATABASE_URL not set to a PostgreSQL database")
    eng = make_engine(url)
    Base.metadata.drop_all(bind=eng)
    Base.metadata.create_all(bind=eng)
    with sessionmaker(bind=eng)() as session:
        session.add(Shop(id=9, owner_id=1, name="Corner Bakery"))
        session.add(Shop(id=10, owner_id=2, name="Night Market"))
        session.add(Product(id=42, shop_id=9, name="Sourdough loaf"))
        session.commit()
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()
