import os
from uuid import uuid4

os.environ.setdefault("SECRET_KEY", "secret")
os.environ["SKIP_MIGRATIONS"] = "1"
os.environ.setdefault("DATABASE_URL", f"sqlite:///./boarding_test_{uuid4().hex}.db")

import pytest
from sqlalchemy.orm import sessionmaker

import boarding.models  # noqa: F401
from boarding.core.db import Base
from tests.factories import make_engine


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(tmp_path / "boarding.db")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()
