import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker

from clubgate import models
from clubgate.db import Base, make_engine
from clubgate.roles import Principal, resolve_principal


def add_profile(db, email: str, role: str = "student", is_admin: bool = False) -> Principal:
    profile = models.Profile(email=email, role=role, is_admin=is_admin)
    db.add(profile)
    db.flush()
    return resolve_principal(db, profile.id)


@pytest.fixture()
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test_clubs.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def people(db):
    return SimpleNamespace(
        alice=add_profile(db, "alice@school.edu"),
        bob=add_profile(db, "bob@school.edu", "student_leader"),
        carol=add_profile(db, "carol@school.edu", "admin"),
        dana=add_profile(db, "dana@school.edu"),
        eve=add_profile(db, "eve@school.edu"),
        frank=add_profile(db, "frank@school.edu", "student_leader"),
    )
