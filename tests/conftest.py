import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi import Header
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite://")

from task_service.core.auth import CurrentUser, get_current_user  # noqa: E402
from task_service.core.database import Base, get_db, init_db  # noqa: E402
from task_service.core.rabbitmq import get_task_queue  # noqa: E402
from task_service.main import app  # noqa: E402
from task_service.models.task import Task  # noqa: E402
from task_service.services.tasks import TaskService  # noqa: E402
from tests.fakes import RecordingQueue  # noqa: E402

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine(tmp_path: Path):
    engine = create_engine(
        f"sqlite:///{(tmp_path / 'tasks.db').as_posix()}",
        connect_args={"check_same_thread": False},
    )
    assert init_db(bind=engine)
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
def queue():
    return RecordingQueue()


@pytest.fixture
def service(db, queue):
    return TaskService(db, queue)


@pytest.fixture
def make_task(db):
    """Insert a task directly; created_at advances one minute per call."""
    counter = {"n": 0}

    def _make(user_id: int = 1, **fields) -> Task:
        counter["n"] += 1
        values = {
            "title": f"Task {counter['n']}",
            "created_at": BASE_TIME + timedelta(minutes=counter["n"]),
        }
        values.update(fields)
        task = Task(user_id=user_id, **values)
        db.add(task)
        db.commit()
        db.refresh(task)
        return task

    return _make


@pytest.fixture
def client(session_factory, queue):
    """
    Test client with the database, queue and identity dependencies replaced.

    The requesting user is taken from the X-User-Id header (default 1).
    """
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def _current_user(x_user_id: int = Header(1)) -> CurrentUser:
        return CurrentUser(user_id=x_user_id, email=f"user{x_user_id}@example.com")

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_task_queue] = lambda: queue
    app.dependency_overrides[get_current_user] = _current_user

    yield TestClient(app)

    app.dependency_overrides.clear()
