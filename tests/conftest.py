from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from dialogue_studio.db import get_session, init_db
from dialogue_studio.identity import register_user
from dialogue_studio.main import app
from dialogue_studio.models import User


@pytest.fixture()
def engine():
  """每个用例一个内存库；StaticPool 保证 TestClient 的线程看到同一个连接。"""
  engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
  )
  init_db(bind=engine)
  yield engine
  engine.dispose()


@pytest.fixture()
def session(engine):
  with Session(engine) as session:
    yield session


@pytest.fixture()
def client(session):
  def override_get_session():
    yield session

  app.dependency_overrides[get_session] = override_get_session
  client_instance = TestClient(app)
  try:
    yield client_instance
  finally:
    client_instance.close()
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(session):
  def _factory(email: str, name: str = "") -> User:
    return register_user(session, email, name or email.split("@")[0])

  return _factory


@pytest.fixture()
def owner(make_user) -> User:
  return make_user("owner@example.com", "Owner")


@pytest.fixture()
def auth():
  """请求头里带上当前用户 id。"""

  def _headers(user: User) -> dict:
    return {"X-User-Id": user.id}

  return _headers
