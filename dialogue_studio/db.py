from contextlib import contextmanager

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import SQLModel, create_engine, Session

from .config import get_settings
from .errors import NotFound


_settings = get_settings()
DATABASE_URL = _settings.database_url

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=_settings.sql_echo, connect_args=connect_args)


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
  # SQLite 默认不校验外键，这里每个连接打开
  module = type(dbapi_connection).__module__
  if not module.startswith(("sqlite3", "pysqlite2")):
    return
  cursor = dbapi_connection.cursor()
  cursor.execute("PRAGMA foreign_keys=ON")
  cursor.close()


def init_db(bind: Engine = engine) -> None:
  """建表；会顺带 import models 把表结构注册上。"""
  from . import models  # noqa: F401

  SQLModel.metadata.create_all(bind)


def get_session() -> Session:
  with Session(engine) as session:
    yield session


def commit_or_not_found(session: Session, code: str) -> None:
  """提交；外键约束失败说明引用的行不在了，统一转成 NotFound。"""
  try:
    session.commit()
  except IntegrityError as e:
    session.rollback()
    raise NotFound(code) from e


@contextmanager
def rollback_on_error(session: Session):
  """改已有行：校验期间不 autoflush，失败就回滚，不然脏对象会跟着下一次 commit 落库。"""
  try:
    with session.no_autoflush:
      yield
  except Exception:
    session.rollback()
    raise
