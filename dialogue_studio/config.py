from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List


def _env(key: str, default: str = "") -> str:
  return (os.getenv(key) or "").strip() or default


def _env_list(key: str, default: str) -> List[str]:
  return [p.strip() for p in _env(key, default).split(",") if p.strip()]


@dataclass
class Settings:
  """运行配置，全部来自环境变量（main 里会先 load_dotenv）。"""
  database_url: str = field(default_factory=lambda: _env("DATABASE_URL", "sqlite:///./dialogue_studio.db"))
  user_id_header: str = field(default_factory=lambda: _env("USER_ID_HEADER", "X-User-Id"))
  cors_origins: List[str] = field(default_factory=lambda: _env_list("CORS_ORIGINS", "*"))
  log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO").upper())
  sql_echo: bool = field(default_factory=lambda: _env("SQL_ECHO", "0").lower() in ("1", "true", "yes"))
  host: str = field(default_factory=lambda: _env("HOST", "127.0.0.1"))
  port: int = field(default_factory=lambda: int(_env("PORT", "8000")))


def get_settings() -> Settings:
  return Settings()
