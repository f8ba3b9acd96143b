from __future__ import annotations

from typing import Optional


class DomainError(ValueError):
  """业务错误：str(e) 就是错误码，main 里统一映射成 HTTP 状态。"""

  status_code = 400

  def __init__(self, code: str, message: Optional[str] = None) -> None:
    super().__init__(code)
    self.code = code
    self.message = message or code


class ValidationFailure(DomainError):
  status_code = 400


class NotFound(DomainError):
  status_code = 404


class Forbidden(DomainError):
  status_code = 403


class OwnerImmutable(Forbidden):
  """动 owner 成员（改角色 / 移除 / 授予 owner）一律拒绝，不看请求者角色。"""


class IntegrityViolation(DomainError):
  status_code = 409


class NotAuthenticated(DomainError):
  status_code = 401
