from __future__ import annotations

import logging
from typing import Optional

from sqlmodel import Session, select

from .errors import NotAuthenticated, ValidationFailure
from .models import User, new_id

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
  return (email or "").strip().lower()


def get_user_by_email(session: Session, email: str) -> Optional[User]:
  return session.exec(select(User).where(User.email == _normalize_email(email))).first()


def register_user(session: Session, email: str, name: str = "") -> User:
  email = _normalize_email(email)
  if not email or "@" not in email:
    raise ValidationFailure("email_required")
  if get_user_by_email(session, email):
    raise ValidationFailure("email_taken")
  user = User(id=new_id(), email=email, name=(name or "").strip())
  session.add(user)
  session.commit()
  session.refresh(user)
  logger.info("registered user %s", user.id)
  return user


def resolve_user(session: Session, user_id: Optional[str]) -> User:
  """上游网关已经验过身份，这里只确认这个 id 在身份库里。"""
  uid = (user_id or "").strip()
  if not uid:
    raise NotAuthenticated("not_authenticated")
  user = session.get(User, uid)
  if not user:
    raise NotAuthenticated("unknown_user")
  return user
