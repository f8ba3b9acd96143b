from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from sqlmodel import Session, select

from .access import Capability, authorize, guard_member_change, parse_role, require
from .errors import Forbidden, NotFound, ValidationFailure
from .identity import get_user_by_email
from .models import ProjectMember, Role, User, new_id

logger = logging.getLogger(__name__)


def list_members(session: Session, user_id: str, project_id: str) -> List[Tuple[ProjectMember, User]]:
  """任何角色的成员都能看成员列表，按加入时间排。"""
  require(session, user_id, project_id, Capability.read)
  rows = session.exec(
    select(ProjectMember, User)
    .where(ProjectMember.project_id == project_id, ProjectMember.user_id == User.id)
    .order_by(ProjectMember.created_at, ProjectMember.id)
  ).all()
  return list(rows)


def add_member(
  session: Session,
  user_id: str,
  project_id: str,
  email: str,
  role: str = Role.member.value,
) -> ProjectMember:
  require(session, user_id, project_id, Capability.manage_members)
  new_role = parse_role(role)
  guard_member_change(None, new_role)

  user = get_user_by_email(session, email)
  if not user:
    raise NotFound("user_not_found")
  existing = session.exec(
    select(ProjectMember).where(ProjectMember.project_id == project_id, ProjectMember.user_id == user.id)
  ).first()
  if existing:
    raise ValidationFailure("already_member")

  member = ProjectMember(id=new_id(), project_id=project_id, user_id=user.id, role=new_role.value)
  session.add(member)
  session.commit()
  session.refresh(member)
  logger.info("project %s: added member %s as %s", project_id, user.id, new_role.value)
  return member


def _load_target(session: Session, user_id: str, member_id: str) -> ProjectMember:
  target = session.get(ProjectMember, member_id)
  if not target:
    raise NotFound("member_not_found")
  # 先确认请求者是成员，再谈 owner 规则和能力表
  decision = authorize(session, user_id, target.project_id, Capability.read)
  if not decision.allowed:
    raise Forbidden(decision.reason or "forbidden")
  return target


def _require_manage(session: Session, user_id: str, project_id: str) -> None:
  decision = authorize(session, user_id, project_id, Capability.manage_members)
  if not decision.allowed:
    logger.info("member change denied user=%s project=%s reason=%s", user_id, project_id, decision.reason)
    raise Forbidden(decision.reason or "forbidden")


def update_member_role(session: Session, user_id: str, member_id: str, role: str) -> ProjectMember:
  target = _load_target(session, user_id, member_id)
  new_role = parse_role(role)
  guard_member_change(target, new_role)
  _require_manage(session, user_id, target.project_id)

  target.role = new_role.value
  session.add(target)
  session.commit()
  session.refresh(target)
  logger.info("project %s: member %s is now %s", target.project_id, target.user_id, new_role.value)
  return target


def remove_member(session: Session, user_id: str, member_id: str) -> None:
  target = _load_target(session, user_id, member_id)
  guard_member_change(target)
  project_id, removed_user_id = target.project_id, target.user_id
  _require_manage(session, user_id, project_id)

  session.delete(target)
  session.commit()
  logger.info("project %s: removed member %s", project_id, removed_user_id)


def get_member_user(session: Session, member: ProjectMember) -> Optional[User]:
  return session.get(User, member.user_id)
