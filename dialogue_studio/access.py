"""项目级权限：按 (user, project) 找成员角色，再查能力表。

所有写操作在动数据之前先调 require()；owner 不可变的规则只在
guard_member_change() 里判断。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from sqlmodel import Session, select

from .errors import Forbidden, NotFound, OwnerImmutable, ValidationFailure
from .models import Project, ProjectMember, Role

logger = logging.getLogger(__name__)


class Capability(str, Enum):
  read = "read"
  edit_content = "edit_content"
  manage_members = "manage_members"
  manage_project = "manage_project"
  delete_project = "delete_project"


CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
  Role.owner: frozenset(Capability),
  Role.admin: frozenset(
    {Capability.read, Capability.edit_content, Capability.manage_members, Capability.manage_project}
  ),
  Role.member: frozenset({Capability.read, Capability.edit_content}),
  Role.viewer: frozenset({Capability.read}),
}


@dataclass(frozen=True)
class Decision:
  allowed: bool
  reason: Optional[str] = None
  member: Optional[ProjectMember] = None


def parse_role(value: str) -> Role:
  try:
    return Role((value or "").strip().lower())
  except ValueError:
    raise ValidationFailure("invalid_role")


def get_membership(session: Session, user_id: str, project_id: str) -> Optional[ProjectMember]:
  return session.exec(
    select(ProjectMember).where(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
  ).first()


def can(role: Role, capability: Capability) -> bool:
  return capability in CAPABILITIES.get(role, frozenset())


def authorize(session: Session, user_id: str, project_id: str, capability: Capability) -> Decision:
  member = get_membership(session, user_id, project_id)
  if not member:
    return Decision(False, "not_a_member")
  if not can(Role(member.role), capability):
    return Decision(False, f"role_{member.role}_cannot_{capability.value}", member)
  return Decision(True, member=member)


def require(session: Session, user_id: str, project_id: str, capability: Capability) -> ProjectMember:
  """拿不到权限直接抛 Forbidden；项目本身不存在时报 project_not_found。"""
  if not session.get(Project, project_id):
    raise NotFound("project_not_found")
  decision = authorize(session, user_id, project_id, capability)
  if not decision.allowed:
    logger.info("denied user=%s project=%s capability=%s reason=%s", user_id, project_id, capability.value, decision.reason)
    raise Forbidden(decision.reason or "forbidden")
  return decision.member


def guard_member_change(target: Optional[ProjectMember], new_role: Optional[Role] = None) -> None:
  """owner 这一行永远不能改角色、不能移除；也不能把别人提成 owner。"""
  if target is not None and target.role == Role.owner:
    raise OwnerImmutable("owner_immutable")
  if new_role == Role.owner:
    raise OwnerImmutable("owner_role_reserved")
