from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session, select

from .access import Capability, require
from .catalog import purge_background, purge_character
from .dialogues import purge_dialogue
from .errors import ValidationFailure
from .models import Background, Character, Conversation, Dialogue, Folder, Project, ProjectMember, Role, new_id
from .sms import purge_conversation

logger = logging.getLogger(__name__)


def _clean_name(name: Optional[str]) -> str:
  n = (name or "").strip()
  if not n:
    raise ValidationFailure("name_required")
  return n


def create_project(session: Session, user_id: str, name: str, description: Optional[str] = None) -> Project:
  """建项目，创建者同一个事务里成为唯一的 owner。"""
  project = Project(
    id=new_id(),
    name=_clean_name(name),
    description=(description or "").strip() or None,
    user_id=user_id,
  )
  session.add(project)
  session.flush()
  session.add(ProjectMember(id=new_id(), project_id=project.id, user_id=user_id, role=Role.owner.value))
  session.commit()
  session.refresh(project)
  logger.info("user %s created project %s", user_id, project.id)
  return project


def list_projects(session: Session, user_id: str) -> List[Project]:
  rows = session.exec(
    select(Project)
    .join(ProjectMember, ProjectMember.project_id == Project.id)
    .where(ProjectMember.user_id == user_id)
    .order_by(Project.updated_at.desc(), Project.id)
  ).all()
  return list(rows)


def get_project(session: Session, user_id: str, project_id: str) -> Project:
  require(session, user_id, project_id, Capability.read)
  return session.get(Project, project_id)


def update_project(session: Session, user_id: str, project_id: str, name: str, description: Optional[str] = None) -> Project:
  require(session, user_id, project_id, Capability.manage_project)
  project = session.get(Project, project_id)
  project.name = _clean_name(name)
  project.description = (description or "").strip() or None
  project.updated_at = datetime.utcnow()
  session.add(project)
  session.commit()
  session.refresh(project)
  return project


def delete_project(session: Session, user_id: str, project_id: str) -> None:
  require(session, user_id, project_id, Capability.delete_project)
  project = session.get(Project, project_id)

  # 先删挂在外键最末端的内容，再删素材、文件夹、成员
  for c in session.exec(select(Conversation).where(Conversation.project_id == project_id)).all():
    purge_conversation(session, c)
  for d in session.exec(select(Dialogue).where(Dialogue.project_id == project_id)).all():
    purge_dialogue(session, d)
  for ch in session.exec(select(Character).where(Character.project_id == project_id)).all():
    purge_character(session, ch)
  for bg in session.exec(select(Background).where(Background.project_id == project_id)).all():
    purge_background(session, bg)

  folders = session.exec(select(Folder).where(Folder.project_id == project_id)).all()
  for f in folders:
    f.parent_id = None
    session.add(f)
  session.flush()
  for f in folders:
    session.delete(f)
  for m in session.exec(select(ProjectMember).where(ProjectMember.project_id == project_id)).all():
    session.delete(m)
  session.flush()
  session.delete(project)
  session.commit()
  logger.info("user %s deleted project %s", user_id, project_id)
