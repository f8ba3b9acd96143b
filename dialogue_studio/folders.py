"""文件夹树：parent_id 指针 + id 映射，按 kind（dialogue / sms）分开。

删除文件夹不删内容：子文件夹、对话、短信会话都挂到它的上一级（或根）。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from .access import Capability, require
from .db import rollback_on_error
from .errors import IntegrityViolation, NotFound, ValidationFailure
from .models import Conversation, Dialogue, Folder, FolderKind, new_id

logger = logging.getLogger(__name__)

# update_folder 里区分「没传 parent_id」和「传了 null（移到根）」
UNSET: Any = object()


@dataclass
class FolderEntry:
  folder: Folder
  dialogue_count: int = 0
  conversation_count: int = 0
  child_count: int = 0


@dataclass
class FolderNode:
  entry: FolderEntry
  children: List["FolderNode"] = field(default_factory=list)


def parse_kind(value: Optional[str]) -> FolderKind:
  try:
    return FolderKind((value or "").strip().lower())
  except ValueError:
    raise ValidationFailure("invalid_folder_kind")


def _load_folder(session: Session, user_id: str, folder_id: str, capability: Capability) -> Folder:
  folder = session.get(Folder, folder_id)
  if not folder:
    raise NotFound("folder_not_found")
  require(session, user_id, folder.project_id, capability)
  return folder


def project_folder(session: Session, project_id: str, folder_id: Optional[str], kind: FolderKind) -> Optional[Folder]:
  """对话 / 会话放进文件夹前的校验：同项目、同 kind。"""
  if not folder_id:
    return None
  folder = session.get(Folder, folder_id)
  if not folder or folder.project_id != project_id:
    raise NotFound("folder_not_found")
  if folder.kind != kind.value:
    raise IntegrityViolation("folder_kind_mismatch")
  return folder


def _folder_map(session: Session, project_id: str) -> Dict[str, Folder]:
  folders = session.exec(select(Folder).where(Folder.project_id == project_id)).all()
  return {f.id: f for f in folders}


def is_descendant_or_self(folders: Dict[str, Folder], folder_id: str, candidate_id: Optional[str]) -> bool:
  """从 candidate 沿 parent_id 往上走，碰到 folder_id 说明 candidate 在它的子树里。"""
  cur = candidate_id
  seen = set()
  while cur:
    if cur == folder_id:
      return True
    if cur in seen:
      break
    seen.add(cur)
    parent = folders.get(cur)
    cur = parent.parent_id if parent else None
  return False


def _check_parent(session: Session, project_id: str, kind: str, parent_id: Optional[str], folder_id: Optional[str] = None) -> None:
  if not parent_id:
    return
  parent = session.get(Folder, parent_id)
  if not parent:
    raise NotFound("parent_not_found")
  if parent.project_id != project_id:
    raise IntegrityViolation("folder_project_mismatch")
  if parent.kind != kind:
    raise IntegrityViolation("folder_kind_mismatch")
  if folder_id and is_descendant_or_self(_folder_map(session, project_id), folder_id, parent_id):
    raise IntegrityViolation("folder_cycle")


def create_folder(
  session: Session,
  user_id: str,
  project_id: str,
  kind: str,
  name: str,
  description: Optional[str] = None,
  parent_id: Optional[str] = None,
) -> Folder:
  require(session, user_id, project_id, Capability.edit_content)
  folder_kind = parse_kind(kind)
  name = (name or "").strip()
  if not name:
    raise ValidationFailure("name_required")
  _check_parent(session, project_id, folder_kind.value, parent_id)

  folder = Folder(
    id=new_id(),
    project_id=project_id,
    parent_id=parent_id or None,
    name=name,
    description=(description or "").strip() or None,
    kind=folder_kind.value,
  )
  session.add(folder)
  session.commit()
  session.refresh(folder)
  logger.info("project %s: created %s folder %s", project_id, folder.kind, folder.id)
  return folder


def update_folder(
  session: Session,
  user_id: str,
  folder_id: str,
  name: Optional[str] = None,
  description: Optional[str] = None,
  parent_id: Optional[str] = UNSET,
) -> Folder:
  """改名 / 改描述 / 换父节点；只动传进来的字段。"""
  folder = _load_folder(session, user_id, folder_id, Capability.edit_content)
  with rollback_on_error(session):
    if name is not None:
      name = name.strip()
      if not name:
        raise ValidationFailure("name_required")
      folder.name = name
    if description is not None:
      folder.description = description.strip() or None
    if parent_id is not UNSET:
      parent_id = parent_id or None
      _check_parent(session, folder.project_id, folder.kind, parent_id, folder.id)
      folder.parent_id = parent_id
  folder.updated_at = datetime.utcnow()
  session.add(folder)
  session.commit()
  session.refresh(folder)
  return folder


def move_folder(session: Session, user_id: str, folder_id: str, new_parent_id: Optional[str]) -> Folder:
  return update_folder(session, user_id, folder_id, parent_id=new_parent_id)


def delete_folder(session: Session, user_id: str, folder_id: str) -> None:
  folder = _load_folder(session, user_id, folder_id, Capability.edit_content)
  project_id = folder.project_id
  rescued = rescue_contents(session, folder)
  session.delete(folder)
  session.commit()
  logger.info("project %s: deleted folder %s, rescued %d item(s)", project_id, folder_id, rescued)


def rescue_contents(session: Session, folder: Folder) -> int:
  """把直属子文件夹和内容挂到 folder 的父级。不提交。"""
  target = folder.parent_id
  moved = 0
  for child in session.exec(select(Folder).where(Folder.parent_id == folder.id)).all():
    child.parent_id = target
    session.add(child)
    moved += 1
  for d in session.exec(select(Dialogue).where(Dialogue.folder_id == folder.id)).all():
    d.folder_id = target
    session.add(d)
    moved += 1
  for c in session.exec(select(Conversation).where(Conversation.folder_id == folder.id)).all():
    c.folder_id = target
    session.add(c)
    moved += 1
  session.flush()
  return moved


def _count_by(session: Session, column, project_column, project_id: str) -> Dict[str, int]:
  rows = session.exec(
    select(column, func.count()).where(project_column == project_id, column.is_not(None)).group_by(column)
  ).all()
  return {fid: n for fid, n in rows}


def list_tree(session: Session, user_id: str, project_id: str, kind: Optional[str] = None) -> List[FolderEntry]:
  """平铺返回文件夹 + 计数，按创建顺序；前端自己拼树也不用再查。"""
  require(session, user_id, project_id, Capability.read)
  stmt = select(Folder).where(Folder.project_id == project_id)
  if kind:
    stmt = stmt.where(Folder.kind == parse_kind(kind).value)
  folders = session.exec(stmt.order_by(Folder.created_at, Folder.id)).all()

  dialogue_counts = _count_by(session, Dialogue.folder_id, Dialogue.project_id, project_id)
  conversation_counts = _count_by(session, Conversation.folder_id, Conversation.project_id, project_id)
  child_counts = _count_by(session, Folder.parent_id, Folder.project_id, project_id)
  return [
    FolderEntry(
      folder=f,
      dialogue_count=dialogue_counts.get(f.id, 0),
      conversation_count=conversation_counts.get(f.id, 0),
      child_count=child_counts.get(f.id, 0),
    )
    for f in folders
  ]


def group_children(entries: List[FolderEntry]) -> Dict[Optional[str], List[FolderEntry]]:
  """parent_id -> 子节点列表；每层保持输入顺序。父节点不在列表里的当根处理。"""
  ids = {e.folder.id for e in entries}
  groups: Dict[Optional[str], List[FolderEntry]] = {}
  for e in entries:
    parent = e.folder.parent_id if e.folder.parent_id in ids else None
    groups.setdefault(parent, []).append(e)
  return groups


def nest(entries: List[FolderEntry]) -> List[FolderNode]:
  groups = group_children(entries)

  def build(parent_id: Optional[str], path: frozenset) -> List[FolderNode]:
    nodes: List[FolderNode] = []
    for e in groups.get(parent_id, []):
      if e.folder.id in path:
        continue
      nodes.append(FolderNode(entry=e, children=build(e.folder.id, path | {e.folder.id})))
    return nodes

  return build(None, frozenset())


def move_dialogue(session: Session, user_id: str, dialogue_id: str, folder_id: Optional[str]) -> Dialogue:
  dialogue = session.get(Dialogue, dialogue_id)
  if not dialogue:
    raise NotFound("dialogue_not_found")
  require(session, user_id, dialogue.project_id, Capability.edit_content)
  project_folder(session, dialogue.project_id, folder_id, FolderKind.dialogue)
  dialogue.folder_id = folder_id or None
  dialogue.updated_at = datetime.utcnow()
  session.add(dialogue)
  session.commit()
  session.refresh(dialogue)
  return dialogue


def move_conversation(session: Session, user_id: str, conversation_id: str, folder_id: Optional[str]) -> Conversation:
  conversation = session.get(Conversation, conversation_id)
  if not conversation:
    raise NotFound("conversation_not_found")
  require(session, user_id, conversation.project_id, Capability.edit_content)
  project_folder(session, conversation.project_id, folder_id, FolderKind.sms)
  conversation.folder_id = folder_id or None
  conversation.updated_at = datetime.utcnow()
  session.add(conversation)
  session.commit()
  session.refresh(conversation)
  return conversation
