"""导出：把整个项目压平成游戏运行时能直接吃的 JSON。

角色引用换成 tag，情绪换成名字，背景换成名字，反馈文案解析回数组；
指向已删除对话的 nextDialogueId 原样带出，由使用方当作「不跳转」处理。
只读，同样的数据两次导出逐字节一致。
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from .access import Capability, require
from .dialogues import DialogueView, DisplaySlot, effective_display, load_dialogues
from .models import Background, Character, DisplayMode, Folder, Mood, Project
from .sms import ConversationView, load_conversations

logger = logging.getLogger(__name__)


class _Refs:
  """id -> 素材 的查找表，一次查完。"""

  def __init__(self, session: Session, project_id: str) -> None:
    characters = session.exec(select(Character).where(Character.project_id == project_id)).all()
    self.characters: Dict[str, Character] = {c.id: c for c in characters}
    ids = list(self.characters)
    moods = session.exec(select(Mood).where(Mood.character_id.in_(ids))).all() if ids else []
    self.moods: Dict[str, Mood] = {m.id: m for m in moods}
    self.mood_names: Dict[str, List[str]] = {}
    for m in sorted(moods, key=lambda m: (m.name, m.id)):
      self.mood_names.setdefault(m.character_id, []).append(m.name)
    backgrounds = session.exec(select(Background).where(Background.project_id == project_id)).all()
    self.backgrounds: Dict[str, Background] = {b.id: b for b in backgrounds}

  def tag(self, character_id: Optional[str]) -> Optional[str]:
    c = self.characters.get(character_id) if character_id else None
    return c.tag if c else None

  def mood(self, mood_id: Optional[str]) -> Optional[str]:
    m = self.moods.get(mood_id) if mood_id else None
    return m.name if m else None

  def background(self, background_id: Optional[str]) -> Optional[str]:
    b = self.backgrounds.get(background_id) if background_id else None
    return b.name if b else None

  def slot(self, slot: Optional[DisplaySlot]) -> Dict[str, Optional[str]]:
    slot = slot or DisplaySlot()
    return {"characterTag": self.tag(slot.character_id), "mood": self.mood(slot.mood_id)}


def _export_dialogue(view: DialogueView, refs: _Refs) -> Dict[str, Any]:
  d = view.dialogue
  lines: List[Dict[str, Any]] = []
  for lv in view.lines:
    line = lv.line
    binding = effective_display(line)
    if binding.mode == DisplayMode.dual:
      display = {"mode": binding.mode.value, "left": refs.slot(binding.left), "right": refs.slot(binding.right)}
    else:
      display = {"mode": binding.mode.value, **refs.slot(binding.single)}
    lines.append(
      {
        "order": line.order,
        "characterTag": refs.tag(line.character_id),
        "text": line.text,
        "displayBinding": display,
        "choices": [{"text": c.text, "nextDialogueId": c.next_dialogue_id} for c in lv.choices],
      }
    )
  return {
    "id": d.id,
    "name": d.name,
    "description": d.description,
    "isStartDialogue": d.is_start_dialogue,
    "folderId": d.folder_id,
    "backgroundName": refs.background(d.background_id),
    "lines": lines,
  }


def _export_conversation(view: ConversationView, refs: _Refs) -> Dict[str, Any]:
  c = view.conversation
  return {
    "id": c.id,
    "name": c.name,
    "folderId": c.folder_id,
    "isGroupChat": c.is_group_chat,
    "participants": [
      {
        "tag": p.tag,
        "name": p.name,
        "color": p.color,
        "description": p.description,
        "moods": refs.mood_names.get(p.id, []),
      }
      for p in view.participants
    ],
    "messages": [
      {
        "characterTag": refs.tag(mv.message.character_id),
        "text": mv.message.text,
        "timestamp": mv.message.timestamp.isoformat(),
        "isRead": mv.message.is_read,
        "type": mv.message.message_type,
        "attachmentUrl": mv.message.attachment_url,
        "questions": [
          {
            "content": qv.question.content,
            "reactions": {"positive": qv.reactions.positive, "negative": qv.reactions.negative},
            "answers": [{"content": a.content, "isCorrect": a.is_correct, "order": a.order} for a in qv.answers],
          }
          for qv in mv.questions
        ],
      }
      for mv in view.messages
    ],
  }


def build_export(session: Session, project_id: str) -> Dict[str, Any]:
  """不做权限判断，调用方先 require。"""
  project = session.get(Project, project_id)
  refs = _Refs(session, project_id)
  folders = session.exec(
    select(Folder).where(Folder.project_id == project_id).order_by(Folder.created_at, Folder.id)
  ).all()
  dialogues = load_dialogues(session, project_id, order_by_name=False)
  conversations = load_conversations(session, project_id, order_by_name=False)

  known = {v.dialogue.id for v in dialogues}
  dangling = sum(
    1
    for v in dialogues
    for lv in v.lines
    for c in lv.choices
    if c.next_dialogue_id and c.next_dialogue_id not in known
  )
  if dangling:
    logger.info("project %s: exporting %d choice(s) with dangling nextDialogueId", project_id, dangling)

  return {
    "project": {"id": project.id, "name": project.name, "description": project.description},
    "folders": [{"id": f.id, "name": f.name, "kind": f.kind, "parentId": f.parent_id} for f in folders],
    "dialogues": [_export_dialogue(v, refs) for v in dialogues],
    "conversations": [_export_conversation(v, refs) for v in conversations],
  }


def export_project(session: Session, user_id: str, project_id: str) -> Dict[str, Any]:
  require(session, user_id, project_id, Capability.read)
  return build_export(session, project_id)


def render_export(document: Dict[str, Any]) -> str:
  return json.dumps(document, ensure_ascii=False, indent=2)
