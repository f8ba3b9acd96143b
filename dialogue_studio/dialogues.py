"""对话图：对话是节点，台词上的选项（next_dialogue_id）是有向边。

边可以成环（回到枢纽对话是正常写法），这里不做任何环检测；
删除对话时别的对话里指向它的选项保持原样，导出时原样带出。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlmodel import Session, select

from .access import Capability, require
from .catalog import character_mood, project_background, project_character
from .db import commit_or_not_found, rollback_on_error
from .errors import NotFound, ValidationFailure
from .folders import project_folder
from .models import Dialogue, DialogueChoice, DialogueLine, DisplayMode, FolderKind, new_id

logger = logging.getLogger(__name__)

DIALOGUE_FIELDS = ("name", "description", "is_start_dialogue", "folder_id", "background_id")
LINE_FIELDS = (
  "character_id",
  "text",
  "order",
  "display_mode",
  "displayed_character_id",
  "displayed_mood_id",
  "left_character_id",
  "left_mood_id",
  "right_character_id",
  "right_mood_id",
)


@dataclass
class LineView:
  line: DialogueLine
  choices: List[DialogueChoice] = field(default_factory=list)


@dataclass
class DialogueView:
  dialogue: Dialogue
  lines: List[LineView] = field(default_factory=list)


@dataclass(frozen=True)
class DisplaySlot:
  character_id: Optional[str] = None
  mood_id: Optional[str] = None


@dataclass(frozen=True)
class DisplayBinding:
  mode: DisplayMode
  single: Optional[DisplaySlot] = None
  left: Optional[DisplaySlot] = None
  right: Optional[DisplaySlot] = None


def parse_display_mode(value: Optional[str]) -> DisplayMode:
  try:
    return DisplayMode((value or DisplayMode.single.value).strip().lower())
  except ValueError:
    raise ValidationFailure("invalid_display_mode")


def effective_display(line: DialogueLine) -> DisplayBinding:
  """读取时的显示绑定；单人模式没指定显示角色时就显示说话人（不落库）。"""
  mode = parse_display_mode(line.display_mode)
  if mode == DisplayMode.dual:
    return DisplayBinding(
      mode=mode,
      left=DisplaySlot(line.left_character_id, line.left_mood_id),
      right=DisplaySlot(line.right_character_id, line.right_mood_id),
    )
  return DisplayBinding(
    mode=mode,
    single=DisplaySlot(line.displayed_character_id or line.character_id, line.displayed_mood_id),
  )


def _clean_text(value: Optional[str], code: str) -> str:
  text = (value or "").strip()
  if not text:
    raise ValidationFailure(code)
  return text


# Dialogue


def _load_dialogue(session: Session, user_id: str, dialogue_id: str, capability: Capability) -> Dialogue:
  dialogue = session.get(Dialogue, dialogue_id)
  if not dialogue:
    raise NotFound("dialogue_not_found")
  require(session, user_id, dialogue.project_id, capability)
  return dialogue


def _apply_dialogue_changes(session: Session, dialogue: Dialogue, changes: Mapping[str, Any]) -> None:
  for key in DIALOGUE_FIELDS:
    if key in changes:
      setattr(dialogue, key, changes[key])
  dialogue.name = _clean_text(dialogue.name, "name_required")
  dialogue.description = (dialogue.description or "").strip() or None
  dialogue.is_start_dialogue = bool(dialogue.is_start_dialogue)
  dialogue.folder_id = dialogue.folder_id or None
  dialogue.background_id = dialogue.background_id or None
  project_folder(session, dialogue.project_id, dialogue.folder_id, FolderKind.dialogue)
  project_background(session, dialogue.project_id, dialogue.background_id)


def create_dialogue(session: Session, user_id: str, project_id: str, changes: Mapping[str, Any]) -> Dialogue:
  require(session, user_id, project_id, Capability.edit_content)
  dialogue = Dialogue(id=new_id(), project_id=project_id, name="")
  _apply_dialogue_changes(session, dialogue, changes)
  session.add(dialogue)
  commit_or_not_found(session, "reference_not_found")
  session.refresh(dialogue)
  logger.info("project %s: created dialogue %s", project_id, dialogue.id)
  return dialogue


def update_dialogue(session: Session, user_id: str, dialogue_id: str, changes: Mapping[str, Any]) -> Dialogue:
  dialogue = _load_dialogue(session, user_id, dialogue_id, Capability.edit_content)
  with rollback_on_error(session):
    _apply_dialogue_changes(session, dialogue, changes)
  dialogue.updated_at = datetime.utcnow()
  session.add(dialogue)
  commit_or_not_found(session, "dialogue_not_found")
  session.refresh(dialogue)
  return dialogue


def delete_dialogue(session: Session, user_id: str, dialogue_id: str) -> None:
  dialogue = _load_dialogue(session, user_id, dialogue_id, Capability.edit_content)
  project_id = dialogue.project_id
  purge_dialogue(session, dialogue)
  commit_or_not_found(session, "dialogue_not_found")
  logger.info("project %s: deleted dialogue %s", project_id, dialogue_id)


def purge_dialogue(session: Session, dialogue: Dialogue) -> None:
  """删对话和它的台词、选项。其它对话里指向它的选项不动。不提交。"""
  lines = session.exec(select(DialogueLine).where(DialogueLine.dialogue_id == dialogue.id)).all()
  line_ids = [line.id for line in lines]
  if line_ids:
    for choice in session.exec(select(DialogueChoice).where(DialogueChoice.line_id.in_(line_ids))).all():
      session.delete(choice)
    session.flush()
  for line in lines:
    session.delete(line)
  session.flush()
  session.delete(dialogue)
  session.flush()


def _ordered_lines(session: Session, dialogue_ids: List[str]) -> Dict[str, List[LineView]]:
  """按 order 排，order 相同按插入时间、id 稳定排序。"""
  if not dialogue_ids:
    return {}
  lines = session.exec(
    select(DialogueLine)
    .where(DialogueLine.dialogue_id.in_(dialogue_ids))
    .order_by(DialogueLine.order, DialogueLine.created_at, DialogueLine.id)
  ).all()
  choices_by_line: Dict[str, List[DialogueChoice]] = {}
  line_ids = [line.id for line in lines]
  if line_ids:
    choices = session.exec(
      select(DialogueChoice)
      .where(DialogueChoice.line_id.in_(line_ids))
      .order_by(DialogueChoice.created_at, DialogueChoice.id)
    ).all()
    for c in choices:
      choices_by_line.setdefault(c.line_id, []).append(c)

  grouped: Dict[str, List[LineView]] = {}
  for line in lines:
    grouped.setdefault(line.dialogue_id, []).append(LineView(line=line, choices=choices_by_line.get(line.id, [])))
  return grouped


def get_dialogue(session: Session, user_id: str, dialogue_id: str) -> DialogueView:
  dialogue = _load_dialogue(session, user_id, dialogue_id, Capability.read)
  return DialogueView(dialogue=dialogue, lines=_ordered_lines(session, [dialogue.id]).get(dialogue.id, []))


def load_dialogues(session: Session, project_id: str, order_by_name: bool = True) -> List[DialogueView]:
  """不做权限判断，调用方先 require。"""
  stmt = select(Dialogue).where(Dialogue.project_id == project_id)
  if order_by_name:
    stmt = stmt.order_by(Dialogue.name, Dialogue.created_at, Dialogue.id)
  else:
    stmt = stmt.order_by(Dialogue.created_at, Dialogue.id)
  dialogues = session.exec(stmt).all()
  lines = _ordered_lines(session, [d.id for d in dialogues])
  return [DialogueView(dialogue=d, lines=lines.get(d.id, [])) for d in dialogues]


def list_dialogues(session: Session, user_id: str, project_id: str) -> List[DialogueView]:
  require(session, user_id, project_id, Capability.read)
  return load_dialogues(session, project_id)


# Line


def _load_line(session: Session, user_id: str, line_id: str, capability: Capability):
  line = session.get(DialogueLine, line_id)
  if not line:
    raise NotFound("line_not_found")
  dialogue = _load_dialogue(session, user_id, line.dialogue_id, capability)
  return line, dialogue


def _apply_line_changes(session: Session, project_id: str, line: DialogueLine, changes: Mapping[str, Any]) -> None:
  for key in LINE_FIELDS:
    if key in changes:
      setattr(line, key, changes[key])
  line.text = _clean_text(line.text, "text_required")
  if line.order is None:
    line.order = 0
  mode = parse_display_mode(line.display_mode)
  line.display_mode = mode.value

  speaker = project_character(session, project_id, line.character_id or None)
  line.character_id = speaker.id if speaker else None

  if mode == DisplayMode.single:
    displayed = project_character(session, project_id, line.displayed_character_id or None)
    line.displayed_character_id = displayed.id if displayed else None
    shown_id = line.displayed_character_id or line.character_id
    mood = character_mood(session, line.displayed_mood_id or None, shown_id)
    line.displayed_mood_id = mood.id if mood else None
    line.left_character_id = line.left_mood_id = None
    line.right_character_id = line.right_mood_id = None
  else:
    for side in ("left", "right"):
      character = project_character(session, project_id, getattr(line, f"{side}_character_id") or None)
      character_id = character.id if character else None
      mood = character_mood(session, getattr(line, f"{side}_mood_id") or None, character_id)
      setattr(line, f"{side}_character_id", character_id)
      setattr(line, f"{side}_mood_id", mood.id if mood else None)
    line.displayed_character_id = line.displayed_mood_id = None


def add_line(session: Session, user_id: str, dialogue_id: str, changes: Mapping[str, Any]) -> DialogueLine:
  dialogue = _load_dialogue(session, user_id, dialogue_id, Capability.edit_content)
  line = DialogueLine(id=new_id(), dialogue_id=dialogue.id, text="")
  _apply_line_changes(session, dialogue.project_id, line, changes)
  session.add(line)
  commit_or_not_found(session, "reference_not_found")
  session.refresh(line)
  return line


def update_line(session: Session, user_id: str, line_id: str, changes: Mapping[str, Any]) -> DialogueLine:
  line, dialogue = _load_line(session, user_id, line_id, Capability.edit_content)
  with rollback_on_error(session):
    _apply_line_changes(session, dialogue.project_id, line, changes)
  session.add(line)
  commit_or_not_found(session, "line_not_found")
  session.refresh(line)
  return line


def delete_line(session: Session, user_id: str, line_id: str) -> None:
  line, _ = _load_line(session, user_id, line_id, Capability.edit_content)
  for choice in session.exec(select(DialogueChoice).where(DialogueChoice.line_id == line.id)).all():
    session.delete(choice)
  session.flush()
  session.delete(line)
  commit_or_not_found(session, "line_not_found")


def get_line_view(session: Session, line: DialogueLine) -> LineView:
  choices = session.exec(
    select(DialogueChoice).where(DialogueChoice.line_id == line.id).order_by(DialogueChoice.created_at, DialogueChoice.id)
  ).all()
  return LineView(line=line, choices=list(choices))


# Choice


def _check_next_dialogue(session: Session, project_id: str, next_dialogue_id: Optional[str]) -> Optional[str]:
  """写入时目标必须是同项目的对话；成环不管。"""
  if not next_dialogue_id:
    return None
  target = session.get(Dialogue, next_dialogue_id)
  if not target or target.project_id != project_id:
    raise NotFound("next_dialogue_not_found")
  return target.id


def _apply_choice_changes(session: Session, project_id: str, choice: DialogueChoice, changes: Mapping[str, Any]) -> None:
  if "text" in changes:
    choice.text = changes["text"]
  choice.text = _clean_text(choice.text, "text_required")
  if "next_dialogue_id" in changes:
    choice.next_dialogue_id = _check_next_dialogue(session, project_id, changes["next_dialogue_id"])


def add_choice(session: Session, user_id: str, line_id: str, changes: Mapping[str, Any]) -> DialogueChoice:
  line, dialogue = _load_line(session, user_id, line_id, Capability.edit_content)
  choice = DialogueChoice(id=new_id(), line_id=line.id, text="")
  _apply_choice_changes(session, dialogue.project_id, choice, changes)
  session.add(choice)
  commit_or_not_found(session, "line_not_found")
  session.refresh(choice)
  return choice


def _load_choice(session: Session, user_id: str, choice_id: str):
  choice = session.get(DialogueChoice, choice_id)
  if not choice:
    raise NotFound("choice_not_found")
  _, dialogue = _load_line(session, user_id, choice.line_id, Capability.edit_content)
  return choice, dialogue


def update_choice(session: Session, user_id: str, choice_id: str, changes: Mapping[str, Any]) -> DialogueChoice:
  choice, dialogue = _load_choice(session, user_id, choice_id)
  with rollback_on_error(session):
    _apply_choice_changes(session, dialogue.project_id, choice, changes)
  session.add(choice)
  commit_or_not_found(session, "choice_not_found")
  session.refresh(choice)
  return choice


def delete_choice(session: Session, user_id: str, choice_id: str) -> None:
  choice, _ = _load_choice(session, user_id, choice_id)
  session.delete(choice)
  commit_or_not_found(session, "choice_not_found")
