"""角色 / 情绪 / 背景：对话行和短信引用的素材。"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_
from sqlmodel import Session, select

from .access import Capability, require
from .db import rollback_on_error
from .errors import NotFound, ValidationFailure
from .models import (
  Background,
  Character,
  ConversationParticipant,
  Dialogue,
  DialogueLine,
  Message,
  Mood,
  new_id,
)

logger = logging.getLogger(__name__)

_LINE_CHARACTER_FIELDS = ("character_id", "displayed_character_id", "left_character_id", "right_character_id")
_LINE_MOOD_FIELDS = ("displayed_mood_id", "left_mood_id", "right_mood_id")


def _required(value: Optional[str], code: str) -> str:
  v = (value or "").strip()
  if not v:
    raise ValidationFailure(code)
  return v


def _optional(value: Optional[str]) -> Optional[str]:
  v = (value or "").strip()
  return v or None


# 同项目引用校验，给 dialogues / sms 用


def project_character(session: Session, project_id: str, character_id: Optional[str], code: str = "character_not_found") -> Optional[Character]:
  if not character_id:
    return None
  character = session.get(Character, character_id)
  if not character or character.project_id != project_id:
    raise NotFound(code)
  return character


def project_background(session: Session, project_id: str, background_id: Optional[str]) -> Optional[Background]:
  if not background_id:
    return None
  background = session.get(Background, background_id)
  if not background or background.project_id != project_id:
    raise NotFound("background_not_found")
  return background


def character_mood(session: Session, mood_id: Optional[str], character_id: Optional[str]) -> Optional[Mood]:
  """情绪必须属于它所搭配显示的那个角色。"""
  if not mood_id:
    return None
  mood = session.get(Mood, mood_id)
  if not mood:
    raise NotFound("mood_not_found")
  if mood.character_id != character_id:
    raise ValidationFailure("mood_character_mismatch")
  return mood


# Character


def _load_character(session: Session, user_id: str, character_id: str, capability: Capability) -> Character:
  character = session.get(Character, character_id)
  if not character:
    raise NotFound("character_not_found")
  require(session, user_id, character.project_id, capability)
  return character


def list_characters(session: Session, user_id: str, project_id: str) -> List[Character]:
  require(session, user_id, project_id, Capability.read)
  return list(
    session.exec(select(Character).where(Character.project_id == project_id).order_by(Character.name, Character.id)).all()
  )


def get_character(session: Session, user_id: str, character_id: str) -> Character:
  return _load_character(session, user_id, character_id, Capability.read)


def create_character(
  session: Session,
  user_id: str,
  project_id: str,
  name: str,
  tag: str,
  color: Optional[str] = None,
  description: Optional[str] = None,
) -> Character:
  require(session, user_id, project_id, Capability.edit_content)
  character = Character(
    id=new_id(),
    project_id=project_id,
    name=_required(name, "name_required"),
    tag=_required(tag, "tag_required"),
    color=_optional(color),
    description=description or None,
  )
  session.add(character)
  session.commit()
  session.refresh(character)
  logger.info("project %s: created character %s (%s)", project_id, character.id, character.tag)
  return character


def update_character(
  session: Session,
  user_id: str,
  character_id: str,
  name: str,
  tag: str,
  color: Optional[str] = None,
  description: Optional[str] = None,
) -> Character:
  character = _load_character(session, user_id, character_id, Capability.edit_content)
  with rollback_on_error(session):
    character.name = _required(name, "name_required")
    character.tag = _required(tag, "tag_required")
    character.color = _optional(color)
    character.description = description or None
  character.updated_at = datetime.utcnow()
  session.add(character)
  session.commit()
  session.refresh(character)
  return character


def delete_character(session: Session, user_id: str, character_id: str) -> None:
  character = _load_character(session, user_id, character_id, Capability.edit_content)
  project_id = character.project_id
  purge_character(session, character)
  session.commit()
  logger.info("project %s: deleted character %s", project_id, character_id)


def purge_character(session: Session, character: Character) -> None:
  """删角色：清掉对话行 / 短信里对它和它情绪的引用，再删情绪和本体。不提交。"""
  moods = session.exec(select(Mood).where(Mood.character_id == character.id)).all()
  mood_ids = [m.id for m in moods]

  line_filters = [getattr(DialogueLine, f) == character.id for f in _LINE_CHARACTER_FIELDS]
  if mood_ids:
    line_filters += [getattr(DialogueLine, f).in_(mood_ids) for f in _LINE_MOOD_FIELDS]
  for line in session.exec(select(DialogueLine).where(or_(*line_filters))).all():
    for f in _LINE_CHARACTER_FIELDS:
      if getattr(line, f) == character.id:
        setattr(line, f, None)
    for f in _LINE_MOOD_FIELDS:
      if getattr(line, f) in mood_ids:
        setattr(line, f, None)
    session.add(line)

  for message in session.exec(select(Message).where(Message.character_id == character.id)).all():
    message.character_id = None
    session.add(message)
  for p in session.exec(
    select(ConversationParticipant).where(ConversationParticipant.character_id == character.id)
  ).all():
    session.delete(p)
  session.flush()

  for mood in moods:
    session.delete(mood)
  session.flush()
  session.delete(character)
  session.flush()


# Mood


def list_moods(session: Session, user_id: str, character_id: str) -> List[Mood]:
  _load_character(session, user_id, character_id, Capability.read)
  return list(session.exec(select(Mood).where(Mood.character_id == character_id).order_by(Mood.name, Mood.id)).all())


def create_mood(session: Session, user_id: str, character_id: str, name: str) -> Mood:
  _load_character(session, user_id, character_id, Capability.edit_content)
  mood = Mood(id=new_id(), character_id=character_id, name=_required(name, "name_required"))
  session.add(mood)
  session.commit()
  session.refresh(mood)
  return mood


def _load_mood(session: Session, user_id: str, mood_id: str) -> Mood:
  mood = session.get(Mood, mood_id)
  if not mood:
    raise NotFound("mood_not_found")
  _load_character(session, user_id, mood.character_id, Capability.edit_content)
  return mood


def update_mood(session: Session, user_id: str, mood_id: str, name: str) -> Mood:
  mood = _load_mood(session, user_id, mood_id)
  mood.name = _required(name, "name_required")
  session.add(mood)
  session.commit()
  session.refresh(mood)
  return mood


def delete_mood(session: Session, user_id: str, mood_id: str) -> None:
  mood = _load_mood(session, user_id, mood_id)
  lines = session.exec(
    select(DialogueLine).where(or_(*[getattr(DialogueLine, f) == mood.id for f in _LINE_MOOD_FIELDS]))
  ).all()
  for line in lines:
    for f in _LINE_MOOD_FIELDS:
      if getattr(line, f) == mood.id:
        setattr(line, f, None)
    session.add(line)
  session.flush()
  session.delete(mood)
  session.commit()


# Background


def _load_background(session: Session, user_id: str, background_id: str, capability: Capability) -> Background:
  background = session.get(Background, background_id)
  if not background:
    raise NotFound("background_not_found")
  require(session, user_id, background.project_id, capability)
  return background


def list_backgrounds(session: Session, user_id: str, project_id: str) -> List[Background]:
  require(session, user_id, project_id, Capability.read)
  return list(
    session.exec(select(Background).where(Background.project_id == project_id).order_by(Background.name, Background.id)).all()
  )


def create_background(session: Session, user_id: str, project_id: str, name: str, image_url: str) -> Background:
  require(session, user_id, project_id, Capability.edit_content)
  background = Background(
    id=new_id(),
    project_id=project_id,
    name=_required(name, "name_required"),
    image_url=_required(image_url, "image_url_required"),
  )
  session.add(background)
  session.commit()
  session.refresh(background)
  return background


def update_background(
  session: Session,
  user_id: str,
  background_id: str,
  name: Optional[str] = None,
  image_url: Optional[str] = None,
) -> Background:
  background = _load_background(session, user_id, background_id, Capability.edit_content)
  # 只改传了的字段
  with rollback_on_error(session):
    if name is not None:
      background.name = _required(name, "name_required")
    if image_url is not None:
      background.image_url = _required(image_url, "image_url_required")
  session.add(background)
  session.commit()
  session.refresh(background)
  return background


def delete_background(session: Session, user_id: str, background_id: str) -> None:
  background = _load_background(session, user_id, background_id, Capability.edit_content)
  purge_background(session, background)
  session.commit()


def purge_background(session: Session, background: Background) -> None:
  for dialogue in session.exec(select(Dialogue).where(Dialogue.background_id == background.id)).all():
    dialogue.background_id = None
    session.add(dialogue)
  session.flush()
  session.delete(background)
  session.flush()
