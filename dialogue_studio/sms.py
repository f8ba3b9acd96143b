"""模拟短信会话：参与角色、按时间排的消息，消息上挂测验题（见 quiz）。"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlmodel import Session, select

from .access import Capability, require
from .catalog import project_character
from .db import commit_or_not_found, rollback_on_error
from .errors import NotFound, ValidationFailure
from .folders import project_folder
from .models import Character, Conversation, ConversationParticipant, FolderKind, Message, MessageType, new_id
from .quiz import QuestionView, load_questions, purge_questions

logger = logging.getLogger(__name__)

MESSAGE_FIELDS = ("character_id", "text", "timestamp", "is_read", "message_type", "attachment_url")


@dataclass
class MessageView:
  message: Message
  questions: List[QuestionView] = field(default_factory=list)


@dataclass
class ConversationView:
  conversation: Conversation
  participants: List[Character] = field(default_factory=list)
  messages: List[MessageView] = field(default_factory=list)


def parse_message_type(value: Optional[str]) -> MessageType:
  try:
    return MessageType((value or MessageType.text.value).strip().lower())
  except ValueError:
    raise ValidationFailure("invalid_message_type")


# Conversation


def _load_conversation(session: Session, user_id: str, conversation_id: str, capability: Capability) -> Conversation:
  conversation = session.get(Conversation, conversation_id)
  if not conversation:
    raise NotFound("conversation_not_found")
  require(session, user_id, conversation.project_id, capability)
  return conversation


def _set_participants(session: Session, conversation: Conversation, participant_ids: Sequence[str]) -> None:
  wanted: List[str] = []
  for cid in participant_ids:
    if cid and cid not in wanted:
      project_character(session, conversation.project_id, cid, "participant_not_found")
      wanted.append(cid)
  for p in session.exec(
    select(ConversationParticipant).where(ConversationParticipant.conversation_id == conversation.id)
  ).all():
    if p.character_id in wanted:
      wanted.remove(p.character_id)
    else:
      session.delete(p)
  for cid in wanted:
    session.add(ConversationParticipant(conversation_id=conversation.id, character_id=cid))


def _apply_conversation_changes(session: Session, conversation: Conversation, changes: Mapping[str, Any]) -> None:
  if "name" in changes:
    conversation.name = changes["name"]
  conversation.name = (conversation.name or "").strip()
  if not conversation.name:
    raise ValidationFailure("name_required")
  if "is_group_chat" in changes:
    conversation.is_group_chat = bool(changes["is_group_chat"])
  if "folder_id" in changes:
    conversation.folder_id = changes["folder_id"] or None
  project_folder(session, conversation.project_id, conversation.folder_id, FolderKind.sms)


def create_conversation(session: Session, user_id: str, project_id: str, changes: Mapping[str, Any]) -> Conversation:
  require(session, user_id, project_id, Capability.edit_content)
  conversation = Conversation(id=new_id(), project_id=project_id, name="")
  _apply_conversation_changes(session, conversation, changes)
  participant_ids = changes.get("participant_ids") or []
  for cid in participant_ids:
    project_character(session, project_id, cid, "participant_not_found")
  session.add(conversation)
  session.flush()
  _set_participants(session, conversation, participant_ids)
  commit_or_not_found(session, "reference_not_found")
  session.refresh(conversation)
  logger.info("project %s: created conversation %s", project_id, conversation.id)
  return conversation


def update_conversation(session: Session, user_id: str, conversation_id: str, changes: Mapping[str, Any]) -> Conversation:
  conversation = _load_conversation(session, user_id, conversation_id, Capability.edit_content)
  with rollback_on_error(session):
    _apply_conversation_changes(session, conversation, changes)
    if changes.get("participant_ids") is not None:
      _set_participants(session, conversation, changes["participant_ids"])
  conversation.updated_at = datetime.utcnow()
  session.add(conversation)
  commit_or_not_found(session, "conversation_not_found")
  session.refresh(conversation)
  return conversation


def delete_conversation(session: Session, user_id: str, conversation_id: str) -> None:
  conversation = _load_conversation(session, user_id, conversation_id, Capability.edit_content)
  project_id = conversation.project_id
  purge_conversation(session, conversation)
  commit_or_not_found(session, "conversation_not_found")
  logger.info("project %s: deleted conversation %s", project_id, conversation_id)


def purge_conversation(session: Session, conversation: Conversation) -> None:
  """删会话：题目 / 答案 -> 消息 -> 参与者 -> 会话本身。不提交。"""
  messages = session.exec(select(Message).where(Message.conversation_id == conversation.id)).all()
  purge_questions(session, [m.id for m in messages])
  for m in messages:
    session.delete(m)
  for p in session.exec(
    select(ConversationParticipant).where(ConversationParticipant.conversation_id == conversation.id)
  ).all():
    session.delete(p)
  session.flush()
  session.delete(conversation)
  session.flush()


def load_conversations(
  session: Session, project_id: str, order_by_name: bool = True, only_id: Optional[str] = None
) -> List[ConversationView]:
  """不做权限判断，调用方先 require。"""
  stmt = select(Conversation).where(Conversation.project_id == project_id)
  if only_id:
    stmt = stmt.where(Conversation.id == only_id)
  if order_by_name:
    stmt = stmt.order_by(Conversation.name, Conversation.created_at, Conversation.id)
  else:
    stmt = stmt.order_by(Conversation.created_at, Conversation.id)
  conversations = session.exec(stmt).all()
  ids = [c.id for c in conversations]
  if not ids:
    return []

  participants: Dict[str, List[Character]] = {}
  rows = session.exec(
    select(ConversationParticipant, Character)
    .where(ConversationParticipant.conversation_id.in_(ids), ConversationParticipant.character_id == Character.id)
    .order_by(ConversationParticipant.created_at, Character.id)
  ).all()
  for link, character in rows:
    participants.setdefault(link.conversation_id, []).append(character)

  messages = session.exec(
    select(Message)
    .where(Message.conversation_id.in_(ids))
    .order_by(Message.timestamp, Message.created_at, Message.id)
  ).all()
  questions = load_questions(session, [m.id for m in messages])
  by_conversation: Dict[str, List[MessageView]] = {}
  for m in messages:
    by_conversation.setdefault(m.conversation_id, []).append(MessageView(message=m, questions=questions.get(m.id, [])))

  return [
    ConversationView(conversation=c, participants=participants.get(c.id, []), messages=by_conversation.get(c.id, []))
    for c in conversations
  ]


def list_conversations(session: Session, user_id: str, project_id: str) -> List[ConversationView]:
  require(session, user_id, project_id, Capability.read)
  return load_conversations(session, project_id)


def get_conversation(session: Session, user_id: str, conversation_id: str) -> ConversationView:
  conversation = _load_conversation(session, user_id, conversation_id, Capability.read)
  views = load_conversations(session, conversation.project_id, only_id=conversation.id)
  return views[0] if views else ConversationView(conversation=conversation)


# Message


def _load_message(session: Session, user_id: str, message_id: str):
  message = session.get(Message, message_id)
  if not message:
    raise NotFound("message_not_found")
  conversation = _load_conversation(session, user_id, message.conversation_id, Capability.edit_content)
  return message, conversation


def _apply_message_changes(session: Session, project_id: str, message: Message, changes: Mapping[str, Any]) -> None:
  for key in MESSAGE_FIELDS:
    if key in changes and not (key == "timestamp" and changes[key] is None):
      setattr(message, key, changes[key])
  message.text = (message.text or "").strip()
  if not message.text:
    raise ValidationFailure("text_required")
  message.message_type = parse_message_type(message.message_type).value
  message.is_read = bool(message.is_read)
  message.attachment_url = (message.attachment_url or "").strip() or None
  speaker = project_character(session, project_id, message.character_id or None)
  message.character_id = speaker.id if speaker else None
  if message.timestamp is None:
    message.timestamp = datetime.utcnow()
  elif message.timestamp.tzinfo is not None:
    # 统一存 naive UTC
    message.timestamp = message.timestamp.astimezone(timezone.utc).replace(tzinfo=None)


def add_message(session: Session, user_id: str, conversation_id: str, changes: Mapping[str, Any]) -> Message:
  conversation = _load_conversation(session, user_id, conversation_id, Capability.edit_content)
  message = Message(id=new_id(), conversation_id=conversation.id, text="")
  _apply_message_changes(session, conversation.project_id, message, changes)
  session.add(message)
  commit_or_not_found(session, "conversation_not_found")
  session.refresh(message)
  return message


def update_message(session: Session, user_id: str, message_id: str, changes: Mapping[str, Any]) -> Message:
  message, conversation = _load_message(session, user_id, message_id)
  with rollback_on_error(session):
    _apply_message_changes(session, conversation.project_id, message, changes)
  session.add(message)
  commit_or_not_found(session, "message_not_found")
  session.refresh(message)
  return message


def delete_message(session: Session, user_id: str, message_id: str) -> None:
  message, _ = _load_message(session, user_id, message_id)
  purge_questions(session, [message.id])
  session.delete(message)
  commit_or_not_found(session, "message_not_found")


def message_view(session: Session, message: Message) -> MessageView:
  return MessageView(message=message, questions=load_questions(session, [message.id]).get(message.id, []))
