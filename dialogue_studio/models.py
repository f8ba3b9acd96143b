from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def new_id() -> str:
  return uuid4().hex


class Role(str, Enum):
  owner = "owner"
  admin = "admin"
  member = "member"
  viewer = "viewer"


class FolderKind(str, Enum):
  dialogue = "dialogue"
  sms = "sms"


class DisplayMode(str, Enum):
  single = "single"  # displayed_character / displayed_mood
  dual = "dual"  # left_* / right_*


class MessageType(str, Enum):
  text = "text"
  image = "image"
  emoji = "emoji"


class User(SQLModel, table=True):
  """身份库里的用户；密码和 token 不归这里管。"""
  id: Optional[str] = Field(default=None, primary_key=True)
  email: str = Field(index=True, unique=True)
  name: str = ""
  created_at: datetime = Field(default_factory=datetime.utcnow)


class Project(SQLModel, table=True):
  id: Optional[str] = Field(default=None, primary_key=True)
  name: str
  description: Optional[str] = None
  user_id: str = Field(foreign_key="user.id")  # 创建者
  created_at: datetime = Field(default_factory=datetime.utcnow)
  updated_at: datetime = Field(default_factory=datetime.utcnow)


class ProjectMember(SQLModel, table=True):
  __tablename__ = "project_member"
  __table_args__ = (UniqueConstraint("project_id", "user_id"),)

  id: Optional[str] = Field(default=None, primary_key=True)
  project_id: str = Field(foreign_key="project.id", index=True)
  user_id: str = Field(foreign_key="user.id", index=True)
  role: str = Role.member.value  # owner | admin | member | viewer
  created_at: datetime = Field(default_factory=datetime.utcnow)


class Folder(SQLModel, table=True):
  id: Optional[str] = Field(default=None, primary_key=True)
  project_id: str = Field(foreign_key="project.id", index=True)
  parent_id: Optional[str] = Field(default=None, foreign_key="folder.id")
  name: str
  description: Optional[str] = None
  kind: str = FolderKind.dialogue.value  # dialogue | sms
  created_at: datetime = Field(default_factory=datetime.utcnow)
  updated_at: datetime = Field(default_factory=datetime.utcnow)


class Character(SQLModel, table=True):
  id: Optional[str] = Field(default=None, primary_key=True)
  project_id: str = Field(foreign_key="project.id", index=True)
  name: str
  tag: str  # 导出时的外部 key
  color: Optional[str] = None
  description: Optional[str] = None  # 富文本
  created_at: datetime = Field(default_factory=datetime.utcnow)
  updated_at: datetime = Field(default_factory=datetime.utcnow)


class Mood(SQLModel, table=True):
  id: Optional[str] = Field(default=None, primary_key=True)
  character_id: str = Field(foreign_key="character.id", index=True)
  name: str
  created_at: datetime = Field(default_factory=datetime.utcnow)


class Background(SQLModel, table=True):
  id: Optional[str] = Field(default=None, primary_key=True)
  project_id: str = Field(foreign_key="project.id", index=True)
  name: str
  image_url: str
  created_at: datetime = Field(default_factory=datetime.utcnow)


class Dialogue(SQLModel, table=True):
  id: Optional[str] = Field(default=None, primary_key=True)
  project_id: str = Field(foreign_key="project.id", index=True)
  folder_id: Optional[str] = Field(default=None, foreign_key="folder.id")
  background_id: Optional[str] = Field(default=None, foreign_key="background.id")
  name: str
  description: Optional[str] = None
  is_start_dialogue: bool = False
  created_at: datetime = Field(default_factory=datetime.utcnow)
  updated_at: datetime = Field(default_factory=datetime.utcnow)


class DialogueLine(SQLModel, table=True):
  __tablename__ = "dialogue_line"

  id: Optional[str] = Field(default=None, primary_key=True)
  dialogue_id: str = Field(foreign_key="dialogue.id", index=True)
  character_id: Optional[str] = Field(default=None, foreign_key="character.id")  # 说话人
  text: str
  order: int = 0  # 调用方给的顺序，原样存，不重排
  display_mode: str = DisplayMode.single.value
  displayed_character_id: Optional[str] = Field(default=None, foreign_key="character.id")
  displayed_mood_id: Optional[str] = Field(default=None, foreign_key="mood.id")
  left_character_id: Optional[str] = Field(default=None, foreign_key="character.id")
  left_mood_id: Optional[str] = Field(default=None, foreign_key="mood.id")
  right_character_id: Optional[str] = Field(default=None, foreign_key="character.id")
  right_mood_id: Optional[str] = Field(default=None, foreign_key="mood.id")
  created_at: datetime = Field(default_factory=datetime.utcnow)


class DialogueChoice(SQLModel, table=True):
  __tablename__ = "dialogue_choice"

  id: Optional[str] = Field(default=None, primary_key=True)
  line_id: str = Field(foreign_key="dialogue_line.id", index=True)
  text: str
  # 不建外键：目标对话被删后保留悬空引用，导出时原样带出
  next_dialogue_id: Optional[str] = None
  created_at: datetime = Field(default_factory=datetime.utcnow)


class Conversation(SQLModel, table=True):
  id: Optional[str] = Field(default=None, primary_key=True)
  project_id: str = Field(foreign_key="project.id", index=True)
  folder_id: Optional[str] = Field(default=None, foreign_key="folder.id")
  name: str
  is_group_chat: bool = False
  created_at: datetime = Field(default_factory=datetime.utcnow)
  updated_at: datetime = Field(default_factory=datetime.utcnow)


class ConversationParticipant(SQLModel, table=True):
  __tablename__ = "conversation_participant"

  conversation_id: str = Field(foreign_key="conversation.id", primary_key=True)
  character_id: str = Field(foreign_key="character.id", primary_key=True)
  created_at: datetime = Field(default_factory=datetime.utcnow)


class Message(SQLModel, table=True):
  id: Optional[str] = Field(default=None, primary_key=True)
  conversation_id: str = Field(foreign_key="conversation.id", index=True)
  character_id: Optional[str] = Field(default=None, foreign_key="character.id")  # 为空 = 旁白 / 系统
  text: str
  timestamp: datetime = Field(default_factory=datetime.utcnow)
  is_read: bool = False
  message_type: str = MessageType.text.value  # text | image | emoji
  attachment_url: Optional[str] = None
  created_at: datetime = Field(default_factory=datetime.utcnow)


class Question(SQLModel, table=True):
  id: Optional[str] = Field(default=None, primary_key=True)
  message_id: str = Field(foreign_key="message.id", index=True)
  content: str
  positive_reactions: str = "[]"  # JSON: ["...", ...]
  negative_reactions: str = "[]"  # JSON: ["...", ...]
  created_at: datetime = Field(default_factory=datetime.utcnow)


class Answer(SQLModel, table=True):
  id: Optional[str] = Field(default=None, primary_key=True)
  question_id: str = Field(foreign_key="question.id", index=True)
  content: str
  is_correct: bool = False
  order: int = 0
  created_at: datetime = Field(default_factory=datetime.utcnow)
