from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel
from sqlmodel import SQLModel


# ---------- 用户 / 项目 / 成员 ----------


class UserCreateRequest(BaseModel):
  email: str
  name: str = ""


class UserOut(SQLModel):
  id: str
  email: str
  name: str


class ProjectRequest(BaseModel):
  name: str
  description: Optional[str] = None


class ProjectOut(SQLModel):
  id: str
  name: str
  description: Optional[str] = None
  user_id: str
  created_at: datetime
  updated_at: datetime


class MemberAddRequest(BaseModel):
  email: str
  role: str = "member"  # admin | member | viewer


class MemberRoleRequest(BaseModel):
  role: str


class MemberOut(BaseModel):
  id: str
  project_id: str
  user_id: str
  role: str
  created_at: datetime
  user: Optional[UserOut] = None


# ---------- 素材 ----------


class CharacterRequest(BaseModel):
  name: str
  tag: str
  color: Optional[str] = None
  description: Optional[str] = None


class CharacterOut(SQLModel):
  id: str
  project_id: str
  name: str
  tag: str
  color: Optional[str] = None
  description: Optional[str] = None


class MoodRequest(BaseModel):
  name: str


class MoodOut(SQLModel):
  id: str
  character_id: str
  name: str


class BackgroundCreateRequest(BaseModel):
  name: str
  image_url: str


class BackgroundUpdateRequest(BaseModel):
  name: Optional[str] = None
  image_url: Optional[str] = None


class BackgroundOut(SQLModel):
  id: str
  project_id: str
  name: str
  image_url: str


# ---------- 文件夹 ----------


class FolderCreateRequest(BaseModel):
  name: str
  kind: str  # dialogue | sms
  description: Optional[str] = None
  parent_id: Optional[str] = None


class FolderUpdateRequest(BaseModel):
  # 没传的字段不动；parent_id 显式传 null 表示移到根
  name: Optional[str] = None
  description: Optional[str] = None
  parent_id: Optional[str] = None


class FolderMoveRequest(BaseModel):
  parent_id: Optional[str] = None


class MoveDialogueRequest(BaseModel):
  dialogue_id: str
  folder_id: Optional[str] = None


class MoveConversationRequest(BaseModel):
  conversation_id: str
  folder_id: Optional[str] = None


class FolderOut(BaseModel):
  id: str
  project_id: str
  parent_id: Optional[str] = None
  name: str
  description: Optional[str] = None
  kind: str
  created_at: datetime
  dialogue_count: int = 0
  conversation_count: int = 0
  child_count: int = 0


class FolderTreeOut(FolderOut):
  children: List["FolderTreeOut"] = []


# ---------- 对话 ----------


class DialogueRequest(BaseModel):
  name: Optional[str] = None
  description: Optional[str] = None
  is_start_dialogue: Optional[bool] = None
  folder_id: Optional[str] = None
  background_id: Optional[str] = None


class LineRequest(BaseModel):
  character_id: Optional[str] = None
  text: Optional[str] = None
  order: Optional[int] = None
  display_mode: Optional[str] = None  # single | dual
  displayed_character_id: Optional[str] = None
  displayed_mood_id: Optional[str] = None
  left_character_id: Optional[str] = None
  left_mood_id: Optional[str] = None
  right_character_id: Optional[str] = None
  right_mood_id: Optional[str] = None


class ChoiceRequest(BaseModel):
  text: Optional[str] = None
  next_dialogue_id: Optional[str] = None


class ChoiceOut(SQLModel):
  id: str
  line_id: str
  text: str
  next_dialogue_id: Optional[str] = None


class DisplaySlotOut(BaseModel):
  character_id: Optional[str] = None
  mood_id: Optional[str] = None


class DisplayBindingOut(BaseModel):
  mode: str
  single: Optional[DisplaySlotOut] = None
  left: Optional[DisplaySlotOut] = None
  right: Optional[DisplaySlotOut] = None


class LineOut(BaseModel):
  id: str
  dialogue_id: str
  character_id: Optional[str] = None
  text: str
  order: int
  display_mode: str
  displayed_character_id: Optional[str] = None
  displayed_mood_id: Optional[str] = None
  left_character_id: Optional[str] = None
  left_mood_id: Optional[str] = None
  right_character_id: Optional[str] = None
  right_mood_id: Optional[str] = None
  display: DisplayBindingOut
  choices: List[ChoiceOut] = []


class DialogueOut(BaseModel):
  id: str
  project_id: str
  folder_id: Optional[str] = None
  background_id: Optional[str] = None
  name: str
  description: Optional[str] = None
  is_start_dialogue: bool
  created_at: datetime
  updated_at: datetime
  lines: List[LineOut] = []


# ---------- 短信 / 测验 ----------


class ConversationRequest(BaseModel):
  name: Optional[str] = None
  is_group_chat: Optional[bool] = None
  folder_id: Optional[str] = None
  participant_ids: Optional[List[str]] = None


class MessageRequest(BaseModel):
  character_id: Optional[str] = None
  text: Optional[str] = None
  timestamp: Optional[datetime] = None
  is_read: Optional[bool] = None
  message_type: Optional[str] = None  # text | image | emoji
  attachment_url: Optional[str] = None


class AnswerIn(BaseModel):
  content: str = ""
  is_correct: bool = False
  order: Optional[int] = None


class ReactionsIn(BaseModel):
  positive: List[str] = []
  negative: List[str] = []


class QuestionRequest(BaseModel):
  content: str = ""
  answers: List[AnswerIn] = []
  reactions: ReactionsIn = ReactionsIn()


class AnswerOut(SQLModel):
  id: str
  content: str
  is_correct: bool
  order: int


class ReactionsOut(BaseModel):
  positive: List[str]
  negative: List[str]


class QuestionOut(BaseModel):
  id: str
  message_id: str
  content: str
  reactions: ReactionsOut
  answers: List[AnswerOut]


class MessageOut(BaseModel):
  id: str
  conversation_id: str
  character_id: Optional[str] = None
  text: str
  timestamp: datetime
  is_read: bool
  message_type: str
  attachment_url: Optional[str] = None
  questions: List[QuestionOut] = []


class ConversationOut(BaseModel):
  id: str
  project_id: str
  folder_id: Optional[str] = None
  name: str
  is_group_chat: bool
  created_at: datetime
  updated_at: datetime
  participants: List[CharacterOut] = []
  messages: List[MessageOut] = []


FolderTreeOut.model_rebuild()
