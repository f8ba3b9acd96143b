# FastAPI 入口：项目 / 成员 / 素材 / 文件夹 / 对话 / 短信测验 / 导出
from __future__ import annotations

import logging
import re
from typing import List, Optional

import uvicorn
from dotenv import load_dotenv
load_dotenv()

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from . import catalog, dialogues, export, folders, members, projects, quiz, sms
from .config import get_settings
from .db import get_session, init_db
from .errors import DomainError
from .identity import register_user, resolve_user
from .models import Character, DialogueChoice, ProjectMember, User
from .schemas import (
  AnswerOut,
  BackgroundCreateRequest,
  BackgroundOut,
  BackgroundUpdateRequest,
  CharacterOut,
  CharacterRequest,
  ChoiceOut,
  ChoiceRequest,
  ConversationOut,
  ConversationRequest,
  DialogueOut,
  DialogueRequest,
  DisplayBindingOut,
  DisplaySlotOut,
  FolderCreateRequest,
  FolderMoveRequest,
  FolderOut,
  FolderTreeOut,
  FolderUpdateRequest,
  LineOut,
  LineRequest,
  MemberAddRequest,
  MemberOut,
  MemberRoleRequest,
  MessageOut,
  MessageRequest,
  MoodOut,
  MoodRequest,
  MoveConversationRequest,
  MoveDialogueRequest,
  ProjectOut,
  ProjectRequest,
  QuestionOut,
  QuestionRequest,
  ReactionsOut,
  UserCreateRequest,
  UserOut,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Dialogue Studio Backend")

app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origins,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
  init_db()


@app.exception_handler(DomainError)
def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
  return JSONResponse(status_code=exc.status_code, content={"detail": exc.code})


def current_user(request: Request, session: Session = Depends(get_session)) -> User:
  """身份由上游网关校验后放进请求头，这里只认 id。"""
  return resolve_user(session, request.headers.get(settings.user_id_header))


@app.get("/health")
def health() -> dict:
  return {"status": "ok"}


# ---------- 转换 ----------


def _member_to_out(member: ProjectMember, user: Optional[User]) -> MemberOut:
  return MemberOut(
    id=member.id,
    project_id=member.project_id,
    user_id=member.user_id,
    role=member.role,
    created_at=member.created_at,
    user=UserOut.model_validate(user, from_attributes=True) if user else None,
  )


def _folder_to_out(entry: folders.FolderEntry) -> FolderOut:
  f = entry.folder
  return FolderOut(
    id=f.id,
    project_id=f.project_id,
    parent_id=f.parent_id,
    name=f.name,
    description=f.description,
    kind=f.kind,
    created_at=f.created_at,
    dialogue_count=entry.dialogue_count,
    conversation_count=entry.conversation_count,
    child_count=entry.child_count,
  )


def _tree_to_out(node: folders.FolderNode) -> FolderTreeOut:
  return FolderTreeOut(
    **_folder_to_out(node.entry).model_dump(),
    children=[_tree_to_out(c) for c in node.children],
  )


def _slot_out(slot: Optional[dialogues.DisplaySlot]) -> Optional[DisplaySlotOut]:
  if slot is None:
    return None
  return DisplaySlotOut(character_id=slot.character_id, mood_id=slot.mood_id)


def _choice_to_out(choice: DialogueChoice) -> ChoiceOut:
  return ChoiceOut.model_validate(choice, from_attributes=True)


def _line_to_out(view: dialogues.LineView) -> LineOut:
  line = view.line
  binding = dialogues.effective_display(line)
  return LineOut(
    id=line.id,
    dialogue_id=line.dialogue_id,
    character_id=line.character_id,
    text=line.text,
    order=line.order,
    display_mode=line.display_mode,
    displayed_character_id=line.displayed_character_id,
    displayed_mood_id=line.displayed_mood_id,
    left_character_id=line.left_character_id,
    left_mood_id=line.left_mood_id,
    right_character_id=line.right_character_id,
    right_mood_id=line.right_mood_id,
    display=DisplayBindingOut(
      mode=binding.mode.value,
      single=_slot_out(binding.single),
      left=_slot_out(binding.left),
      right=_slot_out(binding.right),
    ),
    choices=[_choice_to_out(c) for c in view.choices],
  )


def _dialogue_to_out(view: dialogues.DialogueView) -> DialogueOut:
  d = view.dialogue
  return DialogueOut(
    id=d.id,
    project_id=d.project_id,
    folder_id=d.folder_id,
    background_id=d.background_id,
    name=d.name,
    description=d.description,
    is_start_dialogue=d.is_start_dialogue,
    created_at=d.created_at,
    updated_at=d.updated_at,
    lines=[_line_to_out(lv) for lv in view.lines],
  )


def _question_to_out(view: quiz.QuestionView) -> QuestionOut:
  q = view.question
  return QuestionOut(
    id=q.id,
    message_id=q.message_id,
    content=q.content,
    reactions=ReactionsOut(positive=view.reactions.positive, negative=view.reactions.negative),
    answers=[AnswerOut.model_validate(a, from_attributes=True) for a in view.answers],
  )


def _message_to_out(view: sms.MessageView) -> MessageOut:
  m = view.message
  return MessageOut(
    id=m.id,
    conversation_id=m.conversation_id,
    character_id=m.character_id,
    text=m.text,
    timestamp=m.timestamp,
    is_read=m.is_read,
    message_type=m.message_type,
    attachment_url=m.attachment_url,
    questions=[_question_to_out(q) for q in view.questions],
  )


def _conversation_to_out(view: sms.ConversationView) -> ConversationOut:
  c = view.conversation
  return ConversationOut(
    id=c.id,
    project_id=c.project_id,
    folder_id=c.folder_id,
    name=c.name,
    is_group_chat=c.is_group_chat,
    created_at=c.created_at,
    updated_at=c.updated_at,
    participants=[CharacterOut.model_validate(p, from_attributes=True) for p in view.participants],
    messages=[_message_to_out(mv) for mv in view.messages],
  )


def _character_out(character: Character) -> CharacterOut:
  return CharacterOut.model_validate(character, from_attributes=True)


# ---------- 用户 ----------


@app.post("/api/users", response_model=UserOut, status_code=201)
def api_register_user(payload: UserCreateRequest, session: Session = Depends(get_session)) -> UserOut:
  user = register_user(session, payload.email, payload.name)
  return UserOut.model_validate(user, from_attributes=True)


@app.get("/api/users/me", response_model=UserOut)
def api_me(user: User = Depends(current_user)) -> UserOut:
  return UserOut.model_validate(user, from_attributes=True)


# ---------- 项目 ----------


@app.get("/api/projects", response_model=List[ProjectOut])
def api_list_projects(
  user: User = Depends(current_user), session: Session = Depends(get_session)
) -> List[ProjectOut]:
  return [ProjectOut.model_validate(p, from_attributes=True) for p in projects.list_projects(session, user.id)]


@app.post("/api/projects", response_model=ProjectOut, status_code=201)
def api_create_project(
  payload: ProjectRequest, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> ProjectOut:
  project = projects.create_project(session, user.id, payload.name, payload.description)
  return ProjectOut.model_validate(project, from_attributes=True)


@app.get("/api/projects/{project_id}", response_model=ProjectOut)
def api_get_project(
  project_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> ProjectOut:
  return ProjectOut.model_validate(projects.get_project(session, user.id, project_id), from_attributes=True)


@app.put("/api/projects/{project_id}", response_model=ProjectOut)
def api_update_project(
  project_id: str,
  payload: ProjectRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> ProjectOut:
  project = projects.update_project(session, user.id, project_id, payload.name, payload.description)
  return ProjectOut.model_validate(project, from_attributes=True)


@app.delete("/api/projects/{project_id}", status_code=204)
def api_delete_project(
  project_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> None:
  projects.delete_project(session, user.id, project_id)


def _safe_filename(name: str) -> str:
  return re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._") or "project"


@app.get("/api/projects/{project_id}/export")
def api_export_project(
  project_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> Response:
  """整包导出成 JSON 附件，给游戏运行时用。"""
  document = export.export_project(session, user.id, project_id)
  filename = _safe_filename(document["project"]["name"])
  return Response(
    content=export.render_export(document),
    media_type="application/json",
    headers={"Content-Disposition": f'attachment; filename="{filename}.json"'},
  )


# ---------- 成员 ----------


@app.get("/api/projects/{project_id}/members", response_model=List[MemberOut])
def api_list_members(
  project_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> List[MemberOut]:
  return [_member_to_out(m, u) for m, u in members.list_members(session, user.id, project_id)]


@app.post("/api/projects/{project_id}/members", response_model=MemberOut, status_code=201)
def api_add_member(
  project_id: str,
  payload: MemberAddRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> MemberOut:
  member = members.add_member(session, user.id, project_id, payload.email, payload.role)
  return _member_to_out(member, members.get_member_user(session, member))


@app.put("/api/members/{member_id}", response_model=MemberOut)
def api_update_member(
  member_id: str,
  payload: MemberRoleRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> MemberOut:
  member = members.update_member_role(session, user.id, member_id, payload.role)
  return _member_to_out(member, members.get_member_user(session, member))


@app.delete("/api/members/{member_id}", status_code=204)
def api_remove_member(
  member_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> None:
  members.remove_member(session, user.id, member_id)


# ---------- 角色 / 情绪 / 背景 ----------


@app.get("/api/projects/{project_id}/characters", response_model=List[CharacterOut])
def api_list_characters(
  project_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> List[CharacterOut]:
  return [_character_out(c) for c in catalog.list_characters(session, user.id, project_id)]


@app.post("/api/projects/{project_id}/characters", response_model=CharacterOut, status_code=201)
def api_create_character(
  project_id: str,
  payload: CharacterRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> CharacterOut:
  character = catalog.create_character(
    session, user.id, project_id, payload.name, payload.tag, payload.color, payload.description
  )
  return _character_out(character)


@app.get("/api/characters/{character_id}", response_model=CharacterOut)
def api_get_character(
  character_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> CharacterOut:
  return _character_out(catalog.get_character(session, user.id, character_id))


@app.put("/api/characters/{character_id}", response_model=CharacterOut)
def api_update_character(
  character_id: str,
  payload: CharacterRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> CharacterOut:
  character = catalog.update_character(
    session, user.id, character_id, payload.name, payload.tag, payload.color, payload.description
  )
  return _character_out(character)


@app.delete("/api/characters/{character_id}", status_code=204)
def api_delete_character(
  character_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> None:
  catalog.delete_character(session, user.id, character_id)


@app.get("/api/characters/{character_id}/moods", response_model=List[MoodOut])
def api_list_moods(
  character_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> List[MoodOut]:
  return [MoodOut.model_validate(m, from_attributes=True) for m in catalog.list_moods(session, user.id, character_id)]


@app.post("/api/characters/{character_id}/moods", response_model=MoodOut, status_code=201)
def api_create_mood(
  character_id: str,
  payload: MoodRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> MoodOut:
  return MoodOut.model_validate(catalog.create_mood(session, user.id, character_id, payload.name), from_attributes=True)


@app.put("/api/moods/{mood_id}", response_model=MoodOut)
def api_update_mood(
  mood_id: str,
  payload: MoodRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> MoodOut:
  return MoodOut.model_validate(catalog.update_mood(session, user.id, mood_id, payload.name), from_attributes=True)


@app.delete("/api/moods/{mood_id}", status_code=204)
def api_delete_mood(
  mood_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> None:
  catalog.delete_mood(session, user.id, mood_id)


@app.get("/api/projects/{project_id}/backgrounds", response_model=List[BackgroundOut])
def api_list_backgrounds(
  project_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> List[BackgroundOut]:
  return [
    BackgroundOut.model_validate(b, from_attributes=True) for b in catalog.list_backgrounds(session, user.id, project_id)
  ]


@app.post("/api/projects/{project_id}/backgrounds", response_model=BackgroundOut, status_code=201)
def api_create_background(
  project_id: str,
  payload: BackgroundCreateRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> BackgroundOut:
  background = catalog.create_background(session, user.id, project_id, payload.name, payload.image_url)
  return BackgroundOut.model_validate(background, from_attributes=True)


@app.put("/api/backgrounds/{background_id}", response_model=BackgroundOut)
def api_update_background(
  background_id: str,
  payload: BackgroundUpdateRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> BackgroundOut:
  background = catalog.update_background(session, user.id, background_id, payload.name, payload.image_url)
  return BackgroundOut.model_validate(background, from_attributes=True)


@app.delete("/api/backgrounds/{background_id}", status_code=204)
def api_delete_background(
  background_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> None:
  catalog.delete_background(session, user.id, background_id)


# ---------- 文件夹 ----------


@app.get("/api/projects/{project_id}/folders", response_model=List[FolderOut])
def api_list_folders(
  project_id: str,
  kind: Optional[str] = None,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> List[FolderOut]:
  return [_folder_to_out(e) for e in folders.list_tree(session, user.id, project_id, kind)]


@app.get("/api/projects/{project_id}/folders/tree", response_model=List[FolderTreeOut])
def api_folder_tree(
  project_id: str,
  kind: Optional[str] = None,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> List[FolderTreeOut]:
  entries = folders.list_tree(session, user.id, project_id, kind)
  return [_tree_to_out(n) for n in folders.nest(entries)]


@app.post("/api/projects/{project_id}/folders", response_model=FolderOut, status_code=201)
def api_create_folder(
  project_id: str,
  payload: FolderCreateRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> FolderOut:
  folder = folders.create_folder(
    session, user.id, project_id, payload.kind, payload.name, payload.description, payload.parent_id
  )
  return _folder_to_out(folders.FolderEntry(folder=folder))


@app.put("/api/folders/{folder_id}", response_model=FolderOut)
def api_update_folder(
  folder_id: str,
  payload: FolderUpdateRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> FolderOut:
  parent_id = payload.parent_id if "parent_id" in payload.model_fields_set else folders.UNSET
  folder = folders.update_folder(session, user.id, folder_id, payload.name, payload.description, parent_id)
  return _folder_to_out(folders.FolderEntry(folder=folder))


@app.post("/api/folders/{folder_id}/move", response_model=FolderOut)
def api_move_folder(
  folder_id: str,
  payload: FolderMoveRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> FolderOut:
  folder = folders.move_folder(session, user.id, folder_id, payload.parent_id)
  return _folder_to_out(folders.FolderEntry(folder=folder))


@app.delete("/api/folders/{folder_id}", status_code=204)
def api_delete_folder(
  folder_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> None:
  folders.delete_folder(session, user.id, folder_id)


@app.post("/api/folders/move-dialogue", response_model=DialogueOut)
def api_move_dialogue(
  payload: MoveDialogueRequest, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> DialogueOut:
  dialogue = folders.move_dialogue(session, user.id, payload.dialogue_id, payload.folder_id)
  return _dialogue_to_out(dialogues.get_dialogue(session, user.id, dialogue.id))


@app.post("/api/folders/move-conversation", response_model=ConversationOut)
def api_move_conversation(
  payload: MoveConversationRequest, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> ConversationOut:
  conversation = folders.move_conversation(session, user.id, payload.conversation_id, payload.folder_id)
  return _conversation_to_out(sms.get_conversation(session, user.id, conversation.id))


# ---------- 对话 / 台词 / 选项 ----------


@app.get("/api/projects/{project_id}/dialogues", response_model=List[DialogueOut])
def api_list_dialogues(
  project_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> List[DialogueOut]:
  return [_dialogue_to_out(v) for v in dialogues.list_dialogues(session, user.id, project_id)]


@app.post("/api/projects/{project_id}/dialogues", response_model=DialogueOut, status_code=201)
def api_create_dialogue(
  project_id: str,
  payload: DialogueRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> DialogueOut:
  dialogue = dialogues.create_dialogue(session, user.id, project_id, payload.model_dump(exclude_unset=True))
  return _dialogue_to_out(dialogues.DialogueView(dialogue=dialogue))


@app.get("/api/dialogues/{dialogue_id}", response_model=DialogueOut)
def api_get_dialogue(
  dialogue_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> DialogueOut:
  return _dialogue_to_out(dialogues.get_dialogue(session, user.id, dialogue_id))


@app.put("/api/dialogues/{dialogue_id}", response_model=DialogueOut)
def api_update_dialogue(
  dialogue_id: str,
  payload: DialogueRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> DialogueOut:
  dialogues.update_dialogue(session, user.id, dialogue_id, payload.model_dump(exclude_unset=True))
  return _dialogue_to_out(dialogues.get_dialogue(session, user.id, dialogue_id))


@app.delete("/api/dialogues/{dialogue_id}", status_code=204)
def api_delete_dialogue(
  dialogue_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> None:
  dialogues.delete_dialogue(session, user.id, dialogue_id)


@app.post("/api/dialogues/{dialogue_id}/lines", response_model=LineOut, status_code=201)
def api_add_line(
  dialogue_id: str,
  payload: LineRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> LineOut:
  line = dialogues.add_line(session, user.id, dialogue_id, payload.model_dump(exclude_unset=True))
  return _line_to_out(dialogues.LineView(line=line))


@app.put("/api/lines/{line_id}", response_model=LineOut)
def api_update_line(
  line_id: str,
  payload: LineRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> LineOut:
  line = dialogues.update_line(session, user.id, line_id, payload.model_dump(exclude_unset=True))
  return _line_to_out(dialogues.get_line_view(session, line))


@app.delete("/api/lines/{line_id}", status_code=204)
def api_delete_line(
  line_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> None:
  dialogues.delete_line(session, user.id, line_id)


@app.post("/api/lines/{line_id}/choices", response_model=ChoiceOut, status_code=201)
def api_add_choice(
  line_id: str,
  payload: ChoiceRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> ChoiceOut:
  return _choice_to_out(dialogues.add_choice(session, user.id, line_id, payload.model_dump(exclude_unset=True)))


@app.put("/api/choices/{choice_id}", response_model=ChoiceOut)
def api_update_choice(
  choice_id: str,
  payload: ChoiceRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> ChoiceOut:
  return _choice_to_out(dialogues.update_choice(session, user.id, choice_id, payload.model_dump(exclude_unset=True)))


@app.delete("/api/choices/{choice_id}", status_code=204)
def api_delete_choice(
  choice_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> None:
  dialogues.delete_choice(session, user.id, choice_id)


# ---------- 短信会话 / 消息 / 测验 ----------


@app.get("/api/projects/{project_id}/conversations", response_model=List[ConversationOut])
def api_list_conversations(
  project_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> List[ConversationOut]:
  return [_conversation_to_out(v) for v in sms.list_conversations(session, user.id, project_id)]


@app.post("/api/projects/{project_id}/conversations", response_model=ConversationOut, status_code=201)
def api_create_conversation(
  project_id: str,
  payload: ConversationRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> ConversationOut:
  conversation = sms.create_conversation(session, user.id, project_id, payload.model_dump(exclude_unset=True))
  return _conversation_to_out(sms.get_conversation(session, user.id, conversation.id))


@app.get("/api/conversations/{conversation_id}", response_model=ConversationOut)
def api_get_conversation(
  conversation_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> ConversationOut:
  return _conversation_to_out(sms.get_conversation(session, user.id, conversation_id))


@app.put("/api/conversations/{conversation_id}", response_model=ConversationOut)
def api_update_conversation(
  conversation_id: str,
  payload: ConversationRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> ConversationOut:
  sms.update_conversation(session, user.id, conversation_id, payload.model_dump(exclude_unset=True))
  return _conversation_to_out(sms.get_conversation(session, user.id, conversation_id))


@app.delete("/api/conversations/{conversation_id}", status_code=204)
def api_delete_conversation(
  conversation_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> None:
  sms.delete_conversation(session, user.id, conversation_id)


@app.post("/api/conversations/{conversation_id}/messages", response_model=MessageOut, status_code=201)
def api_add_message(
  conversation_id: str,
  payload: MessageRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> MessageOut:
  message = sms.add_message(session, user.id, conversation_id, payload.model_dump(exclude_unset=True))
  return _message_to_out(sms.MessageView(message=message))


@app.put("/api/messages/{message_id}", response_model=MessageOut)
def api_update_message(
  message_id: str,
  payload: MessageRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> MessageOut:
  message = sms.update_message(session, user.id, message_id, payload.model_dump(exclude_unset=True))
  return _message_to_out(sms.message_view(session, message))


@app.delete("/api/messages/{message_id}", status_code=204)
def api_delete_message(
  message_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> None:
  sms.delete_message(session, user.id, message_id)


def _question_args(payload: QuestionRequest):
  answers = [quiz.AnswerInput(content=a.content, is_correct=a.is_correct, order=a.order) for a in payload.answers]
  reactions = quiz.Reactions(positive=list(payload.reactions.positive), negative=list(payload.reactions.negative))
  return payload.content, answers, reactions


@app.post("/api/messages/{message_id}/questions", response_model=QuestionOut, status_code=201)
def api_add_question(
  message_id: str,
  payload: QuestionRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> QuestionOut:
  content, answers, reactions = _question_args(payload)
  return _question_to_out(quiz.add_question(session, user.id, message_id, content, answers, reactions))


@app.put("/api/questions/{question_id}", response_model=QuestionOut)
def api_update_question(
  question_id: str,
  payload: QuestionRequest,
  user: User = Depends(current_user),
  session: Session = Depends(get_session),
) -> QuestionOut:
  content, answers, reactions = _question_args(payload)
  return _question_to_out(quiz.update_question(session, user.id, question_id, content, answers, reactions))


@app.delete("/api/questions/{question_id}", status_code=204)
def api_delete_question(
  question_id: str, user: User = Depends(current_user), session: Session = Depends(get_session)
) -> None:
  quiz.delete_question(session, user.id, question_id)


def run() -> None:
  """命令行入口：dialogue-studio（或 python -m dialogue_studio.main）。"""
  uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
  run()
