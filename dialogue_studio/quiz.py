"""短信消息上挂的测验题：题干、有序答案、正 / 负反馈文案。

写之前整体校验，任何一条不过就什么都不写；更新是整组答案删掉重建，
所以答案 id 在更新后会变。
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlmodel import Session, select

from .access import Capability, require
from .db import commit_or_not_found
from .errors import NotFound, ValidationFailure
from .models import Answer, Conversation, Message, Question, new_id

logger = logging.getLogger(__name__)

MIN_ANSWERS = 2


@dataclass
class AnswerInput:
  content: str
  is_correct: bool = False
  order: Optional[int] = None


@dataclass
class Reactions:
  positive: List[str] = field(default_factory=list)
  negative: List[str] = field(default_factory=list)


@dataclass
class QuestionView:
  question: Question
  answers: List[Answer]
  reactions: Reactions


def dump_reactions(items: Iterable[str]) -> str:
  return json.dumps(list(items), ensure_ascii=False)


def load_reactions(blob: Optional[str]) -> List[str]:
  """反馈文案按 JSON 字符串数组存，读的时候每次解析。坏数据当空列表。"""
  try:
    data = json.loads(blob or "[]")
  except (TypeError, ValueError):
    logger.warning("unreadable reaction blob: %r", blob)
    return []
  if not isinstance(data, list):
    return []
  return [str(x) for x in data]


def _clean_reactions(items: Optional[Sequence[Any]]) -> List[str]:
  return [str(x).strip() for x in (items or []) if str(x).strip()]


def validate_question(
  content: Optional[str],
  answers: Optional[Sequence[AnswerInput]],
  reactions: Optional[Reactions],
) -> Tuple[str, List[AnswerInput], Reactions]:
  """返回清洗后的 (content, answers, reactions)；不合规直接抛 ValidationFailure。"""
  text = (content or "").strip()
  if not text:
    raise ValidationFailure("content_required")
  answers = list(answers or [])
  if len(answers) < MIN_ANSWERS:
    raise ValidationFailure("at_least_two_answers")
  cleaned: List[AnswerInput] = []
  for idx, a in enumerate(answers):
    answer_text = (a.content or "").strip()
    if not answer_text:
      raise ValidationFailure("answer_content_required")
    cleaned.append(
      AnswerInput(content=answer_text, is_correct=bool(a.is_correct), order=a.order if a.order is not None else idx)
    )
  if not any(a.is_correct for a in cleaned):
    raise ValidationFailure("correct_answer_required")

  reactions = reactions or Reactions()
  positive = _clean_reactions(reactions.positive)
  negative = _clean_reactions(reactions.negative)
  if not positive:
    raise ValidationFailure("positive_reaction_required")
  if not negative:
    raise ValidationFailure("negative_reaction_required")
  return text, cleaned, Reactions(positive=positive, negative=negative)


def _message_project(session: Session, message_id: str) -> Tuple[Message, str]:
  message = session.get(Message, message_id)
  if not message:
    raise NotFound("message_not_found")
  conversation = session.get(Conversation, message.conversation_id)
  if not conversation:
    raise NotFound("conversation_not_found")
  return message, conversation.project_id


def _load_question(session: Session, user_id: str, question_id: str, capability: Capability) -> Question:
  question = session.get(Question, question_id)
  if not question:
    raise NotFound("question_not_found")
  _, project_id = _message_project(session, question.message_id)
  require(session, user_id, project_id, capability)
  return question


def _insert_answers(session: Session, question_id: str, answers: List[AnswerInput]) -> None:
  for a in answers:
    session.add(Answer(id=new_id(), question_id=question_id, content=a.content, is_correct=a.is_correct, order=a.order))


def add_question(
  session: Session,
  user_id: str,
  message_id: str,
  content: str,
  answers: Sequence[AnswerInput],
  reactions: Reactions,
) -> QuestionView:
  message, project_id = _message_project(session, message_id)
  require(session, user_id, project_id, Capability.edit_content)
  text, cleaned, clean_reactions = validate_question(content, answers, reactions)

  question = Question(
    id=new_id(),
    message_id=message.id,
    content=text,
    positive_reactions=dump_reactions(clean_reactions.positive),
    negative_reactions=dump_reactions(clean_reactions.negative),
  )
  session.add(question)
  session.flush()
  _insert_answers(session, question.id, cleaned)
  commit_or_not_found(session, "message_not_found")
  session.refresh(question)
  logger.info("message %s: added question %s with %d answers", message_id, question.id, len(cleaned))
  return question_view(session, question)


def update_question(
  session: Session,
  user_id: str,
  question_id: str,
  content: str,
  answers: Sequence[AnswerInput],
  reactions: Reactions,
) -> QuestionView:
  question = _load_question(session, user_id, question_id, Capability.edit_content)
  text, cleaned, clean_reactions = validate_question(content, answers, reactions)

  for old in session.exec(select(Answer).where(Answer.question_id == question.id)).all():
    session.delete(old)
  session.flush()
  question.content = text
  question.positive_reactions = dump_reactions(clean_reactions.positive)
  question.negative_reactions = dump_reactions(clean_reactions.negative)
  session.add(question)
  _insert_answers(session, question.id, cleaned)
  commit_or_not_found(session, "question_not_found")
  session.refresh(question)
  return question_view(session, question)


def delete_question(session: Session, user_id: str, question_id: str) -> None:
  question = _load_question(session, user_id, question_id, Capability.edit_content)
  purge_questions(session, [question.message_id], only=[question.id])
  commit_or_not_found(session, "question_not_found")


def purge_questions(session: Session, message_ids: List[str], only: Optional[List[str]] = None) -> None:
  """删消息下的题和答案。不提交。"""
  if not message_ids:
    return
  stmt = select(Question).where(Question.message_id.in_(message_ids))
  if only is not None:
    stmt = stmt.where(Question.id.in_(only))
  questions = session.exec(stmt).all()
  question_ids = [q.id for q in questions]
  if not question_ids:
    return
  for a in session.exec(select(Answer).where(Answer.question_id.in_(question_ids))).all():
    session.delete(a)
  session.flush()
  for q in questions:
    session.delete(q)
  session.flush()


def question_view(session: Session, question: Question) -> QuestionView:
  return load_questions(session, [question.message_id], only=[question.id]).get(question.message_id, [])[0]


def load_questions(
  session: Session, message_ids: List[str], only: Optional[List[str]] = None
) -> Dict[str, List[QuestionView]]:
  """message_id -> 题目列表；答案按 order、id 排。"""
  if not message_ids:
    return {}
  stmt = select(Question).where(Question.message_id.in_(message_ids))
  if only is not None:
    stmt = stmt.where(Question.id.in_(only))
  questions = session.exec(stmt.order_by(Question.created_at, Question.id)).all()
  answers_by_question: Dict[str, List[Answer]] = {}
  question_ids = [q.id for q in questions]
  if question_ids:
    answers = session.exec(
      select(Answer).where(Answer.question_id.in_(question_ids)).order_by(Answer.order, Answer.id)
    ).all()
    for a in answers:
      answers_by_question.setdefault(a.question_id, []).append(a)

  grouped: Dict[str, List[QuestionView]] = {}
  for q in questions:
    grouped.setdefault(q.message_id, []).append(
      QuestionView(
        question=q,
        answers=answers_by_question.get(q.id, []),
        reactions=Reactions(positive=load_reactions(q.positive_reactions), negative=load_reactions(q.negative_reactions)),
      )
    )
  return grouped

