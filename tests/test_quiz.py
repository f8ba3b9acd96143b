from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import select

from dialogue_studio import catalog, quiz, sms
from dialogue_studio.errors import Forbidden, NotFound, ValidationFailure
from dialogue_studio.members import add_member
from dialogue_studio.models import Answer, Message, Question
from dialogue_studio.projects import create_project
from dialogue_studio.quiz import AnswerInput, Reactions


@pytest.fixture()
def project(session, owner):
  return create_project(session, owner.id, "Group Chat")


@pytest.fixture()
def message(session, owner, project):
  conversation = sms.create_conversation(session, owner.id, project.id, {"name": "Besties"})
  return sms.add_message(session, owner.id, conversation.id, {"text": "Who ate my noodles?"})


def _answers():
  return [AnswerInput("A", False), AnswerInput("B", True)]


def _reactions():
  return Reactions(positive=["Nice"], negative=["Oops"])


def test_add_question_stores_answers_and_reactions(session, owner, message):
  view = quiz.add_question(session, owner.id, message.id, "Who did it?", _answers(), _reactions())
  assert view.question.content == "Who did it?"
  assert [(a.content, a.is_correct, a.order) for a in view.answers] == [("A", False, 0), ("B", True, 1)]
  assert view.reactions.positive == ["Nice"]
  assert view.reactions.negative == ["Oops"]
  assert view.question.positive_reactions == '["Nice"]'


@pytest.mark.parametrize(
  "content, answers, reactions, code",
  [
    ("  ", _answers(), _reactions(), "content_required"),
    ("Q", [AnswerInput("B", True)], _reactions(), "at_least_two_answers"),
    ("Q", [AnswerInput("A", False), AnswerInput(" ", True)], _reactions(), "answer_content_required"),
    ("Q", [AnswerInput("A", False), AnswerInput("B", False)], _reactions(), "correct_answer_required"),
    ("Q", _answers(), Reactions(positive=[" "], negative=["Oops"]), "positive_reaction_required"),
    ("Q", _answers(), Reactions(positive=["Nice"], negative=[]), "negative_reaction_required"),
  ],
)
def test_invalid_question_stores_nothing(session, owner, message, content, answers, reactions, code):
  with pytest.raises(ValidationFailure) as exc:
    quiz.add_question(session, owner.id, message.id, content, answers, reactions)
  assert exc.value.code == code
  assert session.exec(select(Question)).all() == []
  assert session.exec(select(Answer)).all() == []


def test_update_replaces_every_answer(session, owner, message):
  view = quiz.add_question(session, owner.id, message.id, "Who did it?", _answers(), _reactions())
  old_ids = {a.id for a in view.answers}

  updated = quiz.update_question(
    session,
    owner.id,
    view.question.id,
    "Who really did it?",
    [AnswerInput("C", True, order=10), AnswerInput("D", False, order=20), AnswerInput("E", False, order=30)],
    Reactions(positive=["Yes!", " "], negative=["Nope"]),
  )
  assert updated.question.content == "Who really did it?"
  assert [a.content for a in updated.answers] == ["C", "D", "E"]
  assert [a.order for a in updated.answers] == [10, 20, 30]
  assert old_ids.isdisjoint({a.id for a in updated.answers})
  assert updated.reactions.positive == ["Yes!"]


def test_failed_update_keeps_previous_answers(session, owner, message):
  view = quiz.add_question(session, owner.id, message.id, "Who did it?", _answers(), _reactions())
  question_id = view.question.id
  with pytest.raises(ValidationFailure):
    quiz.update_question(session, owner.id, question_id, "Who did it?", [AnswerInput("Only", True)], _reactions())

  again = quiz.question_view(session, session.get(Question, question_id))
  assert [a.content for a in again.answers] == ["A", "B"]


def test_delete_question_and_message_cascade(session, owner, message):
  first = quiz.add_question(session, owner.id, message.id, "One?", _answers(), _reactions())
  second = quiz.add_question(session, owner.id, message.id, "Two?", _answers(), _reactions())
  first_id, second_id, message_id = first.question.id, second.question.id, message.id

  quiz.delete_question(session, owner.id, first_id)
  assert session.get(Question, first_id) is None
  assert session.get(Question, second_id) is not None

  sms.delete_message(session, owner.id, message_id)
  assert session.get(Message, message_id) is None
  assert session.get(Question, second_id) is None
  assert session.exec(select(Answer)).all() == []


def test_load_reactions_tolerates_bad_blobs():
  assert quiz.load_reactions('["a", "b"]') == ["a", "b"]
  assert quiz.load_reactions(None) == []
  assert quiz.load_reactions("not json") == []
  assert quiz.load_reactions('{"a": 1}') == []


def test_missing_message_and_viewer(session, owner, project, message, make_user):
  with pytest.raises(NotFound) as exc:
    quiz.add_question(session, owner.id, "missing", "Q", _answers(), _reactions())
  assert exc.value.code == "message_not_found"

  viewer = make_user("viewer@example.com")
  add_member(session, owner.id, project.id, viewer.email, "viewer")
  with pytest.raises(Forbidden):
    quiz.add_question(session, viewer.id, message.id, "Q", _answers(), _reactions())


def test_messages_read_in_timestamp_order(session, owner, project):
  mara = catalog.create_character(session, owner.id, project.id, "Mara", "mara")
  conversation = sms.create_conversation(
    session, owner.id, project.id, {"name": "DM", "participant_ids": [mara.id, mara.id]}
  )
  base = datetime(2024, 5, 1, 12, 0, 0)
  sms.add_message(session, owner.id, conversation.id, {"text": "later", "timestamp": base + timedelta(minutes=5)})
  sms.add_message(
    session,
    owner.id,
    conversation.id,
    {"text": "earlier", "character_id": mara.id, "timestamp": (base - timedelta(hours=2)).replace(tzinfo=timezone(timedelta(hours=-2)))},
  )

  view = sms.get_conversation(session, owner.id, conversation.id)
  assert [p.id for p in view.participants] == [mara.id]
  assert [mv.message.text for mv in view.messages] == ["earlier", "later"]
  assert view.messages[0].message.timestamp == base

  with pytest.raises(ValidationFailure) as exc:
    sms.add_message(session, owner.id, conversation.id, {"text": "boo", "message_type": "video"})
  assert exc.value.code == "invalid_message_type"
  with pytest.raises(NotFound) as exc:
    sms.create_conversation(session, owner.id, project.id, {"name": "X", "participant_ids": ["ghost"]})
  assert exc.value.code == "participant_not_found"
