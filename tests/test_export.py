from __future__ import annotations

import json
from datetime import datetime

import pytest

from dialogue_studio import catalog, dialogues, export, folders, quiz, sms
from dialogue_studio.errors import Forbidden
from dialogue_studio.projects import create_project
from dialogue_studio.quiz import AnswerInput, Reactions


@pytest.fixture()
def project(session, owner):
  return create_project(session, owner.id, "Night Market", "export fixture")


def test_single_line_dialogue_exports_tag_and_null_target(session, owner, project):
  mara = catalog.create_character(session, owner.id, project.id, "Mara", "mara")
  d1 = dialogues.create_dialogue(session, owner.id, project.id, {"name": "D1"})
  line = dialogues.add_line(session, owner.id, d1.id, {"text": "Hi", "character_id": mara.id})
  dialogues.add_choice(session, owner.id, line.id, {"text": "Leave", "next_dialogue_id": None})

  doc = export.export_project(session, owner.id, project.id)

  assert doc["project"]["name"] == "Night Market"
  assert len(doc["dialogues"]) == 1
  lines = doc["dialogues"][0]["lines"]
  assert len(lines) == 1
  assert lines[0]["characterTag"] == "mara"
  assert lines[0]["displayBinding"] == {"mode": "single", "characterTag": "mara", "mood": None}
  assert lines[0]["choices"] == [{"text": "Leave", "nextDialogueId": None}]


def test_references_resolve_to_names(session, owner, project):
  mara = catalog.create_character(session, owner.id, project.id, "Mara", "mara")
  jun = catalog.create_character(session, owner.id, project.id, "Jun", "jun", "#00aaff")
  happy = catalog.create_mood(session, owner.id, mara.id, "happy")
  catalog.create_mood(session, owner.id, jun.id, "calm")
  catalog.create_mood(session, owner.id, jun.id, "angry")
  alley = catalog.create_background(session, owner.id, project.id, "Alley", "https://cdn.example.com/alley.png")
  scenes = folders.create_folder(session, owner.id, project.id, "dialogue", "Scenes")
  d = dialogues.create_dialogue(
    session, owner.id, project.id, {"name": "Duel", "background_id": alley.id, "folder_id": scenes.id}
  )
  dialogues.add_line(
    session,
    owner.id,
    d.id,
    {
      "text": "Face me",
      "character_id": jun.id,
      "display_mode": "dual",
      "left_character_id": mara.id,
      "left_mood_id": happy.id,
      "right_character_id": jun.id,
    },
  )
  conversation = sms.create_conversation(
    session, owner.id, project.id, {"name": "DM", "participant_ids": [jun.id], "is_group_chat": False}
  )
  message = sms.add_message(
    session, owner.id, conversation.id, {"text": "u up?", "character_id": jun.id, "timestamp": datetime(2024, 1, 1, 23, 59)}
  )
  quiz.add_question(
    session,
    owner.id,
    message.id,
    "Reply?",
    [AnswerInput("yes", True), AnswerInput("no", False)],
    Reactions(positive=["Nice"], negative=["Oops"]),
  )

  doc = export.export_project(session, owner.id, project.id)

  assert doc["folders"] == [{"id": scenes.id, "name": "Scenes", "kind": "dialogue", "parentId": None}]
  exported = doc["dialogues"][0]
  assert exported["backgroundName"] == "Alley"
  assert exported["folderId"] == scenes.id
  assert exported["lines"][0]["displayBinding"] == {
    "mode": "dual",
    "left": {"characterTag": "mara", "mood": "happy"},
    "right": {"characterTag": "jun", "mood": None},
  }
  chat = doc["conversations"][0]
  assert chat["participants"] == [
    {"tag": "jun", "name": "Jun", "color": "#00aaff", "description": None, "moods": ["angry", "calm"]}
  ]
  msg = chat["messages"][0]
  assert msg["characterTag"] == "jun"
  assert msg["timestamp"] == "2024-01-01T23:59:00"
  assert msg["type"] == "text"
  assert msg["questions"][0]["reactions"] == {"positive": ["Nice"], "negative": ["Oops"]}
  assert msg["questions"][0]["answers"] == [
    {"content": "yes", "isCorrect": True, "order": 0},
    {"content": "no", "isCorrect": False, "order": 1},
  ]


def test_dangling_next_dialogue_is_passed_through(session, owner, project):
  start = dialogues.create_dialogue(session, owner.id, project.id, {"name": "Start"})
  gone = dialogues.create_dialogue(session, owner.id, project.id, {"name": "Gone"})
  line = dialogues.add_line(session, owner.id, start.id, {"text": "Go"})
  dialogues.add_choice(session, owner.id, line.id, {"text": "Next", "next_dialogue_id": gone.id})
  gone_id = gone.id
  dialogues.delete_dialogue(session, owner.id, gone_id)

  doc = export.export_project(session, owner.id, project.id)
  assert [d["name"] for d in doc["dialogues"]] == ["Start"]
  assert doc["dialogues"][0]["lines"][0]["choices"][0]["nextDialogueId"] == gone_id


def test_export_is_byte_identical_across_runs(session, owner, project):
  mara = catalog.create_character(session, owner.id, project.id, "Mara", "mara")
  for name in ("Zeta", "Alpha", "Mid"):
    d = dialogues.create_dialogue(session, owner.id, project.id, {"name": name})
    for order in (2, 1, 1):
      dialogues.add_line(session, owner.id, d.id, {"text": f"{name} {order} ünïcode", "order": order, "character_id": mara.id})

  first = export.render_export(export.export_project(session, owner.id, project.id))
  second = export.render_export(export.export_project(session, owner.id, project.id))
  assert first == second
  # 按创建顺序，不按名字
  assert [d["name"] for d in json.loads(first)["dialogues"]] == ["Zeta", "Alpha", "Mid"]
  assert "ünïcode" in first


def test_export_requires_membership(session, owner, project, make_user):
  stranger = make_user("stranger@example.com")
  with pytest.raises(Forbidden):
    export.export_project(session, stranger.id, project.id)
