from __future__ import annotations

import pytest

from dialogue_studio import folders
from dialogue_studio.dialogues import create_dialogue
from dialogue_studio.errors import Forbidden, IntegrityViolation, NotFound, ValidationFailure
from dialogue_studio.members import add_member
from dialogue_studio.models import Conversation, Dialogue, Folder
from dialogue_studio.projects import create_project
from dialogue_studio.sms import create_conversation


@pytest.fixture()
def project(session, owner):
  return create_project(session, owner.id, "Act Structure")


def test_reparent_under_own_child_is_rejected(session, owner, project):
  act1 = folders.create_folder(session, owner.id, project.id, "dialogue", "Act1")
  intro = folders.create_folder(session, owner.id, project.id, "dialogue", "Intro", parent_id=act1.id)
  act1_id, intro_id = act1.id, intro.id

  with pytest.raises(IntegrityViolation) as exc:
    folders.move_folder(session, owner.id, act1_id, intro_id)
  assert exc.value.code == "folder_cycle"
  with pytest.raises(IntegrityViolation):
    folders.move_folder(session, owner.id, act1_id, act1_id)

  assert session.get(Folder, act1_id).parent_id is None
  assert session.get(Folder, intro_id).parent_id == act1_id


def test_deep_cycle_is_detected(session, owner, project):
  a = folders.create_folder(session, owner.id, project.id, "dialogue", "A")
  b = folders.create_folder(session, owner.id, project.id, "dialogue", "B", parent_id=a.id)
  c = folders.create_folder(session, owner.id, project.id, "dialogue", "C", parent_id=b.id)
  with pytest.raises(IntegrityViolation):
    folders.update_folder(session, owner.id, a.id, parent_id=c.id)

  # 往兄弟 / 根上挪是合法的
  moved = folders.move_folder(session, owner.id, c.id, a.id)
  assert moved.parent_id == a.id
  assert folders.move_folder(session, owner.id, c.id, None).parent_id is None


def test_parent_must_match_kind_and_project(session, owner, project):
  sms_root = folders.create_folder(session, owner.id, project.id, "sms", "Chats")
  other = create_project(session, owner.id, "Elsewhere")
  foreign = folders.create_folder(session, owner.id, other.id, "dialogue", "Foreign")

  with pytest.raises(IntegrityViolation) as exc:
    folders.create_folder(session, owner.id, project.id, "dialogue", "X", parent_id=sms_root.id)
  assert exc.value.code == "folder_kind_mismatch"
  with pytest.raises(IntegrityViolation) as exc:
    folders.create_folder(session, owner.id, project.id, "dialogue", "X", parent_id=foreign.id)
  assert exc.value.code == "folder_project_mismatch"
  with pytest.raises(NotFound) as exc:
    folders.create_folder(session, owner.id, project.id, "dialogue", "X", parent_id="missing")
  assert exc.value.code == "parent_not_found"
  with pytest.raises(ValidationFailure):
    folders.create_folder(session, owner.id, project.id, "quest", "X")
  with pytest.raises(ValidationFailure):
    folders.create_folder(session, owner.id, project.id, "dialogue", "   ")


def test_update_only_touches_given_fields(session, owner, project):
  root = folders.create_folder(session, owner.id, project.id, "dialogue", "Root")
  child = folders.create_folder(session, owner.id, project.id, "dialogue", "Child", "first draft", root.id)

  updated = folders.update_folder(session, owner.id, child.id, name="Renamed")
  assert updated.name == "Renamed"
  assert updated.description == "first draft"
  assert updated.parent_id == root.id

  with pytest.raises(ValidationFailure):
    folders.update_folder(session, owner.id, child.id, name="  ")
  assert session.get(Folder, child.id).name == "Renamed"


def test_delete_rescues_contents_to_parent(session, owner, project):
  root = folders.create_folder(session, owner.id, project.id, "dialogue", "Root")
  mid = folders.create_folder(session, owner.id, project.id, "dialogue", "Mid", parent_id=root.id)
  leaf = folders.create_folder(session, owner.id, project.id, "dialogue", "Leaf", parent_id=mid.id)
  dialogue = create_dialogue(session, owner.id, project.id, {"name": "Scene", "folder_id": mid.id})
  root_id, mid_id, leaf_id, dialogue_id = root.id, mid.id, leaf.id, dialogue.id

  before = {e.folder.id: e for e in folders.list_tree(session, owner.id, project.id)}
  assert before[root_id].child_count == 1
  assert before[root_id].dialogue_count == 0

  folders.delete_folder(session, owner.id, mid_id)

  assert session.get(Folder, mid_id) is None
  assert session.get(Folder, leaf_id).parent_id == root_id
  assert session.get(Dialogue, dialogue_id).folder_id == root_id

  after = {e.folder.id: e for e in folders.list_tree(session, owner.id, project.id)}
  assert mid_id not in after
  assert after[root_id].child_count == 1
  assert after[root_id].dialogue_count == 1
  assert after[leaf_id].folder.parent_id == root_id


def test_delete_top_level_folder_rescues_to_root(session, owner, project):
  chats = folders.create_folder(session, owner.id, project.id, "sms", "Chats")
  sub = folders.create_folder(session, owner.id, project.id, "sms", "Sub", parent_id=chats.id)
  conversation = create_conversation(session, owner.id, project.id, {"name": "Group", "folder_id": chats.id})
  chats_id, sub_id, conversation_id = chats.id, sub.id, conversation.id

  folders.delete_folder(session, owner.id, chats_id)

  assert session.get(Folder, sub_id).parent_id is None
  assert session.get(Conversation, conversation_id).folder_id is None

  tree = folders.nest(folders.list_tree(session, owner.id, project.id, "sms"))
  assert [n.entry.folder.id for n in tree] == [sub_id]
  assert tree[0].entry.conversation_count == 0


def test_list_tree_counts_and_nesting(session, owner, project):
  act1 = folders.create_folder(session, owner.id, project.id, "dialogue", "Act1")
  intro = folders.create_folder(session, owner.id, project.id, "dialogue", "Intro", parent_id=act1.id)
  folders.create_folder(session, owner.id, project.id, "sms", "Chats")
  create_dialogue(session, owner.id, project.id, {"name": "One", "folder_id": intro.id})
  create_dialogue(session, owner.id, project.id, {"name": "Two", "folder_id": intro.id})

  entries = folders.list_tree(session, owner.id, project.id, "dialogue")
  assert [e.folder.name for e in entries] == ["Act1", "Intro"]
  by_name = {e.folder.name: e for e in entries}
  assert by_name["Act1"].child_count == 1
  assert by_name["Intro"].dialogue_count == 2
  assert len(folders.list_tree(session, owner.id, project.id)) == 3

  tree = folders.nest(entries)
  assert len(tree) == 1
  assert tree[0].entry.folder.name == "Act1"
  assert [n.entry.folder.name for n in tree[0].children] == ["Intro"]


def test_group_children_treats_unknown_parent_as_root():
  a = folders.FolderEntry(folder=Folder(id="a", project_id="p", name="A"))
  b = folders.FolderEntry(folder=Folder(id="b", project_id="p", name="B", parent_id="a"))
  c = folders.FolderEntry(folder=Folder(id="c", project_id="p", name="C", parent_id="gone"))
  groups = folders.group_children([a, b, c])
  assert [e.folder.id for e in groups[None]] == ["a", "c"]
  assert [e.folder.id for e in groups["a"]] == ["b"]


def test_is_descendant_or_self_walks_ancestors():
  arena = {
    "a": Folder(id="a", project_id="p", name="A"),
    "b": Folder(id="b", project_id="p", name="B", parent_id="a"),
    "c": Folder(id="c", project_id="p", name="C", parent_id="b"),
  }
  assert folders.is_descendant_or_self(arena, "a", "c")
  assert folders.is_descendant_or_self(arena, "a", "a")
  assert not folders.is_descendant_or_self(arena, "c", "a")
  assert not folders.is_descendant_or_self(arena, "a", None)


def test_move_content_respects_folder_kind(session, owner, project):
  scenes = folders.create_folder(session, owner.id, project.id, "dialogue", "Scenes")
  chats = folders.create_folder(session, owner.id, project.id, "sms", "Chats")
  dialogue = create_dialogue(session, owner.id, project.id, {"name": "Scene"})
  conversation = create_conversation(session, owner.id, project.id, {"name": "DM"})

  with pytest.raises(IntegrityViolation):
    folders.move_dialogue(session, owner.id, dialogue.id, chats.id)
  with pytest.raises(IntegrityViolation):
    folders.move_conversation(session, owner.id, conversation.id, scenes.id)

  assert folders.move_dialogue(session, owner.id, dialogue.id, scenes.id).folder_id == scenes.id
  assert folders.move_conversation(session, owner.id, conversation.id, chats.id).folder_id == chats.id
  assert folders.move_dialogue(session, owner.id, dialogue.id, None).folder_id is None


def test_viewer_cannot_touch_folders(session, owner, project, make_user):
  viewer = make_user("viewer@example.com")
  add_member(session, owner.id, project.id, viewer.email, "viewer")
  folder = folders.create_folder(session, owner.id, project.id, "dialogue", "Act1")

  with pytest.raises(Forbidden):
    folders.create_folder(session, viewer.id, project.id, "dialogue", "Nope")
  with pytest.raises(Forbidden):
    folders.delete_folder(session, viewer.id, folder.id)
  assert len(folders.list_tree(session, viewer.id, project.id)) == 1
