from __future__ import annotations

import pytest

from dialogue_studio.access import CAPABILITIES, Capability, authorize, can, guard_member_change, require
from dialogue_studio.errors import Forbidden, NotFound, OwnerImmutable, ValidationFailure
from dialogue_studio.members import add_member, list_members, remove_member, update_member_role
from dialogue_studio.models import Project, ProjectMember, Role
from dialogue_studio.projects import create_project, delete_project, list_projects, update_project


@pytest.fixture()
def project(session, owner):
  return create_project(session, owner.id, "Harbor Lights", "night shift story")


def _member(session, owner, project, user, role):
  return add_member(session, owner.id, project.id, user.email, role)


def test_capability_table_is_monotonic():
  assert CAPABILITIES[Role.owner] >= CAPABILITIES[Role.admin] >= CAPABILITIES[Role.member] >= CAPABILITIES[Role.viewer]
  assert can(Role.owner, Capability.delete_project)
  assert not can(Role.admin, Capability.delete_project)
  assert can(Role.admin, Capability.manage_members)
  assert not can(Role.member, Capability.manage_members)
  assert can(Role.member, Capability.edit_content)
  assert not can(Role.viewer, Capability.edit_content)
  assert can(Role.viewer, Capability.read)


def test_create_project_makes_single_owner(session, owner, project):
  rows = list_members(session, owner.id, project.id)
  assert len(rows) == 1
  member, user = rows[0]
  assert member.role == Role.owner.value
  assert user.id == owner.id
  assert [p.id for p in list_projects(session, owner.id)] == [project.id]


def test_non_member_is_denied(session, project, make_user):
  stranger = make_user("stranger@example.com")
  decision = authorize(session, stranger.id, project.id, Capability.read)
  assert not decision.allowed
  assert decision.reason == "not_a_member"
  with pytest.raises(Forbidden) as exc:
    require(session, stranger.id, project.id, Capability.read)
  assert str(exc.value) == "not_a_member"
  assert list_projects(session, stranger.id) == []


def test_missing_project_is_not_found(session, owner):
  with pytest.raises(NotFound) as exc:
    require(session, owner.id, "nope", Capability.read)
  assert exc.value.code == "project_not_found"


def test_viewer_cannot_add_member(session, owner, project, make_user):
  viewer = make_user("viewer@example.com")
  newcomer = make_user("x@example.com")
  _member(session, owner, project, viewer, "viewer")
  with pytest.raises(Forbidden):
    add_member(session, viewer.id, project.id, newcomer.email, "member")
  emails = [u.email for _, u in list_members(session, owner.id, project.id)]
  assert newcomer.email not in emails


def test_add_member_errors(session, owner, project, make_user):
  friend = make_user("friend@example.com")
  with pytest.raises(NotFound) as exc:
    add_member(session, owner.id, project.id, "ghost@example.com")
  assert exc.value.code == "user_not_found"
  with pytest.raises(ValidationFailure) as exc:
    add_member(session, owner.id, project.id, friend.email, "superuser")
  assert exc.value.code == "invalid_role"
  _member(session, owner, project, friend, "member")
  with pytest.raises(ValidationFailure) as exc:
    add_member(session, owner.id, project.id, friend.email)
  assert exc.value.code == "already_member"


def test_owner_role_cannot_be_granted(session, owner, project, make_user):
  friend = make_user("friend@example.com")
  with pytest.raises(OwnerImmutable) as exc:
    add_member(session, owner.id, project.id, friend.email, "owner")
  assert exc.value.code == "owner_role_reserved"

  member = _member(session, owner, project, friend, "admin")
  with pytest.raises(OwnerImmutable):
    update_member_role(session, owner.id, member.id, "owner")


def test_owner_row_is_immutable(session, owner, project, make_user):
  admin = make_user("admin@example.com")
  _member(session, owner, project, admin, "admin")
  owner_row = next(m for m, _ in list_members(session, owner.id, project.id) if m.role == Role.owner.value)

  # 请求者是 owner 自己也不行
  for actor in (owner, admin):
    with pytest.raises(OwnerImmutable) as exc:
      update_member_role(session, actor.id, owner_row.id, "viewer")
    assert exc.value.code == "owner_immutable"
    with pytest.raises(OwnerImmutable):
      remove_member(session, actor.id, owner_row.id)

  assert session.get(ProjectMember, owner_row.id).role == Role.owner.value


def test_guard_member_change_allows_ordinary_changes():
  target = ProjectMember(id="m", project_id="p", user_id="u", role=Role.member.value)
  guard_member_change(target, Role.viewer)
  guard_member_change(None, Role.admin)


def test_admin_manages_members_but_member_does_not(session, owner, project, make_user):
  admin = make_user("admin@example.com")
  writer = make_user("writer@example.com")
  _member(session, owner, project, admin, "admin")
  row = _member(session, owner, project, writer, "member")

  with pytest.raises(Forbidden):
    update_member_role(session, writer.id, row.id, "admin")

  row_id = row.id
  updated = update_member_role(session, admin.id, row_id, "viewer")
  assert updated.role == "viewer"
  remove_member(session, admin.id, row_id)
  assert session.get(ProjectMember, row_id) is None


def test_project_update_and_delete_permissions(session, owner, project, make_user):
  admin = make_user("admin@example.com")
  _member(session, owner, project, admin, "admin")

  renamed = update_project(session, admin.id, project.id, "  Harbor Lights II ", None)
  assert renamed.name == "Harbor Lights II"
  with pytest.raises(ValidationFailure):
    update_project(session, admin.id, project.id, "   ")
  with pytest.raises(Forbidden):
    delete_project(session, admin.id, project.id)

  delete_project(session, owner.id, project.id)
  assert list_projects(session, owner.id) == []


def test_timestamps_are_stored_naive_utc(session, owner, project):
  project_id = project.id
  session.expire_all()
  reloaded = session.get(Project, project_id)
  assert reloaded.created_at.tzinfo is None
  assert list_projects(session, owner.id)[0].created_at.tzinfo is None
