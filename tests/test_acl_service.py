from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, col, func, select

from blogacl.domain.models import (
    EventLogEntry,
    GroupTokenPermission,
    PostToken,
    Token,
    UserCreate,
    UserTokenPermission,
)
from blogacl.domain.permissions import DEFAULT_TOKENS
from blogacl.infra import db, eventlog
from blogacl.infra.hooks import HookBus
from blogacl.services.acl_service import AccessControlService
from blogacl.services.errors import AlreadyExistsError, ErrorKind, NotFoundError, VetoedError
from blogacl.services.user_service import UserService
from blogacl.services.usergroup_service import UserGroup


@pytest.fixture()
def acl_engine(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Generator[Engine, None, None]:
    test_engine = db.build_engine(f"sqlite:///{tmp_path / 'acl_test.db'}")
    SQLModel.metadata.create_all(test_engine)
    monkeypatch.setattr(db, "engine", test_engine)
    monkeypatch.setattr(eventlog, "engine", test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture()
def hook_bus() -> HookBus:
    return HookBus()


@pytest.fixture()
def acl(acl_engine: Engine, hook_bus: HookBus) -> AccessControlService:
    return AccessControlService(hook_bus=hook_bus)


def _user(username: str) -> int:
    user = UserService().create_user(UserCreate(username=username))
    assert user.id is not None
    return user.id


def _group(acl: AccessControlService, name: str, members: list[int]) -> UserGroup:
    return UserGroup.create(name, members, acl=acl)


def _count(engine: Engine, model: type, *conditions: object) -> int:
    with Session(engine) as session:
        statement = select(func.count()).select_from(model)
        for condition in conditions:
            statement = statement.where(condition)  # type: ignore[arg-type]
        return int(session.exec(statement).one())


def test_duplicate_token_is_rejected(acl: AccessControlService, acl_engine: Engine) -> None:
    token = acl.create_token("Manage Users", "Add, remove, and edit users")
    assert token.name == "manage_users"
    before = _count(acl_engine, Token)

    with pytest.raises(AlreadyExistsError) as excinfo:
        acl.create_token("  manage   users ", "again")

    assert excinfo.value.kind == ErrorKind.ALREADY_EXISTS
    assert _count(acl_engine, Token) == before


def test_new_token_is_granted_to_admin_group(acl: AccessControlService, acl_engine: Engine) -> None:
    admin = _group(acl, "admin", [])
    token = acl.create_token("manage tags", "Manage tags")

    bitmask = acl.resolve_group_access(admin.id or 0, token.id or 0)
    assert bitmask is not None
    assert bitmask.value == bitmask.full
    assert acl.group_can("admin", "manage_tags", "full")

    with Session(acl_engine) as session:
        messages = session.exec(select(EventLogEntry.message)).all()
    assert "New permission created: manage_tags" in messages


def test_token_without_admin_group_has_no_grants(acl: AccessControlService, acl_engine: Engine) -> None:
    acl.create_token("manage_theme", "Change theme")
    assert _count(acl_engine, GroupTokenPermission) == 0


@pytest.mark.parametrize("deny_first", [True, False])
def test_explicit_deny_from_any_group_wins(acl: AccessControlService, deny_first: bool) -> None:
    acl.create_token("own_posts", "Permissions on one's own posts")
    alice = _user("alice")
    names = ["restricted", "writers"] if deny_first else ["writers", "restricted"]
    groups = {name: _group(acl, name, [alice]) for name in names}

    groups["writers"].grant("own_posts", "full")
    groups["restricted"].deny("own_posts")

    assert acl.resolve_user_access(alice, "own_posts").value == 0
    assert acl.user_cannot(alice, "own_posts")
    assert not acl.user_can(alice, "own_posts", "read")


def test_user_and_group_grants_are_combined(acl: AccessControlService) -> None:
    acl.create_token("manage_all_comments", "Manage comments on all posts")
    bob = _user("bob")
    moderators = _group(acl, "moderators", [bob])

    acl.grant_user(bob, "manage_all_comments", "read")
    moderators.grant("manage_all_comments", "edit")

    bitmask = acl.resolve_user_access("bob", "manage_all_comments")
    assert bitmask.value == 3
    assert acl.user_can(bob, "manage_all_comments", "edit")
    assert acl.user_can(bob, "manage_all_comments", "any")
    assert not acl.user_can(bob, "manage_all_comments", "full")


def test_direct_user_deny_vetoes_group_grant(acl: AccessControlService) -> None:
    acl.create_token("manage_options", "Manage options")
    carol = _user("carol")
    _group(acl, "admins", [carol]).grant("manage_options")

    acl.deny_user(carol, "manage_options")

    assert acl.resolve_user_access(carol, "manage_options").value == 0


def test_super_user_bypasses_can_but_not_cannot(acl: AccessControlService) -> None:
    acl.create_token("super_user", "Permissions for super users")
    acl.create_token("manage_plugins", "Activate/deactivate plugins")
    root = _user("root")
    _group(acl, "superusers", [root]).grant("super_user", "read")

    assert acl.resolve_user_access(root, "manage_plugins").value == 0
    assert acl.user_can(root, "manage_plugins", "full")
    assert acl.user_cannot(root, "manage_plugins")


def test_user_without_grants_cannot(acl: AccessControlService) -> None:
    acl.create_token("manage_import", "Use the importer")
    dave = _user("dave")

    assert not acl.user_can(dave, "manage_import", "any")
    assert acl.user_cannot(dave, "manage_import")
    assert acl.resolve_user_access("nobody", "manage_import").value == 0


def test_unknown_token_uses_nonexistent_access(acl_engine: Engine, hook_bus: HookBus) -> None:
    erin = _user("erin")
    strict = AccessControlService(hook_bus=hook_bus)
    lenient = AccessControlService(nonexistent_access=1, hook_bus=hook_bus)

    assert strict.resolve_user_access(erin, "does not exist").value == 0
    assert lenient.resolve_user_access(erin, "does not exist").value == 1
    assert lenient.user_can(erin, "does not exist", "read")


def test_revoke_differs_from_deny(acl: AccessControlService) -> None:
    acl.create_token("manage_logs", "Manage logs")
    auditors = _group(acl, "auditors", [])

    acl.deny_group("auditors", "manage_logs")
    denied = acl.resolve_group_access("auditors", "manage_logs")
    assert denied is not None
    assert denied.value == 0
    assert acl.group_can("auditors", "manage_logs", "deny")

    assert acl.revoke_group_token(auditors.id or 0, "manage_logs")
    assert acl.resolve_group_access("auditors", "manage_logs") is None
    assert not acl.group_can("auditors", "manage_logs", "deny")
    assert not acl.revoke_group_token("auditors", "manage_logs")


def test_single_flag_grants_accumulate(acl: AccessControlService) -> None:
    acl.create_token("own_posts", "Permissions on one's own posts")
    frank = _user("frank")

    assert acl.grant_user(frank, "own_posts", "read").value == 1
    assert acl.grant_user(frank, "own_posts", "edit").value == 3
    assert acl.grant_user(frank, "own_posts", "create").value == 11
    assert acl.grant_user(frank, "own_posts").value == 15
    assert acl.deny_user(frank, "own_posts").value == 0
    assert acl.revoke_user_token(frank, "own_posts")
    assert not acl.revoke_user_token(frank, "own_posts")


def test_grant_requires_known_subject_and_token(acl: AccessControlService) -> None:
    acl.create_token("manage_users", "Add, remove, and edit users")
    _user("gina")

    with pytest.raises(NotFoundError):
        acl.grant_group("no-such-group", "manage_users")
    with pytest.raises(NotFoundError):
        acl.grant_user("gina", "no such token")
    with pytest.raises(NotFoundError):
        acl.grant_user("ghost", "manage_users")
    with pytest.raises(ValueError):
        acl.grant_user("gina", "manage_users", "any")


def test_destroy_token_removes_grants_and_token(acl: AccessControlService, acl_engine: Engine) -> None:
    _group(acl, "admin", [])
    token = acl.create_token("manage_theme_config", "Configure the active theme")
    helen = _user("helen")
    acl.grant_user(helen, token.id or 0, "read")
    _group(acl, "designers", [helen]).grant(token.id or 0, "edit")

    acl.destroy_token("Manage Theme Config")

    assert _count(acl_engine, GroupTokenPermission, col(GroupTokenPermission.token_id) == token.id) == 0
    assert _count(acl_engine, UserTokenPermission, col(UserTokenPermission.token_id) == token.id) == 0
    assert not acl.token_exists("manage_theme_config")
    assert not acl.token_exists(token.id or 0)
    with pytest.raises(NotFoundError):
        acl.destroy_token("manage_theme_config")


def test_token_lookups(acl: AccessControlService) -> None:
    token = acl.create_token("Manage Plugins Config", "Configure active plugins")
    assert token.id is not None

    assert acl.token_id("manage plugins config") == token.id
    assert acl.token_id(9999) == 9999
    assert acl.token_id("missing") is None
    assert acl.token_exists(token.id)
    assert not acl.token_exists(9999)
    assert acl.token_name(token.id) == "manage_plugins_config"
    assert acl.token_name("missing") is None
    assert acl.token_description("MANAGE_PLUGINS_CONFIG") == "Configure active plugins"
    assert acl.token_description(token.id) == "Configure active plugins"


def test_all_tokens_ordering(acl: AccessControlService) -> None:
    acl.create_token("zeta", "first")
    acl.create_token("alpha", "second")

    assert [token.name for token in acl.all_tokens()] == ["zeta", "alpha"]
    assert [token.name for token in acl.all_tokens("name")] == ["alpha", "zeta"]
    assert [token.name for token in acl.all_tokens("description")] == ["zeta", "alpha"]
    assert [token.name for token in acl.all_tokens("id; drop table tokens")] == ["zeta", "alpha"]


def test_create_default_tokens_is_idempotent(acl: AccessControlService) -> None:
    acl.create_token("super_user", "existing")

    created = acl.create_default_tokens()

    assert len(created) == len(DEFAULT_TOKENS) - 1
    assert acl.create_default_tokens() == []
    assert acl.token_description("super_user") == "existing"


def test_list_tokens_for_user(acl: AccessControlService, acl_engine: Engine) -> None:
    tags = acl.create_token("manage_tags", "Manage tags")
    posts = acl.create_token("own_posts", "Permissions on one's own posts")
    logs = acl.create_token("manage_logs", "Manage logs")
    ivan = _user("ivan")
    editors = _group(acl, "editors", [ivan])
    editors.grant("manage_tags")
    editors.grant("own_posts", "read")
    acl.deny_user(ivan, "manage_logs")

    assert acl.list_tokens_for_user(ivan) == [tags.id]
    assert acl.list_tokens_for_user(ivan, "read") == sorted([tags.id, posts.id])
    assert acl.list_tokens_for_user(ivan, "deny") == [logs.id]

    with Session(acl_engine) as session:
        session.add(PostToken(token_id=posts.id or 0, post_id=10))
        session.commit()
    assert acl.list_tokens_for_user(ivan, "read", posts_only=True) == [posts.id]


def test_list_tokens_keeps_highest_grant_per_token(acl: AccessControlService) -> None:
    token = acl.create_token("own_posts", "Permissions on one's own posts")
    judy = _user("judy")
    _group(acl, "readers", [judy]).grant("own_posts", "read")
    _group(acl, "blocked", [judy]).deny("own_posts")

    assert acl.resolve_user_access(judy, "own_posts").value == 0
    assert acl.list_tokens_for_user(judy, "read") == [token.id]
    assert acl.list_tokens_for_user(judy, "deny") == []


def test_super_user_lists_every_token(acl: AccessControlService) -> None:
    acl.create_token("super_user", "Permissions for super users")
    acl.create_token("manage_tags", "Manage tags")
    acl.create_token("manage_theme", "Change theme")
    kim = _user("kim")
    acl.grant_user(kim, "super_user", "read")

    all_ids = [token.id for token in acl.all_tokens()]
    assert acl.list_tokens_for_user(kim) == all_ids
    assert acl.list_tokens_for_user(kim, "deny") == []


def test_token_hooks_can_veto(acl: AccessControlService, hook_bus: HookBus, acl_engine: Engine) -> None:
    seen: list[str] = []
    hook_bus.add_filter("token_create_allow", lambda allow, name, description: allow and name != "forbidden")
    hook_bus.add_action("*", lambda hook, *args: seen.append(hook))

    with pytest.raises(VetoedError):
        acl.create_token("Forbidden", "nope")
    assert _count(acl_engine, Token) == 0
    assert seen == []

    acl.create_token("allowed", "yes")
    assert seen == ["token_create_before", "token_create_after"]

    hook_bus.add_filter("token_destroy_allow", lambda allow, token_id: False)
    with pytest.raises(VetoedError):
        acl.destroy_token("allowed")
    assert acl.token_exists("allowed")
