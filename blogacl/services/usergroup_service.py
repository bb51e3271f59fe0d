from __future__ import annotations

from collections.abc import Iterable
from typing import TypeVar

import sqlalchemy as sa
from sqlmodel import Session, col, select

from blogacl.domain.models import Group, GroupTokenPermission, Identifier, User, UserGroupLink
from blogacl.domain.permissions import Access, access_label, apply_access, get_bitmask
from blogacl.infra.db import get_engine
from blogacl.infra.eventlog import write_event_log
from blogacl.services.acl_service import AccessControlService
from blogacl.services.errors import (
    AccessControlError,
    AlreadyExistsError,
    NotFoundError,
    VetoedError,
    commit_or_raise,
    flush_or_raise,
)
from blogacl.services.user_service import lookup_user_id

T = TypeVar("T")


def _as_list(value: T | Iterable[T]) -> list[T]:
    if isinstance(value, (int, str, User)):
        return [value]  # type: ignore[list-item]
    return list(value)  # type: ignore[arg-type]


def _session() -> Session:
    return Session(get_engine(), expire_on_commit=False)


class UserGroup:
    """A named group of users with token grants.

    Membership lives in memory until ``insert``/``update``, which rewrite the
    membership and grant tables from this object. Grants on a group that is
    already stored go to the database straight away through the ACL; on an
    unsaved group they wait for ``insert``.

    ``permissions`` caches token id -> access bitmask. The object keeps it in
    step with its own grant calls; changes made elsewhere need
    ``refresh_permissions``. The access last granted through this object is
    remembered per token and is what ``can`` checks.
    """

    def __init__(self, name: str = "", *, acl: AccessControlService | None = None) -> None:
        self.id: int | None = None
        self.name = name
        self.acl = acl if acl is not None else AccessControlService()
        self._member_ids: set[int] = set()
        self._permissions: dict[int, int] = {}
        self._labels: dict[int, str] = {}

    def __repr__(self) -> str:
        return f"UserGroup(id={self.id!r}, name={self.name!r})"

    @property
    def members(self) -> list[int]:
        return sorted(self._member_ids)

    @property
    def permissions(self) -> dict[int, int]:
        return dict(self._permissions)

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    # Loading

    @classmethod
    def _from_row(cls, session: Session, row: Group, acl: AccessControlService | None) -> UserGroup:
        group = cls(row.name, acl=acl)
        group.id = row.id
        group._load_members(session)
        group._load_permissions(session)
        return group

    def _load_members(self, session: Session) -> None:
        statement = select(UserGroupLink.user_id).where(UserGroupLink.group_id == self.id)
        self._member_ids = set(session.exec(statement).all())

    def _load_permissions(self, session: Session) -> None:
        statement = select(GroupTokenPermission).where(GroupTokenPermission.group_id == self.id)
        stored = {row.token_id: row.permission_id for row in session.exec(statement).all()}
        # A remembered label only survives while the stored mask is unchanged.
        self._labels = {
            token_id: label
            for token_id, label in self._labels.items()
            if stored.get(token_id) == self._permissions.get(token_id)
        }
        self._permissions = stored

    @classmethod
    def get_by_id(cls, group_id: int, *, acl: AccessControlService | None = None) -> UserGroup | None:
        with _session() as session:
            row = session.get(Group, group_id)
            if row is None:
                return None
            return cls._from_row(session, row, acl)

    @classmethod
    def get_by_name(cls, name: str, *, acl: AccessControlService | None = None) -> UserGroup | None:
        with _session() as session:
            row = session.exec(select(Group).where(Group.name == name)).first()
            if row is None:
                return None
            return cls._from_row(session, row, acl)

    @classmethod
    def get(cls, group: Identifier, *, acl: AccessControlService | None = None) -> UserGroup | None:
        if isinstance(group, int):
            return cls.get_by_id(group, acl=acl)
        return cls.get_by_name(group, acl=acl)

    @classmethod
    def all_groups(cls, *, acl: AccessControlService | None = None) -> list[UserGroup]:
        with _session() as session:
            rows = session.exec(select(Group).order_by(col(Group.name))).all()
            return [cls._from_row(session, row, acl) for row in rows]

    @classmethod
    def create(
        cls,
        name: str,
        members: Identifier | User | Iterable[Identifier | User] | None = None,
        *,
        acl: AccessControlService | None = None,
    ) -> UserGroup:
        group = cls(name, acl=acl)
        if members is not None:
            group.add(members)
        group.insert()
        return group

    @staticmethod
    def group_id(group: Identifier) -> int | None:
        with _session() as session:
            if isinstance(group, int):
                row = session.get(Group, group)
                return row.id if row is not None else None
            return session.exec(select(Group.id).where(Group.name == group)).first()

    @staticmethod
    def group_name(group: Identifier) -> str | None:
        with _session() as session:
            if isinstance(group, int):
                row = session.get(Group, group)
                return row.name if row is not None else None
            return session.exec(select(Group.name).where(Group.name == group)).first()

    @classmethod
    def exists(cls, group: Identifier) -> bool:
        return cls.group_id(group) is not None

    def refresh_permissions(self) -> None:
        if self.id is None:
            return
        with _session() as session:
            self._load_permissions(session)

    def reload(self) -> None:
        if self.id is None:
            raise NotFoundError("group has not been inserted")
        with _session() as session:
            row = session.get(Group, self.id)
            if row is None:
                raise NotFoundError(f"group not found: {self.id}")
            self.name = row.name
            self._load_members(session)
            self._load_permissions(session)

    # Membership

    def _resolve_users(self, users: Identifier | User | Iterable[Identifier | User]) -> list[int]:
        resolved: list[int] = []
        with _session() as session:
            for user in _as_list(users):
                user_id = lookup_user_id(session, user)
                if user_id is None or session.get(User, user_id) is None:
                    raise NotFoundError(f"user not found: {user}")
                resolved.append(user_id)
        return resolved

    def add(self, users: Identifier | User | Iterable[Identifier | User]) -> None:
        self._member_ids.update(self._resolve_users(users))

    def remove(self, users: Identifier | User | Iterable[Identifier | User]) -> None:
        self._member_ids.difference_update(self._resolve_users(users))

    # Permissions

    def _resolve_token(self, token: Identifier) -> int:
        token_id = self.acl.token_id(token)
        if token_id is None:
            raise NotFoundError(f"token not found: {token}")
        return token_id

    def grant(self, tokens: Identifier | Iterable[Identifier], access: str = Access.FULL) -> None:
        for token in _as_list(tokens):
            token_id = self._resolve_token(token)
            if self.id is None:
                current = get_bitmask(self._permissions.get(token_id, 0))
                self._permissions[token_id] = apply_access(current, access).value
            else:
                self._permissions[token_id] = self.acl.grant_group(self.id, token_id, access).value
            self._labels[token_id] = str(access)

    def deny(self, tokens: Identifier | Iterable[Identifier]) -> None:
        self.grant(tokens, Access.DENY)

    def revoke(self, tokens: Identifier | Iterable[Identifier]) -> None:
        for token in _as_list(tokens):
            token_id = self._resolve_token(token)
            self._permissions.pop(token_id, None)
            self._labels.pop(token_id, None)
            if self.id is not None:
                self.acl.revoke_group_token(self.id, token_id)

    def can(self, token: Identifier, access: str = Access.FULL) -> bool:
        """Check this group's own grant on ``token``.

        The access last granted through this object must match ``access``
        exactly: a "full" grant does not satisfy a "read" check. Grants loaded
        from the store are compared by their ``access_label``. Use the ACL for
        checks that combine several groups.
        """
        token_id = self.acl.token_id(token)
        if token_id is None or token_id not in self._permissions:
            return False
        label = self._labels.get(token_id, access_label(self._permissions[token_id]))
        return label == access

    # Persistence

    def _write_memberships(self, session: Session) -> None:
        session.execute(sa.delete(UserGroupLink).where(col(UserGroupLink.group_id) == self.id))
        session.execute(sa.delete(GroupTokenPermission).where(col(GroupTokenPermission.group_id) == self.id))
        for user_id in sorted(self._member_ids):
            session.add(UserGroupLink(group_id=self.id, user_id=user_id))
        for token_id, mask in sorted(self._permissions.items()):
            session.add(GroupTokenPermission(group_id=self.id, token_id=token_id, permission_id=mask))

    def insert(self) -> None:
        if self.id is not None:
            raise AlreadyExistsError(f"group already inserted: {self.name}")
        if not self.acl.hooks.allow("usergroup_insert_allow", self):
            raise VetoedError(f"group insert vetoed: {self.name}")
        self.acl.hooks.act("usergroup_insert_before", self)

        with _session() as session:
            row = Group(name=self.name)
            session.add(row)
            flush_or_raise(session, f"group name already exists: {self.name}")
            self.id = row.id
            try:
                self._write_memberships(session)
                write_event_log(f"New group created: {self.name}", "info", "default", "blogacl", session=session)
                commit_or_raise(session)
            except AccessControlError:
                self.id = None
                raise

        self.acl.hooks.act("usergroup_insert_after", self)

    def update(self) -> None:
        if self.id is None:
            raise NotFoundError("group has not been inserted")
        if not self.acl.hooks.allow("usergroup_update_allow", self):
            raise VetoedError(f"group update vetoed: {self.name}")
        self.acl.hooks.act("usergroup_update_before", self)

        with _session() as session:
            row = session.get(Group, self.id)
            if row is None:
                raise NotFoundError(f"group not found: {self.id}")
            row.name = self.name
            session.add(row)
            flush_or_raise(session, f"group name already exists: {self.name}")
            # Grants may have changed since this object loaded them.
            self._load_permissions(session)
            self._write_memberships(session)
            write_event_log(f"User group updated: {self.name}", "info", "default", "blogacl", session=session)
            commit_or_raise(session)

        self.acl.hooks.act("usergroup_update_after", self)

    def delete(self) -> None:
        if self.id is None:
            raise NotFoundError("group has not been inserted")
        if not self.acl.hooks.allow("usergroup_delete_allow", self):
            raise VetoedError(f"group delete vetoed: {self.name}")
        self.acl.hooks.act("usergroup_delete_before", self)

        with _session() as session:
            row = session.get(Group, self.id)
            if row is None:
                raise NotFoundError(f"group not found: {self.id}")
            session.execute(sa.delete(GroupTokenPermission).where(col(GroupTokenPermission.group_id) == self.id))
            session.execute(sa.delete(UserGroupLink).where(col(UserGroupLink.group_id) == self.id))
            session.delete(row)
            write_event_log(f"User group deleted: {self.name}", "info", "default", "blogacl", session=session)
            commit_or_raise(session)

        self.acl.hooks.act("usergroup_delete_after", self)
        self.id = None
